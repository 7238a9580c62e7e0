"""
JSON file persistence.

Provides load/save of a JSON-shaped blob to a local file.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class PersistentStore:
    """Whole-file JSON store used by the suggestion cache and usage governor.

    Failures never propagate: a missing or corrupt file loads as ``None``
    and a failed write is logged, leaving in-memory state authoritative.
    """

    def __init__(self, path: str):
        """Initialize the store with a file path.

        Args:
            path: Path to the JSON file; ``~`` is expanded
        """
        self.path = Path(path).expanduser()

    def load(self) -> Optional[Any]:
        """Read and decode the stored blob.

        Returns:
            The decoded JSON value, or None if the file is absent or unreadable
        """
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except FileNotFoundError:
            logger.debug("No stored data at %s, starting fresh", self.path)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable store %s: %s", self.path, e)
        return None

    def save(self, data: Any) -> bool:
        """Rewrite the file with ``data``.

        The blob is written to a sibling temporary file and moved into place
        so a crash mid-write never leaves a truncated file behind.

        Returns:
            True if the data was persisted
        """
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, self.path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Failed to persist %s: %s", self.path, e)
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
            return False
