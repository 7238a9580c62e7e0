"""
Token counting and usage tracking.

Reads token counts reported by the generateContent endpoint.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TokenUsage:
    """Token usage reported for one remote call.

    The endpoint reports a single total at the granularity used for cost
    estimation, so the same count is billed at both input and output rates.
    """
    total_tokens: int = 0

    @classmethod
    def from_response(cls, response: Any) -> "TokenUsage":
        """Extract ``usageMetadata.totalTokenCount``; absent or invalid means 0."""
        if not isinstance(response, dict):
            return cls()
        metadata = response.get("usageMetadata")
        if not isinstance(metadata, dict):
            return cls()
        total = metadata.get("totalTokenCount", 0)
        if isinstance(total, bool) or not isinstance(total, int) or total < 0:
            return cls()
        return cls(total_tokens=total)
