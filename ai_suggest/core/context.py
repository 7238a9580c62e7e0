"""
Environment context capture.

Builds a point-in-time snapshot of the working directory used to enrich
suggestion prompts. Every probe degrades to "feature absent" on failure.
"""

import json
import logging
import os
import subprocess
import tomllib
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

GitRunner = Callable[[Sequence[str], Path, float], str]


@dataclass(frozen=True)
class DirectoryEntry:
    """One item of the directory listing."""
    name: str
    is_directory: bool
    size: int
    modified: datetime


@dataclass(frozen=True)
class VcsState:
    """Git state of the working directory."""
    is_repo: bool
    branch: str = ""
    has_uncommitted_changes: bool = False


@dataclass(frozen=True)
class ManifestState:
    """Project manifest found in the working directory."""
    ecosystem: str
    filename: str
    name: str = ""
    script_names: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ContextSnapshot:
    """Environment signals captured for one suggestion request."""
    path: Path
    entries: Tuple[DirectoryEntry, ...] = ()
    vcs: Optional[VcsState] = None
    manifest: Optional[ManifestState] = None
    recent_commands: Tuple[str, ...] = ()

    @property
    def directory_name(self) -> str:
        return self.path.name or str(self.path)

    @property
    def is_repo(self) -> bool:
        return self.vcs is not None and self.vcs.is_repo

    @property
    def file_count(self) -> int:
        return sum(1 for e in self.entries if not e.is_directory)

    @property
    def folder_count(self) -> int:
        return sum(1 for e in self.entries if e.is_directory)


class CommandHistory:
    """Most-recent-first ring buffer of executed commands."""

    def __init__(self, max_commands: int = 10):
        if max_commands <= 0:
            raise ValueError("max_commands must be > 0")
        self._commands = deque(maxlen=max_commands)

    def add(self, command: str) -> None:
        command = command.strip()
        if command:
            self._commands.appendleft(command)

    def recent(self, limit: Optional[int] = None) -> Tuple[str, ...]:
        commands = tuple(self._commands)
        return commands if limit is None else commands[:limit]

    def __len__(self) -> int:
        return len(self._commands)


def run_git(args: Sequence[str], cwd: Path, timeout: float) -> str:
    """Run a git subcommand and return its stdout.

    Raises:
        OSError: If git is not installed
        subprocess.CalledProcessError: If git exits non-zero (e.g. not a repository)
        subprocess.TimeoutExpired: If git does not finish in time
    """
    completed = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        timeout=timeout,
        check=True,
    )
    return completed.stdout


def list_directory(path: Path, max_entries: int = 20) -> Tuple[DirectoryEntry, ...]:
    """List up to ``max_entries`` items of ``path`` in name order.

    Items whose metadata cannot be read are still listed, as zero-size files.
    An unreadable directory yields an empty listing.
    """
    try:
        names = sorted(os.listdir(path))[:max_entries]
    except OSError as e:
        logger.debug("Cannot list %s: %s", path, e)
        return ()

    entries = []
    for name in names:
        item = path / name
        try:
            stat = item.stat()
            entries.append(DirectoryEntry(
                name=name,
                is_directory=item.is_dir(),
                size=stat.st_size,
                modified=datetime.fromtimestamp(stat.st_mtime),
            ))
        except OSError:
            entries.append(DirectoryEntry(
                name=name, is_directory=False, size=0, modified=datetime.now()
            ))
    return tuple(entries)


def probe_vcs(path: Path, runner: GitRunner = run_git, timeout: float = 2.0) -> Optional[VcsState]:
    """Query git status and branch; a non-repository is a normal outcome."""
    try:
        status = runner(["status", "--porcelain"], path, timeout)
        branch = runner(["branch", "--show-current"], path, timeout)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("No git state for %s: %s", path, e)
        return VcsState(is_repo=False)
    return VcsState(
        is_repo=True,
        branch=branch.strip(),
        has_uncommitted_changes=bool(status.strip()),
    )


def _read_package_json(path: Path) -> ManifestState:
    data = json.loads(path.read_text(encoding='utf-8'))
    if not isinstance(data, dict):
        raise ValueError("package.json is not an object")
    scripts = data.get("scripts")
    name = data.get("name")
    return ManifestState(
        ecosystem="nodejs",
        filename=path.name,
        name=name if isinstance(name, str) else "",
        script_names=tuple(scripts) if isinstance(scripts, dict) else (),
    )


def _read_pyproject(path: Path) -> ManifestState:
    with open(path, 'rb') as f:
        data = tomllib.load(f)
    project = data.get("project")
    project = project if isinstance(project, dict) else {}
    scripts = project.get("scripts")
    name = project.get("name")
    return ManifestState(
        ecosystem="python",
        filename=path.name,
        name=name if isinstance(name, str) else "",
        script_names=tuple(scripts) if isinstance(scripts, dict) else (),
    )


def _read_cargo(path: Path) -> ManifestState:
    with open(path, 'rb') as f:
        data = tomllib.load(f)
    package = data.get("package")
    package = package if isinstance(package, dict) else {}
    bins = data.get("bin")
    bin_names = ()
    if isinstance(bins, list):
        bin_names = tuple(
            b["name"] for b in bins
            if isinstance(b, dict) and isinstance(b.get("name"), str)
        )
    name = package.get("name")
    return ManifestState(
        ecosystem="rust",
        filename=path.name,
        name=name if isinstance(name, str) else "",
        script_names=bin_names,
    )


# Checked in order; the first manifest present wins.
MANIFEST_READERS: Tuple[Tuple[str, Callable[[Path], ManifestState]], ...] = (
    ("package.json", _read_package_json),
    ("pyproject.toml", _read_pyproject),
    ("Cargo.toml", _read_cargo),
)


def probe_manifest(path: Path) -> Optional[ManifestState]:
    """Read the first project manifest found in ``path``, if any."""
    for filename, reader in MANIFEST_READERS:
        manifest_path = path / filename
        if not manifest_path.is_file():
            continue
        try:
            return reader(manifest_path)
        except (OSError, ValueError, tomllib.TOMLDecodeError) as e:
            logger.debug("Unreadable manifest %s: %s", manifest_path, e)
            return None
    return None


def build_snapshot(
    cwd: Optional[str] = None,
    recent_commands: Iterable[str] = (),
    max_entries: int = 20,
    git_runner: GitRunner = run_git,
    probe_timeout: float = 2.0,
) -> ContextSnapshot:
    """Capture the environment of ``cwd`` (defaults to the process cwd).

    Args:
        cwd: Directory to inspect
        recent_commands: Recent commands, most recent first
        max_entries: Bound on the directory listing
        git_runner: Callable used to run git subcommands
        probe_timeout: Timeout for each git subcommand

    Returns:
        A fresh ContextSnapshot; never raises for probe failures
    """
    path = Path(cwd or os.getcwd()).resolve()
    return ContextSnapshot(
        path=path,
        entries=list_directory(path, max_entries),
        vcs=probe_vcs(path, git_runner, probe_timeout),
        manifest=probe_manifest(path),
        recent_commands=tuple(recent_commands),
    )


@dataclass(frozen=True)
class ContextSummary:
    """Display-oriented view of a snapshot."""
    directory: str
    full_path: str
    project_type: str
    files: int
    folders: int
    git_branch: Optional[str] = None
    git_dirty: bool = False
    manifest_name: Optional[str] = None
    manifest_ecosystem: Optional[str] = None
    recent_commands: List[str] = field(default_factory=list)

    def display_line(self) -> str:
        """One-line rendering with rich markup."""
        line = f"[cyan]{self.directory}[/cyan]"
        if self.git_branch is not None:
            dirty = "*" if self.git_dirty else ""
            line += f" [green]\\[git:{self.git_branch}{dirty}][/green]"
        if self.manifest_ecosystem is not None:
            line += f" [yellow]\\[{self.manifest_ecosystem}:{self.manifest_name}][/yellow]"
        line += f" [dim]({self.files}f, {self.folders}d)[/dim]"
        return line
