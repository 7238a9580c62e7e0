"""
Project classification and prompt building.

Turns a context snapshot and raw user input into either a direct
suggestion or a compact prompt for the remote endpoint.
"""

from enum import Enum
from typing import Dict, Optional, Sequence, Tuple

from .context import ContextSnapshot, ContextSummary


class ProjectType(Enum):
    """Category of the working directory."""
    NODEJS = "nodejs"
    PYTHON = "python"
    RUST = "rust"
    GIT = "git"
    JAVA = "java"
    CPP = "cpp"
    WEB = "web"
    GENERAL = "general"


# Extension sniffing, checked in this order when no manifest or repo is found.
EXTENSION_RULES: Tuple[Tuple[ProjectType, Tuple[str, ...]], ...] = (
    (ProjectType.PYTHON, (".py",)),
    (ProjectType.JAVA, (".java",)),
    (ProjectType.CPP, (".cpp", ".cc", ".c", ".h", ".hpp")),
    (ProjectType.WEB, (".html", ".js")),
)

CANONICAL_COMMANDS: Dict[ProjectType, Tuple[str, ...]] = {
    ProjectType.NODEJS: ("npm install", "npm start", "npm run dev", "npm test", "npm run build"),
    ProjectType.PYTHON: ("python", "pip install", "python -m venv", "pytest", "python manage.py"),
    ProjectType.RUST: ("cargo build", "cargo run", "cargo test", "cargo check", "cargo fmt"),
    ProjectType.GIT: ("git status", "git add .", "git commit", "git push", "git pull"),
    ProjectType.JAVA: ("javac", "java", "mvn", "gradle"),
    ProjectType.CPP: ("g++", "make", "cmake", "./a.out"),
    ProjectType.WEB: ("npm install", "npm start", "npx", "yarn"),
    ProjectType.GENERAL: ("ls", "cd", "mkdir", "rm", "cp", "mv"),
}


def classify_project_type(snapshot: ContextSnapshot) -> ProjectType:
    """Classify the directory; only the first matching rule applies.

    Priority: manifest ecosystem, then git repository, then file extensions,
    then the general fallback.
    """
    if snapshot.manifest is not None:
        return ProjectType(snapshot.manifest.ecosystem)

    if snapshot.is_repo:
        return ProjectType.GIT

    file_names = [e.name.lower() for e in snapshot.entries if not e.is_directory]
    for project_type, extensions in EXTENSION_RULES:
        if any(name.endswith(extensions) for name in file_names):
            return project_type

    return ProjectType.GENERAL


def direct_match(user_input: str, snapshot: ContextSnapshot) -> Optional[str]:
    """Return the first canonical command for the project type that starts
    with the case-folded input, or None.
    """
    prefix = user_input.casefold()
    for command in CANONICAL_COMMANDS[classify_project_type(snapshot)]:
        if command.casefold().startswith(prefix):
            return command
    return None


def build_prompt(
    user_input: str,
    snapshot: ContextSnapshot,
    recent_commands: Optional[Sequence[str]] = None,
    max_suggestion_length: int = 30,
    max_recent_commands: int = 3,
) -> str:
    """Describe the context and ask for a completion of ``user_input``.

    Signals appear in a fixed order: directory, git, manifest, recent
    commands, file/folder counts, then the input and the length instruction.
    Every signal present in the snapshot is included.
    """
    if recent_commands is None:
        recent_commands = snapshot.recent_commands

    parts = [f'Context: Working in "{snapshot.directory_name}" directory.']

    if snapshot.is_repo:
        branch = snapshot.vcs.branch or "detached HEAD"
        parts.append(f'Git repo on branch "{branch}".')
        if snapshot.vcs.has_uncommitted_changes:
            parts.append("Has uncommitted changes.")

    manifest = snapshot.manifest
    if manifest is not None:
        label = f'"{manifest.name}"' if manifest.name else f"from {manifest.filename}"
        parts.append(f"{manifest.ecosystem} project {label}.")
        if manifest.script_names:
            parts.append(f"Has {len(manifest.script_names)} scripts.")

    recent = list(recent_commands)[:max_recent_commands]
    if recent:
        parts.append(f"Recent commands: {', '.join(recent)}.")

    if snapshot.entries:
        parts.append(
            f"Directory has {snapshot.file_count} files, {snapshot.folder_count} folders."
        )

    parts.append(f'User input: "{user_input}".')
    parts.append(
        f"Suggest the most relevant command completion ({max_suggestion_length} chars max)."
    )
    return " ".join(parts)


def summarize(snapshot: ContextSnapshot, max_recent_commands: int = 3) -> ContextSummary:
    """Build the display-oriented summary of ``snapshot``."""
    vcs = snapshot.vcs if snapshot.is_repo else None
    manifest = snapshot.manifest
    return ContextSummary(
        directory=snapshot.directory_name,
        full_path=str(snapshot.path),
        project_type=classify_project_type(snapshot).value,
        files=snapshot.file_count,
        folders=snapshot.folder_count,
        git_branch=vcs.branch if vcs is not None else None,
        git_dirty=vcs.has_uncommitted_changes if vcs is not None else False,
        manifest_name=manifest.name if manifest is not None else None,
        manifest_ecosystem=manifest.ecosystem if manifest is not None else None,
        recent_commands=list(snapshot.recent_commands[:max_recent_commands]),
    )
