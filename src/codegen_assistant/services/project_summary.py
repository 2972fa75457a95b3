"""Project state summary.

Renders a bounded view of a generated project's file tree plus its most
recently modified files.  Recomputed on every request (never cached) so the
model always sees the files as they are on disk.
"""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from codegen_assistant.domain.models import CodeGenType

IGNORED_DIRS = frozenset(
    {"node_modules", ".git", "dist", ".idea", ".vscode", "__pycache__", "target", "build", ".nuxt", ".next"}
)
IGNORED_FILES = frozenset({".DS_Store", "package-lock.json", "yarn.lock", "pnpm-lock.yaml", ".gitignore"})

MAX_TREE_DEPTH = 4
MAX_ENTRIES_PER_DIR = 15
RECENT_FILES_LIMIT = 5


def should_include(path: Path) -> bool:
    if path.is_dir():
        return path.name not in IGNORED_DIRS
    return path.name not in IGNORED_FILES


def render_tree(directory: Path, prefix: str = "", depth: int = 0) -> str:
    """Render *directory* with box-drawing connectors.

    Directories come first, then files, each group sorted by name.  At most
    ``MAX_ENTRIES_PER_DIR`` entries are shown per level and recursion stops
    at ``MAX_TREE_DEPTH``.
    """
    if depth >= MAX_TREE_DEPTH:
        return f"{prefix}└── ...\n"

    entries = sorted(
        (p for p in directory.iterdir() if should_include(p)),
        key=lambda p: (p.is_file(), p.name),
    )
    shown = entries[:MAX_ENTRIES_PER_DIR]
    omitted = len(entries) - len(shown)

    lines: list[str] = []
    for i, entry in enumerate(shown):
        is_last = i == len(shown) - 1 and omitted == 0
        connector = "└── " if is_last else "├── "
        if entry.is_dir():
            lines.append(f"{prefix}{connector}{entry.name}/\n")
            lines.append(render_tree(entry, prefix + ("    " if is_last else "│   "), depth + 1))
        else:
            lines.append(f"{prefix}{connector}{entry.name}\n")

    if omitted > 0:
        lines.append(f"{prefix}└── ... ({omitted} omitted)\n")
    return "".join(lines)


def recent_files(directory: Path, limit: int = RECENT_FILES_LIMIT) -> list[Path]:
    """Return up to *limit* files under *directory*, newest modification first."""
    found: list[Path] = []

    def walk(current: Path, depth: int) -> None:
        if depth > MAX_TREE_DEPTH:
            return
        for entry in current.iterdir():
            if not should_include(entry):
                continue
            if entry.is_dir():
                walk(entry, depth + 1)
            elif entry.is_file():
                found.append(entry)

    try:
        walk(directory, 1)
    except OSError as exc:
        logger.warning("Could not list recent files | dir={} | error={}", directory, exc)
        return []
    found.sort(key=lambda p: p.stat().st_mtime, reverse=True)
    return found[:limit]


class ProjectSummaryService:
    """Builds the textual project summary injected ahead of the user prompt."""

    def __init__(self, output_root: Path) -> None:
        self.output_root = output_root

    def project_dir(self, project_id: str, gen_type: CodeGenType) -> Path:
        return self.output_root / gen_type.project_dir_name(project_id)

    def generate_summary(self, project_id: str, gen_type: CodeGenType) -> str:
        """Return the summary, or ``""`` when the project does not exist yet."""
        dir_name = gen_type.project_dir_name(project_id)
        project_dir = self.output_root / dir_name
        if not project_dir.is_dir():
            logger.debug("No project directory yet, skipping summary | dir={}", project_dir)
            return ""

        parts = [
            "=== Current project state ===\n",
            f"Project dir: {dir_name}\n\n",
            "File structure:\n",
            render_tree(project_dir),
        ]
        recent = recent_files(project_dir)
        if recent:
            parts.append("\nRecently modified files:\n")
            parts.extend(f"  - {p.relative_to(project_dir).as_posix()}\n" for p in recent)
        parts.append("\n=== End of project state ===\n\n")

        summary = "".join(parts)
        logger.debug("Project summary built | project={} | chars={}", project_id, len(summary))
        return summary

    def enhance_user_message(self, message: str, project_id: str, gen_type: CodeGenType) -> str:
        """Prefix *message* with the project summary (Vue projects only)."""
        if gen_type is not CodeGenType.VUE_PROJECT:
            return message
        summary = self.generate_summary(project_id, gen_type)
        if not summary.strip():
            return message
        return f"{summary}User request:\n{message}"
