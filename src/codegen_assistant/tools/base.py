"""Base class shared by all model-invokable tools.

A tool declares its argument schema as a pydantic model.  The same model is
used to describe the tool to the LLM (JSON schema) and to validate the
arguments the LLM sends back.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import ClassVar

from pydantic import BaseModel
from pydantic_ai.tools import ToolDefinition

from codegen_assistant.application.exceptions import PathSecurityError

# Candidate project directory prefixes, checked in order.
PROJECT_DIR_PREFIXES = ("vue_project_", "html_", "multi_file_")


class BaseTool(ABC):
    """A named operation with a fixed argument schema and a textual result."""

    name: ClassVar[str]
    display_name: ClassVar[str]
    description: ClassVar[str]
    args_model: ClassVar[type[BaseModel]]

    def __init__(self, output_root: Path) -> None:
        self.output_root = output_root

    # ------------------------------------------------------------------
    # Description
    # ------------------------------------------------------------------

    def describe(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters_json_schema=self.args_model.model_json_schema(),
        )

    def request_notice(self) -> str:
        """Short notice shown to the caller when the model selects this tool."""
        return f"[Tool selected] {self.display_name}"

    def executed_summary(self, arguments: dict) -> str:
        """Caller-visible rendering of a finished call (not the raw result)."""
        return f"[{self.name}] {self.display_name}"

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, arguments: dict, context_id: str) -> str:
        """Validate *arguments* and run the tool for project *context_id*.

        Raises:
            pydantic.ValidationError: If the arguments do not match the schema.
        """
        args = self.args_model.model_validate(arguments)
        return self.run(args, context_id)

    @abstractmethod
    def run(self, args: BaseModel, context_id: str) -> str: ...

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    def project_dir(self, context_id: str) -> Path:
        return project_dir(self.output_root, context_id)

    def resolve_path(self, relative_path: str, context_id: str) -> Path:
        return resolve_project_path(self.output_root, relative_path, context_id)


def project_dir(output_root: Path, context_id: str) -> Path:
    """Return the existing project directory for *context_id*.

    Falls back to the ``vue_project_`` directory when none exists yet.
    """
    for prefix in PROJECT_DIR_PREFIXES:
        candidate = output_root / f"{prefix}{context_id}"
        if candidate.is_dir():
            return candidate
    return output_root / f"{PROJECT_DIR_PREFIXES[0]}{context_id}"


def resolve_project_path(output_root: Path, relative_path: str, context_id: str) -> Path:
    """Resolve *relative_path* inside the project directory of *context_id*.

    Raises:
        PathSecurityError: For absolute paths, ``..`` segments, or any path
            that resolves outside the project directory.
    """
    if not relative_path or not relative_path.strip():
        raise PathSecurityError("file path must not be empty")
    candidate = Path(relative_path)
    if candidate.is_absolute() or relative_path.startswith(("/", "\\")):
        raise PathSecurityError(f"absolute paths are not allowed: {relative_path}")
    if ".." in candidate.parts:
        raise PathSecurityError(f"path must not contain '..': {relative_path}")

    root = project_dir(output_root, context_id).resolve()
    resolved = (root / candidate).resolve()
    if not resolved.is_relative_to(root):
        raise PathSecurityError(f"path escapes the project directory: {relative_path}")
    return resolved


def normalize_relative_path(relative_path: str) -> str:
    """Canonical posix form used as the index key, e.g. ``./src//App.vue`` → ``src/App.vue``."""
    return PurePosixPath(relative_path.replace("\\", "/")).as_posix().removeprefix("./")
