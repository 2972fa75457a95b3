"""Domain entities and value objects.

These are the core data structures of the code generation domain,
independent of any infrastructure or framework concerns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# ---------------------------------------------------------------------------
# Generation pipelines
# ---------------------------------------------------------------------------


class CodeGenType(str, Enum):
    """Output shape of a generation request; selects the pipeline."""

    HTML = "html"
    MULTI_FILE = "multi_file"
    VUE_PROJECT = "vue_project"

    @property
    def uses_tools(self) -> bool:
        return self is CodeGenType.VUE_PROJECT

    def project_dir_name(self, project_id: str) -> str:
        """Directory name under the code output root, e.g. ``vue_project_42``."""
        return f"{self.value}_{project_id}"


# ---------------------------------------------------------------------------
# Turn log entities
# ---------------------------------------------------------------------------


@dataclass
class ToolCallRecord:
    """A tool invocation requested by the model within one turn.

    ``executed`` is false for calls that were announced but never ran, e.g.
    when the tool-round limit ended the turn first.
    """

    id: str
    name: str
    arguments: str = "{}"
    executed: bool = True

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "arguments": self.arguments, "executed": self.executed}


@dataclass
class ChatHistoryRecord:
    """One appended entry of the turn log."""

    id: int
    project_id: str
    message: str
    message_type: str  # "user" | "ai"
    user_id: str | None = None
    tool_calls: list[ToolCallRecord] | None = None
    created_at: str = ""

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


# ---------------------------------------------------------------------------
# Retrieval entities
# ---------------------------------------------------------------------------


@dataclass
class CodeFragment:
    """A semantically bounded slice of one source file, stored for retrieval.

    ``file_path`` carries an optional ``#section`` suffix (``src/App.vue#style``)
    when the file was split.  ``source_path`` is always the bare file path,
    which is what indexing keys on.
    """

    project_id: str
    fragment_id: str
    file_path: str
    source_path: str
    content: str
    file_kind: str
    fragment_kind: str
    index: int = 0
    metadata: dict = field(default_factory=dict)


@dataclass
class RetrievalMatch:
    """A single ranked search hit; computed per query, never persisted."""

    file_path: str
    content: str
    fragment_kind: str
    score: float
    metadata: dict = field(default_factory=dict)

    @property
    def file_kind(self) -> str:
        return self.metadata.get("file_kind", "")
