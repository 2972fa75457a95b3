"""Domain service interfaces (ports).

These protocols define the contracts that infrastructure implementations
must satisfy.  The application layer depends on these abstractions,
not on concrete classes.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from codegen_assistant.domain.models import ChatHistoryRecord, CodeFragment, RetrievalMatch, ToolCallRecord

if TYPE_CHECKING:
    from pydantic_ai.messages import ModelMessage
    from pydantic_ai.tools import ToolDefinition

    from codegen_assistant.application.transport import TransportEvent

# ---------------------------------------------------------------------------
# Model transport
# ---------------------------------------------------------------------------


@runtime_checkable
class IModelTransport(Protocol):
    """Streaming chat request to the LLM.

    Yields partial ``TextDelta`` / ``ToolCallDelta`` events followed by exactly
    one ``ResponseCompleted``.  A completed event carrying ``response=None``
    means the transport could not produce a final message.

    Implementations: PydanticAIModelTransport.
    """

    def stream(
        self,
        messages: Sequence[ModelMessage],
        tools: Sequence[ToolDefinition],
    ) -> AsyncIterator[TransportEvent]: ...


# ---------------------------------------------------------------------------
# Embeddings & vector store
# ---------------------------------------------------------------------------


@runtime_checkable
class IEmbeddingService(Protocol):
    """Interface for text embedding.

    Implementations: OpenAIEmbeddingService, MockEmbeddingService.
    """

    def embed_text(self, text: str) -> list[float]: ...

    def embed_batch(self, texts: list[str], batch_size: int = 100) -> list[list[float]]: ...

    @property
    def dimension(self) -> int: ...


@runtime_checkable
class IVectorStore(Protocol):
    """Nearest-neighbour store for fragment embeddings.

    Filters are equality matches on ``project_id`` and/or ``file_path``
    (the bare source path of the fragment).

    Implementations: SqliteVecStore, InMemoryVectorStore.
    """

    def upsert(self, fragment: CodeFragment, vector: list[float]) -> None: ...

    def search(
        self,
        vector: list[float],
        filters: dict[str, str],
        top_k: int,
        min_score: float = 0.0,
    ) -> list[RetrievalMatch]: ...

    def delete_where(self, filters: dict[str, str]) -> int: ...


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@runtime_checkable
class ITool(Protocol):
    """A named, model-invokable operation with a fixed argument schema."""

    name: str
    display_name: str

    def describe(self) -> ToolDefinition: ...

    def execute(self, arguments: dict, context_id: str) -> str: ...

    def executed_summary(self, arguments: dict) -> str: ...


# ---------------------------------------------------------------------------
# Turn log
# ---------------------------------------------------------------------------


@runtime_checkable
class IChatHistoryService(Protocol):
    """Interface for the append-only turn log.

    Implementations: ChatHistoryService (SQLite-backed).
    """

    def connect(self) -> None: ...

    def close(self) -> None: ...

    def add_chat_message(
        self, project_id: str, message: str, message_type: str, user_id: str | None = None
    ) -> int: ...

    def add_ai_message_with_tool_calls(
        self,
        project_id: str,
        message: str,
        tool_calls: list[ToolCallRecord],
        user_id: str | None = None,
    ) -> int: ...

    def load_recent(
        self, project_id: str, limit: int, skip_latest: bool = True
    ) -> list[ChatHistoryRecord]: ...

    def list_history(self, project_id: str, limit: int = 50) -> list[ChatHistoryRecord]: ...

    def delete_by_project(self, project_id: str) -> int: ...


# ---------------------------------------------------------------------------
# Project build
# ---------------------------------------------------------------------------


@runtime_checkable
class IProjectBuilder(Protocol):
    """Builds a generated project in place.

    Implementations: VueProjectBuilder (npm).
    """

    def build(self, project_dir: Path) -> bool: ...
