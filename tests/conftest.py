"""Shared fixtures for codegen_assistant tests."""

import sys
from pathlib import Path

# Add src to sys.path so `import codegen_assistant` works without installing the package.
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

import asyncio
import json

import pytest
from pydantic_ai.messages import ModelResponse, TextPart, ToolCallPart

from codegen_assistant.application.transport import ResponseCompleted, TextDelta, ToolCallDelta
from codegen_assistant.config import Settings
from codegen_assistant.rag.chunker import CodeChunker
from codegen_assistant.rag.embedding_service import MockEmbeddingService
from codegen_assistant.rag.indexer import ProjectIndexer
from codegen_assistant.rag.retriever import CodeRetriever
from codegen_assistant.rag.vector_store import InMemoryVectorStore
from codegen_assistant.services.chat_history_service import ChatHistoryService
from codegen_assistant.tools.registry import create_tool_executor


def pytest_configure(config):
    """Set pytest-asyncio mode to auto so async test functions work without markers."""
    config.option.asyncio_mode = "auto"


# ---------------------------------------------------------------------------
# Scripted model transport
# ---------------------------------------------------------------------------


def text_round(text: str, chunks: int = 1) -> list:
    """One model round that answers *text* without tool calls."""
    size = max(1, len(text) // chunks)
    deltas = [TextDelta(text[i : i + size]) for i in range(0, len(text), size)]
    return [*deltas, ResponseCompleted(ModelResponse(parts=[TextPart(content=text)]))]


def tool_round(*calls: tuple[str, str, dict], text: str = "") -> list:
    """One model round requesting ``(call_id, tool_name, arguments)`` tool calls."""
    events: list = []
    parts: list = []
    if text:
        events.append(TextDelta(text))
        parts.append(TextPart(content=text))
    for index, (call_id, name, args) in enumerate(calls):
        payload = json.dumps(args)
        events.append(ToolCallDelta(index=index, tool_call_id=call_id, tool_name=name, args_delta=""))
        events.append(ToolCallDelta(index=index, tool_call_id=call_id, args_delta=payload))
        parts.append(ToolCallPart(tool_name=name, args=payload, tool_call_id=call_id))
    events.append(ResponseCompleted(ModelResponse(parts=parts)))
    return events


class FakeTransport:
    """Replays scripted rounds; records the messages and tools of every request.

    A round may contain an exception instance, which is raised at that point.
    Requests beyond the script get a completion without a response.
    """

    def __init__(self, rounds: list[list] | None = None, delay: float = 0.0) -> None:
        self.rounds = list(rounds or [])
        self.delay = delay
        self.requests: list[list] = []
        self.tools: list[list] = []

    async def stream(self, messages, tools):
        self.requests.append(list(messages))
        self.tools.append(list(tools))
        events = self.rounds.pop(0) if self.rounds else [ResponseCompleted(None)]
        for event in events:
            await asyncio.sleep(self.delay)
            if isinstance(event, BaseException):
                raise event
            yield event


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def output_root(tmp_path: Path) -> Path:
    root = tmp_path / "code_output"
    root.mkdir()
    return root


@pytest.fixture()
def settings(tmp_path: Path, output_root: Path) -> Settings:
    """Settings for tests; ``_env_file=None`` so a local .env is never loaded."""
    return Settings(
        _env_file=None,
        openai_api_key="test-key",
        embedding_provider="mock",
        embedding_dimensions=256,
        vector_store="memory",
        code_output_root=output_root,
        chat_db_path=tmp_path / "chat_history.sqlite",
        vector_db_path=tmp_path / "code_index.sqlite",
        build_enabled=False,
        rag_index_workers=1,
    )


@pytest.fixture()
def history(tmp_path: Path) -> ChatHistoryService:
    svc = ChatHistoryService(db_path=tmp_path / "chat_history.sqlite")
    svc.connect()
    yield svc
    svc.close()


@pytest.fixture()
def embedder() -> MockEmbeddingService:
    return MockEmbeddingService(dimension=256)


@pytest.fixture()
def store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture()
def indexer(embedder, store) -> ProjectIndexer:
    return ProjectIndexer(chunker=CodeChunker(max_fragment_size=8000), embedder=embedder, store=store)


@pytest.fixture()
def retriever(embedder, store) -> CodeRetriever:
    return CodeRetriever(embedder=embedder, store=store, top_k=5, min_score=0.6)


@pytest.fixture()
def executor(settings, output_root):
    return create_tool_executor(settings, output_root)


@pytest.fixture()
def vue_project(output_root: Path) -> Path:
    """An empty Vue project directory for context id ``42``."""
    project = output_root / "vue_project_42"
    project.mkdir()
    return project
