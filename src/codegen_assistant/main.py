"""FastAPI application for the code generation assistant.

This module is a thin **presentation layer** plus wiring.  All business
logic lives in the ``application``, ``rag``, ``tools`` and ``services``
packages so it can be tested and reused independently of HTTP.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from codegen_assistant.agent import SYSTEM_PROMPTS, create_chat_model
from codegen_assistant.application.generation_loop import GenerationLoop
from codegen_assistant.application.orchestrator import CodeGeneratorFacade
from codegen_assistant.application.prompt_augmenter import PromptAugmenter
from codegen_assistant.application.transport import PydanticAIModelTransport
from codegen_assistant.config import Settings, get_settings
from codegen_assistant.domain.protocols import IEmbeddingService, IModelTransport
from codegen_assistant.logging_config import setup_logging
from codegen_assistant.presentation.routes.chat import router as chat_router
from codegen_assistant.rag.chunker import CodeChunker
from codegen_assistant.rag.embedding_service import MockEmbeddingService, OpenAIEmbeddingService
from codegen_assistant.rag.indexer import IndexingListener, ProjectIndexer
from codegen_assistant.rag.retriever import CodeRetriever
from codegen_assistant.rag.vector_store import InMemoryVectorStore, SqliteVecStore
from codegen_assistant.services.chat_history_service import ChatHistoryService
from codegen_assistant.services.project_builder import VueProjectBuilder
from codegen_assistant.services.project_summary import ProjectSummaryService
from codegen_assistant.telemetry import get_instrumentation_settings, setup_telemetry
from codegen_assistant.tools.registry import create_tool_executor

# Configure loguru before anything else
setup_logging()


def create_embedding_service(settings: Settings) -> IEmbeddingService:
    if settings.embedding_provider == "mock":
        return MockEmbeddingService(dimension=settings.embedding_dimensions)
    return OpenAIEmbeddingService(settings)


def create_vector_store(settings: Settings, dimension: int) -> SqliteVecStore | InMemoryVectorStore:
    if settings.vector_store == "memory":
        return InMemoryVectorStore()
    return SqliteVecStore(db_path=settings.vector_db_path, embedding_dim=dimension)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    transport: IModelTransport | None = None,
    embedder: IEmbeddingService | None = None,
) -> FastAPI:
    """Build the FastAPI app.

    Args:
        settings: Optional Settings override (defaults to get_settings()).
        transport: Optional model transport; defaults to the OpenAI-compatible
            chat model configured in *settings*.
        embedder: Optional embedding service override.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Set up and tear down services around the application lifetime."""
        s = settings or get_settings()
        s.validate_runtime()
        setup_logging(level=s.log_level, json=s.log_json)
        s.code_output_root.mkdir(parents=True, exist_ok=True)

        # Turn log (separate DB, auto-creates schema)
        history = ChatHistoryService(db_path=s.chat_db_path)
        history.connect()

        # Code index
        embedding = embedder or create_embedding_service(s)
        store = create_vector_store(s, embedding.dimension)
        store.connect()
        indexer = ProjectIndexer(
            chunker=CodeChunker(max_fragment_size=s.rag_max_fragment_size),
            embedder=embedding,
            store=store,
            enabled=s.rag_enabled,
        )
        listener = IndexingListener(indexer, s.code_output_root, max_workers=s.rag_index_workers)
        retriever = CodeRetriever(
            embedder=embedding,
            store=store,
            top_k=s.rag_top_k,
            min_score=s.rag_min_score,
            guarantee_top_one=s.rag_guarantee_top_one,
            enabled=s.rag_enabled,
        )
        augmenter = PromptAugmenter(
            retriever=retriever,
            summary_service=ProjectSummaryService(s.code_output_root),
            max_display_size=s.rag_max_display_size,
            max_context_size=s.rag_max_context_size,
        )

        # Generation
        executor = create_tool_executor(s)
        model_transport = transport or PydanticAIModelTransport(
            create_chat_model(s), instrument=get_instrumentation_settings(s)
        )
        loop = GenerationLoop(model_transport, executor, max_tool_invocations=s.max_tool_invocations)

        app.state.settings = s
        app.state.history = history
        app.state.indexer = indexer
        app.state.facade = CodeGeneratorFacade(
            loop=loop,
            executor=executor,
            augmenter=augmenter,
            history=history,
            system_prompts=SYSTEM_PROMPTS,
            output_root=s.code_output_root,
            indexing_listener=listener,
            builder=VueProjectBuilder(s.npm_command, s.build_timeout_seconds, enabled=s.build_enabled),
            memory_max_records=s.chat_memory_max_records,
            silent_tools=s.silent_tools,
        )

        logger.info(
            "Application startup complete | vector_store={} | embeddings={} | rag={}",
            s.vector_store,
            s.embedding_provider,
            s.rag_enabled,
        )
        yield

        await app.state.facade.shutdown()
        listener.shutdown()
        store.close()
        history.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Codegen Assistant",
        description="Streaming, tool-augmented code generation with retrieval over generated projects.",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Instrument FastAPI with observability (no-op when OBSERVABILITY=off)
    setup_telemetry(app, settings or get_settings())

    app.include_router(chat_router)
    return app


app = create_app()


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("codegen_assistant.main:app", host="0.0.0.0", port=8000, reload=True)
