"""Configuration for the code generation service using pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_PACKAGE_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _PACKAGE_DIR.parent.parent  # src/codegen_assistant/ → project root


class Settings(BaseSettings):
    """All service settings, loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # OpenAI-compatible chat model
    # ------------------------------------------------------------------
    openai_api_key: str = ""
    openai_base_url: str | None = None
    chat_model: str = "gpt-4o-mini"

    # ------------------------------------------------------------------
    # Embedding model
    # Falls back to the chat-model values when not set explicitly.
    # ------------------------------------------------------------------
    embedding_api_key: str | None = None
    embedding_base_url: str | None = None
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    embedding_provider: str = "openai"  # "openai" | "mock" (offline, hashed bag-of-words)

    # ------------------------------------------------------------------
    # Retrieval (RAG)
    # ------------------------------------------------------------------
    rag_enabled: bool = True
    rag_top_k: int = 5
    rag_min_score: float = 0.6
    rag_guarantee_top_one: bool = True
    rag_max_fragment_size: int = 8000
    rag_max_display_size: int = 2000
    rag_max_context_size: int = 8000
    rag_index_workers: int = 2
    vector_store: str = "sqlite"  # "sqlite" | "memory"

    # ------------------------------------------------------------------
    # Generation loop
    # ------------------------------------------------------------------
    max_tool_invocations: int = 20
    chat_memory_max_records: int = 20
    silent_tools: list[str] = ["readFile", "readDir"]

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    code_output_root: Path = _PROJECT_ROOT / "tmp" / "code_output"
    chat_db_path: Path = _PROJECT_ROOT / "database" / "chat_history.sqlite"
    vector_db_path: Path = _PROJECT_ROOT / "database" / "code_index.sqlite"

    # ------------------------------------------------------------------
    # Image tools (optional, placeholder images are used without keys)
    # ------------------------------------------------------------------
    pixabay_api_key: str | None = None
    pexels_api_key: str | None = None
    image_request_timeout: float = 10.0

    # ------------------------------------------------------------------
    # Project build (vue_project pipeline)
    # ------------------------------------------------------------------
    build_enabled: bool = True
    npm_command: str = "npm"
    build_timeout_seconds: int = 300

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = "INFO"
    log_json: bool = False

    # ------------------------------------------------------------------
    # Observability: "off" | "logfire" | "otel"
    # ------------------------------------------------------------------
    observability: str = "off"
    otel_service_name: str = "codegen-assistant"
    otel_exporter_otlp_endpoint: str = "http://localhost:4318"
    otel_console_exporter: bool = False

    # ------------------------------------------------------------------
    # Computed defaults (embedding falls back to chat values)
    # ------------------------------------------------------------------
    @model_validator(mode="after")
    def _apply_embedding_fallbacks(self) -> "Settings":
        if not self.embedding_api_key:
            self.embedding_api_key = self.openai_api_key
        if not self.embedding_base_url:
            self.embedding_base_url = self.openai_base_url
        return self

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------
    def validate_runtime(self) -> None:
        """Check that all required values are present.

        Call this at application startup (not at import time) so that
        tests can override settings before validation runs.
        """
        if not self.openai_api_key:
            raise ValueError("OPENAI_API_KEY not set. Add it to .env")
        if self.vector_store not in ("sqlite", "memory"):
            raise ValueError(f"Unknown VECTOR_STORE '{self.vector_store}'. Use 'sqlite' or 'memory'.")
        if self.embedding_provider not in ("openai", "mock"):
            raise ValueError(f"Unknown EMBEDDING_PROVIDER '{self.embedding_provider}'. Use 'openai' or 'mock'.")
        if self.max_tool_invocations < 1:
            raise ValueError("MAX_TOOL_INVOCATIONS must be at least 1.")
        if not 0.0 <= self.rag_min_score <= 1.0:
            raise ValueError("RAG_MIN_SCORE must be between 0 and 1.")


@lru_cache
def get_settings() -> Settings:
    """Return the cached Settings singleton."""
    return Settings()
