"""Embedding services: OpenAI-compatible API and an offline mock."""

from __future__ import annotations

import hashlib
import math
import re

from openai import OpenAI

from codegen_assistant.config import Settings, get_settings

_TOKEN_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*|\d+")


class OpenAIEmbeddingService:
    """OpenAI (or OpenAI-compatible) implementation of the embedding service."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: OpenAI | None = None,
    ) -> None:
        s = settings or get_settings()
        self.client = client or OpenAI(api_key=s.embedding_api_key, base_url=s.embedding_base_url)
        self.model = s.embedding_model
        self._dimensions = s.embedding_dimensions

    def _create_kwargs(self) -> dict:
        # text-embedding-3-* accept a dimensions override; keep it equal to the vec0 column size
        return {"model": self.model, "dimensions": self._dimensions}

    def embed_text(self, text: str) -> list[float]:
        kwargs = self._create_kwargs()
        kwargs["input"] = text
        response = self.client.embeddings.create(**kwargs)
        return [float(x) for x in response.data[0].embedding]

    def embed_batch(self, texts: list[str], batch_size: int = 100) -> list[list[float]]:
        """Embed *texts* in API-sized batches, preserving input order."""
        embeddings: list[list[float]] = []
        for i in range(0, len(texts), batch_size):
            kwargs = self._create_kwargs()
            kwargs["input"] = texts[i : i + batch_size]
            response = self.client.embeddings.create(**kwargs)
            embeddings.extend([float(x) for x in item.embedding] for item in response.data)
        return embeddings

    @property
    def dimension(self) -> int:
        return self._dimensions


class MockEmbeddingService:
    """Deterministic hashed bag-of-words embeddings for local dev and tests.

    No API calls.  Texts sharing identifiers get a positive cosine
    similarity, which is enough to exercise ranking and thresholds.
    """

    def __init__(self, dimension: int = 256) -> None:
        self._dimension = dimension

    def embed_text(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "little") % self._dimension] += 1.0
        norm = math.sqrt(sum(x * x for x in vector))
        if norm == 0:
            return vector
        return [x / norm for x in vector]

    def embed_batch(self, texts: list[str], batch_size: int = 100) -> list[list[float]]:
        return [self.embed_text(t) for t in texts]

    @property
    def dimension(self) -> int:
        return self._dimension
