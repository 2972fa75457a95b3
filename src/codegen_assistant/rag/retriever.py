"""Project-scoped code retrieval with a degrade-to-top-1 fallback."""

from __future__ import annotations

from loguru import logger

from codegen_assistant.domain.models import RetrievalMatch
from codegen_assistant.domain.protocols import IEmbeddingService, IVectorStore


class CodeRetriever:
    """Embeds a query and searches one project's fragments.

    Parameters
    ----------
    top_k, min_score:
        Defaults for :meth:`search_default`.
    guarantee_top_one:
        When the thresholded query finds nothing, re-query for exactly one
        result with no minimum score, so a sparse index still yields its
        closest fragment.
    """

    def __init__(
        self,
        embedder: IEmbeddingService,
        store: IVectorStore,
        top_k: int = 5,
        min_score: float = 0.6,
        guarantee_top_one: bool = True,
        enabled: bool = True,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.top_k = top_k
        self.min_score = min_score
        self.guarantee_top_one = guarantee_top_one
        self.enabled = enabled

    def search(self, project_id: str, query: str, top_k: int, min_score: float) -> list[RetrievalMatch]:
        """Ranked matches (best first).  Any failure yields ``[]``."""
        if not self.enabled or not query or not query.strip():
            return []
        try:
            vector = self.embedder.embed_text(query)
            matches = self.store.search(vector, {"project_id": project_id}, top_k, min_score)
        except Exception:
            logger.exception("Retrieval failed | project={}", project_id)
            return []
        return sorted(matches, key=lambda m: m.score, reverse=True)

    def search_default(self, project_id: str, query: str) -> list[RetrievalMatch]:
        matches = self.search(project_id, query, self.top_k, self.min_score)
        if matches or not self.guarantee_top_one:
            logger.debug("Retrieved | project={} | hits={}", project_id, len(matches))
            return matches

        fallback = self.search(project_id, query, 1, 0.0)
        logger.debug("Retrieval degraded to top-1 | project={} | hits={}", project_id, len(fallback))
        return fallback
