"""Prompt augmentation: project summary plus retrieved code fragments."""

from __future__ import annotations

from loguru import logger

from codegen_assistant.domain.models import CodeGenType, RetrievalMatch
from codegen_assistant.rag.retriever import CodeRetriever
from codegen_assistant.services.project_summary import ProjectSummaryService

TRUNCATION_MARKER = "// ... content truncated ..."
REUSABLE_HINT = "reusable for direct edit"
READ_FIRST_HINT = "read the full file before editing"

_FENCE_LANGUAGES = {
    "vue": "vue",
    "javascript": "javascript",
    "typescript": "typescript",
    "css": "css",
    "json": "json",
    "html": "html",
}


class PromptAugmenter:
    """Builds the text actually sent to the model for a user prompt.

    Layout for Vue projects::

        <project summary>
        === Related code context (RAG) ===
        <fragments, best first>
        === User request ===
        <prompt>

    Each fragment shows at most ``max_display_size`` characters and the
    fragments together at most ``max_context_size``.  Fragments that are
    complete and shown in full are marked reusable, so the model can use
    them as ``oldContent`` for ``modifyFile`` without reading the file.
    """

    def __init__(
        self,
        retriever: CodeRetriever,
        summary_service: ProjectSummaryService,
        max_display_size: int = 2000,
        max_context_size: int = 8000,
    ) -> None:
        self.retriever = retriever
        self.summary_service = summary_service
        self.max_display_size = max_display_size
        self.max_context_size = max_context_size

    def augment(self, prompt: str, project_id: str, gen_type: CodeGenType) -> str:
        if gen_type is not CodeGenType.VUE_PROJECT:
            return self.summary_service.enhance_user_message(prompt, project_id, gen_type)

        try:
            summary = self.summary_service.generate_summary(project_id, gen_type)
        except Exception:
            logger.exception("Project summary failed, continuing without it | project={}", project_id)
            summary = ""
        matches = self.retriever.search_default(project_id, prompt)
        if not summary.strip() and not matches:
            return prompt

        parts: list[str] = []
        if summary.strip():
            parts.append(summary)
        if matches:
            parts.append(self.render_matches(matches))
        parts.append(f"=== User request ===\n{prompt}")

        augmented = "".join(parts)
        logger.info(
            "Prompt augmented | project={} | fragments={} | chars={}",
            project_id,
            len(matches),
            len(augmented),
        )
        return augmented

    def render_matches(self, matches: list[RetrievalMatch]) -> str:
        blocks: list[str] = []
        used = 0
        for match in matches:
            block = self.render_match(match)
            if blocks and used + len(block) > self.max_context_size:
                logger.debug("Context budget reached | shown={} | dropped={}", len(blocks), len(matches) - len(blocks))
                break
            blocks.append(block)
            used += len(block)

        return (
            "=== Related code context (RAG) ===\n"
            "Fragments marked 'reusable for direct edit' are complete and can be used as "
            "oldContent for modifyFile as-is.\n\n" + "".join(blocks)
        )

    def render_match(self, match: RetrievalMatch) -> str:
        content = match.content
        truncated = len(content) > self.max_display_size
        if truncated:
            content = f"{content[: self.max_display_size]}\n{TRUNCATION_MARKER}"

        reusable = bool(match.metadata.get("is_complete")) and not truncated
        hint = REUSABLE_HINT if reusable else READ_FIRST_HINT
        language = _FENCE_LANGUAGES.get(match.file_kind, "")
        return f"[{match.file_path}] relevance: {match.score:.2f} ({hint})\n```{language}\n{content}\n```\n\n"
