"""Tests for PromptAugmenter."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from codegen_assistant.application.prompt_augmenter import (
    READ_FIRST_HINT,
    REUSABLE_HINT,
    TRUNCATION_MARKER,
    PromptAugmenter,
)
from codegen_assistant.domain.models import CodeGenType, RetrievalMatch
from codegen_assistant.services.project_summary import ProjectSummaryService


def _match(path: str, content: str, score: float = 0.9, complete: bool = True) -> RetrievalMatch:
    return RetrievalMatch(
        file_path=path,
        content=content,
        fragment_kind="STYLE",
        score=score,
        metadata={"is_complete": complete, "file_kind": "vue"},
    )


@pytest.fixture()
def augmenter(retriever, output_root: Path) -> PromptAugmenter:
    return PromptAugmenter(retriever, ProjectSummaryService(output_root), max_display_size=50, max_context_size=300)


class TestRenderMatch:
    def test_reusable(self, augmenter):
        block = augmenter.render_match(_match("src/Footer.vue#style", "<style>.a{}</style>", score=0.873))
        assert block == f"[src/Footer.vue#style] relevance: 0.87 ({REUSABLE_HINT})\n```vue\n<style>.a{{}}</style>\n```\n\n"

    def test_truncated_is_not_reusable(self, augmenter):
        block = augmenter.render_match(_match("src/Big.vue", "x" * 80))
        assert f"({READ_FIRST_HINT})" in block
        assert "x" * 50 + f"\n{TRUNCATION_MARKER}" in block
        assert "x" * 51 not in block

    def test_partial_fragment_is_not_reusable(self, augmenter):
        block = augmenter.render_match(_match("src/Big.vue#template#part0", "<div>", complete=False))
        assert f"({READ_FIRST_HINT})" in block

    def test_context_budget(self, augmenter):
        matches = [_match(f"src/C{i}.vue", "y" * 40) for i in range(10)]
        rendered = augmenter.render_matches(matches)
        assert rendered.startswith("=== Related code context (RAG) ===\n")
        shown = rendered.count("relevance:")
        assert 1 <= shown < 10
        assert "[src/C0.vue]" in rendered

    def test_first_block_always_shown(self, retriever, output_root: Path):
        tight = PromptAugmenter(retriever, ProjectSummaryService(output_root), max_display_size=500, max_context_size=10)
        rendered = tight.render_matches([_match("src/A.vue", "z" * 200), _match("src/B.vue", "z")])
        assert "[src/A.vue]" in rendered
        assert "[src/B.vue]" not in rendered


class TestAugment:
    def test_new_project_keeps_prompt(self, augmenter):
        assert augmenter.augment("build a landing page", "42", CodeGenType.VUE_PROJECT) == "build a landing page"

    def test_non_vue_passthrough(self, augmenter, output_root: Path):
        (output_root / "html_42").mkdir()
        assert augmenter.augment("make it red", "42", CodeGenType.HTML) == "make it red"

    def test_vue_layout(self, augmenter, indexer, vue_project: Path):
        (vue_project / "src").mkdir()
        (vue_project / "src" / "App.vue").write_text("<template/>", encoding="utf-8")
        indexer.index_file("42", "src/theme.css", ".footer { color: blue; }")

        augmented = augmenter.augment("footer color", "42", CodeGenType.VUE_PROJECT)
        summary_end = augmented.index("=== End of project state ===")
        rag_start = augmented.index("=== Related code context (RAG) ===")
        request_start = augmented.index("=== User request ===\nfooter color")
        assert augmented.startswith("=== Current project state ===")
        assert summary_end < rag_start < request_start
        assert "[src/theme.css]" in augmented
        assert augmented.endswith("footer color")

    def test_summary_failure_keeps_fragments(self, retriever, indexer, output_root: Path):
        summary_service = ProjectSummaryService(output_root)
        augmenter = PromptAugmenter(retriever, summary_service)
        indexer.index_file("42", "src/theme.css", ".footer { color: blue; }")

        with patch.object(summary_service, "generate_summary", side_effect=PermissionError("denied")):
            augmented = augmenter.augment("footer color", "42", CodeGenType.VUE_PROJECT)

        assert "=== Current project state ===" not in augmented
        assert augmented.startswith("=== Related code context (RAG) ===")
        assert augmented.endswith("=== User request ===\nfooter color")
