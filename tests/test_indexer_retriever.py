"""Tests for ProjectIndexer, IndexingListener and CodeRetriever."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

from codegen_assistant.rag.chunker import CodeChunker
from codegen_assistant.rag.indexer import IndexingListener, ProjectIndexer
from codegen_assistant.rag.retriever import CodeRetriever

HEADER_VUE = "<template>\n  <header class='site-header'>Acme navigation menu</header>\n</template>\n"
BUTTON_JS = "export function primaryButton(label) {\n  return `<button>${label}</button>`\n}\n"


class TestIndexer:
    def test_index_file(self, indexer: ProjectIndexer, store):
        assert indexer.index_file("p1", "src/Header.vue", HEADER_VUE) == 1
        assert store.count("p1") == 1

    def test_reindex_leaves_no_residue(self, embedder, store):
        indexer = ProjectIndexer(chunker=CodeChunker(max_fragment_size=60), embedder=embedder, store=store)
        long_content = "\n".join(f"export const v{i} = {i};" for i in range(20))
        first = indexer.index_file("p1", "src/values.js", long_content)
        assert first > 1

        assert indexer.index_file("p1", "src/values.js", "export const v = 1;") == 1
        fragments = store.fragments("p1")
        assert len(fragments) == 1
        assert fragments[0].content == "export const v = 1;"

    def test_skips_blank_and_unsupported(self, indexer, store):
        assert indexer.index_file("p1", "src/App.vue", "  \n") == 0
        assert indexer.index_file("p1", "logo.png", "binary") == 0
        assert store.count() == 0

    def test_disabled(self, embedder, store):
        indexer = ProjectIndexer(chunker=CodeChunker(), embedder=embedder, store=store, enabled=False)
        assert indexer.index_file("p1", "src/App.vue", HEADER_VUE) == 0

    def test_embedding_failure_is_swallowed(self, store):
        class BrokenEmbedder:
            dimension = 4

            def embed_text(self, text):
                raise RuntimeError("down")

            def embed_batch(self, texts, batch_size=100):
                raise RuntimeError("down")

        indexer = ProjectIndexer(chunker=CodeChunker(), embedder=BrokenEmbedder(), store=store)
        assert indexer.index_file("p1", "src/App.vue", HEADER_VUE) == 0

    def test_delete_file_and_project(self, indexer, store):
        indexer.index_file("p1", "src/Header.vue", HEADER_VUE)
        indexer.index_file("p1", "src/button.js", BUTTON_JS)
        indexer.index_file("p2", "src/button.js", BUTTON_JS)

        assert indexer.delete_file("p1", "src/button.js") == 1
        assert store.count("p1") == 1
        assert indexer.delete_project("p1") == 1
        assert store.count("p2") == 1

    def test_index_directory_skips_build_output(self, indexer, store, vue_project: Path):
        (vue_project / "src").mkdir()
        (vue_project / "src" / "App.vue").write_text(HEADER_VUE, encoding="utf-8")
        (vue_project / "dist").mkdir()
        (vue_project / "dist" / "bundle.js").write_text(BUTTON_JS, encoding="utf-8")
        (vue_project / "node_modules" / "vue").mkdir(parents=True)
        (vue_project / "node_modules" / "vue" / "index.js").write_text(BUTTON_JS, encoding="utf-8")

        assert indexer.index_directory("42", vue_project) == 1
        assert [f.source_path for f in store.fragments("42")] == ["src/App.vue"]

    def test_index_directory_does_not_descend_into_ignored_dirs(self, indexer, vue_project: Path):
        (vue_project / "src").mkdir()
        (vue_project / "src" / "App.vue").write_text(HEADER_VUE, encoding="utf-8")
        (vue_project / "node_modules" / "vue" / "dist").mkdir(parents=True)
        visited: list[str] = []
        real_walk = os.walk

        def recording_walk(top):
            for dirpath, dirnames, filenames in real_walk(top):
                visited.append(Path(dirpath).relative_to(vue_project).as_posix())
                yield dirpath, dirnames, filenames

        with patch("codegen_assistant.rag.indexer.os.walk", recording_walk):
            assert indexer.index_directory("42", vue_project) == 1
        assert visited == [".", "src"]


class TestListener:
    def test_write_modify_delete(self, indexer, store, output_root: Path, vue_project: Path):
        listener = IndexingListener(indexer, output_root, max_workers=2)
        try:
            listener.on_tool_executed("42", "writeFile", {"relativeFilePath": "./src/Header.vue", "content": HEADER_VUE}).result()
            assert [f.source_path for f in store.fragments("42")] == ["src/Header.vue"]

            target = vue_project / "src" / "Header.vue"
            target.parent.mkdir(parents=True)
            target.write_text(HEADER_VUE.replace("Acme", "Globex"), encoding="utf-8")
            listener.on_tool_executed("42", "modifyFile", {"relativeFilePath": "src/Header.vue"}).result()
            assert "Globex" in store.fragments("42")[0].content

            listener.on_tool_executed("42", "deleteFile", {"relativeFilePath": "src/Header.vue"}).result()
            assert store.count("42") == 0
        finally:
            listener.shutdown()

    def test_ignores_other_tools_and_bad_args(self, indexer, output_root: Path):
        listener = IndexingListener(indexer, output_root)
        try:
            assert listener.on_tool_executed("42", "readFile", {"relativeFilePath": "a.js"}) is None
            assert listener.on_tool_executed("42", "writeFile", {"content": "x"}) is None
        finally:
            listener.shutdown()

    def test_updates_to_one_file_apply_in_order(self, indexer, store, output_root: Path):
        listener = IndexingListener(indexer, output_root, max_workers=4)
        try:
            futures = [
                listener.on_tool_executed(
                    "42", "writeFile", {"relativeFilePath": "src/counter.js", "content": f"export const n = {i};"}
                )
                for i in range(10)
            ]
            for future in futures:
                future.result()
            assert store.fragments("42")[0].content == "export const n = 9;"
        finally:
            listener.shutdown()

    def test_modify_of_missing_file(self, indexer, output_root: Path, vue_project: Path):
        listener = IndexingListener(indexer, output_root)
        try:
            assert listener.on_tool_executed("42", "modifyFile", {"relativeFilePath": "gone.js"}).result() == 0
        finally:
            listener.shutdown()


class TestRetriever:
    def test_empty_index(self, retriever: CodeRetriever):
        assert retriever.search_default("p1", "make the footer blue") == []

    def test_blank_query(self, indexer, retriever):
        indexer.index_file("p1", "src/Header.vue", HEADER_VUE)
        assert retriever.search_default("p1", "   ") == []

    def test_relevant_fragment_ranks_first(self, indexer, retriever):
        indexer.index_file("p1", "src/Header.vue", HEADER_VUE)
        indexer.index_file("p1", "src/button.js", BUTTON_JS)

        matches = retriever.search_default("p1", "primaryButton label button")
        assert matches[0].metadata["source_path"] == "src/button.js"
        assert all(m.score >= 0.6 for m in matches)

    def test_degrades_to_top_one(self, indexer, retriever):
        indexer.index_file("p1", "src/Header.vue", HEADER_VUE)
        indexer.index_file("p1", "src/button.js", BUTTON_JS)

        matches = retriever.search_default("p1", "zebra quokka")
        assert len(matches) == 1
        assert matches[0].score < 0.6

    def test_no_fallback_when_disabled(self, indexer, embedder, store):
        indexer.index_file("p1", "src/Header.vue", HEADER_VUE)
        strict = CodeRetriever(embedder=embedder, store=store, guarantee_top_one=False)
        assert strict.search_default("p1", "zebra quokka") == []

    def test_other_projects_invisible(self, indexer, retriever):
        indexer.index_file("p2", "src/button.js", BUTTON_JS)
        assert retriever.search_default("p1", "primaryButton") == []
