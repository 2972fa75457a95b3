"""Project indexer and the tool-execution listener that drives it.

Indexing is delete-then-insert per file: every re-index fully replaces the
fragment set of that (project, file) pair.  Failures are logged and
swallowed; retrieval simply sees stale data for that file until a later
successful re-index.
"""

from __future__ import annotations

import os
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path

from loguru import logger

from codegen_assistant.application.exceptions import PathSecurityError
from codegen_assistant.domain.protocols import IEmbeddingService, IVectorStore
from codegen_assistant.rag.chunker import CodeChunker, is_supported
from codegen_assistant.services.project_summary import IGNORED_DIRS
from codegen_assistant.tools.base import normalize_relative_path, resolve_project_path


class ProjectIndexer:
    """Chunks, embeds and stores project files, keyed by (project, file)."""

    def __init__(
        self,
        chunker: CodeChunker,
        embedder: IEmbeddingService,
        store: IVectorStore,
        enabled: bool = True,
    ) -> None:
        self.chunker = chunker
        self.embedder = embedder
        self.store = store
        self.enabled = enabled

    def index_file(self, project_id: str, file_path: str, content: str) -> int:
        """Replace the indexed fragments of one file; returns the number stored."""
        if not self.enabled:
            return 0
        if not content or not content.strip():
            logger.debug("Skip indexing empty file | project={} | file={}", project_id, file_path)
            return 0
        if not is_supported(file_path):
            logger.debug("Skip indexing unsupported file | project={} | file={}", project_id, file_path)
            return 0

        try:
            removed = self.store.delete_where({"project_id": project_id, "file_path": file_path})
            fragments = self.chunker.chunk(project_id, file_path, content)
            if not fragments:
                return 0
            vectors = self.embedder.embed_batch([f.content for f in fragments])
            for fragment, vector in zip(fragments, vectors, strict=True):
                self.store.upsert(fragment, vector)
        except Exception:
            logger.exception("Indexing failed | project={} | file={}", project_id, file_path)
            return 0

        logger.info(
            "Indexed file | project={} | file={} | fragments={} | replaced={}",
            project_id,
            file_path,
            len(fragments),
            removed,
        )
        return len(fragments)

    def delete_file(self, project_id: str, file_path: str) -> int:
        try:
            removed = self.store.delete_where({"project_id": project_id, "file_path": file_path})
        except Exception:
            logger.exception("Index delete failed | project={} | file={}", project_id, file_path)
            return 0
        logger.info("Removed file from index | project={} | file={} | fragments={}", project_id, file_path, removed)
        return removed

    def delete_project(self, project_id: str) -> int:
        try:
            removed = self.store.delete_where({"project_id": project_id})
        except Exception:
            logger.exception("Index delete failed | project={}", project_id)
            return 0
        logger.info("Removed project from index | project={} | fragments={}", project_id, removed)
        return removed

    def index_directory(self, project_id: str, project_dir: Path) -> int:
        """Index every supported file under *project_dir* (skips build output)."""
        total = 0
        for dirpath, dirnames, filenames in os.walk(project_dir):
            dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS)
            for name in sorted(filenames):
                if not is_supported(name):
                    continue
                path = Path(dirpath) / name
                rel = path.relative_to(project_dir).as_posix()
                total += self.index_file(project_id, rel, path.read_text(encoding="utf-8", errors="replace"))
        return total


class IndexingListener:
    """Re-indexes files touched by tools, on worker threads.

    ``writeFile`` indexes the written content, ``modifyFile`` re-reads the
    file from disk, ``deleteFile`` drops the file's fragments.  Other tools
    are ignored.  The generation loop is never blocked: work is submitted
    and the future returned.

    Work is sharded by (project, file) onto single-thread pools, so updates
    to one file are applied in the order the tools ran.
    """

    WATCHED_TOOLS = frozenset({"writeFile", "modifyFile", "deleteFile"})

    def __init__(self, indexer: ProjectIndexer, output_root: Path, max_workers: int = 2) -> None:
        self.indexer = indexer
        self.output_root = output_root
        self._pools = [
            ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"rag-index-{i}")
            for i in range(max(1, max_workers))
        ]

    def _pool_for(self, project_id: str, key: str) -> ThreadPoolExecutor:
        return self._pools[hash((project_id, key)) % len(self._pools)]

    def on_tool_executed(self, project_id: str, tool_name: str, arguments: dict) -> Future | None:
        if tool_name not in self.WATCHED_TOOLS or not self.indexer.enabled:
            return None
        file_path = arguments.get("relativeFilePath")
        if not isinstance(file_path, str) or not file_path.strip():
            logger.warning("Tool arguments without a file path | tool={} | args={}", tool_name, arguments)
            return None
        key = normalize_relative_path(file_path)
        pool = self._pool_for(project_id, key)

        if tool_name == "writeFile":
            return pool.submit(self.indexer.index_file, project_id, key, arguments.get("content") or "")
        if tool_name == "modifyFile":
            return pool.submit(self._reindex_from_disk, project_id, file_path, key)
        return pool.submit(self.indexer.delete_file, project_id, key)

    def _reindex_from_disk(self, project_id: str, file_path: str, key: str) -> int:
        try:
            path = resolve_project_path(self.output_root, file_path, project_id)
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError, PathSecurityError) as exc:
            logger.warning("Cannot re-read modified file | project={} | file={} | {}", project_id, file_path, exc)
            return 0
        return self.indexer.index_file(project_id, key, content)

    def shutdown(self, wait: bool = True) -> None:
        for pool in self._pools:
            pool.shutdown(wait=wait)
