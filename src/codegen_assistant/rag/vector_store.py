"""Vector storage for code fragments.

Two implementations of ``IVectorStore``:

- ``SqliteVecStore``: SQLite with the sqlite-vec extension (``vec0`` virtual
  table, cosine metric, ``project_id`` partition key) plus an SQLModel table
  holding fragment text and metadata.
- ``InMemoryVectorStore``: exact cosine search over a dict, for local dev
  and tests.

Both report relevance as ``(1 + cosine_similarity) / 2`` so scores fall in
``[0, 1]`` and 0.5 means "unrelated".
"""

from __future__ import annotations

import math
import sqlite3
import threading
from datetime import UTC, datetime
from pathlib import Path

import sqlite_vec
from loguru import logger
from sqlite_vec import serialize_float32
from sqlmodel import JSON, Column, Field, Session, SQLModel, col, create_engine, delete, select

from codegen_assistant.domain.models import CodeFragment, RetrievalMatch

FILTER_KEYS = ("project_id", "file_path")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class FragmentRow(SQLModel, table=True):
    """Fragment text and metadata; the embedding lives in ``vec_fragments``."""

    __tablename__ = "code_fragments"

    id: int | None = Field(default=None, primary_key=True)
    fragment_id: str = Field(unique=True, index=True)
    project_id: str = Field(index=True)
    file_path: str
    source_path: str = Field(index=True)
    content: str
    file_kind: str
    fragment_kind: str
    fragment_index: int = 0
    fragment_metadata: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=_utcnow)


def _check_filters(filters: dict[str, str]) -> None:
    unknown = set(filters) - set(FILTER_KEYS)
    if unknown:
        raise ValueError(f"unsupported filter keys: {sorted(unknown)}")


def _match_metadata(fragment_id: str, project_id: str, source_path: str, file_kind: str, index: int, extra: dict) -> dict:
    return {
        **extra,
        "project_id": project_id,
        "fragment_id": fragment_id,
        "source_path": source_path,
        "file_kind": file_kind,
        "index": index,
    }


# ---------------------------------------------------------------------------
# sqlite-vec
# ---------------------------------------------------------------------------


class SqliteVecStore:
    """Fragment store backed by SQLite + sqlite-vec.

    All operations hold one lock: the store is shared between the indexing
    thread pool and request handlers.
    """

    def __init__(self, db_path: Path, embedding_dim: int = 1536) -> None:
        self.db_path = db_path
        self.embedding_dim = embedding_dim
        self.engine = None
        self.conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def connect(self) -> None:
        """Open the database, load sqlite-vec and create tables if missing."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(
            f"sqlite:///{self.db_path}", echo=False, connect_args={"check_same_thread": False}
        )
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.enable_load_extension(True)
        sqlite_vec.load(self.conn)
        self.conn.enable_load_extension(False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.create_tables()
        logger.info("Vector store ready | path={} | dim={}", self.db_path, self.embedding_dim)

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None
        if self.engine:
            self.engine.dispose()
            self.engine = None

    def create_tables(self) -> None:
        if not self.engine or not self.conn:
            raise RuntimeError("Database not connected. Call connect() first.")
        SQLModel.metadata.create_all(self.engine, tables=[FragmentRow.__table__])
        self.conn.execute(f"""
            CREATE VIRTUAL TABLE IF NOT EXISTS vec_fragments USING vec0(
                fragment_id TEXT PRIMARY KEY,
                project_id TEXT PARTITION KEY,
                embedding FLOAT[{self.embedding_dim}] distance_metric=cosine
            )
        """)
        self.conn.commit()

    # ------------------------------------------------------------------
    # IVectorStore
    # ------------------------------------------------------------------

    def upsert(self, fragment: CodeFragment, vector: list[float]) -> None:
        if not self.engine or not self.conn:
            raise RuntimeError("Database not connected. Call connect() first.")
        if len(vector) != self.embedding_dim:
            raise ValueError(f"expected a {self.embedding_dim}-dim vector, got {len(vector)}")

        with self._lock:
            with Session(self.engine) as session:
                session.execute(delete(FragmentRow).where(FragmentRow.fragment_id == fragment.fragment_id))
                session.add(
                    FragmentRow(
                        fragment_id=fragment.fragment_id,
                        project_id=fragment.project_id,
                        file_path=fragment.file_path,
                        source_path=fragment.source_path,
                        content=fragment.content,
                        file_kind=fragment.file_kind,
                        fragment_kind=fragment.fragment_kind,
                        fragment_index=fragment.index,
                        fragment_metadata=fragment.metadata,
                    )
                )
                session.commit()
            self.conn.execute("DELETE FROM vec_fragments WHERE fragment_id = ?", (fragment.fragment_id,))
            self.conn.execute(
                "INSERT INTO vec_fragments (fragment_id, project_id, embedding) VALUES (?, ?, ?)",
                (fragment.fragment_id, fragment.project_id, serialize_float32(vector)),
            )
            self.conn.commit()

    def search(
        self,
        vector: list[float],
        filters: dict[str, str],
        top_k: int,
        min_score: float = 0.0,
    ) -> list[RetrievalMatch]:
        if not self.engine or not self.conn:
            raise RuntimeError("Database not connected. Call connect() first.")
        _check_filters(filters)
        if top_k <= 0:
            return []

        # Over-fetch when filtering by file path, which is applied after the KNN step
        k = top_k * 4 if "file_path" in filters else top_k
        with self._lock:
            if "project_id" in filters:
                rows = self.conn.execute(
                    """
                    SELECT fragment_id, distance
                    FROM vec_fragments
                    WHERE embedding MATCH ? AND k = ? AND project_id = ?
                    ORDER BY distance
                    """,
                    (serialize_float32(vector), k, filters["project_id"]),
                ).fetchall()
            else:
                rows = self.conn.execute(
                    """
                    SELECT fragment_id, distance
                    FROM vec_fragments
                    WHERE embedding MATCH ? AND k = ?
                    ORDER BY distance
                    """,
                    (serialize_float32(vector), k),
                ).fetchall()

            distances = {row["fragment_id"]: row["distance"] for row in rows}
            if not distances:
                return []
            with Session(self.engine) as session:
                stored = session.exec(
                    select(FragmentRow).where(col(FragmentRow.fragment_id).in_(list(distances)))
                ).all()

        matches = []
        for row in stored:
            if "file_path" in filters and row.source_path != filters["file_path"]:
                continue
            score = 1.0 - distances[row.fragment_id] / 2.0
            if score < min_score:
                continue
            matches.append(
                RetrievalMatch(
                    file_path=row.file_path,
                    content=row.content,
                    fragment_kind=row.fragment_kind,
                    score=max(0.0, min(1.0, score)),
                    metadata=_match_metadata(
                        row.fragment_id,
                        row.project_id,
                        row.source_path,
                        row.file_kind,
                        row.fragment_index,
                        row.fragment_metadata or {},
                    ),
                )
            )
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:top_k]

    def delete_where(self, filters: dict[str, str]) -> int:
        if not self.engine or not self.conn:
            raise RuntimeError("Database not connected. Call connect() first.")
        _check_filters(filters)
        if not filters:
            raise ValueError("refusing to delete without a filter")

        with self._lock:
            with Session(self.engine) as session:
                query = select(FragmentRow.fragment_id)
                if "project_id" in filters:
                    query = query.where(FragmentRow.project_id == filters["project_id"])
                if "file_path" in filters:
                    query = query.where(FragmentRow.source_path == filters["file_path"])
                ids = list(session.exec(query).all())
                if not ids:
                    return 0
                session.execute(delete(FragmentRow).where(col(FragmentRow.fragment_id).in_(ids)))
                session.commit()
            self.conn.executemany("DELETE FROM vec_fragments WHERE fragment_id = ?", [(i,) for i in ids])
            self.conn.commit()
        return len(ids)

    def count(self, project_id: str | None = None) -> int:
        if not self.engine:
            raise RuntimeError("Database not connected. Call connect() first.")
        with Session(self.engine) as session:
            query = select(FragmentRow.fragment_id)
            if project_id is not None:
                query = query.where(FragmentRow.project_id == project_id)
            return len(session.exec(query).all())


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


def cosine_similarity(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 0.0
    return dot / norm


class InMemoryVectorStore:
    """Exact-search store kept in a dict; same scoring as ``SqliteVecStore``."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[CodeFragment, list[float]]] = {}
        self._lock = threading.Lock()

    def connect(self) -> None:
        pass

    def close(self) -> None:
        pass

    def upsert(self, fragment: CodeFragment, vector: list[float]) -> None:
        with self._lock:
            self._entries[fragment.fragment_id] = (fragment, list(vector))

    def search(
        self,
        vector: list[float],
        filters: dict[str, str],
        top_k: int,
        min_score: float = 0.0,
    ) -> list[RetrievalMatch]:
        _check_filters(filters)
        with self._lock:
            entries = list(self._entries.values())

        matches = []
        for fragment, stored in entries:
            if not _matches_filters(fragment, filters):
                continue
            score = (1.0 + cosine_similarity(vector, stored)) / 2.0
            if score < min_score:
                continue
            matches.append(
                RetrievalMatch(
                    file_path=fragment.file_path,
                    content=fragment.content,
                    fragment_kind=fragment.fragment_kind,
                    score=max(0.0, min(1.0, score)),
                    metadata=_match_metadata(
                        fragment.fragment_id,
                        fragment.project_id,
                        fragment.source_path,
                        fragment.file_kind,
                        fragment.index,
                        fragment.metadata,
                    ),
                )
            )
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[: max(top_k, 0)]

    def delete_where(self, filters: dict[str, str]) -> int:
        _check_filters(filters)
        if not filters:
            raise ValueError("refusing to delete without a filter")
        with self._lock:
            doomed = [fid for fid, (frag, _) in self._entries.items() if _matches_filters(frag, filters)]
            for fid in doomed:
                del self._entries[fid]
        return len(doomed)

    def count(self, project_id: str | None = None) -> int:
        with self._lock:
            return sum(1 for frag, _ in self._entries.values() if project_id in (None, frag.project_id))

    def fragments(self, project_id: str) -> list[CodeFragment]:
        with self._lock:
            return sorted(
                (frag for frag, _ in self._entries.values() if frag.project_id == project_id),
                key=lambda f: (f.source_path, f.index),
            )


def _matches_filters(fragment: CodeFragment, filters: dict[str, str]) -> bool:
    if "project_id" in filters and fragment.project_id != filters["project_id"]:
        return False
    if "file_path" in filters and fragment.source_path != filters["file_path"]:
        return False
    return True
