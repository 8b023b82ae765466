"""
SQLite implementation of VectorStore.

Vectors live in float64 BLOB columns and are ranked with NumPy; lexical
ranking uses the FTS5 table chunks_fts (bm25).
"""

import re
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, cast

import numpy as np

from nexusrag.core.database import DatabaseManager, FetchType
from nexusrag.core.exceptions import DimensionMismatchError, NotFoundError, StoreError
from nexusrag.core.logging import logger
from nexusrag.core.utils.datetime_utils import format_iso, parse_iso_datetime, parse_optional_iso, utc_now
from nexusrag.embeddings.types import EmbeddingVector
from nexusrag.models.chunk import Chunk, ChunkMetadata, SourceType
from nexusrag.models.tag import Tag, TagLink, TagLinkStatus
from nexusrag.rag.retrieval.filters import SearchFilters
from nexusrag.rag.store.base import RetrievedChunk, TagMatchCandidate

_TOKEN = re.compile(r"\w+", re.UNICODE)


def build_fts_query(text: str) -> Optional[str]:
    """
    Every word becomes a quoted FTS5 term joined with AND.

    Quoting neutralizes FTS5 operators in user text. Returns None when the
    text holds no word characters.
    """
    tokens = [token.lower() for token in _TOKEN.findall(text)]
    if not tokens:
        return None
    return " AND ".join(f'"{token}"' for token in tokens)


def _filter_clause(filters: SearchFilters, alias: str = "c") -> Tuple[str, List[Any]]:
    clauses: List[str] = []
    params: List[Any] = []
    if filters.source_types:
        placeholders = ", ".join("?" for _ in filters.source_types)
        clauses.append(f"{alias}.source_type IN ({placeholders})")
        params.extend(SourceType(t).value for t in filters.source_types)
    if filters.owner_id is not None:
        clauses.append(f"{alias}.owner_id = ?")
        params.append(filters.owner_id)
    return " AND ".join(clauses), params


def _row_to_retrieved(row: Dict[str, Any], score: float) -> RetrievedChunk:
    return RetrievedChunk(
        chunk_id=row["id"],
        source_id=row["source_id"],
        source_type=SourceType(row["source_type"]),
        content=row["content"],
        chunk_index=row["chunk_index"],
        owner_id=row["owner_id"],
        metadata=ChunkMetadata.model_validate_json(row["metadata"]),
        score=score,
    )


class SQLiteVectorStore:
    """
    Chunks, tags, and tag links on top of DatabaseManager.

    Nearest-neighbour search is exact: candidate vectors matching the
    filters are loaded and ranked by cosine distance. Ties keep insertion
    (rowid) order.
    """

    def __init__(self, db: DatabaseManager, dimension: int):
        self.db = db
        self.dimension = dimension

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def _check_vector(self, values: Optional[Sequence[float]], owner: str) -> bytes:
        if values is None:
            raise DimensionMismatchError(f"{owner} has no embedding")
        if len(values) != self.dimension:
            raise DimensionMismatchError(
                f"{owner} embedding has {len(values)} dimensions, store expects {self.dimension}",
                context={"expected": self.dimension, "actual": len(values)},
            )
        return np.asarray(values, dtype="<f8").tobytes()

    async def replace_chunks(
        self, source_id: str, source_type: SourceType, chunks: Sequence[Chunk]
    ) -> int:
        """
        Delete the source's chunks and insert the new set in one transaction.

        Readers see either the old set or the new one.
        """
        kind = SourceType(source_type).value
        rows = []
        for chunk in chunks:
            if chunk.source_id != source_id or SourceType(chunk.source_type).value != kind:
                raise StoreError(
                    "Chunk does not belong to the source being replaced",
                    context={"chunk_id": chunk.id, "source_id": source_id},
                )
            rows.append(
                (
                    chunk.id,
                    source_id,
                    kind,
                    chunk.content,
                    self._check_vector(chunk.embedding, f"Chunk {chunk.chunk_index}"),
                    chunk.chunk_index,
                    chunk.owner_id,
                    chunk.metadata.model_dump_json(),
                    format_iso(chunk.created_at),
                )
            )

        def _replace(conn: sqlite3.Connection) -> int:
            conn.execute(
                """
                DELETE FROM chunks_fts WHERE chunk_id IN (
                    SELECT id FROM chunks WHERE source_id = ? AND source_type = ?
                )
                """,
                (source_id, kind),
            )
            conn.execute(
                "DELETE FROM chunks WHERE source_id = ? AND source_type = ?", (source_id, kind)
            )
            conn.executemany(
                """
                INSERT INTO chunks (
                    id, source_id, source_type, content, embedding,
                    chunk_index, owner_id, metadata, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            conn.executemany(
                "INSERT INTO chunks_fts (chunk_id, content) VALUES (?, ?)",
                [(row[0], row[3]) for row in rows],
            )
            return len(rows)

        written = await self.db.run_in_transaction(_replace)
        logger.debug("Chunks replaced", source_id=source_id, source_type=kind, chunks=written)
        return written

    async def delete_source(self, source_id: str, source_type: SourceType) -> int:
        kind = SourceType(source_type).value

        def _delete(conn: sqlite3.Connection) -> int:
            conn.execute(
                """
                DELETE FROM chunks_fts WHERE chunk_id IN (
                    SELECT id FROM chunks WHERE source_id = ? AND source_type = ?
                )
                """,
                (source_id, kind),
            )
            cursor = conn.execute(
                "DELETE FROM chunks WHERE source_id = ? AND source_type = ?", (source_id, kind)
            )
            return cursor.rowcount

        return await self.db.run_in_transaction(_delete)

    async def list_chunks(self, source_id: str, source_type: SourceType) -> List[Chunk]:
        result = await self.db.execute_async(
            """
            SELECT * FROM chunks
            WHERE source_id = ? AND source_type = ?
            ORDER BY chunk_index
            """,
            (source_id, SourceType(source_type).value),
            FetchType.ALL,
        )
        rows = cast(List[Dict[str, Any]], result.data or [])
        return [
            Chunk(
                id=row["id"],
                source_id=row["source_id"],
                source_type=SourceType(row["source_type"]),
                content=row["content"],
                chunk_index=row["chunk_index"],
                owner_id=row["owner_id"],
                metadata=ChunkMetadata.model_validate_json(row["metadata"]),
                embedding=np.frombuffer(row["embedding"], dtype="<f8").tolist(),
                created_at=parse_iso_datetime(row["created_at"]),
            )
            for row in rows
        ]

    async def nearest_neighbors(
        self, vector: EmbeddingVector, filters: SearchFilters, limit: int
    ) -> List[RetrievedChunk]:
        if vector.dimension != self.dimension:
            raise DimensionMismatchError(
                f"Query vector has {vector.dimension} dimensions, store expects {self.dimension}"
            )
        if limit < 1:
            return []

        where, params = _filter_clause(filters)
        sql = "SELECT c.* FROM chunks c"
        if where:
            sql += f" WHERE {where}"
        sql += " ORDER BY c.rowid"

        result = await self.db.execute_async(sql, tuple(params), FetchType.ALL)
        rows = cast(List[Dict[str, Any]], result.data or [])
        if not rows:
            return []

        matrix = np.vstack([np.frombuffer(row["embedding"], dtype="<f8") for row in rows])
        norms = np.linalg.norm(matrix, axis=1)
        norms[norms == 0] = 1.0
        similarities = (matrix @ vector.numpy) / norms
        distances = 1.0 - np.clip(similarities, -1.0, 1.0)

        order = np.argsort(distances, kind="stable")[:limit]
        return [_row_to_retrieved(rows[i], float(distances[i])) for i in order]

    async def lexical_search(
        self, text: str, filters: SearchFilters, limit: int
    ) -> List[RetrievedChunk]:
        fts_query = build_fts_query(text)
        if fts_query is None or limit < 1:
            return []

        where, params = _filter_clause(filters)
        sql = """
            SELECT c.*, bm25(chunks_fts) AS bm25_score
            FROM chunks_fts
            JOIN chunks c ON c.id = chunks_fts.chunk_id
            WHERE chunks_fts MATCH ?
        """
        if where:
            sql += f" AND {where}"
        sql += " ORDER BY bm25_score, c.rowid LIMIT ?"

        result = await self.db.execute_async(
            sql, (fts_query, *params, limit), FetchType.ALL
        )
        rows = cast(List[Dict[str, Any]], result.data or [])
        return [_row_to_retrieved(row, float(row["bm25_score"])) for row in rows]

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def _row_to_tag(self, row: Dict[str, Any]) -> Tag:
        blob = row["name_embedding"]
        return Tag(
            id=row["id"],
            name=row["name"],
            name_embedding=np.frombuffer(blob, dtype="<f8").tolist() if blob is not None else None,
            usage_count=row["usage_count"],
            created_at=parse_iso_datetime(row["created_at"]),
            updated_at=parse_optional_iso(row["updated_at"]),
        )

    async def get_tag(self, tag_id: str) -> Optional[Tag]:
        result = await self.db.execute_async(
            "SELECT * FROM tags WHERE id = ?", (tag_id,), FetchType.ONE
        )
        return self._row_to_tag(result.data) if isinstance(result.data, dict) else None

    async def get_tag_by_name(self, name: str) -> Optional[Tag]:
        result = await self.db.execute_async(
            "SELECT * FROM tags WHERE name = ?", (name,), FetchType.ONE
        )
        return self._row_to_tag(result.data) if isinstance(result.data, dict) else None

    async def nearest_tag(self, vector: EmbeddingVector) -> Optional[TagMatchCandidate]:
        """Closest tag with an embedding; ties go to the earliest created."""
        if vector.dimension != self.dimension:
            raise DimensionMismatchError(
                f"Tag vector has {vector.dimension} dimensions, store expects {self.dimension}"
            )
        result = await self.db.execute_async(
            """
            SELECT * FROM tags
            WHERE name_embedding IS NOT NULL
            ORDER BY created_at, rowid
            """,
            (),
            FetchType.ALL,
        )
        rows = cast(List[Dict[str, Any]], result.data or [])
        if not rows:
            return None

        matrix = np.vstack([np.frombuffer(row["name_embedding"], dtype="<f8") for row in rows])
        norms = np.linalg.norm(matrix, axis=1)
        norms[norms == 0] = 1.0
        distances = 1.0 - np.clip((matrix @ vector.numpy) / norms, -1.0, 1.0)

        # argmin returns the first minimum, i.e. the earliest created
        best = int(np.argmin(distances))
        return TagMatchCandidate(tag=self._row_to_tag(rows[best]), distance=float(distances[best]))

    async def insert_tag(self, tag: Tag) -> Tag:
        blob = (
            self._check_vector(tag.name_embedding, f"Tag '{tag.name}'")
            if tag.name_embedding is not None
            else None
        )
        updated_at = tag.updated_at or tag.created_at
        await self.db.execute_async(
            """
            INSERT INTO tags (id, name, name_embedding, usage_count, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                tag.id,
                tag.name,
                blob,
                tag.usage_count,
                format_iso(tag.created_at),
                format_iso(updated_at),
            ),
        )
        return tag.model_copy(update={"updated_at": updated_at})

    async def increment_tag_usage(self, tag_id: str) -> Tag:
        result = await self.db.execute_async(
            "UPDATE tags SET usage_count = usage_count + 1, updated_at = ? WHERE id = ?",
            (format_iso(utc_now()), tag_id),
        )
        if result.rows_affected == 0:
            raise NotFoundError(f"Tag not found: {tag_id}", context={"tag_id": tag_id})
        tag = await self.get_tag(tag_id)
        if tag is None:
            raise NotFoundError(f"Tag not found: {tag_id}", context={"tag_id": tag_id})
        return tag

    # ------------------------------------------------------------------
    # Tag links
    # ------------------------------------------------------------------

    def _row_to_link(self, row: Dict[str, Any]) -> TagLink:
        return TagLink(
            entity_id=row["entity_id"],
            tag_id=row["tag_id"],
            confidence=row["confidence"],
            status=TagLinkStatus(row["status"]),
            confirmed_at=parse_optional_iso(row["confirmed_at"]),
            created_at=parse_iso_datetime(row["created_at"]),
            tag_name=row.get("tag_name"),
        )

    async def get_tag_link(self, entity_id: str, tag_id: str) -> Optional[TagLink]:
        result = await self.db.execute_async(
            """
            SELECT l.*, t.name AS tag_name
            FROM tag_links l JOIN tags t ON t.id = l.tag_id
            WHERE l.entity_id = ? AND l.tag_id = ?
            """,
            (entity_id, tag_id),
            FetchType.ONE,
        )
        return self._row_to_link(result.data) if isinstance(result.data, dict) else None

    async def upsert_tag_link(self, link: TagLink) -> TagLink:
        """Insert or overwrite confidence, status, and confirmed_at of (entity_id, tag_id)."""
        now = format_iso(utc_now())
        confirmed_at = format_iso(link.confirmed_at) if link.confirmed_at else None
        await self.db.execute_async(
            """
            INSERT INTO tag_links (
                entity_id, tag_id, confidence, status, confirmed_at, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (entity_id, tag_id) DO UPDATE SET
                confidence = excluded.confidence,
                status = excluded.status,
                confirmed_at = excluded.confirmed_at,
                updated_at = excluded.updated_at
            """,
            (
                link.entity_id,
                link.tag_id,
                link.confidence,
                TagLinkStatus(link.status).value,
                confirmed_at,
                format_iso(link.created_at),
                now,
            ),
        )
        stored = await self.get_tag_link(link.entity_id, link.tag_id)
        if stored is None:
            raise StoreError(
                "Tag link vanished after upsert",
                context={"entity_id": link.entity_id, "tag_id": link.tag_id},
            )
        return stored

    async def update_tag_link_status(
        self,
        entity_id: str,
        tag_id: str,
        status: TagLinkStatus,
        confirmed_at: Optional[datetime],
    ) -> Optional[TagLink]:
        result = await self.db.execute_async(
            """
            UPDATE tag_links SET status = ?, confirmed_at = ?, updated_at = ?
            WHERE entity_id = ? AND tag_id = ?
            """,
            (
                TagLinkStatus(status).value,
                format_iso(confirmed_at) if confirmed_at else None,
                format_iso(utc_now()),
                entity_id,
                tag_id,
            ),
        )
        if result.rows_affected == 0:
            return None
        return await self.get_tag_link(entity_id, tag_id)

    async def list_tag_links(self, entity_id: str, include_rejected: bool = False) -> List[TagLink]:
        sql = """
            SELECT l.*, t.name AS tag_name
            FROM tag_links l JOIN tags t ON t.id = l.tag_id
            WHERE l.entity_id = ?
        """
        params: List[Any] = [entity_id]
        if not include_rejected:
            sql += " AND l.status != ?"
            params.append(TagLinkStatus.REJECTED.value)
        sql += " ORDER BY l.confidence DESC, l.created_at"

        result = await self.db.execute_async(sql, tuple(params), FetchType.ALL)
        rows = cast(List[Dict[str, Any]], result.data or [])
        return [self._row_to_link(row) for row in rows]

    async def stats(self) -> Dict[str, int]:
        result = await self.db.execute_async(
            """
            SELECT
                (SELECT COUNT(*) FROM chunks) AS chunks,
                (SELECT COUNT(DISTINCT source_id || ':' || source_type) FROM chunks) AS sources,
                (SELECT COUNT(*) FROM tags) AS tags,
                (SELECT COUNT(*) FROM tag_links) AS tag_links
            """,
            (),
            FetchType.ONE,
        )
        counts = cast(Dict[str, Any], result.data)
        return {key: int(value) for key, value in counts.items()}
