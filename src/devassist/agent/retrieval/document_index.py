"""
Documentation index backed by PostgreSQL + pgvector.

The ingestion job that fills the table is out of scope here; this
module only reads it. Scores are cosine similarity (1 - cosine distance).
"""

from __future__ import annotations

import logging
import re

from ..domain.entities import RetrievalResult
from ..domain.ports import IRetriever
from ..memory.conversation import IAsyncDBPool

logger = logging.getLogger(__name__)

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


def _vector_literal(vector: list[float]) -> str:
    """Render a vector in pgvector's text input format."""
    return "[" + ",".join(repr(float(v)) for v in vector) + "]"


class PgVectorDocumentIndex(IRetriever):
    """Top-K similarity search over a ``documents`` table.

    Usage:
        index = PgVectorDocumentIndex(db_pool, table="documents")
        results = await index.retrieve(query_vector, k=3)
    """

    def __init__(
        self,
        db_pool: IAsyncDBPool,
        table: str = "documents",
        content_limit: int = 500,
    ):
        """Initialize the index.

        Args:
            db_pool: Async database connection pool
            table: Table holding title, url, content and embedding columns
            content_limit: Max characters of content returned per document
        """
        if not _TABLE_NAME.match(table):
            raise ValueError(f"Invalid documents table name: {table!r}")
        self.db = db_pool
        self.table = table
        self.content_limit = content_limit

    async def retrieve(self, vector: list[float], k: int) -> list[RetrievalResult]:
        """Return up to ``k`` documents ordered by descending score."""
        if k <= 0 or not vector:
            return []

        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT title, url, content,
                       1 - (embedding <=> $1::vector) AS score
                FROM {self.table}
                WHERE embedding IS NOT NULL
                ORDER BY score DESC
                LIMIT $2
                """,
                _vector_literal(vector),
                k,
            )

        results = [
            RetrievalResult(
                title=row["title"] or "",
                content=(row["content"] or "")[: self.content_limit],
                url=row["url"] or "",
                score=float(row["score"]),
            )
            for row in rows
        ]
        logger.debug(f"Retrieved {len(results)} documents from {self.table}")
        return results
