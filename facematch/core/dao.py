"""
Identity store - canonical SQLite source of truth for enrolled identities.
The snapshot cache and the vector index are derived, non-canonical views.
"""

import json
import sqlite3
from typing import Any, List, Optional, Sequence

import numpy as np

from .config import get_embedding_dim, get_max_embeddings
from .db import get_db, init_db
from .errors import DimensionMismatchError, IdentityStoreError
from .schema import Descriptors, Identity, to_embedding
from ..util.logging import logger

# Stable order so that paging and index rebuilds see identities in the same sequence
_ORDER_BY = "ORDER BY sort_order IS NULL, sort_order, identity_id"


def parse_descriptors(raw: Any) -> Descriptors:
    """Parse a stored descriptor column; unreadable content yields no embeddings."""
    try:
        return Descriptors.from_raw(raw)
    except (ValueError, TypeError) as e:
        logger.warning(f"Unreadable descriptor payload, treating as empty: {e}")
        return Descriptors.many([])


def serialize_descriptors(embeddings: Sequence[np.ndarray]) -> str:
    """Serialize embeddings as a JSON array of arrays."""
    return json.dumps([np.asarray(e, dtype=np.float32).tolist() for e in embeddings])


class IdentityStore:
    """Paginated reads and FIFO-capped upserts over the identities table."""

    def __init__(self, db_path: Optional[str] = None, dimension: Optional[int] = None,
                 max_embeddings: Optional[int] = None):
        self.db_path = db_path
        self.dimension = dimension or get_embedding_dim()
        self.max_embeddings = max_embeddings or get_max_embeddings()
        try:
            init_db(db_path)
        except sqlite3.Error as e:
            raise IdentityStoreError(f"Failed to initialize identity store: {e}") from e

    def _row_to_identity(self, row) -> Identity:
        identity_id, name, descriptor, sort_order = row
        return Identity(
            identity_id=identity_id,
            name=name,
            embeddings=parse_descriptors(descriptor).as_list(),
            sort_order=sort_order,
        )

    def get_identities(self, page: int = 1, page_size: int = 500) -> List[Identity]:
        """Read one page of identities (1-based) with their normalized embeddings."""
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be >= 1")

        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    f"SELECT identity_id, name, descriptor, sort_order FROM identities {_ORDER_BY} LIMIT ? OFFSET ?",
                    (page_size, (page - 1) * page_size)
                )
                rows = cursor.fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to read identities page {page}: {e}")
            raise IdentityStoreError(f"Failed to read identities page {page}: {e}") from e

        return [self._row_to_identity(row) for row in rows]

    def get_identity(self, identity_id: str) -> Optional[Identity]:
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT identity_id, name, descriptor, sort_order FROM identities WHERE identity_id = ?",
                    (identity_id,)
                )
                row = cursor.fetchone()
        except sqlite3.Error as e:
            raise IdentityStoreError(f"Failed to read identity '{identity_id}': {e}") from e

        return self._row_to_identity(row) if row else None

    def upsert_identity(self, identity_id: str, name: str, embedding: Sequence[float]) -> Identity:
        """
        Append an embedding to an identity, creating it if needed.

        Keeps only the most recent `max_embeddings` embeddings (oldest evicted first)
        and returns the full updated identity.
        """
        vector = to_embedding(embedding)
        if len(vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(vector))

        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT descriptor, sort_order FROM identities WHERE identity_id = ?",
                    (identity_id,)
                )
                existing = cursor.fetchone()

                if existing:
                    embeddings = parse_descriptors(existing[0]).as_list()
                    sort_order = existing[1]
                else:
                    embeddings = []
                    cursor.execute("SELECT COALESCE(MAX(sort_order), 0) + 1 FROM identities")
                    sort_order = cursor.fetchone()[0]

                embeddings.append(vector)
                if len(embeddings) > self.max_embeddings:
                    embeddings = embeddings[-self.max_embeddings:]

                descriptor_json = serialize_descriptors(embeddings)
                if existing:
                    cursor.execute(
                        "UPDATE identities SET name = ?, descriptor = ?, updated_at = CURRENT_TIMESTAMP WHERE identity_id = ?",
                        (name, descriptor_json, identity_id)
                    )
                else:
                    cursor.execute(
                        "INSERT INTO identities (identity_id, name, descriptor, sort_order) VALUES (?, ?, ?, ?)",
                        (identity_id, name, descriptor_json, sort_order)
                    )

                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Database error during upsert for identity '{identity_id}': {e}")
            raise IdentityStoreError(f"Failed to upsert identity '{identity_id}': {e}") from e

        return Identity(
            identity_id=identity_id,
            name=name,
            embeddings=embeddings,
            sort_order=sort_order,
        )

    def delete_identity(self, identity_id: str) -> bool:
        """Delete an identity. Returns True if a row was removed."""
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("DELETE FROM identities WHERE identity_id = ?", (identity_id,))
                conn.commit()
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise IdentityStoreError(f"Failed to delete identity '{identity_id}': {e}") from e

    def count_identities(self) -> int:
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) FROM identities")
                return cursor.fetchone()[0]
        except sqlite3.Error as e:
            raise IdentityStoreError(f"Failed to count identities: {e}") from e
