"""Nearest-neighbour index over node vectors, backed by a sqlite-vec ``vec0`` table.

Lives in the same database as the graph, so writes join the store's
transactions. When the extension could not be loaded the index is inert:
``available`` is False, writes are dropped and queries return nothing.
"""

import logging
import struct
from typing import TYPE_CHECKING, List, Optional

from kt.protocols import Neighbor, ValidationError

if TYPE_CHECKING:
    from .sqlite import KnowledgeStore

logger = logging.getLogger(__name__)


def pack_embedding(embedding: List[float]) -> bytes:
    """Pack a vector as little-endian float32, the layout vec0 expects."""
    return struct.pack(f"<{len(embedding)}f", *embedding)


def unpack_embedding(blob: bytes) -> List[float]:
    count = len(blob) // 4
    return list(struct.unpack(f"<{count}f", blob))


class SqliteVecIndex:
    """VectorIndex over the ``node_embeddings`` table. Distances are L2."""

    def __init__(self, store: "KnowledgeStore"):
        self._store = store

    @property
    def available(self) -> bool:
        return self._store.has_vec

    def _check_dimension(self, vector: List[float]) -> None:
        expected = self._store.embedding_dimension
        if len(vector) != expected:
            raise ValidationError(f"Vector has {len(vector)} dimensions, index expects {expected}")

    def upsert(self, node_id: str, vector: List[float]) -> None:
        if not self.available:
            return
        self._check_dimension(vector)
        with self._store.transaction() as conn:
            # vec0 has no upsert; replace by delete + insert
            conn.execute("DELETE FROM node_embeddings WHERE node_id = ?", (node_id,))
            conn.execute(
                "INSERT INTO node_embeddings (node_id, embedding) VALUES (?, ?)",
                (node_id, pack_embedding(vector)),
            )

    def delete(self, node_id: str) -> None:
        if not self.available:
            return
        with self._store.transaction() as conn:
            conn.execute("DELETE FROM node_embeddings WHERE node_id = ?", (node_id,))

    def get(self, node_id: str) -> Optional[List[float]]:
        if not self.available:
            return None
        with self._store.transaction() as conn:
            row = conn.execute(
                "SELECT embedding FROM node_embeddings WHERE node_id = ?", (node_id,)
            ).fetchone()
        return unpack_embedding(row["embedding"]) if row else None

    def query(self, vector: List[float], k: int) -> List[Neighbor]:
        """The k nearest stored vectors, closest first."""
        if not self.available or k <= 0:
            return []
        self._check_dimension(vector)
        with self._store.transaction() as conn:
            rows = conn.execute(
                """SELECT node_id, distance FROM node_embeddings
                   WHERE embedding MATCH ? AND k = ?
                   ORDER BY distance""",
                (pack_embedding(vector), int(k)),
            ).fetchall()
        return [Neighbor(node_id=r["node_id"], distance=float(r["distance"])) for r in rows]
