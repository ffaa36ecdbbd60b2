"""Digest cache keyed by (namespace, node_hash, days)."""

import hashlib
import logging
from typing import TYPE_CHECKING, Iterable, Optional

from kt.types import Node, utc_now

if TYPE_CHECKING:
    from .sqlite import KnowledgeStore

logger = logging.getLogger(__name__)


def compute_node_hash(nodes: Iterable[Node]) -> str:
    """Fingerprint of a node set: changes whenever a member is added or updated.

    Order-independent. Empty input hashes to "".
    """
    keys = sorted(f"{n.id}:{n.updated_at}" for n in nodes)
    if not keys:
        return ""
    return hashlib.sha256("|".join(keys).encode("utf-8")).hexdigest()[:16]


class DigestCache:
    def __init__(self, store: "KnowledgeStore"):
        self._store = store

    def get(self, namespace: str, node_hash: str, days: int) -> Optional[str]:
        with self._store.transaction() as conn:
            row = conn.execute(
                """SELECT content FROM digests
                   WHERE namespace = ? AND node_hash = ? AND days = ?""",
                (namespace, node_hash, int(days)),
            ).fetchone()
        return row["content"] if row else None

    def put(self, namespace: str, node_hash: str, days: int, content: str) -> None:
        with self._store.transaction() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO digests (namespace, node_hash, days, content, generated_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (namespace, node_hash, int(days), content, utc_now()),
            )
        logger.debug(f"Cached digest for {namespace} ({node_hash}, {days}d)")
