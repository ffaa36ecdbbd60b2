"""Node repository.

Nodes are never content-edited after creation; they only move through the
lifecycle (active <-> stale, stale -> compacted). Physical deletion is only
through ``delete``, which also removes the node's links and vector.
"""

import json
import logging
from typing import TYPE_CHECKING, Iterable, List, Optional

from kt.protocols import InvalidTransitionError, NodeNotFoundError, ValidationError
from kt.types import (
    ALLOWED_TRANSITIONS,
    VALID_SOURCE_TYPE_VALUES,
    VALID_STATUS_VALUES,
    Node,
    NodeStatus,
    SourceType,
    generate_id,
    utc_now,
)

from .namespaces_crud import escape_like_pattern, namespace_filter

if TYPE_CHECKING:
    from .sqlite import KnowledgeStore

logger = logging.getLogger(__name__)


def _normalize_tags(tags: Optional[Iterable[str]]) -> Optional[List[str]]:
    """Ordered, de-duplicated, whitespace-trimmed tags; None when empty."""
    if not tags:
        return None
    seen: List[str] = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen or None


def _row_to_node(row) -> Node:
    return Node(
        id=row["id"],
        namespace=row["namespace"],
        title=row["title"],
        content=row["content"],
        status=row["status"],
        source_type=row["source_type"],
        tags=json.loads(row["tags"]) if row["tags"] else None,
        embedding_pending=bool(row["embedding_pending"]),
        compacted_into=row["compacted_into"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        stale_at=row["stale_at"],
        session_id=row["session_id"],
    )


class NodeRepository:
    """CRUD and status transitions over the nodes table."""

    def __init__(self, store: "KnowledgeStore"):
        self._store = store

    def create(
        self,
        namespace: str,
        content: str,
        *,
        title: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        source_type: str = SourceType.CAPTURE.value,
        session_id: Optional[str] = None,
    ) -> Node:
        """Insert a new active node, ensuring its namespace exists."""
        if not content or not content.strip():
            raise ValidationError("Node content cannot be empty")
        if source_type not in VALID_SOURCE_TYPE_VALUES:
            raise ValidationError(f"Invalid source_type: {source_type!r}")

        node_id = generate_id()
        now = utc_now()
        normalized = _normalize_tags(tags)

        with self._store.transaction() as conn:
            self._store.namespaces.ensure(namespace)
            conn.execute(
                """INSERT INTO nodes
                   (id, namespace, title, content, status, source_type, tags,
                    embedding_pending, created_at, updated_at, session_id)
                   VALUES (?, ?, ?, ?, 'active', ?, ?, 1, ?, ?, ?)""",
                (
                    node_id,
                    namespace,
                    title or None,
                    content,
                    source_type,
                    json.dumps(normalized) if normalized else None,
                    now,
                    now,
                    session_id,
                ),
            )
            row = conn.execute("SELECT * FROM nodes WHERE id = ?", (node_id,)).fetchone()

        logger.debug(f"Created node {node_id} in {namespace} ({source_type})")
        return _row_to_node(row)

    def get(self, node_id: str) -> Optional[Node]:
        with self._store.transaction() as conn:
            row = conn.execute("SELECT * FROM nodes WHERE id = ?", (node_id,)).fetchone()
        return _row_to_node(row) if row else None

    def require(self, node_id: str) -> Node:
        node = self.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def get_many(self, node_ids: Iterable[str]) -> List[Node]:
        """Existing nodes among ``node_ids``, in the order given."""
        ids = list(dict.fromkeys(node_ids))
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        with self._store.transaction() as conn:
            rows = conn.execute(
                f"SELECT * FROM nodes WHERE id IN ({placeholders})", ids
            ).fetchall()
        by_id = {r["id"]: _row_to_node(r) for r in rows}
        return [by_id[i] for i in ids if i in by_id]

    def list(
        self,
        *,
        namespace: Optional[str] = None,
        status: Optional[str] = None,
        include_compacted: bool = False,
        limit: Optional[int] = None,
    ) -> List[Node]:
        """Nodes in scope, most recently updated first.

        Compacted nodes are hidden unless asked for by status or
        include_compacted.
        """
        conditions: List[str] = []
        params: List = []

        ns = namespace_filter(namespace)
        if ns:
            conditions.append(ns[0])
            params.extend(ns[1])

        if status:
            if status not in VALID_STATUS_VALUES:
                raise ValidationError(f"Invalid status: {status!r}")
            conditions.append("status = ?")
            params.append(status)
        elif not include_compacted:
            conditions.append("status != 'compacted'")

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        sql = f"SELECT * FROM nodes {where} ORDER BY updated_at DESC"
        if limit:
            sql += " LIMIT ?"
            params.append(int(limit))

        with self._store.transaction() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_node(r) for r in rows]

    def update_status(
        self,
        node_id: str,
        status: str,
        *,
        compacted_into: Optional[str] = None,
    ) -> Node:
        """Move a node through the lifecycle.

        Same-status calls are no-ops (stale_at keeps its first value).
        Moving to compacted requires ``compacted_into``.
        """
        if status not in VALID_STATUS_VALUES:
            raise ValidationError(f"Invalid status: {status!r}")

        with self._store.transaction() as conn:
            node = self.require(node_id)
            if node.status == status:
                return node
            if status not in ALLOWED_TRANSITIONS[node.status]:
                raise InvalidTransitionError(node_id, node.status, status)
            if status == NodeStatus.COMPACTED.value and not compacted_into:
                raise ValidationError("compacted_into is required when compacting a node")

            now = utc_now()
            if status == NodeStatus.STALE.value:
                conn.execute(
                    "UPDATE nodes SET status = ?, stale_at = ?, updated_at = ? WHERE id = ?",
                    (status, now, now, node_id),
                )
            elif status == NodeStatus.ACTIVE.value:
                conn.execute(
                    "UPDATE nodes SET status = ?, stale_at = NULL, updated_at = ? WHERE id = ?",
                    (status, now, node_id),
                )
            else:
                conn.execute(
                    """UPDATE nodes SET status = ?, compacted_into = ?, updated_at = ?
                       WHERE id = ?""",
                    (status, compacted_into, now, node_id),
                )
            row = conn.execute("SELECT * FROM nodes WHERE id = ?", (node_id,)).fetchone()

        return _row_to_node(row)

    def delete(self, node_id: str) -> bool:
        """Delete a node, its inbound/outbound links, and its stored vector."""
        with self._store.transaction() as conn:
            conn.execute(
                "DELETE FROM links WHERE source_id = ? OR target_id = ?", (node_id, node_id)
            )
            cursor = conn.execute("DELETE FROM nodes WHERE id = ?", (node_id,))
            self._store.index.delete(node_id)
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted node {node_id}")
        return deleted

    def pending_embeddings(self, limit: int = 50) -> List[Node]:
        """Nodes still waiting for an embedding, oldest first."""
        with self._store.transaction() as conn:
            rows = conn.execute(
                """SELECT * FROM nodes WHERE embedding_pending = 1
                   ORDER BY created_at ASC LIMIT ?""",
                (int(limit),),
            ).fetchall()
        return [_row_to_node(r) for r in rows]

    def mark_embedding_done(self, node_id: str) -> None:
        """Clear the pending flag. Does not touch updated_at."""
        with self._store.transaction() as conn:
            conn.execute("UPDATE nodes SET embedding_pending = 0 WHERE id = ?", (node_id,))

    # === Lifecycle queries ===

    def active_older_than(self, cutoff: str, namespace: Optional[str] = None) -> List[str]:
        """Ids of active nodes last updated before ``cutoff``."""
        conditions = ["status = 'active'", "updated_at < ?"]
        params: List = [cutoff]
        ns = namespace_filter(namespace)
        if ns:
            conditions.append(ns[0])
            params.extend(ns[1])
        with self._store.transaction() as conn:
            rows = conn.execute(
                f"SELECT id FROM nodes WHERE {' AND '.join(conditions)} ORDER BY updated_at, id",
                params,
            ).fetchall()
        return [r["id"] for r in rows]

    def unreferenced_active_between(
        self, oldest: str, newest: str, namespace: Optional[str] = None
    ) -> List[str]:
        """Active nodes with ``oldest <= updated_at < newest`` and no inbound links."""
        conditions = ["n.status = 'active'", "n.updated_at < ?", "n.updated_at >= ?"]
        params: List = [newest, oldest]
        ns = namespace_filter(namespace, column="n.namespace")
        if ns:
            conditions.append(ns[0])
            params.extend(ns[1])
        with self._store.transaction() as conn:
            rows = conn.execute(
                f"""SELECT n.id FROM nodes n
                    LEFT JOIN links l ON l.target_id = n.id
                    WHERE {' AND '.join(conditions)}
                    GROUP BY n.id
                    HAVING COUNT(l.id) = 0
                    ORDER BY n.updated_at, n.id""",
                params,
            ).fetchall()
        return [r["id"] for r in rows]

    def with_status(self, status: str, namespace: Optional[str] = None) -> List[Node]:
        """Every node with a status in scope, oldest created first."""
        conditions = ["status = ?"]
        params: List = [status]
        ns = namespace_filter(namespace)
        if ns:
            conditions.append(ns[0])
            params.extend(ns[1])
        with self._store.transaction() as conn:
            rows = conn.execute(
                f"SELECT * FROM nodes WHERE {' AND '.join(conditions)} ORDER BY created_at, id",
                params,
            ).fetchall()
        return [_row_to_node(r) for r in rows]

    def search(
        self,
        query: str,
        *,
        namespace: Optional[str] = None,
        limit: int = 20,
        exclude_ids: Optional[Iterable[str]] = None,
    ) -> List[Node]:
        """Case-insensitive substring match on title or content."""
        pattern = f"%{escape_like_pattern(query)}%"
        conditions = [
            "status != 'compacted'",
            "(title LIKE ? ESCAPE '\\' OR content LIKE ? ESCAPE '\\')",
        ]
        params: List = [pattern, pattern]
        ns = namespace_filter(namespace)
        if ns:
            conditions.append(ns[0])
            params.extend(ns[1])
        excluded = list(exclude_ids or [])
        if excluded:
            conditions.append(f"id NOT IN ({','.join('?' for _ in excluded)})")
            params.extend(excluded)
        params.append(int(limit))

        with self._store.transaction() as conn:
            rows = conn.execute(
                f"""SELECT * FROM nodes WHERE {' AND '.join(conditions)}
                    ORDER BY updated_at DESC LIMIT ?""",
                params,
            ).fetchall()
        return [_row_to_node(r) for r in rows]
