"""Link repository: typed edges between nodes."""

import logging
from typing import TYPE_CHECKING, Iterable, List, Optional

from kt.protocols import UnknownLinkTypeError, ValidationError
from kt.types import (
    VALID_LINK_TYPE_VALUES,
    Conflict,
    Link,
    LinkType,
    NodeStatus,
    generate_id,
    utc_now,
)

from .namespaces_crud import namespace_filter

if TYPE_CHECKING:
    from .sqlite import KnowledgeStore

logger = logging.getLogger(__name__)


def _row_to_link(row) -> Link:
    return Link(
        id=row["id"],
        source_id=row["source_id"],
        target_id=row["target_id"],
        link_type=row["link_type"],
        context=row["context"],
        created_at=row["created_at"],
    )


def _placeholders(ids: List[str]) -> str:
    return ",".join("?" for _ in ids)


class LinkRepository:
    """CRUD over the links table plus the bulk rewrites compaction needs."""

    def __init__(self, store: "KnowledgeStore"):
        self._store = store

    def create(
        self,
        source_id: str,
        target_id: str,
        link_type: str,
        context: Optional[str] = None,
    ) -> Optional[Link]:
        """Create a directed link.

        Returns None for a self-link. A ``supersedes`` link stales an active
        target in the same transaction; that side effect is not undone if the
        link is later deleted.

        Raises:
            UnknownLinkTypeError: link_type is not a known type
            NodeNotFoundError: either endpoint does not exist
            ValidationError: either endpoint is compacted
        """
        if source_id == target_id:
            logger.debug(f"Ignoring self-link on {source_id}")
            return None
        if link_type not in VALID_LINK_TYPE_VALUES:
            raise UnknownLinkTypeError(link_type)

        link_id = generate_id()
        with self._store.transaction() as conn:
            source = self._store.nodes.require(source_id)
            target = self._store.nodes.require(target_id)
            for node in (source, target):
                if node.status == NodeStatus.COMPACTED.value:
                    raise ValidationError(
                        f"Cannot link compacted node {node.id} (folded into {node.compacted_into})"
                    )

            conn.execute(
                """INSERT INTO links (id, source_id, target_id, link_type, context, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (link_id, source_id, target_id, link_type, context or None, utc_now()),
            )

            if link_type == LinkType.SUPERSEDES.value and target.status == NodeStatus.ACTIVE.value:
                self._store.nodes.update_status(target_id, NodeStatus.STALE.value)
                logger.info(f"{source_id} supersedes {target_id}; marked stale")

            row = conn.execute("SELECT * FROM links WHERE id = ?", (link_id,)).fetchone()

        return _row_to_link(row)

    def get(self, link_id: str) -> Optional[Link]:
        with self._store.transaction() as conn:
            row = conn.execute("SELECT * FROM links WHERE id = ?", (link_id,)).fetchone()
        return _row_to_link(row) if row else None

    def get_links(self, node_id: str) -> List[Link]:
        """Outbound links, newest first."""
        with self._store.transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM links WHERE source_id = ? ORDER BY created_at DESC",
                (node_id,),
            ).fetchall()
        return [_row_to_link(r) for r in rows]

    def get_backlinks(self, node_id: str) -> List[Link]:
        """Inbound links, newest first."""
        with self._store.transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM links WHERE target_id = ? ORDER BY created_at DESC",
                (node_id,),
            ).fetchall()
        return [_row_to_link(r) for r in rows]

    def delete(self, link_id: str) -> bool:
        with self._store.transaction() as conn:
            cursor = conn.execute("DELETE FROM links WHERE id = ?", (link_id,))
        return cursor.rowcount > 0

    def get_conflicts(self, namespace: Optional[str] = None) -> List[Conflict]:
        """Contradicts links whose endpoints are both active."""
        conditions = [
            "l.link_type = 'contradicts'",
            "n1.status = 'active'",
            "n2.status = 'active'",
        ]
        params: List = []
        ns = namespace_filter(namespace, column="n1.namespace")
        if ns:
            conditions.append(ns[0])
            params.extend(ns[1])
        with self._store.transaction() as conn:
            rows = conn.execute(
                f"""SELECT l.source_id, l.target_id, l.context
                    FROM links l
                    JOIN nodes n1 ON l.source_id = n1.id
                    JOIN nodes n2 ON l.target_id = n2.id
                    WHERE {' AND '.join(conditions)}
                    ORDER BY l.created_at""",
                params,
            ).fetchall()
        return [Conflict(node_a=r["source_id"], node_b=r["target_id"], context=r["context"]) for r in rows]

    # === Lifecycle helpers ===

    def has_inbound_since(self, node_id: str, since: str) -> bool:
        """True if any link pointing at node_id was created after ``since``."""
        with self._store.transaction() as conn:
            row = conn.execute(
                "SELECT 1 FROM links WHERE target_id = ? AND created_at > ? LIMIT 1",
                (node_id, since),
            ).fetchone()
        return row is not None

    def among(self, node_ids: Iterable[str]) -> List[Link]:
        """Links with both endpoints in node_ids."""
        ids = list(node_ids)
        if not ids:
            return []
        ph = _placeholders(ids)
        with self._store.transaction() as conn:
            rows = conn.execute(
                f"""SELECT * FROM links
                    WHERE source_id IN ({ph}) AND target_id IN ({ph})
                    ORDER BY created_at""",
                ids + ids,
            ).fetchall()
        return [_row_to_link(r) for r in rows]

    def repoint_inbound(self, member_ids: Iterable[str], new_target: str) -> int:
        """Move links entering the member set onto ``new_target``.

        Only links whose source is outside the set move. When several links
        from one source with one type would land on new_target, the oldest is
        kept and the rest are dropped. Returns the number of links kept.
        """
        ids = list(member_ids)
        if not ids:
            return 0
        ph = _placeholders(ids)
        with self._store.transaction() as conn:
            rows = conn.execute(
                f"""SELECT * FROM links
                    WHERE target_id IN ({ph}) AND source_id NOT IN ({ph})
                    ORDER BY created_at, id""",
                ids + ids,
            ).fetchall()

            kept = {}
            dropped: List[str] = []
            for row in rows:
                key = (row["source_id"], row["link_type"])
                if key in kept:
                    dropped.append(row["id"])
                else:
                    kept[key] = row["id"]

            if dropped:
                conn.execute(
                    f"DELETE FROM links WHERE id IN ({_placeholders(dropped)})", dropped
                )
            keep_ids = list(kept.values())
            if keep_ids:
                conn.execute(
                    f"UPDATE links SET target_id = ? WHERE id IN ({_placeholders(keep_ids)})",
                    [new_target] + keep_ids,
                )

        if dropped:
            logger.debug(f"Collapsed {len(dropped)} duplicate links into {new_target}")
        return len(kept)

    def delete_among(self, node_ids: Iterable[str]) -> int:
        """Delete links with both endpoints in node_ids."""
        ids = list(node_ids)
        if not ids:
            return 0
        ph = _placeholders(ids)
        with self._store.transaction() as conn:
            cursor = conn.execute(
                f"DELETE FROM links WHERE source_id IN ({ph}) AND target_id IN ({ph})",
                ids + ids,
            )
        return cursor.rowcount
