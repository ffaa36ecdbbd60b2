"""Namespace hierarchy operations.

Namespaces are dotted paths (``clients.acme.q1``). Ensuring a namespace
creates every ancestor prefix, and every namespace-scoped query goes
through ``namespace_filter`` so that a parent scope includes its
descendants while a leaf scope excludes siblings and ancestors.
"""

import logging
import re
from typing import TYPE_CHECKING, List, Optional, Tuple

from kt.protocols import ValidationError
from kt.types import Namespace

if TYPE_CHECKING:
    from .sqlite import KnowledgeStore

logger = logging.getLogger(__name__)

_SEGMENT = re.compile(r"^[A-Za-z0-9_-]+$")


def escape_like_pattern(pattern: str) -> str:
    """Escape LIKE pattern special characters to prevent pattern injection."""
    return pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def validate_slug(slug: str) -> str:
    """Return the slug if every dot-separated segment is well formed."""
    if not slug or not all(_SEGMENT.match(part) for part in slug.split(".")):
        raise ValidationError(f"Invalid namespace slug: {slug!r}")
    return slug


def ancestors(slug: str) -> List[str]:
    """Every prefix of a slug, shortest first, including the slug itself."""
    parts = slug.split(".")
    return [".".join(parts[:i]) for i in range(1, len(parts) + 1)]


def namespace_filter(
    namespace: Optional[str], column: str = "namespace"
) -> Optional[Tuple[str, List[str]]]:
    """SQL predicate for "equals slug OR is a dotted descendant of slug".

    Returns None when no scope is requested.
    """
    if not namespace:
        return None
    sql = f"({column} = ? OR {column} LIKE ? ESCAPE '\\')"
    return sql, [namespace, f"{escape_like_pattern(namespace)}.%"]


def in_scope(node_namespace: str, namespace: Optional[str]) -> bool:
    """Python twin of namespace_filter, for results that come from the index."""
    if not namespace:
        return True
    return node_namespace == namespace or node_namespace.startswith(namespace + ".")


def _row_to_namespace(row) -> Namespace:
    return Namespace(slug=row["slug"], name=row["name"], description=row["description"])


class NamespaceRepository:
    """CRUD over the namespaces table."""

    def __init__(self, store: "KnowledgeStore"):
        self._store = store

    def ensure(self, slug: str) -> None:
        """Create the slug and all of its ancestors. Idempotent."""
        validate_slug(slug)
        with self._store.transaction() as conn:
            for prefix in ancestors(slug):
                conn.execute(
                    "INSERT OR IGNORE INTO namespaces (slug, name) VALUES (?, ?)",
                    (prefix, prefix),
                )

    def create(self, slug: str, name: Optional[str] = None, description: Optional[str] = None) -> Namespace:
        """Create a namespace (and its ancestors). An existing record is kept as is."""
        validate_slug(slug)
        with self._store.transaction() as conn:
            for prefix in ancestors(slug)[:-1]:
                conn.execute(
                    "INSERT OR IGNORE INTO namespaces (slug, name) VALUES (?, ?)",
                    (prefix, prefix),
                )
            conn.execute(
                "INSERT OR IGNORE INTO namespaces (slug, name, description) VALUES (?, ?, ?)",
                (slug, name or slug, description),
            )
        return self.get(slug)

    def get(self, slug: str) -> Optional[Namespace]:
        with self._store.transaction() as conn:
            row = conn.execute("SELECT * FROM namespaces WHERE slug = ?", (slug,)).fetchone()
        return _row_to_namespace(row) if row else None

    def list(self, parent: Optional[str] = None) -> List[Namespace]:
        ns = namespace_filter(parent, column="slug")
        where = f"WHERE {ns[0]}" if ns else ""
        with self._store.transaction() as conn:
            rows = conn.execute(
                f"SELECT * FROM namespaces {where} ORDER BY slug", ns[1] if ns else []
            ).fetchall()
        return [_row_to_namespace(r) for r in rows]

    def delete(self, slug: str) -> bool:
        """Delete the namespace record only. Member nodes keep their namespace."""
        with self._store.transaction() as conn:
            cursor = conn.execute("DELETE FROM namespaces WHERE slug = ?", (slug,))
        return cursor.rowcount > 0
