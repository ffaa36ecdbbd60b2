"""Directory -> namespace mappings."""

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Union

from kt.protocols import ValidationError
from kt.types import ProjectMapping

from .namespaces_crud import validate_slug

if TYPE_CHECKING:
    from .sqlite import KnowledgeStore

logger = logging.getLogger(__name__)

MAX_VAULT_NAMESPACE_DEPTH = 3
_UNSAFE_SEGMENT_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


def _strip_pattern(pattern: str) -> str:
    """``/work/acme/*`` and ``/work/acme/`` both match under ``/work/acme``."""
    if pattern.endswith("*"):
        pattern = pattern[:-1]
    if len(pattern) > 1 and pattern.endswith("/"):
        pattern = pattern[:-1]
    return pattern


def namespace_from_vault(
    directory: Union[str, Path], vault_root: Union[str, Path]
) -> Optional[str]:
    """Namespace from the folder path inside a vault, at most three levels deep.

    ``<vault>/clients/acme/q1/notes`` -> ``clients.acme.q1``. None at the vault
    root or outside the vault.
    """
    try:
        relative = Path(directory).resolve().relative_to(Path(vault_root).resolve())
    except ValueError:
        return None
    segments = []
    for part in relative.parts[:MAX_VAULT_NAMESPACE_DEPTH]:
        segment = _UNSAFE_SEGMENT_CHARS.sub("-", part).strip("-")
        if segment:
            segments.append(segment)
    return ".".join(segments) or None


class MappingRepository:
    def __init__(self, store: "KnowledgeStore"):
        self._store = store

    def add(self, directory_pattern: str, namespace: str) -> ProjectMapping:
        """Map a directory (or ``dir/*``) to a namespace, replacing any previous mapping."""
        if not directory_pattern:
            raise ValidationError("Directory pattern cannot be empty")
        validate_slug(namespace)
        with self._store.transaction() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO project_mappings (directory_pattern, namespace)
                   VALUES (?, ?)""",
                (directory_pattern, namespace),
            )
        return ProjectMapping(directory_pattern=directory_pattern, namespace=namespace)

    def list(self) -> List[ProjectMapping]:
        with self._store.transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM project_mappings ORDER BY directory_pattern"
            ).fetchall()
        return [ProjectMapping(r["directory_pattern"], r["namespace"]) for r in rows]

    def remove(self, directory_pattern: str) -> bool:
        with self._store.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM project_mappings WHERE directory_pattern = ?", (directory_pattern,)
            )
        return cursor.rowcount > 0

    def resolve(self, directory: str) -> Optional[str]:
        """Namespace for a directory; the longest matching pattern wins."""
        best: Optional[ProjectMapping] = None
        best_len = -1
        for mapping in self.list():
            prefix = _strip_pattern(mapping.directory_pattern)
            matches = directory == prefix or directory.startswith(prefix.rstrip("/") + "/")
            if matches and len(prefix) > best_len:
                best, best_len = mapping, len(prefix)
        if best:
            logger.debug(f"Resolved {directory} -> {best.namespace} via {best.directory_pattern}")
        return best.namespace if best else None
