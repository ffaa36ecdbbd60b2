"""Keyword and semantic search over nodes."""

import logging
from typing import TYPE_CHECKING, Iterable, List, Optional

from kt.storage.namespaces_crud import in_scope
from kt.types import Node, NodeStatus

if TYPE_CHECKING:
    from kt.storage import KnowledgeStore

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 20
DEFAULT_SIMILAR_LIMIT = 5
# The index knows nothing about status or namespace, so ask it for more
# neighbours than needed and filter afterwards.
OVERFETCH_FACTOR = 4


def search_nodes(
    store: "KnowledgeStore",
    query: str,
    *,
    namespace: Optional[str] = None,
    limit: int = DEFAULT_SEARCH_LIMIT,
    exclude_ids: Optional[Iterable[str]] = None,
) -> List[Node]:
    """Case-insensitive substring search, most recently updated first."""
    if not query or not query.strip():
        return []
    return store.nodes.search(query, namespace=namespace, limit=limit, exclude_ids=exclude_ids)


def semantic_search(
    store: "KnowledgeStore",
    vector: List[float],
    *,
    namespace: Optional[str] = None,
    limit: int = DEFAULT_SIMILAR_LIMIT,
    exclude_ids: Optional[Iterable[str]] = None,
) -> List[Node]:
    """Nearest non-compacted nodes in scope, closest first."""
    index = store.index
    if not index.available or limit <= 0:
        return []

    excluded = set(exclude_ids or [])
    neighbors = index.query(vector, max(limit * OVERFETCH_FACTOR, limit + len(excluded)))
    candidate_ids = [nb.node_id for nb in neighbors if nb.node_id not in excluded]

    results: List[Node] = []
    for node in store.nodes.get_many(candidate_ids):
        if node.status == NodeStatus.COMPACTED.value:
            continue
        if not in_scope(node.namespace, namespace):
            continue
        results.append(node)
        if len(results) >= limit:
            break
    return results


def find_similar(
    store: "KnowledgeStore",
    vector: Optional[List[float]] = None,
    *,
    keyword: Optional[str] = None,
    namespace: Optional[str] = None,
    limit: int = DEFAULT_SIMILAR_LIMIT,
    exclude_ids: Optional[Iterable[str]] = None,
) -> List[Node]:
    """Semantic neighbours when a vector is given and finds any, else keyword matches."""
    excluded = list(exclude_ids or [])
    if vector is not None:
        results = semantic_search(
            store, vector, namespace=namespace, limit=limit, exclude_ids=excluded
        )
        if results:
            return results
    if keyword:
        return search_nodes(
            store, keyword, namespace=namespace, limit=limit, exclude_ids=excluded
        )
    return []
