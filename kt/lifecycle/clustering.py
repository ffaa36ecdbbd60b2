"""Cluster detection over stale nodes.

Two stale nodes are adjacent when a link joins them (either direction) or
when the vector index puts them within ``semantic_threshold`` of each
other. Clusters are the connected components of that graph. Detection is
read-only.
"""

import logging
from collections import deque
from typing import TYPE_CHECKING, Dict, List, Optional, Set

from kt.protocols import ValidationError
from kt.types import Cluster, CompactionPlan, NodeStatus

if TYPE_CHECKING:
    from kt.storage import KnowledgeStore

logger = logging.getLogger(__name__)

DEFAULT_MIN_CLUSTER_SIZE = 3
DEFAULT_SEMANTIC_THRESHOLD = 0.8
NEIGHBORS_PER_NODE = 10


def detect_clusters(
    store: "KnowledgeStore",
    *,
    namespace: Optional[str] = None,
    min_cluster_size: int = DEFAULT_MIN_CLUSTER_SIZE,
    semantic_threshold: float = DEFAULT_SEMANTIC_THRESHOLD,
) -> List[Cluster]:
    """Connected components of stale nodes with at least min_cluster_size members."""
    if min_cluster_size < 1:
        raise ValidationError(f"min_cluster_size must be at least 1, got {min_cluster_size}")

    stale = store.nodes.with_status(NodeStatus.STALE.value, namespace)
    if not stale:
        return []

    namespaces = {n.id: n.namespace for n in stale}
    adjacency: Dict[str, Set[str]] = {n.id: set() for n in stale}

    for link in store.links.among(adjacency):
        adjacency[link.source_id].add(link.target_id)
        adjacency[link.target_id].add(link.source_id)

    _add_semantic_edges(store, adjacency, semantic_threshold)

    visited: Set[str] = set()
    clusters: List[Cluster] = []
    for node in stale:
        if node.id in visited:
            continue
        component = _component(node.id, adjacency, visited)
        if len(component) >= min_cluster_size:
            clusters.append(Cluster(node_ids=component, namespace=namespaces[node.id]))

    logger.debug(
        f"Found {len(clusters)} clusters among {len(stale)} stale nodes "
        f"({namespace or 'all namespaces'})"
    )
    return clusters


def _add_semantic_edges(
    store: "KnowledgeStore", adjacency: Dict[str, Set[str]], threshold: float
) -> None:
    index = store.index
    if not index.available:
        logger.debug("Vector index unavailable; clustering on links only")
        return

    for node_id in list(adjacency):
        vector = index.get(node_id)
        if vector is None:
            logger.debug(f"No stored vector for {node_id}; no semantic edges")
            continue
        for neighbor in index.query(vector, NEIGHBORS_PER_NODE):
            other = neighbor.node_id
            if other == node_id or other not in adjacency:
                continue
            if neighbor.distance < threshold:
                adjacency[node_id].add(other)
                adjacency[other].add(node_id)


def _component(root: str, adjacency: Dict[str, Set[str]], visited: Set[str]) -> List[str]:
    """Breadth-first walk from root; marks everything reached as visited."""
    component: List[str] = []
    queue = deque([root])
    visited.add(root)
    while queue:
        current = queue.popleft()
        component.append(current)
        for neighbor in sorted(adjacency[current]):
            if neighbor not in visited:
                visited.add(neighbor)
                queue.append(neighbor)
    return component


def plan_compaction(
    store: "KnowledgeStore",
    *,
    namespace: Optional[str] = None,
    min_cluster_size: int = DEFAULT_MIN_CLUSTER_SIZE,
    semantic_threshold: float = DEFAULT_SEMANTIC_THRESHOLD,
) -> CompactionPlan:
    """What a compaction run would do, without doing it."""
    clusters = detect_clusters(
        store,
        namespace=namespace,
        min_cluster_size=min_cluster_size,
        semantic_threshold=semantic_threshold,
    )
    return CompactionPlan(clusters=clusters, total_nodes=sum(len(c.node_ids) for c in clusters))
