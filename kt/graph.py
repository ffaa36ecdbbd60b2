"""
kt Graph - the main interface to a knowledge graph.

``KnowledgeGraph`` binds one open KnowledgeStore to the optional
collaborators (embedder, summarizers) and exposes every operation the CLI
needs: capture, linking, search, the staleness/clustering/compaction
lifecycle, digests, namespaces, mappings, stats and context briefs.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from kt.capture import DEFAULT_EMBED_BATCH, capture, embed_pending
from kt.lifecycle import (
    compact,
    compact_cluster,
    detect_clusters,
    detect_stale,
    generate_digest,
    plan_compaction,
)
from kt.lifecycle.clustering import DEFAULT_MIN_CLUSTER_SIZE, DEFAULT_SEMANTIC_THRESHOLD
from kt.lifecycle.digest import DEFAULT_DIGEST_DAYS
from kt.lifecycle.staleness import DEFAULT_MAX_AGE_DAYS
from kt.lifecycle.summarize import NullSummarizer
from kt.protocols import Embedder, Summarizer
from kt.search import find_similar, search_nodes, semantic_search
from kt.storage import KnowledgeStore, namespace_from_vault
from kt.types import (
    CaptureResult,
    Cluster,
    CompactionPlan,
    CompactionRun,
    Conflict,
    DigestResult,
    EmbedReport,
    Link,
    Namespace,
    Node,
    NodeStatus,
    ProjectMapping,
    StaleResult,
)

logger = logging.getLogger(__name__)

CONTEXT_SUMMARY_CHARS = 200
CONTEXT_STALE_ALERTS = 3


def truncate(text: str, max_chars: int = CONTEXT_SUMMARY_CHARS) -> str:
    return text if len(text) <= max_chars else text[:max_chars] + "..."


class KnowledgeGraph:
    """Knowledge graph over one store.

    Usage::

        with KnowledgeStore(path) as store:
            graph = KnowledgeGraph(store, embedder=OllamaEmbedder())
            graph.capture("clients.acme", "Pricing is two-tier", title="Pricing")

    Without an embedder nodes stay pending and similarity falls back to
    keyword search. Without a summarizer compaction and digests report the
    work as unavailable instead of raising.
    """

    def __init__(
        self,
        store: KnowledgeStore,
        *,
        embedder: Optional[Embedder] = None,
        summarizer: Optional[Summarizer] = None,
        digest_summarizer: Optional[Summarizer] = None,
        vault_root: Optional[Path] = None,
    ):
        self.store = store
        self.vault_root = vault_root
        self.embedder = embedder
        self.summarizer = summarizer or NullSummarizer("No summarizer configured")
        self.digest_summarizer = digest_summarizer or self.summarizer

    # === Nodes ===

    def capture(
        self,
        namespace: str,
        content: str,
        *,
        title: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        auto_link: bool = False,
        session_id: Optional[str] = None,
    ) -> CaptureResult:
        return capture(
            self.store,
            namespace,
            content,
            title=title,
            tags=tags,
            embedder=self.embedder,
            auto_link=auto_link,
            session_id=session_id,
        )

    def get_node(self, node_id: str) -> Optional[Node]:
        return self.store.nodes.get(node_id)

    def list_nodes(
        self,
        *,
        namespace: Optional[str] = None,
        status: Optional[str] = None,
        include_compacted: bool = False,
        limit: Optional[int] = None,
    ) -> List[Node]:
        return self.store.nodes.list(
            namespace=namespace, status=status, include_compacted=include_compacted, limit=limit
        )

    def update_status(self, node_id: str, status: str) -> Node:
        return self.store.nodes.update_status(node_id, status)

    def delete_node(self, node_id: str) -> bool:
        return self.store.nodes.delete(node_id)

    def embed_pending(self, limit: int = DEFAULT_EMBED_BATCH) -> EmbedReport:
        if self.embedder is None:
            pending = self.store.nodes.pending_embeddings(limit)
            return EmbedReport(skipped=len(pending))
        return embed_pending(self.store, self.embedder, limit)

    # === Links ===

    def link(
        self, source_id: str, target_id: str, link_type: str, context: Optional[str] = None
    ) -> Optional[Link]:
        return self.store.links.create(source_id, target_id, link_type, context)

    def get_links(self, node_id: str) -> List[Link]:
        return self.store.links.get_links(node_id)

    def get_backlinks(self, node_id: str) -> List[Link]:
        return self.store.links.get_backlinks(node_id)

    def delete_link(self, link_id: str) -> bool:
        return self.store.links.delete(link_id)

    def get_conflicts(self, namespace: Optional[str] = None) -> List[Conflict]:
        return self.store.links.get_conflicts(namespace)

    # === Search ===

    def search(
        self, query: str, *, namespace: Optional[str] = None, limit: int = 20
    ) -> List[Node]:
        """Semantic search when the query can be embedded, keyword search otherwise."""
        if self.embedder is not None and self.store.index.available:
            vector = self.embedder.embed(query)
            if vector:
                results = semantic_search(self.store, vector, namespace=namespace, limit=limit)
                if results:
                    return results
        return search_nodes(self.store, query, namespace=namespace, limit=limit)

    def find_similar(
        self,
        vector: Optional[List[float]] = None,
        *,
        keyword: Optional[str] = None,
        namespace: Optional[str] = None,
        limit: int = 5,
        exclude_ids: Optional[Iterable[str]] = None,
    ) -> List[Node]:
        return find_similar(
            self.store,
            vector,
            keyword=keyword,
            namespace=namespace,
            limit=limit,
            exclude_ids=exclude_ids,
        )

    # === Lifecycle ===

    def detect_stale(
        self,
        *,
        max_age_days: float = DEFAULT_MAX_AGE_DAYS,
        orphan_age_days: Optional[float] = None,
        namespace: Optional[str] = None,
        protect_referenced: bool = False,
    ) -> StaleResult:
        return detect_stale(
            self.store,
            max_age_days=max_age_days,
            orphan_age_days=orphan_age_days,
            namespace=namespace,
            protect_referenced=protect_referenced,
        )

    def detect_clusters(
        self,
        *,
        namespace: Optional[str] = None,
        min_cluster_size: int = DEFAULT_MIN_CLUSTER_SIZE,
        semantic_threshold: float = DEFAULT_SEMANTIC_THRESHOLD,
    ) -> List[Cluster]:
        return detect_clusters(
            self.store,
            namespace=namespace,
            min_cluster_size=min_cluster_size,
            semantic_threshold=semantic_threshold,
        )

    def plan_compaction(
        self,
        *,
        namespace: Optional[str] = None,
        min_cluster_size: int = DEFAULT_MIN_CLUSTER_SIZE,
        semantic_threshold: float = DEFAULT_SEMANTIC_THRESHOLD,
    ) -> CompactionPlan:
        return plan_compaction(
            self.store,
            namespace=namespace,
            min_cluster_size=min_cluster_size,
            semantic_threshold=semantic_threshold,
        )

    def compact_cluster(self, cluster: Cluster):
        return compact_cluster(self.store, cluster, self.summarizer, self.embedder)

    def compact(
        self,
        *,
        namespace: Optional[str] = None,
        min_cluster_size: int = DEFAULT_MIN_CLUSTER_SIZE,
        semantic_threshold: float = DEFAULT_SEMANTIC_THRESHOLD,
        detect_stale_first: bool = False,
        max_age_days: float = DEFAULT_MAX_AGE_DAYS,
    ) -> CompactionRun:
        return compact(
            self.store,
            self.summarizer,
            self.embedder,
            namespace=namespace,
            min_cluster_size=min_cluster_size,
            semantic_threshold=semantic_threshold,
            detect_stale_first=detect_stale_first,
            max_age_days=max_age_days,
        )

    def digest(
        self,
        namespace: str,
        *,
        days: int = DEFAULT_DIGEST_DAYS,
        fresh: bool = False,
        context_file: Optional[Union[str, Path]] = None,
    ) -> DigestResult:
        return generate_digest(
            self.store,
            self.digest_summarizer,
            namespace,
            days=days,
            fresh=fresh,
            context_file=context_file,
        )

    # === Namespaces & mappings ===

    def create_namespace(
        self, slug: str, name: Optional[str] = None, description: Optional[str] = None
    ) -> Namespace:
        return self.store.namespaces.create(slug, name, description)

    def list_namespaces(self, parent: Optional[str] = None) -> List[Namespace]:
        return self.store.namespaces.list(parent)

    def delete_namespace(self, slug: str) -> bool:
        return self.store.namespaces.delete(slug)

    def add_mapping(self, directory_pattern: str, namespace: str) -> ProjectMapping:
        return self.store.mappings.add(directory_pattern, namespace)

    def list_mappings(self) -> List[ProjectMapping]:
        return self.store.mappings.list()

    def remove_mapping(self, directory_pattern: str) -> bool:
        return self.store.mappings.remove(directory_pattern)

    def resolve_namespace(self, directory: Union[str, Path]) -> Optional[str]:
        """Inside a vault the folder path names the namespace; otherwise the mappings do."""
        if self.vault_root is not None:
            namespace = namespace_from_vault(directory, self.vault_root)
            if namespace:
                return namespace
        return self.store.mappings.resolve(str(directory))

    # === Overview ===

    def stats(self, namespace: Optional[str] = None) -> Dict[str, Any]:
        return self.store.stats(namespace)

    def context(self, namespace: Optional[str] = None, limit: int = 5) -> Dict[str, Any]:
        """Brief for starting work in a namespace: recent knowledge, conflicts, stale alerts."""
        active = self.list_nodes(namespace=namespace, status=NodeStatus.ACTIVE.value, limit=limit)
        stale = self.list_nodes(
            namespace=namespace, status=NodeStatus.STALE.value, limit=CONTEXT_STALE_ALERTS
        )
        conflicts = self.get_conflicts(namespace)
        return {
            "namespace": namespace,
            "loaded_at": datetime.now(timezone.utc).isoformat(),
            "active_nodes": [
                {
                    "id": n.id,
                    "title": n.title,
                    "summary": truncate(n.content),
                    "updated_at": n.updated_at,
                }
                for n in active
            ],
            "conflicts": [
                {"node_a": c.node_a, "node_b": c.node_b, "description": c.context}
                for c in conflicts
            ],
            "stale_alerts": [
                {"id": n.id, "title": n.title, "stale_since": n.stale_at} for n in stale
            ],
        }
