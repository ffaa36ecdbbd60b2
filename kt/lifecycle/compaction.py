"""Compaction: fold a cluster of stale nodes into one summary node.

Per cluster, the summary node is created, inbound links are moved onto it,
members are marked compacted and intra-cluster links are removed, all in
one transaction. The summarizer is called before the transaction opens and
the embedder after it commits, so neither holds a write lock.
"""

import logging
from typing import TYPE_CHECKING, List, Optional, Union

from kt.capture import embed_node
from kt.lifecycle.clustering import (
    DEFAULT_MIN_CLUSTER_SIZE,
    DEFAULT_SEMANTIC_THRESHOLD,
    detect_clusters,
)
from kt.lifecycle.staleness import DEFAULT_MAX_AGE_DAYS, detect_stale
from kt.lifecycle.summarize import build_compaction_prompt
from kt.logging_config import log_compaction
from kt.protocols import Embedder, Summarizer, Unavailable
from kt.types import (
    Cluster,
    ClusterOutcome,
    CompactionFailure,
    CompactionResult,
    CompactionRun,
    Node,
    NodeStatus,
    SourceType,
)

if TYPE_CHECKING:
    from kt.storage import KnowledgeStore

logger = logging.getLogger(__name__)

MAX_TITLES_IN_SUMMARY = 3


def summary_title(nodes: List[Node]) -> str:
    titles = [n.title for n in nodes if n.title]
    if not titles:
        return f"Compacted {len(nodes)} nodes"
    more = "..." if len(titles) > MAX_TITLES_IN_SUMMARY else ""
    return f"Compacted: {', '.join(titles[:MAX_TITLES_IN_SUMMARY])}{more}"


def merged_tags(nodes: List[Node]) -> Optional[List[str]]:
    tags: List[str] = []
    for node in nodes:
        for tag in node.tags or []:
            if tag not in tags:
                tags.append(tag)
    return tags or None


def compact_cluster(
    store: "KnowledgeStore",
    cluster: Cluster,
    summarizer: Summarizer,
    embedder: Optional[Embedder] = None,
) -> Union[CompactionResult, CompactionFailure, None]:
    """Compact one cluster.

    Returns None when no member is still stale, CompactionFailure when the
    summarizer cannot produce text (nothing is written), otherwise the
    CompactionResult. Storage errors roll the cluster back and propagate.
    """
    loaded = store.nodes.get_many(cluster.node_ids)
    members = [n for n in loaded if n.status == NodeStatus.STALE.value]
    ignored = set(cluster.node_ids) - {n.id for n in members}
    if ignored:
        logger.info(f"Ignoring {len(ignored)} cluster members that are missing or not stale")
    if not members:
        return None

    members.sort(key=lambda n: (n.created_at or "", n.id))
    member_ids = [n.id for n in members]

    synthesized = summarizer.synthesize(build_compaction_prompt(members))
    if isinstance(synthesized, Unavailable):
        logger.warning(f"Cluster of {len(members)} not compacted: {synthesized.reason}")
        return CompactionFailure(node_ids=member_ids, reason=synthesized.reason)
    content = synthesized.strip()
    if not content:
        return CompactionFailure(node_ids=member_ids, reason="Summarizer returned empty text")

    with store.transaction():
        summary = store.nodes.create(
            cluster.namespace,
            content,
            title=summary_title(members),
            tags=merged_tags(members),
            source_type=SourceType.COMPACTION.value,
        )
        moved = store.links.repoint_inbound(member_ids, summary.id)
        for node_id in member_ids:
            store.nodes.update_status(
                node_id, NodeStatus.COMPACTED.value, compacted_into=summary.id
            )
        removed = store.links.delete_among(member_ids)

    logger.info(
        f"Compacted {len(member_ids)} nodes into {summary.id} "
        f"({moved} inbound links kept, {removed} internal links removed)"
    )
    log_compaction(summary.id, member_ids, cluster.namespace)

    for node_id in member_ids:
        store.index.delete(node_id)
    summary = _embed_summary(store, summary, embedder)

    return CompactionResult(summary_node=summary, compacted_ids=member_ids)


def _embed_summary(store: "KnowledgeStore", summary: Node, embedder: Optional[Embedder]) -> Node:
    """Best effort; the summary stays embedding_pending when this fails."""
    if embed_node(store, summary, embedder) is None:
        logger.debug(f"Summary {summary.id} left pending")
    return summary


def compact(
    store: "KnowledgeStore",
    summarizer: Summarizer,
    embedder: Optional[Embedder] = None,
    *,
    namespace: Optional[str] = None,
    min_cluster_size: int = DEFAULT_MIN_CLUSTER_SIZE,
    semantic_threshold: float = DEFAULT_SEMANTIC_THRESHOLD,
    detect_stale_first: bool = False,
    max_age_days: float = DEFAULT_MAX_AGE_DAYS,
) -> CompactionRun:
    """Optionally sweep for staleness, then compact every detected cluster.

    Clusters are processed one at a time. A summarizer failure on one
    cluster is recorded and the run moves on.
    """
    run = CompactionRun()
    if detect_stale_first:
        run.staleness = detect_stale(
            store,
            max_age_days=max_age_days,
            namespace=namespace,
            protect_referenced=True,
        )

    clusters = detect_clusters(
        store,
        namespace=namespace,
        min_cluster_size=min_cluster_size,
        semantic_threshold=semantic_threshold,
    )
    logger.info(f"Compacting {len(clusters)} clusters ({namespace or 'all namespaces'})")

    for cluster in clusters:
        outcome = compact_cluster(store, cluster, summarizer, embedder)
        if isinstance(outcome, CompactionResult):
            run.outcomes.append(ClusterOutcome(cluster=cluster, result=outcome))
        elif isinstance(outcome, CompactionFailure):
            run.outcomes.append(ClusterOutcome(cluster=cluster, failure=outcome))
        else:
            run.outcomes.append(ClusterOutcome(cluster=cluster))

    if run.failed:
        logger.warning(f"{len(run.failed)} of {len(clusters)} clusters failed to compact")
    return run
