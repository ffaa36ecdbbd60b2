"""Lifecycle commands: stale, compact, digest."""

import logging
from typing import TYPE_CHECKING

from kt.cli.commands.helpers import (
    node_line,
    print_json,
    resolve_namespace_arg,
    to_dict,
)
from kt.types import NodeStatus

if TYPE_CHECKING:
    from kt.graph import KnowledgeGraph

logger = logging.getLogger(__name__)


def cmd_stale(args, graph: "KnowledgeGraph"):
    """List stale nodes, or run a staleness sweep with --detect."""
    namespace = resolve_namespace_arg(args, graph)

    if args.detect:
        result = graph.detect_stale(
            max_age_days=args.max_age,
            orphan_age_days=args.orphan_age,
            namespace=namespace,
            protect_referenced=args.protect_referenced,
        )
        if args.json:
            print_json(to_dict(result))
            return
        print(f"Marked {len(result.staled)} node(s) stale")
        if result.skipped:
            print(f"Skipped {result.skipped} recently referenced node(s)")
        for node_id in result.staled:
            print(f"  {node_id}")
        return

    nodes = graph.list_nodes(namespace=namespace, status=NodeStatus.STALE.value)
    if args.json:
        print_json(to_dict(nodes))
        return
    if not nodes:
        print("No stale nodes.")
        return
    for node in nodes:
        print(f"{node_line(node)} stale since {node.stale_at}")


def cmd_compact(args, graph: "KnowledgeGraph"):
    """Compact clusters of stale nodes into summaries."""
    namespace = resolve_namespace_arg(args, graph)

    if args.dry_run:
        plan = graph.plan_compaction(
            namespace=namespace,
            min_cluster_size=args.min_cluster,
            semantic_threshold=args.threshold,
        )
        if args.json:
            print_json(to_dict(plan))
            return
        if not plan.clusters:
            print("No clusters to compact.")
            return
        print(f"Would compact {plan.total_nodes} node(s) in {len(plan.clusters)} cluster(s):")
        for i, cluster in enumerate(plan.clusters, 1):
            print(f"  {i}. {cluster.namespace}: {', '.join(cluster.node_ids)}")
        return

    run = graph.compact(
        namespace=namespace,
        min_cluster_size=args.min_cluster,
        semantic_threshold=args.threshold,
        detect_stale_first=args.detect_stale,
        max_age_days=args.max_age,
    )

    if args.json:
        print_json(
            {
                "staleness": to_dict(run.staleness),
                "compacted": [
                    {"summary_id": r.summary_node.id, "compacted_ids": r.compacted_ids}
                    for r in run.compacted
                ],
                "failed": to_dict(run.failed),
                "skipped": [c.node_ids for c in run.skipped],
            }
        )
        return

    if run.staleness is not None:
        print(f"Staleness: {len(run.staleness.staled)} staled, {run.staleness.skipped} protected")
    if not run.outcomes:
        print("No clusters to compact.")
        return
    for result in run.compacted:
        print(f"✓ {result.summary_node.id}: {result.summary_node.title}")
        print(f"  folded {len(result.compacted_ids)} node(s)")
    for failure in run.failed:
        print(f"✗ {len(failure.node_ids)} node(s) not compacted: {failure.reason}")
    for cluster in run.skipped:
        print(f"- cluster of {len(cluster.node_ids)}: nothing left to compact")


def cmd_digest(args, graph: "KnowledgeGraph"):
    """Synthesize a briefing of recent knowledge in a namespace."""
    namespace = resolve_namespace_arg(args, graph, required=True)
    result = graph.digest(
        namespace,
        days=args.days,
        fresh=args.fresh,
        context_file=args.context_file,
    )

    if args.json:
        print_json(to_dict(result))
        return

    if result.status == "empty":
        plural = "" if args.days == 1 else "s"
        print(
            f'No recent knowledge captured in "{namespace}" (last {args.days} day{plural}). '
            "Use `kt capture` to add knowledge."
        )
    elif result.status == "unavailable":
        print(f"Digest unavailable: {result.reason}")
    else:
        print(result.content)
