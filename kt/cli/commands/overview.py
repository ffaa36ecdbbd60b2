"""Overview commands: stats and context."""

from typing import TYPE_CHECKING

from kt.cli.commands.helpers import print_json, resolve_namespace_arg

if TYPE_CHECKING:
    from kt.graph import KnowledgeGraph


def cmd_stats(args, graph: "KnowledgeGraph"):
    """Show node counts and embedding coverage."""
    namespace = args.namespace or None
    stats = graph.stats(namespace)

    if args.json:
        print_json(stats)
        return

    print(f"Knowledge graph{f' ({namespace})' if namespace else ''}")
    print("=" * 40)
    print(f"Nodes:      {stats['total']}")
    print(f"  active:   {stats['active']}")
    print(f"  stale:    {stats['stale']}")
    print(f"  compacted: {stats['compacted']}")
    print(f"Summaries:  {stats['compaction_summaries']}")
    print(f"Embeddings: {stats['embedding_coverage']}")
    if stats["oldest_active"]:
        print(f"Oldest active: {stats['oldest_active']}")
    if stats["by_namespace"]:
        print("\nBy namespace:")
        for row in stats["by_namespace"]:
            print(f"  {row['namespace']}: {row['count']}")


def cmd_context(args, graph: "KnowledgeGraph"):
    """Load a context brief for the current project."""
    namespace = resolve_namespace_arg(args, graph)
    brief = graph.context(namespace, limit=args.limit)

    if args.json:
        print_json(brief)
        return

    print(f"Context: {namespace or '(all namespaces)'}\n")
    if brief["active_nodes"]:
        print("Active knowledge:")
        for n in brief["active_nodes"]:
            print(f"  [{n['id']}] {n['title'] or '(untitled)'}")
            print(f"    {n['summary']}")
    if brief["conflicts"]:
        print("\nConflicts:")
        for c in brief["conflicts"]:
            suffix = f": {c['description']}" if c["description"] else ""
            print(f"  {c['node_a']} contradicts {c['node_b']}{suffix}")
    if brief["stale_alerts"]:
        print("\nStale:")
        for n in brief["stale_alerts"]:
            print(f"  [{n['id']}] {n['title'] or '(untitled)'}, stale since {n['stale_since']}")
