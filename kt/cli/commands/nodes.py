"""Node commands: capture, show, list, delete, search, embed."""

import logging
from typing import TYPE_CHECKING

from kt.cli.commands.helpers import (
    node_line,
    parse_tags,
    print_json,
    resolve_namespace_arg,
    to_dict,
    validate_input,
)
from kt.protocols import NodeNotFoundError

if TYPE_CHECKING:
    from kt.graph import KnowledgeGraph

logger = logging.getLogger(__name__)


def cmd_capture(args, graph: "KnowledgeGraph"):
    """Capture a piece of knowledge."""
    content = validate_input(args.content, "content", 20000)
    namespace = resolve_namespace_arg(args, graph, required=True)
    title = validate_input(args.title, "title", 200) if args.title else None

    result = graph.capture(
        namespace,
        content,
        title=title,
        tags=parse_tags(args.tags),
        auto_link=args.auto_link,
    )

    if args.json:
        print_json(
            {
                "node": to_dict(result.node),
                "similar": [{"id": n.id, "title": n.title} for n in result.similar],
                "auto_linked": result.auto_linked,
            }
        )
        return

    print(f"✓ Captured {result.node.id} in {namespace}")
    if result.node.embedding_pending:
        print("  (embedding pending; run `kt embed` when Ollama is available)")
    if result.similar:
        print("\nSimilar knowledge:")
        for node in result.similar:
            marker = " (linked)" if node.id in result.auto_linked else ""
            print(f"  {node_line(node)}{marker}")


def cmd_show(args, graph: "KnowledgeGraph"):
    """Show one node with its links."""
    node = graph.get_node(args.id)
    if node is None:
        raise NodeNotFoundError(args.id)
    links = graph.get_links(node.id)
    backlinks = graph.get_backlinks(node.id)

    if args.json:
        data = to_dict(node)
        data["links"] = to_dict(links)
        data["backlinks"] = to_dict(backlinks)
        print_json(data)
        return

    print(f"{node.title or '(untitled)'}  [{node.id}]")
    print(f"Namespace: {node.namespace}  Status: {node.status}  Source: {node.source_type}")
    if node.tags:
        print(f"Tags: {', '.join(node.tags)}")
    print(f"Created: {node.created_at}  Updated: {node.updated_at}")
    if node.stale_at:
        print(f"Stale since: {node.stale_at}")
    if node.compacted_into:
        print(f"Compacted into: {node.compacted_into}")
    print(f"\n{node.content}")
    if links:
        print("\nLinks:")
        for link in links:
            print(f"  → {link.link_type} {link.target_id}" + (f": {link.context}" if link.context else ""))
    if backlinks:
        print("\nBacklinks:")
        for link in backlinks:
            print(f"  ← {link.link_type} {link.source_id}" + (f": {link.context}" if link.context else ""))


def cmd_list(args, graph: "KnowledgeGraph"):
    """List nodes, most recently updated first."""
    namespace = resolve_namespace_arg(args, graph)
    nodes = graph.list_nodes(
        namespace=namespace,
        status=args.status,
        include_compacted=args.all,
        limit=args.limit,
    )

    if args.json:
        print_json(to_dict(nodes))
        return

    if not nodes:
        print("No nodes found.")
        return
    for node in nodes:
        print(node_line(node))


def cmd_delete(args, graph: "KnowledgeGraph"):
    """Permanently delete a node and its links."""
    deleted = graph.delete_node(args.id)
    if not deleted:
        raise NodeNotFoundError(args.id)
    if args.json:
        print_json({"deleted": args.id})
    else:
        print(f"✓ Deleted {args.id}")


def cmd_search(args, graph: "KnowledgeGraph"):
    """Search knowledge."""
    query = validate_input(args.query, "query", 500)
    namespace = validate_input(args.namespace, "namespace", 200) if args.namespace else None
    results = graph.search(query, namespace=namespace, limit=args.limit)

    if args.json:
        print_json(to_dict(results))
        return

    if not results:
        print(f"No results for '{query}'")
        return
    print(f"Found {len(results)} result(s) for '{query}':\n")
    for node in results:
        print(node_line(node))


def cmd_embed(args, graph: "KnowledgeGraph"):
    """Generate embeddings for pending nodes."""
    report = graph.embed_pending(args.limit)

    if args.json:
        print_json(to_dict(report))
        return

    total = report.embedded + report.failed + report.skipped
    if total == 0:
        print("No pending embeddings.")
        return
    if report.failed:
        print("Embedder appears unavailable. Stopped early.")
    print(
        f"Done: {report.embedded} embedded, {report.failed} failed, {report.skipped} skipped."
    )


def cmd_status(args, graph: "KnowledgeGraph"):
    """Mark a node active or stale by hand."""
    if graph.get_node(args.id) is None:
        raise NodeNotFoundError(args.id)
    node = graph.update_status(args.id, args.status)

    if args.json:
        print_json(to_dict(node))
    else:
        print(f"{node.id} → {node.status}")
