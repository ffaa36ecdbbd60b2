"""Link command."""

from typing import TYPE_CHECKING

from kt.cli.commands.helpers import print_json, to_dict, validate_input

if TYPE_CHECKING:
    from kt.graph import KnowledgeGraph


def cmd_link(args, graph: "KnowledgeGraph"):
    """Link two nodes: ``kt link SOURCE TYPE TARGET``."""
    context = validate_input(args.context, "context", 1000) if args.context else None
    link = graph.link(args.source, args.target, args.type, context)

    if args.json:
        print_json(to_dict(link))
        return

    if link is None:
        print("A node cannot link to itself; nothing created.")
        return
    print(f"✓ {link.source_id} {link.link_type} {link.target_id}")
    if link.link_type == "supersedes":
        print(f"  {link.target_id} is now stale")
