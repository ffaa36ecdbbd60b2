"""Namespace and directory-mapping commands."""

import os
from typing import TYPE_CHECKING

from kt.cli.commands.helpers import print_json, to_dict, validate_input

if TYPE_CHECKING:
    from kt.graph import KnowledgeGraph


def cmd_ns(args, graph: "KnowledgeGraph"):
    """Manage namespaces."""
    if args.ns_action == "list":
        namespaces = graph.list_namespaces(args.parent)
        if args.json:
            print_json(to_dict(namespaces))
            return
        if not namespaces:
            print("No namespaces yet.")
            return
        for ns in namespaces:
            depth = ns.slug.count(".")
            label = f"  {ns.name}" if ns.name and ns.name != ns.slug else ""
            print(f"{'  ' * depth}{ns.slug}{label}")

    elif args.ns_action == "create":
        slug = validate_input(args.slug, "slug", 200)
        name = validate_input(args.name, "name", 200) if args.name else None
        description = validate_input(args.description, "description", 1000) if args.description else None
        ns = graph.create_namespace(slug, name, description)
        if args.json:
            print_json(to_dict(ns))
        else:
            print(f"✓ Namespace {ns.slug}")

    elif args.ns_action == "delete":
        deleted = graph.delete_namespace(args.slug)
        if args.json:
            print_json({"slug": args.slug, "deleted": deleted})
        elif deleted:
            print(f"✓ Deleted namespace {args.slug} (nodes keep their namespace)")
        else:
            print(f"No namespace {args.slug}")


def cmd_map(args, graph: "KnowledgeGraph"):
    """Map directories to namespaces."""
    if args.map_action == "add":
        directory = os.path.abspath(args.directory) if not args.directory.endswith("*") else args.directory
        mapping = graph.add_mapping(directory, validate_input(args.namespace, "namespace", 200))
        if args.json:
            print_json(to_dict(mapping))
        else:
            print(f"✓ {mapping.directory_pattern} → {mapping.namespace}")

    elif args.map_action == "list":
        mappings = graph.list_mappings()
        if args.json:
            print_json(to_dict(mappings))
            return
        if not mappings:
            print("No directory mappings.")
            return
        for mapping in mappings:
            print(f"{mapping.directory_pattern} → {mapping.namespace}")

    elif args.map_action == "remove":
        removed = graph.remove_mapping(args.directory)
        if args.json:
            print_json({"directory_pattern": args.directory, "removed": removed})
        elif removed:
            print(f"✓ Removed mapping for {args.directory}")
        else:
            print(f"No mapping for {args.directory}")
