"""
kt CLI - Command-line interface for the knowledge graph.

Usage:
    kt init
    kt capture CONTENT [-n NS] [--title T] [--tags a,b] [--auto-link]
    kt show ID
    kt list [-n NS] [--status S] [--all] [--limit N]
    kt link SOURCE TYPE TARGET [--context C]
    kt delete ID
    kt status ID active|stale
    kt search QUERY [-n NS] [--limit N]
    kt stale [-n NS] [--detect [--max-age D] [--orphan-age D] [--protect-referenced]]
    kt compact [-n NS] [--dry-run] [--detect-stale] [--max-age D] [--min-cluster N]
    kt digest [-n NS] [--days D] [--fresh] [--context-file F]
    kt embed [--limit N]
    kt ns list|create|delete
    kt map add|list|remove
    kt stats [-n NS]
    kt context [-n NS] [--limit N]

Every command accepts --json.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from kt.cli.commands import (
    cmd_capture,
    cmd_compact,
    cmd_context,
    cmd_delete,
    cmd_digest,
    cmd_embed,
    cmd_init,
    cmd_link,
    cmd_list,
    cmd_map,
    cmd_ns,
    cmd_search,
    cmd_show,
    cmd_stale,
    cmd_stats,
    cmd_status,
)
from kt.graph import KnowledgeGraph
from kt.lifecycle.summarize import COMPACTION_MAX_TOKENS, DIGEST_MAX_TOKENS, build_summarizer
from kt.logging_config import setup_kt_logging
from kt.protocols import KtError
from kt.storage import KnowledgeStore
from kt.types import VALID_LINK_TYPE_VALUES, VALID_STATUS_VALUES, NodeStatus
from kt.utils import KtConfig

# Set up logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

COMMANDS = {
    "capture": cmd_capture,
    "show": cmd_show,
    "list": cmd_list,
    "link": cmd_link,
    "delete": cmd_delete,
    "status": cmd_status,
    "search": cmd_search,
    "stale": cmd_stale,
    "compact": cmd_compact,
    "digest": cmd_digest,
    "embed": cmd_embed,
    "ns": cmd_ns,
    "map": cmd_map,
    "stats": cmd_stats,
    "context": cmd_context,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kt",
        description="Knowledge graph with staleness, clustering and compaction",
    )
    parser.add_argument(
        "--db", help="Database path (default: $KT_DB_PATH, the nearest .kt/kt.db, or ~/.kt/kt.db)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Shared flags
    json_flag = argparse.ArgumentParser(add_help=False)
    json_flag.add_argument("--json", "-j", action="store_true", help="Output as JSON")
    ns_flag = argparse.ArgumentParser(add_help=False)
    ns_flag.add_argument("--namespace", "-n", help="Namespace (default: mapping for cwd)")

    # init
    subparsers.add_parser("init", parents=[json_flag],
                          help="Create a knowledge base (.kt/kt.db) in this directory")

    # capture
    p_capture = subparsers.add_parser("capture", parents=[json_flag, ns_flag], help="Capture knowledge")
    p_capture.add_argument("content", help="What to remember")
    p_capture.add_argument("--title", "-t", help="Short title")
    p_capture.add_argument("--tags", help="Comma-separated tags")
    p_capture.add_argument("--auto-link", action="store_true",
                           help="Link to up to 3 similar nodes")

    # show
    p_show = subparsers.add_parser("show", parents=[json_flag], help="Show a node")
    p_show.add_argument("id", help="Node ID")

    # list
    p_list = subparsers.add_parser("list", parents=[json_flag, ns_flag], help="List nodes")
    p_list.add_argument("--status", "-s", choices=sorted(VALID_STATUS_VALUES))
    p_list.add_argument("--all", "-a", action="store_true", help="Include compacted nodes")
    p_list.add_argument("--limit", "-l", type=int, default=None)

    # link
    p_link = subparsers.add_parser("link", parents=[json_flag], help="Link two nodes")
    p_link.add_argument("source", help="Source node ID")
    p_link.add_argument("type", choices=sorted(VALID_LINK_TYPE_VALUES), help="Link type")
    p_link.add_argument("target", help="Target node ID")
    p_link.add_argument("--context", "-c", help="Why these are linked")

    # delete
    p_delete = subparsers.add_parser("delete", parents=[json_flag], help="Delete a node")
    p_delete.add_argument("id", help="Node ID")

    # status
    p_status = subparsers.add_parser("status", parents=[json_flag], help="Mark a node active or stale")
    p_status.add_argument("id", help="Node ID")
    p_status.add_argument("status", choices=[NodeStatus.ACTIVE.value, NodeStatus.STALE.value])

    # search
    p_search = subparsers.add_parser("search", parents=[json_flag], help="Search knowledge")
    p_search.add_argument("query", help="Search query")
    p_search.add_argument("--namespace", "-n", help="Limit to namespace")
    p_search.add_argument("--limit", "-l", type=int, default=20)

    # stale
    p_stale = subparsers.add_parser("stale", parents=[json_flag, ns_flag],
                                    help="List stale nodes or detect new ones")
    p_stale.add_argument("--detect", action="store_true", help="Run a staleness sweep")
    p_stale.add_argument("--max-age", type=float, default=60, help="Days before a node goes stale")
    p_stale.add_argument("--orphan-age", type=float, default=None,
                         help="Days before an unreferenced node goes stale")
    p_stale.add_argument("--protect-referenced", action="store_true",
                         help="Skip nodes linked to recently")

    # compact
    p_compact = subparsers.add_parser("compact", parents=[json_flag, ns_flag],
                                      help="Compact clusters of stale nodes")
    p_compact.add_argument("--dry-run", action="store_true", help="Show clusters without compacting")
    p_compact.add_argument("--detect-stale", action="store_true",
                           help="Run a staleness sweep first")
    p_compact.add_argument("--max-age", type=float, default=60)
    p_compact.add_argument("--min-cluster", type=int, default=3)
    p_compact.add_argument("--threshold", type=float, default=0.8,
                           help="Maximum vector distance for a semantic edge")

    # digest
    p_digest = subparsers.add_parser("digest", parents=[json_flag, ns_flag],
                                     help="Briefing of recent knowledge")
    p_digest.add_argument("--days", "-d", type=int, default=2)
    p_digest.add_argument("--fresh", action="store_true", help="Ignore the cache")
    p_digest.add_argument("--context-file", help="Project context file to include")

    # embed
    p_embed = subparsers.add_parser("embed", parents=[json_flag],
                                    help="Generate embeddings for pending nodes")
    p_embed.add_argument("--limit", "-l", type=int, default=50)

    # ns
    p_ns = subparsers.add_parser("ns", help="Namespace operations")
    ns_sub = p_ns.add_subparsers(dest="ns_action", required=True)
    ns_list = ns_sub.add_parser("list", parents=[json_flag], help="List namespaces")
    ns_list.add_argument("parent", nargs="?", help="Only this namespace and its descendants")
    ns_create = ns_sub.add_parser("create", parents=[json_flag], help="Create a namespace")
    ns_create.add_argument("slug", help="Dotted namespace, e.g. clients.acme")
    ns_create.add_argument("--name", help="Display name")
    ns_create.add_argument("--description", help="Description")
    ns_delete = ns_sub.add_parser("delete", parents=[json_flag], help="Delete a namespace record")
    ns_delete.add_argument("slug")

    # map
    p_map = subparsers.add_parser("map", help="Directory to namespace mappings")
    map_sub = p_map.add_subparsers(dest="map_action", required=True)
    map_add = map_sub.add_parser("add", parents=[json_flag], help="Map a directory")
    map_add.add_argument("directory", help="Directory (or dir/*)")
    map_add.add_argument("namespace")
    map_sub.add_parser("list", parents=[json_flag], help="List mappings")
    map_remove = map_sub.add_parser("remove", parents=[json_flag], help="Remove a mapping")
    map_remove.add_argument("directory")

    # stats
    p_stats = subparsers.add_parser("stats", parents=[json_flag], help="Graph statistics")
    p_stats.add_argument("--namespace", "-n", help="Limit to namespace")

    # context
    p_context = subparsers.add_parser("context", parents=[json_flag, ns_flag],
                                      help="Context brief for the current project")
    p_context.add_argument("--limit", "-l", type=int, default=5)

    return parser


def build_graph(config: KtConfig, store: KnowledgeStore) -> KnowledgeGraph:
    """Wire the store to the configured embedder and summarizers."""
    embedder = None
    try:
        from kt.models.ollama import OllamaEmbedder

        embedder = OllamaEmbedder(
            config.embed_model,
            base_url=config.ollama_host,
            dimension=config.embed_dimension,
        )
    except ImportError as e:
        logger.warning(f"Embeddings disabled: {e}")

    return KnowledgeGraph(
        store,
        embedder=embedder,
        summarizer=build_summarizer(config, max_tokens=COMPACTION_MAX_TOKENS),
        digest_summarizer=build_summarizer(config, max_tokens=DIGEST_MAX_TOKENS),
        vault_root=config.vault_root,
    )


def main(argv: Optional[List[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    config = KtConfig.from_env(Path(args.db) if args.db else None)
    setup_kt_logging(config.log_level)

    try:
        if args.command == "init":
            cmd_init(args, config)
            return
        with KnowledgeStore(config.db_path, embedding_dimension=config.embed_dimension) as store:
            graph = build_graph(config, store)
            COMMANDS[args.command](args, graph)
    except KtError as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except (ValueError, TypeError) as e:
        logger.error(f"Input validation error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
