"""CLI command modules for kt.

Each module contains related command handlers; every handler has the
signature ``cmd_xxx(args, graph)``; ``cmd_init`` takes the config instead
because it runs before any store is opened.
"""

from kt.cli.commands.helpers import print_json, validate_input
from kt.cli.commands.init import cmd_init
from kt.cli.commands.lifecycle import cmd_compact, cmd_digest, cmd_stale
from kt.cli.commands.links import cmd_link
from kt.cli.commands.namespaces import cmd_map, cmd_ns
from kt.cli.commands.nodes import (
    cmd_capture,
    cmd_delete,
    cmd_embed,
    cmd_list,
    cmd_search,
    cmd_show,
    cmd_status,
)
from kt.cli.commands.overview import cmd_context, cmd_stats

__all__ = [
    "cmd_capture",
    "cmd_compact",
    "cmd_context",
    "cmd_delete",
    "cmd_digest",
    "cmd_embed",
    "cmd_init",
    "cmd_link",
    "cmd_list",
    "cmd_map",
    "cmd_ns",
    "cmd_search",
    "cmd_show",
    "cmd_stale",
    "cmd_stats",
    "cmd_status",
    "print_json",
    "validate_input",
]
