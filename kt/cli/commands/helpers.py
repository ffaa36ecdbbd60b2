"""Shared helper functions for CLI commands."""

import json
import os
import re
from dataclasses import asdict
from typing import TYPE_CHECKING, Any, List, Optional

from kt.protocols import ValidationError

if TYPE_CHECKING:
    from kt.graph import KnowledgeGraph
    from kt.types import Node


def validate_input(value: str, field_name: str, max_length: int = 1000) -> str:
    """Validate and sanitize CLI inputs."""
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")

    if len(value) > max_length:
        raise ValueError(f"{field_name} too long (max {max_length} characters)")

    # Remove null bytes and control characters except newlines
    sanitized = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", value)

    return sanitized


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    print(json.dumps(data, indent=2, default=str))


def to_dict(record: Any) -> Any:
    """Dataclass (or list of them) to plain JSON-ready data."""
    if isinstance(record, list):
        return [to_dict(r) for r in record]
    if record is None:
        return None
    return asdict(record)


def parse_tags(raw: Optional[str]) -> Optional[List[str]]:
    """``"a, b,c"`` -> ``["a", "b", "c"]``."""
    if not raw:
        return None
    tags = [t.strip() for t in raw.split(",") if t.strip()]
    return tags or None


def node_line(node: "Node") -> str:
    """One-line listing: ``[id] title (namespace, status)``."""
    title = node.title or node.content[:60].replace("\n", " ")
    return f"[{node.id}] {title} ({node.namespace}, {node.status})"


def resolve_namespace_arg(args, graph: "KnowledgeGraph", required: bool = False) -> Optional[str]:
    """--namespace if given, else the mapping for the current directory."""
    namespace = getattr(args, "namespace", None)
    if namespace:
        return validate_input(namespace, "namespace", 200)
    namespace = graph.resolve_namespace(os.getcwd())
    if namespace is None and required:
        raise ValidationError(
            "No namespace given and no mapping for this directory. "
            "Pass --namespace or add one with: kt map add <dir> <namespace>"
        )
    return namespace
