"""Namespace digests: a synthesized briefing of recent knowledge, cached by node set."""

import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Union

from kt.logging_config import log_digest
from kt.protocols import Summarizer, Unavailable
from kt.storage.digests_crud import compute_node_hash
from kt.types import DigestResult, Link, Node, NodeStatus, days_ago

from .summarize import build_digest_prompt

if TYPE_CHECKING:
    from kt.storage import KnowledgeStore

logger = logging.getLogger(__name__)

DEFAULT_DIGEST_DAYS = 2


def recent_nodes(
    store: "KnowledgeStore", namespace: str, days: int, now: Optional[datetime] = None
) -> List[Node]:
    """Active nodes in scope created or updated within ``days``."""
    cutoff = days_ago(days, now)
    return [
        n
        for n in store.nodes.list(namespace=namespace, status=NodeStatus.ACTIVE.value)
        if (n.created_at or "") >= cutoff or (n.updated_at or "") >= cutoff
    ]


def links_between(store: "KnowledgeStore", nodes: List[Node]) -> List[Link]:
    return store.links.among(n.id for n in nodes)


def read_context_file(path: Optional[Union[str, Path]]) -> Optional[str]:
    """Contents of an optional project context file; None when absent or unreadable."""
    if not path:
        return None
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Skipping context file {path}: {e}")
        return None


def generate_digest(
    store: "KnowledgeStore",
    summarizer: Summarizer,
    namespace: str,
    *,
    days: int = DEFAULT_DIGEST_DAYS,
    fresh: bool = False,
    context_file: Optional[Union[str, Path]] = None,
    now: Optional[datetime] = None,
) -> DigestResult:
    """Digest for a namespace.

    A cached digest is reused while the recent node set (ids and
    updated_at) is unchanged, unless ``fresh`` is set.
    """
    nodes = recent_nodes(store, namespace, days, now)
    if not nodes:
        log_digest(namespace, "empty", 0)
        return DigestResult(namespace=namespace, status="empty")

    node_hash = compute_node_hash(nodes)
    if not fresh:
        cached = store.digests.get(namespace, node_hash, days)
        if cached is not None:
            logger.debug(f"Digest cache hit for {namespace} ({node_hash})")
            return DigestResult(
                namespace=namespace,
                status="cached",
                content=cached,
                node_count=len(nodes),
                node_hash=node_hash,
            )

    prompt = build_digest_prompt(nodes, links_between(store, nodes), read_context_file(context_file))
    synthesized = summarizer.synthesize(prompt)
    if isinstance(synthesized, Unavailable):
        log_digest(namespace, "unavailable", len(nodes))
        return DigestResult(
            namespace=namespace,
            status="unavailable",
            node_count=len(nodes),
            node_hash=node_hash,
            reason=synthesized.reason,
        )

    content = synthesized.strip()
    store.digests.put(namespace, node_hash, days, content)
    log_digest(namespace, "generated", len(nodes))
    return DigestResult(
        namespace=namespace,
        status="generated",
        content=content,
        node_count=len(nodes),
        node_hash=node_hash,
    )
