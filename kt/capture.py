"""Capturing knowledge and backfilling embeddings."""

import logging
from typing import TYPE_CHECKING, Iterable, List, Optional

from kt.protocols import Embedder, Unavailable
from kt.search import find_similar
from kt.types import CaptureResult, EmbedReport, LinkType, Node

if TYPE_CHECKING:
    from kt.storage import KnowledgeStore

logger = logging.getLogger(__name__)

AUTO_LINK_LIMIT = 3
KEYWORD_WORDS = 5
DEFAULT_EMBED_BATCH = 50


def embed_node(store: "KnowledgeStore", node: Node, embedder: Optional[Embedder]) -> Optional[List[float]]:
    """Embed a node and store its vector. Returns the vector, or None if unavailable.

    Without a usable index the node stays pending so a later backfill can
    store its vector.
    """
    if embedder is None or not store.index.available:
        return None
    try:
        vector = embedder.embed(node.embedding_text)
    except Exception as e:
        logger.warning(f"Embedder raised for {node.id}, leaving it pending: {e}")
        return None
    if isinstance(vector, Unavailable):
        logger.debug(f"Embedding unavailable for {node.id}: {vector.reason}")
        return None
    store.index.upsert(node.id, vector)
    store.nodes.mark_embedding_done(node.id)
    node.embedding_pending = False
    return vector


def capture(
    store: "KnowledgeStore",
    namespace: str,
    content: str,
    *,
    title: Optional[str] = None,
    tags: Optional[Iterable[str]] = None,
    embedder: Optional[Embedder] = None,
    auto_link: bool = False,
    session_id: Optional[str] = None,
) -> CaptureResult:
    """Create a node, embed it when possible, and find (optionally link) similar nodes.

    Similar nodes come from the vector index first; without a vector, the
    first few words of the content are used as a keyword query.
    """
    node = store.nodes.create(namespace, content, title=title, tags=tags, session_id=session_id)
    vector = embed_node(store, node, embedder)

    keyword = " ".join(content.split()[:KEYWORD_WORDS])
    similar = find_similar(
        store, vector, keyword=keyword, namespace=namespace, exclude_ids=[node.id]
    )

    linked: List[str] = []
    if auto_link:
        for other in similar[:AUTO_LINK_LIMIT]:
            if store.links.create(node.id, other.id, LinkType.RELATED.value):
                linked.append(other.id)

    logger.info(
        f"Captured {node.id} in {namespace}: {len(similar)} similar, {len(linked)} auto-linked"
    )
    return CaptureResult(node=node, similar=similar, auto_linked=linked)


def embed_pending(
    store: "KnowledgeStore", embedder: Embedder, limit: int = DEFAULT_EMBED_BATCH
) -> EmbedReport:
    """Embed pending nodes, oldest first. Stops at the first unavailable result."""
    pending = store.nodes.pending_embeddings(limit)
    report = EmbedReport()
    if not store.index.available:
        logger.warning("Vector index unavailable; nothing embedded")
        report.skipped = len(pending)
        return report
    for node in pending:
        if embed_node(store, node, embedder) is None:
            report.failed += 1
            logger.warning(f"Embedder unavailable at {node.id}; stopping backfill")
            break
        report.embedded += 1
    report.skipped = len(pending) - report.embedded - report.failed
    return report
