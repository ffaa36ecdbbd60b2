"""Staleness detection.

Marks active nodes stale when they have not been updated for
``max_age_days``. Optionally protects nodes that were linked to recently,
and optionally stales unreferenced ("orphan") nodes on a shorter clock.
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from kt.logging_config import log_stale
from kt.protocols import ValidationError
from kt.types import NodeStatus, StaleResult, days_ago

if TYPE_CHECKING:
    from kt.storage import KnowledgeStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_DAYS = 60


def detect_stale(
    store: "KnowledgeStore",
    *,
    max_age_days: float = DEFAULT_MAX_AGE_DAYS,
    orphan_age_days: Optional[float] = None,
    namespace: Optional[str] = None,
    protect_referenced: bool = False,
    now: Optional[datetime] = None,
) -> StaleResult:
    """Run one staleness sweep in a single transaction.

    Args:
        store: Open knowledge store.
        max_age_days: Active nodes not updated for this long go stale.
        orphan_age_days: Shorter clock for nodes with no inbound links.
            Defaults to max_age_days (orphan pass disabled).
        namespace: Limit the sweep to this namespace and its descendants.
        protect_referenced: Skip candidates linked to within max_age_days.
        now: Reference time (defaults to the current time).

    Returns:
        StaleResult with the ids staled, in order, and the number skipped.
    """
    if orphan_age_days is None:
        orphan_age_days = max_age_days
    if max_age_days < 0 or orphan_age_days < 0:
        raise ValidationError("Age thresholds must be non-negative")
    if orphan_age_days > max_age_days:
        raise ValidationError(
            f"orphan_age_days ({orphan_age_days}) cannot exceed max_age_days ({max_age_days})"
        )

    max_cutoff = days_ago(max_age_days, now)
    result = StaleResult()

    with store.transaction():
        for node_id in store.nodes.active_older_than(max_cutoff, namespace):
            if protect_referenced and store.links.has_inbound_since(node_id, max_cutoff):
                result.skipped += 1
                continue
            store.nodes.update_status(node_id, NodeStatus.STALE.value)
            result.staled.append(node_id)

        if orphan_age_days < max_age_days:
            orphan_cutoff = days_ago(orphan_age_days, now)
            already = set(result.staled)
            for node_id in store.nodes.unreferenced_active_between(
                max_cutoff, orphan_cutoff, namespace
            ):
                if node_id in already:
                    continue
                store.nodes.update_status(node_id, NodeStatus.STALE.value)
                result.staled.append(node_id)

    if result.staled or result.skipped:
        logger.info(
            f"Staleness sweep ({namespace or 'all namespaces'}): "
            f"{len(result.staled)} staled, {result.skipped} protected"
        )
        log_stale(len(result.staled), result.skipped, namespace)
    return result
