"""
Shared record types for kt.

All graph dataclasses live here: nodes, links, namespaces, and the
ephemeral results produced by the lifecycle engine (staleness sweeps,
clusters, compaction outcomes, digests). They are the vocabulary shared
between the storage repositories, the lifecycle modules and the CLI.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, List, Optional

# === Shared Utility Functions ===


def to_iso(dt: datetime) -> str:
    """Format a datetime as a fixed-width ISO string in UTC.

    Fixed width (always microseconds, always +00:00) keeps lexicographic
    comparison in SQL equivalent to chronological comparison.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def utc_now() -> str:
    """Get current timestamp as ISO string in UTC."""
    return to_iso(datetime.now(timezone.utc))


def days_ago(days: float, now: Optional[datetime] = None) -> str:
    """ISO timestamp for ``days`` before ``now`` (default: current time)."""
    base = now or datetime.now(timezone.utc)
    return to_iso(base - timedelta(days=days))


def parse_datetime(s: Optional[str]) -> Optional[datetime]:
    """Parse ISO datetime string."""
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None


def generate_id() -> str:
    """Opaque, globally unique node/link id."""
    return f"kt-{uuid.uuid4().hex[:12]}"


# === Enums ===


class NodeStatus(str, Enum):
    """Lifecycle status of a node."""

    ACTIVE = "active"
    STALE = "stale"
    COMPACTED = "compacted"


class SourceType(str, Enum):
    """How a node came to exist."""

    CAPTURE = "capture"  # Captured directly by a user or agent
    COMPACTION = "compaction"  # Summary produced by the compaction engine


class LinkType(str, Enum):
    """Typed relationship between two nodes."""

    SUPERSEDES = "supersedes"  # Source replaces target; target goes stale
    CONTRADICTS = "contradicts"
    RELATED = "related"


VALID_STATUS_VALUES = frozenset(s.value for s in NodeStatus)
VALID_SOURCE_TYPE_VALUES = frozenset(s.value for s in SourceType)
VALID_LINK_TYPE_VALUES = frozenset(t.value for t in LinkType)

# from-status -> statuses it may move to. Compacted is terminal.
ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    NodeStatus.ACTIVE.value: frozenset({NodeStatus.STALE.value}),
    NodeStatus.STALE.value: frozenset({NodeStatus.ACTIVE.value, NodeStatus.COMPACTED.value}),
    NodeStatus.COMPACTED.value: frozenset(),
}


# === Graph Records ===


@dataclass
class Node:
    """A captured unit of knowledge."""

    id: str
    namespace: str
    content: str
    title: Optional[str] = None
    status: str = NodeStatus.ACTIVE.value
    source_type: str = SourceType.CAPTURE.value
    tags: Optional[List[str]] = None
    embedding_pending: bool = True
    compacted_into: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    stale_at: Optional[str] = None
    session_id: Optional[str] = None

    @property
    def embedding_text(self) -> str:
        """Text handed to the embedder: title and content when titled."""
        return f"{self.title}\n{self.content}" if self.title else self.content


@dataclass
class Link:
    """A directed, typed edge between two nodes."""

    id: str
    source_id: str
    target_id: str
    link_type: str
    context: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class Namespace:
    """A dotted hierarchical grouping label."""

    slug: str
    name: str
    description: Optional[str] = None


@dataclass
class ProjectMapping:
    """Maps a directory pattern to a namespace."""

    directory_pattern: str
    namespace: str


@dataclass
class Conflict:
    """A contradicts link between two active nodes."""

    node_a: str
    node_b: str
    context: Optional[str] = None


# === Lifecycle Results ===


@dataclass
class StaleResult:
    """Outcome of a staleness sweep."""

    staled: List[str] = field(default_factory=list)
    skipped: int = 0


@dataclass
class Cluster:
    """A connected component of stale nodes. Never persisted."""

    node_ids: List[str]
    namespace: str


@dataclass
class CompactionPlan:
    """Clusters that a compaction run would process."""

    clusters: List[Cluster] = field(default_factory=list)
    total_nodes: int = 0


@dataclass
class CompactionResult:
    """A cluster successfully folded into one summary node."""

    summary_node: Node
    compacted_ids: List[str]


@dataclass
class CompactionFailure:
    """A cluster that could not be compacted; it stays stale for retry."""

    node_ids: List[str]
    reason: str


@dataclass
class ClusterOutcome:
    """Per-cluster entry of a compaction run.

    Exactly one of ``result``/``failure`` is set, or neither when the
    cluster had no loadable nodes left.
    """

    cluster: Cluster
    result: Optional[CompactionResult] = None
    failure: Optional[CompactionFailure] = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None


@dataclass
class CompactionRun:
    """Everything a single ``compact`` invocation did."""

    staleness: Optional[StaleResult] = None
    outcomes: List[ClusterOutcome] = field(default_factory=list)

    @property
    def compacted(self) -> List[CompactionResult]:
        return [o.result for o in self.outcomes if o.result is not None]

    @property
    def failed(self) -> List[CompactionFailure]:
        return [o.failure for o in self.outcomes if o.failure is not None]

    @property
    def skipped(self) -> List[Cluster]:
        """Clusters with nothing left to compact by the time they were reached."""
        return [o.cluster for o in self.outcomes if o.result is None and o.failure is None]


@dataclass
class DigestResult:
    """Outcome of a digest request.

    status is one of "empty", "cached", "generated", "unavailable".
    """

    namespace: str
    status: str
    content: Optional[str] = None
    node_count: int = 0
    node_hash: str = ""
    reason: Optional[str] = None


@dataclass
class CaptureResult:
    """A captured node plus what the capture found around it."""

    node: Node
    similar: List[Node] = field(default_factory=list)
    auto_linked: List[str] = field(default_factory=list)


@dataclass
class EmbedReport:
    """Outcome of an embedding backfill pass."""

    embedded: int = 0
    failed: int = 0
    skipped: int = 0
