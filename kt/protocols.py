"""
kt Protocol Definitions
=======================

Interface contracts between the lifecycle engine and its external
collaborators.

Collaborators and their roles:
- Embedder:     text -> fixed-length vector. Optional; may be down.
- VectorIndex:  nearest-neighbour lookup over stored node vectors.
- Summarizer:   prompt -> synthesized text. Optional; may lack credentials.
- Model:        the language model a Summarizer routes to.

Error handling philosophy:
- Invalid arguments raise ValidationError (or a subclass) before any write
- Storage failures raise StorageError and are fatal to the operation
- Unreachable embedders/summarizers do NOT raise: they return Unavailable,
  and the engine degrades (skip the embedding, skip the cluster)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol, Union, runtime_checkable

# =============================================================================
# ERRORS
# =============================================================================


class KtError(Exception):
    """Base for all kt errors."""

    pass


class ValidationError(KtError, ValueError):
    """Raised for invalid input. Nothing has been written when this escapes."""

    pass


class UnknownLinkTypeError(ValidationError):
    """Raised when a link type is not supersedes/contradicts/related."""

    def __init__(self, link_type: str) -> None:
        super().__init__(f"Unknown link type: {link_type!r}")
        self.link_type = link_type


class NodeNotFoundError(ValidationError):
    """Raised when an operation names a node id that does not exist."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Node not found: {node_id}")
        self.node_id = node_id


class InvalidTransitionError(ValidationError):
    """Raised when a status change is not in the lifecycle graph."""

    def __init__(self, node_id: str, from_status: str, to_status: str) -> None:
        super().__init__(f"Cannot move {node_id} from {from_status} to {to_status}")
        self.node_id = node_id
        self.from_status = from_status
        self.to_status = to_status


class StorageError(KtError):
    """Raised by the store on I/O failures. Fatal; never retried here."""

    pass


class ModelError(KtError):
    """Raised by model adapters when the provider reports an error.

    error_class is one of: auth, rate_limit, timeout, server, unknown.
    """

    def __init__(self, error_class: str, message: str) -> None:
        super().__init__(message)
        self.error_class = error_class


# =============================================================================
# RESULT VARIANTS
# =============================================================================


@dataclass(frozen=True)
class Unavailable:
    """Soft failure from an optional collaborator.

    Returned (never raised) by embedders and summarizers so callers branch
    on an explicit variant instead of catching exceptions.
    """

    reason: str

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True)
class Neighbor:
    """One nearest-neighbour hit. Smaller distance means more similar."""

    node_id: str
    distance: float


Vector = list[float]
EmbedResult = Union[Vector, Unavailable]
SynthesisResult = Union[str, Unavailable]


# =============================================================================
# COLLABORATOR PROTOCOLS
# =============================================================================


@runtime_checkable
class Embedder(Protocol):
    """Turns text into a fixed-length vector."""

    @property
    def dimension(self) -> int:
        """Length of every vector this embedder produces."""
        ...

    def embed(self, text: str) -> EmbedResult:
        """Embed text, or return Unavailable when the provider is down."""
        ...


@runtime_checkable
class VectorIndex(Protocol):
    """Nearest-neighbour index keyed by node id.

    Units contract: ``query`` returns DISTANCES ascending. An index backed
    by a similarity score must convert before returning.
    """

    @property
    def available(self) -> bool:
        """False when the backing extension could not be loaded."""
        ...

    def upsert(self, node_id: str, vector: Vector) -> None: ...

    def delete(self, node_id: str) -> None: ...

    def get(self, node_id: str) -> Optional[Vector]:
        """Stored vector for a node, or None when it has none."""
        ...

    def query(self, vector: Vector, k: int) -> list[Neighbor]: ...


@runtime_checkable
class Summarizer(Protocol):
    """Synthesizes text from a prompt."""

    def synthesize(self, prompt: str) -> SynthesisResult:
        """Return text, or Unavailable on missing credentials or errors."""
        ...


# =============================================================================
# MODEL PROTOCOL
# =============================================================================


@dataclass
class ModelCapabilities:
    """What a model implementation can do."""

    model_id: str
    provider: str  # "anthropic", "ollama"
    context_window: int
    max_output_tokens: int = 4096


@dataclass
class ModelMessage:
    """A message in a conversation."""

    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class ModelResponse:
    """Complete response from a model."""

    content: str
    usage: dict[str, int] = field(default_factory=dict)
    stop_reason: Optional[str] = None
    model_id: Optional[str] = None


@runtime_checkable
class ModelProtocol(Protocol):
    """Interface for the language model behind a Summarizer."""

    @property
    def model_id(self) -> str: ...

    @property
    def capabilities(self) -> ModelCapabilities: ...

    def generate(
        self,
        messages: list[ModelMessage],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        system: Optional[str] = None,
    ) -> ModelResponse:
        """Generate a complete response. Raises ModelError on failure."""
        ...
