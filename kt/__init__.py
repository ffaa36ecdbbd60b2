"""
kt - a knowledge graph with a lifecycle.

Capture knowledge into namespaced nodes, link it, and let stale knowledge
be clustered and compacted into summaries.
"""

from importlib.metadata import PackageNotFoundError, version

from .graph import KnowledgeGraph
from .storage import KnowledgeStore

try:
    __version__ = version("kt-graph")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = ["KnowledgeGraph", "KnowledgeStore"]
