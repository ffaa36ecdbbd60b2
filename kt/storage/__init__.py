"""kt storage.

Local-first storage using SQLite, with sqlite-vec for the vector index.
"""

from .digests_crud import DigestCache, compute_node_hash
from .links_crud import LinkRepository
from .mappings_crud import MappingRepository, namespace_from_vault
from .namespaces_crud import (
    NamespaceRepository,
    ancestors,
    escape_like_pattern,
    in_scope,
    namespace_filter,
    validate_slug,
)
from .nodes_crud import NodeRepository
from .sqlite import MEMORY_DB, KnowledgeStore
from .vec import SqliteVecIndex, pack_embedding, unpack_embedding

__all__ = [
    "KnowledgeStore",
    "MEMORY_DB",
    # Repositories
    "NodeRepository",
    "LinkRepository",
    "NamespaceRepository",
    "MappingRepository",
    "DigestCache",
    "SqliteVecIndex",
    # Helpers
    "ancestors",
    "compute_node_hash",
    "escape_like_pattern",
    "in_scope",
    "namespace_filter",
    "namespace_from_vault",
    "pack_embedding",
    "unpack_embedding",
    "validate_slug",
]
