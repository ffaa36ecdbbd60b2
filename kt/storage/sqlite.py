"""SQLite storage backend for kt.

Local-first storage with:
- SQLite for nodes, links, namespaces, mappings and the digest cache
- sqlite-vec for the nearest-neighbour index (when the extension loads)

One ``KnowledgeStore`` owns one connection for its whole lifetime. It is
constructed explicitly and threaded through the engine; there is no
process-wide handle.
"""

import contextlib
import logging
import sqlite3
from pathlib import Path
from typing import Iterator, Optional, Union

from kt.protocols import StorageError, VectorIndex
from kt.utils import DEFAULT_EMBED_DIMENSION, default_db_path

from .digests_crud import DigestCache
from .links_crud import LinkRepository
from .mappings_crud import MappingRepository
from .namespaces_crud import NamespaceRepository
from .nodes_crud import NodeRepository
from .schema import init_db
from .vec import SqliteVecIndex

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


class KnowledgeStore:
    """SQLite-backed store for the knowledge graph.

    Usage::

        with KnowledgeStore(path) as store:
            node = store.nodes.create("clients.acme", "Pricing is two-tier")

    Repositories (``nodes``, ``links``, ``namespaces``, ``mappings``,
    ``digests``) and the vector ``index`` all share this store's
    connection and its transaction scope. Pass ``index`` to replace the
    sqlite-vec index with another VectorIndex.
    """

    def __init__(
        self,
        db_path: Optional[Union[Path, str]] = None,
        *,
        embedding_dimension: int = DEFAULT_EMBED_DIMENSION,
        use_vec: bool = True,
        index: Optional[VectorIndex] = None,
    ):
        self.db_path = db_path if db_path == MEMORY_DB else Path(db_path or default_db_path())
        self.embedding_dimension = embedding_dimension
        self._use_vec = use_vec
        self._conn: Optional[sqlite3.Connection] = None
        self._has_vec = False
        self._depth = 0

        self.nodes = NodeRepository(self)
        self.links = LinkRepository(self)
        self.namespaces = NamespaceRepository(self)
        self.mappings = MappingRepository(self)
        self.digests = DigestCache(self)
        self.index: VectorIndex = index if index is not None else SqliteVecIndex(self)

    # === Lifecycle ===

    def open(self) -> "KnowledgeStore":
        """Open the connection and initialize the schema. Idempotent."""
        if self._conn is not None:
            return self

        if self.db_path != MEMORY_DB:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(str(self.db_path), isolation_level=None)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            conn.execute("PRAGMA busy_timeout=5000")
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database at {self.db_path}: {e}") from e

        self._has_vec = self._use_vec and self._load_vec(conn)
        self._conn = conn

        try:
            init_db(conn, has_vec=self._has_vec, embedder_dimension=self.embedding_dimension)
        except sqlite3.Error as e:
            self.close()
            raise StorageError(f"Cannot initialize schema: {e}") from e

        if not self._has_vec:
            logger.info("sqlite-vec not available, semantic search will use text matching")
        return self

    def close(self) -> None:
        """Close the connection. Safe to call twice."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            self._depth = 0

    def __enter__(self) -> "KnowledgeStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("Store is not open. Call open() first.")
        return self._conn

    @property
    def has_vec(self) -> bool:
        return self._has_vec

    def _load_vec(self, conn: sqlite3.Connection) -> bool:
        """Load sqlite-vec extension into connection."""
        try:
            import sqlite_vec
        except ImportError:
            logger.debug("sqlite-vec package not installed")
            return False

        try:
            conn.enable_load_extension(True)
            sqlite_vec.load(conn)
            conn.enable_load_extension(False)
            return True
        except (AttributeError, sqlite3.Error) as e:
            logger.warning(f"Could not load sqlite-vec: {e}")
            return False

    # === Transactions ===

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Re-entrant transaction scope.

        The outermost scope issues BEGIN/COMMIT/ROLLBACK; nested scopes use
        savepoints, so repository calls made inside a larger unit (e.g. one
        cluster's compaction) commit or roll back together with it.
        sqlite3 errors surface as StorageError.
        """
        conn = self.conn
        depth = self._depth
        savepoint = f"kt_sp_{depth}"

        try:
            conn.execute("BEGIN" if depth == 0 else f"SAVEPOINT {savepoint}")
        except sqlite3.Error as e:
            raise StorageError(f"Cannot begin transaction: {e}") from e

        self._depth += 1
        try:
            yield conn
        except BaseException as e:
            self._depth = depth
            logger.debug(f"Transaction failed, rolling back: {e}")
            try:
                if depth == 0:
                    conn.execute("ROLLBACK")
                else:
                    conn.execute(f"ROLLBACK TO {savepoint}")
                    conn.execute(f"RELEASE {savepoint}")
            except sqlite3.Error as rollback_error:
                logger.error(f"Rollback failed: {rollback_error}")
            if isinstance(e, sqlite3.Error):
                raise StorageError(str(e)) from e
            raise
        else:
            self._depth = depth
            try:
                conn.execute("COMMIT" if depth == 0 else f"RELEASE {savepoint}")
            except sqlite3.Error as e:
                if depth == 0:
                    conn.execute("ROLLBACK")
                raise StorageError(f"Commit failed: {e}") from e

    # === Maintenance ===

    def stats(self, namespace: Optional[str] = None) -> dict:
        """Counts by status, per namespace, and embedding coverage."""
        from .namespaces_crud import namespace_filter

        ns = namespace_filter(namespace)
        where = f"WHERE {ns[0]}" if ns else ""
        params = ns[1] if ns else []
        and_ns = f" AND {ns[0]}" if ns else ""

        with self.transaction() as conn:
            row = conn.execute(
                f"""SELECT
                       COUNT(*) AS total,
                       COALESCE(SUM(status = 'active'), 0) AS active,
                       COALESCE(SUM(status = 'stale'), 0) AS stale,
                       COALESCE(SUM(status = 'compacted'), 0) AS compacted,
                       COALESCE(SUM(embedding_pending = 1), 0) AS pending,
                       COALESCE(SUM(source_type = 'compaction'), 0) AS summaries
                   FROM nodes {where}""",
                params,
            ).fetchone()
            oldest = conn.execute(
                f"""SELECT updated_at FROM nodes WHERE status = 'active'{and_ns}
                    ORDER BY updated_at ASC LIMIT 1""",
                params,
            ).fetchone()
            by_namespace = conn.execute(
                f"""SELECT namespace, COUNT(*) AS count FROM nodes
                    WHERE status != 'compacted'{and_ns}
                    GROUP BY namespace ORDER BY count DESC, namespace""",
                params,
            ).fetchall()

        total = row["total"]
        embedded = total - row["pending"]
        coverage = round(embedded / total * 100) if total else 100
        return {
            "total": total,
            "active": row["active"],
            "stale": row["stale"],
            "compacted": row["compacted"],
            "by_namespace": [{"namespace": r["namespace"], "count": r["count"]} for r in by_namespace],
            "embedded": embedded,
            "pending_embeddings": row["pending"],
            "embedding_coverage": f"{embedded}/{total} ({coverage}%)",
            "compaction_summaries": row["summaries"],
            "oldest_active": oldest["updated_at"] if oldest else None,
        }
