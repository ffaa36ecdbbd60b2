"""Database schema and migration logic for kt SQLite storage.

Contains:
- Schema DDL constants (SCHEMA, VECTOR_SCHEMA)
- Schema version tracking (SCHEMA_VERSION)
- Table allowlist (ALLOWED_TABLES, validate_table_name)
- Database initialization (init_db)
- Additive column migrations (migrate_schema)
"""

import logging
import sqlite3

logger = logging.getLogger(__name__)

# Schema version for migrations
SCHEMA_VERSION = 3  # v3: digests keyed by (namespace, node_hash, days)

# Allowed table names for SQL queries (security: prevents SQL injection via table names)
ALLOWED_TABLES = frozenset(
    {
        "schema_version",
        "nodes",
        "links",
        "namespaces",
        "project_mappings",
        "digests",
        "node_embeddings",
    }
)


def validate_table_name(table: str) -> str:
    """Validate table name against allowlist to prevent SQL injection.

    Raises:
        ValueError: If table name is not in allowlist
    """
    if table not in ALLOWED_TABLES:
        raise ValueError(f"Invalid table name: {table}")
    return table


SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- Namespaces (dotted hierarchy; ancestors created on demand)
CREATE TABLE IF NOT EXISTS namespaces (
    slug TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT
);

-- Nodes (captured knowledge and compaction summaries)
CREATE TABLE IF NOT EXISTS nodes (
    id TEXT PRIMARY KEY,
    namespace TEXT NOT NULL,
    title TEXT,
    content TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active'
        CHECK (status IN ('active', 'stale', 'compacted')),
    source_type TEXT NOT NULL DEFAULT 'capture'
        CHECK (source_type IN ('capture', 'compaction')),
    tags TEXT,
    embedding_pending INTEGER NOT NULL DEFAULT 1,
    compacted_into TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    stale_at TEXT,
    session_id TEXT
);
CREATE INDEX IF NOT EXISTS idx_nodes_namespace ON nodes(namespace);
CREATE INDEX IF NOT EXISTS idx_nodes_status ON nodes(status);
CREATE INDEX IF NOT EXISTS idx_nodes_updated ON nodes(updated_at);
CREATE INDEX IF NOT EXISTS idx_nodes_pending ON nodes(embedding_pending);

-- Links (directed, typed edges)
CREATE TABLE IF NOT EXISTS links (
    id TEXT PRIMARY KEY,
    source_id TEXT NOT NULL REFERENCES nodes(id),
    target_id TEXT NOT NULL REFERENCES nodes(id),
    link_type TEXT NOT NULL
        CHECK (link_type IN ('supersedes', 'contradicts', 'related')),
    context TEXT,
    created_at TEXT NOT NULL,
    CHECK (source_id != target_id)
);
CREATE INDEX IF NOT EXISTS idx_links_source ON links(source_id);
CREATE INDEX IF NOT EXISTS idx_links_target ON links(target_id);

-- Directory -> namespace mappings
CREATE TABLE IF NOT EXISTS project_mappings (
    directory_pattern TEXT PRIMARY KEY,
    namespace TEXT NOT NULL
);

-- Digest cache
CREATE TABLE IF NOT EXISTS digests (
    namespace TEXT NOT NULL,
    node_hash TEXT NOT NULL,
    days INTEGER NOT NULL,
    content TEXT NOT NULL,
    generated_at TEXT NOT NULL,
    PRIMARY KEY (namespace, node_hash, days)
);
"""

# Virtual table for vector search (created when sqlite-vec is available)
VECTOR_SCHEMA = """
-- Vector table using sqlite-vec
-- dimension should match embedding provider
CREATE VIRTUAL TABLE IF NOT EXISTS node_embeddings USING vec0(
    node_id TEXT PRIMARY KEY,
    embedding FLOAT[{dim}]
);
"""


def init_db(
    conn: sqlite3.Connection,
    has_vec: bool,
    embedder_dimension: int,
) -> None:
    """Initialize the database schema.

    Args:
        conn: Database connection (sqlite-vec already loaded when has_vec).
        has_vec: Whether sqlite-vec is available.
        embedder_dimension: Dimension for vector embeddings.
    """
    # First, run migrations if needed (before executing full schema)
    migrate_schema(conn)

    # Now execute full schema (CREATE TABLE IF NOT EXISTS is safe)
    conn.executescript(SCHEMA)

    row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
    if row is None:
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
    else:
        conn.execute("UPDATE schema_version SET version = ?", (SCHEMA_VERSION,))

    if has_vec:
        try:
            conn.executescript(VECTOR_SCHEMA.format(dim=int(embedder_dimension)))
        except sqlite3.OperationalError as e:
            if "already exists" not in str(e):
                logger.warning(f"Could not create vector table: {e}")


def migrate_schema(conn: sqlite3.Connection) -> None:
    """Run additive migrations for existing databases.

    Only ever adds columns; never drops or rewrites data.
    """
    tables = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    table_names = {t[0] for t in tables}

    if "nodes" not in table_names:
        # Fresh database, no migration needed
        return

    def get_columns(table: str) -> set:
        validate_table_name(table)
        cols = conn.execute(f"PRAGMA table_info({table})").fetchall()
        return {c[1] for c in cols}

    migrations = []

    node_cols = get_columns("nodes")
    if "source_type" not in node_cols:
        migrations.append("ALTER TABLE nodes ADD COLUMN source_type TEXT DEFAULT 'capture'")
    if "embedding_pending" not in node_cols:
        migrations.append("ALTER TABLE nodes ADD COLUMN embedding_pending INTEGER DEFAULT 1")
    if "compacted_into" not in node_cols:
        migrations.append("ALTER TABLE nodes ADD COLUMN compacted_into TEXT")
    if "stale_at" not in node_cols:
        migrations.append("ALTER TABLE nodes ADD COLUMN stale_at TEXT")
    if "session_id" not in node_cols:
        migrations.append("ALTER TABLE nodes ADD COLUMN session_id TEXT")

    if "links" in table_names and "context" not in get_columns("links"):
        migrations.append("ALTER TABLE links ADD COLUMN context TEXT")

    if "digests" in table_names:
        digest_cols = get_columns("digests")
        if "node_hash" not in digest_cols:
            migrations.append("ALTER TABLE digests ADD COLUMN node_hash TEXT DEFAULT ''")
        if "days" not in digest_cols:
            migrations.append("ALTER TABLE digests ADD COLUMN days INTEGER DEFAULT 2")

    for migration in migrations:
        try:
            conn.execute(migration)
            logger.info(f"Migration: {migration}")
        except sqlite3.OperationalError as e:
            if "duplicate column" not in str(e).lower():
                logger.warning(f"Migration failed: {migration}: {e}")
