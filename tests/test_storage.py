"""Tests for KnowledgeStore: lifecycle, transactions, schema, stats and sqlite-vec."""

import sqlite3

import pytest

from kt.protocols import StorageError, ValidationError
from kt.storage import MEMORY_DB, KnowledgeStore, pack_embedding, unpack_embedding
from kt.storage.schema import SCHEMA_VERSION, validate_table_name


class TestStoreLifecycle:
    def test_context_manager_opens_and_closes(self, tmp_path):
        with KnowledgeStore(tmp_path / "sub" / "kt.db", use_vec=False) as store:
            store.nodes.create("personal", "Note")
        assert (tmp_path / "sub" / "kt.db").exists()
        with pytest.raises(StorageError, match="not open"):
            store.conn

    def test_data_persists_across_opens(self, tmp_path):
        path = tmp_path / "kt.db"
        with KnowledgeStore(path, use_vec=False) as store:
            node = store.nodes.create("personal", "Persisted")
        with KnowledgeStore(path, use_vec=False) as store:
            assert store.nodes.get(node.id).content == "Persisted"

    def test_memory_db(self):
        with KnowledgeStore(MEMORY_DB, use_vec=False) as store:
            store.nodes.create("personal", "Ephemeral")
            assert len(store.nodes.list()) == 1

    def test_open_is_idempotent_and_close_twice_is_safe(self, tmp_path):
        store = KnowledgeStore(tmp_path / "kt.db", use_vec=False)
        assert store.open() is store.open()
        store.close()
        store.close()

    def test_default_path_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("KT_DB_PATH", str(tmp_path / "env.db"))
        assert KnowledgeStore(use_vec=False).db_path == tmp_path / "env.db"

    def test_use_vec_false_has_no_vec(self, store):
        assert store.has_vec is False


class TestTransactions:
    def test_commit(self, store):
        with store.transaction() as conn:
            conn.execute("INSERT INTO namespaces (slug, name) VALUES ('a', 'a')")
        assert store.namespaces.get("a") is not None

    def test_rollback_on_error(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction() as conn:
                conn.execute("INSERT INTO namespaces (slug, name) VALUES ('a', 'a')")
                raise RuntimeError("boom")
        assert store.namespaces.get("a") is None

    def test_nested_failure_rolls_back_to_savepoint(self, store):
        with store.transaction() as conn:
            conn.execute("INSERT INTO namespaces (slug, name) VALUES ('outer', 'outer')")
            with pytest.raises(ValidationError):
                with store.transaction() as inner:
                    inner.execute("INSERT INTO namespaces (slug, name) VALUES ('inner', 'inner')")
                    raise ValidationError("inner failed")
        assert store.namespaces.get("outer") is not None
        assert store.namespaces.get("inner") is None

    def test_outer_failure_undoes_committed_inner(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.nodes.create("personal", "Inner write")
                raise RuntimeError("outer failed")
        assert store.nodes.list() == []
        assert store.namespaces.list() == []

    def test_sqlite_errors_become_storage_errors(self, store):
        with pytest.raises(StorageError):
            with store.transaction() as conn:
                conn.execute("INSERT INTO no_such_table VALUES (1)")

    def test_store_usable_after_failure(self, store):
        with pytest.raises(StorageError):
            with store.transaction() as conn:
                conn.execute("SELECT * FROM no_such_table")
        store.nodes.create("personal", "Still works")
        assert len(store.nodes.list()) == 1


class TestSchema:
    def test_schema_version_recorded(self, store):
        row = store.conn.execute("SELECT version FROM schema_version").fetchone()
        assert row["version"] == SCHEMA_VERSION

    def test_validate_table_name(self):
        assert validate_table_name("nodes") == "nodes"
        with pytest.raises(ValueError):
            validate_table_name("nodes; DROP TABLE nodes")

    def test_link_check_rejects_self_links_at_db_level(self, store):
        node = store.nodes.create("personal", "Note")
        with pytest.raises(StorageError):
            with store.transaction() as conn:
                conn.execute(
                    """INSERT INTO links (id, source_id, target_id, link_type, created_at)
                       VALUES ('l1', ?, ?, 'related', 'now')""",
                    (node.id, node.id),
                )

    def test_migrates_old_database(self, tmp_path):
        path = tmp_path / "old.db"
        conn = sqlite3.connect(str(path))
        conn.executescript(
            """
            CREATE TABLE nodes (
                id TEXT PRIMARY KEY, namespace TEXT NOT NULL, title TEXT,
                content TEXT NOT NULL, status TEXT NOT NULL DEFAULT 'active',
                tags TEXT, created_at TEXT NOT NULL, updated_at TEXT NOT NULL
            );
            CREATE TABLE links (
                id TEXT PRIMARY KEY, source_id TEXT NOT NULL, target_id TEXT NOT NULL,
                link_type TEXT NOT NULL, created_at TEXT NOT NULL
            );
            INSERT INTO nodes (id, namespace, content, created_at, updated_at)
            VALUES ('kt-old', 'personal', 'From before', '2024-01-01', '2024-01-01');
            """
        )
        conn.commit()
        conn.close()

        with KnowledgeStore(path, use_vec=False) as store:
            node = store.nodes.get("kt-old")
            assert node.source_type == "capture"
            assert node.embedding_pending is True
            assert node.stale_at is None
            node_columns = {r[1] for r in store.conn.execute("PRAGMA table_info(nodes)")}
            assert {
                "source_type", "embedding_pending", "compacted_into", "stale_at", "session_id"
            } <= node_columns
            columns = {r[1] for r in store.conn.execute("PRAGMA table_info(links)")}
            assert "context" in columns

    def test_migrates_old_digest_cache(self, tmp_path):
        path = tmp_path / "old.db"
        conn = sqlite3.connect(str(path))
        conn.executescript(
            """
            CREATE TABLE nodes (
                id TEXT PRIMARY KEY, namespace TEXT NOT NULL, title TEXT,
                content TEXT NOT NULL, status TEXT NOT NULL DEFAULT 'active',
                tags TEXT, created_at TEXT NOT NULL, updated_at TEXT NOT NULL
            );
            CREATE TABLE digests (
                namespace TEXT PRIMARY KEY, content TEXT NOT NULL, generated_at TEXT NOT NULL
            );
            INSERT INTO digests (namespace, content, generated_at)
            VALUES ('personal', 'Old digest', '2024-01-01');
            """
        )
        conn.commit()
        conn.close()

        with KnowledgeStore(path, use_vec=False) as store:
            columns = {r[1] for r in store.conn.execute("PRAGMA table_info(digests)")}
            assert {"node_hash", "days"} <= columns
            old = store.conn.execute("SELECT node_hash, days FROM digests").fetchone()
            assert (old["node_hash"], old["days"]) == ("", 2)

            store.digests.put("personal", "abc123", 2, "Fresh digest")
            assert store.digests.get("personal", "abc123", 2) == "Fresh digest"

        with KnowledgeStore(path, use_vec=False) as store:
            assert store.digests.get("personal", "abc123", 2) == "Fresh digest"


class TestStats:
    def test_counts(self, store, make_stale):
        a = store.nodes.create("clients.acme", "A")
        b = store.nodes.create("clients.acme", "B")
        store.nodes.create("personal", "C")
        summary = store.nodes.create("clients.acme", "S", source_type="compaction")
        make_stale(a.id, b.id)
        store.nodes.update_status(b.id, "compacted", compacted_into=summary.id)
        store.nodes.mark_embedding_done(summary.id)

        stats = store.stats()

        assert stats["total"] == 4
        assert stats["active"] == 2
        assert stats["stale"] == 1
        assert stats["compacted"] == 1
        assert stats["compaction_summaries"] == 1
        assert stats["embedded"] == 1
        assert stats["pending_embeddings"] == 3
        assert stats["embedding_coverage"] == "1/4 (25%)"
        assert stats["by_namespace"] == [
            {"namespace": "clients.acme", "count": 2},
            {"namespace": "personal", "count": 1},
        ]
        assert stats["oldest_active"] is not None

    def test_scoped(self, store):
        store.nodes.create("clients.acme", "A")
        store.nodes.create("personal", "B")
        stats = store.stats("clients")
        assert stats["total"] == 1
        assert [r["namespace"] for r in stats["by_namespace"]] == ["clients.acme"]

    def test_empty(self, store):
        stats = store.stats()
        assert stats["total"] == 0
        assert stats["embedding_coverage"] == "0/0 (100%)"
        assert stats["oldest_active"] is None


class TestVectorEncoding:
    def test_pack_unpack(self):
        blob = pack_embedding([1.0, -2.5, 0.0])
        assert len(blob) == 12
        assert unpack_embedding(blob) == [1.0, -2.5, 0.0]


class TestSqliteVecIndex:
    def test_upsert_get_query_delete(self, vec_store):
        index = vec_store.index
        assert index.available is True
        index.upsert("kt-a", [1.0, 0.0, 0.0, 0.0])
        index.upsert("kt-b", [0.0, 3.0, 0.0, 0.0])

        assert index.get("kt-a") == [1.0, 0.0, 0.0, 0.0]
        hits = index.query([1.0, 0.1, 0.0, 0.0], k=2)
        assert [h.node_id for h in hits] == ["kt-a", "kt-b"]
        assert hits[0].distance < hits[1].distance

        index.delete("kt-a")
        assert index.get("kt-a") is None

    def test_upsert_replaces(self, vec_store):
        vec_store.index.upsert("kt-a", [1.0, 0.0, 0.0, 0.0])
        vec_store.index.upsert("kt-a", [0.0, 1.0, 0.0, 0.0])
        assert vec_store.index.get("kt-a") == [0.0, 1.0, 0.0, 0.0]

    def test_dimension_checked(self, vec_store):
        with pytest.raises(ValidationError):
            vec_store.index.upsert("kt-a", [1.0, 0.0])

    def test_inert_without_extension(self, tmp_path):
        with KnowledgeStore(tmp_path / "plain.db", use_vec=False) as store:
            store.index.upsert("kt-a", [1.0, 0.0])
            assert store.index.available is False
            assert store.index.get("kt-a") is None
            assert store.index.query([1.0, 0.0], k=3) == []

    def test_node_delete_removes_vector(self, vec_store):
        node = vec_store.nodes.create("personal", "Note")
        vec_store.index.upsert(node.id, [1.0, 0.0, 0.0, 0.0])
        vec_store.nodes.delete(node.id)
        assert vec_store.index.get(node.id) is None
