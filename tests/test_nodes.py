"""Tests for the node repository: creation, lifecycle transitions, deletion."""

import pytest

from kt.protocols import InvalidTransitionError, NodeNotFoundError, ValidationError
from kt.types import Node


class TestCreateNode:
    def test_defaults(self, store):
        node = store.nodes.create("clients.acme", "Pricing is two-tier", title="Pricing")
        assert node.id.startswith("kt-")
        assert node.status == "active"
        assert node.source_type == "capture"
        assert node.embedding_pending is True
        assert node.compacted_into is None
        assert node.stale_at is None
        assert node.created_at == node.updated_at

    def test_tags_are_trimmed_and_deduplicated(self, store):
        node = store.nodes.create("personal", "Note", tags=[" a", "b", "a", ""])
        assert node.tags == ["a", "b"]
        assert store.nodes.get(node.id).tags == ["a", "b"]

    def test_empty_tags_stored_as_none(self, store):
        node = store.nodes.create("personal", "Note", tags=[])
        assert node.tags is None

    def test_empty_content_rejected(self, store):
        with pytest.raises(ValidationError):
            store.nodes.create("personal", "   ")
        assert store.nodes.list() == []

    def test_invalid_source_type_rejected(self, store):
        with pytest.raises(ValidationError):
            store.nodes.create("personal", "Note", source_type="import")

    def test_invalid_namespace_writes_nothing(self, store):
        with pytest.raises(ValidationError):
            store.nodes.create("bad namespace", "Note")
        assert store.nodes.list() == []
        assert store.namespaces.list() == []

    def test_session_id_stored(self, store):
        node = store.nodes.create("personal", "Note", session_id="sess-1")
        assert store.nodes.get(node.id).session_id == "sess-1"

    def test_embedding_text(self):
        titled = Node(id="kt-1", namespace="a", content="Body", title="Title")
        untitled = Node(id="kt-2", namespace="a", content="Body")
        assert titled.embedding_text == "Title\nBody"
        assert untitled.embedding_text == "Body"


class TestGetNode:
    def test_get_missing(self, store):
        assert store.nodes.get("kt-missing") is None

    def test_require_missing_raises(self, store):
        with pytest.raises(NodeNotFoundError) as exc_info:
            store.nodes.require("kt-missing")
        assert exc_info.value.node_id == "kt-missing"

    def test_get_many_keeps_order_and_skips_missing(self, store):
        a = store.nodes.create("personal", "A")
        b = store.nodes.create("personal", "B")
        found = store.nodes.get_many([b.id, "kt-missing", a.id, b.id])
        assert [n.id for n in found] == [b.id, a.id]

    def test_get_many_empty(self, store):
        assert store.nodes.get_many([]) == []


class TestListNodes:
    def test_most_recently_updated_first(self, store, backdate):
        old = store.nodes.create("personal", "Old")
        new = store.nodes.create("personal", "New")
        backdate(old.id, 5)
        assert [n.id for n in store.nodes.list()] == [new.id, old.id]

    def test_compacted_hidden_by_default(self, store, make_stale):
        keep = store.nodes.create("personal", "Keep")
        gone = store.nodes.create("personal", "Gone")
        summary = store.nodes.create("personal", "Summary", source_type="compaction")
        make_stale(gone.id)
        store.nodes.update_status(gone.id, "compacted", compacted_into=summary.id)

        default_ids = {n.id for n in store.nodes.list()}
        assert default_ids == {keep.id, summary.id}
        assert gone.id in {n.id for n in store.nodes.list(include_compacted=True)}
        assert [n.id for n in store.nodes.list(status="compacted")] == [gone.id]

    def test_limit(self, store):
        for i in range(4):
            store.nodes.create("personal", f"Note {i}")
        assert len(store.nodes.list(limit=2)) == 2

    def test_invalid_status_filter(self, store):
        with pytest.raises(ValidationError):
            store.nodes.list(status="archived")


class TestStatusTransitions:
    def test_active_to_stale_sets_stale_at(self, store):
        node = store.nodes.create("personal", "Note")
        stale = store.nodes.update_status(node.id, "stale")
        assert stale.status == "stale"
        assert stale.stale_at is not None
        assert stale.updated_at >= node.updated_at

    def test_stale_back_to_active_clears_stale_at(self, store, make_stale):
        node = store.nodes.create("personal", "Note")
        make_stale(node.id)
        revived = store.nodes.update_status(node.id, "active")
        assert revived.status == "active"
        assert revived.stale_at is None

    def test_same_status_is_noop(self, store, make_stale):
        node = store.nodes.create("personal", "Note")
        make_stale(node.id)
        first = store.nodes.get(node.id)
        again = store.nodes.update_status(node.id, "stale")
        assert again.stale_at == first.stale_at
        assert again.updated_at == first.updated_at

    def test_active_to_compacted_rejected(self, store):
        node = store.nodes.create("personal", "Note")
        with pytest.raises(InvalidTransitionError) as exc_info:
            store.nodes.update_status(node.id, "compacted", compacted_into="kt-x")
        assert exc_info.value.from_status == "active"
        assert exc_info.value.to_status == "compacted"
        assert store.nodes.get(node.id).status == "active"

    def test_compacted_is_terminal(self, store, make_stale):
        node = store.nodes.create("personal", "Note")
        summary = store.nodes.create("personal", "Summary")
        make_stale(node.id)
        store.nodes.update_status(node.id, "compacted", compacted_into=summary.id)
        for status in ("active", "stale"):
            with pytest.raises(InvalidTransitionError):
                store.nodes.update_status(node.id, status)

    def test_compacting_requires_target(self, store, make_stale):
        node = store.nodes.create("personal", "Note")
        make_stale(node.id)
        with pytest.raises(ValidationError, match="compacted_into"):
            store.nodes.update_status(node.id, "compacted")

    def test_unknown_status(self, store):
        node = store.nodes.create("personal", "Note")
        with pytest.raises(ValidationError):
            store.nodes.update_status(node.id, "archived")

    def test_missing_node(self, store):
        with pytest.raises(NodeNotFoundError):
            store.nodes.update_status("kt-missing", "stale")


class TestDeleteNode:
    def test_delete_removes_links_and_vector(self, store, index):
        a = store.nodes.create("personal", "A")
        b = store.nodes.create("personal", "B")
        c = store.nodes.create("personal", "C")
        store.links.create(a.id, b.id, "related")
        store.links.create(c.id, a.id, "related")
        kept = store.links.create(b.id, c.id, "related")
        index.upsert(a.id, [1.0, 0.0, 0.0, 0.0])

        assert store.nodes.delete(a.id) is True
        assert store.nodes.get(a.id) is None
        assert store.links.get_links(a.id) == []
        assert store.links.get_backlinks(a.id) == []
        assert store.links.get(kept.id) is not None
        assert index.get(a.id) is None

    def test_delete_missing(self, store):
        assert store.nodes.delete("kt-missing") is False


class TestEmbeddingQueue:
    def test_pending_oldest_first(self, store, backdate):
        newer = store.nodes.create("personal", "Newer")
        older = store.nodes.create("personal", "Older")
        backdate(older.id, 3)
        assert [n.id for n in store.nodes.pending_embeddings()] == [older.id, newer.id]

    def test_mark_done_keeps_updated_at(self, store):
        node = store.nodes.create("personal", "Note")
        store.nodes.mark_embedding_done(node.id)
        after = store.nodes.get(node.id)
        assert after.embedding_pending is False
        assert after.updated_at == node.updated_at
        assert store.nodes.pending_embeddings() == []


class TestKeywordSearch:
    def test_matches_title_or_content_case_insensitively(self, store):
        by_title = store.nodes.create("personal", "Body", title="Pricing model")
        by_content = store.nodes.create("personal", "The PRICING is tiered")
        store.nodes.create("personal", "Unrelated")
        ids = {n.id for n in store.nodes.search("pricing")}
        assert ids == {by_title.id, by_content.id}

    def test_percent_matches_literally(self, store):
        literal = store.nodes.create("personal", "50% off")
        store.nodes.create("personal", "500 off")
        assert [n.id for n in store.nodes.search("50%")] == [literal.id]

    def test_excludes_compacted_and_excluded_ids(self, store, make_stale):
        a = store.nodes.create("personal", "needle one")
        b = store.nodes.create("personal", "needle two")
        summary = store.nodes.create("personal", "summary")
        make_stale(b.id)
        store.nodes.update_status(b.id, "compacted", compacted_into=summary.id)
        assert store.nodes.search("needle") == [store.nodes.get(a.id)]
        assert store.nodes.search("needle", exclude_ids=[a.id]) == []
