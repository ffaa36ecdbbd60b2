"""Tests for typed links between nodes."""

import pytest

from kt.protocols import NodeNotFoundError, UnknownLinkTypeError, ValidationError
from kt.types import days_ago


@pytest.fixture
def pair(store):
    a = store.nodes.create("clients.acme", "Pricing is two-tier", title="Pricing v1")
    b = store.nodes.create("clients.acme", "Pricing is three-tier", title="Pricing v2")
    return a, b


class TestCreateLink:
    def test_related_link(self, store, pair):
        a, b = pair
        link = store.links.create(a.id, b.id, "related", "Same topic")
        assert link.source_id == a.id
        assert link.target_id == b.id
        assert link.link_type == "related"
        assert link.context == "Same topic"
        assert link.created_at is not None
        assert store.nodes.get(b.id).status == "active"

    def test_self_link_is_ignored(self, store, pair):
        a, _ = pair
        assert store.links.create(a.id, a.id, "related") is None
        assert store.links.get_links(a.id) == []

    def test_unknown_type(self, store, pair):
        a, b = pair
        with pytest.raises(UnknownLinkTypeError) as exc_info:
            store.links.create(a.id, b.id, "depends_on")
        assert exc_info.value.link_type == "depends_on"
        assert store.links.get_links(a.id) == []

    def test_missing_endpoint(self, store, pair):
        a, _ = pair
        with pytest.raises(NodeNotFoundError):
            store.links.create(a.id, "kt-missing", "related")
        with pytest.raises(NodeNotFoundError):
            store.links.create("kt-missing", a.id, "related")

    def test_compacted_endpoint_rejected(self, store, pair, make_stale):
        a, b = pair
        summary = store.nodes.create("clients.acme", "Summary", source_type="compaction")
        make_stale(b.id)
        store.nodes.update_status(b.id, "compacted", compacted_into=summary.id)
        with pytest.raises(ValidationError, match="compacted"):
            store.links.create(a.id, b.id, "related")
        assert store.links.get_links(a.id) == []

    def test_supersedes_stales_active_target(self, store, pair):
        a, b = pair
        store.links.create(b.id, a.id, "supersedes")
        target = store.nodes.get(a.id)
        assert target.status == "stale"
        assert target.stale_at is not None

    def test_supersedes_leaves_stale_target_alone(self, store, pair, make_stale):
        a, b = pair
        make_stale(a.id)
        stale_at = store.nodes.get(a.id).stale_at
        store.links.create(b.id, a.id, "supersedes")
        assert store.nodes.get(a.id).stale_at == stale_at

    def test_deleting_supersedes_link_does_not_revive(self, store, pair):
        a, b = pair
        link = store.links.create(b.id, a.id, "supersedes")
        assert store.links.delete(link.id) is True
        assert store.nodes.get(a.id).status == "stale"

    def test_links_and_backlinks(self, store, pair):
        a, b = pair
        link = store.links.create(a.id, b.id, "related")
        assert [found.id for found in store.links.get_links(a.id)] == [link.id]
        assert [found.id for found in store.links.get_backlinks(b.id)] == [link.id]
        assert store.links.get_backlinks(a.id) == []


class TestConflicts:
    def test_contradicts_between_active_nodes(self, store, pair):
        a, b = pair
        store.links.create(a.id, b.id, "contradicts", "Tier count differs")
        conflicts = store.links.get_conflicts()
        assert len(conflicts) == 1
        assert conflicts[0].node_a == a.id
        assert conflicts[0].node_b == b.id
        assert conflicts[0].context == "Tier count differs"

    def test_stale_endpoint_is_not_a_conflict(self, store, pair, make_stale):
        a, b = pair
        store.links.create(a.id, b.id, "contradicts")
        make_stale(b.id)
        assert store.links.get_conflicts() == []

    def test_scoped_by_namespace(self, store, pair):
        a, b = pair
        store.links.create(a.id, b.id, "contradicts")
        assert len(store.links.get_conflicts("clients")) == 1
        assert store.links.get_conflicts("personal") == []


class TestCompactionHelpers:
    def test_has_inbound_since(self, store, pair, backdate_link):
        a, b = pair
        link = store.links.create(a.id, b.id, "related")
        assert store.links.has_inbound_since(b.id, "2000-01-01T00:00:00.000000+00:00")
        backdate_link(link.id, 30)

        assert not store.links.has_inbound_since(b.id, days_ago(10))
        assert not store.links.has_inbound_since(a.id, "2000-01-01T00:00:00.000000+00:00")

    def test_among(self, store, pair):
        a, b = pair
        outsider = store.nodes.create("clients.acme", "Outsider")
        inside = store.links.create(a.id, b.id, "related")
        store.links.create(outsider.id, a.id, "related")
        assert [found.id for found in store.links.among([a.id, b.id])] == [inside.id]
        assert store.links.among([]) == []

    def test_repoint_inbound_dedupes_per_source_and_type(self, store, backdate_link):
        m1 = store.nodes.create("p", "Member one")
        m2 = store.nodes.create("p", "Member two")
        ext = store.nodes.create("p", "External")
        target = store.nodes.create("p", "Summary")
        older = store.links.create(ext.id, m1.id, "related")
        newer = store.links.create(ext.id, m2.id, "related")
        other_type = store.links.create(ext.id, m2.id, "contradicts")
        internal = store.links.create(m1.id, m2.id, "related")
        backdate_link(older.id, 2)

        kept = store.links.repoint_inbound([m1.id, m2.id], target.id)

        assert kept == 2
        assert store.links.get(older.id).target_id == target.id
        assert store.links.get(newer.id) is None
        assert store.links.get(other_type.id).target_id == target.id
        assert store.links.get(internal.id).target_id == m2.id

    def test_delete_among(self, store, pair):
        a, b = pair
        outsider = store.nodes.create("clients.acme", "Outsider")
        store.links.create(a.id, b.id, "related")
        store.links.create(b.id, a.id, "contradicts")
        kept = store.links.create(a.id, outsider.id, "related")
        assert store.links.delete_among([a.id, b.id]) == 2
        assert [found.id for found in store.links.get_links(a.id)] == [kept.id]
