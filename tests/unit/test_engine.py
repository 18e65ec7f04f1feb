"""Tests for engine.py (PageEngine over the in-memory store)."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from conftest import NOTEBOOK, OWNER

from pagekeep.config import PagekeepConfig
from pagekeep.engine import PageEngine
from pagekeep.errors import (
    ErrorCode,
    PagekeepCycleError,
    PagekeepNotFoundError,
    PagekeepStoreUnavailableError,
    PagekeepValidationError,
)
from pagekeep.hierarchy import iter_nodes
from pagekeep.models import MoveRejectReason, MoveRelation, PageFilters


def _tree(engine, notebook_id=NOTEBOOK):
    return {node.id: [c.id for c in node.children] for node in iter_nodes(engine.get_hierarchy(notebook_id))}


@pytest.fixture
def abc(engine):
    """Chain A -> B -> C plus a separate root D."""
    a = engine.create_page(NOTEBOOK, "A")
    b = engine.create_page(NOTEBOOK, "B", parent_page_id=a.id)
    c = engine.create_page(NOTEBOOK, "C", parent_page_id=b.id)
    d = engine.create_page(NOTEBOOK, "D")
    return a, b, c, d


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

class TestConstruction:
    def test_owner_required(self, store):
        with pytest.raises(PagekeepValidationError):
            PageEngine(store, "")

    def test_default_config(self, store):
        assert PageEngine(store, OWNER).owner == OWNER


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------

class TestCreateAndRead:
    def test_create_starts_at_version_one(self, engine):
        page = engine.create_page(NOTEBOOK, "  Ideas  ", content="x")
        assert page.version == 1
        assert page.title == "Ideas"
        assert page.owner == OWNER
        assert page.created_at == page.updated_at
        assert engine.list_versions(page.id) == []

    def test_blank_title_rejected(self, engine):
        with pytest.raises(PagekeepValidationError):
            engine.create_page(NOTEBOOK, "   ")

    def test_parent_must_exist(self, engine):
        with pytest.raises(PagekeepNotFoundError):
            engine.create_page(NOTEBOOK, "Orphan", parent_page_id="missing")

    def test_parent_must_share_notebook(self, engine):
        other = engine.create_page("nb-2", "Elsewhere")
        with pytest.raises(PagekeepValidationError) as exc_info:
            engine.create_page(NOTEBOOK, "Child", parent_page_id=other.id)
        assert exc_info.value.context["constraint"] == "same_notebook"

    def test_get_missing_page(self, engine):
        with pytest.raises(PagekeepNotFoundError) as exc_info:
            engine.get_page("nope")
        assert exc_info.value.code == ErrorCode.NOT_FOUND

    def test_pages_of_other_owner_are_invisible(self, store, engine):
        theirs = PageEngine(store, "user-2").create_page(NOTEBOOK, "Private")
        with pytest.raises(PagekeepNotFoundError):
            engine.get_page(theirs.id)
        assert engine.list_pages(NOTEBOOK) == []

    def test_list_pages_with_filters(self, engine, abc):
        a, b, c, d = abc
        roots = engine.list_pages(NOTEBOOK, PageFilters(roots_only=True, sort_by="title", sort_order="asc"))
        assert [p.title for p in roots] == ["A", "D"]

    def test_hierarchy(self, engine, abc):
        a, b, c, d = abc
        forest = engine.get_hierarchy(NOTEBOOK)
        assert [n.id for n in forest] == [a.id, d.id]
        assert _tree(engine)[b.id] == [c.id]

    def test_breadcrumbs(self, engine, abc):
        a, b, c, d = abc
        assert [p.title for p in engine.breadcrumbs(c.id)] == ["A", "B", "C"]

    def test_move_targets_exclude_subtree(self, engine, abc):
        a, b, c, d = abc
        assert [p.title for p, _ in engine.move_targets(b.id)] == ["A", "D"]


class TestDeletePage:
    def test_cascades_to_descendants_and_versions(self, engine, abc, metrics):
        a, b, c, d = abc
        engine.update_page(c.id, content="edited")
        engine.update_page(b.id, content="edited")
        assert engine.delete_page(a.id) == 3
        assert [p.id for p in engine.list_pages(NOTEBOOK)] == [d.id]
        assert engine.list_versions(b.id) == []
        assert engine.list_versions(c.id) == []
        assert metrics.count("pagekeep.pages_deleted_total") == 3

    def test_leaf_delete(self, engine, abc):
        a, b, c, d = abc
        assert engine.delete_page(c.id) == 1
        assert _tree(engine)[b.id] == []

    def test_missing(self, engine):
        with pytest.raises(PagekeepNotFoundError):
            engine.delete_page("nope")


# ---------------------------------------------------------------------------
# Moves
# ---------------------------------------------------------------------------

class TestMoves:
    def test_move_as_child(self, engine, abc):
        a, b, c, d = abc
        moved = engine.move_page(c.id, d.id, MoveRelation.CHILD)
        assert moved.parent_page_id == d.id
        assert moved.version == 1
        assert _tree(engine)[d.id] == [c.id]

    def test_move_after_root_becomes_root(self, engine, abc):
        a, b, c, d = abc
        moved = engine.move_page(c.id, d.id, "after")
        assert moved.parent_page_id is None

    def test_move_before_sibling(self, engine, abc):
        a, b, c, d = abc
        moved = engine.move_page(d.id, c.id, "before")
        assert moved.parent_page_id == b.id

    def test_move_into_descendant_rejected(self, engine, abc):
        a, b, c, d = abc
        with pytest.raises(PagekeepCycleError) as exc_info:
            engine.move_page(a.id, c.id, "child")
        assert exc_info.value.context["reason"] == "cycle"
        assert engine.get_page(a.id).parent_page_id is None

    def test_self_drop_rejected(self, engine, abc):
        a, *_ = abc
        with pytest.raises(PagekeepCycleError) as exc_info:
            engine.move_page(a.id, a.id, "child")
        assert exc_info.value.context["reason"] == "self_drop"

    def test_plan_move_for_unknown_page(self, engine, abc):
        a, *_ = abc
        decision = engine.plan_move("missing", a.id, "child")
        assert decision.reason == MoveRejectReason.DRAGGED_NOT_FOUND

    def test_apply_move_revalidates_cycle(self, engine, abc):
        a, b, c, d = abc
        with pytest.raises(PagekeepCycleError):
            engine.apply_move(a.id, c.id)

    def test_apply_move_to_self_rejected(self, engine, abc):
        a, *_ = abc
        with pytest.raises(PagekeepCycleError):
            engine.apply_move(a.id, a.id)

    def test_apply_move_missing_parent(self, engine, abc):
        a, *_ = abc
        with pytest.raises(PagekeepNotFoundError):
            engine.apply_move(a.id, "missing")

    def test_apply_move_across_notebooks_rejected(self, engine, abc):
        a, *_ = abc
        other = engine.create_page("nb-2", "Elsewhere")
        with pytest.raises(PagekeepValidationError):
            engine.apply_move(a.id, other.id)

    def test_apply_move_to_root(self, engine, abc):
        a, b, c, d = abc
        assert engine.apply_move(c.id, None).parent_page_id is None

    def test_move_keeps_tree_acyclic(self, engine, abc):
        a, b, c, d = abc
        engine.move_page(a.id, d.id, "child")
        with pytest.raises(PagekeepCycleError):
            engine.move_page(d.id, c.id, "child")
        assert len(list(iter_nodes(engine.get_hierarchy(NOTEBOOK)))) == 4

    def test_racing_moves_leave_readable_tree(self, engine, store, abc):
        # The second move validates against the tree read before the first
        # one landed, so together they store the cycle A -> D -> A.
        a, b, c, d = abc
        stale = store.list_pages(OWNER, NOTEBOOK)
        engine.apply_move(d.id, a.id)
        with patch.object(store, "list_pages", return_value=stale):
            engine.apply_move(a.id, d.id)
        assert engine.get_page(a.id).parent_page_id == d.id
        assert engine.get_page(d.id).parent_page_id == a.id

        forest = engine.get_hierarchy(NOTEBOOK)
        assert sorted(n.id for n in iter_nodes(forest)) == sorted(p.id for p in abc)
        assert len(forest) == 1
        chain = engine.breadcrumbs(c.id)
        assert chain[-1].id == c.id
        assert len(chain) == len({p.id for p in chain})


# ---------------------------------------------------------------------------
# Edits and history
# ---------------------------------------------------------------------------

class TestUpdates:
    def test_update_snapshots_previous_state(self, engine):
        page = engine.create_page(NOTEBOOK, "Doc", content="a")
        updated = engine.update_page(page.id, content="b")
        assert updated.version == 2
        assert updated.title == "Doc"
        [snapshot] = engine.list_versions(page.id)
        assert (snapshot.version, snapshot.content) == (1, "a")

    def test_title_only_update(self, engine):
        page = engine.create_page(NOTEBOOK, "Doc", content="a")
        updated = engine.update_page(page.id, title="Renamed")
        assert (updated.title, updated.content, updated.version) == ("Renamed", "a", 2)

    def test_noop_update(self, engine):
        page = engine.create_page(NOTEBOOK, "Doc", content="a")
        assert engine.update_page(page.id, content="a").version == 1
        assert engine.version_count(page.id) == 0

    def test_update_missing(self, engine):
        with pytest.raises(PagekeepNotFoundError):
            engine.update_page("nope", content="x")

    def test_two_step_update(self, engine):
        page = engine.create_page(NOTEBOOK, "Doc", content="a")
        snapshot = engine.before_update(page)
        committed = engine.commit_update(page.id, "Doc", "b", expected_version=page.version)
        assert snapshot.version == 1
        assert committed.version == 2

    def test_abandoned_two_step_update_does_not_block_edits(self, engine):
        page = engine.create_page(NOTEBOOK, "Doc", content="a")
        engine.before_update(page)
        with pytest.raises(PagekeepValidationError):
            engine.commit_update(page.id, "   ", "b", expected_version=page.version)
        updated = engine.update_page(page.id, content="b")
        assert updated.version == 2
        assert [(v.version, v.content) for v in engine.list_versions(page.id)] == [(1, "a")]

    def test_auto_prune_caps_history(self, store, metrics):
        engine = PageEngine(store, OWNER, PagekeepConfig(max_versions=3, metrics=metrics))
        page = engine.create_page(NOTEBOOK, "Doc", content="0")
        for n in range(1, 7):
            engine.update_page(page.id, content=str(n))
        assert [v.version for v in engine.list_versions(page.id)] == [6, 5, 4]
        assert engine.get_page(page.id).version == 7

    def test_auto_prune_disabled(self, store):
        engine = PageEngine(store, OWNER, PagekeepConfig(max_versions=1, auto_prune=False))
        page = engine.create_page(NOTEBOOK, "Doc", content="0")
        for n in range(1, 4):
            engine.update_page(page.id, content=str(n))
        assert engine.version_count(page.id) == 3

    def test_failed_auto_prune_keeps_update(self, store):
        engine = PageEngine(store, OWNER, PagekeepConfig(max_versions=1))
        page = engine.create_page(NOTEBOOK, "Doc", content="0")
        engine.update_page(page.id, content="1")
        with patch.object(store, "delete_versions", side_effect=PagekeepStoreUnavailableError("down")):
            updated = engine.update_page(page.id, content="2")
        assert updated.version == 3
        assert engine.get_page(page.id).content == "2"
        assert engine.version_count(page.id) == 2


class TestHistory:
    @pytest.fixture
    def doc(self, engine):
        page = engine.create_page(NOTEBOOK, "Doc", content="a")
        engine.update_page(page.id, content="b")
        engine.update_page(page.id, content="c")
        return engine.get_page(page.id)

    def test_version_queries(self, engine, doc):
        assert engine.version_count(doc.id) == 2
        assert engine.latest_version_number(doc.id) == 2
        stats = engine.version_stats(doc.id)
        assert stats.total_versions == 2
        assert stats.oldest.version == 1
        assert stats.newest.version == 2

    def test_empty_history_queries(self, engine):
        page = engine.create_page(NOTEBOOK, "Fresh")
        assert engine.latest_version_number(page.id) == 0
        stats = engine.version_stats(page.id)
        assert (stats.total_versions, stats.oldest, stats.newest) == (0, None, None)

    def test_restore_scenario(self, engine, doc):
        v1 = next(v for v in engine.list_versions(doc.id) if v.version == 1)
        restored = engine.restore_version(doc.id, v1.id)
        assert (restored.version, restored.content) == (4, "a")
        assert 4 not in [v.version for v in engine.list_versions(doc.id)]

    def test_get_and_delete_version(self, engine, doc):
        newest = engine.list_versions(doc.id)[0]
        assert engine.get_version(newest.id) == newest
        engine.delete_version(newest.id)
        with pytest.raises(PagekeepNotFoundError):
            engine.get_version(newest.id)
        with pytest.raises(PagekeepNotFoundError):
            engine.delete_version(newest.id)

    def test_prune(self, engine, doc):
        assert engine.prune_versions(doc.id, keep_latest=1) == 1
        assert [v.version for v in engine.list_versions(doc.id)] == [2]

    def test_diff_versions(self, engine, doc):
        v2, v1 = engine.list_versions(doc.id)
        result = engine.diff_versions(v1.id, v2.id)
        assert (result.version_a, result.version_b) == (1, 2)
        assert (result.stats.removed, result.stats.added) == (1, 1)

    def test_diff_across_pages_rejected(self, engine, doc):
        other = engine.create_page(NOTEBOOK, "Other", content="x")
        engine.update_page(other.id, content="y")
        with pytest.raises(PagekeepValidationError):
            engine.diff_versions(engine.list_versions(doc.id)[0].id, engine.list_versions(other.id)[0].id)

    def test_diff_with_current(self, engine, doc):
        v1 = engine.list_versions(doc.id)[-1]
        result = engine.diff_with_current(v1.id)
        assert (result.version_a, result.version_b) == (1, 3)
        assert result.has_changes
