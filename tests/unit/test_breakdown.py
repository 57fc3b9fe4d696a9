"""Tests for breakdown ordering and resolution."""

import pytest

from goalflow.core.breakdown import Breakdown, OrderEntry
from tests.unit.fakes import make_breakdown, make_subtask


def _titles(breakdown: Breakdown):
    return [s.task.title for s in breakdown.execution_plan()]


class TestOrderEntry:
    def test_parse(self):
        entry = OrderEntry.parse("qa:1")
        assert entry.role == "qa"
        assert entry.index == 1
        assert str(entry) == "qa:1"

    @pytest.mark.parametrize("ref", ["qa", ":1", "qa:x", "qa:-1"])
    def test_parse_rejects_bad_refs(self, ref):
        with pytest.raises(ValueError):
            OrderEntry.parse(ref)

    def test_breakdown_accepts_string_refs(self):
        breakdown = make_breakdown(("dev", "build"), order=["dev:0"])
        assert breakdown.order == [OrderEntry(role="dev", index=0)]


class TestExecutionPlan:
    def test_missing_order_uses_declaration_order(self):
        breakdown = make_breakdown(("dev", "build"), ("qa", "test"), ("dev", "fix"))
        assert _titles(breakdown) == ["build", "test", "fix"]

    def test_explicit_order_is_followed(self):
        breakdown = make_breakdown(
            ("dev", "build"), ("qa", "test"), ("dev", "deploy prep"),
            order=["dev:0", "dev:1", "qa:0"],
        )
        assert _titles(breakdown) == ["build", "deploy prep", "test"]

    def test_order_may_run_a_subset(self):
        breakdown = make_breakdown(("dev", "build"), ("qa", "test"), order=["qa:0"])
        assert _titles(breakdown) == ["test"]

    def test_dangling_and_duplicate_refs_are_dropped(self):
        breakdown = make_breakdown(("dev", "build"), ("qa", "test"), order=["dev:0", "dev:5", "ops:0", "dev:0", "qa:0"])
        assert _titles(breakdown) == ["build", "test"]

    def test_all_refs_invalid_falls_back_to_declaration_order(self):
        breakdown = make_breakdown(("dev", "build"), ("qa", "test"), order=["ops:3"])
        assert _titles(breakdown) == ["build", "test"]


class TestQueries:
    def test_tasks_for_role_and_roles(self):
        breakdown = make_breakdown(("dev", "a"), ("qa", "b"), ("dev", "c"))
        assert [t.title for t in breakdown.tasks_for_role("dev")] == ["a", "c"]
        assert breakdown.roles() == ["dev", "qa"]
        assert not breakdown.is_empty
        assert Breakdown().is_empty

    def test_resolve_out_of_range(self):
        breakdown = make_breakdown(("dev", "a"))
        assert breakdown.resolve(OrderEntry(role="dev", index=1)) is None

    def test_add_subtask_extends_explicit_order(self):
        breakdown = make_breakdown(("dev", "a"), order=["dev:0"])
        extra = make_subtask("qa", "verify")

        entry = breakdown.add_subtask("qa", extra.task)
        assert str(entry) == "qa:0"
        assert _titles(breakdown) == ["a", "verify"]
