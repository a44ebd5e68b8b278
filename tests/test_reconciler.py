"""Tests for duplicate reconciliation of compliance records."""

from __future__ import annotations

import asyncio

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from conftest import TODAY, FlakyStore, make_record
from coach_compliance.errors import StorageError
from coach_compliance.metrics import get_metrics
from coach_compliance.models import ComplianceKey
from coach_compliance.reconciler import ComplianceReconciler, merge_candidates


class TestMergeCandidates:
    def test_empty_is_none(self):
        assert merge_candidates([]) is None

    def test_single_candidate_is_returned_as_is(self):
        record = make_record("r1", {"A"})
        assert merge_candidates([record]) is record

    def test_union_keeps_first_identity(self):
        merged = merge_candidates([make_record("r1", {"A"}), make_record("r2", {"B", "A"})])
        assert merged.id == "r1"
        assert merged.items_completed == {"A", "B"}

    def test_notes_carried_from_duplicate_when_primary_has_none(self):
        merged = merge_candidates(
            [make_record("r1", {"A"}), make_record("r2", set(), notes="felt sick")]
        )
        assert merged.notes == "felt sick"

    def test_primary_notes_win(self):
        merged = merge_candidates(
            [make_record("r1", notes="primary"), make_record("r2", notes="other")]
        )
        assert merged.notes == "primary"


class TestReconcile:
    async def test_no_candidates(self, store):
        assert await ComplianceReconciler(store).reconcile([]) is None
        assert store.calls == []

    async def test_single_candidate_makes_no_store_calls(self, store):
        record = make_record("r1", {"A"})
        result = await ComplianceReconciler(store).reconcile([record])
        assert result is record
        assert store.calls == []

    async def test_duplicates_merge_into_one_record(self):
        # Scenario: {A} and {B} for the same client/plan/day.
        first = make_record("r1", {"A"})
        second = make_record("r2", {"B"})
        store = FlakyStore([first, second])

        result = await ComplianceReconciler(store).reconcile([first, second])

        assert result.id == "r1"
        assert result.items_completed == {"A", "B"}
        remaining = store.all()
        assert [r.id for r in remaining] == ["r1"]
        assert remaining[0].items_completed == {"A", "B"}

    async def test_union_written_before_any_delete(self):
        first = make_record("r1", {"A"})
        second = make_record("r2", {"B"})
        store = FlakyStore([first, second])

        await ComplianceReconciler(store).reconcile([first, second])

        assert store.calls == ["update", "delete"]

    async def test_update_skipped_when_primary_already_has_union(self):
        first = make_record("r1", {"A", "B"})
        second = make_record("r2", {"B"})
        store = FlakyStore([first, second])

        await ComplianceReconciler(store).reconcile([first, second])

        assert store.calls == ["delete"]

    async def test_failed_update_deletes_nothing(self):
        first = make_record("r1", {"A"})
        second = make_record("r2", {"B"})
        store = FlakyStore([first, second])
        store.fail_next["update"] = 1

        with pytest.raises(StorageError):
            await ComplianceReconciler(store).reconcile([first, second])

        assert len(store) == 2

    async def test_partial_delete_failure_keeps_extras_and_returns_merged(self, caplog):
        records = [make_record("r1", {"A"}), make_record("r2", {"B"}), make_record("r3", {"C"})]
        store = FlakyStore(records)
        store.failing_deletes = {"r3"}
        reconciler = ComplianceReconciler(store)

        with caplog.at_level("ERROR"):
            result = await reconciler.reconcile(records)

        assert result.items_completed == {"A", "B", "C"}
        assert {r.id for r in store.all()} == {"r1", "r3"}
        failure = reconciler.last_partial_failure
        assert failure is not None
        assert failure.retained_ids == ("r3",)
        assert "partial failure" in caplog.text
        assert get_metrics()["duplicates_retained"] == 1
        assert get_metrics()["duplicates_merged"] == 1

    async def test_later_pass_retries_leftover_duplicates(self):
        records = [make_record("r1", {"A"}), make_record("r2", {"B"})]
        store = FlakyStore(records)
        store.failing_deletes = {"r2"}
        reconciler = ComplianceReconciler(store)
        await reconciler.reconcile(records)
        assert len(store) == 2

        store.failing_deletes = set()
        result = await reconciler.reconcile_key(ComplianceKey("client-1", "plan-1", TODAY))

        assert result.items_completed == {"A", "B"}
        assert [r.id for r in store.all()] == ["r1"]
        assert reconciler.last_partial_failure is None

    async def test_rerun_on_own_output_is_noop(self):
        records = [make_record("r1", {"A"}), make_record("r2", {"B"})]
        store = FlakyStore(records)
        reconciler = ComplianceReconciler(store)
        first = await reconciler.reconcile(records)
        store.calls.clear()

        second = await reconciler.reconcile([first])

        assert second == first
        assert store.calls == []

    async def test_reconcile_history_groups_by_day(self):
        day1 = TODAY.replace(day=9)
        day2 = TODAY.replace(day=10)
        store = FlakyStore(
            [
                make_record("r1", {"A"}, day=day2),
                make_record("r2", {"A"}, day=day1),
                make_record("r3", {"B"}, day=day2),
                make_record("other", {"C"}, day=day1, plan_id="plan-2"),
            ]
        )

        history = await ComplianceReconciler(store).reconcile_history("client-1", "plan-1")

        assert [r.date for r in history] == [day1, day2]
        assert history[1].id == "r1"
        assert history[1].items_completed == {"A", "B"}
        assert {r.id for r in store.all()} == {"r1", "r2", "other"}

    async def test_reconcile_history_keeps_failures_from_earlier_days(self):
        yesterday = TODAY.replace(day=10)
        store = FlakyStore(
            [
                make_record("r1", {"A"}, day=yesterday),
                make_record("r2", {"B"}, day=yesterday),
                make_record("r3", {"A"}),
                make_record("r4", {"C"}),
            ]
        )
        store.failing_deletes = {"r2"}
        reconciler = ComplianceReconciler(store)

        history = await reconciler.reconcile_history("client-1", "plan-1")

        assert [r.id for r in history] == ["r1", "r3"]
        assert [r.id for r in store.all()] == ["r1", "r2", "r3"]
        assert [f.retained_ids for f in reconciler.partial_failures] == [("r2",)]
        assert reconciler.last_partial_failure.canonical_id == "r1"

    async def test_next_reconcile_starts_with_no_failures(self):
        records = [make_record("r1", {"A"}), make_record("r2", {"B"})]
        store = FlakyStore(records)
        store.failing_deletes = {"r2"}
        reconciler = ComplianceReconciler(store)
        await reconciler.reconcile(records)
        assert len(reconciler.partial_failures) == 1

        await reconciler.reconcile([make_record("r9", {"A"})])

        assert reconciler.partial_failures == []

    async def test_candidate_sharing_primary_id_is_not_counted_as_merged(self):
        primary = make_record("r1", {"A"})
        store = FlakyStore([primary, make_record("r2", {"B"})])

        await ComplianceReconciler(store).reconcile(
            [primary, make_record("r1", {"A"}), make_record("r2", {"B"})]
        )

        assert [r.id for r in store.all()] == ["r1"]
        assert get_metrics()["duplicates_merged"] == 1
        assert get_metrics()["duplicates_retained"] == 0

    async def test_reconcile_key_rejects_history_key(self, store):
        with pytest.raises(ValueError, match="day key"):
            await ComplianceReconciler(store).reconcile_key(
                ComplianceKey.history("client-1", "plan-1")
            )


item_sets = st.lists(
    st.sets(st.sampled_from(["A", "B", "C", "D", "E", "creatine", "zinc"]), max_size=5),
    min_size=2,
    max_size=6,
)


@settings(
    max_examples=60,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
@given(item_sets)
def test_reconcile_is_loss_free_for_any_duplicates(sets):
    records = [make_record(f"r{i}", items) for i, items in enumerate(sets)]
    store = FlakyStore(records)

    result = asyncio.run(ComplianceReconciler(store).reconcile(records))

    expected = set().union(*sets)
    assert result.items_completed == expected
    assert result.id == "r0"
    remaining = store.all()
    assert len(remaining) == 1
    assert remaining[0].items_completed == expected
