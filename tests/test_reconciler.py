import unittest

from _fakes import FakeClock, record

from nasa_gateway.core.errors import PartialReconciliationFailure, ValidationError
from nasa_gateway.core.models import ManifestRecord
from nasa_gateway.store import SqliteStore
from nasa_gateway.sync import apply_plan, merge_manifest, reconcile


class MergeManifestTests(unittest.TestCase):
    def test_entries_sharing_a_sol_are_summed_and_unioned(self) -> None:
        merged = merge_manifest(
            [
                record(12, 3, "FHAZ"),
                record(12, 4, "FHAZ", "MAST"),
                record(12, 1, "NAVCAM"),
                record(3, 2, "RHAZ"),
            ]
        )

        self.assertEqual([m.period_key for m in merged], [3, 12])
        sol_12 = merged[1]
        self.assertEqual(sol_12.item_count, 8)
        self.assertEqual(sol_12.categories, frozenset({"FHAZ", "MAST", "NAVCAM"}))

    def test_sols_without_photos_are_dropped(self) -> None:
        merged = merge_manifest([record(1, 0, "FHAZ"), record(2, 5, "MAST")])
        self.assertEqual([m.period_key for m in merged], [2])

    def test_negative_counts_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            ManifestRecord(period_key=1, item_count=-1)


class ReconcileTests(unittest.TestCase):
    def test_curiosity_manifest_only_inserts_above_high_water_mark(self) -> None:
        fresh = [record(5, 3, "A"), record(5, 4, "A", "B"), record(7, 2, "C")]
        stored = [record(5, 3, "A")]

        plan = reconcile("curiosity", fresh, stored)

        self.assertEqual(
            {m.period_key: (m.item_count, m.categories) for m in plan.merged},
            {5: (7, frozenset({"A", "B"})), 7: (2, frozenset({"C"}))},
        )
        self.assertEqual(plan.to_insert_or_update, [record(7, 2, "C")])
        self.assertEqual(plan.to_delete, [])

    def test_empty_store_inserts_everything(self) -> None:
        plan = reconcile("spirit", [record(1, 1, "PANCAM"), record(2, 2, "PANCAM")], [])
        self.assertEqual([m.period_key for m in plan.to_insert_or_update], [1, 2])
        self.assertEqual(plan.to_delete, [])

    def test_sols_at_or_below_high_water_mark_are_never_revised(self) -> None:
        stored = [record(3, 1, "FHAZ"), record(9, 1, "FHAZ")]
        fresh = [record(3, 40, "FHAZ", "MAST"), record(9, 99, "NAVCAM"), record(10, 5, "MAST")]

        plan = reconcile("curiosity", fresh, stored)

        self.assertEqual([m.period_key for m in plan.to_insert_or_update], [10])

    def test_vanished_sols_are_deleted_and_not_inserted(self) -> None:
        stored = [record(1, 2, "FHAZ"), record(2, 2, "FHAZ"), record(4, 1, "MAST")]
        fresh = [record(1, 2, "FHAZ"), record(2, 0, "FHAZ"), record(6, 3, "MAST")]

        plan = reconcile("opportunity", fresh, stored)

        self.assertEqual(plan.to_delete, [2, 4])
        inserted = {m.period_key for m in plan.to_insert_or_update}
        self.assertEqual(inserted, {6})
        self.assertTrue(inserted.isdisjoint(plan.to_delete))

    def test_reconciling_twice_is_a_no_op(self) -> None:
        clock = FakeClock()
        store = SqliteStore(":memory:")
        self.addCleanup(store.close)
        store.upsert_manifest_record("curiosity", record(1, 1, "FHAZ"), clock())
        store.upsert_manifest_record("curiosity", record(2, 1, "FHAZ"), clock())
        fresh = [record(1, 1, "FHAZ"), record(3, 2, "MAST"), record(3, 1, "NAVCAM"), record(4, 6, "FHAZ")]

        first = reconcile("curiosity", fresh, store.list_manifest("curiosity"))
        apply_plan(store, first, clock())
        second = reconcile("curiosity", fresh, store.list_manifest("curiosity"))

        self.assertFalse(first.is_empty)
        self.assertTrue(second.is_empty)
        self.assertEqual([m.period_key for m in store.list_manifest("curiosity")], [1, 3, 4])
        self.assertEqual(store.get_manifest_record("curiosity", 3).item_count, 3)


class _FlakyStore(SqliteStore):
    def __init__(self, failing_sol: int) -> None:
        super().__init__(":memory:")
        self.failing_sol = failing_sol

    def upsert_manifest_record(self, rover, record, now):
        if record.period_key == self.failing_sol:
            raise RuntimeError("disk full")
        super().upsert_manifest_record(rover, record, now)


class ApplyPlanTests(unittest.TestCase):
    def test_one_failing_sol_does_not_abort_the_rest(self) -> None:
        store = _FlakyStore(failing_sol=2)
        self.addCleanup(store.close)
        plan = reconcile("curiosity", [record(1, 1, "A"), record(2, 1, "A"), record(3, 1, "A")], [])

        with self.assertLogs("nasa_gateway.sync.reconciler", level="ERROR"):
            outcome = apply_plan(store, plan, FakeClock()())

        self.assertEqual(outcome.stored, [1, 3])
        self.assertEqual(len(outcome.failures), 1)
        failure = outcome.failures[0]
        self.assertIsInstance(failure, PartialReconciliationFailure)
        self.assertEqual(failure.period_key, 2)
        self.assertEqual([m.period_key for m in store.list_manifest("curiosity")], [1, 3])

    def test_deletes_are_applied(self) -> None:
        store = SqliteStore(":memory:")
        self.addCleanup(store.close)
        now = FakeClock()()
        store.upsert_manifest_record("spirit", record(1, 1, "A"), now)
        store.upsert_manifest_record("spirit", record(2, 1, "A"), now)

        outcome = apply_plan(store, reconcile("spirit", [record(2, 1, "A")], store.list_manifest("spirit")), now)

        self.assertEqual(outcome.deleted, [1])
        self.assertEqual([m.period_key for m in store.list_manifest("spirit")], [2])


if __name__ == "__main__":
    unittest.main()
