import unittest

from _fakes import FakeClock, FakeNasaClient, RecordingSleep, photo, record, upstream_failure

from nasa_gateway.config.models import SyncSettings
from nasa_gateway.core.errors import UpstreamAuthError, ValidationError
from nasa_gateway.service import MarsRoverService
from nasa_gateway.store import SqliteStore
from nasa_gateway.sync import RoverSynchronizer


class MarsRoverServiceTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.sleep = RecordingSleep()
        self.client = FakeNasaClient()
        self.store = SqliteStore(":memory:")
        self.addCleanup(self.store.close)
        config = SyncSettings()
        self.synchronizer = RoverSynchronizer(
            client=self.client, store=self.store, config=config, sleep=self.sleep, clock=self.clock
        )
        self.service = MarsRoverService(
            store=self.store,
            client=self.client,
            synchronizer=self.synchronizer,
            config=config,
            sleep=self.sleep,
        )

    def _seed(self, rover: str, *records) -> None:
        for item in records:
            self.store.upsert_manifest_record(rover, item, self.clock())

    async def test_summary_on_empty_store_makes_no_upstream_call(self) -> None:
        results = await self.service.get_items_for_periods("curiosity", [100, 200], None, summary_only=True)

        self.assertEqual(results, [])
        self.assertEqual(self.client.calls, [])
        self.assertEqual(self.sleep.calls, [])

    async def test_summary_uses_stored_counts(self) -> None:
        self._seed("curiosity", record(10, 12, "MAST", "FHAZ"), record(11, 3, "NAVCAM"))

        results = await self.service.get_items_for_periods("curiosity", [10, 11, 12], summary_only=True)

        self.assertEqual([(r.period_key, r.item_count, r.category) for r in results], [(10, 12, "FHAZ"), (11, 3, "NAVCAM")])
        self.assertEqual(results[0].items, [])
        self.assertEqual(self.client.calls, [])

    async def test_photos_are_fetched_one_sol_at_a_time(self) -> None:
        self._seed("curiosity", record(1, 2, "FHAZ"), record(2, 1, "MAST"))
        self.client.photos[("curiosity", 1)] = [photo("curiosity", 1, 11), photo("curiosity", 1, 12)]
        self.client.photos[("curiosity", 2)] = [photo("curiosity", 2, 21, "MAST")]

        results = await self.service.get_items_for_periods("Curiosity", [1, 2])

        self.assertEqual([call[:3] for call in self.client.calls], [("items", "curiosity", 1), ("items", "curiosity", 2)])
        self.assertEqual(self.sleep.calls, [0.1])
        self.assertEqual([r.item_count for r in results], [2, 1])
        self.assertEqual([item.id for item in results[0].items], [11, 12])

    async def test_failing_sol_yields_empty_list_and_others_continue(self) -> None:
        self._seed("curiosity", record(1, 2, "FHAZ"), record(2, 1, "FHAZ"))
        self.client.failing_sols[("curiosity", 1)] = upstream_failure(500)
        self.client.photos[("curiosity", 2)] = [photo("curiosity", 2, 21)]

        with self.assertLogs("nasa_gateway.service.rovers", level="WARNING"):
            results = await self.service.get_items_for_periods("curiosity", [1, 2])

        self.assertEqual((results[0].period_key, results[0].item_count, results[0].items), (1, 0, []))
        self.assertEqual(results[1].item_count, 1)

    async def test_auth_errors_propagate(self) -> None:
        self._seed("curiosity", record(1, 2, "FHAZ"))
        self.client.failing_sols[("curiosity", 1)] = UpstreamAuthError(403, "bad key")

        with self.assertRaises(UpstreamAuthError):
            await self.service.get_items_for_periods("curiosity", [1])

    async def test_camera_filter_skips_sols_without_that_camera(self) -> None:
        self._seed("curiosity", record(1, 2, "FHAZ"), record(2, 4, "MAST", "FHAZ"))
        self.client.photos[("curiosity", 2)] = [photo("curiosity", 2, 21, "MAST"), photo("curiosity", 2, 22, "FHAZ")]

        results = await self.service.get_items_for_periods("curiosity", [1, 2], category_filter="MAST")

        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].period_key, 2)
        self.assertEqual(results[0].category, "MAST")
        self.assertEqual([item.id for item in results[0].items], [21])
        self.assertEqual(self.client.calls, [("items", "curiosity", 2, "MAST")])

    async def test_omitted_periods_summarize_the_store(self) -> None:
        self._seed("spirit", record(3, 5, "PANCAM"), record(1, 2, "NAVCAM"))

        results = await self.service.get_items_for_periods("spirit")

        self.assertEqual([(r.period_key, r.item_count) for r in results], [(1, 2), (3, 5)])
        self.assertEqual(self.client.calls, [])

    async def test_sols_and_cameras(self) -> None:
        self._seed("curiosity", record(4, 1, "MAST"), record(2, 3, "FHAZ", "NAVCAM"))

        self.assertEqual(await self.service.get_periods_with_items("curiosity"), [2, 4])
        self.assertEqual(await self.service.get_categories_for("curiosity"), {"FHAZ", "MAST", "NAVCAM"})

        self.store.save_parent_metadata("curiosity", [2, 4], {"CHEMCAM"}, self.clock())
        self.assertEqual(await self.service.get_categories_for("curiosity"), {"CHEMCAM"})

    async def test_invalid_input_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            await self.service.get_items_for_periods("sojourner", [1])
        with self.assertRaises(ValidationError):
            await self.service.get_items_for_periods("curiosity", [-4])

    async def test_refresh_runs_the_synchronizer(self) -> None:
        self.client.manifests["opportunity"] = [record(1, 2, "PANCAM")]

        outcome = await self.service.refresh("opportunity")

        self.assertIsNotNone(outcome)
        self.assertEqual(await self.service.get_periods_with_items("opportunity"), [1])


if __name__ == "__main__":
    unittest.main()
