import unittest
from datetime import timedelta

from furcorpus.errors import FetchFailure
from furcorpus.models import FetchResult, IdentifierRange
from furcorpus.resolver import RangeResolver
from tests.fakes import NEW_YEAR, FakeCatalogClient, minute_timeline, year_timeline


class ResolveBoundaryTests(unittest.TestCase):
    def test_first_post_of_year_across_gap_run(self) -> None:
        timestamps = minute_timeline(range(1, 1001), start=NEW_YEAR - timedelta(minutes=299), gaps=range(500, 521))
        client = FakeCatalogClient(timestamps)
        result = RangeResolver(client).resolve_boundary(NEW_YEAR, 1000, first=True)
        self.assertEqual(result.identifier, 300)
        self.assertTrue(result.exact)

    def test_gap_probe_jumps_below_ceiling(self) -> None:
        timestamps = minute_timeline(range(1, 1001), start=NEW_YEAR - timedelta(minutes=299), gaps=range(500, 521))
        client = FakeCatalogClient(timestamps)
        RangeResolver(client).resolve_boundary(NEW_YEAR, 1000, first=True)
        self.assertEqual(client.timestamp_calls[:2], [500, 999])

    def test_shared_minute_first_and_last(self) -> None:
        timestamps = {}
        for identifier in range(1, 201):
            if identifier < 100:
                timestamps[identifier] = NEW_YEAR - timedelta(minutes=100 - identifier)
            elif identifier <= 110:
                timestamps[identifier] = NEW_YEAR
            else:
                timestamps[identifier] = NEW_YEAR + timedelta(minutes=identifier - 110)
        resolver = RangeResolver(FakeCatalogClient(timestamps))
        self.assertEqual(resolver.resolve_boundary(NEW_YEAR, 200, first=True).identifier, 100)
        self.assertEqual(resolver.resolve_boundary(NEW_YEAR, 200, first=False).identifier, 110)

    def test_seconds_are_ignored_in_target(self) -> None:
        timestamps = minute_timeline(range(1, 101), start=NEW_YEAR - timedelta(minutes=41))
        result = RangeResolver(FakeCatalogClient(timestamps)).resolve_boundary(NEW_YEAR.replace(second=42), 100)
        self.assertEqual(result.identifier, 42)

    def test_no_exact_match_degrades_with_warning(self) -> None:
        base = NEW_YEAR - timedelta(minutes=101)
        timestamps = {identifier: base + timedelta(minutes=2 * identifier) for identifier in range(1, 101)}
        resolver = RangeResolver(FakeCatalogClient(timestamps))
        with self.assertLogs("furcorpus.resolver", level="WARNING"):
            result = resolver.resolve_boundary(NEW_YEAR, 100, first=True)
        self.assertFalse(result.exact)
        self.assertIn(result.identifier, (50, 51))

    def test_gap_only_bracket_stays_inside_bracket(self) -> None:
        timestamps = minute_timeline(range(1, 101), start=NEW_YEAR - timedelta(minutes=49), gaps=range(40, 61))
        resolver = RangeResolver(FakeCatalogClient(timestamps))
        with self.assertLogs("furcorpus.resolver", level="WARNING"):
            result = resolver.resolve_boundary(NEW_YEAR, 100, first=False)
        self.assertFalse(result.exact)
        self.assertGreaterEqual(result.identifier, 39)
        self.assertLessEqual(result.identifier, 61)

    def test_upper_bound_defaults_to_latest_id(self) -> None:
        timestamps = minute_timeline(range(1, 65), start=NEW_YEAR - timedelta(minutes=9))
        client = FakeCatalogClient(timestamps, latest_id=64)
        resolver = RangeResolver(client)
        self.assertEqual(resolver.resolve_boundary(NEW_YEAR).identifier, 10)
        self.assertEqual(resolver.latest_id, 64)

    def test_transient_fetch_is_fatal(self) -> None:
        timestamps = minute_timeline(range(1, 1001), start=NEW_YEAR - timedelta(minutes=299))
        client = FakeCatalogClient(timestamps, transient_ids={500})
        with self.assertRaises(FetchFailure) as ctx:
            RangeResolver(client).resolve_boundary(NEW_YEAR, 1000)
        self.assertEqual(ctx.exception.identifier, 500)


class ResolvePeriodTests(unittest.TestCase):
    def test_year_bounds(self) -> None:
        client = FakeCatalogClient(year_timeline(), latest_id=1000)
        id_range = RangeResolver(client).resolve_period(2019)
        self.assertEqual(id_range, IdentifierRange(2019, 101, 900, True, True))

    def test_probe_and_gap_counters_are_reported(self) -> None:
        timestamps = year_timeline()
        client = FakeCatalogClient(timestamps, latest_id=1000)
        resolver = RangeResolver(client)
        with self.assertLogs("furcorpus.resolver", level="INFO") as captured:
            resolver.resolve_period(2019)
        missing = [identifier for identifier in client.timestamp_calls if identifier not in timestamps]
        self.assertEqual(resolver.stats["probes"], len(client.timestamp_calls))
        self.assertEqual(resolver.stats["gaps"], len(missing))
        self.assertAlmostEqual(resolver.gap_rate(), len(missing) / len(client.timestamp_calls))
        expected = f"{resolver.stats['probes']} probes, {resolver.stats['gaps']} gaps"
        self.assertTrue(any(expected in line for line in captured.output))

    def test_gap_rate_without_probes(self) -> None:
        self.assertEqual(RangeResolver(FakeCatalogClient({})).gap_rate(), 0.0)

    def test_unreachable_front_page(self) -> None:
        class DownClient(FakeCatalogClient):
            def fetch_latest_id(self):
                return FetchResult.transient()

        with self.assertRaises(FetchFailure):
            RangeResolver(DownClient({})).resolve_period(2019)


if __name__ == "__main__":
    unittest.main()
