import json
import tempfile
import unittest
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path

import reporter
from furcorpus import config
from furcorpus.models import IdentifierRange
from furcorpus.store import SQLiteCorpusStore
from tests.fakes import make_entry

WHEN = datetime(2019, 4, 1, 12, 0, tzinfo=timezone.utc)

NSFW_LIST = {"tags": ["explicit", "nude"], "themes": ["Fetish Other"]}
TYPES_LIST = {
    "nudity": {"tags": ["nude"], "themes": []},
    "fetish": {"tags": ["latex"], "themes": ["fetish other"]},
}


class ClassificationTests(unittest.TestCase):
    def test_adult_rating_is_nsfw(self) -> None:
        self.assertTrue(reporter.possibly_nsfw(make_entry(1, WHEN, rating="adult"), NSFW_LIST))

    def test_keyword_in_tags_title_or_description(self) -> None:
        self.assertTrue(reporter.possibly_nsfw(make_entry(1, WHEN, tags=("Explicit",)), NSFW_LIST))
        self.assertTrue(reporter.possibly_nsfw(make_entry(2, WHEN, title="Nude study, charcoal"), NSFW_LIST))
        self.assertTrue(reporter.possibly_nsfw(make_entry(3, WHEN, description="an EXPLICIT piece"), NSFW_LIST))
        self.assertFalse(reporter.possibly_nsfw(make_entry(4, WHEN, title="Nudelholz"), NSFW_LIST))

    def test_theme_match(self) -> None:
        self.assertTrue(reporter.possibly_nsfw(make_entry(1, WHEN, theme="Fetish Other"), NSFW_LIST))
        self.assertFalse(reporter.possibly_nsfw(make_entry(2, WHEN, theme="Landscape / Scenery"), NSFW_LIST))

    def test_types_match_by_tag_then_theme(self) -> None:
        entry = make_entry(1, WHEN, tags=("nude",), theme="Fetish Other")
        self.assertEqual(reporter.nsfw_types(entry, TYPES_LIST), ["nudity", "fetish"])
        self.assertEqual(reporter.nsfw_types(make_entry(2, WHEN), TYPES_LIST), [])

    def test_tokenize(self) -> None:
        self.assertEqual(reporter.tokenize("Fox & Wolf: part_2!"), ["fox", "wolf", "part_2"])
        self.assertEqual(reporter.tokenize(None), [])

    def test_tokenize_keeps_non_ascii_words_whole(self) -> None:
        self.assertEqual(reporter.tokenize("Café au lait"), ["café", "au", "lait"])
        self.assertEqual(reporter.tokenize("Лиса и Волк"), ["лиса", "и", "волк"])

    def test_non_ascii_keyword_in_title(self) -> None:
        nsfw_list = {"tags": ["обнажённая"], "themes": []}
        self.assertTrue(reporter.possibly_nsfw(make_entry(1, WHEN, title="Обнажённая натура"), nsfw_list))
        self.assertFalse(reporter.possibly_nsfw(make_entry(2, WHEN, title="Café"), {"tags": ["caf"], "themes": []}))


class BuildReportTests(unittest.TestCase):
    def _entries(self):
        entries = []
        for identifier in range(8):
            entries.append(make_entry(identifier, WHEN, rating="general", tags=("Fox", "sunset"), theme="Landscape"))
        for identifier in range(8, 15):
            entries.append(make_entry(identifier, WHEN, rating="adult", tags=("fox", "nude")))
        entries.append(make_entry(15, WHEN, rating=None, tags=("fox",)))
        return entries

    def test_bucket_totals(self) -> None:
        report = reporter.build_report(self._entries(), NSFW_LIST, TYPES_LIST)
        self.assertEqual(report["all"]["total"], 16)
        self.assertEqual(report["all"]["nsfwTotal"], 7)
        self.assertEqual(report["general"]["total"], 8)
        self.assertEqual(report["adult"]["nsfwTotal"], 7)
        self.assertEqual(report["mature"]["total"], 0)

    def test_thresholded_ranking(self) -> None:
        report = reporter.build_report(self._entries(), NSFW_LIST, TYPES_LIST)
        self.assertEqual(
            report["all"]["topTags"],
            [{"total": 16, "tag": "fox"}, {"total": 8, "tag": "sunset"}, {"total": 7, "tag": "nude"}],
        )
        self.assertEqual(report["general"]["topThemes"], [{"total": 8, "theme": "landscape"}])
        self.assertEqual(report["adult"]["topThemes"], [])
        self.assertEqual(report["all"]["nsfwTypes"], [{"total": 7, "nsfwType": "nudity"}])
        self.assertNotIn("nsfwTypes", report["general"])

    def test_top_n_and_min_count(self) -> None:
        report = reporter.build_report(self._entries(), NSFW_LIST, TYPES_LIST, min_count=7, top_n=1)
        self.assertEqual(report["all"]["topTags"], [{"total": 16, "tag": "fox"}])

    def test_rank_keeps_first_seen_order_on_ties(self) -> None:
        counter = Counter({"b": 9, "a": 9, "c": 10})
        self.assertEqual(
            reporter.rank(counter, "tag", 5, None),
            [{"total": 10, "tag": "c"}, {"total": 9, "tag": "b"}, {"total": 9, "tag": "a"}],
        )


class MainTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.db_path = self.root / "corpus.sqlite"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_missing_range_exit_status(self) -> None:
        out = self.root / "report.json"
        self.assertEqual(reporter.main(["--year", "2019", "--db", str(self.db_path), "--out", str(out)]), 1)
        self.assertFalse(out.exists())

    def test_writes_report_with_packaged_lists(self) -> None:
        store = SQLiteCorpusStore(self.db_path)
        try:
            store.put_range(IdentifierRange(2019, 1, 100))
            for identifier in range(1, 8):
                store.insert(make_entry(identifier, WHEN, rating="mature", tags=("dragon",)))
        finally:
            store.close()
        out = self.root / "out" / "report.json"
        status = reporter.main(["--year", "2019", "--db", str(self.db_path), "--out", str(out)])
        self.assertEqual(status, 0)
        report = json.loads(out.read_text(encoding="utf-8"))
        self.assertEqual(set(report), set(config.REPORT_RATINGS))
        self.assertEqual(report["mature"]["total"], 7)
        self.assertEqual(report["mature"]["topTags"], [{"total": 7, "tag": "dragon"}])


if __name__ == "__main__":
    unittest.main()
