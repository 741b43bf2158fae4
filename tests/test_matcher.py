from __future__ import annotations

import unittest

from helpers import BIRTH_REGISTRATION, BUILDING_PERMIT, HEADER, MINING_PERMIT, RETAIL_LICENSE, make_row

from tthc_bot.catalog import EMPTY_SNAPSHOT, build_snapshot
from tthc_bot.matcher import Candidate, MatcherConfig, ProcedureMatcher, is_decisive, token_containment


def snapshot_of(*rows):
    return build_snapshot(HEADER, list(rows), version=1, loaded_at=0.0)


class SearchTests(unittest.TestCase):
    def setUp(self) -> None:
        self.snapshot = snapshot_of(BUILDING_PERMIT, MINING_PERMIT, RETAIL_LICENSE, BIRTH_REGISTRATION)
        self.matcher = ProcedureMatcher()

    def test_empty_query_returns_nothing(self) -> None:
        self.assertEqual(self.matcher.search(self.snapshot, ""), [])
        self.assertEqual(self.matcher.search(self.snapshot, "   "), [])

    def test_empty_catalog_returns_nothing(self) -> None:
        self.assertEqual(self.matcher.search(EMPTY_SNAPSHOT, "giay phep xay dung"), [])

    def test_substring_of_single_name_ranks_first(self) -> None:
        results = self.matcher.search(self.snapshot, "giay phep xay dung")

        self.assertEqual(results[0].record.procedure_id, "1.009972")
        self.assertTrue(results[0].exact)
        self.assertTrue(all(not candidate.exact for candidate in results[1:]))

    def test_accented_query_matches_like_plain(self) -> None:
        plain = self.matcher.search(self.snapshot, "dang ky khai sinh")
        accented = self.matcher.search(self.snapshot, "Đăng Ký Khai Sinh")

        self.assertEqual(plain[0].record.procedure_id, "1.001193")
        self.assertEqual(plain[0].confidence, 1.0)
        self.assertEqual(accented[0].record.procedure_id, "1.001193")
        self.assertEqual(accented[0].confidence, 1.0)

    def test_unrelated_query_matches_nothing(self) -> None:
        self.assertEqual(self.matcher.search(self.snapshot, "xyz_does_not_exist"), [])

    def test_shared_phrase_returns_both_by_confidence(self) -> None:
        results = self.matcher.search(self.snapshot, "cấp phép")

        ids = [c.record.procedure_id for c in results]
        self.assertEqual(ids, ["2.000620", "2.001777"])
        self.assertGreater(results[0].confidence, results[1].confidence)

    def test_fuzzy_tolerates_typos(self) -> None:
        results = self.matcher.search(self.snapshot, "dang ki khai sin")

        self.assertTrue(results)
        self.assertEqual(results[0].record.procedure_id, "1.001193")
        self.assertFalse(results[0].exact)

    def test_no_duplicate_ids(self) -> None:
        snapshot = snapshot_of(
            BIRTH_REGISTRATION,
            make_row("1.001193", "Đăng ký khai sinh có yếu tố nước ngoài"),
            make_row("1.001194", "Đăng ký lại khai sinh"),
        )
        results = self.matcher.search(snapshot, "dang ky khai sinh")

        ids = [c.record.procedure_id for c in results]
        self.assertEqual(len(ids), len(set(ids)))
        self.assertEqual(results[0].record.name, "Đăng ký khai sinh")

    def test_limit_truncates(self) -> None:
        results = self.matcher.search(self.snapshot, "cap phep", limit=1)

        self.assertEqual(len(results), 1)

    def test_anchor_phrase_filters_other_domains(self) -> None:
        loose = ProcedureMatcher(MatcherConfig(threshold=0.3))
        guarded = ProcedureMatcher(MatcherConfig(threshold=0.3, anchor_phrases=("xây dựng",)))

        loose_ids = {c.record.procedure_id for c in loose.search(self.snapshot, "cap phep xay dung")}
        guarded_results = guarded.search(self.snapshot, "cap phep xay dung")

        self.assertIn("2.000620", loose_ids)
        self.assertTrue(guarded_results)
        self.assertTrue(all("xay dung" in c.record.name_norm for c in guarded_results))
        self.assertIn("1.009972", {c.record.procedure_id for c in guarded_results})

    def test_anchor_not_in_query_has_no_effect(self) -> None:
        guarded = ProcedureMatcher(MatcherConfig(anchor_phrases=("xay dung",)))

        results = guarded.search(self.snapshot, "dang ky khai sinh")

        self.assertEqual(results[0].record.procedure_id, "1.001193")


class DecisivenessTests(unittest.TestCase):
    def setUp(self) -> None:
        snapshot = snapshot_of(BUILDING_PERMIT, MINING_PERMIT, RETAIL_LICENSE)
        self.a, self.b, self.c = snapshot.records

    def test_empty_and_single(self) -> None:
        self.assertFalse(is_decisive([]))
        self.assertTrue(is_decisive([Candidate(self.a, 0.5)]))

    def test_single_exact_beats_fuzzy(self) -> None:
        ranked = [Candidate(self.a, 0.6, exact=True), Candidate(self.b, 0.9)]
        self.assertTrue(is_decisive(ranked))

    def test_close_exact_matches_are_ambiguous(self) -> None:
        ranked = [Candidate(self.c, 0.7, exact=True), Candidate(self.b, 0.56, exact=True)]
        self.assertFalse(is_decisive(ranked))

    def test_clear_fuzzy_leader(self) -> None:
        self.assertTrue(is_decisive([Candidate(self.a, 0.95), Candidate(self.b, 0.6)]))
        self.assertFalse(is_decisive([Candidate(self.a, 0.85), Candidate(self.b, 0.8)]))


class ContainmentTests(unittest.TestCase):
    def test_weighted_by_token_length(self) -> None:
        self.assertEqual(token_containment(["khai", "sinh"], "dang ky khai sinh"), 1.0)
        self.assertAlmostEqual(token_containment(["khai", "xe"], "dang ky khai sinh"), 4 / 6)
        self.assertEqual(token_containment([], "dang ky"), 0.0)


if __name__ == "__main__":
    unittest.main()
