import unittest

from manifest_matcher import match, normalize_seat, progress, remaining_passengers
from models import FlightManifestSnapshot, ManifestEntry, ParsedBoardingPass
from fakes import make_manifest


class TestMatch(unittest.TestCase):

    def setUp(self):
        self.manifest = make_manifest()

    def test_seat_only_matches(self):
        result = match(ParsedBoardingPass(seat="12A"), self.manifest)
        self.assertTrue(result.matched)
        self.assertEqual(result.entry.passenger_name, "John Smith")
        self.assertEqual(result.key, "ABC123_12A")
        self.assertEqual(result.rule, "seat")

    def test_unknown_pnr_without_seat_does_not_match(self):
        result = match(ParsedBoardingPass(pnr="XYZ999"), self.manifest)
        self.assertFalse(result.matched)
        self.assertIsNone(result.entry)

    def test_pnr_is_case_insensitive(self):
        result = match(ParsedBoardingPass(pnr="abc123"), self.manifest)
        self.assertEqual(result.entry.id, 2)
        self.assertEqual(result.rule, "pnr")

    def test_zero_padded_bcbp_seat(self):
        result = match(ParsedBoardingPass(seat="012A"), self.manifest)
        self.assertEqual(result.entry.id, 2)

    def test_name_substring(self):
        result = match(ParsedBoardingPass(passenger_name="JOHN SMITH"), self.manifest)
        self.assertEqual(result.entry.id, 2)
        self.assertEqual(result.rule, "name")

    def test_first_entry_satisfying_any_rule_wins(self):
        # PNR points at entry 2, seat at entry 1; entry 1 comes first
        result = match(ParsedBoardingPass(pnr="ABC123", seat="3C"), self.manifest)
        self.assertEqual(result.entry.id, 1)
        self.assertEqual(result.rule, "seat")

    def test_empty_parse_never_matches(self):
        self.assertFalse(match(ParsedBoardingPass(), self.manifest).matched)

    def test_list_not_loaded(self):
        manifest = FlightManifestSnapshot(flight_number="ET500", disembarking_passengers=None)
        self.assertFalse(match(ParsedBoardingPass(seat="12A"), manifest).matched)
        self.assertFalse(match(ParsedBoardingPass(seat="12A"), None).matched)

    def test_normalize_seat(self):
        self.assertEqual(normalize_seat("012a"), "12A")
        self.assertEqual(normalize_seat(" 3C "), "3C")
        self.assertEqual(normalize_seat(None), "")
        self.assertEqual(normalize_seat("JUMP"), "JUMP")


class TestProgress(unittest.TestCase):

    def test_remaining_in_manifest_order(self):
        manifest = make_manifest()
        remaining = remaining_passengers(manifest, {"ABC123_12A"})
        self.assertEqual([e.id for e in remaining], [1, 3])

    def test_counter_and_complete(self):
        manifest = make_manifest()
        self.assertEqual(
            progress(manifest, {"ABC123_12A"}),
            {"scanned": 1, "disembarking": 3, "remaining": 2, "complete": False},
        )
        keys = {e.match_key for e in manifest.disembarking_passengers}
        self.assertTrue(progress(manifest, keys)["complete"])

    def test_match_key_normalization(self):
        entry = ManifestEntry("x", " 12a ", "abc123")
        self.assertEqual(entry.match_key, "ABC123_12A")
        self.assertEqual(ManifestEntry("x", None, None).match_key, "_")


if __name__ == '__main__':
    unittest.main()
