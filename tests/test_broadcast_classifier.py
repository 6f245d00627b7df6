from __future__ import annotations

import unittest

from matchtv.broadcasts.classifier import (
    REJECT_CHANNEL,
    REJECT_COMPETITION,
    REJECT_COUNTRY,
    REJECT_DUPLICATE,
    REJECT_KEYWORD,
    ClassificationRules,
    classify_stations,
    map_provider,
    matches_exclusion_keyword,
)
from matchtv.broadcasts.providers import AMAZON_PRIME_VIDEO, BBC, SKY_SPORTS, TNT_SPORTS
from matchtv.ingestion.schema import RawStation
from tests.support import GERMANY, IRELAND, UK


def _station(station_id: int, name: str, country_id: int | None = UK) -> RawStation:
    return RawStation(external_station_id=station_id, country_id=country_id, name=name)


class ClassifyStationsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.rules = ClassificationRules()

    def test_roi_feed_is_dropped_even_under_home_country_id(self) -> None:
        stations = [
            _station(1, "Sky Sports Main Event", UK),
            _station(2, "Sky Sports ROI Feed", IRELAND),
        ]

        result = classify_stations(stations, self.rules)

        self.assertEqual([1], [s.external_station_id for s in result.kept])
        self.assertEqual([(2, REJECT_KEYWORD)], [(s.external_station_id, r) for s, r in result.rejected])

    def test_foreign_country_ids_are_dropped(self) -> None:
        result = classify_stations([_station(3, "Sky Deutschland", GERMANY), _station(4, "BBC One", None)], self.rules)

        self.assertEqual([], result.kept)
        self.assertEqual([REJECT_COUNTRY, REJECT_COUNTRY], [reason for _, reason in result.rejected])

    def test_keywords_match_whole_words_only(self) -> None:
        self.assertTrue(matches_exclusion_keyword("Sky Sport Austria 1", ["Austria"]))
        self.assertFalse(matches_exclusion_keyword("Heroics TV", ["ROI"]))
        self.assertTrue(matches_exclusion_keyword("beIN Sports MENA", ["mena"]))

    def test_unmapped_stations_are_kept_with_null_provider(self) -> None:
        result = classify_stations([_station(5, "Premier Sports 1")], self.rules)

        self.assertEqual(1, len(result.kept))
        self.assertIsNone(result.kept[0].provider_id)
        self.assertEqual("GB", result.kept[0].country_code)

    def test_competition_exclusion_drops_provider_without_rights(self) -> None:
        stations = [_station(6, "Amazon Prime Video"), _station(7, "TNT Sports 1")]

        result = classify_stations(stations, self.rules, excluded_provider_ids=frozenset({AMAZON_PRIME_VIDEO}))

        self.assertEqual([TNT_SPORTS], [s.provider_id for s in result.kept])
        self.assertEqual([(6, REJECT_COMPETITION)], [(s.external_station_id, r) for s, r in result.rejected])

    def test_duplicate_station_ids_keep_first_occurrence(self) -> None:
        stations = [_station(8, "Sky Sports Premier League"), _station(8, "Sky Sports Premier League HD")]

        result = classify_stations(stations, self.rules)

        self.assertEqual(["Sky Sports Premier League"], [s.channel_name for s in result.kept])
        self.assertEqual([REJECT_DUPLICATE], [reason for _, reason in result.rejected])

    def test_several_stations_of_one_provider_are_all_kept(self) -> None:
        stations = [_station(9, "Sky Sports Main Event"), _station(10, "Sky Sports Premier League")]

        result = classify_stations(stations, self.rules)

        self.assertEqual([SKY_SPORTS, SKY_SPORTS], [s.provider_id for s in result.kept])

    def test_excluded_channel_names_are_exact_and_case_insensitive(self) -> None:
        rules = ClassificationRules(excluded_channel_names=("bbc scotland",))

        result = classify_stations([_station(11, "BBC Scotland"), _station(12, "BBC One")], rules)

        self.assertEqual([12], [s.external_station_id for s in result.kept])
        self.assertEqual([REJECT_CHANNEL], [reason for _, reason in result.rejected])

    def test_home_country_set_is_configurable(self) -> None:
        rules = ClassificationRules(home_country_ids=frozenset({UK}))

        result = classify_stations([_station(13, "Sky Sports Main Event", IRELAND)], rules)

        self.assertEqual([], result.kept)


class MapProviderTests(unittest.TestCase):
    def test_brand_keywords_are_case_insensitive(self) -> None:
        keywords = ClassificationRules().provider_keywords

        self.assertEqual(SKY_SPORTS, map_provider("SKY GO Extra", keywords))
        self.assertEqual(TNT_SPORTS, map_provider("BT Sport 1", keywords))
        self.assertEqual(BBC, map_provider("BBC iPlayer", keywords))
        self.assertEqual(AMAZON_PRIME_VIDEO, map_provider("Prime Video", keywords))
        self.assertIsNone(map_provider("Viaplay", keywords))


if __name__ == "__main__":
    unittest.main()
