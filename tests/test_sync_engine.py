from __future__ import annotations

import json
import logging
import os
import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from matchtv.broadcasts.providers import SKY_SPORTS, TNT_SPORTS
from matchtv.ingestion import sync as sync_module
from matchtv.ingestion import teams
from matchtv.ingestion.run_log import STATUS_ERROR, STATUS_PARTIAL, STATUS_SUCCESS
from matchtv.ingestion.sportmonks_client import SportmonksAuthError, SportmonksClientError
from matchtv.ingestion.sync import (
    resync_fixture_broadcasts,
    run_sync,
    sync_competition,
    sync_competitions,
)
from matchtv.ingestion.teams import TeamResolutionError
from matchtv.log_buffer import SyncLogBuffer
from matchtv.models import Broadcast, Competition, ExternalCompetitionMapping, Fixture, SyncRunLog, Team
from matchtv.settings import ConfigurationError, SyncOptions
from tests.support import (
    IRELAND,
    UK,
    FakeSportmonksClient,
    fixture_payload,
    make_session_factory,
    seed_reference_data,
    station,
)

OPTIONS = SyncOptions(request_delay_seconds=0)


def _clock():
    return datetime(2025, 9, 1, 12, 0, tzinfo=timezone.utc)


class SyncEngineTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        self.db = self.session_factory()
        seed_reference_data(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def _fixtures(self) -> list[Fixture]:
        return self.db.query(Fixture).order_by(Fixture.id).all()

    def _station_ids(self, fixture: Fixture) -> list[int]:
        rows = (
            self.db.query(Broadcast)
            .filter(Broadcast.fixture_id == fixture.id)
            .order_by(Broadcast.id)
            .all()
        )
        return [row.external_station_id for row in rows]


class SyncCompetitionTests(SyncEngineTestCase):
    def test_new_fixture_created_with_verbatim_round(self) -> None:
        client = FakeSportmonksClient(rounds={9: ("7", [fixture_payload(19134454)])})

        stats = sync_competitions(self.db, OPTIONS, client, competition_ids=[1], clock=_clock)

        fixtures = self._fixtures()
        self.assertEqual(1, len(fixtures))
        self.assertEqual({"id": 9, "name": "7"}, fixtures[0].round)
        self.assertEqual("synced", fixtures[0].sync_status)
        self.assertEqual("scheduled", fixtures[0].status)
        self.assertEqual(1, stats.created)
        self.assertEqual(2, self.db.query(Team).count())
        self.assertEqual(3, stats.api_calls)

    def test_second_identical_run_changes_nothing(self) -> None:
        stations = [station(1, "Sky Sports Main Event", UK), station(2, "Sky Sports ROI", IRELAND)]
        client = FakeSportmonksClient(rounds={9: ("7", [fixture_payload(100, tvstations=stations)])})

        first = sync_competitions(self.db, OPTIONS, client, competition_ids=[1], clock=_clock)
        second = sync_competitions(self.db, OPTIONS, client, competition_ids=[1], clock=_clock)

        self.assertEqual((1, 0, 0), (first.created, first.updated, first.unchanged))
        self.assertEqual((0, 0, 1), (second.created, second.updated, second.unchanged))
        fixtures = self._fixtures()
        self.assertEqual(1, len(fixtures))
        self.assertEqual([1], self._station_ids(fixtures[0]))
        self.assertEqual(2, self.db.query(Team).count())

    def test_shrunk_station_list_replaces_broadcasts(self) -> None:
        stations = [
            station(1, "Sky Sports Main Event"),
            station(2, "Sky Sports Premier League"),
            station(3, "TNT Sports 1"),
        ]
        client = FakeSportmonksClient(rounds={9: ("7", [fixture_payload(100, tvstations=stations)])})
        sync_competition(self.db, 1, OPTIONS, client)

        client.rounds[9] = ("7", [fixture_payload(100, tvstations=stations[2:])])
        sync_competition(self.db, 1, OPTIONS, client)

        fixture = self._fixtures()[0]
        self.assertEqual([3], self._station_ids(fixture))
        self.assertEqual(TNT_SPORTS, fixture.broadcasts[0].provider_id)

    def test_round_label_change_updates_in_place(self) -> None:
        client = FakeSportmonksClient(rounds={9: ("7", [fixture_payload(100)])})
        sync_competition(self.db, 1, OPTIONS, client)

        client.rounds[9] = ("8", [fixture_payload(100)])
        stats = sync_competition(self.db, 1, OPTIONS, client)

        fixtures = self._fixtures()
        self.assertEqual(1, len(fixtures))
        self.assertEqual({"id": 9, "name": "8"}, fixtures[0].round)
        self.assertEqual(1, stats.updated)

    def test_finished_fixture_gets_scores(self) -> None:
        client = FakeSportmonksClient(rounds={9: ("7", [fixture_payload(100, state="NS")])})
        sync_competition(self.db, 1, OPTIONS, client)
        self.assertIsNone(self._fixtures()[0].home_score)

        client.rounds[9] = ("7", [fixture_payload(100, state="FT", scores=(3, 1))])
        sync_competition(self.db, 1, OPTIONS, client)

        fixture = self._fixtures()[0]
        self.assertEqual("finished", fixture.status)
        self.assertEqual("FT", fixture.provider_state)
        self.assertEqual((3, 1), (fixture.home_score, fixture.away_score))

    def test_missing_tvstations_include_leaves_broadcasts(self) -> None:
        client = FakeSportmonksClient(
            rounds={9: ("7", [fixture_payload(100, tvstations=[station(1, "BBC One")])])}
        )
        sync_competition(self.db, 1, OPTIONS, client)

        client.rounds[9] = ("7", [fixture_payload(100)])
        stats = sync_competition(self.db, 1, OPTIONS, client)

        self.assertEqual([1], self._station_ids(self._fixtures()[0]))
        self.assertEqual(0, stats.broadcasts_written)

    def test_tv_station_sync_can_be_switched_off(self) -> None:
        client = FakeSportmonksClient(
            rounds={9: ("7", [fixture_payload(100, tvstations=[station(1, "BBC One")])])}
        )

        sync_competition(self.db, 1, SyncOptions(request_delay_seconds=0, sync_tv_stations=False), client)

        self.assertEqual([], self._station_ids(self._fixtures()[0]))

    def test_bad_fixture_is_counted_and_batch_continues(self) -> None:
        broken = fixture_payload(101)
        broken["participants"] = []
        client = FakeSportmonksClient(rounds={9: ("7", [broken, fixture_payload(102)])})

        stats = sync_competition(self.db, 1, OPTIONS, client)

        self.assertEqual(1, stats.errors)
        self.assertEqual(1, stats.created)
        self.assertEqual(101, stats.fixture_errors[0]["external_fixture_id"])
        self.assertEqual([102], [f.external_fixture_id for f in self._fixtures()])

    def test_team_resolution_failure_skips_only_that_fixture(self) -> None:
        real_resolve = teams.resolve_team

        def flaky_resolve(db, external_team_id, external_name, **kwargs):
            if external_name == "Broken FC":
                raise TeamResolutionError("constraint violation")
            return real_resolve(db, external_team_id, external_name, **kwargs)

        client = FakeSportmonksClient(
            rounds={
                9: (
                    "7",
                    [
                        fixture_payload(101, home=(77, "Broken FC")),
                        fixture_payload(102, home=(8, "Liverpool"), away=(1, "West Ham United")),
                    ],
                )
            }
        )
        with patch("matchtv.ingestion.sync.resolve_team", side_effect=flaky_resolve):
            stats = sync_competition(self.db, 1, OPTIONS, client)

        self.assertEqual(1, stats.errors)
        self.assertEqual([77, "Broken FC"], stats.fixture_errors[0]["home"])
        self.assertEqual([102], [f.external_fixture_id for f in self._fixtures()])

    def test_duplicate_fixture_in_later_round_is_skipped(self) -> None:
        client = FakeSportmonksClient(
            rounds={9: ("7", [fixture_payload(100)]), 10: ("8", [fixture_payload(100)])}
        )

        stats = sync_competition(self.db, 1, OPTIONS, client)

        self.assertEqual(1, stats.skipped)
        self.assertEqual({"id": 9, "name": "7"}, self._fixtures()[0].round)

    def test_failed_round_fetch_skips_round_only(self) -> None:
        client = FakeSportmonksClient(
            rounds={9: ("7", [fixture_payload(100)]), 10: ("8", [fixture_payload(200)])}
        )
        client.round_errors[9] = SportmonksClientError("Sportmonks request timed out: rounds/9")

        stats = sync_competition(self.db, 1, OPTIONS, client)

        self.assertEqual(1, stats.errors)
        self.assertEqual(1, stats.rounds_processed)
        self.assertEqual([200], [f.external_fixture_id for f in self._fixtures()])
        self.assertEqual([1], stats.competitions_synced)


class CompetitionLevelErrorTests(SyncEngineTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.db.add(Competition(id=2, name="Championship", slug="championship"))
        self.db.flush()
        self.db.add(ExternalCompetitionMapping(competition_id=2, external_league_id=9, external_league_name="Championship"))
        self.db.add(Competition(id=3, name="Unmapped Cup", slug="unmapped-cup"))
        self.db.commit()

    def test_unmapped_competition_is_recorded_not_raised(self) -> None:
        client = FakeSportmonksClient(rounds={9: ("7", [fixture_payload(100)])})

        stats = sync_competitions(self.db, OPTIONS, client, competition_ids=[3, 1], clock=_clock)

        self.assertEqual([1], stats.competitions_synced)
        self.assertEqual(3, stats.competition_errors[0][0])
        run = self.db.query(SyncRunLog).one()
        self.assertEqual(STATUS_PARTIAL, run.status)
        self.assertIn("competition 3", run.error_message)

    def test_database_failure_in_one_competition_does_not_abort_run(self) -> None:
        client = FakeSportmonksClient(rounds={9: ("7", [fixture_payload(100)])})
        real_resolve = sync_module.resolve_external_league

        def failing_resolve(db, competition_id):
            if competition_id == 2:
                raise OperationalError("SELECT", {}, Exception("database is locked"))
            return real_resolve(db, competition_id)

        with patch.object(sync_module, "resolve_external_league", side_effect=failing_resolve):
            with self.assertLogs("matchtv.ingestion.sync", level="ERROR"):
                stats = sync_competitions(self.db, OPTIONS, client, competition_ids=[2, 1], clock=_clock)

        self.assertEqual([1], stats.competitions_synced)
        self.assertEqual(2, stats.competition_errors[0][0])
        self.assertIn("OperationalError", stats.competition_errors[0][1])
        self.assertEqual(1, len(self._fixtures()))
        run = self.db.query(SyncRunLog).one()
        self.assertEqual(STATUS_PARTIAL, run.status)
        self.assertIn("competition 2", run.error_message)

    def test_unknown_competition_is_recorded(self) -> None:
        stats = sync_competition(self.db, 404, OPTIONS, FakeSportmonksClient())

        self.assertEqual(404, stats.competition_errors[0][0])

    def test_auth_failure_stops_competition_and_run_log_says_error(self) -> None:
        client = FakeSportmonksClient(rounds={9: ("7", [fixture_payload(100)])})
        client.round_errors[9] = SportmonksAuthError("rejected", status=401)

        stats = sync_competitions(self.db, OPTIONS, client, competition_ids=[1], clock=_clock)

        self.assertEqual([], stats.competitions_synced)
        self.assertEqual(STATUS_ERROR, self.db.query(SyncRunLog).one().status)

    def test_no_current_season_or_rounds(self) -> None:
        no_season = sync_competition(self.db, 1, OPTIONS, FakeSportmonksClient(season_id=None))
        no_rounds = sync_competition(self.db, 1, OPTIONS, FakeSportmonksClient(rounds={}))

        self.assertEqual("no current season", no_season.competition_errors[0][1])
        self.assertIn("no rounds", no_rounds.competition_errors[0][1])

    def test_league_fetch_failure(self) -> None:
        client = FakeSportmonksClient()
        client.league_error = SportmonksClientError("Sportmonks error 500 for leagues/8", status=500)

        stats = sync_competition(self.db, 1, OPTIONS, client)

        self.assertEqual(1, len(stats.competition_errors))
        self.assertEqual(0, stats.fixtures_processed)

    def test_allow_list_filters_mapped_competitions(self) -> None:
        client = FakeSportmonksClient(rounds={9: ("7", [fixture_payload(100)])})

        stats = sync_competitions(
            self.db,
            SyncOptions(request_delay_seconds=0, competition_ids=(2,)),
            client,
            clock=_clock,
        )

        self.assertEqual([2], stats.competitions_synced)
        self.assertEqual(2, self._fixtures()[0].competition_id)


class RunLogTests(SyncEngineTestCase):
    def test_successful_run_appends_one_log_row(self) -> None:
        client = FakeSportmonksClient(
            rounds={9: ("7", [fixture_payload(100, tvstations=[station(1, "Sky Sports Main Event")])])}
        )

        sync_competitions(self.db, OPTIONS, client, competition_ids=[1], clock=_clock)

        run = self.db.query(SyncRunLog).one()
        self.assertEqual(STATUS_SUCCESS, run.status)
        self.assertEqual(1, run.competition_id)
        self.assertEqual(1, run.fixtures_processed)
        self.assertEqual(1, run.fixtures_created)
        self.assertEqual(1, run.broadcasts_written)
        self.assertEqual(3, run.api_calls_made)
        self.assertEqual(0.0, run.duration_seconds)
        self.assertEqual([1], json.loads(run.details_json)["competitions_synced"])

    def test_log_lines_and_run_log_share_the_run_id(self) -> None:
        client = FakeSportmonksClient(rounds={9: ("7", [fixture_payload(100)])})
        buffer = SyncLogBuffer()
        sync_logger = logging.getLogger("matchtv.ingestion.sync")
        sync_logger.addHandler(buffer)
        self.addCleanup(sync_logger.removeHandler, buffer)

        with self.assertLogs("matchtv.ingestion.sync", level="INFO"):
            sync_competitions(self.db, OPTIONS, client, competition_ids=[1], clock=_clock, run_id="run-42")

        self.assertEqual("run-42", self.db.query(SyncRunLog).one().run_id)
        lines = buffer.entries()
        self.assertTrue(lines)
        self.assertEqual({"run-42"}, {line["run_id"] for line in lines})

    def test_dry_run_writes_nothing(self) -> None:
        client = FakeSportmonksClient(
            rounds={9: ("7", [fixture_payload(100, tvstations=[station(1, "Sky Sports Main Event")])])}
        )

        with self.assertLogs("matchtv.ingestion.sync", level="INFO") as logs:
            stats = sync_competitions(
                self.db,
                SyncOptions(request_delay_seconds=0, dry_run=True),
                client,
                competition_ids=[1],
                clock=_clock,
            )

        self.assertEqual(1, stats.created)
        self.assertEqual([], self._fixtures())
        self.assertEqual(0, self.db.query(Team).count())
        self.assertEqual(0, self.db.query(SyncRunLog).count())
        self.assertTrue(any("[dry-run]" in line for line in logs.output))


class ResyncFixtureBroadcastsTests(SyncEngineTestCase):
    def test_refetches_and_replaces_one_fixture(self) -> None:
        client = FakeSportmonksClient(
            rounds={9: ("7", [fixture_payload(100, tvstations=[station(1, "Sky Sports Main Event")])])}
        )
        sync_competition(self.db, 1, OPTIONS, client)
        fixture = self._fixtures()[0]
        client.fixtures[100] = {"id": 100, "tvstations": [station(5, "TNT Sports 2")]}

        written = resync_fixture_broadcasts(self.db, fixture.id, OPTIONS, client)

        self.assertEqual(1, written)
        self.assertEqual([5], self._station_ids(fixture))

    def test_payload_without_include_leaves_rows(self) -> None:
        client = FakeSportmonksClient(
            rounds={9: ("7", [fixture_payload(100, tvstations=[station(1, "Sky Sports Main Event")])])}
        )
        sync_competition(self.db, 1, OPTIONS, client)
        fixture = self._fixtures()[0]
        client.fixtures[100] = {"id": 100}

        self.assertIsNone(resync_fixture_broadcasts(self.db, fixture.id, OPTIONS, client))
        self.assertEqual([1], self._station_ids(fixture))
        self.assertEqual(SKY_SPORTS, fixture.broadcasts[0].provider_id)


class RunSyncTests(SyncEngineTestCase):
    def test_missing_token_is_a_configuration_error(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ConfigurationError):
                run_sync(OPTIONS, session_factory=self.session_factory)

    def test_unreachable_provider_aborts(self) -> None:
        client = FakeSportmonksClient()

        with patch.object(client, "check_connection", side_effect=SportmonksClientError("down")):
            with self.assertRaises(SportmonksClientError):
                run_sync(OPTIONS, session_factory=self.session_factory, client=client)

    def test_runs_with_injected_client(self) -> None:
        client = FakeSportmonksClient(rounds={9: ("7", [fixture_payload(100)])})

        stats = run_sync(OPTIONS, competition_ids=[1], session_factory=self.session_factory, client=client)

        self.assertEqual(1, stats.created)
        self.assertEqual(1, self.db.query(SyncRunLog).count())


if __name__ == "__main__":
    unittest.main()
