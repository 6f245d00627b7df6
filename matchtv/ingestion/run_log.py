"""Per-run counters and the append-only sync run log."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from matchtv.models import SyncRunLog

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_PARTIAL = "partial"
STATUS_ERROR = "error"

# Keeps details_json bounded when a whole round is malformed.
MAX_RECORDED_FIXTURE_ERRORS = 50


@dataclass
class RunStats:
    rounds_processed: int = 0
    fixtures_processed: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    errors: int = 0
    broadcasts_written: int = 0
    api_calls: int = 0
    competitions_synced: list[int] = field(default_factory=list)
    # (competition_id, message)
    competition_errors: list[tuple[int, str]] = field(default_factory=list)
    fixture_errors: list[dict[str, Any]] = field(default_factory=list)

    def add_fixture_error(self, external_fixture_id: Any, message: str, **context: Any) -> None:
        self.errors += 1
        if len(self.fixture_errors) < MAX_RECORDED_FIXTURE_ERRORS:
            self.fixture_errors.append(
                {"external_fixture_id": external_fixture_id, "error": message, **context}
            )

    def add_competition_error(self, competition_id: int, message: str) -> None:
        self.competition_errors.append((competition_id, message))

    def summary(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("fixture_errors")
        return data


def run_status(stats: RunStats) -> str:
    if stats.competition_errors and not stats.competitions_synced:
        return STATUS_ERROR
    if stats.competition_errors or stats.errors:
        return STATUS_PARTIAL
    return STATUS_SUCCESS


def record_run(
    db: Session,
    stats: RunStats,
    *,
    run_id: str,
    competition_id: int | None,
    started_at: datetime,
    completed_at: datetime,
    status: str,
    error_message: str | None = None,
    details: dict[str, Any] | None = None,
) -> SyncRunLog:
    """Insert and commit one run log row. Rows are never updated afterwards."""

    payload = {
        "competitions_synced": stats.competitions_synced,
        "competition_errors": [
            {"competition_id": competition_id_, "error": message}
            for competition_id_, message in stats.competition_errors
        ],
        "fixture_errors": stats.fixture_errors,
        "rounds_processed": stats.rounds_processed,
    }
    if details:
        payload.update(details)

    if error_message is None and stats.competition_errors:
        error_message = "; ".join(
            f"competition {competition_id_}: {message}"
            for competition_id_, message in stats.competition_errors
        )

    entry = SyncRunLog(
        run_id=run_id,
        sync_type="fixtures",
        competition_id=competition_id,
        started_at=started_at,
        completed_at=completed_at,
        duration_seconds=max(0.0, (completed_at - started_at).total_seconds()),
        status=status,
        fixtures_processed=stats.fixtures_processed,
        fixtures_created=stats.created,
        fixtures_updated=stats.updated,
        fixtures_unchanged=stats.unchanged,
        fixtures_skipped=stats.skipped,
        fixtures_errors=stats.errors,
        broadcasts_written=stats.broadcasts_written,
        api_calls_made=stats.api_calls,
        error_message=error_message,
        details_json=json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str),
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info(
        "Recorded sync run run_id=%s status=%s processed=%s created=%s updated=%s errors=%s api_calls=%s",
        run_id,
        status,
        stats.fixtures_processed,
        stats.created,
        stats.updated,
        stats.errors,
        stats.api_calls,
    )
    return entry
