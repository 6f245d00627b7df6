"""Pick the one broadcaster to display for a fixture."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Protocol, Sequence

from sqlalchemy.orm import Session

from matchtv.broadcasts.providers import PROVIDER_PRIORITY, get_provider
from matchtv.models import Broadcast, Fixture, Provider

KIND_PROVIDER = "provider"
KIND_TBD = "tbd"
KIND_BLACKOUT = "blackout"


class FixtureNotFoundError(LookupError):
    pass


class BroadcastLike(Protocol):
    id: int
    provider_id: int | None
    channel_name: str


@dataclass(frozen=True)
class BroadcasterSelection:
    kind: str
    provider_id: int | None = None
    provider_name: str | None = None
    # Stations of the selected provider, in insertion order.
    channels: tuple[str, ...] = ()
    # Never selected, still shown as supplementary listings.
    unmapped_channels: tuple[str, ...] = ()


def _rank(provider_id: int, priority: Sequence[int]) -> int:
    try:
        return priority.index(provider_id)
    except ValueError:
        return len(priority)


def choose_primary(
    broadcasts: Iterable[BroadcastLike],
    *,
    is_blackout: bool = False,
    priority: Sequence[int] = PROVIDER_PRIORITY,
) -> BroadcasterSelection:
    """Pure selection over a stored broadcast set.

    Providers missing from ``priority`` rank after every listed one. Equal
    ranks resolve to the lowest broadcast id, i.e. the first inserted row.
    """

    if is_blackout:
        return BroadcasterSelection(kind=KIND_BLACKOUT)

    ordered = sorted(broadcasts, key=lambda broadcast: broadcast.id)
    unmapped = tuple(b.channel_name for b in ordered if b.provider_id is None)
    mapped = [b for b in ordered if b.provider_id is not None]
    if not mapped:
        return BroadcasterSelection(kind=KIND_TBD, unmapped_channels=unmapped)

    priority = tuple(priority)
    best = min(mapped, key=lambda b: (_rank(b.provider_id, priority), b.id))
    spec = get_provider(best.provider_id)
    return BroadcasterSelection(
        kind=KIND_PROVIDER,
        provider_id=best.provider_id,
        provider_name=spec.name if spec else None,
        channels=tuple(b.channel_name for b in mapped if b.provider_id == best.provider_id),
        unmapped_channels=unmapped,
    )


def with_provider_name(db: Session, selection: BroadcasterSelection) -> BroadcasterSelection:
    """Fill ``provider_name`` from the providers table for operator-added providers."""

    if selection.kind != KIND_PROVIDER or selection.provider_name is not None:
        return selection
    provider = db.get(Provider, selection.provider_id)
    if provider is None:
        return selection
    return replace(selection, provider_name=provider.name)


def select_primary_broadcaster(
    db: Session,
    fixture_id: int,
    priority: Sequence[int] = PROVIDER_PRIORITY,
) -> BroadcasterSelection:
    fixture = db.get(Fixture, fixture_id)
    if fixture is None:
        raise FixtureNotFoundError(f"fixture {fixture_id} does not exist")

    broadcasts = (
        db.query(Broadcast)
        .filter(Broadcast.fixture_id == fixture_id)
        .order_by(Broadcast.id)
        .all()
    )
    selection = choose_primary(broadcasts, is_blackout=bool(fixture.is_blackout), priority=priority)
    return with_provider_name(db, selection)
