"""Turn a fixture's raw per-country station list into the home-market broadcast set.

Everything here is pure: no database, no HTTP. The sync engine, the probe
command and ad-hoc investigations all call the same functions.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from matchtv.broadcasts.providers import default_provider_keywords
from matchtv.ingestion.schema import RawStation

# Upstream labels some home-market feeds under the Ireland (455) and England (462)
# ids as well as the UK id (11). Revisit if the provider cleans up its country ids.
DEFAULT_HOME_COUNTRY_IDS = frozenset({11, 455, 462})
DEFAULT_HOME_COUNTRY_CODE = "GB"

# Matched as whole words, case-insensitively.
DEFAULT_EXCLUSION_KEYWORDS: tuple[str, ...] = (
    "ROI",
    "Germany", "Deutschland", "France", "Spain", "Italy", "Italia", "Portugal",
    "Netherlands", "Belgium", "Austria", "Switzerland", "Poland", "Turkey",
    "Greece", "Denmark", "Sweden", "Norway", "Finland", "Czech", "Hungary",
    "Russia", "Ukraine", "Romania", "Serbia", "Croatia", "Bulgaria",
    "Arabic", "MENA", "Asia", "Africa", "Latin America", "Sport Uno",
)

REJECT_COUNTRY = "country"
REJECT_KEYWORD = "exclusion_keyword"
REJECT_CHANNEL = "excluded_channel"
REJECT_COMPETITION = "competition_rights"
REJECT_DUPLICATE = "duplicate_station"


@dataclass(frozen=True)
class ClassificationRules:
    home_country_ids: frozenset[int] = DEFAULT_HOME_COUNTRY_IDS
    home_country_code: str = DEFAULT_HOME_COUNTRY_CODE
    exclusion_keywords: tuple[str, ...] = DEFAULT_EXCLUSION_KEYWORDS
    excluded_channel_names: tuple[str, ...] = ()
    provider_keywords: tuple[tuple[str, int], ...] = field(default_factory=default_provider_keywords)


@dataclass(frozen=True)
class ClassifiedStation:
    external_station_id: int
    channel_name: str
    broadcaster_type: str
    country_id: int | None
    country_code: str
    provider_id: int | None


@dataclass
class ClassificationResult:
    kept: list[ClassifiedStation] = field(default_factory=list)
    rejected: list[tuple[RawStation, str]] = field(default_factory=list)


def _keyword_pattern(keywords: Iterable[str]) -> re.Pattern[str] | None:
    escaped = [re.escape(keyword.strip()) for keyword in keywords if keyword.strip()]
    if not escaped:
        return None
    return re.compile(r"(?<!\w)(?:" + "|".join(escaped) + r")(?!\w)", re.IGNORECASE)


def matches_exclusion_keyword(name: str, keywords: Sequence[str]) -> bool:
    pattern = _keyword_pattern(keywords)
    return bool(pattern and pattern.search(name))


def map_provider(name: str, provider_keywords: Sequence[tuple[str, int]]) -> int | None:
    """Return the provider id of the first keyword contained in ``name``, or None."""

    lowered = name.lower()
    for keyword, provider_id in provider_keywords:
        if keyword.lower() in lowered:
            return provider_id
    return None


def classify_stations(
    stations: Iterable[RawStation],
    rules: ClassificationRules,
    *,
    excluded_provider_ids: frozenset[int] = frozenset(),
) -> ClassificationResult:
    """Filter, map and dedupe the stations of one fixture.

    ``excluded_provider_ids`` are the providers without rights for the
    fixture's competition at sync time (see ``store.load_excluded_provider_ids``).
    Stations that match no provider keyword are kept with ``provider_id=None``.
    """

    result = ClassificationResult()
    keyword_pattern = _keyword_pattern(rules.exclusion_keywords)
    excluded_names = {name.strip().lower() for name in rules.excluded_channel_names}
    seen_station_ids: set[int] = set()

    for station in stations:
        if station.country_id not in rules.home_country_ids:
            result.rejected.append((station, REJECT_COUNTRY))
            continue
        name = station.name.strip()
        if keyword_pattern is not None and keyword_pattern.search(name):
            result.rejected.append((station, REJECT_KEYWORD))
            continue
        if name.lower() in excluded_names:
            result.rejected.append((station, REJECT_CHANNEL))
            continue

        provider_id = map_provider(name, rules.provider_keywords)
        if provider_id is not None and provider_id in excluded_provider_ids:
            result.rejected.append((station, REJECT_COMPETITION))
            continue
        if station.external_station_id in seen_station_ids:
            result.rejected.append((station, REJECT_DUPLICATE))
            continue
        seen_station_ids.add(station.external_station_id)

        result.kept.append(
            ClassifiedStation(
                external_station_id=station.external_station_id,
                channel_name=station.name,
                broadcaster_type=station.type or "tv",
                country_id=station.country_id,
                country_code=rules.home_country_code,
                provider_id=provider_id,
            )
        )
    return result
