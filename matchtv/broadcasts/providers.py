"""Broadcaster brands used for display grouping and primary-broadcaster selection."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ProviderSpec:
    id: int
    name: str
    slug: str
    type: str
    url: str
    keywords: tuple[str, ...]


SKY_SPORTS = 1
TNT_SPORTS = 2
BBC = 3
AMAZON_PRIME_VIDEO = 4
ITV = 5

PROVIDERS: tuple[ProviderSpec, ...] = (
    ProviderSpec(
        id=SKY_SPORTS,
        name="Sky Sports",
        slug="sky-sports",
        type="tv",
        url="https://www.skysports.com/football/fixtures-results",
        # Upstream lists Sky feeds under several names ("Sky Go", "Sky Ultra HD", "Sky+").
        keywords=("sky sports", "sky go", "sky ultra hd", "sky+"),
    ),
    ProviderSpec(
        id=TNT_SPORTS,
        name="TNT Sports",
        slug="tnt-sports",
        type="tv",
        url="https://tntsports.co.uk/football",
        keywords=("tnt", "bt sport", "discovery+"),
    ),
    ProviderSpec(
        id=BBC,
        name="BBC",
        slug="bbc",
        type="tv",
        url="https://www.bbc.co.uk/sport/football",
        keywords=("bbc",),
    ),
    ProviderSpec(
        id=AMAZON_PRIME_VIDEO,
        name="Amazon Prime Video",
        slug="amazon-prime-video",
        type="streaming",
        url="https://www.amazon.co.uk/primevideo",
        keywords=("amazon", "prime video"),
    ),
    ProviderSpec(
        id=ITV,
        name="ITV",
        slug="itv",
        type="tv",
        url="https://www.itv.com/watch/categories/sport",
        keywords=("itv",),
    ),
)

# Highest first.
PROVIDER_PRIORITY: tuple[int, ...] = (TNT_SPORTS, SKY_SPORTS, BBC, ITV, AMAZON_PRIME_VIDEO)

_BY_ID = {provider.id: provider for provider in PROVIDERS}


def get_provider(provider_id: int) -> ProviderSpec | None:
    return _BY_ID.get(provider_id)


def default_provider_keywords() -> tuple[tuple[str, int], ...]:
    """Flatten the catalog into ``(keyword, provider_id)`` pairs in catalog order."""

    return tuple(
        (keyword, provider.id)
        for provider in PROVIDERS
        for keyword in provider.keywords
    )
