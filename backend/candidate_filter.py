"""Pre-planning relevance filter for the nearby candidate pool.

The planner prompt must stay small, so only a handful of candidates per kind
are handed over. A candidate qualifies when it is inside the search radius and
its category is on the visitable allow-list; qualifying candidates are ranked
by keyword overlap with the user's request.
"""

import logging
from collections.abc import Iterable, Mapping

from config import DEFAULT_CATEGORY_CAPS, DEFAULT_VISITABLE_CATEGORIES
from geo_math import LatLng, haversine_m, is_valid_coordinate
from models import Waypoint

logger = logging.getLogger(__name__)

# Score added for an allow-listed category, on top of keyword hits.
CATEGORY_BONUS: int = 1

# Keywords shorter than this carry no signal ("a", "to", "in").
MIN_KEYWORD_LENGTH: int = 3


class CategoryAllowList:
    """Case-insensitive set of visitable categories.

    An entry admits a category equal to it, or any dotted sub-category:
    ``"catering"`` admits ``"catering.cafe"`` but not ``"cateringservice"``.
    """

    def __init__(self, categories: Iterable[str]) -> None:
        self._entries = frozenset(c.strip().lower() for c in categories if c.strip())

    def __contains__(self, category: object) -> bool:
        if not isinstance(category, str):
            return False
        value = category.strip().lower()
        if not value:
            return False
        if value in self._entries:
            return True
        parts = value.split(".")
        return any(".".join(parts[:i]) in self._entries for i in range(1, len(parts)))

    def __len__(self) -> int:
        return len(self._entries)


DEFAULT_ALLOW_LIST = CategoryAllowList(DEFAULT_VISITABLE_CATEGORIES)


def extract_keywords(text: str) -> list[str]:
    """Lower-cased whitespace tokens longer than two characters."""
    return [w for w in text.lower().split() if len(w) >= MIN_KEYWORD_LENGTH]


def _score(candidate: Waypoint, keywords: list[str]) -> int:
    haystack = f"{candidate.name} {candidate.category} {candidate.description}".lower()
    return sum(1 for kw in keywords if kw in haystack) + CATEGORY_BONUS


def filter_candidates(
    pool: list[Waypoint],
    origin: LatLng,
    search_radius_m: float,
    text: str,
    max_results: int,
    allow_list: CategoryAllowList | None = None,
) -> list[Waypoint]:
    """Returns the ranked, truncated subset of ``pool`` worth planning with.

    Args:
        pool: Candidates in the order the search returned them.
        origin: The user's position.
        search_radius_m: Candidates farther than this are excluded.
        text: Free-text trip request used for keyword ranking.
        max_results: Maximum number of candidates returned.
        allow_list: Visitable categories; defaults to the built-in list.

    Returns:
        Qualifying candidates, best first. Equal scores keep pool order.
        Possibly empty; never raises for malformed candidates.
    """
    allowed = allow_list if allow_list is not None else DEFAULT_ALLOW_LIST
    keywords = extract_keywords(text)

    scored: list[tuple[int, Waypoint]] = []
    for candidate in pool:
        if not is_valid_coordinate(candidate.latitude, candidate.longitude):
            logger.warning(
                "Skipping candidate %r: invalid coordinates (%s, %s)",
                candidate.id, candidate.latitude, candidate.longitude,
            )
            continue
        if haversine_m(origin, candidate.coord) > search_radius_m:
            continue
        if candidate.category not in allowed:
            logger.debug(
                "Skipping candidate %r: category %r not visitable",
                candidate.id, candidate.category,
            )
            continue
        scored.append((_score(candidate, keywords), candidate))

    # sorted() is stable, so ties keep their original pool order.
    ranked = sorted(scored, key=lambda item: item[0], reverse=True)
    return [candidate for _, candidate in ranked[: max(0, max_results)]]


def select_candidates(
    pools: Mapping[str, list[Waypoint]],
    origin: LatLng,
    search_radius_m: float,
    text: str,
    *,
    caps: Mapping[str, int] | None = None,
    allow_list: CategoryAllowList | None = None,
) -> dict[str, list[Waypoint]]:
    """Filters each pool with its own cap to bias the mix handed to the planner.

    Kinds missing from ``caps`` fall back to the largest configured cap.
    """
    caps = caps if caps is not None else DEFAULT_CATEGORY_CAPS
    default_cap = max(caps.values(), default=0)

    selected = {
        kind: filter_candidates(
            pool, origin, search_radius_m, text, caps.get(kind, default_cap), allow_list
        )
        for kind, pool in pools.items()
    }
    logger.info(
        "Selected candidates: %s",
        ", ".join(f"{kind}={len(items)}" for kind, items in selected.items()),
    )
    return selected
