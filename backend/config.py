"""Runtime configuration for the trip engine.

Everything is read from environment variables once at process start, the same
variables the map client already uses for its own keys. ``load_settings`` takes
an explicit mapping so tests can build a ``Settings`` without touching
``os.environ``.
"""

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field

from geo_math import DEFAULT_WALKING_SPEED_M_PER_MIN

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

# Routing providers tried in this order; the first one with credentials wins.
DEFAULT_PROVIDER_ORDER: tuple[str, ...] = ("google", "mapbox", "osrm")

DEFAULT_OSRM_BASE_URL: str = "https://router.project-osrm.org"

# Per-leg routing timeout. A slow leg degrades to a straight line.
DEFAULT_LEG_TIMEOUT_S: float = 5.0

# Maximum routing calls in flight for one itinerary.
DEFAULT_MAX_CONCURRENCY: int = 3

DEFAULT_SEARCH_RADIUS_M: float = 2000.0

# How many candidates of each kind are handed to the trip planner.
DEFAULT_CATEGORY_CAPS: dict[str, int] = {
    "historical": 3,
    "food": 3,
    "accommodation": 2,
}

# Categories considered "visitable". Entries are either Geoapify category
# keys (matched by dotted prefix, so "catering" admits "catering.cafe") or
# the display names produced by the POI search services.
DEFAULT_VISITABLE_CATEGORIES: frozenset = frozenset(
    {
        # Geoapify keys
        "tourism", "heritage", "religion", "catering", "accommodation",
        "entertainment.museum", "entertainment.culture", "building.historic",
        "leisure.park",
        # Historical display names
        "museum", "tourist sight", "tourist attraction", "cultural attraction",
        "monument", "castle", "archaeological site", "heritage site",
        "tourist destination", "historical", "church", "memorial",
        # Food & beverage display names
        "restaurant", "cafe", "bar", "fast food", "pub", "bistro", "pizzeria",
        "bakery", "ice cream shop", "food & beverage", "coffee",
        # Accommodation display names
        "hotel", "hostel", "guest house", "motel", "camping", "caravan site",
        "alpine hut", "chalet", "holiday apartment", "holiday home",
        "apartment", "resort", "inn", "bed & breakfast",
    }
)


class Settings(BaseModel):
    """Process-wide configuration resolved once at startup."""

    google_maps_api_key: str = ""
    mapbox_api_key: str = ""
    osrm_base_url: str = DEFAULT_OSRM_BASE_URL
    osrm_enabled: bool = True
    routing_providers: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PROVIDER_ORDER)
    )
    leg_timeout_s: float = DEFAULT_LEG_TIMEOUT_S
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    walking_speed_m_per_min: float = DEFAULT_WALKING_SPEED_M_PER_MIN
    default_search_radius_m: float = DEFAULT_SEARCH_RADIUS_M
    category_caps: dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_CAPS)
    )
    visitable_categories: frozenset[str] = DEFAULT_VISITABLE_CATEGORIES
    anthropic_api_key: str = ""
    openai_api_key: str = ""


def _as_bool(value: str) -> bool:
    return value.strip().lower() not in {"0", "false", "no", "off", ""}


def load_visitable_categories(path: str | Path) -> frozenset:
    """Reads a category allow-list from a JSON file.

    The file holds either a JSON array of strings or an object with a
    ``"categories"`` array. Entries are lower-cased and stripped.

    Raises:
        ValueError: If the file does not contain a list of strings.
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("categories")
    if not isinstance(raw, list) or not all(isinstance(c, str) for c in raw):
        raise ValueError(f"{path}: expected a JSON list of category strings.")
    return frozenset(c.strip().lower() for c in raw if c.strip())


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Builds ``Settings`` from environment variables.

    Args:
        environ: Mapping to read from. Defaults to ``os.environ``.

    Returns:
        A fully-populated ``Settings`` instance.

    Raises:
        ValueError: If a numeric variable cannot be parsed or the category
            file is malformed.
    """
    env = os.environ if environ is None else environ

    providers = [
        p.strip().lower()
        for p in env.get("ROUTING_PROVIDERS", ",".join(DEFAULT_PROVIDER_ORDER)).split(",")
        if p.strip()
    ]

    categories = DEFAULT_VISITABLE_CATEGORIES
    categories_file = env.get("VISITABLE_CATEGORIES_FILE", "").strip()
    if categories_file:
        categories = load_visitable_categories(categories_file)
        logger.info(
            "Loaded %d visitable categories from %s", len(categories), categories_file
        )

    return Settings(
        google_maps_api_key=env.get("GOOGLE_MAPS_API_KEY", ""),
        mapbox_api_key=env.get("MAPBOX_API_KEY", ""),
        osrm_base_url=env.get("OSRM_BASE_URL", DEFAULT_OSRM_BASE_URL).rstrip("/"),
        osrm_enabled=_as_bool(env.get("OSRM_ENABLED", "true")),
        routing_providers=providers,
        leg_timeout_s=float(env.get("ROUTING_LEG_TIMEOUT_S", DEFAULT_LEG_TIMEOUT_S)),
        max_concurrency=int(env.get("ROUTING_MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY)),
        walking_speed_m_per_min=float(
            env.get("WALKING_SPEED_M_PER_MIN", DEFAULT_WALKING_SPEED_M_PER_MIN)
        ),
        default_search_radius_m=float(
            env.get("DEFAULT_SEARCH_RADIUS_M", DEFAULT_SEARCH_RADIUS_M)
        ),
        visitable_categories=categories,
        anthropic_api_key=env.get("ANTHROPIC_API_KEY", ""),
        openai_api_key=env.get("OPENAI_API_KEY", ""),
    )
