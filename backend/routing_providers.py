"""Directions providers normalised behind one adapter.

Three bindings are supported, tried in configured order:

  google  Google Directions via the ``googlemaps`` client (encoded polylines,
          HTML instructions, durations in seconds).
  mapbox  Mapbox Directions over HTTP (GeoJSON, lng-first coordinates).
  osrm    Any OSRM server over HTTP (GeoJSON LineString or bare arrays).

Every binding returns a ``ProviderRoute`` with lat-first geometry, whole
minutes rounded up and plain-text steps. The provider is picked once from
``Settings`` by ``resolve_provider`` and injected into ``RoutingAdapter``.
"""

import asyncio
import html
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any

import googlemaps
import googlemaps.exceptions
import httpx

from config import Settings
from errors import NoRouteFound, RoutingUnavailable
from geo_math import LatLng, decode_polyline, path_length_m, straight_line
from models import Leg, Step, TravelMode, Waypoint

logger = logging.getLogger(__name__)

MAPBOX_DIRECTIONS_URL = "https://api.mapbox.com/directions/v5/mapbox"

# HTTP timeout for a single provider request. The leg calculator applies its
# own, usually shorter, per-leg deadline on top of this.
HTTP_TIMEOUT_S: float = 10.0

_GOOGLE_MODES = {"walking": "walking", "cycling": "bicycling", "driving": "driving"}
_MAPBOX_PROFILES = {"walking": "walking", "cycling": "cycling", "driving": "driving"}
_OSRM_PROFILES = {"walking": "foot", "cycling": "bike", "driving": "driving"}

# Response codes meaning "reachable, but no path between these points".
_NO_ROUTE_CODES = frozenset({"NoRoute", "NoSegment", "ZERO_RESULTS", "NOT_FOUND"})

_TAG_RE = re.compile(r"<[^>]+>")


@dataclass
class ProviderRoute:
    """Provider-agnostic result of one origin→destination request."""

    distance_m: float
    duration_min: int
    geometry: list[LatLng]
    steps: list[Step] = field(default_factory=list)


def _minutes_up(seconds: float) -> int:
    return math.ceil(float(seconds) / 60)


def _strip_html(text: str) -> str:
    """Turns Google's HTML instructions into plain text."""
    text = text.replace("<div", " <div")
    return " ".join(html.unescape(_TAG_RE.sub("", text)).split())


def _lnglat_to_latlng(coords: list[Any]) -> list[LatLng]:
    return [(float(c[1]), float(c[0])) for c in coords if len(c) >= 2]


# ---------------------------------------------------------------------------
# Provider bindings
# ---------------------------------------------------------------------------


class RoutingProvider:
    """Base class for a directions backend."""

    name: str = "base"

    async def route(
        self, origin: LatLng, destination: LatLng, mode: TravelMode
    ) -> ProviderRoute:
        """Routes one leg.

        Raises:
            RoutingUnavailable: On transport errors or unexpected responses.
            NoRouteFound: When the provider reports that no path exists.
        """
        raise NotImplementedError


class GoogleDirectionsProvider(RoutingProvider):
    """Google Directions API through the ``googlemaps`` client."""

    name = "google"

    def __init__(self, maps_client: googlemaps.Client) -> None:
        self._maps = maps_client

    async def route(
        self, origin: LatLng, destination: LatLng, mode: TravelMode
    ) -> ProviderRoute:
        # The googlemaps client is blocking; keep it off the event loop so
        # concurrent legs and timeouts still work.
        try:
            result = await asyncio.to_thread(
                self._maps.directions,
                origin=origin,
                destination=destination,
                mode=_GOOGLE_MODES[mode],
            )
        except googlemaps.exceptions.ApiError as exc:
            if exc.status in _NO_ROUTE_CODES:
                raise NoRouteFound(f"Google Directions: {exc.status}") from exc
            raise RoutingUnavailable(f"Google Directions error: {exc}") from exc
        except (googlemaps.exceptions.TransportError, googlemaps.exceptions.Timeout) as exc:
            raise RoutingUnavailable(f"Google Directions unreachable: {exc}") from exc

        if not result:
            raise NoRouteFound("Google Directions returned no routes.")
        return self._normalise(result[0])

    @staticmethod
    def _normalise(route: dict[str, Any]) -> ProviderRoute:
        legs = route.get("legs") or []
        if not legs:
            raise NoRouteFound("Google Directions route has no legs.")
        leg = legs[0]

        # Step-level polylines follow the road; the overview is simplified.
        geometry: list[LatLng] = []
        steps: list[Step] = []
        for raw_step in leg.get("steps", []):
            points = decode_polyline(raw_step.get("polyline", {}).get("points", ""))
            if geometry and points and points[0] == geometry[-1]:
                points = points[1:]
            geometry.extend(points)
            steps.append(
                Step(
                    instruction=_strip_html(raw_step.get("html_instructions", "")) or "Continue",
                    distance_m=float(raw_step.get("distance", {}).get("value", 0)),
                    duration_s=float(raw_step.get("duration", {}).get("value", 0)),
                    maneuver_type=raw_step.get("maneuver") or "continue",
                )
            )
        if len(geometry) < 2:
            geometry = decode_polyline(
                route.get("overview_polyline", {}).get("points", "")
            )

        return ProviderRoute(
            distance_m=float(leg.get("distance", {}).get("value", 0)),
            duration_min=_minutes_up(leg.get("duration", {}).get("value", 0)),
            geometry=geometry,
            steps=steps,
        )


class _HttpProvider(RoutingProvider):
    """Shared HTTP plumbing for the JSON directions APIs."""

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        self._http = http_client

    async def _get_json(self, url: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            if self._http is not None:
                response = await self._http.get(url, params=params)
            else:
                async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_S) as client:
                    response = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            logger.warning("%s request failed: %s", self.name, exc)
            raise RoutingUnavailable(f"{self.name} unreachable: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}

        code = data.get("code") if isinstance(data, dict) else None
        if code in _NO_ROUTE_CODES:
            raise NoRouteFound(f"{self.name}: {code}")
        if response.is_error:
            raise RoutingUnavailable(
                f"{self.name} returned HTTP {response.status_code}"
            )
        if code != "Ok":
            raise RoutingUnavailable(f"{self.name} returned code {code!r}")
        return data

    @staticmethod
    def _first_route(data: dict[str, Any]) -> dict[str, Any]:
        routes = data.get("routes") or []
        if not routes:
            raise NoRouteFound("No route found")
        return routes[0]


class MapboxDirectionsProvider(_HttpProvider):
    """Mapbox Directions API v5."""

    name = "mapbox"

    def __init__(
        self, api_key: str, http_client: httpx.AsyncClient | None = None
    ) -> None:
        super().__init__(http_client)
        self._api_key = api_key

    async def route(
        self, origin: LatLng, destination: LatLng, mode: TravelMode
    ) -> ProviderRoute:
        url = (
            f"{MAPBOX_DIRECTIONS_URL}/{_MAPBOX_PROFILES[mode]}/"
            f"{origin[1]},{origin[0]};{destination[1]},{destination[0]}"
        )
        data = await self._get_json(
            url,
            {
                "geometries": "geojson",
                "overview": "full",
                "steps": "true",
                "access_token": self._api_key,
            },
        )
        route = self._first_route(data)
        legs = route.get("legs") or [{}]

        steps = [
            Step(
                instruction=s.get("maneuver", {}).get("instruction") or "Continue",
                distance_m=float(s.get("distance", 0)),
                duration_s=float(s.get("duration", 0)),
                maneuver_type=s.get("maneuver", {}).get("type") or "continue",
            )
            for s in legs[0].get("steps", [])
        ]
        return ProviderRoute(
            distance_m=float(route.get("distance", 0)),
            duration_min=_minutes_up(route.get("duration", 0)),
            geometry=_lnglat_to_latlng(route.get("geometry", {}).get("coordinates", [])),
            steps=steps,
        )


class OsrmProvider(_HttpProvider):
    """OSRM ``/route/v1`` service (public demo server or self-hosted)."""

    name = "osrm"

    def __init__(
        self, base_url: str, http_client: httpx.AsyncClient | None = None
    ) -> None:
        super().__init__(http_client)
        self._base_url = base_url.rstrip("/")

    async def route(
        self, origin: LatLng, destination: LatLng, mode: TravelMode
    ) -> ProviderRoute:
        url = (
            f"{self._base_url}/route/v1/{_OSRM_PROFILES[mode]}/"
            f"{origin[1]},{origin[0]};{destination[1]},{destination[0]}"
        )
        data = await self._get_json(
            url, {"overview": "full", "steps": "true", "geometries": "geojson"}
        )
        route = self._first_route(data)
        legs = route.get("legs") or [{}]

        steps = [
            Step(
                instruction=_osrm_instruction(s),
                distance_m=float(s.get("distance") or 0),
                duration_s=float(s.get("duration") or 0),
                maneuver_type=s.get("maneuver", {}).get("type") or "continue",
            )
            for s in legs[0].get("steps", [])
        ]
        return ProviderRoute(
            distance_m=float(route.get("distance", 0)),
            duration_min=_minutes_up(route.get("duration", 0)),
            geometry=_osrm_geometry(route.get("geometry")),
            steps=steps,
        )


def _osrm_geometry(raw: Any) -> list[LatLng]:
    """Accepts a GeoJSON LineString, a bare [lng, lat] array, or a polyline."""
    if isinstance(raw, dict) and raw.get("type") == "LineString":
        return _lnglat_to_latlng(raw.get("coordinates", []))
    if isinstance(raw, list):
        return _lnglat_to_latlng(raw)
    if isinstance(raw, str):
        return decode_polyline(raw)
    return []


def _osrm_instruction(step: dict[str, Any]) -> str:
    """Builds a readable instruction; OSRM only returns maneuver fields."""
    maneuver = step.get("maneuver", {})
    if maneuver.get("instruction"):
        return maneuver["instruction"]

    kind = maneuver.get("type", "continue")
    modifier = maneuver.get("modifier", "")
    road = step.get("name", "")

    if kind == "depart":
        text = "Head out"
    elif kind == "arrive":
        return "Arrive at your destination"
    elif kind in ("turn", "end of road", "fork") and modifier:
        text = f"Turn {modifier}"
    elif kind == "roundabout":
        text = "Enter the roundabout"
    elif modifier:
        text = f"Continue {modifier}"
    else:
        text = "Continue"
    return f"{text} onto {road}" if road else text


# ---------------------------------------------------------------------------
# Provider selection and adapter
# ---------------------------------------------------------------------------


def resolve_provider(
    settings: Settings,
    *,
    maps_client: googlemaps.Client | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> RoutingProvider | None:
    """Picks the first configured provider from ``settings.routing_providers``.

    A provider is available when its credentials are present (Google, Mapbox)
    or it is enabled (OSRM). Returns ``None`` when nothing is available.
    """
    for name in settings.routing_providers:
        if name == "google" and settings.google_maps_api_key:
            try:
                client = maps_client or googlemaps.Client(
                    key=settings.google_maps_api_key,
                    timeout=HTTP_TIMEOUT_S,
                    retry_timeout=int(HTTP_TIMEOUT_S),
                )
            except ValueError as exc:
                logger.warning("Skipping GOOGLE routing: %s", exc)
                continue
            provider: RoutingProvider = GoogleDirectionsProvider(client)
        elif name == "mapbox" and settings.mapbox_api_key:
            provider = MapboxDirectionsProvider(settings.mapbox_api_key, http_client)
        elif name == "osrm" and settings.osrm_enabled:
            provider = OsrmProvider(settings.osrm_base_url, http_client)
        else:
            if name not in ("google", "mapbox", "osrm"):
                logger.warning("Ignoring unknown routing provider %r", name)
            continue
        logger.info("Using %s for routing", name.upper())
        return provider

    logger.warning("No routing provider configured; all legs will be straight lines")
    return None


class RoutingAdapter:
    """Routes single legs through the injected provider."""

    def __init__(self, provider: RoutingProvider | None) -> None:
        self._provider = provider

    @property
    def provider_name(self) -> str:
        return self._provider.name if self._provider else "none"

    async def compute_leg(
        self,
        origin: Waypoint,
        destination: Waypoint,
        mode: TravelMode = "walking",
    ) -> Leg:
        """Routes ``origin`` → ``destination`` and returns a normalised leg.

        Raises:
            RoutingUnavailable: If no provider is configured or reachable.
            NoRouteFound: If the provider reports no path.
        """
        if self._provider is None:
            raise RoutingUnavailable("No routing provider configured.")

        route = await self._provider.route(origin.coord, destination.coord, mode)

        geometry = route.geometry
        if len(geometry) < 2:
            geometry = straight_line(origin.coord, destination.coord)

        return Leg(
            from_id=origin.id,
            to_id=destination.id,
            from_coord=origin.coord,
            to_coord=destination.coord,
            distance_m=route.distance_m or path_length_m(geometry),
            duration_min=route.duration_min,
            geometry=geometry,
            steps=route.steps,
            provider=self._provider.name,
        )


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


def format_distance(meters: float) -> str:
    """'850m' below a kilometre, '1.2km' above."""
    if meters < 1000:
        return f"{round(meters)}m"
    return f"{meters / 1000:.1f}km"


def format_duration(seconds: float) -> str:
    """'25min' below an hour, '1h 5min' above."""
    minutes = round(seconds / 60)
    if minutes < 60:
        return f"{minutes}min"
    return f"{minutes // 60}h {minutes % 60}min"


def directions_url(provider_name: str, start: LatLng, end: LatLng) -> str:
    """Deep link that opens the same leg in the provider's own web app."""
    if provider_name == "google":
        return f"https://www.google.com/maps/dir/{start[0]},{start[1]}/{end[0]},{end[1]}"
    if provider_name == "mapbox":
        return (
            "https://www.mapbox.com/directions/walk/"
            f"{start[1]},{start[0]};{end[1]},{end[0]}"
        )
    return (
        "https://www.openstreetmap.org/directions"
        f"?from={start[0]},{start[1]}&to={end[0]},{end[1]}"
    )
