"""Tests for routing_providers.py.

Google calls go to a fake ``googlemaps.Client``; Mapbox and OSRM calls go
through ``httpx.MockTransport``. No network access occurs during these tests.
"""

import googlemaps.exceptions
import httpx
import pytest

import routing_providers
from config import load_settings
from errors import NoRouteFound, RoutingUnavailable
from geo_math import encode_polyline
from models import Waypoint
from routing_providers import (
    GoogleDirectionsProvider,
    MapboxDirectionsProvider,
    OsrmProvider,
    ProviderRoute,
    RoutingAdapter,
    RoutingProvider,
)

ORIGIN = (40.0, -75.0)
DESTINATION = (40.001, -75.0)

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


def _make_directions_result(distance_m=111, duration_s=90):
    """Returns a minimal Directions API-style result with two steps."""
    return [
        {
            "overview_polyline": {"points": encode_polyline([ORIGIN, DESTINATION])},
            "legs": [
                {
                    "distance": {"value": distance_m, "text": "0.1 km"},
                    "duration": {"value": duration_s, "text": "2 mins"},
                    "steps": [
                        {
                            "distance": {"value": 55},
                            "duration": {"value": 45},
                            "html_instructions": (
                                "Head <b>north</b> on"
                                '<div style="font-size:0.9em">Main St</div>'
                            ),
                            "polyline": {
                                "points": encode_polyline([ORIGIN, (40.0005, -75.0)])
                            },
                        },
                        {
                            "distance": {"value": 56},
                            "duration": {"value": 45},
                            "html_instructions": "Turn &amp; arrive",
                            "maneuver": "turn-left",
                            "polyline": {
                                "points": encode_polyline([(40.0005, -75.0), DESTINATION])
                            },
                        },
                    ],
                }
            ],
        }
    ]


class _MockMapsClient:
    """Minimal mock of googlemaps.Client for testing."""

    def __init__(self, directions_result=None, error=None):
        self._directions = (
            directions_result
            if directions_result is not None
            else _make_directions_result()
        )
        self._error = error
        self.calls = []

    def directions(self, **kwargs):
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        return self._directions


def _http_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class _StaticProvider(RoutingProvider):
    name = "static"

    def __init__(self, route):
        self._route = route

    async def route(self, origin, destination, mode):
        return self._route


# ---------------------------------------------------------------------------
# Google
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_google_normalises_steps_and_geometry():
    maps = _MockMapsClient()
    provider = GoogleDirectionsProvider(maps)

    route = await provider.route(ORIGIN, DESTINATION, "walking")

    assert route.distance_m == 111
    assert route.duration_min == 2  # 90s rounds up
    # Step polylines joined without repeating the shared boundary point.
    assert route.geometry == [ORIGIN, (40.0005, -75.0), DESTINATION]
    assert route.steps[0].instruction == "Head north on Main St"
    assert route.steps[0].maneuver_type == "continue"
    assert route.steps[1].instruction == "Turn & arrive"
    assert route.steps[1].maneuver_type == "turn-left"


@pytest.mark.asyncio
async def test_google_maps_cycling_to_bicycling():
    maps = _MockMapsClient()
    await GoogleDirectionsProvider(maps).route(ORIGIN, DESTINATION, "cycling")
    assert maps.calls[0]["mode"] == "bicycling"
    assert maps.calls[0]["origin"] == ORIGIN


@pytest.mark.asyncio
async def test_google_falls_back_to_overview_polyline():
    result = _make_directions_result()
    for step in result[0]["legs"][0]["steps"]:
        step["polyline"] = {"points": ""}
    route = await GoogleDirectionsProvider(_MockMapsClient(result)).route(
        ORIGIN, DESTINATION, "walking"
    )
    assert route.geometry == [ORIGIN, DESTINATION]


@pytest.mark.asyncio
async def test_google_zero_results_is_no_route():
    maps = _MockMapsClient(error=googlemaps.exceptions.ApiError("ZERO_RESULTS"))
    with pytest.raises(NoRouteFound):
        await GoogleDirectionsProvider(maps).route(ORIGIN, DESTINATION, "walking")


@pytest.mark.asyncio
async def test_google_empty_result_is_no_route():
    maps = _MockMapsClient(directions_result=[])
    with pytest.raises(NoRouteFound):
        await GoogleDirectionsProvider(maps).route(ORIGIN, DESTINATION, "walking")


@pytest.mark.asyncio
async def test_google_denied_is_unavailable():
    maps = _MockMapsClient(error=googlemaps.exceptions.ApiError("REQUEST_DENIED"))
    with pytest.raises(RoutingUnavailable):
        await GoogleDirectionsProvider(maps).route(ORIGIN, DESTINATION, "walking")


@pytest.mark.asyncio
async def test_google_transport_error_is_unavailable():
    maps = _MockMapsClient(error=googlemaps.exceptions.TransportError("down"))
    with pytest.raises(RoutingUnavailable):
        await GoogleDirectionsProvider(maps).route(ORIGIN, DESTINATION, "walking")


# ---------------------------------------------------------------------------
# Mapbox
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_mapbox_swaps_coordinate_order():
    seen = {}

    def handler(request):
        seen["url"] = request.url
        return httpx.Response(
            200,
            json={
                "code": "Ok",
                "routes": [
                    {
                        "distance": 150.0,
                        "duration": 121,
                        "geometry": {
                            "type": "LineString",
                            "coordinates": [[-75.0, 40.0], [-75.0, 40.001]],
                        },
                        "legs": [
                            {
                                "steps": [
                                    {
                                        "maneuver": {
                                            "instruction": "Walk north",
                                            "type": "depart",
                                        },
                                        "distance": 150,
                                        "duration": 121,
                                    }
                                ]
                            }
                        ],
                    }
                ],
            },
        )

    async with _http_client(handler) as client:
        provider = MapboxDirectionsProvider("pk.test", client)
        route = await provider.route(ORIGIN, DESTINATION, "walking")

    assert "/walking/-75.0,40.0;-75.0,40.001" in seen["url"].path
    assert seen["url"].params["access_token"] == "pk.test"
    assert route.geometry == [ORIGIN, DESTINATION]
    assert route.duration_min == 3
    assert route.steps[0].instruction == "Walk north"
    assert route.steps[0].maneuver_type == "depart"


@pytest.mark.asyncio
async def test_mapbox_no_routes_is_no_route():
    def handler(request):
        return httpx.Response(200, json={"code": "Ok", "routes": []})

    async with _http_client(handler) as client:
        with pytest.raises(NoRouteFound):
            await MapboxDirectionsProvider("pk.test", client).route(
                ORIGIN, DESTINATION, "walking"
            )


@pytest.mark.asyncio
async def test_mapbox_unauthorised_is_unavailable():
    def handler(request):
        return httpx.Response(401, json={"message": "Not Authorized"})

    async with _http_client(handler) as client:
        with pytest.raises(RoutingUnavailable, match="401"):
            await MapboxDirectionsProvider("bad", client).route(
                ORIGIN, DESTINATION, "walking"
            )


# ---------------------------------------------------------------------------
# OSRM
# ---------------------------------------------------------------------------


def _osrm_ok(geometry):
    return {
        "code": "Ok",
        "routes": [
            {
                "distance": 111.2,
                "duration": 60,
                "geometry": geometry,
                "legs": [
                    {
                        "steps": [
                            {
                                "name": "Main Street",
                                "distance": 111.2,
                                "duration": 60,
                                "maneuver": {"type": "depart"},
                            },
                            {
                                "name": "",
                                "distance": 0,
                                "duration": 0,
                                "maneuver": {"type": "arrive"},
                            },
                        ]
                    }
                ],
            }
        ],
    }


@pytest.mark.asyncio
async def test_osrm_uses_foot_profile_and_lng_first():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        return httpx.Response(
            200,
            json=_osrm_ok({"type": "LineString", "coordinates": [[-75.0, 40.0], [-75.0, 40.001]]}),
        )

    async with _http_client(handler) as client:
        route = await OsrmProvider("http://osrm.local/", client).route(
            ORIGIN, DESTINATION, "walking"
        )

    assert seen["path"] == "/route/v1/foot/-75.0,40.0;-75.0,40.001"
    assert route.geometry == [ORIGIN, DESTINATION]
    assert route.duration_min == 1
    assert [s.instruction for s in route.steps] == [
        "Head out onto Main Street",
        "Arrive at your destination",
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "geometry",
    [
        [[-75.0, 40.0], [-75.0, 40.001]],
        encode_polyline([ORIGIN, DESTINATION]),
    ],
)
async def test_osrm_accepts_bare_array_and_polyline(geometry):
    def handler(request):
        return httpx.Response(200, json=_osrm_ok(geometry))

    async with _http_client(handler) as client:
        route = await OsrmProvider("http://osrm.local", client).route(
            ORIGIN, DESTINATION, "walking"
        )
    assert route.geometry == [ORIGIN, DESTINATION]


@pytest.mark.asyncio
async def test_osrm_no_route_code():
    def handler(request):
        return httpx.Response(400, json={"code": "NoRoute", "message": "Impossible route"})

    async with _http_client(handler) as client:
        with pytest.raises(NoRouteFound):
            await OsrmProvider("http://osrm.local", client).route(
                ORIGIN, DESTINATION, "walking"
            )


@pytest.mark.asyncio
async def test_osrm_server_error_is_unavailable():
    def handler(request):
        return httpx.Response(502, text="Bad Gateway")

    async with _http_client(handler) as client:
        with pytest.raises(RoutingUnavailable):
            await OsrmProvider("http://osrm.local", client).route(
                ORIGIN, DESTINATION, "walking"
            )


@pytest.mark.asyncio
async def test_osrm_connection_error_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with _http_client(handler) as client:
        with pytest.raises(RoutingUnavailable):
            await OsrmProvider("http://osrm.local", client).route(
                ORIGIN, DESTINATION, "walking"
            )


@pytest.mark.parametrize(
    "step,expected",
    [
        ({"maneuver": {"type": "turn", "modifier": "left"}, "name": "Elm St"}, "Turn left onto Elm St"),
        ({"maneuver": {"type": "roundabout"}}, "Enter the roundabout"),
        ({"maneuver": {"type": "new name", "modifier": "straight"}}, "Continue straight"),
        ({"maneuver": {"type": "continue"}}, "Continue"),
        ({"maneuver": {"type": "turn", "instruction": "Go left"}}, "Go left"),
    ],
)
def test_osrm_instruction_text(step, expected):
    assert routing_providers._osrm_instruction(step) == expected


# ---------------------------------------------------------------------------
# Provider resolution
# ---------------------------------------------------------------------------


def test_resolve_prefers_google_when_key_present():
    settings = load_settings({"GOOGLE_MAPS_API_KEY": "AIza-test", "MAPBOX_API_KEY": "pk"})
    provider = routing_providers.resolve_provider(settings, maps_client=_MockMapsClient())
    assert isinstance(provider, GoogleDirectionsProvider)


def test_resolve_skips_providers_without_keys():
    settings = load_settings({"MAPBOX_API_KEY": "pk"})
    provider = routing_providers.resolve_provider(settings)
    assert isinstance(provider, MapboxDirectionsProvider)


def test_resolve_falls_back_to_osrm():
    provider = routing_providers.resolve_provider(load_settings({}))
    assert isinstance(provider, OsrmProvider)


def test_resolve_respects_configured_order():
    settings = load_settings(
        {"GOOGLE_MAPS_API_KEY": "AIza-test", "ROUTING_PROVIDERS": "osrm,google"}
    )
    provider = routing_providers.resolve_provider(settings, maps_client=_MockMapsClient())
    assert isinstance(provider, OsrmProvider)


def test_resolve_skips_malformed_google_key():
    # googlemaps.Client rejects keys that do not start with "AIza".
    settings = load_settings({"GOOGLE_MAPS_API_KEY": "not-a-google-key"})
    provider = routing_providers.resolve_provider(settings)
    assert isinstance(provider, OsrmProvider)


def test_resolve_returns_none_when_nothing_available():
    settings = load_settings({"OSRM_ENABLED": "0", "ROUTING_PROVIDERS": "google,teleport"})
    assert routing_providers.resolve_provider(settings) is None


# ---------------------------------------------------------------------------
# RoutingAdapter
# ---------------------------------------------------------------------------

_A = Waypoint(id="a", name="A", latitude=40.0, longitude=-75.0)
_B = Waypoint(id="b", name="B", latitude=40.001, longitude=-75.0)


@pytest.mark.asyncio
async def test_adapter_without_provider_raises_unavailable():
    adapter = RoutingAdapter(None)
    assert adapter.provider_name == "none"
    with pytest.raises(RoutingUnavailable):
        await adapter.compute_leg(_A, _B)


@pytest.mark.asyncio
async def test_adapter_builds_leg_from_route():
    route = ProviderRoute(distance_m=111.0, duration_min=2, geometry=[_A.coord, _B.coord])
    leg = await RoutingAdapter(_StaticProvider(route)).compute_leg(_A, _B)

    assert leg.from_id == "a"
    assert leg.to_id == "b"
    assert leg.distance_m == 111.0
    assert leg.provider == "static"
    assert leg.degraded is False


@pytest.mark.asyncio
async def test_adapter_substitutes_straight_line_for_short_geometry():
    route = ProviderRoute(distance_m=111.0, duration_min=2, geometry=[_A.coord])
    leg = await RoutingAdapter(_StaticProvider(route)).compute_leg(_A, _B)
    assert leg.geometry == [_A.coord, _B.coord]
    assert leg.degraded is False


@pytest.mark.asyncio
async def test_adapter_measures_path_when_distance_missing():
    route = ProviderRoute(distance_m=0, duration_min=2, geometry=[_A.coord, _B.coord])
    leg = await RoutingAdapter(_StaticProvider(route)).compute_leg(_A, _B)
    assert 100 < leg.distance_m < 120


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


def test_format_distance():
    assert routing_providers.format_distance(850) == "850m"
    assert routing_providers.format_distance(1234) == "1.2km"


def test_format_duration():
    assert routing_providers.format_duration(1500) == "25min"
    assert routing_providers.format_duration(3900) == "1h 5min"


def test_directions_url_per_provider():
    start, end = (40.0, -75.0), (40.001, -75.0)
    assert routing_providers.directions_url("google", start, end).startswith(
        "https://www.google.com/maps/dir/40.0,-75.0/"
    )
    assert "-75.0,40.0;-75.0,40.001" in routing_providers.directions_url("mapbox", start, end)
    assert "openstreetmap.org" in routing_providers.directions_url("osrm", start, end)
