"""WalkMuse backend service.

Exposes endpoints for AI trip planning, single-leg routing, candidate
filtering, turn-by-turn navigation views, and place details for map popups.
"""

import logging
from functools import lru_cache

from anthropic import AsyncAnthropic
from fastapi import Depends, FastAPI, HTTPException
from openai import AsyncOpenAI

import place_details
import trip_planning
from candidate_filter import CategoryAllowList, filter_candidates
from config import Settings, load_settings
from errors import MalformedProposal, PlanningSuperseded
from geo_math import encode_polyline, is_valid_coordinate
from leg_calculator import compute_legs
from models import (
    CandidateFilterRequest,
    CandidateFilterResponse,
    NavigationRequest,
    NavigationResponse,
    PlaceDetailsRequest,
    PlaceDetailsResponse,
    RouteLegRequest,
    RouteLegResponse,
    TripPlanningRequest,
    TripPlanningResponse,
    Waypoint,
)
from navigation import NavigationCursor
from routing_providers import (
    RoutingAdapter,
    directions_url,
    format_distance,
    format_duration,
    resolve_provider,
)

logging.basicConfig(level=logging.INFO)

app = FastAPI(
    title="WalkMuse Backend",
    description="Nearby points of interest, AI walking trips and turn-by-turn routing.",
    version="0.1.0",
)

# One planning session per client-supplied session id.
_sessions: dict[str, trip_planning.PlanningSession] = {}


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


@lru_cache
def get_settings() -> Settings:
    return load_settings()


@lru_cache
def get_adapter() -> RoutingAdapter:
    """Routing adapter resolved once per process from configuration."""
    return RoutingAdapter(resolve_provider(get_settings()))


def get_claude_client(settings: Settings = Depends(get_settings)) -> AsyncAnthropic:
    return AsyncAnthropic(api_key=settings.anthropic_api_key)


def get_openai_client(settings: Settings = Depends(get_settings)) -> AsyncOpenAI | None:
    if not settings.openai_api_key:
        return None
    return AsyncOpenAI(api_key=settings.openai_api_key)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
async def health(adapter: RoutingAdapter = Depends(get_adapter)) -> dict[str, str]:
    """Health check endpoint; also reports the active routing provider."""
    return {"status": "ok", "routing_provider": adapter.provider_name}


@app.post("/plan-trip", response_model=TripPlanningResponse)
async def plan_trip(
    request: TripPlanningRequest,
    settings: Settings = Depends(get_settings),
    adapter: RoutingAdapter = Depends(get_adapter),
    claude_client: AsyncAnthropic = Depends(get_claude_client),
) -> TripPlanningResponse:
    """Plans walking itineraries through nearby points of interest.

    Runs a four-step pipeline:
    1. Filters each candidate pool by radius, category and keywords.
    2. Claude proposes trips over the filtered candidates.
    3. Each trip is routed leg by leg from the user's location; legs the
       router cannot serve fall back to straight lines.
    4. Legs are merged into one itinerary per trip.

    Args:
        request: ``TripPlanningRequest`` with the free-text request, user
            location, candidate pools and an optional ``session_id``.

    Returns:
        ``TripPlanningResponse`` with one routed itinerary per trip.

    Raises:
        HTTPException 400: If user_input is empty or the location is invalid.
        HTTPException 409: If a newer request for the same session replaced
            this one.
        HTTPException 422: If Claude's proposal was malformed.
        HTTPException 502: If the upstream Claude call fails.
    """
    if not request.user_input.strip():
        raise HTTPException(status_code=400, detail="user_input must not be empty.")

    run = trip_planning.plan_trip(
        request, claude_client=claude_client, adapter=adapter, settings=settings
    )
    try:
        if request.session_id:
            session = _sessions.setdefault(
                request.session_id, trip_planning.PlanningSession()
            )
            try:
                trips = await session.submit(run)
            finally:
                if _sessions.get(request.session_id) is session and not session.in_flight:
                    del _sessions[request.session_id]
        else:
            trips = await run
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PlanningSuperseded as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except MalformedProposal as exc:
        logging.warning("Malformed trip proposal: %s", exc.problems)
        raise HTTPException(
            status_code=422,
            detail={
                "message": "Trip planning failed, please try again.",
                "problems": exc.problems,
            },
        ) from exc
    except Exception as exc:  # noqa: BLE001
        logging.exception("trip_planning.plan_trip failed")
        raise HTTPException(
            status_code=502,
            detail="Trip planning failed, please try again.",
        ) from exc

    return TripPlanningResponse(trips=trips)


@app.delete("/plan-trip/{session_id}")
async def cancel_plan_trip(session_id: str) -> dict[str, bool]:
    """Discards the in-flight planning run for ``session_id``, if any."""
    session = _sessions.pop(session_id, None)
    return {"cancelled": bool(session and session.cancel())}


@app.post("/route-leg", response_model=RouteLegResponse)
async def route_leg(
    request: RouteLegRequest,
    settings: Settings = Depends(get_settings),
    adapter: RoutingAdapter = Depends(get_adapter),
) -> RouteLegResponse:
    """Routes a single origin → destination leg.

    Never fails for routing reasons: if the provider is unavailable the
    response carries a degraded straight-line leg.

    Raises:
        HTTPException 400: If either coordinate is out of range.
    """
    for label, point in (("origin", request.origin), ("destination", request.destination)):
        if not is_valid_coordinate(point.latitude, point.longitude):
            raise HTTPException(status_code=400, detail=f"{label} is not a valid coordinate.")

    origin = Waypoint(id="origin", name="Origin", **request.origin.model_dump())
    destination = Waypoint(
        id="destination", name="Destination", **request.destination.model_dump()
    )
    (leg,) = await compute_legs(
        [origin, destination],
        adapter,
        mode=request.mode,
        timeout_s=settings.leg_timeout_s,
        walking_speed_m_per_min=settings.walking_speed_m_per_min,
    )
    return RouteLegResponse(
        leg=leg,
        encoded_polyline=encode_polyline(leg.geometry),
        distance_text=format_distance(leg.distance_m),
        duration_text=format_duration(leg.duration_min * 60),
        directions_url=directions_url(adapter.provider_name, origin.coord, destination.coord),
    )


@app.post("/filter-candidates", response_model=CandidateFilterResponse)
async def filter_candidates_endpoint(
    request: CandidateFilterRequest,
    settings: Settings = Depends(get_settings),
) -> CandidateFilterResponse:
    """Ranks and truncates a candidate pool for the given origin and request."""
    candidates = filter_candidates(
        request.pool,
        request.origin.as_tuple(),
        request.search_radius_m,
        request.text,
        request.max_results,
        CategoryAllowList(settings.visitable_categories),
    )
    return CandidateFilterResponse(candidates=candidates)


@app.post("/navigation/step", response_model=NavigationResponse)
async def navigation_step(request: NavigationRequest) -> NavigationResponse:
    """Applies one cursor transition and returns the resulting step view.

    Raises:
        HTTPException 400: If ``action`` is ``jump`` without a ``target``.
    """
    cursor = NavigationCursor(request.itinerary)
    cursor.jump_to(request.index)

    if request.action == "advance":
        cursor.advance()
    elif request.action == "retreat":
        cursor.retreat()
    elif request.action == "jump":
        if request.target is None:
            raise HTTPException(status_code=400, detail="jump requires a target index.")
        cursor.jump_to(request.target)

    return NavigationResponse(
        index=cursor.index,
        total_steps=cursor.total_steps,
        view=cursor.current(),
    )


@app.post("/place-details", response_model=PlaceDetailsResponse)
async def place_details_endpoint(
    request: PlaceDetailsRequest,
    client: AsyncOpenAI | None = Depends(get_openai_client),
) -> PlaceDetailsResponse:
    """Fun fact and historical significance for a map popup.

    Raises:
        HTTPException 400: If name is empty.
    """
    if not request.name.strip():
        raise HTTPException(status_code=400, detail="name must not be empty.")
    return await place_details.get_place_details(
        request.name,
        request.latitude,
        request.longitude,
        request.category,
        client=client,
    )
