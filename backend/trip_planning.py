"""End-to-end trip planning.

Pipeline:
  1.  Filter the candidate pools down to a few relevant stops per kind.
  2.  Claude proposes trips over those stops (validated, never trusted).
  3.  Each trip is routed pairwise from the user's location, with
      straight-line fallback for any leg the router cannot serve.
  4.  Legs are assembled into itineraries with merged geometry and totals.

``PlanningSession`` keeps at most one planning run in flight per user session;
a newer request cancels the older one and its outstanding routing calls.
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

from anthropic import AsyncAnthropic

from candidate_filter import CategoryAllowList, select_candidates
from config import Settings
from errors import PlanningSuperseded
from geo_math import is_valid_coordinate
from itinerary import assemble, drop_invalid_stops
from leg_calculator import compute_legs
from models import Itinerary, TravelMode, TripPlanningRequest, TripProposal, Waypoint
from routing_providers import RoutingAdapter
from trip_proposal import request_proposals

logger = logging.getLogger(__name__)

T = TypeVar("T")

USER_WAYPOINT_ID = "user"


async def route_proposal(
    proposal: TripProposal,
    origin: Waypoint,
    adapter: RoutingAdapter,
    settings: Settings,
    mode: TravelMode = "walking",
) -> Itinerary:
    """Routes one proposal from ``origin`` through its stops and assembles it.

    Raises:
        MalformedProposal: If no stop of the proposal has valid coordinates.
    """
    proposal = drop_invalid_stops(proposal)
    waypoints = [origin, *(stop.as_waypoint() for stop in proposal.stops)]
    legs = await compute_legs(
        waypoints,
        adapter,
        mode=mode,
        timeout_s=settings.leg_timeout_s,
        max_concurrency=settings.max_concurrency,
        walking_speed_m_per_min=settings.walking_speed_m_per_min,
    )
    return assemble(proposal, legs)


async def plan_trip(
    request: TripPlanningRequest,
    *,
    claude_client: AsyncAnthropic,
    adapter: RoutingAdapter,
    settings: Settings,
) -> list[Itinerary]:
    """Plans routed itineraries for the user's request.

    Args:
        request: User input, location and candidate pools.
        claude_client: Anthropic client used for the proposal step.
        adapter: Routing adapter for leg computation.
        settings: Runtime configuration (caps, timeouts, allow-list).

    Returns:
        One itinerary per proposed trip, in Claude's order.

    Raises:
        ValueError: If the user location is outside valid ranges.
        MalformedProposal: If Claude's trips are missing required fields.
        anthropic.APIError: On Claude API failures.
    """
    origin = request.user_location.as_tuple()
    if not is_valid_coordinate(*origin):
        raise ValueError(f"user_location {origin} is not a valid coordinate.")
    radius = (
        settings.default_search_radius_m
        if request.search_radius_m is None
        else request.search_radius_m
    )

    logger.info(
        "Trip planning started: %r at %.5f, %.5f (radius %.0fm)",
        request.user_input, origin[0], origin[1], radius,
    )

    candidates = select_candidates(
        {
            "historical": request.available_points.historical,
            "food": request.available_points.food,
            "accommodation": request.available_points.accommodation,
        },
        origin,
        radius,
        request.user_input,
        caps=settings.category_caps,
        allow_list=CategoryAllowList(settings.visitable_categories),
    )

    proposals = await request_proposals(
        claude_client, request.user_input, origin, candidates
    )
    logger.info("Claude proposed %d trips", len(proposals))

    start = Waypoint(
        id=USER_WAYPOINT_ID,
        name="Your location",
        category="start",
        latitude=origin[0],
        longitude=origin[1],
    )
    # Trips are routed one after another so the concurrency limit applies to
    # the whole request, not to each trip.
    itineraries = []
    for proposal in proposals:
        itineraries.append(
            await route_proposal(proposal, start, adapter, settings, request.mode)
        )

    logger.info("Trip planning complete: %d itineraries", len(itineraries))
    return itineraries


class PlanningSession:
    """Holds the single in-flight planning run for one user session."""

    def __init__(self) -> None:
        self._task: asyncio.Task | None = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> bool:
        """Discards the in-flight run, if any. Returns True if one was cancelled."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            logger.info("Cancelled in-flight trip planning run")
            return True
        return False

    async def submit(self, coro: Coroutine[Any, Any, T]) -> T:
        """Runs ``coro`` as this session's planning run.

        Any previous run is cancelled first.

        Raises:
            PlanningSuperseded: If this run is itself replaced or discarded
                before it finishes.
        """
        self.cancel()
        task = asyncio.ensure_future(coro)
        self._task = task
        try:
            return await task
        except asyncio.CancelledError:
            if self._task is not task and task.cancelled():
                raise PlanningSuperseded("Trip planning request was replaced.") from None
            task.cancel()
            raise
        finally:
            if self._task is task:
                self._task = None
