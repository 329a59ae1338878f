"""Pairwise leg computation with straight-line fallback.

Given the ordered trip ``[origin, stop1, stop2, ...]`` this module produces one
leg per consecutive pair. Legs are routed concurrently (bounded by a
semaphore) and collected in input order. A leg whose routing call fails, times
out, or finds no path becomes a degraded leg instead of failing the trip.
"""

import asyncio
import logging

from config import DEFAULT_LEG_TIMEOUT_S, DEFAULT_MAX_CONCURRENCY
from errors import RoutingError
from geo_math import (
    DEFAULT_WALKING_SPEED_M_PER_MIN,
    haversine_m,
    straight_line,
    walking_minutes,
)
from models import Leg, TravelMode, Waypoint
from routing_providers import RoutingAdapter

logger = logging.getLogger(__name__)

DEGRADED_PROVIDER = "straight-line"


def degraded_leg(
    origin: Waypoint,
    destination: Waypoint,
    walking_speed_m_per_min: float = DEFAULT_WALKING_SPEED_M_PER_MIN,
) -> Leg:
    """Builds the straight-line estimate used when routing is unavailable."""
    distance = haversine_m(origin.coord, destination.coord)
    return Leg(
        from_id=origin.id,
        to_id=destination.id,
        from_coord=origin.coord,
        to_coord=destination.coord,
        distance_m=distance,
        duration_min=walking_minutes(distance, walking_speed_m_per_min),
        geometry=straight_line(origin.coord, destination.coord),
        steps=[],
        degraded=True,
        provider=DEGRADED_PROVIDER,
    )


async def compute_legs(
    waypoints: list[Waypoint],
    adapter: RoutingAdapter,
    *,
    mode: TravelMode = "walking",
    timeout_s: float = DEFAULT_LEG_TIMEOUT_S,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    walking_speed_m_per_min: float = DEFAULT_WALKING_SPEED_M_PER_MIN,
) -> list[Leg]:
    """Computes one leg per consecutive pair of ``waypoints``.

    Args:
        waypoints: Ordered trip points; element 0 is the user's position.
        adapter: Routing adapter used for every leg.
        mode: Travel mode passed to the provider.
        timeout_s: Deadline for a single leg's routing call.
        max_concurrency: Maximum routing calls in flight at once.
        walking_speed_m_per_min: Speed used for degraded-leg durations.

    Returns:
        ``len(waypoints) - 1`` legs in input order. Routing failures never
        propagate; cancelling the caller cancels outstanding calls.
    """
    if len(waypoints) < 2:
        return []

    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def _leg(index: int) -> Leg:
        origin, destination = waypoints[index], waypoints[index + 1]
        async with semaphore:
            try:
                return await asyncio.wait_for(
                    adapter.compute_leg(origin, destination, mode), timeout_s
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Routing %s → %s timed out after %.1fs; using straight line",
                    origin.id, destination.id, timeout_s,
                )
            except RoutingError as exc:
                logger.warning(
                    "Routing %s → %s failed (%s); using straight line",
                    origin.id, destination.id, exc,
                )
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Unexpected routing failure %s → %s; using straight line",
                    origin.id, destination.id,
                )
        return degraded_leg(origin, destination, walking_speed_m_per_min)

    legs = await asyncio.gather(*(_leg(i) for i in range(len(waypoints) - 1)))

    degraded = sum(1 for leg in legs if leg.degraded)
    logger.info(
        "Computed %d legs via %s (%d degraded)",
        len(legs), adapter.provider_name, degraded,
    )
    return list(legs)
