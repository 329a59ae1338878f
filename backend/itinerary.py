"""Itinerary assembly from a validated proposal and its computed legs.

The assembler never calls the network. Distance and walking time are always
re-summed from the legs; the planner's own totals are carried through only as
``proposal_*_estimate`` fields.
"""

import logging

from errors import InvalidCoordinates, MalformedProposal
from geo_math import LatLng, encode_polyline, is_valid_coordinate
from models import Itinerary, Leg, TripProposal

logger = logging.getLogger(__name__)


def merge_geometry(legs: list[Leg]) -> list[LatLng]:
    """Concatenates leg geometries into one continuous line.

    Each leg after the first contributes its points minus the first one,
    which repeats the previous leg's last point.
    """
    if not legs:
        return []
    merged: list[LatLng] = list(legs[0].geometry)
    for leg in legs[1:]:
        merged.extend(leg.geometry[1:])
    return merged


def drop_invalid_stops(proposal: TripProposal) -> TripProposal:
    """Returns ``proposal`` without stops whose coordinates are out of range.

    Raises:
        MalformedProposal: If no stop with valid coordinates remains.
    """
    valid = []
    for stop in proposal.stops:
        if is_valid_coordinate(stop.latitude, stop.longitude):
            valid.append(stop)
        else:
            logger.warning(
                "Dropping stop %r from trip %r: invalid coordinates (%s, %s)",
                stop.id, proposal.id, stop.latitude, stop.longitude,
            )
    if not valid:
        raise MalformedProposal(
            f"Trip {proposal.id!r} has no stops with valid coordinates."
        )
    if len(valid) == len(proposal.stops):
        return proposal
    return proposal.model_copy(update={"stops": valid})


def assemble(proposal: TripProposal, legs: list[Leg]) -> Itinerary:
    """Builds the final itinerary for ``proposal``.

    Args:
        proposal: Validated trip proposal with its ordered stops.
        legs: One leg per stop, as returned by ``compute_legs`` for
            ``[user_location, *stops]``.

    Returns:
        An ``Itinerary`` whose totals are computed from ``legs``.

    Raises:
        ValueError: If the leg count does not match the stop count.
        InvalidCoordinates: If a stop is outside valid coordinate ranges.
    """
    if len(legs) != len(proposal.stops):
        raise ValueError(
            f"Trip {proposal.id!r} has {len(proposal.stops)} stops but "
            f"{len(legs)} legs; expected one leg per stop."
        )
    for stop in proposal.stops:
        if not is_valid_coordinate(stop.latitude, stop.longitude):
            raise InvalidCoordinates(
                f"Stop {stop.id!r} has invalid coordinates.", item_id=stop.id
            )

    merged = merge_geometry(legs)
    walking_min = sum(leg.duration_min for leg in legs)
    visit_min = sum(stop.visit_duration_min for stop in proposal.stops)
    degraded = sum(1 for leg in legs if leg.degraded)

    itinerary = Itinerary(
        id=proposal.id,
        name=proposal.name,
        description=proposal.description,
        stops=proposal.stops,
        legs=legs,
        total_distance_m=sum(leg.distance_m for leg in legs),
        total_duration_min=walking_min + visit_min,
        walking_duration_min=walking_min,
        visit_duration_min=visit_min,
        merged_geometry=merged,
        encoded_polyline=encode_polyline(merged),
        degraded_leg_count=degraded,
        proposal_distance_estimate_m=proposal.total_distance_m,
        proposal_duration_estimate_min=proposal.total_duration_min,
        estimated_cost=proposal.estimated_cost,
        difficulty=proposal.difficulty,
    )
    logger.info(
        "Assembled trip %r: %d stops, %.0fm, %dmin (%d degraded legs)",
        itinerary.id,
        len(itinerary.stops),
        itinerary.total_distance_m,
        itinerary.total_duration_min,
        degraded,
    )
    return itinerary
