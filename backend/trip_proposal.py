"""Trip proposals from Claude, and their validation.

Claude receives the filtered candidates and the user's request and answers
with loosely-typed JSON. Nothing in that JSON is trusted: every trip goes
through ``validate_proposal``, which either yields a typed ``TripProposal`` or
a ``MalformedProposal`` listing what was wrong. A stop is never given a
made-up location.
"""

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any

from anthropic import AsyncAnthropic

from errors import MalformedProposal
from models import ProposedStop, TripProposal, Waypoint

logger = logging.getLogger(__name__)

# Claude model used for trip planning.
PLANNER_MODEL: str = "claude-sonnet-4-6"

# Maximum stops Claude may put in one trip.
MAX_STOPS_PER_TRIP: int = 8

DEFAULT_VISIT_DURATION_MIN: int = 30

# Used when the request does not mention a duration.
DEFAULT_TRIP_DURATION_MIN: int = 240

_DIFFICULTIES = frozenset({"easy", "moderate", "challenging"})

# System prompt to force JSON-only responses from Claude.
_JSON_SYSTEM_PROMPT = (
    "You are a walking-trip planning API. You respond with ONLY valid JSON, "
    "with no markdown, no explanation and no commentary. Your entire response "
    "must be a single JSON object."
)


# ---------------------------------------------------------------------------
# Request keyword parsing
# ---------------------------------------------------------------------------


@dataclass
class TripKeywords:
    """Coarse hints pulled out of the free-text request."""

    duration_min: int = DEFAULT_TRIP_DURATION_MIN
    transportation: str = "walking"
    interests: list[str] = field(default_factory=list)
    budget: str = "moderate"


_INTEREST_WORDS: dict[str, tuple[str, ...]] = {
    "cultural": ("cultural", "history"),
    "food": ("food", "dining"),
    "coffee": ("coffee", "cafe"),
    "adventure": ("adventure", "explore"),
    "leisure": ("relax", "leisure"),
}


def parse_trip_keywords(user_input: str) -> TripKeywords:
    """Extracts duration, transport, interests and budget from a request."""
    text = user_input.lower()

    duration = DEFAULT_TRIP_DURATION_MIN
    hours = re.search(r"(\d+)\s*hour", text)
    minutes = re.search(r"(\d+)\s*minute", text)
    if hours:
        duration = int(hours.group(1)) * 60
    elif minutes:
        duration = int(minutes.group(1))

    if "walk" in text:
        transportation = "walking"
    elif "bike" in text or "cycling" in text:
        transportation = "cycling"
    elif "drive" in text or "car" in text:
        transportation = "driving"
    else:
        transportation = "walking"

    interests = [
        interest
        for interest, words in _INTEREST_WORDS.items()
        if any(w in text for w in words)
    ]

    if "budget" in text or "cheap" in text:
        budget = "budget"
    elif "luxury" in text or "expensive" in text:
        budget = "luxury"
    else:
        budget = "moderate"

    return TripKeywords(
        duration_min=duration,
        transportation=transportation,
        interests=interests,
        budget=budget,
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class ValidProposal:
    proposal: TripProposal


def _extract_json_object(text: str) -> dict[str, Any] | None:
    """Extracts a JSON object from text that may contain extra commentary."""
    text = text.strip()
    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except (json.JSONDecodeError, ValueError):
        pass

    match = re.search(r"\{.*\}", text, re.DOTALL)
    if match:
        try:
            parsed = json.loads(match.group())
            if isinstance(parsed, dict):
                return parsed
        except (json.JSONDecodeError, ValueError):
            pass

    return None


def _number(value: Any) -> float | None:
    """Finite float from ``value``, or None for bools, NaN, infinities and junk."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _first(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _parse_stop(raw: Any, label: str, problems: list[str]) -> ProposedStop | None:
    if not isinstance(raw, dict):
        problems.append(f"{label}: not an object")
        return None

    stop_id = _first(raw, "id")
    name = _first(raw, "name")
    lat = _number(_first(raw, "latitude", "lat"))
    lng = _number(_first(raw, "longitude", "lng", "lon"))

    missing = []
    if stop_id is None or str(stop_id).strip() == "":
        missing.append("id")
    if not isinstance(name, str) or not name.strip():
        missing.append("name")
    if lat is None:
        missing.append("latitude")
    if lng is None:
        missing.append("longitude")
    if missing:
        problems.append(f"{label}: missing or invalid {', '.join(missing)}")
        return None

    visit = _number(_first(raw, "visitDuration", "visit_duration_min", "visit_duration"))
    if visit is None or visit < 0:
        visit = DEFAULT_VISIT_DURATION_MIN

    return ProposedStop(
        id=str(stop_id),
        name=name.strip(),
        category=str(raw.get("category") or ""),
        latitude=lat,
        longitude=lng,
        visit_duration_min=round(visit),
        description=str(raw.get("description") or ""),
    )


def validate_proposal(raw: Any, index: int = 0) -> ValidProposal | MalformedProposal:
    """Checks one trip from the planner's JSON.

    Returns:
        ``ValidProposal`` wrapping a typed ``TripProposal``, or a
        ``MalformedProposal`` (returned, not raised) describing every problem.
    """
    label = f"trip[{index}]"
    if not isinstance(raw, dict):
        return MalformedProposal(f"{label} is not an object", [f"{label}: not an object"])

    problems: list[str] = []
    raw_stops = _first(raw, "points", "stops")
    if not isinstance(raw_stops, list) or not raw_stops:
        problems.append(f"{label}: no stops")
        raw_stops = []

    stops = []
    for i, raw_stop in enumerate(raw_stops):
        stop = _parse_stop(raw_stop, f"{label}.stops[{i}]", problems)
        if stop is not None:
            stops.append(stop)

    seen: set[str] = set()
    for stop in stops:
        if stop.id in seen:
            problems.append(f"{label}: duplicate stop id {stop.id!r}")
        seen.add(stop.id)

    if problems:
        return MalformedProposal(f"{label} is malformed", problems)

    difficulty = raw.get("difficulty")
    return ValidProposal(
        TripProposal(
            id=str(raw.get("id") or f"t{index + 1}"),
            name=str(raw.get("name") or f"Trip {index + 1}"),
            description=str(raw.get("description") or ""),
            stops=stops,
            total_duration_min=_number(_first(raw, "totalDuration", "total_duration_min")),
            total_distance_m=_number(_first(raw, "totalDistance", "total_distance_m")),
            estimated_cost=_number(_first(raw, "estimatedCost", "estimated_cost")),
            difficulty=difficulty if difficulty in _DIFFICULTIES else None,
        )
    )


def parse_proposals(text: str) -> list[TripProposal]:
    """Parses the planner's reply into validated trip proposals.

    Raises:
        MalformedProposal: If the reply is not JSON, holds no trips, or any
            trip fails validation.
    """
    data = _extract_json_object(text)
    if data is None:
        raise MalformedProposal("Planner did not return a JSON object.", ["not JSON"])

    trips = data.get("trips")
    if not isinstance(trips, list) or not trips:
        raise MalformedProposal("Planner returned no trips.", ["no trips"])

    proposals: list[TripProposal] = []
    problems: list[str] = []
    for index, raw_trip in enumerate(trips):
        result = validate_proposal(raw_trip, index)
        if isinstance(result, MalformedProposal):
            problems.extend(result.problems)
        else:
            proposals.append(result.proposal)

    if problems:
        logger.warning("Planner returned malformed trips: %s", problems)
        raise MalformedProposal("Planner returned malformed trips.", problems)
    return proposals


# ---------------------------------------------------------------------------
# Claude request
# ---------------------------------------------------------------------------

_PLANNING_PROMPT = """\
Create 1 personalized trip and 1 additional trip based on the user request \
and the available points.

User request: "{user_input}"
Parsed hints: about {duration_min} minutes, {transportation}, interests: \
{interests}, budget: {budget}

RULES:
- Use ONLY points from the lists below, with their exact id, name and coordinates.
- Include {max_stops} points max per trip, in visiting order.
- Mix historical sights with food or coffee.
- Visit duration: 15-45 min for attractions, 30-60 min for food.
- Pay extra attention to the requested duration and interests.
- Never put 2 food places in a row unless the user asks for it or the second \
is a coffee place.

POINTS:
H: {historical}
F: {food}
A: {accommodation}

START: {latitude}, {longitude}

FORMAT:
{{"trips":[{{"id":"t1","name":"Trip Name","description":"Brief description",\
"points":[{{"id":"p1","name":"Point Name","category":"historical",\
"latitude":40.7,"longitude":-74.0,"visitDuration":45,\
"description":"Brief description"}}],"totalDuration":180,\
"totalDistance":2500,"estimatedCost":25,"difficulty":"easy"}}]}}
"""


def _compact(points: list[Waypoint]) -> str:
    return json.dumps(
        [
            {
                "id": p.id,
                "name": p.name,
                "category": p.category,
                "lat": p.latitude,
                "lng": p.longitude,
            }
            for p in points
        ],
        ensure_ascii=False,
    )


async def request_proposals(
    claude_client: AsyncAnthropic,
    user_input: str,
    origin: tuple[float, float],
    candidates: dict[str, list[Waypoint]],
) -> list[TripProposal]:
    """Asks Claude for trip options over the filtered candidates.

    Args:
        claude_client: Anthropic client.
        user_input: The user's free-text request.
        origin: The user's (lat, lng).
        candidates: Filtered candidates keyed by kind.

    Returns:
        Validated proposals.

    Raises:
        MalformedProposal: If Claude's reply cannot be turned into trips.
        anthropic.APIError: On Claude API failures.
    """
    hints = parse_trip_keywords(user_input)
    prompt = _PLANNING_PROMPT.format(
        user_input=user_input,
        duration_min=hints.duration_min,
        transportation=hints.transportation,
        interests=", ".join(hints.interests) or "none given",
        budget=hints.budget,
        max_stops=MAX_STOPS_PER_TRIP,
        historical=_compact(candidates.get("historical", [])),
        food=_compact(candidates.get("food", [])),
        accommodation=_compact(candidates.get("accommodation", [])),
        latitude=origin[0],
        longitude=origin[1],
    )

    logger.info("Requesting trip proposals from Claude")
    response = await claude_client.messages.create(
        model=PLANNER_MODEL,
        max_tokens=2048,
        temperature=0.3,
        system=_JSON_SYSTEM_PROMPT,
        messages=[
            {"role": "user", "content": prompt},
            {"role": "assistant", "content": "{"},
        ],
    )
    # Prepend the "{" we used as prefill.
    raw = "{" + response.content[0].text.strip()
    logger.info("Claude proposal response: %s", raw[:300])

    return parse_proposals(raw)
