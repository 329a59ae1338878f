"""Pydantic request and response models for the WalkMuse backend."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

TravelMode = Literal["walking", "cycling", "driving"]

LatLngPair = tuple[float, float]


# ---------------------------------------------------------------------------
# Points of interest
# ---------------------------------------------------------------------------


class Location(BaseModel):
    """A bare coordinate, e.g. the user's current position."""

    latitude: float
    longitude: float

    def as_tuple(self) -> LatLngPair:
        return (self.latitude, self.longitude)


class Waypoint(BaseModel):
    """A point of interest from the candidate pool, or the trip origin.

    Coordinates are not range-validated here; out-of-range candidates are
    dropped and logged by the filter and the assembler.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: str = ""
    latitude: float
    longitude: float
    description: str = ""

    @property
    def coord(self) -> LatLngPair:
        return (self.latitude, self.longitude)


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


class Step(BaseModel):
    """One turn-by-turn instruction inside a leg."""

    instruction: str
    distance_m: float = 0.0
    duration_s: float = 0.0
    maneuver_type: str = "continue"
    """Categorical maneuver: turn | depart | arrive | continue | ..."""


class Leg(BaseModel):
    """One routed segment between two consecutive waypoints."""

    model_config = ConfigDict(frozen=True)

    from_id: str
    to_id: str
    from_coord: LatLngPair
    to_coord: LatLngPair
    distance_m: float
    duration_min: int
    geometry: list[LatLngPair]
    """Ordered (lat, lng) points, always at least two."""

    steps: list[Step] = Field(default_factory=list)
    degraded: bool = False
    """True when the leg is a straight-line estimate, not a routed path."""

    provider: str = ""

    @field_validator("geometry")
    @classmethod
    def _geometry_has_two_points(cls, value: list[LatLngPair]) -> list[LatLngPair]:
        if len(value) < 2:
            raise ValueError("leg geometry needs at least two points")
        return value


class RouteLegRequest(BaseModel):
    """Request body for the /route-leg endpoint."""

    origin: Location
    destination: Location
    mode: TravelMode = "walking"


class RouteLegResponse(BaseModel):
    """A single routed (or degraded) leg plus display helpers."""

    leg: Leg
    encoded_polyline: str
    distance_text: str
    duration_text: str
    directions_url: str


# ---------------------------------------------------------------------------
# Trip proposals and itineraries
# ---------------------------------------------------------------------------


class ProposedStop(BaseModel):
    """A stop as proposed by the trip planner, with its planned visit time."""

    id: str
    name: str
    category: str = ""
    latitude: float
    longitude: float
    visit_duration_min: int = 30
    description: str = ""

    def as_waypoint(self) -> Waypoint:
        return Waypoint(
            id=self.id,
            name=self.name,
            category=self.category,
            latitude=self.latitude,
            longitude=self.longitude,
            description=self.description,
        )


class TripProposal(BaseModel):
    """A validated trip option returned by the LLM planner.

    Stop order, names and visit durations are authoritative. The distance and
    duration totals are the planner's own guesses and are only kept for
    display next to the narrative.
    """

    id: str
    name: str
    description: str = ""
    stops: list[ProposedStop]
    total_duration_min: float | None = None
    total_distance_m: float | None = None
    estimated_cost: float | None = None
    difficulty: Literal["easy", "moderate", "challenging"] | None = None


class Itinerary(BaseModel):
    """A complete planned trip: ordered stops, routed legs and merged line."""

    id: str
    name: str
    description: str = ""
    stops: list[ProposedStop]
    legs: list[Leg]
    """One leg per stop; leg 0 runs from the user's location to stop 0."""

    total_distance_m: float
    """Sum of leg distances."""

    total_duration_min: int
    """Walking minutes over all legs plus planned visit minutes."""

    walking_duration_min: int
    visit_duration_min: int
    merged_geometry: list[LatLngPair]
    encoded_polyline: str = ""
    degraded_leg_count: int = 0
    proposal_distance_estimate_m: float | None = None
    proposal_duration_estimate_min: float | None = None
    estimated_cost: float | None = None
    difficulty: str | None = None


class CandidatePools(BaseModel):
    """Nearby candidates grouped the way the map client fetches them."""

    historical: list[Waypoint] = Field(default_factory=list)
    food: list[Waypoint] = Field(default_factory=list)
    accommodation: list[Waypoint] = Field(default_factory=list)


class TripPlanningRequest(BaseModel):
    """Request body for the /plan-trip endpoint."""

    user_input: str
    """Free-text trip request, e.g. '3 hours of history and coffee'."""

    user_location: Location
    available_points: CandidatePools
    search_radius_m: float | None = None
    """Falls back to the configured default radius when omitted."""

    mode: TravelMode = "walking"
    session_id: str | None = None
    """When set, a newer request with the same id cancels this one."""


class TripPlanningResponse(BaseModel):
    """Every itinerary the planner produced for the request."""

    trips: list[Itinerary]


class CandidateFilterRequest(BaseModel):
    """Request body for the /filter-candidates endpoint."""

    pool: list[Waypoint]
    origin: Location
    search_radius_m: float
    text: str = ""
    max_results: int = 5


class CandidateFilterResponse(BaseModel):
    candidates: list[Waypoint]


# ---------------------------------------------------------------------------
# Turn-by-turn navigation
# ---------------------------------------------------------------------------


class NavigationStepView(BaseModel):
    """Read model for the step under the navigation cursor."""

    global_index: int
    total_steps: int
    step: Step
    leg_index: int
    step_index: int
    is_destination: bool
    """True for the last step of a leg."""

    destination_name: str
    destination_category: str
    is_at_start: bool
    is_at_end: bool
    progress_percent: float
    leg_distance_m: float
    leg_duration_min: int


class NavigationRequest(BaseModel):
    """Request body for the /navigation/step endpoint.

    The cursor itself lives in the client; the server applies one transition
    to the given index and returns the resulting view.
    """

    itinerary: Itinerary
    index: int = 0
    action: Literal["current", "advance", "retreat", "jump"] = "current"
    target: int | None = None


class NavigationResponse(BaseModel):
    index: int
    total_steps: int
    view: NavigationStepView | None = None


# ---------------------------------------------------------------------------
# Place details
# ---------------------------------------------------------------------------


class PlaceDetailsRequest(BaseModel):
    """Request body for the /place-details endpoint."""

    name: str
    latitude: float
    longitude: float
    category: str = ""


class PlaceDetailsResponse(BaseModel):
    fun_fact: str
    historical_significance: str
