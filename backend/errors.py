"""Exception types raised inside the trip engine.

Routing errors are always absorbed by the leg calculator and turned into
straight-line legs. ``MalformedProposal`` is the only error meant to reach an
HTTP caller as a planning failure.
"""


class TripEngineError(Exception):
    """Base class for every error raised by this service."""


class RoutingError(TripEngineError):
    """A single origin→destination routing request could not be served."""


class RoutingUnavailable(RoutingError):
    """No routing provider is configured, reachable, or answered in time."""


class NoRouteFound(RoutingError):
    """The provider answered but reported no path between the two points."""


class InvalidCoordinates(TripEngineError):
    """A waypoint lies outside the valid latitude/longitude ranges."""

    def __init__(self, message: str, *, item_id: str | None = None) -> None:
        super().__init__(message)
        self.item_id = item_id


class PlanningSuperseded(TripEngineError):
    """An in-flight planning request was replaced or discarded by the user."""


class MalformedProposal(TripEngineError):
    """The LLM trip proposal is missing fields required to build a trip."""

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        super().__init__(message)
        self.problems = problems or []
