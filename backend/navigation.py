"""Turn-by-turn navigation over an itinerary's legs.

All legs' steps are flattened into one global sequence. A ``NavigationCursor``
points at one entry of that sequence and only moves when the user asks it to;
there are no timers and no position tracking.
"""

from dataclasses import dataclass

from models import Itinerary, NavigationStepView, Step


@dataclass(frozen=True)
class FlatStep:
    """A step tagged with where it sits in the itinerary."""

    step: Step
    leg_index: int
    step_index: int
    is_destination: bool
    destination_name: str
    destination_category: str


def flatten_steps(itinerary: Itinerary) -> list[FlatStep]:
    """Flattens every leg's steps in leg order.

    Leg ``i`` ends at stop ``i`` (leg 0 runs from the user's location), so its
    last step is tagged as the destination step for that stop. Degraded legs
    have no steps and contribute nothing.
    """
    flat: list[FlatStep] = []
    for leg_index, leg in enumerate(itinerary.legs):
        stop = itinerary.stops[leg_index] if leg_index < len(itinerary.stops) else None
        last = len(leg.steps) - 1
        for step_index, step in enumerate(leg.steps):
            flat.append(
                FlatStep(
                    step=step,
                    leg_index=leg_index,
                    step_index=step_index,
                    is_destination=step_index == last,
                    destination_name=stop.name if stop else "Unknown",
                    destination_category=stop.category if stop else "",
                )
            )
    return flat


class NavigationCursor:
    """User-driven cursor over the flattened step sequence.

    The cursor is reset to step 0 when created. With no steps at all (every
    leg degraded) it stays at index 0, ``current()`` returns ``None`` and
    every transition is a no-op.
    """

    def __init__(self, itinerary: Itinerary) -> None:
        self._itinerary = itinerary
        self._steps = flatten_steps(itinerary)
        self._index = 0

    @property
    def index(self) -> int:
        return self._index

    @property
    def total_steps(self) -> int:
        return len(self._steps)

    @property
    def is_at_start(self) -> bool:
        return self._index == 0

    @property
    def is_at_end(self) -> bool:
        return self._index >= self.total_steps - 1

    @property
    def progress_percent(self) -> float:
        if not self._steps:
            return 0.0
        return (self._index + 1) / self.total_steps * 100

    def advance(self) -> int:
        if not self.is_at_end:
            self._index += 1
        return self._index

    def retreat(self) -> int:
        if not self.is_at_start:
            self._index -= 1
        return self._index

    def jump_to(self, index: int) -> int:
        """Moves to ``index``, clamped into the valid range."""
        upper = max(self.total_steps - 1, 0)
        self._index = min(max(index, 0), upper)
        return self._index

    def reset(self) -> int:
        self._index = 0
        return self._index

    def current(self) -> NavigationStepView | None:
        """The derived view for the step under the cursor."""
        if not self._steps:
            return None
        flat = self._steps[self._index]
        leg = self._itinerary.legs[flat.leg_index]
        return NavigationStepView(
            global_index=self._index,
            total_steps=self.total_steps,
            step=flat.step,
            leg_index=flat.leg_index,
            step_index=flat.step_index,
            is_destination=flat.is_destination,
            destination_name=flat.destination_name,
            destination_category=flat.destination_category,
            is_at_start=self.is_at_start,
            is_at_end=self.is_at_end,
            progress_percent=round(self.progress_percent, 1),
            leg_distance_m=leg.distance_m,
            leg_duration_min=leg.duration_min,
        )
