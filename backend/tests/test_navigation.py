"""Unit tests for navigation.py."""

import pytest

import navigation
from models import Itinerary, Leg, ProposedStop, Step


def _leg(from_id, to_id, instructions, degraded=False):
    return Leg(
        from_id=from_id,
        to_id=to_id,
        from_coord=(40.0, -75.0),
        to_coord=(40.001, -75.0),
        distance_m=111.0,
        duration_min=2,
        geometry=[(40.0, -75.0), (40.001, -75.0)],
        steps=[Step(instruction=text) for text in instructions],
        degraded=degraded,
    )


def _itinerary(legs):
    stops = [
        ProposedStop(id="a", name="Old Church", category="church", latitude=40.001, longitude=-75.0),
        ProposedStop(id="b", name="Corner Cafe", category="cafe", latitude=40.002, longitude=-75.0),
        ProposedStop(id="c", name="City Museum", category="museum", latitude=40.003, longitude=-75.0),
    ][: len(legs)]
    return Itinerary(
        id="t1",
        name="Test",
        stops=stops,
        legs=legs,
        total_distance_m=0,
        total_duration_min=0,
        walking_duration_min=0,
        visit_duration_min=0,
        merged_geometry=[],
    )


@pytest.fixture
def itinerary():
    return _itinerary(
        [
            _leg("user", "a", ["Head north", "Turn left", "Arrive at Old Church"]),
            _leg("a", "b", [], degraded=True),
            _leg("b", "c", ["Head east", "Arrive at City Museum"]),
        ]
    )


def test_flatten_skips_degraded_legs_and_tags_destinations(itinerary):
    flat = navigation.flatten_steps(itinerary)

    assert [f.step.instruction for f in flat] == [
        "Head north", "Turn left", "Arrive at Old Church", "Head east", "Arrive at City Museum",
    ]
    assert [f.is_destination for f in flat] == [False, False, True, False, True]
    assert [f.leg_index for f in flat] == [0, 0, 0, 2, 2]
    assert flat[2].destination_name == "Old Church"
    assert flat[4].destination_category == "museum"


def test_cursor_starts_at_zero(itinerary):
    cursor = navigation.NavigationCursor(itinerary)
    assert cursor.index == 0
    assert cursor.total_steps == 5
    assert cursor.is_at_start
    assert not cursor.is_at_end


def test_advance_at_end_is_noop(itinerary):
    cursor = navigation.NavigationCursor(itinerary)
    for _ in range(10):
        cursor.advance()
    assert cursor.index == 4
    assert cursor.is_at_end
    assert cursor.advance() == 4


def test_retreat_at_start_is_noop(itinerary):
    cursor = navigation.NavigationCursor(itinerary)
    assert cursor.retreat() == 0
    cursor.advance()
    assert cursor.retreat() == 0


@pytest.mark.parametrize("target,expected", [(-5, 0), (10_000, 4), (3, 3)])
def test_jump_to_clamps(itinerary, target, expected):
    cursor = navigation.NavigationCursor(itinerary)
    assert cursor.jump_to(target) == expected


def test_reset_returns_to_first_step(itinerary):
    cursor = navigation.NavigationCursor(itinerary)
    cursor.jump_to(3)
    assert cursor.reset() == 0


def test_current_view(itinerary):
    cursor = navigation.NavigationCursor(itinerary)
    cursor.jump_to(2)
    view = cursor.current()

    assert view.global_index == 2
    assert view.step.instruction == "Arrive at Old Church"
    assert view.is_destination is True
    assert view.destination_name == "Old Church"
    assert view.destination_category == "church"
    assert view.leg_index == 0
    assert view.step_index == 2
    assert view.progress_percent == 60.0
    assert view.leg_distance_m == 111.0


def test_current_view_on_last_step(itinerary):
    cursor = navigation.NavigationCursor(itinerary)
    cursor.jump_to(10_000)
    view = cursor.current()
    assert view.is_at_end
    assert view.leg_index == 2
    assert view.destination_name == "City Museum"
    assert view.progress_percent == 100.0


def test_all_degraded_itinerary_has_no_steps():
    itin = _itinerary([_leg("user", "a", [], degraded=True)])
    cursor = navigation.NavigationCursor(itin)

    assert cursor.total_steps == 0
    assert cursor.current() is None
    assert cursor.advance() == 0
    assert cursor.retreat() == 0
    assert cursor.jump_to(7) == 0
    assert cursor.progress_percent == 0.0
