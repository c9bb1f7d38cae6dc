from __future__ import annotations

from datetime import date, timedelta

import pytest

from backend.domain.models import DayAvailability, SelectionPhase
from backend.services.time_slot_selector import (
    END_BEFORE_START_MESSAGE,
    NO_FREE_BLOCK_MESSAGE,
    SelectionOutcome,
    TimeSlotSelector,
)
from backend.utils.time_parsing import parse_clock_minutes


MONDAY = date(2024, 3, 18)


def _selector(morning: bool = True, afternoon: bool = True, overrides=None) -> TimeSlotSelector:
    overrides = overrides or {}

    def availability_for(day: date) -> DayAvailability:
        flags = overrides.get(day, (morning, afternoon))
        return DayAvailability(date=day, morning=flags[0], afternoon=flags[1])

    return TimeSlotSelector(availability_for)


def test_end_before_start_is_rejected_and_end_stays_empty():
    selector = _selector()
    selector.add_date(MONDAY)

    assert selector.on_change("start_time", 0, "09:00 AM").accepted
    outcome = selector.on_change("end_time", 0, "08:30 AM")

    assert outcome.accepted is False
    assert outcome.message == END_BEFORE_START_MESSAGE
    current = selector.selections()[0]
    assert current.start_time == "09:00 AM"
    assert current.end_time is None
    assert current.phase == SelectionPhase.START_CHOSEN


def test_phases_progress_through_full_selection():
    selector = _selector()
    selector.add_date(MONDAY)
    assert selector.selections()[0].phase == SelectionPhase.UNSELECTED
    selector.on_change("startTime", 0, "10:00 AM")
    assert selector.selections()[0].phase == SelectionPhase.START_CHOSEN
    selector.on_change("endTime", 0, "02:00 PM")
    assert selector.selections()[0].phase == SelectionPhase.FULLY_SELECTED
    assert selector.completed_selections()[0].end_time == "02:00 PM"
    assert selector.validation_errors() == []


def test_end_requires_start():
    selector = _selector()
    selector.add_date(MONDAY)
    outcome = selector.on_change("end_time", 0, "11:00 AM")
    assert outcome.accepted is False
    assert selector.selections()[0].end_time is None


def test_new_start_after_end_resets_end():
    selector = _selector()
    selector.add_date(MONDAY)
    selector.on_change("start_time", 0, "08:00 AM")
    selector.on_change("end_time", 0, "10:00 AM")

    outcome = selector.on_change("start_time", 0, "10:00 AM")

    assert outcome.accepted is True
    assert outcome.message
    current = selector.selections()[0]
    assert (current.start_time, current.end_time) == ("10:00 AM", None)
    assert current.phase == SelectionPhase.START_CHOSEN


def test_clearing_start_clears_end():
    selector = _selector()
    selector.add_date(MONDAY)
    selector.on_change("start_time", 0, "08:00 AM")
    selector.on_change("end_time", 0, "10:00 AM")
    assert selector.on_change("start_time", 0, "--:-- AM").accepted
    assert selector.selections()[0].phase == SelectionPhase.UNSELECTED


def test_times_outside_business_hours_are_rejected():
    selector = _selector()
    selector.add_date(MONDAY)
    assert selector.on_change("start_time", 0, "07:00 AM").accepted is False
    assert selector.on_change("start_time", 0, "05:00 PM").accepted is False
    selector.on_change("start_time", 0, "04:00 PM")
    assert selector.on_change("end_time", 0, "06:00 PM").accepted is False
    assert selector.on_change("end_time", 0, "05:00 PM").accepted is True


def test_morning_only_rejects_afternoon_times():
    selector = _selector(morning=True, afternoon=False)
    selector.add_date(MONDAY)
    assert selector.on_change("start_time", 0, "01:00 PM").accepted is False
    selector.on_change("start_time", 0, "09:00 AM")
    straddle = selector.on_change("end_time", 0, "01:00 PM")
    assert straddle.accepted is False
    assert "morning" in straddle.message
    assert selector.on_change("end_time", 0, "12:00 PM").accepted is True


def test_afternoon_only_rejects_morning_start():
    selector = _selector(morning=False, afternoon=True)
    selector.add_date(MONDAY)
    outcome = selector.on_change("start_time", 0, "11:00 AM")
    assert outcome.accepted is False
    assert selector.selections()[0].start_time is None
    assert selector.on_change("start_time", 0, "01:00 PM").accepted is True
    assert selector.on_change("end_time", 0, "05:00 PM").accepted is True


def test_day_without_free_block_rejects_everything():
    selector = _selector(morning=False, afternoon=False)
    selector.add_date(MONDAY)
    outcome = selector.on_change("start_time", 0, "09:00 AM")
    assert outcome == SelectionOutcome(False, NO_FREE_BLOCK_MESSAGE)
    assert selector.time_options(0, "start_time") == []
    assert selector.validation_errors()


def test_rejections_never_mutate_state():
    selector = _selector(morning=True, afternoon=False)
    selector.add_date(MONDAY)
    selector.on_change("start_time", 0, "09:00 AM")
    selector.on_change("end_time", 0, "11:00 AM")
    before = selector.selections()

    for field_name, value in [
        ("end_time", "08:00 AM"),
        ("end_time", "03:00 PM"),
        ("start_time", "02:00 PM"),
        ("start_time", "06:00 AM"),
    ]:
        assert selector.on_change(field_name, 0, value).accepted is False

    assert selector.selections() == before


def test_candidate_dates_capped_and_deduplicated():
    selector = _selector()
    days = [MONDAY + timedelta(days=offset) for offset in range(7)]
    accepted = [selector.add_date(day) for day in days]
    assert accepted == [True] * 5 + [False] * 2
    assert selector.add_date(MONDAY) is False
    assert len(selector.selections()) == 5


def test_toggle_and_set_candidate_dates():
    selector = _selector()
    assert selector.toggle_date(MONDAY) is True
    selector.on_change("start_time", 0, "09:00 AM")
    assert selector.toggle_date(MONDAY) is False
    assert selector.selections() == []

    kept = selector.set_candidate_dates([MONDAY, MONDAY, MONDAY + timedelta(days=1)])
    assert kept == [MONDAY, MONDAY + timedelta(days=1)]
    assert all(item.start_time is None for item in selector.selections())
    assert selector.remove_date(MONDAY) is True
    assert selector.remove_date(MONDAY) is False


def test_unified_time_applies_per_date_rules():
    tuesday = MONDAY + timedelta(days=1)
    selector = _selector(overrides={tuesday: (False, True)})
    selector.set_candidate_dates([MONDAY, tuesday])

    outcomes = selector.apply_unified_time("start_time", "09:00 AM")

    assert [item.accepted for item in outcomes] == [True, False]
    assert selector.selections()[0].start_time == "09:00 AM"
    assert selector.selections()[1].start_time is None


def test_time_options_follow_free_blocks():
    selector = _selector(morning=True, afternoon=False)
    selector.add_date(MONDAY)
    assert selector.time_options(0, "start_time") == [
        "08:00 AM", "09:00 AM", "10:00 AM", "11:00 AM", "12:00 PM",
    ]
    assert selector.time_options(0, "end_time") == []
    selector.on_change("start_time", 0, "10:00 AM")
    assert selector.time_options(0, "end_time") == ["11:00 AM", "12:00 PM"]


def test_refresh_drops_times_that_lost_their_block():
    state = {"afternoon": True}

    def availability_for(day: date) -> DayAvailability:
        return DayAvailability(date=day, morning=True, afternoon=state["afternoon"])

    selector = TimeSlotSelector(availability_for)
    selector.add_date(MONDAY)
    selector.on_change("start_time", 0, "09:00 AM")
    selector.on_change("end_time", 0, "03:00 PM")

    state["afternoon"] = False
    selector.refresh_availability()

    current = selector.selections()[0]
    assert current.availability.afternoon is False
    assert (current.start_time, current.end_time) == ("09:00 AM", None)


def test_refresh_clears_times_when_day_has_no_free_block():
    state = {"free": True}

    def availability_for(day: date) -> DayAvailability:
        return DayAvailability(date=day, morning=state["free"], afternoon=state["free"])

    selector = TimeSlotSelector(availability_for)
    selector.add_date(MONDAY)
    selector.on_change("start_time", 0, "09:00 AM")
    selector.on_change("end_time", 0, "11:00 AM")
    assert len(selector.completed_selections()) == 1

    state["free"] = False
    selector.refresh_availability()

    current = selector.selections()[0]
    assert (current.start_time, current.end_time) == (None, None)
    assert current.phase == SelectionPhase.UNSELECTED
    assert selector.completed_selections() == []


def test_unknown_field_raises():
    selector = _selector()
    selector.add_date(MONDAY)
    with pytest.raises(ValueError):
        selector.on_change("duration", 0, "01:00 PM")


@pytest.mark.parametrize("flags", [(True, True), (True, False), (False, True)])
def test_accepted_selections_never_invert_or_cross_closed_blocks(flags):
    """Every combination of whole-hour edits leaves only valid intervals."""
    selector = _selector(*flags)
    selector.add_date(MONDAY)
    clock = [f"{hour % 12 or 12:02d}:00 {'AM' if hour < 12 else 'PM'}" for hour in range(7, 19)]

    for start in clock:
        for end in clock:
            selector.on_change("start_time", 0, start)
            selector.on_change("end_time", 0, end)
            current = selector.selections()[0]
            if current.phase != SelectionPhase.FULLY_SELECTED:
                continue
            start_minutes = parse_clock_minutes(current.start_time)
            end_minutes = parse_clock_minutes(current.end_time)
            assert end_minutes > start_minutes
            if flags == (True, False):
                assert end_minutes // 60 < 13
            if flags == (False, True):
                assert start_minutes // 60 >= 12
