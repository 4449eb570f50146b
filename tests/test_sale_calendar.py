"""
Unit tests for sale phase resolution
"""

from datetime import datetime

import pytest
import pytz
from pydantic import ValidationError

from bidtarget.models import SaleEvent, SalePhase
from bidtarget.sale_calendar import (
    hours_since_sale_start,
    phase_for_event,
    resolve_sale_phase,
)


def make_event(event_id="prime_day", grade="S", start=(2025, 7, 15), end=(2025, 7, 16), **kwargs):
    return SaleEvent(
        id=event_id,
        label=event_id.replace("_", " ").title(),
        grade=grade,
        start=datetime(*start, 0, 0, 0),
        end=datetime(*end, 23, 59, 59),
        **kwargs,
    )


class TestPhaseForEvent:
    def setup_method(self):
        self.event = make_event(prep_days=3)

    def test_phases(self):
        assert phase_for_event(datetime(2025, 7, 15, 12), self.event) == SalePhase.MAIN_SALE
        assert phase_for_event(datetime(2025, 7, 16, 23, 59, 59), self.event) == SalePhase.MAIN_SALE
        assert phase_for_event(datetime(2025, 7, 13, 9), self.event) == SalePhase.PRE_SALE
        assert phase_for_event(datetime(2025, 7, 17, 10), self.event) == SalePhase.COOL_DOWN
        assert phase_for_event(datetime(2025, 7, 20), self.event) == SalePhase.NORMAL

    def test_prep_starts_at_midnight(self):
        assert phase_for_event(datetime(2025, 7, 12, 0, 0), self.event) == SalePhase.PRE_SALE
        assert phase_for_event(datetime(2025, 7, 11, 23, 0), self.event) == SalePhase.NORMAL

    def test_cool_down_length(self):
        assert phase_for_event(datetime(2025, 7, 18, 12), self.event, cool_down_days=2) == SalePhase.COOL_DOWN
        assert phase_for_event(datetime(2025, 7, 18, 12), self.event, cool_down_days=1) == SalePhase.NORMAL

    def test_aware_time_is_converted(self):
        """16:00 UTC on the 14th is 01:00 on the 15th in Tokyo"""
        at = pytz.UTC.localize(datetime(2025, 7, 14, 16, 0))

        assert phase_for_event(at, self.event) == SalePhase.MAIN_SALE

    def test_hours_since_start(self):
        assert hours_since_sale_start(datetime(2025, 7, 15, 6), self.event) == 6
        assert hours_since_sale_start(datetime(2025, 7, 14, 22), self.event) == -2


class TestResolveSalePhase:
    def test_no_events(self):
        resolution = resolve_sale_phase(datetime(2025, 7, 15), [])

        assert resolution.phase == SalePhase.NORMAL
        assert resolution.event is None

    def test_events_not_affecting_bidding_are_skipped(self):
        event = make_event(affects_bidding=False)

        assert resolve_sale_phase(datetime(2025, 7, 15, 12), [event]).phase == SalePhase.NORMAL

    def test_main_sale_beats_pre_sale(self):
        running = make_event("smile_sale", grade="B", start=(2025, 7, 10), end=(2025, 7, 13))
        upcoming = make_event("prime_day", grade="S", prep_days=3)

        resolution = resolve_sale_phase(datetime(2025, 7, 12, 12), [upcoming, running])

        assert resolution.phase == SalePhase.MAIN_SALE
        assert resolution.event.id == "smile_sale"

    def test_pre_sale_beats_cool_down(self):
        finished = make_event("time_sale", start=(2025, 7, 8), end=(2025, 7, 10))
        upcoming = make_event("prime_day", prep_days=3)

        resolution = resolve_sale_phase(datetime(2025, 7, 12, 12), [finished, upcoming])

        assert resolution.phase == SalePhase.PRE_SALE
        assert resolution.event.id == "prime_day"

    def test_grade_breaks_ties(self):
        minor = make_event("fashion_week", grade="B")
        major = make_event("prime_day", grade="S")

        resolution = resolve_sale_phase(datetime(2025, 7, 15, 12), [minor, major])

        assert resolution.event.id == "prime_day"


class TestSaleEvent:
    def test_end_must_follow_start(self):
        with pytest.raises(ValidationError):
            SaleEvent(
                id="broken",
                label="Broken",
                start=datetime(2025, 7, 16),
                end=datetime(2025, 7, 15),
            )

    def test_unknown_grade_rejected(self):
        with pytest.raises(ValidationError):
            make_event(grade="Z")
