"""
Sale event calendar
Resolves the promotional phase for a moment in time from a list of events.
"""

from datetime import datetime, timedelta
from typing import Iterable, Optional

import pytz

from .logger import get_logger
from .models import SaleEvent, SalePhase, SalePhaseResolution

logger = get_logger(__name__)

# Higher wins when several events match
_PHASE_PRIORITY = {
    SalePhase.MAIN_SALE: 3,
    SalePhase.PRE_SALE: 2,
    SalePhase.COOL_DOWN: 1,
}
_GRADE_PRIORITY = {"S": 3, "A": 2, "B": 1}


def localize(value: datetime, timezone: str) -> datetime:
    """Attach the event timezone to a naive datetime; convert an aware one"""
    tz = pytz.timezone(timezone)
    if value.tzinfo is None:
        return tz.localize(value)
    return value.astimezone(tz)


def event_window(event: SaleEvent):
    """Return (prep start, start, end) as aware datetimes in the event timezone"""
    start = localize(event.start, event.timezone)
    end = localize(event.end, event.timezone)
    tz = pytz.timezone(event.timezone)
    prep_day = (start - timedelta(days=event.prep_days)).date()
    prep_start = tz.localize(datetime(prep_day.year, prep_day.month, prep_day.day))
    return prep_start, start, end


def phase_for_event(at: datetime, event: SaleEvent, cool_down_days: int = 2) -> SalePhase:
    """
    PRE_SALE from midnight prep_days before the start, MAIN_SALE from start to
    end inclusive, COOL_DOWN for cool_down_days after the end.
    """
    at = localize(at, event.timezone)
    prep_start, start, end = event_window(event)

    if start <= at <= end:
        return SalePhase.MAIN_SALE
    if prep_start <= at < start:
        return SalePhase.PRE_SALE
    if end < at <= end + timedelta(days=cool_down_days):
        return SalePhase.COOL_DOWN
    return SalePhase.NORMAL


def resolve_sale_phase(
    at: datetime,
    events: Iterable[SaleEvent],
    cool_down_days: int = 2,
) -> SalePhaseResolution:
    """
    Phase at `at` across all events that affect bidding.
    MAIN_SALE beats PRE_SALE beats COOL_DOWN; among equal phases the higher
    grade wins, then the earlier start.
    """
    best = None
    best_key = None

    for event in events:
        if not event.affects_bidding:
            continue

        phase = phase_for_event(at, event, cool_down_days)
        if phase is SalePhase.NORMAL:
            continue

        start = localize(event.start, event.timezone)
        key = (_PHASE_PRIORITY[phase], _GRADE_PRIORITY[event.grade], -start.timestamp())
        if best_key is None or key > best_key:
            best = (phase, event)
            best_key = key

    if best is None:
        return SalePhaseResolution(phase=SalePhase.NORMAL)

    phase, event = best
    logger.debug(f"Sale phase {phase.value} from event {event.id}")
    return SalePhaseResolution(phase=phase, event=event)


def hours_since_sale_start(at: datetime, event: SaleEvent) -> float:
    """Negative before the event starts"""
    start = localize(event.start, event.timezone)
    return (localize(at, event.timezone) - start).total_seconds() / 3600


def now_in(timezone: str, now: Optional[datetime] = None) -> datetime:
    """Current time in the given timezone, or `now` converted to it"""
    if now is None:
        return datetime.now(pytz.timezone(timezone))
    return localize(now, timezone)
