"""Study-day arithmetic.

A study day runs from 04:30:00.000 to 04:29:59.999 on the following calendar
day. Everything that talks about "today" (stats, streaks, the task planner)
goes through these helpers instead of calendar dates.
"""
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Callable, Optional, Tuple

Clock = Callable[[], datetime]

STUDY_DAY_RESET = time(4, 30)
ONE_DAY = timedelta(days=1)
ONE_MILLISECOND = timedelta(milliseconds=1)

# Labels written by the earlier web app, e.g. "Fri Mar 15 2024".
_LEGACY_LABEL_FORMAT = "%a %b %d %Y"


def local_now() -> datetime:
    return datetime.now().astimezone()


def as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.astimezone()
    return value


def study_day_start(instant: datetime) -> datetime:
    start = instant.replace(hour=STUDY_DAY_RESET.hour, minute=STUDY_DAY_RESET.minute, second=0, microsecond=0)
    if instant.time() < STUDY_DAY_RESET:
        start -= ONE_DAY
    return start


def study_day_end(instant: datetime) -> datetime:
    return study_day_start(instant) + ONE_DAY - ONE_MILLISECOND


def study_day_label(instant: datetime) -> str:
    return study_day_start(instant).date().isoformat()


def within_study_day(instant: datetime, reference: datetime) -> bool:
    return study_day_start(reference) <= instant <= study_day_end(reference)


def next_study_day_window(reference: datetime) -> Tuple[datetime, datetime]:
    start = study_day_start(reference) + ONE_DAY
    return start, start + ONE_DAY - ONE_MILLISECOND


def parse_label(label: str) -> date:
    try:
        return date.fromisoformat(label)
    except ValueError:
        return datetime.strptime(label, _LEGACY_LABEL_FORMAT).date()


def study_day_start_for_label(label: str, tz: Optional[tzinfo] = None) -> datetime:
    return datetime.combine(parse_label(label), STUDY_DAY_RESET, tzinfo=tz)


def study_days_between(earlier_label: str, now: datetime) -> int:
    """Whole study days between the labelled study day and the one containing ``now``."""
    return (study_day_start(now).date() - parse_label(earlier_label)).days
