"""Manual session entry and the three edits a saved log allows."""
from dataclasses import replace
from datetime import datetime
from typing import Iterable, List, Optional

from studytrackr.core.models import Task, TimeLog, new_id, seconds_between
from studytrackr.core.subjects import subjects_for


class LogValidationError(ValueError):
    pass


def resolve_goal_title(tasks: Iterable[Task], goal_id: Optional[str]) -> Optional[str]:
    if not goal_id:
        return None
    for task in tasks:
        if task.id == goal_id:
            return task.title
    return None


def create_manual_log(
    *,
    subject: Optional[str],
    start_time: Optional[datetime],
    end_time: Optional[datetime],
    exam_type: str,
    now: datetime,
    question_count: int = 0,
    goal_id: Optional[str] = None,
    goal_title: Optional[str] = None,
    notes: Optional[str] = None,
) -> TimeLog:
    if not subject or start_time is None or end_time is None:
        raise LogValidationError("Subject, start time, and end time are required")
    if subject not in subjects_for(exam_type):
        raise LogValidationError(f"Unknown subject for {exam_type}: {subject}")
    if end_time <= start_time:
        raise LogValidationError("End time must be after start time")
    if question_count < 0:
        raise LogValidationError("Question count cannot be negative")

    return TimeLog(
        id=new_id(now),
        subject=subject,
        start_time=start_time,
        end_time=end_time,
        duration=seconds_between(start_time, end_time),
        question_count=question_count,
        goal_id=goal_id or None,
        goal_title=goal_title if goal_id else None,
        notes=notes or None,
    )


def edit_end_time(log: TimeLog, new_end_time: datetime) -> TimeLog:
    if new_end_time < log.start_time:
        raise LogValidationError("End time cannot be before start time")
    return replace(log, end_time=new_end_time, duration=seconds_between(log.start_time, new_end_time))


def edit_question_count(log: TimeLog, question_count: int) -> TimeLog:
    if question_count < 0:
        raise LogValidationError("Question count cannot be negative")
    return replace(log, question_count=question_count)


def edit_notes(log: TimeLog, notes: Optional[str]) -> TimeLog:
    return replace(log, notes=notes or None)


def newest_first(logs: Iterable[TimeLog]) -> List[TimeLog]:
    return sorted(logs, key=lambda log: log.start_time, reverse=True)
