from dataclasses import replace
from datetime import datetime, time
from typing import Iterable, List, Optional

from studytrackr.core.models import DEFAULT_PRIORITY, PRIORITIES, Task, new_id
from studytrackr.core.study_day import next_study_day_window, study_day_end, study_day_start
from studytrackr.core.subjects import subjects_for

TODAY = "today"
TOMORROW = "tomorrow"
VIEWS = (TODAY, TOMORROW)


def create_task(
    *,
    title: str,
    subject: str,
    exam_type: str,
    now: datetime,
    view: str = TODAY,
    priority: str = DEFAULT_PRIORITY,
    estimated_time: Optional[int] = None,
) -> Task:
    title = (title or "").strip()
    if not title:
        raise ValueError("Task title is required")
    if subject not in subjects_for(exam_type):
        raise ValueError(f"Unknown subject for {exam_type}: {subject}")
    if priority not in PRIORITIES:
        raise ValueError(f"Unsupported priority: {priority}")
    if view not in VIEWS:
        raise ValueError(f"Unsupported view: {view}")
    if estimated_time is not None and estimated_time < 0:
        raise ValueError("Estimated time cannot be negative")

    if view == TOMORROW:
        # Noon on the next study day's date sits safely inside that window.
        next_start, _ = next_study_day_window(now)
        target_date = datetime.combine(next_start.date(), time(12, 0), tzinfo=now.tzinfo)
    else:
        target_date = now

    return Task(
        id=new_id(now),
        title=title,
        subject=subject,
        created_at=now,
        target_date=target_date,
        priority=priority,
        estimated_time=estimated_time,
    )


def tasks_for_view(tasks: Iterable[Task], subject: str, view: str, now: datetime) -> List[Task]:
    if view == TOMORROW:
        window_start, window_end = next_study_day_window(now)
    else:
        window_start, window_end = study_day_start(now), study_day_end(now)

    return [
        task
        for task in tasks
        if task.subject == subject and window_start <= task.effective_target_date <= window_end
    ]


def toggle_completed(task: Task) -> Task:
    return replace(task, completed=not task.completed)


def total_estimated_minutes(tasks: Iterable[Task]) -> int:
    return sum(task.estimated_time or 0 for task in tasks if not task.completed)
