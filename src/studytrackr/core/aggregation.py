from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Tuple

from studytrackr.core.models import ExamSettings, QuestionGoal, TimeLog, TimerState
from studytrackr.core.study_day import study_day_end, study_day_label, study_day_start
from studytrackr.core.subjects import CLASSES, subjects_for
from studytrackr.core.timer import project_elapsed


@dataclass(frozen=True)
class TodayStats:
    time_by_subject: Dict[str, int] = field(default_factory=dict)
    questions_by_subject: Dict[str, int] = field(default_factory=dict)
    total_study_time: int = 0
    total_questions: int = 0
    available_subjects: Tuple[str, ...] = ()

    @property
    def total_hours(self) -> float:
        return self.total_study_time / 3600

    def goal_progress(self, question_goal: QuestionGoal) -> float:
        if question_goal.daily <= 0:
            return 100.0
        return min(100.0, self.total_questions / question_goal.daily * 100)

    def to_dict(self) -> Dict:
        return {
            "time_by_subject": dict(self.time_by_subject),
            "questions_by_subject": dict(self.questions_by_subject),
            "total_study_time": self.total_study_time,
            "total_questions": self.total_questions,
            "available_subjects": list(self.available_subjects),
        }


def compute_today_stats(
    time_logs: Iterable[TimeLog],
    timer_states: Dict[str, TimerState],
    exam_settings: ExamSettings,
    now: datetime,
) -> TodayStats:
    window_start = study_day_start(now)
    window_end = study_day_end(now)
    subjects = subjects_for(exam_settings.exam_type)

    time_by_subject = {subject: 0 for subject in subjects}
    questions_by_subject = {subject: 0 for subject in subjects}

    for log in time_logs:
        if log.subject not in time_by_subject:
            continue
        if window_start <= log.start_time <= window_end:
            time_by_subject[log.subject] += log.duration
            questions_by_subject[log.subject] += log.question_count

    # A running timer has not produced a log yet, so adding it cannot double count.
    for subject, state in timer_states.items():
        if state.is_running and subject in time_by_subject:
            time_by_subject[subject] += project_elapsed(state, now)
            questions_by_subject[subject] += state.question_count

    return TodayStats(
        time_by_subject=time_by_subject,
        questions_by_subject=questions_by_subject,
        total_study_time=sum(time_by_subject.values()),
        total_questions=sum(count for subject, count in questions_by_subject.items() if subject != CLASSES),
        available_subjects=subjects,
    )


def daily_totals(time_logs: Iterable[TimeLog], now: datetime, days: int = 7) -> List[Dict]:
    """Study time and question totals for the last ``days`` study days, oldest first."""
    labels = [study_day_label(now - timedelta(days=offset)) for offset in range(days - 1, -1, -1)]
    totals = {label: {"study_day": label, "study_time": 0, "questions": 0} for label in labels}

    for log in time_logs:
        start = log.start_time.astimezone(now.tzinfo) if now.tzinfo else log.start_time
        row = totals.get(study_day_label(start))
        if row is None:
            continue
        row["study_time"] += log.duration
        if log.subject != CLASSES:
            row["questions"] += log.question_count

    return [totals[label] for label in labels]
