from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from studytrackr.core.models import TimeLog, TimerState, new_id, seconds_between
from studytrackr.core.study_day import Clock, local_now
from studytrackr.core.subjects import DEFAULT_SUBJECT, subjects_for


class TimerError(Exception):
    pass


def default_timer_states(exam_type: str) -> Dict[str, TimerState]:
    return {subject: TimerState() for subject in subjects_for(exam_type)}


def normalize_timer_states(states: Dict[str, TimerState], exam_type: str) -> Dict[str, TimerState]:
    """Re-derive the timer map for a profile, keeping subjects both sets share."""
    normalized = default_timer_states(exam_type)
    for subject, state in states.items():
        if subject in normalized:
            normalized[subject] = state
    return normalized


def resolve_active_subject(active_subject: str, exam_type: str) -> str:
    if active_subject in subjects_for(exam_type):
        return active_subject
    return DEFAULT_SUBJECT


def timer_states_to_dict(states: Dict[str, TimerState]) -> Dict[str, Any]:
    return {subject: state.to_dict() for subject, state in states.items()}


def timer_states_from_dict(data: Dict[str, Any], exam_type: str) -> Dict[str, TimerState]:
    states = {subject: TimerState.from_dict(raw or {}) for subject, raw in data.items()}
    return normalize_timer_states(states, exam_type)


def project_elapsed(state: TimerState, now: datetime) -> int:
    if not state.is_running or state.start_time is None:
        return state.elapsed_time
    return max(0, seconds_between(state.start_time, now))


class TimerEngine:
    """Per-subject stopwatch state machine (Idle <-> Running).

    Operates in place on the timer map it is given, so the owning state
    container always sees the current values. Timers of different subjects
    are independent and may run at the same time.
    """

    def __init__(self, states: Dict[str, TimerState], exam_type: str, clock: Optional[Clock] = None) -> None:
        self.states = states
        self.exam_type = exam_type
        self.clock = clock or local_now

    def _state(self, subject: str) -> TimerState:
        if subject not in subjects_for(self.exam_type):
            raise TimerError(f"Unknown subject for {self.exam_type}: {subject}")
        if subject not in self.states:
            self.states[subject] = TimerState()
        return self.states[subject]

    @property
    def running_subjects(self) -> List[str]:
        return [subject for subject, state in self.states.items() if state.is_running]

    @property
    def has_running(self) -> bool:
        return bool(self.running_subjects)

    def start(
        self,
        subject: str,
        goal_id: Optional[str] = None,
        goal_title: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> TimerState:
        state = self._state(subject)
        if state.is_running:
            raise TimerError(f"Timer for {subject} is already running")
        # question_count is left as is; only pause() clears it.
        state.is_running = True
        state.start_time = now or self.clock()
        state.elapsed_time = 0
        state.goal_id = goal_id
        state.goal_title = goal_title
        return state

    def project(self, subject: str, now: Optional[datetime] = None) -> TimerState:
        state = self._state(subject)
        return replace(state, elapsed_time=project_elapsed(state, now or self.clock()))

    def projected_states(self, now: Optional[datetime] = None) -> Dict[str, TimerState]:
        now = now or self.clock()
        return {
            subject: replace(state, elapsed_time=project_elapsed(state, now))
            for subject, state in self.states.items()
        }

    def set_question_count(self, subject: str, count: int) -> TimerState:
        if count < 0:
            raise ValueError("Question count cannot be negative")
        state = self._state(subject)
        state.question_count = count
        return state

    def increment_questions(self, subject: str, amount: int = 1) -> TimerState:
        state = self._state(subject)
        state.question_count += amount
        return state

    def decrement_questions(self, subject: str, amount: int = 1) -> TimerState:
        state = self._state(subject)
        state.question_count = max(0, state.question_count - amount)
        return state

    def pause(self, subject: str, now: Optional[datetime] = None) -> TimeLog:
        state = self._state(subject)
        if not state.is_running or state.start_time is None:
            raise TimerError(f"Timer for {subject} is not running")
        end_time = now or self.clock()
        log = TimeLog(
            id=new_id(end_time),
            subject=subject,
            start_time=state.start_time,
            end_time=end_time,
            duration=max(0, seconds_between(state.start_time, end_time)),
            question_count=state.question_count,
            goal_id=state.goal_id,
            goal_title=state.goal_title,
        )
        self.states[subject] = TimerState()
        return log

    def switch_exam_type(self, exam_type: str) -> Dict[str, TimerState]:
        self.states = normalize_timer_states(self.states, exam_type)
        self.exam_type = exam_type
        return self.states
