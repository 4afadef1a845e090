from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from studytrackr.core.models import (
    ExamSettings,
    QuestionGoal,
    StreakData,
    Task,
    TestResult,
    TimeLog,
    TimerState,
)
from studytrackr.core.timer import default_timer_states, timer_states_from_dict, timer_states_to_dict
from studytrackr.core.subjects import JEE

TASKS_KEY = "tasks"
TIME_LOGS_KEY = "time-logs"
QUESTION_GOAL_KEY = "question-goal"
EXAM_SETTINGS_KEY = "exam-settings"
STREAK_DATA_KEY = "streak-data"
TIMER_STATES_KEY = "timer-states"
TEST_RESULTS_KEY = "test-results"

STATE_KEYS = (
    TASKS_KEY,
    TIME_LOGS_KEY,
    QUESTION_GOAL_KEY,
    EXAM_SETTINGS_KEY,
    STREAK_DATA_KEY,
    TIMER_STATES_KEY,
    TEST_RESULTS_KEY,
)


@dataclass
class StudyState:
    """Everything one user context owns; persisted as one bundle."""

    tasks: List[Task] = field(default_factory=list)
    time_logs: List[TimeLog] = field(default_factory=list)
    question_goal: QuestionGoal = field(default_factory=QuestionGoal)
    exam_settings: ExamSettings = field(default_factory=ExamSettings)
    streak_data: StreakData = field(default_factory=StreakData)
    timer_states: Dict[str, TimerState] = field(default_factory=lambda: default_timer_states(JEE))
    test_results: List[TestResult] = field(default_factory=list)

    def to_bundle(self) -> Dict[str, Any]:
        return {
            TASKS_KEY: [task.to_dict() for task in self.tasks],
            TIME_LOGS_KEY: [log.to_dict() for log in self.time_logs],
            QUESTION_GOAL_KEY: self.question_goal.to_dict(),
            EXAM_SETTINGS_KEY: self.exam_settings.to_dict(),
            STREAK_DATA_KEY: self.streak_data.to_dict(),
            TIMER_STATES_KEY: timer_states_to_dict(self.timer_states),
            TEST_RESULTS_KEY: [result.to_dict() for result in self.test_results],
        }

    @classmethod
    def from_bundle(
        cls,
        bundle: Dict[str, Any],
        on_error: Callable[[str, Exception], None],
    ) -> "StudyState":
        """Build a state from decoded values; a bad key falls back to its default.

        ``on_error`` is told about every key that had to fall back. Absent or
        ``None`` values are not errors.
        """
        state = cls()

        def _load(key: str, parse: Callable[[Any], Any]) -> Any:
            raw = bundle.get(key)
            if raw is None:
                return None
            try:
                return parse(raw)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                on_error(key, exc)
                return None

        exam_settings = _load(EXAM_SETTINGS_KEY, ExamSettings.from_dict)
        if exam_settings is not None:
            state.exam_settings = exam_settings
        exam_type = state.exam_settings.exam_type

        tasks = _load(TASKS_KEY, lambda raw: [Task.from_dict(item) for item in raw])
        if tasks is not None:
            state.tasks = tasks

        time_logs = _load(TIME_LOGS_KEY, lambda raw: [TimeLog.from_dict(item) for item in raw])
        if time_logs is not None:
            state.time_logs = time_logs

        question_goal = _load(QUESTION_GOAL_KEY, QuestionGoal.from_dict)
        if question_goal is not None:
            state.question_goal = question_goal

        streak_data = _load(STREAK_DATA_KEY, StreakData.from_dict)
        if streak_data is not None:
            state.streak_data = streak_data

        timer_states = _load(TIMER_STATES_KEY, lambda raw: timer_states_from_dict(raw, exam_type))
        state.timer_states = timer_states if timer_states is not None else default_timer_states(exam_type)

        test_results = _load(TEST_RESULTS_KEY, lambda raw: [TestResult.from_dict(item) for item in raw])
        if test_results is not None:
            state.test_results = test_results

        return state
