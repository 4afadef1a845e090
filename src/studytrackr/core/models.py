"""Entities of the study tracker and their JSON representation.

Persisted JSON keeps the camelCase field names used by the earlier web app so
that exported local data and existing cloud rows load unchanged.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional
import math
import uuid

from studytrackr.core.study_day import as_aware, parse_label
from studytrackr.core.subjects import JEE, default_subject_names, validate_exam_type

PRIORITIES = ("low", "medium", "high")
DEFAULT_PRIORITY = "medium"
DEFAULT_DAILY_QUESTIONS = 80
DEFAULT_TEST_DURATION = 180


def new_id(now: datetime) -> str:
    """Millisecond timestamp prefix keeps ids sortable by creation order."""
    return f"{int(now.timestamp() * 1000)}{uuid.uuid4().hex[:6]}"


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def from_iso(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return as_aware(value)
    return as_aware(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


def seconds_between(start: datetime, end: datetime) -> int:
    return math.floor((end - start).total_seconds())


def _number(value: Any) -> float:
    number = float(value or 0)
    return int(number) if number.is_integer() else number


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


@dataclass
class TimerState:
    is_running: bool = False
    start_time: Optional[datetime] = None
    elapsed_time: int = 0
    question_count: int = 0
    goal_id: Optional[str] = None
    goal_title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isRunning": self.is_running,
            "startTime": to_iso(self.start_time) or "",
            "elapsedTime": self.elapsed_time,
            "questionCount": self.question_count,
            "goalId": self.goal_id,
            "goalTitle": self.goal_title,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimerState":
        try:
            start_time = from_iso(data.get("startTime"))
        except ValueError:
            start_time = None
        # A running timer is only meaningful with a start time to project from.
        is_running = bool(data.get("isRunning")) and start_time is not None
        return cls(
            is_running=is_running,
            start_time=start_time if is_running else None,
            elapsed_time=int(data.get("elapsedTime") or 0),
            question_count=max(0, int(data.get("questionCount") or 0)),
            goal_id=data.get("goalId") or None,
            goal_title=data.get("goalTitle") or None,
        )


@dataclass(frozen=True)
class TimeLog:
    id: str
    subject: str
    start_time: datetime
    end_time: datetime
    duration: int
    question_count: int = 0
    goal_id: Optional[str] = None
    goal_title: Optional[str] = None
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "subject": self.subject,
                "startTime": to_iso(self.start_time),
                "endTime": to_iso(self.end_time),
                "timestamp": to_iso(self.end_time),
                "duration": self.duration,
                "questionCount": self.question_count,
                "goalId": self.goal_id,
                "goalTitle": self.goal_title,
                "notes": self.notes,
            }
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimeLog":
        start_time = from_iso(data.get("startTime"))
        end_time = from_iso(data.get("endTime"))
        if start_time is None or end_time is None:
            # Older records only carry the moment the session was saved.
            duration = int(data.get("duration") or 0)
            end_time = from_iso(data["timestamp"])
            start_time = end_time - timedelta(seconds=duration)
        elif data.get("duration") is not None:
            duration = int(data["duration"])
        else:
            duration = seconds_between(start_time, end_time)

        return cls(
            id=str(data["id"]),
            subject=str(data["subject"]),
            start_time=start_time,
            end_time=end_time,
            duration=duration,
            question_count=int(data.get("questionCount") or 0),
            goal_id=data.get("goalId") or None,
            goal_title=data.get("goalTitle") or None,
            notes=data.get("notes") or None,
        )


@dataclass(frozen=True)
class Task:
    id: str
    title: str
    subject: str
    created_at: datetime
    completed: bool = False
    target_date: Optional[datetime] = None
    priority: str = DEFAULT_PRIORITY
    estimated_time: Optional[int] = None

    @property
    def effective_target_date(self) -> datetime:
        return self.target_date or self.created_at

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "title": self.title,
                "subject": self.subject,
                "completed": self.completed,
                "createdAt": to_iso(self.created_at),
                "targetDate": to_iso(self.target_date),
                "priority": self.priority,
                "estimatedTime": self.estimated_time,
            }
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        estimated = data.get("estimatedTime")
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            subject=str(data["subject"]),
            created_at=from_iso(data["createdAt"]),
            completed=bool(data.get("completed", False)),
            target_date=from_iso(data.get("targetDate")),
            priority=data.get("priority") if data.get("priority") in PRIORITIES else DEFAULT_PRIORITY,
            estimated_time=int(estimated) if estimated not in (None, "") else None,
        )


@dataclass(frozen=True)
class SubjectScore:
    attempted: int = 0
    correct: int = 0
    marks: float = 0
    total_marks: float = 0

    @property
    def incorrect(self) -> int:
        return max(0, self.attempted - self.correct)

    @property
    def accuracy(self) -> float:
        if self.attempted <= 0:
            return 0.0
        return self.correct / self.attempted * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "correct": self.correct,
            "incorrect": self.incorrect,
            "marks": self.marks,
            "totalMarks": self.total_marks,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubjectScore":
        # "incorrect" is always re-derived, a stored value is ignored.
        return cls(
            attempted=int(data.get("attempted") or 0),
            correct=int(data.get("correct") or 0),
            marks=_number(data.get("marks")),
            total_marks=_number(data.get("totalMarks")),
        )


@dataclass(frozen=True)
class TestResult:
    __test__ = False  # not a pytest test class

    id: str
    exam_type: str
    test_name: str
    date: date
    subjects: Dict[str, SubjectScore] = field(default_factory=dict)
    duration: Optional[int] = DEFAULT_TEST_DURATION
    rank: Optional[int] = None
    notes: Optional[str] = None

    @property
    def total_marks(self) -> float:
        return sum(score.marks for score in self.subjects.values())

    @property
    def max_marks(self) -> float:
        return sum(score.total_marks for score in self.subjects.values())

    @property
    def percentage(self) -> float:
        if self.max_marks <= 0:
            return 0.0
        return self.total_marks / self.max_marks * 100

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "examType": self.exam_type,
                "testName": self.test_name,
                "date": self.date.isoformat(),
                "duration": self.duration,
                "subjects": {name: score.to_dict() for name, score in self.subjects.items()},
                "totalMarks": self.total_marks,
                "maxMarks": self.max_marks,
                "percentage": self.percentage,
                "rank": self.rank,
                "notes": self.notes,
            }
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TestResult":
        rank = data.get("rank")
        duration = data.get("duration")
        return cls(
            id=str(data["id"]),
            exam_type=str(data.get("examType") or JEE),
            test_name=str(data.get("testName") or ""),
            date=date.fromisoformat(str(data["date"])[:10]),
            subjects={
                name: SubjectScore.from_dict(score or {})
                for name, score in (data.get("subjects") or {}).items()
            },
            duration=int(duration) if duration not in (None, "") else None,
            rank=int(rank) if rank not in (None, "") else None,
            notes=data.get("notes") or None,
        )


@dataclass(frozen=True)
class QuestionGoal:
    daily: int = DEFAULT_DAILY_QUESTIONS

    def to_dict(self) -> Dict[str, Any]:
        return {"daily": self.daily}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuestionGoal":
        return cls(daily=int(data.get("daily", DEFAULT_DAILY_QUESTIONS)))


@dataclass(frozen=True)
class StreakSettings:
    min_study_hours: float = 10.0
    min_questions: int = 80

    def to_dict(self) -> Dict[str, Any]:
        return {"minStudyHours": self.min_study_hours, "minQuestions": self.min_questions}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreakSettings":
        return cls(
            min_study_hours=float(data.get("minStudyHours", 10.0)),
            min_questions=int(data.get("minQuestions", 80)),
        )


@dataclass(frozen=True)
class ExamSettings:
    exam_type: str = JEE
    streak_settings: StreakSettings = field(default_factory=StreakSettings)
    subject_names: Dict[str, str] = field(default_factory=lambda: default_subject_names(JEE))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "examType": self.exam_type,
            "streakSettings": self.streak_settings.to_dict(),
            "subjectNames": dict(self.subject_names),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExamSettings":
        exam_type = validate_exam_type(data.get("examType") or JEE)
        return cls(
            exam_type=exam_type,
            streak_settings=StreakSettings.from_dict(data.get("streakSettings") or {}),
            subject_names=dict(data.get("subjectNames") or default_subject_names(exam_type)),
        )


@dataclass(frozen=True)
class StreakData:
    current_streak: int = 0
    longest_streak: int = 0
    last_study_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "lastStudyDate": self.last_study_date,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreakData":
        current = max(0, int(data.get("currentStreak") or 0))
        last_study_date = data.get("lastStudyDate") or None
        if last_study_date:
            try:
                last_study_date = parse_label(last_study_date).isoformat()
            except ValueError:
                pass
        return cls(
            current_streak=current,
            longest_streak=max(current, int(data.get("longestStreak") or 0)),
            last_study_date=last_study_date,
        )
