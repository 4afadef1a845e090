import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime
import logging
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from studytrackr.config.logging_config import init_logging
from studytrackr.config.settings import settings
from studytrackr.core.models import DEFAULT_TEST_DURATION, SubjectScore
from studytrackr.core.subjects import display_name, format_duration
from studytrackr.core.tasks import TODAY, total_estimated_minutes
from studytrackr.core.timer import TimerError
from studytrackr.services.auth_service import AppwriteAuthService, AuthServiceError
from studytrackr.services.local_store import LocalStoreError
from studytrackr.services.sync_service import SyncServiceError
from studytrackr.services.tracker_service import NotFoundError, NotSignedInError, TrackerService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_logging(settings.log_level, settings.log_format)
    tracker = TrackerService.from_settings()
    tracker.load()
    app.state.tracker = tracker
    logger.info("StudyTrackr started (remote backend: %s)", settings.remote_backend)
    yield
    await tracker.close()


app = FastAPI(title="StudyTrackr API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allowed_origins),
    allow_origin_regex=settings.cors_allow_origin_regex,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class AuthPayload(BaseModel):
    email: str
    password: str


class ActiveSubjectPayload(BaseModel):
    subject: str


class TimerStartPayload(BaseModel):
    goal_id: Optional[str] = None


class QuestionCountPayload(BaseModel):
    count: Optional[int] = None
    delta: Optional[int] = None


class ManualLogPayload(BaseModel):
    subject: str
    start_time: datetime
    end_time: datetime
    question_count: int = 0
    goal_id: Optional[str] = None
    notes: Optional[str] = None


class LogEditPayload(BaseModel):
    end_time: Optional[datetime] = None
    question_count: Optional[int] = None
    notes: Optional[str] = None


class TaskPayload(BaseModel):
    title: str
    subject: Optional[str] = None
    view: str = TODAY
    priority: str = "medium"
    estimated_time: Optional[int] = None


class ScorePayload(BaseModel):
    attempted: int = 0
    correct: int = 0
    marks: float = 0
    total_marks: float = 0


class TestResultPayload(BaseModel):
    test_name: str
    test_date: date = Field(alias="date")
    subjects: Dict[str, ScorePayload] = Field(default_factory=dict)
    duration: Optional[int] = DEFAULT_TEST_DURATION
    rank: Optional[int] = None
    notes: Optional[str] = None

    def scores(self) -> Dict[str, SubjectScore]:
        return {name: SubjectScore(**score.model_dump()) for name, score in self.subjects.items()}


class ExamSettingsPayload(BaseModel):
    exam_type: Optional[str] = None
    min_study_hours: Optional[float] = None
    min_questions: Optional[int] = None
    subject_names: Optional[Dict[str, str]] = None


class QuestionGoalPayload(BaseModel):
    daily: int


def get_tracker(request: Request) -> TrackerService:
    return request.app.state.tracker


def get_auth_service() -> AppwriteAuthService:
    try:
        return AppwriteAuthService.from_settings()
    except AuthServiceError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, TimerError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, NotSignedInError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    if isinstance(exc, SyncServiceError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    if isinstance(exc, LocalStoreError):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


_HANDLED = (NotFoundError, TimerError, NotSignedInError, SyncServiceError, LocalStoreError, ValueError)


def _stats_payload(tracker: TrackerService) -> Dict:
    stats = tracker.today_stats()
    names = tracker.state.exam_settings.subject_names
    payload = stats.to_dict()
    payload.update(
        {
            "total_hours": round(stats.total_hours, 2),
            "formatted_total": format_duration(stats.total_study_time),
            "subjects": [
                {
                    "subject": subject,
                    "name": display_name(subject, names),
                    "study_time": stats.time_by_subject.get(subject, 0),
                    "formatted": format_duration(stats.time_by_subject.get(subject, 0)),
                    "questions": stats.questions_by_subject.get(subject, 0),
                }
                for subject in stats.available_subjects
            ],
            "question_goal": tracker.state.question_goal.daily,
            "goal_progress": round(stats.goal_progress(tracker.state.question_goal), 1),
            "active_subject": tracker.active_subject,
        }
    )
    return payload


def _sync_payload(tracker: TrackerService) -> Dict:
    # Notices are shown once.
    payload = tracker.sync_status()
    payload["notices"] = tracker.pop_notices()
    return payload


def _settings_payload(tracker: TrackerService) -> Dict:
    return {
        "exam_settings": tracker.state.exam_settings.to_dict(),
        "question_goal": tracker.state.question_goal.to_dict(),
        "active_subject": tracker.active_subject,
    }


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/auth/login")
async def login(
    payload: AuthPayload,
    tracker: TrackerService = Depends(get_tracker),
    auth: AppwriteAuthService = Depends(get_auth_service),
) -> Dict:
    try:
        result = await asyncio.to_thread(auth.sign_in, payload.email, payload.password)
    except AuthServiceError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    try:
        await tracker.sign_in(result.uid, result.email, result.id_token, result.refresh_token)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _sync_payload(tracker)


@app.post("/auth/logout")
async def logout(
    tracker: TrackerService = Depends(get_tracker),
    auth: AppwriteAuthService = Depends(get_auth_service),
) -> Dict:
    session = tracker.app_state.session
    session_id, session_secret = session.refresh_token, session.id_token
    await tracker.sign_out()
    try:
        await asyncio.to_thread(auth.sign_out, session_id or "", session_secret or "")
    except AuthServiceError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return _sync_payload(tracker)


@app.get("/sync")
async def sync_status(tracker: TrackerService = Depends(get_tracker)) -> Dict:
    return _sync_payload(tracker)


@app.post("/sync")
async def sync_now(tracker: TrackerService = Depends(get_tracker)) -> Dict:
    try:
        await tracker.sync_now()
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _sync_payload(tracker)


@app.get("/stats/today")
async def today_stats(tracker: TrackerService = Depends(get_tracker)) -> Dict:
    return _stats_payload(tracker)


@app.get("/stats/history")
async def stats_history(days: int = 7, tracker: TrackerService = Depends(get_tracker)) -> List[Dict]:
    if days < 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="days must be at least 1")
    return tracker.history(days)


@app.get("/streak")
async def get_streak(tracker: TrackerService = Depends(get_tracker)) -> Dict:
    return tracker.streak().to_dict()


@app.post("/streak/reset")
async def reset_streak(tracker: TrackerService = Depends(get_tracker)) -> Dict:
    return tracker.reset_streak().to_dict()


@app.get("/timers")
async def list_timers(tracker: TrackerService = Depends(get_tracker)) -> Dict:
    return {
        "active_subject": tracker.active_subject,
        "timers": {subject: state.to_dict() for subject, state in tracker.timer_states().items()},
    }


@app.put("/timers/active")
async def set_active_subject(payload: ActiveSubjectPayload, tracker: TrackerService = Depends(get_tracker)) -> Dict:
    try:
        return {"active_subject": tracker.set_active_subject(payload.subject)}
    except _HANDLED as exc:
        raise _http_error(exc) from exc


@app.post("/timers/{subject}/start")
async def start_timer(
    subject: str,
    payload: Optional[TimerStartPayload] = None,
    tracker: TrackerService = Depends(get_tracker),
) -> Dict:
    try:
        state = tracker.start_timer(subject, goal_id=payload.goal_id if payload else None)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return {"subject": subject, **state.to_dict()}


@app.post("/timers/{subject}/pause")
async def pause_timer(subject: str, tracker: TrackerService = Depends(get_tracker)) -> Dict:
    try:
        return tracker.pause_timer(subject).to_dict()
    except _HANDLED as exc:
        raise _http_error(exc) from exc


@app.patch("/timers/{subject}/questions")
async def update_question_count(
    subject: str,
    payload: QuestionCountPayload,
    tracker: TrackerService = Depends(get_tracker),
) -> Dict:
    try:
        if payload.count is not None:
            state = tracker.set_question_count(subject, payload.count)
        elif payload.delta is not None:
            state = tracker.change_question_count(subject, payload.delta)
        else:
            raise ValueError("Provide either count or delta")
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return {"subject": subject, **state.to_dict()}


@app.get("/logs")
async def list_logs(tracker: TrackerService = Depends(get_tracker)) -> List[Dict]:
    return [log.to_dict() for log in tracker.list_logs()]


@app.post("/logs")
async def add_log(payload: ManualLogPayload, tracker: TrackerService = Depends(get_tracker)) -> Dict:
    try:
        log = tracker.add_manual_log(**payload.model_dump())
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return log.to_dict()


@app.patch("/logs/{log_id}")
async def edit_log(log_id: str, payload: LogEditPayload, tracker: TrackerService = Depends(get_tracker)) -> Dict:
    try:
        log = tracker.edit_log(log_id, **payload.model_dump())
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return log.to_dict()


@app.delete("/logs/{log_id}")
async def delete_log(log_id: str, tracker: TrackerService = Depends(get_tracker)) -> Dict[str, str]:
    try:
        tracker.delete_log(log_id)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return {"status": "deleted"}


@app.get("/tasks")
async def list_tasks(
    subject: Optional[str] = None,
    view: str = TODAY,
    tracker: TrackerService = Depends(get_tracker),
) -> Dict:
    tasks = tracker.list_tasks(subject, view)
    return {
        "subject": subject or tracker.active_subject,
        "view": view,
        "tasks": [task.to_dict() for task in tasks],
        "estimated_minutes": total_estimated_minutes(tasks),
    }


@app.post("/tasks")
async def create_task(payload: TaskPayload, tracker: TrackerService = Depends(get_tracker)) -> Dict:
    try:
        task = tracker.add_task(**payload.model_dump())
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return task.to_dict()


@app.post("/tasks/{task_id}/toggle")
async def toggle_task(task_id: str, tracker: TrackerService = Depends(get_tracker)) -> Dict:
    try:
        return tracker.toggle_task(task_id).to_dict()
    except _HANDLED as exc:
        raise _http_error(exc) from exc


@app.delete("/tasks/{task_id}")
async def delete_task(task_id: str, tracker: TrackerService = Depends(get_tracker)) -> Dict[str, str]:
    try:
        tracker.delete_task(task_id)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return {"status": "deleted"}


@app.get("/tests")
async def list_test_results(tracker: TrackerService = Depends(get_tracker)) -> List[Dict]:
    return [result.to_dict() for result in tracker.list_test_results()]


@app.get("/tests/template")
async def test_template(tracker: TrackerService = Depends(get_tracker)) -> Dict:
    return {
        "exam_type": tracker.exam_type,
        "subjects": {name: score.to_dict() for name, score in tracker.default_score_sheet().items()},
    }


@app.get("/tests/analytics")
async def test_analytics(tracker: TrackerService = Depends(get_tracker)) -> Dict:
    return tracker.test_analytics()


@app.post("/tests")
async def add_test_result(payload: TestResultPayload, tracker: TrackerService = Depends(get_tracker)) -> Dict:
    try:
        result = tracker.add_test_result(
            test_name=payload.test_name,
            test_date=payload.test_date,
            subjects=payload.scores(),
            duration=payload.duration,
            rank=payload.rank,
            notes=payload.notes,
        )
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return result.to_dict()


@app.put("/tests/{result_id}")
async def edit_test_result(
    result_id: str,
    payload: TestResultPayload,
    tracker: TrackerService = Depends(get_tracker),
) -> Dict:
    try:
        result = tracker.edit_test_result(
            result_id,
            test_name=payload.test_name,
            test_date=payload.test_date,
            subjects=payload.scores(),
            duration=payload.duration,
            rank=payload.rank,
            notes=payload.notes,
        )
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return result.to_dict()


@app.delete("/tests/{result_id}")
async def delete_test_result(result_id: str, tracker: TrackerService = Depends(get_tracker)) -> Dict[str, str]:
    try:
        tracker.delete_test_result(result_id)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return {"status": "deleted"}


@app.get("/settings")
async def get_settings(tracker: TrackerService = Depends(get_tracker)) -> Dict:
    return _settings_payload(tracker)


@app.patch("/settings/exam")
async def update_exam_settings(payload: ExamSettingsPayload, tracker: TrackerService = Depends(get_tracker)) -> Dict:
    try:
        tracker.update_exam_settings(**payload.model_dump())
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _settings_payload(tracker)


@app.put("/settings/question-goal")
async def set_question_goal(payload: QuestionGoalPayload, tracker: TrackerService = Depends(get_tracker)) -> Dict:
    try:
        tracker.set_question_goal(payload.daily)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _settings_payload(tracker)
