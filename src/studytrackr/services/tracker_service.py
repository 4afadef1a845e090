"""The session controller: owns the state, derives stats and streaks, and
decides where every mutation is persisted.

Signed out, each mutation is written straight to the local store. Signed in
and synced, each mutation (re)arms a debounced full upload, and a separate
periodic upload runs on a long interval. All handles are owned here and are
cancelled when the user context changes.

Remote calls block, so they run in a worker thread on an encoded snapshot
of the state. One lock orders uploads against sign-in and sign-out.
"""
import asyncio
import copy
import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from studytrackr.config.settings import settings
from studytrackr.core.aggregation import TodayStats, compute_today_stats, daily_totals
from studytrackr.core.logs import (
    create_manual_log,
    edit_end_time,
    edit_notes,
    edit_question_count,
    newest_first,
    resolve_goal_title,
)
from studytrackr.core.models import (
    DEFAULT_TEST_DURATION,
    ExamSettings,
    QuestionGoal,
    StreakSettings,
    SubjectScore,
    Task,
    TestResult,
    TimeLog,
    TimerState,
)
from studytrackr.core.results import (
    build_test_result,
    default_score_sheet,
    edit_test_result,
    results_for_exam,
    results_summary,
    subject_analytics,
)
from studytrackr.core.streak import evaluate_streak, reset_streak
from studytrackr.core.study_day import Clock, as_aware, local_now
from studytrackr.core.subjects import default_subject_names, scored_subjects, subjects_for, validate_exam_type
from studytrackr.core.tasks import TODAY, create_task, tasks_for_view, toggle_completed
from studytrackr.core.timer import TimerEngine, normalize_timer_states, resolve_active_subject
from studytrackr.services.local_store import LocalStore
from studytrackr.services.remote_store import RemoteStoreError, build_remote_store
from studytrackr.services.scheduler import AsyncioScheduler, ScheduledHandle, Scheduler
from studytrackr.services.sync_service import SyncService, SyncServiceError, to_remote_record
from studytrackr.state.app_state import AppState
from studytrackr.state.study_state import StudyState

logger = logging.getLogger(__name__)

DOWNLOAD_FAILED_NOTICE = "Failed to load your data from cloud. Using local data."
UPLOAD_FAILED_NOTICE = "Failed to save your data to cloud. It will be retried on the next sync."


class SyncStatus(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    MIGRATING = "migrating"
    SYNCED = "synced"
    # Signed in, but the remote record could not be read.
    OFFLINE = "offline"


class NotFoundError(LookupError):
    pass


class NotSignedInError(Exception):
    pass


class TrackerService:
    def __init__(
        self,
        local_store: LocalStore,
        sync_service: Optional[SyncService],
        scheduler: Scheduler,
        clock: Optional[Clock] = None,
        debounce_seconds: float = 2.0,
        sync_interval_seconds: float = 300.0,
        tick_seconds: float = 1.0,
    ) -> None:
        self.local_store = local_store
        self.sync_service = sync_service
        self.scheduler = scheduler
        self.clock = clock or local_now
        self.debounce_seconds = debounce_seconds
        self.sync_interval_seconds = sync_interval_seconds
        self.tick_seconds = tick_seconds

        self.app_state = AppState()
        self.status = SyncStatus.ANONYMOUS
        self.last_sync_time: Optional[datetime] = None
        self.notices: List[str] = []

        self._debounce_handle: Optional[ScheduledHandle] = None
        self._periodic_handle: Optional[ScheduledHandle] = None
        self._tick_handle: Optional[ScheduledHandle] = None
        self._push_tasks: Set[asyncio.Task] = set()
        # Serializes uploads and user-context changes.
        self._sync_lock = asyncio.Lock()
        self._stats = TodayStats()

    @classmethod
    def from_settings(cls, scheduler: Optional[Scheduler] = None) -> "TrackerService":
        try:
            remote = build_remote_store()
        except RemoteStoreError as exc:
            logger.warning("Cloud sync disabled: %s", exc)
            remote = None
        return cls(
            local_store=LocalStore.from_settings(),
            sync_service=SyncService(remote) if remote is not None else None,
            scheduler=scheduler or AsyncioScheduler(),
            debounce_seconds=settings.sync_debounce_seconds,
            sync_interval_seconds=settings.sync_interval_seconds,
            tick_seconds=settings.timer_tick_seconds,
        )

    # -- accessors ---------------------------------------------------------

    @property
    def state(self) -> StudyState:
        return self.app_state.study

    @property
    def exam_type(self) -> str:
        return self.state.exam_settings.exam_type

    @property
    def active_subject(self) -> str:
        return self.app_state.active_subject

    @property
    def timers(self) -> TimerEngine:
        return TimerEngine(self.state.timer_states, self.exam_type, self.clock)

    # -- lifecycle ---------------------------------------------------------

    def load(self) -> StudyState:
        """Load the signed-out state from the local store."""
        self.app_state.study = self.local_store.load_state()
        self._after_load()
        return self.state

    async def sign_in(
        self,
        uid: str,
        email: Optional[str] = None,
        id_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
    ) -> SyncStatus:
        if self.sync_service is None:
            raise SyncServiceError("Cloud sync is not configured")
        if not uid:
            raise ValueError("A user id is required to sign in")

        async with self._sync_lock:
            if self.app_state.session.is_authenticated:
                # The previous user's data must not become the next user's "local" data.
                await self._end_session()
                self.load()

            self._cancel_handles()
            self.status = SyncStatus.AUTHENTICATING
            session = self.app_state.session
            session.uid = uid
            session.email = email
            session.id_token = id_token
            session.refresh_token = refresh_token
            return await self._reconcile()

    async def _reconcile(self) -> SyncStatus:
        """Caller holds the sync lock."""
        uid = self.app_state.session.uid
        self.status = SyncStatus.MIGRATING
        snapshot = copy.deepcopy(self.state)
        try:
            result = await asyncio.to_thread(self.sync_service.reconcile, uid, snapshot)
        except SyncServiceError as exc:
            logger.warning("Could not load cloud data for user %s: %s", uid, exc)
            self._notify(DOWNLOAD_FAILED_NOTICE)
            self.status = SyncStatus.OFFLINE
            self.local_store.save_state(self.state)
            self._after_load()
            return self.status

        edited_meanwhile = False
        if result.migrated or result.upload_error:
            # Remote was empty: the live state is the user's data, including
            # edits made while the snapshot was being uploaded.
            edited_meanwhile = self.state.to_bundle() != snapshot.to_bundle()
        else:
            self.app_state.study = result.state
        if result.upload_error:
            self._notify(UPLOAD_FAILED_NOTICE)
        else:
            self.last_sync_time = self.clock()
        logger.info("Cloud sync active for user %s (migrated local data: %s)", uid, result.migrated)
        self.status = SyncStatus.SYNCED
        self._after_load()
        self._arm_periodic()
        if edited_meanwhile:
            self._schedule_push()
        return self.status

    async def sign_out(self) -> None:
        async with self._sync_lock:
            await self._end_session()
            self.load()

    async def _end_session(self) -> None:
        """Caller holds the sync lock."""
        await self._flush_pending("sign-out")
        logger.info("Signing out user %s", self.app_state.session.uid)
        self._cancel_handles()
        self.app_state.session.clear()
        self.status = SyncStatus.ANONYMOUS
        self.last_sync_time = None

    async def close(self) -> None:
        async with self._sync_lock:
            await self._flush_pending("shutdown")
            self._cancel_handles()
        await self.drain()

    async def drain(self) -> None:
        """Wait for scheduled uploads that are already running."""
        while self._push_tasks:
            await asyncio.gather(*list(self._push_tasks))

    async def sync_now(self) -> SyncStatus:
        if not self.app_state.session.is_authenticated or self.sync_service is None:
            raise NotSignedInError("Sign in to sync your data")
        async with self._sync_lock:
            if self.status == SyncStatus.OFFLINE:
                return await self._reconcile()

            if self._debounce_handle is not None:
                self._debounce_handle.cancel()
                self._debounce_handle = None
            try:
                await self._upload()
            except SyncServiceError:
                self._notify(UPLOAD_FAILED_NOTICE)
                raise
            return self.status

    def sync_status(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "uid": self.app_state.session.uid,
            "email": self.app_state.session.email,
            "last_sync_time": self.last_sync_time.isoformat() if self.last_sync_time else None,
            "notices": list(self.notices),
        }

    def pop_notices(self) -> List[str]:
        notices, self.notices = self.notices, []
        return notices

    # -- derived state -----------------------------------------------------

    def today_stats(self) -> TodayStats:
        if self._refresh():
            self._persist()
        return self._stats

    def history(self, days: int = 7) -> List[Dict]:
        return daily_totals(self.state.time_logs, self.clock(), days)

    def streak(self):
        self.today_stats()
        return self.state.streak_data

    def reset_streak(self):
        self.state.streak_data = reset_streak()
        self._commit()
        return self.state.streak_data

    # -- timers ------------------------------------------------------------

    def set_active_subject(self, subject: str) -> str:
        if subject not in subjects_for(self.exam_type):
            raise ValueError(f"Unknown subject for {self.exam_type}: {subject}")
        self.app_state.active_subject = subject
        return subject

    def timer_states(self) -> Dict[str, TimerState]:
        return self.timers.projected_states(self.clock())

    def start_timer(self, subject: Optional[str] = None, goal_id: Optional[str] = None) -> TimerState:
        subject = subject or self.active_subject
        state = self.timers.start(
            subject,
            goal_id=goal_id or None,
            goal_title=resolve_goal_title(self.state.tasks, goal_id),
            now=self.clock(),
        )
        self._commit()
        return state

    def pause_timer(self, subject: Optional[str] = None) -> TimeLog:
        log = self.timers.pause(subject or self.active_subject, now=self.clock())
        self.state.time_logs.append(log)
        self._commit()
        return log

    def set_question_count(self, subject: Optional[str], count: int) -> TimerState:
        state = self.timers.set_question_count(subject or self.active_subject, count)
        self._commit()
        return state

    def change_question_count(self, subject: Optional[str], delta: int) -> TimerState:
        timers = self.timers
        subject = subject or self.active_subject
        if delta >= 0:
            state = timers.increment_questions(subject, delta)
        else:
            state = timers.decrement_questions(subject, -delta)
        self._commit()
        return state

    # -- session logs ------------------------------------------------------

    def list_logs(self) -> List[TimeLog]:
        return newest_first(self.state.time_logs)

    def add_manual_log(
        self,
        subject: Optional[str],
        start_time: Optional[datetime],
        end_time: Optional[datetime],
        question_count: int = 0,
        goal_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TimeLog:
        log = create_manual_log(
            subject=subject,
            start_time=as_aware(start_time) if start_time else None,
            end_time=as_aware(end_time) if end_time else None,
            exam_type=self.exam_type,
            now=self.clock(),
            question_count=question_count,
            goal_id=goal_id,
            goal_title=resolve_goal_title(self.state.tasks, goal_id),
            notes=notes,
        )
        self.state.time_logs.append(log)
        self._commit()
        return log

    def _log_index(self, log_id: str) -> int:
        for index, log in enumerate(self.state.time_logs):
            if log.id == log_id:
                return index
        raise NotFoundError(f"Log not found: {log_id}")

    def edit_log(
        self,
        log_id: str,
        end_time: Optional[datetime] = None,
        question_count: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> TimeLog:
        index = self._log_index(log_id)
        log = self.state.time_logs[index]
        # Validate every edit before replacing the stored log.
        if end_time is not None:
            log = edit_end_time(log, as_aware(end_time))
        if question_count is not None:
            log = edit_question_count(log, question_count)
        if notes is not None:
            log = edit_notes(log, notes)
        self.state.time_logs[index] = log
        self._commit()
        return log

    def delete_log(self, log_id: str) -> None:
        del self.state.time_logs[self._log_index(log_id)]
        self._commit()

    # -- tasks -------------------------------------------------------------

    def list_tasks(self, subject: Optional[str] = None, view: str = TODAY) -> List[Task]:
        return tasks_for_view(self.state.tasks, subject or self.active_subject, view, self.clock())

    def add_task(
        self,
        title: str,
        subject: Optional[str] = None,
        view: str = TODAY,
        priority: str = "medium",
        estimated_time: Optional[int] = None,
    ) -> Task:
        task = create_task(
            title=title,
            subject=subject or self.active_subject,
            exam_type=self.exam_type,
            now=self.clock(),
            view=view,
            priority=priority,
            estimated_time=estimated_time,
        )
        self.state.tasks.append(task)
        self._commit()
        return task

    def _task_index(self, task_id: str) -> int:
        for index, task in enumerate(self.state.tasks):
            if task.id == task_id:
                return index
        raise NotFoundError(f"Task not found: {task_id}")

    def toggle_task(self, task_id: str) -> Task:
        index = self._task_index(task_id)
        task = toggle_completed(self.state.tasks[index])
        self.state.tasks[index] = task
        self._commit()
        return task

    def delete_task(self, task_id: str) -> None:
        # Timers and logs keep their goal id/title snapshot.
        del self.state.tasks[self._task_index(task_id)]
        self._commit()

    # -- test results ------------------------------------------------------

    def list_test_results(self) -> List[TestResult]:
        return results_for_exam(self.state.test_results, self.exam_type)

    def default_score_sheet(self) -> Dict[str, SubjectScore]:
        return default_score_sheet(self.exam_type)

    def add_test_result(
        self,
        test_name: str,
        test_date: date,
        subjects: Dict[str, SubjectScore],
        duration: Optional[int] = DEFAULT_TEST_DURATION,
        rank: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> TestResult:
        result = build_test_result(
            exam_type=self.exam_type,
            test_name=test_name,
            test_date=test_date,
            subjects=subjects,
            now=self.clock(),
            duration=duration,
            rank=rank,
            notes=notes,
        )
        self.state.test_results.append(result)
        self._commit()
        return result

    def _result_index(self, result_id: str) -> int:
        for index, result in enumerate(self.state.test_results):
            if result.id == result_id:
                return index
        raise NotFoundError(f"Test result not found: {result_id}")

    def edit_test_result(
        self,
        result_id: str,
        test_name: str,
        test_date: date,
        subjects: Dict[str, SubjectScore],
        duration: Optional[int] = DEFAULT_TEST_DURATION,
        rank: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> TestResult:
        index = self._result_index(result_id)
        result = edit_test_result(
            self.state.test_results[index],
            test_name=test_name,
            test_date=test_date,
            subjects=subjects,
            duration=duration,
            rank=rank,
            notes=notes,
        )
        self.state.test_results[index] = result
        self._commit()
        return result

    def delete_test_result(self, result_id: str) -> None:
        del self.state.test_results[self._result_index(result_id)]
        self._commit()

    def test_analytics(self) -> Dict[str, Any]:
        results = self.list_test_results()
        return {
            "summary": results_summary(results),
            "subjects": [subject_analytics(results, subject).to_dict() for subject in scored_subjects(self.exam_type)],
        }

    # -- settings ----------------------------------------------------------

    def set_question_goal(self, daily: int) -> QuestionGoal:
        if daily < 0:
            raise ValueError("Daily question goal cannot be negative")
        self.state.question_goal = QuestionGoal(daily=daily)
        self._commit()
        return self.state.question_goal

    def update_exam_settings(
        self,
        exam_type: Optional[str] = None,
        min_study_hours: Optional[float] = None,
        min_questions: Optional[int] = None,
        subject_names: Optional[Dict[str, str]] = None,
    ) -> ExamSettings:
        current = self.state.exam_settings
        new_type = validate_exam_type(exam_type) if exam_type else current.exam_type

        if subject_names is None:
            subject_names = current.subject_names if new_type == current.exam_type else default_subject_names(new_type)
        streak_settings = StreakSettings(
            min_study_hours=current.streak_settings.min_study_hours if min_study_hours is None else min_study_hours,
            min_questions=current.streak_settings.min_questions if min_questions is None else min_questions,
        )
        if streak_settings.min_study_hours < 0 or streak_settings.min_questions < 0:
            raise ValueError("Streak thresholds cannot be negative")

        if new_type != current.exam_type:
            self.state.timer_states = self.timers.switch_exam_type(new_type)
            self.app_state.active_subject = resolve_active_subject(self.active_subject, new_type)
        self.state.exam_settings = ExamSettings(
            exam_type=new_type,
            streak_settings=streak_settings,
            subject_names=dict(subject_names),
        )
        self._commit()
        return self.state.exam_settings

    # -- internals ---------------------------------------------------------

    def _notify(self, message: str) -> None:
        if message not in self.notices:
            self.notices.append(message)

    def _after_load(self) -> None:
        self.state.timer_states = normalize_timer_states(self.state.timer_states, self.exam_type)
        self.app_state.active_subject = resolve_active_subject(self.active_subject, self.exam_type)
        if self._refresh():
            self._persist()
        self._arm_tick()

    def _refresh(self) -> bool:
        """Re-derive today's stats and the streak; True when the streak changed."""
        now = self.clock()
        self._stats = compute_today_stats(
            self.state.time_logs,
            self.state.timer_states,
            self.state.exam_settings,
            now,
        )
        streak_settings = self.state.exam_settings.streak_settings
        streak = evaluate_streak(self._stats, streak_settings, self.state.streak_data, now)
        if streak.last_study_date is None and self.state.streak_data.last_study_date is not None:
            # A broken streak can be restarted by today in the same pass.
            streak = evaluate_streak(self._stats, streak_settings, streak, now)
        if streak == self.state.streak_data:
            return False
        self.state.streak_data = streak
        return True

    def _commit(self) -> None:
        self._refresh()
        self._persist()
        self._arm_tick()

    def _persist(self) -> None:
        if self.status == SyncStatus.SYNCED:
            self._schedule_push()
        elif self.status in (SyncStatus.ANONYMOUS, SyncStatus.OFFLINE):
            self.local_store.save_state(self.state)

    def _schedule_push(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        self._debounce_handle = self.scheduler.call_later(self.debounce_seconds, self._on_debounce)

    def _on_debounce(self) -> None:
        self._debounce_handle = None
        self._spawn(self._push("debounced"))

    def _arm_periodic(self) -> None:
        if self._periodic_handle is not None:
            self._periodic_handle.cancel()
        self._periodic_handle = self.scheduler.call_later(self.sync_interval_seconds, self._on_periodic)

    def _on_periodic(self) -> None:
        self._periodic_handle = None
        self._spawn(self._push("periodic"))
        if self.status == SyncStatus.SYNCED:
            self._arm_periodic()

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._push_tasks.add(task)
        task.add_done_callback(self._push_tasks.discard)

    def _can_push(self) -> bool:
        return (
            self.app_state.session.is_authenticated
            and self.status == SyncStatus.SYNCED
            and self.sync_service is not None
        )

    async def _upload(self) -> None:
        """Upload a snapshot of the current state; the remote call runs off the loop."""
        uid = self.app_state.session.uid
        updated_at = self.clock()
        record = to_remote_record(self.state, updated_at)
        await asyncio.to_thread(self.sync_service.upload_record, uid, record)
        self.last_sync_time = updated_at

    async def _try_upload(self, reason: str) -> bool:
        """Caller holds the sync lock."""
        if not self._can_push():
            return False
        try:
            await self._upload()
        except SyncServiceError as exc:
            logger.warning("%s sync failed for user %s: %s", reason.capitalize(), self.app_state.session.uid, exc)
            self._notify(UPLOAD_FAILED_NOTICE)
            return False
        return True

    async def _push(self, reason: str) -> bool:
        async with self._sync_lock:
            return await self._try_upload(reason)

    async def _flush_pending(self, reason: str) -> None:
        """Send a pending debounced upload now. Caller holds the sync lock."""
        if self._debounce_handle is None:
            return
        self._debounce_handle.cancel()
        self._debounce_handle = None
        await self._try_upload(reason)

    def _arm_tick(self) -> None:
        running = self.timers.has_running
        if running and self._tick_handle is None:
            self._tick_handle = self.scheduler.call_later(self.tick_seconds, self._on_tick)
        elif not running and self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    def _on_tick(self) -> None:
        self._tick_handle = None
        if self._refresh():
            self._persist()
        self._arm_tick()

    def _cancel_handles(self) -> None:
        for name in ("_debounce_handle", "_periodic_handle", "_tick_handle"):
            handle = getattr(self, name)
            if handle is not None:
                handle.cancel()
                setattr(self, name, None)
