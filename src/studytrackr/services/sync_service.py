"""Moving the state bundle between the tracker and the remote store."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from studytrackr.core.study_day import Clock, local_now
from studytrackr.services.remote_store import RemoteStore, RemoteStoreError
from studytrackr.state.study_state import STATE_KEYS, StudyState

logger = logging.getLogger(__name__)

# Local keys use dashes, remote columns use underscores.
_REMOTE_FIELD_BY_KEY = {key: key.replace("-", "_") for key in STATE_KEYS}


class SyncServiceError(Exception):
    pass


@dataclass
class ReconcileResult:
    state: StudyState
    migrated: bool
    upload_error: Optional[str] = None


def to_remote_record(state: StudyState, updated_at: datetime) -> Dict[str, Any]:
    record = {_REMOTE_FIELD_BY_KEY[key]: value for key, value in state.to_bundle().items()}
    record["updated_at"] = updated_at.isoformat()
    return record


def from_remote_record(record: Dict[str, Any]) -> StudyState:
    bundle = {key: record.get(field) for key, field in _REMOTE_FIELD_BY_KEY.items()}

    def _report(key: str, exc: Exception) -> None:
        logger.warning("Unreadable remote field %r (%s), using defaults", _REMOTE_FIELD_BY_KEY[key], exc)

    return StudyState.from_bundle(bundle, on_error=_report)


class SyncService:
    def __init__(self, remote: RemoteStore, clock: Optional[Clock] = None) -> None:
        self.remote = remote
        self.clock = clock or local_now

    def upload_user_data(self, uid: str, state: StudyState) -> datetime:
        updated_at = self.clock()
        self.upload_record(uid, to_remote_record(state, updated_at))
        return updated_at

    def upload_record(self, uid: str, record: Dict[str, Any]) -> None:
        """Upsert an already encoded record. Blocks on the network."""
        logger.info(
            "Uploading data for user %s: %d tasks, %d time logs, %d test results",
            uid,
            len(record.get("tasks") or []),
            len(record.get("time_logs") or []),
            len(record.get("test_results") or []),
        )
        try:
            self.remote.upsert_user_data(uid, record)
        except RemoteStoreError as exc:
            raise SyncServiceError(f"Upload failed: {exc}") from exc

    def download_user_data(self, uid: str) -> Optional[StudyState]:
        logger.info("Downloading data for user %s", uid)
        try:
            record = self.remote.fetch_user_data(uid)
        except RemoteStoreError as exc:
            raise SyncServiceError(f"Download failed: {exc}") from exc
        if not record:
            logger.info("No existing data found for user %s", uid)
            return None
        return from_remote_record(record)

    def reconcile(self, uid: str, local_state: StudyState) -> ReconcileResult:
        """First contact after sign-in: migrate local data once, else take the remote record."""
        remote_state = self.download_user_data(uid)
        if remote_state is not None:
            return ReconcileResult(state=remote_state, migrated=False)

        try:
            self.upload_user_data(uid, local_state)
        except SyncServiceError as exc:
            # Remote is known to be empty, so later pushes may still create it.
            logger.warning("Initial migration for user %s failed: %s", uid, exc)
            return ReconcileResult(state=local_state, migrated=False, upload_error=str(exc))
        logger.info("Migrated local data for user %s", uid)
        return ReconcileResult(state=local_state, migrated=True)
