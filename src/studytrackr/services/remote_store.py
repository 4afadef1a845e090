from typing import Any, Dict, Optional, Protocol

from studytrackr.config.settings import settings

USER_DATA_FIELDS = (
    "tasks",
    "time_logs",
    "question_goal",
    "exam_settings",
    "streak_data",
    "timer_states",
    "test_results",
)


class RemoteStoreError(Exception):
    pass


class RemoteStore(Protocol):
    """One user-data record per user id, always written whole."""

    def fetch_user_data(self, uid: str) -> Optional[Dict[str, Any]]:
        ...

    def upsert_user_data(self, uid: str, record: Dict[str, Any]) -> None:
        ...


def build_remote_store(backend: Optional[str] = None) -> Optional[RemoteStore]:
    backend = (backend or settings.remote_backend).lower()
    if backend == "none":
        return None
    if backend == "appwrite":
        from studytrackr.services.appwrite_service import AppwriteService

        return AppwriteService.from_settings()
    if backend == "firestore":
        from studytrackr.services.firestore_service import FirestoreService

        return FirestoreService.from_settings()
    raise RemoteStoreError(f"Unsupported remote backend: {backend}. Use appwrite, firestore or none.")
