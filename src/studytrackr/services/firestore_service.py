from typing import Any, Dict, Optional

try:
    from google.cloud import firestore
except ModuleNotFoundError as exc:
    raise ModuleNotFoundError(
        "Missing dependency 'google-cloud-firestore'. Install the project with pip install -e ."
    ) from exc
from google.api_core.exceptions import GoogleAPICallError

from studytrackr.config.settings import settings
from studytrackr.services.remote_store import USER_DATA_FIELDS, RemoteStoreError


class FirestoreServiceError(RemoteStoreError):
    pass


class FirestoreService:
    """User-data documents in a Firestore collection keyed by user id."""

    def __init__(self, project_id: str, collection: str = "user_data", db: Optional[Any] = None) -> None:
        if db is None:
            if not project_id:
                raise FirestoreServiceError("Missing FIREBASE_PROJECT_ID in environment")
            db = firestore.Client(project=project_id)
        self.db = db
        self.collection = collection

    @classmethod
    def from_settings(cls) -> "FirestoreService":
        return cls(settings.firebase_project_id, settings.firestore_user_data_collection)

    def _ref(self, uid: str):
        return self.db.collection(self.collection).document(uid)

    def fetch_user_data(self, uid: str) -> Optional[Dict[str, Any]]:
        try:
            snap = self._ref(uid).get()
        except GoogleAPICallError as exc:
            raise FirestoreServiceError(str(exc)) from exc
        if not snap.exists:
            return None
        data = snap.to_dict() or {}
        record = {field: data.get(field) for field in USER_DATA_FIELDS}
        record["updated_at"] = data.get("updated_at")
        return record

    def upsert_user_data(self, uid: str, record: Dict[str, Any]) -> None:
        data = {field: record.get(field) for field in USER_DATA_FIELDS}
        data["user_id"] = uid
        data["updated_at"] = record.get("updated_at")
        try:
            # set() without merge replaces the whole document.
            self._ref(uid).set(data)
        except GoogleAPICallError as exc:
            raise FirestoreServiceError(str(exc)) from exc
