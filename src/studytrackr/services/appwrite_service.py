import json
import logging
from typing import Any, Dict, Optional

from appwrite.client import Client
from appwrite.exception import AppwriteException
from appwrite.services.databases import Databases

from studytrackr.config.settings import settings
from studytrackr.services.remote_store import USER_DATA_FIELDS, RemoteStoreError

logger = logging.getLogger(__name__)


class AppwriteServiceError(RemoteStoreError):
    pass


class AppwriteService:
    """User-data rows in an Appwrite collection, one document per user id.

    Appwrite attributes are flat, so every state field is stored as a JSON
    encoded string attribute.
    """

    def __init__(
        self,
        endpoint: str,
        project_id: str,
        api_key: str,
        database_id: str,
        user_data_collection_id: str,
        db: Optional[Databases] = None,
    ) -> None:
        if db is None:
            if not endpoint:
                raise AppwriteServiceError("Missing APPWRITE_ENDPOINT in environment")
            if not project_id:
                raise AppwriteServiceError("Missing APPWRITE_PROJECT_ID in environment")
            if not api_key:
                raise AppwriteServiceError("Missing APPWRITE_API_KEY in environment")
        if not database_id:
            raise AppwriteServiceError("Missing APPWRITE_DATABASE_ID in environment")

        self.database_id = database_id
        self.user_data_collection_id = user_data_collection_id

        if db is None:
            client = Client()
            client.set_endpoint(endpoint.rstrip("/"))
            client.set_project(project_id)
            client.set_key(api_key)
            db = Databases(client)

        self.db = db

    @classmethod
    def from_settings(cls) -> "AppwriteService":
        return cls(
            endpoint=settings.appwrite_endpoint,
            project_id=settings.appwrite_project_id,
            api_key=settings.appwrite_api_key,
            database_id=settings.appwrite_database_id,
            user_data_collection_id=settings.appwrite_user_data_collection_id,
        )

    @staticmethod
    def _encode(uid: str, record: Dict[str, Any]) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            field: json.dumps(record.get(field)) for field in USER_DATA_FIELDS
        }
        data["user_id"] = uid
        data["updated_at"] = record.get("updated_at")
        return data

    @staticmethod
    def _decode(doc: Dict[str, Any]) -> Dict[str, Any]:
        record: Dict[str, Any] = {"updated_at": doc.get("updated_at")}
        for field in USER_DATA_FIELDS:
            value = doc.get(field)
            if isinstance(value, str):
                try:
                    value = json.loads(value)
                except json.JSONDecodeError:
                    logger.warning("Malformed JSON in remote field %r, ignoring it", field)
                    value = None
            record[field] = value
        return record

    def _get_document(self, document_id: str) -> Optional[Dict]:
        try:
            return self.db.get_document(self.database_id, self.user_data_collection_id, document_id)
        except AppwriteException as exc:
            if getattr(exc, "code", None) == 404:
                return None
            raise AppwriteServiceError(str(exc)) from exc

    def _create_document(self, document_id: str, data: Dict) -> Dict:
        try:
            return self.db.create_document(
                self.database_id,
                self.user_data_collection_id,
                document_id,
                data,
            )
        except AppwriteException as exc:
            raise AppwriteServiceError(str(exc)) from exc

    def fetch_user_data(self, uid: str) -> Optional[Dict[str, Any]]:
        doc = self._get_document(uid)
        if doc is None:
            return None
        return self._decode(dict(doc))

    def upsert_user_data(self, uid: str, record: Dict[str, Any]) -> None:
        data = self._encode(uid, record)
        try:
            self.db.update_document(self.database_id, self.user_data_collection_id, uid, data)
            return
        except AppwriteException as exc:
            if getattr(exc, "code", None) != 404:
                raise AppwriteServiceError(str(exc)) from exc
        self._create_document(uid, data)
