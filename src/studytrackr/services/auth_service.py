from dataclasses import dataclass
from typing import Any, Dict, Optional
import requests
from requests import RequestException

from studytrackr.config.settings import settings


class AuthServiceError(Exception):
    pass


@dataclass
class AuthResult:
    uid: str
    email: str
    id_token: str
    refresh_token: str


class AppwriteAuthService:
    """Email/password sessions against the Appwrite account API.

    Only the identity (user id) matters to the tracker; tokens are kept on the
    session so the current session can be deleted on sign-out.
    """

    LOGIN_PATH = "/account/sessions/email"
    SESSION_PATH = "/account/sessions/{session_id}"
    TIMEOUT_SECONDS = 15

    def __init__(self, endpoint: str, project_id: str, http: Optional[requests.Session] = None) -> None:
        if not endpoint:
            raise AuthServiceError("Missing APPWRITE_ENDPOINT in environment")
        if not project_id:
            raise AuthServiceError("Missing APPWRITE_PROJECT_ID in environment")
        self.endpoint = endpoint.rstrip("/")
        self.project_id = project_id
        self.http = http or requests.Session()

    @classmethod
    def from_settings(cls) -> "AppwriteAuthService":
        return cls(settings.appwrite_endpoint, settings.appwrite_project_id)

    def _headers(self, session_secret: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "X-Appwrite-Project": self.project_id,
            "Content-Type": "application/json",
        }
        if session_secret:
            headers["X-Appwrite-Session"] = session_secret
        return headers

    def sign_in(self, email: str, password: str) -> AuthResult:
        payload = {
            "email": email.strip(),
            "password": password,
        }
        response = self._request("POST", self.LOGIN_PATH, json=payload)
        return self._to_result(response, email.strip())

    def sign_out(self, session_id: str, session_secret: str) -> None:
        if not session_id:
            return
        self._request(
            "DELETE",
            self.SESSION_PATH.format(session_id=session_id),
            session_secret=session_secret,
        )

    def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        session_secret: Optional[str] = None,
    ) -> Dict[str, Any]:
        url = f"{self.endpoint}{path}"
        try:
            res = self.http.request(
                method,
                url,
                headers=self._headers(session_secret),
                json=json,
                timeout=self.TIMEOUT_SECONDS,
            )
        except RequestException as exc:
            raise AuthServiceError("AUTH_SERVICE_UNAVAILABLE") from exc

        if res.status_code == 204:
            return {}
        try:
            data = res.json()
        except ValueError:
            raise AuthServiceError("AUTH_SERVICE_UNAVAILABLE")

        if res.status_code >= 400:
            error_key = str(data.get("message") or data.get("type") or "AUTH_ERROR")
            raise AuthServiceError(error_key)

        return data

    @staticmethod
    def _to_result(data: Dict[str, Any], email: str) -> AuthResult:
        session_id = str(data.get("$id") or "")
        session_secret = str(data.get("secret") or "")
        uid = str(data.get("userId") or "")
        if not uid:
            raise AuthServiceError("INVALID_APPWRITE_SESSION")
        return AuthResult(
            uid=uid,
            email=email,
            id_token=session_secret,
            refresh_token=session_id,
        )
