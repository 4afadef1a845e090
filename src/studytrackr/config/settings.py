from dataclasses import dataclass
import os
from pathlib import Path
from dotenv import load_dotenv


load_dotenv()


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


DEFAULT_DB_PATH = str(Path.home() / ".studytrackr" / "local.db")


@dataclass(frozen=True)
class Settings:
    remote_backend: str = os.getenv("STUDYTRACKR_REMOTE_BACKEND", "appwrite").strip().lower()

    appwrite_endpoint: str = os.getenv("APPWRITE_ENDPOINT", "")
    appwrite_project_id: str = os.getenv("APPWRITE_PROJECT_ID", "")
    appwrite_api_key: str = os.getenv("APPWRITE_API_KEY") or os.getenv("APPWRITE_FUNCTION_API_KEY", "")
    appwrite_database_id: str = os.getenv("APPWRITE_DATABASE_ID", "")
    appwrite_user_data_collection_id: str = os.getenv("APPWRITE_USER_DATA_COLLECTION_ID", "user_data")

    firebase_project_id: str = os.getenv("FIREBASE_PROJECT_ID", "")
    firestore_user_data_collection: str = os.getenv("FIRESTORE_USER_DATA_COLLECTION", "user_data")

    local_db_path: str = os.getenv("STUDYTRACKR_DB_PATH", DEFAULT_DB_PATH)

    sync_debounce_seconds: float = _float_env("STUDYTRACKR_SYNC_DEBOUNCE_SECONDS", 2.0)
    sync_interval_seconds: float = _float_env("STUDYTRACKR_SYNC_INTERVAL_SECONDS", 300.0)
    timer_tick_seconds: float = _float_env("STUDYTRACKR_TICK_SECONDS", 1.0)

    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "text")

    cors_allowed_origins: tuple[str, ...] = _split_csv(
        os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    )
    cors_allow_origin_regex: str = os.getenv(
        "CORS_ALLOW_ORIGIN_REGEX",
        r"^https?:\/\/(localhost|127\.0\.0\.1)(:\d+)?$",
    )


settings = Settings()
