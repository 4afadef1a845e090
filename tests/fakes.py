import copy
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from studytrackr.services.remote_store import RemoteStoreError

IST = timezone(timedelta(hours=5, minutes=30))


def at(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, second, tzinfo=IST)


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class ManualHandle:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Fires callbacks only when the test advances its virtual time."""

    def __init__(self) -> None:
        self.time = 0.0
        self.handles: List[ManualHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualHandle:
        handle = ManualHandle(self.time + delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> List[ManualHandle]:
        return [handle for handle in self.handles if not handle.cancelled and not handle.fired]

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while True:
            due = sorted((h for h in self.pending if h.due <= target), key=lambda h: h.due)
            if not due:
                break
            handle = due[0]
            self.time = handle.due
            handle.fired = True
            handle.callback()
        self.time = target


class InMemoryRemoteStore:
    def __init__(self, records: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self.records = copy.deepcopy(records or {})
        self.upserts: List[Tuple[str, Dict[str, Any]]] = []
        self.fetches: List[str] = []
        # Thread ident of every call.
        self.threads: List[int] = []
        self.fail_fetch = False
        self.fail_upsert = False

    def fetch_user_data(self, uid: str) -> Optional[Dict[str, Any]]:
        self.fetches.append(uid)
        self.threads.append(threading.get_ident())
        if self.fail_fetch:
            raise RemoteStoreError("remote unavailable")
        record = self.records.get(uid)
        return copy.deepcopy(record) if record is not None else None

    def upsert_user_data(self, uid: str, record: Dict[str, Any]) -> None:
        self.threads.append(threading.get_ident())
        if self.fail_upsert:
            raise RemoteStoreError("remote unavailable")
        self.upserts.append((uid, copy.deepcopy(record)))
        self.records[uid] = copy.deepcopy(record)
