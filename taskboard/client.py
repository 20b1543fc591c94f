from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

import requests

from .errors import Cancelled, RequestFailed, SessionExpired, Timeout, ValidationFailed
from .models import Task
from .session import SessionState


logger = logging.getLogger(__name__)

BusyListener = Callable[[bool], None]

MIN_PASSWORD_LENGTH = 8


class InFlightCounter:
    """Saturating count of outstanding calls; busy while the count is above zero."""

    def __init__(self):
        self._count = 0
        self._lock = threading.Lock()
        self._listeners: List[BusyListener] = []

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def busy(self) -> bool:
        return self.count > 0

    def add_listener(self, listener: BusyListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def increment(self) -> None:
        with self._lock:
            self._count += 1
            flipped = self._count == 1
        if flipped:
            self._emit(True)

    def decrement(self) -> None:
        with self._lock:
            before = self._count
            self._count = max(0, self._count - 1)
            flipped = before > 0 and self._count == 0
        if flipped:
            self._emit(False)

    def _emit(self, busy: bool) -> None:
        for listener in list(self._listeners):
            try:
                listener(busy)
            except Exception:
                logger.debug("Busy listener failed", exc_info=True)


def _session() -> requests.Session:
    s = requests.Session()
    s.headers["Accept"] = "application/json"
    return s


def _error_message(resp: requests.Response) -> str:
    text = resp.text or ""
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("error", "message"):
            val = data.get(key)
            if isinstance(val, str) and val.strip():
                return val.strip()
    return text.strip() or "Request failed"


class ResourceClient:
    """Authenticated JSON calls against the task service."""

    def __init__(
        self,
        base_url: str,
        session: SessionState,
        timeout: float = 15.0,
        counter: Optional[InFlightCounter] = None,
        http: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.timeout = timeout
        self.counter = counter or InFlightCounter()
        self.http = http or _session()

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def call(
        self,
        path: str,
        method: str = "GET",
        body: Optional[object] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[object]:
        headers: Dict[str, str] = {"Accept": "application/json"}
        credential = self.session.credential
        if credential:
            headers["Authorization"] = f"Bearer {credential}"
        method = method.upper()
        self.counter.increment()
        try:
            if cancel is not None and cancel.is_set():
                raise Cancelled()
            logger.debug("%s %s", method, path)
            try:
                resp = self.http.request(
                    method,
                    self._url(path),
                    json=body,
                    headers=headers,
                    timeout=self.timeout,
                )
            except requests.exceptions.Timeout as exc:
                logger.warning("%s %s timed out after %ss", method, path, self.timeout)
                raise Timeout(f"Request timed out after {self.timeout:g}s") from exc
            except requests.exceptions.RequestException as exc:
                logger.warning("%s %s failed: %s", method, path, exc)
                raise RequestFailed(str(exc) or "Request failed") from exc
            if cancel is not None and cancel.is_set():
                raise Cancelled()
            if resp.status_code in (401, 403):
                logger.info("%s %s returned HTTP %s; clearing session", method, path, resp.status_code)
                self.session.clear()
                raise SessionExpired()
            if resp.status_code < 200 or resp.status_code >= 300:
                message = _error_message(resp)
                logger.warning("%s %s HTTP %s: %s", method, path, resp.status_code, message[:200])
                raise RequestFailed(message, status=resp.status_code)
            if not (resp.text or "").strip():
                return None
            try:
                return resp.json()
            except ValueError as exc:
                raise RequestFailed("Malformed JSON response", status=resp.status_code) from exc
        finally:
            self.counter.decrement()


class TaskApi:
    """Endpoint wrappers for the auth and task resources."""

    def __init__(self, client: ResourceClient):
        self.client = client

    @property
    def session(self) -> SessionState:
        return self.client.session

    def _authenticate(self, path: str, body: Dict[str, object], fallback: str) -> Dict[str, object]:
        try:
            data = self.client.call(path, "POST", body)
        except SessionExpired as exc:
            raise RequestFailed(fallback, status=401) from exc
        except RequestFailed as exc:
            if exc.message == "Request failed":
                raise RequestFailed(fallback, status=exc.status) from exc
            raise
        if not isinstance(data, dict) or not data.get("token"):
            raise RequestFailed(fallback)
        self.session.set(str(data.get("token")), data.get("roles") or [], data.get("user"))
        return data

    def login(self, username: str, password: str) -> Dict[str, object]:
        username = (username or "").strip()
        if not username or not password:
            raise ValidationFailed("Username and password are required")
        return self._authenticate("/auth/login", {"username": username, "password": password}, "Invalid credentials")

    def signup(self, name: str, email: str, username: str, password: str, confirm: Optional[str] = None) -> Dict[str, object]:
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if confirm is not None and confirm != password:
            raise ValidationFailed("Passwords do not match")
        body = {
            "name": (name or "").strip(),
            "email": (email or "").strip(),
            "username": (username or "").strip(),
            "password": password,
        }
        return self._authenticate("/auth/signup", body, "Signup failed")

    def list_tasks(self, cancel: Optional[threading.Event] = None) -> List[Task]:
        data = self.client.call("/api/tasks", "GET", cancel=cancel)
        if not isinstance(data, list):
            return []
        return [Task.from_json(item) for item in data if isinstance(item, dict)]

    def create_task(self, task: Task) -> Optional[Task]:
        data = self.client.call("/api/tasks", "POST", task.to_payload())
        return Task.from_json(data) if isinstance(data, dict) else None

    def update_task(self, task_id: str, task: Task) -> Optional[Task]:
        if not task_id:
            raise ValidationFailed("Task id is required for updates")
        data = self.client.call(f"/api/tasks/{task_id}", "PUT", task.to_payload())
        return Task.from_json(data) if isinstance(data, dict) else None

    def delete_task(self, task_id: str) -> None:
        if not task_id:
            raise ValidationFailed("Task id is required")
        self.client.call(f"/api/tasks/{task_id}", "DELETE")
