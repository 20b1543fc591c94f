from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple


Notify = Callable[[str], None]


class SafeRunner:
    """Run UI units so that one failure cannot take down its siblings.

    Errors are logged with the unit's label and handed to ``notify`` (the
    status line in the terminal UI); the caller gets ``None`` back.
    """

    def __init__(self, logger: Optional[logging.Logger] = None, notify: Optional[Notify] = None):
        self.logger = logger or logging.getLogger("taskboard")
        self.notify = notify

    def _report(self, label: str, exc: BaseException) -> None:
        self.logger.error("[%s] %s", label, exc, exc_info=(type(exc), exc, exc.__traceback__))
        if self.notify is None:
            return
        message = str(exc) or f"{label} failed"
        try:
            self.notify(message)
        except Exception:
            self.logger.debug("notify hook failed for %s", label, exc_info=True)

    def run(self, label: str, fn: Callable[..., Any], *args, **kwargs) -> Any:
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            self._report(label, exc)
            return None

    async def run_async(self, label: str, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        try:
            return await fn(*args, **kwargs)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._report(label, exc)
            return None


class Subscriptions:
    """Event handlers keyed by a binding name; binding twice is a no-op."""

    def __init__(self, runner: SafeRunner):
        self.runner = runner
        self._bound: Dict[str, Tuple[str, Callable[..., Any]]] = {}

    def subscribe(self, key: str, event: str, handler: Callable[..., Any]) -> bool:
        if key in self._bound:
            return False
        self._bound[key] = (event, handler)
        return True

    def unsubscribe(self, key: str) -> None:
        self._bound.pop(key, None)

    def is_bound(self, key: str) -> bool:
        return key in self._bound

    def emit(self, event: str, *args, **kwargs) -> List[Any]:
        results = []
        for key, (name, handler) in list(self._bound.items()):
            if name != event:
                continue
            results.append(self.runner.run(key, handler, *args, **kwargs))
        return results
