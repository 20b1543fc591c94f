from __future__ import annotations

import asyncio
import datetime as dt
import logging
import threading
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from .derive import derive
from .errors import Timeout
from .models import DerivedTask, Task
from .safe import SafeRunner
from .session import SessionState


logger = logging.getLogger(__name__)

FetchFn = Callable[[threading.Event], Sequence[Task]]
ApplyFn = Callable[[List[DerivedTask], int], None]
TickFn = Callable[[], Awaitable[Any]]
DEFAULT_INTERVAL = 30.0


class RefreshScheduler:
    """Full reloads on demand, on a timer and after mutations.

    Each cycle is tagged with a generation number. Results from a generation
    that is no longer current (a logout or ``invalidate()`` happened while the
    fetch was running) are dropped, so prior state is never half-replaced.
    Calls that arrive while a cycle is running are coalesced into one
    follow-up cycle.

    ``deadline`` bounds every blocking call in seconds, however slowly the
    server answers. ``on_tick`` replaces ``load`` as the auto refresh action.
    """

    def __init__(
        self,
        session: SessionState,
        fetch: FetchFn,
        apply: ApplyFn,
        runner: SafeRunner,
        interval: float = DEFAULT_INTERVAL,
        now: Optional[Callable[[], dt.datetime]] = None,
        deadline: Optional[float] = None,
        on_tick: Optional[TickFn] = None,
    ):
        self.session = session
        self.fetch = fetch
        self.apply = apply
        self.runner = runner
        self.interval = interval
        self.now = now or (lambda: dt.datetime.now(dt.timezone.utc))
        self.deadline = deadline
        self.on_tick = on_tick
        self._generation = 0
        self._inflight: Optional[asyncio.Future] = None
        self._rerun = False
        self._cancel: Optional[threading.Event] = None
        self._timer: Optional[asyncio.Task] = None
        self.fetch_count = 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def loading(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def auto_refresh(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def invalidate(self) -> None:
        self._generation += 1
        if self._cancel is not None:
            self._cancel.set()

    async def load(self) -> bool:
        if not self.session.is_authenticated():
            return False
        if self.loading:
            self._rerun = True
            return await asyncio.shield(self._inflight)
        self._inflight = asyncio.ensure_future(self._cycle())
        return await asyncio.shield(self._inflight)

    async def _cycle(self) -> bool:
        applied = False
        while True:
            self._rerun = False
            if await self._load_once():
                applied = True
            if not self._rerun:
                return applied

    async def _load_once(self) -> bool:
        if not self.session.is_authenticated():
            return False
        self._generation += 1
        generation = self._generation
        cancel = threading.Event()
        self._cancel = cancel
        self.fetch_count += 1
        logger.info("Load generation %d started", generation)
        try:
            tasks = await self._blocking(cancel, self.fetch, cancel)
        finally:
            if self._cancel is cancel:
                self._cancel = None
        derived = derive(tasks or [], self.now())
        if generation != self._generation:
            logger.info("Discarding load generation %d (current is %d)", generation, self._generation)
            return False
        self.apply(derived, generation)
        logger.info("Load generation %d applied: %d tasks", generation, len(derived))
        return True

    async def _blocking(self, cancel: Optional[threading.Event], fn: Callable[..., Any], *args) -> Any:
        future = asyncio.get_running_loop().run_in_executor(None, fn, *args)
        if not self.deadline:
            return await future
        try:
            return await asyncio.wait_for(future, self.deadline)
        except asyncio.TimeoutError:
            # the worker thread may still finish; the cancel event makes the client drop its result
            if cancel is not None:
                cancel.set()
            logger.warning("Call exceeded the %ss deadline", self.deadline)
            raise Timeout(f"Request timed out after {self.deadline:g}s") from None

    async def after_mutation(self, fn: Callable[..., Any], *args) -> Any:
        result = await self._blocking(None, fn, *args)
        await self.load()
        return result

    # -----------------------------
    # Auto refresh
    # -----------------------------
    def set_auto_refresh(self, enabled: bool) -> None:
        if not enabled:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
                logger.info("Auto refresh stopped")
            return
        if self.auto_refresh:
            return
        self._timer = asyncio.get_running_loop().create_task(self._ticker())
        logger.info("Auto refresh every %ss", self.interval)

    async def _ticker(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if not self.session.is_authenticated():
                continue
            await self.runner.run_async("auto-refresh", self.on_tick or self.load)
