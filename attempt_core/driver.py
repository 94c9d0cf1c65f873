"""Client-side countdown and autosave loop for one attempt.

A single asyncio task ticks once per second. The countdown is local and never
waits on the network: heartbeats are spawned as background tasks every
``HEARTBEAT_INTERVAL_SECONDS``. Option picks are sent at once with an
optimistic local update; free text is buffered and flushed on blur, on
navigation and, for every question, before submitting. Server-side expiry is
the backstop for everything here, so transient failures are logged and left
for the next heartbeat or flush to recover.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from . import config
from .errors import AttemptNotActive
from .transport import TransportError
from .types import IN_PROGRESS, SUBMITTED

log = logging.getLogger(__name__)


class OneShotLatch:
    """Fires at most once. Check-and-set is safe within one event loop."""

    def __init__(self) -> None:
        self._fired = False

    @property
    def fired(self) -> bool:
        return self._fired

    def try_fire(self) -> bool:
        if self._fired:
            return False
        self._fired = True
        return True


class PendingWrite:
    """Apply a value locally, run the remote write, restore the prior value on failure.

    The rollback is skipped when a newer local write has already replaced
    this one.
    """

    _MISSING = object()

    def __init__(self, state: Dict[str, Any], key: str, value: Any) -> None:
        self.state = state
        self.key = key
        self.value = value
        self._prior = state.get(key, self._MISSING)

    def apply(self) -> None:
        self.state[self.key] = self.value

    def rollback(self) -> None:
        if self.state.get(self.key, self._MISSING) is not self.value:
            return
        if self._prior is self._MISSING:
            self.state.pop(self.key, None)
        else:
            self.state[self.key] = self._prior

    async def run(self, remote: Callable[[], Awaitable[Any]]) -> Any:
        self.apply()
        try:
            return await remote()
        except Exception:
            self.rollback()
            raise


class AttemptDriver:
    def __init__(
        self,
        transport: Any,
        attempt: Dict[str, Any],
        question_ids: List[str],
        *,
        heartbeat_every: int = config.HEARTBEAT_INTERVAL_SECONDS,
    ) -> None:
        self.transport = transport
        self.attempt_id: str = attempt["id"]
        self.duration: int = int(attempt.get("durationSeconds") or 0)
        self.time_used: int = int(attempt.get("timeUsedSeconds") or 0)
        self.status: str = attempt.get("status", IN_PROGRESS)
        self.question_ids = list(question_ids)
        self.current = 0
        self.heartbeat_every = max(1, int(heartbeat_every))
        self.selections: Dict[str, Optional[int]] = {}
        self.texts: Dict[str, str] = {}
        self._dirty: Set[str] = set()
        for ans in attempt.get("answers") or []:
            qid = str(ans["questionId"])
            if ans.get("selectedIndex") is not None:
                self.selections[qid] = ans["selectedIndex"]
            if isinstance(ans.get("textAnswer"), str):
                self.texts[qid] = ans["textAnswer"]
        self._auto_latch = OneShotLatch()
        self._submit_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self.result: Optional[Dict[str, Any]] = None

    # ---- state ----
    @property
    def finished(self) -> bool:
        return self.status != IN_PROGRESS

    @property
    def time_left(self) -> Optional[int]:
        if not self.duration:
            return None
        return max(0, self.duration - self.time_used)

    @property
    def unsaved(self) -> Set[str]:
        return set(self._dirty)

    def _absorb(self, ack: Dict[str, Any]) -> None:
        if ack.get("status") == SUBMITTED and not self.finished:
            log.info("attempt %s submitted by server (auto=%s)", self.attempt_id, ack.get("autoSubmitted"))
            self.status = SUBMITTED
        server_time = ack.get("timeUsedSeconds")
        if isinstance(server_time, int) and server_time > self.time_used:
            self.time_used = server_time

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for in-flight background heartbeats."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ---- timer ----
    async def tick(self) -> None:
        if self.finished:
            return
        self.time_used += 1
        if self.duration and self.time_used >= self.duration and not self._auto_latch.fired:
            # no heartbeat on this tick: the submit carries the final time
            try:
                await self.auto_submit()
            except (TransportError, AttemptNotActive) as exc:
                # later heartbeats carry the overrun; the server submits on them
                log.warning("auto-submit failed for %s: %s", self.attempt_id, exc)
            return
        if self.time_used % self.heartbeat_every == 0:
            self._spawn(self._heartbeat(self.time_used))

    async def _heartbeat(self, time_used: int) -> None:
        try:
            ack = await self.transport.heartbeat(self.attempt_id, time_used)
        except TransportError as exc:
            log.warning("heartbeat at %ss failed: %s", time_used, exc)
            return
        except AttemptNotActive:
            self.status = SUBMITTED
            return
        self._absorb(ack)

    async def run(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> Optional[Dict[str, Any]]:
        while not self.finished:
            await sleep(config.TICK_SECONDS)
            await self.tick()
        await self.drain()
        return self.result

    # ---- answers ----
    async def select_option(self, question_id: str, index: Optional[int]) -> bool:
        """Send a choice immediately. Returns False if it did not land."""
        if self.finished:
            return False
        write = PendingWrite(self.selections, question_id, index)
        try:
            ack = await write.run(lambda: self.transport.record_answer(
                self.attempt_id, question_id, selected_index=index, time_used_seconds=self.time_used,
            ))
        except TransportError as exc:
            log.warning("answer %s not saved: %s", question_id, exc)
            return False
        except AttemptNotActive:
            self.status = SUBMITTED
            return False
        self._absorb(ack)
        if not ack.get("accepted", True):
            write.rollback()
            return False
        return True

    def type_text(self, question_id: str, text: str) -> None:
        self.texts[question_id] = text
        self._dirty.add(question_id)

    async def flush(self, question_id: str, *, report_time: bool = True) -> bool:
        if question_id not in self._dirty:
            return True
        if self.finished:
            return False
        text = self.texts.get(question_id, "")
        try:
            ack = await self.transport.record_answer(
                self.attempt_id, question_id, text_answer=text,
                time_used_seconds=self.time_used if report_time else None,
            )
        except TransportError as exc:
            log.warning("text answer %s not saved: %s", question_id, exc)
            return False
        except AttemptNotActive:
            self.status = SUBMITTED
            return False
        self._absorb(ack)
        if not ack.get("accepted", True):
            return False
        # keep it dirty if the student typed more while the write was in flight
        if self.texts.get(question_id, "") == text:
            self._dirty.discard(question_id)
        return True

    async def blur(self, question_id: str) -> bool:
        return await self.flush(question_id)

    async def navigate(self, index: int) -> None:
        if self.question_ids:
            await self.flush(self.question_ids[self.current])
        self.current = max(0, min(index, len(self.question_ids) - 1))

    async def flush_all(self, *, report_time: bool = True) -> bool:
        pending = sorted(self._dirty)
        if not pending:
            return True
        outcomes = await asyncio.gather(*(self.flush(qid, report_time=report_time) for qid in pending))
        return all(outcomes)

    # ---- submission ----
    async def submit(self, auto: bool = False) -> Dict[str, Any]:
        """Flush every buffered answer, then submit. Concurrent calls share one request."""
        if self.result is not None:
            return self.result
        if self._submit_task is None:
            self._submit_task = asyncio.ensure_future(self._do_submit(auto))
        task = self._submit_task
        try:
            return await task
        except Exception:
            if self._submit_task is task:
                self._submit_task = None
            raise

    async def _do_submit(self, auto: bool) -> Dict[str, Any]:
        # the submit carries the final time; a flush at zero reporting it would be refused
        saved = await self.flush_all(report_time=False)
        if not saved and not self.finished:
            raise TransportError(f"{len(self._dirty)} answer(s) could not be saved; submission not sent")
        attempt = await self.transport.submit(self.attempt_id, auto, self.time_used)
        self.result = attempt
        self.status = attempt.get("status", SUBMITTED)
        log.info("attempt %s submitted auto=%s", self.attempt_id, attempt.get("autoSubmitted"))
        return attempt

    async def auto_submit(self) -> Optional[Dict[str, Any]]:
        if not self._auto_latch.try_fire():
            return None
        log.info("time up for attempt %s, auto-submitting", self.attempt_id)
        return await self.submit(auto=True)
