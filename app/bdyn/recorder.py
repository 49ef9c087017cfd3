from __future__ import annotations
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional, Set, Union
import logging

from . import metrics
from .errors import CaptureError, MissingSession, WriteFailure
from .models import (COMPLETIONS, KEY_EVENTS, POINTER_EVENTS, KeyEvent,
                     PointerEvent, TaskCompletion, TaskType)
from .sink import Sink

logger = logging.getLogger(__name__)

Record = Union[KeyEvent, PointerEvent]

INACTIVE = "inactive"
CAPTURING = "capturing"


def now_ms() -> int:
    return int(time.time() * 1000)


class WriteDispatcher:
    """
    Fire-and-forget appends. The work queue is unbounded so a slow sink never
    holds up capture; ``max_workers`` caps how many writes are in flight.
    """

    def __init__(self, sink: Sink, max_workers: int = 4):
        self.sink = sink
        self._pool = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="BDynWrite")
        self._pending: Set[Future] = set()
        self._cond = threading.Condition()

    def submit(self, collection: str, row: dict) -> Future:
        fut = self._pool.submit(self.sink.append, collection, row)
        with self._cond:
            self._pending.add(fut)
        fut.add_done_callback(lambda f, c=collection: self._done(f, c))
        return fut

    def _done(self, fut: Future, collection: str) -> None:
        exc = fut.exception()
        if exc is not None:
            # Event is lost; capture carries on.
            logger.warning("Dropped %s record: %s", collection, exc)
        with self._cond:
            self._pending.discard(fut)
            self._cond.notify_all()

    def outstanding(self) -> int:
        with self._cond:
            return len(self._pending)

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Block until every submitted write has finished (and been logged if it failed)."""
        with self._cond:
            return self._cond.wait_for(lambda: not self._pending, timeout=timeout)

    def close(self, wait_for_writes: bool = True) -> None:
        self._pool.shutdown(wait=wait_for_writes)


@dataclass
class _Visit:
    """Context and rolling state of one capturing screen visit."""

    session_id: str
    task_type: TaskType
    mounted_at_ms: int
    keys: metrics.KeyState = field(default_factory=metrics.KeyState)
    pointer: metrics.PointerState = field(default_factory=metrics.PointerState)
    completed: bool = False


class Recorder:
    """
    Turns raw input into telemetry records for one task screen at a time.

    ``attach`` starts a capturing visit with fresh rolling state, ``detach``
    ends it. Event handlers called while inactive are ignored.
    """

    def __init__(self, sink: Sink, dispatcher: Optional[WriteDispatcher] = None,
                 on_record: Optional[Callable[[Record], None]] = None,
                 clock: Callable[[], int] = now_ms):
        self.sink = sink
        self.dispatcher = dispatcher or WriteDispatcher(sink)
        self.on_record = on_record
        self._clock = clock
        self._visit: Optional[_Visit] = None

    @property
    def state(self) -> str:
        return CAPTURING if self._visit is not None else INACTIVE

    @property
    def session_id(self) -> Optional[str]:
        return self._visit.session_id if self._visit else None

    @property
    def task_type(self) -> Optional[TaskType]:
        return self._visit.task_type if self._visit else None

    def attach(self, session_id: str, task_type: TaskType) -> None:
        if not session_id:
            raise MissingSession("Cannot start capture without a session id")
        self.detach()
        self._visit = _Visit(session_id, TaskType(task_type), self._clock())
        logger.info("Capturing %s task for session %s", self._visit.task_type.value, session_id)

    def detach(self) -> None:
        visit, self._visit = self._visit, None
        if visit is not None:
            logger.info("Stopped capturing %s task", visit.task_type.value)

    def _emit(self, collection: str, record: Record) -> Record:
        self.dispatcher.submit(collection, record.to_row())
        if self.on_record is not None:
            self.on_record(record)
        return record

    # Keyboard

    def on_key_down(self, key: str, ts: Optional[int] = None) -> Optional[KeyEvent]:
        visit = self._visit
        if visit is None:
            return None
        ts = self._clock() if ts is None else ts
        metrics.key_down(visit.keys, key, ts)
        return self._emit(KEY_EVENTS, KeyEvent(visit.session_id, ts, key, "down", visit.task_type))

    def on_key_up(self, key: str, ts: Optional[int] = None) -> Optional[KeyEvent]:
        visit = self._visit
        if visit is None:
            return None
        ts = self._clock() if ts is None else ts
        dwell, flight = metrics.key_up(visit.keys, key, ts)
        ev = KeyEvent(visit.session_id, ts, key, "up", visit.task_type,
                      dwell_time=dwell, flight_time=flight)
        return self._emit(KEY_EVENTS, ev)

    # Pointer

    def on_pointer_move(self, x: float, y: float, ts: Optional[int] = None) -> Optional[PointerEvent]:
        visit = self._visit
        if visit is None:
            return None
        ts = self._clock() if ts is None else ts
        result = metrics.pointer_move(visit.pointer, x, y, ts)
        if result is None:
            logger.debug("Dropped pointer move at %s: no elapsed time", ts)
            return None
        speed, acceleration = result
        ev = PointerEvent(visit.session_id, ts, x, y, "move", visit.task_type,
                          speed=speed, acceleration=acceleration)
        return self._emit(POINTER_EVENTS, ev)

    def on_click(self, x: float, y: float, ts: Optional[int] = None) -> Optional[PointerEvent]:
        visit = self._visit
        if visit is None:
            return None
        ts = self._clock() if ts is None else ts
        return self._emit(POINTER_EVENTS, PointerEvent(visit.session_id, ts, x, y, "click", visit.task_type))

    # Completion

    def complete(self, ts: Optional[int] = None) -> TaskCompletion:
        """
        Store how long the current screen took. Written synchronously so the
        caller can keep the participant on the screen if it fails.
        """
        visit = self._visit
        if visit is None:
            raise CaptureError("No task screen is being captured")
        if visit.completed:
            raise CaptureError(f"{visit.task_type.value} task already completed")
        ts = self._clock() if ts is None else ts
        done = TaskCompletion(visit.session_id, visit.task_type, max(0, ts - visit.mounted_at_ms))
        try:
            self.sink.append(COMPLETIONS, done.to_row())
        except WriteFailure:
            logger.error("Could not save %s completion", visit.task_type.value)
            raise
        visit.completed = True
        logger.info("Task %s completed in %d ms", done.task_type.value, done.duration)
        return done
