from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple
import logging

from . import metrics
from .errors import FetchFailure, MissingSession
from .models import (COMPLETIONS, DASHBOARD_TASKS, KEY_EVENTS, POINTER_EVENTS,
                     KeyEvent, PointerEvent, TaskCompletion, TaskType)
from .sink import Sink

logger = logging.getLogger(__name__)

@dataclass
class KeystrokePoint:
    timestamp: int
    dwell_time: float
    flight_time: float

@dataclass
class MovementPoint:
    timestamp: int
    speed: float
    acceleration: float

@dataclass
class TaskSummary:
    task_type: TaskType
    completion_time: int = 0
    keystroke_count: int = 0
    pointer_count: int = 0
    click_count: int = 0
    keystroke_patterns: List[KeystrokePoint] = field(default_factory=list)
    pointer_movements: List[MovementPoint] = field(default_factory=list)

    @property
    def avg_dwell_ms(self) -> float:
        return metrics.mean([p.dwell_time for p in self.keystroke_patterns])

    @property
    def avg_flight_ms(self) -> float:
        return metrics.mean([p.flight_time for p in self.keystroke_patterns])

    @property
    def median_dwell_ms(self) -> float:
        return metrics.median([p.dwell_time for p in self.keystroke_patterns])

    @property
    def p95_flight_ms(self) -> float:
        return metrics.percentile([p.flight_time for p in self.keystroke_patterns], 0.95)

    @property
    def avg_speed(self) -> float:
        return metrics.mean([m.speed for m in self.pointer_movements])

    @property
    def avg_acceleration(self) -> float:
        return metrics.mean([m.acceleration for m in self.pointer_movements])

    @property
    def is_empty(self) -> bool:
        return not (self.keystroke_count or self.pointer_count or self.completion_time)

    def to_dict(self) -> Dict:
        return {
            "task_type": self.task_type.value,
            "completion_time": int(self.completion_time),
            "keystroke_count": int(self.keystroke_count),
            "pointer_count": int(self.pointer_count),
            "click_count": int(self.click_count),
            "avg_dwell_ms": self.avg_dwell_ms,
            "avg_flight_ms": self.avg_flight_ms,
            "median_dwell_ms": self.median_dwell_ms,
            "p95_flight_ms": self.p95_flight_ms,
            "avg_speed": self.avg_speed,
            "avg_acceleration": self.avg_acceleration,
            "keystroke_patterns": [vars(p) for p in self.keystroke_patterns],
            "pointer_movements": [vars(m) for m in self.pointer_movements],
        }


def summarize(task_type: TaskType, completions: List[TaskCompletion],
              keys: List[KeyEvent], pointer: List[PointerEvent]) -> TaskSummary:
    """Build one task's summary. Inputs must already be in timestamp order."""
    task_keys = [k for k in keys if k.task_type == task_type]
    task_pointer = [p for p in pointer if p.task_type == task_type]
    done = [c for c in completions if c.task_type == task_type]
    if len(done) > 1:
        logger.warning("%d completion records for %s; using the first", len(done), task_type.value)

    return TaskSummary(
        task_type=task_type,
        completion_time=done[0].duration if done else 0,
        keystroke_count=len(task_keys),
        pointer_count=len(task_pointer),
        click_count=sum(1 for p in task_pointer if p.kind == "click"),
        keystroke_patterns=[
            KeystrokePoint(k.timestamp, k.dwell_time or 0.0, k.flight_time or 0.0)
            for k in task_keys if k.kind == "up"
        ],
        pointer_movements=[
            MovementPoint(p.timestamp, p.speed or 0.0, p.acceleration or 0.0)
            for p in task_pointer if p.kind == "move"
        ],
    )


def _fetch_all(sink: Sink, session_id: str) -> Tuple[list, list, list]:
    with ThreadPoolExecutor(max_workers=3, thread_name_prefix="BDynFetch") as pool:
        futures = {
            COMPLETIONS: pool.submit(sink.query, COMPLETIONS, session_id),
            KEY_EVENTS: pool.submit(sink.query, KEY_EVENTS, session_id, order_by_timestamp=True),
            POINTER_EVENTS: pool.submit(sink.query, POINTER_EVENTS, session_id, order_by_timestamp=True),
        }
    # Leaving the pool waits for all three; any single failure aborts.
    results = {}
    for name, fut in futures.items():
        exc = fut.exception()
        if exc is not None:
            logger.error("Fetching %s for session %s failed: %s", name, session_id, exc)
            raise FetchFailure(f"Could not load {name}") from exc
        results[name] = fut.result()
    try:
        return (
            [TaskCompletion.from_row(r) for r in results[COMPLETIONS]],
            [KeyEvent.from_row(r) for r in results[KEY_EVENTS]],
            [PointerEvent.from_row(r) for r in results[POINTER_EVENTS]],
        )
    except (KeyError, ValueError, TypeError) as e:
        logger.exception("Malformed record for session %s", session_id)
        raise FetchFailure("Malformed record in event log") from e


def get_summaries(sink: Sink, session_id: str,
                  task_types: Iterable[TaskType] = DASHBOARD_TASKS) -> Dict[TaskType, TaskSummary]:
    """
    Rebuild per-task statistics for a session from the stored event log.

    Every requested task type gets an entry, even when nothing was recorded
    for it. Raises MissingSession for an empty id and FetchFailure when any
    read fails.
    """
    if not session_id:
        raise MissingSession("Cannot load statistics without a session id")
    completions, keys, pointer = _fetch_all(sink, session_id)
    logger.debug("Loaded %d completions, %d key events, %d pointer events for %s",
                 len(completions), len(keys), len(pointer), session_id)
    wanted = [TaskType(t) for t in task_types]
    return {t: summarize(t, completions, keys, pointer) for t in wanted}
