from __future__ import annotations
import datetime
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

KEY_EVENTS = "key_events"
POINTER_EVENTS = "pointer_events"
COMPLETIONS = "completions"
COLLECTIONS = (KEY_EVENTS, POINTER_EVENTS, COMPLETIONS)


class TaskType(str, Enum):
    LOGIN = "login"
    FORM = "form"
    INTERACTIVE = "interactive"
    BROWSING = "browsing"


# Checked in this order; a route containing several names resolves to the first.
_ROUTE_PRIORITY = (TaskType.LOGIN, TaskType.FORM, TaskType.INTERACTIVE, TaskType.BROWSING)

DASHBOARD_TASKS = (TaskType.FORM, TaskType.INTERACTIVE, TaskType.BROWSING)


def task_type_for_route(path: str) -> TaskType:
    """Map a screen route such as "/interactive" to its task type (default: form)."""
    for task in _ROUTE_PRIORITY:
        if task.value in (path or ""):
            return task
    return TaskType.FORM


def to_iso(ts_ms: int) -> str:
    dt = datetime.datetime.fromtimestamp(ts_ms / 1000.0, tz=datetime.timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


# fromisoformat before 3.11 wants exactly 3 or 6 fraction digits and an hh:mm offset;
# PostgREST strips trailing zeros ("10:00:00.12+00:00").
_FRACTION = re.compile(r"(:\d{2})\.(\d+)")
_SHORT_OFFSET = re.compile(r"(:\d{2}(?:\.\d+)?[+-]\d{2})$")


def from_iso(value: Any) -> int:
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: f"{m.group(1)}.{m.group(2)[:6].ljust(6, '0')}", text, count=1)
    text = _SHORT_OFFSET.sub(r"\1:00", text)
    dt = datetime.datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return int(round(dt.timestamp() * 1000))


def _num(row: Dict[str, Any], name: str) -> float:
    value = row.get(name)
    return float(value) if value is not None else 0.0


@dataclass(frozen=True)
class KeyEvent:
    session_id: str
    timestamp: int
    key: str
    kind: str  # "down" | "up"
    task_type: TaskType
    dwell_time: Optional[float] = None
    flight_time: Optional[float] = None

    def to_row(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "session_id": self.session_id,
            "timestamp": to_iso(self.timestamp),
            "key": self.key,
            "event_type": self.kind,
            "task_type": self.task_type.value,
        }
        if self.kind == "up":
            row["dwell_time"] = self.dwell_time
            row["flight_time"] = self.flight_time
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "KeyEvent":
        kind = str(row.get("event_type", "down"))
        return cls(
            session_id=str(row["session_id"]),
            timestamp=from_iso(row["timestamp"]),
            key=str(row.get("key", "")),
            kind=kind,
            task_type=TaskType(row["task_type"]),
            dwell_time=_num(row, "dwell_time") if kind == "up" else None,
            flight_time=_num(row, "flight_time") if kind == "up" else None,
        )


@dataclass(frozen=True)
class PointerEvent:
    session_id: str
    timestamp: int
    x: float
    y: float
    kind: str  # "move" | "click"
    task_type: TaskType
    speed: Optional[float] = None
    acceleration: Optional[float] = None

    def to_row(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "session_id": self.session_id,
            "timestamp": to_iso(self.timestamp),
            "x": self.x,
            "y": self.y,
            "event_type": self.kind,
            "task_type": self.task_type.value,
        }
        if self.kind == "move":
            row["speed"] = self.speed
            row["acceleration"] = self.acceleration
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PointerEvent":
        kind = str(row.get("event_type", "move"))
        return cls(
            session_id=str(row["session_id"]),
            timestamp=from_iso(row["timestamp"]),
            x=_num(row, "x"),
            y=_num(row, "y"),
            kind=kind,
            task_type=TaskType(row["task_type"]),
            speed=_num(row, "speed") if kind == "move" else None,
            acceleration=_num(row, "acceleration") if kind == "move" else None,
        )


@dataclass(frozen=True)
class TaskCompletion:
    session_id: str
    task_type: TaskType
    duration: int

    def to_row(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "task_type": self.task_type.value,
            "duration": int(self.duration),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TaskCompletion":
        return cls(
            session_id=str(row["session_id"]),
            task_type=TaskType(row["task_type"]),
            duration=int(row.get("duration") or 0),
        )
