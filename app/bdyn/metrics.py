from __future__ import annotations
import math
import statistics
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

# Rolling state lives in these two structs. One pair is built per recorder
# attachment and thrown away on detach.


@dataclass
class KeyState:
    # key -> (down ts, flight ms) for presses still held
    pressed: Dict[str, Tuple[int, float]] = field(default_factory=dict)
    last_up_ms: Optional[int] = None


@dataclass
class PointerState:
    x: float = 0.0
    y: float = 0.0
    last_ms: Optional[int] = None
    last_speed: float = 0.0
    has_speed: bool = False


def key_down(state: KeyState, key: str, ts_ms: int) -> None:
    if key in state.pressed:
        return  # auto-repeat; the press started at the first down
    # Flight is fixed at press time: gap since the last release seen before this down.
    flight = float(ts_ms - state.last_up_ms) if state.last_up_ms is not None else 0.0
    state.pressed[key] = (ts_ms, flight)


def key_up(state: KeyState, key: str, ts_ms: int) -> Tuple[float, float]:
    """
    Returns (dwell_ms, flight_ms) for the press of ``key`` that this release
    ends. Presses of other keys held at the same time do not interfere.
    An up without a matching down is degenerate: both metrics are 0.
    """
    press = state.pressed.pop(key, None)
    if press is None:
        dwell, flight = 0.0, 0.0
    else:
        down, flight = press
        dwell = float(ts_ms - down)
    state.last_up_ms = ts_ms
    return dwell, flight


def distance(dx: float, dy: float) -> float:
    return math.sqrt(dx * dx + dy * dy)


def pointer_move(state: PointerState, x: float, y: float, ts_ms: int) -> Optional[Tuple[float, float]]:
    """
    Returns (speed px/ms, acceleration px/ms^2), or None when no time has
    elapsed since the previous move. A dropped move leaves the state as is.
    """
    if state.last_ms is None:
        state.x, state.y, state.last_ms = x, y, ts_ms
        return 0.0, 0.0

    elapsed = ts_ms - state.last_ms
    if elapsed <= 0:
        return None

    speed = distance(x - state.x, y - state.y) / elapsed
    acceleration = (speed - state.last_speed) / elapsed if state.has_speed else 0.0

    state.x, state.y, state.last_ms = x, y, ts_ms
    state.last_speed = speed
    state.has_speed = True
    return speed, acceleration


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return float(sum(values) / len(values))


def median(values: Sequence[float]) -> float:
    return float(statistics.median(values)) if values else 0.0


def percentile(values: Sequence[float], p: float) -> float:
    """Linear-interpolated percentile for p in [0, 1], whole-percent resolution."""
    if not values:
        return 0.0
    if len(values) == 1 or p <= 0:
        return float(min(values))
    if p >= 1:
        return float(max(values))
    cuts = statistics.quantiles(values, n=100, method="inclusive")
    return float(cuts[max(0, round(p * 100) - 1)])
