import logging
import threading

import pytest

from bdyn.errors import CaptureError, MissingSession, WriteFailure
from bdyn.models import COMPLETIONS, KEY_EVENTS, POINTER_EVENTS, TaskType, task_type_for_route
from bdyn.recorder import CAPTURING, INACTIVE, Recorder, WriteDispatcher
from bdyn.sink import MemorySink


class FailingSink(MemorySink):
    def __init__(self, fail_on=()):
        super().__init__()
        self.fail_on = set(fail_on)

    def append(self, collection, record):
        if collection in self.fail_on:
            raise WriteFailure("storage offline")
        super().append(collection, record)


class HeldSink(MemorySink):
    """Appends wait until the test releases them."""

    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def append(self, collection, record):
        assert self.release.wait(timeout=5)
        super().append(collection, record)


def make_recorder(sink=None):
    sink = sink or MemorySink()
    return Recorder(sink, WriteDispatcher(sink, max_workers=2), clock=lambda: 1000), sink


def test_route_priority():
    assert task_type_for_route("/login") is TaskType.LOGIN
    assert task_type_for_route("/form") is TaskType.FORM
    assert task_type_for_route("/interactive") is TaskType.INTERACTIVE
    assert task_type_for_route("/browsing") is TaskType.BROWSING
    assert task_type_for_route("/") is TaskType.FORM
    assert task_type_for_route("/login-form") is TaskType.LOGIN
    assert task_type_for_route("/browsing/form") is TaskType.FORM


def test_attach_requires_session():
    rec, _ = make_recorder()
    with pytest.raises(MissingSession):
        rec.attach("", TaskType.FORM)
    assert rec.state == INACTIVE


def test_inactive_recorder_ignores_events():
    rec, sink = make_recorder()
    assert rec.on_key_down("a", ts=1) is None
    assert rec.on_pointer_move(1, 1, ts=1) is None
    assert rec.on_click(1, 1, ts=1) is None
    rec.dispatcher.drain(timeout=5)
    assert sink.query(KEY_EVENTS, "s1") == []


def test_key_records_carry_context_and_metrics():
    rec, sink = make_recorder()
    rec.attach("s1", TaskType.FORM)
    assert rec.state == CAPTURING
    rec.on_key_down("a", ts=100)
    up = rec.on_key_up("a", ts=150)
    assert (up.dwell_time, up.flight_time) == (50, 0)
    rec.on_key_down("b", ts=500)
    up = rec.on_key_up("b", ts=520)
    assert up.flight_time == 350
    assert rec.dispatcher.drain(timeout=5)

    rows = sink.query(KEY_EVENTS, "s1", order_by_timestamp=True)
    assert [r["event_type"] for r in rows] == ["down", "up", "down", "up"]
    assert all(r["task_type"] == "form" for r in rows)
    assert "dwell_time" not in rows[0]
    assert rows[3]["flight_time"] == 350


def test_zero_elapsed_move_writes_nothing():
    rec, sink = make_recorder()
    rec.attach("s1", TaskType.INTERACTIVE)
    rec.on_pointer_move(0, 0, ts=0)
    ev = rec.on_pointer_move(3, 4, ts=10)
    assert ev.speed == 0.5 and ev.acceleration == 0
    assert rec.on_pointer_move(6, 8, ts=10) is None
    rec.on_click(3, 4, ts=12)
    rec.dispatcher.drain(timeout=5)
    rows = sink.query(POINTER_EVENTS, "s1", order_by_timestamp=True)
    assert [r["event_type"] for r in rows] == ["move", "move", "click"]
    assert "speed" not in rows[2]


def test_reattach_resets_rolling_state():
    rec, _ = make_recorder()
    rec.attach("s1", TaskType.FORM)
    rec.on_key_down("a", ts=100)
    rec.on_key_up("a", ts=150)
    rec.on_pointer_move(0, 0, ts=100)
    rec.on_pointer_move(30, 40, ts=110)
    rec.detach()
    assert rec.state == INACTIVE

    rec.attach("s1", TaskType.INTERACTIVE)
    rec.on_key_down("b", ts=900)
    up = rec.on_key_up("b", ts=950)
    assert up.flight_time == 0
    assert up.task_type is TaskType.INTERACTIVE
    first = rec.on_pointer_move(100, 100, ts=905)
    assert (first.speed, first.acceleration) == (0.0, 0.0)
    rec.dispatcher.drain(timeout=5)


def test_write_failure_is_logged_and_capture_continues(caplog):
    sink = FailingSink(fail_on={KEY_EVENTS})
    rec, _ = make_recorder(sink)
    rec.attach("s1", TaskType.FORM)
    with caplog.at_level(logging.WARNING, logger="bdyn.recorder"):
        rec.on_key_down("a", ts=100)
        rec.on_pointer_move(5, 5, ts=101)
        assert rec.dispatcher.drain(timeout=5)
    assert "Dropped key_events record" in caplog.text
    assert len(sink.query(POINTER_EVENTS, "s1")) == 1
    assert rec.on_key_up("a", ts=130).dwell_time == 30
    rec.dispatcher.drain(timeout=5)


def test_pending_writes_do_not_hold_up_capture():
    sink = HeldSink()
    rec, _ = make_recorder(sink)
    rec.attach("s1", TaskType.FORM)
    try:
        assert rec.on_key_down("a", ts=100) is not None
        assert rec.on_key_down("b", ts=120) is not None
        up = rec.on_key_up("a", ts=150)
        assert up.dwell_time == 50
        assert rec.dispatcher.outstanding() == 3
        assert not rec.dispatcher.drain(timeout=0.05)
    finally:
        sink.release.set()
    assert rec.dispatcher.drain(timeout=5)
    assert rec.dispatcher.outstanding() == 0
    assert len(sink.query(KEY_EVENTS, "s1")) == 3


def test_overlapping_keys_get_their_own_dwell():
    rec, _ = make_recorder()
    rec.attach("s1", TaskType.FORM)
    rec.on_key_down("a", ts=100)
    rec.on_key_down("b", ts=120)
    first = rec.on_key_up("a", ts=150)
    second = rec.on_key_up("b", ts=200)
    assert (first.dwell_time, first.flight_time) == (50.0, 0.0)
    assert (second.dwell_time, second.flight_time) == (80.0, 0.0)
    rec.dispatcher.drain(timeout=5)


def test_on_record_callback_sees_every_emitted_record():
    seen = []
    sink = MemorySink()
    rec = Recorder(sink, WriteDispatcher(sink), on_record=seen.append)
    rec.attach("s1", TaskType.BROWSING)
    rec.on_pointer_move(1, 1, ts=1)
    rec.on_pointer_move(2, 2, ts=1)
    rec.on_click(2, 2, ts=2)
    assert [r.kind for r in seen] == ["move", "click"]
    rec.dispatcher.drain(timeout=5)


def test_completion_written_once():
    clock = iter([1000, 4500])
    sink = MemorySink()
    rec = Recorder(sink, WriteDispatcher(sink), clock=lambda: next(clock))
    rec.attach("s1", TaskType.FORM)
    done = rec.complete()
    assert done.duration == 3500
    with pytest.raises(CaptureError):
        rec.complete(ts=5000)
    assert sink.query(COMPLETIONS, "s1") == [{"session_id": "s1", "task_type": "form", "duration": 3500}]


def test_completion_failure_reaches_caller():
    sink = FailingSink(fail_on={COMPLETIONS})
    rec, _ = make_recorder(sink)
    rec.attach("s1", TaskType.FORM)
    with pytest.raises(WriteFailure):
        rec.complete(ts=2000)
    # not marked done, so the participant can retry
    sink.fail_on.clear()
    assert rec.complete(ts=2500).duration == 1500


def test_complete_requires_active_screen():
    rec, _ = make_recorder()
    with pytest.raises(CaptureError):
        rec.complete()
