from bdyn.models import KeyEvent, TaskCompletion, TaskType, from_iso, to_iso


def test_iso_timestamps():
    assert to_iso(150) == "1970-01-01T00:00:00.150Z"
    assert from_iso("1970-01-01T00:00:00.150Z") == 150
    assert from_iso("1970-01-01T00:00:01+00:00") == 1000
    assert from_iso(1234) == 1234


def test_from_iso_accepts_rest_backend_fractions():
    # trailing zeros stripped by the backend
    assert from_iso("2024-05-01T10:00:00.12+00:00") == from_iso("2024-05-01T10:00:00.120Z")
    assert from_iso("1970-01-01T00:00:00.5+00:00") == 500
    # microsecond and longer fractions land on the millisecond
    assert from_iso("1970-01-01T00:00:00.123456+00:00") == 123
    assert from_iso("1970-01-01T00:00:00.1234567+00:00") == 123
    assert from_iso("1970-01-01T01:00:00.25+01") == 250
    assert from_iso("1970-01-01T00:00:02") == 2000


def test_key_rows_use_wire_names():
    up = KeyEvent("s1", 1000, "a", "up", TaskType.FORM, dwell_time=40.0, flight_time=0.0)
    row = up.to_row()
    assert row == {
        "session_id": "s1",
        "timestamp": "1970-01-01T00:00:01.000Z",
        "key": "a",
        "event_type": "up",
        "dwell_time": 40.0,
        "flight_time": 0.0,
        "task_type": "form",
    }
    assert KeyEvent.from_row(row) == up


def test_missing_metrics_read_as_zero():
    row = {"session_id": "s1", "timestamp": "2024-01-01T00:00:00Z", "key": "a",
           "event_type": "up", "task_type": "browsing"}
    ev = KeyEvent.from_row(row)
    assert ev.dwell_time == 0.0 and ev.flight_time == 0.0
    assert TaskCompletion.from_row({"session_id": "s1", "task_type": "form"}).duration == 0
