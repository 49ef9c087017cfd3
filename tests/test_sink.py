import pytest
import requests

from bdyn.errors import FetchFailure, WriteFailure
from bdyn.models import KEY_EVENTS, PointerEvent, TaskType
from bdyn.settings import StorageSettings
from bdyn.sink import MemorySink, RestSink, SqliteSink, open_sink


class FakeResponse:
    def __init__(self, status=200, payload=None):
        self.status_code = status
        self.ok = 200 <= status < 300
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeHttp:
    def __init__(self, response=None, error=None):
        self.headers = {}
        self.calls = []
        self.response = response or FakeResponse(201)
        self.error = error

    def _call(self, method, url, **kw):
        self.calls.append((method, url, kw))
        if self.error:
            raise self.error
        return self.response

    def post(self, url, **kw):
        return self._call("POST", url, **kw)

    def get(self, url, **kw):
        return self._call("GET", url, **kw)

    def close(self):
        pass


def test_memory_sink_filters_and_orders():
    sink = MemorySink()
    sink.append(KEY_EVENTS, {"session_id": "a", "timestamp": "2024-01-01T00:00:02.000Z", "task_type": "form"})
    sink.append(KEY_EVENTS, {"session_id": "a", "timestamp": "2024-01-01T00:00:01.000Z", "task_type": "login"})
    sink.append(KEY_EVENTS, {"session_id": "b", "timestamp": "2024-01-01T00:00:00.000Z", "task_type": "form"})
    rows = sink.query(KEY_EVENTS, "a", order_by_timestamp=True)
    assert [r["task_type"] for r in rows] == ["login", "form"]
    assert len(sink.query(KEY_EVENTS, "a", task_type="form")) == 1


def test_unknown_collection_rejected():
    with pytest.raises(ValueError):
        MemorySink().append("mouse", {})


def test_sqlite_sink_persists_across_reopen(tmp_path):
    path = tmp_path / "db" / "telemetry.db"
    ev = PointerEvent("s1", 1_700_000_000_123, 5, 6, "click", TaskType.BROWSING)
    sink = SqliteSink(path)
    sink.append("pointer_events", ev.to_row())
    sink.close()

    sink = SqliteSink(path)
    rows = sink.query("pointer_events", "s1", task_type="browsing")
    assert len(rows) == 1
    assert PointerEvent.from_row(rows[0]) == PointerEvent("s1", 1_700_000_000_123, 5.0, 6.0, "click", TaskType.BROWSING)
    sink.close()


def test_rest_sink_insert_and_query_shape():
    http = FakeHttp()
    sink = RestSink("https://db.example.com/", "key123", session=http)
    sink.append(KEY_EVENTS, {"session_id": "s1"})
    method, url, kw = http.calls[0]
    assert (method, url) == ("POST", "https://db.example.com/rest/v1/key_events")
    assert kw["json"] == [{"session_id": "s1"}]
    assert http.headers["apikey"] == "key123"

    http.response = FakeResponse(200, [{"session_id": "s1"}])
    assert sink.query(KEY_EVENTS, "s1", task_type="form", order_by_timestamp=True) == [{"session_id": "s1"}]
    params = http.calls[1][2]["params"]
    assert params["session_id"] == "eq.s1"
    assert params["task_type"] == "eq.form"
    assert params["order"] == "timestamp.asc"


def test_rest_sink_errors_are_mapped():
    sink = RestSink("https://db.example.com", "k", session=FakeHttp(error=requests.ConnectionError("down")))
    with pytest.raises(WriteFailure):
        sink.append(KEY_EVENTS, {})
    with pytest.raises(FetchFailure):
        sink.query(KEY_EVENTS, "s1")

    sink = RestSink("https://db.example.com", "k", session=FakeHttp(response=FakeResponse(500)))
    with pytest.raises(WriteFailure):
        sink.append(KEY_EVENTS, {})
    with pytest.raises(FetchFailure):
        sink.query(KEY_EVENTS, "s1")


def test_open_sink_backends(tmp_path):
    assert isinstance(open_sink(StorageSettings(backend="memory")), MemorySink)
    sqlite = open_sink(StorageSettings(backend="sqlite", db_path=str(tmp_path / "x.db")))
    assert isinstance(sqlite, SqliteSink)
    sqlite.close()
    with pytest.raises(ValueError):
        open_sink(StorageSettings(backend="rest"))
    with pytest.raises(ValueError):
        open_sink(StorageSettings(backend="csv"))
