import io
import json

from servicekit.delegate import Data, Delegate
from servicekit.logger import Level, Logger


def _make():
    buf = io.StringIO()
    return Delegate(Logger(buf, Level.DEBUG, "svc")), buf


def _entries(buf):
    return [json.loads(line) for line in buf.getvalue().splitlines()]


def test_call_runs_registered_functions_in_order():
    d, _ = _make()
    calls = []
    d.register("user", "updated", lambda data: calls.append(("first", data)))
    d.register("user", "updated", lambda data: calls.append(("second", data)))
    event = Data("user", "updated", b'{"id":1}')
    d.call(event)
    assert calls == [("first", event), ("second", event)]


def test_call_ignores_other_domains_and_actions():
    d, _ = _make()
    calls = []
    d.register("user", "updated", calls.append)
    d.call(Data("product", "updated"))
    d.call(Data("user", "deleted"))
    assert calls == []


def test_failing_function_is_logged_and_others_still_run():
    d, buf = _make()
    calls = []

    def failing(data):
        raise RuntimeError("broken handler")

    d.register("home", "created", failing)
    d.register("home", "created", calls.append)
    d.call(Data("home", "created"))

    assert len(calls) == 1
    errors = [e for e in _entries(buf) if e.get("err")]
    assert [e["err"] for e in errors] == ["broken handler"]


def test_call_logs_start_and_completion():
    d, buf = _make()
    d.register("user", "updated", lambda data: None)
    d.call(Data("user", "updated", b"{}"))
    statuses = [e["status"] for e in _entries(buf)]
    assert statuses == ["started", "sending", "completed"]
    first = _entries(buf)[0]
    assert first["domain"] == "user"
    assert first["action"] == "updated"


def test_data_str():
    data = Data("user", "updated", b"{}")
    assert str(data) == 'Event{Domain:"user", Action:"updated", RawParams:"{}"}'


def test_data_str_quotes_special_characters():
    data = Data('we"ird', "act", b"")
    text = str(data)
    assert text.startswith('Event{Domain:"we\\"ird"')
    assert text.endswith('RawParams:""}')