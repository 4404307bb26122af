import json
import uuid
from dataclasses import dataclass
from http import HTTPStatus

import pytest
from werkzeug.test import Client, EnvironBuilder
from werkzeug.wrappers import Response

from servicekit.tracing import get_trace_id
from servicekit.web import (
    App,
    NoResponse,
    decode,
    get_writer,
    param,
    respond,
    wrap_middleware,
)


@dataclass
class _Text:
    body: str

    def encode(self):
        return self.body.encode(), "text/plain"


class _Created:
    def http_status(self):
        return HTTPStatus.CREATED

    def encode(self):
        return b"made", "application/json"


class _Failure(Exception):
    def encode(self):
        return str(self).encode(), "application/json"


class _Broken:
    def encode(self):
        raise OSError("boom")


class _Model:
    payload = None

    def decode(self, data):
        self.payload = json.loads(data)

    def validate(self):
        if "name" not in self.payload:
            raise ValueError("name required")


def _request(method="GET", path="/", data=None, headers=None):
    return EnvironBuilder(method=method, path=path, data=data, headers=headers).get_request()


def _app(logs=None, *mw):
    sink = logs if logs is not None else []
    return App(lambda *args: sink.append(args), *mw)


def _tracker(calls, tag):
    def wrap(handler):
        def inner(request):
            calls.append(tag)
            return handler(request)

        return inner

    return wrap


def test_wrap_middleware_runs_first_given_first():
    calls = []
    handler = wrap_middleware(
        [_tracker(calls, "a"), None, _tracker(calls, "b")], lambda r: _Text("x")
    )
    result = handler(_request())
    assert calls == ["a", "b"]
    assert result == _Text("x")


def test_no_response_encode():
    assert NoResponse().encode() == (b"", "")


def test_respond_encoder():
    writer = Response()
    respond(_request(), writer, _Text("hello"))
    assert writer.status_code == HTTPStatus.OK
    assert writer.get_data() == b"hello"
    assert writer.headers["Content-Type"] == "text/plain"


def test_respond_uses_http_status():
    writer = Response()
    respond(_request(), writer, _Created())
    assert writer.status_code == HTTPStatus.CREATED
    assert writer.get_data() == b"made"


def test_respond_none_is_no_content():
    writer = Response()
    respond(_request(), writer, None)
    assert writer.status_code == HTTPStatus.NO_CONTENT


def test_respond_exception_is_server_error():
    writer = Response()
    respond(_request(), writer, _Failure("bad"))
    assert writer.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert writer.get_data() == b"bad"


def test_respond_no_response_leaves_writer():
    writer = Response()
    writer.status_code = HTTPStatus.ACCEPTED
    respond(_request(), writer, NoResponse())
    assert writer.status_code == HTTPStatus.ACCEPTED
    assert writer.get_data() == b""


def test_respond_encode_failure():
    writer = Response()
    with pytest.raises(RuntimeError, match="respond: encode"):
        respond(_request(), writer, _Broken())
    assert writer.status_code == HTTPStatus.INTERNAL_SERVER_ERROR


def test_decode_and_validate():
    model = _Model()
    decode(_request("POST", data=b'{"name": "x"}'), model)
    assert model.payload == {"name": "x"}


def test_decode_error_is_wrapped():
    with pytest.raises(ValueError, match="^request: decode"):
        decode(_request("POST", data=b"{nope"), _Model())


def test_decode_validation_error_propagates():
    with pytest.raises(ValueError, match="^name required$"):
        decode(_request("POST", data=b'{"other": 1}'), _Model())


def test_outside_handler_no_writer_or_params():
    request = _request()
    assert get_writer(request) is None
    assert param(request, "id") == ""


def test_handle_with_path_param_and_group():
    app = _app()
    app.handle("GET", "v1", "/users/{id}", lambda r: _Text(param(r, "id")))
    resp = Client(app).get("/v1/users/42")
    assert resp.status_code == HTTPStatus.OK
    assert resp.get_data(as_text=True) == "42"


def test_multi_wildcard():
    app = _app()
    app.handle("GET", "", "/files/{rest...}", lambda r: _Text(param(r, "rest")))
    assert Client(app).get("/files/a/b/c").get_data(as_text=True) == "a/b/c"


def test_more_specific_route_wins():
    app = _app()
    app.handle("GET", "", "/users/{id}", lambda r: _Text("by-id"))
    app.handle("GET", "", "/users/me", lambda r: _Text("me-route"))
    client = Client(app)
    assert client.get("/users/me").get_data(as_text=True) == "me-route"
    assert client.get("/users/7").get_data(as_text=True) == "by-id"


def test_not_found_and_method_not_allowed():
    app = _app()
    app.handle("POST", "", "/items", lambda r: None)
    client = Client(app)
    assert client.get("/nowhere").status_code == HTTPStatus.NOT_FOUND
    resp = client.get("/items")
    assert resp.status_code == HTTPStatus.METHOD_NOT_ALLOWED
    assert "POST" in resp.headers["Allow"]


def test_head_served_by_get_route():
    app = _app()
    app.handle("GET", "", "/x", lambda r: _Text("hi"))
    assert Client(app).head("/x").status_code == HTTPStatus.OK


def test_middleware_order():
    calls = []
    app = _app(None, _tracker(calls, "app1"), _tracker(calls, "app2"))
    app.handle("GET", "", "/m", lambda r: _Text("ok"), _tracker(calls, "route"))
    resp = Client(app).get("/m")
    assert resp.get_data(as_text=True) == "ok"
    assert calls == ["app1", "app2", "route"]


def test_handle_no_mid_skips_app_middleware():
    calls = []
    app = _app(None, _tracker(calls, "app"))
    app.handle_no_mid("GET", "", "/plain", lambda r: _Text("plain"))
    resp = Client(app).get("/plain")
    assert resp.get_data(as_text=True) == "plain"
    assert calls == []


def test_handler_can_use_writer():
    def handler(request):
        get_writer(request).headers["X-Test"] = "yes"
        return _Text("w")

    app = _app()
    app.handle("GET", "", "/w", handler)
    assert Client(app).get("/w").headers["X-Test"] == "yes"


def test_raw_handle_writes_response():
    def raw(request, writer):
        writer.status_code = HTTPStatus.CREATED
        writer.set_data(b"raw")

    app = _app()
    app.raw_handle("PUT", "", "/raw", raw)
    resp = Client(app).put("/raw")
    assert resp.status_code == HTTPStatus.CREATED
    assert resp.get_data() == b"raw"


def test_respond_failure_is_logged():
    logs = []
    app = _app(logs)
    app.handle("GET", "", "/broken", lambda r: _Broken())
    resp = Client(app).get("/broken")
    assert resp.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert logs[0][0] == "web-respond"
    assert logs[0][1] == "ERROR"


def test_cors_preflight_and_headers():
    app = _app()
    app.enable_cors(["http://example.com"])
    app.handle("GET", "", "/x", lambda r: _Text("hi"))
    client = Client(app)

    pre = client.options("/x", headers={"Origin": "http://example.com"})
    assert pre.status_code == HTTPStatus.NO_CONTENT
    assert pre.headers["Access-Control-Allow-Origin"] == "http://example.com"
    assert pre.headers["Access-Control-Max-Age"] == "86400"

    resp = client.get("/x", headers={"Origin": "http://other.example.com"})
    assert "Access-Control-Allow-Origin" not in resp.headers
    assert resp.headers["Access-Control-Allow-Methods"] == "POST, PATCH, GET, OPTIONS, PUT, DELETE"


def test_cors_wildcard_origin():
    app = _app()
    app.enable_cors(["*"])
    resp = Client(app).options("/any", headers={"Origin": "http://example.com"})
    assert resp.headers["Access-Control-Allow-Origin"] == "*"


def test_trace_id_from_traceparent():
    app = _app()
    app.handle("GET", "", "/t", lambda r: _Text(get_trace_id()))
    trace_id = "ab" * 16
    header = f"00-{trace_id}-{'cd' * 8}-01"
    resp = Client(app).get("/t", headers={"traceparent": header})
    assert resp.get_data(as_text=True) == trace_id


def test_trace_id_generated_without_traceparent():
    app = _app()
    app.handle("GET", "", "/t", lambda r: _Text(get_trace_id()))
    body = Client(app).get("/t").get_data(as_text=True)
    assert uuid.UUID(body).version == 4


def test_duplicate_and_invalid_routes():
    app = _app()
    app.handle("GET", "", "/d", lambda r: None)
    with pytest.raises(ValueError):
        app.handle("GET", "", "/d", lambda r: None)
    with pytest.raises(ValueError):
        app.handle("GET", "", "nope", lambda r: None)


def test_file_server(tmp_path):
    (tmp_path / "a.txt").write_text("hello")
    (tmp_path / "sub").mkdir()
    app = _app()
    app.file_server(tmp_path, "/static/")
    client = Client(app)

    assert client.get("/static/a.txt").get_data(as_text=True) == "hello"
    assert client.get("/static/missing.txt").status_code == HTTPStatus.NOT_FOUND

    listing = client.get("/static/").get_data(as_text=True)
    assert "a.txt" in listing
    assert "sub/" in listing


def test_file_server_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        _app().file_server(tmp_path / "absent", "/static/")


def test_file_server_react(tmp_path):
    (tmp_path / "index.html").write_text("<html>app</html>")
    (tmp_path / "main.js").write_text("console.log(1)")
    app = _app()
    app.file_server_react(tmp_path, "/")
    client = Client(app)

    assert client.get("/some/route").get_data(as_text=True) == "<html>app</html>"
    assert client.get("/main.js").get_data(as_text=True) == "console.log(1)"