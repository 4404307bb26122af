"""A small web framework: routing, middleware and response encoding over WSGI."""

from __future__ import annotations

import contextvars
import html
import os
import posixpath
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import IntEnum
from http import HTTPStatus
from typing import Any, Callable, Optional, Protocol, Union, runtime_checkable
from urllib.parse import quote

from werkzeug.exceptions import HTTPException
from werkzeug.security import safe_join
from werkzeug.utils import redirect, send_file
from werkzeug.wrappers import Request, Response

from servicekit.tracing import ZERO_TRACE_ID, inject_trace_id

_WRITER_KEY = "servicekit.web.writer"
_PARAMS_KEY = "servicekit.web.params"

_TOKEN_RE = re.compile(r"[!#$%&'*+.^_`|~0-9A-Za-z-]+")
_WILD_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)(\.\.\.)?\}")
_TRACEPARENT_RE = re.compile(r"[0-9a-f]{2}-([0-9a-f]{32})-[0-9a-f]{16}-[0-9a-f]{2}")
_FILE_RE = re.compile(r"\.[a-zA-Z]*$")

_CORS_METHODS = "POST, PATCH, GET, OPTIONS, PUT, DELETE"
_CORS_HEADERS = (
    "Accept, Content-Type, Content-Length, Accept-Encoding, X-CSRF-Token, Authorization"
)
_CORS_MAX_AGE = "86400"


@runtime_checkable
class Encoder(Protocol):
    """A value that can encode itself for a response."""

    def encode(self) -> tuple[bytes, str]:
        """Return the encoded data and its content type."""


HandlerFunc = Callable[[Request], Optional[Encoder]]
MidFunc = Callable[[HandlerFunc], HandlerFunc]
RawHandlerFunc = Callable[[Request, Response], None]
WebLogger = Callable[..., Any]


@dataclass(frozen=True)
class NoResponse:
    """Tells respond not to answer: the handler has already done so."""

    def encode(self) -> tuple[bytes, str]:
        return b"", ""


class _Writer(Response):
    """A response that carries no content type until one is set."""

    default_mimetype = None


def wrap_middleware(mw: Iterable[Optional[MidFunc]], handler: HandlerFunc) -> HandlerFunc:
    """Wrap handler so that the first middleware given runs first."""
    for mid in reversed(list(mw)):
        if mid is not None:
            handler = mid(handler)
    return handler


def param(request: Request, key: str) -> str:
    """Return the path parameter named key, or the empty string."""
    return request.environ.get(_PARAMS_KEY, {}).get(key, "")


def decode(request: Request, model: Any) -> None:
    """Read the request body into model through its decode(data) method.

    If model has a validate() method it is called afterwards and whatever
    it raises propagates unchanged.
    """
    try:
        data = request.get_data()
    except (OSError, HTTPException) as exc:
        raise ValueError(f"request: unable to read payload: {exc}") from exc

    try:
        model.decode(data)
    except Exception as exc:
        raise ValueError(f"request: decode: {exc}") from exc

    validate = getattr(model, "validate", None)
    if callable(validate):
        validate()


def get_writer(request: Request) -> Optional[Response]:
    """Return the response being built for request, or None outside a handler."""
    return request.environ.get(_WRITER_KEY)


def respond(request: Request, response: Response, resp: Optional[Encoder]) -> None:
    """Write resp into response.

    The status is taken from resp.http_status() when it exists, is 500 for
    an exception and 204 for None; NoResponse leaves response untouched.
    """
    if isinstance(resp, NoResponse):
        return

    status: int = HTTPStatus.OK
    http_status = getattr(resp, "http_status", None)
    if callable(http_status):
        status = http_status()
    elif isinstance(resp, BaseException):
        status = HTTPStatus.INTERNAL_SERVER_ERROR
    elif resp is None:
        status = HTTPStatus.NO_CONTENT

    if status == HTTPStatus.NO_CONTENT:
        response.status_code = HTTPStatus.NO_CONTENT
        return

    try:
        data, content_type = resp.encode()
    except Exception as exc:
        response.status_code = HTTPStatus.INTERNAL_SERVER_ERROR
        raise RuntimeError(f"respond: encode: {exc}") from exc

    response.headers["Content-Type"] = content_type
    response.status_code = int(status)
    response.set_data(data)


class _Kind(IntEnum):
    MULTI = 0
    WILD = 1
    LITERAL = 2


@dataclass(frozen=True)
class _Segment:
    kind: _Kind
    text: str


@dataclass(frozen=True)
class _Pattern:
    segments: tuple[_Segment, ...]
    subtree: bool
    trailing_slash: bool

    @classmethod
    def parse(cls, path: str) -> "_Pattern":
        if not path.startswith("/"):
            raise ValueError(f"invalid path {path!r}: must begin with '/'")
        parts = path[1:].split("/")
        subtree = trailing = False
        if parts[-1] == "":
            parts.pop()
            subtree = True
        elif parts[-1] == "{$}":
            parts.pop()
            trailing = True

        segments: list[_Segment] = []
        names: set[str] = set()
        for index, part in enumerate(parts):
            match = _WILD_RE.fullmatch(part)
            if match:
                name, multi = match.group(1), bool(match.group(2))
                if name in names:
                    raise ValueError(f"invalid path {path!r}: duplicate wildcard {name!r}")
                names.add(name)
                if multi:
                    if index != len(parts) - 1 or subtree or trailing:
                        raise ValueError(f"invalid path {path!r}: '...' wildcard must be last")
                    segments.append(_Segment(_Kind.MULTI, name))
                else:
                    segments.append(_Segment(_Kind.WILD, name))
            elif "{" in part or "}" in part:
                raise ValueError(f"invalid path {path!r}: bad wildcard segment {part!r}")
            else:
                segments.append(_Segment(_Kind.LITERAL, part))
        return cls(tuple(segments), subtree, trailing)

    def match(self, parts: Sequence[str]) -> Optional[dict[str, str]]:
        params: dict[str, str] = {}
        i = 0
        for seg in self.segments:
            if i >= len(parts):
                return None
            if seg.kind is _Kind.MULTI:
                params[seg.text] = "/".join(parts[i:])
                return params
            part = parts[i]
            if seg.kind is _Kind.LITERAL:
                if part != seg.text:
                    return None
            else:
                if part == "":
                    return None
                params[seg.text] = part
            i += 1

        rest = list(parts[i:])
        if self.subtree:
            return params if rest else None
        if self.trailing_slash:
            return params if rest == [""] else None
        return params if not rest else None

    def specificity(self) -> tuple[tuple[int, ...], int]:
        return tuple(int(seg.kind) for seg in self.segments), 0 if self.subtree else 1

    def identity(self) -> tuple[Any, ...]:
        shape = tuple(
            (seg.kind, seg.text if seg.kind is _Kind.LITERAL else "") for seg in self.segments
        )
        return shape, self.subtree, self.trailing_slash


_Endpoint = Callable[[Request, Mapping[str, str]], Response]


@dataclass(frozen=True)
class _Route:
    method: str
    pattern: _Pattern
    endpoint: _Endpoint

    def method_rank(self, method: str) -> Optional[int]:
        if self.method == method:
            return 2
        if self.method == "GET" and method == "HEAD":
            return 1
        if self.method == "":
            return 0
        return None


def _attach(request: Request, params: Mapping[str, str]) -> Response:
    writer = _Writer()
    request.environ[_WRITER_KEY] = writer
    request.environ[_PARAMS_KEY] = dict(params)
    return writer


def _incoming_trace_id(request: Request) -> str:
    header = request.headers.get("traceparent", "").strip().lower()
    match = _TRACEPARENT_RE.fullmatch(header)
    return match.group(1) if match else ZERO_TRACE_ID


def _plain(text: str, status: int) -> Response:
    response = _Writer(text, status=status, content_type="text/plain; charset=utf-8")
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


def _not_found() -> Response:
    return _plain("404 page not found\n", HTTPStatus.NOT_FOUND)


def _directory_listing(directory: str) -> Response:
    lines = [
        "<!doctype html>",
        '<meta name="viewport" content="width=device-width">',
        "<pre>",
    ]
    for name in sorted(os.listdir(directory)):
        shown = name + "/" if os.path.isdir(os.path.join(directory, name)) else name
        lines.append(f'<a href="{quote(shown)}">{html.escape(shown)}</a>')
    lines.append("</pre>")
    return _Writer("\n".join(lines) + "\n", content_type="text/html; charset=utf-8")


def _serve_files(request: Request, root: str, prefix: str) -> Response:
    if not request.path.startswith(prefix):
        return _not_found()
    url_path = request.path[len(prefix):]
    if not url_path.startswith("/"):
        url_path = "/" + url_path

    if url_path.endswith("/index.html"):
        return redirect("./", code=HTTPStatus.MOVED_PERMANENTLY)

    rel = posixpath.normpath(url_path).lstrip("/")
    target = safe_join(root, rel) if rel and rel != "." else root
    if target is None or not os.path.exists(target):
        return _not_found()

    if os.path.isdir(target):
        if not url_path.endswith("/"):
            base = posixpath.basename(url_path.rstrip("/"))
            return redirect(f"./{base}/", code=HTTPStatus.MOVED_PERMANENTLY)
        index = os.path.join(target, "index.html")
        if os.path.isfile(index):
            return send_file(index, request.environ)
        return _directory_listing(target)

    if url_path.endswith("/"):
        return redirect(f"../{posixpath.basename(rel)}", code=HTTPStatus.MOVED_PERMANENTLY)
    return send_file(target, request.environ)


def _static_root(directory: Union[str, "os.PathLike[str]"]) -> str:
    root = os.fspath(directory)
    if not os.path.isdir(root):
        raise FileNotFoundError(f"switching to static folder: {root!r} is not a directory")
    return root


class App:
    """A WSGI application that routes requests to handlers through middleware.

    log is called as log(msg, *args) when a response cannot be written.
    Extra positional arguments are middleware applied to every handler
    registered with handle or raw_handle.
    """

    def __init__(self, log: WebLogger, *args: MidFunc) -> None:
        self._log = log
        self._mw: list[MidFunc] = list(args)
        self._routes: list[_Route] = []
        self._origins: Optional[list[str]] = None

    def __call__(self, environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        request = Request(environ)
        response = self._dispatch(request)
        return response(environ, start_response)

    def enable_cors(self, origins: Iterable[str]) -> None:
        """Answer preflight requests and add CORS headers to later routes."""
        self._origins = list(origins)

        def preflight(request: Request) -> None:
            return None

        self.handle_no_mid("OPTIONS", "", "/", wrap_middleware([self._cors], preflight))

    def handle(
        self, method: str, group: str, path: str, handler: HandlerFunc, *args: MidFunc
    ) -> None:
        """Register handler for method and path, wrapped in the app's middleware."""
        handler = wrap_middleware(args, handler)
        handler = wrap_middleware(self._mw, handler)
        if self._origins is not None:
            handler = wrap_middleware([self._cors], handler)

        def endpoint(request: Request, params: Mapping[str, str]) -> Response:
            writer = _attach(request, params)

            def run() -> None:
                inject_trace_id(_incoming_trace_id(request))
                self._respond(request, writer, handler(request))

            contextvars.copy_context().run(run)
            return writer

        self._register(method, group, path, endpoint)

    def handle_no_mid(self, method: str, group: str, path: str, handler: HandlerFunc) -> None:
        """Register handler without the app's middleware or tracing."""

        def endpoint(request: Request, params: Mapping[str, str]) -> Response:
            writer = _attach(request, params)
            self._respond(request, writer, handler(request))
            return writer

        self._register(method, group, path, endpoint)

    def raw_handle(
        self, method: str, group: str, path: str, raw_handler: RawHandlerFunc, *args: MidFunc
    ) -> None:
        """Register raw_handler(request, response), which writes the response itself."""

        def handler(request: Request) -> None:
            raw_handler(request, get_writer(request))
            return None

        wrapped = wrap_middleware(args, handler)
        wrapped = wrap_middleware(self._mw, wrapped)
        if self._origins is not None:
            wrapped = wrap_middleware([self._cors], wrapped)

        def endpoint(request: Request, params: Mapping[str, str]) -> Response:
            writer = _attach(request, params)

            def run() -> None:
                inject_trace_id(_incoming_trace_id(request))
                wrapped(request)

            contextvars.copy_context().run(run)
            return writer

        self._register(method, group, path, endpoint)

    def file_server(self, directory: Union[str, "os.PathLike[str]"], path: str) -> None:
        """Serve the files below directory at path."""
        root = _static_root(directory)

        def endpoint(request: Request, params: Mapping[str, str]) -> Response:
            return _serve_files(request, root, path)

        self._add_route("GET", path, endpoint)

    def file_server_react(self, directory: Union[str, "os.PathLike[str]"], path: str) -> None:
        """Serve a built single-page app: paths without a file extension get index.html."""
        root = _static_root(directory)

        def endpoint(request: Request, params: Mapping[str, str]) -> Response:
            if _FILE_RE.search(request.path):
                return _serve_files(request, root, path)
            writer = _Writer()
            try:
                with open(os.path.join(root, "index.html"), "rb") as file:
                    data = file.read()
            except OSError as exc:
                self._log("FileServerReact", "ERROR", exc)
                return writer
            writer.content_type = "text/html; charset=utf-8"
            writer.set_data(data)
            return writer

        self._add_route("GET", path, endpoint)

    def _cors(self, handler: HandlerFunc) -> HandlerFunc:
        def inner(request: Request) -> Optional[Encoder]:
            writer = get_writer(request)
            if writer is not None:
                req_origin = request.headers.get("Origin", "")
                for origin in self._origins or []:
                    if origin == "*" or origin == req_origin:
                        writer.headers["Access-Control-Allow-Origin"] = origin
                        break
                writer.headers["Access-Control-Allow-Methods"] = _CORS_METHODS
                writer.headers["Access-Control-Allow-Headers"] = _CORS_HEADERS
                writer.headers["Access-Control-Max-Age"] = _CORS_MAX_AGE
            return handler(request)

        return inner

    def _respond(self, request: Request, writer: Response, resp: Optional[Encoder]) -> None:
        try:
            respond(request, writer, resp)
        except Exception as exc:
            self._log("web-respond", "ERROR", exc)

    def _register(self, method: str, group: str, path: str, endpoint: _Endpoint) -> None:
        final_path = f"/{group}{path}" if group else path
        self._add_route(method, final_path, endpoint)

    def _add_route(self, method: str, path: str, endpoint: _Endpoint) -> None:
        if method and not _TOKEN_RE.fullmatch(method):
            raise ValueError(f"invalid method {method!r}")
        pattern = _Pattern.parse(path)
        for route in self._routes:
            if route.method == method and route.pattern.identity() == pattern.identity():
                raise ValueError(f"pattern {method} {path} conflicts with a registered pattern")
        self._routes.append(_Route(method, pattern, endpoint))

    def _dispatch(self, request: Request) -> Response:
        parts = request.path[1:].split("/")
        best: Optional[tuple[Any, _Route, dict[str, str]]] = None
        allowed: set[str] = set()

        for route in self._routes:
            params = route.pattern.match(parts)
            if params is None:
                continue
            rank = route.method_rank(request.method)
            if rank is None:
                allowed.add(route.method)
                continue
            key = (route.pattern.specificity(), rank)
            if best is None or key > best[0]:
                best = (key, route, params)

        if best is not None:
            _, route, params = best
            return route.endpoint(request, params)

        if allowed:
            if "GET" in allowed:
                allowed.add("HEAD")
            response = _plain("Method Not Allowed\n", HTTPStatus.METHOD_NOT_ALLOWED)
            response.headers["Allow"] = ", ".join(sorted(allowed))
            return response

        return _not_found()