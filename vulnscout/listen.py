"""HTTP serving of the scan and cache services, with hot database updates."""

from __future__ import annotations

import gzip
import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Iterator, Mapping, Protocol

from vulnscout.messages import (
    MissingBlobsRequest,
    PutArtifactRequest,
    PutBlobRequest,
    ScanRequest,
    from_json,
    to_json,
)
from vulnscout.retry import ErrorCode
from vulnscout.server import CacheServer, ScanServer
from vulnscout.utils import copy_file

logger = logging.getLogger(__name__)

UPDATE_INTERVAL = 60 * 60.0
SCANNER_PATH_PREFIX = "/twirp/trivy.scanner.v1.Scanner/"
CACHE_PATH_PREFIX = "/twirp/trivy.cache.v1.Cache/"
HEALTH_PATH = "/healthz"

_GZIP_MIN_SIZE = 1400
_TEXT_PLAIN = {"Content-Type": "text/plain; charset=utf-8"}

_STATUS_BY_CODE = {
    ErrorCode.CANCELED: 408,
    ErrorCode.UNKNOWN: 500,
    ErrorCode.INVALID_ARGUMENT: 400,
    ErrorCode.MALFORMED: 400,
    ErrorCode.DEADLINE_EXCEEDED: 408,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.BAD_ROUTE: 404,
    ErrorCode.ALREADY_EXISTS: 409,
    ErrorCode.PERMISSION_DENIED: 403,
    ErrorCode.UNAUTHENTICATED: 401,
    ErrorCode.RESOURCE_EXHAUSTED: 429,
    ErrorCode.FAILED_PRECONDITION: 412,
    ErrorCode.ABORTED: 409,
    ErrorCode.OUT_OF_RANGE: 400,
    ErrorCode.UNIMPLEMENTED: 501,
    ErrorCode.INTERNAL: 500,
    ErrorCode.UNAVAILABLE: 503,
    ErrorCode.DATA_LOSS: 500,
}

HttpResponse = tuple[int, dict[str, str], bytes]


class RequestGate:
    """Keeps requests and database updates from running at the same time."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._updates = 0
        self._requests = 0

    @contextmanager
    def request(self) -> Iterator[None]:
        """Wait for any update to finish, then hold the gate for one request."""
        with self._cond:
            self._cond.wait_for(lambda: self._updates == 0)
            self._requests += 1
        try:
            yield
        finally:
            with self._cond:
                self._requests -= 1
                self._cond.notify_all()

    @contextmanager
    def suspend(self) -> Iterator[None]:
        """Stop new requests and wait until the running ones are done."""
        with self._cond:
            self._updates += 1
            self._cond.wait_for(lambda: self._requests == 0)
        try:
            yield
        finally:
            with self._cond:
                self._updates -= 1
                self._cond.notify_all()


class DBUpdateError(Exception):
    """Raised when the vulnerability database cannot be updated."""


class _DBClient(Protocol):
    def needs_update(self, app_version: str, skip: bool) -> bool:
        ...

    def download(self, dest_dir: str) -> None:
        ...


class _Database(Protocol):
    def close(self) -> None:
        ...

    def open(self, cache_dir: str) -> None:
        ...


def _db_path(cache_dir: str) -> str:
    return os.path.join(cache_dir, "db", "trivy.db")


def _metadata_path(cache_dir: str) -> str:
    return os.path.join(cache_dir, "db", "metadata.json")


class DBWorker:
    """Checks for a newer vulnerability database and swaps it in."""

    def __init__(self, db_client: _DBClient, database: _Database | None = None) -> None:
        self.db_client = db_client
        self.database = database

    def update(self, app_version: str, cache_dir: str, gate: RequestGate) -> bool:
        """Update the database if needed; return whether an update happened."""
        logger.debug("Check for DB update...")
        try:
            needs_update = self.db_client.needs_update(app_version, False)
        except Exception as err:
            raise DBUpdateError("failed to check if db needs an update") from err
        if not needs_update:
            return False

        logger.info("Updating DB...")
        try:
            self._hot_update(cache_dir, gate)
        except Exception as err:
            raise DBUpdateError("failed DB hot update") from err
        return True

    def _hot_update(self, cache_dir: str, gate: RequestGate) -> None:
        with tempfile.TemporaryDirectory(prefix="db") as tmp_dir:
            try:
                self.db_client.download(tmp_dir)
            except Exception as err:
                raise DBUpdateError(f"failed to download vulnerability DB: {err}") from err

            logger.info("Suspending all requests during DB update")
            logger.info("Waiting for all requests to be processed before DB update...")
            with gate.suspend():
                if self.database is not None:
                    self.database.close()
                os.makedirs(os.path.dirname(_db_path(cache_dir)), exist_ok=True)
                copy_file(_db_path(tmp_dir), _db_path(cache_dir))
                copy_file(_metadata_path(tmp_dir), _metadata_path(cache_dir))
                logger.info("Reopening DB...")
                if self.database is not None:
                    self.database.open(cache_dir)


def _twirp_error(code: ErrorCode, msg: str) -> HttpResponse:
    body = json.dumps({"code": code.value, "msg": msg}).encode()
    return _STATUS_BY_CODE[code], {"Content-Type": "application/json"}, body


class Router:
    """Routes HTTP requests to the health check and the RPC services."""

    def __init__(
        self,
        scan_server: ScanServer,
        cache_server: CacheServer,
        gate: RequestGate,
        token: str = "",
        token_header: str = "",
    ) -> None:
        self.gate = gate
        self.token = token
        self.token_header = token_header
        self._services: dict[str, dict[str, tuple[type, Callable[[Any], Any]]]] = {
            SCANNER_PATH_PREFIX: {"Scan": (ScanRequest, scan_server.scan)},
            CACHE_PATH_PREFIX: {
                "PutArtifact": (PutArtifactRequest, cache_server.put_artifact),
                "PutBlob": (PutBlobRequest, cache_server.put_blob),
                "MissingBlobs": (MissingBlobsRequest, cache_server.missing_blobs),
            },
        }

    def handle(
        self, method: str, path: str, headers: Mapping[str, str], body: bytes = b""
    ) -> HttpResponse:
        """Serve one request and return its status, headers and body."""
        lookup = {key.lower(): value for key, value in headers.items()}
        if path == HEALTH_PATH:
            return 200, dict(_TEXT_PLAIN), b"ok"
        for prefix, methods in self._services.items():
            if path.startswith(prefix):
                response = self._serve(methods, method, path, lookup, body)
                return self._compress(lookup, response)
        return 404, dict(_TEXT_PLAIN), b"404 page not found\n"

    def _serve(
        self,
        methods: dict[str, tuple[type, Callable[[Any], Any]]],
        method: str,
        path: str,
        headers: dict[str, str],
        body: bytes,
    ) -> HttpResponse:
        if self.token and headers.get(self.token_header.lower()) != self.token:
            return _twirp_error(ErrorCode.UNAUTHENTICATED, "invalid token")
        with self.gate.request():
            return self._dispatch(methods, method, path, headers, body)

    @staticmethod
    def _dispatch(
        methods: dict[str, tuple[type, Callable[[Any], Any]]],
        method: str,
        path: str,
        headers: dict[str, str],
        body: bytes,
    ) -> HttpResponse:
        if method != "POST":
            return _twirp_error(
                ErrorCode.BAD_ROUTE,
                f"unsupported method {method} (only POST is allowed)",
            )
        entry = methods.get(path.rsplit("/", 1)[-1])
        if entry is None:
            return _twirp_error(ErrorCode.BAD_ROUTE, f"no handler for path {path}")
        content_type = headers.get("content-type", "").split(";")[0].strip().lower()
        if content_type != "application/json":
            return _twirp_error(
                ErrorCode.BAD_ROUTE, f"unexpected Content-Type: {content_type!r}"
            )

        request_cls, handler = entry
        try:
            request = from_json(request_cls, json.loads(body or b"{}"))
        except (ValueError, TypeError, KeyError):
            return _twirp_error(
                ErrorCode.MALFORMED, "the json request could not be decoded"
            )
        try:
            result = handler(request)
        except Exception as err:
            return _twirp_error(ErrorCode.INTERNAL, str(err))

        payload = to_json(result) if result is not None else {}
        return 200, {"Content-Type": "application/json"}, json.dumps(payload).encode()

    @staticmethod
    def _compress(headers: dict[str, str], response: HttpResponse) -> HttpResponse:
        status, out_headers, body = response
        if "gzip" not in headers.get("accept-encoding", "") or len(body) < _GZIP_MIN_SIZE:
            return response
        out_headers = {**out_headers, "Content-Encoding": "gzip", "Vary": "Accept-Encoding"}
        return status, out_headers, gzip.compress(body)


def _split_addr(addr: str) -> tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"address {addr}: missing port in address")
    return host.strip("[]"), int(port)


def _make_handler(router: Router) -> type[BaseHTTPRequestHandler]:
    class _Handler(BaseHTTPRequestHandler):
        def _dispatch(self) -> None:
            length = int(self.headers.get("Content-Length") or 0)
            body = self.rfile.read(length) if length else b""
            status, headers, payload = router.handle(
                self.command,
                self.path.split("?", 1)[0],
                dict(self.headers.items()),
                body,
            )
            self.send_response(status)
            for key, value in headers.items():
                self.send_header(key, value)
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            if self.command != "HEAD":
                self.wfile.write(payload)

        do_GET = do_POST = do_PUT = do_DELETE = do_PATCH = do_HEAD = _dispatch

        def log_message(self, format: str, *args: Any) -> None:
            logger.debug(format, *args)

    return _Handler


class Server:
    """The scanning server: RPC services over HTTP plus periodic DB updates."""

    def __init__(
        self,
        app_version: str,
        addr: str,
        cache_dir: str,
        token: str = "",
        token_header: str = "",
        db_worker: DBWorker | None = None,
    ) -> None:
        self.app_version = app_version
        self.addr = addr
        self.cache_dir = cache_dir
        self.token = token
        self.token_header = token_header
        self.db_worker = db_worker

    def _update_loop(self, gate: RequestGate, stop: threading.Event) -> None:
        assert self.db_worker is not None
        while not stop.wait(UPDATE_INTERVAL):
            try:
                self.db_worker.update(self.app_version, self.cache_dir, gate)
            except DBUpdateError as err:
                logger.error("%s: %s", err, err.__cause__)

    def listen_and_serve(self, scan_server: ScanServer, cache_server: CacheServer) -> None:
        """Serve requests until the process stops."""
        gate = RequestGate()
        stop = threading.Event()
        if self.db_worker is not None:
            threading.Thread(
                target=self._update_loop, args=(gate, stop), daemon=True
            ).start()

        router = Router(scan_server, cache_server, gate, self.token, self.token_header)
        host, port = _split_addr(self.addr)
        logger.info("Listening %s...", self.addr)
        try:
            with ThreadingHTTPServer((host, port), _make_handler(router)) as httpd:
                httpd.serve_forever()
        finally:
            stop.set()