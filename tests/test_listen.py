import gzip
import json
import os
import threading

import pytest

from vulnscout.listen import (
    CACHE_PATH_PREFIX,
    SCANNER_PATH_PREFIX,
    DBUpdateError,
    DBWorker,
    RequestGate,
    Router,
)
from vulnscout.messages import RpcOS, ScanRequest, ScanResponse, to_json
from vulnscout.server import CacheServer

METADATA = '{"Version":1,"NextUpdate":"3000-01-01T00:00:00Z","UpdatedAt":"3000-01-01T00:00:00Z"}'


class FakeDBClient:
    def __init__(self, needs_update=False, needs_error=None, download_error=None):
        self._needs_update = needs_update
        self.needs_error = needs_error
        self.download_error = download_error
        self.needs_calls = []
        self.downloads = []

    def needs_update(self, app_version, skip):
        self.needs_calls.append((app_version, skip))
        if self.needs_error:
            raise self.needs_error
        return self._needs_update

    def download(self, dest_dir):
        self.downloads.append(dest_dir)
        db_dir = os.path.join(dest_dir, "db")
        os.makedirs(db_dir, exist_ok=True)
        with open(os.path.join(db_dir, "trivy.db"), "wb") as fh:
            fh.write(b"new database")
        with open(os.path.join(db_dir, "metadata.json"), "w") as fh:
            fh.write(METADATA)
        if self.download_error:
            raise self.download_error


class FakeDatabase:
    def __init__(self):
        self.calls = []

    def close(self):
        self.calls.append("close")

    def open(self, cache_dir):
        self.calls.append(("open", cache_dir))


class BlockingDatabase(FakeDatabase):
    def __init__(self, closing, release):
        super().__init__()
        self.closing = closing
        self.release = release

    def close(self):
        super().close()
        self.closing.set()
        self.release.wait(5)


def test_update_happy_path(tmp_path):
    client = FakeDBClient(needs_update=True)
    database = FakeDatabase()
    updated = DBWorker(client, database).update("1", str(tmp_path), RequestGate())

    assert updated is True
    assert client.needs_calls == [("1", False)]
    assert (tmp_path / "db" / "metadata.json").read_text() == METADATA
    assert (tmp_path / "db" / "trivy.db").read_bytes() == b"new database"
    assert database.calls == ["close", ("open", str(tmp_path))]


def test_update_not_needed(tmp_path):
    client = FakeDBClient(needs_update=False)
    updated = DBWorker(client).update("1", str(tmp_path), RequestGate())
    assert updated is False
    assert client.downloads == []


def test_update_needs_update_error(tmp_path):
    client = FakeDBClient(needs_error=Exception("fail"))
    with pytest.raises(DBUpdateError, match="failed to check if db needs an update"):
        DBWorker(client).update("1", str(tmp_path), RequestGate())


def test_update_download_error(tmp_path):
    client = FakeDBClient(needs_update=True, download_error=Exception("fail"))
    database = FakeDatabase()
    with pytest.raises(DBUpdateError, match="failed DB hot update"):
        DBWorker(client, database).update("1", str(tmp_path), RequestGate())
    assert database.calls == []
    assert not (tmp_path / "db" / "trivy.db").exists()


def test_gate_blocks_requests_during_update(tmp_path):
    gate = RequestGate()
    closing = threading.Event()
    release = threading.Event()
    entered = threading.Event()
    database = BlockingDatabase(closing, release)
    premature = []

    def requester():
        with gate.request():
            database.calls.append("request")
            entered.set()

    request_thread = threading.Thread(target=requester)

    def watcher():
        closing.wait(5)
        request_thread.start()
        premature.append(entered.wait(0.2))
        release.set()

    watcher_thread = threading.Thread(target=watcher)
    watcher_thread.start()

    worker = DBWorker(FakeDBClient(needs_update=True), database)
    updated = worker.update("1", str(tmp_path), gate)

    watcher_thread.join(5)
    request_thread.join(5)
    assert updated is True
    assert premature == [False]
    assert database.calls == ["close", ("open", str(tmp_path)), "request"]


def test_gate_update_waits_for_running_request(tmp_path):
    gate = RequestGate()
    database = FakeDatabase()
    entered = threading.Event()
    release = threading.Event()

    def requester():
        with gate.request():
            entered.set()
            release.wait(5)
            database.calls.append("request finished")

    request_thread = threading.Thread(target=requester)
    request_thread.start()
    assert entered.wait(5)
    timer = threading.Timer(0.2, release.set)
    timer.start()

    worker = DBWorker(FakeDBClient(needs_update=True), database)
    updated = worker.update("1", str(tmp_path), gate)

    timer.join(5)
    request_thread.join(5)
    assert updated is True
    assert database.calls == ["request finished", "close", ("open", str(tmp_path))]


class FakeCache:
    def __init__(self, missing=(False, [])):
        self.missing = missing

    def put_artifact(self, artifact_id, artifact_info):
        pass

    def put_blob(self, blob_id, blob_info):
        pass

    def missing_blobs(self, artifact_id, blob_ids):
        return self.missing


class FakeScanServer:
    def __init__(self):
        self.requests = []

    def scan(self, request):
        self.requests.append(request)
        return ScanResponse(os=RpcOS(family="alpine", name="3.11"))


def _router(token="", token_header="", cache=None, scan_server=None):
    return Router(
        scan_server or FakeScanServer(),
        CacheServer(cache or FakeCache()),
        RequestGate(),
        token,
        token_header,
    )


JSON = {"Content-Type": "application/json"}


def test_health_check():
    status, _, body = _router().handle("GET", "/healthz", {})
    assert (status, body) == (200, b"ok")


def test_cache_endpoint():
    status, _, body = _router().handle(
        "POST", CACHE_PATH_PREFIX + "MissingBlobs", JSON, b"{}"
    )
    assert status == 200
    assert json.loads(body) == {"missing_artifact": False, "missing_blob_ids": []}


def test_with_token():
    headers = {"Authorization": "token", **JSON}
    status, _, _ = _router("token", "Authorization").handle(
        "POST", CACHE_PATH_PREFIX + "MissingBlobs", headers, b"{}"
    )
    assert status == 200


def test_no_handler():
    status, _, _ = _router().handle("POST", "/sad", JSON, b"{}")
    assert status == 404


def test_invalid_token():
    status, _, body = _router("token", "Authorization").handle(
        "POST", CACHE_PATH_PREFIX + "MissingBlobs", JSON, b"{}"
    )
    assert status == 401
    assert json.loads(body) == {"code": "unauthenticated", "msg": "invalid token"}


def test_scan_endpoint():
    scan_server = FakeScanServer()
    body = json.dumps(to_json(ScanRequest(target="alpine:3.11"))).encode()
    status, _, response = _router(scan_server=scan_server).handle(
        "POST", SCANNER_PATH_PREFIX + "Scan", JSON, body
    )
    assert status == 200
    assert json.loads(response)["os"]["family"] == "alpine"
    assert scan_server.requests[0].target == "alpine:3.11"


def test_unknown_rpc_method_is_bad_route():
    status, _, body = _router().handle("POST", CACHE_PATH_PREFIX + "Nope", JSON, b"{}")
    assert status == 404
    assert json.loads(body)["code"] == "bad_route"


def test_get_on_rpc_path_is_bad_route():
    status, _, body = _router().handle("GET", CACHE_PATH_PREFIX + "MissingBlobs", {})
    assert status == 404
    assert json.loads(body)["code"] == "bad_route"


def test_malformed_body():
    status, _, body = _router().handle(
        "POST", CACHE_PATH_PREFIX + "MissingBlobs", JSON, b"not json"
    )
    assert status == 400
    assert json.loads(body)["code"] == "malformed"


def test_handler_error_is_internal():
    status, _, body = _router().handle(
        "POST", CACHE_PATH_PREFIX + "PutBlob", JSON, b"{}"
    )
    assert status == 500
    assert json.loads(body) == {"code": "internal", "msg": "empty layer info"}


def test_large_response_is_gzipped():
    blob_ids = [f"sha256:{i:064d}" for i in range(40)]
    router = _router(cache=FakeCache(missing=(True, blob_ids)))
    headers = {"Accept-Encoding": "gzip", **JSON}
    status, out_headers, body = router.handle(
        "POST", CACHE_PATH_PREFIX + "MissingBlobs", headers, b"{}"
    )
    assert status == 200
    assert out_headers["Content-Encoding"] == "gzip"
    assert json.loads(gzip.decompress(body))["missing_blob_ids"] == blob_ids