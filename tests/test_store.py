import json

import pytest
import requests

from broadcast.store import ConfigStoreError, JsonFileConfigStore, SupabaseConfigStore

from conftest import make_record


class FakeResponse:
    def __init__(self, payload=None, status=200, body=None):
        self.payload = payload
        self.status_code = status
        self.body = body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self):
        if self.body is not None:
            return json.loads(self.body)
        return self.payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.headers = {}
        self.response = response
        self.error = error
        self.calls = []

    def _respond(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    def get(self, url, **kwargs):
        return self._respond("GET", url, **kwargs)

    def patch(self, url, **kwargs):
        return self._respond("PATCH", url, **kwargs)


def supabase(session):
    return SupabaseConfigStore("https://proj.supabase.co/", "service-key", session=session, timeout=3)


def test_supabase_fetch_reads_first_row():
    session = FakeSession(FakeResponse([make_record("ab")]))
    cfg = supabase(session).fetch_config()

    assert cfg.is_active
    assert [e.id for e in cfg.playlist] == ["A", "B"]
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("GET", "https://proj.supabase.co/rest/v1/stream_config")
    assert kwargs["params"] == {"select": "*", "limit": "1"}
    assert kwargs["timeout"] == 3
    assert session.headers["apikey"] == "service-key"
    assert session.headers["Authorization"] == "Bearer service-key"


def test_supabase_empty_table_means_no_config():
    assert supabase(FakeSession(FakeResponse([]))).fetch_config() is None


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(error=requests.ConnectionError("connection refused")),
        FakeSession(FakeResponse(status=503)),
        FakeSession(FakeResponse(body="<html>")),
        FakeSession(FakeResponse({"message": "nope"})),
    ],
    ids=["unreachable", "http-error", "not-json", "not-a-list"],
)
def test_supabase_fetch_failures_raise_store_error(session):
    with pytest.raises(ConfigStoreError):
        supabase(session).fetch_config()


def test_supabase_patch_playlist():
    session = FakeSession(FakeResponse(None, status=204))
    store = supabase(session)

    assert store.patch_playlist("cfg-1", [{"filename": "a.mp4"}]) is True
    method, _, kwargs = session.calls[0]
    assert method == "PATCH"
    assert kwargs["params"] == {"id": "eq.cfg-1"}
    assert kwargs["json"] == {"playlist": [{"filename": "a.mp4"}]}
    assert kwargs["headers"] == {"Prefer": "return=minimal"}


def test_supabase_patch_failures_return_false():
    assert supabase(FakeSession(error=requests.Timeout("slow"))).patch_playlist("cfg-1", []) is False
    assert supabase(FakeSession(FakeResponse())).patch_playlist(None, []) is False


def test_supabase_requires_credentials():
    with pytest.raises(ValueError):
        SupabaseConfigStore("", "key")


def test_json_store_missing_file_means_no_config(tmp_path):
    assert JsonFileConfigStore(tmp_path / "stream_config.json").fetch_config() is None


def test_json_store_reads_record(tmp_path):
    path = tmp_path / "stream_config.json"
    path.write_text(json.dumps(make_record("abc", is_active=False)), encoding="utf-8")

    cfg = JsonFileConfigStore(path).fetch_config()
    assert cfg.id == "cfg-1"
    assert cfg.is_active is False
    assert len(cfg.playlist) == 3


@pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
def test_json_store_bad_content_raises(tmp_path, content):
    path = tmp_path / "stream_config.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigStoreError):
        JsonFileConfigStore(path).fetch_config()


def test_json_store_patch_rewrites_playlist_only(tmp_path):
    path = tmp_path / "stream_config.json"
    path.write_text(json.dumps(make_record("abc")), encoding="utf-8")
    store = JsonFileConfigStore(path)

    assert store.patch_playlist("cfg-1", [{"id": "A", "filename": "a.mp4"}]) is True
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["playlist"] == [{"id": "A", "filename": "a.mp4"}]
    assert data["stream_key"] == make_record()["stream_key"]

    assert store.patch_playlist("other-id", []) is False
    assert JsonFileConfigStore(tmp_path / "absent.json").patch_playlist("cfg-1", []) is False
