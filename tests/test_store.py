import json
import sys
from pathlib import Path

import pytest
import requests

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from trail_timelapse.config import OrganizationConfig, Settings  # noqa: E402
from trail_timelapse.errors import StoreOperationError  # noqa: E402
from trail_timelapse.store import (  # noqa: E402
    DRIVE_API_ROOT,
    DRIVE_UPLOAD_ROOT,
    DriveObjectStore,
    sanitize_name,
)


class FakeResponse:
    def __init__(self, payload=None, status_code=200, chunks=None, error=None):
        self.payload = payload
        self.status_code = status_code
        self.chunks = chunks or []
        self.error = error

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error", response=self)

    def json(self):
        if self.payload is None:
            raise ValueError("no json")
        return self.payload

    def iter_content(self, chunk_size=1):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_settings(**organizations):
    orgs = organizations or {"parks": OrganizationConfig("parks", "Parks", "org-folder")}
    return Settings(http_timeout=7, organizations=orgs)


def test_list_objects_follows_pagination_and_parses_metadata():
    session = FakeSession(
        [
            FakeResponse(
                {
                    "files": [
                        {"id": "a", "name": "a.png", "mimeType": "image/png", "createdTime": "2025-01-01T10:00:00Z"}
                    ],
                    "nextPageToken": "page-2",
                }
            ),
            FakeResponse({"files": [{"id": "b", "name": "b.txt", "mimeType": "text/plain"}]}),
        ]
    )
    store = DriveObjectStore(make_settings(), session=session)

    objects = store.list_objects("trail-folder")

    assert [obj.id for obj in objects] == ["a", "b"]
    assert objects[0].created_time.isoformat() == "2025-01-01T10:00:00+00:00"
    assert objects[0].is_image and not objects[1].is_image
    assert objects[1].created_time is None
    first_params = session.calls[0][2]["params"]
    assert first_params["q"] == "'trail-folder' in parents and trashed=false"
    assert first_params["orderBy"] == "createdTime"
    assert "pageToken" not in first_params
    assert session.calls[1][2]["params"]["pageToken"] == "page-2"
    assert session.calls[0][2]["timeout"] == 7


def test_http_errors_become_store_operation_errors():
    session = FakeSession([FakeResponse({}, status_code=500), requests.ConnectionError("offline")])
    store = DriveObjectStore(make_settings(), session=session)

    with pytest.raises(StoreOperationError) as excinfo:
        store.list_objects("trail-folder")
    assert excinfo.value.operation == "list objects"

    with pytest.raises(StoreOperationError) as excinfo:
        store.delete_object("obj-1")
    assert excinfo.value.operation == "delete"
    assert excinfo.value.status_code is None


def test_trail_container_is_found_once_and_cached():
    session = FakeSession([FakeResponse({"files": [{"id": "trail-folder", "name": "river-loop"}]})])
    store = DriveObjectStore(make_settings(), session=session)

    assert store.trail_container("parks", "river-loop") == "trail-folder"
    assert store.trail_container("parks", "river-loop") == "trail-folder"

    assert len(session.calls) == 1
    query = session.calls[0][2]["params"]["q"]
    assert "name='river-loop'" in query
    assert "'org-folder' in parents" in query


def test_trail_container_is_created_when_missing():
    session = FakeSession([FakeResponse({"files": []}), FakeResponse({"id": "new-folder"})])
    store = DriveObjectStore(make_settings(), session=session)

    assert store.trail_container("parks", "ridge/top") == "new-folder"

    method, url, kwargs = session.calls[1]
    assert (method, url) == ("POST", f"{DRIVE_API_ROOT}/files")
    assert kwargs["json"]["name"] == "ridge_top"
    assert kwargs["json"]["parents"] == ["org-folder"]


def test_unknown_and_inactive_organizations_are_rejected():
    settings = make_settings(
        retired=OrganizationConfig("retired", "Retired", "old-folder", active=False),
    )
    store = DriveObjectStore(settings, session=FakeSession([]))

    with pytest.raises(StoreOperationError, match="not configured"):
        store.trail_container("parks", "loop")
    with pytest.raises(StoreOperationError, match="not active"):
        store.list_trails("retired")


def test_list_trails_returns_sorted_folder_names():
    session = FakeSession([FakeResponse({"files": [{"id": "2", "name": "south"}, {"id": "1", "name": "north"}]})])
    store = DriveObjectStore(make_settings(), session=session)

    assert store.list_trails("parks") == ["north", "south"]


def test_upload_sends_multipart_metadata_and_content(tmp_path):
    local = tmp_path / "out.gif"
    local.write_bytes(b"GIF89a")
    session = FakeSession(
        [FakeResponse({"id": "up-1", "name": "timelapse_cache_x.gif", "mimeType": "image/gif"})]
    )
    store = DriveObjectStore(make_settings(), session=session)

    uploaded = store.upload_object("trail-folder", local, "timelapse_cache_x.gif", "image/gif")

    assert uploaded.id == "up-1"
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", f"{DRIVE_UPLOAD_ROOT}/files")
    assert kwargs["params"]["uploadType"] == "multipart"
    metadata = json.loads(kwargs["files"]["metadata"][1])
    assert metadata == {"name": "timelapse_cache_x.gif", "parents": ["trail-folder"]}
    assert kwargs["files"]["file"][0] == "timelapse_cache_x.gif"
    assert kwargs["files"]["file"][2] == "image/gif"


def test_download_streams_body_to_destination(tmp_path):
    session = FakeSession([FakeResponse(chunks=[b"abc", b"", b"def"])])
    store = DriveObjectStore(make_settings(), session=session)

    path = store.download_object("obj-1", tmp_path / "frame.png")

    assert path.read_bytes() == b"abcdef"
    assert session.calls[0][2]["params"] == {"alt": "media"}
    assert session.calls[0][2]["stream"] is True


def test_interrupted_download_leaves_no_partial_file(tmp_path):
    session = FakeSession([FakeResponse(chunks=[b"abc"], error=requests.ConnectionError("reset"))])
    store = DriveObjectStore(make_settings(), session=session)
    destination = tmp_path / "frame.png"

    with pytest.raises(StoreOperationError):
        store.download_object("obj-1", destination)
    assert not destination.exists()


def test_sanitize_name_replaces_unsafe_characters():
    assert sanitize_name("River Loop #2/East") == "River Loop _2_East"


def test_delete_of_missing_object_reports_not_found():
    session = FakeSession([FakeResponse({}, status_code=404), FakeResponse({}, status_code=403)])
    store = DriveObjectStore(make_settings(), session=session)

    with pytest.raises(StoreOperationError) as excinfo:
        store.delete_object("gone")
    assert excinfo.value.not_found

    with pytest.raises(StoreOperationError) as excinfo:
        store.delete_object("forbidden")
    assert excinfo.value.status_code == 403
    assert not excinfo.value.not_found
