"""
Object store abstraction and a Google Drive v3 REST implementation.

The timelapse core only sees containers (trail folders) holding objects
keyed by opaque ids. Token acquisition is handled elsewhere; the Drive client
is given a ready bearer token.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from pathlib import Path
from typing import Dict, List, Optional

import requests

from .config import Settings
from .errors import StoreOperationError
from .models import StoreObject, parse_iso_datetime

LOGGER = logging.getLogger(__name__)

DRIVE_API_ROOT = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_ROOT = "https://www.googleapis.com/upload/drive/v3"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
OBJECT_FIELDS = "id, name, mimeType, createdTime"

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9\-_ ]")


def sanitize_name(name: str) -> str:
    """Replace characters that are unsafe in folder and file names with ``_``."""
    return _UNSAFE_NAME_CHARS.sub("_", name)


class ObjectStore:
    """Container-based remote object store used by the timelapse core."""

    def trail_container(self, organization_id: str, trail_id: str) -> str:
        raise NotImplementedError

    def list_trails(self, organization_id: str) -> List[str]:
        raise NotImplementedError

    def list_objects(self, container_id: str) -> List[StoreObject]:
        raise NotImplementedError

    def download_object(self, object_id: str, destination: Path) -> Path:
        raise NotImplementedError

    def upload_object(
        self,
        container_id: str,
        local_path: Path,
        name: str,
        mime_type: str,
    ) -> StoreObject:
        raise NotImplementedError

    def delete_object(self, object_id: str) -> None:
        raise NotImplementedError


def _parse_object(data: dict) -> StoreObject:
    created_raw = data.get("createdTime")
    return StoreObject(
        id=str(data.get("id", "")),
        name=str(data.get("name", "")),
        mime_type=str(data.get("mimeType", "")),
        created_time=parse_iso_datetime(created_raw) if created_raw else None,
    )


def _escape_query_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveObjectStore(ObjectStore):
    """Drive-backed store laid out as ``root/{organization}/{trail}/{objects}``."""

    def __init__(
        self,
        settings: Settings,
        *,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.settings = settings
        self.logger = logger or LOGGER
        self.http_timeout = settings.http_timeout
        self.session = session or self._build_session(settings.drive_access_token)
        self._trail_folders: Dict[str, str] = {}
        self._folders_lock = threading.Lock()

    @staticmethod
    def _build_session(token: Optional[str]) -> requests.Session:
        session = requests.Session()
        headers = {"Accept": "application/json", "User-Agent": "trail-timelapse"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        session.headers.update(headers)
        return session

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _request(self, operation: str, method: str, url: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self.http_timeout)
        try:
            response = self.session.request(method, url, **kwargs)
            response.raise_for_status()
        except requests.RequestException as exc:
            status_code = getattr(exc.response, "status_code", None)
            raise StoreOperationError(operation, str(exc), status_code) from exc
        return response

    def _json(self, operation: str, response: requests.Response) -> dict:
        try:
            payload = response.json()
        except ValueError as exc:
            raise StoreOperationError(operation, "response was not valid JSON") from exc
        if not isinstance(payload, dict):
            raise StoreOperationError(operation, "unexpected response payload")
        return payload

    def _query(self, operation: str, query: str, fields: str) -> List[dict]:
        files: List[dict] = []
        page_token: Optional[str] = None
        while True:
            params = {
                "q": query,
                "fields": f"nextPageToken, files({fields})",
                "orderBy": "createdTime",
                "pageSize": 1000,
            }
            if page_token:
                params["pageToken"] = page_token
            payload = self._json(
                operation,
                self._request(operation, "GET", f"{DRIVE_API_ROOT}/files", params=params),
            )
            files.extend(payload.get("files", []))
            page_token = payload.get("nextPageToken")
            if not page_token:
                return files

    def _organization_folder(self, organization_id: str) -> str:
        organization = self.settings.organization(organization_id)
        if organization is None:
            raise StoreOperationError(
                "resolve organization",
                f"organization '{organization_id}' is not configured",
            )
        if not organization.active:
            raise StoreOperationError(
                "resolve organization",
                f"organization '{organization_id}' is not active",
            )
        return organization.folder_id

    # ------------------------------------------------------------------
    # ObjectStore API
    # ------------------------------------------------------------------

    def trail_container(self, organization_id: str, trail_id: str) -> str:
        safe_trail = sanitize_name(trail_id)
        cache_key = f"{organization_id}/{safe_trail}"
        with self._folders_lock:
            cached = self._trail_folders.get(cache_key)
        if cached is not None:
            return cached

        org_folder = self._organization_folder(organization_id)
        query = (
            f"name='{_escape_query_value(safe_trail)}' and mimeType='{FOLDER_MIME_TYPE}' "
            f"and '{org_folder}' in parents and trashed=false"
        )
        matches = self._query("find trail folder", query, "id, name")
        if matches:
            folder_id = str(matches[0]["id"])
            self.logger.debug("Found folder for trail '%s' in '%s': %s", trail_id, organization_id, folder_id)
        else:
            response = self._request(
                "create trail folder",
                "POST",
                f"{DRIVE_API_ROOT}/files",
                params={"fields": "id"},
                json={"name": safe_trail, "mimeType": FOLDER_MIME_TYPE, "parents": [org_folder]},
            )
            folder_id = str(self._json("create trail folder", response)["id"])
            self.logger.info("Created folder for trail '%s' in '%s': %s", trail_id, organization_id, folder_id)

        with self._folders_lock:
            self._trail_folders[cache_key] = folder_id
        return folder_id

    def list_trails(self, organization_id: str) -> List[str]:
        org_folder = self._organization_folder(organization_id)
        query = f"mimeType='{FOLDER_MIME_TYPE}' and '{org_folder}' in parents and trashed=false"
        folders = self._query("list trails", query, "id, name")
        return sorted(str(folder.get("name", "")) for folder in folders if folder.get("name"))

    def list_objects(self, container_id: str) -> List[StoreObject]:
        query = f"'{container_id}' in parents and trashed=false"
        return [_parse_object(item) for item in self._query("list objects", query, OBJECT_FIELDS)]

    def download_object(self, object_id: str, destination: Path) -> Path:
        destination = Path(destination)
        url = f"{DRIVE_API_ROOT}/files/{object_id}"
        try:
            with self._request("download", "GET", url, params={"alt": "media"}, stream=True) as response:
                with destination.open("wb") as handle:
                    for chunk in response.iter_content(chunk_size=1024 * 1024):
                        if chunk:
                            handle.write(chunk)
        except requests.RequestException as exc:
            destination.unlink(missing_ok=True)
            raise StoreOperationError("download", str(exc)) from exc
        except OSError as exc:
            destination.unlink(missing_ok=True)
            raise StoreOperationError("download", f"cannot write {destination}: {exc}") from exc
        except StoreOperationError:
            destination.unlink(missing_ok=True)
            raise
        self.logger.debug("Downloaded object %s to %s", object_id, destination)
        return destination

    def upload_object(
        self,
        container_id: str,
        local_path: Path,
        name: str,
        mime_type: str,
    ) -> StoreObject:
        metadata = {"name": name, "parents": [container_id]}
        try:
            with Path(local_path).open("rb") as handle:
                response = self._request(
                    "upload",
                    "POST",
                    f"{DRIVE_UPLOAD_ROOT}/files",
                    params={"uploadType": "multipart", "fields": OBJECT_FIELDS.replace(" ", "")},
                    files={
                        "metadata": (None, json.dumps(metadata), "application/json; charset=UTF-8"),
                        "file": (name, handle, mime_type),
                    },
                )
        except OSError as exc:
            raise StoreOperationError("upload", f"cannot read {local_path}: {exc}") from exc
        uploaded = _parse_object(self._json("upload", response))
        self.logger.info("Uploaded '%s' to container %s as %s", name, container_id, uploaded.id)
        return uploaded

    def delete_object(self, object_id: str) -> None:
        self._request("delete", "DELETE", f"{DRIVE_API_ROOT}/files/{object_id}")
        self.logger.debug("Deleted object %s", object_id)

    def clear_cache(self) -> None:
        with self._folders_lock:
            self._trail_folders.clear()


__all__ = [
    "DriveObjectStore",
    "ObjectStore",
    "sanitize_name",
]
