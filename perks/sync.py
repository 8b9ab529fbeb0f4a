"""
Google Drive backup for the perk snapshot.

Only push/pull of a single JSON document is needed here. Getting an access
token is the caller's business; DriveClient just sends it as a bearer token.
"""
from __future__ import annotations
import json
import logging
import os
import uuid
from typing import Optional

import requests

from perks.storage import FILE_ID_KEY, JsonFileStore


logger = logging.getLogger(__name__)

DRIVE_API = "https://www.googleapis.com/drive/v3/files"
DRIVE_UPLOAD_API = "https://www.googleapis.com/upload/drive/v3/files"
DRIVE_FILE_NAME = "credit-card-perks-data.json"
DRIVE_TOKEN = os.environ.get("PERKS_DRIVE_TOKEN")


class SyncError(Exception):
    pass


class DriveClient:
    def __init__(self, access_token: str, session: Optional[requests.Session] = None, timeout: float = 30):
        if not access_token:
            raise ValueError("An access token is required")
        self.access_token = access_token
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {self.access_token}"
        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            raise SyncError(f"Drive request failed ({status})") from e
        except requests.RequestException as e:
            raise SyncError(f"Drive request failed: {e}") from e
        return response

    @staticmethod
    def _json(response: requests.Response) -> dict:
        try:
            return response.json()
        except ValueError as e:
            raise SyncError("Drive returned invalid JSON") from e

    def find_by_name(self, name: str) -> Optional[str]:
        escaped = name.replace("\\", "\\\\").replace("'", "\\'")
        response = self._request("GET", DRIVE_API, params={
            "q": f"name='{escaped}' and trashed=false",
            "fields": "files(id, name)",
            "spaces": "drive",
        })
        files = self._json(response).get("files") or []
        return files[0]["id"] if files else None

    def create(self, name: str, document: dict) -> str:
        boundary = uuid.uuid4().hex
        metadata = {"name": name, "mimeType": "application/json"}
        body = (
            f"--{boundary}\r\n"
            "Content-Type: application/json; charset=UTF-8\r\n\r\n"
            f"{json.dumps(metadata)}\r\n"
            f"--{boundary}\r\n"
            "Content-Type: application/json\r\n\r\n"
            f"{json.dumps(document, indent=2)}\r\n"
            f"--{boundary}--"
        )
        response = self._request(
            "POST", DRIVE_UPLOAD_API,
            params={"uploadType": "multipart"},
            headers={"Content-Type": f"multipart/related; boundary={boundary}"},
            data=body.encode("utf-8"),
        )
        file_id = self._json(response).get("id")
        if not file_id:
            raise SyncError("Drive did not return a file id")
        return file_id

    def update(self, file_id: str, document: dict) -> None:
        self._request(
            "PATCH", f"{DRIVE_UPLOAD_API}/{file_id}",
            params={"uploadType": "media"},
            headers={"Content-Type": "application/json"},
            data=json.dumps(document, indent=2).encode("utf-8"),
        )

    def read(self, file_id: str) -> dict:
        response = self._request("GET", f"{DRIVE_API}/{file_id}", params={"alt": "media"})
        return self._json(response)


class DriveSync:
    """Push and pull snapshots to one named file, remembering its id locally."""

    def __init__(self, client: DriveClient, store: JsonFileStore, file_name: str = DRIVE_FILE_NAME):
        self.client = client
        self.store = store
        self.file_name = file_name

    @property
    def file_id(self) -> Optional[str]:
        return self.store.load(FILE_ID_KEY)

    def _remember(self, file_id: str):
        self.store.save(FILE_ID_KEY, file_id)

    def forget(self):
        self.store.remove(FILE_ID_KEY)

    def push(self, snapshot: dict) -> str:
        file_id = self.file_id or self.client.find_by_name(self.file_name)
        if file_id:
            self.client.update(file_id, snapshot)
        else:
            file_id = self.client.create(self.file_name, snapshot)
            logger.info("Created backup file %s on Drive", file_id)
        self._remember(file_id)
        return file_id

    def pull(self) -> Optional[dict]:
        file_id = self.file_id
        if not file_id:
            file_id = self.client.find_by_name(self.file_name)
            if not file_id:
                return None
            self._remember(file_id)
        return self.client.read(file_id)
