"""
Drive service: the only code that talks to Google Drive and the OAuth token endpoint.

DriveClient wraps one user's delegated token pair and exposes the four
primitives the gateway needs: create folder, upload file into folder, stream
file by id, delete by id. Every call uses timeouts from config. Expired
access tokens are refreshed before the call (or once after a 401) and each
refresh is queued on client.refreshes for the caller to persist.
"""
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC
from typing import Any, Iterator

import requests

from config import (
    DOWNLOAD_CHUNK_SIZE,
    DRIVE_DOWNLOAD_TIMEOUT,
    DRIVE_REQUEST_TIMEOUT,
    DRIVE_UPLOAD_TIMEOUT,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_TOKEN_REFRESH_LEEWAY,
    GOOGLE_TOKEN_URL,
    OAUTH_REQUEST_TIMEOUT,
)
from errors import UpstreamError
from models import as_utc

logger = logging.getLogger(__name__)

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"

FOLDER_MIME = "application/vnd.google-apps.folder"


class DriveError(UpstreamError):
    """Raised when a Drive or token call fails; carries the HTTP status if any."""

    def __init__(self, msg: str, status: int | None = None):
        self.status = status
        super().__init__(msg)


@dataclass
class TokenRefresh:
    """A fresh access token issued by Google. refresh_token is set only on rotation."""
    access_token: str
    refresh_token: str | None
    expires_at: datetime


def refresh_access_token(refresh_token: str) -> TokenRefresh:
    """Exchange a refresh token for a new access token. Raises DriveError if Google refuses."""
    try:
        resp = requests.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=OAUTH_REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.warning("Google token refresh request failed: %s", e)
        raise DriveError("Failed to refresh Google authorization") from e
    try:
        data = resp.json()
    except ValueError:
        data = {}
    if "error" in data or not data.get("access_token"):
        logger.warning(
            "Google token refresh rejected (%s): %s",
            resp.status_code,
            data.get("error_description", data.get("error")),
        )
        raise DriveError(
            "Google authorization expired; please log in again",
            status=resp.status_code,
        )
    return TokenRefresh(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token") or None,
        expires_at=datetime.now(UTC) + timedelta(seconds=data.get("expires_in", 3600)),
    )


class DriveClient:
    """Drive v3 client authorized as one user."""

    def __init__(
        self,
        access_token: str | None,
        refresh_token: str | None = None,
        expires_at: datetime | None = None,
    ):
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._expires_at = as_utc(expires_at)
        self.refreshes: list[TokenRefresh] = []

    # --- token handling ---

    def _expiring(self) -> bool:
        if not self._access_token:
            return True
        if self._expires_at is None:
            return False
        leeway = timedelta(seconds=GOOGLE_TOKEN_REFRESH_LEEWAY)
        return datetime.now(UTC) >= self._expires_at - leeway

    def _refresh(self) -> None:
        if not self._refresh_token:
            raise DriveError("Google authorization expired; please log in again", status=401)
        event = refresh_access_token(self._refresh_token)
        self._access_token = event.access_token
        self._expires_at = event.expires_at
        if event.refresh_token:
            self._refresh_token = event.refresh_token
        self.refreshes.append(event)

    # --- HTTP plumbing ---

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        headers = {"Authorization": f"Bearer {self._access_token}"}
        if "headers" in kwargs:
            headers.update(kwargs.pop("headers"))
        kwargs.setdefault("timeout", DRIVE_REQUEST_TIMEOUT)
        try:
            return requests.request(method, url, headers=headers, **kwargs)
        except requests.RequestException as e:
            logger.warning("Drive %s %s failed: %s", method, url, e)
            raise DriveError("Google Drive request failed") from e

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """
        Call Drive with the current token. Refreshes first if the token is
        about to expire; on 401 forces one refresh and retries. Raises
        DriveError on any non-2xx response.
        """
        if self._expiring() and self._refresh_token:
            self._refresh()
        resp = self._send(method, url, **dict(kwargs))
        if resp.status_code == 401 and self._refresh_token:
            resp.close()
            self._refresh()
            body = kwargs.get("data")
            if hasattr(body, "seek"):
                body.seek(0)
            resp = self._send(method, url, **dict(kwargs))
        if not resp.ok:
            detail = "" if kwargs.get("stream") else resp.text[:500]
            resp.close()
            logger.warning("Drive %s %s returned %s: %s", method, url, resp.status_code, detail)
            raise DriveError(
                f"Google Drive returned {resp.status_code}",
                status=resp.status_code,
            )
        return resp

    # --- primitives ---

    def create_folder(self, name: str, parent_id: str | None = None) -> str:
        """Create a folder (in My Drive root unless parent_id given); returns its id."""
        metadata: dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME}
        if parent_id:
            metadata["parents"] = [parent_id]
        resp = self._request(
            "POST",
            DRIVE_FILES_URL,
            json=metadata,
            params={"fields": "id"},
        )
        return _json_body(resp)["id"]

    def upload_file(
        self,
        path: str,
        name: str,
        mime_type: str,
        folder_id: str | None = None,
    ) -> dict:
        """
        Upload a local file with Drive's resumable protocol: one metadata
        request opens a session, one PUT streams the body. Returns {id, name}.
        """
        metadata: dict[str, Any] = {"name": name}
        if folder_id:
            metadata["parents"] = [folder_id]
        session = self._request(
            "POST",
            DRIVE_UPLOAD_URL,
            json=metadata,
            params={"uploadType": "resumable", "fields": "id, name"},
            headers={
                "X-Upload-Content-Type": mime_type,
                "X-Upload-Content-Length": str(os.path.getsize(path)),
            },
        )
        session_url = session.headers.get("Location")
        if not session_url:
            raise DriveError("Google Drive did not open an upload session")

        with open(path, "rb") as f:
            resp = self._request(
                "PUT",
                session_url,
                data=f,
                headers={"Content-Type": mime_type},
                timeout=DRIVE_UPLOAD_TIMEOUT,
            )
        data = _json_body(resp)
        return {"id": data["id"], "name": data.get("name") or name}

    def open_stream(self, file_id: str) -> Iterator[bytes]:
        """
        Start downloading file content. The request is made now (so auth and
        not-found errors raise here); bytes are pulled lazily by the caller.
        """
        resp = self._request(
            "GET",
            f"{DRIVE_FILES_URL}/{file_id}",
            params={"alt": "media"},
            stream=True,
            timeout=DRIVE_DOWNLOAD_TIMEOUT,
        )
        return _iter_body(resp)

    def delete(self, file_id: str) -> None:
        """Permanently delete a file or folder (folders take their children along)."""
        resp = self._request("DELETE", f"{DRIVE_FILES_URL}/{file_id}")
        resp.close()


def _iter_body(resp: requests.Response) -> Iterator[bytes]:
    try:
        for chunk in resp.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
            if chunk:
                yield chunk
    finally:
        resp.close()


def _json_body(resp: requests.Response) -> dict:
    """Decode a Drive metadata response that must carry at least an id."""
    try:
        data = resp.json()
    except ValueError:
        data = None
    if not isinstance(data, dict) or not data.get("id"):
        logger.warning("Drive returned a response without a file id: %s", resp.status_code)
        raise DriveError("Google Drive returned an unexpected response", status=resp.status_code)
    return data
