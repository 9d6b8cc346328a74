"""
Google Drive client.

Backup storage for screenshots a destination refused to keep (ClickUp
workspace storage full). A file is uploaded with the user's drive.file
OAuth token, shared as "anyone with the link can view" so the link opens
from inside the tracker, and referenced by its webViewLink.

Calls go through the same ProxyTransport as the platform APIs.
"""

import json
import logging
from dataclasses import dataclass

from .errors import AuthenticationError, PlatformAPIError
from .transport import ProxyTransport, RequestSpec

logger = logging.getLogger(__name__)

DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"

_DRIVE_TIMEOUT_SECONDS = 60.0
PLATFORM = "google_drive"


@dataclass
class DriveFile:
    id: str
    web_view_link: str


class GoogleDriveClient:
    """
    Uploads backup files to the user's Drive.

    Usage:
        drive = GoogleDriveClient(transport)
        file = await drive.upload(token, "BugSnap_login.png", content, "image/png")
        file.web_view_link
    """

    def __init__(self, transport: ProxyTransport):
        self.transport = transport

    def _headers(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    async def upload(self, token: str, filename: str, content: bytes, mime_type: str) -> DriveFile:
        """
        Upload one file and share it by link.

        Raises:
            AuthenticationError: The token was rejected
            PlatformAPIError: Drive refused the upload
        """
        metadata = json.dumps({"name": filename, "mimeType": mime_type}).encode()

        response = await self.transport.send(
            DRIVE_UPLOAD_URL,
            RequestSpec(
                method="POST",
                headers=self._headers(token),
                params={"uploadType": "multipart", "fields": "id,webViewLink"},
                files=[
                    ("metadata", (None, metadata, "application/json")),
                    ("file", (filename, content, mime_type)),
                ],
                timeout=_DRIVE_TIMEOUT_SECONDS,
            ),
        )

        if response.status_code in (401, 403) and "accessNotConfigured" not in response.text:
            raise AuthenticationError(
                f"Google Drive rejected the token ({response.status_code})",
                platform=PLATFORM,
            )
        if not response.is_success:
            if "accessNotConfigured" in response.text:
                message = "Google Drive API is not enabled for this project. Enable it in Google Cloud Console."
            else:
                message = f"Drive upload error ({response.status_code}): {response.text[:300]}"
            raise PlatformAPIError(message, status_code=response.status_code, platform=PLATFORM)

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict) or not data.get("id") or not data.get("webViewLink"):
            raise PlatformAPIError("Drive upload returned no file link", status_code=response.status_code, platform=PLATFORM)

        drive_file = DriveFile(id=data["id"], web_view_link=data["webViewLink"])
        logger.info(f"[DRIVE] Uploaded {filename} as {drive_file.id}")

        await self._share_by_link(token, drive_file.id)
        return drive_file

    async def _share_by_link(self, token: str, file_id: str) -> None:
        """Grant reader access to anyone with the link. A failure only makes the link private."""
        response = await self.transport.send(
            f"{DRIVE_FILES_URL}/{file_id}/permissions",
            RequestSpec(
                method="POST",
                headers=self._headers(token),
                json={"role": "reader", "type": "anyone"},
                timeout=_DRIVE_TIMEOUT_SECONDS,
            ),
        )
        if not response.is_success:
            logger.warning(f"[DRIVE] Could not share {file_id} by link ({response.status_code}): {response.text[:200]}")
