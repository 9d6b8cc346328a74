"""
Slide media access.

Slides reference their screenshot or recording by a media string: a data URL
captured in the browser, or a path into the local media directory. Exporters
never read media directly; the orchestrator loads each file through a
MediaStore right before it is uploaded.

Environment:
    BUGSNAP_MEDIA_ROOT: Base directory for relative media paths
"""

import os
import base64
import binascii
import logging
import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from integrations.core.errors import ValidationError
from integrations.core.types import Slide

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/png"


@dataclass
class Attachment:
    """A file ready to upload."""
    filename: str
    content: bytes
    mime_type: str = DEFAULT_MIME_TYPE

    @property
    def size_mb(self) -> float:
        return len(self.content) / (1024 * 1024)

    def to_base64(self) -> str:
        return base64.b64encode(self.content).decode("ascii")


class MediaStore(ABC):
    """Reads slide media by slide."""

    @abstractmethod
    def load(self, slide: Slide, filename: str) -> Attachment:
        """
        Load the media of a slide as an Attachment.

        Args:
            slide: The slide whose media to read
            filename: Filename stem; the extension follows the media type

        Raises:
            ValidationError: If the media is missing or unreadable
        """
        pass


def _extension_for(mime_type: str) -> str:
    if mime_type == "image/jpeg":
        return ".jpg"
    return mimetypes.guess_extension(mime_type) or ".bin"


class LocalMediaStore(MediaStore):
    """Resolves data URLs and files under a local media root."""

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or os.getenv("BUGSNAP_MEDIA_ROOT") or ".").expanduser()

    def load(self, slide: Slide, filename: str) -> Attachment:
        media = slide.media.strip()
        if not media:
            raise ValidationError(f"Slide '{slide.name or slide.id}' has no media")

        if media.startswith("data:"):
            content, mime_type = self._decode_data_url(slide, media)
        else:
            content, mime_type = self._read_file(slide, media)

        return Attachment(
            filename=f"{filename}{_extension_for(mime_type)}",
            content=content,
            mime_type=mime_type,
        )

    def _decode_data_url(self, slide: Slide, media: str) -> tuple[bytes, str]:
        header, _, payload = media.partition(",")
        meta = header[len("data:"):].split(";")
        mime_type = meta[0] or DEFAULT_MIME_TYPE

        try:
            if "base64" in meta[1:]:
                return base64.b64decode(payload, validate=False), mime_type
            return payload.encode(), mime_type
        except (binascii.Error, ValueError) as e:
            raise ValidationError(f"Slide '{slide.name or slide.id}' has corrupt media: {e}") from e

    def _read_file(self, slide: Slide, media: str) -> tuple[bytes, str]:
        path = Path(media).expanduser()
        if not path.is_absolute():
            path = self.root / path

        try:
            content = path.read_bytes()
        except OSError as e:
            logger.error(f"[MEDIA] Could not read {path}: {e}")
            raise ValidationError(f"Media for slide '{slide.name or slide.id}' could not be read") from e

        mime_type = mimetypes.guess_type(path.name)[0] or DEFAULT_MIME_TYPE
        return content, mime_type


# Singleton instance
_media_store: Optional[MediaStore] = None


def get_media_store() -> MediaStore:
    """Get or create the shared media store."""
    global _media_store
    if _media_store is None:
        _media_store = LocalMediaStore()
    return _media_store
