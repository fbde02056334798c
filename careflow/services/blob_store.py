import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from careflow.config import settings
from careflow.errors import NotFound, UpstreamUnavailable, ValidationError

logger = logging.getLogger(__name__)

FILES_ROUTE = "/files"


@dataclass
class FileUpload:
    data: bytes
    file_name: str | None
    mime_type: str | None


def allowed_mime_types() -> set[str]:
    return {item.strip() for item in settings.allowed_upload_types.split(",") if item.strip()}


def validate_upload(upload: FileUpload) -> None:
    if not upload.data:
        raise ValidationError(f"File '{upload.file_name or 'upload'}' is empty")
    max_size_bytes = settings.max_upload_size_mb * 1024 * 1024
    if len(upload.data) > max_size_bytes:
        raise ValidationError(f"File too large. Max size is {settings.max_upload_size_mb}MB")
    if upload.mime_type not in allowed_mime_types():
        raise ValidationError(f"Unsupported file type '{upload.mime_type}'")


class BlobStore(Protocol):
    def store(self, data: bytes, file_name: str, mime_type: str) -> str: ...

    def load(self, url: str) -> bytes: ...


class LocalBlobStore:
    """Keeps uploads on local disk and hands out URLs served under ``/files``."""

    def __init__(self, root: str | None = None, base_url: str | None = None):
        self.root = Path(root or settings.upload_dir)
        self.base_url = (base_url or settings.api_base_url).rstrip("/")

    def store(self, data: bytes, file_name: str, mime_type: str) -> str:
        suffix = os.path.splitext(file_name or "")[1].lower()
        key = f"{uuid4().hex}{suffix}"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            (self.root / key).write_bytes(data)
        except OSError as exc:
            logger.error("Failed to store blob %s: %s", key, exc)
            raise UpstreamUnavailable("File storage is unavailable") from exc
        return f"{self.base_url}{FILES_ROUTE}/{key}"

    def load(self, url: str) -> bytes:
        key = url.rsplit("/", 1)[-1]
        path = self.root / key
        if not path.is_file():
            raise NotFound(f"Stored file {key} not found")
        try:
            return path.read_bytes()
        except OSError as exc:
            raise UpstreamUnavailable("File storage is unavailable") from exc


def get_blob_store() -> BlobStore:
    return LocalBlobStore()
