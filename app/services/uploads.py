# app/services/uploads.py
import os
import tempfile
from dataclasses import dataclass
from typing import BinaryIO, Optional

from fastapi import UploadFile

from app.core.errors import ValidationError
from app.core.logging import logger

CHUNK_SIZE = 1024 * 1024


@dataclass
class UploadedFile:
    """A multipart file part spooled to a temporary file on disk."""
    filename: str
    path: str
    size: int
    content_type: Optional[str] = None

    @property
    def stem(self) -> str:
        return os.path.splitext(self.filename)[0]

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename)[1].lstrip(".").lower()

    def open(self) -> BinaryIO:
        return open(self.path, "rb")


async def buffer_upload(upload: UploadFile, tmp_dir: str, max_size: int) -> UploadedFile:
    """
    Copy an incoming upload to a temporary file in chunks.
    Raises ValidationError once more than max_size bytes have arrived.
    """
    os.makedirs(tmp_dir, exist_ok=True)
    filename = os.path.basename(upload.filename or "")
    fd, tmp_path = tempfile.mkstemp(dir=tmp_dir, suffix=os.path.splitext(filename)[1])
    size = 0
    try:
        with os.fdopen(fd, "wb") as out:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > max_size:
                    raise ValidationError(f"File too large. Maximum size is {max_size // (1024 * 1024)} MB")
                out.write(chunk)
    except Exception:
        discard_upload(tmp_path)
        raise

    return UploadedFile(filename=filename, path=tmp_path, size=size, content_type=upload.content_type)


def discard_upload(upload) -> None:
    """Best-effort removal of a buffered upload (an UploadedFile or a path)."""
    if upload is None:
        return
    path = upload.path if isinstance(upload, UploadedFile) else upload
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove temporary upload {path}: {str(e)}")
