"""
Uploaded audio lifecycle
An upload is copied to a temporary file owned by the request and deleted
exactly once on every exit path
"""
import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import UploadFile

from educator.core.config import settings
from educator.core.errors import CleanupFailure, ValidationFailure
from educator.core.security_utils import generate_secure_token

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class UploadedAudioResource:
    """
    Temporary file backing an inbound audio upload
    """

    def __init__(self, path: Path, original_name: Optional[str], content_type: Optional[str]):
        self.path = path
        self.original_name = original_name or path.name
        self.content_type = content_type
        self.size = 0
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self):
        """
        Delete the temporary file; only the first call does any work

        Deletion errors are logged as CleanupFailure and never raised.
        """
        if self._released:
            return
        self._released = True
        try:
            os.unlink(self.path)
            logger.debug(f"Removed upload {self.path}")
        except FileNotFoundError:
            logger.debug(f"Upload {self.path} already gone")
        except OSError as e:
            failure = CleanupFailure(f"Error cleaning up file {self.path}: {e}")
            logger.error(failure.message)


def validate_audio_upload(upload: Optional[UploadFile]) -> UploadFile:
    """
    Reject missing or non-audio uploads before anything touches disk

    Raises:
        ValidationFailure: No file, or MIME type outside audio/*
    """
    if upload is None or not upload.filename:
        raise ValidationFailure("No audio file provided")
    content_type = upload.content_type or ""
    if not content_type.startswith("audio/"):
        raise ValidationFailure("Only audio files are allowed!")
    return upload


async def _copy_upload(upload: UploadFile, resource: UploadedAudioResource, max_bytes: int):
    with open(resource.path, "wb") as handle:
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            resource.size += len(chunk)
            if resource.size > max_bytes:
                raise ValidationFailure(
                    f"Audio file exceeds the {max_bytes // (1024 * 1024)}MB limit",
                    status_code=413
                )
            await asyncio.to_thread(handle.write, chunk)


@asynccontextmanager
async def staged_upload(
    upload: Optional[UploadFile],
    upload_dir: Optional[Path] = None,
    max_bytes: Optional[int] = None
) -> AsyncIterator[UploadedAudioResource]:
    """
    Copy an upload to a request-owned temporary file

    The file is removed when the block exits, whether it succeeds or raises.

    Args:
        upload: Multipart upload from the request
        upload_dir: Directory for temporary files (UPLOAD_DIR by default)
        max_bytes: Size limit (MAX_UPLOAD_BYTES by default)
    """
    upload = validate_audio_upload(upload)
    directory = Path(upload_dir or settings.UPLOAD_DIR)
    directory.mkdir(parents=True, exist_ok=True)

    suffix = Path(upload.filename).suffix
    resource = UploadedAudioResource(
        path=directory / f"{generate_secure_token(24)}{suffix}",
        original_name=upload.filename,
        content_type=upload.content_type
    )
    try:
        await _copy_upload(upload, resource, max_bytes or settings.MAX_UPLOAD_BYTES)
        logger.info(f"Received audio file: {resource.original_name} ({resource.size} bytes)")
        yield resource
    finally:
        resource.release()
