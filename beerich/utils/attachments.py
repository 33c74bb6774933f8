"""
Multipart upload handling.

An upload handler is an async callable ``(name, value) -> value | None``. Returning
None declines the field so the next handler in a composed chain gets a try.
"""
import logging
import os
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from fastapi import Request
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import FormData, UploadFile

from beerich.core.config import settings

logger = logging.getLogger(__name__)

UploadHandler = Callable[[str, Any], Awaitable[Optional[Any]]]

ATTACHMENT_FIELD = "attachment"
_CHUNK_SIZE = 64 * 1024
_MAX_RENAME_ATTEMPTS = 1000


class StoredFile(str):
    """Filename of an upload written to the attachments directory by this request."""


class AttachmentTooLarge(Exception):
    def __init__(self, filename: str, max_bytes: int):
        self.filename = filename
        self.max_bytes = max_bytes
        super().__init__(f"Attachment {filename} exceeds {max_bytes} bytes")


def attachments_dir() -> Path:
    return Path(settings.ATTACHMENTS_DIR)


def _safe_filename(filename: str) -> str:
    # Browsers may send a full client path; only the last component is kept.
    name = Path(filename.replace("\\", "/")).name
    if name in ("", ".", ".."):
        return ""
    return name


def _open_exclusive(directory: Path, filename: str):
    """Open a new file for writing, renaming on collision instead of overwriting."""
    stem, suffix = os.path.splitext(filename)
    candidate = filename
    for attempt in range(1, _MAX_RENAME_ATTEMPTS + 1):
        path = directory / candidate
        try:
            return path, open(path, "xb")
        except FileExistsError:
            candidate = f"{stem}-{attempt}{suffix}"
    raise FileExistsError(f"No free name for {filename} in {directory}")


def _persist(source, directory: Path, filename: str, avoid_file_conflicts: bool, max_bytes: int) -> str:
    directory.mkdir(parents=True, exist_ok=True)
    if avoid_file_conflicts:
        path, target = _open_exclusive(directory, filename)
    else:
        path = directory / filename
        target = open(path, "wb")

    written = 0
    with target:
        try:
            while True:
                chunk = source.read(_CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise AttachmentTooLarge(filename, max_bytes)
                target.write(chunk)
        except Exception:
            target.close()
            path.unlink(missing_ok=True)
            raise
    return path.name


def create_file_upload_handler(
    directory: Optional[str] = None,
    avoid_file_conflicts: bool = True,
    max_bytes: Optional[int] = None,
) -> UploadHandler:
    """
    Handler that writes uploaded files into ``directory`` and yields the stored
    filename. Directory and size limit default to the current settings.
    """

    async def handler(name: str, value: Any) -> Optional[StoredFile]:
        if not isinstance(value, UploadFile) or not value.filename:
            return None
        filename = _safe_filename(value.filename)
        if not filename:
            return None
        target_dir = Path(directory) if directory else attachments_dir()
        limit = max_bytes if max_bytes is not None else settings.ATTACHMENT_MAX_BYTES
        await value.seek(0)
        stored = await run_in_threadpool(_persist, value.file, target_dir, filename, avoid_file_conflicts, limit)
        logger.info(f"Stored upload field {name!r} as {stored}")
        return StoredFile(stored)

    return handler


def create_memory_upload_handler() -> UploadHandler:
    """Fallback handler keeping the field value as parsed (text or spooled upload)."""

    async def handler(name: str, value: Any) -> Optional[Any]:
        return value

    return handler


def compose_upload_handlers(*handlers: UploadHandler) -> UploadHandler:
    async def composed(name: str, value: Any) -> Optional[Any]:
        for handler in handlers:
            result = await handler(name, value)
            if result is not None:
                return result
        return None

    return composed


_file_upload_handler = create_file_upload_handler()


async def attachments_upload_handler(name: str, value: Any) -> Optional[StoredFile]:
    if name != ATTACHMENT_FIELD or not isinstance(value, UploadFile) or not value.filename:
        return None
    return await _file_upload_handler(name, value)


upload_handler = compose_upload_handlers(attachments_upload_handler, create_memory_upload_handler())


async def parse_multipart_form_data(request: Request, handler: UploadHandler) -> FormData:
    """Run every part of a multipart body through ``handler``; declined parts are dropped."""
    raw = await request.form()
    items = []
    try:
        for name, value in raw.multi_items():
            result = await handler(name, value)
            if result is not None:
                items.append((name, result))
    except Exception:
        # Files stored from earlier parts belong to a request that will not complete.
        for _, result in items:
            if isinstance(result, StoredFile):
                remove_attachment(result)
        raise
    return FormData(items)


async def read_form_data(request: Request) -> FormData:
    content_type = request.headers.get("content-type", "")
    if "multipart/form" in content_type.lower():
        return await parse_multipart_form_data(request, upload_handler)
    return await request.form()


def remove_attachment(filename: str) -> None:
    path = attachments_dir() / _safe_filename(filename)
    try:
        path.unlink()
    except FileNotFoundError:
        logger.warning(f"Attachment {filename} already removed")


def attachment_path(filename: str) -> Optional[Path]:
    """Location of a stored attachment, or None if it is missing or escapes the directory."""
    if _safe_filename(filename) != filename:
        return None
    path = attachments_dir() / filename
    return path if path.is_file() else None
