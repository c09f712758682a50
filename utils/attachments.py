"""Upload handling for complaint evidence: validation, storage and cleanup."""
import logging
import mimetypes
import os
import uuid
from dataclasses import dataclass
from typing import Iterable, Sequence

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from utils.errors import NotFound, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_DOCUMENT_TYPES = {"application/pdf"}
DEFAULT_MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_MAX_ATTACHMENTS = 5


@dataclass(frozen=True)
class StoredAttachment:
    filename: str
    original_name: str
    mime_type: str
    path: str


def _fail_if(condition: bool, message: str) -> None:
    if condition:
        raise ValidationError(message, errors={"files": [message]})


def is_allowed_type(mime_type: str) -> bool:
    return mime_type.startswith("image/") or mime_type in ALLOWED_DOCUMENT_TYPES


def persist_upload(file: FileStorage, upload_dir: str, max_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES) -> StoredAttachment:
    original_name = file.filename or ""
    safe_name = secure_filename(original_name)
    _fail_if(not safe_name, "Unsupported file name")
    mime_type = file.mimetype or mimetypes.guess_type(safe_name)[0] or "application/octet-stream"
    _fail_if(not is_allowed_type(mime_type), "Only image and PDF files are allowed")

    file.stream.seek(0, os.SEEK_END)
    size = file.stream.tell()
    file.stream.seek(0)
    _fail_if(size == 0, "Empty file")
    _fail_if(size > max_bytes, "File exceeds size limits")

    os.makedirs(upload_dir, exist_ok=True)
    _, ext = os.path.splitext(safe_name)
    stored_name = secure_filename(f"{uuid.uuid4().hex}{ext.lower()}")
    path = os.path.join(upload_dir, stored_name)
    file.save(path)
    return StoredAttachment(filename=stored_name, original_name=original_name, mime_type=mime_type, path=path)


def discard_uploads(refs: Iterable[StoredAttachment]) -> None:
    """Remove files written for a submission that never got committed."""
    for ref in refs:
        try:
            os.remove(ref.path)
        except FileNotFoundError:
            continue
        except OSError:
            logger.exception("Could not remove orphaned upload", extra={"path": ref.path})
        else:
            logger.info("orphaned_upload_removed", extra={"upload_file": ref.filename})


def persist_uploads(
    files: Sequence[FileStorage],
    upload_dir: str,
    max_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES,
    max_files: int = DEFAULT_MAX_ATTACHMENTS,
) -> list[StoredAttachment]:
    """Store every file or none of them."""
    files = [f for f in files if f and f.filename]
    _fail_if(len(files) > max_files, f"At most {max_files} files may be attached")
    stored: list[StoredAttachment] = []
    try:
        for file in files:
            stored.append(persist_upload(file, upload_dir, max_bytes=max_bytes))
    except BaseException:
        discard_uploads(stored)
        raise
    return stored


def resolve_upload_path(upload_dir: str, filename: str) -> str:
    safe_name = secure_filename(filename or "")
    if not safe_name or safe_name != filename:
        raise NotFound("File not found")
    abs_root = os.path.abspath(upload_dir)
    abs_path = os.path.abspath(os.path.join(abs_root, safe_name))
    if os.path.dirname(abs_path) != abs_root or not os.path.isfile(abs_path):
        raise NotFound("File not found")
    return abs_path
