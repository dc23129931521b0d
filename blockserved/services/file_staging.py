"""
File staging area.

Uploads land in <upload_dir>/staged/ under randomized names until the
transaction is executed, when they are renamed into <upload_dir>/documents/.
The database only ever stores the bare filename.

Removal and promotion are best-effort: the database row is the authoritative
record, so a filesystem failure is logged and the operation carries on.
"""

import logging
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import aiofiles
import aiofiles.os
from fastapi import UploadFile

from blockserved.core.config import Settings
from blockserved.core.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024

# Form field name -> column prefix on StagedFiles
UPLOAD_FIELDS = {
    "thumbnail": "thumbnail",
    "document": "document",
    "encryptedDocument": "encrypted_document",
}

_ALLOWED_MIME = re.compile(r"jpeg|jpg|png|gif|pdf")
# The client uploads the encrypted blob as "encrypted.dat"
_ENCRYPTED_EXTENSIONS = {"dat", "enc", "bin"}
_ENCRYPTED_MIME = {"application/octet-stream"}


@dataclass
class StagedUpload:
    """A file written to the staging directory for one request."""
    field: str
    filename: str
    size: int
    url: str

    @property
    def column(self) -> str:
        return UPLOAD_FIELDS[self.field]


class FileStagingArea:
    """Staged/permanent file namespaces under the configured upload root."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.staged_dir: Path = settings.staged_path
        self.documents_dir: Path = settings.documents_path
        self.staged_url_prefix = f"{settings.upload_url_prefix.rstrip('/')}/{settings.staged_subdir}"
        self.documents_url_prefix = f"{settings.upload_url_prefix.rstrip('/')}/{settings.documents_subdir}"

    async def ensure_dirs(self) -> None:
        await aiofiles.os.makedirs(self.staged_dir, exist_ok=True)
        await aiofiles.os.makedirs(self.documents_dir, exist_ok=True)

    # ------------------------------------------------------------------
    # Naming / URLs
    # ------------------------------------------------------------------

    @staticmethod
    def make_filename(field: str, original_filename: Optional[str]) -> str:
        """<field>-<epoch ms>-<16 hex><ext>; unique across concurrent requests."""
        ext = Path(original_filename or "").suffix.lower()
        return f"{field}-{int(time.time() * 1000)}-{secrets.token_hex(8)}{ext}"

    def staged_url(self, filename: Optional[str]) -> Optional[str]:
        return f"{self.staged_url_prefix}/{filename}" if filename else None

    def document_url(self, filename: Optional[str]) -> Optional[str]:
        return f"{self.documents_url_prefix}/{filename}" if filename else None

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def check_type(self, field: str, upload: UploadFile) -> None:
        """Only images and PDFs; the encrypted document may also be an opaque blob."""
        filename = upload.filename or ""
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        mime = (upload.content_type or "").lower()

        if ext in self.settings.allowed_extensions_set and _ALLOWED_MIME.search(mime):
            return
        if field == "encryptedDocument":
            encrypted_ok = ext in (_ENCRYPTED_EXTENSIONS | self.settings.allowed_extensions_set)
            if encrypted_ok and (mime in _ENCRYPTED_MIME or _ALLOWED_MIME.search(mime)):
                return
        raise ValidationError(f"{field}: only images and PDFs are allowed", field=field)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def save(self, field: str, upload: UploadFile) -> StagedUpload:
        """
        Stream an upload into the staging directory.

        Raises ValidationError (and removes the partial file) when the upload
        exceeds the size limit, StorageError on a filesystem failure.
        """
        if field not in UPLOAD_FIELDS:
            raise ValidationError(f"Unexpected file field: {field}", field=field)
        self.check_type(field, upload)

        filename = self.make_filename(field, upload.filename)
        path = self.staged_dir / filename
        limit = self.settings.max_upload_bytes
        size = 0
        try:
            await aiofiles.os.makedirs(self.staged_dir, exist_ok=True)
            async with aiofiles.open(path, "wb") as out:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > limit:
                        break
                    await out.write(chunk)
        except OSError as exc:
            await self.discard(filename)
            raise StorageError(f"Could not write {field}: {exc}") from exc

        if size > limit:
            await self.discard(filename)
            raise ValidationError(
                f"{field} exceeds the {self.settings.max_upload_size_mb}MB limit", field=field
            )

        logger.debug("Staged %s as %s (%d bytes)", field, filename, size)
        return StagedUpload(field=field, filename=filename, size=size, url=self.staged_url(filename))

    async def discard(self, filename: Optional[str]) -> bool:
        """Remove a staged file. Logged and ignored if it cannot be removed."""
        if not filename:
            return False
        path = self.staged_dir / filename
        try:
            await aiofiles.os.remove(path)
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("Could not remove staged file %s: %s", filename, exc)
            return False

    async def discard_many(self, filenames: Iterable[Optional[str]]) -> int:
        removed = 0
        for filename in filenames:
            if await self.discard(filename):
                removed += 1
        return removed

    async def promote(self, filename: Optional[str]) -> bool:
        """
        Move a staged file into the permanent documents directory.

        A rename, not a copy. Returns False (after logging) if the move fails.
        """
        if not filename:
            return False
        source = self.staged_dir / filename
        target = self.documents_dir / filename
        try:
            await aiofiles.os.makedirs(self.documents_dir, exist_ok=True)
            await aiofiles.os.rename(source, target)
            return True
        except OSError as exc:
            logger.warning("Could not move %s to permanent storage: %s", filename, exc)
            return False
