"""
HEARDROP Backend — File Storage Service
=========================================

What:  Validation, storage, lookup and cleanup of image files.
Who:   SpotService (Street Spotted uploads), BrandService (generated logos
       and banners) and the /api/files route.

Layout under STORAGE_ROOT:
    spots/2026/10/19/<uuid>.jpg          user uploads, date-organised
    brand-images/logos/<slug>-<uuid>.png generated artwork
    brand-images/banners/<slug>-<uuid>.png

Upload checks, cheapest first:
    1. Extension is .png, .jpg, .jpeg or .webp
    2. Size is within MAX_FILE_SIZE (Content-Length, then actual bytes)
    3. libmagic sniffs the header bytes; the detected type must be allowed
       AND agree with the extension, so a renamed file is rejected
    Filenames are always server-generated UUIDs; no user input reaches
    the file system path.
"""

import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import aiofiles
import magic

from heardrop.config import settings
from heardrop.exceptions import FileStorageError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# ── Allowed File Types ────────────────────────────────────────────────────
ALLOWED_MIME_TYPES = {
    "image/png": {".png"},
    "image/jpeg": {".jpg", ".jpeg"},
    "image/webp": {".webp"},
}

ALLOWED_EXTENSIONS = {ext for exts in ALLOWED_MIME_TYPES.values() for ext in exts}

UPLOAD_FOLDER = "spots"


class FileService:

    def __init__(self, storage_root: Optional[str] = None):
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_extension(self, filename: str) -> str:
        """Returns the lower-cased extension, including the dot."""
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext or 'unknown'}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="image",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        max_mb = settings.max_file_size / (1024 * 1024)

        if content_length and content_length > settings.max_file_size:
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB. Please upload a smaller image.",
                field="image",
                context={"max_size_mb": max_mb, "reported_size": content_length},
            )

        if actual_size == 0:
            raise ValidationError(message="The uploaded file is empty", field="image")

        if actual_size > settings.max_file_size:
            raise ValidationError(
                message=f"File size ({actual_size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="image",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def validate_mime_type(self, content: bytes, extension: str) -> str:
        """
        Sniff the real type from the header bytes.

        Raises:
            ValidationError: type not allowed, or it contradicts the extension
            FileStorageError: libmagic itself failed
        """
        try:
            mime_type = magic.from_buffer(content[:2048], mime=True)
        except magic.MagicException as e:
            logger.error("MIME type detection failed: %s", str(e))
            raise FileStorageError(
                message="Could not verify file type. Please try again.",
                context={"error": str(e)},
            )

        allowed = ALLOWED_MIME_TYPES.get(mime_type)
        if allowed is None:
            raise ValidationError(
                message=(
                    f"File content type '{mime_type}' is not supported. "
                    "The file must be a PNG, JPEG or WebP image."
                ),
                field="image",
                context={"detected_mime": mime_type},
            )
        if extension not in allowed:
            raise ValidationError(
                message="The file extension does not match its contents",
                field="image",
                context={"detected_mime": mime_type, "extension": extension},
            )
        return mime_type

    # ── Storage ───────────────────────────────────────────────────────────

    def _dated_path(self, folder: str, extension: str) -> str:
        date_dir = datetime.now(timezone.utc).strftime("%Y/%m/%d")
        return f"{folder}/{date_dir}/{uuid.uuid4()}{extension}"

    async def _write(self, relative_path: str, content: bytes) -> str:
        absolute_path = self.storage_root / relative_path
        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save the image. Please try again.",
                context={"path": relative_path, "os_error": str(e)},
            )
        logger.info("File stored: %s (%d bytes)", relative_path, len(content))
        return relative_path

    async def validate_and_store(
        self,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
        folder: str = UPLOAD_FOLDER,
    ) -> str:
        """
        Run every upload check, then store the bytes.

        Returns:
            Path relative to the storage root (what the database keeps).
        """
        ext = self.validate_extension(filename)
        self.validate_size(content_length, len(content))
        self.validate_mime_type(content, ext)
        return await self._write(self._dated_path(folder, ext), content)

    async def store_bytes(
        self,
        content: bytes,
        extension: str,
        folder: str,
        prefix: Optional[str] = None,
    ) -> str:
        """Store server-generated content (e.g. artwork) without upload checks."""
        if not extension.startswith("."):
            extension = f".{extension}"
        name = f"{prefix}-{uuid.uuid4()}" if prefix else str(uuid.uuid4())
        return await self._write(f"{folder.strip('/')}/{name}{extension.lower()}", content)

    # ── Lookup & cleanup ──────────────────────────────────────────────────

    def resolve(self, relative_path: str) -> Path:
        """
        Absolute path of a stored file.

        Raises:
            ValidationError: the path escapes the storage root
            NotFoundError: no such file
        """
        full_path = (self.storage_root / relative_path).resolve()
        if full_path != self.storage_root and self.storage_root not in full_path.parents:
            raise ValidationError(message="Invalid file path")
        if not full_path.is_file():
            raise NotFoundError(resource="file", resource_id=relative_path)
        return full_path

    async def cleanup_file(self, relative_path: str) -> None:
        """Best-effort delete; a missing file is not an error."""
        try:
            path = (self.storage_root / relative_path).resolve()
            if self.storage_root not in path.parents:
                logger.warning("Refusing to delete outside storage root: %s", relative_path)
                return
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up file: %s", relative_path)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", relative_path, str(e))

    async def cleanup_orphans(
        self,
        referenced: Iterable[str],
        folder: str = UPLOAD_FOLDER,
    ) -> List[str]:
        """
        Delete files under `folder` that no database row points to.

        Returns the relative paths that were removed.
        """
        keep = set(referenced)
        base = self.storage_root / folder
        if not base.exists():
            return []

        removed: List[str] = []
        for path in sorted(base.rglob("*")):
            if not path.is_file():
                continue
            relative = path.relative_to(self.storage_root).as_posix()
            if relative in keep:
                continue
            await self.cleanup_file(relative)
            removed.append(relative)

        if removed:
            logger.info("Removed %d orphaned files from %s", len(removed), folder)
        return removed


def public_url(relative_path: Optional[str]) -> Optional[str]:
    return f"/api/files/{relative_path}" if relative_path else None


def split_public_url(url: str) -> Tuple[bool, str]:
    """(True, relative_path) when `url` points at our own /api/files route."""
    marker = "/api/files/"
    if url and url.startswith(marker):
        return True, url[len(marker):]
    return False, url


file_service = FileService()
