"""
SnapCap Backend: Media Upload Validation and Storage
======================================================

What:  Validates uploaded media against a per-endpoint policy, writes it to
       the media volume, and deletes it again by public id.
Why:   Every upload path (avatar, post, story, chat attachment, caption
       preview) shares one set of rules and one set of error messages.
How:   Checks the declared MIME type and extension up front, streams the
       upload in chunks so an oversized file is rejected as soon as it
       crosses the limit, then identifies the real type from the first
       bytes with python-magic (a relabelled file fails here). Accepted
       files are written with aiofiles under a date directory and a UUID
       file name.
Who:   Post, story, duet, chat and user services; /media route for serving.

Upload Policies:
    avatar   JPEG/PNG only        5 MB
    post     image/* or video/*  50 MB
    story    image/* or video/*  30 MB
    message  jpg png gif mp4 mov avi mp3 wav pdf doc docx   20 MB
    caption  image/*             10 MB (image is never stored)

Public ids:
    "<YYYY>/<MM>/<DD>/<uuid>.<ext>", relative to STORAGE_ROOT. The public URL
    is MEDIA_BASE_URL + "/" + public id.
"""

import logging
import mimetypes
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Optional, Tuple

import aiofiles
import magic
from fastapi import UploadFile

from snapcap.config import settings
from snapcap.exceptions import FileStorageError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MB = 1024 * 1024
CHUNK_SIZE = 1 * MB
FILE_TOO_LARGE = "File too large"
SNIFF_BYTES = 2048

# What libmagic reports for the document attachments chat accepts
DOCUMENT_MIMES = frozenset({
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/zip",
    "application/vnd.ms-office",
    "application/x-ole-storage",
    "application/CDFV2",
})


def _is_image(mime: str, ext: str) -> bool:
    return mime.startswith("image/")


def _is_image_or_video(mime: str, ext: str) -> bool:
    return mime.startswith("image/") or mime.startswith("video/")


def _is_message_content(mime: str) -> bool:
    return mime.startswith(("image/", "video/", "audio/")) or mime in DOCUMENT_MIMES


@dataclass(frozen=True)
class UploadPolicy:
    """Which files an endpoint accepts and how large they may be."""

    name: str
    max_bytes: int
    type_error: str
    allowed_extensions: Optional[FrozenSet[str]] = None
    allowed_mimes: Optional[FrozenSet[str]] = None
    predicate: Optional[Callable[[str, str], bool]] = None
    content_predicate: Optional[Callable[[str], bool]] = None

    def accepts(self, mime: Optional[str], ext: str) -> bool:
        """Check the declared label; a missing mime type is left to accepts_content."""
        if self.allowed_extensions is not None and ext not in self.allowed_extensions:
            return False
        if mime is None:
            return True
        if self.allowed_mimes is not None and mime not in self.allowed_mimes:
            return False
        if self.predicate is not None and not self.predicate(mime, ext):
            return False
        return True

    def accepts_content(self, mime: str) -> bool:
        """Check the type read from the file bytes; the extension is not involved."""
        if self.content_predicate is not None:
            return self.content_predicate(mime)
        if self.allowed_mimes is not None and mime not in self.allowed_mimes:
            return False
        return self.predicate is None or self.predicate(mime, "")


AVATAR = UploadPolicy(
    name="avatar",
    max_bytes=5 * MB,
    type_error="Only image files are allowed for avatars",
    allowed_extensions=frozenset({".jpg", ".jpeg", ".png"}),
    allowed_mimes=frozenset({"image/jpeg", "image/jpg", "image/png"}),
)
POST = UploadPolicy(
    name="post",
    max_bytes=50 * MB,
    type_error="Only image and video files are allowed for posts",
    predicate=_is_image_or_video,
)
STORY = UploadPolicy(
    name="story",
    max_bytes=30 * MB,
    type_error="Only image and video files are allowed for stories",
    predicate=_is_image_or_video,
)
MESSAGE = UploadPolicy(
    name="message",
    max_bytes=20 * MB,
    type_error="File type not allowed for messages",
    allowed_extensions=frozenset({
        ".jpg", ".jpeg", ".png", ".gif", ".mp4", ".mov", ".avi",
        ".mp3", ".wav", ".pdf", ".doc", ".docx",
    }),
    content_predicate=_is_message_content,
)
CAPTION = UploadPolicy(
    name="caption",
    max_bytes=10 * MB,
    type_error="Only image files are allowed",
    predicate=_is_image,
)


@dataclass(frozen=True)
class StoredMedia:
    public_id: str
    url: str
    format: str
    size: int
    mime_type: str

    @property
    def media_type(self) -> str:
        """Coarse type tag stored on posts ("image" | "video")."""
        return "video" if self.mime_type.startswith("video/") else "image"


class StorageService:
    """
    Local-disk media store.

    Directory Structure:
        storage/
        └── 2026/
            └── 10/
                └── 19/
                    ├── 0b6f...-e1.jpg
                    └── 77aa...-c4.mp4
    """

    def __init__(self, storage_root: Optional[str] = None):
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("StorageService initialized with storage_root=%s", self.storage_root)

    # ── Validation ────────────────────────────────────────────────────────

    @staticmethod
    def declared_mime_type(declared: Optional[str]) -> Optional[str]:
        """Multipart content type, or None when the client sent nothing useful."""
        declared = (declared or "").split(";")[0].strip().lower()
        if not declared or declared == "application/octet-stream":
            return None
        return declared

    def validate_type(
        self, policy: UploadPolicy, filename: str, declared: Optional[str]
    ) -> Tuple[Optional[str], str]:
        """
        Cheap pre-check on the label before any byte is read.

        Returns:
            (declared mime type or None, lowercase extension with dot)

        Raises:
            ValidationError carrying the policy's type message
        """
        ext = Path(filename or "").suffix.lower()
        mime = self.declared_mime_type(declared)
        if not policy.accepts(mime, ext):
            raise ValidationError(
                message=policy.type_error,
                field=policy.name,
                context={"mime_type": mime, "extension": ext},
            )
        return mime, ext

    def verify_content(self, policy: UploadPolicy, content: bytes, filename: str = "") -> str:
        """
        Identify the real type from the file header with python-magic.

        Returns:
            Detected MIME type (e.g. "image/jpeg")

        Raises:
            ValidationError if the bytes are not what the policy accepts,
            FileStorageError if libmagic itself fails
        """
        try:
            detected = magic.from_buffer(content[:SNIFF_BYTES], mime=True)
        except magic.MagicException as e:
            logger.error("MIME type detection failed for %s: %s", filename, str(e))
            raise FileStorageError(
                message="Could not verify file type",
                context={"filename": filename, "error": str(e)},
            )

        if not policy.accepts_content(detected):
            logger.warning("Rejected %s upload %r: content is %s", policy.name, filename, detected)
            raise ValidationError(
                message=policy.type_error,
                field=policy.name,
                context={"detected_mime_type": detected, "filename": filename},
            )
        return detected

    def validate_size(self, policy: UploadPolicy, content_length: Optional[int], actual_size: int) -> None:
        """Reject on the reported length first, then on the bytes actually read."""
        for size in (content_length, actual_size):
            if size and size > policy.max_bytes:
                raise ValidationError(
                    message=FILE_TOO_LARGE,
                    field=policy.name,
                    context={"max_size_mb": policy.max_bytes // MB, "size": size},
                )

    async def read_upload(self, upload: UploadFile, policy: UploadPolicy) -> bytes:
        """
        Read an UploadFile into memory, stopping as soon as the policy limit
        is crossed; an oversized body is never read past the limit.
        """
        self.validate_size(policy, upload.size, 0)
        chunks = []
        total = 0
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            total += len(chunk)
            self.validate_size(policy, None, total)
            chunks.append(chunk)
        return b"".join(chunks)

    # ── Storage ───────────────────────────────────────────────────────────

    def _generate_storage_path(self, extension: str) -> Tuple[Path, str]:
        """Returns (absolute path, public id) for a new file."""
        now = datetime.now(timezone.utc)
        public_id = f"{now.strftime('%Y/%m/%d')}/{uuid.uuid4()}{extension}"
        return self.storage_root / public_id, public_id

    def public_url(self, public_id: str) -> str:
        return f"{settings.media_base_url.rstrip('/')}/{public_id}"

    def resolve(self, public_id: str) -> Path:
        """
        Absolute path for a public id.

        Raises:
            ValidationError if the id escapes the storage root
        """
        path = (self.storage_root / public_id).resolve()
        if path != self.storage_root and self.storage_root not in path.parents:
            raise ValidationError(message="Invalid file path", field="publicId")
        return path

    async def store_file(self, content: bytes, extension: str, mime_type: str) -> StoredMedia:
        absolute_path, public_id = self._generate_storage_path(extension)
        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, str(e))
            raise FileStorageError(context={"path": str(absolute_path), "os_error": str(e)})

        logger.info("Media stored: %s (%d bytes)", public_id, len(content))
        return StoredMedia(
            public_id=public_id,
            url=self.public_url(public_id),
            format=extension.lstrip("."),
            size=len(content),
            mime_type=mime_type,
        )

    async def save_upload(self, upload: UploadFile, policy: UploadPolicy) -> StoredMedia:
        """
        Complete pipeline for one multipart file: label check, bounded read,
        content check, write. Nothing is written unless every check passed.
        """
        try:
            filename = upload.filename or ""
            _, ext = self.validate_type(policy, filename, upload.content_type)
            content = await self.read_upload(upload, policy)
            if not content:
                raise ValidationError(message="Uploaded file is empty", field=policy.name)
            mime = self.verify_content(policy, content, filename)
            if not ext:
                ext = mimetypes.guess_extension(mime) or ""
            return await self.store_file(content, ext, mime)
        finally:
            await upload.close()

    async def delete(self, public_id: Optional[str]) -> bool:
        """
        Remove a stored file by public id. Missing files count as deleted.

        Returns:
            True if a file was removed
        """
        if not public_id:
            return False
        path = self.resolve(public_id)
        try:
            if path.is_file():
                os.remove(path)
                logger.info("Media deleted: %s", public_id)
                return True
        except OSError as e:
            logger.warning("Failed to delete media %s: %s", public_id, str(e))
        return False

    def file_info(self, public_id: str) -> Dict[str, object]:
        path = self.resolve(public_id)
        if not path.is_file():
            raise NotFoundError(message="File not found", resource="media", resource_id=public_id)
        return {
            "url": self.public_url(public_id),
            "publicId": public_id,
            "format": path.suffix.lstrip("."),
            "size": path.stat().st_size,
        }


# ── Singleton Instance ────────────────────────────────────────────────────
storage_service = StorageService()
