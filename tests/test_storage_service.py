"""
SnapCap Backend: Storage Service Unit Tests
=============================================

What:  Upload policies, bounded reads, storage layout and deletion.
Why:   Uploads are the one place untrusted bytes reach the disk.

Test Strategy:
    ✅ Each policy accepts and rejects the right types
    ✅ The file header decides the type: a relabelled script is rejected
    ✅ Oversized files fail with "File too large" on the reported size and
       while streaming, before anything is written
    ✅ Stored files land under YYYY/MM/DD with a UUID name
    ✅ Public ids cannot escape the storage root
"""

import io
import re

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from snapcap.exceptions import NotFoundError, ValidationError
from snapcap.services.storage_service import (
    AVATAR,
    FILE_TOO_LARGE,
    MB,
    MESSAGE,
    POST,
    STORY,
    UploadPolicy,
)


def _upload(content: bytes, filename: str, content_type: str, size=None) -> UploadFile:
    return UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        size=len(content) if size is None else size,
        headers=Headers({"content-type": content_type}),
    )


class TestPolicies:
    @pytest.mark.parametrize(
        "policy,filename,mime",
        [
            (AVATAR, "me.PNG", "image/png"),
            (AVATAR, "me.jpeg", "image/jpeg"),
            (POST, "clip.mp4", "video/mp4"),
            (POST, "photo.webp", "image/webp"),
            (STORY, "frame.jpg", "image/jpeg"),
            (MESSAGE, "notes.pdf", "application/pdf"),
            (MESSAGE, "voice.wav", "audio/wav"),
        ],
    )
    def test_accepted(self, temp_storage, policy: UploadPolicy, filename, mime):
        detected, ext = temp_storage.validate_type(policy, filename, mime)
        assert detected == mime
        assert ext == "." + filename.rsplit(".", 1)[1].lower()

    @pytest.mark.parametrize(
        "policy,filename,mime,message",
        [
            (AVATAR, "anim.gif", "image/gif", "Only image files are allowed for avatars"),
            (POST, "doc.pdf", "application/pdf", "Only image and video files are allowed for posts"),
            (STORY, "song.mp3", "audio/mpeg", "Only image and video files are allowed for stories"),
            (MESSAGE, "run.exe", "application/octet-stream", "File type not allowed for messages"),
        ],
    )
    def test_rejected(self, temp_storage, policy, filename, mime, message):
        with pytest.raises(ValidationError) as exc_info:
            temp_storage.validate_type(policy, filename, mime)
        assert exc_info.value.message == message

    def test_unlabelled_upload_left_to_content_check(self, temp_storage):
        mime, ext = temp_storage.validate_type(POST, "photo.jpg", "application/octet-stream")
        assert mime is None
        assert ext == ".jpg"


class TestContentCheck:
    SCRIPT = b"#!/bin/sh\nrm -rf /\n"

    def test_detects_real_type(self, temp_storage, sample_image_bytes):
        assert temp_storage.verify_content(POST, sample_image_bytes, "photo.jpg") == "image/jpeg"

    def test_relabelled_script_rejected(self, temp_storage):
        with pytest.raises(ValidationError) as exc_info:
            temp_storage.verify_content(POST, self.SCRIPT, "evil.png")
        assert exc_info.value.message == "Only image and video files are allowed for posts"

    async def test_relabelled_upload_not_stored(self, temp_storage):
        with pytest.raises(ValidationError):
            await temp_storage.save_upload(_upload(self.SCRIPT, "evil.png", "image/png"), POST)
        assert not any(p.is_file() for p in temp_storage.storage_root.rglob("*"))

    async def test_unlabelled_image_stored_with_detected_type(self, temp_storage, sample_image_bytes):
        stored = await temp_storage.save_upload(
            _upload(sample_image_bytes, "photo.jpg", "application/octet-stream"), POST
        )
        assert stored.mime_type == "image/jpeg"

    def test_message_documents_accepted(self, temp_storage):
        assert temp_storage.verify_content(MESSAGE, b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n", "notes.pdf") == "application/pdf"

    def test_message_executable_rejected(self, temp_storage):
        with pytest.raises(ValidationError) as exc_info:
            temp_storage.verify_content(MESSAGE, self.SCRIPT, "voice.mp3")
        assert exc_info.value.message == "File type not allowed for messages"


class TestSizeLimits:
    async def test_reported_size_rejected_before_reading(self, temp_storage):
        upload = _upload(b"x", "big.mp4", "video/mp4", size=60 * MB)
        with pytest.raises(ValidationError) as exc_info:
            await temp_storage.read_upload(upload, POST)
        assert exc_info.value.message == FILE_TOO_LARGE
        assert upload.file.tell() == 0

    async def test_streamed_size_rejected(self, temp_storage):
        # Client under-reports the size; the byte count still trips the limit
        content = b"\x00" * (5 * MB + 1)
        upload = _upload(content, "me.png", "image/png", size=0)
        with pytest.raises(ValidationError) as exc_info:
            await temp_storage.save_upload(upload, AVATAR)
        assert exc_info.value.message == FILE_TOO_LARGE
        assert not any(temp_storage.storage_root.rglob("*.png"))

    async def test_limit_is_inclusive(self, temp_storage):
        content = b"\x00" * (5 * MB)
        upload = _upload(content, "me.png", "image/png")
        assert len(await temp_storage.read_upload(upload, AVATAR)) == 5 * MB


class TestStorage:
    async def test_save_upload_layout(self, temp_storage, sample_image_bytes):
        stored = await temp_storage.save_upload(_upload(sample_image_bytes, "photo.JPG", "image/jpeg"), POST)

        assert re.match(r"^\d{4}/\d{2}/\d{2}/[0-9a-f-]{36}\.jpg$", stored.public_id)
        assert stored.url == f"/media/{stored.public_id}"
        assert stored.size == len(sample_image_bytes)
        assert stored.media_type == "image"
        assert (temp_storage.storage_root / stored.public_id).read_bytes() == sample_image_bytes

    async def test_empty_upload_rejected(self, temp_storage):
        with pytest.raises(ValidationError, match="empty"):
            await temp_storage.save_upload(_upload(b"", "photo.jpg", "image/jpeg"), POST)

    async def test_delete(self, temp_storage, sample_image_bytes):
        stored = await temp_storage.store_file(sample_image_bytes, ".jpg", "image/jpeg")
        assert await temp_storage.delete(stored.public_id) is True
        assert await temp_storage.delete(stored.public_id) is False
        assert await temp_storage.delete(None) is False

    async def test_file_info(self, temp_storage, sample_image_bytes):
        stored = await temp_storage.store_file(sample_image_bytes, ".jpg", "image/jpeg")
        info = temp_storage.file_info(stored.public_id)
        assert info["publicId"] == stored.public_id
        assert info["size"] == len(sample_image_bytes)

        with pytest.raises(NotFoundError):
            temp_storage.file_info("2020/01/01/missing.jpg")

    def test_path_traversal_rejected(self, temp_storage):
        with pytest.raises(ValidationError):
            temp_storage.resolve("../../etc/passwd")
