"""
SnapCap Backend: Post Endpoint Tests
======================================

What we test:
    ✅ Multipart post creation stores the media and returns the post
    ✅ Form errors, relabelled and oversized files never leave a post behind
    ✅ A database failure on create is a 500 and removes the stored file
    ✅ Likes: PUT is idempotent, POST toggles
    ✅ Viewing counts, ownership on delete, pagination validation
    ✅ Caption generation falls back offline without credentials
"""


async def _create_post(client, account, image_bytes, caption="golden hour at the beach", **fields):
    data = {"caption": caption, "hashtags": "sunset,#beach"}
    data.update(fields)
    return await client.post(
        "/api/posts",
        data=data,
        files={"image": ("photo.jpg", image_bytes, "image/jpeg")},
        headers=account["headers"],
    )


async def test_create_post(test_client, register, sample_image_bytes):
    alice = await register("alice")
    response = await _create_post(test_client, alice, sample_image_bytes, location="Santa Monica", lat="34.0", lng="-118.5")

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Post created successfully"
    post = body["data"]
    assert post["caption"] == "golden hour at the beach"
    assert post["hashtags"] == ["sunset", "beach"]
    assert post["mediaType"] == "image"
    assert post["image"].startswith("/media/")
    assert post["author"]["username"] == "alice"
    assert post["location"]["name"] == "Santa Monica"
    assert post["location"]["coordinates"] == {"lat": 34.0, "lng": -118.5}
    assert post["likesCount"] == 0


async def test_create_post_requires_image(test_client, register):
    alice = await register("alice")
    response = await test_client.post("/api/posts", data={"caption": "hello"}, headers=alice["headers"])
    assert response.status_code == 400
    assert response.json()["message"] == "Image is required"


async def test_create_post_rejects_non_media(test_client, register):
    alice = await register("alice")
    response = await test_client.post(
        "/api/posts",
        data={"caption": "hello"},
        files={"image": ("notes.txt", b"just text", "text/plain")},
        headers=alice["headers"],
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Only image and video files are allowed for posts"

    feed = await test_client.get("/api/posts", headers=alice["headers"])
    assert feed.json()["data"]["posts"] == []


async def test_create_post_rejects_relabelled_file(test_client, register):
    alice = await register("alice")
    response = await test_client.post(
        "/api/posts",
        data={"caption": "hello"},
        files={"image": ("evil.png", b"#!/bin/sh\nrm -rf /\n", "image/png")},
        headers=alice["headers"],
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Only image and video files are allowed for posts"

    feed = await test_client.get("/api/posts", headers=alice["headers"])
    assert feed.json()["data"]["posts"] == []


async def test_create_post_rejects_oversized_upload(test_client, register, sample_image_bytes):
    alice = await register("alice")
    video = sample_image_bytes + b"\x00" * (60 * 1024 * 1024)
    response = await _create_post(test_client, alice, video)

    assert response.status_code == 400
    assert response.json()["message"] == "File too large"
    feed = await test_client.get("/api/posts", headers=alice["headers"])
    assert feed.json()["data"]["pagination"]["total"] == 0


async def test_database_failure_on_create(test_client, register, sample_image_bytes, monkeypatch):
    from sqlalchemy.exc import OperationalError
    from sqlalchemy.ext.asyncio import AsyncSession

    from snapcap.models.post import Post
    from snapcap.services.storage_service import storage_service

    alice = await register("alice")
    before = {p for p in storage_service.storage_root.rglob("*") if p.is_file()}
    real_flush = AsyncSession.flush

    async def flush(self, objects=None):
        if any(isinstance(obj, Post) for obj in self.new):
            raise OperationalError("INSERT INTO posts", {}, Exception("disk I/O error"))
        return await real_flush(self, objects)

    monkeypatch.setattr(AsyncSession, "flush", flush)
    response = await _create_post(test_client, alice, sample_image_bytes)
    monkeypatch.undo()

    assert response.status_code == 500
    assert response.json()["message"] == "Internal server error"
    assert {p for p in storage_service.storage_root.rglob("*") if p.is_file()} == before
    feed = await test_client.get("/api/posts", headers=alice["headers"])
    assert feed.json()["data"]["pagination"]["total"] == 0


async def test_create_post_validates_caption(test_client, register, sample_image_bytes):
    alice = await register("alice")
    response = await _create_post(test_client, alice, sample_image_bytes, caption="   ")
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    assert body["errors"][0]["field"] == "caption"


async def test_create_post_requires_auth(test_client, database, sample_image_bytes):
    response = await test_client.post(
        "/api/posts",
        data={"caption": "hello"},
        files={"image": ("photo.jpg", sample_image_bytes, "image/jpeg")},
    )
    assert response.status_code == 401


async def test_get_post_counts_views(test_client, register, sample_image_bytes):
    alice = await register("alice")
    post_id = (await _create_post(test_client, alice, sample_image_bytes)).json()["data"]["id"]

    await test_client.get(f"/api/posts/{post_id}")
    response = await test_client.get(f"/api/posts/{post_id}")
    assert response.status_code == 200
    assert response.json()["data"]["views"] == 2


async def test_unknown_post_is_404(test_client, database):
    response = await test_client.get("/api/posts/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404
    assert response.json()["message"] == "Post not found"


async def test_set_like_is_idempotent(test_client, register, sample_image_bytes):
    alice = await register("alice")
    bob = await register("bob")
    post_id = (await _create_post(test_client, alice, sample_image_bytes)).json()["data"]["id"]

    for _ in range(2):
        response = await test_client.put(f"/api/posts/{post_id}/like", json={"liked": True}, headers=bob["headers"])
        assert response.status_code == 200
        assert response.json()["data"] == {"isLiked": True, "likesCount": 1}

    response = await test_client.put(f"/api/posts/{post_id}/like", json={"liked": False}, headers=bob["headers"])
    assert response.json()["data"] == {"isLiked": False, "likesCount": 0}


async def test_toggle_like(test_client, register, sample_image_bytes):
    alice = await register("alice")
    post_id = (await _create_post(test_client, alice, sample_image_bytes)).json()["data"]["id"]

    liked = await test_client.post(f"/api/posts/{post_id}/like", headers=alice["headers"])
    assert liked.json()["message"] == "Post liked"
    assert liked.json()["data"]["likesCount"] == 1

    unliked = await test_client.post(f"/api/posts/{post_id}/like", headers=alice["headers"])
    assert unliked.json()["message"] == "Post unliked"
    assert unliked.json()["data"]["likesCount"] == 0


async def test_only_author_can_delete(test_client, register, sample_image_bytes):
    alice = await register("alice")
    bob = await register("bob")
    post_id = (await _create_post(test_client, alice, sample_image_bytes)).json()["data"]["id"]

    denied = await test_client.delete(f"/api/posts/{post_id}", headers=bob["headers"])
    assert denied.status_code == 404

    deleted = await test_client.delete(f"/api/posts/{post_id}", headers=alice["headers"])
    assert deleted.status_code == 200
    assert deleted.json()["message"] == "Post deleted successfully"

    gone = await test_client.get(f"/api/posts/{post_id}")
    assert gone.status_code == 404


async def test_pagination_rejects_bad_values(test_client, database):
    response = await test_client.get("/api/posts?page=0&limit=500")
    assert response.status_code == 400
    fields = {error["field"] for error in response.json()["errors"]}
    assert fields == {"page", "limit"}

    response = await test_client.get("/api/posts?page=abc")
    assert response.status_code == 400
    assert response.json()["errors"][0]["message"] == "Page must be a positive integer"


async def test_generate_caption_offline(test_client, register, sample_image_bytes):
    alice = await register("alice")
    response = await test_client.post(
        "/api/posts/generate-caption",
        data={"location": "coffee shop", "mood": "chill"},
        files={"image": ("photo.jpg", sample_image_bytes, "image/jpeg")},
        headers=alice["headers"],
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["generated"] is False
    assert data["caption"] == "coffee shop main character ☕"
    assert len(data["hashtags"]) == 4
