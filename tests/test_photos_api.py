from __future__ import annotations

import io

from PIL import Image

from tests.base import ApiTestCase


def image_bytes(fmt: str = "PNG", size=(64, 48), mode="RGBA") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, (200, 100, 50, 255) if mode == "RGBA" else (200, 100, 50)).save(buffer, format=fmt)
    return buffer.getvalue()


class PhotoUploadTests(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.make_user("owner")
        self.make_user("cousin")
        self.make_user("friend")
        self.make_memorial("jane-doe", "owner")
        self.make_family_member("jane-doe", "cousin")
        self.make_family_member("jane-doe", "friend", can_upload_photos=False)

    def _upload(self, uid, *files, **form):
        data = {"photos": [(io.BytesIO(content), name, mime) for name, content, mime in files], **form}
        return self.client.post("/api/memorials/jane-doe/photos", headers=self.auth(uid),
                                data=data, content_type="multipart/form-data")

    def test_upload_compresses_and_orders(self) -> None:
        response = self._upload(
            "owner",
            ("first.png", image_bytes(), "image/png"),
            ("second.jpg", image_bytes("JPEG", mode="RGB"), "image/jpeg"),
        )

        self.assertEqual(response.status_code, 201)
        photos = response.get_json()["photos"]
        self.assertEqual([p["order"] for p in photos], [0, 1])
        self.assertEqual(photos[0]["mime_type"], "image/jpeg")
        self.assertEqual(photos[0]["original_name"], "first.png")
        self.assertRegex(photos[0]["s3_key"], r"^memorials/jane-doe/\d+_[a-z0-9]{6}\.jpg$")
        self.assertEqual(photos[0]["uploaded_by"], "owner")
        self.assertEqual(self.db.read("memorials", "jane-doe")["photo_count"], 2)
        self.assertEqual(self.s3.upload_fileobj.call_count, 2)

    def test_gif_is_stored_as_is(self) -> None:
        gif = image_bytes("GIF", mode="RGB")
        response = self._upload("owner", ("anim.gif", gif, "image/gif"))

        photo = response.get_json()["photos"][0]
        self.assertEqual(photo["mime_type"], "image/gif")
        self.assertEqual(photo["size"], len(gif))
        self.assertTrue(photo["s3_key"].endswith(".gif"))

    def test_uncompressed_upload_keeps_original(self) -> None:
        png = image_bytes()
        response = self._upload("owner", ("keep.png", png, "image/png"), compress="false")

        photo = response.get_json()["photos"][0]
        self.assertEqual(photo["mime_type"], "image/png")
        self.assertEqual(photo["size"], len(png))

    def test_next_upload_continues_order(self) -> None:
        self.db.put("memorials", "jane-doe", "photos", "existing", {"order": 7, "s3_key": "k"})
        response = self._upload("owner", ("next.png", image_bytes(), "image/png"))
        self.assertEqual(response.get_json()["photos"][0]["order"], 8)

    def test_rejects_unsupported_type(self) -> None:
        response = self._upload("owner", ("notes.txt", b"hello", "text/plain"))

        self.assertEqual(response.status_code, 400)
        self.s3.upload_fileobj.assert_not_called()

    def test_rejects_oversized_file(self) -> None:
        response = self._upload("owner", ("huge.jpg", b"\xff" * (10 * 1024 * 1024 + 1), "image/jpeg"))
        self.assertEqual(response.status_code, 400)
        self.assertIn("10MB", response.get_json()["error"])

    def test_family_member_with_upload_permission(self) -> None:
        response = self._upload("cousin", ("c.png", image_bytes(), "image/png"))
        self.assertEqual(response.status_code, 201)

    def test_family_member_without_upload_permission(self) -> None:
        response = self._upload("friend", ("f.png", image_bytes(), "image/png"))
        self.assertEqual(response.status_code, 403)

    def test_uploads_disabled_for_family(self) -> None:
        self.make_memorial("jane-doe", "owner", allow_photos=False)
        self.assertEqual(self._upload("cousin", ("c.png", image_bytes(), "image/png")).status_code, 403)
        self.assertEqual(self._upload("owner", ("o.png", image_bytes(), "image/png")).status_code, 201)

    def test_direct_upload_session(self) -> None:
        self.s3.generate_presigned_post.return_value = {
            "url": "https://bucket.s3.amazonaws.com/",
            "fields": {"key": "k", "Content-Type": "image/png"},
        }
        response = self.client.post("/api/memorials/jane-doe/photos/upload-url", headers=self.auth("owner"),
                                    json={"filename": "direct.png", "content_type": "image/png", "size": 2048})

        self.assertEqual(response.status_code, 201)
        session = response.get_json()
        self.assertTrue(session["s3_key"].endswith(".png"))
        self.assertEqual(session["upload"]["url"], "https://bucket.s3.amazonaws.com/")

        self.s3.head_object.return_value = {"ContentLength": 2048}
        confirm = self.client.post("/api/memorials/jane-doe/photos/confirm", headers=self.auth("owner"),
                                   json={"session_id": session["session_id"]})

        self.assertEqual(confirm.status_code, 201)
        photo = confirm.get_json()["photo"]
        self.assertEqual(photo["s3_key"], session["s3_key"])
        self.assertEqual(photo["size"], 2048)
        self.assertEqual(self.db.read("upload_sessions", session["session_id"])["status"], "completed")

        again = self.client.post("/api/memorials/jane-doe/photos/confirm", headers=self.auth("owner"),
                                 json={"session_id": session["session_id"]})
        self.assertEqual(again.status_code, 400)

    def test_upload_session_rejects_bad_type(self) -> None:
        response = self.client.post("/api/memorials/jane-doe/photos/upload-url", headers=self.auth("owner"),
                                    json={"filename": "x.svg", "content_type": "image/svg+xml", "size": 10})
        self.assertEqual(response.status_code, 400)


class PhotoGalleryTests(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.make_user("owner")
        self.make_memorial("jane-doe", "owner", photo_count=3)
        for index, photo_id in enumerate(["p1", "p2", "p3"]):
            self.db.put("memorials", "jane-doe", "photos", photo_id, {
                "s3_key": f"memorials/jane-doe/{photo_id}.jpg",
                "url": "",
                "order": index,
                "caption": "",
            })

    def test_paginated_listing_refreshes_urls(self) -> None:
        response = self.client.get("/api/memorials/jane-doe/photos?page=1&limit=2")

        body = response.get_json()
        self.assertEqual([p["id"] for p in body["photos"]], ["p1", "p2"])
        self.assertEqual(body["total"], 3)
        self.assertTrue(body["has_more"])
        self.assertIn("X-Amz-Expires=3600", body["photos"][0]["url"])
        self.assertEqual(self.db.read("memorials", "jane-doe", "photos", "p1")["url"], body["photos"][0]["url"])

        last_page = self.client.get("/api/memorials/jane-doe/photos?page=2&limit=2").get_json()
        self.assertEqual([p["id"] for p in last_page["photos"]], ["p3"])
        self.assertFalse(last_page["has_more"])

    def test_reorder_by_id_list(self) -> None:
        response = self.client.put("/api/memorials/jane-doe/photos/order", headers=self.auth("owner"),
                                   json={"photo_ids": ["p3", "p1", "p2"]})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.db.read("memorials", "jane-doe", "photos", "p3")["order"], 0)
        self.assertEqual(self.db.read("memorials", "jane-doe", "photos", "p2")["order"], 2)

    def test_reorder_with_explicit_orders(self) -> None:
        response = self.client.put("/api/memorials/jane-doe/photos/order", headers=self.auth("owner"),
                                   json={"photos": [{"id": "p1", "order": 5}]})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.db.read("memorials", "jane-doe", "photos", "p1")["order"], 5)

    def test_reorder_unknown_photo(self) -> None:
        response = self.client.put("/api/memorials/jane-doe/photos/order", headers=self.auth("owner"),
                                   json={"photo_ids": ["p1", "nope"]})
        self.assertEqual(response.status_code, 404)

    def test_shared_order_listed_by_upload_time(self) -> None:
        self.db.put("memorials", "jane-doe", "photos", "late", {
            "s3_key": "memorials/jane-doe/late.jpg", "url": "", "order": 1, "created_at": "2024-06-02T00:00:00+00:00",
        })
        self.db.docs[("memorials", "jane-doe", "photos", "p2")]["created_at"] = "2024-06-01T00:00:00+00:00"

        body = self.client.get("/api/memorials/jane-doe/photos").get_json()

        self.assertEqual([p["id"] for p in body["photos"]], ["p1", "p2", "late", "p3"])

    def test_reorder_rejects_non_string_ids(self) -> None:
        response = self.client.put("/api/memorials/jane-doe/photos/order", headers=self.auth("owner"),
                                   json={"photo_ids": ["p1", 2]})
        self.assertEqual(response.status_code, 400)

    def test_caption_must_be_text(self) -> None:
        response = self.client.put("/api/memorials/jane-doe/photos/p2", headers=self.auth("owner"),
                                   json={"caption": 1985})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json(), {"error": "caption must be a string"})

    def test_update_caption(self) -> None:
        response = self.client.put("/api/memorials/jane-doe/photos/p2", headers=self.auth("owner"),
                                   json={"caption": "  Summer 1985 "})

        self.assertEqual(response.get_json()["photo"]["caption"], "Summer 1985")
        self.assertEqual(self.db.read("memorials", "jane-doe", "photos", "p2")["caption"], "Summer 1985")

    def test_delete_photo(self) -> None:
        response = self.client.delete("/api/memorials/jane-doe/photos/p1", headers=self.auth("owner"))

        self.assertEqual(response.status_code, 200)
        self.assertIsNone(self.db.read("memorials", "jane-doe", "photos", "p1"))
        self.assertEqual(self.db.read("memorials", "jane-doe")["photo_count"], 2)
        self.assertEqual(self.s3.delete_object.call_args.kwargs["Key"], "memorials/jane-doe/p1.jpg")

    def test_anonymous_cannot_delete(self) -> None:
        response = self.client.delete("/api/memorials/jane-doe/photos/p1")
        self.assertEqual(response.status_code, 401)
