from __future__ import annotations

from unittest.mock import patch

from tributestream.exceptions import ExternalServiceError
from tributestream.utils import PASSWORD_ALPHABET
from tests.base import ApiTestCase

OWNER_FORM = {
    "loved_one_name": "Jane Doe",
    "creator_name": "John Doe",
    "creator_email": "john@example.com",
    "creator_phone": "555-0100",
    "biography": "A loving mother.",
}


class CreateMemorialTests(ApiTestCase):
    def test_create_with_owner(self) -> None:
        response = self.client.post("/api/memorials/create-with-owner", json=OWNER_FORM)

        self.assertEqual(response.status_code, 201)
        body = response.get_json()
        self.assertEqual(body["custom_url"], "jane-doe")
        self.assertEqual(body["memorial_url"], "https://tributestream.com/memorial/jane-doe")
        self.assertTrue(body["email_sent"])
        password = body["generated_password"]
        self.assertEqual(len(password), 12)
        self.assertTrue(set(password) <= set(PASSWORD_ALPHABET))

        memorial = self.db.read("memorials", "jane-doe")
        self.assertEqual(memorial["creator_uid"], body["user_id"])
        self.assertEqual(memorial["view_count"], 0)
        self.assertFalse(memorial["is_public"])
        self.assertEqual(self.db.read("users", body["user_id"])["role"], "Owner")

    def test_name_collision_gets_counter(self) -> None:
        self.make_memorial("jane-doe", "someone")
        response = self.client.post("/api/memorials/create-with-owner", json=OWNER_FORM)
        self.assertEqual(response.get_json()["custom_url"], "jane-doe-1")

    def test_email_failure_does_not_fail_creation(self) -> None:
        with patch("tributestream.memorials.send_credentials_email", side_effect=ExternalServiceError("down")):
            response = self.client.post("/api/memorials/create-with-owner", json=OWNER_FORM)

        self.assertEqual(response.status_code, 201)
        self.assertFalse(response.get_json()["email_sent"])

    def test_missing_fields(self) -> None:
        response = self.client.post("/api/memorials/create-with-owner", json={"loved_one_name": "Jane"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.created_accounts, [])

    def test_non_string_custom_url_rejected_before_account(self) -> None:
        response = self.client.post("/api/memorials/create-with-owner", json={**OWNER_FORM, "custom_url": 42})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.created_accounts, [])

    def test_taken_custom_url_rolls_back_account(self) -> None:
        self.make_memorial("jane", "someone")
        response = self.client.post("/api/memorials/create-with-owner", json={**OWNER_FORM, "custom_url": "jane"})

        self.assertEqual(response.status_code, 409)
        uid = self.created_accounts[0]
        self.delete_auth_user.assert_called_once_with(uid)
        self.assertIsNone(self.db.read("users", uid))

    def test_signed_in_viewer_becomes_owner(self) -> None:
        self.make_user("vic", role="Viewer")
        response = self.client.post("/api/memorials", headers=self.auth("vic"),
                                    json={"loved_one_name": "Grandpa Joe", "is_public": True})

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()["memorial"]["id"], "grandpa-joe")
        self.assertEqual(self.db.read("users", "vic")["role"], "Owner")

    def test_signed_in_user_without_profile_gets_one(self) -> None:
        self.tokens["token-newbie"] = {"uid": "newbie", "email": "newbie@example.com"}
        response = self.client.post("/api/memorials", headers=self.auth("newbie"),
                                    json={"loved_one_name": "Grandma Rose"})

        self.assertEqual(response.status_code, 201)
        profile = self.db.read("users", "newbie")
        self.assertEqual(profile["role"], "Owner")
        self.assertEqual(profile["email"], "newbie@example.com")
        self.assertIn("created_at", profile)

        me = self.client.get("/api/profile", headers=self.auth("newbie"))
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.get_json()["user"]["memorial_count"], 1)

    def test_birth_after_passing_rejected(self) -> None:
        self.make_user("owner")
        response = self.client.post("/api/memorials", headers=self.auth("owner"), json={
            "loved_one_name": "Jane", "date_of_birth": "2000-01-01", "date_of_passing": "1999-01-01",
        })
        self.assertEqual(response.status_code, 400)


class FuneralDirectorMemorialTests(ApiTestCase):
    def test_approved_director_creates_prefixed_memorial(self) -> None:
        self.make_user("fran", role="FuneralDirector", funeral_home_name="Peaceful Rest")
        response = self.client.post("/api/memorials/funeral-director", headers=self.auth("fran"), json={
            **OWNER_FORM,
            "service_date": "2024-06-01",
            "service_start_time": "14:00",
        })

        self.assertEqual(response.status_code, 201)
        slug = response.get_json()["custom_url"]
        self.assertEqual(slug, "celebration-of-life-for-jane-doe")
        memorial = self.db.read("memorials", slug)
        self.assertEqual(memorial["funeral_director_id"], "fran")
        self.assertEqual(memorial["funeral_home_name"], "Peaceful Rest")
        self.assertEqual(memorial["service_days"], 1)
        self.assertTrue(memorial["is_professional_service"])

    def test_unapproved_director_forbidden(self) -> None:
        self.make_user("fran", role="FuneralDirector", approved=False)
        response = self.client.post("/api/memorials/funeral-director", headers=self.auth("fran"), json=OWNER_FORM)
        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.created_accounts, [])

    def test_owner_role_forbidden(self) -> None:
        self.make_user("owner")
        response = self.client.post("/api/memorials/funeral-director", headers=self.auth("owner"), json=OWNER_FORM)
        self.assertEqual(response.status_code, 403)


class ReadMemorialTests(ApiTestCase):
    def test_view_increments_count(self) -> None:
        self.make_memorial("jane-doe", "owner", view_count=4)

        response = self.client.get("/api/memorials/jane-doe")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["memorial"]["view_count"], 5)
        self.assertEqual(self.db.read("memorials", "jane-doe")["view_count"], 5)

    def test_private_memorial_hidden_from_strangers(self) -> None:
        self.make_user("owner")
        self.make_user("stranger")
        self.make_memorial("secret", "owner", is_public=False)

        self.assertEqual(self.client.get("/api/memorials/secret").status_code, 404)
        self.assertEqual(self.client.get("/api/memorials/secret", headers=self.auth("stranger")).status_code, 404)
        self.assertEqual(self.client.get("/api/memorials/secret", headers=self.auth("owner")).status_code, 200)

    def test_private_memorial_visible_to_family(self) -> None:
        self.make_user("owner")
        self.make_user("cousin")
        self.make_memorial("secret", "owner", is_public=False)
        self.make_family_member("secret", "cousin")

        response = self.client.get("/api/memorials/secret", headers=self.auth("cousin"))
        self.assertEqual(response.status_code, 200)

    def test_check_url(self) -> None:
        self.make_memorial("jane-doe", "owner")
        self.assertEqual(self.client.get("/api/memorials/check-url?url=jane-doe").get_json(), {"available": False})
        self.assertEqual(self.client.get("/api/memorials/check-url?url=john-doe").get_json(), {"available": True})
        self.assertEqual(self.client.get("/api/memorials/check-url").status_code, 400)

    def test_search_public_by_views(self) -> None:
        self.make_memorial("jane-doe", "a", view_count=1)
        self.make_memorial("janet-roe", "b", view_count=10)
        self.make_memorial("jane-hidden", "c", is_public=False)
        self.make_memorial("bob", "d", biography="Married to Jane for 40 years")

        response = self.client.get("/api/memorials/search?q=JANE")

        ids = [m["id"] for m in response.get_json()["memorials"]]
        self.assertEqual(ids[0], "janet-roe")
        self.assertCountEqual(ids, ["janet-roe", "jane-doe", "bob"])

    def test_search_requires_query(self) -> None:
        self.assertEqual(self.client.get("/api/memorials/search?q=").status_code, 400)

    def test_recent_public_newest_first(self) -> None:
        self.make_memorial("old", "a", created_at="2024-01-01T00:00:00+00:00")
        self.make_memorial("new", "a", created_at="2024-03-01T00:00:00+00:00")
        self.make_memorial("private", "a", created_at="2024-05-01T00:00:00+00:00", is_public=False)

        response = self.client.get("/api/memorials/recent?limit=5")

        self.assertEqual([m["id"] for m in response.get_json()["memorials"]], ["new", "old"])

    def test_user_memorials(self) -> None:
        self.make_user("owner")
        self.make_memorial("mine", "owner")
        self.make_memorial("theirs", "other")
        response = self.client.get("/api/user/memorials", headers=self.auth("owner"))
        self.assertEqual([m["id"] for m in response.get_json()["memorials"]], ["mine"])

    def test_share_links(self) -> None:
        self.make_memorial("john-doe-memorial", "owner", loved_one_name="John Doe",
                           biography="A loving father and husband")

        links = self.client.get("/api/memorials/john-doe-memorial/share").get_json()

        self.assertEqual(links["url"], "https://tributestream.com/memorial/john-doe-memorial")
        self.assertIn("facebook.com/sharer/sharer.php", links["facebook"])
        self.assertIn("Remember%20John%20Doe%20-%20A%20loving%20father%20and%20husband", links["twitter"])
        self.assertIn("linkedin.com/sharing/share-offsite", links["linkedin"])
        self.assertTrue(links["email"].startswith("mailto:"))
        self.assertIn("Memorial%20for%20John%20Doe", links["email"])
        self.assertTrue(links["sms"].startswith("sms:"))

    def test_qr_code_png(self) -> None:
        self.make_memorial("jane-doe", "owner")
        response = self.client.get("/api/memorials/jane-doe/qr")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.mimetype, "image/png")
        self.assertTrue(response.data.startswith(b"\x89PNG"))


class UpdateDeleteMemorialTests(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.make_user("owner")
        self.make_user("editor")
        self.make_user("helper")
        self.make_user("boss", role="Admin")
        self.make_memorial("jane-doe", "owner")
        self.make_family_member("jane-doe", "editor", can_edit_memorial=True)
        self.make_family_member("jane-doe", "helper")

    def test_family_editor_can_update(self) -> None:
        response = self.client.put("/api/memorials/jane-doe", headers=self.auth("editor"),
                                   json={"biography": "Updated", "creator_uid": "hijack"})

        self.assertEqual(response.status_code, 200)
        stored = self.db.read("memorials", "jane-doe")
        self.assertEqual(stored["biography"], "Updated")
        self.assertEqual(stored["creator_uid"], "owner")

    def test_family_without_edit_permission_forbidden(self) -> None:
        response = self.client.put("/api/memorials/jane-doe", headers=self.auth("helper"), json={"biography": "x"})
        self.assertEqual(response.status_code, 403)

    def test_flags_must_be_boolean(self) -> None:
        response = self.client.put("/api/memorials/jane-doe", headers=self.auth("owner"), json={"is_public": "yes"})
        self.assertEqual(response.status_code, 400)

    def test_text_fields_must_be_strings(self) -> None:
        response = self.client.put("/api/memorials/jane-doe", headers=self.auth("owner"), json={"biography": 7})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json(), {"error": "biography must be a string"})

    def test_only_owner_or_admin_deletes(self) -> None:
        response = self.client.delete("/api/memorials/jane-doe", headers=self.auth("editor"))
        self.assertEqual(response.status_code, 403)

    def test_delete_cascades(self) -> None:
        self.db.put("memorials", "jane-doe", "photos", "p1", {"s3_key": "memorials/jane-doe/1.jpg", "order": 0})
        self.db.put("memorials", "jane-doe", "followers", "fan", {"user_id": "fan"})
        self.db.put("livestream_configs", "jane-doe", {"memorial_id": "jane-doe", "stream": {"stream_key": "demo_x"}})

        response = self.client.delete("/api/memorials/jane-doe", headers=self.auth("boss"))

        self.assertEqual(response.status_code, 200)
        deleted = response.get_json()["deleted"]
        self.assertEqual(deleted["photos"], 1)
        self.assertEqual(deleted["family_members"], 2)
        self.assertEqual(deleted["followers"], 1)
        self.assertTrue(deleted["livestream_config"])
        self.assertEqual(self.db.docs, {k: v for k, v in self.db.docs.items() if k[0] == "users"})
        self.s3.delete_object.assert_called_once()
        self.assertEqual(self.s3.delete_object.call_args.kwargs["Key"], "memorials/jane-doe/1.jpg")
