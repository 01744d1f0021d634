from __future__ import annotations

from unittest.mock import patch

from tributestream.exceptions import Conflict
from tests.base import ApiTestCase

FUNERAL_HOME = {
    "funeral_home_name": "Peaceful Rest",
    "funeral_home_address": "1 Main St",
    "funeral_home_email": "office@peacefulrest.com",
    "funeral_home_phone": "555-0100",
    "personal_phone": "555-0101",
}


class RegistrationTests(ApiTestCase):
    def test_register_viewer(self) -> None:
        response = self.client.post("/api/auth/register", json={
            "email": "Viewer@Example.com", "password": "longenough", "display_name": "Vi",
        })

        self.assertEqual(response.status_code, 201)
        user = response.get_json()["user"]
        self.assertEqual(user["role"], "Viewer")
        self.assertTrue(user["approved"])
        stored = self.db.read("users", user["uid"])
        self.assertEqual(stored["email"], "viewer@example.com")

    def test_funeral_director_starts_unapproved(self) -> None:
        response = self.client.post("/api/auth/register", json={
            "email": "fd@example.com", "password": "longenough", "display_name": "Fran",
            "role": "FuneralDirector", **FUNERAL_HOME,
        })

        self.assertEqual(response.status_code, 201)
        body = response.get_json()
        self.assertFalse(body["user"]["approved"])
        self.assertIn("awaiting approval", body["message"])
        self.assertEqual(body["user"]["funeral_home_name"], "Peaceful Rest")

    def test_funeral_director_needs_funeral_home_details(self) -> None:
        response = self.client.post("/api/auth/register", json={
            "email": "fd@example.com", "password": "longenough", "display_name": "Fran",
            "role": "FuneralDirector", "funeral_home_name": "Peaceful Rest",
        })

        self.assertEqual(response.status_code, 400)
        self.assertIn("funeral_home_address", response.get_json()["error"])

    def test_cannot_self_register_as_admin(self) -> None:
        response = self.client.post("/api/auth/register", json={
            "email": "x@example.com", "password": "longenough", "display_name": "X", "role": "Admin",
        })
        self.assertEqual(response.status_code, 400)

    def test_short_password(self) -> None:
        response = self.client.post("/api/auth/register", json={
            "email": "x@example.com", "password": "short", "display_name": "X",
        })
        self.assertEqual(response.status_code, 400)

    def test_non_string_fields_rejected(self) -> None:
        response = self.client.post("/api/auth/register", json={
            "email": "vi@example.com", "password": "longenough", "display_name": 42,
        })
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json(), {"error": "display_name must be a string"})

        response = self.client.post("/api/auth/register", json={"email": "vi@example.com", "password": 12345678})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.created_accounts, [])

    def test_duplicate_email(self) -> None:
        with patch("tributestream.users.create_auth_user",
                   side_effect=Conflict("An account with this email already exists")):
            response = self.client.post("/api/auth/register", json={
                "email": "taken@example.com", "password": "longenough", "display_name": "T",
            })
        self.assertEqual(response.status_code, 409)


class ProfileTests(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.make_user("owner")

    def test_profile_counts_memorials_and_photos(self) -> None:
        self.make_memorial("first", "owner", photo_count=3)
        self.make_memorial("second", "owner", photo_count=2)
        self.make_memorial("other", "someone-else", photo_count=9)

        response = self.client.get("/api/profile", headers=self.auth("owner"))

        body = response.get_json()["user"]
        self.assertEqual(body["memorial_count"], 2)
        self.assertEqual(body["photo_count"], 5)

    def test_update_profile(self) -> None:
        response = self.client.put("/api/profile", headers=self.auth("owner"),
                                   json={"display_name": "New Name", "phone": "555-1234"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.db.read("users", "owner")["display_name"], "New Name")
        self.update_auth_user.assert_called_once_with("owner", display_name="New Name")

    def test_change_email_marks_unverified(self) -> None:
        response = self.client.put("/api/profile/email", headers=self.auth("owner"),
                                   json={"email": "fresh@example.com"})

        self.assertEqual(response.status_code, 200)
        stored = self.db.read("users", "owner")
        self.assertEqual(stored["email"], "fresh@example.com")
        self.assertFalse(stored["email_verified"])
        self.update_auth_user.assert_called_once_with("owner", email="fresh@example.com", email_verified=False)

    def test_change_email_to_existing_account(self) -> None:
        self.make_user("other")
        response = self.client.put("/api/profile/email", headers=self.auth("owner"),
                                   json={"email": "other@example.com"})
        self.assertEqual(response.status_code, 409)

    def test_weak_password(self) -> None:
        response = self.client.put("/api/profile/password", headers=self.auth("owner"), json={"password": "123"})
        self.assertEqual(response.status_code, 400)
        self.update_auth_user.assert_not_called()


class FuneralDirectorApprovalTests(ApiTestCase):
    def test_admin_approves_pending_director(self) -> None:
        self.make_user("boss", role="Admin")
        self.make_user("fran", role="FuneralDirector", approved=False)

        pending = self.client.get("/api/admin/funeral-directors/pending", headers=self.auth("boss"))
        self.assertEqual([u["id"] for u in pending.get_json()["funeral_directors"]], ["fran"])

        response = self.client.post("/api/admin/funeral-directors/fran/approve", headers=self.auth("boss"))

        self.assertEqual(response.status_code, 200)
        stored = self.db.read("users", "fran")
        self.assertTrue(stored["approved"])
        self.assertEqual(stored["approved_by"], "boss")
        self.assertIn("approved_at", stored)

    def test_approving_non_director_fails(self) -> None:
        self.make_user("boss", role="Admin")
        self.make_user("viewer", role="Viewer")
        response = self.client.post("/api/admin/funeral-directors/viewer/approve", headers=self.auth("boss"))
        self.assertEqual(response.status_code, 400)
