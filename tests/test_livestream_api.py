from __future__ import annotations

from unittest import TestCase
from unittest.mock import patch

from tributestream.exceptions import ValidationError
from tributestream.livestream import default_form_data, merge_form_data, validate_booking
from tests.base import ApiTestCase

ITEMS = [
    {"id": "tier-live", "name": "Live package", "package": "live", "price": 599, "quantity": 1, "total": 599},
    {"id": "usb", "name": "Wooden USB drive", "package": "addon", "price": 49.5, "quantity": 2, "total": 99},
]


class BookingValidationTests(TestCase):
    def test_valid_booking(self) -> None:
        items, total = validate_booking(ITEMS, 698)
        self.assertEqual(total, 698)
        self.assertEqual(items[1]["total"], 99)

    def test_item_total_must_match(self) -> None:
        bad = [dict(ITEMS[1], total=100)]
        with self.assertRaises(ValidationError):
            validate_booking(bad, 100)

    def test_grand_total_must_match(self) -> None:
        with self.assertRaises(ValidationError):
            validate_booking(ITEMS, 700)

    def test_quantity_must_be_positive(self) -> None:
        with self.assertRaises(ValidationError):
            validate_booking([dict(ITEMS[0], quantity=0, total=0)], 0)

    def test_merge_keeps_defaults_and_ignores_unknown_keys(self) -> None:
        merged = merge_form_data(default_form_data("Jane"), {
            "main_service": {"hours": 4, "location": {"name": "St. Mark's"}},
            "bogus": True,
        })
        self.assertEqual(merged["main_service"]["hours"], 4)
        self.assertEqual(merged["main_service"]["location"]["name"], "St. Mark's")
        self.assertEqual(merged["main_service"]["location"]["address"], "")
        self.assertEqual(merged["additional_day"]["hours"], 2)
        self.assertNotIn("bogus", merged)


class LivestreamConfigApiTests(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.make_user("owner")
        self.make_user("stranger")
        self.make_memorial("jane-doe", "owner")
        self.url = "/api/livestream/jane-doe/config"

    def _save(self, uid="owner", **overrides):
        payload = {"current_step": "addons", "selected_tier": "live", "booking_items": ITEMS, "total": 698}
        payload.update(overrides)
        return self.client.put(self.url, headers=self.auth(uid), json=payload)

    def test_create_then_update(self) -> None:
        self.assertFalse(self.client.get(f"{self.url}/exists", headers=self.auth("owner")).get_json()["exists"])

        created = self._save(form_data={"main_service": {"hours": 3}})
        self.assertEqual(created.status_code, 200)
        config = created.get_json()["config"]
        self.assertEqual(config["payment_status"], "pending")
        self.assertEqual(config["form_data"]["loved_one_name"], "Jane Doe")
        self.assertEqual(config["form_data"]["main_service"]["hours"], 3)
        created_at = config["created_at"]

        updated = self._save(current_step="payment").get_json()["config"]
        self.assertEqual(updated["current_step"], "payment")
        self.assertEqual(updated["created_at"], created_at)
        self.assertEqual(updated["form_data"]["main_service"]["hours"], 3)
        self.assertTrue(self.client.get(f"{self.url}/exists", headers=self.auth("owner")).get_json()["exists"])

    def test_invalid_step(self) -> None:
        self.assertEqual(self._save(current_step="checkout").status_code, 400)

    def test_stranger_forbidden(self) -> None:
        self.assertEqual(self._save(uid="stranger").status_code, 403)

    def test_paid_config_is_locked(self) -> None:
        self._save()
        self.db.docs[("livestream_configs", "jane-doe")]["payment_status"] = "paid"
        self.assertEqual(self._save(current_step="payment").status_code, 409)

    def test_missing_config(self) -> None:
        self.assertEqual(self.client.get(self.url, headers=self.auth("owner")).status_code, 404)

    def test_delete_config(self) -> None:
        self._save()
        response = self.client.delete(self.url, headers=self.auth("owner"))
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(self.db.read("livestream_configs", "jane-doe"))

    def test_stream_requires_payment(self) -> None:
        self._save()
        response = self.client.post("/api/livestream/jane-doe/stream", headers=self.auth("owner"))
        self.assertEqual(response.status_code, 400)

    def test_paid_booking_gets_demo_stream_when_unconfigured(self) -> None:
        self._save()
        self.db.docs[("livestream_configs", "jane-doe")]["payment_status"] = "paid"

        with patch("tributestream.streaming.CLOUDFLARE_ACCOUNT_ID", ""):
            response = self.client.post("/api/livestream/jane-doe/stream", headers=self.auth("owner"))
            status = self.client.get("/api/livestream/jane-doe/stream", headers=self.auth("owner"))

        self.assertEqual(response.status_code, 201)
        stream = response.get_json()["stream"]
        self.assertTrue(stream["is_demo"])
        self.assertTrue(stream["stream_key"].startswith("demo_jane-doe_"))
        self.assertEqual(status.get_json()["stream"]["status"], "demo")

        memorial = self.client.get("/api/memorials/jane-doe").get_json()
        self.assertEqual(memorial["livestream"]["playback_url"], stream["playback_url"])
