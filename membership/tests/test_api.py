"""
HTTP Tests for the FastAPI app

Tests cover:
1. Public payment and lookup endpoints
2. Error mapping to status codes
3. Admin authentication and admin operations
4. Startup and shutdown
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from membership.api import Services, create_app
from notifications.dispatcher import Dispatcher

from .factories import FakeGateway, update_entry

ADMIN_TOKEN = "test-admin-token"
ADMIN = {"X-Admin-Token": ADMIN_TOKEN}


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def services(storage, dispatcher, gateway, clock):
    return Services.build(storage, dispatcher=dispatcher, gateway=gateway, clock=clock)


@pytest.fixture
def client(services):
    return TestClient(create_app(services, admin_token=ADMIN_TOKEN))


def capture(client, email, order_id="ORDER-1", **extra):
    body = {"orderID": order_id, "email": email, "name": "Asha", "termsAccepted": True}
    body.update(extra)
    return client.post("/capture-order", json=body)


class TestPublicEndpoints:
    """Tests for member facing routes."""

    def test_health(self, client):
        """Test the health check answers without touching the database."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_config_exposes_client_id(self, client):
        """Test the client config returns the PayPal client id."""
        assert client.get("/config").json() == {"paypalClientId": "test-client-id"}

    def test_create_order(self, client):
        """Test creating an order returns the processor's order id."""
        assert client.post("/create-order").json()["id"] == "ORDER-1"

    def test_capture_order_creates_entry(self, client, gateway):
        """Test a captured order creates a new active entry."""
        response = capture(client, "asha@example.com")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["isRenewal"] is False
        assert data["ref"].startswith("DW")
        assert gateway.captured == ["ORDER-1"]

    def test_capture_order_active_email_not_charged(self, client, gateway):
        """Test an active member is rejected before the payment is captured."""
        capture(client, "asha@example.com")

        response = capture(client, "asha@example.com", order_id="ORDER-2")

        assert response.status_code == 409
        assert response.json()["kind"] == "already_active"
        assert gateway.captured == ["ORDER-1"]

    def test_capture_order_without_terms(self, client, gateway):
        """Test unaccepted terms are rejected before the payment is captured."""
        response = capture(client, "asha@example.com", termsAccepted=False)

        assert response.status_code == 400
        assert response.json()["kind"] == "terms_not_accepted"
        assert gateway.captured == []

    def test_capture_order_amount_mismatch(self, client, gateway):
        """Test a capture for the wrong amount maps to a 502."""
        gateway.amount = Decimal("5.00")

        response = capture(client, "asha@example.com")

        assert response.status_code == 502
        assert response.json()["kind"] == "payment_mismatch"

    def test_capture_order_invalid_referral(self, client, gateway):
        """Test an unknown referral code is rejected before the payment is captured."""
        response = capture(client, "asha@example.com", referralCode="DW00000")

        assert response.status_code == 400
        assert response.json()["kind"] == "invalid_referral_code"
        assert gateway.captured == []
        assert client.post("/check-email", json={"email": "asha@example.com"}).json()["exists"] is False

    def test_capture_order_inactive_referrer_not_charged(self, client, gateway, storage):
        """Test an expired referrer's code is rejected before the payment is captured."""
        ref = capture(client, "asha@example.com").json()["ref"]
        update_entry(storage, "asha@example.com", status="expired")

        response = capture(client, "ravi@example.com", order_id="ORDER-2", referralCode=ref)

        assert response.status_code == 400
        assert response.json()["kind"] == "referrer_inactive"
        assert gateway.captured == ["ORDER-1"]

    def test_capture_order_self_referral_not_charged(self, client, gateway, storage):
        """Test a renewing member using their own code is rejected before the payment is captured."""
        ref = capture(client, "asha@example.com").json()["ref"]
        update_entry(storage, "asha@example.com", status="expired")

        response = capture(client, "asha@example.com", order_id="ORDER-2", referralCode=ref)

        assert response.status_code == 400
        assert response.json()["kind"] == "self_referral"
        assert gateway.captured == ["ORDER-1"]

    def test_check_email(self, client):
        """Test the email lookup reports an existing member's status."""
        capture(client, "asha@example.com")

        data = client.post("/check-email", json={"email": "asha@example.com"}).json()

        assert data["exists"] is True
        assert data["status"] == "active"

    def test_validate_referral(self, client):
        """Test an active member's code validates with the referrer's name."""
        ref = capture(client, "asha@example.com").json()["ref"]

        data = client.post("/validate-referral", json={"referralCode": ref}).json()

        assert data["valid"] is True
        assert data["referrerName"] == "Asha"

    def test_referral_link_and_listing(self, client):
        """Test the share link and the referral listing for a referrer."""
        ref = capture(client, "asha@example.com").json()["ref"]
        capture(client, "ravi@example.com", order_id="ORDER-2", name="Ravi", referralCode=ref)

        link = client.post("/get-referral-link", json={"email": "asha@example.com"}).json()
        summary = client.post("/referrals/check-email", json={"email": "asha@example.com"}).json()

        assert link["shareLink"].endswith(f"?referral={ref}")
        assert summary["referralCount"] == 1
        assert summary["referrals"][0]["name"] == "Ravi"

    def test_unknown_member_is_404(self, client):
        """Test a lookup for an unknown email maps to a 404."""
        response = client.post("/referrals/check-email", json={"email": "ghost@example.com"})

        assert response.status_code == 404
        assert response.json()["kind"] == "entry_not_found"

    def test_current_winner_empty(self, client):
        """Test there is no current winner before a draw."""
        assert client.get("/current-winner").json() == {"winner": None}

    def test_contact(self, client):
        """Test a contact form submission is stored."""
        response = client.post(
            "/contact",
            json={"name": "Asha", "email": "asha@example.com", "subject": "Hi", "message": "Question"},
        )

        assert response.status_code == 201
        assert response.json()["success"] is True

    def test_contact_missing_field(self, client):
        """Test a contact form without subject and message is a 400."""
        response = client.post("/contact", json={"name": "Asha", "email": "asha@example.com"})

        assert response.status_code == 400
        assert response.json()["kind"] == "missing_field"

    def test_withdrawal_not_eligible(self, client):
        """Test a member with one entry cannot request a withdrawal."""
        capture(client, "asha@example.com")

        check = client.post("/check-withdrawal-eligibility", json={"email": "asha@example.com"}).json()
        response = client.post("/submit-withdrawal-request", json={"email": "asha@example.com"})

        assert check["quote"]["eligible"] is False
        assert check["quote"]["entriesNeeded"] == 9
        assert response.status_code == 400
        assert response.json()["kind"] == "not_eligible"


class TestAdminAuth:
    """Tests for the admin token gate."""

    def test_missing_token(self, client):
        """Test an admin route without a token is a 401."""
        assert client.get("/admin/entries").status_code == 401

    def test_wrong_token(self, client):
        """Test an admin route with the wrong token is a 401."""
        assert client.get("/admin/entries", headers={"X-Admin-Token": "nope"}).status_code == 401

    def test_token_in_query(self, client):
        """Test the admin token is also accepted as a query parameter."""
        assert client.get("/admin/entries", params={"token": ADMIN_TOKEN}).status_code == 200

    def test_unconfigured_token(self, services):
        """Test admin routes refuse every request when no token is configured."""
        client = TestClient(create_app(services, admin_token=""))

        response = client.get("/admin/entries", headers={"X-Admin-Token": "anything"})

        assert response.status_code == 500


class TestAdminEndpoints:
    """Tests for admin operations."""

    def test_winner_flow(self, client):
        """Test selecting, showing and paying out a winner."""
        capture(client, "asha@example.com")
        [entry] = client.get("/admin/entries", headers=ADMIN).json()

        selected = client.post("/admin/select-winner", json={"entryId": entry["id"]}, headers=ADMIN)
        again = client.post("/admin/select-winner", json={"entryId": entry["id"]}, headers=ADMIN)
        current = client.get("/current-winner").json()["winner"]
        paid = client.post("/admin/winner-paid", json={"winnerId": selected.json()["id"]}, headers=ADMIN)

        assert selected.status_code == 200
        assert selected.json()["paymentStatus"] == "pending"
        assert again.status_code == 409
        assert current["ref"] == entry["ref"]
        assert paid.json()["paymentStatus"] == "paid"
        assert client.get("/admin/entries", headers=ADMIN).json()[0]["status"] == "winner_paid"

    def test_delete_entry_blocked_by_winner(self, client):
        """Test an entry with a winner record cannot be deleted."""
        capture(client, "asha@example.com")
        [entry] = client.get("/admin/entries", headers=ADMIN).json()
        client.post("/admin/select-winner", json={"entryId": entry["id"]}, headers=ADMIN)

        response = client.delete(f"/admin/entry/{entry['id']}", headers=ADMIN)

        assert response.status_code == 409
        assert response.json()["kind"] == "entry_referenced_by_winner"

    def test_delete_entry(self, client):
        """Test deleting an entry removes it from the listing."""
        capture(client, "asha@example.com")
        [entry] = client.get("/admin/entries", headers=ADMIN).json()

        response = client.delete(f"/admin/entry/{entry['id']}", headers=ADMIN)

        assert response.status_code == 200
        assert client.get("/admin/entries", headers=ADMIN).json() == []

    def test_send_email_and_logs(self, client, transport):
        """Test an admin email fills the default amount and is logged."""
        response = client.post(
            "/admin/send-email",
            json={"email": "asha@example.com", "type": "winnerNotification", "memberName": "Asha", "ref": "DW12345"},
            headers=ADMIN,
        )

        assert response.json() == {"success": True, "error": None}
        assert "$1000.00" in transport.sent[-1][2]
        logs = client.get("/admin/email-logs", headers=ADMIN).json()
        assert logs[-1]["type"] == "winnerNotification"

    def test_send_email_unknown_type(self, client):
        """Test an unknown email type is a 400."""
        response = client.post(
            "/admin/send-email",
            json={"email": "asha@example.com", "type": "birthday"},
            headers=ADMIN,
        )

        assert response.status_code == 400

    def test_monthly_reset(self, client):
        """Test the monthly reset expires active entries once."""
        capture(client, "asha@example.com")

        first = client.post("/admin/monthly-reset", headers=ADMIN).json()
        second = client.post("/admin/monthly-reset", headers=ADMIN).json()

        assert first["expired"] == 1
        assert second["expired"] == 0

    def test_renewal_after_reset(self, client):
        """Test an expired member renews with the same reference code."""
        ref = capture(client, "asha@example.com").json()["ref"]
        client.post("/admin/monthly-reset", headers=ADMIN)

        renewed = capture(client, "asha@example.com", order_id="ORDER-2").json()

        assert renewed["isRenewal"] is True
        assert renewed["ref"] == ref

    def test_inquiry_reply_and_resolve(self, client):
        """Test replying to and resolving an inquiry."""
        client.post(
            "/contact",
            json={"name": "Asha", "email": "asha@example.com", "subject": "Hi", "message": "Question"},
        )
        [inquiry] = client.get("/admin/inquiries", headers=ADMIN).json()

        replied = client.post(
            "/admin/inquiry-reply", json={"inquiryId": inquiry["id"], "adminReply": "Answer"}, headers=ADMIN
        ).json()
        resolved = client.post("/admin/inquiry-resolve", json={"inquiryId": inquiry["id"]}, headers=ADMIN).json()

        assert replied["status"] == "replied"
        assert resolved["status"] == "resolved"

    def test_withdrawal_admin_flow(self, client, storage):
        """Test reviewing and processing a withdrawal request."""
        capture(client, "asha@example.com")
        update_entry(storage, "asha@example.com", entry_count=10)
        submitted = client.post("/submit-withdrawal-request", json={"email": "asha@example.com"})
        request_id = submitted.json()["id"]

        approved = client.post(f"/admin/withdrawals/{request_id}/review", json={"approve": True}, headers=ADMIN)
        processed = client.post(
            f"/admin/withdrawals/{request_id}/process", json={"paypalOrderId": "PAYOUT-1"}, headers=ADMIN
        )
        listed = client.get("/admin/withdrawals", headers=ADMIN).json()

        assert submitted.status_code == 201
        assert submitted.json()["refundAmount"] == "465.00"
        assert approved.json()["status"] == "approved"
        assert processed.json()["status"] == "processed"
        assert listed[0]["paypalOrderId"] == "PAYOUT-1"


class TestLifespan:
    """Tests for app startup and shutdown."""

    def test_shutdown_waits_for_queued_notifications(self, storage, gateway, transport, clock, monkeypatch):
        """Test shutdown drains the notification queue so every send is logged."""
        dispatcher = Dispatcher(storage, transport=transport, background=True)
        shutdowns = []
        original = dispatcher.shutdown

        def recording_shutdown(wait=True):
            shutdowns.append(wait)
            original(wait=wait)

        monkeypatch.setattr(dispatcher, "shutdown", recording_shutdown)
        services = Services.build(storage, dispatcher=dispatcher, gateway=gateway, clock=clock)

        with TestClient(create_app(services, admin_token=ADMIN_TOKEN)) as client:
            assert capture(client, "asha@example.com").status_code == 200

        assert shutdowns == [True]
        assert len(transport.sent) == 1
        assert len(dispatcher.email_logs()) == 1
