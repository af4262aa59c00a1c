"""Billing webhook verification, status mapping and user sync."""
import json
import os

import pytest

from conftest import make_user
from services.subscription_sync import (
    apply_webhook,
    compute_signature,
    map_subscription_status,
    verify_signature,
)
from utils.errors import (
    ConfigMissingError,
    InvalidPayloadError,
    NotFoundError,
    SignatureInvalidError,
)

SECRET = os.environ["BILLING_WEBHOOK_SECRET"]
EMAIL = "owner@forwarder.com"


def _event(event_name, email=EMAIL, **attributes):
    return json.dumps({
        "meta": {"event_name": event_name, "custom_data": {"user_email": email}},
        "data": {"id": "sub_123", "type": "subscriptions", "attributes": attributes},
    }).encode()


class TestVerifySignature:
    def test_valid_signature(self):
        body = b'{"hello": "world"}'
        assert verify_signature(body, compute_signature(body, SECRET), SECRET)

    def test_tampered_body(self):
        signature = compute_signature(b'{"a": 1}', SECRET)
        assert not verify_signature(b'{"a": 2}', signature, SECRET)

    def test_missing_signature(self):
        assert not verify_signature(b"{}", None, SECRET)
        assert not verify_signature(b"{}", "", SECRET)


class TestMapStatus:
    @pytest.mark.parametrize("event_name,expected", [
        ("subscription_created", "active"),
        ("subscription_resumed", "active"),
        ("subscription_unpaused", "active"),
        ("subscription_payment_success", "active"),
        ("subscription_cancelled", "free"),
        ("subscription_expired", "free"),
        ("subscription_payment_failed", "past_due"),
        ("order_refunded", "free"),
    ])
    def test_event_mapping(self, event_name, expected):
        assert map_subscription_status(event_name).value == expected

    @pytest.mark.parametrize("provider_status,expected", [
        ("active", "active"),
        ("past_due", "past_due"),
        ("cancelled", "free"),
        ("expired", "free"),
        ("on_trial", "active"),
    ])
    def test_subscription_updated_uses_provider_status(self, provider_status, expected):
        result = map_subscription_status("subscription_updated", {"status": provider_status})
        assert result.value == expected


class TestApplyWebhook:
    @pytest.mark.asyncio
    async def test_payment_success_activates(self, store):
        make_user(store, email=EMAIL)
        body = _event("subscription_payment_success", customer_id=991, ends_at="2030-02-01T00:00:00Z")

        result = await apply_webhook(body, compute_signature(body, SECRET))

        assert result == {"success": True, "subscription_status": "active"}
        user = await store.users.find_one({"email": EMAIL})
        assert user["subscription_status"] == "active"
        assert user["billing_customer_id"] == "991"
        assert user["subscription_end_date"].year == 2030
        assert await store.billing_events.count_documents({"email": EMAIL}) == 1

    @pytest.mark.asyncio
    async def test_cancelled_sets_free(self, store):
        make_user(store, email=EMAIL, subscription_status="active")
        body = _event("subscription_cancelled")
        await apply_webhook(body, compute_signature(body, SECRET))
        user = await store.users.find_one({"email": EMAIL})
        assert user["subscription_status"] == "free"

    @pytest.mark.asyncio
    async def test_invalid_signature_no_mutation(self, store):
        make_user(store, email=EMAIL)
        body = _event("subscription_payment_success")
        with pytest.raises(SignatureInvalidError):
            await apply_webhook(body, "deadbeef")
        user = await store.users.find_one({"email": EMAIL})
        assert user["subscription_status"] == "free"
        assert await store.billing_events.count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_email_matched_case_insensitively(self, store):
        make_user(store, email=EMAIL)
        body = _event("subscription_created", email="Owner@Forwarder.com")
        await apply_webhook(body, compute_signature(body, SECRET))
        user = await store.users.find_one({"email": EMAIL})
        assert user["subscription_status"] == "active"

    @pytest.mark.asyncio
    async def test_unknown_user(self, store):
        body = _event("subscription_created", email="ghost@forwarder.com")
        with pytest.raises(NotFoundError):
            await apply_webhook(body, compute_signature(body, SECRET))

    @pytest.mark.asyncio
    async def test_missing_email(self, store):
        body = _event("subscription_created", email="")
        with pytest.raises(InvalidPayloadError) as exc_info:
            await apply_webhook(body, compute_signature(body, SECRET))
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_bad_json(self, store):
        body = b"not json"
        with pytest.raises(InvalidPayloadError):
            await apply_webhook(body, compute_signature(body, SECRET))

    @pytest.mark.asyncio
    async def test_missing_secret(self, store, monkeypatch):
        monkeypatch.delenv("BILLING_WEBHOOK_SECRET")
        body = _event("subscription_created")
        with pytest.raises(ConfigMissingError):
            await apply_webhook(body, compute_signature(body, SECRET))


class TestMalformedDeliveries:
    def test_non_ascii_signature_is_invalid(self):
        assert not verify_signature(b"{}", "é" * 64, SECRET)

    @pytest.mark.asyncio
    async def test_non_ascii_signature_rejected(self, store):
        make_user(store, email=EMAIL)
        with pytest.raises(SignatureInvalidError):
            await apply_webhook(_event("subscription_created"), "é" * 64)
        user = await store.users.find_one({"email": EMAIL})
        assert user["subscription_status"] == "free"

    @pytest.mark.parametrize("payload", [
        {"meta": "x"},
        {"meta": {"event_name": "subscription_created", "custom_data": ["a"]}},
        {"meta": {"event_name": "subscription_created", "custom_data": {"user_email": 42}}},
        {"meta": {"event_name": "subscription_created", "custom_data": {"user_email": EMAIL}}, "data": "x"},
        {"meta": {"event_name": "subscription_created", "custom_data": {"user_email": EMAIL}},
         "data": {"attributes": "x"}},
        {"meta": {"event_name": "subscription_updated", "custom_data": {"user_email": EMAIL}},
         "data": {"attributes": {"status": 5}}},
    ])
    @pytest.mark.asyncio
    async def test_wrong_shapes_are_invalid_payloads(self, store, payload):
        make_user(store, email=EMAIL)
        body = json.dumps(payload).encode()
        with pytest.raises(InvalidPayloadError) as exc_info:
            await apply_webhook(body, compute_signature(body, SECRET))
        assert exc_info.value.status_code == 400
        user = await store.users.find_one({"email": EMAIL})
        assert user["subscription_status"] == "free"
