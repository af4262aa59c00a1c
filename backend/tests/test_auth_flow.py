"""Magic-link sign-in and session tokens."""
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from auth import create_access_token, decode_access_token, hash_token
from conftest import utc
from models import MessageLog
from services import identity_service
from utils.errors import UnauthorizedError, DeliveryFailedError

EMAIL = "new@forwarder.com"


def _sent_log():
    return MessageLog(recipient=EMAIL, subject="Sign in", status="sent")


async def _request_link():
    """Request a link and return the raw token that was emailed."""
    with patch(
        "services.identity_service.email_service.send_magic_link_email",
        new_callable=AsyncMock,
        return_value=_sent_log(),
    ) as send:
        await identity_service.request_magic_link(EMAIL)
    link = send.call_args.kwargs["sign_in_link"]
    return link.split("token=")[1]


class TestTokens:
    def test_round_trip_carries_product_claim(self):
        token = create_access_token({"sub": "USR-1", "email": EMAIL})
        payload = decode_access_token(token)
        assert payload["email"] == EMAIL
        assert payload["product"] == "fwdlink"

    def test_expired_token_rejected(self):
        token = create_access_token({"sub": "USR-1"}, expires_delta=timedelta(seconds=-1))
        assert decode_access_token(token) is None


class TestMagicLink:
    @pytest.mark.asyncio
    async def test_first_sign_in_creates_user_once(self, store):
        token = await _request_link()
        stored = await store.magic_links.find_one({"email": EMAIL})
        assert stored["token_hash"] == hash_token(token)

        first = await identity_service.verify_magic_link(EMAIL, token)
        assert first.is_new_user is True
        assert first.user.usage_count == 0
        assert first.user.subscription_status.value == "free"
        assert decode_access_token(first.access_token)["sub"] == first.user.user_id

        second_token = await _request_link()
        second = await identity_service.verify_magic_link(EMAIL, second_token)
        assert second.is_new_user is False
        assert second.user.user_id == first.user.user_id
        assert await store.users.count_documents({"email": EMAIL}) == 1

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, store):
        token = await _request_link()
        await identity_service.verify_magic_link(EMAIL, token)
        with pytest.raises(UnauthorizedError):
            await identity_service.verify_magic_link(EMAIL, token)

    @pytest.mark.asyncio
    async def test_expired_token(self, store):
        token = await _request_link()
        await store.magic_links.update_one({"email": EMAIL}, {"$set": {"expires_at": utc(2000, 1, 1)}})
        with pytest.raises(UnauthorizedError):
            await identity_service.verify_magic_link(EMAIL, token)

    @pytest.mark.asyncio
    async def test_wrong_email(self, store):
        token = await _request_link()
        with pytest.raises(UnauthorizedError):
            await identity_service.verify_magic_link("someone@else.com", token)

    @pytest.mark.asyncio
    async def test_delivery_failure_surfaces(self, store):
        failed = MessageLog(recipient=EMAIL, subject="Sign in", status="failed", error_message="down")
        with patch(
            "services.identity_service.email_service.send_magic_link_email",
            new_callable=AsyncMock,
            return_value=failed,
        ):
            with pytest.raises(DeliveryFailedError):
                await identity_service.request_magic_link(EMAIL)

    @pytest.mark.asyncio
    async def test_rate_limited_requests_answer_generically(self, store):
        for _ in range(identity_service.MAGIC_LINK_MAX_REQUESTS + 2):
            result = await identity_service.request_magic_link(EMAIL)
            assert result["success"] is True
        assert await store.magic_links.count_documents({}) == identity_service.MAGIC_LINK_MAX_REQUESTS


def test_me_endpoint(client, store):
    from conftest import auth_headers, make_user

    user = make_user(store, email=EMAIL, usage_count=3)
    response = client.get("/api/auth/me", headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json()["usage_count"] == 3
