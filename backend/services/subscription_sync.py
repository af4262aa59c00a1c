"""Subscription Sync - applies billing-provider webhooks to user records.

Flow:
1. Secret configured? Otherwise CONFIG_MISSING (500).
2. HMAC-SHA256 of the raw body must match the X-Signature header (403 otherwise).
3. Parse the payload, map the event to a SubscriptionStatus.
4. $set status / end date / billing customer on the user matched by
   meta.custom_data.user_email (404 if no such user).
5. Record the event in billing_events.
"""
from datetime import datetime, timezone
from typing import Optional, Dict, Any
import hashlib
import hmac
import json
import logging
import os

from database import database
from models import SubscriptionStatus
from utils.errors import (
    ConfigMissingError,
    SignatureInvalidError,
    InvalidPayloadError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

ACTIVE_EVENTS = {
    "subscription_created",
    "subscription_resumed",
    "subscription_unpaused",
    "subscription_payment_success",
}
FREE_EVENTS = {"subscription_cancelled", "subscription_expired"}
PAST_DUE_EVENTS = {"subscription_payment_failed"}


def get_webhook_secret() -> Optional[str]:
    secret = (os.getenv("BILLING_WEBHOOK_SECRET") or "").strip()
    return secret or None


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: Optional[str], secret: str) -> bool:
    """Constant-time check of the hex HMAC-SHA256 signature over the raw body."""
    if not signature:
        return False
    expected = compute_signature(raw_body, secret)
    # Header values arrive latin-1 decoded; compare as bytes so non-ASCII input just fails
    provided = signature.strip().lower().encode("utf-8", "surrogateescape")
    return hmac.compare_digest(expected.encode(), provided)


def map_subscription_status(event_name: str, attributes: Optional[Dict[str, Any]] = None) -> SubscriptionStatus:
    """Map a billing event (and, for updates, the provider status) to our status."""
    attributes = attributes or {}
    if event_name in ACTIVE_EVENTS:
        return SubscriptionStatus.ACTIVE
    if event_name in FREE_EVENTS:
        return SubscriptionStatus.FREE
    if event_name in PAST_DUE_EVENTS:
        return SubscriptionStatus.PAST_DUE
    if event_name == "subscription_updated":
        provider_status = (attributes.get("status") or "").lower()
        if provider_status == "past_due":
            return SubscriptionStatus.PAST_DUE
        if provider_status in ("cancelled", "expired"):
            return SubscriptionStatus.FREE
        return SubscriptionStatus.ACTIVE
    return SubscriptionStatus.FREE


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise InvalidPayloadError(f"Invalid ends_at: {value}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _object(parent: Dict[str, Any], key: str) -> Dict[str, Any]:
    """Nested payload object; missing or null counts as empty."""
    value = parent.get(key) or {}
    if not isinstance(value, dict):
        raise InvalidPayloadError(f"{key} must be an object")
    return value


async def apply_webhook(raw_body: bytes, signature: Optional[str]) -> Dict[str, Any]:
    """Verify, parse and apply one billing webhook delivery."""
    secret = get_webhook_secret()
    if not secret:
        logger.error("BILLING_WEBHOOK_SECRET not configured - rejecting billing webhook")
        raise ConfigMissingError("Webhook secret not configured")

    if not verify_signature(raw_body, signature, secret):
        logger.warning("Billing webhook rejected: invalid or missing signature")
        raise SignatureInvalidError()

    try:
        payload = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError):
        raise InvalidPayloadError("Body is not valid JSON")
    if not isinstance(payload, dict):
        raise InvalidPayloadError()

    meta = _object(payload, "meta")
    event_name = meta.get("event_name") or ""
    email = _object(meta, "custom_data").get("user_email") or ""
    if not isinstance(event_name, str) or not isinstance(email, str):
        raise InvalidPayloadError("event_name and user_email must be strings")
    email = email.strip().lower()
    if not email:
        raise InvalidPayloadError("Missing user email in custom data")

    data = _object(payload, "data")
    attributes = _object(data, "attributes")
    if not isinstance(attributes.get("status") or "", str):
        raise InvalidPayloadError("attributes.status must be a string")
    new_status = map_subscription_status(event_name, attributes)

    updates: Dict[str, Any] = {
        "subscription_status": new_status.value,
        "updated_at": datetime.now(timezone.utc),
    }
    ends_at = _parse_datetime(attributes.get("ends_at"))
    if ends_at:
        updates["subscription_end_date"] = ends_at
    if attributes.get("customer_id") is not None:
        updates["billing_customer_id"] = str(attributes["customer_id"])

    db = database.get_db()
    result = await db.users.update_one({"email": email}, {"$set": updates})
    if not result.matched_count:
        logger.warning(f"Billing webhook {event_name} for unknown user {email}")
        raise NotFoundError("User not found")

    await db.billing_events.insert_one({
        "event_name": event_name,
        "email": email,
        "subscription_id": data.get("id"),
        "subscription_status": new_status.value,
        "attributes": attributes,
        "received_at": datetime.now(timezone.utc),
    })

    logger.info(f"Subscription for {email} set to {new_status.value} ({event_name})")
    return {"success": True, "subscription_status": new_status.value}
