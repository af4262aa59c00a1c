"""Custom branding for public quotes. Pro (active) subscribers only."""
from datetime import datetime, timezone
from typing import Optional, Dict, Any
import logging
import re

from database import database
from models import BrandingUpdate, SubscriptionStatus, HEX_COLOR_PATTERN
from utils.errors import (
    UnauthorizedError,
    UserNotFoundError,
    ValidationFailedError,
    ProRequiredError,
)

logger = logging.getLogger(__name__)

MAX_LOGO_BYTES = 500 * 1024
BRANDING_FIELDS = ("company_name", "logo_base64", "primary_color", "contact_email", "contact_phone")
FIELD_MAX_LENGTHS = {"company_name": 100, "contact_email": 100, "contact_phone": 30}

_hex_color = re.compile(HEX_COLOR_PATTERN)


def estimate_logo_bytes(logo_base64: str) -> int:
    """Decoded size of a base64 payload, data-URL prefix included."""
    return len(logo_base64) * 3 // 4


def _empty_branding(branding: Optional[Dict[str, Any]]) -> Dict[str, str]:
    branding = branding or {}
    return {key: branding.get(key) or "" for key in BRANDING_FIELDS}


async def _require_user(session_email: Optional[str]) -> Dict[str, Any]:
    if not session_email:
        raise UnauthorizedError()
    user = await database.get_db().users.find_one({"email": session_email.lower()}, {"_id": 0})
    if not user:
        raise UserNotFoundError()
    return user


def _is_pro(user: Dict[str, Any]) -> bool:
    return user.get("subscription_status") == SubscriptionStatus.ACTIVE.value


async def get_branding(session_email: Optional[str]) -> Dict[str, Any]:
    user = await _require_user(session_email)
    return {
        "success": True,
        "branding": _empty_branding(user.get("branding")),
        "is_pro": _is_pro(user),
    }


async def update_branding(session_email: Optional[str], patch: BrandingUpdate) -> Dict[str, Any]:
    """Merge supplied fields into the stored branding."""
    user = await _require_user(session_email)
    if not _is_pro(user):
        raise ProRequiredError("Custom branding is a Pro feature")

    branding = _empty_branding(user.get("branding"))
    for key, value in patch.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        value = value.strip()
        max_length = FIELD_MAX_LENGTHS.get(key)
        if max_length and len(value) > max_length:
            raise ValidationFailedError(f"{key} must be at most {max_length} characters")
        if key == "primary_color" and value and not _hex_color.match(value):
            raise ValidationFailedError("Invalid color format. Use hex like #1e3a8a")
        if key == "logo_base64" and estimate_logo_bytes(value) > MAX_LOGO_BYTES:
            raise ValidationFailedError("Logo must be 500KB or smaller")
        branding[key] = value

    await database.get_db().users.update_one(
        {"user_id": user["user_id"]},
        {"$set": {"branding": branding, "updated_at": datetime.now(timezone.utc)}},
    )
    logger.info(f"Branding updated for {user['user_id']}")
    return {"success": True, "branding": branding}


async def remove_logo(session_email: Optional[str]) -> Dict[str, Any]:
    user = await _require_user(session_email)
    if not _is_pro(user):
        raise ProRequiredError("Custom branding is a Pro feature")

    branding = _empty_branding(user.get("branding"))
    branding["logo_base64"] = ""
    await database.get_db().users.update_one(
        {"user_id": user["user_id"]},
        {"$set": {"branding": branding, "updated_at": datetime.now(timezone.utc)}},
    )
    logger.info(f"Logo removed for {user['user_id']}")
    return {"success": True}
