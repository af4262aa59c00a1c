"""Quote Lifecycle Service

Create / read / update / delete / list for freight quotations.

- Create goes through the Quota Gate, reserves quota with an atomic $inc,
  then inserts the quotation under a fresh short code.
- Public reads optionally bump the view counter.
- Update and delete are owner-only. Delete never gives quota back.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
import logging
import os
import re

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import database
from models import (
    Quotation,
    QuotationCreate,
    QuotationUpdate,
    ContainerType,
    Incoterms,
    TransportMode,
    SubscriptionStatus,
    CostSection,
    Currency,
)
from services.chargeable_weight import calculate_chargeable_weight
from services.quota_gate import check_can_create, reserve_quota, FREE_QUOTA_LIMIT
from services.short_code import generate_short_id
from utils.errors import (
    UnauthorizedError,
    NotOwnerError,
    UserNotFoundError,
    NotFoundError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)

APP_URL = os.getenv("APP_URL", "https://fwdlink.io").rstrip("/")
DEFAULT_LOCALE = os.getenv("DEFAULT_LOCALE", "en")
SUPPORTED_LOCALES = ("en", "ko")

MAX_SHORT_ID_ATTEMPTS = 5
DEFAULT_LIST_LIMIT = 20

AIR_FIELDS = ("gross_weight", "cbm", "chargeable_weight")


# ============================================================================
# Helpers
# ============================================================================

def normalize_port(port) -> Dict[str, Any]:
    """Uppercase + trim every part of a port. Empty code becomes None."""
    if hasattr(port, "model_dump"):
        port = port.model_dump()
    name = (port.get("name") or "").strip().upper()
    if not name:
        raise ValidationFailedError("Port name is required")
    code = (port.get("code") or "").strip().upper()
    return {
        "name": name,
        "code": code or None,
        "country": (port.get("country") or "").strip().upper(),
    }


def totals_by_currency(line_items: List[Dict[str, Any]]) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    for item in line_items:
        currency = _enum_value(item.get("currency") or Currency.USD)
        totals[currency] = totals.get(currency, 0) + float(item.get("amount") or 0)
    return totals


def items_by_section(line_items: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Group line items into ORIGIN / FREIGHT / DESTINATION buckets, keeping order."""
    grouped: Dict[str, List[Dict[str, Any]]] = {s.value: [] for s in CostSection}
    for item in line_items:
        section = _enum_value(item.get("section") or CostSection.FREIGHT)
        grouped.setdefault(section, []).append(item)
    return grouped


def build_share_url(short_id: str, locale: Optional[str] = None) -> str:
    locale = locale or DEFAULT_LOCALE
    if locale == DEFAULT_LOCALE:
        return f"{APP_URL}/quote/{short_id}"
    return f"{APP_URL}/{locale}/quote/{short_id}"


def _enum_value(value):
    return getattr(value, "value", value)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _iso(value) -> Optional[str]:
    if isinstance(value, datetime):
        return _as_utc(value).isoformat()
    return value


def _default_price(line_items: List[Dict[str, Any]]) -> float:
    # USD total is the headline price
    return totals_by_currency(line_items).get(Currency.USD.value, 0.0)


def serialize_quotation(doc: Dict[str, Any], include_owner: bool = False) -> Dict[str, Any]:
    """Shape a stored quotation for API output."""
    line_items = [
        {
            "section": _enum_value(item.get("section", CostSection.FREIGHT)),
            "name": item.get("name"),
            "amount": item.get("amount"),
            "currency": _enum_value(item.get("currency", Currency.USD)),
        }
        for item in doc.get("line_items") or []
    ]
    valid_until = _as_utc(doc.get("valid_until"))
    result = {
        "short_id": doc["short_id"],
        "pol": doc.get("pol"),
        "pod": doc.get("pod"),
        "container_type": _enum_value(doc.get("container_type") or ContainerType.HQ40),
        "incoterms": _enum_value(doc.get("incoterms") or Incoterms.FOB),
        "transport_mode": _enum_value(doc.get("transport_mode") or TransportMode.FCL),
        "line_items": line_items,
        "items_by_section": items_by_section(line_items),
        "totals_by_currency": totals_by_currency(line_items),
        "price": doc.get("price", 0),
        "remarks": doc.get("remarks") or "",
        "valid_until": _iso(valid_until),
        "is_expired": bool(valid_until and valid_until < datetime.now(timezone.utc)),
        "views": doc.get("views", 0),
        "gross_weight": doc.get("gross_weight"),
        "cbm": doc.get("cbm"),
        "chargeable_weight": doc.get("chargeable_weight"),
        "created_at": _iso(doc.get("created_at")),
        "updated_at": _iso(doc.get("updated_at")),
    }
    if include_owner:
        result["quotation_id"] = doc.get("quotation_id")
        result["owner_id"] = doc.get("owner_id")
    return result


def _public_branding(branding: Optional[Dict[str, Any]]) -> Dict[str, str]:
    branding = branding or {}
    return {
        key: str(branding.get(key) or "")
        for key in ("company_name", "logo_base64", "primary_color", "contact_email", "contact_phone")
    }


# ============================================================================
# Service
# ============================================================================

class QuotationService:
    """Quotation lifecycle operations."""

    def _get_db(self):
        return database.get_db()

    async def _require_user(self, session_email: Optional[str]) -> Dict[str, Any]:
        if not session_email:
            raise UnauthorizedError()
        user = await self._get_db().users.find_one({"email": session_email.strip().lower()}, {"_id": 0})
        if not user:
            raise UserNotFoundError()
        return user

    async def _require_owned(self, session_email: Optional[str], short_id: str):
        """Return (user, quotation) or raise when missing / not owned."""
        user = await self._require_user(session_email)
        doc = await self._get_db().quotations.find_one({"short_id": short_id}, {"_id": 0})
        if not doc:
            raise NotFoundError("Quotation not found")
        if doc.get("owner_id") != user["user_id"]:
            logger.warning(f"User {user['user_id']} denied access to quotation {short_id}")
            raise NotOwnerError()
        return user, doc

    async def create(self, session_email: Optional[str], data: QuotationCreate) -> Dict[str, Any]:
        """Create a quotation under the quota gate. Returns the short code."""
        user = await self._require_user(session_email)
        check_can_create(user)

        pol = normalize_port(data.pol)
        pod = normalize_port(data.pod)
        line_items = [item.model_dump() for item in data.line_items]
        transport_mode = data.transport_mode or TransportMode.FCL

        air = {field: None for field in AIR_FIELDS}
        if transport_mode == TransportMode.AIR:
            air["gross_weight"] = data.gross_weight
            air["cbm"] = data.cbm
            if data.gross_weight is not None or data.cbm is not None:
                air["chargeable_weight"] = calculate_chargeable_weight(data.gross_weight, data.cbm)

        # Reserve before insert: a failed insert leaves the counter over, never under
        new_count = await reserve_quota(user["user_id"])

        db = self._get_db()
        for attempt in range(MAX_SHORT_ID_ATTEMPTS):
            quotation = Quotation(
                short_id=generate_short_id(),
                owner_id=user["user_id"],
                pol=pol,
                pod=pod,
                container_type=data.container_type or ContainerType.HQ40,
                incoterms=data.incoterms or Incoterms.FOB,
                transport_mode=transport_mode,
                line_items=line_items,
                price=data.price if data.price is not None else _default_price(line_items),
                remarks=(data.remarks or "").strip(),
                valid_until=_as_utc(data.valid_until),
                views=0,
                **air,
            )
            try:
                await db.quotations.insert_one(quotation.model_dump())
                break
            except DuplicateKeyError:
                logger.warning(f"Short id collision on attempt {attempt + 1}, regenerating")
        else:
            raise RuntimeError("Could not allocate a unique short id")

        logger.info(
            f"Quotation {quotation.short_id} created by {user['user_id']} (usage_count={new_count})"
        )
        return {
            "success": True,
            "short_id": quotation.short_id,
            "quotation_id": quotation.quotation_id,
            "share_url": build_share_url(quotation.short_id),
        }

    async def get_public(self, short_id: str, increment_view: bool = True) -> Dict[str, Any]:
        """Public read by short code. The view counter is bumped unless suppressed."""
        db = self._get_db()
        if increment_view:
            doc = await db.quotations.find_one_and_update(
                {"short_id": short_id},
                {"$inc": {"views": 1}},
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )
        else:
            doc = await db.quotations.find_one({"short_id": short_id}, {"_id": 0})

        if not doc:
            raise NotFoundError("Quotation not found")

        owner = await db.users.find_one(
            {"user_id": doc["owner_id"]},
            {"_id": 0, "subscription_status": 1, "branding": 1},
        ) or {}
        is_pro = owner.get("subscription_status") == SubscriptionStatus.ACTIVE.value

        return {
            "success": True,
            "quotation": serialize_quotation(doc),
            "branding": _public_branding(owner.get("branding")) if is_pro and owner.get("branding") else None,
        }

    async def is_owner(self, session_email: Optional[str], short_id: str) -> bool:
        if not session_email:
            return False
        db = self._get_db()
        user = await db.users.find_one({"email": session_email.lower()}, {"_id": 0, "user_id": 1})
        if not user:
            return False
        doc = await db.quotations.find_one({"short_id": short_id}, {"_id": 0, "owner_id": 1})
        return bool(doc and doc.get("owner_id") == user["user_id"])

    async def get_for_edit(self, session_email: Optional[str], short_id: str) -> Dict[str, Any]:
        """Owner-only read for the edit screen. Never counts as a view."""
        _, doc = await self._require_owned(session_email, short_id)
        return {"success": True, "quotation": serialize_quotation(doc, include_owner=True)}

    async def update(self, session_email: Optional[str], short_id: str, patch: QuotationUpdate) -> Dict[str, Any]:
        """Partial owner-only update. No quota check."""
        user, doc = await self._require_owned(session_email, short_id)

        fields = patch.model_dump(exclude_unset=True)
        updates: Dict[str, Any] = {}

        for key in ("container_type", "incoterms", "transport_mode", "valid_until", "price"):
            if fields.get(key) is not None:
                updates[key] = _as_utc(fields[key]) if key == "valid_until" else fields[key]
        for key in ("pol", "pod"):
            if fields.get(key) is not None:
                updates[key] = normalize_port(fields[key])
        if "remarks" in fields:
            updates["remarks"] = (fields["remarks"] or "").strip()
        if patch.line_items is not None:
            updates["line_items"] = [item.model_dump() for item in patch.line_items]
            if "price" not in updates:
                updates["price"] = _default_price(updates["line_items"])

        mode = updates.get("transport_mode", doc.get("transport_mode") or TransportMode.FCL)
        if mode == TransportMode.AIR:
            air_touched = False
            for key in ("gross_weight", "cbm"):
                if key in fields:
                    updates[key] = fields[key]
                    air_touched = True
            if air_touched or "transport_mode" in updates:
                gross = updates.get("gross_weight", doc.get("gross_weight"))
                cbm = updates.get("cbm", doc.get("cbm"))
                updates["chargeable_weight"] = (
                    calculate_chargeable_weight(gross, cbm)
                    if gross is not None or cbm is not None else None
                )
        elif "transport_mode" in updates:
            for key in AIR_FIELDS:
                updates[key] = None

        if not updates:
            raise ValidationFailedError("No fields to update")

        updates["updated_at"] = datetime.now(timezone.utc)
        updated = await self._get_db().quotations.find_one_and_update(
            {"short_id": short_id, "owner_id": user["user_id"]},
            {"$set": updates},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        if not updated:
            # Deleted between the ownership check and the write
            raise NotFoundError("Quotation not found")

        logger.info(f"Quotation {short_id} updated by {user['user_id']}: {sorted(updates)}")
        return {"success": True, "quotation": serialize_quotation(updated, include_owner=True)}

    async def delete(self, session_email: Optional[str], short_id: str) -> Dict[str, Any]:
        """Owner-only hard delete. usage_count is left as is so delete/recreate cannot reset quota."""
        user, _ = await self._require_owned(session_email, short_id)
        result = await self._get_db().quotations.delete_one(
            {"short_id": short_id, "owner_id": user["user_id"]}
        )
        if not result.deleted_count:
            raise NotFoundError("Quotation not found")
        logger.info(f"Quotation {short_id} deleted by {user['user_id']}")
        return {"success": True}

    async def list_for_owner(
        self,
        session_email: Optional[str],
        search: Optional[str] = None,
        container_type: Optional[str] = None,
        transport_mode: Optional[str] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Dict[str, Any]:
        """Owner's quotations, newest first, with quota state for the dashboard."""
        user = await self._require_user(session_email)

        query: Dict[str, Any] = {"owner_id": user["user_id"]}
        if container_type and container_type != "ALL":
            query["container_type"] = container_type
        if transport_mode and transport_mode != "ALL":
            query["transport_mode"] = transport_mode
        if search and search.strip():
            pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
            query["$or"] = [
                {"pol.name": pattern},
                {"pod.name": pattern},
                {"short_id": pattern},
            ]

        cursor = self._get_db().quotations.find(query, {"_id": 0}).sort("created_at", -1).limit(limit)
        docs = await cursor.to_list(limit)

        end_date = user.get("subscription_end_date")
        return {
            "success": True,
            "quotations": [serialize_quotation(d) for d in docs],
            "usage_count": user.get("usage_count", 0),
            "subscription_status": user.get("subscription_status", SubscriptionStatus.FREE.value),
            "subscription_end_date": _iso(end_date),
            "free_quota_limit": FREE_QUOTA_LIMIT,
        }

    async def get_share_link(self, session_email: Optional[str], short_id: str, locale: Optional[str] = None) -> Dict[str, Any]:
        await self._require_owned(session_email, short_id)
        if locale and locale not in SUPPORTED_LOCALES:
            raise ValidationFailedError(f"Unsupported locale: {locale}")
        return {"success": True, "short_id": short_id, "share_url": build_share_url(short_id, locale)}


# Global service instance
quotation_service = QuotationService()
