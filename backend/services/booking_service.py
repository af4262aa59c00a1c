"""Booking Lifecycle Service

Shippers submit booking requests against a public quotation. The request is
persisted first; the owner notification is a best-effort second leg whose
outcome is tracked on the record (notification_status) and can be retried.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
import logging

from database import database
from models import (
    BookingRequest,
    BookingSubmit,
    BookingStatus,
    NotificationStatus,
    ErrorCode,
)
from services.email_service import email_service
from utils.errors import (
    UnauthorizedError,
    NotOwnerError,
    UserNotFoundError,
    NotFoundError,
    ValidationFailedError,
    DeliveryFailedError,
    InvalidTransitionError,
)

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50
TERMINAL_STATUSES = (BookingStatus.CONFIRMED.value, BookingStatus.CANCELLED.value)


def _iso(value):
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    return value


def serialize_booking(doc: Dict[str, Any]) -> Dict[str, Any]:
    result = {k: v for k, v in doc.items() if k != "_id"}
    for key in ("ready_date", "created_at", "updated_at"):
        result[key] = _iso(result.get(key))
    for key in ("status", "notification_status"):
        result[key] = getattr(result.get(key), "value", result.get(key))
    return result


class BookingService:
    """Booking request operations."""

    def _get_db(self):
        return database.get_db()

    async def _require_user(self, session_email: Optional[str]) -> Dict[str, Any]:
        if not session_email:
            raise UnauthorizedError()
        user = await self._get_db().users.find_one({"email": session_email.lower()}, {"_id": 0})
        if not user:
            raise UserNotFoundError()
        return user

    async def _require_owned(self, session_email: Optional[str], booking_id: str):
        user = await self._require_user(session_email)
        booking = await self._get_db().booking_requests.find_one({"booking_id": booking_id}, {"_id": 0})
        if not booking:
            raise NotFoundError("Booking request not found")
        if booking.get("owner_id") != user["user_id"]:
            raise NotOwnerError()
        return user, booking

    async def _notify_owner(self, owner: Dict[str, Any], booking: Dict[str, Any]) -> bool:
        """Send the owner email and record the outcome on the booking."""
        log = await email_service.send_booking_request_email(
            recipient=owner["email"],
            forwarder_name=owner.get("name") or owner["email"],
            booking=booking,
        )
        sent = log.status == "sent"
        await self._get_db().booking_requests.update_one(
            {"booking_id": booking["booking_id"]},
            {
                "$set": {
                    "notification_status": (NotificationStatus.SENT if sent else NotificationStatus.FAILED).value,
                    "notification_error": None if sent else log.error_message,
                    "updated_at": datetime.now(timezone.utc),
                },
                "$inc": {"notification_attempts": 1},
            },
        )
        if not sent:
            logger.error(f"Booking {booking['booking_id']} notification failed: {log.error_message}")
        return sent

    async def submit(self, data: BookingSubmit) -> Dict[str, Any]:
        """Persist a pending booking, then notify the quotation owner."""
        db = self._get_db()
        quotation = await db.quotations.find_one({"short_id": data.quote_short_id}, {"_id": 0})
        if not quotation:
            raise NotFoundError("Quotation not found")

        owner = await db.users.find_one({"user_id": quotation["owner_id"]}, {"_id": 0})
        if not owner:
            raise NotFoundError("Quotation owner not found")

        pol = (quotation.get("pol") or {}).get("name", "")
        pod = (quotation.get("pod") or {}).get("name", "")
        booking = BookingRequest(
            quotation_id=quotation["quotation_id"],
            owner_id=quotation["owner_id"],
            shipper_company=data.shipper_company,
            shipper_name=data.shipper_name,
            shipper_email=data.shipper_email,
            shipper_phone=data.shipper_phone,
            ready_date=data.ready_date,
            commodity=data.commodity,
            volume=data.volume,
            message=data.message or None,
            route=f"{pol} → {pod}",
            quote_short_id=quotation["short_id"],
        )
        doc = booking.model_dump()
        await db.booking_requests.insert_one(doc)
        logger.info(f"Booking {booking.booking_id} submitted for quotation {booking.quote_short_id}")

        sent = await self._notify_owner(owner, doc)

        result = {
            "success": True,
            "booking_id": booking.booking_id,
            "notification_sent": sent,
        }
        if not sent:
            result["error_code"] = ErrorCode.DELIVERY_FAILED.value
            result["error"] = "Booking saved, but the forwarder could not be notified by email."
        return result

    async def retry_notification(self, session_email: Optional[str], booking_id: str) -> Dict[str, Any]:
        user, booking = await self._require_owned(session_email, booking_id)
        if booking.get("notification_status") == NotificationStatus.SENT.value:
            return {"success": True, "booking_id": booking_id, "notification_sent": True}

        if not await self._notify_owner(user, booking):
            raise DeliveryFailedError()
        return {"success": True, "booking_id": booking_id, "notification_sent": True}

    async def list_for_owner(self, session_email: Optional[str], limit: int = DEFAULT_LIST_LIMIT) -> Dict[str, Any]:
        user = await self._require_user(session_email)
        cursor = (
            self._get_db().booking_requests
            .find({"owner_id": user["user_id"]}, {"_id": 0})
            .sort("created_at", -1)
            .limit(limit)
        )
        docs = await cursor.to_list(limit)
        return {"success": True, "bookings": [serialize_booking(d) for d in docs]}

    async def update_status(self, session_email: Optional[str], booking_id: str, status: BookingStatus) -> Dict[str, Any]:
        """pending -> confirmed | cancelled. Both targets are terminal."""
        target = getattr(status, "value", status)
        if target not in TERMINAL_STATUSES:
            raise ValidationFailedError("Status must be confirmed or cancelled")

        user, booking = await self._require_owned(session_email, booking_id)
        if booking.get("status") != BookingStatus.PENDING.value:
            raise InvalidTransitionError(details={"current_status": booking.get("status")})

        result = await self._get_db().booking_requests.update_one(
            {"booking_id": booking_id, "owner_id": user["user_id"], "status": BookingStatus.PENDING.value},
            {"$set": {"status": target, "updated_at": datetime.now(timezone.utc)}},
        )
        if not result.modified_count:
            # Lost the race to another transition
            raise InvalidTransitionError()

        logger.info(f"Booking {booking_id} moved to {target} by {user['user_id']}")
        return {"success": True, "booking_id": booking_id, "status": target}


# Global service instance
booking_service = BookingService()
