"""Booking Routes - the owner's booking-request inbox."""
from fastapi import APIRouter, Query, Request
from middleware import get_session_email
from models import BookingStatusUpdate
from services.booking_service import booking_service

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


@router.get("")
async def list_bookings(request: Request, limit: int = Query(50, ge=1, le=200)):
    return await booking_service.list_for_owner(await get_session_email(request), limit=limit)


@router.patch("/{booking_id}/status")
async def update_booking_status(booking_id: str, body: BookingStatusUpdate, request: Request):
    return await booking_service.update_status(await get_session_email(request), booking_id, body.status)


@router.post("/{booking_id}/notify")
async def retry_booking_notification(booking_id: str, request: Request):
    """Re-send a failed owner notification."""
    return await booking_service.retry_notification(await get_session_email(request), booking_id)
