"""Public Routes - no authentication.

GET  /api/public/quotes/{short_id} - rendered quote for recipients
POST /api/public/bookings          - shipper booking request
"""
from fastapi import APIRouter, Request
from middleware import get_session_email
from models import BookingSubmit
from services.booking_service import booking_service
from services.quotation_service import quotation_service

router = APIRouter(prefix="/api/public", tags=["public"])


@router.get("/quotes/{short_id}")
async def get_public_quotation(short_id: str, request: Request, increment_view: bool = True):
    """Counts a view unless suppressed or the signed-in owner is previewing."""
    if increment_view:
        session_email = await get_session_email(request)
        if session_email and await quotation_service.is_owner(session_email, short_id):
            increment_view = False
    return await quotation_service.get_public(short_id, increment_view=increment_view)


@router.post("/bookings", status_code=201)
async def submit_booking(body: BookingSubmit):
    return await booking_service.submit(body)
