"""Quotation Routes - owner side of the quote lifecycle.

Every endpoint requires a session; ownership is enforced in the service.
"""
from fastapi import APIRouter, Query, Request
from middleware import get_session_email
from models import QuotationCreate, QuotationUpdate
from services.quotation_service import quotation_service
from typing import Optional

router = APIRouter(prefix="/api/quotes", tags=["quotes"])


@router.post("", status_code=201)
async def create_quotation(body: QuotationCreate, request: Request):
    return await quotation_service.create(await get_session_email(request), body)


@router.get("")
async def list_quotations(
    request: Request,
    search: Optional[str] = None,
    container_type: Optional[str] = None,
    transport_mode: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
):
    """Dashboard list, newest first. "ALL" or empty facets mean no filter."""
    return await quotation_service.list_for_owner(
        await get_session_email(request),
        search=search,
        container_type=container_type,
        transport_mode=transport_mode,
        limit=limit,
    )


@router.get("/{short_id}")
async def get_quotation_for_edit(short_id: str, request: Request):
    return await quotation_service.get_for_edit(await get_session_email(request), short_id)


@router.patch("/{short_id}")
async def update_quotation(short_id: str, body: QuotationUpdate, request: Request):
    return await quotation_service.update(await get_session_email(request), short_id, body)


@router.delete("/{short_id}")
async def delete_quotation(short_id: str, request: Request):
    return await quotation_service.delete(await get_session_email(request), short_id)


@router.get("/{short_id}/share")
async def get_share_link(short_id: str, request: Request, locale: Optional[str] = None):
    return await quotation_service.get_share_link(await get_session_email(request), short_id, locale)
