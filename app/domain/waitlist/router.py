"""Waitlist router - FastAPI endpoints for waitlist operations"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import WaitlistEntry
from ..booking.router import reservation_response
from ..booking.schemas import ReservationResponse
from .schemas import (
    AcceptOfferResponse,
    ConvertWaitlistRequest,
    CreateWaitlistEntryRequest,
    NotifyNextRequest,
    NotifyNextResponse,
    OfferActionRequest,
    OfferSlotResponse,
    WaitlistEntryResponse,
    WaitlistNotificationResponse,
)
from .service import WaitlistService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/waitlist", tags=["Waitlist"])
manage_router = APIRouter(prefix="/manage/waitlist", tags=["Waitlist"])


def get_waitlist_service(db: Session = Depends(get_db)) -> WaitlistService:
    """Dependency injection for WaitlistService"""
    return WaitlistService(db)


def entry_response(e: WaitlistEntry) -> WaitlistEntryResponse:
    return WaitlistEntryResponse(
        id=e.id,
        businessId=e.business_id,
        clientId=e.client_id,
        serviceIds=e.service_ids,
        staffId=e.staff_id,
        dateFrom=e.date_from,
        dateTo=e.date_to,
        timeFrom=e.time_from,
        timeTo=e.time_to,
        daysOfWeek=e.days_of_week,
        priority=e.priority,
        status=e.status,
        expiresAt=e.expires_at,
        createdAt=e.created_at,
        notifications=[
            WaitlistNotificationResponse(
                id=n.id,
                reservationId=n.reservation_id,
                sentAt=n.sent_at,
                expiresAt=n.expires_at,
                status=n.status,
            )
            for n in e.notifications
        ],
    )


# ============================================================================
# CLIENT
# ============================================================================


@router.post("", response_model=WaitlistEntryResponse, status_code=201)
async def create_waitlist_entry(
    data: CreateWaitlistEntryRequest,
    service: WaitlistService = Depends(get_waitlist_service),
):
    """Join a business waitlist"""
    return entry_response(service.create_entry(data))


@router.post("/{entry_id}/offers/{notification_id}/accept", response_model=AcceptOfferResponse)
async def accept_offer(
    entry_id: int,
    notification_id: int,
    data: OfferActionRequest,
    service: WaitlistService = Depends(get_waitlist_service),
):
    result = service.accept_offer(entry_id, notification_id, data.userId)
    return AcceptOfferResponse(
        entry=entry_response(result["entry"]),
        message=result["message"],
        slot=OfferSlotResponse(**result["slot"]) if result["slot"] else None,
    )


@router.post("/{entry_id}/offers/{notification_id}/decline", response_model=WaitlistEntryResponse)
async def decline_offer(
    entry_id: int,
    notification_id: int,
    data: OfferActionRequest,
    service: WaitlistService = Depends(get_waitlist_service),
):
    """Decline an offer and stay on the waitlist"""
    entry = await service.decline_offer(entry_id, notification_id, data.userId)
    return entry_response(entry)


# ============================================================================
# BUSINESS MANAGEMENT
# ============================================================================


@manage_router.delete("/{entry_id}", response_model=WaitlistEntryResponse)
async def cancel_waitlist_entry(
    entry_id: int,
    business_id: int = Query(..., alias="businessId"),
    service: WaitlistService = Depends(get_waitlist_service),
):
    return entry_response(service.cancel_entry(entry_id, business_id))


@manage_router.post("/{entry_id}/convert", response_model=ReservationResponse, status_code=201)
async def convert_waitlist_entry(
    entry_id: int,
    data: ConvertWaitlistRequest,
    service: WaitlistService = Depends(get_waitlist_service),
):
    """Book the waitlisted client into a specific slot"""
    result = await service.convert_to_reservation(
        entry_id, data.businessId, data.staffId, data.date, data.startTime, data.createdBy
    )
    return reservation_response(result["reservation"])


@manage_router.post("/notify-next", response_model=NotifyNextResponse)
async def notify_next_in_waitlist(
    data: NotifyNextRequest,
    service: WaitlistService = Depends(get_waitlist_service),
):
    entry = await service.notify_next(data.businessId, data.reservationId)
    return NotifyNextResponse(notified=entry is not None, entry=entry_response(entry) if entry else None)
