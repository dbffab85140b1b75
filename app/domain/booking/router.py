"""Booking router - FastAPI endpoints for client and business booking operations"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import Reservation
from .schemas import (
    AvailabilityResponse,
    BookingResponse,
    CalculatePriceRequest,
    CancelBookingRequest,
    CancelBookingResponse,
    CheckAvailabilityRequest,
    CreateBookingRequest,
    ManualAppointmentRequest,
    RescheduleBookingRequest,
    ReservationResponse,
    ServiceItemResponse,
    StatusHistoryResponse,
    UpdateStatusRequest,
)
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])
manage_router = APIRouter(prefix="/manage/appointments", tags=["Appointments"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


def reservation_response(r: Reservation) -> ReservationResponse:
    return ReservationResponse(
        id=r.id,
        businessId=r.business_id,
        clientId=r.client_id,
        staffId=r.staff_id,
        clientName=r.client_name,
        clientPhone=r.client_phone,
        clientEmail=r.client_email,
        staffName=r.staff_name,
        services=[ServiceItemResponse(**item) for item in r.services],
        date=r.date,
        startTime=r.start_time,
        endTime=r.end_time,
        startAt=r.start_at,
        endAt=r.end_at,
        totalDuration=r.total_duration,
        subtotal=r.subtotal,
        discountAmount=r.discount_amount,
        discountCode=r.discount_code,
        depositAmount=r.deposit_amount,
        depositPaid=r.deposit_paid,
        total=r.total,
        status=r.status,
        source=r.source,
        cancelledAt=r.cancelled_at,
        cancelledBy=r.cancelled_by,
        cancellationReason=r.cancellation_reason,
        refundAmount=r.refund_amount or 0,
        statusHistory=[
            StatusHistoryResponse(
                status=h.status, changedAt=h.changed_at, changedBy=h.changed_by, reason=h.reason
            )
            for h in r.status_history
        ],
    )


# ============================================================================
# CLIENT BOOKING
# ============================================================================


@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    data: CreateBookingRequest,
    service: BookingService = Depends(get_booking_service),
):
    """Book services with a staff member (or any available staff)"""
    result = await service.create_booking(data)
    return BookingResponse(
        reservation=reservation_response(result["reservation"]),
        requiresDeposit=result["requiresDeposit"],
        depositAmount=result["depositAmount"],
    )


@router.post("/calculate-price")
async def calculate_price(
    data: CalculatePriceRequest,
    service: BookingService = Depends(get_booking_service),
):
    """Price preview, identical to what booking would charge"""
    return service.calculate_price(data)


@router.post("/check-availability", response_model=AvailabilityResponse)
async def check_availability(
    data: CheckAvailabilityRequest,
    service: BookingService = Depends(get_booking_service),
):
    """Free start times for a day"""
    return service.check_availability(data)


@router.post("/{reservation_id}/cancel", response_model=CancelBookingResponse)
async def cancel_booking(
    reservation_id: int,
    data: CancelBookingRequest,
    service: BookingService = Depends(get_booking_service),
):
    result = await service.cancel_booking(reservation_id, data.userId, data.reason)
    return CancelBookingResponse(
        reservation=reservation_response(result["reservation"]),
        refundAmount=result["refundAmount"],
        penaltyApplied=result["penaltyApplied"],
    )


@router.post("/{reservation_id}/reschedule", response_model=ReservationResponse)
async def reschedule_booking(
    reservation_id: int,
    data: RescheduleBookingRequest,
    service: BookingService = Depends(get_booking_service),
):
    reservation = await service.reschedule_booking(reservation_id, data.userId, data.date, data.startTime)
    return reservation_response(reservation)


# ============================================================================
# BUSINESS MANAGEMENT
# ============================================================================


@manage_router.post("", response_model=ReservationResponse, status_code=201)
async def create_manual_appointment(
    data: ManualAppointmentRequest,
    service: BookingService = Depends(get_booking_service),
):
    """Walk-in or phone booking entered by staff"""
    reservation = await service.create_manual_appointment(data)
    return reservation_response(reservation)


@manage_router.patch("/{reservation_id}/status", response_model=ReservationResponse)
async def update_appointment_status(
    reservation_id: int,
    data: UpdateStatusRequest,
    service: BookingService = Depends(get_booking_service),
):
    reservation = await service.update_status(
        reservation_id, data.businessId, data.action, data.reason, data.changedBy
    )
    return reservation_response(reservation)
