"""Booking domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import (
    validate_date_string,
    validate_email,
    validate_phone,
    validate_service_ids,
    validate_time_string,
)


class _SlotRequest(BaseModel):
    """Common date/time/services validation"""

    @field_validator("serviceIds", check_fields=False)
    @classmethod
    def validate_services(cls, v):
        return validate_service_ids(v)

    @field_validator("date", check_fields=False)
    @classmethod
    def validate_date(cls, v):
        return validate_date_string(v)

    @field_validator("startTime", check_fields=False)
    @classmethod
    def validate_start_time(cls, v):
        return validate_time_string(v)


class CreateBookingRequest(_SlotRequest):
    """Client booking from the app or the public API"""

    userId: int
    businessId: int
    serviceIds: list[int]
    staffId: Optional[int] = None  # None = any available staff
    date: str  # YYYY-MM-DD
    startTime: str  # HH:MM
    discountCode: Optional[str] = None
    clientNotes: Optional[str] = None
    source: Literal["app_client", "api"] = "app_client"


class CalculatePriceRequest(_SlotRequest):
    businessId: int
    serviceIds: list[int]
    userId: Optional[int] = None
    discountCode: Optional[str] = None


class CheckAvailabilityRequest(_SlotRequest):
    businessId: int
    serviceIds: list[int]
    date: str
    staffId: Optional[int] = None
    startTime: Optional[str] = None


class CancelBookingRequest(BaseModel):
    userId: int
    reason: Optional[str] = None


class RescheduleBookingRequest(_SlotRequest):
    userId: int
    date: str
    startTime: str


class ManualAppointmentRequest(_SlotRequest):
    """Walk-in or phone booking entered by the business"""

    businessId: int
    staffId: int
    serviceIds: list[int]
    date: str
    startTime: str
    clientId: Optional[int] = None
    clientName: Optional[str] = None
    clientPhone: Optional[str] = None
    clientEmail: Optional[str] = None
    businessNotes: Optional[str] = None
    createdBy: Optional[int] = None

    @field_validator("clientPhone")
    @classmethod
    def validate_client_phone(cls, v):
        return validate_phone(v)

    @field_validator("clientEmail")
    @classmethod
    def validate_client_email(cls, v):
        return validate_email(v)


class UpdateStatusRequest(BaseModel):
    businessId: int
    action: Literal["confirm", "check-in", "start", "complete", "cancel", "no-show"]
    reason: Optional[str] = None
    changedBy: Optional[str] = None


class ServiceItemResponse(BaseModel):
    serviceId: int
    name: str
    duration: int
    price: float
    discount: float = 0


class StatusHistoryResponse(BaseModel):
    status: str
    changedAt: datetime
    changedBy: Optional[str] = None
    reason: Optional[str] = None


class ReservationResponse(BaseModel):
    id: int
    businessId: int
    clientId: Optional[int] = None
    staffId: int
    clientName: str
    clientPhone: Optional[str] = None
    clientEmail: Optional[str] = None
    staffName: str
    services: list[ServiceItemResponse]
    date: date
    startTime: str
    endTime: str
    startAt: datetime
    endAt: datetime
    totalDuration: int
    subtotal: float
    discountAmount: float
    discountCode: Optional[str] = None
    depositAmount: float
    depositPaid: bool
    total: float
    status: str
    source: str
    cancelledAt: Optional[datetime] = None
    cancelledBy: Optional[str] = None
    cancellationReason: Optional[str] = None
    refundAmount: float = 0
    statusHistory: list[StatusHistoryResponse] = []


class BookingResponse(BaseModel):
    reservation: ReservationResponse
    requiresDeposit: bool
    depositAmount: float


class CancelBookingResponse(BaseModel):
    reservation: ReservationResponse
    refundAmount: float
    penaltyApplied: bool


class SlotResponse(BaseModel):
    time: str
    endTime: str
    staffIds: list[int]


class AvailabilityResponse(BaseModel):
    date: str
    slots: list[SlotResponse]
