"""Waitlist domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import (
    validate_date_string,
    validate_days_of_week,
    validate_service_ids,
    validate_time_string,
)


class CreateWaitlistEntryRequest(BaseModel):
    """Schema for joining a business waitlist"""

    userId: int
    businessId: int
    serviceIds: list[int]
    staffId: Optional[int] = None
    dateFrom: Optional[str] = None  # YYYY-MM-DD
    dateTo: Optional[str] = None
    timeFrom: Optional[str] = None  # HH:MM
    timeTo: Optional[str] = None
    daysOfWeek: Optional[list[int]] = None  # 0 = Sunday
    priority: Literal["normal", "vip"] = "normal"
    expiresAt: Optional[datetime] = None

    @field_validator("serviceIds")
    @classmethod
    def validate_services(cls, v):
        return validate_service_ids(v)

    @field_validator("dateFrom", "dateTo")
    @classmethod
    def validate_dates(cls, v):
        return validate_date_string(v)

    @field_validator("timeFrom", "timeTo")
    @classmethod
    def validate_times(cls, v):
        return validate_time_string(v)

    @field_validator("daysOfWeek")
    @classmethod
    def validate_days(cls, v):
        return validate_days_of_week(v)


class OfferActionRequest(BaseModel):
    userId: int


class ConvertWaitlistRequest(BaseModel):
    businessId: int
    staffId: int
    date: str
    startTime: str
    createdBy: Optional[int] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v):
        return validate_date_string(v)

    @field_validator("startTime")
    @classmethod
    def validate_start_time(cls, v):
        return validate_time_string(v)


class NotifyNextRequest(BaseModel):
    businessId: int
    reservationId: Optional[int] = None


class WaitlistNotificationResponse(BaseModel):
    id: int
    reservationId: Optional[int] = None
    sentAt: datetime
    expiresAt: datetime
    status: str


class WaitlistEntryResponse(BaseModel):
    id: int
    businessId: int
    clientId: int
    serviceIds: list[int]
    staffId: Optional[int] = None
    dateFrom: Optional[date] = None
    dateTo: Optional[date] = None
    timeFrom: Optional[str] = None
    timeTo: Optional[str] = None
    daysOfWeek: Optional[list[int]] = None
    priority: str
    status: str
    expiresAt: datetime
    createdAt: Optional[datetime] = None
    notifications: list[WaitlistNotificationResponse] = []


class OfferSlotResponse(BaseModel):
    date: date
    startTime: str
    staffId: int
    serviceIds: list[int]


class AcceptOfferResponse(BaseModel):
    entry: WaitlistEntryResponse
    message: str
    slot: Optional[OfferSlotResponse] = None


class NotifyNextResponse(BaseModel):
    notified: bool
    entry: Optional[WaitlistEntryResponse] = None
