from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from dental_clinic.models.appointment import AppointmentStatus, BookingSource, PaymentStatus
from dental_clinic.schemas.actor import ActorOut
from dental_clinic.schemas.dentist import DentistSummary
from dental_clinic.schemas.service import ServiceSummary


class BookingCreate(BaseModel):
    dentist_id: int
    starts_at: datetime
    service_id: Optional[int] = None
    patient_id: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    symptoms: Optional[str] = Field(default=None, max_length=300)


class BookingUpdate(BaseModel):
    symptoms: Optional[str] = Field(default=None, max_length=300)
    notes: Optional[str] = Field(default=None, max_length=500)
    clinical_notes: Optional[str] = Field(default=None, max_length=1000)
    price: Optional[Decimal] = Field(default=None, ge=0)
    payment_status: Optional[PaymentStatus] = None


class StatusChange(BaseModel):
    status: AppointmentStatus
    reason: Optional[str] = Field(default=None, max_length=500)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class RescheduleRequest(BaseModel):
    starts_at: datetime


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    dentist_id: int
    service_id: Optional[int] = None
    patient: ActorOut
    dentist: DentistSummary
    service: Optional[ServiceSummary] = None
    starts_at: datetime
    ends_at: datetime
    status: AppointmentStatus
    payment_status: PaymentStatus
    notes: Optional[str] = None
    symptoms: Optional[str] = None
    clinical_notes: Optional[str] = None
    price: Optional[Decimal] = None
    created_by: BookingSource
    cancel_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class BookingPage(BaseModel):
    items: list[BookingOut]
    total: int
    page: int
    limit: int
    pages: int


class AvailabilityOut(BaseModel):
    dentist_id: int
    starts_at: datetime
    ends_at: datetime
    available: bool
    reason: Optional[str] = None


class FreeSlotsOut(BaseModel):
    dentist_id: int
    date: date
    duration_minutes: int
    slots: list[datetime]
