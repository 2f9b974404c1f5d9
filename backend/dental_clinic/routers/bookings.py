import math
from datetime import date

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from dental_clinic.core.settings import settings
from dental_clinic.deps import get_scheduler_context
from dental_clinic.errors import ForbiddenError
from dental_clinic.models.appointment import AppointmentStatus
from dental_clinic.schemas.appointment import (
    BookingCreate,
    BookingOut,
    BookingPage,
    BookingUpdate,
    CancelRequest,
    RescheduleRequest,
    StatusChange,
)
from dental_clinic.services import bookings, lifecycle
from dental_clinic.services.context import SchedulerContext
from dental_clinic.services.rate_limit import SimpleRateLimiter

router = APIRouter(prefix="/bookings", tags=["bookings"])

BOOKING_LIMITER = SimpleRateLimiter(max_events=settings.bookings_per_minute, window_seconds=60)


def page_of(items, total: int, page: int, limit: int) -> BookingPage:
    return BookingPage(
        items=[BookingOut.model_validate(item) for item in items],
        total=total,
        page=page,
        limit=limit,
        pages=math.ceil(total / limit) if total else 0,
    )


@router.post("", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreate,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key", max_length=128),
    ctx: SchedulerContext = Depends(get_scheduler_context),
):
    if not BOOKING_LIMITER.allow(f"user:{ctx.actor.user_id}"):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many booking attempts")
    return bookings.create_booking(
        ctx,
        dentist_id=payload.dentist_id,
        starts_at=payload.starts_at,
        service_id=payload.service_id,
        patient_id=payload.patient_id,
        notes=payload.notes,
        symptoms=payload.symptoms,
        idempotency_key=idempotency_key,
    )


@router.get("", response_model=BookingPage)
def list_my_bookings(
    status_filter: AppointmentStatus | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    ctx: SchedulerContext = Depends(get_scheduler_context),
):
    items, total = bookings.list_bookings(ctx, status=status_filter, page=page, limit=limit)
    return page_of(items, total, page, limit)


@router.get("/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: int, ctx: SchedulerContext = Depends(get_scheduler_context)):
    appt = bookings.get_booking(ctx, booking_id)
    if not bookings.can_view(ctx, appt):
        raise ForbiddenError("You do not have permission to view this booking")
    return appt


@router.patch("/{booking_id}", response_model=BookingOut)
def update_booking(
    booking_id: int,
    payload: BookingUpdate,
    ctx: SchedulerContext = Depends(get_scheduler_context),
):
    return bookings.update_booking_details(ctx, booking_id, payload.model_dump(exclude_unset=True))


@router.post("/{booking_id}/status", response_model=BookingOut)
def change_status(
    booking_id: int,
    payload: StatusChange,
    ctx: SchedulerContext = Depends(get_scheduler_context),
):
    return lifecycle.transition_status(ctx, booking_id, payload.status, reason=payload.reason)


@router.post("/{booking_id}/cancel", response_model=BookingOut)
def cancel_booking(
    booking_id: int,
    payload: CancelRequest | None = None,
    ctx: SchedulerContext = Depends(get_scheduler_context),
):
    return lifecycle.cancel_booking(ctx, booking_id, reason=payload.reason if payload else None)


@router.post("/{booking_id}/reschedule", response_model=BookingOut)
def reschedule_booking(
    booking_id: int,
    payload: RescheduleRequest,
    ctx: SchedulerContext = Depends(get_scheduler_context),
):
    return bookings.reschedule_booking(ctx, booking_id, starts_at=payload.starts_at)


admin_router = APIRouter(prefix="/admin/bookings", tags=["bookings"])


@admin_router.get("", response_model=BookingPage)
def list_all_bookings(
    status_filter: AppointmentStatus | None = Query(default=None, alias="status"),
    dentist_id: int | None = Query(default=None),
    date_from: date | None = Query(default=None, alias="from"),
    date_to: date | None = Query(default=None, alias="to"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    ctx: SchedulerContext = Depends(get_scheduler_context),
):
    if ctx.actor.role.value not in ("admin", "dentist"):
        raise ForbiddenError("Only staff can list all bookings")
    items, total = bookings.list_bookings(
        ctx,
        status=status_filter,
        dentist_id=dentist_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    return page_of(items, total, page, limit)
