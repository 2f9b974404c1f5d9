from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Index, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dental_clinic.models.base import Base, TimestampMixin, UTCDateTime


def _enum_values(members) -> list[str]:
    return [member.value for member in members]


class AppointmentStatus(str, enum.Enum):
    pending = "PENDING"
    confirmed = "CONFIRMED"
    completed = "COMPLETED"
    cancelled = "CANCELLED"
    no_show = "NO_SHOW"


class PaymentStatus(str, enum.Enum):
    pending = "PENDING"
    paid = "PAID"
    refunded = "REFUNDED"


class BookingSource(str, enum.Enum):
    user = "USER"
    admin = "ADMIN"
    dentist = "DENTIST"


LIVE_STATUSES = frozenset({AppointmentStatus.pending, AppointmentStatus.confirmed})
TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.cancelled, AppointmentStatus.completed, AppointmentStatus.no_show}
)


class Appointment(Base, TimestampMixin):
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("ends_at > starts_at", name="ck_appointments_interval"),
        CheckConstraint("price IS NULL OR price >= 0", name="ck_appointments_price_non_negative"),
        UniqueConstraint("patient_id", "idempotency_key", name="uq_appointments_patient_idempotency"),
        Index("ix_appointments_dentist_starts_at", "dentist_id", "starts_at"),
        Index("ix_appointments_patient_starts_at", "patient_id", "starts_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    dentist_id: Mapped[int] = mapped_column(ForeignKey("dentists.id"), nullable=False)
    service_id: Mapped[int | None] = mapped_column(ForeignKey("services.id"), nullable=True)
    starts_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus, name="appointment_status", values_callable=_enum_values),
        default=AppointmentStatus.pending,
        nullable=False,
        index=True,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status", values_callable=_enum_values),
        default=PaymentStatus.pending,
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    symptoms: Mapped[str | None] = mapped_column(String(300), nullable=True)
    clinical_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    created_by: Mapped[BookingSource] = mapped_column(
        Enum(BookingSource, name="booking_source", values_callable=_enum_values),
        default=BookingSource.user,
        nullable=False,
    )
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    cancelled_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    patient = relationship("User", foreign_keys=[patient_id], lazy="joined")
    dentist = relationship("Dentist", lazy="joined")
    service = relationship("Service", lazy="joined")
    slots = relationship("AppointmentSlot", back_populates="appointment", passive_deletes=True)

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    @property
    def duration_minutes(self) -> int:
        return int((self.ends_at - self.starts_at).total_seconds() // 60)
