from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dental_clinic.models.base import Base, UTCDateTime


class AppointmentSlot(Base):
    """One grid cell of a dentist's diary held by a live appointment.

    The unique constraint on (dentist_id, slot_start) is what stops two live
    appointments of the same dentist from overlapping, whatever order
    concurrent transactions commit in. Rows exist only while the owning
    appointment is PENDING or CONFIRMED.
    """

    __tablename__ = "appointment_slots"
    __table_args__ = (
        UniqueConstraint("dentist_id", "slot_start", name="uq_appointment_slots_dentist_start"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    appointment_id: Mapped[int] = mapped_column(
        ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    dentist_id: Mapped[int] = mapped_column(ForeignKey("dentists.id"), nullable=False)
    slot_start: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    appointment = relationship("Appointment", back_populates="slots")
