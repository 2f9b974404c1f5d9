from __future__ import annotations

import enum
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dental_clinic.models.base import Base, SoftDeleteMixin, TimestampMixin


class Specialization(str, enum.Enum):
    general = "General Dentistry"
    orthodontics = "Orthodontics"
    oral_surgery = "Oral Surgery"
    endodontics = "Endodontics"
    periodontics = "Periodontics"
    prosthodontics = "Prosthodontics"
    pediatric = "Pediatric Dentistry"
    cosmetic = "Cosmetic Dentistry"
    oral_pathology = "Oral Pathology"


class Dentist(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "dentists"
    __table_args__ = (
        CheckConstraint("consultation_fee >= 0", name="ck_dentists_fee_non_negative"),
        CheckConstraint(
            "years_of_experience >= 0 AND years_of_experience <= 50",
            name="ck_dentists_experience_range",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    specialization: Mapped[Specialization] = mapped_column(
        Enum(
            Specialization,
            name="dentist_specialization",
            values_callable=lambda members: [member.value for member in members],
        ),
        default=Specialization.general,
        nullable=False,
    )
    license_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    years_of_experience: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    consultation_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    user = relationship("User", lazy="joined")
    hours = relationship(
        "DentistHour",
        back_populates="dentist",
        cascade="all, delete-orphan",
        order_by="DentistHour.day_of_week",
    )

    @property
    def full_name(self) -> str:
        return self.user.full_name if self.user else ""

    @property
    def email(self) -> str | None:
        return self.user.email if self.user else None

    @property
    def is_bookable(self) -> bool:
        return self.is_active and not self.is_deleted
