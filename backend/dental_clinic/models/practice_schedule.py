from __future__ import annotations

from datetime import date, time

from sqlalchemy import Boolean, Date, ForeignKey, Integer, String, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dental_clinic.models.base import Base


class PracticeHour(Base):
    __tablename__ = "practice_hours"
    __table_args__ = (UniqueConstraint("day_of_week", name="uq_practice_hours_day"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    is_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class DentistHour(Base):
    """Weekly working window of one dentist; replaces the clinic hours for that weekday."""

    __tablename__ = "dentist_hours"
    __table_args__ = (
        UniqueConstraint("dentist_id", "day_of_week", name="uq_dentist_hours_dentist_day"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    dentist_id: Mapped[int] = mapped_column(
        ForeignKey("dentists.id", ondelete="CASCADE"), nullable=False, index=True
    )
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    dentist = relationship("Dentist", back_populates="hours")


class PracticeClosure(Base):
    __tablename__ = "practice_closures"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)


class PracticeOverride(Base):
    __tablename__ = "practice_overrides"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    is_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
