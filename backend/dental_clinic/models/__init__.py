from dental_clinic.models.base import Base
from dental_clinic.models.user import Role, User
from dental_clinic.models.audit_log import AuditLog
from dental_clinic.models.dentist import Dentist, Specialization
from dental_clinic.models.service import Service, ServiceCategory
from dental_clinic.models.appointment import (
    LIVE_STATUSES,
    TERMINAL_STATUSES,
    Appointment,
    AppointmentStatus,
    BookingSource,
    PaymentStatus,
)
from dental_clinic.models.appointment_slot import AppointmentSlot
from dental_clinic.models.practice_schedule import (
    DentistHour,
    PracticeClosure,
    PracticeHour,
    PracticeOverride,
)
from dental_clinic.models.notification import Notification

__all__ = [
    "Base",
    "Role",
    "User",
    "AuditLog",
    "Dentist",
    "Specialization",
    "Service",
    "ServiceCategory",
    "Appointment",
    "AppointmentStatus",
    "BookingSource",
    "PaymentStatus",
    "LIVE_STATUSES",
    "TERMINAL_STATUSES",
    "AppointmentSlot",
    "PracticeHour",
    "DentistHour",
    "PracticeClosure",
    "PracticeOverride",
    "Notification",
]
