from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from dental_clinic.db.session import get_db
from dental_clinic.deps import require_admin
from dental_clinic.errors import NotFoundError
from dental_clinic.models.appointment import Appointment
from dental_clinic.models.audit_log import AuditLog
from dental_clinic.schemas.audit_log import AuditLogOut

router = APIRouter(tags=["audit"])


@router.get("/appointments/{appointment_id}/audit", response_model=list[AuditLogOut])
def appointment_audit(
    appointment_id: int,
    db: Session = Depends(get_db),
    _admin=Depends(require_admin),
):
    if db.get(Appointment, appointment_id) is None:
        raise NotFoundError("Booking not found")
    stmt = (
        select(AuditLog)
        .where(AuditLog.entity_type == "appointment", AuditLog.entity_id == str(appointment_id))
        .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
    )
    return list(db.scalars(stmt).unique())
