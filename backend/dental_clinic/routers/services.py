from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from dental_clinic.db.session import get_db
from dental_clinic.deps import require_admin
from dental_clinic.models.service import ServiceCategory
from dental_clinic.models.user import User
from dental_clinic.schemas.service import ServiceCreate, ServiceOut, ServiceUpdate
from dental_clinic.services import catalog
from dental_clinic.services.context import Actor

router = APIRouter(prefix="/services", tags=["services"])


@router.get("", response_model=list[ServiceOut])
def list_services(
    category: ServiceCategory | None = Query(default=None),
    db: Session = Depends(get_db),
):
    return catalog.list_services(db, category=category)


@router.post("", response_model=ServiceOut, status_code=status.HTTP_201_CREATED)
def create_service(
    payload: ServiceCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return catalog.create_service(db, actor=Actor.from_user(admin), **payload.model_dump())


@router.get("/{service_id}", response_model=ServiceOut)
def get_service(service_id: int, db: Session = Depends(get_db)):
    return catalog.get_service(db, service_id)


@router.patch("/{service_id}", response_model=ServiceOut)
def update_service(
    service_id: int,
    payload: ServiceUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    service = catalog.get_service(db, service_id)
    return catalog.update_service(
        db,
        actor=Actor.from_user(admin),
        service=service,
        changes=payload.model_dump(exclude_unset=True),
    )
