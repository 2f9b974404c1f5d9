import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session

from dental_clinic.core.logging import configure_logging
from dental_clinic.core.settings import settings, validate_settings
from dental_clinic.db.session import SessionLocal, engine
from dental_clinic.errors import SchedulerError, StorageUnavailableError
from dental_clinic.models import Base
from dental_clinic.routers.audit import router as audit_router
from dental_clinic.routers.auth import router as auth_router
from dental_clinic.routers.bookings import admin_router as admin_bookings_router
from dental_clinic.routers.bookings import router as bookings_router
from dental_clinic.routers.dentists import router as dentists_router
from dental_clinic.routers.notifications import router as notifications_router
from dental_clinic.routers.services import router as services_router
from dental_clinic.routers.settings import router as settings_router
from dental_clinic.routers.users import router as users_router
from dental_clinic.services.schedule import ensure_default_hours
from dental_clinic.services.users import seed_initial_admin

app = FastAPI(title="Dental Clinic API", version="0.1.0")
logger = logging.getLogger("dental_clinic.startup")


def _error_response(exc: SchedulerError, request: Request) -> JSONResponse:
    payload = {"detail": exc.message, "error": exc.kind}
    request_id = request.headers.get("x-request-id")
    if request_id:
        payload["request_id"] = request_id
    return JSONResponse(status_code=exc.status_code, content=payload)


@app.exception_handler(SchedulerError)
async def scheduler_error_handler(request: Request, exc: SchedulerError):
    return _error_response(exc, request)


@app.exception_handler(OperationalError)
@app.exception_handler(InterfaceError)
async def storage_error_handler(request: Request, exc: Exception):
    logger.error(
        "Database unavailable",
        exc_info=exc,
        extra={"request_id": request.headers.get("x-request-id")},
    )
    return _error_response(StorageUnavailableError(), request)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = request.headers.get("x-request-id")
    logger.exception("Unhandled server error", extra={"request_id": request_id})
    payload = {"detail": "Internal server error"}
    if request_id:
        payload["request_id"] = request_id
    return JSONResponse(status_code=500, content=payload)


@app.on_event("startup")
def startup():
    configure_logging(settings.log_level)
    validate_settings(settings)
    Base.metadata.create_all(bind=engine)

    admin_email = str(settings.admin_email)
    admin_password = settings.admin_password.strip()
    db: Session = SessionLocal()
    try:
        created = seed_initial_admin(db, email=admin_email, password=admin_password)
        if created:
            logger.info("Initial admin created for %s.", admin_email)
        else:
            logger.info("Initial admin not created (users already exist).")
        if ensure_default_hours(db):
            logger.info("Default clinic hours ensured (Mon-Fri 09:00-17:00).")
    finally:
        db.close()


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(auth_router)
app.include_router(users_router)
app.include_router(dentists_router)
app.include_router(services_router)
app.include_router(bookings_router)
app.include_router(admin_bookings_router)
app.include_router(audit_router)
app.include_router(settings_router)
app.include_router(notifications_router)
