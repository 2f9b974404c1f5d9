from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from dental_clinic.models.dentist import Specialization
from dental_clinic.schemas.practice_schedule import DentistHourOut


class DentistSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    specialization: Specialization


class DentistOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    full_name: str
    email: Optional[EmailStr] = None
    specialization: Specialization
    license_number: str
    years_of_experience: int
    bio: Optional[str] = None
    consultation_fee: Decimal
    is_active: bool
    hours: list[DentistHourOut] = []
    created_at: datetime


class DentistCreate(BaseModel):
    email: EmailStr
    full_name: str = Field(min_length=2, max_length=200)
    temp_password: str = Field(min_length=12, max_length=72)
    phone: Optional[str] = None
    specialization: Specialization = Specialization.general
    license_number: str = Field(min_length=1, max_length=64)
    years_of_experience: int = Field(default=0, ge=0, le=50)
    bio: Optional[str] = Field(default=None, max_length=1000)
    consultation_fee: Decimal = Field(default=Decimal("0"), ge=0)


class DentistUpdate(BaseModel):
    specialization: Optional[Specialization] = None
    years_of_experience: Optional[int] = Field(default=None, ge=0, le=50)
    bio: Optional[str] = Field(default=None, max_length=1000)
    consultation_fee: Optional[Decimal] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
