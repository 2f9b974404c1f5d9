from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from dental_clinic.models.service import ServiceCategory


class ServiceSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    duration_minutes: int
    price: Decimal


class ServiceOut(ServiceSummary):
    description: str
    category: ServiceCategory
    is_active: bool
    created_at: datetime


class ServiceCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    category: ServiceCategory = ServiceCategory.general
    duration_minutes: int = Field(ge=15, le=240)
    price: Decimal = Field(ge=0)


class ServiceUpdate(BaseModel):
    description: Optional[str] = Field(default=None, max_length=500)
    category: Optional[ServiceCategory] = None
    duration_minutes: Optional[int] = Field(default=None, ge=15, le=240)
    price: Optional[Decimal] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
