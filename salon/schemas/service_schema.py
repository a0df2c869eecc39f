"""Service catalog data models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ServiceCategory(str, Enum):
    CUTS = "cuts"
    COLOR = "color"
    STYLING = "styling"
    TREATMENTS = "treatments"
    PACKAGES = "packages"
    CONSULTATIONS = "consultations"


class Service(BaseModel):
    """A bookable salon offering."""
    id: str = Field(pattern=r"^[a-z0-9][a-z0-9-]*$")
    name: str = Field(min_length=1)
    description: str = ""
    category: ServiceCategory = ServiceCategory.CUTS
    price_cents: int = Field(ge=0)
    duration_minutes: int = Field(ge=15, le=480)
    is_active: bool = True
    bookings_count: int = 0


class ServiceUpdate(BaseModel):
    """Administrative edit. Omitted fields keep their current value."""
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[ServiceCategory] = None
    price_cents: Optional[int] = Field(default=None, ge=0)
    duration_minutes: Optional[int] = Field(default=None, ge=15, le=480)
    is_active: Optional[bool] = None
