import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Properties ---

class PropertyBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str = ""
    location: str = Field(min_length=1, max_length=255)
    price_per_night: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    is_available: bool = True
    image_url: Optional[str] = None


class PropertyCreate(PropertyBase):
    # owner_id comes from the token
    pass


class PropertyUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(default=None, min_length=1, max_length=255)
    price_per_night: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    is_available: Optional[bool] = None
    image_url: Optional[str] = None

    @field_validator("name", "description", "location", "price_per_night", "is_available")
    @classmethod
    def not_null(cls, value):
        # Omit a field to leave it unchanged; only image_url can be cleared
        if value is None:
            raise ValueError("may not be null")
        return value


class PropertyRead(PropertyBase):
    id: int
    owner_id: str
    created_at: datetime.datetime
    updated_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


# --- Bookings ---

class BookingBase(BaseModel):
    property_id: int
    check_in: datetime.date
    check_out: datetime.date


class BookingCreate(BookingBase):
    # user_id will come from the JWT token
    pass


class BookingUpdate(BaseModel):
    check_in: Optional[datetime.date] = None
    check_out: Optional[datetime.date] = None


class BookingRead(BookingBase):
    id: int
    user_id: str
    nights: int
    total_price: Decimal
    created_at: datetime.datetime
    updated_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


class QuoteRead(BaseModel):
    property_id: int
    check_in: datetime.date
    check_out: datetime.date
    nightly_rate: Decimal
    nights: int
    total: Decimal
