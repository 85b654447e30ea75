from pydantic import Field, field_validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from park_booking.schemas import CamelModel, TIME_SLOT_PATTERN

class AttractionBase(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = ""
    location: Optional[str] = ""
    opening_time: Optional[str] = None
    closing_time: Optional[str] = None
    ticket_price: Decimal = Field(..., ge=0)
    capacity_per_slot: int = Field(..., ge=1)
    image_url: Optional[str] = ""
    is_active: bool = True

    @field_validator("opening_time", "closing_time")
    @classmethod
    def validate_timing(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not TIME_SLOT_PATTERN.match(v):
            raise ValueError("timings must be HH:MM in 24-hour format")
        return v

class AttractionCreate(AttractionBase):
    pass

class AttractionUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = None
    opening_time: Optional[str] = None
    closing_time: Optional[str] = None
    ticket_price: Optional[Decimal] = Field(None, ge=0)
    capacity_per_slot: Optional[int] = Field(None, ge=1)
    image_url: Optional[str] = None

    @field_validator("name", "ticket_price", "capacity_per_slot")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("field cannot be null")
        return v

    @field_validator("opening_time", "closing_time")
    @classmethod
    def validate_timing(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not TIME_SLOT_PATTERN.match(v):
            raise ValueError("timings must be HH:MM in 24-hour format")
        return v

class Attraction(AttractionBase):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class AttractionList(CamelModel):
    count: int
    total: int
    total_pages: int
    current_page: int
    data: List[Attraction]
