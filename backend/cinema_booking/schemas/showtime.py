"""
Pydantic schemas for showtime-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


class ShowtimeCreate(BaseModel):
    movie_title: str = Field(..., min_length=1, max_length=255)
    studio: Optional[str] = Field(None, max_length=100)
    starts_at: datetime
    ticket_price: Decimal = Field(..., ge=0)
    seat_capacity: int = Field(..., gt=0, le=2000)


class ShowtimeResponse(BaseModel):
    id: int
    movie_title: str
    studio: Optional[str]
    starts_at: datetime
    ticket_price: Decimal
    seat_capacity: int
    created_at: datetime

    model_config = {"from_attributes": True}


class ShowtimeListResponse(BaseModel):
    showtimes: list[ShowtimeResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False
