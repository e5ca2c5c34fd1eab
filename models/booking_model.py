from pydantic import BaseModel, field_validator
from typing import Optional, Dict, Any
from datetime import datetime

from db.mongodb import stringify_id
from models.enums import BookingType

class Booking(BaseModel):
    """Booking record owned by the bookings service; read-only here"""
    id: str
    customer_id: str
    provider_id: str
    type: Optional[BookingType] = None
    created_at: Optional[datetime] = None

    model_config = {"extra": "ignore"}

    @field_validator("customer_id", "provider_id", mode="before")
    @classmethod
    def parse_user_ref(cls, value):
        return stringify_id(value)

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, value):
        try:
            return BookingType(value) if value is not None else None
        except ValueError:
            return None

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Booking":
        data = dict(document)
        data["id"] = str(data.pop("_id", data.get("id")))
        return cls(**data)
