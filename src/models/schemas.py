"""
Pydantic models for data validation and serialization.
"""
from datetime import date, time
from typing import Optional

from pydantic import BaseModel, Field, field_validator, ConfigDict


class BookingCreate(BaseModel):
    """
    Pydantic model for validating a booking request assembled from a conversation.
    """
    tenant_id: str = Field(..., min_length=1, max_length=64, description="Tenant the booking belongs to")
    customer_id: str = Field(..., min_length=1, max_length=64, description="Resolved customer id")
    service_id: str = Field(..., min_length=1, max_length=64, description="Booked service")
    service_name: Optional[str] = Field(None, max_length=255, description="Service display name")
    duration_minutes: int = Field(..., description="Service duration in minutes")
    staff_id: Optional[str] = Field(None, max_length=64, description="Staff member, None for any available staff")
    booking_date: date = Field(..., description="Booking date")
    start_time: time = Field(..., description="Booking start time")
    customer_note: Optional[str] = Field(None, description="Free-text note from the customer")
    source: str = Field("LINE", max_length=32, description="Channel the booking came from")

    @field_validator("staff_id")
    @classmethod
    def normalize_staff_id(cls, v: Optional[str]) -> Optional[str]:
        """Treat a blank staff id as unspecified."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("customer_note")
    @classmethod
    def normalize_note(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "tenant_id": "tenant-001",
                "customer_id": "6f1c0f52-6d0e-4e0c-9b55-2f7c8e1f0a11",
                "service_id": "svc-cut",
                "service_name": "Haircut",
                "duration_minutes": 30,
                "staff_id": "staff-amy",
                "booking_date": "2025-03-14",
                "start_time": "10:00:00",
                "customer_note": "First visit",
                "source": "LINE"
            }
        }
    )
