"""
Services package - Business logic and external integrations.
"""
from .booking_service import (
    BookingService,
    intervals_overlap,
    compute_end_time,
)
from .customer_directory import CustomerDirectory
from .responder import (
    Responder,
    HttpMessagingClient,
    RedisPushQuota,
)

__all__ = [
    "BookingService",
    "intervals_overlap",
    "compute_end_time",
    "CustomerDirectory",
    "Responder",
    "HttpMessagingClient",
    "RedisPushQuota",
]
