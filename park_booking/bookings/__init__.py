"""
Booking & Ticketing

Slot-capacity booking and one-time ticket validation for park attractions.

Key Components:
- capacity_ledger.py: Atomic per-slot occupancy counter (admit or reject)
- booking_service.py: Booking creation, pricing, expiry and status lifecycle
- ticket_service.py: Keyed credential hash, QR payload encoding and QR images
- validation_service.py: One-time gate validation of presented credentials
- router.py: FastAPI endpoints for booking, lookup and validation
- schemas.py: Pydantic models, status enums and the status transition table
"""

from .router import router
from .booking_service import BookingService
from .capacity_ledger import SlotCapacityLedger
from .ticket_service import TicketService
from .validation_service import ValidationService
from .schemas import (
    BookingCreateRequest, BookingCreated, BookingDetail, BookingStatus,
    PaymentStatus, TicketType, TicketCredential, TicketValidationRequest,
    TicketValidationResponse, ValidationStatus
)

__all__ = [
    "router",
    "BookingService",
    "SlotCapacityLedger",
    "TicketService",
    "ValidationService",
    "BookingCreateRequest",
    "BookingCreated",
    "BookingDetail",
    "BookingStatus",
    "PaymentStatus",
    "TicketType",
    "TicketCredential",
    "TicketValidationRequest",
    "TicketValidationResponse",
    "ValidationStatus"
]
