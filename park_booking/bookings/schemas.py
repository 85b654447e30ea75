from pydantic import Field, field_validator
from typing import List, Optional, Dict, FrozenSet
from datetime import datetime, date
from decimal import Decimal
from enum import Enum

from park_booking.schemas import CamelModel, TIME_SLOT_PATTERN

class BookingStatus(str, Enum):
    """Booking status enumeration"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    EXPIRED = "expired"
    NO_SHOW = "no_show"

# Statuses whose tickets count against slot capacity
OCCUPYING_STATUSES: FrozenSet[BookingStatus] = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})

BOOKING_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.EXPIRED}),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.EXPIRED, BookingStatus.NO_SHOW
    }),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.EXPIRED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}

def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in BOOKING_TRANSITIONS[current]

class PaymentStatus(str, Enum):
    """Payment status enumeration"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"

class TicketType(str, Enum):
    """Ticket category enumeration"""
    ADULT = "adult"
    CHILD = "child"
    SENIOR = "senior"
    STUDENT = "student"

class ValidationStatus(str, Enum):
    """Outcome of a gate validation attempt"""
    VALIDATED = "Validated"
    INVALID_BOOKING = "InvalidBooking"
    TAMPERED = "Tampered"
    ALREADY_VALIDATED = "AlreadyValidated"
    TOO_EARLY = "TooEarly"
    EXPIRED = "Expired"

# Booking Request Models
class BookingCreateRequest(CamelModel):
    """Request to book tickets for an attraction slot"""
    attraction_id: int
    booking_date: date
    time_slot: str
    visitor_email: str
    visitor_name: str = Field(..., min_length=1, max_length=255)
    phone_number: Optional[str] = None
    number_of_tickets: int = Field(..., ge=1, le=10)
    ticket_type: TicketType = TicketType.ADULT
    special_requirements: Optional[str] = None

    @field_validator("time_slot")
    @classmethod
    def validate_time_slot(cls, v: str) -> str:
        v = v.strip()
        if not TIME_SLOT_PATTERN.match(v):
            raise ValueError("timeSlot must be HH:MM in 24-hour format")
        return v

    @field_validator("visitor_email")
    @classmethod
    def validate_visitor_email(cls, v: str) -> str:
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("visitorEmail must be a valid e-mail address")
        return v

    @field_validator("visitor_name")
    @classmethod
    def strip_visitor_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("visitorName cannot be empty")
        return v

class BookingCancellationRequest(CamelModel):
    """Request to cancel a booking"""
    reason: Optional[str] = None

class VisitorLookupRequest(CamelModel):
    """Look up bookings by e-mail or phone number"""
    visitor_id: str = Field(..., min_length=3)

# Booking Response Models
class BookingCreated(CamelModel):
    """Summary returned after a successful booking"""
    booking_id: str
    attraction_name: str
    booking_date: date
    time_slot: str
    number_of_tickets: int
    visitor_name: str
    visitor_email: str
    total_amount: Decimal
    tax_amount: Decimal
    final_amount: Decimal
    qr_code_image: Optional[str] = None
    payment_reference: str
    booking_status: BookingStatus

class BookingDetail(CamelModel):
    """Complete booking record"""
    booking_id: str
    attraction_id: int
    attraction_name: str
    booking_date: date
    time_slot: str
    visitor_email: str
    visitor_name: str
    phone_number: Optional[str] = None
    number_of_tickets: int
    ticket_type: TicketType
    price_per_ticket: Decimal
    total_amount: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    qr_code_image: Optional[str] = None
    is_qr_validated: bool
    validation_time: Optional[datetime] = None
    validated_by: Optional[str] = None
    booking_status: BookingStatus
    payment_status: PaymentStatus
    payment_reference: Optional[str] = None
    special_requirements: Optional[str] = None
    booking_time: datetime
    expiry_time: datetime
    cancellation_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class VisitorBooking(BookingDetail):
    """Booking enriched with attraction display fields"""
    attraction_image: Optional[str] = None
    location: Optional[str] = None

class VisitorBookingList(CamelModel):
    count: int
    data: List[VisitorBooking]

class SlotAvailability(CamelModel):
    """Remaining capacity for a single slot"""
    attraction_id: int
    booking_date: date
    time_slot: str
    capacity: int
    reserved: int
    available: int

class ExpirySweepResult(CamelModel):
    expired_count: int
    swept_at: datetime

# Ticket Validation Models
class TicketValidationRequest(CamelModel):
    """Credential presented at the gate"""
    booking_id: str = Field(..., min_length=1)
    visitor_email: str = Field(..., min_length=3)
    hash: str = Field(..., min_length=1)

class QRScanRequest(CamelModel):
    """Raw QR payload as read by a gate scanner"""
    qr_code_data: str = Field(..., min_length=2)
    validated_by: Optional[str] = None

class TicketValidationResponse(CamelModel):
    """Result of a gate validation attempt"""
    booking_id: str
    is_valid: bool
    validation_status: ValidationStatus
    validation_message: str
    validation_timestamp: datetime
    booking: Optional[BookingDetail] = None

# Ticket Credential
class TicketCredential(CamelModel):
    """Payload encoded into the QR code, bound to one booking by its hash"""
    booking_id: str
    attraction_id: int
    attraction_name: str
    booking_date: date
    time_slot: str
    visitor_email: str
    number_of_tickets: int
    hash: str
