from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date

from park_booking.database import get_db
from park_booking.attractions.service import AttractionService
from park_booking.bookings.schemas import (
    BookingCreateRequest, BookingCreated, BookingDetail, BookingCancellationRequest,
    VisitorLookupRequest, VisitorBookingList, SlotAvailability, ExpirySweepResult,
    TicketValidationRequest, TicketValidationResponse, QRScanRequest, ValidationStatus,
    TIME_SLOT_PATTERN
)
from park_booking.bookings.booking_service import BookingService
from park_booking.bookings.capacity_ledger import SlotCapacityLedger
from park_booking.bookings.validation_service import ValidationService
from park_booking.dependencies import get_booking_service, get_validation_service
from park_booking.errors import DomainError, domain_error_to_http

router = APIRouter()

# Booking Endpoints
@router.post("/", response_model=BookingCreated, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: BookingCreateRequest,
    booking_service: BookingService = Depends(get_booking_service)
):
    """Book tickets for an attraction time slot"""
    try:
        return booking_service.create_booking(request)
    except DomainError as e:
        raise domain_error_to_http(e)

@router.get("/availability", response_model=SlotAvailability)
def get_slot_availability(
    attraction_id: int = Query(..., description="Attraction ID"),
    booking_date: date = Query(..., description="Visit date"),
    time_slot: str = Query(..., description="Time slot, HH:MM"),
    db: Session = Depends(get_db)
):
    """Remaining tickets for a slot"""
    if not TIME_SLOT_PATTERN.match(time_slot):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="time_slot must be HH:MM in 24-hour format"
        )

    try:
        attraction = AttractionService.get_bookable_attraction(db, attraction_id)
    except DomainError as e:
        raise domain_error_to_http(e)

    available = SlotCapacityLedger(db).available(attraction, booking_date, time_slot)
    return SlotAvailability(
        attraction_id=attraction.id,
        booking_date=booking_date,
        time_slot=time_slot,
        capacity=attraction.capacity_per_slot,
        reserved=attraction.capacity_per_slot - available,
        available=available
    )

@router.post("/visitor", response_model=VisitorBookingList)
def get_visitor_bookings(
    request: VisitorLookupRequest,
    booking_service: BookingService = Depends(get_booking_service)
):
    """All bookings for a visitor, by e-mail or phone number"""
    try:
        bookings = booking_service.get_visitor_bookings(request.visitor_id)
    except DomainError as e:
        raise domain_error_to_http(e)

    if not bookings:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No bookings found for this visitor"
        )

    return VisitorBookingList(count=len(bookings), data=bookings)

@router.post("/expire-due", response_model=ExpirySweepResult)
def expire_due_bookings(
    booking_service: BookingService = Depends(get_booking_service)
):
    """Expire confirmed bookings whose slot has ended"""
    swept_at = booking_service.clock()
    try:
        expired = booking_service.expire_due_bookings(swept_at)
    except DomainError as e:
        raise domain_error_to_http(e)
    return ExpirySweepResult(expired_count=expired, swept_at=swept_at)

# Ticket Validation Endpoints
def _validation_result(result: TicketValidationResponse) -> TicketValidationResponse:
    if result.is_valid:
        return result

    status_code = status.HTTP_400_BAD_REQUEST
    if result.validation_status == ValidationStatus.INVALID_BOOKING:
        status_code = status.HTTP_404_NOT_FOUND

    raise HTTPException(
        status_code=status_code,
        detail={
            "code": result.validation_status.value,
            "message": result.validation_message
        }
    )

@router.post("/validate-qr", response_model=TicketValidationResponse)
def validate_qr_code(
    request: TicketValidationRequest,
    validated_by: Optional[str] = Query(None, description="Gate staff identifier"),
    validation_service: ValidationService = Depends(get_validation_service)
):
    """Validate a ticket credential at the gate"""
    try:
        result = validation_service.validate(request, validated_by=validated_by)
    except DomainError as e:
        raise domain_error_to_http(e)
    return _validation_result(result)

@router.post("/scan", response_model=TicketValidationResponse)
def scan_qr_code(
    request: QRScanRequest,
    validation_service: ValidationService = Depends(get_validation_service)
):
    """Validate the raw payload read by a QR scanner"""
    try:
        result = validation_service.validate_scan(request.qr_code_data, validated_by=request.validated_by)
    except DomainError as e:
        raise domain_error_to_http(e)
    return _validation_result(result)

# Booking Lifecycle Endpoints
@router.get("/{booking_id}", response_model=BookingDetail)
def get_booking(
    booking_id: str,
    booking_service: BookingService = Depends(get_booking_service)
):
    """Get booking details by ID"""
    booking = booking_service.get_booking(booking_id)

    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found"
        )

    return booking

@router.post("/{booking_id}/cancel", response_model=BookingDetail)
def cancel_booking(
    booking_id: str,
    cancellation: Optional[BookingCancellationRequest] = None,
    booking_service: BookingService = Depends(get_booking_service)
):
    """Cancel a booking"""
    try:
        return booking_service.cancel(booking_id, reason=cancellation.reason if cancellation else None)
    except DomainError as e:
        raise domain_error_to_http(e)

@router.post("/{booking_id}/complete", response_model=BookingDetail)
def complete_booking(
    booking_id: str,
    booking_service: BookingService = Depends(get_booking_service)
):
    """Mark a booking as completed"""
    try:
        return booking_service.complete(booking_id)
    except DomainError as e:
        raise domain_error_to_http(e)

@router.post("/{booking_id}/expire", response_model=BookingDetail)
def expire_booking(
    booking_id: str,
    booking_service: BookingService = Depends(get_booking_service)
):
    """Expire a booking whose slot has ended"""
    try:
        return booking_service.expire(booking_id)
    except DomainError as e:
        raise domain_error_to_http(e)
