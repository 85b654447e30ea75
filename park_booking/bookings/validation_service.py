from typing import Callable, Optional
from datetime import datetime
import logging

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from park_booking.bookings.schemas import (
    BookingDetail, BookingStatus, TicketValidationRequest, TicketValidationResponse, ValidationStatus
)
from park_booking.bookings.ticket_service import TicketService
from park_booking.errors import DependencyFailureError
from park_booking.models import Booking

logger = logging.getLogger(__name__)

class ValidationService:
    """One-time gate validation of QR ticket credentials.

    Checks run in a fixed order and the first failure wins:
    booking lookup, integrity hash, prior validation, booking date.
    Only a fully successful check marks the booking validated, and that
    write is a conditional update so two simultaneous scans of the same
    ticket cannot both pass.
    """

    def __init__(
        self,
        db: Session,
        ticket_service: TicketService,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.db = db
        self.ticket_service = ticket_service
        self.clock = clock

    def validate(
        self,
        request: TicketValidationRequest,
        validated_by: Optional[str] = None
    ) -> TicketValidationResponse:
        """Validate a presented credential and consume it on success"""

        now = self.clock()
        visitor_email = request.visitor_email.strip().lower()

        booking = self.db.query(Booking).filter(
            Booking.booking_id == request.booking_id,
            Booking.visitor_email == visitor_email
        ).first()

        if booking is None:
            return self._reject(request.booking_id, ValidationStatus.INVALID_BOOKING, "Invalid booking", now)

        if not self.ticket_service.verify(booking, request.hash):
            return self._reject(request.booking_id, ValidationStatus.TAMPERED, "QR code has been tampered with", now)

        if booking.booking_status == BookingStatus.CANCELLED.value:
            return self._reject(request.booking_id, ValidationStatus.INVALID_BOOKING, "Booking has been cancelled", now)

        if booking.is_qr_validated:
            return self._already_validated(booking, now)

        today = now.date()
        if today < booking.booking_date:
            return self._reject(
                request.booking_id, ValidationStatus.TOO_EARLY,
                "Booking is for a future date. Please come on your booked date.", now
            )
        if today > booking.booking_date:
            return self._reject(
                request.booking_id, ValidationStatus.EXPIRED,
                "Booking date has passed. Ticket is expired.", now
            )

        try:
            result = self.db.execute(
                update(Booking)
                .where(Booking.id == booking.id, Booking.is_qr_validated.is_(False))
                .values(is_qr_validated=True, validation_time=now, validated_by=validated_by)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.db.rollback()
                self.db.refresh(booking)
                return self._already_validated(booking, now)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to record validation of booking %s", booking.booking_id)
            raise DependencyFailureError("Failed to record validation") from e

        self.db.refresh(booking)
        logger.info("Booking %s validated by %s", booking.booking_id, validated_by or "gate")

        return TicketValidationResponse(
            booking_id=booking.booking_id,
            is_valid=True,
            validation_status=ValidationStatus.VALIDATED,
            validation_message="Ticket validated successfully",
            validation_timestamp=now,
            booking=BookingDetail.model_validate(booking)
        )

    def validate_scan(self, qr_code_data: str, validated_by: Optional[str] = None) -> TicketValidationResponse:
        """Validate the raw payload read from a QR code"""
        credential = self.ticket_service.decode(qr_code_data)
        request = TicketValidationRequest(
            booking_id=credential.booking_id,
            visitor_email=credential.visitor_email,
            hash=credential.hash
        )
        return self.validate(request, validated_by=validated_by)

    def _already_validated(self, booking: Booking, now: datetime) -> TicketValidationResponse:
        message = "Ticket already validated"
        if booking.validation_time:
            message = f"{message} on {booking.validation_time.strftime('%Y-%m-%d %H:%M')}"
        return self._reject(booking.booking_id, ValidationStatus.ALREADY_VALIDATED, message, now)

    def _reject(
        self,
        booking_id: str,
        validation_status: ValidationStatus,
        message: str,
        now: datetime
    ) -> TicketValidationResponse:
        logger.info("Validation of booking %s rejected: %s", booking_id, validation_status.value)
        return TicketValidationResponse(
            booking_id=booking_id,
            is_valid=False,
            validation_status=validation_status,
            validation_message=message,
            validation_timestamp=now
        )
