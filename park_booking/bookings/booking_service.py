from typing import Callable, List, Optional
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
import logging
import re
import secrets

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from park_booking.attractions.service import AttractionService
from park_booking.bookings.capacity_ledger import SlotCapacityLedger
from park_booking.bookings.schemas import (
    BookingCreateRequest, BookingStatus, PaymentStatus, VisitorBooking,
    BookingDetail, OCCUPYING_STATUSES, TIME_SLOT_PATTERN, can_transition
)
from park_booking.bookings.ticket_service import TicketService
from park_booking.errors import (
    CapacityExceededError, ConflictDuplicateError, DependencyFailureError,
    InvalidTransitionError, NotFoundError, ValidationFailedError
)
from park_booking.models import Booking
from park_booking.notifications import NotificationGateway, build_admin_alert, build_visitor_confirmation
from park_booking.storage import ImageStore

logger = logging.getLogger(__name__)

TAX_RATE = Decimal("0.10")
CENTS = Decimal("0.01")
EXPIRY_AFTER_SLOT_START = timedelta(hours=2)
MIN_PHONE_DIGITS = 10

@dataclass(frozen=True)
class Pricing:
    unit_price: Decimal
    subtotal: Decimal
    tax: Decimal
    total: Decimal

def calculate_pricing(unit_price, ticket_count: int) -> Pricing:
    """Subtotal, 10% tax and total, rounded to cents"""
    unit = Decimal(str(unit_price)).quantize(CENTS, rounding=ROUND_HALF_UP)
    subtotal = (unit * ticket_count).quantize(CENTS, rounding=ROUND_HALF_UP)
    tax = (subtotal * TAX_RATE).quantize(CENTS, rounding=ROUND_HALF_UP)
    return Pricing(unit_price=unit, subtotal=subtotal, tax=tax, total=subtotal + tax)

def derive_expiry_time(booking_date: date, time_slot: str) -> datetime:
    """Slot start on the booking date plus two hours"""
    if not TIME_SLOT_PATTERN.match(time_slot or ""):
        raise ValidationFailedError(f"Invalid time slot '{time_slot}', expected HH:MM")
    hours, minutes = (int(part) for part in time_slot.split(":"))
    return datetime.combine(booking_date, time(hours, minutes)) + EXPIRY_AFTER_SLOT_START

def generate_booking_id(now: datetime) -> str:
    """BOOK-<epoch ms>-<64 random bits as hex>"""
    return f"BOOK-{int(now.timestamp() * 1000)}-{secrets.token_hex(8).upper()}"

def normalize_phone(phone: Optional[str]) -> str:
    return re.sub(r"\D", "", phone or "")

class BookingService:
    """Creates bookings against slot capacity and manages their lifecycle"""

    def __init__(
        self,
        db: Session,
        ticket_service: TicketService,
        image_store: ImageStore,
        notifier: NotificationGateway,
        alert_email: str = "",
        clock: Callable[[], datetime] = datetime.now
    ):
        self.db = db
        self.ticket_service = ticket_service
        self.image_store = image_store
        self.notifier = notifier
        self.alert_email = alert_email
        self.clock = clock
        self.ledger = SlotCapacityLedger(db)

    def create_booking(self, request: BookingCreateRequest) -> Booking:
        """Reserve capacity and persist a confirmed, paid booking with its QR credential"""

        try:
            attraction = AttractionService.get_bookable_attraction(self.db, request.attraction_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to load attraction %s", request.attraction_id)
            raise DependencyFailureError("Failed to load attraction") from e

        now = self.clock()
        pricing = calculate_pricing(attraction.ticket_price, request.number_of_tickets)
        expiry_time = derive_expiry_time(request.booking_date, request.time_slot)
        booking_id = generate_booking_id(now)

        booking = Booking(
            booking_id=booking_id,
            attraction_id=attraction.id,
            attraction_name=attraction.name,
            booking_date=request.booking_date,
            time_slot=request.time_slot,
            visitor_email=request.visitor_email.strip().lower(),
            visitor_name=request.visitor_name.strip(),
            phone_number=normalize_phone(request.phone_number),
            number_of_tickets=request.number_of_tickets,
            ticket_type=request.ticket_type.value,
            price_per_ticket=pricing.unit_price,
            total_amount=pricing.subtotal,
            tax_amount=pricing.tax,
            discount_amount=Decimal("0.00"),
            final_amount=pricing.total,
            is_qr_validated=False,
            booking_status=BookingStatus.CONFIRMED.value,
            payment_status=PaymentStatus.COMPLETED.value,
            payment_reference=f"PAY-{int(now.timestamp() * 1000)}",
            special_requirements=request.special_requirements or "",
            booking_time=now,
            expiry_time=expiry_time
        )

        credential = self.ticket_service.issue(booking)
        booking.qr_code_data = self.ticket_service.encode(credential)
        booking.qr_code_hash = credential.hash
        qr_png = self.ticket_service.render_qr_png(credential)

        image_stored = False
        try:
            self.ledger.reserve(attraction, request.booking_date, request.time_slot, request.number_of_tickets)
            # Insert first so an id collision fails before the image key is touched
            self.db.add(booking)
            self.db.flush()
            booking.qr_code_image = self.image_store.save(booking_id, qr_png)
            image_stored = True
            self.db.commit()
        except (CapacityExceededError, DependencyFailureError):
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            self._discard_image(booking_id, image_stored)
            logger.warning("Booking identity collision for %s", booking_id)
            raise ConflictDuplicateError() from e
        except SQLAlchemyError as e:
            self.db.rollback()
            self._discard_image(booking_id, image_stored)
            logger.exception("Failed to persist booking %s", booking_id)
            raise DependencyFailureError("Failed to save booking") from e

        self.db.refresh(booking)
        logger.info(
            "Booking %s created: %s tickets for attraction %s on %s %s",
            booking.booking_id, booking.number_of_tickets, booking.attraction_id,
            booking.booking_date, booking.time_slot
        )

        self._send_notifications(booking)
        return booking

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        """Get booking by its public ID"""
        return self.db.query(Booking).filter(Booking.booking_id == booking_id).first()

    def get_visitor_bookings(self, visitor_id: str) -> List[VisitorBooking]:
        """Bookings for an e-mail address or phone number, newest booking date first"""

        visitor_id = (visitor_id or "").strip()
        if not visitor_id:
            raise ValidationFailedError("visitorId cannot be empty")

        if "@" in visitor_id:
            criterion = Booking.visitor_email == visitor_id.lower()
        else:
            phone = normalize_phone(visitor_id)
            if len(phone) < MIN_PHONE_DIGITS:
                raise ValidationFailedError("Invalid phone number. Must contain at least 10 digits")
            criterion = Booking.phone_number == phone

        try:
            query = self.db.query(Booking).options(joinedload(Booking.attraction)).filter(criterion)
            bookings = query.order_by(Booking.booking_date.desc(), Booking.created_at.desc(), Booking.id.desc()).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Visitor booking lookup failed")
            raise DependencyFailureError("Failed to load bookings") from e

        results = []
        for booking in bookings:
            detail = BookingDetail.model_validate(booking).model_dump()
            attraction = booking.attraction
            results.append(VisitorBooking(
                **detail,
                attraction_image=attraction.image_url if attraction else None,
                location=attraction.location if attraction else None
            ))
        return results

    def cancel(self, booking_id: str, reason: Optional[str] = None) -> Booking:
        """Cancel a booking and return its tickets to the slot"""
        booking = self._require_booking(booking_id)
        values = {"cancellation_time": self.clock()}
        if reason:
            values["notes"] = reason
        return self._commit_transition(booking, BookingStatus.CANCELLED, **values)

    def complete(self, booking_id: str) -> Booking:
        """Mark a confirmed booking as completed"""
        booking = self._require_booking(booking_id)
        return self._commit_transition(booking, BookingStatus.COMPLETED)

    def expire(self, booking_id: str, now: Optional[datetime] = None) -> Booking:
        """Expire a confirmed booking whose expiry time has passed"""
        booking = self._require_booking(booking_id)
        now = now or self.clock()
        if booking.booking_status == BookingStatus.CONFIRMED.value and now <= booking.expiry_time:
            raise InvalidTransitionError(
                booking.booking_status, BookingStatus.EXPIRED.value,
                f"expires at {booking.expiry_time.isoformat()}"
            )
        return self._commit_transition(booking, BookingStatus.EXPIRED)

    def expire_due_bookings(self, now: Optional[datetime] = None) -> int:
        """Expire every confirmed booking past its expiry time"""
        now = now or self.clock()
        due = self.db.query(Booking).filter(
            Booking.booking_status == BookingStatus.CONFIRMED.value,
            Booking.expiry_time < now
        ).all()

        expired = 0
        try:
            for booking in due:
                if self._apply_transition(booking, BookingStatus.EXPIRED):
                    expired += 1
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Expiry sweep failed")
            raise DependencyFailureError("Failed to expire bookings") from e

        if expired:
            logger.info("Expired %s bookings", expired)
        return expired

    def _require_booking(self, booking_id: str) -> Booking:
        booking = self.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    def _commit_transition(self, booking: Booking, target: BookingStatus, **values) -> Booking:
        current = booking.booking_status
        if not can_transition(BookingStatus(current), target):
            raise InvalidTransitionError(current, target.value)

        try:
            applied = self._apply_transition(booking, target, **values)
            if not applied:
                self.db.rollback()
                latest = self.db.execute(
                    select(Booking.booking_status).where(Booking.id == booking.id)
                ).scalar_one()
                raise InvalidTransitionError(latest, target.value)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to move booking %s to %s", booking.booking_id, target.value)
            raise DependencyFailureError("Failed to update booking") from e

        self.db.refresh(booking)
        logger.info("Booking %s: %s -> %s", booking.booking_id, current, target.value)
        return booking

    def _apply_transition(self, booking: Booking, target: BookingStatus, **values) -> bool:
        """Conditional status update inside the current transaction.

        Only applies if the stored status still equals the status read
        earlier, so two concurrent transitions cannot both succeed.
        """
        current = BookingStatus(booking.booking_status)
        result = self.db.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.booking_status == current.value)
            .values(booking_status=target.value, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        if current in OCCUPYING_STATUSES and target not in OCCUPYING_STATUSES:
            self.ledger.release(booking.attraction_id, booking.booking_date, booking.time_slot, booking.number_of_tickets)
        return True

    def _discard_image(self, booking_id: str, image_stored: bool) -> None:
        if not image_stored:
            return
        try:
            self.image_store.delete(booking_id)
        except DependencyFailureError:
            logger.warning("Orphaned QR image for booking %s left in store", booking_id, exc_info=True)

    def _send_notifications(self, booking: Booking) -> None:
        payloads = [
            build_visitor_confirmation(booking),
            build_admin_alert(booking, self.alert_email),
        ]
        for payload in payloads:
            try:
                if not self.notifier.submit(payload):
                    logger.warning("Notification '%s' for booking %s was not queued", payload.subject, booking.booking_id)
            except Exception:
                logger.exception("Failed to queue notification '%s' for booking %s", payload.subject, booking.booking_id)
