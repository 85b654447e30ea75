"""Tests for booking creation, pricing, expiry and the status lifecycle."""

import re
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from park_booking.bookings.booking_service import (
    calculate_pricing, derive_expiry_time, generate_booking_id, normalize_phone
)
from park_booking.bookings.capacity_ledger import SlotCapacityLedger
from park_booking.bookings.schemas import BookingStatus, can_transition
from park_booking.errors import (
    CapacityExceededError, ConflictDuplicateError, DependencyFailureError, InvalidTransitionError,
    NotFoundError, ValidationFailedError
)
from park_booking.models import Booking


class TestPricing:

    def test_three_tickets_at_ten(self):
        for _ in range(5):
            pricing = calculate_pricing(Decimal("10.00"), 3)
            assert pricing.unit_price == Decimal("10.00")
            assert pricing.subtotal == Decimal("30.00")
            assert pricing.tax == Decimal("3.00")
            assert pricing.total == Decimal("33.00")

    def test_tax_rounds_to_cents(self):
        pricing = calculate_pricing(Decimal("12.35"), 1)
        assert pricing.tax == Decimal("1.24")
        assert pricing.total == pricing.subtotal + pricing.tax

    def test_float_price_is_exact(self):
        assert calculate_pricing(0.1, 3).subtotal == Decimal("0.30")


class TestExpiry:

    def test_expiry_is_two_hours_after_slot_start(self):
        assert derive_expiry_time(date(2025, 6, 1), "14:30") == datetime(2025, 6, 1, 16, 30)

    def test_expiry_is_idempotent(self):
        results = {derive_expiry_time(date(2025, 6, 1), "14:30") for _ in range(3)}
        assert results == {datetime.fromisoformat("2025-06-01T16:30:00")}

    def test_late_slot_rolls_into_next_day(self):
        assert derive_expiry_time(date(2025, 6, 1), "23:15") == datetime(2025, 6, 2, 1, 15)

    @pytest.mark.parametrize("slot", ["24:00", "9:00", "14.30", "", "noon"])
    def test_malformed_slot_rejected(self, slot):
        with pytest.raises(ValidationFailedError):
            derive_expiry_time(date(2025, 6, 1), slot)


class TestIdentity:

    def test_booking_id_format(self):
        booking_id = generate_booking_id(datetime(2025, 6, 1, 9, 0))
        assert re.fullmatch(r"BOOK-\d{13}-[0-9A-F]{16}", booking_id)

    def test_booking_ids_are_unique_for_same_instant(self):
        now = datetime(2025, 6, 1, 9, 0)
        assert len({generate_booking_id(now) for _ in range(200)}) == 200

    def test_normalize_phone(self):
        assert normalize_phone("+1 (555) 123-4567") == "15551234567"
        assert normalize_phone(None) == ""


class TestTransitionTable:

    def test_confirmed_transitions(self):
        for target in (BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.EXPIRED, BookingStatus.NO_SHOW):
            assert can_transition(BookingStatus.CONFIRMED, target)
        assert not can_transition(BookingStatus.CONFIRMED, BookingStatus.PENDING)

    @pytest.mark.parametrize("terminal", [
        BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.EXPIRED, BookingStatus.NO_SHOW
    ])
    def test_terminal_statuses(self, terminal):
        assert not any(can_transition(terminal, target) for target in BookingStatus)


class TestCreateBooking:

    def test_creates_confirmed_paid_booking(self, booking_service, booking_request, attraction, ticket_service, image_store):
        booking = booking_service.create_booking(booking_request(attraction.id, tickets=2))

        assert booking.booking_status == "confirmed"
        assert booking.payment_status == "completed"
        assert booking.payment_reference.startswith("PAY-")
        assert booking.is_qr_validated is False
        assert booking.visitor_email == "visitor@example.com"
        assert booking.phone_number == "15551234567"
        assert booking.attraction_name == "Sky Wheel"
        assert booking.price_per_ticket == Decimal("10.00")
        assert booking.total_amount == Decimal("20.00")
        assert booking.tax_amount == Decimal("2.00")
        assert booking.final_amount == Decimal("22.00")
        assert booking.expiry_time == datetime(2025, 6, 1, 16, 30)
        assert booking.qr_code_hash == ticket_service.compute_hash(booking.booking_id, "visitor@example.com")
        assert ticket_service.decode(booking.qr_code_data).booking_id == booking.booking_id
        assert booking.qr_code_image == f"https://images.test/QR_{booking.booking_id}.png"
        assert booking.booking_id in image_store.images

    def test_emits_visitor_and_admin_notifications(self, booking_service, booking_request, attraction, gateway):
        booking = booking_service.create_booking(booking_request(attraction.id))

        recipients = [payload.to for payload in gateway.sent]
        assert recipients == ["visitor@example.com", "alerts@park.test"]
        visitor_mail = gateway.sent[0]
        assert visitor_mail.subject == "Your Booking Confirmation - Sky Wheel"
        assert booking.booking_id in visitor_mail.html
        assert booking.qr_code_image in visitor_mail.html
        assert "$11.00" in visitor_mail.html

    def test_notification_failure_does_not_fail_booking(self, booking_service, booking_request, attraction, gateway, db):
        gateway.fail = True

        booking = booking_service.create_booking(booking_request(attraction.id))

        assert db.query(Booking).filter(Booking.booking_id == booking.booking_id).count() == 1

    def test_unknown_attraction(self, booking_service, booking_request):
        with pytest.raises(NotFoundError):
            booking_service.create_booking(booking_request(9999))

    def test_inactive_attraction(self, booking_service, booking_request, make_attraction):
        closed = make_attraction(name="Kiddie Carousel", is_active=False)
        with pytest.raises(NotFoundError):
            booking_service.create_booking(booking_request(closed.id))

    def test_capacity_exceeded_creates_nothing(self, booking_service, booking_request, attraction, gateway, image_store, db):
        booking_service.create_booking(booking_request(attraction.id, tickets=1))
        gateway.sent.clear()

        with pytest.raises(CapacityExceededError) as exc_info:
            booking_service.create_booking(booking_request(attraction.id, tickets=2))

        assert exc_info.value.available == 1
        assert db.query(Booking).count() == 1
        assert len(image_store.images) == 1
        assert gateway.sent == []

    def test_image_store_failure_is_dependency_failure(self, booking_service, booking_request, attraction, image_store, gateway, db):
        image_store.fail_on_save = True

        with pytest.raises(DependencyFailureError):
            booking_service.create_booking(booking_request(attraction.id, tickets=2))

        assert db.query(Booking).count() == 0
        assert SlotCapacityLedger(db).available(attraction, date(2025, 6, 1), "14:30") == 2
        assert gateway.sent == []

    def test_concurrent_requests_for_last_tickets(self, make_booking_service, booking_request, attraction, session_factory):
        barrier = threading.Barrier(2)

        def attempt(_):
            service = make_booking_service()
            try:
                barrier.wait()
                try:
                    return service.create_booking(booking_request(attraction.id, tickets=2)).booking_id
                except CapacityExceededError as e:
                    return e
            finally:
                service.db.close()

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(attempt, range(2)))

        admitted = [r for r in results if isinstance(r, str)]
        rejected = [r for r in results if isinstance(r, CapacityExceededError)]
        assert len(admitted) == 1
        assert len(rejected) == 1
        assert rejected[0].available == 0

        check = session_factory()
        try:
            assert check.query(Booking).count() == 1
        finally:
            check.close()


class TestLifecycle:

    def test_cancel_releases_capacity(self, booking_service, booking_request, attraction, db, clock):
        booking = booking_service.create_booking(booking_request(attraction.id, tickets=2))

        cancelled = booking_service.cancel(booking.booking_id, reason="Change of plans")

        assert cancelled.booking_status == "cancelled"
        assert cancelled.cancellation_time == clock.now
        assert cancelled.notes == "Change of plans"
        assert cancelled.is_qr_validated is False
        assert SlotCapacityLedger(db).available(attraction, date(2025, 6, 1), "14:30") == 2
        booking_service.create_booking(booking_request(attraction.id, tickets=2))

    def test_cancel_twice_is_invalid(self, booking_service, booking_request, attraction):
        booking = booking_service.create_booking(booking_request(attraction.id))
        booking_service.cancel(booking.booking_id)

        with pytest.raises(InvalidTransitionError):
            booking_service.cancel(booking.booking_id)

    def test_cancel_unknown_booking(self, booking_service):
        with pytest.raises(NotFoundError):
            booking_service.cancel("BOOK-0-0000000000000000")

    def test_cancel_keeps_validation_flag(self, booking_service, booking_request, attraction, make_validation_service, ticket_service):
        from park_booking.bookings.schemas import TicketValidationRequest

        booking = booking_service.create_booking(booking_request(attraction.id))
        make_validation_service().validate(TicketValidationRequest(
            booking_id=booking.booking_id,
            visitor_email=booking.visitor_email,
            hash=booking.qr_code_hash
        ))

        cancelled = booking_service.cancel(booking.booking_id)
        assert cancelled.is_qr_validated is True

    def test_expire_before_expiry_time_is_invalid(self, booking_service, booking_request, attraction):
        booking = booking_service.create_booking(booking_request(attraction.id))

        with pytest.raises(InvalidTransitionError):
            booking_service.expire(booking.booking_id, now=datetime(2025, 6, 1, 16, 30))

    def test_expire_after_expiry_time(self, booking_service, booking_request, attraction, db):
        booking = booking_service.create_booking(booking_request(attraction.id, tickets=2))

        expired = booking_service.expire(booking.booking_id, now=datetime(2025, 6, 1, 16, 31))

        assert expired.booking_status == "expired"
        assert SlotCapacityLedger(db).available(attraction, date(2025, 6, 1), "14:30") == 2

    def test_expire_due_bookings(self, booking_service, booking_request, make_attraction):
        attraction = make_attraction(capacity=10)
        early = booking_service.create_booking(booking_request(attraction.id, timeSlot="10:00"))
        late = booking_service.create_booking(booking_request(attraction.id, timeSlot="18:00"))
        cancelled = booking_service.create_booking(booking_request(attraction.id, timeSlot="09:00"))
        booking_service.cancel(cancelled.booking_id)

        assert booking_service.expire_due_bookings(now=datetime(2025, 6, 1, 12, 30)) == 1
        assert booking_service.get_booking(early.booking_id).booking_status == "expired"
        assert booking_service.get_booking(late.booking_id).booking_status == "confirmed"
        assert booking_service.get_booking(cancelled.booking_id).booking_status == "cancelled"

    def test_complete_then_cancel_is_invalid(self, booking_service, booking_request, attraction):
        booking = booking_service.create_booking(booking_request(attraction.id))

        assert booking_service.complete(booking.booking_id).booking_status == "completed"
        with pytest.raises(InvalidTransitionError):
            booking_service.cancel(booking.booking_id)


class TestVisitorLookup:

    def test_lookup_by_email_is_case_insensitive(self, booking_service, booking_request, attraction):
        booking_service.create_booking(booking_request(attraction.id))

        results = booking_service.get_visitor_bookings("  VISITOR@example.COM ")

        assert len(results) == 1
        assert results[0].attraction_image == "https://images.test/sky-wheel.jpg"
        assert results[0].location == "Central Plaza"

    def test_lookup_by_formatted_phone(self, booking_service, booking_request, attraction):
        booking_service.create_booking(booking_request(attraction.id))

        assert len(booking_service.get_visitor_bookings("1-555-123-4567")) == 1

    def test_short_phone_rejected(self, booking_service):
        with pytest.raises(ValidationFailedError):
            booking_service.get_visitor_bookings("555-1234")

    def test_ordered_by_booking_date_descending(self, booking_service, booking_request, make_attraction):
        attraction = make_attraction(capacity=10)
        for day in ("2025-06-01", "2025-06-03", "2025-06-02"):
            booking_service.create_booking(booking_request(attraction.id, bookingDate=day))

        dates = [b.booking_date for b in booking_service.get_visitor_bookings("visitor@example.com")]
        assert dates == [date(2025, 6, 3), date(2025, 6, 2), date(2025, 6, 1)]

    def test_unknown_visitor_has_no_bookings(self, booking_service):
        assert booking_service.get_visitor_bookings("nobody@example.com") == []


def datastore_down(*args, **kwargs):
    raise OperationalError("COMMIT", {}, Exception("disk I/O error"))


class TestPersistenceFailures:

    def test_commit_failure_discards_image(self, booking_service, booking_request, attraction, image_store, gateway, db, monkeypatch):
        monkeypatch.setattr(db, "commit", datastore_down)

        with pytest.raises(DependencyFailureError):
            booking_service.create_booking(booking_request(attraction.id, tickets=2))
        monkeypatch.undo()

        assert db.query(Booking).count() == 0
        assert SlotCapacityLedger(db).available(attraction, date(2025, 6, 1), "14:30") == 2
        assert image_store.images == {}
        assert gateway.sent == []

    def test_id_collision_keeps_existing_image(self, booking_service, booking_request, make_attraction, image_store, db, monkeypatch):
        import park_booking.bookings.booking_service as booking_module

        attraction = make_attraction(capacity=5)
        monkeypatch.setattr(booking_module, "generate_booking_id", lambda now: "BOOK-1-FIXED")
        first = booking_service.create_booking(booking_request(attraction.id))
        stored_image = image_store.images["BOOK-1-FIXED"]

        with pytest.raises(ConflictDuplicateError):
            booking_service.create_booking(booking_request(attraction.id, tickets=2, visitorName="Sam Other"))

        assert image_store.images == {"BOOK-1-FIXED": stored_image}
        assert db.query(Booking).count() == 1
        assert booking_service.get_booking(first.booking_id).visitor_name == "Alex Visitor"
        assert SlotCapacityLedger(db).available(attraction, date(2025, 6, 1), "14:30") == 4

    def test_attraction_lookup_failure(self, booking_service, booking_request, attraction, db, monkeypatch):
        monkeypatch.setattr(db, "get", datastore_down)

        with pytest.raises(DependencyFailureError):
            booking_service.create_booking(booking_request(attraction.id))

    def test_visitor_lookup_failure(self, booking_service, db, monkeypatch):
        monkeypatch.setattr(db, "query", datastore_down)

        with pytest.raises(DependencyFailureError):
            booking_service.get_visitor_bookings("visitor@example.com")
