"""Pytest configuration and shared fixtures."""

import os
import tempfile
import threading
from datetime import datetime
from decimal import Decimal

# Settings are read at import time
os.environ.setdefault("QR_SECRET", "test-qr-secret")
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(tempfile.mkdtemp(), "unused.db"))
os.environ.setdefault("QR_CODE_DIR", os.path.join(tempfile.mkdtemp(), "static", "qr_codes"))

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from park_booking.bookings.booking_service import BookingService  # noqa: E402
from park_booking.bookings.schemas import BookingCreateRequest  # noqa: E402
from park_booking.bookings.ticket_service import TicketService  # noqa: E402
from park_booking.bookings.validation_service import ValidationService  # noqa: E402
from park_booking.database import Base, build_engine  # noqa: E402
from park_booking.errors import DependencyFailureError  # noqa: E402
from park_booking.models import Attraction  # noqa: E402
from park_booking.notifications import NotificationGateway  # noqa: E402
from park_booking.storage import ImageStore  # noqa: E402

TEST_SECRET = "test-qr-secret"
VISIT_DAY = datetime(2025, 6, 1, 9, 0)


class FixedClock:
    """Callable clock whose time tests can move."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class InMemoryImageStore(ImageStore):
    def __init__(self):
        self.images: dict[str, bytes] = {}
        self.fail_on_save = False
        self._lock = threading.Lock()

    def save(self, key: str, data: bytes) -> str:
        if self.fail_on_save:
            raise DependencyFailureError("object store unavailable")
        with self._lock:
            self.images[key] = data
        return f"https://images.test/QR_{key}.png"

    def delete(self, key: str) -> None:
        with self._lock:
            self.images.pop(key, None)


class RecordingGateway(NotificationGateway):
    def __init__(self):
        self.sent = []
        self.fail = False
        self._lock = threading.Lock()

    def submit(self, payload) -> bool:
        if self.fail:
            raise RuntimeError("queue unavailable")
        with self._lock:
            self.sent.append(payload)
        return True


@pytest.fixture
def engine(tmp_path):
    # File-backed so concurrent sessions use separate connections
    engine = build_engine(f"sqlite:///{tmp_path / 'park_booking_test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(VISIT_DAY)


@pytest.fixture
def ticket_service() -> TicketService:
    return TicketService(TEST_SECRET)


@pytest.fixture
def image_store() -> InMemoryImageStore:
    return InMemoryImageStore()


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def make_attraction(db):
    def _make(name="Sky Wheel", price="10.00", capacity=2, is_active=True, **extra):
        attraction = Attraction(
            name=name,
            ticket_price=Decimal(price),
            capacity_per_slot=capacity,
            is_active=is_active,
            location=extra.pop("location", "Central Plaza"),
            image_url=extra.pop("image_url", "https://images.test/sky-wheel.jpg"),
            **extra
        )
        db.add(attraction)
        db.commit()
        db.refresh(attraction)
        return attraction
    return _make


@pytest.fixture
def attraction(make_attraction):
    return make_attraction()


@pytest.fixture
def make_booking_service(session_factory, ticket_service, image_store, gateway, clock):
    def _make(session=None):
        return BookingService(
            session or session_factory(),
            ticket_service=ticket_service,
            image_store=image_store,
            notifier=gateway,
            alert_email="alerts@park.test",
            clock=clock
        )
    return _make


@pytest.fixture
def booking_service(make_booking_service, db):
    return make_booking_service(db)


@pytest.fixture
def make_validation_service(session_factory, ticket_service, clock):
    def _make(session=None, at=None):
        return ValidationService(
            session or session_factory(),
            ticket_service=ticket_service,
            clock=FixedClock(at) if at else clock
        )
    return _make


@pytest.fixture
def booking_request():
    def _make(attraction_id, tickets=1, **overrides):
        data = {
            "attractionId": attraction_id,
            "bookingDate": "2025-06-01",
            "timeSlot": "14:30",
            "visitorEmail": "Visitor@Example.com",
            "visitorName": "Alex Visitor",
            "phoneNumber": "+1 (555) 123-4567",
            "numberOfTickets": tickets,
        }
        data.update(overrides)
        return BookingCreateRequest(**data)
    return _make
