"""
FastAPI dependencies wiring process-wide settings into the engine services.

Services never read settings themselves. Tests swap any of these through
app.dependency_overrides.
"""
from datetime import datetime
from functools import lru_cache
from typing import Callable

from fastapi import Depends
from sqlalchemy.orm import Session

from park_booking.bookings.booking_service import BookingService
from park_booking.bookings.ticket_service import TicketService
from park_booking.bookings.validation_service import ValidationService
from park_booking.config import settings
from park_booking.database import get_db
from park_booking.notifications import NotificationGateway, QueuedEmailGateway, SmtpEmailSender
from park_booking.storage import ImageStore, LocalImageStore


@lru_cache
def get_ticket_service() -> TicketService:
    return TicketService(settings.QR_SECRET)


@lru_cache
def get_image_store() -> ImageStore:
    return LocalImageStore(settings.QR_CODE_DIR, f"{settings.STATIC_URL}/qr_codes")


@lru_cache
def get_notification_gateway() -> QueuedEmailGateway:
    sender = SmtpEmailSender(
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        user=settings.SMTP_USER,
        password=settings.SMTP_PASSWORD,
        from_address=settings.sender_address,
    )
    return QueuedEmailGateway(sender)


def get_clock() -> Callable[[], datetime]:
    return datetime.now


def get_booking_service(
    db: Session = Depends(get_db),
    ticket_service: TicketService = Depends(get_ticket_service),
    image_store: ImageStore = Depends(get_image_store),
    notifier: NotificationGateway = Depends(get_notification_gateway),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> BookingService:
    return BookingService(
        db,
        ticket_service=ticket_service,
        image_store=image_store,
        notifier=notifier,
        alert_email=settings.ALERT_EMAIL,
        clock=clock,
    )


def get_validation_service(
    db: Session = Depends(get_db),
    ticket_service: TicketService = Depends(get_ticket_service),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> ValidationService:
    return ValidationService(db, ticket_service=ticket_service, clock=clock)
