"""
Booking notifications: message rendering and a fire-and-forget e-mail gateway.

The booking engine only builds NotificationPayloads and submits them. Delivery
happens on a background worker thread that sends through SMTP. Set SMTP_USER,
SMTP_PASSWORD and ALERT_EMAIL in .env; without credentials payloads are logged
and dropped.
"""
import html
import logging
import queue
import smtplib
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationPayload:
    to: str
    subject: str
    html: str


def build_visitor_confirmation(booking) -> NotificationPayload:
    """Confirmation e-mail for the visitor, including the QR image."""
    name = html.escape(booking.visitor_name)
    attraction = html.escape(booking.attraction_name)
    body = f"""
        <h2>Hello {name},</h2>
        <p>Thank you for booking {booking.number_of_tickets} ticket(s) for <strong>{attraction}</strong> on <strong>{booking.booking_date.isoformat()}</strong> at <strong>{booking.time_slot}</strong>.</p>
        <p>Total: ${booking.final_amount:.2f}</p>
        <img src="{booking.qr_code_image}" alt="QR Code" style="width:200px;height:200px;"/>
        <p>Please show this QR code at the entrance.</p>
        <p>Booking ID: {booking.booking_id}</p>
        <p>Enjoy your visit!</p>
    """
    return NotificationPayload(
        to=booking.visitor_email,
        subject=f"Your Booking Confirmation - {booking.attraction_name}",
        html=body,
    )


def build_admin_alert(booking, alert_email: str) -> NotificationPayload:
    """New-booking alert for the park operator."""
    body = f"""
        <h2>New Booking Received</h2>
        <p>Visitor: {html.escape(booking.visitor_name)} ({html.escape(booking.visitor_email)})</p>
        <p>Tickets: {booking.number_of_tickets}</p>
        <p>Date: {booking.booking_date.isoformat()} | Slot: {booking.time_slot}</p>
        <p>Total Amount: ${booking.final_amount:.2f}</p>
        <p>Booking ID: {booking.booking_id}</p>
    """
    return NotificationPayload(
        to=alert_email,
        subject=f"New Booking - {booking.attraction_name}",
        html=body,
    )


class NotificationGateway(ABC):
    """Accepts rendered notifications for asynchronous delivery."""

    @abstractmethod
    def submit(self, payload: NotificationPayload) -> bool:
        """Queue a payload. Returns False if it was not accepted."""
        ...


class SmtpEmailSender:
    """Sends a single NotificationPayload through SMTP."""

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        from_address: Optional[str] = None,
        timeout: int = 10,
    ):
        self.host = host
        self.port = port
        self.user = (user or "").strip()
        self.password = (password or "").strip()
        self.from_address = from_address or f"Park Booking <{self.user or 'noreply@localhost'}>"
        self.timeout = timeout

    def send(self, payload: NotificationPayload) -> bool:
        if not payload.to:
            logger.debug("Notification '%s' has no recipient; skipping", payload.subject)
            return False
        if not self.user or not self.password:
            logger.info("SMTP_USER or SMTP_PASSWORD not set; dropping e-mail to %s: %s", payload.to, payload.subject)
            return False
        msg = MIMEMultipart("alternative")
        msg["Subject"] = payload.subject
        msg["From"] = self.from_address
        msg["To"] = payload.to
        msg.attach(MIMEText(payload.html, "html"))
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            server.starttls()
            server.login(self.user, self.password)
            server.sendmail(self.user, [payload.to], msg.as_string())
        logger.info("Email sent to %s: %s", payload.to, payload.subject)
        return True


class QueuedEmailGateway(NotificationGateway):
    """In-process queue drained by a daemon worker thread."""

    _STOP = object()

    def __init__(self, sender: SmtpEmailSender, maxsize: int = 1000):
        self.sender = sender
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name="email-worker", daemon=True)
        self._thread.start()
        logger.info("Email worker started")

    def stop(self, timeout: float = 5.0) -> None:
        if not self._thread:
            return
        try:
            self._queue.put(self._STOP, timeout=timeout)
        except queue.Full:
            logger.warning("Email queue full at shutdown; %s notifications dropped", self._queue.qsize())
        else:
            self._thread.join(timeout)
        self._thread = None
        logger.info("Email worker stopped")

    def submit(self, payload: NotificationPayload) -> bool:
        try:
            self._queue.put_nowait(payload)
        except queue.Full:
            logger.warning("Email queue full; dropping notification to %s", payload.to)
            return False
        return True

    def pending(self) -> int:
        return self._queue.qsize()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is self._STOP:
                    return
                self.sender.send(item)
            except Exception as e:
                logger.exception("Failed to send e-mail to %s: %s", item.to, e)
            finally:
                self._queue.task_done()
