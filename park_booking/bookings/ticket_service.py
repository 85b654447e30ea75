from io import BytesIO
import hashlib
import hmac
import json
import logging

import qrcode
from qrcode import constants
from PIL import Image
from pydantic import ValidationError

from park_booking.bookings.schemas import TicketCredential
from park_booking.errors import ValidationFailedError

logger = logging.getLogger(__name__)

class TicketService:
    """Issues and verifies QR ticket credentials.

    The integrity hash is an HMAC-SHA256 over the booking id and visitor
    e-mail, keyed with the server-side secret handed in at construction. The
    secret is never part of the payload.
    """

    def __init__(self, secret: str, qr_size: int = 300, border: int = 4):
        if not secret:
            raise ValueError("Ticket secret must not be empty")
        self._secret = secret.encode()
        self.qr_size = qr_size
        self.border = border

    def compute_hash(self, booking_id: str, visitor_email: str) -> str:
        """Keyed integrity hash for a booking"""
        message = f"{booking_id}|{visitor_email}".encode()
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def issue(self, booking) -> TicketCredential:
        """Build the credential for a booking from its stored fields"""
        return TicketCredential(
            booking_id=booking.booking_id,
            attraction_id=booking.attraction_id,
            attraction_name=booking.attraction_name,
            booking_date=booking.booking_date,
            time_slot=booking.time_slot,
            visitor_email=booking.visitor_email,
            number_of_tickets=booking.number_of_tickets,
            hash=self.compute_hash(booking.booking_id, booking.visitor_email),
        )

    def verify(self, booking, presented_hash: str) -> bool:
        """Recompute the hash from the stored booking and compare in constant time"""
        expected = self.compute_hash(booking.booking_id, booking.visitor_email)
        return hmac.compare_digest(expected.encode(), (presented_hash or "").encode())

    @staticmethod
    def encode(credential: TicketCredential) -> str:
        """Compact JSON payload carried by the QR code"""
        return json.dumps(credential.model_dump(by_alias=True, mode="json"), separators=(',', ':'))

    @staticmethod
    def decode(data: str) -> TicketCredential:
        """Parse a scanned QR payload"""
        try:
            return TicketCredential.model_validate_json(data)
        except ValidationError as e:
            raise ValidationFailedError("QR code data is malformed") from e

    def render_qr_png(self, credential: TicketCredential) -> bytes:
        """Render the credential payload as a PNG QR code"""

        qr = qrcode.QRCode(
            version=1,
            error_correction=constants.ERROR_CORRECT_M,
            box_size=10,
            border=self.border,
        )

        qr.add_data(self.encode(credential))
        qr.make(fit=True)

        qr_image = qr.make_image(fill_color="black", back_color="white").get_image()
        qr_image = qr_image.resize((self.qr_size, self.qr_size), Image.LANCZOS)

        buffer = BytesIO()
        qr_image.save(buffer, format="PNG")
        return buffer.getvalue()
