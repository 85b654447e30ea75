"""
Slot capacity ledger.

Occupancy of a slot (attraction, date, time slot) is kept in a slot_occupancy
counter row. Reservations are a single conditional UPDATE that only succeeds
while the new total stays within capacity, issued inside the caller's
transaction so the increment and the booking insert commit or roll back
together. The row lock taken by the UPDATE serializes concurrent requests
for the same slot until commit.
"""
from datetime import date
import logging

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from park_booking.bookings.schemas import OCCUPYING_STATUSES
from park_booking.errors import CapacityExceededError
from park_booking.models import Attraction, Booking, SlotOccupancy

logger = logging.getLogger(__name__)

class SlotCapacityLedger:
    """Admits or rejects ticket reservations against per-slot capacity"""

    def __init__(self, db: Session):
        self.db = db

    def reserve(self, attraction: Attraction, booking_date: date, time_slot: str, requested: int) -> int:
        """Reserve tickets for a slot inside the current transaction.

        Returns the remaining capacity after admission. Raises
        CapacityExceededError carrying the tickets still available otherwise.
        The caller owns the transaction: commit to keep the reservation,
        roll back to release it.
        """
        if requested < 1:
            raise ValueError("requested ticket count must be positive")

        self._ensure_counter(attraction.id, booking_date, time_slot)

        result = self.db.execute(
            update(SlotOccupancy)
            .where(
                SlotOccupancy.attraction_id == attraction.id,
                SlotOccupancy.booking_date == booking_date,
                SlotOccupancy.time_slot == time_slot,
                SlotOccupancy.reserved + requested <= attraction.capacity_per_slot,
            )
            .values(reserved=SlotOccupancy.reserved + requested)
            .execution_options(synchronize_session=False)
        )

        reserved = self._reserved(attraction.id, booking_date, time_slot)
        if result.rowcount != 1:
            available = max(attraction.capacity_per_slot - reserved, 0)
            logger.info(
                "Rejected %s tickets for attraction %s on %s %s: %s available",
                requested, attraction.id, booking_date, time_slot, available
            )
            raise CapacityExceededError(available)

        return attraction.capacity_per_slot - reserved

    def release(self, attraction_id: int, booking_date: date, time_slot: str, count: int) -> None:
        """Return tickets to a slot when a booking stops occupying it"""
        floor = func.max if self._dialect() == "sqlite" else func.greatest
        self.db.execute(
            update(SlotOccupancy)
            .where(
                SlotOccupancy.attraction_id == attraction_id,
                SlotOccupancy.booking_date == booking_date,
                SlotOccupancy.time_slot == time_slot,
            )
            .values(reserved=floor(SlotOccupancy.reserved - count, 0))
            .execution_options(synchronize_session=False)
        )

    def available(self, attraction: Attraction, booking_date: date, time_slot: str) -> int:
        """Tickets still available for a slot"""
        reserved = self._reserved(attraction.id, booking_date, time_slot)
        return max(attraction.capacity_per_slot - reserved, 0)

    def occupancy(self, attraction_id: int, booking_date: date, time_slot: str) -> int:
        """Sum of tickets held by occupying bookings, computed from the booking rows"""
        total = self.db.execute(
            select(func.coalesce(func.sum(Booking.number_of_tickets), 0)).where(
                Booking.attraction_id == attraction_id,
                Booking.booking_date == booking_date,
                Booking.time_slot == time_slot,
                Booking.booking_status.in_([s.value for s in OCCUPYING_STATUSES]),
            )
        ).scalar_one()
        return int(total)

    def recount(self, attraction_id: int, booking_date: date, time_slot: str) -> int:
        """Rebuild the counter for a slot from the booking rows"""
        self._ensure_counter(attraction_id, booking_date, time_slot)
        total = self.occupancy(attraction_id, booking_date, time_slot)
        self.db.execute(
            update(SlotOccupancy)
            .where(
                SlotOccupancy.attraction_id == attraction_id,
                SlotOccupancy.booking_date == booking_date,
                SlotOccupancy.time_slot == time_slot,
            )
            .values(reserved=total)
            .execution_options(synchronize_session=False)
        )
        logger.info("Recounted slot %s %s %s: %s reserved", attraction_id, booking_date, time_slot, total)
        return total

    def _reserved(self, attraction_id: int, booking_date: date, time_slot: str) -> int:
        reserved = self.db.execute(
            select(SlotOccupancy.reserved).where(
                SlotOccupancy.attraction_id == attraction_id,
                SlotOccupancy.booking_date == booking_date,
                SlotOccupancy.time_slot == time_slot,
            )
        ).scalar_one_or_none()
        return reserved or 0

    def _dialect(self) -> str:
        return self.db.get_bind().dialect.name

    def _ensure_counter(self, attraction_id: int, booking_date: date, time_slot: str) -> None:
        """Create the counter row for a slot if it does not exist yet"""
        dialect = self._dialect()
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            raise NotImplementedError(f"Unsupported database dialect: {dialect}")

        self.db.execute(
            insert(SlotOccupancy)
            .values(
                attraction_id=attraction_id,
                booking_date=booking_date,
                time_slot=time_slot,
                reserved=0,
            )
            .on_conflict_do_nothing(index_elements=["attraction_id", "booking_date", "time_slot"])
        )
