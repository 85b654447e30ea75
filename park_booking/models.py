from sqlalchemy import Column, Integer, BigInteger, String, Boolean, DateTime, Date, Text, ForeignKey, Numeric, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from park_booking.database import Base

# SQLite only auto-increments INTEGER PRIMARY KEY columns
PrimaryKey = BigInteger().with_variant(Integer, "sqlite")

# ================================
# Attractions
# ================================
class Attraction(Base):
    __tablename__ = "attractions"

    id = Column(PrimaryKey, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)
    description = Column(Text, default="")
    location = Column(String(255), default="")
    opening_time = Column(String(5))
    closing_time = Column(String(5))
    ticket_price = Column(Numeric(10, 2), nullable=False)
    capacity_per_slot = Column(Integer, nullable=False)
    image_url = Column(String(500), default="")
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    bookings = relationship("Booking", back_populates="attraction")
    slot_occupancies = relationship("SlotOccupancy", back_populates="attraction")

# ================================
# Bookings
# ================================
class Booking(Base):
    __tablename__ = "bookings"

    id = Column(PrimaryKey, primary_key=True)
    booking_id = Column(String(64), unique=True, nullable=False, index=True)
    attraction_id = Column(BigInteger, ForeignKey("attractions.id"), nullable=False, index=True)
    attraction_name = Column(String(255), nullable=False)

    booking_date = Column(Date, nullable=False, index=True)
    time_slot = Column(String(5), nullable=False, index=True)

    visitor_email = Column(String(255), nullable=False, index=True)
    visitor_name = Column(String(255), nullable=False)
    phone_number = Column(String(32), default="", index=True)

    number_of_tickets = Column(Integer, nullable=False)
    ticket_type = Column(String(20), nullable=False, default="adult")

    price_per_ticket = Column(Numeric(10, 2), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    final_amount = Column(Numeric(10, 2), nullable=False)

    qr_code_data = Column(Text, unique=True, nullable=False)
    qr_code_hash = Column(String(64), nullable=False)
    qr_code_image = Column(String(500), default="")
    is_qr_validated = Column(Boolean, default=False, nullable=False, index=True)
    validation_time = Column(DateTime)
    validated_by = Column(String(255))

    booking_status = Column(String(20), nullable=False, default="confirmed", index=True)
    payment_status = Column(String(20), nullable=False, default="completed")
    payment_reference = Column(String(64), default="")

    special_requirements = Column(Text, default="")
    notes = Column(Text, default="")

    booking_time = Column(DateTime, nullable=False)
    expiry_time = Column(DateTime, nullable=False)
    cancellation_time = Column(DateTime)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    attraction = relationship("Attraction", back_populates="bookings")

    __table_args__ = (
        Index("ix_bookings_slot", "attraction_id", "booking_date", "time_slot"),
        Index("ix_bookings_visitor_date", "visitor_email", "booking_date"),
        Index("ix_bookings_status_expiry", "booking_status", "expiry_time"),
    )

# ================================
# Per-slot occupancy counter
# ================================
class SlotOccupancy(Base):
    __tablename__ = "slot_occupancy"

    id = Column(PrimaryKey, primary_key=True)
    attraction_id = Column(BigInteger, ForeignKey("attractions.id"), nullable=False)
    booking_date = Column(Date, nullable=False)
    time_slot = Column(String(5), nullable=False)
    reserved = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    attraction = relationship("Attraction", back_populates="slot_occupancies")

    __table_args__ = (
        UniqueConstraint("attraction_id", "booking_date", "time_slot", name="uq_slot_occupancy_key"),
    )
