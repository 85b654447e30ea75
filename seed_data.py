#!/usr/bin/env python3

from decimal import Decimal

from park_booking.database import Base, SessionLocal, engine
from park_booking.models import Attraction, Booking, SlotOccupancy

def create_seed_data():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    
    try:
        print("🚀 Creating seed data for Park Booking...")
        
        # Clear existing data (in reverse dependency order)
        print("Clearing existing data...")
        db.query(SlotOccupancy).delete()
        db.query(Booking).delete()
        db.query(Attraction).delete()
        
        print("Creating attractions...")
        attractions = [
            Attraction(
                name="Thunder Coaster",
                description="Wooden roller coaster with a 30 m first drop",
                location="North Zone",
                opening_time="09:00",
                closing_time="21:00",
                ticket_price=Decimal("15.00"),
                capacity_per_slot=48
            ),
            Attraction(
                name="Splash Canyon",
                description="River rapids ride, expect to get wet",
                location="Water Zone",
                opening_time="10:00",
                closing_time="18:00",
                ticket_price=Decimal("12.50"),
                capacity_per_slot=32
            ),
            Attraction(
                name="Sky Wheel",
                description="Observation wheel with views over the park",
                location="Central Plaza",
                opening_time="09:00",
                closing_time="23:00",
                ticket_price=Decimal("10.00"),
                capacity_per_slot=60
            ),
            Attraction(
                name="Haunted Manor",
                description="Walk-through dark attraction, ages 12 and up",
                location="West Zone",
                opening_time="12:00",
                closing_time="22:00",
                ticket_price=Decimal("18.00"),
                capacity_per_slot=20
            ),
            Attraction(
                name="Kiddie Carousel",
                description="Classic carousel, closed for refurbishment",
                location="Family Zone",
                opening_time="09:00",
                closing_time="19:00",
                ticket_price=Decimal("5.00"),
                capacity_per_slot=24,
                is_active=False
            ),
        ]
        db.add_all(attractions)
        
        # Commit all changes
        db.commit()
        print("✅ Successfully created seed data for Park Booking!")
        print(f"Created:")
        print(f"  - {len(attractions)} attractions ({sum(1 for a in attractions if a.is_active)} active)")
        
    except Exception as e:
        print(f"❌ Error creating seed data: {e}")
        db.rollback()
        raise
    finally:
        db.close()

if __name__ == "__main__":
    create_seed_data()
