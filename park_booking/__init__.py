"""Park Booking: slot-capacity ticket reservations with one-time QR validation."""
