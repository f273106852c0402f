from cinema_booking.models.user import User
from cinema_booking.models.showtime import Showtime
from cinema_booking.models.booking import Booking
from cinema_booking.models.bundle_order import BundleOrder

__all__ = ["User", "Showtime", "Booking", "BundleOrder"]
