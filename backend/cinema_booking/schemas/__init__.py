from cinema_booking.schemas.user import UserCreate, UserResponse, UserLogin, Token
from cinema_booking.schemas.showtime import ShowtimeCreate, ShowtimeResponse, ShowtimeListResponse
from cinema_booking.schemas.booking import BookingCreate, BookingResponse, BookingDetailResponse
from cinema_booking.schemas.bundle import BundleOrderCreate, BundleOrderResponse

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "Token",
    "ShowtimeCreate", "ShowtimeResponse", "ShowtimeListResponse",
    "BookingCreate", "BookingResponse", "BookingDetailResponse",
    "BundleOrderCreate", "BundleOrderResponse",
]
