"""
Customer booking history: seat bookings and bundle orders in one list.
"""

from collections import Counter

from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.domain.lifecycle import BookingStatus, normalize_status, status_display
from cinema_booking.core.exceptions import ValidationError
from cinema_booking.models.user import User
from cinema_booking.schemas.booking import MyBookingItem, MyBookingsResponse, MyBookingsSummary
from cinema_booking.services.booking_service import find_customer_bookings, seats_of
from cinema_booking.services.bundle_service import find_customer_bundle_orders


def _canonical(value: str) -> str:
    try:
        return normalize_status(value).value
    except ValidationError:
        return value


async def get_my_bookings(db: AsyncSession, user: User) -> MyBookingsResponse:
    bookings = await find_customer_bookings(db, user.id, user.email, user.username)
    bundles = await find_customer_bundle_orders(db, user.id, user.email, user.username)

    items = []
    for booking in bookings:
        text, css = status_display(booking.status)
        # Guest rows matched by email or name are listed without their ticket secrets
        linked = booking.user_id == user.id
        items.append(
            MyBookingItem(
                order_type="regular",
                booking_reference=booking.booking_reference,
                verification_code=booking.verification_code if linked else None,
                movie_title=booking.movie_title,
                seat_numbers=seats_of(booking),
                showtime_id=booking.showtime_id,
                total_amount=booking.total_amount,
                customer_name=booking.customer_name,
                customer_email=booking.customer_email,
                status=_canonical(booking.status),
                status_text=text,
                status_class=css,
                booking_date=booking.booking_date,
                is_verified=booking.is_verified,
                verified_at=booking.verified_at,
                qr_code_data=booking.qr_code_data if linked else None,
            )
        )
    for order in bundles:
        text, css = status_display(order.status)
        items.append(
            MyBookingItem(
                order_type="bundle",
                booking_reference=order.order_reference,
                verification_code=None,
                movie_title=order.bundle_name,
                seat_numbers=[],
                showtime_id=None,
                total_amount=order.total_price,
                customer_name=order.customer_name,
                customer_email=order.customer_email,
                status=_canonical(order.status),
                status_text=text,
                status_class=css,
                booking_date=order.order_date,
                is_verified=False,
                verified_at=order.verified_at,
                qr_code_data=None,
            )
        )

    items.sort(key=lambda item: item.booking_date, reverse=True)
    statuses = Counter(item.status for item in items)
    summary = MyBookingsSummary(
        total=len(items),
        regular=len(bookings),
        bundle=len(bundles),
        **{s.value: statuses.get(s.value, 0) for s in BookingStatus},
    )
    return MyBookingsResponse(data=items, summary=summary)
