"""Initial schema: users, showtimes, bookings and bundle orders with indexes and constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

STATUSES = "('pending', 'pending_verification', 'confirmed', 'payment_rejected', 'cancelled')"


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'user'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("role IN ('user', 'admin')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "showtimes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("movie_title", sa.String(255), nullable=False),
        sa.Column("studio", sa.String(100), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ticket_price", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("seat_capacity", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("seat_capacity > 0", name="check_showtime_capacity_positive"),
        sa.CheckConstraint("ticket_price >= 0", name="check_showtime_price_non_negative"),
    )
    op.create_index("ix_showtimes_id", "showtimes", ["id"])
    # Upcoming listing filters and sorts on start time
    op.create_index("ix_showtimes_starts_at", "showtimes", ["starts_at"])
    op.create_index("ix_showtimes_movie_starts", "showtimes", ["movie_title", "starts_at"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_reference", sa.String(50), nullable=True),
        sa.Column("verification_code", sa.String(10), nullable=True),
        sa.Column("showtime_id", sa.Integer(), sa.ForeignKey("showtimes.id"), nullable=False),
        sa.Column("movie_title", sa.String(255), nullable=False),
        sa.Column("seat_numbers", sa.Text(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("customer_name", sa.String(100), nullable=False),
        sa.Column("customer_email", sa.String(255), nullable=False),
        sa.Column("customer_phone", sa.String(20), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("payment_proof", sa.String(255), nullable=True),
        sa.Column("payment_filename", sa.String(255), nullable=True),
        sa.Column("payment_mimetype", sa.String(100), nullable=True),
        sa.Column("payment_base64", sa.Text(), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", sa.String(100), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("qr_code_data", sa.Text(), nullable=True),
        sa.Column("booking_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("total_amount >= 0", name="check_booking_amount_non_negative"),
        sa.CheckConstraint(f"status IN {STATUSES}", name="check_booking_status"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_booking_reference", "bookings", ["booking_reference"], unique=True)
    op.create_index("ix_bookings_customer_email", "bookings", ["customer_email"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    # Seat map and approval conflict check: WHERE showtime_id, movie_title AND status IN (...)
    op.create_index("ix_bookings_showtime_movie_status", "bookings", ["showtime_id", "movie_title", "status"])
    # Verification queue and expiry sweep
    op.create_index("ix_bookings_status_payment_date", "bookings", ["status", "payment_date"])

    op.create_table(
        "bundle_orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_reference", sa.String(50), nullable=False),
        sa.Column("bundle_id", sa.Integer(), nullable=False),
        sa.Column("bundle_name", sa.String(255), nullable=False),
        sa.Column("bundle_description", sa.Text(), nullable=True),
        sa.Column("bundle_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("original_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("savings", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("customer_name", sa.String(100), nullable=False),
        sa.Column("customer_email", sa.String(255), nullable=False),
        sa.Column("customer_phone", sa.String(20), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("status", sa.String(30), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("payment_proof", sa.String(255), nullable=True),
        sa.Column("payment_filename", sa.String(255), nullable=True),
        sa.Column("payment_mimetype", sa.String(100), nullable=True),
        sa.Column("payment_base64", sa.Text(), nullable=True),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", sa.String(100), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("order_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("total_price >= 0", name="check_bundle_total_non_negative"),
        sa.CheckConstraint("quantity >= 1", name="check_bundle_quantity_positive"),
        sa.CheckConstraint(f"status IN {STATUSES}", name="check_bundle_status"),
    )
    op.create_index("ix_bundle_orders_id", "bundle_orders", ["id"])
    op.create_index("ix_bundle_orders_order_reference", "bundle_orders", ["order_reference"], unique=True)
    op.create_index("ix_bundle_orders_customer_email", "bundle_orders", ["customer_email"])
    op.create_index("ix_bundle_orders_user_id", "bundle_orders", ["user_id"])
    op.create_index("ix_bundle_orders_status_payment_date", "bundle_orders", ["status", "payment_date"])


def downgrade() -> None:
    op.drop_table("bundle_orders")
    op.drop_table("bookings")
    op.drop_table("showtimes")
    op.drop_table("users")
