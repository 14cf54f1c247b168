"""create_booking_payment_tables

Revision ID: 4f1c2a9d7b30
Revises:
Create Date: 2026-10-19 10:12:44.318207

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4f1c2a9d7b30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# SQLAlchemy stores enum member names
user_role = sa.Enum('CUSTOMER', 'PROVIDER', 'ADMIN', name='user_role')
booking_status = sa.Enum(
    'PENDING', 'CONFIRMED', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED', 'REFUNDED',
    name='booking_status',
)
booking_payment_status = sa.Enum('PENDING', 'PAID', 'FAILED', 'REFUNDED', name='booking_payment_status')
payment_method = sa.Enum('RAZORPAY', 'WALLET', 'COD', name='payment_method')
payment_gateway_status = sa.Enum(
    'CREATED', 'AUTHORIZED', 'CAPTURED', 'REFUNDED', 'FAILED',
    name='payment_gateway_status',
)


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('total_earnings', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_bookings', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.CheckConstraint('total_bookings >= 0', name='user_total_bookings_non_negative'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_is_active', 'users', ['is_active'])

    op.create_table(
        'services',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('provider_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=1000), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('total_bookings', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
    )
    op.create_index('ix_services_provider_id', 'services', ['provider_id'])
    op.create_index('ix_services_name', 'services', ['name'])
    op.create_index('ix_services_category', 'services', ['category'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('customer_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('provider_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('service_id', sa.Uuid(), sa.ForeignKey('services.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('booking_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('time_slot', sa.String(length=50), nullable=False),
        sa.Column('status', booking_status, nullable=False),
        sa.Column('payment_status', booking_payment_status, nullable=False),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('service_fee', sa.Numeric(10, 2), nullable=False),
        sa.Column('platform_fee', sa.Numeric(10, 2), nullable=False),
        sa.Column('address_street', sa.String(length=255), nullable=False),
        sa.Column('address_city', sa.String(length=100), nullable=False),
        sa.Column('address_state', sa.String(length=100), nullable=False),
        sa.Column('address_pincode', sa.String(length=6), nullable=False),
        sa.Column('address_landmark', sa.String(length=255), nullable=True),
        sa.Column('customer_notes', sa.String(length=500), nullable=True),
        sa.Column('provider_notes', sa.String(length=500), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_reason', sa.String(length=200), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('total_amount = service_fee + platform_fee', name='booking_total_matches_fees'),
        sa.CheckConstraint('service_fee >= 0 AND platform_fee >= 0', name='booking_fees_non_negative'),
        sa.CheckConstraint('length(address_pincode) = 6', name='booking_pincode_length'),
    )
    for column in ('customer_id', 'provider_id', 'service_id', 'booking_date', 'status', 'payment_status', 'created_at'):
        op.create_index(f'ix_bookings_{column}', 'bookings', [column])

    op.create_table(
        'payments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('booking_id', sa.Uuid(), sa.ForeignKey('bookings.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('customer_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('provider_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR'),
        sa.Column('method', payment_method, nullable=False),
        sa.Column('status', payment_gateway_status, nullable=False),
        sa.Column('gateway_order_id', sa.String(length=64), nullable=True),
        sa.Column('gateway_payment_id', sa.String(length=64), nullable=True),
        sa.Column('gateway_signature', sa.String(length=128), nullable=True),
        sa.Column('gateway_response', sa.JSON(), nullable=True),
        sa.Column('failure_reason', sa.String(length=500), nullable=True),
        sa.Column('refund_id', sa.String(length=64), nullable=True),
        sa.Column('refund_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('refund_reason', sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('amount >= 0', name='payment_amount_non_negative'),
        sa.CheckConstraint(
            'refund_amount IS NULL OR (refund_amount >= 0 AND refund_amount <= amount)',
            name='payment_refund_within_amount',
        ),
    )
    for column in ('booking_id', 'customer_id', 'provider_id', 'status', 'gateway_order_id', 'gateway_payment_id'):
        op.create_index(f'ix_payments_{column}', 'payments', [column])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('payments')
    op.drop_table('bookings')
    op.drop_table('services')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (payment_gateway_status, payment_method, booking_payment_status, booking_status, user_role):
        enum_type.drop(bind, checkfirst=True)
