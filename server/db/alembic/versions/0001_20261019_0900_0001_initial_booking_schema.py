"""Initial booking engine schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Trip catalogue
    op.create_table('trips',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('default_price', sa.Integer(), nullable=False),
        sa.Column('origin_prices', sa.JSON(), nullable=False),
        sa.Column('advance_per_traveller', sa.Integer(), nullable=True),
        sa.Column('default_capacity', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('booking_live', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('default_price >= 0', name='ck_trip_default_price_non_negative'),
        sa.CheckConstraint(
            'advance_per_traveller IS NULL OR advance_per_traveller >= 0',
            name='ck_trip_advance_non_negative'
        ),
        sa.CheckConstraint('default_capacity > 0', name='ck_trip_default_capacity_positive'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug')
    )
    op.create_index(op.f('ix_trips_name'), 'trips', ['name'], unique=False)
    op.create_index(op.f('ix_trips_slug'), 'trips', ['slug'], unique=False)

    # Scheduled departures with seat counters
    op.create_table('batches',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('trip_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('batch_size', sa.Integer(), nullable=False),
        sa.Column('seats_booked', sa.Integer(), nullable=False),
        sa.Column('available_seats', sa.Integer(), nullable=True),
        sa.Column('price_override', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('batch_size >= 0', name='ck_batch_size_non_negative'),
        sa.CheckConstraint('seats_booked >= 0', name='ck_batch_seats_booked_non_negative'),
        sa.CheckConstraint('seats_booked <= batch_size', name='ck_batch_seats_booked_lte_size'),
        sa.CheckConstraint(
            'available_seats IS NULL OR available_seats = batch_size - seats_booked',
            name='ck_batch_available_seats_consistent'
        ),
        sa.CheckConstraint('end_date >= start_date', name='ck_batch_dates_ordered'),
        sa.CheckConstraint(
            'price_override IS NULL OR price_override >= 0',
            name='ck_batch_price_override_non_negative'
        ),
        sa.ForeignKeyConstraint(['trip_id'], ['trips.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_batches_trip_id'), 'batches', ['trip_id'], unique=False)
    op.create_index(op.f('ix_batches_start_date'), 'batches', ['start_date'], unique=False)
    op.create_index(op.f('ix_batches_status'), 'batches', ['status'], unique=False)

    # Bookings with both proof slots inline
    op.create_table('bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('trip_id', sa.Uuid(), nullable=False),
        sa.Column('batch_id', sa.Uuid(), nullable=True),
        sa.Column('user_id', sa.String(length=128), nullable=True),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('pickup_location', sa.String(length=128), nullable=True),
        sa.Column('traveller_count', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('advance_amount', sa.Integer(), nullable=False),
        sa.Column('advance_paid', sa.Integer(), nullable=False),
        sa.Column('seats_held', sa.Integer(), nullable=False),
        sa.Column('state', sa.String(length=32), nullable=False),
        sa.Column('advance_proof_ref', sa.String(length=512), nullable=True),
        sa.Column('advance_proof_status', sa.String(length=16), nullable=False),
        sa.Column('advance_proof_note', sa.Text(), nullable=True),
        sa.Column('advance_uploaded_at', sa.DateTime(), nullable=True),
        sa.Column('advance_verified_at', sa.DateTime(), nullable=True),
        sa.Column('balance_proof_ref', sa.String(length=512), nullable=True),
        sa.Column('balance_proof_status', sa.String(length=16), nullable=False),
        sa.Column('balance_proof_note', sa.Text(), nullable=True),
        sa.Column('balance_uploaded_at', sa.DateTime(), nullable=True),
        sa.Column('balance_verified_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('verified_by', sa.String(length=128), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_by', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('traveller_count > 0', name='ck_booking_traveller_count_positive'),
        sa.CheckConstraint('total_amount >= 0', name='ck_booking_total_non_negative'),
        sa.CheckConstraint('advance_amount >= 0', name='ck_booking_advance_non_negative'),
        sa.CheckConstraint('advance_paid >= 0', name='ck_booking_advance_paid_non_negative'),
        sa.CheckConstraint(
            'seats_held = 0 OR seats_held = traveller_count',
            name='ck_booking_seats_held_all_or_nothing'
        ),
        sa.CheckConstraint('length(full_name) > 0', name='ck_booking_full_name_not_empty'),
        sa.ForeignKeyConstraint(['trip_id'], ['trips.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['batch_id'], ['batches.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bookings_trip_id'), 'bookings', ['trip_id'], unique=False)
    op.create_index(op.f('ix_bookings_batch_id'), 'bookings', ['batch_id'], unique=False)
    op.create_index(op.f('ix_bookings_user_id'), 'bookings', ['user_id'], unique=False)
    op.create_index(op.f('ix_bookings_state'), 'bookings', ['state'], unique=False)
    op.create_index(op.f('ix_bookings_is_deleted'), 'bookings', ['is_deleted'], unique=False)
    op.create_index(op.f('ix_bookings_created_at'), 'bookings', ['created_at'], unique=False)

    # Money received
    op.create_table('payments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=False),
        sa.Column('stage', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('transaction_id', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('recorded_by', sa.String(length=128), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('amount >= 0', name='ck_payment_amount_non_negative'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payments_booking_id'), 'payments', ['booking_id'], unique=False)
    op.create_index(op.f('ix_payments_created_at'), 'payments', ['created_at'], unique=False)

    # Money owed back after cancellation
    op.create_table('refunds',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('processed_by', sa.String(length=128), nullable=True),
        sa.CheckConstraint('amount >= 0', name='ck_refund_amount_non_negative'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_refunds_booking_id'), 'refunds', ['booking_id'], unique=False)
    op.create_index(op.f('ix_refunds_status'), 'refunds', ['status'], unique=False)

    # Append-only audit trail
    op.create_table('audit_log',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('actor_id', sa.String(length=128), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_log_actor_id'), 'audit_log', ['actor_id'], unique=False)
    op.create_index(op.f('ix_audit_log_action'), 'audit_log', ['action'], unique=False)
    op.create_index(op.f('ix_audit_log_created_at'), 'audit_log', ['created_at'], unique=False)
    op.create_index('ix_audit_log_entity', 'audit_log', ['entity_type', 'entity_id'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('audit_log')
    op.drop_table('refunds')
    op.drop_table('payments')
    op.drop_table('bookings')
    op.drop_table('batches')
    op.drop_table('trips')
