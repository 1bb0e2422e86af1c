"""create_bid_marketplace

Revision ID: b7e1c0d4a9f2
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'b7e1c0d4a9f2'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_ENUMS = {
    'access_status_enum': ('PENDING', 'APPROVED', 'DENIED'),
    'bid_request_status_enum': ('OPEN', 'CLOSED'),
    'close_reason_enum': ('MANUAL', 'BID_ACCEPTED'),
    'product_category_enum': ('CHEMICAL', 'FERTILIZER', 'SEED'),
    'retailer_bid_status_enum': ('PENDING', 'ACCEPTED', 'REJECTED'),
}


def _enum(name: str) -> postgresql.ENUM:
    # Types are created once up front; columns only reference them
    return postgresql.ENUM(*_ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in _ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        'businesses',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('phone', sa.String(30), nullable=True),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('city', sa.String(120), nullable=True),
        sa.Column('state', sa.String(60), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'retailers',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('phone', sa.String(30), nullable=True),
        sa.Column('business_license', sa.String(100), nullable=True),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'retailer_access',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('retailer_id', sa.Uuid(), sa.ForeignKey('retailers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('business_id', sa.Uuid(), sa.ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('inputs_status', _enum('access_status_enum'), nullable=False),
        sa.Column('grain_status', _enum('access_status_enum'), nullable=False),
        sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('retailer_id', 'business_id', name='uq_retailer_access_pair'),
    )
    op.create_index('ix_retailer_access_retailer_id', 'retailer_access', ['retailer_id'])
    op.create_index('ix_retailer_access_business_id', 'retailer_access', ['business_id'])

    op.create_table(
        'bid_requests',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('business_id', sa.Uuid(), sa.ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('desired_delivery_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', _enum('bid_request_status_enum'), nullable=False),
        sa.Column('close_reason', _enum('close_reason_enum'), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_bid_requests_business_id', 'bid_requests', ['business_id'])
    op.create_index('ix_bid_requests_status', 'bid_requests', ['status'])

    op.create_table(
        'bid_request_items',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('bid_request_id', sa.Uuid(), sa.ForeignKey('bid_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('category', _enum('product_category_enum'), nullable=False),
        sa.Column('product_id', sa.String(100), nullable=True),
        sa.Column('product_name', sa.String(200), nullable=False),
        sa.Column('quantity', sa.Float(), nullable=False),
        sa.Column('unit', sa.String(20), nullable=False),
        sa.Column('starting_price', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_bid_request_items_bid_request_id', 'bid_request_items', ['bid_request_id'])

    op.create_table(
        'retailer_bids',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('bid_request_id', sa.Uuid(), sa.ForeignKey('bid_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('retailer_id', sa.Uuid(), sa.ForeignKey('retailers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', _enum('retailer_bid_status_enum'), nullable=False),
        sa.Column('total_delivered_price', sa.Float(), nullable=False),
        sa.Column('guaranteed_delivery_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('terms_acknowledged', sa.Boolean(), nullable=False),
        sa.Column('expiration_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('accepted_by', sa.Uuid(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('bid_request_id', 'retailer_id', name='uq_retailer_bids_request_retailer'),
    )
    op.create_index('ix_retailer_bids_bid_request_id', 'retailer_bids', ['bid_request_id'])
    op.create_index('ix_retailer_bids_retailer_id', 'retailer_bids', ['retailer_id'])
    op.create_index('ix_retailer_bids_status', 'retailer_bids', ['status'])
    # At most one ACCEPTED bid per request
    op.create_index(
        'uq_retailer_bids_one_accepted',
        'retailer_bids',
        ['bid_request_id'],
        unique=True,
        postgresql_where=sa.text("status = 'ACCEPTED'"),
    )

    op.create_table(
        'bid_items',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('retailer_bid_id', sa.Uuid(), sa.ForeignKey('retailer_bids.id', ondelete='CASCADE'), nullable=False),
        sa.Column('bid_request_item_id', sa.Uuid(), sa.ForeignKey('bid_request_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('price_per_unit', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('retailer_bid_id', 'bid_request_item_id', name='uq_bid_items_bid_line'),
    )
    op.create_index('ix_bid_items_retailer_bid_id', 'bid_items', ['retailer_bid_id'])
    op.create_index('ix_bid_items_bid_request_item_id', 'bid_items', ['bid_request_item_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('bid_request_id', sa.Uuid(), nullable=False),
        sa.Column('retailer_bid_id', sa.Uuid(), nullable=True),
        sa.Column('entity', sa.String(20), nullable=False),
        sa.Column('from_status', sa.String(50), nullable=True),
        sa.Column('to_status', sa.String(50), nullable=False),
        sa.Column('actor_type', sa.String(20), nullable=True),
        sa.Column('actor_id', sa.Uuid(), nullable=True),
        sa.Column('reason', sa.String(500), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_audit_logs_bid_request_id', 'audit_logs', ['bid_request_id'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('bid_items')
    op.drop_table('retailer_bids')
    op.drop_table('bid_request_items')
    op.drop_table('bid_requests')
    op.drop_table('retailer_access')
    op.drop_table('retailers')
    op.drop_table('businesses')

    bind = op.get_bind()
    for name in reversed(list(_ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
