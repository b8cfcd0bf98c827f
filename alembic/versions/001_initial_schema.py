"""Initial schema - catalog, destinations, allocations, sync ledger, notifications

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'products',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('vendor', sa.String(), nullable=True),
        sa.Column('product_type', sa.String(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_products_status', 'products', ['status'])

    op.create_table(
        'product_variants',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('product_id', sa.String(length=64), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('compare_at_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('sku', sa.String(), nullable=True),
        sa.Column('inventory_quantity', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('option_values', sa.JSON(), nullable=True),
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])

    op.create_table(
        'product_options',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.String(length=64), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('values', sa.JSON(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False),
    )
    op.create_index('ix_product_options_product_id', 'product_options', ['product_id'])

    op.create_table(
        'destinations',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('platform_name', sa.String(length=32), nullable=False),
        sa.Column('shop_domain', sa.String(), nullable=False, unique=True),
        sa.Column('shop_name', sa.String(), nullable=True),
        sa.Column('access_token', sa.String(), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('locale', sa.String(length=16), nullable=False),
        sa.Column('default_location_id', sa.String(), nullable=True),
        sa.Column('is_connected', sa.Boolean(), nullable=False),
        sa.Column('connected_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('disconnected_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_destinations_is_connected', 'destinations', ['is_connected'])

    op.create_table(
        'destination_sync_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.String(length=64), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('destination_id', sa.String(length=64), sa.ForeignKey('destinations.id'), nullable=False),
        sa.Column('variant_overrides', sa.JSON(), nullable=False),
        sa.Column('config', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.UniqueConstraint('product_id', 'destination_id', name='uq_sync_setting_pair'),
    )
    op.create_index('ix_destination_sync_settings_product_id', 'destination_sync_settings', ['product_id'])
    op.create_index('ix_destination_sync_settings_destination_id', 'destination_sync_settings', ['destination_id'])

    op.create_table(
        'inventory_allocations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('variant_id', sa.String(length=64), sa.ForeignKey('product_variants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('destination_id', sa.String(length=64), sa.ForeignKey('destinations.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.UniqueConstraint('variant_id', 'destination_id', name='uq_allocation_pair'),
        sa.CheckConstraint('quantity >= 0', name='ck_allocation_non_negative'),
    )
    op.create_index('ix_inventory_allocations_variant_id', 'inventory_allocations', ['variant_id'])
    op.create_index('ix_inventory_allocations_destination_id', 'inventory_allocations', ['destination_id'])

    op.create_table(
        'sync_ledger',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('destination_id', sa.String(length=64), nullable=False),
        sa.Column('remote_id', sa.String(), nullable=True),
        sa.Column('remote_handle', sa.String(), nullable=True),
        sa.Column('remote_variant_ids', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('last_operation', sa.String(length=16), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('last_error_kind', sa.String(length=16), nullable=True),
        sa.Column('payload_hash', sa.String(length=64), nullable=True),
        sa.Column('last_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_success_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('invalidated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('attempt_count', sa.Integer(), nullable=False),
        sa.Column('success_count', sa.Integer(), nullable=False),
        sa.Column('failure_count', sa.Integer(), nullable=False),
        sa.UniqueConstraint('product_id', 'destination_id', name='uq_ledger_pair'),
    )
    op.create_index('ix_sync_ledger_product_id', 'sync_ledger', ['product_id'])
    op.create_index('ix_sync_ledger_destination_id', 'sync_ledger', ['destination_id'])
    op.create_index('ix_sync_ledger_status', 'sync_ledger', ['status'])

    op.create_table(
        'sync_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('destination_id', sa.String(length=64), nullable=False),
        sa.Column('operation', sa.String(length=16), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('error_kind', sa.String(length=16), nullable=True),
        sa.Column('remote_id', sa.String(), nullable=True),
        sa.Column('duration_ms', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_sync_history_product_id', 'sync_history', ['product_id'])
    op.create_index('ix_sync_history_destination_id', 'sync_history', ['destination_id'])
    op.create_index('ix_sync_history_created_at', 'sync_history', ['created_at'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('link', sa.String(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_notifications_is_read', 'notifications', ['is_read'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])
    op.create_index('ix_notifications_expires_at', 'notifications', ['expires_at'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('sync_history')
    op.drop_table('sync_ledger')
    op.drop_table('inventory_allocations')
    op.drop_table('destination_sync_settings')
    op.drop_table('destinations')
    op.drop_table('product_options')
    op.drop_table('product_variants')
    op.drop_table('products')
