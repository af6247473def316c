"""Initial schema - marketplaces, catalog, orders, stock ledger, webhook logs

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


orderstatus_enum = postgresql.ENUM(
    'PENDING', 'PROCESSING', 'SHIPPED', 'DELIVERED', 'CANCELLED', 'REFUNDED',
    name='orderstatus', create_type=False
)
stocklogtype_enum = postgresql.ENUM(
    'SALE', 'CANCEL', 'RETURN', 'ENTRY', 'EXIT', 'ADJUSTMENT',
    name='stocklogtype', create_type=False
)
webhookstatus_enum = postgresql.ENUM(
    'PENDING', 'PROCESSING', 'SUCCESS', 'FAILED', 'IGNORED',
    name='webhookstatus', create_type=False
)


def upgrade() -> None:
    bind = op.get_bind()
    orderstatus_enum.create(bind, checkfirst=True)
    stocklogtype_enum.create(bind, checkfirst=True)
    webhookstatus_enum.create(bind, checkfirst=True)

    op.create_table(
        'marketplaces',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('api_key', sa.String(), nullable=True),
        sa.Column('api_secret', sa.String(), nullable=True),
        sa.Column('supplier_id', sa.String(), nullable=True),
        sa.Column('webhook_secret', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.TIMESTAMP(timezone=False), server_default=sa.text('now()'), nullable=False),
        sa.UniqueConstraint('name', name='marketplaces_name_key'),
    )
    op.create_index('ix_marketplaces_is_active', 'marketplaces', ['is_active'])

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=False), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=False), server_default=sa.text('now()'), nullable=False),
        sa.Column('sku', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('price', sa.Float(), nullable=True),
        sa.Column('location', sa.String(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('initial_stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('requires_review', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.UniqueConstraint('sku', name='products_sku_key'),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_products_stock_quantity_nonneg'),
    )
    op.create_index('ix_products_location', 'products', ['location'])
    op.create_index('ix_products_requires_review', 'products', ['requires_review'])

    op.create_table(
        'product_mappings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('marketplace_id', sa.Integer(), sa.ForeignKey('marketplaces.id'), nullable=False),
        sa.Column('remote_sku', sa.String(), nullable=False),
        sa.Column('remote_product_id', sa.String(), nullable=True),
        sa.Column('remote_product_name', sa.String(), nullable=True),
        sa.Column('sync_stock', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.TIMESTAMP(timezone=False), server_default=sa.text('now()'), nullable=False),
        sa.UniqueConstraint('product_id', 'marketplace_id', name='uq_product_mappings_product_marketplace'),
    )
    op.create_index('ix_product_mappings_product_id', 'product_mappings', ['product_id'])
    op.create_index('ix_product_mappings_marketplace_id', 'product_mappings', ['marketplace_id'])
    op.create_index('ix_product_mappings_remote_sku', 'product_mappings', ['remote_sku'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('marketplace_order_id', sa.String(), nullable=False),
        sa.Column('marketplace_id', sa.Integer(), sa.ForeignKey('marketplaces.id'), nullable=False),
        sa.Column('status', orderstatus_enum, nullable=False, server_default='PENDING'),
        sa.Column('shipment_package_status', sa.String(), nullable=True),
        sa.Column('shipment_package_id', sa.String(), nullable=True),
        sa.Column('total_amount', sa.Float(), nullable=True),
        sa.Column('order_date', sa.TIMESTAMP(timezone=False), nullable=True),
        sa.Column('last_modified_date', sa.TIMESTAMP(timezone=False), nullable=True),
        sa.Column('customer_first_name', sa.String(), nullable=True),
        sa.Column('customer_last_name', sa.String(), nullable=True),
        sa.Column('customer_email', sa.String(), nullable=True),
        sa.Column('customer_id', sa.String(), nullable=True),
        sa.Column('customer_info', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('shipment_address', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('invoice_address', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('cargo_provider_name', sa.String(), nullable=True),
        sa.Column('cargo_tracking_number', sa.String(), nullable=True),
        sa.Column('cargo_tracking_link', sa.String(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=False), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=False), server_default=sa.text('now()'), nullable=False),
        sa.UniqueConstraint('marketplace_order_id', name='orders_marketplace_order_id_key'),
    )
    op.create_index('ix_orders_id', 'orders', ['id'])
    op.create_index('ix_orders_marketplace_id', 'orders', ['marketplace_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_mapping_id', sa.Integer(), sa.ForeignKey('product_mappings.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Float(), nullable=True),
        sa.Column('order_line_id', sa.String(), nullable=True),
        sa.Column('product_name', sa.String(), nullable=True),
        sa.Column('product_code', sa.String(), nullable=True),
        sa.Column('product_size', sa.String(), nullable=True),
        sa.Column('product_color', sa.String(), nullable=True),
        sa.Column('barcode', sa.String(), nullable=True),
        sa.Column('merchant_sku', sa.String(), nullable=True),
        sa.Column('sku', sa.String(), nullable=True),
        sa.Column('amount', sa.Float(), nullable=True),
        sa.Column('discount', sa.Float(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=False), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_mapping_id', 'order_items', ['product_mapping_id'])

    op.create_table(
        'stock_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='SET NULL'), nullable=True),
        sa.Column('type', stocklogtype_enum, nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('requested_quantity', sa.Integer(), nullable=False),
        sa.Column('old_stock', sa.Integer(), nullable=False),
        sa.Column('new_stock', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(), nullable=True),
        sa.Column('reference', sa.String(), nullable=True),
        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=False), server_default=sa.text('now()'), nullable=False),
        sa.UniqueConstraint('order_id', 'product_id', 'type', name='uq_stock_logs_order_product_type'),
    )
    op.create_index('ix_stock_logs_product_id', 'stock_logs', ['product_id'])
    op.create_index('ix_stock_logs_order_id', 'stock_logs', ['order_id'])
    op.create_index('ix_stock_logs_type', 'stock_logs', ['type'])
    op.create_index('ix_stock_logs_reference', 'stock_logs', ['reference'])
    op.create_index('ix_stock_logs_created_at', 'stock_logs', ['created_at'])

    op.create_table(
        'webhook_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('marketplace_id', sa.Integer(), sa.ForeignKey('marketplaces.id'), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('payload', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('status', webhookstatus_enum, nullable=False, server_default='PENDING'),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=False), server_default=sa.text('now()'), nullable=False),
        sa.Column('processed_at', sa.TIMESTAMP(timezone=False), nullable=True),
    )
    op.create_index('ix_webhook_logs_marketplace_id', 'webhook_logs', ['marketplace_id'])
    op.create_index('ix_webhook_logs_event_type', 'webhook_logs', ['event_type'])
    op.create_index('ix_webhook_logs_status', 'webhook_logs', ['status'])
    op.create_index('ix_webhook_logs_created_at', 'webhook_logs', ['created_at'])

    op.create_table(
        'activity_log',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=100), nullable=False),
        sa.Column('platform', sa.String(length=50), nullable=True),
        sa.Column('details', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('user_id', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=False), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_activity_log_action', 'activity_log', ['action'])
    op.create_index('ix_activity_log_entity_type', 'activity_log', ['entity_type'])
    op.create_index('ix_activity_log_entity_id', 'activity_log', ['entity_id'])
    op.create_index('ix_activity_log_platform', 'activity_log', ['platform'])
    op.create_index('ix_activity_log_created_at', 'activity_log', ['created_at'])

    op.create_table(
        'counters',
        sa.Column('key', sa.String(length=200), primary_key=True),
        sa.Column('value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=False), nullable=False),
    )
    op.create_index('ix_counters_expires_at', 'counters', ['expires_at'])


def downgrade() -> None:
    op.drop_table('counters')
    op.drop_table('activity_log')
    op.drop_table('webhook_logs')
    op.drop_table('stock_logs')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('product_mappings')
    op.drop_table('products')
    op.drop_table('marketplaces')

    bind = op.get_bind()
    webhookstatus_enum.drop(bind, checkfirst=True)
    stocklogtype_enum.drop(bind, checkfirst=True)
    orderstatus_enum.drop(bind, checkfirst=True)
