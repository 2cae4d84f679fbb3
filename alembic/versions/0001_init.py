"""create checkout tables

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

revision = '0001_init'
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        'products',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('emoji', sa.String(16), nullable=True),
        sa.Column('unit_price_cents', sa.Integer, nullable=False),
        sa.Column('stock_qty', sa.Integer, nullable=False, server_default='0'),
        sa.Column('active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.CheckConstraint('stock_qty >= 0', name='ck_products_stock_non_negative'),
    )
    op.create_table(
        'delivery_dates',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('delivery_date', sa.Date, nullable=False),
        sa.Column('label', sa.String(200), nullable=False),
        sa.Column('active', sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('payment_status', sa.String(20), nullable=False),
        sa.Column('payment_method', sa.String(20), nullable=False),
        sa.Column('customer_first_name', sa.String(100), nullable=False),
        sa.Column('customer_last_name', sa.String(100), nullable=False),
        sa.Column('customer_address', sa.Text, nullable=False),
        sa.Column('customer_phone', sa.String(50), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('church_name', sa.String(200), nullable=False),
        sa.Column('section_name', sa.String(200), nullable=False),
        sa.Column('delivery_address', sa.Text, nullable=False),
        sa.Column('delivery_date_id', sa.String(64), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('total_amount_cents', sa.Integer, nullable=False),
        sa.Column('stripe_checkout_session_id', sa.String(255), nullable=True),
        sa.Column('stripe_payment_intent_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])
    op.create_index('ix_orders_stripe_checkout_session_id', 'orders', ['stripe_checkout_session_id'])
    op.create_index('ix_orders_stripe_payment_intent_id', 'orders', ['stripe_payment_intent_id'])
    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(64), nullable=False),
        sa.Column('product_name_snapshot', sa.String(200), nullable=False),
        sa.Column('product_emoji_snapshot', sa.String(16), nullable=True),
        sa.Column('unit_price_cents_snapshot', sa.Integer, nullable=False),
        sa.Column('qty', sa.Integer, nullable=False),
        sa.Column('line_total_cents', sa.Integer, nullable=False),
        sa.CheckConstraint('qty > 0', name='ck_order_items_qty_positive'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_table(
        'donations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('donor_first_name', sa.String(100), nullable=False),
        sa.Column('donor_last_name', sa.String(100), nullable=False),
        sa.Column('donor_email', sa.String(255), nullable=True),
        sa.Column('donor_phone', sa.String(50), nullable=True),
        sa.Column('church_name', sa.String(200), nullable=True),
        sa.Column('section_name', sa.String(200), nullable=True),
        sa.Column('message', sa.Text, nullable=True),
        sa.Column('amount_cents', sa.Integer, nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('payment_status', sa.String(20), nullable=False),
        sa.Column('stripe_checkout_session_id', sa.String(255), nullable=True),
        sa.Column('stripe_payment_intent_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index('ix_donations_payment_status', 'donations', ['payment_status'])
    op.create_index('ix_donations_stripe_checkout_session_id', 'donations', ['stripe_checkout_session_id'])
    op.create_index('ix_donations_stripe_payment_intent_id', 'donations', ['stripe_payment_intent_id'])

def downgrade() -> None:
    op.drop_table('donations')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('delivery_dates')
    op.drop_table('products')
