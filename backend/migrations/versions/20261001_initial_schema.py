"""Initial schema: bales, products, customers, live sessions, orders, accounting, settings, devices, mirror outbox

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. CATALOG
    # ==========================================================================
    op.create_table('bales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('cost_cents', sa.Integer(), nullable=False),
        sa.Column('item_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_bales_status', 'bales', ['status'], unique=False)

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('brand', sa.String(length=128), nullable=True),
        sa.Column('bale_id', sa.Integer(), nullable=True),
        sa.Column('cost_price_cents', sa.Integer(), nullable=False),
        sa.Column('selling_price_cents', sa.Integer(), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['bale_id'], ['bales.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_bale_id', 'products', ['bale_id'], unique=False)

    # ==========================================================================
    # 2. CUSTOMERS AND LIVE SELLING
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=128), nullable=False),
        sa.Column('is_vip', sa.Boolean(), nullable=False),
        sa.Column('vip_tickets', sa.Integer(), nullable=False),
        sa.Column('is_blacklisted', sa.Boolean(), nullable=False),
        sa.Column('total_spent_cents', sa.Integer(), nullable=False),
        sa.Column('order_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username', name='uq_customers_username'),
        sqlite_autoincrement=True,
    )

    op.create_table('live_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('date', sa.String(length=16), nullable=False),
        sa.Column('total_sales_cents', sa.Integer(), nullable=False),
        sa.Column('total_orders', sa.Integer(), nullable=False),
        sa.Column('is_open', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_live_sessions_open', 'live_sessions', ['is_open'], unique=False)

    op.create_table('orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=True),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('customer_username', sa.String(length=128), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('total_price_cents', sa.Integer(), nullable=False),
        sa.Column('is_freebie', sa.Boolean(), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False),
        sa.Column('shipping_status', sa.String(length=16), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('reference_number', sa.String(length=128), nullable=True),
        sa.Column('amount_paid_cents', sa.Integer(), nullable=False),
        sa.Column('used_vip_ticket', sa.Boolean(), nullable=False),
        sa.Column('checkout_ref', sa.String(length=64), nullable=True),
        sa.Column('logs', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['live_sessions.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_orders_session_username', 'orders', ['session_id', 'customer_username'], unique=False)
    op.create_index('ix_orders_product_id', 'orders', ['product_id'], unique=False)
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'], unique=False)
    op.create_index('ix_orders_checkout_ref', 'orders', ['checkout_ref'], unique=False)

    # ==========================================================================
    # 3. ACCOUNTING
    # ==========================================================================
    op.create_table('transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('wallet', sa.String(length=32), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_transactions_created', 'transactions', ['created_at'], unique=False)
    op.create_index('ix_transactions_category', 'transactions', ['category'], unique=False)

    # ==========================================================================
    # 4. SETTINGS, CART DRAFTS, DEVICES
    # ==========================================================================
    op.create_table('shop_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('logo_url', sa.String(length=512), nullable=True),
        sa.Column('is_dark_mode', sa.Boolean(), nullable=False),
        sa.Column('preset_prices', sa.JSON(), nullable=False),
        sa.Column('expense_categories', sa.JSON(), nullable=False),
        sa.Column('data_version', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('cart_drafts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_key', sa.String(length=64), nullable=False),
        sa.Column('session_key', sa.String(length=32), nullable=True),
        sa.Column('username', sa.String(length=128), nullable=True),
        sa.Column('transaction_no', sa.String(length=128), nullable=True),
        sa.Column('selected_bale_id', sa.Integer(), nullable=True),
        sa.Column('lines', sa.JSON(), nullable=False),
        sa.Column('use_vip_ticket', sa.Boolean(), nullable=False),
        sa.Column('vip_discount_type', sa.String(length=16), nullable=False),
        sa.Column('vip_discount', sa.Float(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('amount_tendered_cents', sa.Integer(), nullable=True),
        sa.Column('amends_checkout_ref', sa.String(length=64), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_key', name='uq_cart_drafts_client'),
        sqlite_autoincrement=True,
    )

    op.create_table('devices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('device_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=True),
        sa.Column('os', sa.String(length=32), nullable=True),
        sa.Column('browser', sa.String(length=32), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('location', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('last_active', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('device_id', name='uq_devices_device_id'),
        sqlite_autoincrement=True,
    )

    # ==========================================================================
    # 5. REMOTE MIRROR OUTBOX
    # ==========================================================================
    op.create_table('mirror_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('table_name', sa.String(length=64), nullable=False),
        sa.Column('operation', sa.String(length=16), nullable=False),
        sa.Column('record_key', sa.String(length=64), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_mirror_events_status_id', 'mirror_events', ['status', 'id'], unique=False)
    op.create_index(op.f('ix_mirror_events_status'), 'mirror_events', ['status'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_mirror_events_status'), table_name='mirror_events')
    op.drop_index('ix_mirror_events_status_id', table_name='mirror_events')
    op.drop_table('mirror_events')
    op.drop_table('devices')
    op.drop_table('cart_drafts')
    op.drop_table('shop_settings')
    op.drop_index('ix_transactions_category', table_name='transactions')
    op.drop_index('ix_transactions_created', table_name='transactions')
    op.drop_table('transactions')
    op.drop_index('ix_orders_checkout_ref', table_name='orders')
    op.drop_index('ix_orders_customer_id', table_name='orders')
    op.drop_index('ix_orders_product_id', table_name='orders')
    op.drop_index('ix_orders_session_username', table_name='orders')
    op.drop_table('orders')
    op.drop_index('ix_live_sessions_open', table_name='live_sessions')
    op.drop_table('live_sessions')
    op.drop_table('customers')
    op.drop_index('ix_products_bale_id', table_name='products')
    op.drop_table('products')
    op.drop_index('ix_bales_status', table_name='bales')
    op.drop_table('bales')
