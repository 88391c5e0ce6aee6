"""Inventory ledger schema: tenancy, balances, transactions and documents

LEDGER MIGRATION:
1. Creates tenant root, locations, users and products
2. Creates orders, returns and payments (transaction linkage targets)
3. Creates adjustments, transfers and stock counts with their lines
4. Creates inventory_balances (unique per tenant/product/location) and the
   append-only inventory_transactions table
5. Creates document_sequences for human-readable numbers

Revision ID: bo001_inventory_ledger
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'bo001_inventory_ledger'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated=True):
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())
        )
    return columns


def _qty(name, nullable=False, default=None):
    return sa.Column(
        name,
        # SQLite keeps an integer count of 0.0001 units
        sa.Numeric(precision=19, scale=4).with_variant(sa.BigInteger(), "sqlite"),
        nullable=nullable,
        server_default=default,
    )


def upgrade():
    # ==========================================================================
    # STEP 1: Tenancy and master data
    # ==========================================================================
    op.create_table('tenants',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('allow_negative_stock', sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_tenants_code', 'tenants', ['code'], unique=True)
    op.create_index('ix_tenants_is_active', 'tenants', ['is_active'])

    op.create_table('locations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('location_type', sa.String(length=16), nullable=False, server_default='STORE'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'name', name='uq_locations_tenant_name'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_locations_tenant_id', 'locations', ['tenant_id'])
    op.create_index('ix_locations_tenant_active', 'locations', ['tenant_id', 'is_active'])

    op.create_table('users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'username', name='uq_users_tenant_username'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_users_tenant_id', 'users', ['tenant_id'])

    op.create_table('products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        _qty('base_price', nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_stock_tracked', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'sku', name='uq_products_tenant_sku'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_tenant_id', 'products', ['tenant_id'])
    op.create_index('ix_products_tenant_active', 'products', ['tenant_id', 'is_active'])

    # ==========================================================================
    # STEP 2: Orders, returns, payments
    # ==========================================================================
    op.create_table('orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('order_number', sa.String(length=64), nullable=False),
        sa.Column('order_type', sa.String(length=16), nullable=False, server_default='POS'),
        sa.Column('status', sa.String(length=24), nullable=False, server_default='PROCESSING'),
        _qty('subtotal', default='0'),
        _qty('discount_amount', default='0'),
        _qty('shipping_cost', default='0'),
        _qty('tax_amount', default='0'),
        _qty('total_amount', default='0'),
        sa.Column('currency_code', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('is_backordered', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'order_number', name='uq_orders_tenant_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_orders_tenant_id', 'orders', ['tenant_id'])
    op.create_index('ix_orders_location_id', 'orders', ['location_id'])
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_tenant_status', 'orders', ['tenant_id', 'status'])

    op.create_table('order_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        _qty('quantity'),
        _qty('unit_price'),
        _qty('original_unit_price', nullable=True),
        _qty('line_total'),
        sa.Column('lot_number', sa.String(length=64), nullable=True),
        sa.Column('serial_number', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])

    op.create_table('returns',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('original_order_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('return_number', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('reason', sa.Text(), nullable=True),
        _qty('total_refund_amount', default='0'),
        sa.Column('processed_by_user_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['original_order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['processed_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'return_number', name='uq_returns_tenant_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_returns_tenant_id', 'returns', ['tenant_id'])
    op.create_index('ix_returns_original_order_id', 'returns', ['original_order_id'])
    op.create_index('ix_returns_location_id', 'returns', ['location_id'])
    op.create_index('ix_returns_status', 'returns', ['status'])

    op.create_table('return_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('return_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('original_order_item_id', sa.Integer(), nullable=False),
        _qty('quantity'),
        _qty('unit_refund_amount'),
        _qty('line_refund_amount'),
        sa.Column('condition', sa.String(length=16), nullable=False),
        sa.Column('restock', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('lot_number', sa.String(length=64), nullable=True),
        sa.Column('serial_number', sa.String(length=128), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['return_id'], ['returns.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['original_order_item_id'], ['order_items.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_return_items_return_id', 'return_items', ['return_id'])
    op.create_index('ix_return_items_product_id', 'return_items', ['product_id'])
    op.create_index('ix_return_items_original_order_item_id', 'return_items', ['original_order_item_id'])

    op.create_table('payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('return_id', sa.Integer(), nullable=True),
        sa.Column('payment_method', sa.String(length=24), nullable=False),
        _qty('amount'),
        sa.Column('currency_code', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='COMPLETED'),
        sa.Column('transaction_reference', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('processed_by_user_id', sa.Integer(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['return_id'], ['returns.id']),
        sa.ForeignKeyConstraint(['processed_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_payments_tenant_id', 'payments', ['tenant_id'])
    op.create_index('ix_payments_order_id', 'payments', ['order_id'])
    op.create_index('ix_payments_return_id', 'payments', ['return_id'])

    # ==========================================================================
    # STEP 3: Adjustments and transfers
    # ==========================================================================
    op.create_table('adjustments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('adjustment_number', sa.String(length=64), nullable=False),
        sa.Column('reason_code', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'adjustment_number', name='uq_adjustments_tenant_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_adjustments_tenant_id', 'adjustments', ['tenant_id'])
    op.create_index('ix_adjustments_location_id', 'adjustments', ['location_id'])
    op.create_index('ix_adjustments_reason_code', 'adjustments', ['reason_code'])

    op.create_table('transfers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('transfer_number', sa.String(length=64), nullable=False),
        sa.Column('from_location_id', sa.Integer(), nullable=False),
        sa.Column('to_location_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('shipped_by_user_id', sa.Integer(), nullable=True),
        sa.Column('received_by_user_id', sa.Integer(), nullable=True),
        sa.Column('cancelled_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['from_location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['to_location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['shipped_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['received_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['cancelled_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'transfer_number', name='uq_transfers_tenant_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_transfers_tenant_id', 'transfers', ['tenant_id'])
    op.create_index('ix_transfers_from_location_id', 'transfers', ['from_location_id'])
    op.create_index('ix_transfers_to_location_id', 'transfers', ['to_location_id'])
    op.create_index('ix_transfers_status', 'transfers', ['status'])
    op.create_index('ix_transfers_tenant_status', 'transfers', ['tenant_id', 'status'])

    op.create_table('transfer_lines',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('transfer_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        _qty('quantity_requested'),
        _qty('quantity_shipped', default='0'),
        _qty('quantity_received', default='0'),
        sa.Column('lot_number', sa.String(length=64), nullable=True),
        sa.Column('serial_number', sa.String(length=128), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['transfer_id'], ['transfers.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transfer_id', 'product_id', name='uq_transfer_lines_product'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_transfer_lines_transfer_id', 'transfer_lines', ['transfer_id'])
    op.create_index('ix_transfer_lines_product_id', 'transfer_lines', ['product_id'])

    # ==========================================================================
    # STEP 4: Balances and the append-only ledger
    # ==========================================================================
    op.create_table('inventory_balances',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        _qty('quantity_on_hand', default='0'),
        _qty('quantity_allocated', default='0'),
        _qty('quantity_incoming', default='0'),
        _qty('average_cost', nullable=True),
        _qty('reorder_point', nullable=True),
        sa.Column('last_counted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'product_id', 'location_id', name='uq_inventory_balances_key'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_inventory_balances_tenant_id', 'inventory_balances', ['tenant_id'])
    op.create_index('ix_inventory_balances_product_id', 'inventory_balances', ['product_id'])
    op.create_index('ix_inventory_balances_location_id', 'inventory_balances', ['location_id'])
    op.create_index('ix_inventory_balances_tenant_location', 'inventory_balances', ['tenant_id', 'location_id'])

    op.create_table('inventory_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('transaction_type', sa.String(length=32), nullable=False),
        _qty('quantity_change'),
        _qty('unit_cost', nullable=True),
        sa.Column('lot_number', sa.String(length=64), nullable=True),
        sa.Column('serial_number', sa.String(length=128), nullable=True),
        sa.Column('related_order_id', sa.Integer(), nullable=True),
        sa.Column('related_order_item_id', sa.Integer(), nullable=True),
        sa.Column('related_adjustment_id', sa.Integer(), nullable=True),
        sa.Column('related_transfer_id', sa.Integer(), nullable=True),
        sa.Column('related_po_id', sa.Integer(), nullable=True),
        sa.Column('related_po_item_id', sa.Integer(), nullable=True),
        sa.Column('related_return_item_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['related_order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['related_order_item_id'], ['order_items.id']),
        sa.ForeignKeyConstraint(['related_adjustment_id'], ['adjustments.id']),
        sa.ForeignKeyConstraint(['related_transfer_id'], ['transfers.id']),
        sa.ForeignKeyConstraint(['related_return_item_id'], ['return_items.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_inventory_transactions_tenant_id', 'inventory_transactions', ['tenant_id'])
    op.create_index('ix_inventory_transactions_product_id', 'inventory_transactions', ['product_id'])
    op.create_index('ix_inventory_transactions_location_id', 'inventory_transactions', ['location_id'])
    op.create_index('ix_inventory_transactions_transaction_type', 'inventory_transactions', ['transaction_type'])
    op.create_index('ix_inventory_transactions_related_adjustment_id', 'inventory_transactions', ['related_adjustment_id'])
    op.create_index('ix_inventory_transactions_related_transfer_id', 'inventory_transactions', ['related_transfer_id'])
    op.create_index('ix_inventory_transactions_related_return_item_id', 'inventory_transactions', ['related_return_item_id'])
    op.create_index('ix_inventory_transactions_created_at', 'inventory_transactions', ['created_at'])
    op.create_index('ix_inventory_txn_key', 'inventory_transactions', ['tenant_id', 'product_id', 'location_id'])
    op.create_index('ix_inventory_txn_order_type', 'inventory_transactions', ['related_order_id', 'transaction_type'])

    op.create_table('adjustment_lines',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('adjustment_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        _qty('quantity_change'),
        _qty('unit_cost', nullable=True),
        sa.Column('lot_number', sa.String(length=64), nullable=True),
        sa.Column('serial_number', sa.String(length=128), nullable=True),
        sa.Column('inventory_transaction_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['adjustment_id'], ['adjustments.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['inventory_transaction_id'], ['inventory_transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('inventory_transaction_id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_adjustment_lines_adjustment_id', 'adjustment_lines', ['adjustment_id'])
    op.create_index('ix_adjustment_lines_product_id', 'adjustment_lines', ['product_id'])

    # ==========================================================================
    # STEP 5: Stock counts and document sequences
    # ==========================================================================
    op.create_table('stock_counts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('count_number', sa.String(length=64), nullable=False),
        sa.Column('count_type', sa.String(length=16), nullable=False, server_default='FULL'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('initiated_by_user_id', sa.Integer(), nullable=False),
        sa.Column('reviewed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('completed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('adjustment_id', sa.Integer(), nullable=True),
        sa.Column('initiated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['initiated_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['reviewed_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['completed_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['adjustment_id'], ['adjustments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'count_number', name='uq_stock_counts_tenant_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_counts_tenant_id', 'stock_counts', ['tenant_id'])
    op.create_index('ix_stock_counts_location_id', 'stock_counts', ['location_id'])
    op.create_index('ix_stock_counts_status', 'stock_counts', ['status'])
    op.create_index('ix_stock_counts_tenant_status', 'stock_counts', ['tenant_id', 'status'])

    op.create_table('stock_count_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('stock_count_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        _qty('snapshot_quantity'),
        _qty('unit_cost', nullable=True),
        _qty('counted_quantity', nullable=True),
        _qty('variance_quantity', nullable=True),
        sa.Column('status', sa.String(length=24), nullable=False, server_default='PENDING'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('counted_by_user_id', sa.Integer(), nullable=True),
        sa.Column('counted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reviewed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['stock_count_id'], ['stock_counts.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['counted_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['reviewed_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stock_count_id', 'product_id', name='uq_stock_count_items_product'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_count_items_stock_count_id', 'stock_count_items', ['stock_count_id'])
    op.create_index('ix_stock_count_items_product_id', 'stock_count_items', ['product_id'])

    op.create_table('document_sequences',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('last_number', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'document_type', name='uq_document_sequences_tenant_type'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_document_sequences_tenant_id', 'document_sequences', ['tenant_id'])


def downgrade():
    for table_name in (
        'document_sequences',
        'stock_count_items',
        'stock_counts',
        'adjustment_lines',
        'inventory_transactions',
        'inventory_balances',
        'transfer_lines',
        'transfers',
        'adjustments',
        'payments',
        'return_items',
        'returns',
        'order_items',
        'orders',
        'products',
        'users',
        'locations',
        'tenants',
    ):
        op.drop_table(table_name)
