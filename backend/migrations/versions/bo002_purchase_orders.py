"""Purchase orders and receipt linkage

PURCHASING MIGRATION:
1. Creates purchase_orders and purchase_order_items
2. Constrains inventory_transactions.related_po_id / related_po_item_id to them

Revision ID: bo002_purchase_orders
Revises: bo001_inventory_ledger
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'bo002_purchase_orders'
down_revision = 'bo001_inventory_ledger'
branch_labels = None
depends_on = None


def _qty(name, nullable=False, default=None):
    return sa.Column(
        name,
        # SQLite keeps an integer count of 0.0001 units
        sa.Numeric(precision=19, scale=4).with_variant(sa.BigInteger(), "sqlite"),
        nullable=nullable,
        server_default=default,
    )


def upgrade():
    op.create_table('purchase_orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('po_number', sa.String(length=64), nullable=False),
        sa.Column('supplier_name', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='DRAFT'),
        sa.Column('expected_delivery_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        _qty('subtotal', default='0'),
        _qty('shipping_cost', default='0'),
        _qty('total_amount', default='0'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'po_number', name='uq_purchase_orders_tenant_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_purchase_orders_tenant_id', 'purchase_orders', ['tenant_id'])
    op.create_index('ix_purchase_orders_location_id', 'purchase_orders', ['location_id'])
    op.create_index('ix_purchase_orders_status', 'purchase_orders', ['status'])
    op.create_index('ix_purchase_orders_tenant_status', 'purchase_orders', ['tenant_id', 'status'])

    op.create_table('purchase_order_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        _qty('quantity_ordered'),
        _qty('quantity_received', default='0'),
        _qty('unit_cost'),
        _qty('line_total'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_purchase_order_items_purchase_order_id', 'purchase_order_items', ['purchase_order_id'])
    op.create_index('ix_purchase_order_items_product_id', 'purchase_order_items', ['product_id'])

    with op.batch_alter_table('inventory_transactions', schema=None) as batch_op:
        batch_op.create_foreign_key(
            'fk_inventory_transactions_related_po_id', 'purchase_orders', ['related_po_id'], ['id']
        )
        batch_op.create_foreign_key(
            'fk_inventory_transactions_related_po_item_id', 'purchase_order_items', ['related_po_item_id'], ['id']
        )
        batch_op.create_index('ix_inventory_transactions_related_po_id', ['related_po_id'])


def downgrade():
    with op.batch_alter_table('inventory_transactions', schema=None) as batch_op:
        batch_op.drop_index('ix_inventory_transactions_related_po_id')
        batch_op.drop_constraint('fk_inventory_transactions_related_po_item_id', type_='foreignkey')
        batch_op.drop_constraint('fk_inventory_transactions_related_po_id', type_='foreignkey')

    op.drop_table('purchase_order_items')
    op.drop_table('purchase_orders')
