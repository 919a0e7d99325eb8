"""initial stock ledger schema

Revision ID: a7c1e0f3b2d4
Revises:
Create Date: 2026-10-01 00:00:00.000000

Creates the stock ledger from scratch:
- products: catalog with initial_stock and the stock_today cache
- stock_units: one row per registered label batch
- log_entries: append-only movement log (IN / OUT / ADJUST / CREATE)
- opname_requests: physical-count corrections awaiting admin review

Balances are always initial_stock + SUM(log_entries.quantity_change);
stock_today is a cache of that value.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a7c1e0f3b2d4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # products
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False),
        sa.Column('initial_stock', sa.Integer(), nullable=False),
        sa.Column('safety_stock', sa.Integer(), nullable=False),
        sa.Column('stock_today', sa.Integer(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_products_name', 'products', ['name'], unique=False)
    op.create_index('ix_products_category', 'products', ['category'], unique=False)

    # ============================================================================
    # stock_units: product_id is deliberately not a foreign key; units and log
    # rows outlive a deleted product as history
    # ============================================================================
    op.create_table(
        'stock_units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('unique_id', sa.String(length=128), nullable=False),
        sa.Column('product_id', sa.String(length=32), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('batch_code', sa.String(length=64), nullable=True),
        sa.Column('arrival_date', sa.Date(), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('supplier', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=24), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('quantity >= 0', name='ck_stock_units_quantity_non_negative'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stock_units_unique_id', 'stock_units', ['unique_id'], unique=True)
    op.create_index('ix_stock_units_product_id', 'stock_units', ['product_id'], unique=False)
    op.create_index('ix_stock_units_status', 'stock_units', ['status'], unique=False)
    op.create_index('ix_stock_units_product_status', 'stock_units', ['product_id', 'status'], unique=False)
    op.create_index('ix_stock_units_product_batch', 'stock_units', ['product_id', 'batch_code'], unique=False)

    # ============================================================================
    # log_entries: append-only
    # ============================================================================
    op.create_table(
        'log_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('stock_item_id', sa.String(length=128), nullable=True),
        sa.Column('product_id', sa.String(length=32), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('quantity_change', sa.Integer(), nullable=False),
        sa.Column('recipient', sa.String(length=255), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('user', sa.String(length=120), nullable=True),
        sa.Column('origin', sa.String(length=16), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_log_entries_type', 'log_entries', ['type'], unique=False)
    op.create_index('ix_log_entries_stock_item_id', 'log_entries', ['stock_item_id'], unique=False)
    op.create_index('ix_log_entries_timestamp', 'log_entries', ['timestamp'], unique=False)
    op.create_index('ix_log_entries_product_timestamp', 'log_entries', ['product_id', 'timestamp'], unique=False)
    op.create_index('ix_log_entries_name_timestamp', 'log_entries', ['product_name', 'timestamp'], unique=False)

    # ============================================================================
    # opname_requests
    # ============================================================================
    op.create_table(
        'opname_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(length=32), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('batch_code', sa.String(length=64), nullable=False),
        sa.Column('system_qty', sa.Integer(), nullable=False),
        sa.Column('physical_qty', sa.Integer(), nullable=False),
        sa.Column('variance', sa.Integer(), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('is_initial_stock_adjustment', sa.Boolean(), nullable=False),
        sa.Column('reference_date', sa.Date(), nullable=True),
        sa.Column('submitted_by', sa.String(length=120), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('resolved_by', sa.String(length=120), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolution_note', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_opname_requests_product_id', 'opname_requests', ['product_id'], unique=False)
    op.create_index('ix_opname_requests_status', 'opname_requests', ['status'], unique=False)
    op.create_index('ix_opname_requests_status_submitted', 'opname_requests', ['status', 'submitted_at'], unique=False)


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('opname_requests')
    op.drop_table('log_entries')
    op.drop_table('stock_units')
    op.drop_table('products')
