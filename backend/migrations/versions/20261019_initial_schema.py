"""Initial OrderDesk schema: users, sessions, orders, stock ledger, audit

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. users and session_tokens (bearer sessions, hashed tokens)
2. document_sequences (atomic order numbers)
3. orders and order_items (lifecycle, courier, proof of delivery)
4. stock_units (serialized units, unique per product) and stock_movements
5. audit_entries (append-only)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. USERS AND SESSIONS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])

    # ==========================================================================
    # 2. DOCUMENT SEQUENCES
    # ==========================================================================
    op.create_table('document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type', name='uq_doc_sequences_type'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_document_sequences_document_type', 'document_sequences', ['document_type'])

    # ==========================================================================
    # 3. ORDERS AND ORDER ITEMS
    # ==========================================================================
    op.create_table('orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('number', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='new'),
        sa.Column('delivery_status', sa.String(length=16), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=64), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('courier_comment', sa.Text(), nullable=True),
        sa.Column('delivery_date', sa.Date(), nullable=True),
        sa.Column('delivery_slot', sa.String(length=32), nullable=True),
        sa.Column('courier_id', sa.String(length=36), nullable=True),
        sa.Column('manager_id', sa.String(length=36), nullable=True),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('delivery_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('payment_status', sa.String(length=32), nullable=True),
        sa.Column('proof_photo_url', sa.Text(), nullable=True),
        sa.Column('proof_signature_url', sa.Text(), nullable=True),
        sa.Column('recipient_name', sa.String(length=255), nullable=True),
        sa.Column('delivered_lat', sa.Float(), nullable=True),
        sa.Column('delivered_lng', sa.Float(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('created_by', sa.String(length=36), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_by', sa.String(length=36), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['courier_id'], ['users.id']),
        sa.ForeignKeyConstraint(['manager_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_orders_courier_id', 'orders', ['courier_id'])
    op.create_index('ix_orders_delivery_date', 'orders', ['delivery_date'])
    op.create_index('ix_orders_courier_delivery_date', 'orders', ['courier_id', 'delivery_date'])
    op.create_index('ix_orders_status', 'orders', ['status'])

    op.create_table('order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('serial', sa.String(length=128), nullable=True),
        sa.Column('is_accessory', sa.Boolean(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_serial', 'order_items', ['product_id', 'serial'])

    # ==========================================================================
    # 4. STOCK UNITS AND MOVEMENTS
    # ==========================================================================
    op.create_table('stock_units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('serial', sa.String(length=128), nullable=False),
        sa.Column('condition', sa.String(length=32), nullable=True),
        sa.Column('supplier', sa.String(length=255), nullable=True),
        sa.Column('purchase_price_cents', sa.Integer(), nullable=True),
        sa.Column('warranty_months', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='available'),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('arrived_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('created_by', sa.String(length=36), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'serial', name='uq_stock_units_product_serial'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_units_product_id', 'stock_units', ['product_id'])
    op.create_index('ix_stock_units_status', 'stock_units', ['status'])
    op.create_index('ix_stock_units_order_id', 'stock_units', ['order_id'])
    op.create_index('ix_stock_units_product_status', 'stock_units', ['product_id', 'status'])

    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('serial', sa.String(length=128), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_movements_type', 'stock_movements', ['type'])
    op.create_index('ix_stock_movements_order_id', 'stock_movements', ['order_id'])
    op.create_index('ix_stock_movements_product_serial', 'stock_movements', ['product_id', 'serial'])
    op.create_index('ix_stock_movements_occurred', 'stock_movements', ['occurred_at', 'id'])

    # ==========================================================================
    # 5. AUDIT TRAIL
    # ==========================================================================
    op.create_table('audit_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entity', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('snapshot', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_audit_entries_action', 'audit_entries', ['action'])
    op.create_index('ix_audit_entries_entity', 'audit_entries', ['entity', 'entity_id'])
    op.create_index('ix_audit_entries_timestamp', 'audit_entries', ['timestamp', 'id'])


def downgrade():
    op.drop_table('audit_entries')
    op.drop_table('stock_movements')
    op.drop_table('stock_units')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('document_sequences')
    op.drop_table('session_tokens')
    op.drop_table('users')
