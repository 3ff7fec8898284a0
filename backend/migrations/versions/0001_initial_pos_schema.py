"""initial pos schema

Revision ID: 0001_initial_pos
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the register/session/transaction schema:
- operators, auth_tokens, operator_registers: who may act on which register
- registers, register_sessions, transaction_sequences: tills and shifts
- products, product_variants, stock_movements: catalog and append-only stock ledger
- pos_transactions, transaction_lines, transaction_payments: sales and refunds
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_pos'
down_revision = None
branch_labels = None
depends_on = None


def _now():
    return sa.text('CURRENT_TIMESTAMP')


def upgrade():
    # ============================================================================
    # operators / auth
    # ============================================================================
    op.create_table(
        'operators',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('display_name', sa.String(length=128), nullable=False),
        sa.Column('pin_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_admin', sa.Boolean(), nullable=False),
        sa.Column('can_access_all_registers', sa.Boolean(), nullable=False),
        sa.Column('current_session_id', sa.Integer(), nullable=True),
        sa.Column('total_sales_cents', sa.Integer(), nullable=False),
        sa.Column('sales_count', sa.Integer(), nullable=False),
        sa.Column('last_sale_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_operators_username', 'operators', ['username'], unique=True)
    op.create_index('ix_operators_current_session_id', 'operators', ['current_session_id'])

    op.create_table(
        'auth_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('operator_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['operator_id'], ['operators.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_auth_tokens_operator_id', 'auth_tokens', ['operator_id'])
    op.create_index('ix_auth_tokens_token_hash', 'auth_tokens', ['token_hash'], unique=True)
    op.create_index('ix_auth_tokens_expires_at', 'auth_tokens', ['expires_at'])
    op.create_index('ix_auth_tokens_is_revoked', 'auth_tokens', ['is_revoked'])

    # ============================================================================
    # registers / sessions
    # ============================================================================
    op.create_table(
        'registers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('location', sa.String(length=128), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('opening_balance_cents', sa.Integer(), nullable=False),
        sa.Column('current_balance_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_opened_by_id', sa.Integer(), nullable=True),
        sa.Column('last_opened_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_closed_by_id', sa.Integer(), nullable=True),
        sa.Column('last_closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['last_opened_by_id'], ['operators.id']),
        sa.ForeignKeyConstraint(['last_closed_by_id'], ['operators.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_registers_is_active', 'registers', ['is_active'])

    op.create_table(
        'operator_registers',
        sa.Column('operator_id', sa.Integer(), nullable=False),
        sa.Column('register_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['operator_id'], ['operators.id']),
        sa.ForeignKeyConstraint(['register_id'], ['registers.id']),
        sa.PrimaryKeyConstraint('operator_id', 'register_id'),
    )

    op.create_table(
        'register_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('register_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('opening_balance_cents', sa.Integer(), nullable=False),
        sa.Column('closing_balance_cents', sa.Integer(), nullable=True),
        sa.Column('expected_closing_balance_cents', sa.Integer(), nullable=True),
        sa.Column('variance_cents', sa.Integer(), nullable=True),
        sa.Column('gross_sales_cents', sa.Integer(), nullable=False),
        sa.Column('total_refunds_cents', sa.Integer(), nullable=False),
        sa.Column('total_discount_cents', sa.Integer(), nullable=False),
        sa.Column('total_tax_cents', sa.Integer(), nullable=False),
        sa.Column('net_sales_cents', sa.Integer(), nullable=False),
        sa.Column('transaction_count', sa.Integer(), nullable=False),
        sa.Column('refund_count', sa.Integer(), nullable=False),
        sa.Column('opened_by_id', sa.Integer(), nullable=False),
        sa.Column('closed_by_id', sa.Integer(), nullable=True),
        sa.Column('opened_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('opening_notes', sa.Text(), nullable=True),
        sa.Column('closing_notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['register_id'], ['registers.id']),
        sa.ForeignKeyConstraint(['opened_by_id'], ['operators.id']),
        sa.ForeignKeyConstraint(['closed_by_id'], ['operators.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_register_sessions_register_id', 'register_sessions', ['register_id'])
    op.create_index('ix_register_sessions_status', 'register_sessions', ['status'])
    op.create_index('ix_register_sessions_opened_by_id', 'register_sessions', ['opened_by_id'])
    op.create_index('ix_register_sessions_opened_at', 'register_sessions', ['opened_at'])
    # At most one open session per register
    op.create_index(
        'uq_register_sessions_one_open',
        'register_sessions',
        ['register_id'],
        unique=True,
        sqlite_where=sa.text("status = 'open'"),
        postgresql_where=sa.text("status = 'open'"),
    )

    op.create_table(
        'transaction_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('register_id', sa.Integer(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['register_id'], ['registers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('register_id', name='uq_transaction_sequences_register'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # catalog / stock ledger
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'product_variants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])

    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=True),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=32), nullable=False),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id']),
        sa.ForeignKeyConstraint(['actor_id'], ['operators.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_product_variant', 'stock_movements', ['product_id', 'variant_id'])
    op.create_index('ix_stock_movements_reason', 'stock_movements', ['reason'])
    op.create_index('ix_stock_movements_reference', 'stock_movements', ['reference'])
    op.create_index('ix_stock_movements_occurred_at', 'stock_movements', ['occurred_at'])

    # ============================================================================
    # transactions
    # ============================================================================
    op.create_table(
        'pos_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_number', sa.String(length=64), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('register_id', sa.Integer(), nullable=False),
        sa.Column('cashier_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('total_discount_cents', sa.Integer(), nullable=False),
        sa.Column('total_tax_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('amount_paid_cents', sa.Integer(), nullable=False),
        sa.Column('change_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('original_transaction_id', sa.Integer(), nullable=True),
        sa.Column('customer_name', sa.String(length=128), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=32), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('voided_by_id', sa.Integer(), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        sa.Column('inventory_status', sa.String(length=32), nullable=False),
        sa.Column('inventory_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['register_sessions.id']),
        sa.ForeignKeyConstraint(['register_id'], ['registers.id']),
        sa.ForeignKeyConstraint(['cashier_id'], ['operators.id']),
        sa.ForeignKeyConstraint(['original_transaction_id'], ['pos_transactions.id']),
        sa.ForeignKeyConstraint(['voided_by_id'], ['operators.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_pos_transactions_transaction_number', 'pos_transactions', ['transaction_number'], unique=True)
    op.create_index('ix_pos_transactions_session_id', 'pos_transactions', ['session_id'])
    op.create_index('ix_pos_transactions_register_id', 'pos_transactions', ['register_id'])
    op.create_index('ix_pos_transactions_cashier_id', 'pos_transactions', ['cashier_id'])
    op.create_index('ix_pos_transactions_type', 'pos_transactions', ['type'])
    op.create_index('ix_pos_transactions_status', 'pos_transactions', ['status'])
    op.create_index('ix_pos_transactions_original_transaction_id', 'pos_transactions', ['original_transaction_id'])
    op.create_index('ix_pos_transactions_inventory_status', 'pos_transactions', ['inventory_status'])
    op.create_index('ix_pos_transactions_created_at', 'pos_transactions', ['created_at'])
    op.create_index('ix_pos_transactions_session_created', 'pos_transactions', ['session_id', 'created_at'])
    op.create_index('ix_pos_transactions_register_created', 'pos_transactions', ['register_id', 'created_at'])

    op.create_table(
        'transaction_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=True),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_discount_cents', sa.Integer(), nullable=False),
        sa.Column('line_tax_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['transaction_id'], ['pos_transactions.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_id', 'line_number', name='uq_transaction_lines_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transaction_lines_transaction_id', 'transaction_lines', ['transaction_id'])
    op.create_index('ix_transaction_lines_product_id', 'transaction_lines', ['product_id'])

    op.create_table(
        'transaction_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.ForeignKeyConstraint(['transaction_id'], ['pos_transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transaction_payments_transaction_id', 'transaction_payments', ['transaction_id'])


def downgrade():
    op.drop_table('transaction_payments')
    op.drop_table('transaction_lines')
    op.drop_table('pos_transactions')
    op.drop_table('stock_movements')
    op.drop_table('product_variants')
    op.drop_table('products')
    op.drop_table('transaction_sequences')
    op.drop_table('register_sessions')
    op.drop_table('operator_registers')
    op.drop_table('registers')
    op.drop_table('auth_tokens')
    op.drop_table('operators')
