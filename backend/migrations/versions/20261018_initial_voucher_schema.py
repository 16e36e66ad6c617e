"""Initial voucher schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration adds:
1. Accounts: users, sponsors, merchants, beneficiaries, session_tokens
2. Vouchers with an optimistic-lock version_id and a non-negative limit
3. merchant_vouchers distribution records
4. transactions redemption ledger
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade():
    # ==========================================================================
    # 1. ACCOUNTS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=128), nullable=True),
        sa.Column('last_name', sa.String(length=128), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('state', sa.String(length=128), nullable=True),
        sa.Column('city', sa.String(length=128), nullable=True),
        sa.Column('usertype', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    op.create_table('sponsors',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('sponsor_name', sa.String(length=255), nullable=True),
        sa.Column('registration_number', sa.String(length=128), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('sponsor_type', sa.String(length=16), nullable=False, server_default='private'),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
    )

    op.create_table('merchants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('store_name', sa.String(length=255), nullable=True),
        sa.Column('store_description', sa.String(length=255), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
    )

    op.create_table('beneficiaries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('state', sa.String(length=128), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
    )

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])

    # ==========================================================================
    # 2. VOUCHERS
    # ==========================================================================
    op.create_table('vouchers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('voucher_code', sa.String(length=32), nullable=False),
        sa.Column('sponsor_id', sa.Integer(), nullable=False),
        sa.Column('purpose', sa.String(length=255), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('limit', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('voucher_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('amount_per_code_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('location', sa.String(length=128), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=False, server_default='one_time'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='unused'),
        sa.Column('code_generation_method', sa.String(length=32), nullable=False, server_default='qr_code'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('"limit" >= 0', name='ck_vouchers_limit_non_negative'),
        sa.ForeignKeyConstraint(['sponsor_id'], ['sponsors.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_vouchers_voucher_code', 'vouchers', ['voucher_code'], unique=True)
    op.create_index('ix_vouchers_sponsor_id', 'vouchers', ['sponsor_id'])
    op.create_index('ix_vouchers_status', 'vouchers', ['status'])
    op.create_index('ix_vouchers_deleted_at', 'vouchers', ['deleted_at'])
    op.create_index('ix_vouchers_created_at', 'vouchers', ['created_at'])
    op.create_index('ix_vouchers_sponsor_status', 'vouchers', ['sponsor_id', 'status'])

    # ==========================================================================
    # 3. MERCHANT DISTRIBUTION
    # ==========================================================================
    op.create_table('merchant_vouchers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('voucher_id', sa.Integer(), nullable=False),
        sa.Column('merchant_id', sa.Integer(), nullable=False),
        sa.Column('voucher_code', sa.String(length=32), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['voucher_id'], ['vouchers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('voucher_id', 'merchant_id', name='uq_merchant_vouchers_pair'),
    )
    op.create_index('ix_merchant_vouchers_voucher_id', 'merchant_vouchers', ['voucher_id'])
    op.create_index('ix_merchant_vouchers_merchant_id', 'merchant_vouchers', ['merchant_id'])

    # ==========================================================================
    # 4. REDEMPTION LEDGER
    # ==========================================================================
    op.create_table('transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('voucher_id', sa.Integer(), nullable=True),
        sa.Column('beneficiary_id', sa.Integer(), nullable=True),
        sa.Column('merchant_id', sa.Integer(), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='used'),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=True),
        sa.Column('code_generation_method', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['voucher_id'], ['vouchers.id']),
        sa.ForeignKeyConstraint(['beneficiary_id'], ['beneficiaries.id']),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_transactions_voucher_id', 'transactions', ['voucher_id'])
    op.create_index('ix_transactions_beneficiary_id', 'transactions', ['beneficiary_id'])
    op.create_index('ix_transactions_merchant_id', 'transactions', ['merchant_id'])
    op.create_index('ix_transactions_voucher_created', 'transactions', ['voucher_id', 'created_at'])


def downgrade():
    op.drop_table('transactions')
    op.drop_table('merchant_vouchers')
    op.drop_table('vouchers')
    op.drop_table('session_tokens')
    op.drop_table('beneficiaries')
    op.drop_table('merchants')
    op.drop_table('sponsors')
    op.drop_table('users')
