"""Create IB partner network schema.

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19

Partners, referred users, commission plans, levels, the commission ledger,
withdrawals, settings and the audit tables. parent_ib_id, referred_by_ib_id,
level_id and plan_id are weak references: no foreign keys.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_000001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(with_updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
    ]
    if with_updated:
        columns.append(
            sa.Column(
                'updated_at',
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.text('CURRENT_TIMESTAMP')
            )
        )
    return columns


def upgrade() -> None:
    """Create all IB network tables."""
    op.create_table(
        'ib_partners',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('referral_code', sa.String(length=20), nullable=True),
        sa.Column(
            'parent_ib_id',
            sa.Integer(),
            nullable=True,
            comment='Upline partner (weak reference)'
        ),
        sa.Column(
            'status',
            sa.String(length=20),
            nullable=False,
            server_default='PENDING',
            comment='PENDING, ACTIVE, BLOCKED, SUSPENDED, REJECTED'
        ),
        sa.Column('status_reason', sa.Text(), nullable=True),
        sa.Column('level_id', sa.Integer(), nullable=True),
        sa.Column('plan_id', sa.Integer(), nullable=True),
        sa.Column(
            'referral_count',
            sa.Integer(),
            nullable=False,
            server_default='0'
        ),
        sa.Column(
            'auto_upgrade_enabled',
            sa.Boolean(),
            nullable=False,
            server_default=sa.true()
        ),
        sa.Column(
            'version',
            sa.Integer(),
            nullable=False,
            server_default='1',
            comment='Optimistic lock counter'
        ),
        sa.Column('approved_by', sa.String(length=100), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_ib_partners'),
        sa.CheckConstraint(
            'referral_count >= 0',
            name='ck_ib_partners_referral_count_non_negative'
        ),
        sa.CheckConstraint(
            'parent_ib_id IS NULL OR parent_ib_id <> id',
            name='ck_ib_partners_not_own_parent'
        )
    )
    op.create_index('ix_ib_partners_user_id', 'ib_partners', ['user_id'], unique=True)
    op.create_index(
        'ix_ib_partners_referral_code', 'ib_partners', ['referral_code'], unique=True
    )
    op.create_index('ix_ib_partners_parent_ib_id', 'ib_partners', ['parent_ib_id'])
    op.create_index('ix_ib_partners_status', 'ib_partners', ['status'])
    op.create_index('ix_ib_partners_level_id', 'ib_partners', ['level_id'])
    op.create_index('ix_ib_partners_plan_id', 'ib_partners', ['plan_id'])

    op.create_table(
        'referred_users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column(
            'referred_by_ib_id',
            sa.Integer(),
            nullable=True,
            comment='Referring partner (weak reference)'
        ),
        sa.Column('attributed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint('id', name='pk_referred_users')
    )
    op.create_index(
        'ix_referred_users_user_id', 'referred_users', ['user_id'], unique=True
    )
    op.create_index(
        'ix_referred_users_referred_by_ib_id', 'referred_users', ['referred_by_ib_id']
    )

    op.create_table(
        'referral_transfer_audits',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('previous_ib_id', sa.Integer(), nullable=True),
        sa.Column('new_ib_id', sa.Integer(), nullable=False),
        sa.Column('moved_ib_id', sa.Integer(), nullable=True),
        sa.Column('actor', sa.String(length=100), nullable=False),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint('id', name='pk_referral_transfer_audits')
    )
    op.create_index(
        'ix_referral_transfer_audits_user_id', 'referral_transfer_audits', ['user_id']
    )
    op.create_index(
        'ix_referral_transfer_audits_new_ib_id', 'referral_transfer_audits', ['new_ib_id']
    )

    op.create_table(
        'ib_status_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('ib_id', sa.Integer(), nullable=False),
        sa.Column('from_status', sa.String(length=20), nullable=True),
        sa.Column('to_status', sa.String(length=20), nullable=False),
        sa.Column('action', sa.String(length=20), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('actor', sa.String(length=100), nullable=True),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint('id', name='pk_ib_status_history')
    )
    op.create_index('ix_ib_status_history_ib_id', 'ib_status_history', ['ib_id'])

    op.create_table(
        'commission_plans',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column(
            'commission_type',
            sa.String(length=20),
            nullable=False,
            server_default='PER_LOT',
            comment='PER_LOT or PERCENTAGE'
        ),
        sa.Column('max_levels', sa.Integer(), nullable=False, server_default='3'),
        *[
            sa.Column(
                f'level{n}_rate',
                sa.DECIMAL(precision=12, scale=4),
                nullable=False,
                server_default='0'
            )
            for n in range(1, 6)
        ],
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_commission_plans'),
        sa.UniqueConstraint('name', name='uq_commission_plans_name'),
        sa.CheckConstraint(
            'max_levels >= 1 AND max_levels <= 5',
            name='ck_commission_plans_max_levels_range'
        )
    )
    # At most one default plan
    op.create_index(
        'uq_commission_plans_single_default',
        'commission_plans',
        ['is_default'],
        unique=True,
        postgresql_where=sa.text('is_default = true'),
        sqlite_where=sa.text('is_default = 1')
    )

    op.create_table(
        'ib_levels',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('referral_target', sa.Integer(), nullable=False, server_default='0'),
        sa.Column(
            'commission_rate',
            sa.DECIMAL(precision=12, scale=4),
            nullable=False,
            server_default='0'
        ),
        sa.Column(
            'commission_type',
            sa.String(length=20),
            nullable=False,
            server_default='PER_LOT'
        ),
        *[
            sa.Column(
                f'downline{n}_rate',
                sa.DECIMAL(precision=12, scale=4),
                nullable=True,
                comment='NULL = no override of the plan rate'
            )
            for n in range(1, 6)
        ],
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_ib_levels'),
        sa.UniqueConstraint('name', name='uq_ib_levels_name'),
        sa.CheckConstraint(
            'referral_target >= 0',
            name='ck_ib_levels_referral_target_non_negative'
        )
    )
    op.create_index('ix_ib_levels_order', 'ib_levels', ['order'])
    op.create_index('ix_ib_levels_is_active', 'ib_levels', ['is_active'])

    op.create_table(
        'commission_ledger_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('source_event_id', sa.String(length=128), nullable=False),
        sa.Column('beneficiary_ib_id', sa.Integer(), nullable=False),
        sa.Column('originating_user_id', sa.BigInteger(), nullable=True),
        sa.Column(
            'level',
            sa.Integer(),
            nullable=False,
            comment='Distance from the trader, 1 = direct IB'
        ),
        sa.Column('amount', sa.DECIMAL(precision=18, scale=8), nullable=False),
        sa.Column('rate', sa.DECIMAL(precision=12, scale=4), nullable=False),
        sa.Column('commission_type', sa.String(length=20), nullable=False),
        sa.Column(
            'base_lots',
            sa.DECIMAL(precision=18, scale=4),
            nullable=False,
            server_default='0'
        ),
        sa.Column(
            'base_notional',
            sa.DECIMAL(precision=18, scale=8),
            nullable=False,
            server_default='0'
        ),
        sa.Column(
            'entry_type',
            sa.String(length=20),
            nullable=False,
            server_default='COMMISSION',
            comment='COMMISSION or REVERSAL'
        ),
        sa.Column('reverses_entry_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint('id', name='pk_commission_ledger_entries'),
        sa.UniqueConstraint(
            'source_event_id',
            'beneficiary_ib_id',
            name='uq_ledger_event_beneficiary'
        )
    )
    op.create_index(
        'ix_commission_ledger_entries_source_event_id',
        'commission_ledger_entries',
        ['source_event_id']
    )
    op.create_index(
        'ix_commission_ledger_entries_beneficiary_ib_id',
        'commission_ledger_entries',
        ['beneficiary_ib_id']
    )
    op.create_index(
        'ix_commission_ledger_entries_originating_user_id',
        'commission_ledger_entries',
        ['originating_user_id']
    )

    op.create_table(
        'ib_withdrawals',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('ib_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.DECIMAL(precision=18, scale=8), nullable=False),
        sa.Column(
            'status',
            sa.String(length=20),
            nullable=False,
            server_default='PENDING',
            comment='PENDING, COMPLETED, REJECTED'
        ),
        sa.Column('processed_by', sa.String(length=100), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        *_timestamps(with_updated=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_ib_withdrawals'),
        sa.CheckConstraint('amount > 0', name='ck_ib_withdrawals_amount_positive')
    )
    op.create_index('ix_ib_withdrawals_ib_id', 'ib_withdrawals', ['ib_id'])
    op.create_index('ix_ib_withdrawals_status', 'ib_withdrawals', ['status'])

    op.create_table(
        'ib_settings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            'settings_type',
            sa.String(length=20),
            nullable=False,
            server_default='GLOBAL'
        ),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            'allow_new_applications',
            sa.Boolean(),
            nullable=False,
            server_default=sa.true()
        ),
        sa.Column('auto_approve', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('kyc_required', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            'withdrawal_approval_required',
            sa.Boolean(),
            nullable=False,
            server_default=sa.true()
        ),
        sa.Column(
            'min_withdrawal_amount',
            sa.DECIMAL(precision=18, scale=8),
            nullable=False,
            server_default='50'
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
        sa.PrimaryKeyConstraint('id', name='pk_ib_settings'),
        sa.UniqueConstraint('settings_type', name='uq_ib_settings_settings_type')
    )

    op.create_table(
        'ib_settings_audits',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('actor', sa.String(length=100), nullable=False),
        sa.Column('changes', sa.JSON(), nullable=False),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint('id', name='pk_ib_settings_audits')
    )


def downgrade() -> None:
    """Drop all IB network tables."""
    op.drop_table('ib_settings_audits')
    op.drop_table('ib_settings')
    op.drop_index('ix_ib_withdrawals_status', table_name='ib_withdrawals')
    op.drop_index('ix_ib_withdrawals_ib_id', table_name='ib_withdrawals')
    op.drop_table('ib_withdrawals')
    op.drop_table('commission_ledger_entries')
    op.drop_table('ib_levels')
    op.drop_index('uq_commission_plans_single_default', table_name='commission_plans')
    op.drop_table('commission_plans')
    op.drop_table('ib_status_history')
    op.drop_table('referral_transfer_audits')
    op.drop_table('referred_users')
    op.drop_table('ib_partners')
