"""Initial schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ORDER_STATUSES = (
    "'pending_deposit', 'open', 'scheduled', 'in_progress', 'closing_submitted', "
    "'final_amount_confirmed', 'balance_paid', 'settlement_paid', 'closed', 'cancelled'"
)
POST_MATCHING_STATUSES = (
    "'scheduled', 'in_progress', 'closing_submitted', 'final_amount_confirmed', "
    "'balance_paid', 'settlement_paid', 'closed', 'cancelled'"
)
DEDUCTION_TYPES = "'damage', 'loss', 'claim', 'etc'"


def upgrade() -> None:
    """Create initial database schema"""

    # Участники
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('telegram_chat_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("role IN ('requester', 'helper', 'admin')", name='chk_users_role'),
    )
    op.create_index('idx_users_role', 'users', ['role'], unique=False)

    # Заявки
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('requester_id', sa.Integer(), nullable=False),
        sa.Column('assigned_helper_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending_deposit'),
        sa.Column('category', sa.String(20), nullable=False),
        sa.Column('pricing_mode', sa.String(20), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('pickup_address', sa.String(500), nullable=False),
        sa.Column('scheduled_start', sa.Date(), nullable=False),
        sa.Column('scheduled_end', sa.Date(), nullable=False),
        sa.Column('unit_price', sa.Integer(), nullable=False),
        sa.Column('expected_box_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_urgent', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('estimated_total', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deposit_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deposit_paid_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('balance_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Integer(), nullable=True),
        sa.Column('refund_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('policy_snapshot', sa.JSON(), nullable=False),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('checked_in_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['requester_id'], ['users.id']),
        sa.ForeignKeyConstraint(['assigned_helper_id'], ['users.id']),
        sa.CheckConstraint(f"status IN ({ORDER_STATUSES})", name='chk_orders_status'),
        sa.CheckConstraint("category IN ('parcel', 'other', 'cold_chain')", name='chk_orders_category'),
        sa.CheckConstraint(
            "pricing_mode IN ('per_box', 'per_drop', 'flat_freight')", name='chk_orders_pricing'
        ),
        sa.CheckConstraint('scheduled_end >= scheduled_start', name='chk_orders_schedule'),
        sa.CheckConstraint(
            'unit_price >= 0 AND expected_box_count >= 0 AND estimated_total >= 0 '
            'AND deposit_amount >= 0 AND deposit_paid_amount >= 0 AND balance_amount >= 0 '
            'AND refund_amount >= 0 AND (total_amount IS NULL OR total_amount >= 0)',
            name='chk_orders_money',
        ),
        sa.CheckConstraint(
            f"assigned_helper_id IS NULL OR status IN ({POST_MATCHING_STATUSES})",
            name='chk_orders_helper_assignment',
        ),
    )
    op.create_index('idx_orders_status', 'orders', ['status'], unique=False)
    op.create_index('idx_orders_requester_id', 'orders', ['requester_id'], unique=False)
    op.create_index('idx_orders_assigned_helper_id', 'orders', ['assigned_helper_id'], unique=False)

    # Отклики исполнителей
    op.create_table(
        'order_applications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('helper_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='applied'),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('decided_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['helper_id'], ['users.id']),
        sa.UniqueConstraint('order_id', 'helper_id', name='uq_applications_order_helper'),
        sa.CheckConstraint(
            "status IN ('applied', 'selected', 'rejected')", name='chk_applications_status'
        ),
    )
    op.create_index('idx_applications_order_id', 'order_applications', ['order_id'], unique=False)

    # Отчёты о закрытии
    op.create_table(
        'closing_reports',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('helper_id', sa.Integer(), nullable=False),
        sa.Column('revision', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(20), nullable=False, server_default='submitted'),
        sa.Column('delivered_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('returned_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('other_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('extra_costs', sa.JSON(), nullable=False),
        sa.Column('evidence_keys', sa.JSON(), nullable=False),
        sa.Column('memo', sa.Text(), nullable=True),
        sa.Column('revision_note', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('rejection_category', sa.String(50), nullable=True),
        sa.Column('submitted_at', sa.DateTime(), nullable=False),
        sa.Column('decided_at', sa.DateTime(), nullable=True),
        sa.Column('decided_by', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['helper_id'], ['users.id']),
        sa.UniqueConstraint('order_id', 'revision', name='uq_closing_reports_revision'),
        sa.CheckConstraint(
            "status IN ('submitted', 'approved', 'rejected')", name='chk_closing_reports_status'
        ),
        sa.CheckConstraint(
            'delivered_count >= 0 AND returned_count >= 0 AND other_count >= 0',
            name='chk_closing_reports_counts',
        ),
    )
    op.create_index('idx_closing_reports_order_id', 'closing_reports', ['order_id'], unique=False)

    # Расчёты с исполнителями (ревизии)
    op.create_table(
        'settlements',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('helper_id', sa.Integer(), nullable=False),
        sa.Column('closing_report_id', sa.Integer(), nullable=False),
        sa.Column('revision', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_current', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('held_from_status', sa.String(20), nullable=True),
        sa.Column('hold_reason', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('base_supply', sa.Integer(), nullable=False),
        sa.Column('other_supply', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('urgent_fee_supply', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('extra_supply', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('final_supply', sa.Integer(), nullable=False),
        sa.Column('vat', sa.Integer(), nullable=False),
        sa.Column('final_total', sa.Integer(), nullable=False),
        sa.Column('platform_fee_rate', sa.String(10), nullable=False),
        sa.Column('platform_fee', sa.Integer(), nullable=False),
        sa.Column('deductions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cargo_incident_deduction', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('raw_payout', sa.Integer(), nullable=False),
        sa.Column('driver_payout', sa.Integer(), nullable=False),
        sa.Column('has_anomaly', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('anomaly_reason', sa.Text(), nullable=True),
        sa.Column('breakdown', sa.JSON(), nullable=False),
        sa.Column('payout_reference', sa.String(100), nullable=True),
        sa.Column('calculated_at', sa.DateTime(), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('held_at', sa.DateTime(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('superseded_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['helper_id'], ['users.id']),
        sa.ForeignKeyConstraint(['closing_report_id'], ['closing_reports.id']),
        sa.UniqueConstraint('order_id', 'revision', name='uq_settlements_revision'),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'payable', 'hold', 'paid', 'rejected')",
            name='chk_settlements_status',
        ),
        sa.CheckConstraint('final_total = final_supply + vat', name='chk_settlements_total'),
        sa.CheckConstraint(
            'driver_payout >= 0 AND platform_fee >= 0 AND deductions >= 0 '
            'AND cargo_incident_deduction >= 0',
            name='chk_settlements_money',
        ),
    )
    op.create_index('idx_settlements_order_current', 'settlements', ['order_id', 'is_current'], unique=False)
    op.create_index('idx_settlements_status', 'settlements', ['status'], unique=False)

    # Удержания
    op.create_table(
        'deductions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('deduction_type', sa.String(20), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('evidence_keys', sa.JSON(), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.CheckConstraint(f"deduction_type IN ({DEDUCTION_TYPES})", name='chk_deductions_type'),
        sa.CheckConstraint('amount > 0', name='chk_deductions_amount'),
    )
    op.create_index('idx_deductions_order_id', 'deductions', ['order_id'], unique=False)

    # Инциденты с грузом
    op.create_table(
        'incident_reports',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('reported_by', sa.Integer(), nullable=False),
        sa.Column('incident_type', sa.String(20), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('evidence_keys', sa.JSON(), nullable=False),
        sa.Column('requested_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='submitted'),
        sa.Column('deduction_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('resolution_note', sa.Text(), nullable=True),
        sa.Column('resolved_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.CheckConstraint(
            "status IN ('submitted', 'confirmed', 'dismissed')", name='chk_incidents_status'
        ),
        sa.CheckConstraint(
            'requested_amount >= 0 AND deduction_amount >= 0', name='chk_incidents_amounts'
        ),
    )
    op.create_index('idx_incidents_order_id', 'incident_reports', ['order_id'], unique=False)

    # Платежи заказчика
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='requested'),
        sa.Column('reference', sa.String(100), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.CheckConstraint("kind IN ('deposit', 'balance', 'refund')", name='chk_payments_kind'),
        sa.CheckConstraint(
            "status IN ('requested', 'captured', 'failed')", name='chk_payments_status'
        ),
        sa.CheckConstraint('amount >= 0', name='chk_payments_amount'),
    )
    op.create_index('idx_payments_order_id', 'payments', ['order_id'], unique=False)

    # Журнал аудита (только добавление)
    op.create_table(
        'audit_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('actor_role', sa.String(20), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('entity_type', sa.String(30), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('before_status', sa.String(32), nullable=True),
        sa.Column('after_status', sa.String(32), nullable=True),
        sa.Column('order_status', sa.String(32), nullable=True),
        sa.Column('before_values', sa.JSON(), nullable=True),
        sa.Column('after_values', sa.JSON(), nullable=True),
        sa.Column('payload_digest', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_audit_entries_order_created', 'audit_entries', ['order_id', 'created_at'], unique=False)
    op.create_index('idx_audit_entries_action', 'audit_entries', ['action'], unique=False)

    # Задачи внешних интеграций (outbox)
    op.create_table(
        'integration_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('channel', sa.String(20), nullable=False),
        sa.Column('action', sa.String(20), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('next_retry_at', sa.DateTime(), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "action IN ('notify', 'capture', 'refund', 'payout')",
            name='chk_integration_events_action',
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'retrying', 'success', 'failed')",
            name='chk_integration_events_status',
        ),
    )
    op.create_index(
        'idx_integration_events_status_retry', 'integration_events', ['status', 'next_retry_at'], unique=False
    )


def downgrade() -> None:
    """Drop all tables"""
    op.drop_index('idx_integration_events_status_retry', table_name='integration_events')
    op.drop_table('integration_events')
    op.drop_index('idx_audit_entries_action', table_name='audit_entries')
    op.drop_index('idx_audit_entries_order_created', table_name='audit_entries')
    op.drop_table('audit_entries')
    op.drop_index('idx_payments_order_id', table_name='payments')
    op.drop_table('payments')
    op.drop_index('idx_incidents_order_id', table_name='incident_reports')
    op.drop_table('incident_reports')
    op.drop_index('idx_deductions_order_id', table_name='deductions')
    op.drop_table('deductions')
    op.drop_index('idx_settlements_status', table_name='settlements')
    op.drop_index('idx_settlements_order_current', table_name='settlements')
    op.drop_table('settlements')
    op.drop_index('idx_closing_reports_order_id', table_name='closing_reports')
    op.drop_table('closing_reports')
    op.drop_index('idx_applications_order_id', table_name='order_applications')
    op.drop_table('order_applications')
    op.drop_index('idx_orders_assigned_helper_id', table_name='orders')
    op.drop_index('idx_orders_requester_id', table_name='orders')
    op.drop_index('idx_orders_status', table_name='orders')
    op.drop_table('orders')
    op.drop_index('idx_users_role', table_name='users')
    op.drop_table('users')
