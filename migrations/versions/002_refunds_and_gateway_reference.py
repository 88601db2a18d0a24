"""refunded payment status and gateway reference on integration events

Revision ID: 002_refunds_and_gateway_reference
Revises: 001_initial_schema
Create Date: 2026-10-18 18:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '002_refunds_and_gateway_reference'
down_revision: Union[str, None] = '001_initial_schema'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Статус refunded для возвратов и ссылка шлюза для повторов обработчика.

    Для SQLite используем batch_alter_table (алембик пересоздаст таблицу сам).
    """
    with op.batch_alter_table('payments', schema=None) as batch_op:
        batch_op.drop_constraint('chk_payments_status', type_='check')
        batch_op.create_check_constraint(
            'chk_payments_status', "status IN ('requested', 'captured', 'refunded', 'failed')"
        )

    # Вызов шлюза выполнен, но результат ещё не применён к заявке
    op.add_column('integration_events', sa.Column('result_reference', sa.String(100), nullable=True))


def downgrade() -> None:
    """Откат: возвраты снова считаются captured"""
    op.drop_column('integration_events', 'result_reference')

    op.execute("UPDATE payments SET status = 'captured' WHERE status = 'refunded'")
    with op.batch_alter_table('payments', schema=None) as batch_op:
        batch_op.drop_constraint('chk_payments_status', type_='check')
        batch_op.create_check_constraint(
            'chk_payments_status', "status IN ('requested', 'captured', 'failed')"
        )
