"""Initial schema

Revision ID: 001
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# JSONB on PostgreSQL, plain JSON elsewhere
json_type = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')

round_status = sa.Enum('PENDING', 'RUNNING', 'COMPLETED', 'FAILED', name='roundstatus')
strategy_type = sa.Enum('MEAN_REVERSION', 'TREND_FOLLOWING', 'MOMENTUM', 'GHOST', name='strategytype')


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('external_id', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('email', sa.String(255), nullable=True, index=True),
        sa.Column('nickname', sa.String(50), nullable=False, index=True),
        sa.Column('color', sa.String(7), nullable=False, server_default='#3B82F6'),
        sa.Column('icon', sa.String(50), nullable=False, server_default='user'),
        sa.Column('is_admin', sa.Boolean(), server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # Create rounds table
    op.create_table(
        'rounds',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('status', round_status, nullable=False, server_default='PENDING'),
        sa.Column('market_seed', sa.Integer(), nullable=False),
        sa.Column('config', json_type, nullable=False),
        sa.Column('price_data', json_type, nullable=True),
        sa.Column('benchmark_returns', json_type, nullable=True),
        sa.Column('timestamps', json_type, nullable=True),
        sa.Column('progress', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ticks_completed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_ticks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('agents_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_agents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # Create agents table
    op.create_table(
        'agents',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('round_id', sa.Uuid(), sa.ForeignKey('rounds.id', ondelete='CASCADE'), nullable=False),
        sa.Column('strategy_type', strategy_type, nullable=False),
        sa.Column('config', json_type, nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'round_id', name='unique_user_round'),
    )

    # Create agent_results table
    op.create_table(
        'agent_results',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('agent_id', sa.Uuid(), sa.ForeignKey('agents.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('final_equity', sa.Float(), nullable=False),
        sa.Column('total_return', sa.Float(), nullable=False),
        sa.Column('sharpe_ratio', sa.Float(), nullable=True),
        sa.Column('max_drawdown', sa.Float(), nullable=False),
        sa.Column('calmar_ratio', sa.Float(), nullable=True),
        sa.Column('total_trades', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('win_rate', sa.Float(), nullable=True),
        sa.Column('survival_time', sa.Integer(), nullable=False),
        sa.Column('alpha', sa.Float(), nullable=True),
        sa.Column('beta', sa.Float(), nullable=True),
        sa.Column('cumulative_alpha', json_type, nullable=True),
        sa.Column('equity_curve', json_type, nullable=False),
        sa.Column('trades', json_type, nullable=False),
        sa.Column('kill_reason', sa.String(300), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # Create trades table
    op.create_table(
        'trades',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('agent_id', sa.Uuid(), sa.ForeignKey('agents.id', ondelete='CASCADE'), nullable=False),
        sa.Column('tick', sa.Integer(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=True),
        sa.Column('action', sa.String(20), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('executed_price', sa.Float(), nullable=False),
        sa.Column('size', sa.Float(), nullable=False),
        sa.Column('cost', sa.Float(), nullable=False),
        sa.Column('pnl', sa.Float(), nullable=False, server_default='0'),
        sa.Column('equity_after', sa.Float(), nullable=False),
        sa.Column('reason', sa.String(200), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('idx_trades_agent_id', 'trades', ['agent_id'])
    op.create_index('idx_trades_agent_tick', 'trades', ['agent_id', 'tick'])

    # Create market data tables (filled by the ingestion service)
    op.create_table(
        'market_datasets',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('symbol', sa.String(20), nullable=False, index=True),
        sa.Column('interval', sa.String(10), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('total_bars', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('fetched_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'market_data',
        sa.Column('id', sa.BigInteger().with_variant(sa.Integer(), 'sqlite'), primary_key=True, autoincrement=True),
        sa.Column('dataset_id', sa.Uuid(), sa.ForeignKey('market_datasets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('symbol', sa.String(20), nullable=False),
        sa.Column('datetime', sa.DateTime(), nullable=False),
        sa.Column('open', sa.Float(), nullable=False),
        sa.Column('high', sa.Float(), nullable=False),
        sa.Column('low', sa.Float(), nullable=False),
        sa.Column('close', sa.Float(), nullable=False),
        sa.Column('volume', sa.BigInteger(), nullable=False),
    )
    op.create_index('ix_market_data_symbol_datetime', 'market_data', ['symbol', 'datetime'])


def downgrade() -> None:
    op.drop_index('ix_market_data_symbol_datetime', table_name='market_data')
    op.drop_table('market_data')
    op.drop_table('market_datasets')
    op.drop_index('idx_trades_agent_tick', table_name='trades')
    op.drop_index('idx_trades_agent_id', table_name='trades')
    op.drop_table('trades')
    op.drop_table('agent_results')
    op.drop_table('agents')
    op.drop_table('rounds')
    op.drop_table('users')

    # Drop enums
    if op.get_bind().dialect.name == 'postgresql':
        op.execute('DROP TYPE IF EXISTS strategytype')
        op.execute('DROP TYPE IF EXISTS roundstatus')
