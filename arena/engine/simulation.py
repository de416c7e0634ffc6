"""
Per-agent simulation.

An AgentRunner plays one agent through a round's price series, tick by
tick: mark to market, kill-switches, strategy decision (filtered by the
signal stack), execution, equity point. Runners hold no database state, so
a round's agents can run side by side in worker threads over the same
read-only PriceSeries.
"""

import uuid
import logging
import threading
import numpy as np
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from arena.engine.execution import ExecutionEngine, TradeAction
from arena.engine.market import PriceSeries
from arena.engine.metrics import calculate_all_metrics
from arena.engine.signals import apply_signal_filters, compute_signal_frame
from arena.engine.strategies import build_strategy, DecisionAction
from arena.models.agent import Agent, StrategyType
from arena.models.agent_result import AgentResult
from arena.models.trade import Trade
from arena.schemas.agent import AgentConfig
from arena.schemas.round import MarketConfig

logger = logging.getLogger(__name__)

KILL_REASON_MAX_LENGTH = 300


def _to_python_type(value):
    """
    Convert numpy types to native Python types for database compatibility.
    PostgreSQL JSONB cannot handle numpy types directly.
    """
    if value is None:
        return None
    elif isinstance(value, np.integer):
        return int(value)
    elif isinstance(value, np.floating):
        return float(value)
    elif isinstance(value, np.ndarray):
        return value.tolist()
    elif isinstance(value, np.bool_):
        return bool(value)
    return value


@dataclass(frozen=True)
class AgentSpec:
    """Snapshot of an agent's configuration taken when its round starts."""
    agent_id: uuid.UUID
    strategy_type: StrategyType
    config: Dict[str, Any]

    @classmethod
    def from_agent(cls, agent: Agent) -> "AgentSpec":
        return cls(
            agent_id=agent.id,
            strategy_type=StrategyType(agent.strategy_type),
            config=dict(agent.config or {}),
        )


class AgentRunner:
    """Runs a single agent through the simulation."""

    def __init__(self, spec: AgentSpec, series: PriceSeries, market_config: MarketConfig):
        self.spec = spec
        self.series = series
        self.config = AgentConfig.model_validate(spec.config)
        self.strategy = build_strategy(spec.strategy_type, self.config.strategy_params)
        self.execution = ExecutionEngine(
            initial_equity=market_config.initial_equity,
            risk_limits=self.strategy.risk_limits(self.config.risk_params),
            base_slippage=market_config.base_slippage,
            fee_rate=market_config.fee_rate,
        )
        self.ticks_processed = 0

    @property
    def survival_time(self) -> int:
        """Kill tick for killed agents, otherwise the number of ticks run."""
        kill_tick = self.execution.state.kill_tick
        return kill_tick if kill_tick is not None else self.ticks_processed

    def process_tick(self, tick: int):
        """Process a single tick for this agent."""
        execution = self.execution
        if execution.state.is_killed:
            return

        prices = self.series.prices
        price = prices[tick]
        timestamp = self.series.timestamp_at(tick)

        execution.mark_to_market(price)

        # Strategy is not consulted on ticks where a risk rule acted
        if not execution.check_risk_limits(tick, price, timestamp):
            frame = compute_signal_frame(prices, tick, self.config.signal_stack)
            decision = self.strategy.decide(tick, prices, frame, execution.state.position)
            decision = apply_signal_filters(decision, frame)

            if decision.action == DecisionAction.ENTER_LONG:
                execution.open_long(tick, price, decision.reason, timestamp)
            elif decision.action == DecisionAction.EXIT_LONG:
                execution.close_long(tick, price, decision.reason, timestamp)

        execution.record_equity(tick, timestamp)
        self.ticks_processed = tick + 1

    def run(
        self,
        cancel_event: Optional[threading.Event] = None,
        on_tick: Optional[Callable[[], None]] = None
    ):
        """
        Run the whole series. Stops early when the agent is killed or when
        ``cancel_event`` is set (checked before every tick).
        """
        for tick in range(self.series.num_ticks):
            if cancel_event is not None and cancel_event.is_set():
                logger.debug(f"Agent {self.spec.agent_id} cancelled after {tick} ticks")
                break
            self.process_tick(tick)
            if on_tick is not None:
                on_tick()
            if self.execution.state.is_killed:
                break

    def get_results(self) -> Dict[str, Any]:
        """Metrics plus the chart and trade data to persist."""
        exec_results = self.execution.get_results()
        equity_curve = exec_results['equity_curve']

        metrics = calculate_all_metrics(
            equity_values=[point['value'] for point in equity_curve],
            trades=exec_results['trades'],
            initial_equity=exec_results['initial_equity'],
            survival_time=self.survival_time,
            benchmark_returns=self.series.benchmark_returns,
        )

        cumulative_alpha = metrics.pop('cumulative_alpha')
        if cumulative_alpha is not None:
            cumulative_alpha = [
                {"tick": point["tick"], "timestamp": point["timestamp"], "value": value}
                for point, value in zip(equity_curve, cumulative_alpha)
            ]

        return {
            **metrics,
            'equity_curve': equity_curve,
            'cumulative_alpha': cumulative_alpha,
            'trades': exec_results['trades'],
            'kill_reason': exec_results['kill_reason'],
        }

    def get_failed_results(self, reason: str) -> Dict[str, Any]:
        """Results for an agent whose simulation raised; metrics are left empty."""
        return failed_results(
            self.execution.initial_equity,
            reason,
            equity=self.execution.state.equity,
            equity_curve=self.execution.state.equity_curve,
            trades=self.execution.get_results()['trades'],
            max_drawdown=self.execution.state.max_drawdown,
            survival_time=self.ticks_processed,
        )


def failed_results(
    initial_equity: float,
    reason: str,
    equity: Optional[float] = None,
    equity_curve: Optional[List[Dict[str, Any]]] = None,
    trades: Optional[List[Dict[str, Any]]] = None,
    max_drawdown: float = 0.0,
    survival_time: int = 0
) -> Dict[str, Any]:
    equity = initial_equity if equity is None else equity
    trades = trades or []
    return {
        'final_equity': equity,
        'total_return': (equity - initial_equity) / initial_equity * 100,
        'sharpe_ratio': None,
        'max_drawdown': max_drawdown,
        'calmar_ratio': None,
        'win_rate': None,
        'total_trades': len([t for t in trades if t['action'] == TradeAction.CLOSE_LONG.value]),
        'survival_time': survival_time,
        'alpha': None,
        'beta': None,
        'equity_curve': list(equity_curve or []),
        'cumulative_alpha': None,
        'trades': trades,
        'kill_reason': reason[:KILL_REASON_MAX_LENGTH],
    }


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def save_agent_result(db: Session, agent_id: uuid.UUID, results: Dict[str, Any]) -> bool:
    """
    Persist an agent's result and its trades.

    At most once per agent: returns False without writing anything when a
    result already exists.
    """
    exists = db.query(AgentResult.id).filter(AgentResult.agent_id == agent_id).first()
    if exists:
        logger.warning(f"Result for agent {agent_id} already stored, skipping")
        return False

    trades_json = [
        {k: _to_python_type(v) for k, v in trade.items()}
        for trade in results['trades']
    ]

    agent_result = AgentResult(
        id=uuid.uuid4(),
        agent_id=agent_id,
        final_equity=_to_python_type(results['final_equity']),
        total_return=_to_python_type(results['total_return']),
        sharpe_ratio=_to_python_type(results['sharpe_ratio']),
        max_drawdown=_to_python_type(results['max_drawdown']),
        calmar_ratio=_to_python_type(results['calmar_ratio']),
        total_trades=_to_python_type(results['total_trades']),
        win_rate=_to_python_type(results['win_rate']),
        survival_time=_to_python_type(results['survival_time']),
        equity_curve=results['equity_curve'],
        cumulative_alpha=results['cumulative_alpha'],
        trades=trades_json,
        # CAPM metrics
        alpha=_to_python_type(results['alpha']),
        beta=_to_python_type(results['beta']),
        kill_reason=results.get('kill_reason'),
    )
    db.add(agent_result)

    for trade_data in trades_json:
        db.add(Trade(
            id=uuid.uuid4(),
            agent_id=agent_id,
            tick=trade_data['tick'],
            timestamp=_parse_timestamp(trade_data.get('timestamp')),
            action=trade_data['action'],
            price=trade_data['price'],
            executed_price=trade_data['executed_price'],
            size=trade_data['size'],
            cost=trade_data['cost'],
            pnl=trade_data['pnl'],
            equity_after=trade_data['equity_after'],
            reason=(trade_data.get('reason') or "")[:200],
        ))

    try:
        db.commit()
    except IntegrityError:
        # Another writer stored this agent's result first
        db.rollback()
        logger.warning(f"Result for agent {agent_id} stored concurrently, skipping")
        return False

    return True
