import logging
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List, Dict, Any, Optional

logger = logging.getLogger(__name__)


class TradeAction(str, Enum):
    OPEN_LONG = "OPEN_LONG"
    CLOSE_LONG = "CLOSE_LONG"


@dataclass
class Trade:
    """Record of a single trade."""
    tick: int
    timestamp: Optional[str] = None  # Market timestamp (None for synthetic data)
    action: str = ""
    price: float = 0.0
    executed_price: float = 0.0  # Price after slippage
    size: float = 0.0
    cost: float = 0.0  # Transaction cost (fees)
    pnl: float = 0.0  # Realized P&L (0 for opening trades)
    equity_after: float = 0.0
    reason: str = ""


@dataclass
class Position:
    """Open long position."""
    entry_price: float  # Executed (slipped) entry price
    size: float
    entry_tick: int
    entry_cost: float  # Fee paid on entry, charged again to realized P&L on exit


@dataclass
class RiskLimits:
    """
    Risk parameters in the form the ledger enforces them.

    A limit set to None is disabled.
    """
    position_size_pct: float = 10.0
    max_leverage: float = 1.0
    stop_loss_pct: Optional[float] = 5.0
    take_profit_pct: Optional[float] = 10.0
    max_drawdown_kill: Optional[float] = 20.0

    @classmethod
    def from_params(cls, risk_params) -> "RiskLimits":
        return cls(
            position_size_pct=risk_params.position_size_pct,
            max_leverage=risk_params.max_leverage,
            stop_loss_pct=risk_params.stop_loss_pct,
            take_profit_pct=risk_params.take_profit_pct,
            max_drawdown_kill=risk_params.max_drawdown_kill,
        )


@dataclass
class ExecutionState:
    """Full state of the execution engine."""
    equity: float
    cash: float
    peak_equity: float
    position: Optional[Position] = None
    max_drawdown: float = 0.0
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[Dict[str, Any]] = field(default_factory=list)
    is_killed: bool = False
    kill_reason: Optional[str] = None
    kill_tick: Optional[int] = None


class ExecutionEngine:
    """
    Long-only portfolio ledger: fills, fees, equity and kill-switches.

    Slippage is linear in trade size: a fill of notional N against equity E
    slips by ``base_slippage * (1 + N / E)``; buys fill above the market
    price and sells below it. Fees are ``notional * fee_rate`` on each side.
    """

    def __init__(
        self,
        initial_equity: float,
        risk_limits: Optional[RiskLimits] = None,
        base_slippage: float = 0.001,
        fee_rate: float = 0.001
    ):
        self.initial_equity = initial_equity
        self.risk_limits = risk_limits or RiskLimits()
        self.base_slippage = base_slippage
        self.fee_rate = fee_rate

        self.state = ExecutionState(
            equity=initial_equity,
            cash=initial_equity,
            peak_equity=initial_equity,
        )

    @property
    def is_long(self) -> bool:
        return self.state.position is not None

    def slippage_rate(self, notional: float) -> float:
        equity = self.state.equity
        if equity <= 0:
            return self.base_slippage
        return self.base_slippage * (1.0 + notional / equity)

    def calculate_fees(self, notional_value: float) -> float:
        """Calculate transaction fees."""
        return notional_value * self.fee_rate

    def target_notional(self) -> float:
        """Position value for a new entry, sized off current equity."""
        equity = self.state.equity
        if equity <= 0:
            return 0.0
        limits = self.risk_limits
        notional = equity * limits.position_size_pct / 100 * limits.max_leverage
        return min(notional, equity * limits.max_leverage)

    def mark_to_market(self, price: float):
        """Update equity and track drawdown."""
        pos = self.state.position
        if pos is not None:
            self.state.equity = self.state.cash + pos.size * price
        else:
            self.state.equity = self.state.cash

        if self.state.equity > self.state.peak_equity:
            self.state.peak_equity = self.state.equity

        self.state.max_drawdown = max(self.state.max_drawdown, self.current_drawdown())

    def current_drawdown(self) -> float:
        peak = self.state.peak_equity
        if peak <= 0:
            return 0.0
        return max(0.0, (peak - self.state.equity) / peak * 100)

    def open_long(self, tick: int, price: float, reason: str, timestamp: Optional[str] = None) -> Optional[Trade]:
        """Open a new long position. A no-op while already long or killed."""
        if self.state.is_killed or self.is_long:
            return None

        notional = self.target_notional()
        if notional <= 0 or price <= 0:
            return None

        executed_price = price * (1 + self.slippage_rate(notional))
        size = notional / executed_price
        fees = self.calculate_fees(notional)

        self.state.cash -= notional + fees
        self.state.position = Position(
            entry_price=executed_price,
            size=size,
            entry_tick=tick,
            entry_cost=fees,
        )
        self.mark_to_market(price)

        trade = Trade(
            tick=tick,
            timestamp=timestamp,
            action=TradeAction.OPEN_LONG.value,
            price=price,
            executed_price=executed_price,
            size=size,
            cost=fees,
            pnl=0.0,
            equity_after=self.state.equity,
            reason=reason
        )

        self.state.trades.append(trade)
        return trade

    def close_long(self, tick: int, price: float, reason: str, timestamp: Optional[str] = None) -> Optional[Trade]:
        """Close the open position, if any."""
        pos = self.state.position
        if pos is None:
            return None

        executed_price = price * (1 - self.slippage_rate(pos.size * price))
        notional = executed_price * pos.size
        fees = self.calculate_fees(notional)

        pnl = (executed_price - pos.entry_price) * pos.size - pos.entry_cost - fees

        self.state.cash += notional - fees
        self.state.position = None
        self.mark_to_market(price)

        trade = Trade(
            tick=tick,
            timestamp=timestamp,
            action=TradeAction.CLOSE_LONG.value,
            price=price,
            executed_price=executed_price,
            size=pos.size,
            cost=fees,
            pnl=pnl,
            equity_after=self.state.equity,
            reason=reason
        )

        self.state.trades.append(trade)
        return trade

    def check_risk_limits(self, tick: int, price: float, timestamp: Optional[str] = None) -> bool:
        """
        Enforce kill-switches in priority order: max drawdown, stop loss,
        take profit. Call after ``mark_to_market``.

        Returns True when a risk rule acted on this tick; the strategy is not
        consulted on such ticks.
        """
        if self.state.is_killed:
            return True

        limits = self.risk_limits

        # Max drawdown kill switch
        drawdown = self.current_drawdown()
        if limits.max_drawdown_kill is not None and drawdown >= limits.max_drawdown_kill:
            if self.is_long:
                self.close_long(tick, price, f"Max drawdown kill switch ({drawdown:.2f}%)", timestamp)
            self.state.is_killed = True
            self.state.kill_tick = tick
            self.state.kill_reason = (
                f"Max drawdown ({drawdown:.2f}%) exceeded limit ({limits.max_drawdown_kill}%)"
            )
            logger.debug(f"Agent killed at tick {tick}: {self.state.kill_reason}")
            return True

        pos = self.state.position
        if pos is None:
            return False

        position_pnl_pct = (price - pos.entry_price) / pos.entry_price * 100

        # Stop loss hit
        if limits.stop_loss_pct is not None and position_pnl_pct <= -limits.stop_loss_pct:
            self.close_long(tick, price, f"Stop loss hit ({position_pnl_pct:.2f}%)", timestamp)
            return True

        # Take profit hit
        if limits.take_profit_pct is not None and position_pnl_pct >= limits.take_profit_pct:
            self.close_long(tick, price, f"Take profit hit ({position_pnl_pct:.2f}%)", timestamp)
            return True

        return False

    def record_equity(self, tick: int, timestamp: Optional[str] = None):
        self.state.equity_curve.append({
            "tick": tick,
            "timestamp": timestamp,
            "value": self.state.equity,
        })

    def get_results(self) -> Dict[str, Any]:
        """Get final execution results."""
        return {
            'final_equity': self.state.equity,
            'initial_equity': self.initial_equity,
            'total_return': (self.state.equity - self.initial_equity) / self.initial_equity * 100,
            'max_drawdown': self.state.max_drawdown,
            'equity_curve': list(self.state.equity_curve),
            'trades': [asdict(t) for t in self.state.trades],
            'is_killed': self.state.is_killed,
            'kill_reason': self.state.kill_reason,
            'kill_tick': self.state.kill_tick,
        }
