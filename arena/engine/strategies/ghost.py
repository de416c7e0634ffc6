from typing import Optional, Sequence
from arena.engine.execution import Position, RiskLimits
from arena.engine.strategies.base import BaseStrategy, Decision, DecisionAction, hold
from arena.schemas.agent import RiskParams


class GhostStrategy(BaseStrategy):
    """
    Buy-and-hold benchmark.

    Goes fully long on the first tick and never exits. The agent's stored
    risk parameters are ignored: no stop loss, no take profit, no kill.
    """

    def decide(self, tick: int, prices: Sequence[float], frame, position: Optional[Position]) -> Decision:
        if position is None:
            return Decision(
                action=DecisionAction.ENTER_LONG,
                confidence=1.0,
                reason="Benchmark buy and hold"
            )
        return hold("Benchmark holding", 1.0)

    def risk_limits(self, risk_params: RiskParams) -> RiskLimits:
        return RiskLimits(
            position_size_pct=100.0,
            max_leverage=1.0,
            stop_loss_pct=None,
            take_profit_pct=None,
            max_drawdown_kill=None,
        )
