from typing import Optional, Sequence
from arena.engine.execution import Position
from arena.engine.strategies.base import BaseStrategy, Decision, DecisionAction, hold
from arena.schemas.agent import MomentumParams
from arena.utils.indicators import trailing, momentum, rsi


class MomentumStrategy(BaseStrategy):
    """
    Momentum Strategy (LONG-ONLY)

    Logic: Buy the rebound out of an oversold dip while momentum is positive.

    Signal Generation:
    - Arm when RSI drops below rsi_oversold
    - Go LONG when armed, momentum is positive and RSI is rising
    - Exit when RSI exceeds rsi_overbought
    """

    params: MomentumParams

    def __init__(self, params: MomentumParams):
        super().__init__(params)
        self.armed = False

    def decide(self, tick: int, prices: Sequence[float], frame, position: Optional[Position]) -> Decision:
        rsi_window = self.params.rsi_window
        momentum_window = self.params.momentum_window

        current_rsi = rsi(trailing(prices, tick, rsi_window + 1), rsi_window)
        prev_rsi = rsi(trailing(prices, tick - 1, rsi_window + 1), rsi_window) if tick > 0 else None
        current_momentum = momentum(trailing(prices, tick, momentum_window + 1), momentum_window)

        # Not enough data
        if current_rsi is None or current_momentum is None:
            return hold("Insufficient data for signal generation")

        if current_rsi < self.params.rsi_oversold:
            self.armed = True

        if position is not None:
            if current_rsi > self.params.rsi_overbought:
                return Decision(
                    action=DecisionAction.EXIT_LONG,
                    confidence=0.7,
                    reason=f"RSI overbought ({current_rsi:.1f}), exiting long"
                )
            return hold(f"Holding long, RSI: {current_rsi:.1f}", 0.5)

        rising = prev_rsi is not None and current_rsi > prev_rsi
        if self.armed and current_momentum > 0 and rising:
            self.armed = False
            return Decision(
                action=DecisionAction.ENTER_LONG,
                confidence=min(current_momentum / 10.0 + 0.4, 1.0),
                reason=f"Rebound from oversold: momentum {current_momentum:.2f}%, RSI rising to {current_rsi:.1f}"
            )

        if self.armed:
            return hold(f"Oversold, waiting for rebound (momentum: {current_momentum:.2f}%, RSI: {current_rsi:.1f})", 0.4)
        return hold(f"No entry signal, momentum: {current_momentum:.2f}%", 0.4)
