from typing import Optional, Sequence
from arena.engine.execution import Position
from arena.engine.strategies.base import BaseStrategy, Decision, DecisionAction, hold
from arena.schemas.agent import MeanReversionParams
from arena.utils.indicators import trailing, z_score


class MeanReversionStrategy(BaseStrategy):
    """
    Mean Reversion Strategy (LONG-ONLY)

    Logic: When price deviates significantly below its moving average,
    bet on price returning to the mean.

    Strategy Parameters:
    - lookback_window: Window for calculating mean price (z-score baseline)
    - entry_threshold: Z-score threshold to enter position
    - exit_threshold: Z-score threshold to exit position

    Signal Generation:
    - Go LONG when z-score <= -entry_threshold
    - Exit once z-score climbs back above -exit_threshold
    """

    params: MeanReversionParams

    def decide(self, tick: int, prices: Sequence[float], frame, position: Optional[Position]) -> Decision:
        lookback = self.params.lookback_window
        current_zscore = z_score(trailing(prices, tick, lookback), lookback)

        # Not enough data
        if current_zscore is None:
            return hold("Insufficient data for signal generation")

        if position is None:
            if current_zscore <= -self.params.entry_threshold:
                # Price significantly below mean - expect reversion up
                return Decision(
                    action=DecisionAction.ENTER_LONG,
                    confidence=min(abs(current_zscore) / 4.0, 1.0),
                    reason=f"Price oversold (z-score: {current_zscore:.2f})"
                )
            return hold(f"No clear entry signal, staying flat (z-score: {current_zscore:.2f})", 0.5)

        if current_zscore > -self.params.exit_threshold:
            return Decision(
                action=DecisionAction.EXIT_LONG,
                confidence=0.8,
                reason=f"Price reverted to mean, exit long (z-score: {current_zscore:.2f})"
            )

        return hold("Holding long position, waiting for exit signal", 0.5)
