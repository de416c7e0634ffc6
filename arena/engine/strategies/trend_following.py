from typing import Optional, Sequence
from arena.engine.execution import Position
from arena.engine.strategies.base import BaseStrategy, Decision, DecisionAction, hold
from arena.schemas.agent import TrendFollowingParams
from arena.utils.indicators import EMA, trailing, atr_from_prices

ATR_WINDOW = 14


class TrendFollowingStrategy(BaseStrategy):
    """
    Trend Following Strategy (LONG-ONLY)

    Logic: Follow uptrends using moving average crossovers.

    Strategy Parameters:
    - fast_window: Fast EMA period (shorter = more responsive)
    - slow_window: Slow EMA period (longer = smoother trend)
    - atr_multiplier: Trailing stop distance in ATRs

    Signal Generation:
    - Go LONG when fast EMA crosses above slow EMA (bullish crossover)
    - Exit when price falls below highest_since_entry - atr_multiplier * ATR
    """

    params: TrendFollowingParams

    def __init__(self, params: TrendFollowingParams):
        super().__init__(params)
        self.fast_ema = EMA(params.fast_window)
        self.slow_ema = EMA(params.slow_window)
        self.prev_fast_ma = None
        self.prev_slow_ma = None
        self.last_tick = -1

        self.entry_tick = None
        self.highest_since_entry = None

    def _advance(self, prices: Sequence[float], tick: int):
        """Feed the EMAs every price up to ``tick``, including skipped ticks."""
        while self.last_tick < tick:
            self.last_tick += 1
            self.prev_fast_ma = self.fast_ema.value
            self.prev_slow_ma = self.slow_ema.value
            self.fast_ema.update(prices[self.last_tick])
            self.slow_ema.update(prices[self.last_tick])

    def _track_high(self, prices: Sequence[float], tick: int, position: Position) -> float:
        if self.entry_tick != position.entry_tick:
            self.entry_tick = position.entry_tick
            self.highest_since_entry = max(prices[position.entry_tick:tick + 1])
        else:
            self.highest_since_entry = max(self.highest_since_entry, prices[tick])
        return self.highest_since_entry

    def decide(self, tick: int, prices: Sequence[float], frame, position: Optional[Position]) -> Decision:
        self._advance(prices, tick)
        price = prices[tick]

        if position is not None:
            highest = self._track_high(prices, tick, position)
            current_atr = atr_from_prices(trailing(prices, tick, ATR_WINDOW + 1), ATR_WINDOW)
            if current_atr is None:
                return hold("Holding long, ATR not available yet", 0.5)

            stop = highest - self.params.atr_multiplier * current_atr
            if price < stop:
                return Decision(
                    action=DecisionAction.EXIT_LONG,
                    confidence=0.8,
                    reason=f"Trailing stop hit (price {price:.2f} < stop {stop:.2f})"
                )
            return hold(f"Holding long in uptrend (trailing stop {stop:.2f})", 0.5)

        self.entry_tick = None
        fast_ma = self.fast_ema.value
        slow_ma = self.slow_ema.value

        # Not enough data
        if fast_ma is None or slow_ma is None or self.prev_fast_ma is None or self.prev_slow_ma is None:
            return hold("Insufficient data for signal generation")

        # Bullish crossover: fast MA crosses above slow MA
        if self.prev_fast_ma <= self.prev_slow_ma and fast_ma > slow_ma:
            trend_strength = (fast_ma - slow_ma) / slow_ma if slow_ma else 0
            return Decision(
                action=DecisionAction.ENTER_LONG,
                confidence=min(abs(trend_strength) * 50 + 0.6, 1.0),
                reason=f"Bullish crossover (fast MA: {fast_ma:.2f}, slow MA: {slow_ma:.2f})"
            )

        return hold("No crossover, staying flat", 0.4)
