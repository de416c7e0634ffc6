"""
Signal stack: indicators shared by every strategy and the entry filters.

The filters produce a confidence multiplier in [0, 1]:

- SMA trend filter: price below the SMA gates entries off (multiplier 0).
- Volatility filter: realized volatility over ``volatility_window`` is
  compared to a baseline measured over BASELINE_MULTIPLE times that window.
  Once the ratio exceeds ``volatility_threshold`` the multiplier is tapered
  by ``threshold / ratio``.

An enabled filter that does not have enough history yet yields 0.
"""

from dataclasses import dataclass, replace
from typing import Optional, Sequence

from arena.engine.strategies.base import Decision, DecisionAction
from arena.schemas.agent import SignalStack
from arena.utils.indicators import trailing, sma, rsi, volatility

BASELINE_MULTIPLE = 5
FRAME_RSI_WINDOW = 14
MIN_ENTRY_CONFIDENCE = 0.3


@dataclass(frozen=True)
class SignalFrame:
    tick: int
    price: float
    sma: Optional[float]
    rsi: Optional[float]
    volatility: Optional[float]
    baseline_volatility: Optional[float]
    confidence_multiplier: float
    blocked_by: Optional[str] = None  # Filter that zeroed or tapered the multiplier


def compute_signal_frame(prices: Sequence[float], tick: int, config: SignalStack) -> SignalFrame:
    """Indicators and filter multiplier visible at ``tick``."""
    price = prices[tick]
    vol_window = config.volatility_window
    baseline_window = vol_window * BASELINE_MULTIPLE

    current_sma = sma(trailing(prices, tick, config.sma_filter_window), config.sma_filter_window)
    current_rsi = rsi(trailing(prices, tick, FRAME_RSI_WINDOW + 1), FRAME_RSI_WINDOW)
    current_vol = volatility(trailing(prices, tick, vol_window + 1), vol_window)
    baseline_vol = volatility(trailing(prices, tick, baseline_window + 1), baseline_window)

    multiplier = 1.0
    blocked_by = None

    if config.use_sma_trend_filter:
        if current_sma is None:
            multiplier, blocked_by = 0.0, "SMA trend filter warming up"
        elif price < current_sma:
            multiplier, blocked_by = 0.0, f"SMA trend filter (price {price:.2f} < SMA {current_sma:.2f})"

    if config.use_volatility_filter and multiplier > 0:
        if current_vol is None or baseline_vol is None:
            multiplier, blocked_by = 0.0, "Volatility filter warming up"
        elif baseline_vol > 0:
            ratio = current_vol / baseline_vol
            if ratio > config.volatility_threshold:
                multiplier *= config.volatility_threshold / ratio
                blocked_by = f"Volatility filter (ratio {ratio:.2f} > {config.volatility_threshold})"

    return SignalFrame(
        tick=tick,
        price=price,
        sma=current_sma,
        rsi=current_rsi,
        volatility=current_vol,
        baseline_volatility=baseline_vol,
        confidence_multiplier=multiplier,
        blocked_by=blocked_by,
    )


def apply_signal_filters(decision: Decision, frame: SignalFrame) -> Decision:
    """
    Scale an entry's confidence by the frame multiplier.

    When an enabled filter lowered the multiplier and the entry ends below
    MIN_ENTRY_CONFIDENCE it becomes HOLD. With no filter in the way the
    strategy's own entry rule stands. Exits pass through untouched.
    """
    if decision.action != DecisionAction.ENTER_LONG:
        return decision

    confidence = decision.confidence * frame.confidence_multiplier
    if frame.blocked_by is not None and confidence < MIN_ENTRY_CONFIDENCE:
        return Decision(
            action=DecisionAction.HOLD,
            confidence=confidence,
            reason=f"Entry blocked by {frame.blocked_by}: {decision.reason}",
        )

    return replace(decision, confidence=confidence)
