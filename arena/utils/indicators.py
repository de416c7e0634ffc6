import numpy as np
from typing import Optional, Sequence


def trailing(prices: Sequence[float], tick: int, window: int) -> Sequence[float]:
    """
    Prices visible at ``tick``, limited to the last ``window`` values.

    Indicators only ever look back a fixed number of bars, so slicing the
    tail keeps each tick's work bounded.
    """
    start = max(0, tick + 1 - window)
    return prices[start:tick + 1]


def sma(prices: Sequence[float], window: int) -> Optional[float]:
    """
    Calculate Simple Moving Average.
    Returns None if not enough data.
    """
    if len(prices) < window:
        return None
    return float(np.mean(prices[-window:]))


class EMA:
    """
    Exponential Moving Average updated one price at a time.

    Seeded with the first price; ``value`` stays None until ``window``
    prices have been seen.
    """

    def __init__(self, window: int):
        self.window = window
        self.multiplier = 2 / (window + 1)
        self.count = 0
        self._value: Optional[float] = None

    def update(self, price: float) -> Optional[float]:
        if self._value is None:
            self._value = price
        else:
            self._value = (price - self._value) * self.multiplier + self._value
        self.count += 1
        return self.value

    @property
    def value(self) -> Optional[float]:
        if self.count < self.window:
            return None
        return self._value


def rsi(prices: Sequence[float], window: int = 14) -> Optional[float]:
    """
    Calculate Relative Strength Index (RSI).
    Returns value between 0 and 100.
    Returns None if not enough data.
    """
    if len(prices) < window + 1:
        return None

    # Calculate price changes
    deltas = np.diff(prices[-(window + 1):])

    # Separate gains and losses
    gains = np.where(deltas > 0, deltas, 0)
    losses = np.where(deltas < 0, -deltas, 0)

    avg_gain = np.mean(gains)
    avg_loss = np.mean(losses)

    if avg_loss == 0:
        # Flat window is neutral, not overbought
        return 50.0 if avg_gain == 0 else 100.0

    rs = avg_gain / avg_loss
    return float(100 - (100 / (1 + rs)))


def atr_from_prices(prices: Sequence[float], window: int = 14) -> Optional[float]:
    """
    Estimate ATR from a close-only series: mean absolute bar-to-bar change.
    """
    if len(prices) < window + 1:
        return None

    price_array = np.array(prices[-(window + 1):])
    abs_changes = np.abs(np.diff(price_array))

    return float(np.mean(abs_changes))


def momentum(prices: Sequence[float], window: int = 14) -> Optional[float]:
    """
    Calculate price momentum (rate of change).
    Returns percentage change over the window.
    """
    if len(prices) < window + 1:
        return None

    return (prices[-1] - prices[-window - 1]) / prices[-window - 1] * 100


def volatility(prices: Sequence[float], window: int = 20) -> Optional[float]:
    """
    Calculate realized volatility (annualized standard deviation of log returns).
    """
    if len(prices) < window + 1:
        return None

    returns = np.diff(np.log(prices[-window - 1:]))
    return float(np.std(returns) * np.sqrt(252))


def z_score(prices: Sequence[float], window: int = 20) -> Optional[float]:
    """
    Calculate z-score of current price relative to recent prices.
    """
    if len(prices) < window:
        return None

    mean = np.mean(prices[-window:])
    std = np.std(prices[-window:])

    if std == 0:
        return 0.0

    return float((prices[-1] - mean) / std)
