import math

import pytest

from arena.engine.signals import MIN_ENTRY_CONFIDENCE, SignalFrame, apply_signal_filters, compute_signal_frame
from arena.engine.strategies.base import Decision, DecisionAction
from arena.schemas.agent import SignalStack
from arena.utils.indicators import EMA, atr_from_prices, momentum, rsi, sma, trailing, volatility, z_score

def test_trailing_window():
    prices = list(range(10))
    assert list(trailing(prices, 5, 3)) == [3, 4, 5]
    assert list(trailing(prices, 1, 5)) == [0, 1]

def test_sma():
    assert sma([1.0, 2.0, 3.0], 3) == 2.0
    assert sma([1.0, 2.0], 3) is None

def test_ema_warms_up():
    ema = EMA(3)
    assert ema.update(10.0) is None
    assert ema.update(10.0) is None
    assert ema.update(10.0) == 10.0
    ema.update(14.0)
    assert ema.value == pytest.approx(12.0)

def test_rsi_edge_cases():
    assert rsi([100.0] * 15, 14) == 50.0
    assert rsi([float(p) for p in range(100, 115)], 14) == 100.0
    assert rsi([float(p) for p in range(115, 100, -1)], 14) == 0.0
    assert rsi([100.0] * 5, 14) is None

def test_atr_from_prices():
    prices = [100.0, 101.0] * 8
    assert atr_from_prices(prices, 14) == pytest.approx(1.0)
    assert atr_from_prices(prices[:5], 14) is None

def test_momentum_percent_change():
    assert momentum([100.0] * 14 + [110.0], 14) == pytest.approx(10.0)
    assert momentum([100.0] * 3, 14) is None

def test_volatility_of_flat_series_is_zero():
    assert volatility([100.0] * 21, 20) == 0.0
    assert volatility([100.0] * 5, 20) is None

def test_z_score():
    assert z_score([100.0] * 20, 20) == 0.0
    assert z_score([100.0, 100.5] * 10 + [95.0], 20) < -2.0
    assert z_score([100.0] * 3, 20) is None

def enter(confidence=1.0):
    return Decision(DecisionAction.ENTER_LONG, confidence, "Test entry")

def test_filters_off_pass_everything():
    prices = [100.0 + i for i in range(30)]
    frame = compute_signal_frame(prices, 29, SignalStack())
    assert frame.confidence_multiplier == 1.0
    assert frame.blocked_by is None
    assert apply_signal_filters(enter(0.9), frame).confidence == pytest.approx(0.9)

def test_sma_filter_blocks_entries_below_average():
    prices = [200.0 - i for i in range(60)]
    config = SignalStack(use_sma_trend_filter=True, sma_filter_window=10)
    frame = compute_signal_frame(prices, 59, config)

    assert frame.confidence_multiplier == 0.0
    decision = apply_signal_filters(enter(), frame)
    assert decision.action == DecisionAction.HOLD
    assert decision.reason.startswith("Entry blocked by SMA trend filter")

def test_sma_filter_allows_entries_above_average():
    prices = [100.0 + i for i in range(60)]
    config = SignalStack(use_sma_trend_filter=True, sma_filter_window=10)
    frame = compute_signal_frame(prices, 59, config)
    assert frame.confidence_multiplier == 1.0
    assert apply_signal_filters(enter(), frame).action == DecisionAction.ENTER_LONG

def test_enabled_filter_blocks_while_warming_up():
    prices = [100.0 + i for i in range(60)]
    config = SignalStack(use_sma_trend_filter=True, sma_filter_window=50)
    frame = compute_signal_frame(prices, 5, config)
    assert frame.confidence_multiplier == 0.0
    assert "warming up" in frame.blocked_by

def test_exits_are_never_filtered():
    prices = [200.0 - i for i in range(60)]
    frame = compute_signal_frame(prices, 59, SignalStack(use_sma_trend_filter=True, sma_filter_window=10))
    exit_decision = Decision(DecisionAction.EXIT_LONG, 0.8, "Test exit")
    assert apply_signal_filters(exit_decision, frame) is exit_decision

def test_volatility_filter_tapers_confidence():
    prices = [100.0]
    for i in range(1, 26):
        prices.append(prices[-1] * math.exp(0.001 if i % 2 else -0.001))
    for i in range(26, 31):
        prices.append(prices[-1] * math.exp(0.05 if i % 2 else -0.05))

    config = SignalStack(use_volatility_filter=True, volatility_window=5, volatility_threshold=1.5)
    frame = compute_signal_frame(prices, 30, config)

    assert 0.0 < frame.confidence_multiplier < 1.0
    assert frame.blocked_by.startswith("Volatility filter")

def test_low_confidence_entry_stands_without_filters():
    prices = [100.0 + i for i in range(30)]
    frame = compute_signal_frame(prices, 29, SignalStack())
    decision = apply_signal_filters(enter(MIN_ENTRY_CONFIDENCE / 2), frame)
    assert decision.action == DecisionAction.ENTER_LONG
    assert decision.confidence == pytest.approx(MIN_ENTRY_CONFIDENCE / 2)

def test_tapered_entry_below_floor_becomes_hold():
    frame = SignalFrame(
        tick=30, price=100.0, sma=None, rsi=None, volatility=0.05, baseline_volatility=0.01,
        confidence_multiplier=0.3, blocked_by="Volatility filter (ratio 5.00 > 1.5)",
    )
    decision = apply_signal_filters(enter(0.9), frame)
    assert decision.action == DecisionAction.HOLD
    assert decision.confidence == pytest.approx(0.27)
    assert decision.reason.startswith("Entry blocked by Volatility filter")

    assert apply_signal_filters(enter(1.0), frame).action == DecisionAction.ENTER_LONG

def test_decision_requires_reason():
    with pytest.raises(ValueError):
        Decision(DecisionAction.HOLD, 0.0, "")
