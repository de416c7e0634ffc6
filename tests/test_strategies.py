import pytest
from pydantic import ValidationError

from arena.engine.execution import Position
from arena.engine.signals import apply_signal_filters, compute_signal_frame
from arena.engine.strategies import (
    GhostStrategy, MeanReversionStrategy, MomentumStrategy, TrendFollowingStrategy, build_strategy,
)
from arena.engine.strategies.base import DecisionAction
from arena.errors import InvalidConfig
from arena.models.agent import StrategyType
from arena.schemas.agent import (
    AgentConfig, AgentCreate, MeanReversionParams, MomentumParams, RiskParams, SignalStack, TrendFollowingParams,
)


def run_flat(strategy, prices, ticks=None):
    """Decisions for every tick while staying flat."""
    decisions = []
    for tick in ticks if ticks is not None else range(len(prices)):
        frame = compute_signal_frame(prices, tick, SignalStack())
        decisions.append(strategy.decide(tick, prices, frame, None))
    return decisions


def position_at(tick, price=100.0):
    return Position(entry_price=price, size=10.0, entry_tick=tick, entry_cost=1.0)


# =============================================================================
# Mean reversion
# =============================================================================

def test_mean_reversion_waits_for_data():
    strategy = MeanReversionStrategy(MeanReversionParams())
    prices = [100.0] * 5
    decision = strategy.decide(4, prices, None, None)
    assert decision.action == DecisionAction.HOLD
    assert "Insufficient data" in decision.reason


def test_mean_reversion_enters_on_oversold_drop():
    strategy = MeanReversionStrategy(MeanReversionParams())
    prices = [100.0, 100.5] * 15 + [97.0]
    decision = strategy.decide(30, prices, None, None)
    assert decision.action == DecisionAction.ENTER_LONG
    assert decision.confidence == 1.0


def test_mean_reversion_exits_after_reverting():
    strategy = MeanReversionStrategy(MeanReversionParams())
    prices = [100.0, 100.5] * 15 + [100.3]
    decision = strategy.decide(30, prices, None, position_at(25))
    assert decision.action == DecisionAction.EXIT_LONG


def test_mean_reversion_only_reads_visible_prices():
    strategy = MeanReversionStrategy(MeanReversionParams())
    prices = [100.0, 100.5] * 15 + [97.0]
    future = prices + [50.0, 200.0]
    assert strategy.decide(30, prices, None, None) == strategy.decide(30, future, None, None)


def test_mean_reversion_enters_at_shallow_threshold_without_filters():
    strategy = MeanReversionStrategy(MeanReversionParams(lookback_window=20, entry_threshold=1.0, exit_threshold=0.5))
    # z-score of the last price is about -1.09, confidence about 0.27
    prices = [101.0, 99.0] * 9 + [101.0, 98.9]
    frame = compute_signal_frame(prices, 19, SignalStack())

    decision = apply_signal_filters(strategy.decide(19, prices, frame, None), frame)
    assert decision.action == DecisionAction.ENTER_LONG
    assert decision.confidence == pytest.approx(1.0895 / 4, abs=1e-3)


# =============================================================================
# Trend following
# =============================================================================

def test_trend_following_enters_on_crossover_after_bottom():
    strategy = TrendFollowingStrategy(TrendFollowingParams(fast_window=3, slow_window=10))
    prices = [100.0 - i * 0.5 for i in range(40)] + [80.5 + i for i in range(40)]
    decisions = run_flat(strategy, prices)

    entries = [tick for tick, d in enumerate(decisions) if d.action == DecisionAction.ENTER_LONG]
    assert entries
    assert entries[0] >= 40
    assert all(d.action == DecisionAction.HOLD for d in decisions[:10])


def test_trend_following_trailing_stop():
    strategy = TrendFollowingStrategy(TrendFollowingParams(fast_window=3, slow_window=10))
    prices = [100.0 + i for i in range(30)] + [110.0]
    decision = strategy.decide(30, prices, None, position_at(20, 120.0))
    assert decision.action == DecisionAction.EXIT_LONG
    assert "Trailing stop" in decision.reason


def test_trend_following_holds_in_uptrend():
    strategy = TrendFollowingStrategy(TrendFollowingParams(fast_window=3, slow_window=10))
    prices = [100.0 + i for i in range(31)]
    decision = strategy.decide(30, prices, None, position_at(20, 120.0))
    assert decision.action == DecisionAction.HOLD


def test_trend_following_catches_up_on_skipped_ticks():
    params = TrendFollowingParams(fast_window=3, slow_window=10)
    prices = [100.0 - i * 0.5 for i in range(40)] + [80.5 + i for i in range(40)]

    every_tick = TrendFollowingStrategy(params)
    run_flat(every_tick, prices, range(60))
    skipping = TrendFollowingStrategy(params)
    run_flat(skipping, prices, [10, 30, 59])

    assert every_tick.fast_ema.value == skipping.fast_ema.value
    assert every_tick.slow_ema.value == skipping.slow_ema.value


# =============================================================================
# Momentum
# =============================================================================

def test_momentum_buys_rebound_from_oversold():
    strategy = MomentumStrategy(MomentumParams())
    prices = [100.0 - i for i in range(31)] + [70.0 + 2 * i for i in range(1, 20)]
    decisions = run_flat(strategy, prices)

    entries = [tick for tick, d in enumerate(decisions) if d.action == DecisionAction.ENTER_LONG]
    assert entries
    assert entries[0] > 30
    assert strategy.armed is False


def test_momentum_never_enters_without_dip():
    strategy = MomentumStrategy(MomentumParams())
    prices = [100.0 + i for i in range(60)]
    decisions = run_flat(strategy, prices)
    assert all(d.action == DecisionAction.HOLD for d in decisions)


def test_momentum_exits_when_overbought():
    strategy = MomentumStrategy(MomentumParams())
    prices = [100.0 + i for i in range(40)]
    decision = strategy.decide(39, prices, None, position_at(30))
    assert decision.action == DecisionAction.EXIT_LONG


# =============================================================================
# Ghost
# =============================================================================

def test_ghost_buys_and_holds():
    strategy = GhostStrategy(None)
    prices = [100.0, 99.0]
    assert strategy.decide(0, prices, None, None).action == DecisionAction.ENTER_LONG
    assert strategy.decide(1, prices, None, position_at(0)).action == DecisionAction.HOLD


def test_ghost_disables_risk_limits():
    limits = GhostStrategy(None).risk_limits(RiskParams())
    assert limits.position_size_pct == 100.0
    assert limits.stop_loss_pct is None
    assert limits.take_profit_pct is None
    assert limits.max_drawdown_kill is None


# =============================================================================
# Construction and validation
# =============================================================================

def test_build_strategy_for_each_type():
    assert isinstance(build_strategy(StrategyType.MEAN_REVERSION), MeanReversionStrategy)
    assert isinstance(build_strategy("TREND_FOLLOWING", {"fast_window": 5}), TrendFollowingStrategy)
    assert isinstance(build_strategy(StrategyType.MOMENTUM, {}), MomentumStrategy)
    assert isinstance(build_strategy(StrategyType.GHOST), GhostStrategy)


def test_build_strategy_ignores_other_strategies_fields():
    strategy = build_strategy(StrategyType.MOMENTUM, {"rsi_window": 10, "lookback_window": 99})
    assert strategy.params.rsi_window == 10


@pytest.mark.parametrize("strategy_type,params", [
    (StrategyType.MEAN_REVERSION, {"entry_threshold": 1.0, "exit_threshold": 1.5}),
    (StrategyType.TREND_FOLLOWING, {"fast_window": 30, "slow_window": 20}),
    (StrategyType.MOMENTUM, {"rsi_oversold": 80, "rsi_overbought": 70}),
    (StrategyType.MEAN_REVERSION, {"lookback_window": 1}),
])
def test_invalid_strategy_params(strategy_type, params):
    with pytest.raises(InvalidConfig):
        build_strategy(strategy_type, params)


def test_agent_create_normalizes_params():
    data = AgentCreate(
        strategy_type=StrategyType.TREND_FOLLOWING,
        config={"strategy_params": {"fast_window": 5, "rsi_window": 9}},
    )
    assert data.config.strategy_params == {"fast_window": 5, "slow_window": 30, "atr_multiplier": 2.0}


def test_agent_create_rejects_ghost():
    with pytest.raises(ValidationError):
        AgentCreate(strategy_type=StrategyType.GHOST)


def test_agent_create_rejects_bad_params():
    with pytest.raises(ValidationError):
        AgentCreate(
            strategy_type=StrategyType.MEAN_REVERSION,
            config={"strategy_params": {"entry_threshold": 0.6, "exit_threshold": 1.0}},
        )


def test_agent_config_defaults():
    config = AgentConfig()
    assert config.risk_params.stop_loss_pct == 5.0
    assert config.signal_stack.use_sma_trend_filter is False
