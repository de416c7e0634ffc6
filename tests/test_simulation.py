import threading
import uuid

import pytest

from arena.engine.execution import TradeAction
from arena.engine.market import MarketEngine, PriceSeries
from arena.engine.simulation import AgentRunner, AgentSpec, failed_results, save_agent_result
from arena.models.agent import StrategyType
from arena.models.agent_result import AgentResult
from arena.models.trade import Trade
from arena.schemas.round import MarketConfig

from conftest import make_agent, make_round, make_user

AGGRESSIVE = {
    "risk_params": {
        "position_size_pct": 50.0,
        "max_leverage": 5.0,
        "stop_loss_pct": 50.0,
        "take_profit_pct": 100.0,
        "max_drawdown_kill": 5.0,
    },
}


def spec(strategy_type=StrategyType.MEAN_REVERSION, config=None):
    return AgentSpec(agent_id=uuid.uuid4(), strategy_type=strategy_type, config=config or {})


def crash_series():
    """Quiet market, a sharp dip that triggers a mean-reversion entry, then a crash."""
    prices = [100.0, 100.5] * 15 + [97.0, 90.0] + [85.0] * 28
    return PriceSeries(prices=tuple(prices))


def test_seeded_scenario_completes():
    series = MarketEngine(seed=42).generate_prices(1000)
    runner = AgentRunner(spec(), series, MarketConfig(num_ticks=1000, initial_equity=100000.0))
    runner.run()
    results = runner.get_results()

    assert results["final_equity"] > 0
    assert results["survival_time"] <= 1000
    assert len(results["equity_curve"]) <= 1000


def test_runs_are_deterministic():
    series = MarketEngine(seed=7).generate_prices(400)
    agent = spec(StrategyType.TREND_FOLLOWING)
    config = MarketConfig(num_ticks=400)

    first = AgentRunner(agent, series, config)
    first.run()
    second = AgentRunner(agent, series, config)
    second.run()

    assert first.get_results() == second.get_results()


def test_drawdown_kill_stops_the_agent():
    series = crash_series()
    runner = AgentRunner(spec(config=AGGRESSIVE), series, MarketConfig(num_ticks=60))
    runner.run()
    results = runner.get_results()

    assert results["survival_time"] == 31
    assert results["kill_reason"].startswith("Max drawdown")
    assert [t["tick"] for t in results["trades"]] == [30, 31]
    assert results["trades"][-1]["action"] == TradeAction.CLOSE_LONG.value
    assert all(t["tick"] <= results["survival_time"] for t in results["trades"])
    assert len(results["equity_curve"]) == 32


def test_ghost_buys_on_first_tick_and_never_sells():
    series = MarketEngine(seed=3).generate_prices(200)
    runner = AgentRunner(spec(StrategyType.GHOST), series, MarketConfig(num_ticks=200))
    runner.run()
    results = runner.get_results()

    assert results["trades"][0]["tick"] == 0
    assert [t["action"] for t in results["trades"]] == [TradeAction.OPEN_LONG.value]
    assert results["total_trades"] == 0
    assert results["survival_time"] == 200
    assert results["kill_reason"] is None


def test_cancel_stops_at_tick_boundary():
    series = MarketEngine(seed=3).generate_prices(200)
    runner = AgentRunner(spec(), series, MarketConfig(num_ticks=200))

    cancel = threading.Event()
    ticks = []

    def on_tick():
        ticks.append(1)
        if len(ticks) == 50:
            cancel.set()

    runner.run(cancel_event=cancel, on_tick=on_tick)
    assert runner.ticks_processed == 50
    assert runner.get_results()["survival_time"] == 50


def test_benchmark_series_produces_capm_metrics():
    prices = MarketEngine(seed=11).generate_prices(100).prices
    bench = (0.0,) + tuple(0.5 * ((b / a) - 1) for a, b in zip(prices, prices[1:]))
    series = PriceSeries(prices=prices, benchmark_returns=bench)

    runner = AgentRunner(spec(StrategyType.GHOST), series, MarketConfig(num_ticks=100))
    runner.run()
    results = runner.get_results()

    assert results["beta"] is not None
    assert results["alpha"] is not None
    assert len(results["cumulative_alpha"]) == 100
    assert results["cumulative_alpha"][5]["tick"] == 5


def test_failed_results_truncate_reason():
    results = failed_results(1000.0, "x" * 1000)
    assert len(results["kill_reason"]) == 300
    assert results["sharpe_ratio"] is None
    assert results["final_equity"] == 1000.0


def test_save_agent_result_is_at_most_once(db):
    user = make_user(db)
    round_obj = make_round(db)
    agent = make_agent(db, user, round_obj)

    series = MarketEngine(seed=42).generate_prices(300)
    runner = AgentRunner(AgentSpec.from_agent(agent), series, MarketConfig(num_ticks=300))
    runner.run()
    results = runner.get_results()

    assert save_agent_result(db, agent.id, results) is True
    assert save_agent_result(db, agent.id, results) is False

    assert db.query(AgentResult).filter(AgentResult.agent_id == agent.id).count() == 1
    assert db.query(Trade).filter(Trade.agent_id == agent.id).count() == len(results["trades"])


def test_saved_trades_keep_market_timestamps(db, epoch):
    user = make_user(db)
    round_obj = make_round(db)
    agent = make_agent(db, user, round_obj, StrategyType.MOMENTUM)

    results = failed_results(1000.0, "boom", trades=[{
        "tick": 3,
        "timestamp": epoch.isoformat(),
        "action": TradeAction.OPEN_LONG.value,
        "price": 10.0,
        "executed_price": 10.01,
        "size": 5.0,
        "cost": 0.05,
        "pnl": 0.0,
        "equity_after": 999.9,
        "reason": "r" * 500,
    }])
    save_agent_result(db, agent.id, results)

    trade = db.query(Trade).filter(Trade.agent_id == agent.id).one()
    assert trade.timestamp == epoch
    assert len(trade.reason) == 200


TIGHT_RISK = {
    "risk_params": {
        "position_size_pct": 20.0,
        "max_leverage": 1.0,
        "stop_loss_pct": 1.0,
        "take_profit_pct": 1.0,
        "max_drawdown_kill": 100.0,
    },
}


@pytest.mark.parametrize("strategy_type", list(StrategyType))
def test_trade_log_alternates_open_and_close(strategy_type):
    risk_exits = 0
    for seed in (1, 42, 2024):
        series = MarketEngine(seed=seed).generate_prices(500)
        runner = AgentRunner(spec(strategy_type, TIGHT_RISK), series, MarketConfig(num_ticks=500))
        runner.run()
        trades = runner.get_results()["trades"]

        for i, trade in enumerate(trades):
            expected = TradeAction.OPEN_LONG if i % 2 == 0 else TradeAction.CLOSE_LONG
            assert trade["action"] == expected.value, (seed, i)
        assert [t["tick"] for t in trades] == sorted(t["tick"] for t in trades)
        risk_exits += sum(1 for t in trades if t["reason"].startswith(("Stop loss", "Take profit")))

    if strategy_type == StrategyType.GHOST:
        assert risk_exits == 0
    else:
        assert risk_exits > 0
