import uuid
from types import SimpleNamespace

import pytest

from arena.api.trades import pair_trades
from arena.models.trade import Trade

from conftest import make_agent, make_round, make_user


def ledger(tick, action, price, pnl=0.0):
    return SimpleNamespace(
        tick=tick, timestamp=None, action=action, price=price, executed_price=price,
        size=10.0, cost=1.0, pnl=pnl, reason=f"{action} at {tick}",
    )


def test_pairs_open_and_close():
    completed, open_position = pair_trades([
        ledger(2, "OPEN_LONG", 100.0),
        ledger(7, "CLOSE_LONG", 110.0, pnl=98.0),
        ledger(9, "OPEN_LONG", 105.0),
    ])

    assert len(completed) == 1
    trade = completed[0]
    assert trade.trade_number == 1
    assert (trade.entry_tick, trade.exit_tick, trade.duration_ticks) == (2, 7, 5)
    assert trade.return_pct == pytest.approx(10.0)
    assert trade.total_cost == 2.0
    assert trade.is_winner

    assert open_position.entry_tick == 9
    assert open_position.entry_cost == 1.0


def test_close_without_open_is_ignored():
    completed, open_position = pair_trades([ledger(1, "CLOSE_LONG", 100.0, pnl=-3.0)])
    assert completed == []
    assert open_position is None


def add_trade(db, agent, tick, action, price, pnl=0.0):
    db.add(Trade(
        id=uuid.uuid4(), agent_id=agent.id, tick=tick, action=action, price=price,
        executed_price=price, size=1.0, cost=0.1, pnl=pnl, equity_after=1000.0 + pnl, reason=action,
    ))
    db.commit()


def test_agent_trade_endpoints(client, db):
    user = make_user(db)
    agent = make_agent(db, user, make_round(db))
    add_trade(db, agent, 1, "OPEN_LONG", 100.0)
    add_trade(db, agent, 4, "CLOSE_LONG", 104.0, pnl=3.8)
    add_trade(db, agent, 6, "OPEN_LONG", 103.0)
    add_trade(db, agent, 8, "CLOSE_LONG", 101.0, pnl=-2.2)

    raw = client.get(f"/api/trades/agent/{agent.id}")
    assert raw.status_code == 200
    body = raw.json()
    assert body["total_trades"] == 4
    assert [t["tick"] for t in body["trades"]] == [1, 4, 6, 8]
    assert body["winning_trades"] == 1
    assert body["losing_trades"] == 1
    assert body["win_rate"] == 50.0
    assert body["total_pnl"] == pytest.approx(1.6)

    paired = client.get(f"/api/trades/agent/{agent.id}/completed").json()
    assert paired["total_completed_trades"] == 2
    assert paired["has_open_position"] is False
    assert paired["best_trade_pnl"] == pytest.approx(3.8)
    assert paired["worst_trade_pnl"] == pytest.approx(-2.2)


def test_unknown_agent_trades(client):
    response = client.get(f"/api/trades/agent/{uuid.uuid4()}")
    assert response.status_code == 404
    assert response.json() == {"detail": "Agent not found"}
