import uuid

from arena.models.round import Round, RoundStatus

from conftest import make_round


def create_round(client, **market):
    market.setdefault("num_ticks", 150)
    response = client.post("/api/rounds/", json={"name": "Arena", "market_seed": 42, "config": {"market": market}})
    assert response.status_code == 200, response.text
    return response.json()


def join(client, round_id, strategy_type="MEAN_REVERSION", **config):
    return client.post(f"/api/rounds/{round_id}/agents", json={"strategy_type": strategy_type, "config": config})


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_create_round_requires_admin(client, auth_state, player):
    auth_state["user"] = player
    response = client.post("/api/rounds/", json={"name": "Nope"})
    assert response.status_code == 403


def test_create_round_draws_seed(client):
    response = client.post("/api/rounds/", json={"name": "Random"})
    assert response.status_code == 200
    body = response.json()
    assert 0 <= body["market_seed"] <= 2**31 - 1
    assert body["status"] == "PENDING"
    assert body["config"]["market"]["num_ticks"] == 1000


def test_create_round_rejects_bad_config(client):
    response = client.post("/api/rounds/", json={"name": "Bad", "config": {"market": {"num_ticks": 5}}})
    assert response.status_code == 422
    response = client.post("/api/rounds/", json={"name": "Bad", "market_seed": -1})
    assert response.status_code == 422


def test_list_and_get_rounds(client, db):
    round_data = create_round(client)
    make_round(db, name="Running", status=RoundStatus.RUNNING)

    listed = client.get("/api/rounds/").json()
    assert {r["name"] for r in listed} == {"Arena", "Running"}

    pending = client.get("/api/rounds/", params={"status_filter": "PENDING"}).json()
    assert [r["id"] for r in pending] == [round_data["id"]]

    detail = client.get(f"/api/rounds/{round_data['id']}")
    assert detail.json()["agent_count"] == 0
    assert client.get(f"/api/rounds/{uuid.uuid4()}").status_code == 404


def test_agent_upsert(client, auth_state, player):
    round_id = create_round(client)["id"]
    auth_state["user"] = player

    first = join(client, round_id, strategy_params={"lookback_window": 30})
    assert first.status_code == 200, first.text
    assert first.json()["config"]["strategy_params"]["lookback_window"] == 30

    second = join(client, round_id, "MOMENTUM", strategy_params={"rsi_window": 10})
    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["strategy_type"] == "MOMENTUM"

    mine = client.get(f"/api/rounds/{round_id}/agents/me").json()
    assert mine["user_nickname"] == "player"
    assert len(client.get(f"/api/rounds/{round_id}/agents").json()) == 1


def test_agent_validation(client):
    round_id = create_round(client)["id"]
    assert join(client, round_id, "GHOST").status_code == 422
    assert join(client, round_id, strategy_params={"entry_threshold": 9}).status_code == 422
    assert join(client, round_id, risk_params={"max_leverage": 10}).status_code == 422
    assert join(client, str(uuid.uuid4())).status_code == 404


def test_start_requires_agents(client):
    round_id = create_round(client)["id"]
    response = client.post(f"/api/rounds/{round_id}/start")
    assert response.status_code == 409
    assert response.json()["detail"] == "No agents registered for this round"


def test_round_lifecycle(client, auth_state, admin_user, player, db):
    round_id = create_round(client)["id"]
    auth_state["user"] = player
    agent_id = join(client, round_id, "TREND_FOLLOWING").json()["id"]

    assert client.get(f"/api/rounds/{round_id}/agents/{agent_id}/results").status_code == 404
    assert client.get(f"/api/rounds/{round_id}/leaderboard").status_code == 409

    # Only admins start rounds
    assert client.post(f"/api/rounds/{round_id}/start").status_code == 403

    auth_state["user"] = admin_user
    started = client.post(f"/api/rounds/{round_id}/start")
    assert started.status_code == 202
    assert started.json()["status"] == "RUNNING"
    assert started.json()["total_agents"] == 2

    # The test client runs background tasks before returning
    status = client.get(f"/api/rounds/{round_id}/status").json()
    assert status["status"] == "COMPLETED"
    assert status["progress"] == 100
    assert status["agents_processed"] == 2

    detail = client.get(f"/api/rounds/{round_id}").json()
    assert len(detail["price_data"]) == 150
    assert detail["agent_count"] == 2

    assert client.post(f"/api/rounds/{round_id}/start").status_code == 409
    assert client.post(f"/api/rounds/{round_id}/stop").status_code == 409

    auth_state["user"] = player
    assert join(client, round_id).status_code == 409
    assert client.delete(f"/api/rounds/{round_id}/agents/me").status_code == 409

    results = client.get(f"/api/rounds/{round_id}/agents/{agent_id}/results")
    assert results.status_code == 200
    assert len(results.json()["equity_curve"]) <= 150

    board = client.get(f"/api/rounds/{round_id}/leaderboard").json()
    assert board["total_participants"] == 2
    assert sum(1 for e in board["entries"] if e["is_ghost"]) == 1
    assert {e["strategy_type"] for e in board["entries"]} == {"TREND_FOLLOWING", "GHOST"}

    assert client.get(f"/api/rounds/{round_id}/leaderboard", params={"sort_by": "luck"}).status_code == 422
    by_return = client.get(f"/api/rounds/{round_id}/leaderboard", params={"sort_by": "total_return"}).json()
    returns = [e["total_return"] for e in by_return["entries"]]
    assert returns == sorted(returns, reverse=True)

    me = client.get(f"/api/rounds/{round_id}/leaderboard/me", params={"user_id": str(player.id)})
    assert me.status_code == 200
    assert me.json()["total_participants"] == 2

    global_board = client.get("/api/leaderboard/global").json()
    assert global_board["total_users"] == 1
    assert global_board["entries"][0]["nickname"] == "player"

    global_me = client.get("/api/leaderboard/global/me", params={"user_id": str(player.id)}).json()
    assert global_me["rank"] == 1

    ghost_agent = next(e for e in board["entries"] if e["is_ghost"])
    ghost_trades = client.get(f"/api/trades/agent/{ghost_agent['agent_id']}/completed").json()
    assert ghost_trades["has_open_position"] is True
    assert ghost_trades["open_position"]["entry_tick"] == 0


def test_stop_running_round_without_job(client, db):
    round_obj = make_round(db, status=RoundStatus.RUNNING)
    response = client.post(f"/api/rounds/{round_obj.id}/stop")
    assert response.status_code == 200
    assert response.json()["status"] == "COMPLETED"


def test_stop_pending_round_conflicts(client):
    round_id = create_round(client)["id"]
    assert client.post(f"/api/rounds/{round_id}/stop").status_code == 409


def test_delete_round(client, db):
    round_id = create_round(client)["id"]
    assert client.delete(f"/api/rounds/{round_id}").status_code == 200
    assert client.get(f"/api/rounds/{round_id}").status_code == 404

    running = make_round(db, status=RoundStatus.RUNNING)
    assert client.delete(f"/api/rounds/{running.id}").status_code == 409
    db.expire_all()
    assert db.get(Round, running.id) is not None


def test_delete_my_agent(client, auth_state, player):
    round_id = create_round(client)["id"]
    auth_state["user"] = player
    join(client, round_id)

    assert client.delete(f"/api/rounds/{round_id}/agents/me").status_code == 200
    assert client.get(f"/api/rounds/{round_id}/agents/me").status_code == 404
    assert client.delete(f"/api/rounds/{round_id}/agents/me").status_code == 404
