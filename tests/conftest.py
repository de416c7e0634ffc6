"""
Pytest configuration and shared fixtures for the test suite.
"""
import os
import uuid
from datetime import datetime, timedelta

# Force an in-memory database and known admins before arena settings load.
os.environ["ARENA_DATABASE_URL"] = "sqlite://"
os.environ["ARENA_ADMIN_EMAILS"] = '["admin@example.com"]'
os.environ["ARENA_JWKS_URL"] = ""

import pytest
from fastapi.testclient import TestClient

from arena.database import Base, engine, SessionLocal
from arena.engine import orchestrator
from arena.models.agent import Agent, StrategyType
from arena.models.agent_result import AgentResult
from arena.models.round import Round, RoundStatus
from arena.models.user import User
from arena.services.leaderboard import leaderboard_cache
from arena.utils.auth import get_current_user


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        leaderboard_cache.clear()
        for job in list(orchestrator.registry._jobs.values()):
            orchestrator.registry.remove(job.round_id)


def make_user(db, nickname="trader", is_admin=False, email=None):
    user = User(
        id=uuid.uuid4(),
        external_id=f"ext-{nickname}-{uuid.uuid4().hex[:8]}",
        email=email or f"{nickname}@example.com",
        nickname=nickname,
        is_admin=is_admin,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_round(db, name="Test Round", seed=42, status=RoundStatus.PENDING, **market):
    market.setdefault("num_ticks", 200)
    round_obj = Round(
        id=uuid.uuid4(),
        name=name,
        market_seed=seed,
        config={"market": market},
        status=status,
    )
    db.add(round_obj)
    db.commit()
    db.refresh(round_obj)
    return round_obj


def make_agent(db, user, round_obj, strategy_type=StrategyType.MEAN_REVERSION, config=None, created_at=None):
    agent = Agent(
        id=uuid.uuid4(),
        user_id=user.id,
        round_id=round_obj.id,
        strategy_type=strategy_type,
        config=config or {},
    )
    if created_at is not None:
        agent.created_at = created_at
    db.add(agent)
    db.commit()
    db.refresh(agent)
    return agent


def make_result(db, agent, sharpe_ratio=1.0, total_return=5.0, max_drawdown=3.0, alpha=None, **extra):
    result = AgentResult(
        id=uuid.uuid4(),
        agent_id=agent.id,
        final_equity=100000.0 * (1 + total_return / 100),
        total_return=total_return,
        sharpe_ratio=sharpe_ratio,
        max_drawdown=max_drawdown,
        calmar_ratio=extra.get("calmar_ratio"),
        total_trades=extra.get("total_trades", 0),
        win_rate=extra.get("win_rate"),
        survival_time=extra.get("survival_time", 100),
        alpha=alpha,
        beta=extra.get("beta"),
        equity_curve=[],
        trades=[],
    )
    db.add(result)
    db.commit()
    return result


def minutes(start, count):
    return [start + timedelta(minutes=i) for i in range(count)]


@pytest.fixture
def admin_user(db):
    return make_user(db, "admin", is_admin=True, email="admin@example.com")


@pytest.fixture
def player(db):
    return make_user(db, "player")


@pytest.fixture
def auth_state(admin_user):
    """Mutable holder for the user the API sees as authenticated."""
    return {"user": admin_user}


@pytest.fixture
def client(db, auth_state):
    from arena.main import app

    app.dependency_overrides[get_current_user] = lambda: auth_state["user"]
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def epoch():
    return datetime(2024, 1, 2, 14, 30)
