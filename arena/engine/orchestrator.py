"""
Round lifecycle: PENDING -> RUNNING -> COMPLETED | FAILED.

Status changes go through ``transition``, a conditional UPDATE that only
matches rows still in the expected state, so a round can never move
backwards or be completed twice.

A started round gets a RoundJob, registered in-process so the status
endpoint can read live progress and the stop endpoint can cancel it. The
job generates the market once, simulates the agents in a thread pool and
persists each agent's result as soon as it is ready. Only the job's own
thread touches the database.
"""

import math
import uuid
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait, FIRST_COMPLETED
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from sqlalchemy import update
from sqlalchemy.orm import Session

from arena.config import get_settings
from arena.database import SessionLocal, utcnow
from arena.engine.market import PriceSeries, generate_market, parse_market_config
from arena.engine.real_market import check_market_data_available
from arena.engine.simulation import AgentRunner, AgentSpec, failed_results, save_agent_result
from arena.errors import DataUnavailable, NotFound, SimulationFailure, StateConflict
from arena.models.agent import Agent, StrategyType
from arena.models.round import Round, RoundStatus
from arena.schemas.round import MarketConfig, RoundStatusResponse
from arena.services.leaderboard import leaderboard_cache
from arena.utils.ghost import add_ghost_agent_to_round

logger = logging.getLogger(__name__)

ERROR_MESSAGE_MAX_LENGTH = 500

LEGAL_TRANSITIONS = {
    RoundStatus.PENDING: {RoundStatus.RUNNING},
    RoundStatus.RUNNING: {RoundStatus.COMPLETED, RoundStatus.FAILED},
}


def transition(db: Session, round_id: uuid.UUID, expected: RoundStatus, new: RoundStatus, **values) -> bool:
    """
    Move a round from ``expected`` to ``new``, setting ``values`` with it.

    Returns False when the round was not in ``expected`` anymore.
    """
    if new not in LEGAL_TRANSITIONS.get(expected, set()):
        raise StateConflict(f"Illegal round transition {expected.value} -> {new.value}")

    result = db.execute(
        update(Round)
        .where(Round.id == round_id, Round.status == expected)
        .values(status=new, **values)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


# =============================================================================
# In-process job registry
# =============================================================================

class RoundJob:
    """Cancellation flag and live progress of one running round."""

    def __init__(self, round_id: uuid.UUID, specs: List[AgentSpec], market_config: MarketConfig):
        self.round_id = round_id
        self.specs = specs
        self.market_config = market_config

        self.cancel_event = threading.Event()
        self.done_event = threading.Event()
        # Set when a stop request gave up waiting; the job then stops writing
        self.abandoned = False

        self._lock = threading.Lock()
        self.total_ticks = 0
        self.ticks_completed = 0
        self.agents_processed = 0

    @property
    def total_agents(self) -> int:
        return len(self.specs)

    def add_tick(self):
        with self._lock:
            self.ticks_completed += 1

    def agent_finished(self, remaining_ticks: int = 0):
        """Count an agent as done; ticks it will never run still count toward progress."""
        with self._lock:
            self.agents_processed += 1
            self.ticks_completed += max(0, remaining_ticks)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            ticks_completed = self.ticks_completed
            agents_processed = self.agents_processed
        total = self.total_ticks * self.total_agents
        progress = math.floor(ticks_completed * 100 / total) if total else 0
        return {
            "progress": min(100, progress),
            "ticks_completed": ticks_completed,
            "agents_processed": agents_processed,
        }


class JobRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: Dict[uuid.UUID, RoundJob] = {}

    def register(self, job: RoundJob):
        with self._lock:
            if job.round_id in self._jobs:
                raise StateConflict("Round already has a running job")
            self._jobs[job.round_id] = job

    def get(self, round_id: uuid.UUID) -> Optional[RoundJob]:
        with self._lock:
            return self._jobs.get(round_id)

    def remove(self, round_id: uuid.UUID):
        with self._lock:
            self._jobs.pop(round_id, None)


registry = JobRegistry()


# =============================================================================
# Commands
# =============================================================================

def get_round_or_404(db: Session, round_id: uuid.UUID) -> Round:
    round_obj = db.query(Round).filter(Round.id == round_id).first()
    if not round_obj:
        raise NotFound("Round not found")
    return round_obj


def start_round(db: Session, round_id: uuid.UUID) -> RoundJob:
    """
    PENDING -> RUNNING. Adds the Ghost benchmark, snapshots every agent's
    configuration and registers the job; the caller schedules ``run_round_job``.
    """
    round_obj = get_round_or_404(db, round_id)

    if round_obj.status != RoundStatus.PENDING:
        raise StateConflict(f"Round is already {round_obj.status.value}")

    participants = db.query(Agent).filter(
        Agent.round_id == round_id,
        Agent.strategy_type != StrategyType.GHOST
    ).count()
    if participants == 0:
        raise StateConflict("No agents registered for this round")

    market_config = parse_market_config((round_obj.config or {}).get("market"))
    if market_config.data_source == "real" and not check_market_data_available(
        db, market_config.symbol, market_config.benchmark_symbol
    ):
        raise DataUnavailable(
            f"Market data for {market_config.symbol}/{market_config.benchmark_symbol} "
            f"has not been ingested"
        )

    add_ghost_agent_to_round(db, round_id)

    agents = db.query(Agent).filter(Agent.round_id == round_id).order_by(Agent.created_at, Agent.id).all()
    specs = [AgentSpec.from_agent(agent) for agent in agents]

    started = transition(
        db, round_id, RoundStatus.PENDING, RoundStatus.RUNNING,
        started_at=utcnow(),
        progress=0,
        ticks_completed=0,
        total_ticks=0,
        agents_processed=0,
        total_agents=len(specs),
        error_message=None,
    )
    if not started:
        raise StateConflict("Round is no longer pending")

    job = RoundJob(round_id, specs, market_config)
    registry.register(job)
    db.expire_all()

    logger.info(f"Round {round_id} started with {len(specs)} agents")
    return job


def round_status(db: Session, round_obj: Round) -> RoundStatusResponse:
    """Status for polling; live job counters win over the last flushed values."""
    progress = round_obj.progress
    agents_processed = round_obj.agents_processed

    job = registry.get(round_obj.id)
    if job is not None and round_obj.status == RoundStatus.RUNNING:
        live = job.snapshot()
        progress = max(progress, live["progress"])
        agents_processed = max(agents_processed, live["agents_processed"])

    return RoundStatusResponse(
        id=round_obj.id,
        status=round_obj.status,
        progress=progress,
        agents_processed=agents_processed,
        total_agents=round_obj.total_agents,
        error_message=round_obj.error_message,
        started_at=round_obj.started_at,
        completed_at=round_obj.completed_at
    )


def force_stop(db: Session, round_id: uuid.UUID, timeout: Optional[float] = None) -> Round:
    """
    Cooperative stop of a running round. Agents stop at the next tick
    boundary and keep the ticks they ran; the round ends COMPLETED.

    Without a live job in this process (or when it does not drain within
    ``timeout``) the round is marked COMPLETED directly.
    """
    if timeout is None:
        timeout = get_settings().force_stop_timeout_seconds

    round_obj = get_round_or_404(db, round_id)
    if round_obj.status != RoundStatus.RUNNING:
        raise StateConflict(f"Round is not running (current status: {round_obj.status.value})")

    job = registry.get(round_id)
    if job is not None:
        logger.info(f"Force stopping round {round_id}")
        job.cancel_event.set()
        if not job.done_event.wait(timeout):
            logger.warning(f"Round {round_id} did not stop within {timeout}s, completing it anyway")
            job.abandoned = True

    db.expire_all()
    values = {"completed_at": utcnow()}
    if job is not None:
        # Keep what pollers already saw from the live job
        round_obj = get_round_or_404(db, round_id)
        live = job.snapshot()
        values["progress"] = max(round_obj.progress or 0, live["progress"])
        values["ticks_completed"] = max(round_obj.ticks_completed or 0, live["ticks_completed"])
        values["agents_processed"] = max(round_obj.agents_processed or 0, live["agents_processed"])

    if transition(db, round_id, RoundStatus.RUNNING, RoundStatus.COMPLETED, **values):
        leaderboard_cache.invalidate_round(round_id)

    db.expire_all()
    return get_round_or_404(db, round_id)


def delete_round(db: Session, round_id: uuid.UUID):
    round_obj = get_round_or_404(db, round_id)

    if round_obj.status == RoundStatus.RUNNING:
        raise StateConflict("Cannot delete a running round")

    db.delete(round_obj)
    db.commit()
    leaderboard_cache.invalidate_round(round_id)
    logger.info(f"Round {round_id} deleted")


# =============================================================================
# Background job
# =============================================================================

@dataclass
class AgentOutcome:
    agent_id: uuid.UUID
    results: Optional[Dict[str, Any]]  # None when the agent never ran a tick
    error: Optional[str] = None


def _simulate_agent(spec: AgentSpec, series: PriceSeries, job: RoundJob) -> AgentOutcome:
    """Worker body. Never raises: failures come back as an outcome."""
    runner = None
    try:
        runner = AgentRunner(spec, series, job.market_config)
        runner.run(cancel_event=job.cancel_event, on_tick=job.add_tick)
        if runner.ticks_processed == 0:
            return AgentOutcome(spec.agent_id, None)
        return AgentOutcome(spec.agent_id, runner.get_results())
    except Exception as e:
        logger.exception(f"Agent {spec.agent_id} failed")
        reason = f"Simulation error: {e}"
        if runner is not None:
            results = runner.get_failed_results(reason)
        else:
            results = failed_results(job.market_config.initial_equity, reason)
        return AgentOutcome(spec.agent_id, results, error=str(e))
    finally:
        ticks_run = runner.ticks_processed if runner is not None else 0
        remaining = 0 if job.cancel_event.is_set() else series.num_ticks - ticks_run
        job.agent_finished(remaining)


def _flush_progress(db: Session, job: RoundJob):
    live = job.snapshot()
    db.execute(
        update(Round)
        .where(Round.id == job.round_id, Round.status == RoundStatus.RUNNING)
        .values(**live)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def _store_market(db: Session, round_obj: Round, series: PriceSeries):
    round_obj.price_data = series.price_chart()
    round_obj.benchmark_returns = series.benchmark_chart()
    round_obj.timestamps = list(series.timestamps) if series.timestamps is not None else None
    round_obj.total_ticks = series.num_ticks
    db.commit()


def _simulate_round(db: Session, job: RoundJob):
    settings = get_settings()
    round_obj = get_round_or_404(db, job.round_id)

    series = generate_market(round_obj.market_seed, job.market_config, db)
    _store_market(db, round_obj, series)
    job.total_ticks = series.num_ticks

    logger.info(
        f"Running round {job.round_id}: {series.num_ticks} ticks, {job.total_agents} agents"
    )

    errors: List[str] = []
    max_workers = max(1, min(settings.simulation_max_workers, job.total_agents))

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="arena-agent") as executor:
        pending = {executor.submit(_simulate_agent, spec, series, job) for spec in job.specs}

        while pending:
            done, pending = wait(pending, timeout=settings.progress_flush_seconds, return_when=FIRST_COMPLETED)

            for future in done:
                outcome = future.result()
                if outcome.error is not None:
                    errors.append(outcome.error)
                if outcome.results is not None and not job.abandoned:
                    save_agent_result(db, outcome.agent_id, outcome.results)

            if not job.abandoned:
                _flush_progress(db, job)

    if job.abandoned:
        return

    if errors and len(errors) == job.total_agents:
        raise SimulationFailure(f"All agents failed: {errors[0]}")

    values = {"completed_at": utcnow(), "agents_processed": job.agents_processed}
    if not job.cancel_event.is_set():
        values["progress"] = 100
        values["ticks_completed"] = job.total_ticks * job.total_agents

    if transition(db, job.round_id, RoundStatus.RUNNING, RoundStatus.COMPLETED, **values):
        logger.info(f"Round {job.round_id} completed ({len(errors)} agent failures)")
    else:
        logger.warning(f"Round {job.round_id} was no longer running when its job finished")


def _fail_round(db: Session, round_id: uuid.UUID, message: str):
    if transition(
        db, round_id, RoundStatus.RUNNING, RoundStatus.FAILED,
        error_message=message[:ERROR_MESSAGE_MAX_LENGTH],
        completed_at=utcnow(),
    ):
        logger.error(f"Round {round_id} failed: {message}")


def run_round_job(job: RoundJob, session_factory=SessionLocal):
    """
    Background task body for a started round.

    Creates its own database session; the request session is closed by the
    time this runs.
    """
    db = session_factory()
    try:
        _simulate_round(db, job)
    except Exception as e:
        logger.exception(f"Simulation failed for round {job.round_id}")
        db.rollback()
        _fail_round(db, job.round_id, str(e) or e.__class__.__name__)
    finally:
        leaderboard_cache.invalidate_round(job.round_id)
        registry.remove(job.round_id)
        job.done_event.set()
        db.close()
