import uuid
import secrets
import logging
from typing import Optional
from fastapi import APIRouter, Depends, status, BackgroundTasks
from sqlalchemy.orm import Session
from sqlalchemy import func
from arena.database import get_db
from arena.engine import orchestrator
from arena.models.user import User
from arena.models.round import Round, RoundStatus
from arena.models.agent import Agent
from arena.schemas.round import (
    RoundCreate, RoundResponse, RoundListResponse, RoundStatusResponse
)
from arena.utils.auth import get_current_admin

router = APIRouter()
logger = logging.getLogger(__name__)

MAX_SEED = 2**31 - 1


def _round_response(round_obj: Round, agent_count: int) -> RoundResponse:
    return RoundResponse(
        id=round_obj.id,
        name=round_obj.name,
        status=round_obj.status,
        market_seed=round_obj.market_seed,
        config=round_obj.config,
        price_data=round_obj.price_data,
        benchmark_returns=round_obj.benchmark_returns,
        started_at=round_obj.started_at,
        completed_at=round_obj.completed_at,
        created_at=round_obj.created_at,
        agent_count=agent_count
    )


@router.post("/", response_model=RoundResponse)
def create_round(
    data: RoundCreate,
    current_user: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Create a new round (admin only). A seed is drawn when none is given."""
    market_seed = data.market_seed if data.market_seed is not None else secrets.randbelow(MAX_SEED + 1)

    round_obj = Round(
        id=uuid.uuid4(),
        name=data.name,
        market_seed=market_seed,
        config=data.config.model_dump(),
        status=RoundStatus.PENDING
    )
    db.add(round_obj)
    db.commit()
    db.refresh(round_obj)

    logger.info(f"Created round {round_obj.id} ({round_obj.name}) with seed {market_seed}")
    return _round_response(round_obj, 0)


@router.get("/", response_model=list[RoundListResponse])
def list_rounds(
    status_filter: Optional[RoundStatus] = None,
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(get_db)
):
    """List all rounds with agent counts."""
    query = db.query(
        Round,
        func.count(Agent.id).label('agent_count')
    ).outerjoin(Agent).group_by(Round.id)

    if status_filter:
        query = query.filter(Round.status == status_filter)

    results = query.order_by(Round.created_at.desc()).offset(skip).limit(limit).all()

    return [
        RoundListResponse(
            id=r.Round.id,
            name=r.Round.name,
            status=r.Round.status,
            market_seed=r.Round.market_seed,
            agent_count=r.agent_count,
            created_at=r.Round.created_at
        )
        for r in results
    ]


@router.get("/{round_id}", response_model=RoundResponse)
def get_round(
    round_id: uuid.UUID,
    db: Session = Depends(get_db)
):
    """Get round details including price data once simulated."""
    round_obj = orchestrator.get_round_or_404(db, round_id)
    agent_count = db.query(Agent).filter(Agent.round_id == round_id).count()
    return _round_response(round_obj, agent_count)


@router.get("/{round_id}/status", response_model=RoundStatusResponse)
def get_round_status(
    round_id: uuid.UUID,
    db: Session = Depends(get_db)
):
    """
    Get round status with progress information (for polling).

    - progress: 0-100 percentage of agent-ticks simulated
    - agents_processed: number of agents that finished
    - total_agents: total agents in the round, Ghost included
    - error_message: set if status is FAILED
    """
    round_obj = orchestrator.get_round_or_404(db, round_id)
    return orchestrator.round_status(db, round_obj)


@router.post("/{round_id}/start", response_model=RoundStatusResponse, status_code=status.HTTP_202_ACCEPTED)
def start_round(
    round_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """
    Start the simulation for a round (admin only).

    Returns immediately with 202 Accepted. The simulation runs in the background.
    Poll GET /rounds/{round_id}/status to monitor progress.
    """
    job = orchestrator.start_round(db, round_id)

    # Queue simulation to run in background
    background_tasks.add_task(orchestrator.run_round_job, job)

    round_obj = orchestrator.get_round_or_404(db, round_id)
    return orchestrator.round_status(db, round_obj)


@router.post("/{round_id}/stop", response_model=RoundStatusResponse)
def force_stop_round(
    round_id: uuid.UUID,
    current_user: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Force stop a running round (admin only). Results simulated so far are kept."""
    round_obj = orchestrator.force_stop(db, round_id)
    return orchestrator.round_status(db, round_obj)


@router.delete("/{round_id}")
def delete_round(
    round_id: uuid.UUID,
    current_user: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Delete a round (admin only). Running rounds cannot be deleted."""
    orchestrator.delete_round(db, round_id)
    return {"message": "Round deleted successfully"}
