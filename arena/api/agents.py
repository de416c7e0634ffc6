import uuid
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from arena.database import get_db
from arena.engine.orchestrator import get_round_or_404
from arena.errors import NotFound, StateConflict
from arena.models.user import User
from arena.models.round import RoundStatus
from arena.models.agent import Agent
from arena.schemas.agent import AgentCreate, AgentResponse, AgentResultResponse
from arena.utils.auth import get_current_user

router = APIRouter()
logger = logging.getLogger(__name__)


def _agent_response(agent: Agent) -> AgentResponse:
    result = None
    if agent.result:
        result = AgentResultResponse.model_validate(agent.result)

    return AgentResponse(
        id=agent.id,
        user_id=agent.user_id,
        round_id=agent.round_id,
        strategy_type=agent.strategy_type,
        config=agent.config,
        created_at=agent.created_at,
        result=result,
        user_nickname=agent.user.nickname if agent.user else None,
        user_color=agent.user.color if agent.user else None
    )


def _get_agent(db: Session, round_id: uuid.UUID, agent_id: uuid.UUID) -> Agent:
    agent = db.query(Agent).filter(
        Agent.id == agent_id,
        Agent.round_id == round_id
    ).first()

    if not agent:
        raise NotFound("Agent not found")
    return agent


def _require_pending(db: Session, round_id: uuid.UUID, action: str):
    round_obj = get_round_or_404(db, round_id)
    if round_obj.status != RoundStatus.PENDING:
        raise StateConflict(f"Cannot {action} agents after round has started")


@router.post("/{round_id}/agents", response_model=AgentResponse)
def create_or_update_agent(
    round_id: uuid.UUID,
    data: AgentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create or update the caller's agent for a round (one per user per round)."""
    _require_pending(db, round_id, "modify")

    agent = db.query(Agent).filter(
        Agent.user_id == current_user.id,
        Agent.round_id == round_id
    ).first()

    if agent:
        agent.strategy_type = data.strategy_type
        agent.config = data.config.model_dump()
    else:
        agent = Agent(
            id=uuid.uuid4(),
            user_id=current_user.id,
            round_id=round_id,
            strategy_type=data.strategy_type,
            config=data.config.model_dump()
        )
        db.add(agent)

    db.commit()
    db.refresh(agent)

    logger.info(f"User {current_user.nickname} saved a {agent.strategy_type.value} agent for round {round_id}")
    return _agent_response(agent)


@router.get("/{round_id}/agents/me", response_model=AgentResponse)
def get_my_agent(
    round_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get the current user's agent in a round."""
    agent = db.query(Agent).filter(
        Agent.user_id == current_user.id,
        Agent.round_id == round_id
    ).first()

    if not agent:
        raise NotFound("You don't have an agent in this round")

    return _agent_response(agent)


@router.get("/{round_id}/agents", response_model=list[AgentResponse])
def list_agents_in_round(
    round_id: uuid.UUID,
    db: Session = Depends(get_db)
):
    """List all agents in a round."""
    round_obj = get_round_or_404(db, round_id)
    return [_agent_response(agent) for agent in round_obj.agents]


@router.get("/{round_id}/agents/{agent_id}", response_model=AgentResponse)
def get_agent(
    round_id: uuid.UUID,
    agent_id: uuid.UUID,
    db: Session = Depends(get_db)
):
    """Get a specific agent's details."""
    return _agent_response(_get_agent(db, round_id, agent_id))


@router.get("/{round_id}/agents/{agent_id}/results", response_model=AgentResultResponse)
def get_agent_results(
    round_id: uuid.UUID,
    agent_id: uuid.UUID,
    db: Session = Depends(get_db)
):
    """Get detailed results for an agent."""
    agent = _get_agent(db, round_id, agent_id)

    if not agent.result:
        raise NotFound("Results not available yet")

    return AgentResultResponse.model_validate(agent.result)


@router.delete("/{round_id}/agents/me")
def delete_my_agent(
    round_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete the current user's agent from a round."""
    _require_pending(db, round_id, "delete")

    agent = db.query(Agent).filter(
        Agent.user_id == current_user.id,
        Agent.round_id == round_id
    ).first()

    if not agent:
        raise NotFound("You don't have an agent in this round")

    db.delete(agent)
    db.commit()

    return {"message": "Agent deleted successfully"}
