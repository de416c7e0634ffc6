import uuid
from sqlalchemy.orm import Session
from arena.models.user import User, GHOST_EXTERNAL_ID
from arena.models.agent import Agent, StrategyType
from arena.schemas.agent import AgentConfig


def ghost_config() -> dict:
    """
    Stored configuration of a Ghost agent.

    Buy-and-hold takes no parameters and overrides the risk limits, so this
    is just the default AgentConfig, kept for display.
    """
    return AgentConfig().model_dump()


def get_or_create_ghost_user(db: Session) -> User:
    """Get or create the Ghost benchmark user."""
    ghost_user = db.query(User).filter(User.external_id == GHOST_EXTERNAL_ID).first()

    if not ghost_user:
        ghost_user = User(
            id=uuid.uuid4(),
            external_id=GHOST_EXTERNAL_ID,  # Special system ID
            email=None,
            nickname="Ghost",
            color="#6B7280",  # Gray
            icon="ghost",
            is_admin=False
        )
        db.add(ghost_user)
        db.commit()
        db.refresh(ghost_user)

    return ghost_user


def add_ghost_agent_to_round(db: Session, round_id: uuid.UUID) -> Agent:
    """
    Add the Ghost benchmark agent to a round, once.
    """
    ghost_user = get_or_create_ghost_user(db)

    # Check if ghost agent already exists
    existing = db.query(Agent).filter(
        Agent.user_id == ghost_user.id,
        Agent.round_id == round_id
    ).first()

    if existing:
        return existing

    ghost_agent = Agent(
        id=uuid.uuid4(),
        user_id=ghost_user.id,
        round_id=round_id,
        strategy_type=StrategyType.GHOST,
        config=ghost_config()
    )

    db.add(ghost_agent)
    db.commit()
    db.refresh(ghost_agent)

    return ghost_agent
