import uuid
from enum import Enum as PyEnum
from sqlalchemy import Column, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from arena.database import Base, GUID, JSONType, utcnow


class StrategyType(str, PyEnum):
    MEAN_REVERSION = "MEAN_REVERSION"
    TREND_FOLLOWING = "TREND_FOLLOWING"
    MOMENTUM = "MOMENTUM"
    GHOST = "GHOST"  # Benchmark agent


class Agent(Base):
    __tablename__ = "agents"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    round_id = Column(GUID, ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False)
    strategy_type = Column(Enum(StrategyType), nullable=False)
    config = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    user = relationship("User", back_populates="agents")
    round = relationship("Round", back_populates="agents")
    result = relationship("AgentResult", back_populates="agent", uselist=False, cascade="all, delete-orphan")
    trades = relationship("Trade", back_populates="agent", cascade="all, delete-orphan", passive_deletes=True)

    # One agent per user per round
    __table_args__ = (
        UniqueConstraint('user_id', 'round_id', name='unique_user_round'),
    )

    @property
    def is_ghost(self) -> bool:
        return self.strategy_type == StrategyType.GHOST

    def __repr__(self):
        return f"<Agent {self.strategy_type} by user {self.user_id}>"
