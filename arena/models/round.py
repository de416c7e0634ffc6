import uuid
from enum import Enum as PyEnum
from sqlalchemy import Column, String, Integer, DateTime, Enum, Text
from sqlalchemy.orm import relationship
from arena.database import Base, GUID, JSONType, utcnow


class RoundStatus(str, PyEnum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (RoundStatus.COMPLETED, RoundStatus.FAILED)


class Round(Base):
    """
    A trading simulation round.

    Holds the market configuration; the generated price series and the
    benchmark returns are stored once the simulation has produced them.
    """
    __tablename__ = "rounds"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    status = Column(Enum(RoundStatus), default=RoundStatus.PENDING, nullable=False)
    market_seed = Column(Integer, nullable=False)
    config = Column(JSONType, nullable=False, default=dict)

    # Market data (populated by the simulation)
    # Each stores list of {tick, timestamp, value} objects for charting
    price_data = Column(JSONType, nullable=True)
    benchmark_returns = Column(JSONType, nullable=True)  # Benchmark log returns (real data only)
    timestamps = Column(JSONType, nullable=True)  # ISO timestamps per tick (None for synthetic data)

    # Progress tracking for the background job
    progress = Column(Integer, default=0, nullable=False)  # 0-100 percentage
    ticks_completed = Column(Integer, default=0, nullable=False)  # Summed over all agents
    total_ticks = Column(Integer, default=0, nullable=False)  # Ticks in the price series
    agents_processed = Column(Integer, default=0, nullable=False)
    total_agents = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    agents = relationship(
        "Agent", back_populates="round", cascade="all, delete-orphan", order_by="Agent.created_at"
    )

    def __repr__(self):
        return f"<Round {self.name} ({self.status})>"
