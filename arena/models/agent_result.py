import uuid
from sqlalchemy import Column, Float, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from arena.database import Base, GUID, JSONType, utcnow


class AgentResult(Base):
    """
    Performance results for an agent, written once when its simulation ends.

    Alpha and beta are measured against the round's benchmark series and
    stay NULL for synthetic rounds.
    """
    __tablename__ = "agent_results"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    # unique: at most one result per agent, even if a completion is replayed
    agent_id = Column(GUID, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, unique=True)

    # Performance metrics
    final_equity = Column(Float, nullable=False)
    total_return = Column(Float, nullable=False)  # Percentage
    sharpe_ratio = Column(Float, nullable=True)
    max_drawdown = Column(Float, nullable=False)  # Percentage (positive value)
    calmar_ratio = Column(Float, nullable=True)
    total_trades = Column(Integer, nullable=False, default=0)  # Completed round trips
    win_rate = Column(Float, nullable=True)  # Percentage
    survival_time = Column(Integer, nullable=False)  # Ticks survived

    # CAPM metrics
    alpha = Column(Float, nullable=True)  # Annualized, percent
    beta = Column(Float, nullable=True)
    cumulative_alpha = Column(JSONType, nullable=True)

    # Detailed data
    equity_curve = Column(JSONType, nullable=False, default=list)
    trades = Column(JSONType, nullable=False, default=list)
    kill_reason = Column(String(300), nullable=True)  # Set when a kill switch or an error stopped the agent

    created_at = Column(DateTime, default=utcnow)

    # Relationships
    agent = relationship("Agent", back_populates="result")

    def __repr__(self):
        alpha_str = f"α={self.alpha:.4f}" if self.alpha is not None else "α=N/A"
        beta_str = f"β={self.beta:.2f}" if self.beta is not None else "β=N/A"
        return f"<AgentResult {alpha_str} {beta_str} return={self.total_return:.2f}%>"
