import uuid
from sqlalchemy import Column, String, Float, Integer, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from arena.database import Base, GUID, utcnow


class Trade(Base):
    """
    A single ledger event (OPEN_LONG or CLOSE_LONG) for an agent.

    Rows are only ever inserted together with the agent's result and are
    never updated.
    """
    __tablename__ = "trades"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    agent_id = Column(GUID, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False)

    # Trade details
    tick = Column(Integer, nullable=False)  # 0-indexed
    timestamp = Column(DateTime, nullable=True)  # Market timestamp (None for synthetic data)
    action = Column(String(20), nullable=False)  # OPEN_LONG, CLOSE_LONG
    price = Column(Float, nullable=False)  # Market price at execution
    executed_price = Column(Float, nullable=False)  # Price after slippage
    size = Column(Float, nullable=False)
    cost = Column(Float, nullable=False)  # Transaction fees
    pnl = Column(Float, nullable=False, default=0.0)  # Realized P&L (0 for opening trades)
    equity_after = Column(Float, nullable=False)
    reason = Column(String(200), nullable=True)

    created_at = Column(DateTime, default=utcnow)

    agent = relationship("Agent", back_populates="trades", passive_deletes=True)

    __table_args__ = (
        Index('idx_trades_agent_id', 'agent_id'),
        Index('idx_trades_agent_tick', 'agent_id', 'tick'),
    )

    def __repr__(self):
        return f"<Trade {self.action} @ {self.executed_price:.2f} tick={self.tick}>"
