from arena.models.user import User
from arena.models.round import Round, RoundStatus
from arena.models.agent import Agent, StrategyType
from arena.models.agent_result import AgentResult
from arena.models.market_data import MarketDataset, MarketData
from arena.models.trade import Trade

__all__ = [
    "User",
    "Round",
    "RoundStatus",
    "Agent",
    "StrategyType",
    "AgentResult",
    "MarketDataset",
    "MarketData",
    "Trade",
]
