from arena.schemas.round import RoundCreate, RoundResponse, RoundConfig, MarketConfig, RoundStatusResponse
from arena.schemas.agent import AgentCreate, AgentResponse, AgentConfig, RiskParams, SignalStack
from arena.schemas.leaderboard import LeaderboardEntry, LeaderboardResponse
from arena.schemas.trade import TradeResponse, TradeListResponse

__all__ = [
    "RoundCreate", "RoundResponse", "RoundConfig", "MarketConfig", "RoundStatusResponse",
    "AgentCreate", "AgentResponse", "AgentConfig", "RiskParams", "SignalStack",
    "LeaderboardEntry", "LeaderboardResponse",
    "TradeResponse", "TradeListResponse"
]
