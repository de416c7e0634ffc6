from uuid import UUID
from typing import Optional
from pydantic import BaseModel
from arena.models.agent import StrategyType


class LeaderboardEntry(BaseModel):
    rank: int
    agent_id: UUID
    user_id: UUID
    nickname: str
    color: str
    icon: str
    strategy_type: StrategyType

    # Metrics
    final_equity: float
    total_return: float
    sharpe_ratio: Optional[float]
    max_drawdown: float
    calmar_ratio: Optional[float]
    win_rate: Optional[float]
    total_trades: int
    survival_time: int

    # CAPM metrics (relative to the round's benchmark)
    alpha: Optional[float] = None
    beta: Optional[float] = None

    # For highlighting
    is_ghost: bool = False


class LeaderboardResponse(BaseModel):
    round_id: UUID
    round_name: str
    entries: list[LeaderboardEntry]
    total_participants: int

    # Summary stats
    best_sharpe: Optional[float] = None
    best_return: Optional[float] = None
    best_alpha: Optional[float] = None
    lowest_drawdown: Optional[float] = None
    average_survival: Optional[float] = None


class UserRankingResponse(BaseModel):
    rank: int
    total_participants: int
    final_equity: float
    total_return: float
    sharpe_ratio: Optional[float]
    max_drawdown: float
    percentile: float
    alpha: Optional[float] = None
    beta: Optional[float] = None


class GlobalLeaderboardEntry(BaseModel):
    rank: int
    user_id: UUID
    nickname: str
    color: str
    icon: str

    # Aggregate statistics
    total_rounds: int
    avg_sharpe_ratio: Optional[float]
    best_sharpe_ratio: Optional[float]
    avg_total_return: float
    best_total_return: float
    avg_alpha: Optional[float]
    best_alpha: Optional[float]

    # Finish statistics (ranked by Sharpe within each round)
    first_place_count: int
    top_3_count: int
    top_10_count: int
    win_rate: float  # Percentage of top 3 finishes

    performance_score: float


class GlobalLeaderboardResponse(BaseModel):
    entries: list[GlobalLeaderboardEntry]
    total_users: int
    total_rounds_analyzed: int

    # Summary stats
    highest_avg_sharpe: Optional[float] = None
    highest_avg_return: Optional[float] = None
    highest_avg_alpha: Optional[float] = None
    most_rounds_participated: int = 0


class GlobalUserRankingResponse(BaseModel):
    rank: int
    total_users: int
    total_rounds: int
    avg_sharpe_ratio: Optional[float]
    avg_total_return: float
    avg_alpha: Optional[float]
    win_rate: float
    first_place_count: int
    top_3_count: int
    top_10_count: int
    performance_score: float
    percentile: float
