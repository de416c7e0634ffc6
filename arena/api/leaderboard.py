import uuid
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from arena.database import get_db
from arena.schemas.leaderboard import (
    LeaderboardResponse,
    UserRankingResponse,
    GlobalLeaderboardResponse,
    GlobalUserRankingResponse,
)
from arena.services import leaderboard as service

router = APIRouter()
global_router = APIRouter()


@router.get("/{round_id}/leaderboard", response_model=LeaderboardResponse)
def get_leaderboard(
    round_id: uuid.UUID,
    sort_by: str = Query(
        default="sharpe_ratio",
        description="Metric to sort by"
    ),
    ascending: bool = Query(
        default=False,
        description="Reverse the default order (max_drawdown defaults to lowest first)"
    ),
    db: Session = Depends(get_db)
):
    """
    Get the leaderboard for a completed round.

    Supports sorting by multiple metrics:
    - sharpe_ratio (default, higher is better)
    - total_return (higher is better)
    - max_drawdown (lower is better)
    - calmar_ratio (higher is better)
    - win_rate (higher is better)
    - survival_time (higher is better)
    - alpha, beta
    """
    return service.round_leaderboard(db, round_id, sort_by, ascending)


@router.get("/{round_id}/leaderboard/me", response_model=UserRankingResponse)
def get_my_ranking(
    round_id: uuid.UUID,
    user_id: uuid.UUID = Query(..., description="User ID to get ranking for"),
    db: Session = Depends(get_db)
):
    """Get a user's Sharpe ranking in a round."""
    return service.user_round_ranking(db, round_id, user_id)


@global_router.get("/global", response_model=GlobalLeaderboardResponse)
def get_global_leaderboard(
    sort_by: str = Query(
        default="performance_score",
        description="Metric to sort by"
    ),
    limit: int = Query(default=100, ge=1, le=500, description="Number of users to return"),
    offset: int = Query(default=0, ge=0, description="Number of users to skip"),
    db: Session = Depends(get_db)
):
    """
    Get the global leaderboard aggregating user performance across all completed rounds.

    Performance score is calculated as a weighted combination of:
    - Average Sharpe ratio (40%)
    - Top-3 finish rate (30%)
    - Average alpha (20%)
    - Total rounds participated (10%)
    """
    return service.global_leaderboard(db, sort_by, limit, offset)


@global_router.get("/global/me", response_model=GlobalUserRankingResponse)
def get_my_global_ranking(
    user_id: uuid.UUID = Query(..., description="User ID to get ranking for"),
    db: Session = Depends(get_db)
):
    """Get a user's global ranking across all completed rounds."""
    return service.user_global_ranking(db, user_id)
