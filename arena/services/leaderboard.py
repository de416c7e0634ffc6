"""
Leaderboard aggregation.

Per-round rankings sort a completed round's agents by one metric. The
global leaderboard aggregates every user's non-ghost results over all
completed rounds into a weighted performance score:

    score = 0.4 * sharpe_score + 0.3 * win_rate + 0.2 * alpha_score + 0.1 * participation_score

    sharpe_score        = clamp(avg_sharpe * 20, 0, 100)   (Sharpe of 5 = 100 points)
    win_rate            = % of rounds finished in the top 3 by Sharpe
    alpha_score         = clamp(avg_alpha * 10, 0, 100)    (alpha of 10% = 100 points)
    participation_score = min(100, total_rounds * 10)      (10 rounds = 100 points)

Rankings are deterministic: None values sort last and ties fall back to
creation order, then id. Computed leaderboards are cached until the round
completes again or is deleted.
"""

import uuid
import threading
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Hashable, List, Optional
from sqlalchemy.orm import Session

from arena.errors import InvalidConfig, NotFound, StateConflict
from arena.models.agent import Agent, StrategyType
from arena.models.agent_result import AgentResult
from arena.models.round import Round, RoundStatus
from arena.models.user import User
from arena.schemas.leaderboard import (
    LeaderboardEntry,
    LeaderboardResponse,
    UserRankingResponse,
    GlobalLeaderboardEntry,
    GlobalLeaderboardResponse,
    GlobalUserRankingResponse,
)

ROUND_SORT_KEYS = [
    "sharpe_ratio", "total_return", "max_drawdown", "calmar_ratio",
    "win_rate", "survival_time", "alpha", "beta",
]
GLOBAL_SORT_KEYS = [
    "performance_score", "avg_sharpe_ratio", "avg_total_return",
    "total_rounds", "win_rate", "avg_alpha",
]

SHARPE_WEIGHT = 0.40
WIN_RATE_WEIGHT = 0.30
ALPHA_WEIGHT = 0.20
PARTICIPATION_WEIGHT = 0.10

SHARPE_SCALE = 20
ALPHA_SCALE = 10
PARTICIPATION_SCALE = 10
SCORE_CAP = 100.0

_EPOCH = datetime.min


class LeaderboardCache:
    """Thread-safe cache of computed leaderboards, keyed per round plus a global slot."""

    GLOBAL = "global"

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[Hashable, Any] = {}

    def get(self, key: Hashable):
        with self._lock:
            return self._entries.get(key)

    def set(self, key: Hashable, value: Any):
        with self._lock:
            self._entries[key] = value

    def invalidate_round(self, round_id: uuid.UUID):
        """Drop a round's cached rankings; the global slot depends on every round."""
        with self._lock:
            for key in [k for k in self._entries if isinstance(k, tuple) and k[0] == round_id]:
                del self._entries[key]
            self._entries.pop(self.GLOBAL, None)

    def clear(self):
        with self._lock:
            self._entries.clear()


leaderboard_cache = LeaderboardCache()


# =============================================================================
# Pure ranking functions
# =============================================================================

def sort_entries(entries: List[Dict[str, Any]], sort_by: str, descending: bool) -> List[Dict[str, Any]]:
    """
    Order entries by ``sort_by``. None values go last in both directions;
    ties are broken by ``created_at``, then ``id``.
    """
    def key(entry):
        value = entry.get(sort_by)
        ties = (entry.get('created_at') or _EPOCH, str(entry.get('id')))
        if value is None:
            return (1, 0) + ties
        return (0, -value if descending else value) + ties

    return sorted(entries, key=key)


def round_sort_direction(sort_by: str, ascending: bool) -> bool:
    """
    True when ``sort_by`` should be ranked descending. Drawdown is lower-is-better,
    so ``ascending`` flips it the other way.
    """
    if sort_by == "max_drawdown":
        return ascending
    return not ascending


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def performance_score(
    avg_sharpe: Optional[float],
    win_rate: float,
    avg_alpha: Optional[float],
    total_rounds: int
) -> float:
    sharpe_score = clamp((avg_sharpe or 0.0) * SHARPE_SCALE, 0.0, SCORE_CAP)
    alpha_score = clamp((avg_alpha or 0.0) * ALPHA_SCALE, 0.0, SCORE_CAP)
    participation_score = min(SCORE_CAP, total_rounds * PARTICIPATION_SCALE)

    return (
        sharpe_score * SHARPE_WEIGHT +
        win_rate * WIN_RATE_WEIGHT +
        alpha_score * ALPHA_WEIGHT +
        participation_score * PARTICIPATION_WEIGHT
    )


def _mean(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def aggregate_user(results: List[Dict[str, Any]], sharpe_ranks: Dict[uuid.UUID, int]) -> Dict[str, Any]:
    """Aggregate one user's per-round results (dicts with agent_id and metrics)."""
    sharpe_ratios = [r['sharpe_ratio'] for r in results if r['sharpe_ratio'] is not None]
    returns = [r['total_return'] for r in results]
    alphas = [r['alpha'] for r in results if r['alpha'] is not None]

    ranks = [sharpe_ranks.get(r['agent_id']) for r in results]
    first_place = sum(1 for rank in ranks if rank == 1)
    top_3 = sum(1 for rank in ranks if rank is not None and rank <= 3)
    top_10 = sum(1 for rank in ranks if rank is not None and rank <= 10)

    total_rounds = len(results)
    avg_sharpe = _mean(sharpe_ratios)
    avg_alpha = _mean(alphas)
    win_rate = (top_3 / total_rounds * 100) if total_rounds > 0 else 0.0

    return {
        'total_rounds': total_rounds,
        'avg_sharpe_ratio': avg_sharpe,
        'best_sharpe_ratio': max(sharpe_ratios) if sharpe_ratios else None,
        'avg_total_return': _mean(returns) or 0.0,
        'best_total_return': max(returns) if returns else 0.0,
        'avg_alpha': avg_alpha,
        'best_alpha': max(alphas) if alphas else None,
        'first_place_count': first_place,
        'top_3_count': top_3,
        'top_10_count': top_10,
        'win_rate': win_rate,
        'performance_score': performance_score(avg_sharpe, win_rate, avg_alpha, total_rounds),
    }


# =============================================================================
# Per-round leaderboard
# =============================================================================

def _completed_round(db: Session, round_id: uuid.UUID) -> Round:
    round_obj = db.query(Round).filter(Round.id == round_id).first()
    if not round_obj:
        raise NotFound("Round not found")
    if round_obj.status != RoundStatus.COMPLETED:
        raise StateConflict("Leaderboard only available for completed rounds")
    return round_obj


def _round_entries(db: Session, round_id: uuid.UUID) -> List[Dict[str, Any]]:
    rows = db.query(Agent, AgentResult, User).join(
        AgentResult, Agent.id == AgentResult.agent_id
    ).join(
        User, Agent.user_id == User.id
    ).filter(Agent.round_id == round_id).all()

    return [
        {
            'agent_id': agent.id,
            'user_id': agent.user_id,
            'nickname': user.nickname,
            'color': user.color,
            'icon': user.icon,
            'strategy_type': agent.strategy_type,
            'final_equity': result.final_equity,
            'total_return': result.total_return,
            'sharpe_ratio': result.sharpe_ratio,
            'max_drawdown': result.max_drawdown,
            'calmar_ratio': result.calmar_ratio,
            'win_rate': result.win_rate,
            'total_trades': result.total_trades,
            'survival_time': result.survival_time,
            # CAPM metrics
            'alpha': result.alpha,
            'beta': result.beta,
            'is_ghost': agent.strategy_type == StrategyType.GHOST,
            'created_at': agent.created_at,
            'id': agent.id,
        }
        for agent, result, user in rows
    ]


def round_leaderboard(
    db: Session,
    round_id: uuid.UUID,
    sort_by: str = "sharpe_ratio",
    ascending: bool = False
) -> LeaderboardResponse:
    if sort_by not in ROUND_SORT_KEYS:
        raise InvalidConfig(f"Unknown sort key: {sort_by}")

    round_obj = _completed_round(db, round_id)

    cache_key = (round_id, sort_by, ascending)
    cached = leaderboard_cache.get(cache_key)
    if cached is not None:
        return cached

    entries = sort_entries(_round_entries(db, round_id), sort_by, round_sort_direction(sort_by, ascending))
    leaderboard_entries = [
        LeaderboardEntry(rank=rank, **entry)
        for rank, entry in enumerate(entries, 1)
    ]

    # Calculate summary stats
    sharpe_values = [e.sharpe_ratio for e in leaderboard_entries if e.sharpe_ratio is not None]
    return_values = [e.total_return for e in leaderboard_entries]
    alpha_values = [e.alpha for e in leaderboard_entries if e.alpha is not None]
    dd_values = [e.max_drawdown for e in leaderboard_entries]
    survival_values = [e.survival_time for e in leaderboard_entries]

    response = LeaderboardResponse(
        round_id=round_id,
        round_name=round_obj.name,
        entries=leaderboard_entries,
        total_participants=len(leaderboard_entries),
        best_sharpe=max(sharpe_values) if sharpe_values else None,
        best_return=max(return_values) if return_values else None,
        best_alpha=max(alpha_values) if alpha_values else None,
        lowest_drawdown=min(dd_values) if dd_values else None,
        average_survival=_mean(survival_values)
    )
    leaderboard_cache.set(cache_key, response)
    return response


def user_round_ranking(db: Session, round_id: uuid.UUID, user_id: uuid.UUID) -> UserRankingResponse:
    """A user's Sharpe rank within a completed round."""
    board = round_leaderboard(db, round_id, "sharpe_ratio", False)

    entry = next((e for e in board.entries if e.user_id == user_id), None)
    if entry is None:
        raise NotFound("No results found for this user in this round")

    total = board.total_participants
    return UserRankingResponse(
        rank=entry.rank,
        total_participants=total,
        final_equity=entry.final_equity,
        total_return=entry.total_return,
        sharpe_ratio=entry.sharpe_ratio,
        max_drawdown=entry.max_drawdown,
        percentile=(1 - (entry.rank - 1) / total) * 100,
        alpha=entry.alpha,
        beta=entry.beta,
    )


# =============================================================================
# Global leaderboard
# =============================================================================

def _global_standings(db: Session) -> Dict[str, Any]:
    """All users ranked by performance score, plus the inputs for other sorts."""
    cached = leaderboard_cache.get(LeaderboardCache.GLOBAL)
    if cached is not None:
        return cached

    total_rounds_analyzed = db.query(Round).filter(Round.status == RoundStatus.COMPLETED).count()

    rows = db.query(AgentResult, Agent, User).join(
        Agent, AgentResult.agent_id == Agent.id
    ).join(
        Round, Agent.round_id == Round.id
    ).join(
        User, Agent.user_id == User.id
    ).filter(
        Round.status == RoundStatus.COMPLETED,
        Agent.strategy_type != StrategyType.GHOST  # Exclude ghost agents
    ).all()

    per_round: Dict[uuid.UUID, List[Dict[str, Any]]] = defaultdict(list)
    per_user: Dict[uuid.UUID, List[Dict[str, Any]]] = defaultdict(list)
    users: Dict[uuid.UUID, User] = {}

    for result, agent, user in rows:
        record = {
            'agent_id': agent.id,
            'id': agent.id,
            'created_at': agent.created_at,
            'sharpe_ratio': result.sharpe_ratio,
            'total_return': result.total_return,
            'alpha': result.alpha,
        }
        per_round[agent.round_id].append(record)
        per_user[user.id].append(record)
        users[user.id] = user

    # Finish positions by Sharpe within each round
    sharpe_ranks: Dict[uuid.UUID, int] = {}
    for records in per_round.values():
        for rank, record in enumerate(sort_entries(records, 'sharpe_ratio', descending=True), 1):
            sharpe_ranks[record['agent_id']] = rank

    entries = []
    for user_id, records in per_user.items():
        user = users[user_id]
        entries.append({
            'user_id': user.id,
            'nickname': user.nickname,
            'color': user.color,
            'icon': user.icon,
            'created_at': user.created_at,
            'id': user.id,
            **aggregate_user(records, sharpe_ranks),
        })

    standings = {'entries': entries, 'total_rounds_analyzed': total_rounds_analyzed}
    leaderboard_cache.set(LeaderboardCache.GLOBAL, standings)
    return standings


def global_leaderboard(
    db: Session,
    sort_by: str = "performance_score",
    limit: int = 100,
    offset: int = 0
) -> GlobalLeaderboardResponse:
    if sort_by not in GLOBAL_SORT_KEYS:
        raise InvalidConfig(f"Unknown sort key: {sort_by}")

    standings = _global_standings(db)
    ranked = sort_entries(standings['entries'], sort_by, descending=True)
    ranked_entries = [
        GlobalLeaderboardEntry(rank=rank, **entry)
        for rank, entry in enumerate(ranked, 1)
    ]

    sharpe_values = [e.avg_sharpe_ratio for e in ranked_entries if e.avg_sharpe_ratio is not None]
    return_values = [e.avg_total_return for e in ranked_entries]
    alpha_values = [e.avg_alpha for e in ranked_entries if e.avg_alpha is not None]
    participation_values = [e.total_rounds for e in ranked_entries]

    return GlobalLeaderboardResponse(
        entries=ranked_entries[offset:offset + limit],
        total_users=len(ranked_entries),
        total_rounds_analyzed=standings['total_rounds_analyzed'],
        highest_avg_sharpe=max(sharpe_values) if sharpe_values else None,
        highest_avg_return=max(return_values) if return_values else None,
        highest_avg_alpha=max(alpha_values) if alpha_values else None,
        most_rounds_participated=max(participation_values) if participation_values else 0
    )


def user_global_ranking(db: Session, user_id: uuid.UUID) -> GlobalUserRankingResponse:
    """A user's rank by performance score across all completed rounds."""
    if not db.query(User.id).filter(User.id == user_id).first():
        raise NotFound("User not found")

    ranked = sort_entries(_global_standings(db)['entries'], 'performance_score', descending=True)

    for rank, entry in enumerate(ranked, 1):
        if entry['user_id'] == user_id:
            return GlobalUserRankingResponse(
                rank=rank,
                total_users=len(ranked),
                total_rounds=entry['total_rounds'],
                avg_sharpe_ratio=entry['avg_sharpe_ratio'],
                avg_total_return=entry['avg_total_return'],
                avg_alpha=entry['avg_alpha'],
                win_rate=entry['win_rate'],
                first_place_count=entry['first_place_count'],
                top_3_count=entry['top_3_count'],
                top_10_count=entry['top_10_count'],
                performance_score=entry['performance_score'],
                percentile=(1 - (rank - 1) / len(ranked)) * 100
            )

    raise NotFound("No completed rounds found for this user")
