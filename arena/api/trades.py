from uuid import UUID
from typing import List, Optional, Tuple
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from arena.database import get_db
from arena.errors import NotFound
from arena.models.trade import Trade
from arena.models.agent import Agent
from arena.engine.execution import TradeAction
from arena.schemas.trade import (
    TradeListResponse,
    CompletedTradeResponse,
    CompletedTradesResponse,
    OpenPositionResponse,
)

router = APIRouter()


def _agent_trades(db: Session, agent_id: UUID) -> List[Trade]:
    agent = db.query(Agent).filter(Agent.id == agent_id).first()
    if not agent:
        raise NotFound("Agent not found")

    return db.query(Trade).filter(
        Trade.agent_id == agent_id
    ).order_by(Trade.tick.asc(), Trade.created_at.asc()).all()


def pair_trades(trades: List[Trade]) -> Tuple[List[CompletedTradeResponse], Optional[OpenPositionResponse]]:
    """
    Pair each OPEN_LONG with the CLOSE_LONG that follows it.

    Trades must be in tick order. A trailing OPEN_LONG without a close is
    returned as the open position.
    """
    completed = []
    open_trade = None

    for trade in trades:
        if trade.action == TradeAction.OPEN_LONG.value:
            open_trade = trade
        elif trade.action == TradeAction.CLOSE_LONG.value and open_trade is not None:
            entry_price = open_trade.executed_price
            exit_price = trade.executed_price
            return_pct = ((exit_price - entry_price) / entry_price) * 100 if entry_price > 0 else 0.0

            completed.append(CompletedTradeResponse(
                trade_number=len(completed) + 1,
                entry_tick=open_trade.tick,
                entry_timestamp=open_trade.timestamp,
                entry_price=open_trade.price,
                entry_executed_price=entry_price,
                entry_reason=open_trade.reason,
                exit_tick=trade.tick,
                exit_timestamp=trade.timestamp,
                exit_price=trade.price,
                exit_executed_price=exit_price,
                exit_reason=trade.reason,
                size=trade.size,
                total_cost=open_trade.cost + trade.cost,
                pnl=trade.pnl,
                return_pct=return_pct,
                duration_ticks=trade.tick - open_trade.tick,
                is_winner=trade.pnl > 0
            ))
            open_trade = None

    open_position = None
    if open_trade is not None:
        open_position = OpenPositionResponse(
            entry_tick=open_trade.tick,
            entry_timestamp=open_trade.timestamp,
            entry_price=open_trade.price,
            entry_executed_price=open_trade.executed_price,
            entry_reason=open_trade.reason,
            size=open_trade.size,
            entry_cost=open_trade.cost
        )

    return completed, open_position


@router.get("/agent/{agent_id}", response_model=TradeListResponse)
def get_agent_trades(
    agent_id: UUID,
    db: Session = Depends(get_db)
):
    """
    Get all trades for a specific agent (raw ledger).

    Returns trades in chronological order (by tick) along with summary statistics.
    Strategies are long-only, so actions are OPEN_LONG and CLOSE_LONG.

    For paired entry/exit history use `GET /trades/agent/{agent_id}/completed`.
    """
    trades = _agent_trades(db, agent_id)

    total_pnl = sum(trade.pnl for trade in trades)

    # Only closing trades realize P&L
    closing_trades = [t for t in trades if t.action == TradeAction.CLOSE_LONG.value]
    winning_trades = len([t for t in closing_trades if t.pnl > 0])
    losing_trades = len([t for t in closing_trades if t.pnl < 0])
    total_closing = len(closing_trades)

    win_rate = (winning_trades / total_closing * 100) if total_closing > 0 else 0.0

    return TradeListResponse(
        trades=trades,
        total_trades=len(trades),
        total_pnl=total_pnl,
        winning_trades=winning_trades,
        losing_trades=losing_trades,
        win_rate=win_rate
    )


@router.get("/agent/{agent_id}/completed", response_model=CompletedTradesResponse)
def get_agent_completed_trades(
    agent_id: UUID,
    db: Session = Depends(get_db)
):
    """
    Get completed round-trip trades for an agent (entry + exit paired).

    Each completed trade shows when the position was opened and closed,
    how long it was held, the P&L and the return on executed prices.
    A position still open when the simulation ended is reported separately.
    """
    completed_trades, open_position = pair_trades(_agent_trades(db, agent_id))

    total_completed = len(completed_trades)
    winners = [t for t in completed_trades if t.is_winner]

    if total_completed > 0:
        win_rate = len(winners) / total_completed * 100
        avg_return = sum(t.return_pct for t in completed_trades) / total_completed
        avg_duration = sum(t.duration_ticks for t in completed_trades) / total_completed
    else:
        win_rate = avg_return = avg_duration = 0.0

    return CompletedTradesResponse(
        completed_trades=completed_trades,
        has_open_position=open_position is not None,
        open_position=open_position,
        total_completed_trades=total_completed,
        total_pnl=sum(t.pnl for t in completed_trades),
        winning_trades=len(winners),
        losing_trades=total_completed - len(winners),
        win_rate=win_rate,
        avg_return_pct=avg_return,
        avg_duration_ticks=avg_duration,
        best_trade_pnl=max((t.pnl for t in completed_trades), default=0.0),
        worst_trade_pnl=min((t.pnl for t in completed_trades), default=0.0)
    )
