from datetime import datetime
from uuid import UUID
from typing import Optional
from pydantic import BaseModel


class TradeResponse(BaseModel):
    """
    A single ledger event.

    Strategies are LONG-ONLY, so the action is OPEN_LONG or CLOSE_LONG.
    """
    id: UUID
    agent_id: UUID
    tick: int
    timestamp: datetime | None  # None for synthetic data
    action: str
    price: float  # Market price
    executed_price: float  # Price after slippage
    size: float
    cost: float
    pnl: float  # Realized P&L (only non-zero for CLOSE trades)
    equity_after: float
    reason: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class CompletedTradeResponse(BaseModel):
    """An OPEN_LONG paired with the CLOSE_LONG that ended it."""
    trade_number: int

    # Entry (OPEN_LONG)
    entry_tick: int
    entry_timestamp: datetime | None
    entry_price: float
    entry_executed_price: float
    entry_reason: str | None

    # Exit (CLOSE_LONG)
    exit_tick: int
    exit_timestamp: datetime | None
    exit_price: float
    exit_executed_price: float
    exit_reason: str | None

    size: float
    total_cost: float  # Entry + exit fees

    pnl: float
    return_pct: float  # (exit - entry) / entry * 100 on executed prices
    duration_ticks: int

    is_winner: bool


class OpenPositionResponse(BaseModel):
    entry_tick: int
    entry_timestamp: datetime | None
    entry_price: float
    entry_executed_price: float
    entry_reason: str | None
    size: float
    entry_cost: float


class TradeListResponse(BaseModel):
    trades: list[TradeResponse]
    total_trades: int
    total_pnl: float
    winning_trades: int
    losing_trades: int
    win_rate: float  # Percentage


class CompletedTradesResponse(BaseModel):
    completed_trades: list[CompletedTradeResponse]

    has_open_position: bool
    open_position: Optional[OpenPositionResponse] = None

    # Summary statistics
    total_completed_trades: int
    total_pnl: float
    winning_trades: int
    losing_trades: int
    win_rate: float
    avg_return_pct: float
    avg_duration_ticks: float
    best_trade_pnl: float
    worst_trade_pnl: float
