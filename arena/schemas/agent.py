from datetime import datetime
from uuid import UUID
from typing import Optional, List, Dict, Any, Type
from pydantic import BaseModel, Field, ValidationError, model_validator
from arena.errors import InvalidConfig
from arena.models.agent import StrategyType
from arena.schemas.round import ChartDataPoint


# =============================================================================
# Strategy parameters: one model per strategy type
# =============================================================================

class MeanReversionParams(BaseModel):
    """
    Bets on price returning to its rolling mean (LONG-ONLY).

    Enters when the z-score drops to -entry_threshold and exits once it
    climbs back above -exit_threshold.
    """
    lookback_window: int = Field(
        default=20, ge=5, le=200,
        description="Window for calculating mean price (z-score baseline)"
    )
    entry_threshold: float = Field(
        default=2.0, ge=0.5, le=5.0,
        description="Z-score threshold to enter position (how far from mean)"
    )
    exit_threshold: float = Field(
        default=0.5, ge=0.0, le=2.0,
        description="Z-score threshold to exit position (return to mean)"
    )

    @model_validator(mode="after")
    def check_thresholds(self):
        if self.exit_threshold >= self.entry_threshold:
            raise ValueError("exit_threshold must be below entry_threshold")
        return self


class TrendFollowingParams(BaseModel):
    """Moving-average crossover entries with an ATR trailing stop (LONG-ONLY)."""
    fast_window: int = Field(
        default=10, ge=3, le=50,
        description="Fast EMA period (shorter = more responsive)"
    )
    slow_window: int = Field(
        default=30, ge=10, le=200,
        description="Slow EMA period (longer = smoother trend)"
    )
    atr_multiplier: float = Field(
        default=2.0, ge=0.5, le=5.0,
        description="Trailing stop distance in ATRs"
    )

    @model_validator(mode="after")
    def check_windows(self):
        if self.fast_window >= self.slow_window:
            raise ValueError("fast_window must be shorter than slow_window")
        return self


class MomentumParams(BaseModel):
    """Buys rebounds out of oversold RSI while momentum is positive (LONG-ONLY)."""
    momentum_window: int = Field(
        default=14, ge=5, le=100,
        description="Lookback period for momentum calculation"
    )
    rsi_window: int = Field(
        default=14, ge=5, le=50,
        description="RSI calculation period"
    )
    rsi_overbought: float = Field(
        default=70.0, ge=50.0, le=95.0,
        description="RSI level that closes the position"
    )
    rsi_oversold: float = Field(
        default=30.0, ge=5.0, le=50.0,
        description="RSI level that arms a long entry"
    )

    @model_validator(mode="after")
    def check_levels(self):
        if self.rsi_oversold >= self.rsi_overbought:
            raise ValueError("rsi_oversold must be below rsi_overbought")
        return self


class GhostParams(BaseModel):
    """The benchmark takes no parameters."""


STRATEGY_PARAMS_MODELS: Dict[StrategyType, Type[BaseModel]] = {
    StrategyType.MEAN_REVERSION: MeanReversionParams,
    StrategyType.TREND_FOLLOWING: TrendFollowingParams,
    StrategyType.MOMENTUM: MomentumParams,
    StrategyType.GHOST: GhostParams,
}


def parse_strategy_params(strategy_type: StrategyType, params: Optional[Dict[str, Any]]) -> BaseModel:
    """
    Validate raw parameters against the model of the given strategy type.

    Fields that belong to other strategies are ignored. Raises InvalidConfig.
    """
    model = STRATEGY_PARAMS_MODELS[StrategyType(strategy_type)]
    try:
        return model.model_validate(params or {})
    except ValidationError as e:
        raise InvalidConfig(f"Invalid {StrategyType(strategy_type).value} parameters: {e}") from e


# =============================================================================
# Signal stack and risk
# =============================================================================

class SignalStack(BaseModel):
    """
    Filters applied to every strategy's entry signals.

    They scale the entry confidence down (or to zero); exits are never filtered.
    """

    # === SMA TREND FILTER ===
    # Block long entries while price is below the SMA
    use_sma_trend_filter: bool = Field(
        default=False,
        description="Block longs when price is below SMA"
    )
    sma_filter_window: int = Field(
        default=50, ge=10, le=200,
        description="SMA period for trend filter (longer = stronger trend)"
    )

    # === VOLATILITY FILTER ===
    use_volatility_filter: bool = Field(
        default=False,
        description="Reduce signal confidence in high volatility environments"
    )
    volatility_window: int = Field(
        default=20, ge=5, le=100,
        description="Window for volatility calculation"
    )
    volatility_threshold: float = Field(
        default=1.5, ge=0.5, le=5.0,
        description="Volatility multiplier threshold (higher = more permissive)"
    )


class RiskParams(BaseModel):
    """Risk management parameters"""
    position_size_pct: float = Field(default=10.0, ge=1.0, le=50.0)
    max_leverage: float = Field(default=1.0, ge=1.0, le=5.0)
    stop_loss_pct: float = Field(default=5.0, ge=0.5, le=50.0)
    take_profit_pct: float = Field(default=10.0, ge=1.0, le=100.0)
    max_drawdown_kill: float = Field(default=20.0, ge=5.0, le=100.0)


class AgentConfig(BaseModel):
    """
    Full agent configuration.

    ``strategy_params`` is checked against the strategy type by AgentCreate
    and stored with only the fields of that strategy.
    """
    strategy_params: Dict[str, Any] = Field(default_factory=dict)
    signal_stack: SignalStack = Field(default_factory=SignalStack)
    risk_params: RiskParams = Field(default_factory=RiskParams)


class AgentCreate(BaseModel):
    strategy_type: StrategyType
    config: AgentConfig = Field(default_factory=AgentConfig)

    @model_validator(mode="after")
    def check_strategy_params(self):
        if self.strategy_type == StrategyType.GHOST:
            raise ValueError("GHOST is a benchmark strategy and cannot be chosen")
        model = STRATEGY_PARAMS_MODELS[self.strategy_type]
        # ValidationError raised here is reported as part of the request body
        params = model.model_validate(self.config.strategy_params)
        self.config.strategy_params = params.model_dump()
        return self


# =============================================================================
# Responses
# =============================================================================

class AgentResultResponse(BaseModel):
    id: UUID
    agent_id: UUID
    final_equity: float
    total_return: float
    sharpe_ratio: Optional[float]
    max_drawdown: float
    calmar_ratio: Optional[float]
    total_trades: int
    win_rate: Optional[float]
    survival_time: int

    equity_curve: Optional[List[ChartDataPoint]] = None
    cumulative_alpha: Optional[List[ChartDataPoint]] = None

    trades: list[dict]
    # CAPM metrics relative to the round's benchmark
    alpha: Optional[float] = None  # Annualized excess return, percent
    beta: Optional[float] = None   # Market exposure
    kill_reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AgentResponse(BaseModel):
    id: UUID
    user_id: UUID
    round_id: UUID
    strategy_type: StrategyType
    config: dict
    created_at: datetime
    result: Optional[AgentResultResponse] = None
    user_nickname: Optional[str] = None
    user_color: Optional[str] = None

    class Config:
        from_attributes = True
