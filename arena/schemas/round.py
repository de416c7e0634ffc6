from datetime import datetime
from uuid import UUID
from typing import Optional, List, Literal
from pydantic import BaseModel, Field, model_validator
from arena.models.round import RoundStatus
from arena.config import get_settings

settings = get_settings()


class MarketConfig(BaseModel):
    """
    Market simulation parameters.

    ``data_source`` picks the generator:
    - "synthetic": regime-switching GBM driven by the round's seed
    - "real": ingested historical bars for ``symbol``, with ``benchmark_symbol``
      providing the returns used for alpha/beta

    The synthetic parameters (initial_price, base_volatility, ...) are ignored
    for real data, and ``trading_interval`` is ignored for synthetic data.
    """
    data_source: Literal["synthetic", "real"] = Field(
        default="synthetic",
        description="Where the price series comes from"
    )

    # Real market data settings
    symbol: str = Field(default="AAPL", min_length=1, max_length=20)
    benchmark_symbol: str = Field(default="SPY", min_length=1, max_length=20)
    trading_interval: Literal["1min", "5min", "15min", "30min", "1h"] = Field(
        default="5min",
        description="Trading timeframe for simulation (data is resampled from 1min)"
    )

    # Common settings
    num_ticks: Optional[int] = Field(
        default=settings.default_num_ticks,
        ge=10,
        le=100000,
        description="Number of ticks to simulate. None = use all available data (real data only)"
    )
    initial_equity: float = Field(default=settings.default_initial_equity, ge=1000.0)

    # Execution costs
    base_slippage: float = Field(default=0.001, ge=0.0, le=0.05)
    fee_rate: float = Field(default=0.001, ge=0.0, le=0.01)

    # Synthetic data parameters
    initial_price: float = Field(default=settings.default_initial_price, ge=1.0)
    base_volatility: float = Field(default=0.02, ge=0.001, le=0.5)
    base_drift: float = Field(default=0.0001, ge=-0.01, le=0.01)
    trend_probability: float = Field(default=0.3, ge=0.0, le=1.0)
    volatile_probability: float = Field(default=0.2, ge=0.0, le=1.0)
    regime_persistence: float = Field(default=0.95, ge=0.5, le=0.99)

    @model_validator(mode="after")
    def check_consistency(self):
        if self.data_source == "synthetic" and self.num_ticks is None:
            raise ValueError("num_ticks is required for synthetic market data")
        if self.trend_probability + self.volatile_probability > 1.0:
            raise ValueError("trend_probability + volatile_probability must not exceed 1")
        return self


class RoundConfig(BaseModel):
    """Full round configuration"""
    market: MarketConfig = Field(default_factory=MarketConfig)


class RoundCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    market_seed: Optional[int] = Field(
        default=None, ge=0, le=2**31 - 1,
        description="Reproducibility key; a random seed is drawn when omitted"
    )
    config: RoundConfig = Field(default_factory=RoundConfig)


class ChartDataPoint(BaseModel):
    """Data point for charts with both x and y values."""
    tick: int
    timestamp: Optional[datetime] = None  # None for synthetic data
    value: float


class RoundResponse(BaseModel):
    id: UUID
    name: str
    status: RoundStatus
    market_seed: int
    config: dict

    # Chart data with x-axis (tick/timestamp) and y-axis (value)
    price_data: Optional[List[ChartDataPoint]] = None
    benchmark_returns: Optional[List[ChartDataPoint]] = None

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    agent_count: int = 0

    class Config:
        from_attributes = True


class RoundListResponse(BaseModel):
    id: UUID
    name: str
    status: RoundStatus
    market_seed: int
    agent_count: int
    created_at: datetime

    class Config:
        from_attributes = True


class RoundStatusResponse(BaseModel):
    id: UUID
    status: RoundStatus
    progress: int = 0  # 0-100 percentage
    agents_processed: int = 0
    total_agents: int = 0
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True
