import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union
from pydantic import ValidationError
from sqlalchemy.orm import Session
from arena.engine.rng import PortableRandom
from arena.errors import InvalidConfig
from arena.schemas.round import MarketConfig

logger = logging.getLogger(__name__)

MIN_PRICE = 0.01


class MarketRegime(Enum):
    TRENDING_UP = "trending_up"
    TRENDING_DOWN = "trending_down"
    RANGE_BOUND = "range_bound"
    HIGH_VOLATILITY = "high_volatility"


@dataclass(frozen=True)
class PriceSeries:
    """
    The market a round is played on.

    Shared read-only by every agent of the round, hence tuples throughout.
    ``benchmark_returns[i]`` is the benchmark log return into tick i
    (0.0 for tick 0); it is None for synthetic markets.
    """
    prices: Tuple[float, ...]
    timestamps: Optional[Tuple[str, ...]] = None  # ISO strings, None for synthetic data
    benchmark_returns: Optional[Tuple[float, ...]] = None

    @property
    def num_ticks(self) -> int:
        return len(self.prices)

    def timestamp_at(self, tick: int) -> Optional[str]:
        if self.timestamps is None:
            return None
        return self.timestamps[tick]

    def price_chart(self) -> List[Dict[str, Any]]:
        return [
            {"tick": i, "timestamp": self.timestamp_at(i), "value": float(p)}
            for i, p in enumerate(self.prices)
        ]

    def benchmark_chart(self) -> Optional[List[Dict[str, Any]]]:
        if self.benchmark_returns is None:
            return None
        return [
            {"tick": i, "timestamp": self.timestamp_at(i), "value": float(r)}
            for i, r in enumerate(self.benchmark_returns)
        ]


class MarketEngine:
    """
    Generates price data using Geometric Brownian Motion with regime switching.

    All randomness comes from a PortableRandom seeded with the round's seed,
    consumed in a fixed order per tick: persistence roll, regime roll (only
    when the persistence roll fails), then one normal draw.
    """

    def __init__(
        self,
        seed: int,
        initial_price: float = 100.0,
        base_volatility: float = 0.02,
        base_drift: float = 0.0001,
        trend_probability: float = 0.3,
        volatile_probability: float = 0.2,
        regime_persistence: float = 0.95
    ):
        if initial_price <= 0 or base_volatility <= 0:
            raise InvalidConfig("initial_price and base_volatility must be positive")
        if not 0.0 <= regime_persistence <= 1.0:
            raise InvalidConfig("regime_persistence must be within [0, 1]")
        if trend_probability < 0 or volatile_probability < 0 or trend_probability + volatile_probability > 1.0:
            raise InvalidConfig("regime probabilities must be non-negative and sum to at most 1")

        self.seed = seed
        self.initial_price = initial_price
        self.base_volatility = base_volatility
        self.base_drift = base_drift
        self.trend_probability = trend_probability
        self.volatile_probability = volatile_probability
        self.regime_persistence = regime_persistence

        self.rng = PortableRandom(seed)
        self.current_regime = MarketRegime.RANGE_BOUND

    def _determine_regime(self) -> MarketRegime:
        """Determine market regime with persistence."""
        # With high probability, stay in current regime
        if self.rng.random() < self.regime_persistence:
            return self.current_regime

        roll = self.rng.random()
        if roll < self.trend_probability / 2:
            return MarketRegime.TRENDING_UP
        elif roll < self.trend_probability:
            return MarketRegime.TRENDING_DOWN
        elif roll < self.trend_probability + self.volatile_probability:
            return MarketRegime.HIGH_VOLATILITY
        else:
            return MarketRegime.RANGE_BOUND

    def _get_regime_params(self, regime: MarketRegime) -> Tuple[float, float]:
        """Get drift and volatility for a regime."""
        if regime == MarketRegime.TRENDING_UP:
            return 3.0 * self.base_drift, 1.2 * self.base_volatility
        elif regime == MarketRegime.TRENDING_DOWN:
            return -2.0 * self.base_drift, 1.2 * self.base_volatility
        elif regime == MarketRegime.HIGH_VOLATILITY:
            return 0.0, 2.5 * self.base_volatility
        else:  # RANGE_BOUND
            return 0.0, self.base_volatility

    def generate_prices(self, num_ticks: int) -> PriceSeries:
        """
        Generate ``num_ticks`` prices. The initial price itself is not part
        of the series; tick 0 is the first step away from it.
        """
        if num_ticks <= 0:
            raise InvalidConfig("num_ticks must be positive")

        prices: List[float] = []
        current_price = self.initial_price

        for _ in range(num_ticks):
            self.current_regime = self._determine_regime()
            drift, volatility = self._get_regime_params(self.current_regime)

            # GBM step with dt = 1: dS = S * (mu + sigma * dW)
            dW = self.rng.normal()
            dS = current_price * (drift + volatility * dW)
            current_price = max(current_price + dS, MIN_PRICE)

            prices.append(current_price)

        return PriceSeries(prices=tuple(prices))


def parse_market_config(config: Union[MarketConfig, Dict[str, Any], None]) -> MarketConfig:
    """Accept a MarketConfig or the JSON stored on a round."""
    if isinstance(config, MarketConfig):
        return config
    try:
        return MarketConfig.model_validate(config or {})
    except ValidationError as e:
        raise InvalidConfig(f"Invalid market configuration: {e}") from e


def generate_market(
    seed: int,
    config: Union[MarketConfig, Dict[str, Any], None],
    db: Optional[Session] = None
) -> PriceSeries:
    """
    Produce the price series for a round.

    Synthetic series depend only on (seed, config). Real series are read
    from ingested bars and need a database session.
    """
    market_config = parse_market_config(config)

    if market_config.data_source == "real":
        # Imported here so synthetic-only callers don't need pandas loaded
        from arena.engine.real_market import RealMarketEngine

        if db is None:
            raise InvalidConfig("Real market data requires a database session")
        market = RealMarketEngine(
            db,
            symbol=market_config.symbol,
            benchmark_symbol=market_config.benchmark_symbol,
            trading_interval=market_config.trading_interval,
        )
        series = market.to_price_series(market_config.num_ticks)
        logger.info(
            f"Loaded {series.num_ticks} {market_config.trading_interval} bars for "
            f"{market_config.symbol} (benchmark {market_config.benchmark_symbol})"
        )
        return series

    if market_config.num_ticks is None:
        raise InvalidConfig("num_ticks is required for synthetic market data")

    market = MarketEngine(
        seed=seed,
        initial_price=market_config.initial_price,
        base_volatility=market_config.base_volatility,
        base_drift=market_config.base_drift,
        trend_probability=market_config.trend_probability,
        volatile_probability=market_config.volatile_probability,
        regime_persistence=market_config.regime_persistence,
    )
    return market.generate_prices(market_config.num_ticks)
