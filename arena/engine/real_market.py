"""
Real Market Engine using ingested historical bars.

Bars are stored at 1-minute granularity by the ingestion service. The
engine loads the traded symbol and its benchmark, resamples both to the
round's trading interval, keeps only timestamps present in both series and
exposes the traded close prices plus the benchmark log returns used for
alpha/beta.
"""

import logging
import numpy as np
import pandas as pd
from typing import Dict, Optional
from sqlalchemy.orm import Session

from arena.engine.market import PriceSeries
from arena.errors import DataUnavailable, InvalidConfig
from arena.models.market_data import MarketData

logger = logging.getLogger(__name__)

# Map interval strings to pandas offset aliases
INTERVAL_OFFSETS: Dict[str, str] = {
    "1min": "1min",
    "5min": "5min",
    "15min": "15min",
    "30min": "30min",
    "1h": "1h",
}

class RealMarketEngine:
    """
    Market engine over historical data for a traded symbol and a benchmark.

    Features:
    - Loads OHLCV bars from the database
    - Resamples from 1min to the trading interval
    - Aligns timestamps between the two symbols
    - Calculates benchmark log returns
    """

    def __init__(
        self,
        db: Session,
        symbol: str = "AAPL",
        benchmark_symbol: str = "SPY",
        trading_interval: str = "5min"
    ):
        if trading_interval not in INTERVAL_OFFSETS:
            raise InvalidConfig(f"Unsupported trading interval: {trading_interval}")

        self.db = db
        self.symbol = symbol
        self.benchmark_symbol = benchmark_symbol
        self.trading_interval = trading_interval

        self._aligned_df: Optional[pd.DataFrame] = None
        self._load_and_process_data()

    def _load_data(self, symbol: str) -> pd.DataFrame:
        """Load market data for a symbol from the database."""
        bars = self.db.query(MarketData).filter(
            MarketData.symbol == symbol
        ).order_by(MarketData.datetime).all()

        if not bars:
            raise DataUnavailable(f"No market data found for {symbol}. Please fetch data first.")

        data = [{
            "datetime": bar.datetime,
            "open": bar.open,
            "high": bar.high,
            "low": bar.low,
            "close": bar.close,
            "volume": bar.volume
        } for bar in bars]

        df = pd.DataFrame(data)
        df["datetime"] = pd.to_datetime(df["datetime"])
        df.set_index("datetime", inplace=True)
        df.sort_index(inplace=True)

        return df

    def _resample_ohlcv(self, df: pd.DataFrame) -> pd.DataFrame:
        """Resample OHLCV data to the trading interval."""
        resampled = df.resample(INTERVAL_OFFSETS[self.trading_interval]).agg({
            "open": "first",
            "high": "max",
            "low": "min",
            "close": "last",
            "volume": "sum"
        }).dropna()

        return resampled

    def _load_and_process_data(self):
        traded = self._resample_ohlcv(self._load_data(self.symbol))
        benchmark = self._resample_ohlcv(self._load_data(self.benchmark_symbol))

        # Align timestamps - only keep bars where both have data
        common_index = traded.index.intersection(benchmark.index)

        if len(common_index) == 0:
            raise DataUnavailable(
                f"No overlapping {self.trading_interval} bars between "
                f"{self.symbol} and {self.benchmark_symbol}"
            )

        traded = traded.loc[common_index]
        benchmark = benchmark.loc[common_index]

        benchmark_returns = np.log(benchmark["close"] / benchmark["close"].shift(1))

        self._aligned_df = pd.DataFrame({
            "close": traded["close"],
            "benchmark_close": benchmark["close"],
            # No return for the first bar
            "benchmark_log_return": benchmark_returns.fillna(0.0),
        })

    def to_price_series(self, num_ticks: Optional[int] = None) -> PriceSeries:
        """
        Build the round's series, truncated to the first ``num_ticks`` bars
        (all bars when None).
        """
        df = self._aligned_df
        if num_ticks is not None:
            if num_ticks <= 0:
                raise InvalidConfig("num_ticks must be positive")
            if num_ticks > len(df):
                logger.warning(
                    f"Requested {num_ticks} ticks but only {len(df)} "
                    f"{self.trading_interval} bars are available for {self.symbol}"
                )
            df = df.iloc[:num_ticks]

        # Returns are relative to the first bar kept, which truncation never changes
        return PriceSeries(
            prices=tuple(float(p) for p in df["close"]),
            timestamps=tuple(ts.isoformat() for ts in df.index),
            benchmark_returns=tuple(float(r) for r in df["benchmark_log_return"]),
        )

def check_market_data_available(db: Session, symbol: str, benchmark_symbol: str) -> bool:
    """Check if bars for both the traded symbol and its benchmark have been ingested."""
    symbol_count = db.query(MarketData).filter(MarketData.symbol == symbol).count()
    benchmark_count = db.query(MarketData).filter(MarketData.symbol == benchmark_symbol).count()

    return symbol_count > 0 and benchmark_count > 0
