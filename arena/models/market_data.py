import uuid
from sqlalchemy import Column, String, Integer, Float, DateTime, ForeignKey, BigInteger, Index
from sqlalchemy.orm import relationship
from arena.database import Base, GUID, utcnow


class MarketDataset(Base):
    """
    Metadata about an ingested block of bars.

    Rows are written by the market-data ingestion service; the simulation
    only reads them.
    """
    __tablename__ = "market_datasets"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    symbol = Column(String(20), nullable=False, index=True)
    interval = Column(String(10), nullable=False)  # Granularity of the stored bars
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    total_bars = Column(Integer, nullable=False, default=0)
    fetched_at = Column(DateTime, default=utcnow)

    bars = relationship("MarketData", back_populates="dataset", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<MarketDataset {self.symbol} {self.interval} ({self.total_bars} bars)>"


class MarketData(Base):
    """One-minute OHLCV bar, resampled to the trading interval on load."""
    __tablename__ = "market_data"

    # BigInteger autoincrement only works on SQLite as plain INTEGER
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    dataset_id = Column(GUID, ForeignKey("market_datasets.id", ondelete="CASCADE"), nullable=False)
    symbol = Column(String(20), nullable=False)
    datetime = Column(DateTime, nullable=False)
    open = Column(Float, nullable=False)
    high = Column(Float, nullable=False)
    low = Column(Float, nullable=False)
    close = Column(Float, nullable=False)
    volume = Column(BigInteger, nullable=False)

    dataset = relationship("MarketDataset", back_populates="bars")

    __table_args__ = (
        Index('ix_market_data_symbol_datetime', 'symbol', 'datetime'),
    )

    def __repr__(self):
        return f"<MarketData {self.symbol} {self.datetime} close={self.close}>"
