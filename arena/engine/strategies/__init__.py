from typing import Any, Dict, Optional, Type
from arena.engine.strategies.base import BaseStrategy, Decision, DecisionAction
from arena.engine.strategies.mean_reversion import MeanReversionStrategy
from arena.engine.strategies.trend_following import TrendFollowingStrategy
from arena.engine.strategies.momentum import MomentumStrategy
from arena.engine.strategies.ghost import GhostStrategy
from arena.models.agent import StrategyType
from arena.schemas.agent import parse_strategy_params

STRATEGY_MAP: Dict[StrategyType, Type[BaseStrategy]] = {
    StrategyType.MEAN_REVERSION: MeanReversionStrategy,
    StrategyType.TREND_FOLLOWING: TrendFollowingStrategy,
    StrategyType.MOMENTUM: MomentumStrategy,
    StrategyType.GHOST: GhostStrategy,
}


def build_strategy(strategy_type: StrategyType, params: Optional[Dict[str, Any]] = None) -> BaseStrategy:
    """Instantiate a strategy with validated parameters. Raises InvalidConfig."""
    strategy_type = StrategyType(strategy_type)
    return STRATEGY_MAP[strategy_type](parse_strategy_params(strategy_type, params))


__all__ = [
    "BaseStrategy", "Decision", "DecisionAction",
    "MeanReversionStrategy", "TrendFollowingStrategy", "MomentumStrategy", "GhostStrategy",
    "STRATEGY_MAP", "build_strategy",
]
