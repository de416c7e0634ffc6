from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence

from pydantic import BaseModel

from arena.engine.execution import Position, RiskLimits
from arena.schemas.agent import RiskParams

if TYPE_CHECKING:
    from arena.engine.signals import SignalFrame


class DecisionAction(str, Enum):
    HOLD = "HOLD"
    ENTER_LONG = "ENTER_LONG"
    EXIT_LONG = "EXIT_LONG"


@dataclass(frozen=True)
class Decision:
    """What a strategy wants to do at a tick, and why."""
    action: DecisionAction
    confidence: float  # 0 to 1
    reason: str

    def __post_init__(self):
        if not self.reason:
            raise ValueError("Every decision needs a reason")


def hold(reason: str, confidence: float = 0.0) -> Decision:
    return Decision(action=DecisionAction.HOLD, confidence=confidence, reason=reason)


class BaseStrategy(ABC):
    """
    Base class for all trading strategies.

    Strategies are LONG-ONLY. A strategy instance belongs to one agent for
    one round and may keep state between ticks; ``decide`` is called with
    increasing ticks, though ticks on which a risk rule fired are skipped.
    """

    def __init__(self, params: BaseModel):
        self.params = params

    @abstractmethod
    def decide(
        self,
        tick: int,
        prices: Sequence[float],
        frame: "SignalFrame",
        position: Optional[Position]
    ) -> Decision:
        """
        Decide on the action for ``tick``. Only ``prices[:tick + 1]`` may be
        looked at.
        """
        pass

    def risk_limits(self, risk_params: RiskParams) -> RiskLimits:
        """Limits the ledger enforces for this strategy."""
        return RiskLimits.from_params(risk_params)
