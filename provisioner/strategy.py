# provisioner/strategy.py
from enum import Enum


class Strategy(str, Enum):
    SPOT_ONLY = "spotonly"
    BEST_EFFORT = "besteffort"
    MAX_PERFORMANCE = "maxperformance"
    NONE = "none"


# maxperformance deliberately has no on-demand step at the end
FALLBACKS = {
    Strategy.MAX_PERFORMANCE.value: (Strategy.MAX_PERFORMANCE.value, Strategy.SPOT_ONLY.value),
    Strategy.BEST_EFFORT.value: (Strategy.BEST_EFFORT.value, Strategy.NONE.value),
}


def resolve_strategies(intent: str):
    """Ordered list of strategies to attempt for a configured intent."""
    name = str(intent).strip().lower()
    return list(FALLBACKS.get(name, (name,)))
