"""Strategy registry — maps strategy types to evaluators.

Used by StrategyEngine to resolve the evaluator from StrategyConfig.type.
"""

from typing import Callable

from digitpulse.strategy.base import EvaluatorProtocol
from digitpulse.strategy.digits import (
    DiffersStrategy,
    EvenOddStrategy,
    OverUnderStrategy,
    PowerOverStrategy,
)


STRATEGY_REGISTRY: dict[str, Callable[[], EvaluatorProtocol]] = {
    "DIFFERS": DiffersStrategy,
    "OVER3_UNDER6": lambda: OverUnderStrategy(over_barrier=3, under_barrier=6),
    "OVER2_UNDER7": lambda: OverUnderStrategy(over_barrier=2, under_barrier=7),
    "OVER1_UNDER8": PowerOverStrategy,
    "EVEN_ODD": EvenOddStrategy,
}


def get_strategy(name: str) -> EvaluatorProtocol:
    """Look up and instantiate an evaluator by strategy type.

    Raises ``KeyError`` if the strategy type is not registered.
    """
    if name not in STRATEGY_REGISTRY:
        raise KeyError(
            f"Unknown strategy '{name}'. "
            f"Available: {', '.join(STRATEGY_REGISTRY.keys())}"
        )
    return STRATEGY_REGISTRY[name]()
