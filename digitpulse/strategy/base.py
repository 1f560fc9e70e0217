"""Evaluator protocol and shared result type.

Defines the interface that all digit strategies must implement.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence, runtime_checkable

from digitpulse.models.strategy_config import StrategyConfig
from digitpulse.strategy.models import ContractSignal, StrategyStats, Tick


@dataclass(frozen=True)
class Evaluation:
    """Outcome of one evaluation.

    ``signal`` is set iff ``fire`` is ``True``; ``checks`` records which
    entry conditions held so the dashboard can show why a strategy waits.
    """

    fire: bool
    signal: Optional[ContractSignal] = None
    checks: dict = field(default_factory=dict)
    reason: str = ""

    @property
    def contract_type(self) -> Optional[str]:
        return self.signal.contract_type if self.signal else None

    @property
    def barrier(self) -> Optional[str]:
        return self.signal.barrier if self.signal else None


@runtime_checkable
class EvaluatorProtocol(Protocol):
    """Interface that all strategy evaluators must satisfy."""

    def evaluate(
        self,
        config: StrategyConfig,
        stats: StrategyStats,
        buffer: Sequence[Tick],
    ) -> Evaluation:
        """Decide whether to trade now and which contract to buy."""
        ...
