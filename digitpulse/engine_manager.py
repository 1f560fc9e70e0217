"""StrategyManager — orchestrates multiple StrategyEngine instances.

Each strategy in ``strategies.json`` (or synthesised from env) gets its own
``StrategyEngine`` with an independently resolved evaluator.  All engines
share one ``DerivClient`` connection; tick streams are multiplexed per
symbol by the client.  Strategies can be started, stopped, paused and
edited individually or en masse.
"""

import asyncio
import dataclasses
import logging
from typing import Optional

from digitpulse.broker.deriv_client import DerivClient
from digitpulse.config import Config
from digitpulse.engine import StrategyEngine
from digitpulse.models.strategy_config import (
    LATCH_FREE,
    LATCH_SETTLED,
    STATE_ANALYSING,
    STATE_PAUSED,
    STATE_TRADING,
    STRATEGY_TYPES,
    StrategyConfig,
)
from digitpulse.models.trade_log import RESULT_LOSS, RESULT_PENDING, RESULT_WIN

logger = logging.getLogger("digitpulse.engine_manager")

# Fields that may not be changed through update_strategy.
_IMMUTABLE_FIELDS = ("id", "state")

# Fields that may only be changed while the strategy holds no tick stream.
_STOPPED_ONLY_FIELDS = ("market_symbol",)
_ACTIVE_STATES = (STATE_ANALYSING, STATE_TRADING, STATE_PAUSED)


class StrategyManager:
    """Lifecycle manager for one-or-many strategies.

    Args:
        config:     Global ``Config`` loaded from ``.env``.
        broker:     Shared ``DerivClient`` instance.
        strategies: ``StrategyConfig`` items to register.
    """

    def __init__(
        self,
        config: Config,
        broker: DerivClient,
        strategies: Optional[list[StrategyConfig]] = None,
    ) -> None:
        self._config = config
        self._broker = broker
        self._engines: dict[str, StrategyEngine] = {}
        self._stopped = asyncio.Event()
        for strategy in strategies or []:
            self.register_strategy(strategy)

    # ── Registry ─────────────────────────────────────────────────────────

    @property
    def engines(self) -> dict[str, StrategyEngine]:
        """Map of strategy id → ``StrategyEngine``."""
        return dict(self._engines)

    @property
    def strategy_ids(self) -> list[str]:
        return list(self._engines.keys())

    @property
    def broker(self) -> DerivClient:
        return self._broker

    def register_strategy(self, strategy: StrategyConfig) -> StrategyEngine:
        """Create an engine for *strategy*.

        Raises:
            ValueError: If the id is already registered or the config is invalid.
        """
        if strategy.id in self._engines:
            raise ValueError(f"Strategy '{strategy.id}' is already registered")
        _validate(strategy)
        engine = StrategyEngine(
            config=self._config,
            broker=self._broker,
            strategy_config=strategy,
        )
        self._engines[strategy.id] = engine
        logger.info(
            "Registered strategy '%s' → %s on %s",
            strategy.id, strategy.type, strategy.market_symbol,
        )
        return engine

    def update_strategy(self, strategy_id: str, **changes) -> StrategyConfig:
        """Apply edits to a registered strategy and return the new config.

        Raises:
            KeyError: Unknown strategy id.
            ValueError: Unknown or immutable field, or an invalid value.
        """
        engine = self._get(strategy_id)
        fields = {f.name for f in dataclasses.fields(StrategyConfig)}
        for key in changes:
            if key not in fields:
                raise ValueError(f"Unknown strategy field '{key}'")
            if key in _IMMUTABLE_FIELDS:
                raise ValueError(f"Field '{key}' cannot be changed")
            if (
                key in _STOPPED_ONLY_FIELDS
                and engine.state in _ACTIVE_STATES
                and changes[key] != getattr(engine.strategy_config, key)
            ):
                raise ValueError(
                    f"Field '{key}' can only be changed while the strategy is stopped"
                )
        updated = dataclasses.replace(engine.strategy_config, **changes)
        _validate(updated)
        engine.update_config(updated)
        logger.info("Strategy '%s' updated: %s", strategy_id, sorted(changes))
        return engine.strategy_config

    async def remove_strategy(self, strategy_id: str) -> None:
        """Stop a strategy and forget it."""
        engine = self._get(strategy_id)
        await engine.stop(reason="removed")
        del self._engines[strategy_id]
        logger.info("Removed strategy '%s'.", strategy_id)

    # ── Control ──────────────────────────────────────────────────────────

    async def start_strategy(self, strategy_id: str) -> bool:
        return await self._get(strategy_id).start()

    async def stop_strategy(self, strategy_id: str, reason: str = "manual") -> None:
        await self._get(strategy_id).stop(reason=reason)

    def pause_strategy(self, strategy_id: str) -> bool:
        return self._get(strategy_id).pause()

    def resume_strategy(self, strategy_id: str) -> bool:
        return self._get(strategy_id).resume()

    async def start_all(self) -> dict[str, bool]:
        """Start every enabled strategy.

        Returns:
            ``{strategy_id: started}`` for every enabled strategy.
        """
        self._stopped.clear()
        results: dict[str, bool] = {}
        for sid, engine in self._engines.items():
            if not engine.strategy_config.enabled:
                continue
            try:
                results[sid] = await engine.start()
            except Exception as exc:  # pragma: no cover
                logger.error("Strategy '%s' failed to start: %s", sid, exc)
                results[sid] = False
        return results

    async def stop_all(self, reason: str = "manual") -> None:
        """Stop every strategy gracefully."""
        for sid, engine in self._engines.items():
            await engine.stop(reason=reason)
            logger.info("Stopped strategy '%s'.", sid)

    async def run_all(self) -> None:
        """Start all strategies and block until :meth:`shutdown`."""
        await self.start_all()
        await self._stopped.wait()

    async def shutdown(self) -> None:
        """Stop all strategies and close the broker connection."""
        await self.stop_all(reason="shutdown")
        await self._broker.disconnect()
        self._stopped.set()

    # ── Queries ──────────────────────────────────────────────────────────

    def get_status(self, strategy_id: Optional[str] = None) -> dict:
        """Return aggregated or per-strategy status.

        Raises:
            KeyError: Unknown strategy id.
        """
        if strategy_id is not None:
            return self._get(strategy_id).snapshot()

        snapshots = {sid: eng.snapshot() for sid, eng in self._engines.items()}
        return {
            "connected": bool(getattr(self._broker, "is_connected", False)),
            "strategies": snapshots,
            "active": sum(
                1 for s in snapshots.values()
                if s["state"] in _ACTIVE_STATES
            ),
            "total_profit": round(
                sum(s["session_profit"] for s in snapshots.values()), 2,
            ),
        }

    def get_trades(
        self,
        strategy_id: str,
        limit: int = 50,
        result: Optional[str] = None,
    ) -> dict:
        """Return the most recent trades of a strategy, newest first."""
        if result is not None and result not in (RESULT_PENDING, RESULT_WIN, RESULT_LOSS):
            raise ValueError(f"Unknown trade result filter '{result}'")
        trades = self._get(strategy_id).trades
        if result is not None:
            trades = [t for t in trades if t.result == result]
        recent = list(reversed(trades))[:limit]
        return {"trades": [t.to_dict() for t in recent], "total": len(trades)}

    def get_stats(self, strategy_id: str) -> dict:
        return self._get(strategy_id).stats.to_dict()

    def get_events(self, strategy_id: str) -> list[dict]:
        return self._get(strategy_id).events

    def _get(self, strategy_id: str) -> StrategyEngine:
        engine = self._engines.get(strategy_id)
        if engine is None:
            raise KeyError(f"Unknown strategy: {strategy_id}")
        return engine


def _validate(strategy: StrategyConfig) -> None:
    """Reject configs the engine cannot run.

    Raises:
        ValueError: Naming the first offending field.
    """
    if strategy.type not in STRATEGY_TYPES:
        raise ValueError(
            f"Unknown strategy type '{strategy.type}'. "
            f"Available: {', '.join(STRATEGY_TYPES)}"
        )
    if strategy.stake <= 0:
        raise ValueError("stake must be positive")
    if strategy.martingale_multiplier <= 0:
        raise ValueError("martingale_multiplier must be positive")
    if strategy.max_stake is not None and strategy.max_stake < strategy.stake:
        raise ValueError("max_stake must not be below stake")
    if strategy.analysis_minutes <= 0:
        raise ValueError("analysis_minutes must be positive")
    if not 1 <= strategy.ticks_per_trade <= 10:
        raise ValueError("ticks_per_trade must be between 1 and 10")
    if strategy.retry_delay < 0:
        raise ValueError("retry_delay must not be negative")
    if strategy.warmup_ticks < 0:
        raise ValueError("warmup_ticks must not be negative")
    if strategy.trade_latch not in (LATCH_SETTLED, LATCH_FREE):
        raise ValueError(f"Unknown trade_latch '{strategy.trade_latch}'")
