"""DigitPulse — Strategy engine (per-strategy orchestration loop).

Connects tick ingestion, statistics, the strategy evaluator, trade
execution, settlement and martingale into one instance per strategy.
Each engine owns its buffer, analysis timer and subscription handle;
nothing is shared between strategies except the broker connection.
"""

import asyncio
import dataclasses
import itertools
import logging
import time
from collections import deque
from datetime import datetime, timezone
from typing import Optional

from digitpulse.broker.deriv_client import DerivClient
from digitpulse.broker.errors import AuthorizationError, BrokerError, SettlementTimeout
from digitpulse.broker.models import ContractUpdate, ProposalRequest, RawTick
from digitpulse.config import Config
from digitpulse.models.strategy_config import (
    LATCH_SETTLED,
    STATE_ANALYSING,
    STATE_ERROR,
    STATE_IDLE,
    STATE_PAUSED,
    STATE_TRADING,
    StrategyConfig,
)
from digitpulse.models.trade_log import RESULT_LOSS, RESULT_WIN, TradeLog
from digitpulse.risk.martingale import MartingaleController
from digitpulse.risk.session_limits import check_session_limits
from digitpulse.strategy.base import Evaluation, EvaluatorProtocol
from digitpulse.strategy.models import DECISION_TRADING, ContractSignal, StrategyStats
from digitpulse.strategy.registry import get_strategy
from digitpulse.strategy.stats import compute_stats, empty_stats
from digitpulse.strategy.ticks import TickBuffer, make_tick

logger = logging.getLogger("digitpulse")

_EVENT_LOG_SIZE = 50


class StrategyEngine:
    """Runs one strategy instance through its lifecycle.

    States: ``idle → analysing → trading → analysing … → idle | error``,
    plus a manually entered ``paused``.

    Args:
        config: Application configuration (global settings).
        broker: A ``DerivClient`` (or compatible duck-type / mock).
        strategy_config: Identity and tunables of this strategy.
        evaluator: Optional evaluator override; resolved from the registry
                   by ``strategy_config.type`` when omitted.
    """

    def __init__(
        self,
        config: Config,
        broker: DerivClient,
        strategy_config: StrategyConfig,
        evaluator: Optional[EvaluatorProtocol] = None,
    ) -> None:
        self._config = config
        self._broker = broker
        self._strategy_config = strategy_config
        self._evaluator = evaluator or get_strategy(strategy_config.type)
        self._buffer = TickBuffer(strategy_config.max_ticks)
        self._stats: StrategyStats = empty_stats()
        self._last_evaluation: Optional[Evaluation] = None
        self._martingale = MartingaleController(
            base_stake=strategy_config.stake,
            multiplier=strategy_config.martingale_multiplier,
            max_stake=strategy_config.max_stake,
        )
        self._trades: list[TradeLog] = []
        self._pending: dict[str, TradeLog] = {}  # contract_id → trade
        self._watchdogs: dict[str, asyncio.Task] = {}
        self._trade_ids = itertools.count(1)
        self._session_profit: float = 0.0
        self._consecutive_errors: int = 0
        self._restart_count: int = 0
        self._cycle_count: int = 0
        self._running: bool = False
        self._timer_task: Optional[asyncio.Task] = None
        self._restart_task: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()
        self._subscription: Optional[str] = None
        self._events: deque[dict] = deque(maxlen=_EVENT_LOG_SIZE)

    # ── Properties ───────────────────────────────────────────────────────

    @property
    def strategy_id(self) -> str:
        return self._strategy_config.id

    @property
    def strategy_config(self) -> StrategyConfig:
        return self._strategy_config

    @property
    def state(self) -> str:
        return self._strategy_config.state

    @property
    def instrument(self) -> str:
        """Return the market symbol this engine trades."""
        return self._strategy_config.market_symbol

    @property
    def stats(self) -> StrategyStats:
        return self._stats

    @property
    def trades(self) -> list[TradeLog]:
        return list(self._trades)

    @property
    def pending_trades(self) -> list[TradeLog]:
        return list(self._pending.values())

    @property
    def events(self) -> list[dict]:
        return list(self._events)

    @property
    def current_stake(self) -> float:
        return self._martingale.current_stake

    @property
    def session_profit(self) -> float:
        return self._session_profit

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive_errors

    @property
    def buffer(self) -> TickBuffer:
        return self._buffer

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def start(self) -> bool:
        """Connect, subscribe to ticks and start the analysis timer.

        Returns ``True`` when the strategy is analysing afterwards.  A
        disabled strategy or an unauthorized account is refused without
        entering the error path; broker failures go through
        :meth:`_handle_error` (and its auto-restart policy).
        """
        sc = self._strategy_config
        if not sc.enabled:
            self._log_event(logging.WARNING, "Cannot start: strategy is disabled")
            return False
        if self.state == STATE_PAUSED:
            return self.resume()
        if self._running or self._subscription is not None:
            return True
        self._cancel_restart()

        try:
            await self._broker.connect()
            if not self._broker.is_authorized:
                await self._broker.authorize()
        except AuthorizationError as exc:
            self._log_event(logging.ERROR, "Cannot start: not authorized (%s)", exc)
            self._set_state(STATE_IDLE)
            return False
        except BrokerError as exc:
            await self._handle_error(exc)
            return False

        self._set_state(STATE_ANALYSING)
        try:
            self._subscription = await self._broker.subscribe_ticks(
                sc.market_symbol, self.handle_tick, on_lost=self._on_connection_lost,
            )
            if sc.warmup_ticks > 0:
                await self._warm_up(sc.warmup_ticks)
        except BrokerError as exc:
            await self._handle_error(exc)
            return False

        self._start_timer()
        self._log_event(logging.INFO, "Started on %s", sc.market_symbol)
        return True

    async def stop(self, reason: str = "manual", final_state: str = STATE_IDLE) -> None:
        """Stop the strategy: timer, tick stream and pending-trade tracking.

        Trades still pending are closed without a result; a settlement
        arriving afterwards is ignored.
        """
        self._cancel_restart()
        await self._teardown()
        await self._detach_pending(reason)
        self._set_state(final_state)
        self._log_event(logging.INFO, "Stopped (%s)", reason)

    def pause(self) -> bool:
        """Halt analysis but keep the tick stream filling the buffer."""
        if self.state not in (STATE_ANALYSING, STATE_TRADING):
            return False
        self._stop_timer()
        self._set_state(STATE_PAUSED)
        self._log_event(logging.INFO, "Paused")
        return True

    def resume(self) -> bool:
        """Restart analysis of a paused strategy."""
        if self.state != STATE_PAUSED:
            return False
        self._set_state(STATE_ANALYSING)
        self._start_timer()
        self._log_event(logging.INFO, "Resumed")
        return True

    def update_config(self, strategy_config: StrategyConfig) -> None:
        """Apply an edited config; lifecycle state is owned by the engine."""
        old = self._strategy_config
        new = dataclasses.replace(strategy_config, state=old.state)
        self._strategy_config = new
        if new.market_symbol != old.market_symbol:
            self._buffer.clear()
            self._stats = empty_stats()
        if new.max_ticks != old.max_ticks:
            self._buffer.resize(new.max_ticks)
        if new.type != old.type:
            self._evaluator = get_strategy(new.type)
        if (new.stake, new.martingale_multiplier, new.max_stake) != (
            old.stake, old.martingale_multiplier, old.max_stake,
        ):
            self._martingale.reconfigure(
                new.stake, new.martingale_multiplier, new.max_stake,
            )

    # ── Tick ingestion ───────────────────────────────────────────────────

    def handle_tick(self, raw: RawTick) -> None:
        """Normalize a pushed tick and append it to the rolling buffer."""
        symbol = raw.symbol or self._strategy_config.market_symbol
        self._buffer.append(make_tick(raw.epoch, raw.quote, symbol))

    def _on_connection_lost(self, exc: BrokerError) -> None:
        """Route a dropped socket into the error path."""
        self._subscription = None  # the handle died with the socket
        self._spawn(self._handle_error(exc))

    async def _warm_up(self, count: int) -> None:
        count = min(count, self._buffer.max_ticks)
        try:
            history = await self._broker.get_tick_history(
                self._strategy_config.market_symbol, count,
            )
        except BrokerError as exc:
            self._log_event(logging.WARNING, "Tick history unavailable: %s", exc)
            return
        self._buffer.extend(
            make_tick(t.epoch, t.quote, t.symbol) for t in history
        )
        self._log_event(logging.INFO, "Preloaded %d historical ticks", len(history))

    # ── Analysis loop ────────────────────────────────────────────────────

    def _start_timer(self) -> None:
        self._running = True
        if self._timer_task is None or self._timer_task.done():
            self._timer_task = asyncio.create_task(self._analysis_loop())

    def _stop_timer(self) -> None:
        self._running = False
        task, self._timer_task = self._timer_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _analysis_loop(self) -> None:
        """Analyse once per interval; trades run as separate tasks."""
        interval = self._config.analysis_interval_seconds
        while self._running:
            try:
                evaluation = self.analyse()
                if evaluation is not None and evaluation.fire:
                    self._set_state(STATE_TRADING)
                    self._spawn(self.execute_trade(evaluation.signal))
            except Exception:
                logger.exception(
                    "Strategy '%s' — analysis cycle %d failed",
                    self.strategy_id, self._cycle_count,
                )
            await asyncio.sleep(interval)

    def analyse(self) -> Optional[Evaluation]:
        """Recompute statistics and, while analysing, evaluate the strategy.

        Returns the evaluation, or ``None`` when evaluation was skipped
        (empty buffer, not analysing, or latched on a pending trade).
        """
        self._cycle_count += 1
        if len(self._buffer) == 0:
            return None

        ticks = self._buffer.snapshot()
        stats = compute_stats(ticks)
        latched = (
            self._strategy_config.trade_latch == LATCH_SETTLED
            and bool(self._pending)
        )
        if self.state == STATE_TRADING or latched:
            stats = dataclasses.replace(stats, decision_state=DECISION_TRADING)
        self._stats = stats

        if self.state != STATE_ANALYSING or latched:
            return None

        evaluation = self._evaluator.evaluate(self._strategy_config, stats, ticks)
        self._last_evaluation = evaluation
        return evaluation

    async def run_once(self) -> dict:
        """Execute one analysis cycle, awaiting any resulting trade.

        Returns a dict describing the action taken:

        - ``{"action": "skipped", "reason": "..."}``
        - ``{"action": "trade_submitted", ...}``
        - ``{"action": "error", "reason": "..."}``
        """
        evaluation = self.analyse()
        if evaluation is None:
            reason = "no_ticks" if len(self._buffer) == 0 else self.state
            if self.state == STATE_ANALYSING and self._pending:
                reason = "awaiting_settlement"
            return {"action": "skipped", "reason": reason}
        if not evaluation.fire:
            return {"action": "skipped", "reason": evaluation.reason or "no_signal"}
        self._set_state(STATE_TRADING)
        return await self.execute_trade(evaluation.signal)

    # ── Trade execution ──────────────────────────────────────────────────

    async def execute_trade(self, signal: ContractSignal) -> dict:
        """Request a proposal, buy it and start tracking its settlement.

        Proposal and buy failures are routed to the error handler; they
        are never retried here.  The strategy returns to ``analysing`` as
        soon as the buy is confirmed.
        """
        sc = self._strategy_config
        stake = self._martingale.current_stake
        request = ProposalRequest(
            amount=round(stake, 2),
            contract_type=signal.contract_type,
            duration=sc.ticks_per_trade,
            symbol=sc.market_symbol,
            currency=self._config.currency,
            barrier=signal.barrier,
        )
        entry_digits = self._stats.last_digits

        try:
            proposal = await self._broker.get_proposal(request)
            bought = await self._broker.buy_contract(proposal.id, proposal.ask_price)
        except BrokerError as exc:
            await self._handle_error(exc)
            return {"action": "error", "reason": str(exc)}

        trade = TradeLog(
            id=f"{self.strategy_id}-{next(self._trade_ids)}",
            timestamp=time.time(),
            contract_id=bought.contract_id,
            proposal_id=proposal.id,
            buy_price=proposal.ask_price,
            payout=proposal.payout,
            entry_tick=entry_digits[-1] if entry_digits else None,
            strategy_id=self.strategy_id,
            contract_type=signal.contract_type,
            barrier=signal.barrier,
        )
        self._trades.append(trade)

        if self.state in (STATE_IDLE, STATE_ERROR) and not self._restart_pending:
            # Stopped while the buy was in flight; the contract is not tracked.
            trade.close_unsettled("stopped")
            self._log_event(
                logging.WARNING,
                "Contract %s bought after stop — not tracked", trade.contract_id,
            )
            return {"action": "untracked", "contract_id": trade.contract_id}

        self._pending[trade.contract_id] = trade
        self._arm_watchdog(trade)
        self._log_event(
            logging.INFO,
            "Bought %s%s stake %.2f → contract %s (%s)",
            signal.contract_type,
            f" {signal.barrier}" if signal.barrier is not None else "",
            proposal.ask_price,
            trade.contract_id,
            signal.reason,
        )

        try:
            await self._broker.subscribe_proposal_open_contract(
                trade.contract_id, self.handle_contract_update,
            )
        except BrokerError as exc:
            await self._handle_error(exc)
            return {"action": "error", "reason": str(exc)}

        if self.state == STATE_TRADING:
            self._set_state(STATE_ANALYSING)

        return {
            "action": "trade_submitted",
            "trade_id": trade.id,
            "contract_id": trade.contract_id,
            "contract_type": signal.contract_type,
            "barrier": signal.barrier,
            "stake": proposal.ask_price,
            "reason": signal.reason,
        }

    # ── Settlement ───────────────────────────────────────────────────────

    def handle_contract_update(self, update: ContractUpdate) -> None:
        """Settle a pending trade on a terminal contract update.

        Applies profit, martingale and session limits.  Updates for
        unknown, already settled or detached contracts are ignored.
        """
        trade = self._pending.get(update.contract_id)
        if trade is None:
            logger.debug(
                "Strategy '%s' — ignoring update for contract %s",
                self.strategy_id, update.contract_id,
            )
            return
        if not update.is_terminal:
            return

        del self._pending[update.contract_id]
        watchdog = self._watchdogs.pop(update.contract_id, None)
        if watchdog is not None:
            watchdog.cancel()

        if update.status == "won":
            result, profit = RESULT_WIN, update.profit
        elif update.status == "lost":
            result, profit = RESULT_LOSS, -trade.buy_price
        else:
            # Sold before expiry: the broker reports the realised profit.
            result = RESULT_WIN if update.profit > 0 else RESULT_LOSS
            profit = update.profit
        trade.settle(result, profit, update.exit_tick)

        self._session_profit += profit
        self._consecutive_errors = 0
        next_stake = self._martingale.record(result)
        self._log_event(
            logging.INFO,
            "Contract %s %s (%+.2f) — session %+.2f, next stake %.2f",
            trade.contract_id, result, profit, self._session_profit, next_stake,
        )

        reason = check_session_limits(
            self._session_profit,
            self._strategy_config.target_profit,
            self._strategy_config.stop_loss,
        )
        if reason is not None:
            self._log_event(logging.INFO, "Session limit reached: %s", reason)
            self._spawn(self.stop(reason=reason))

    def _arm_watchdog(self, trade: TradeLog) -> None:
        timeout = self._config.settlement_timeout_seconds
        if timeout <= 0:
            return
        self._watchdogs[trade.contract_id] = self._spawn(
            self._settlement_watchdog(trade, timeout)
        )

    async def _settlement_watchdog(self, trade: TradeLog, timeout: float) -> None:
        await asyncio.sleep(timeout)
        self._watchdogs.pop(trade.contract_id, None)
        if self._pending.pop(trade.contract_id, None) is None:
            return
        trade.close_unsettled("timed_out")
        await self._broker.forget_contract(trade.contract_id)
        await self._handle_error(SettlementTimeout(
            f"No settlement for contract {trade.contract_id} after {timeout:.0f}s"
        ))

    async def _detach_pending(self, reason: str) -> None:
        for contract_id, trade in list(self._pending.items()):
            trade.close_unsettled(reason)
            await self._broker.forget_contract(contract_id)
        self._pending.clear()
        current = asyncio.current_task()
        for task in self._watchdogs.values():
            if task is not current:
                task.cancel()
        self._watchdogs.clear()

    # ── Error handling ───────────────────────────────────────────────────

    @property
    def _restart_pending(self) -> bool:
        return self._restart_task is not None and not self._restart_task.done()

    async def _handle_error(self, exc: Exception) -> None:
        """Count the error, release resources and apply the restart policy.

        Reaching ``max_consecutive_errors`` parks the strategy in
        ``error`` for good; below it, ``auto_restart`` schedules a new
        start after ``retry_delay`` seconds.
        """
        self._consecutive_errors += 1
        limit = self._config.max_consecutive_errors
        self._log_event(
            logging.ERROR,
            "Execution error %d/%d: %s", self._consecutive_errors, limit, exc,
        )
        await self._teardown()
        self._set_state(STATE_ERROR)

        if self._consecutive_errors >= limit:
            self._log_event(
                logging.ERROR, "Too many consecutive errors — strategy parked",
            )
            await self.stop(reason="too_many_errors", final_state=STATE_ERROR)
            return

        if self._strategy_config.auto_restart:
            delay = self._strategy_config.retry_delay
            self._restart_count += 1
            self._log_event(
                logging.WARNING, "Auto-restarting in %.1fs", delay,
            )
            self._cancel_restart()
            self._restart_task = self._spawn(self._restart_after(delay))

    async def _restart_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._restart_task = None
        await self.start()

    def _cancel_restart(self) -> None:
        task, self._restart_task = self._restart_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _teardown(self) -> None:
        """Cancel the analysis timer and release the tick subscription."""
        self._stop_timer()
        handle, self._subscription = self._subscription, None
        if handle is not None:
            await self._broker.forget(handle)

    # ── Helpers ──────────────────────────────────────────────────────────

    def _set_state(self, state: str) -> None:
        old = self._strategy_config.state
        if old == state:
            return
        self._strategy_config = dataclasses.replace(self._strategy_config, state=state)
        logger.info("Strategy '%s' — %s → %s", self.strategy_id, old, state)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _log_event(self, level: int, message: str, *args) -> None:
        text = message % args if args else message
        logger.log(level, "Strategy '%s' — %s", self.strategy_id, text)
        self._events.append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": logging.getLevelName(level),
            "message": text,
        })

    def snapshot(self) -> dict:
        """Status summary for the dashboard."""
        settled = [t for t in self._trades if t.result in (RESULT_WIN, RESULT_LOSS)]
        wins = sum(1 for t in settled if t.result == RESULT_WIN)
        sc = self._strategy_config
        return {
            "id": sc.id,
            "name": sc.name,
            "type": sc.type,
            "market_symbol": sc.market_symbol,
            "state": sc.state,
            "enabled": sc.enabled,
            "running": self._running,
            "cycle_count": self._cycle_count,
            "sample_size": len(self._buffer),
            "decision_state": self._stats.decision_state,
            "current_stake": round(self._martingale.current_stake, 2),
            "base_stake": sc.stake,
            "session_profit": round(self._session_profit, 2),
            "wins": wins,
            "losses": len(settled) - wins,
            "win_rate": round(wins / len(settled), 4) if settled else 0.0,
            "total_trades": len(self._trades),
            "pending_trades": len(self._pending),
            "consecutive_errors": self._consecutive_errors,
            "restart_count": self._restart_count,
            "last_evaluation": (
                {
                    "fire": self._last_evaluation.fire,
                    "reason": self._last_evaluation.reason,
                    "checks": dict(self._last_evaluation.checks),
                }
                if self._last_evaluation is not None else None
            ),
        }
