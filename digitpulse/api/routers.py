"""Internal API routers — /strategies and /control endpoints.

No business logic. Delegates to the ``StrategyManager`` the application
stored on ``app.state.manager`` at startup.
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

logger = logging.getLogger("digitpulse")
router = APIRouter()


# ── Dependencies ─────────────────────────────────────────────────────────


def get_manager(request: Request):
    """Return the ``StrategyManager`` (or duck-type) owned by the app, if any."""
    return getattr(request.app.state, "manager", None)


def _unknown(strategy_id: str) -> dict:
    return {"error": f"Unknown strategy: {strategy_id}"}


# ── Read endpoints ───────────────────────────────────────────────────────


@router.get("/strategies")
async def list_strategies(manager=Depends(get_manager)):
    """Return status for every registered strategy."""
    if manager is None:
        return {"connected": False, "strategies": {}, "active": 0, "total_profit": 0.0}
    return manager.get_status()


@router.get("/strategies/{strategy_id}")
async def get_strategy_status(strategy_id: str, manager=Depends(get_manager)):
    """Return the summary of a single strategy."""
    if manager is None:
        return {"error": "No strategy manager"}
    try:
        return manager.get_status(strategy_id)
    except KeyError:
        return _unknown(strategy_id)


@router.get("/strategies/{strategy_id}/stats")
async def get_strategy_stats(strategy_id: str, manager=Depends(get_manager)):
    """Return the latest digit statistics of a strategy."""
    if manager is None:
        return {"error": "No strategy manager"}
    try:
        return manager.get_stats(strategy_id)
    except KeyError:
        return _unknown(strategy_id)


@router.get("/strategies/{strategy_id}/trades")
async def get_strategy_trades(
    strategy_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    result: Optional[str] = Query(default=None),
    manager=Depends(get_manager),
):
    """Return recent trades, newest first, optionally filtered by result."""
    if manager is None:
        return {"trades": [], "total": 0}
    try:
        return manager.get_trades(strategy_id, limit=limit, result=result)
    except KeyError:
        return _unknown(strategy_id)
    except ValueError as exc:
        return {"status": "error", "errors": [str(exc)]}


@router.get("/strategies/{strategy_id}/events")
async def get_strategy_events(strategy_id: str, manager=Depends(get_manager)):
    """Return the live log of a strategy (most recent last)."""
    if manager is None:
        return {"events": []}
    try:
        return {"events": manager.get_events(strategy_id)}
    except KeyError:
        return _unknown(strategy_id)


# ── Edits ────────────────────────────────────────────────────────────────


@router.patch("/strategies/{strategy_id}")
async def patch_strategy(strategy_id: str, body: dict, manager=Depends(get_manager)):
    """Apply validated config edits to a strategy.

    Returns the updated config, or the validation errors.
    """
    if manager is None:
        return {"error": "No strategy manager"}
    try:
        updated = manager.update_strategy(strategy_id, **body)
    except KeyError:
        return _unknown(strategy_id)
    except (TypeError, ValueError) as exc:
        return {"status": "error", "errors": [str(exc)]}
    logger.info("Strategy '%s' edited via dashboard.", strategy_id)
    return {"status": "ok", "strategy": asdict(updated)}


# ── Control actions ──────────────────────────────────────────────────────


@router.post("/strategies/{strategy_id}/start")
async def start_strategy(strategy_id: str, manager=Depends(get_manager)):
    """Start a single strategy."""
    if manager is None:
        return {"error": "No strategy manager"}
    try:
        started = await manager.start_strategy(strategy_id)
    except KeyError:
        return _unknown(strategy_id)
    logger.info("Strategy '%s' start requested via dashboard.", strategy_id)
    state = manager.get_status(strategy_id)["state"]
    return {"status": "started" if started else "not_started", "state": state}


@router.post("/strategies/{strategy_id}/stop")
async def stop_strategy(strategy_id: str, manager=Depends(get_manager)):
    """Stop a single strategy."""
    if manager is None:
        return {"error": "No strategy manager"}
    try:
        await manager.stop_strategy(strategy_id)
    except KeyError:
        return _unknown(strategy_id)
    logger.info("Strategy '%s' stopped via dashboard.", strategy_id)
    return {"status": "stopped", "strategy": strategy_id}


@router.post("/strategies/{strategy_id}/pause")
async def pause_strategy(strategy_id: str, manager=Depends(get_manager)):
    """Pause analysis of a running strategy."""
    if manager is None:
        return {"error": "No strategy manager"}
    try:
        paused = manager.pause_strategy(strategy_id)
    except KeyError:
        return _unknown(strategy_id)
    if not paused:
        return {"status": "not_running", "strategy": strategy_id}
    logger.info("Strategy '%s' paused via dashboard.", strategy_id)
    return {"status": "paused", "strategy": strategy_id}


@router.post("/strategies/{strategy_id}/resume")
async def resume_strategy(strategy_id: str, manager=Depends(get_manager)):
    """Resume a paused strategy."""
    if manager is None:
        return {"error": "No strategy manager"}
    try:
        resumed = manager.resume_strategy(strategy_id)
    except KeyError:
        return _unknown(strategy_id)
    if not resumed:
        return {"status": "not_paused", "strategy": strategy_id}
    logger.info("Strategy '%s' resumed via dashboard.", strategy_id)
    return {"status": "resumed", "strategy": strategy_id}


@router.post("/control/stop-all")
async def stop_all(manager=Depends(get_manager)):
    """Stop every strategy but keep the API alive."""
    if manager is not None:
        await manager.stop_all()
    logger.warning("All strategies stopped via dashboard.")
    return {"status": "stopped"}
