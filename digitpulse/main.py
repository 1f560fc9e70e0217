"""DigitPulse — application entry point.

Boots the FastAPI internal server and provides the CLI entry point that
runs the strategy engines alongside it.
"""

import logging

from fastapi import FastAPI

from digitpulse.api.routers import router

app = FastAPI(title="DigitPulse Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("digitpulse")


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments, build the strategy manager and run it."""
    import argparse
    import asyncio

    from digitpulse.broker.deriv_client import DerivClient
    from digitpulse.config import load_config, load_strategies
    from digitpulse.engine_manager import StrategyManager

    parser = argparse.ArgumentParser(description="DigitPulse digit-strategy engine")
    parser.add_argument(
        "--engine-only",
        action="store_true",
        help="Run strategy engines without the API server",
    )
    parser.add_argument(
        "--strategies",
        help="Path to the strategy definitions file (default: STRATEGIES_PATH)",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="API server port (default: HEALTH_PORT)",
    )
    args = parser.parse_args()

    config = load_config()
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    strategies = load_strategies(args.strategies or config.strategies_path)
    broker = DerivClient(config)
    manager = StrategyManager(config=config, broker=broker, strategies=strategies)
    app.state.manager = manager

    port = args.port or config.health_port
    if args.engine_only:
        asyncio.run(_run_engines_only(manager))
    else:
        asyncio.run(_run_engine_manager(manager, port))


def _install_shutdown(manager) -> None:
    """Stop all strategies gracefully on SIGINT."""
    import asyncio
    import signal

    loop = asyncio.get_running_loop()

    def handle_shutdown():
        logger.info("Shutdown signal received — stopping gracefully.")
        loop.create_task(manager.shutdown())

    try:
        loop.add_signal_handler(signal.SIGINT, handle_shutdown)
    except NotImplementedError:  # pragma: no cover
        signal.signal(signal.SIGINT, lambda *_: handle_shutdown())


async def _run_engine_manager(manager, port: int = 8080) -> None:
    """Start the API server and all strategies concurrently."""
    import asyncio
    import uvicorn

    logger.info("Starting DigitPulse with %d strateg(ies).",
                len(manager.strategy_ids))

    uvi_config = uvicorn.Config(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(uvi_config)

    async def _run_server():
        await server.serve()
        # uvicorn consumed SIGINT; make sure the engines follow it down.
        await manager.shutdown()

    async def _run_engines():
        await manager.run_all()

    logger.info("Dashboard available at http://localhost:%d", port)
    results = await asyncio.gather(
        _run_server(),
        _run_engines(),
        return_exceptions=True,
    )
    logger.info("DigitPulse stopped. Results: %s", results)


async def _run_engines_only(manager) -> None:
    """Run strategy engines without starting the API server."""
    _install_shutdown(manager)
    logger.info(
        "Starting DigitPulse engines (no API) with %d strateg(ies).",
        len(manager.strategy_ids),
    )
    await manager.run_all()
    logger.info("DigitPulse engines stopped.")


if __name__ == "__main__":
    _run_cli()
