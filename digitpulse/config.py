"""DigitPulse — application configuration.

Loads .env variables into a typed config object and reads strategy
definitions from ``strategies.json``.
Validates required variables on startup.
"""

import json
import os
import pathlib
from dataclasses import dataclass

from dotenv import load_dotenv

from digitpulse.models.strategy_config import STRATEGY_TYPES, StrategyConfig


_REQUIRED_VARS = [
    "DERIV_APP_ID",
]

_STRATEGIES_JSON = pathlib.Path(__file__).resolve().parent.parent / "strategies.json"


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    deriv_app_id: str
    deriv_api_token: str
    deriv_ws_url: str
    currency: str
    analysis_interval_seconds: float
    max_consecutive_errors: int
    settlement_timeout_seconds: float
    request_interval_seconds: float
    request_timeout_seconds: float
    strategies_path: str
    log_level: str
    health_port: int

    @property
    def ws_url(self) -> str:
        """Return the broker WebSocket URL including the application id."""
        return f"{self.deriv_ws_url}?app_id={self.deriv_app_id}"


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the missing variable when a
    required variable is absent.
    """
    load_dotenv(dotenv_path=env_path)

    missing = [v for v in _REQUIRED_VARS if not os.environ.get(v)]
    if missing:
        raise ValueError(
            f"Missing required environment variable(s): {', '.join(missing)}"
        )

    return Config(
        deriv_app_id=os.environ["DERIV_APP_ID"],
        deriv_api_token=os.environ.get("DERIV_API_TOKEN", ""),
        deriv_ws_url=os.environ.get(
            "DERIV_WS_URL", "wss://ws.derivws.com/websockets/v3"
        ),
        currency=os.environ.get("CURRENCY", "USD"),
        analysis_interval_seconds=float(
            os.environ.get("ANALYSIS_INTERVAL_SECONDS", "1.0")
        ),
        max_consecutive_errors=int(os.environ.get("MAX_CONSECUTIVE_ERRORS", "5")),
        settlement_timeout_seconds=float(
            os.environ.get("SETTLEMENT_TIMEOUT_SECONDS", "120")
        ),
        request_interval_seconds=float(
            os.environ.get("REQUEST_INTERVAL_SECONDS", "0.5")
        ),
        request_timeout_seconds=float(
            os.environ.get("REQUEST_TIMEOUT_SECONDS", "15")
        ),
        strategies_path=os.environ.get("STRATEGIES_PATH", str(_STRATEGIES_JSON)),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        health_port=int(os.environ.get("HEALTH_PORT", "8080")),
    )


def load_strategies(path: str | pathlib.Path | None = None) -> list[StrategyConfig]:
    """Load strategy definitions from ``strategies.json``.

    Falls back to a single ``default`` strategy built from env vars when the
    file is missing or lists no strategies.

    Raises ``ValueError`` for an unknown strategy type.
    """
    json_path = pathlib.Path(path) if path is not None else _STRATEGIES_JSON

    entries: list[dict] = []
    if json_path.exists():
        data = json.loads(json_path.read_text(encoding="utf-8"))
        entries = data.get("strategies", [])

    if not entries:
        entries = [{
            "id": "default",
            "name": "Default",
            "type": os.environ.get("STRATEGY_TYPE", "DIFFERS"),
            "market_symbol": os.environ.get("MARKET_SYMBOL", "R_100"),
            "stake": float(os.environ.get("BASE_STAKE", "1.0")),
        }]

    strategies: list[StrategyConfig] = []
    for entry in entries:
        if entry.get("type") not in STRATEGY_TYPES:
            raise ValueError(
                f"Unknown strategy type '{entry.get('type')}' for "
                f"strategy '{entry.get('id')}'. "
                f"Available: {', '.join(STRATEGY_TYPES)}"
            )
        strategies.append(StrategyConfig(**entry))
    return strategies
