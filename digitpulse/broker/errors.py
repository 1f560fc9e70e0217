"""Broker error taxonomy.

Connection-level and application-level failures both derive from
``BrokerError`` so the engine can treat them uniformly as execution errors.
"""

from typing import Optional


class BrokerError(Exception):
    """Base class for every failure raised by the broker client."""

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code


class BrokerConnectionError(BrokerError):
    """Socket not open, closed unexpectedly, or a request timed out."""


class AuthorizationError(BrokerError):
    """The broker rejected the API token."""


class ProposalError(BrokerError):
    """The broker rejected the contract parameters (invalid barrier, market closed)."""


class BuyError(BrokerError):
    """The buy was rejected (proposal expired, insufficient balance)."""


class SettlementTimeout(BrokerError):
    """No terminal status was received for a contract in time."""


# Maps a request ``msg_type`` to the error raised when the broker rejects it.
ERRORS_BY_MSG_TYPE: dict[str, type[BrokerError]] = {
    "authorize": AuthorizationError,
    "proposal": ProposalError,
    "buy": BuyError,
}


def error_for_response(msg_type: str, error: dict) -> BrokerError:
    """Build the matching ``BrokerError`` from a broker ``error`` object."""
    cls = ERRORS_BY_MSG_TYPE.get(msg_type, BrokerError)
    return cls(
        error.get("message", f"{msg_type} request failed"),
        code=error.get("code"),
    )
