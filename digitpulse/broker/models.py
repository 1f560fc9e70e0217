"""Broker data models — typed representations of Deriv API objects."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RawTick:
    """A single price update pushed by a ``ticks`` subscription."""

    epoch: int
    quote: float
    symbol: str
    pip_size: Optional[int] = None


@dataclass(frozen=True)
class ProposalRequest:
    """A price proposal request payload."""

    amount: float
    contract_type: str
    duration: int
    symbol: str
    currency: str = "USD"
    basis: str = "stake"
    duration_unit: str = "t"  # ticks
    barrier: Optional[str] = None

    def to_payload(self) -> dict:
        """Return the wire representation of this request."""
        payload = {
            "proposal": 1,
            "amount": self.amount,
            "basis": self.basis,
            "contract_type": self.contract_type,
            "currency": self.currency,
            "duration": self.duration,
            "duration_unit": self.duration_unit,
            "symbol": self.symbol,
        }
        if self.barrier is not None:
            payload["barrier"] = self.barrier
        return payload


@dataclass(frozen=True)
class Proposal:
    """A broker-quoted price and payout for a prospective contract."""

    id: str
    ask_price: float
    payout: float


@dataclass(frozen=True)
class BuyResult:
    """Response from buying a contract."""

    contract_id: str
    buy_price: float
    balance_after: Optional[float] = None


@dataclass(frozen=True)
class ContractUpdate:
    """A ``proposal_open_contract`` push for an open contract."""

    contract_id: str
    status: str  # "open", "won", "lost", "sold"
    profit: float = 0.0
    exit_tick: Optional[float] = None
    is_sold: bool = False

    @property
    def is_terminal(self) -> bool:
        """``True`` once the contract is decided or was sold before expiry."""
        return self.status in ("won", "lost", "sold") or self.is_sold
