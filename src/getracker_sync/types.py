"""Type definitions for GE Tracker sync."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .errors import RecordDecodeError


__all__ = [
    "GrandExchangeOfferState", "OfferState", "OfferChange", "OfferRecord",
    "RemoteTransaction", "RemoteFailure", "ReconcileAction", "whole_number",
]


# ============== Helpers ==============

def whole_number(value: Any) -> int:
    """
    Convert an int, integral float or numeric string to int.

    Raises:
        ValueError: for booleans, fractions and anything non-numeric
    """
    if isinstance(value, bool):
        raise ValueError(f"not an integer: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return int(value)
    raise ValueError(f"not an integer: {value!r}")


# ============== Enums ==============

class GrandExchangeOfferState(Enum):
    """State of a trade slot as reported by the game."""
    EMPTY = "EMPTY"
    BUYING = "BUYING"
    BOUGHT = "BOUGHT"
    SELLING = "SELLING"
    SOLD = "SOLD"
    CANCELLED_BUY = "CANCELLED_BUY"
    CANCELLED_SELL = "CANCELLED_SELL"


class OfferState(Enum):
    """
    Persisted offer state.

    The value is the stable string written into store keys and records.
    Cancelled and empty slot states are transient and never persisted.
    """
    BUYING = "BUYING"
    SELLING = "SELLING"
    BOUGHT = "BOUGHT"

    @classmethod
    def parse(cls, value: str) -> "OfferState":
        """Parse a stored state string, rejecting unknown values."""
        try:
            return cls(value)
        except ValueError:
            raise RecordDecodeError(f"Unknown offer state: {value!r}") from None

    @classmethod
    def from_remote_status(cls, status: str) -> Optional["OfferState"]:
        """Map a ledger status string ("buying", "selling", "bought")."""
        return _REMOTE_STATUS.get(status)

    @property
    def remote_status(self) -> str:
        """Status string used by the ledger API."""
        return self.value.lower()


_REMOTE_STATUS = {
    "buying": OfferState.BUYING,
    "selling": OfferState.SELLING,
    "bought": OfferState.BOUGHT,
}


class RemoteFailure(Enum):
    """Why a ledger call failed."""
    TRANSPORT = "TRANSPORT"  # Network error, timeout or HTTP error status
    PARSE = "PARSE"  # Response body missing or malformed


class ReconcileAction(Enum):
    """Outcome of reconciling one offer change."""
    IGNORED = "IGNORED"
    CREATED = "CREATED"
    ALREADY_TRACKED = "ALREADY_TRACKED"
    DELETED = "DELETED"
    NOT_TRACKED = "NOT_TRACKED"
    FAILED = "FAILED"


# ============== Inbound events ==============

@dataclass(slots=True)
class OfferChange:
    """Offer-change notification for a single trade slot."""
    state: GrandExchangeOfferState
    item_id: int
    total_quantity: int
    quantity_sold: int = 0
    price: int = 0
    slot: int = -1

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OfferChange":
        """
        Build a notification from a decoded JSON object.

        Raises:
            KeyError: if a required field is missing
            ValueError: if the state or a numeric field is invalid
        """
        return cls(
            state=GrandExchangeOfferState(data["state"]),
            item_id=whole_number(data["item_id"]),
            total_quantity=whole_number(data["total_quantity"]),
            quantity_sold=whole_number(data.get("quantity_sold", 0)),
            price=whole_number(data.get("price", 0)),
            slot=whole_number(data.get("slot", -1)),
        )


# ============== Persisted state ==============

@dataclass(slots=True)
class OfferRecord:
    """Locally tracked offer, keyed by (item_id, state, quantity)."""
    item_id: int
    quantity: int
    state: OfferState
    buy_price: int = 0  # 0 = not set
    sell_price: int = 0  # 0 = not set
    remote_id: str = ""  # Empty until the ledger accepted the transaction

    @property
    def key(self) -> tuple[int, OfferState, int]:
        return (self.item_id, self.state, self.quantity)

    @classmethod
    def from_offer(cls, offer: OfferChange) -> Optional["OfferRecord"]:
        """
        Build a record from an observed offer.

        Returns None for slot states that have no persisted form.
        """
        if offer.state == GrandExchangeOfferState.SELLING:
            return cls(offer.item_id, offer.total_quantity, OfferState.SELLING,
                       sell_price=offer.price)
        if offer.state == GrandExchangeOfferState.BUYING:
            return cls(offer.item_id, offer.total_quantity, OfferState.BUYING,
                       buy_price=offer.price)
        if offer.state == GrandExchangeOfferState.BOUGHT:
            return cls(offer.item_id, offer.total_quantity, OfferState.BOUGHT,
                       buy_price=offer.price)
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "quantity": self.quantity,
            "state": self.state.value,
            "buy_price": self.buy_price,
            "sell_price": self.sell_price,
            "remote_id": self.remote_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OfferRecord":
        """
        Decode a stored record.

        Raises:
            RecordDecodeError: on missing fields, bad types or unknown state
        """
        if not isinstance(data, dict):
            raise RecordDecodeError(f"Expected object, got {type(data).__name__}")
        try:
            return cls(
                item_id=whole_number(data["item_id"]),
                quantity=whole_number(data["quantity"]),
                state=OfferState.parse(data["state"]),
                buy_price=whole_number(data.get("buy_price", 0)),
                sell_price=whole_number(data.get("sell_price", 0)),
                remote_id=str(data.get("remote_id", "")),
            )
        except KeyError as e:
            raise RecordDecodeError(f"Missing field {e}") from None
        except (TypeError, ValueError) as e:
            raise RecordDecodeError(str(e)) from None


# ============== Remote ledger ==============

@dataclass(slots=True)
class RemoteTransaction:
    """Active transaction as listed by the ledger."""
    remote_id: str
    status: str  # Raw ledger status; unknown values are kept as-is
    item_id: int
    quantity: int
    buy_price: int
    sell_price: Optional[int] = None
