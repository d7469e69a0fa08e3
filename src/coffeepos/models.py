"""
Customer and transaction records exchanged with the gateway
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from .menu import category_for

# Fields checked, in order, for a transaction's timestamp
DATE_FIELDS = ("transactionDate", "date", "createdAt", "timestamp")


def parse_timestamp(raw: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 string or an epoch-milliseconds number

    Returns a naive local-time datetime, or None if the value can't be parsed.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, (int, float)):
        try:
            parsed = datetime.fromtimestamp(raw / 1000)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Customer:
    """
    A registered customer

    Attributes:
        id: unique identifier (server-assigned, or provisional when offline)
        name: display name
        contact: email or phone
        transactions: number of completed purchases
        provisional: True while the id was generated locally and not yet confirmed
    """
    id: int
    name: str
    contact: str = ""
    transactions: int = 0
    provisional: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Customer":
        return cls(
            id=_to_int(data.get("id")),
            name=str(data.get("name") or ""),
            contact=str(data.get("contact") or ""),
            transactions=max(0, _to_int(data.get("transactions"))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "contact": self.contact,
            "transactions": self.transactions,
        }


@dataclass(frozen=True)
class LineItem:
    """A menu item with a quantity, as part of an order"""
    name: str
    qty: int
    price: float
    category: str = ""

    @property
    def line_total(self) -> float:
        return self.price * self.qty

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItem":
        name = str(data.get("name") or "")
        return cls(
            name=name,
            qty=_to_int(data.get("qty")),
            price=_to_float(data.get("price")),
            category=data.get("category") or category_for(name),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "qty": self.qty, "price": self.price, "category": self.category}


@dataclass(frozen=True)
class Transaction:
    """
    A completed, immutable sale

    Attributes:
        id: unique identifier
        customer_id: id of the purchasing customer
        items: ordered line items
        total: sum of price * qty over items
        discount: loyalty discount amount
        final_total: total - discount
        transaction_date: when the sale happened (None if unknown/unparsable)
        provisional: True while the record only exists locally
    """
    id: int
    customer_id: Optional[int]
    items: Tuple[LineItem, ...] = field(default_factory=tuple)
    total: float = 0.0
    discount: float = 0.0
    final_total: float = 0.0
    transaction_date: Optional[datetime] = None
    provisional: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        raw_date = None
        for key in DATE_FIELDS:
            if data.get(key) is not None:
                raw_date = data[key]
                break

        customer_id = data.get("customerId")
        raw_items = data.get("items")
        items = tuple(
            LineItem.from_dict(item) for item in raw_items if isinstance(item, dict)
        ) if isinstance(raw_items, list) else ()

        return cls(
            id=_to_int(data.get("id")),
            customer_id=_to_int(customer_id) if customer_id is not None else None,
            items=items,
            total=_to_float(data.get("total")),
            discount=_to_float(data.get("discount")),
            final_total=_to_float(data.get("finalTotal")),
            transaction_date=parse_timestamp(raw_date),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "customerId": self.customer_id,
            "items": [item.to_dict() for item in self.items],
            "total": self.total,
            "discount": self.discount,
            "finalTotal": self.final_total,
            "transactionDate": self.transaction_date.isoformat() if self.transaction_date else None,
        }
