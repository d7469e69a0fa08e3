"""
Checkout workflow: customer lookup/registration, item selection, payment and finalization
"""

import math
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Set, Dict, Tuple

from .api_client import ApiGateway
from .discount import DiscountTier, next_tier, rate_for
from .exceptions import GatewayError, ValidationError
from .menu import MenuItem, category_for
from .models import Customer, LineItem, Transaction
from .store import (
    Store,
    add_customer,
    mark_customer_synced,
    next_customer_id,
    next_transaction_id,
    record_sale,
)

logger = logging.getLogger(__name__)


class OrderState(Enum):
    """Where a single in-progress order stands"""
    IDLE = "idle"
    REGISTERING = "registering"
    CUSTOMER_SELECTED = "customer_selected"
    ITEMS_CHOSEN = "items_chosen"
    AWAITING_PAYMENT = "awaiting_payment"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


PAYMENT_STATES = (OrderState.AWAITING_PAYMENT, OrderState.INSUFFICIENT_FUNDS)
EDITABLE_STATES = (OrderState.CUSTOMER_SELECTED, OrderState.ITEMS_CHOSEN)

CENT = Decimal("0.01")


def to_cents(amount: float) -> float:
    """Round an amount to whole cents, halves away from zero"""
    return float(Decimal(repr(amount)).quantize(CENT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class OrderTotals:
    """
    Amounts for the current order

    Attributes:
        subtotal: sum of price * qty, rounded to cents
        tier: loyalty tier applied (from the visit count before this purchase)
        discount: subtotal * tier.rate, rounded to cents
        final_total: subtotal - discount, never below zero
    """
    subtotal: float
    tier: DiscountTier
    discount: float
    final_total: float


@dataclass(frozen=True)
class Receipt:
    """Everything printed for a completed order"""
    transaction_id: int
    customer_id: int
    customer_name: str
    visits: int
    loyalty_label: str
    items: Tuple[LineItem, ...]
    subtotal: float
    discount_percent: int
    discount: float
    final_total: float
    paid: float
    change: float
    transaction_date: datetime
    provisional: bool = False
    next_tier_label: Optional[str] = None
    visits_to_next_tier: Optional[int] = None
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PaymentOutcome:
    """
    Result of one payment input event

    Attributes:
        state: workflow state after the input
        message: text to show the user
        shortfall: amount still missing (INSUFFICIENT_FUNDS only)
        receipt: set once the order completed
    """
    state: OrderState
    message: str
    shortfall: float = 0.0
    receipt: Optional[Receipt] = None

    @property
    def accepted(self) -> bool:
        return self.state == OrderState.COMPLETED


class OrderWorkflow:
    """
    State machine over one in-progress order

    IDLE -> [REGISTERING] -> CUSTOMER_SELECTED -> ITEMS_CHOSEN -> AWAITING_PAYMENT
    <-> INSUFFICIENT_FUNDS -> COMPLETED, with ABANDONED reachable before completion.
    Gateway failures never block the workflow: records fall back to provisional
    local ids and a warning is collected instead.
    """

    def __init__(
        self,
        store: Store,
        gateway: ApiGateway,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.store = store
        self.gateway = gateway
        self.clock = clock

        self.state = OrderState.IDLE
        self.items: Tuple[LineItem, ...] = ()
        self.warnings: List[str] = []
        self._customer_id: Optional[int] = None
        self._pending_identifier: Optional[str] = None
        self._generation = 0
        self._last_shortfall = 0.0
        self._registrations_in_flight: Set[str] = set()
        # typed identifier -> id of the customer registered for it
        self._registered: Dict[str, int] = {}

    @property
    def customer(self) -> Optional[Customer]:
        """The selected customer as currently stored (visit count included)"""
        if self._customer_id is None:
            return None
        return self.store.state.find_customer(self._customer_id)

    @property
    def pending_identifier(self) -> Optional[str]:
        return self._pending_identifier

    # Customer resolution

    def select_customer(self, identifier: str) -> Optional[Customer]:
        """
        Resolve a typed identifier against the cached customers

        Returns the customer, or None after switching to REGISTERING because no
        customer has that id.
        """
        self._require(OrderState.IDLE, OrderState.REGISTERING, *EDITABLE_STATES)
        key = str(identifier).strip()

        customer_id = self._registered.get(key)
        if customer_id is None:
            parsed = ApiGateway.parse_id(key)
            customer_id = parsed if isinstance(parsed, int) else None

        customer = self.store.state.find_customer(customer_id) if customer_id is not None else None
        if customer is None:
            logger.debug(f"No customer for identifier {key!r}; starting registration")
            self._pending_identifier = key
            self._customer_id = None
            self.state = OrderState.REGISTERING
            return None

        self._customer_id = customer.id
        self._pending_identifier = None
        self.state = OrderState.ITEMS_CHOSEN if self.items else OrderState.CUSTOMER_SELECTED
        return customer

    def start_registration(self, identifier: str = "") -> None:
        """Go straight to registration without a lookup"""
        self._require(OrderState.IDLE, OrderState.REGISTERING, *EDITABLE_STATES)
        self._pending_identifier = str(identifier).strip()
        self._customer_id = None
        self.state = OrderState.REGISTERING

    def register_customer(self, name: str, contact: str = "") -> Customer:
        """
        Register the customer being looked up

        The server-assigned id wins. Without one, an id past every known id is
        used; it is provisional (queued for sync) only if the server was unreachable.
        """
        self._require(OrderState.REGISTERING)
        name = (name or "").strip()
        contact = (contact or "").strip()
        if not name:
            raise ValidationError("Customer name is required")

        key = self._pending_identifier or ""
        if key in self._registrations_in_flight:
            raise ValidationError(f"A registration for {key!r} is already in progress")

        generation = self._generation
        stored_remotely = True
        self._registrations_in_flight.add(key)
        try:
            try:
                created = self.gateway.create_customer(name, contact)
            except GatewayError as e:
                logger.warning(f"Customer registration could not reach the server: {e}")
                created = None
                stored_remotely = False
                self._warn(f"Customer saved locally only ({e})")
        finally:
            self._registrations_in_flight.discard(key)

        if created is not None:
            # The server has the record whatever happened to the order meanwhile
            self.store.dispatch(add_customer, created)
            customer = created
        elif generation != self._generation:
            raise ValidationError("Order was abandoned during registration")
        else:
            # Only records the server never accepted are queued for sync
            customer = Customer(
                id=next_customer_id(self.store.state),
                name=name,
                contact=contact,
                provisional=not stored_remotely,
            )
            self.store.dispatch(add_customer, customer)
            if stored_remotely:
                logger.info(f"Server returned no customer id; using local id {customer.id}")
            else:
                logger.info(f"Assigned provisional customer id {customer.id}")

        if key:
            self._registered[key] = customer.id

        if generation != self._generation:
            logger.info("Registration finished after the order was abandoned; not resuming it")
            return customer

        self._customer_id = customer.id
        self._pending_identifier = None
        self.state = OrderState.ITEMS_CHOSEN if self.items else OrderState.CUSTOMER_SELECTED
        return customer

    # Items

    def adjust_item(self, item: MenuItem, delta: int) -> Tuple[LineItem, ...]:
        """
        Change the quantity of an item by a signed delta

        An item not yet in the order is added with quantity 1 on the first
        positive delta; an item whose quantity drops to zero or below is removed.
        """
        self._require(*EDITABLE_STATES)
        items = list(self.items)
        index = next((i for i, existing in enumerate(items) if existing.name == item.name), None)

        if index is None:
            if delta > 0:
                category = getattr(item, "category", "") or category_for(item.name)
                items.append(LineItem(name=item.name, qty=1, price=item.price, category=category))
        else:
            current = items[index]
            qty = current.qty + delta
            if qty <= 0:
                del items[index]
            else:
                items[index] = LineItem(current.name, qty, current.price, current.category)

        self.items = tuple(items)
        self.state = OrderState.ITEMS_CHOSEN if self.items else OrderState.CUSTOMER_SELECTED
        return self.items

    # Totals and payment

    def totals(self) -> OrderTotals:
        customer = self.customer
        visits = customer.transactions if customer else 0
        tier = rate_for(visits)
        subtotal = to_cents(sum(item.price * item.qty for item in self.items))
        discount = to_cents(subtotal * tier.rate)
        final_total = max(0.0, to_cents(subtotal - discount))
        return OrderTotals(subtotal=subtotal, tier=tier, discount=discount, final_total=final_total)

    def begin_payment(self) -> OrderTotals:
        if self.customer is None:
            raise ValidationError("Select a customer before taking payment")
        if not self.items:
            raise ValidationError("Add at least one item to the order")
        self._require(*EDITABLE_STATES)
        self.state = OrderState.AWAITING_PAYMENT
        return self.totals()

    def submit_payment(self, raw_amount) -> PaymentOutcome:
        """
        Feed one payment input into the payment state machine

        Non-numeric or negative input is rejected without changing state; an
        amount below the final total moves to INSUFFICIENT_FUNDS; anything else
        completes the order.
        """
        self._require(*PAYMENT_STATES)
        totals = self.totals()

        try:
            paid = float(str(raw_amount).strip())
        except (TypeError, ValueError):
            return PaymentOutcome(self.state, f"Invalid amount: {raw_amount!r}", self._last_shortfall)
        if math.isnan(paid) or math.isinf(paid) or paid < 0:
            return PaymentOutcome(self.state, f"Invalid amount: {raw_amount!r}", self._last_shortfall)

        if paid + 1e-9 < totals.final_total:
            shortfall = to_cents(totals.final_total - paid)
            self._last_shortfall = shortfall
            self.state = OrderState.INSUFFICIENT_FUNDS
            return PaymentOutcome(
                self.state,
                f"Insufficient payment: {shortfall:.2f} short of {totals.final_total:.2f}",
                shortfall,
            )

        receipt = self._finalize(paid, totals)
        if receipt is None:
            return PaymentOutcome(OrderState.ABANDONED, "Order was abandoned before it completed")
        return PaymentOutcome(OrderState.COMPLETED, "Payment accepted", receipt=receipt)

    def abandon(self) -> None:
        """Discard the in-progress order; nothing is persisted"""
        if self.state == OrderState.COMPLETED:
            raise ValidationError("Order is already completed")
        logger.debug(f"Abandoning order in state {self.state.value}")
        self._generation += 1
        self._clear()
        self.state = OrderState.ABANDONED

    def new_order(self) -> None:
        """Start over with an empty order"""
        self._generation += 1
        self._clear()
        self.state = OrderState.IDLE

    # Internals

    def _finalize(self, paid: float, totals: OrderTotals) -> Optional[Receipt]:
        customer = self.customer
        generation = self._generation
        now = self.clock()
        items = self.items

        transaction = Transaction(
            id=0,
            customer_id=customer.id,
            items=items,
            total=totals.subtotal,
            discount=totals.discount,
            final_total=totals.final_total,
            transaction_date=now,
        )

        saved: Optional[Transaction] = None
        stored_remotely = False
        if customer.provisional:
            self._warn("Customer is not on the server yet; transaction kept locally")
        else:
            try:
                saved = self.gateway.create_transaction(self._transaction_request(transaction))
                stored_remotely = True
            except GatewayError as e:
                logger.warning(f"Could not persist transaction: {e}")
                self._warn(f"Transaction saved locally only ({e})")

        if generation != self._generation:
            logger.info("Dropping transaction response for an abandoned order")
            return None

        if saved is not None:
            transaction = Transaction(
                id=saved.id,
                customer_id=customer.id,
                items=items,
                total=totals.subtotal,
                discount=totals.discount,
                final_total=totals.final_total,
                transaction_date=saved.transaction_date or now,
            )
        else:
            transaction = Transaction(
                id=next_transaction_id(self.store.state),
                customer_id=customer.id,
                items=items,
                total=totals.subtotal,
                discount=totals.discount,
                final_total=totals.final_total,
                transaction_date=now,
                provisional=not stored_remotely,
            )

        self.store.dispatch(record_sale, customer.id, transaction)
        updated = self.store.state.find_customer(customer.id)
        self._push_visits(updated)

        upcoming = next_tier(updated.transactions)
        receipt = Receipt(
            transaction_id=transaction.id,
            customer_id=updated.id,
            customer_name=updated.name,
            visits=updated.transactions,
            loyalty_label=totals.tier.label.value,
            items=items,
            subtotal=totals.subtotal,
            discount_percent=totals.tier.percent,
            discount=totals.discount,
            final_total=totals.final_total,
            paid=paid,
            change=to_cents(paid - totals.final_total),
            transaction_date=transaction.transaction_date,
            provisional=transaction.provisional,
            next_tier_label=upcoming[0].label.value if upcoming else None,
            visits_to_next_tier=upcoming[1] if upcoming else None,
            warnings=tuple(self.warnings),
        )
        self.state = OrderState.COMPLETED
        logger.info(f"Order completed: transaction {transaction.id} for customer {updated.id}")
        return receipt

    def _push_visits(self, customer: Customer) -> None:
        """Send the absolute visit count, so a retry can never double-count"""
        if customer.provisional:
            return
        try:
            self.gateway.update_customer(customer)
        except GatewayError as e:
            logger.warning(f"Could not update visit count for customer {customer.id}: {e}")
            self._warn("Visit count will be synced later")
            return
        self.store.dispatch(mark_customer_synced, customer.id)

    @staticmethod
    def _transaction_request(transaction: Transaction) -> dict:
        body = transaction.to_dict()
        body.pop("id")
        return body

    def _warn(self, message: str) -> None:
        self.warnings.append(message)

    def _clear(self) -> None:
        self.items = ()
        self._last_shortfall = 0.0
        self.warnings = []
        self._customer_id = None
        self._pending_identifier = None

    def _require(self, *allowed: OrderState) -> None:
        if self.state not in allowed:
            expected = ", ".join(state.value for state in allowed)
            raise ValidationError(f"Order is {self.state.value}; expected one of: {expected}")
