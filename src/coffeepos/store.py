"""
Local state container: an immutable snapshot replaced by pure reducers
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .models import Customer, Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreSnapshot:
    """
    Everything the POS knows locally

    Attributes:
        customers: cached customer records, unique by id
        transactions: cached transactions, unique by id
        customer_id_floor: highest customer id ever issued or seen (ids are never reused)
        transaction_id_floor: highest transaction id ever issued or seen
        dirty_customers: ids whose visit count still has to be pushed to the gateway
    """
    customers: Tuple[Customer, ...] = ()
    transactions: Tuple[Transaction, ...] = ()
    customer_id_floor: int = 0
    transaction_id_floor: int = 0
    dirty_customers: FrozenSet[int] = field(default_factory=frozenset)

    def find_customer(self, customer_id: int) -> Optional[Customer]:
        for customer in self.customers:
            if customer.id == customer_id:
                return customer
        return None

    def find_transaction(self, transaction_id: int) -> Optional[Transaction]:
        for transaction in self.transactions:
            if transaction.id == transaction_id:
                return transaction
        return None

    @property
    def provisional_customers(self) -> List[Customer]:
        return [c for c in self.customers if c.provisional]

    @property
    def provisional_transactions(self) -> List[Transaction]:
        return [t for t in self.transactions if t.provisional]


Reducer = Callable[..., StoreSnapshot]


def dedupe_by_id(records: Iterable) -> list:
    """Keep one record per id, last seen wins, in first-seen order"""
    latest: Dict[int, object] = {}
    for record in records:
        latest[record.id] = record
    return list(latest.values())


def _max_id(records: Iterable) -> int:
    return max((record.id for record in records), default=0)


# Reducers. Each takes a snapshot and returns a new one; none mutate their input.

def next_customer_id(state: StoreSnapshot) -> int:
    """Provisional id for a new customer: one past anything issued or known"""
    return max(state.customer_id_floor, _max_id(state.customers)) + 1


def next_transaction_id(state: StoreSnapshot) -> int:
    return max(state.transaction_id_floor, _max_id(state.transactions)) + 1


def replace_customers(state: StoreSnapshot, fetched: Iterable[Customer]) -> StoreSnapshot:
    """
    Adopt an authoritative customer list from the gateway

    Provisional local customers are kept. One whose id collides with a fetched
    id is renumbered past every known id, and its transactions follow it.
    A customer with an unpushed visit count keeps the higher of the two counts.
    """
    fetched = dedupe_by_id(fetched)
    for index, customer in enumerate(fetched):
        if customer.id not in state.dirty_customers:
            continue
        local = state.find_customer(customer.id)
        if local is not None and not local.provisional and local.transactions > customer.transactions:
            fetched[index] = replace(customer, transactions=local.transactions)
    fetched_ids = {customer.id for customer in fetched}
    new_state = replace(
        state,
        customers=tuple(fetched),
        customer_id_floor=max(state.customer_id_floor, _max_id(fetched)),
    )

    for pending in state.provisional_customers:
        if pending.id in fetched_ids:
            new_id = next_customer_id(new_state)
            logger.warning(f"Provisional customer id {pending.id} collides with a server id; renumbering to {new_id}")
            new_state = _remap_customer(new_state, pending.id, replace(pending, id=new_id), keep_existing=True)
        else:
            new_state = replace(new_state, customers=new_state.customers + (pending,))
        fetched_ids.add(new_state.customers[-1].id)

    return new_state


def replace_transactions(state: StoreSnapshot, fetched: Iterable[Transaction]) -> StoreSnapshot:
    """Adopt an authoritative transaction list, keeping unsynced local ones"""
    fetched = dedupe_by_id(fetched)
    fetched_ids = {t.id for t in fetched}
    new_state = replace(
        state,
        transactions=tuple(fetched),
        transaction_id_floor=max(state.transaction_id_floor, _max_id(fetched)),
    )
    for pending in state.provisional_transactions:
        if pending.id in fetched_ids:
            pending = replace(pending, id=next_transaction_id(new_state))
        new_state = replace(new_state, transactions=new_state.transactions + (pending,))
        fetched_ids.add(pending.id)
    return new_state


def add_customer(state: StoreSnapshot, customer: Customer) -> StoreSnapshot:
    """Insert or replace a customer; a provisional record in the way of a server id is renumbered"""
    if not customer.provisional:
        state = _evict_provisional_customer(state, customer.id)
    customers = dedupe_by_id(state.customers + (customer,))
    return replace(
        state,
        customers=tuple(customers),
        customer_id_floor=max(state.customer_id_floor, customer.id),
    )


def remove_customer(state: StoreSnapshot, customer_id: int) -> StoreSnapshot:
    return replace(
        state,
        customers=tuple(c for c in state.customers if c.id != customer_id),
        customer_id_floor=max(state.customer_id_floor, _max_id(state.customers)),
        dirty_customers=state.dirty_customers - {customer_id},
    )


def increment_visits(state: StoreSnapshot, customer_id: int) -> StoreSnapshot:
    """Count one more completed purchase for a customer and mark it for pushing"""
    customers = tuple(
        replace(c, transactions=c.transactions + 1) if c.id == customer_id else c
        for c in state.customers
    )
    return replace(state, customers=customers, dirty_customers=state.dirty_customers | {customer_id})


def mark_customer_synced(state: StoreSnapshot, customer_id: int) -> StoreSnapshot:
    return replace(state, dirty_customers=state.dirty_customers - {customer_id})


def add_transaction(state: StoreSnapshot, transaction: Transaction) -> StoreSnapshot:
    if not transaction.provisional:
        state = _evict_provisional_transaction(state, transaction.id)
    transactions = dedupe_by_id(state.transactions + (transaction,))
    return replace(
        state,
        transactions=tuple(transactions),
        transaction_id_floor=max(state.transaction_id_floor, transaction.id),
    )


def record_sale(state: StoreSnapshot, customer_id: int, transaction: Transaction) -> StoreSnapshot:
    """Finalization: bump the visit count and store the transaction in one snapshot"""
    return add_transaction(increment_visits(state, customer_id), transaction)


def reconcile_customer_id(state: StoreSnapshot, provisional_id: int, confirmed: Customer) -> StoreSnapshot:
    """
    Swap a provisional customer for the server's record

    The server id wins. Transactions referencing the provisional id are moved
    to the confirmed id. The local visit count is kept if it is higher, since
    purchases may have happened while offline.
    """
    if confirmed.id != provisional_id:
        state = _evict_provisional_customer(state, confirmed.id)

    local = state.find_customer(provisional_id)
    visits = max(confirmed.transactions, local.transactions if local else 0)
    confirmed = replace(confirmed, transactions=visits, provisional=False)
    return _remap_customer(state, provisional_id, confirmed, keep_existing=False)


def reconcile_transaction_id(state: StoreSnapshot, provisional_id: int, confirmed: Transaction) -> StoreSnapshot:
    """Swap a provisional transaction for the server's record; the server id wins"""
    confirmed = replace(confirmed, provisional=False)
    if confirmed.id != provisional_id:
        state = _evict_provisional_transaction(state, confirmed.id)
    transactions = [t for t in state.transactions if t.id not in (provisional_id, confirmed.id)]
    transactions.append(confirmed)
    return replace(
        state,
        transactions=tuple(transactions),
        transaction_id_floor=max(state.transaction_id_floor, confirmed.id),
    )


def _evict_provisional_customer(state: StoreSnapshot, customer_id: int) -> StoreSnapshot:
    """Move a provisional customer off an id the server has claimed"""
    clash = state.find_customer(customer_id)
    if clash is None or not clash.provisional:
        return state
    new_id = max(next_customer_id(state), customer_id + 1)
    logger.warning(f"Provisional customer id {customer_id} taken by the server; renumbering to {new_id}")
    return _remap_customer(state, customer_id, replace(clash, id=new_id), keep_existing=True)


def _evict_provisional_transaction(state: StoreSnapshot, transaction_id: int) -> StoreSnapshot:
    clash = state.find_transaction(transaction_id)
    if clash is None or not clash.provisional:
        return state
    new_id = max(next_transaction_id(state), transaction_id + 1)
    logger.warning(f"Provisional transaction id {transaction_id} taken by the server; renumbering to {new_id}")
    transactions = tuple(replace(t, id=new_id) if t is clash else t for t in state.transactions)
    return replace(state, transactions=transactions, transaction_id_floor=max(state.transaction_id_floor, new_id))


def _remap_customer(state: StoreSnapshot, old_id: int, customer: Customer, keep_existing: bool) -> StoreSnapshot:
    """
    Give the customer stored under old_id a new record (and possibly a new id)

    With keep_existing, a different record already stored under the new id
    stays (that is the fetched server customer); otherwise it is replaced.
    """
    customers = []
    for c in state.customers:
        if c.id == old_id and c.provisional:
            continue
        if c.id == customer.id and not keep_existing:
            continue
        customers.append(c)
    customers.append(customer)

    transactions = tuple(
        replace(t, customer_id=customer.id) if t.customer_id == old_id and t.provisional else t
        for t in state.transactions
    )
    dirty = state.dirty_customers
    if old_id in dirty:
        dirty = (dirty - {old_id}) | {customer.id}

    return replace(
        state,
        customers=tuple(customers),
        transactions=transactions,
        customer_id_floor=max(state.customer_id_floor, customer.id),
        dirty_customers=dirty,
    )


class Store:
    """
    Holds the current snapshot; every change is a whole-value replacement

    Components receive the store by reference and call dispatch() with a reducer.
    """

    def __init__(self, initial: Optional[StoreSnapshot] = None):
        self._state = initial or StoreSnapshot()
        self._listeners: List[Callable[[StoreSnapshot], None]] = []

    @property
    def state(self) -> StoreSnapshot:
        return self._state

    def dispatch(self, reducer: Reducer, *args) -> StoreSnapshot:
        """Apply a reducer to the current snapshot and publish the result"""
        new_state = reducer(self._state, *args)
        logger.debug(f"{reducer.__name__}: {len(new_state.customers)} customers, "
                     f"{len(new_state.transactions)} transactions")
        self._state = new_state
        for listener in list(self._listeners):
            listener(new_state)
        return new_state

    def subscribe(self, listener: Callable[[StoreSnapshot], None]) -> Callable[[], None]:
        """Register a callback for new snapshots; returns an unsubscribe function"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
