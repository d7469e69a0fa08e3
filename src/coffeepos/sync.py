"""
Push records created while the gateway was unreachable
"""

import logging
from dataclasses import dataclass, field, replace
from typing import List

from .api_client import ApiGateway
from .exceptions import GatewayError
from .store import (
    Store,
    mark_customer_synced,
    reconcile_customer_id,
    reconcile_transaction_id,
)

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """
    Outcome of one sync pass

    Attributes:
        customers: provisional customers confirmed by the server
        transactions: provisional transactions confirmed by the server
        visit_updates: customers whose visit count was pushed
        errors: messages for anything still pending
    """
    customers: int = 0
    transactions: int = 0
    visit_updates: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.errors


def sync_pending(store: Store, gateway: ApiGateway) -> SyncResult:
    """
    Retry every provisional record against the gateway

    Customers go first so their transactions can reference the server id.
    Visit counts are sent as absolute values, so a sale that was already
    counted locally is never counted again.
    """
    result = SyncResult()

    attempted = set()
    while True:
        customer = next((c for c in store.state.provisional_customers if c.id not in attempted), None)
        if customer is None:
            break
        attempted.add(customer.id)
        try:
            confirmed = gateway.create_customer(customer.name, customer.contact)
        except GatewayError as e:
            result.errors.append(f"Customer {customer.id}: {e}")
            continue
        if confirmed is None:
            logger.info(f"Server stored customer {customer.id} without returning an id; keeping the local id")
            confirmed = replace(customer, provisional=False)
        else:
            logger.info(f"Provisional customer {customer.id} is now {confirmed.id}")
        store.dispatch(reconcile_customer_id, customer.id, confirmed)
        result.customers += 1

    attempted = set()
    while True:
        transaction = next((t for t in store.state.provisional_transactions if t.id not in attempted), None)
        if transaction is None:
            break
        attempted.add(transaction.id)
        owner = store.state.find_customer(transaction.customer_id)
        if owner is None or owner.provisional:
            result.errors.append(f"Transaction {transaction.id}: customer not synced")
            continue

        body = transaction.to_dict()
        body.pop("id")
        try:
            confirmed = gateway.create_transaction(body)
        except GatewayError as e:
            result.errors.append(f"Transaction {transaction.id}: {e}")
            continue
        if confirmed is None:
            logger.info(f"Server stored transaction {transaction.id} without returning an id; keeping the local id")
            merged = transaction
        else:
            merged = replace(transaction, id=confirmed.id,
                             transaction_date=confirmed.transaction_date or transaction.transaction_date)
            logger.info(f"Provisional transaction {transaction.id} is now {confirmed.id}")
        store.dispatch(reconcile_transaction_id, transaction.id, merged)
        result.transactions += 1

    for customer_id in sorted(store.state.dirty_customers):
        customer = store.state.find_customer(customer_id)
        if customer is None:
            store.dispatch(mark_customer_synced, customer_id)
            continue
        if customer.provisional:
            continue
        try:
            gateway.update_customer(customer)
        except GatewayError as e:
            result.errors.append(f"Visit count for customer {customer_id}: {e}")
            continue
        store.dispatch(mark_customer_synced, customer_id)
        result.visit_updates += 1

    if result.errors:
        logger.warning(f"Sync left {len(result.errors)} record(s) pending")
    return result
