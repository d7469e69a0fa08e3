"""
Customer registry: keeps the local customer cache in step with the gateway
"""

import logging
from typing import Callable, List, Optional

from .api_client import ApiGateway
from .exceptions import CoffeePOSError, GatewayError, MalformedResponseError
from .models import Customer
from .store import Store, dedupe_by_id, remove_customer, replace_customers

logger = logging.getLogger(__name__)


class CustomerRegistry:
    """
    Lists and deletes customers

    Failures never propagate: they leave the cache as it was and are exposed
    through last_error for display.
    """

    def __init__(self, store: Store, gateway: ApiGateway):
        self.store = store
        self.gateway = gateway
        self.last_error: Optional[str] = None

    @property
    def customers(self) -> List[Customer]:
        """Cached customers, one per id (last seen wins)"""
        return dedupe_by_id(self.store.state.customers)

    def refresh(self) -> List[Customer]:
        """
        Replace the cache with the authoritative list from the gateway

        On a network failure the previous list stays. An unrecognized payload
        is treated as an empty list and reported through last_error.
        """
        self.last_error = None
        try:
            fetched = self.gateway.list_customers(strict=True)
        except MalformedResponseError as e:
            logger.error(f"Unexpected customer list payload: {e}")
            self.last_error = f"Unexpected response from server: {e}"
            fetched = []
        except GatewayError as e:
            logger.error(f"Failed to load customers: {e}")
            self.last_error = f"Could not load customers: {e}"
            return self.customers

        self.store.dispatch(replace_customers, fetched)
        logger.debug(f"Loaded {len(fetched)} customers")
        return self.customers

    def delete(self, customer_id: int, confirm: Callable[[Customer], bool]) -> bool:
        """
        Delete a customer after confirmation

        Returns True if the customer was removed from the cache.
        """
        self.last_error = None
        customer = self.store.state.find_customer(customer_id)
        if customer is None:
            self.last_error = f"Customer {customer_id} not found"
            return False

        if not confirm(customer):
            logger.debug(f"Deletion of customer {customer_id} cancelled")
            return False

        if not customer.provisional:
            try:
                self.gateway.delete_customer(customer_id)
            except CoffeePOSError as e:
                logger.error(f"Failed to delete customer {customer_id}: {e}")
                self.last_error = f"Could not delete customer {customer_id}: {e}"
                return False

        self.store.dispatch(remove_customer, customer_id)
        logger.info(f"Deleted customer {customer_id}")
        return True
