"""
Tests for the customer registry
"""

import pytest
from unittest.mock import Mock

from coffeepos.api_client import ApiGateway
from coffeepos.config import Settings
from coffeepos.exceptions import GatewayError, MalformedResponseError
from coffeepos.models import Customer
from coffeepos.registry import CustomerRegistry
from coffeepos.store import Store, StoreSnapshot, increment_visits, next_customer_id
from coffeepos.sync import sync_pending


class TestCustomerRegistry:
    """Test cases for CustomerRegistry"""

    def setup_method(self):
        """Set up test fixtures"""
        self.store = Store(StoreSnapshot(customers=(
            Customer(1, "Ana", transactions=3),
            Customer(2, "Ben", transactions=12),
        )))
        self.gateway = Mock(spec=ApiGateway)
        self.registry = CustomerRegistry(self.store, self.gateway)

    def test_refresh_replaces_cache(self):
        self.gateway.list_customers.return_value = [Customer(1, "Ana", transactions=4), Customer(7, "Cy")]

        customers = self.registry.refresh()

        assert [c.id for c in customers] == [1, 7]
        assert customers[0].transactions == 4
        assert self.registry.last_error is None
        self.gateway.list_customers.assert_called_once_with(strict=True)

    def test_refresh_is_idempotent(self):
        self.gateway.list_customers.return_value = [Customer(1, "Ana"), Customer(2, "Ben")]
        first = self.registry.refresh()
        second = self.registry.refresh()
        assert first == second

    def test_refresh_dedupes_server_list(self):
        self.gateway.list_customers.return_value = [Customer(1, "Old"), Customer(1, "New")]
        customers = self.registry.refresh()
        assert len(customers) == 1
        assert customers[0].name == "New"

    def test_network_failure_keeps_previous_list(self):
        self.gateway.list_customers.side_effect = GatewayError("Request timed out")

        customers = self.registry.refresh()

        assert [c.name for c in customers] == ["Ana", "Ben"]
        assert "Could not load customers" in self.registry.last_error

    def test_malformed_payload_empties_list(self):
        self.gateway.list_customers.side_effect = MalformedResponseError("got a string")

        customers = self.registry.refresh()

        assert customers == []
        assert "Unexpected response" in self.registry.last_error

    def test_refresh_keeps_provisional_customers(self):
        self.store = Store(StoreSnapshot(customers=(Customer(9, "Local", provisional=True),)))
        self.registry = CustomerRegistry(self.store, self.gateway)
        self.gateway.list_customers.return_value = [Customer(1, "Ana")]

        customers = self.registry.refresh()

        assert [(c.id, c.provisional) for c in customers] == [(1, False), (9, True)]

    def test_refresh_keeps_unpushed_visit_count(self):
        """Test that a sale whose visit push failed survives a refresh and is pushed by sync"""
        self.store.dispatch(increment_visits, 1)
        self.gateway.list_customers.return_value = [Customer(1, "Ana", transactions=3), Customer(2, "Ben", transactions=12)]

        self.registry.refresh()

        assert self.store.state.find_customer(1).transactions == 4
        assert self.store.state.dirty_customers == frozenset({1})

        self.gateway.update_customer.return_value = None
        result = sync_pending(self.store, self.gateway)

        assert result.complete
        self.gateway.update_customer.assert_called_once()
        assert self.gateway.update_customer.call_args.args[0].transactions == 4

    def test_delete_confirmed(self):
        confirm = Mock(return_value=True)

        assert self.registry.delete(2, confirm) is True

        confirm.assert_called_once_with(Customer(2, "Ben", transactions=12))
        self.gateway.delete_customer.assert_called_once_with(2)
        assert [c.id for c in self.registry.customers] == [1]

    def test_deleted_id_is_not_reused(self):
        self.registry.delete(2, lambda customer: True)
        assert next_customer_id(self.store.state) == 3

    def test_delete_declined(self):
        assert self.registry.delete(2, lambda customer: False) is False
        self.gateway.delete_customer.assert_not_called()
        assert len(self.registry.customers) == 2
        assert self.registry.last_error is None

    def test_delete_unknown_customer(self):
        confirm = Mock(return_value=True)
        assert self.registry.delete(42, confirm) is False
        confirm.assert_not_called()
        assert self.registry.last_error == "Customer 42 not found"

    def test_delete_failure_keeps_customer(self):
        self.gateway.delete_customer.side_effect = GatewayError("HTTP 500", status=500)

        assert self.registry.delete(1, lambda customer: True) is False

        assert self.store.state.find_customer(1) is not None
        assert "Could not delete customer 1" in self.registry.last_error

    def test_delete_provisional_customer_stays_local(self):
        self.store = Store(StoreSnapshot(customers=(Customer(5, "Local", provisional=True),)))
        self.registry = CustomerRegistry(self.store, self.gateway)

        assert self.registry.delete(5, lambda customer: True) is True

        self.gateway.delete_customer.assert_not_called()
        assert self.registry.customers == []


@pytest.mark.parametrize("payload,expected", [
    ([{"id": 1, "name": "Ana"}], [1]),
    ({"customers": [{"id": 1}]}, [1]),
    ({"data": [{"id": 2}, {"id": 3}]}, [2, 3]),
    ({"4": {"name": "Dee"}}, [4]),
])
def test_refresh_accepts_collection_shapes(payload, expected):
    """Test the registry end to end over the accepted list envelopes"""
    session = Mock()
    response = Mock(status_code=200, ok=True, reason="OK", content=b"x", headers={"content-type": "application/json"})
    response.json.return_value = payload
    session.request.return_value = response

    gateway = ApiGateway(settings=Settings(api_url="http://pos.test", api_token=None), session=session)
    registry = CustomerRegistry(Store(), gateway)

    assert [c.id for c in registry.refresh()] == expected
