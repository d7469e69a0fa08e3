"""
REST gateway client for customers and transactions
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from .config import Settings, get_settings, normalize_base_url
from .exceptions import GatewayError, MalformedResponseError, ValidationError
from .models import Customer, Transaction

logger = logging.getLogger(__name__)

# Envelope keys that may wrap a collection payload
ENVELOPE_KEYS = ("data", "customers", "transactions")


def _is_id_key(key: Any) -> bool:
    try:
        int(str(key))
    except ValueError:
        return False
    return True


def unwrap_collection(payload: Any) -> Tuple[List[Dict[str, Any]], Optional[MalformedResponseError]]:
    """
    Extract a list of records from the response envelopes the gateway is known to use

    Accepts a raw list, {"data": [...]}, {"customers": [...]}, {"transactions": [...]}
    or an id-keyed map ({"1": {...}, "2": {...}}).
    Returns (records, None) on success or ([], error) for any other shape.
    """
    if isinstance(payload, list):
        records = payload
    elif isinstance(payload, dict):
        records = None
        for key in ENVELOPE_KEYS:
            if isinstance(payload.get(key), list):
                records = payload[key]
                break

        if records is None:
            if payload and all(_is_id_key(key) and isinstance(value, dict) for key, value in payload.items()):
                records = []
                for key, value in payload.items():
                    record = dict(value)
                    record.setdefault("id", key)
                    records.append(record)
            else:
                return [], MalformedResponseError(
                    f"Unrecognized collection envelope with keys: {sorted(payload)[:5]}"
                )
    else:
        return [], MalformedResponseError(
            f"Expected a list or object, got {type(payload).__name__}"
        )

    dicts = [record for record in records if isinstance(record, dict)]
    if len(dicts) != len(records):
        logger.warning(f"Skipped {len(records) - len(dicts)} non-object entries in collection")
    return dicts, None


class ApiGateway:
    """
    Thin JSON client over the POS backend

    Raises GatewayError for non-2xx responses, timeouts and connection failures.
    """

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        """
        Initialize the gateway

        Args:
            settings: connection settings (uses the process-wide settings if None)
            session: requests session to reuse (a new one is created if None)
        """
        settings = settings or get_settings()
        self.base_url = normalize_base_url(settings.api_url)
        self.auth_token = settings.api_token
        self.timeout = settings.timeout
        self.session = session or requests.Session()

    # Runtime overrides

    def set_base_url(self, url: str) -> None:
        self.base_url = normalize_base_url(url)

    def set_auth_token(self, token: Optional[str]) -> None:
        self.auth_token = token

    def clear_auth_token(self) -> None:
        self.auth_token = None

    def set_timeout(self, seconds: float) -> None:
        if seconds <= 0:
            raise ValidationError("timeout must be positive")
        self.timeout = seconds

    # Customers

    def list_customers(self, strict: bool = False) -> List[Customer]:
        """
        Fetch every customer

        Args:
            strict: raise MalformedResponseError on an unrecognized payload
                    instead of returning an empty list
        """
        records = self._collection("/api/customers", strict)
        return [Customer.from_dict(record) for record in records]

    def get_customer(self, customer_id: int) -> Customer:
        return Customer.from_dict(self._object(self._request("GET", f"/api/customers/{customer_id}")))

    def create_customer(self, name: str, contact: str = "") -> Optional[Customer]:
        """
        Register a customer

        Returns the stored customer, or None when the server sent no usable body
        """
        record = self._created(self._request("POST", "/api/customers", {"name": name, "contact": contact}))
        return Customer.from_dict(record) if record else None

    def update_customer(self, customer: Customer) -> Optional[Customer]:
        record = self._created(self._request("PUT", f"/api/customers/{customer.id}", customer.to_dict()))
        return Customer.from_dict(record) if record else None

    def delete_customer(self, customer_id: int) -> None:
        self._request("DELETE", f"/api/customers/{customer_id}")

    # Transactions

    def list_transactions(self, strict: bool = False) -> List[Transaction]:
        records = self._collection("/api/transactions", strict)
        return [Transaction.from_dict(record) for record in records]

    def get_transaction(self, transaction_id: int) -> Transaction:
        return Transaction.from_dict(self._object(self._request("GET", f"/api/transactions/{transaction_id}")))

    def create_transaction(self, request_body: Dict[str, Any]) -> Optional[Transaction]:
        """
        Persist a transaction

        request_body is shaped like {"customerId": 1, "items": [...], "discount": 0.5, ...}.
        Returns the stored transaction, or None when the server sent no usable body.
        """
        record = self._created(self._request("POST", "/api/transactions", request_body))
        return Transaction.from_dict(record) if record else None

    # Helpers

    @staticmethod
    def parse_id(maybe_id: Any) -> Any:
        """Convert user input to an int id when possible, otherwise return it unchanged"""
        if maybe_id is None:
            return None
        try:
            return int(str(maybe_id).strip())
        except ValueError:
            return maybe_id

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")

        try:
            response = self.session.request(
                method,
                url,
                json=body,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise GatewayError(f"Request timed out after {self.timeout}s: {method} {url}") from e
        except requests.exceptions.RequestException as e:
            raise GatewayError(f"Request failed: {method} {url}: {e}") from e

        return self._handle_response(response)

    def _handle_response(self, response: requests.Response) -> Any:
        content_type = response.headers.get("content-type", "")
        is_json = "application/json" in content_type

        if response.ok:
            if response.status_code == 204 or not response.content:
                return None
            if is_json:
                try:
                    return response.json()
                except ValueError as e:
                    raise GatewayError(
                        f"Invalid JSON in response from {response.url}",
                        status=response.status_code,
                        body=response.text,
                    ) from e
            return response.text

        body: Any
        try:
            body = response.json() if is_json else response.text
        except ValueError:
            body = response.text

        if isinstance(body, dict) and body.get("message"):
            message = str(body["message"])
        elif isinstance(body, str) and body:
            message = body
        else:
            message = f"HTTP {response.status_code} {response.reason or ''}".strip()

        raise GatewayError(message, status=response.status_code, body=body)

    def _collection(self, path: str, strict: bool) -> List[Dict[str, Any]]:
        records, error = unwrap_collection(self._request("GET", path))
        if error is not None:
            if strict:
                raise error
            logger.warning(f"{path}: {error}; treating as empty")
        return records

    @staticmethod
    def _created(payload: Any) -> Optional[Dict[str, Any]]:
        """The record echoed back by a write, if it carries an id"""
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            payload = payload["data"]
        if isinstance(payload, dict) and payload.get("id") is not None:
            return payload
        return None

    @staticmethod
    def _object(payload: Any) -> Dict[str, Any]:
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            payload = payload["data"]
        if not isinstance(payload, dict):
            raise MalformedResponseError(f"Expected an object, got {type(payload).__name__}")
        return payload
