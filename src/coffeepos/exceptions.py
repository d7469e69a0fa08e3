"""
Custom exceptions
"""

from typing import Any, Optional


class CoffeePOSError(Exception):
    """Base exception"""
    pass


class GatewayError(CoffeePOSError):
    """
    Network or server failure talking to the REST gateway

    Attributes:
        status: HTTP status code (None when the request never got a response)
        body: parsed response body, if any
    """

    def __init__(self, message: str, status: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status = status
        self.body = body


class ValidationError(CoffeePOSError):
    """Invalid user input or order state"""
    pass


class MalformedResponseError(CoffeePOSError):
    """Gateway returned a payload with an unexpected shape"""
    pass


class FormattingError(CoffeePOSError):
    """Issues formatting output"""
    pass
