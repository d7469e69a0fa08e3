__version__ = "0.3.0"

# Package metadata
__description__ = "Coffee shop point-of-sale client with loyalty discounts and sales reports"

# Public API
from .api_client import ApiGateway, unwrap_collection
from .discount import DiscountTier, LoyaltyLabel, rate_for, next_tier
from .models import Customer, LineItem, Transaction
from .order_workflow import OrderWorkflow, OrderState, OrderTotals, PaymentOutcome, Receipt
from .registry import CustomerRegistry
from .reporting import ReportEngine, Report, TimeFrame, TIME_FRAMES, counts_per_frame
from .store import Store, StoreSnapshot
from .sync import sync_pending, SyncResult
from .formatter import POSFormatter
from .exceptions import (
    CoffeePOSError,
    GatewayError,
    ValidationError,
    MalformedResponseError,
    FormattingError
)

__all__ = [
    # Version
    "__version__",

    # Main classes
    "ApiGateway",
    "OrderWorkflow",
    "CustomerRegistry",
    "ReportEngine",
    "Store",
    "POSFormatter",

    # Functions
    "rate_for",
    "next_tier",
    "counts_per_frame",
    "sync_pending",
    "unwrap_collection",

    # Data classes
    "Customer",
    "LineItem",
    "Transaction",
    "DiscountTier",
    "LoyaltyLabel",
    "OrderState",
    "OrderTotals",
    "PaymentOutcome",
    "Receipt",
    "Report",
    "TimeFrame",
    "TIME_FRAMES",
    "StoreSnapshot",
    "SyncResult",

    # Exceptions
    "CoffeePOSError",
    "GatewayError",
    "ValidationError",
    "MalformedResponseError",
    "FormattingError"
]
