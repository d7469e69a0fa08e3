"""
Sales reports over non-overlapping trailing date windows
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from .exceptions import ValidationError
from .menu import PASTRY_CATEGORY, UNKNOWN_CATEGORY, category_for, is_drink
from .models import Customer, Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeFrame:
    id: str
    label: str
    days: int


TIME_FRAMES: Tuple[TimeFrame, ...] = tuple(sorted(
    (
        TimeFrame("week", "Last 7 Days", 7),
        TimeFrame("1month", "Last 1 Month", 30),
        TimeFrame("3months", "Last 3 Months", 90),
        TimeFrame("6months", "Last 6 Months", 180),
        TimeFrame("1year", "Last 1 Year", 365),
    ),
    key=lambda frame: frame.days,
))


@dataclass(frozen=True)
class ItemSales:
    name: str
    category: str
    qty: int


@dataclass(frozen=True)
class CustomerActivity:
    id: int
    name: str
    txn_count: int


@dataclass(frozen=True)
class Report:
    """
    Aggregates for one time window

    Attributes:
        frame: the window reported on
        start: inclusive start of the window
        end: end of the window (inclusive for the most recent frame, exclusive otherwise)
        total_transactions: transactions dated inside the window
        total_revenue: sum of final totals
        total_discount: sum of discounts given
        average_order_value: revenue / transactions (0 when there are none)
        top_drink: best-selling item in a drink category
        top_pastry: best-selling pastry
        most_loyal_customer: customer with the most transactions in the window
        customers_in_frame: distinct customers, most transactions first
        item_sales: quantities per item, highest first
    """
    frame: TimeFrame
    start: datetime
    end: datetime
    total_transactions: int = 0
    total_revenue: float = 0.0
    total_discount: float = 0.0
    average_order_value: float = 0.0
    top_drink: Optional[ItemSales] = None
    top_pastry: Optional[ItemSales] = None
    most_loyal_customer: Optional[CustomerActivity] = None
    customers_in_frame: Tuple[CustomerActivity, ...] = field(default_factory=tuple)
    item_sales: Tuple[ItemSales, ...] = field(default_factory=tuple)

    @property
    def customers_count(self) -> int:
        return len(self.customers_in_frame)

    @property
    def is_empty(self) -> bool:
        """No customers bought anything in this window"""
        return self.customers_count == 0


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def cutoff(days: int, now: datetime) -> datetime:
    """Start of the window: midnight today minus (days - 1), so 7 days includes today"""
    return start_of_day(now) - timedelta(days=days - 1)


def find_frame(frame_id: str) -> Tuple[int, TimeFrame]:
    for index, frame in enumerate(TIME_FRAMES):
        if frame.id == frame_id:
            return index, frame
    known = ", ".join(frame.id for frame in TIME_FRAMES)
    raise ValidationError(f"Unknown time frame {frame_id!r}; choose one of: {known}")


def frame_bounds(index: int, now: datetime) -> Tuple[datetime, datetime]:
    """
    Window for the frame at index in TIME_FRAMES

    The smallest frame is [cutoff, now]; every other frame is
    [cutoff, cutoff of the next-smaller frame).
    """
    start = cutoff(TIME_FRAMES[index].days, now)
    if index == 0:
        return start, now
    return start, cutoff(TIME_FRAMES[index - 1].days, now)


def in_window(moment: Optional[datetime], index: int, now: datetime) -> bool:
    if moment is None:
        return False
    start, end = frame_bounds(index, now)
    if index == 0:
        return start <= moment <= end
    return start <= moment < end


def counts_per_frame(transactions: Sequence[Transaction], now: Optional[datetime] = None) -> Dict[str, int]:
    """Number of transactions falling in each frame, keyed by frame id"""
    now = now or datetime.now()
    counts = {frame.id: 0 for frame in TIME_FRAMES}
    for transaction in transactions:
        for index, frame in enumerate(TIME_FRAMES):
            if in_window(transaction.transaction_date, index, now):
                counts[frame.id] += 1
                break
    return counts


class ReportEngine:
    """
    Builds a Report for one frame from the full transaction and customer lists

    Ties for top items and most loyal customer go to whichever was
    encountered first while walking the transactions in order.
    """

    def generate(
        self,
        frame_id: str,
        transactions: Sequence[Transaction],
        customers: Sequence[Customer],
        now: Optional[datetime] = None
    ) -> Report:
        now = now or datetime.now()
        index, frame = find_frame(frame_id)
        start, end = frame_bounds(index, now)

        selected = [t for t in transactions if in_window(t.transaction_date, index, now)]
        logger.debug(f"{frame.id}: {len(selected)} of {len(transactions)} transactions in window")

        revenue = sum(t.final_total for t in selected)
        discount = sum(t.discount for t in selected)
        count = len(selected)

        item_sales = self._aggregate_items(selected)
        activity = self._customer_activity(selected, customers)

        return Report(
            frame=frame,
            start=start,
            end=end,
            total_transactions=count,
            total_revenue=revenue,
            total_discount=discount,
            average_order_value=revenue / count if count else 0.0,
            top_drink=next((item for item in item_sales if is_drink(item.category)), None),
            top_pastry=next((item for item in item_sales if item.category == PASTRY_CATEGORY), None),
            most_loyal_customer=self._most_loyal(activity),
            customers_in_frame=tuple(sorted(activity, key=lambda c: c.txn_count, reverse=True)),
            item_sales=tuple(item_sales),
        )

    def _aggregate_items(self, transactions: Sequence[Transaction]) -> List[ItemSales]:
        """Quantity per item name, highest first; equal quantities keep first-seen order"""
        quantities: Dict[str, int] = {}
        categories: Dict[str, str] = {}
        for transaction in transactions:
            for item in transaction.items:
                if item.name not in quantities:
                    quantities[item.name] = 0
                    categories[item.name] = item.category or category_for(item.name) or UNKNOWN_CATEGORY
                quantities[item.name] += item.qty or 0

        sales = [ItemSales(name, categories[name], qty) for name, qty in quantities.items()]
        # sorted() is stable, so ties stay in insertion order
        return sorted(sales, key=lambda item: item.qty, reverse=True)

    def _customer_activity(
        self,
        transactions: Sequence[Transaction],
        customers: Sequence[Customer]
    ) -> List[CustomerActivity]:
        counts: Dict[int, int] = {}
        for transaction in transactions:
            if transaction.customer_id is None:
                continue
            counts[transaction.customer_id] = counts.get(transaction.customer_id, 0) + 1

        names = {customer.id: customer.name for customer in customers}
        return [
            CustomerActivity(customer_id, names.get(customer_id) or f"Customer {customer_id}", txn_count)
            for customer_id, txn_count in counts.items()
        ]

    @staticmethod
    def _most_loyal(activity: Sequence[CustomerActivity]) -> Optional[CustomerActivity]:
        best = None
        for entry in activity:
            if best is None or entry.txn_count > best.txn_count:
                best = entry
        return best
