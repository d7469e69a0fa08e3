"""
Tests for the sales reports
"""

from datetime import datetime, timedelta

import pytest

from coffeepos.exceptions import ValidationError
from coffeepos.models import Customer, LineItem, Transaction
from coffeepos.reporting import (
    TIME_FRAMES,
    ReportEngine,
    counts_per_frame,
    cutoff,
    find_frame,
    frame_bounds,
    in_window,
)

NOW = datetime(2024, 6, 15, 14, 30)


def sale(txn_id, customer_id, when, *items, final_total=10.0, discount=0.0):
    return Transaction(
        id=txn_id,
        customer_id=customer_id,
        items=tuple(items),
        total=final_total + discount,
        discount=discount,
        final_total=final_total,
        transaction_date=when,
    )


def item(name, qty, category):
    return LineItem(name=name, qty=qty, price=1.0, category=category)


class TestWindows:
    """Test cases for the time frame windows"""

    def test_frames_sorted_by_length(self):
        assert [f.id for f in TIME_FRAMES] == ["week", "1month", "3months", "6months", "1year"]
        assert [f.days for f in TIME_FRAMES] == [7, 30, 90, 180, 365]

    def test_cutoff_includes_today(self):
        assert cutoff(7, NOW) == datetime(2024, 6, 9)
        assert cutoff(1, NOW) == datetime(2024, 6, 15)

    def test_frame_bounds(self):
        assert frame_bounds(0, NOW) == (datetime(2024, 6, 9), NOW)
        assert frame_bounds(1, NOW) == (datetime(2024, 5, 17), datetime(2024, 6, 9))

    def test_cutoff_instant_belongs_to_smaller_frame(self):
        moment = cutoff(7, NOW)
        assert in_window(moment, 0, NOW)
        assert not in_window(moment, 1, NOW)

    def test_just_before_cutoff_belongs_to_next_frame(self):
        moment = cutoff(7, NOW) - timedelta(microseconds=1)
        assert not in_window(moment, 0, NOW)
        assert in_window(moment, 1, NOW)

    def test_now_is_inclusive_and_future_excluded(self):
        assert in_window(NOW, 0, NOW)
        future = NOW + timedelta(seconds=1)
        assert not any(in_window(future, i, NOW) for i in range(len(TIME_FRAMES)))

    def test_missing_date_is_in_no_window(self):
        assert not any(in_window(None, i, NOW) for i in range(len(TIME_FRAMES)))

    def test_windows_are_disjoint_and_exhaustive(self):
        """Test that every moment in the last year lands in exactly one window"""
        oldest = cutoff(TIME_FRAMES[-1].days, NOW)
        moment = NOW
        while moment >= oldest - timedelta(days=3):
            hits = sum(in_window(moment, i, NOW) for i in range(len(TIME_FRAMES)))
            expected = 1 if moment >= oldest else 0
            assert hits == expected, moment
            moment -= timedelta(hours=7)

    def test_find_frame(self):
        index, frame = find_frame("3months")
        assert index == 2
        assert frame.days == 90

    def test_unknown_frame(self):
        with pytest.raises(ValidationError, match="Unknown time frame"):
            find_frame("fortnight")

    def test_counts_per_frame(self):
        transactions = [
            sale(1, 1, NOW),
            sale(2, 1, cutoff(7, NOW)),
            sale(3, 1, cutoff(7, NOW) - timedelta(days=1)),
            sale(4, 1, cutoff(365, NOW) - timedelta(days=1)),
            sale(5, 1, None),
        ]
        assert counts_per_frame(transactions, NOW) == {
            "week": 2, "1month": 1, "3months": 0, "6months": 0, "1year": 0,
        }


class TestReportEngine:
    """Test cases for ReportEngine"""

    def setup_method(self):
        """Set up test fixtures"""
        self.engine = ReportEngine()
        self.customers = [Customer(1, "Ana"), Customer(2, "Ben"), Customer(3, "Cy")]

    def test_totals(self):
        transactions = [
            sale(1, 1, NOW - timedelta(hours=1), final_total=9.0, discount=1.0),
            sale(2, 2, NOW - timedelta(days=2), final_total=6.0),
            sale(3, 2, NOW - timedelta(days=20), final_total=100.0),
        ]

        report = self.engine.generate("week", transactions, self.customers, now=NOW)

        assert report.total_transactions == 2
        assert report.total_revenue == pytest.approx(15.0)
        assert report.total_discount == pytest.approx(1.0)
        assert report.average_order_value == pytest.approx(7.5)
        assert report.customers_count == 2
        assert not report.is_empty

    def test_transaction_at_week_cutoff(self):
        """Test that a sale exactly at the week cutoff is counted in the week only"""
        transactions = [sale(1, 1, cutoff(7, NOW))]

        week = self.engine.generate("week", transactions, self.customers, now=NOW)
        month = self.engine.generate("1month", transactions, self.customers, now=NOW)

        assert week.total_transactions == 1
        assert month.total_transactions == 0

    def test_frames_partition_transactions(self):
        transactions = [sale(i, 1, NOW - timedelta(days=i)) for i in range(0, 400, 3)]
        totals = sum(
            self.engine.generate(frame.id, transactions, self.customers, now=NOW).total_transactions
            for frame in TIME_FRAMES
        )
        in_year = [t for t in transactions if t.transaction_date >= cutoff(365, NOW)]
        assert totals == len(in_year)

    def test_empty_window(self):
        report = self.engine.generate("6months", [sale(1, 1, NOW)], self.customers, now=NOW)
        assert report.is_empty
        assert report.total_transactions == 0
        assert report.average_order_value == 0.0
        assert report.top_drink is None
        assert report.top_pastry is None
        assert report.most_loyal_customer is None

    def test_top_items_by_category(self):
        transactions = [
            sale(1, 1, NOW, item("Latte", 2, "Coffee"), item("Croissant", 1, "Pastry")),
            sale(2, 2, NOW, item("Iced Tea", 3, "Drinks"), item("Muffin", 4, "Pastry")),
            sale(3, 2, NOW, item("Sandwich", 9, "Food")),
        ]

        report = self.engine.generate("week", transactions, self.customers, now=NOW)

        assert report.top_drink.name == "Iced Tea"
        assert report.top_drink.qty == 3
        assert report.top_pastry.name == "Muffin"
        assert report.item_sales[0].name == "Sandwich"

    def test_quantities_accumulate_across_transactions(self):
        transactions = [
            sale(1, 1, NOW, item("Latte", 2, "Coffee")),
            sale(2, 2, NOW, item("Espresso", 3, "Coffee")),
            sale(3, 3, NOW, item("Latte", 2, "Coffee")),
        ]
        report = self.engine.generate("week", transactions, self.customers, now=NOW)
        assert report.top_drink.name == "Latte"
        assert report.top_drink.qty == 4

    def test_item_tie_goes_to_first_seen(self):
        transactions = [
            sale(1, 1, NOW, item("Mocha", 2, "Coffee"), item("Scone", 1, "Pastry")),
            sale(2, 2, NOW, item("Latte", 2, "Coffee"), item("Danish", 1, "Pastry")),
        ]
        report = self.engine.generate("week", transactions, self.customers, now=NOW)
        assert report.top_drink.name == "Mocha"
        assert report.top_pastry.name == "Scone"

    def test_uncategorized_item_uses_menu(self):
        transactions = [sale(1, 1, NOW, LineItem(name="Croissant", qty=1, price=3.0, category=""))]
        report = self.engine.generate("week", transactions, self.customers, now=NOW)
        assert report.top_pastry.name == "Croissant"

    def test_most_loyal_customer(self):
        transactions = [
            sale(1, 1, NOW),
            sale(2, 2, NOW),
            sale(3, 2, NOW),
            sale(4, 3, NOW),
        ]
        report = self.engine.generate("week", transactions, self.customers, now=NOW)
        assert report.most_loyal_customer.name == "Ben"
        assert report.most_loyal_customer.txn_count == 2
        assert [c.id for c in report.customers_in_frame] == [2, 1, 3]

    def test_most_loyal_tie_goes_to_first_seen(self):
        transactions = [sale(1, 3, NOW), sale(2, 1, NOW), sale(3, 1, NOW), sale(4, 3, NOW)]
        report = self.engine.generate("week", transactions, self.customers, now=NOW)
        assert report.most_loyal_customer.id == 3

    def test_unknown_customer_gets_placeholder_name(self):
        report = self.engine.generate("week", [sale(1, 9, NOW)], self.customers, now=NOW)
        assert report.most_loyal_customer.name == "Customer 9"

    def test_transaction_without_customer(self):
        report = self.engine.generate("week", [sale(1, None, NOW)], self.customers, now=NOW)
        assert report.total_transactions == 1
        assert report.is_empty

    def test_unknown_frame(self):
        with pytest.raises(ValidationError):
            self.engine.generate("decade", [], self.customers, now=NOW)
