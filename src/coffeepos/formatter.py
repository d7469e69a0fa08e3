"""
Rich text formatter for receipts, customer lists and sales reports
"""

from typing import Dict, List, Optional, Sequence
from rich.text import Text
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table

from .config import get_settings
from .discount import rate_for
from .exceptions import FormattingError
from .models import Customer
from .order_workflow import OrderTotals, Receipt
from .reporting import TIME_FRAMES, Report

RECEIPT_WIDTH = 40


class POSFormatter:
    """
    Formatter for POS output with rich text features
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        currency_symbol: Optional[str] = None,
        display_rate: Optional[float] = None
    ):
        """
        Initialize the formatter

        currency_symbol and display_rate default to the configured settings.
        Amounts are multiplied by display_rate only when shown.
        """
        settings = get_settings()
        self.console = console or Console()
        self.currency_symbol = currency_symbol if currency_symbol is not None else settings.currency_symbol
        self.display_rate = display_rate if display_rate is not None else settings.display_rate

        # Colors per loyalty tier
        self.tier_colors = {
            "Basic": "white",
            "Silver": "bright_white",
            "Gold": "yellow",
            "Platinum": "cyan",
            "Diamond": "bold magenta",
        }

    def money(self, amount: float) -> str:
        """Format an amount in the display currency"""
        value = amount * self.display_rate
        sign = "-" if value < 0 else ""
        return f"{sign}{self.currency_symbol}{abs(value):,.2f}"

    # Receipts

    def format_receipt(self, receipt: Receipt) -> Panel:
        """
        Format a completed order as a receipt panel
        Returns a Rich Panel containing the receipt
        """
        try:
            header = Table.grid(padding=(0, 1))
            header.add_column(style="bold")
            header.add_column()
            header.add_row("Transaction:", f"#{receipt.transaction_id}" + (" (pending sync)" if receipt.provisional else ""))
            header.add_row("Customer:", f"{receipt.customer_name} (ID {receipt.customer_id})")
            header.add_row("Visits:", str(receipt.visits))
            header.add_row("Loyalty:", Text(receipt.loyalty_label, style=self.tier_colors.get(receipt.loyalty_label, "white")))

            items = Table(show_header=True, header_style="bold", box=None, expand=True)
            items.add_column("Item")
            items.add_column("Qty", justify="right")
            items.add_column("Total", justify="right")
            for item in receipt.items:
                items.add_row(item.name, str(item.qty), self.money(item.line_total))

            summary = Table.grid(padding=(0, 1), expand=True)
            summary.add_column()
            summary.add_column(justify="right")
            summary.add_row("Subtotal", self.money(receipt.subtotal))
            summary.add_row(f"Discount ({receipt.discount_percent}%)", f"-{self.money(receipt.discount)}")
            summary.add_row(Text("Total", style="bold"), Text(self.money(receipt.final_total), style="bold"))
            summary.add_row("Paid", self.money(receipt.paid))
            summary.add_row("Change", self.money(receipt.change))

            parts = [header, Text(""), items, Text(""), summary]
            if receipt.next_tier_label:
                parts.append(Text(
                    f"{receipt.visits_to_next_tier} more visit(s) to {receipt.next_tier_label}",
                    style="dim"
                ))
            for warning in receipt.warnings:
                parts.append(Text(f"! {warning}", style="yellow"))

            return Panel(Group(*parts), title="[bold]Receipt[/bold]", border_style="green")

        except Exception as e:
            raise FormattingError(f"Failed to format receipt: {e}") from e

    def format_receipt_plain(self, receipt: Receipt) -> str:
        """
        Format a receipt as plain text (for printing)
        """
        lines = []
        lines.append("=" * RECEIPT_WIDTH)
        lines.append("RECEIPT".center(RECEIPT_WIDTH))
        lines.append("=" * RECEIPT_WIDTH)
        lines.append(f"Transaction: {receipt.transaction_id}")
        lines.append(f"Customer ID: {receipt.customer_id}")
        lines.append(f"Visits: {receipt.visits}")
        lines.append(f"Loyalty: {receipt.loyalty_label}")
        lines.append("-" * RECEIPT_WIDTH)

        for item in receipt.items:
            lines.append(self._plain_row(f"{item.qty} x {item.name}", self.money(item.line_total)))

        lines.append("-" * RECEIPT_WIDTH)
        lines.append(self._plain_row("Subtotal", self.money(receipt.subtotal)))
        lines.append(self._plain_row(f"Discount ({receipt.discount_percent}%)", f"-{self.money(receipt.discount)}"))
        lines.append(self._plain_row("TOTAL", self.money(receipt.final_total)))
        lines.append(self._plain_row("Paid", self.money(receipt.paid)))
        lines.append(self._plain_row("Change", self.money(receipt.change)))
        lines.append("=" * RECEIPT_WIDTH)
        lines.append("Thank you for your purchase!".center(RECEIPT_WIDTH))
        lines.append("=" * RECEIPT_WIDTH)

        return "\n".join(lines)

    def format_totals(self, totals: OrderTotals) -> Table:
        """Running totals shown before payment"""
        table = Table.grid(padding=(0, 2))
        table.add_column()
        table.add_column(justify="right")
        table.add_row("Subtotal", self.money(totals.subtotal))
        table.add_row(
            f"Discount ({totals.tier.label.value} {totals.tier.percent}%)",
            f"-{self.money(totals.discount)}"
        )
        table.add_row(Text("Final total", style="bold"), Text(self.money(totals.final_total), style="bold"))
        return table

    # Customers

    def format_customers(self, customers: Sequence[Customer], error: Optional[str] = None) -> Group:
        """
        Format the customer registry
        Returns a Rich Group with the table (or an empty-state message) and any error
        """
        parts = []
        if error:
            parts.append(Text(error, style="bold red"))

        if not customers:
            parts.append(Text("No customers found.", style="dim"))
            return Group(*parts)

        table = Table(show_header=True, header_style="bold")
        table.add_column("ID", justify="right")
        table.add_column("Name")
        table.add_column("Contact")
        table.add_column("Visits", justify="right")
        table.add_column("Tier")

        for customer in customers:
            label = rate_for(customer.transactions).label.value
            customer_id = f"{customer.id}*" if customer.provisional else str(customer.id)
            table.add_row(
                customer_id,
                customer.name,
                customer.contact,
                str(customer.transactions),
                Text(label, style=self.tier_colors.get(label, "white")),
            )

        parts.append(table)
        if any(customer.provisional for customer in customers):
            parts.append(Text("* not yet saved on the server", style="dim"))
        return Group(*parts)

    # Reports

    def format_report(self, report: Report, frame_counts: Optional[Dict[str, int]] = None) -> Group:
        """
        Format a sales report
        Returns a Rich Group object containing the report panels
        """
        try:
            parts: List = []
            if frame_counts is not None:
                parts.append(self._create_frame_bar(report.frame.id, frame_counts))

            if report.is_empty:
                message = Text()
                message.append(f'No customers found for "{report.frame.label}".\n', style="bold")
                message.append(
                    "There are no customer transactions in this timeframe.\n", style="dim"
                )
                message.append(
                    f"Transactions found: {report.total_transactions} | Customers: {report.customers_count}",
                    style="dim"
                )
                parts.append(Panel(message, title=f"[bold]{report.frame.label}[/bold]", border_style="dim"))
                return Group(*parts)

            parts.append(self._create_customers_panel(report))
            parts.append(self._create_highlights_panel(report))
            parts.append(self._create_sales_summary(report))
            return Group(*parts)

        except Exception as e:
            raise FormattingError(f"Failed to format report: {e}") from e

    def _create_frame_bar(self, active_id: str, counts: Dict[str, int]) -> Text:
        bar = Text()
        for frame in TIME_FRAMES:
            style = "bold reverse" if frame.id == active_id else "dim"
            bar.append(f" {frame.label} ({counts.get(frame.id, 0)}) ", style=style)
            bar.append(" ")
        return bar

    def _create_customers_panel(self, report: Report) -> Panel:
        table = Table(show_header=True, header_style="bold", box=None)
        table.add_column("Customer")
        table.add_column("ID", justify="right")
        table.add_column("Transactions", justify="right")
        for entry in report.customers_in_frame:
            table.add_row(entry.name, str(entry.id), str(entry.txn_count))
        return Panel(table, title="[bold]Customers in Period[/bold]", border_style="blue")

    def _create_highlights_panel(self, report: Report) -> Panel:
        grid = Table.grid(padding=(0, 2))
        grid.add_column(style="bold")
        grid.add_column()

        loyal = report.most_loyal_customer
        grid.add_row(
            "Most loyal customer:",
            f"{loyal.name} (ID {loyal.id}), {loyal.txn_count} orders" if loyal else "No transactions recorded"
        )
        drink = report.top_drink
        grid.add_row(
            "Most bought drink:",
            f"{drink.name} ({drink.category}), {drink.qty} sold" if drink else "No drinks sold"
        )
        pastry = report.top_pastry
        grid.add_row(
            "Most bought pastry:",
            f"{pastry.name}, {pastry.qty} sold" if pastry else "No pastries sold"
        )
        return Panel(grid, title="[bold]Highlights[/bold]", border_style="blue")

    def _create_sales_summary(self, report: Report) -> Panel:
        table = Table.grid(padding=(0, 2))
        table.add_column()
        table.add_column(justify="right")
        table.add_row("Total transactions", str(report.total_transactions))
        table.add_row("Total revenue", self.money(report.total_revenue))
        table.add_row("Total discount given", self.money(report.total_discount))
        table.add_row("Average order value", self.money(report.average_order_value))
        return Panel(table, title="[bold]Sales Summary[/bold]", border_style="dim")

    @staticmethod
    def _plain_row(left: str, right: str) -> str:
        space = max(1, RECEIPT_WIDTH - len(left) - len(right))
        return f"{left}{' ' * space}{right}"
