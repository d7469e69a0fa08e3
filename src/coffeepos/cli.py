"""
Command Line Interface for the coffee shop POS
"""

import logging
from typing import Optional, Tuple

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .api_client import ApiGateway
from .config import configure
from .exceptions import CoffeePOSError, GatewayError, ValidationError
from .formatter import POSFormatter
from .menu import MENU
from .order_workflow import OrderState, OrderWorkflow
from .registry import CustomerRegistry
from .reporting import TIME_FRAMES, ReportEngine, counts_per_frame
from .store import Store, replace_transactions
from .sync import sync_pending

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True)]
)
logger = logging.getLogger("coffeepos")

app = typer.Typer(
    name="coffeepos",
    help="Point-of-sale terminal for the coffee shop",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Display version information."""
    if value:
        from . import __version__
        console.print(f"coffeepos version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    api_url: Optional[str] = typer.Option(
        None,
        "--api-url",
        help="Base URL of the POS backend (default: $COFFEEPOS_API_URL)"
    ),
    token: Optional[str] = typer.Option(
        None,
        "--token",
        help="Bearer token for the backend (default: $COFFEEPOS_API_TOKEN)"
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Request timeout in seconds (default: $COFFEEPOS_TIMEOUT or 15)"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output"
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version information"
    ),
) -> None:

    if verbose:
        logger.setLevel(logging.DEBUG)
        logger.debug("Verbose mode enabled")

    try:
        overrides = {}
        if api_url is not None:
            overrides["api_url"] = api_url
        if token is not None:
            overrides["api_token"] = token
        if timeout is not None:
            overrides["timeout"] = timeout
        if overrides:
            configure(**overrides)
    except CoffeePOSError as e:
        logger.error(f"Configuration error: {e}")
        raise typer.Exit(code=1)


@app.command()
def customers() -> None:
    """List registered customers."""
    gateway = ApiGateway()
    registry = CustomerRegistry(Store(), gateway)
    registry.refresh()
    console.print(POSFormatter(console=console).format_customers(registry.customers, registry.last_error))


@app.command("delete-customer")
def delete_customer(
    customer_id: int = typer.Argument(..., help="ID of the customer to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Delete a customer."""
    registry = CustomerRegistry(Store(), ApiGateway())
    registry.refresh()
    if registry.last_error:
        console.print(f"[yellow]{registry.last_error}[/yellow]")

    def confirm(customer) -> bool:
        return yes or typer.confirm(f"Delete customer {customer.name} (ID {customer.id})?", default=False)

    if registry.delete(customer_id, confirm):
        console.print(f"[green]✓ Customer {customer_id} deleted[/green]")
    elif registry.last_error:
        logger.error(registry.last_error)
        raise typer.Exit(code=1)
    else:
        console.print("[yellow]Deletion cancelled.[/yellow]")


@app.command()
def report(
    frame: str = typer.Option(
        TIME_FRAMES[0].id,
        "--frame",
        "-f",
        help=f"Time frame: {', '.join(f.id for f in TIME_FRAMES)}"
    ),
) -> None:
    """Show the sales report for a time frame."""
    store = Store()
    gateway = ApiGateway()

    try:
        _load(store, gateway)
        engine = ReportEngine()
        result = engine.generate(frame, store.state.transactions, store.state.customers)
    except CoffeePOSError as e:
        logger.error(f"Report failed: {e}")
        raise typer.Exit(code=1)

    counts = counts_per_frame(store.state.transactions)
    console.print(POSFormatter(console=console).format_report(result, counts))


@app.command()
def order(
    plain: bool = typer.Option(
        False,
        "--plain",
        help="Print receipts as plain text for a receipt printer"
    ),
) -> None:
    """Take orders interactively until you stop."""
    store = Store()
    gateway = ApiGateway()
    formatter = POSFormatter(console=console)

    _load(store, gateway)
    workflow = OrderWorkflow(store, gateway)

    try:
        while True:
            _run_order(workflow, formatter, plain)
            if not typer.confirm("Take another order?", default=False):
                break
            workflow.new_order()
    except CoffeePOSError as e:
        logger.error(f"Order failed: {e}")
        raise typer.Exit(code=1)

    if store.state.provisional_customers or store.state.provisional_transactions or store.state.dirty_customers:
        console.print("[dim]Syncing records saved while offline...[/dim]")
        result = sync_pending(store, gateway)
        if result.complete:
            console.print("[green]✓ All records synced[/green]")
        else:
            for error in result.errors:
                console.print(f"[yellow]Still pending: {error}[/yellow]")


def _load(store: Store, gateway: ApiGateway) -> None:
    """Fetch customers and transactions into the store"""
    registry = CustomerRegistry(store, gateway)
    registry.refresh()
    if registry.last_error:
        console.print(f"[yellow]Warning: {registry.last_error}[/yellow]")

    try:
        transactions = gateway.list_transactions()
    except GatewayError as e:
        logger.warning(f"Could not load transactions: {e}")
        return
    store.dispatch(replace_transactions, transactions)


def _run_order(workflow: OrderWorkflow, formatter: POSFormatter, plain: bool = False) -> None:
    """Walk one order through customer, items and payment"""
    identifier = typer.prompt("Customer ID (blank for a new customer)", default="", show_default=False)
    customer = workflow.select_customer(identifier) if identifier.strip() else None
    if customer is None:
        if identifier.strip():
            console.print(f"[yellow]No customer with ID {identifier.strip()}; registering a new one.[/yellow]")
        else:
            workflow.start_registration()
        customer = _register(workflow)

    console.print(f"Customer: [bold]{customer.name}[/bold] (ID {customer.id}, {customer.transactions} visits)")

    _choose_items(workflow)
    if not workflow.items:
        workflow.abandon()
        console.print("[yellow]Empty order cancelled.[/yellow]")
        return

    totals = workflow.begin_payment()
    console.print(formatter.format_totals(totals))

    while workflow.state in (OrderState.AWAITING_PAYMENT, OrderState.INSUFFICIENT_FUNDS):
        raw = typer.prompt("Amount paid (blank to cancel)", default="", show_default=False)
        if not raw.strip():
            workflow.abandon()
            console.print("[yellow]Order cancelled. Nothing was saved.[/yellow]")
            return

        outcome = workflow.submit_payment(raw)
        if outcome.state == OrderState.INSUFFICIENT_FUNDS:
            console.print(
                f"[red]Insufficient payment: {formatter.money(outcome.shortfall)} short "
                f"of {formatter.money(totals.final_total)}[/red]"
            )
        elif not outcome.accepted and outcome.state != OrderState.ABANDONED:
            console.print(f"[red]{outcome.message}[/red]")
        elif outcome.receipt is not None and plain:
            console.print(formatter.format_receipt_plain(outcome.receipt), markup=False, highlight=False)
        elif outcome.receipt is not None:
            console.print(formatter.format_receipt(outcome.receipt))


def _register(workflow: OrderWorkflow):
    while True:
        name = typer.prompt("Name", default="", show_default=False)
        contact = typer.prompt("Contact (email or phone)", default="", show_default=False)
        try:
            customer = workflow.register_customer(name, contact)
        except ValidationError as e:
            console.print(f"[red]{e}[/red]")
            continue
        for warning in workflow.warnings:
            console.print(f"[yellow]Warning: {warning}[/yellow]")
        return customer


def _choose_items(workflow: OrderWorkflow) -> None:
    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("#", justify="right")
    table.add_column("Item")
    table.add_column("Category")
    table.add_column("Price", justify="right")
    for number, item in enumerate(MENU, 1):
        table.add_row(str(number), item.name, item.category, f"{item.price:.2f}")
    console.print(table)

    while True:
        raw = typer.prompt("Item # and optional quantity change, e.g. '2' or '2 -1' (blank when done)",
                           default="", show_default=False)
        if not raw.strip():
            return
        try:
            number, delta = _parse_item_input(raw)
        except ValidationError as e:
            console.print(f"[red]{e}[/red]")
            continue

        items = workflow.adjust_item(MENU[number - 1], delta)
        summary = ", ".join(f"{item.qty} x {item.name}" for item in items) or "(empty)"
        console.print(f"[dim]Order: {summary}[/dim]")


def _parse_item_input(raw: str) -> Tuple[int, int]:
    parts = raw.split()
    try:
        number = int(parts[0])
        delta = int(parts[1]) if len(parts) > 1 else 1
    except ValueError:
        raise ValidationError(f"Could not read {raw!r}; enter an item number and an optional quantity")
    if not 1 <= number <= len(MENU):
        raise ValidationError(f"Item number must be between 1 and {len(MENU)}")
    return number, delta


if __name__ == "__main__":
    app()
