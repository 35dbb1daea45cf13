"""Command-line interface for lendingledger.

Built with Typer for commands and Rich for output. Every command that
touches the ledger needs a caller (``--as ROLE:ID`` or ``LENDING_CALLER``);
the role decides which commands are allowed.
"""

import logging
from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .access import Action, Caller, authorize
from .config import get_config
from .db import get_db
from .errors import LendingError

# Create the main app
app = typer.Typer(
    name="lendingledger",
    help="Lend items with a finite number of copies and track who has them.",
    no_args_is_help=True,
)

# Create sub-apps for command groups
item_app = typer.Typer(help="Manage catalog items.")
app.add_typer(item_app, name="item")

loan_app = typer.Typer(help="Check items out and back in.")
app.add_typer(loan_app, name="loan")

dashboard_app = typer.Typer(help="Operator and borrower dashboards.")
app.add_typer(dashboard_app, name="dashboard")

# Rich console for pretty output
console = Console()


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def setup_logging(level: str) -> None:
    """Route library logging through Rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def fail(error: LendingError) -> None:
    """Report a lending error and exit non-zero."""
    print_error(error.message)
    raise typer.Exit(1)


def require_caller(ctx: typer.Context, action: Action) -> Caller:
    """Caller from the global ``--as`` option, checked against ``action``."""
    caller: Optional[Caller] = (ctx.obj or {}).get("caller")
    if caller is None:
        print_error("No caller given. Use --as ROLE:ID or set LENDING_CALLER.")
        raise typer.Exit(1)
    try:
        return authorize(caller, action)
    except LendingError as e:
        fail(e)


def format_when(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M")


def format_status(status: str, days_overdue: int) -> str:
    if status == "overdue":
        return f"[bold red]OVERDUE ({days_overdue}d)[/bold red]"
    if status == "returned":
        return "[dim]returned[/dim]"
    return "[green]active[/green]"


# ============================================================================
# Global Options
# ============================================================================


@app.callback()
def main(
    ctx: typer.Context,
    caller: Optional[str] = typer.Option(
        None, "--as", envvar="LENDING_CALLER", help="Caller as ROLE:ID, e.g. member:alice"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Lend items with a finite number of copies and track who has them."""
    setup_logging("DEBUG" if verbose else get_config().log_level)

    parsed = None
    if caller:
        try:
            parsed = Caller.parse(caller)
        except ValueError as e:
            print_error(str(e))
            raise typer.Exit(1)
    ctx.obj = {"caller": parsed}


@app.command()
def init() -> None:
    """Create the ledger tables and check configuration."""
    config = get_config()
    problems = config.validate()
    if problems:
        for problem in problems:
            print_error(problem)
        raise typer.Exit(1)

    db = get_db()
    print_success(f"Ledger ready at {db.url.render_as_string(hide_password=True)}")


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"lendingledger version {__version__}")


# ============================================================================
# Item Commands
# ============================================================================


@item_app.command("add")
def item_add(
    ctx: typer.Context,
    title: str = typer.Option(..., "--title", "-t", help="Item title"),
    author: str = typer.Option(..., "--author", "-a", help="Author"),
    category: str = typer.Option(..., "--category", "-c", help="Category"),
    code: str = typer.Option(..., "--code", help="External catalog code (unique)"),
    copies: int = typer.Option(1, "--copies", "-n", help="Total copies"),
) -> None:
    """Add an item to the catalog."""
    from .catalog import CatalogManager

    require_caller(ctx, Action.MANAGE_CATALOG)
    manager = CatalogManager(get_db())

    try:
        item = manager.create_item(
            {
                "title": title,
                "author": author,
                "category": category,
                "external_code": code,
                "total_copies": copies,
            }
        )
    except LendingError as e:
        fail(e)

    print_success(f"Added: {item.title} ({item.total_copies} copies)")
    print_info(f"ID: {item.id}")


@item_app.command("show")
def item_show(
    ctx: typer.Context,
    item_id: str = typer.Argument(..., help="Item ID"),
) -> None:
    """Show an item with its availability."""
    from .access import Role
    from .catalog import CatalogManager

    caller = require_caller(ctx, Action.READ_CATALOG)
    manager = CatalogManager(get_db())

    borrower_id = caller.id if caller.role == Role.MEMBER else None
    try:
        item = manager.describe_item(item_id, borrower_id=borrower_id)
    except LendingError as e:
        fail(e)

    lines = [
        f"[bold]{item.title}[/bold]",
        f"Author: {item.author}",
        f"Category: {item.category}",
        f"Code: {item.external_code}",
        f"Copies: {item.available_copies} of {item.total_copies} available",
    ]
    if item.on_loan_to_borrower:
        lines.append("[yellow]You currently have this item[/yellow]")
    console.print(Panel("\n".join(lines), title=item.id))


@item_app.command("list")
def item_list(
    ctx: typer.Context,
    title: Optional[str] = typer.Option(None, "--title", "-t", help="Title contains"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Author contains"),
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Exact category"),
    available: bool = typer.Option(False, "--available", help="Only items with free copies"),
    page: int = typer.Option(1, "--page", "-p", help="Page number"),
    per_page: int = typer.Option(20, "--per-page", help="Items per page"),
) -> None:
    """List catalog items."""
    from .catalog import CatalogManager, ItemFilter

    require_caller(ctx, Action.READ_CATALOG)
    manager = CatalogManager(get_db())

    filters = ItemFilter(title=title, author=author, category=category, available_only=available)
    try:
        items, total = manager.list_items(filters, page=page, per_page=per_page)
    except LendingError as e:
        fail(e)

    if not items:
        console.print("[dim]No items found[/dim]")
        return

    table = Table(title=f"Items ({total})", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Title", style="cyan", max_width=40)
    table.add_column("Author", style="green", max_width=25)
    table.add_column("Category")
    table.add_column("Available", justify="right")

    for item in items:
        available_str = f"{item.available_copies}/{item.total_copies}"
        if not item.is_available:
            available_str = f"[red]{available_str}[/red]"
        table.add_row(item.id[:8], item.title, item.author, item.category, available_str)

    console.print(table)


@item_app.command("update")
def item_update(
    ctx: typer.Context,
    item_id: str = typer.Argument(..., help="Item ID"),
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    author: Optional[str] = typer.Option(None, "--author", "-a"),
    category: Optional[str] = typer.Option(None, "--category", "-c"),
    code: Optional[str] = typer.Option(None, "--code"),
    copies: Optional[int] = typer.Option(None, "--copies", "-n"),
) -> None:
    """Update catalog fields of an item."""
    from .catalog import CatalogManager

    require_caller(ctx, Action.MANAGE_CATALOG)
    manager = CatalogManager(get_db())

    changes = {
        "title": title,
        "author": author,
        "category": category,
        "external_code": code,
        "total_copies": copies,
    }
    changes = {k: v for k, v in changes.items() if v is not None}
    if not changes:
        print_error("Nothing to update")
        raise typer.Exit(1)

    try:
        item = manager.update_item(item_id, changes)
    except LendingError as e:
        fail(e)

    print_success(f"Updated: {item.title}")


@item_app.command("delete")
def item_delete(
    ctx: typer.Context,
    item_id: str = typer.Argument(..., help="Item ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete an item that has no copies on loan."""
    from .catalog import CatalogManager

    require_caller(ctx, Action.MANAGE_CATALOG)
    manager = CatalogManager(get_db())

    if not yes and not typer.confirm(f"Delete item {item_id} and its loan history?"):
        raise typer.Exit(0)

    try:
        manager.delete_item(item_id)
    except LendingError as e:
        fail(e)

    print_success("Item deleted")


# ============================================================================
# Loan Commands
# ============================================================================


@loan_app.command("checkout")
def loan_checkout(
    ctx: typer.Context,
    item_id: str = typer.Argument(..., help="Item ID to borrow"),
) -> None:
    """Borrow one copy of an item."""
    from .lending import LendingManager

    caller = require_caller(ctx, Action.CHECKOUT)
    manager = LendingManager(get_db())

    try:
        loan = manager.checkout(item_id, caller.id)
    except LendingError as e:
        fail(e)

    print_success("Item checked out")
    console.print(f"[dim]Loan: {loan.id}[/dim]")
    console.print(f"[dim]Due: {format_when(loan.due_at)}[/dim]")


@loan_app.command("return")
def loan_return(
    ctx: typer.Context,
    loan_id: str = typer.Argument(..., help="Loan ID to close"),
) -> None:
    """Mark a loan as returned."""
    from .lending import LendingManager

    require_caller(ctx, Action.RETURN)
    manager = LendingManager(get_db())

    try:
        manager.mark_returned(loan_id)
    except LendingError as e:
        fail(e)

    print_success("Loan marked as returned")


@loan_app.command("show")
def loan_show(
    ctx: typer.Context,
    loan_id: str = typer.Argument(..., help="Loan ID"),
) -> None:
    """Show one loan."""
    from .access import PermissionDenied, Role
    from .lending import LendingManager

    caller = require_caller(ctx, Action.READ_LOANS)
    manager = LendingManager(get_db())

    try:
        loan = manager.describe_loan(loan_id)
        if caller.role == Role.MEMBER and loan.borrower_id != caller.id:
            raise PermissionDenied("members may only view their own loans")
    except LendingError as e:
        fail(e)

    console.print(Panel(
        f"[bold]{loan.item_title}[/bold]\n"
        f"Borrower: {loan.borrower_id}\n"
        f"Checked out: {format_when(loan.checked_out_at)}\n"
        f"Due: {format_when(loan.due_at)}\n"
        f"Returned: {format_when(loan.returned_at)}\n"
        f"Status: {format_status(loan.status.value, loan.days_overdue)}",
        title=loan.id,
    ))


@loan_app.command("list")
def loan_list(
    ctx: typer.Context,
    status: Optional[str] = typer.Option(
        None, "--status", "-s", help="active, overdue or returned"
    ),
    borrower: Optional[str] = typer.Option(None, "--borrower", "-b", help="Borrower ID"),
    item: Optional[str] = typer.Option(None, "--item", "-i", help="Item ID"),
    page: int = typer.Option(1, "--page", "-p", help="Page number"),
    per_page: int = typer.Option(20, "--per-page", help="Loans per page"),
) -> None:
    """List loan records."""
    from .access import Role
    from .lending import LendingManager, LoanStatus

    caller = require_caller(ctx, Action.READ_LOANS)
    manager = LendingManager(get_db())

    status_enum = None
    if status:
        try:
            status_enum = LoanStatus(status.lower())
        except ValueError:
            print_error(f"Invalid status: {status}")
            console.print(f"[dim]Valid: {', '.join(s.value for s in LoanStatus)}[/dim]")
            raise typer.Exit(1)

    # Members only ever see their own loans
    if caller.role == Role.MEMBER:
        borrower = caller.id

    try:
        loans, total = manager.list_loans(
            status=status_enum,
            borrower_id=borrower,
            item_id=item,
            page=page,
            per_page=per_page,
        )
    except LendingError as e:
        fail(e)

    if not loans:
        console.print("[dim]No loans found[/dim]")
        return

    table = Table(title=f"Loans ({total})", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Item", style="cyan", max_width=30)
    table.add_column("Borrower")
    table.add_column("Checked out")
    table.add_column("Due")
    table.add_column("Status")

    for loan in loans:
        table.add_row(
            loan.id[:8],
            loan.item_title or "Unknown",
            loan.borrower_id,
            format_when(loan.checked_out_at),
            format_when(loan.due_at),
            format_status(loan.status.value, loan.days_overdue),
        )

    console.print(table)


# ============================================================================
# Dashboard Commands
# ============================================================================


@dashboard_app.command("operator")
def dashboard_operator(
    ctx: typer.Context,
    page: int = typer.Option(1, "--page", "-p", help="Ranking page"),
    per_page: int = typer.Option(10, "--per-page", help="Borrowers per page"),
) -> None:
    """Catalog totals and borrowers with overdue loans."""
    from .dashboard import DashboardManager

    require_caller(ctx, Action.OPERATOR_DASHBOARD)
    manager = DashboardManager(get_db())

    try:
        dash = manager.operator_dashboard(page=page, per_page=per_page)
    except LendingError as e:
        fail(e)

    summary = dash.summary
    console.print(Panel(
        f"Items: [bold]{summary.total_items}[/bold]\n"
        f"On loan: [bold]{summary.open_loans}[/bold]\n"
        f"Due today: [bold yellow]{summary.due_today}[/bold yellow]",
        title="Catalog",
    ))

    if not dash.borrowers_with_overdue:
        print_success("No overdue loans!")
        return

    info = dash.pagination
    table = Table(
        title=f"Borrowers with overdue loans (page {info.page}/{info.total_pages})",
        show_header=True,
        header_style="bold red",
    )
    table.add_column("Borrower")
    table.add_column("Overdue", justify="right")

    for row in dash.borrowers_with_overdue:
        table.add_row(row.borrower_id, f"[bold red]{row.overdue_count}[/bold red]")

    console.print(table)


@dashboard_app.command("me")
def dashboard_me(
    ctx: typer.Context,
    page: int = typer.Option(1, "--page", "-p", help="Page number"),
    per_page: int = typer.Option(20, "--per-page", help="Loans per page"),
) -> None:
    """Your open loans, soonest due first."""
    from .dashboard import DashboardManager

    caller = require_caller(ctx, Action.BORROWER_DASHBOARD)
    manager = DashboardManager(get_db())

    try:
        dash = manager.borrower_dashboard(caller.id, page=page, per_page=per_page)
    except LendingError as e:
        fail(e)

    summary = dash.summary
    console.print(Panel(
        f"On loan: [bold]{summary.total_open}[/bold]\n"
        f"Overdue: [bold red]{summary.total_overdue}[/bold red]\n"
        f"Due soon: [bold yellow]{summary.total_due_soon}[/bold yellow]",
        title=f"Loans of {dash.borrower_id}",
    ))

    if not dash.open_loans:
        console.print("[dim]Nothing on loan[/dim]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Item", style="cyan", max_width=30)
    table.add_column("Author", style="green", max_width=25)
    table.add_column("Due")
    table.add_column("Days left", justify="right")

    for loan in dash.open_loans:
        days = (
            f"[bold red]{loan.days_overdue}d overdue[/bold red]"
            if loan.is_overdue
            else str(loan.days_until_due)
        )
        table.add_row(loan.title, loan.author, format_when(loan.due_at), days)

    console.print(table)


# ============================================================================
# Main Entry Point
# ============================================================================


if __name__ == "__main__":
    app()
