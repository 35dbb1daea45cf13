"""Tests for the CLI interface."""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from lendingledger.catalog import CatalogManager
from lendingledger.cli import app
from lendingledger.db.sqlite import get_db
from lendingledger.lending import LendingManager

LIBRARIAN = ["--as", "librarian:ops"]
ALICE = ["--as", "member:alice"]


@pytest.fixture
def runner(cli_env: Path) -> CliRunner:
    """Create a CLI test runner bound to a throwaway ledger."""
    return CliRunner()


@pytest.fixture
def item_id(runner: CliRunner) -> str:
    """An item with one copy, created through the global database."""
    item = CatalogManager(get_db()).create_item(
        {
            "title": "Dune",
            "author": "Frank Herbert",
            "category": "sf",
            "external_code": "ISBN-1",
            "total_copies": 1,
        }
    )
    return item.id


class TestCLIBasics:
    """Tests for basic CLI functionality."""

    def test_help(self, runner: CliRunner):
        """Test that help command works."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Lend items" in result.stdout

    def test_version(self, runner: CliRunner):
        """Test version command."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "lendingledger version 0.1.0" in result.stdout

    def test_init(self, runner: CliRunner, cli_env: Path):
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 0
        assert "Ledger ready" in result.stdout
        assert cli_env.exists()

    def test_missing_caller(self, runner: CliRunner):
        result = runner.invoke(app, ["item", "list"])
        assert result.exit_code == 1
        assert "No caller given" in result.stdout

    def test_malformed_caller(self, runner: CliRunner):
        result = runner.invoke(app, ["--as", "wizard:merlin", "item", "list"])
        assert result.exit_code == 1
        assert "Unknown role" in result.stdout

    def test_caller_from_environment(self, runner: CliRunner, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("LENDING_CALLER", "member:alice")
        result = runner.invoke(app, ["item", "list"])
        assert result.exit_code == 0
        assert "No items found" in result.stdout


class TestItemCommands:
    """Tests for item commands."""

    def test_add_item(self, runner: CliRunner):
        result = runner.invoke(
            app,
            LIBRARIAN + [
                "item", "add",
                "--title", "Emma",
                "--author", "Jane Austen",
                "--category", "classic",
                "--code", "ISBN-2",
                "--copies", "3",
            ],
        )
        assert result.exit_code == 0
        assert "Added:" in result.stdout
        assert "3 copies" in result.stdout

    def test_add_item_zero_copies(self, runner: CliRunner):
        result = runner.invoke(
            app,
            LIBRARIAN + [
                "item", "add",
                "--title", "Emma",
                "--author", "Jane Austen",
                "--category", "classic",
                "--code", "ISBN-2",
                "--copies", "0",
            ],
        )
        assert result.exit_code == 1
        assert "Error:" in result.stdout

    def test_member_cannot_add_item(self, runner: CliRunner):
        result = runner.invoke(
            app,
            ALICE + [
                "item", "add",
                "--title", "Emma",
                "--author", "Jane Austen",
                "--category", "classic",
                "--code", "ISBN-2",
            ],
        )
        assert result.exit_code == 1
        assert "member may not manage catalog" in result.stdout

    def test_list_items(self, runner: CliRunner, item_id: str):
        result = runner.invoke(app, ALICE + ["item", "list"])
        assert result.exit_code == 0
        assert "Dune" in result.stdout
        assert "1/1" in result.stdout

    def test_show_item(self, runner: CliRunner, item_id: str):
        result = runner.invoke(app, ALICE + ["item", "show", item_id])
        assert result.exit_code == 0
        assert "1 of 1 available" in result.stdout

    def test_show_missing_item(self, runner: CliRunner):
        result = runner.invoke(app, ALICE + ["item", "show", "missing"])
        assert result.exit_code == 1
        assert "Item not found" in result.stdout

    def test_update_item(self, runner: CliRunner, item_id: str):
        result = runner.invoke(app, LIBRARIAN + ["item", "update", item_id, "--copies", "4"])
        assert result.exit_code == 0
        assert CatalogManager(get_db()).get_item(item_id).total_copies == 4

    def test_update_nothing(self, runner: CliRunner, item_id: str):
        result = runner.invoke(app, LIBRARIAN + ["item", "update", item_id])
        assert result.exit_code == 1
        assert "Nothing to update" in result.stdout

    def test_delete_item(self, runner: CliRunner, item_id: str):
        result = runner.invoke(app, LIBRARIAN + ["item", "delete", item_id, "--yes"])
        assert result.exit_code == 0
        assert "Item deleted" in result.stdout

    def test_delete_item_on_loan(self, runner: CliRunner, item_id: str):
        LendingManager(get_db()).checkout(item_id, "alice")
        result = runner.invoke(app, LIBRARIAN + ["item", "delete", item_id, "--yes"])
        assert result.exit_code == 1
        assert "active loans exist" in result.stdout


class TestLoanCommands:
    """Tests for checkout and return commands."""

    def test_checkout(self, runner: CliRunner, item_id: str):
        result = runner.invoke(app, ALICE + ["loan", "checkout", item_id])
        assert result.exit_code == 0
        assert "Item checked out" in result.stdout
        assert "Due:" in result.stdout

    def test_checkout_last_copy_taken(self, runner: CliRunner, item_id: str):
        runner.invoke(app, ALICE + ["loan", "checkout", item_id])
        result = runner.invoke(app, ["--as", "member:bob", "loan", "checkout", item_id])
        assert result.exit_code == 1
        assert "item not available" in result.stdout

    def test_librarian_cannot_checkout(self, runner: CliRunner, item_id: str):
        result = runner.invoke(app, LIBRARIAN + ["loan", "checkout", item_id])
        assert result.exit_code == 1

    def test_return(self, runner: CliRunner, item_id: str):
        loan = LendingManager(get_db()).checkout(item_id, "alice")

        result = runner.invoke(app, LIBRARIAN + ["loan", "return", loan.id])
        assert result.exit_code == 0
        assert "returned" in result.stdout

        again = runner.invoke(app, LIBRARIAN + ["loan", "return", loan.id])
        assert again.exit_code == 1
        assert "already returned" in again.stdout

    def test_show_own_loan(self, runner: CliRunner, item_id: str):
        loan = LendingManager(get_db()).checkout(item_id, "alice")
        result = runner.invoke(app, ALICE + ["loan", "show", loan.id])
        assert result.exit_code == 0
        assert "Dune" in result.stdout

    def test_show_someone_elses_loan(self, runner: CliRunner, item_id: str):
        loan = LendingManager(get_db()).checkout(item_id, "alice")
        result = runner.invoke(app, ["--as", "member:bob", "loan", "show", loan.id])
        assert result.exit_code == 1
        assert "own loans" in result.stdout

    def test_list_loans(self, runner: CliRunner, item_id: str):
        LendingManager(get_db()).checkout(item_id, "alice")
        result = runner.invoke(app, LIBRARIAN + ["loan", "list", "--status", "active"])
        assert result.exit_code == 0
        assert "Loans (1)" in result.stdout

    def test_member_sees_only_own_loans(self, runner: CliRunner, item_id: str):
        LendingManager(get_db()).checkout(item_id, "alice")
        result = runner.invoke(app, ["--as", "member:bob", "loan", "list"])
        assert result.exit_code == 0
        assert "No loans found" in result.stdout

    def test_list_invalid_status(self, runner: CliRunner):
        result = runner.invoke(app, LIBRARIAN + ["loan", "list", "--status", "lost"])
        assert result.exit_code == 1
        assert "Invalid status" in result.stdout


class TestDashboardCommands:
    """Tests for dashboard commands."""

    def test_operator_dashboard(self, runner: CliRunner, item_id: str):
        LendingManager(get_db()).checkout(item_id, "alice")
        result = runner.invoke(app, LIBRARIAN + ["dashboard", "operator"])
        assert result.exit_code == 0
        assert "Items: 1" in result.stdout
        assert "On loan: 1" in result.stdout
        assert "No overdue loans!" in result.stdout

    def test_member_cannot_see_operator_dashboard(self, runner: CliRunner):
        result = runner.invoke(app, ALICE + ["dashboard", "operator"])
        assert result.exit_code == 1

    def test_borrower_dashboard(self, runner: CliRunner, item_id: str):
        LendingManager(get_db()).checkout(item_id, "alice")
        result = runner.invoke(app, ALICE + ["dashboard", "me"])
        assert result.exit_code == 0
        assert "On loan: 1" in result.stdout
        assert "Dune" in result.stdout

    def test_borrower_dashboard_empty(self, runner: CliRunner):
        result = runner.invoke(app, ["--as", "member:bob", "dashboard", "me"])
        assert result.exit_code == 0
        assert "Nothing on loan" in result.stdout
