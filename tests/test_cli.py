import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from lending_library.main import app

runner = CliRunner()


@pytest.fixture
def cli(db_file):
    def invoke(*args):
        return runner.invoke(app, ["--db", db_file, *args])
    return invoke


@pytest.fixture
def stocked_cli(cli):
    result = cli("add", "Clean Code", "A", "--category", "Software Engineering")
    assert result.exit_code == 0
    return cli


def test_list_no_books(cli):
    result = cli("list")
    assert result.exit_code == 0
    assert "No books in library." in result.stdout


def test_add_and_list(stocked_cli):
    result = stocked_cli("list")
    assert result.exit_code == 0
    assert "Clean Code by A [Software Engineering]" in result.stdout


def test_add_invalid_category(cli):
    result = cli("add", "Odes", "Keats", "-c", "Poetry")
    assert result.exit_code == 1
    assert "Error: Invalid category: Poetry" in result.stdout


def test_borrow_and_return_flow(stocked_cli):
    result = stocked_cli("borrow", "Clean Code", "Alice")
    assert result.exit_code == 0
    assert "Book 'Clean Code' borrowed by Alice." in result.stdout

    result = stocked_cli("borrow", "Clean Code", "Bob")
    assert "Sorry, 'Clean Code' is not available for borrowing." in result.stdout

    result = stocked_cli("available", "Clean Code")
    assert "'Clean Code' is not available." in result.stdout

    result = stocked_cli("list", "--borrowed")
    assert "Clean Code by A" in result.stdout

    result = stocked_cli("return", "Clean Code", "Bob")
    assert "No borrowing record found for 'Clean Code' and Bob." in result.stdout

    result = stocked_cli("return", "Clean Code", "Alice")
    assert "Book 'Clean Code' returned by Alice." in result.stdout

    result = stocked_cli("available", "Clean Code")
    assert "'Clean Code' is available." in result.stdout


def test_list_available_when_all_borrowed(stocked_cli):
    stocked_cli("borrow", "Clean Code", "Alice")
    result = stocked_cli("list", "--available")
    assert result.exit_code == 0
    assert "No books are available for borrowing right now." in result.stdout


def test_list_rejects_both_filters(cli):
    result = cli("list", "--available", "--borrowed")
    assert result.exit_code == 1


def test_blank_borrower_is_an_error(stocked_cli):
    result = stocked_cli("borrow", "Clean Code", "   ")
    assert result.exit_code == 1
    assert "Borrower name cannot be empty." in result.stdout


def test_loans_json_output(db_file, stocked_cli):
    stocked_cli("borrow", "Clean Code", "Alice")
    result = runner.invoke(app, ["--output", "json", "--db", db_file, "loans"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout.strip().splitlines()[-1])
    assert payload[0]["book_title"] == "Clean Code"
    assert payload[0]["borrower_name"] == "Alice"


def test_remove(stocked_cli):
    stocked_cli("borrow", "Clean Code", "Alice")
    result = stocked_cli("remove", "Clean Code")
    assert "Book 'Clean Code' not found or currently borrowed." in result.stdout

    stocked_cli("return", "Clean Code", "Alice")
    result = stocked_cli("remove", "Clean Code")
    assert "Book 'Clean Code' has been removed." in result.stdout


def test_users_and_view(stocked_cli):
    result = stocked_cli("add-user", "Alice", "--role", "Admin")
    assert result.exit_code == 0
    assert "User added: Alice (Admin)" in result.stdout

    result = stocked_cli("add-user", "Bob")
    assert "User added: Bob (Regular User)" in result.stdout

    result = stocked_cli("view")
    assert result.exit_code == 0
    assert "Books:" in result.stdout
    assert "Clean Code by A [Software Engineering]" in result.stdout
    assert "Name: Alice, Role: Admin" in result.stdout
    assert "Name: Bob, Role: Regular User" in result.stdout


def test_add_user_invalid_role(cli):
    result = cli("add-user", "Mallory", "--role", "Root")
    assert result.exit_code == 1
    assert "Invalid role: Root" in result.stdout


def test_categories(cli):
    result = cli("categories")
    assert result.exit_code == 0
    assert result.stdout.split("\n")[:3] == ["Software Engineering", "Management", "Artificial Intelligence"]


def test_quiet_by_default(stocked_cli):
    result = stocked_cli("borrow", "Clean Code", "Alice")
    assert "LOG:" not in result.output


def test_verbose_option(db_file, stocked_cli):
    result = runner.invoke(app, ["--db", db_file, "--verbose", "borrow", "Clean Code", "Alice"])
    assert result.exit_code == 0
    assert "LOG: Borrowing book: Clean Code for Alice" in result.output
    assert "LOG: Book borrowed: Clean Code by Alice" in result.output


@patch("lending_library.main.subprocess.run")
def test_serve_command(mock_run, db_file):
    result = runner.invoke(app, ["--db", db_file, "serve", "--port", "8123"])
    assert result.exit_code == 0
    assert "Starting API on" in result.stdout
    args = mock_run.call_args[0][0]
    assert "lending_library.api:app" in args
    assert "8123" in args
    assert mock_run.call_args[1]["env"]["LIBRARY_DB_FILE"] == db_file


def test_unusable_database_only_fails_commands_that_need_it(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("file")
    db = str(blocker / "catalog.db")

    result = runner.invoke(app, ["--db", db, "categories"])
    assert result.exit_code == 0
    assert "Management" in result.stdout

    result = runner.invoke(app, ["--db", db, "list"])
    assert result.exit_code == 1
    assert "Database unavailable" in result.stdout
