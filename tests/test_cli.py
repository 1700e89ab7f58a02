"""
Tests for CLI commands

Tests cover:
- Database initialization and catalog seeding
- User creation and token issuing
- Placing, advancing and cancelling orders
- Retrying advances on transient lock failures
"""

import re
from unittest.mock import patch

from click.testing import CliRunner

from metalledger.cli import cli
from metalledger.core.errors import LockTimeout
from metalledger.core.order_state import OrderStateMachine
from tests import BaseTestCase

ORDER_ID_RE = re.compile(r"\(([0-9a-f-]{36})\)")


class TestCLICommands(BaseTestCase):
    """Tests for CLI commands against the seeded test database"""

    def setUp(self):
        super().setUp()
        self.runner = CliRunner()

    def invoke(self, *args):
        return self.runner.invoke(
            cli, ["--database-url", f"sqlite:///{self.test_db_path}", "--env", "testing", *args]
        )

    def place_via_cli(self, *extra):
        result = self.invoke(
            "place-order",
            "--user-email",
            "alice@example.com",
            "--type",
            "buy",
            "--item",
            f"{self.gold_bar_id}:2:1500.00",
            *extra,
        )
        assert result.exit_code == 0, result.output
        return ORDER_ID_RE.search(result.output).group(1)

    def test_cli_help(self) -> None:
        """Test that CLI help displays all commands"""
        result = self.runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in (
            "init-db",
            "seed-catalog",
            "create-user",
            "issue-token",
            "place-order",
            "advance-order",
            "cancel-order",
            "list-positions",
        ):
            assert command in result.output

    def test_init_db_is_idempotent(self) -> None:
        result = self.invoke("init-db")
        assert result.exit_code == 0
        assert "Tables created" in result.output

    def test_seed_catalog_skips_when_present(self) -> None:
        # The test fixtures already seeded metals
        result = self.invoke("seed-catalog")
        assert result.exit_code == 0
        assert "already seeded" in result.output

    def test_seed_catalog_on_empty_database(self) -> None:
        runner_args = ["--database-url", f"sqlite:///{self.tmpdir.name}/fresh.db", "--env", "testing"]
        assert self.runner.invoke(cli, [*runner_args, "init-db"]).exit_code == 0

        result = self.runner.invoke(cli, [*runner_args, "seed-catalog"])
        assert result.exit_code == 0
        assert "Seeded 4 metals, 5 products" in result.output

    def test_create_user(self) -> None:
        result = self.invoke("create-user", "--email", "dora@example.com", "--first-name", "Dora", "--role", "ADMIN")
        assert result.exit_code == 0
        assert "role: admin" in result.output

        result = self.invoke("create-user", "--email", "dora@example.com")
        assert result.exit_code != 0
        assert "already exists" in result.output

    def test_issue_token(self) -> None:
        result = self.invoke("issue-token", "--user-email", "alice@example.com", "--days", "1")
        assert result.exit_code == 0
        token = result.stdout.strip().splitlines()[-1]
        assert token.count(".") == 2

    def test_issue_token_unknown_user(self) -> None:
        result = self.invoke("issue-token", "--user-email", "nobody@example.com")
        assert result.exit_code != 0
        assert "User not found" in result.output

        result = self.invoke("issue-token", "--user-id", "not-a-uuid")
        assert result.exit_code != 0
        assert "ValidationError" in result.output

    def test_place_advance_and_list(self) -> None:
        order_id = self.place_via_cli()
        assert self.order_status(order_id) == "pending"

        for expected in ("CONFIRMED", "PROCESSING", "SHIPPED"):
            result = self.invoke("advance-order", order_id)
            assert result.exit_code == 0, result.output
            assert f"is now {expected}" in result.output

        result = self.invoke("advance-order", order_id)
        assert result.exit_code == 0
        assert "is now DELIVERED" in result.output
        assert "created" in result.output

        result = self.invoke("list-positions", "--user-email", "alice@example.com", "--status", "active")
        assert result.exit_code == 0
        assert str(self.gold_bar_id) in result.output
        assert "ACTIVE" in result.output

    def test_place_order_rejects_bad_item(self) -> None:
        result = self.invoke(
            "place-order", "--user-email", "alice@example.com", "--type", "buy", "--item", "just-one-part"
        )
        assert result.exit_code != 0
        assert "Invalid item" in result.output

        result = self.invoke(
            "place-order", "--user-email", "alice@example.com", "--type", "buy", "--item", f"{self.sold_out_id}:1"
        )
        assert result.exit_code != 0
        assert "ValidationError" in result.output

    def test_cancel_order(self) -> None:
        order_id = self.place_via_cli()

        result = self.invoke("cancel-order", order_id)
        assert result.exit_code == 0
        assert "cancelled" in result.output
        assert self.order_status(order_id) == "cancelled"

        result = self.invoke("advance-order", order_id)
        assert result.exit_code != 0
        assert "AlreadyCancelled" in result.output

    def test_list_positions_empty(self) -> None:
        result = self.invoke("list-positions", "--user-email", "bob@example.com")
        assert result.exit_code == 0
        assert "No positions found." in result.output

    def test_advance_retries_lock_timeouts(self) -> None:
        order_id = self.place_via_cli()
        original = OrderStateMachine.advance
        attempts = []

        def flaky_advance(state_machine, oid):
            attempts.append(oid)
            if len(attempts) == 1:
                raise LockTimeout("Lock not acquired: database is locked")
            return original(state_machine, oid)

        with patch.object(OrderStateMachine, "advance", flaky_advance):
            result = self.invoke("advance-order", order_id, "--backoff", "0")

        assert result.exit_code == 0, result.output
        assert len(attempts) == 2
        assert self.order_status(order_id) == "confirmed"

    def test_advance_gives_up_after_retries(self) -> None:
        order_id = self.place_via_cli()

        with patch.object(OrderStateMachine, "advance", side_effect=LockTimeout("busy")) as advance:
            result = self.invoke("advance-order", order_id, "--retries", "2", "--backoff", "0")

        assert result.exit_code != 0
        assert "LockTimeout" in result.output
        assert advance.call_count == 3
        assert self.order_status(order_id) == "pending"
