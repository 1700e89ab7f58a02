"""
Tests for order fulfillment on delivery

Tests cover:
- Portfolio auto-provisioning and naming
- Position creation, consolidation, reduction, closing and reactivation
- Exactly one transaction per line per fulfillment pass
- All-or-nothing application across lines, status left unchanged on failure
- Guard against fulfilling an order twice
- Audit events published only after commit
"""

from decimal import Decimal
from unittest.mock import patch

from metalledger.core.errors import AlreadyFulfilled, InsufficientQuantity, PositionNotFound
from metalledger.core.position_mutator import MutationKind
from metalledger.models import Order, Portfolio, PositionStatus, TransactionType, User
from sqlalchemy import select
from tests import BaseTestCase


class TestFulfillmentScenarios(BaseTestCase):
    """End-to-end delivery scenarios through the state machine"""

    def test_first_delivery_provisions_portfolio_and_positions(self):
        snapshot = self.deliver(
            self.alice_id,
            items=[(self.gold_bar_id, "2", "1500.00"), (self.silver_coin_id, "1", "1600.00")],
        )

        self.assertEqual(snapshot.status.value, "delivered")
        self.assertTrue(snapshot.fulfillment.portfolio_created)

        with self.db.session_context() as session:
            portfolios = list(session.scalars(select(Portfolio).where(Portfolio.owner_id == self.alice_id)))
        self.assertEqual(len(portfolios), 1)
        self.assertEqual(portfolios[0].name, "Alice Keller Portfolio")
        self.assertEqual(portfolios[0].description, "Auto-created for order fulfillment")

        positions = self.positions(self.alice_id)
        self.assertEqual(len(positions), 2)
        by_product = {p.product_id: p for p in positions}
        gold = by_product[self.gold_bar_id]
        self.assertEqual(gold.quantity, Decimal("2"))
        self.assertEqual(gold.purchase_price, Decimal("1500.00"))
        self.assertEqual(gold.market_price, Decimal("1500.00"))
        self.assertEqual(gold.status, PositionStatus.ACTIVE)
        self.assertEqual(gold.portfolio_id, portfolios[0].id)
        self.assertEqual(by_product[self.silver_coin_id].purchase_price, Decimal("1600.00"))

        transactions = self.transactions(self.alice_id)
        self.assertEqual(len(transactions), 2)
        for tx in transactions:
            self.assertEqual(tx.type, TransactionType.BUY)
            self.assertEqual(tx.notes, f"Buy order {snapshot.id}")
            self.assertEqual(tx.fees, Decimal("0"))

    def test_second_buy_consolidates_with_weighted_average(self):
        self.deliver(self.alice_id, items=[(self.gold_bar_id, "2", "1500.00")])
        snapshot = self.deliver(self.alice_id, items=[(self.gold_bar_id, "4", "1600.00")])

        positions = self.positions(self.alice_id)
        self.assertEqual(len(positions), 1)
        self.assertEqual(positions[0].quantity, Decimal("6"))
        self.assertEqual(positions[0].purchase_price, Decimal("1566.67"))
        self.assertEqual(positions[0].market_price, Decimal("1566.67"))
        self.assertFalse(snapshot.fulfillment.portfolio_created)
        self.assertEqual(snapshot.fulfillment.outcomes[0].kind, MutationKind.CONSOLIDATED)
        self.assertEqual(len(self.transactions(self.alice_id)), 2)

    def test_sell_reduces_then_closes(self):
        self.deliver(self.alice_id, items=[(self.gold_bar_id, "3", "1500.00")])

        self.deliver(self.alice_id, "sell", items=[(self.gold_bar_id, "1", "1700.00")])
        position = self.positions(self.alice_id)[0]
        self.assertEqual(position.quantity, Decimal("2"))
        self.assertEqual(position.purchase_price, Decimal("1500.00"))
        self.assertEqual(position.status, PositionStatus.ACTIVE)

        snapshot = self.deliver(self.alice_id, "sell", items=[(self.gold_bar_id, "2", "1700.00")])
        position = self.positions(self.alice_id)[0]
        self.assertEqual(position.quantity, Decimal("0"))
        self.assertEqual(position.status, PositionStatus.CLOSED)
        self.assertIsNotNone(position.closed_date)
        self.assertEqual(snapshot.fulfillment.outcomes[0].kind, MutationKind.CLOSED)

        sells = [t for t in self.transactions(self.alice_id) if t.type is TransactionType.SELL]
        self.assertEqual(len(sells), 2)
        self.assertTrue(all(t.notes.startswith("Sell order") for t in sells))

    def test_buy_after_close_reactivates_with_fresh_basis(self):
        self.deliver(self.alice_id, items=[(self.gold_bar_id, "2", "1500.00")])
        self.deliver(self.alice_id, "sell", items=[(self.gold_bar_id, "2", "1700.00")])
        closed_id = self.positions(self.alice_id)[0].id

        snapshot = self.deliver(self.alice_id, items=[(self.gold_bar_id, "1", "1900.00")])

        positions = self.positions(self.alice_id)
        self.assertEqual(len(positions), 1)
        self.assertEqual(positions[0].id, closed_id)
        self.assertEqual(positions[0].status, PositionStatus.ACTIVE)
        self.assertEqual(positions[0].quantity, Decimal("1"))
        self.assertEqual(positions[0].purchase_price, Decimal("1900.00"))
        self.assertIsNone(positions[0].closed_date)
        self.assertEqual(snapshot.fulfillment.outcomes[0].kind, MutationKind.REACTIVATED)

    def test_insufficient_quantity_leaves_everything_unchanged(self):
        self.deliver(self.alice_id, items=[(self.gold_bar_id, "2", "1500.00")])
        order = self.place(self.alice_id, "sell", items=[(self.gold_bar_id, "5", "1700.00")])
        self.advance_to(order.id, "shipped")
        self.audit_events.clear()

        with self.assertRaises(InsufficientQuantity):
            self.services.state_machine.advance(order.id)

        self.assertEqual(self.order_status(order.id), "shipped")
        position = self.positions(self.alice_id)[0]
        self.assertEqual(position.quantity, Decimal("2"))
        self.assertEqual(position.status, PositionStatus.ACTIVE)
        self.assertEqual(len(self.transactions(self.alice_id)), 1)
        self.assertEqual(self.audit_events, [])

    def test_line_failure_rolls_back_earlier_lines(self):
        self.deliver(self.alice_id, items=[(self.gold_bar_id, "2", "1500.00")])
        order = self.place(
            self.alice_id,
            "sell",
            items=[(self.gold_bar_id, "1", "1700.00"), (self.silver_coin_id, "1", "30.00")],
        )
        self.advance_to(order.id, "shipped")

        with self.assertRaises(PositionNotFound):
            self.services.state_machine.advance(order.id)

        self.assertEqual(self.order_status(order.id), "shipped")
        self.assertEqual(self.positions(self.alice_id)[0].quantity, Decimal("2"))
        self.assertEqual(len(self.transactions(self.alice_id)), 1)

    def test_failed_first_delivery_does_not_leave_a_portfolio(self):
        order = self.place(self.bob_id, "sell", items=[(self.gold_bar_id, "1", "1700.00")])
        self.advance_to(order.id, "shipped")

        with self.assertRaises(PositionNotFound):
            self.services.state_machine.advance(order.id)

        with self.db.session_context() as session:
            self.assertIsNone(
                session.scalars(select(Portfolio).where(Portfolio.owner_id == self.bob_id)).first()
            )

    def test_fulfilling_a_delivered_order_again_is_rejected(self):
        snapshot = self.deliver(self.alice_id, items=[(self.gold_bar_id, "2", "1500.00")])
        orchestrator = self.services.state_machine.fulfillment

        with self.assertRaises(AlreadyFulfilled):
            with self.db.session_context() as session:
                orchestrator.fulfill(session, session.get(Order, snapshot.id))

        self.assertEqual(len(self.transactions(self.alice_id)), 1)
        self.assertEqual(self.positions(self.alice_id)[0].quantity, Decimal("2"))

    def test_owner_row_is_locked_before_portfolio_lookup(self):
        order = self.place(self.bob_id, items=[(self.gold_bar_id, "1", "1500.00")])
        self.advance_to(order.id, "shipped")
        orchestrator = self.services.state_machine.fulfillment
        portfolios = orchestrator.portfolios
        calls = []

        with self.db.session_context() as session:
            shipped = session.get(Order, order.id)
            original_get = session.get
            original_lookup = portfolios.get_or_create_default

            def recording_get(entity, ident, **kwargs):
                calls.append((entity, ident, kwargs.get("with_for_update")))
                return original_get(entity, ident, **kwargs)

            def recording_lookup(*args, **kwargs):
                calls.append("portfolio")
                return original_lookup(*args, **kwargs)

            with patch.object(session, "get", side_effect=recording_get), patch.object(
                portfolios, "get_or_create_default", side_effect=recording_lookup
            ):
                orchestrator.fulfill(session, shipped)

        self.assertEqual(calls[0], (User, self.bob_id, True))
        self.assertLess(calls.index((User, self.bob_id, True)), calls.index("portfolio"))

    def test_completing_does_not_reapply(self):
        snapshot = self.deliver(self.alice_id, items=[(self.gold_bar_id, "2", "1500.00")])
        completed = self.services.state_machine.advance(snapshot.id)

        self.assertEqual(completed.status.value, "completed")
        self.assertIsNone(completed.fulfillment)
        self.assertEqual(len(self.transactions(self.alice_id)), 1)
        self.assertEqual(self.positions(self.alice_id)[0].quantity, Decimal("2"))

    def test_custody_service_separates_positions(self):
        self.deliver(self.alice_id, items=[(self.gold_bar_id, "1", "1500.00")])
        self.deliver(
            self.alice_id, items=[(self.gold_bar_id, "1", "1600.00")], custody_service_id=self.allocated_id
        )
        self.deliver(
            self.alice_id, items=[(self.gold_bar_id, "1", "1700.00")], custody_service_id=self.allocated_id
        )

        positions = self.positions(self.alice_id)
        self.assertEqual(len(positions), 2)
        by_custody = {p.custody_service_id: p for p in positions}
        self.assertEqual(by_custody[None].quantity, Decimal("1"))
        self.assertEqual(by_custody[self.allocated_id].quantity, Decimal("2"))
        self.assertEqual(by_custody[self.allocated_id].purchase_price, Decimal("1650.00"))

    def test_audit_events_published_after_commit(self):
        self.deliver(
            self.alice_id,
            items=[(self.gold_bar_id, "2", "1500.00"), (self.silver_coin_id, "1", "1600.00")],
        )

        delivery_events = self.audit_events[-6:]
        actions = [e.action for e in delivery_events]
        self.assertEqual(
            actions,
            [
                "portfolio.created",
                "position.created",
                "transaction.recorded",
                "position.created",
                "transaction.recorded",
                "order.status_changed",
            ],
        )
        status_change = delivery_events[-1].to_dict()
        self.assertEqual(status_change["changes"]["before"]["status"], "shipped")
        self.assertEqual(status_change["changes"]["after"]["status"], "delivered")
        created = delivery_events[1].to_dict()
        self.assertEqual(Decimal(created["changes"]["after"]["quantity"]), Decimal("2"))

    def test_failing_listener_does_not_affect_outcome(self):
        def broken_listener(event):
            raise RuntimeError("listener down")

        self.services.audit.subscribe(broken_listener)
        snapshot = self.deliver(self.alice_id, items=[(self.gold_bar_id, "1", "1500.00")])

        self.assertEqual(snapshot.status.value, "delivered")
        self.assertEqual(len(self.positions(self.alice_id)), 1)


class TestPortfolioProvisioning(BaseTestCase):
    def test_name_falls_back_to_username(self):
        self.deliver(self.bob_id)
        portfolios = self.services.portfolios.list_portfolios(self.actor(self.bob_id))
        self.assertEqual(portfolios[0].name, "bob Portfolio")

    def test_name_falls_back_to_email_local_part(self):
        self.deliver(self.carol_id)
        portfolios = self.services.portfolios.list_portfolios(self.actor(self.carol_id))
        self.assertEqual(portfolios[0].name, "carol.smith Portfolio")

    def test_first_created_portfolio_wins(self):
        first = self.services.portfolios.create_portfolio(self.actor(self.alice_id), "Long Term")
        self.services.portfolios.create_portfolio(self.actor(self.alice_id), "Trading")

        snapshot = self.deliver(self.alice_id)

        self.assertFalse(snapshot.fulfillment.portfolio_created)
        self.assertEqual(snapshot.fulfillment.portfolio_id, first.id)
        self.assertEqual(self.positions(self.alice_id)[0].portfolio_id, first.id)
