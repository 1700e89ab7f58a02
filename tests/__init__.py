"""
tests/__init__.py
Test package initialization with a seeded temporary database
"""

import os
import sys
import tempfile
import unittest
from decimal import Decimal
from typing import Optional

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)


class BaseTestCase(unittest.TestCase):
    """Base test case over a temporary SQLite file with a seeded catalog

    Seeded:
    - admin, alice (full name), bob (username only) and carol (email only)
    - gold bar (CHF 1500), silver coin (CHF 25), an out-of-stock coin,
      a product with minimum quantity 10, and a EUR-priced bar
    - one custodian with two custody services
    """

    def setUp(self):
        """Set up test fixtures"""
        from config.settings import TestingConfig
        from metalledger.core.workflow import build_services
        from metalledger.db import DatabaseManager

        self.tmpdir = tempfile.TemporaryDirectory()
        self.test_db_path = os.path.join(self.tmpdir.name, "test.db")

        # Keep a developer's config.json out of the tests
        os.environ["FLASK_ENV"] = "testing"
        os.environ["CONFIG_PATH"] = os.path.join(self.tmpdir.name, "config.json")
        TestingConfig.reload()
        self.config = TestingConfig

        self.db = DatabaseManager(f"sqlite:///{self.test_db_path}", lock_timeout_ms=2000)
        self.db.init_db()
        self._seed()

        self.services = build_services(self.db, TestingConfig)
        self.audit_events = []
        self.services.audit.subscribe(self.audit_events.append)

    def tearDown(self):
        self.db.close()
        self.tmpdir.cleanup()
        os.environ.pop("CONFIG_PATH", None)

    def _seed(self):
        from metalledger.models import (
            Custodian,
            CustodyService,
            Metal,
            Product,
            User,
            UserRole,
            WeightUnit,
        )

        with self.db.session_context() as session:
            admin = User(email="admin@example.com", username="admin", role=UserRole.ADMIN)
            alice = User(
                email="alice@example.com",
                username="alice",
                first_name="Alice",
                last_name="Keller",
            )
            bob = User(email="bob@example.com", username="bob")
            carol = User(email="carol.smith@example.com")
            session.add_all([admin, alice, bob, carol])

            gold = Metal(name="Gold", symbol="AU")
            silver = Metal(name="Silver", symbol="AG")
            session.add_all([gold, silver])

            gold_bar = Product(name="Gold Bar 1 oz", metal=gold, weight=Decimal("1"), price=Decimal("1500.00"))
            silver_coin = Product(
                name="Silver Coin 1 oz", metal=silver, weight=Decimal("1"), price=Decimal("25.00")
            )
            sold_out = Product(
                name="Gold Coin 1/10 oz",
                metal=gold,
                weight=Decimal("0.1"),
                price=Decimal("180.00"),
                in_stock=False,
            )
            bulk_silver = Product(
                name="Silver Granules 1 g",
                metal=silver,
                weight=Decimal("1"),
                weight_unit=WeightUnit.GRAMS,
                price=Decimal("1.00"),
                minimum_order_quantity=10,
            )
            euro_bar = Product(
                name="Gold Bar 10 g",
                metal=gold,
                weight=Decimal("10"),
                price=Decimal("620.00"),
                currency="EUR",
            )
            session.add_all([gold_bar, silver_coin, sold_out, bulk_silver, euro_bar])

            custodian = Custodian(name="Test Vault")
            allocated = CustodyService(name="Allocated", fee=Decimal("100.00"))
            segregated = CustodyService(name="Segregated", fee=Decimal("200.00"))
            custodian.services.extend([allocated, segregated])
            session.add(custodian)
            session.flush()

            self.admin_id = admin.id
            self.alice_id = alice.id
            self.bob_id = bob.id
            self.carol_id = carol.id
            self.gold_bar_id = gold_bar.id
            self.silver_coin_id = silver_coin.id
            self.sold_out_id = sold_out.id
            self.bulk_silver_id = bulk_silver.id
            self.euro_bar_id = euro_bar.id
            self.allocated_id = allocated.id
            self.segregated_id = segregated.id

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def actor(self, user_id, is_admin: bool = False):
        from metalledger.core.snapshots import Actor

        return Actor(user_id, is_admin=is_admin)

    @property
    def admin(self):
        return self.actor(self.admin_id, is_admin=True)

    def place(
        self,
        user_id,
        order_type: str = "buy",
        items: Optional[list] = None,
        custody_service_id=None,
        **kwargs,
    ):
        """Place an order as its owner; items are (product_id, quantity[, unit_price])"""
        lines = []
        for item in items or [(self.gold_bar_id, "1")]:
            line = {"product_id": item[0], "quantity": item[1]}
            if len(item) > 2:
                line["unit_price"] = item[2]
            lines.append(line)
        return self.services.orders.place_order(
            self.actor(user_id),
            type=order_type,
            items=lines,
            custody_service_id=custody_service_id,
            **kwargs,
        )

    def advance_to(self, order_id, status: str):
        """Advance an order until it reaches the given status value"""
        from metalledger.models import Order

        snapshot = None
        for _ in range(6):
            with self.db.session_context() as session:
                current = session.get(Order, order_id).status.value
            if current == status:
                return snapshot
            snapshot = self.services.state_machine.advance(order_id)
        raise AssertionError(f"Order {order_id} never reached {status}")

    def deliver(self, user_id, order_type: str = "buy", items=None, custody_service_id=None):
        order = self.place(user_id, order_type, items, custody_service_id)
        self.advance_to(order.id, "shipped")
        return self.services.state_machine.advance(order.id)

    def positions(self, user_id, status: Optional[str] = None):
        from metalledger.models import Position, PositionStatus
        from sqlalchemy import select

        stmt = select(Position).where(Position.user_id == user_id)
        if status:
            stmt = stmt.where(Position.status == PositionStatus(status))
        with self.db.session_context() as session:
            return list(session.scalars(stmt.order_by(Position.created_at, Position.id)))

    def transactions(self, user_id):
        from metalledger.models import Transaction
        from sqlalchemy import select

        with self.db.session_context() as session:
            return list(
                session.scalars(
                    select(Transaction)
                    .where(Transaction.user_id == user_id)
                    .order_by(Transaction.created_at, Transaction.id)
                )
            )

    def order_status(self, order_id) -> str:
        import uuid

        from metalledger.models import Order

        order_id = uuid.UUID(str(order_id))

        with self.db.session_context() as session:
            return session.get(Order, order_id).status.value


class APITestCase(BaseTestCase):
    """BaseTestCase plus a Flask test client and JWT headers"""

    def setUp(self):
        super().setUp()
        from metalledger import create_app

        self.app = create_app("testing", self.db)
        self.app.config["TESTING"] = True
        self.client = self.app.test_client()
        self.audit_events = []
        self.app.extensions["metalledger"].audit.subscribe(self.audit_events.append)

    def get_auth_headers(self, user_id=None):
        """Headers with a Bearer token for the given user (default alice)"""
        from metalledger.auth import create_access_token_for_user
        from metalledger.models import User

        with self.db.session_context() as session:
            user = session.get(User, user_id or self.alice_id)

        with self.app.app_context():
            token = create_access_token_for_user(user)
        return {"Authorization": f"Bearer {token}"}
