"""
Order Fulfillment Step Definitions

Step implementations for order placement, status advances and the
positions that delivery produces.
"""

from decimal import Decimal

from behave import given, when, then
from sqlalchemy import select

from metalledger.core.errors import LedgerError
from metalledger.core.snapshots import Actor
from metalledger.models import Metal, Order, Portfolio, Position, Product, Transaction, User


def _user_id(context, name):
    return context.users[name]


def _place(context, user, order_type, quantity, product, price):
    order = context.services.orders.place_order(
        Actor(_user_id(context, user)),
        type=order_type,
        items=[{"product_id": context.products[product], "quantity": quantity, "unit_price": price}],
    )
    context.order_id = order.id
    return order


def _advance_until(context, status):
    while True:
        with context.db.session_context() as session:
            current = session.get(Order, context.order_id).status.value
        if current == status:
            return
        context.services.state_machine.advance(context.order_id)


def _try_advance(context, status=None):
    context.last_error = None
    try:
        if status is None:
            context.services.state_machine.advance(context.order_id)
        else:
            _advance_until(context, status)
    except LedgerError as e:
        context.logger.info(f"Advance rejected: {e.code}")
        context.last_error = e


# ============================================================================
# GIVEN
# ============================================================================


@given('a customer "{username}" named "{full_name}"')
def step_customer(context, username, full_name):
    """Create a customer account."""
    first_name, last_name = full_name.split(" ", 1)
    with context.db.session_context() as session:
        user = User(
            email=f"{username}@example.com",
            username=username,
            first_name=first_name,
            last_name=last_name,
        )
        session.add(user)
        session.flush()
        context.users[username] = user.id


@given('a product "{name}" priced at {price} {currency}')
def step_product(context, name, price, currency):
    """Add a product to the catalog."""
    with context.db.session_context() as session:
        metal = session.scalars(select(Metal).where(Metal.symbol == "AU")).first()
        if metal is None:
            metal = Metal(name="Gold", symbol="AU")
            session.add(metal)
        product = Product(name=name, metal=metal, weight=Decimal("1"), price=Decimal(price), currency=currency)
        session.add(product)
        session.flush()
        context.products[name] = product.id


@given('"{user}" has placed a {order_type} order for {quantity} "{product}" at {price}')
def step_placed_order(context, user, order_type, quantity, product, price):
    """Place a pending order."""
    _place(context, user, order_type, quantity, product, price)


@given('"{user}" has received {quantity} "{product}" at {price}')
def step_received(context, user, quantity, product, price):
    """Place a buy order and advance it through delivery."""
    _place(context, user, "buy", quantity, product, price)
    _advance_until(context, "delivered")


# ============================================================================
# WHEN
# ============================================================================


@when("the order is advanced to {status}")
def step_advance_to(context, status):
    """Advance the current order until it reaches a status."""
    _try_advance(context, status)


@when("the order is advanced once more")
def step_advance_once(context):
    """Advance the current order by one step."""
    _try_advance(context)


# ============================================================================
# THEN
# ============================================================================


@then('"{user}" has a portfolio named "{name}"')
def step_portfolio_named(context, user, name):
    """Verify the auto-created portfolio name."""
    with context.db.session_context() as session:
        names = list(session.scalars(select(Portfolio.name).where(Portfolio.owner_id == _user_id(context, user))))
    assert names == [name], f"Expected portfolio '{name}' but found {names}"


@then('"{user}" holds {quantity} "{product}" at {price}')
def step_holds(context, user, quantity, product, price):
    """Verify quantity and cost basis of the active position."""
    with context.db.session_context() as session:
        position = session.scalars(
            select(Position).where(
                Position.user_id == _user_id(context, user),
                Position.product_id == context.products[product],
            )
        ).one()
    assert position.quantity == Decimal(quantity), f"Quantity is {position.quantity}"
    assert position.purchase_price == Decimal(price), f"Purchase price is {position.purchase_price}"


@then('the "{product}" position of "{user}" is closed')
def step_position_closed(context, product, user):
    """Verify the position was closed at zero."""
    with context.db.session_context() as session:
        position = session.scalars(
            select(Position).where(
                Position.user_id == _user_id(context, user),
                Position.product_id == context.products[product],
            )
        ).one()
    assert position.status.value == "closed", f"Position is {position.status.value}"
    assert position.quantity == 0
    assert position.closed_date is not None


@then('"{user}" has {count:d} position')
def step_position_count(context, user, count):
    """Verify how many positions a user has."""
    with context.db.session_context() as session:
        positions = list(session.scalars(select(Position).where(Position.user_id == _user_id(context, user))))
    assert len(positions) == count, f"Expected {count} positions but found {len(positions)}"


@then('"{user}" has {count:d} transaction')
def step_transaction_count(context, user, count):
    """Verify how many ledger transactions a user has."""
    with context.db.session_context() as session:
        transactions = list(
            session.scalars(select(Transaction).where(Transaction.user_id == _user_id(context, user)))
        )
    assert len(transactions) == count, f"Expected {count} transactions but found {len(transactions)}"


@then('the advance fails with "{code}"')
def step_advance_fails(context, code):
    """Verify the last advance was rejected with a given error."""
    assert context.last_error is not None, "Advance should have failed"
    assert context.last_error.code == code, f"Failed with {context.last_error.code}"


@then('the order status is "{status}"')
def step_order_status(context, status):
    """Verify the persisted order status."""
    with context.db.session_context() as session:
        current = session.get(Order, context.order_id).status.value
    assert current == status, f"Order status is {current}"
