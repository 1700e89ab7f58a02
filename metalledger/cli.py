"""
CLI commands for the order ledger

Provides administrative commands for:
- Database setup and catalog seeding
- Creating users and issuing access tokens
- Placing, advancing and cancelling orders
- Inspecting positions
"""

import logging
import time
import uuid
from decimal import Decimal
from typing import Optional

import click
from sqlalchemy import select

from metalledger.core.errors import LedgerError, PersistenceError

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Commands run by an operator act with administrator rights under this id
OPERATOR_ID = uuid.UUID(int=0)

CATALOG = {
    "metals": [("Gold", "AU"), ("Silver", "AG"), ("Platinum", "PT"), ("Palladium", "PD")],
    "products": [
        ("Gold Bar 1 oz", "AU", "1", "2000.00"),
        ("Gold Bar 100 g", "AU", "3.2151", "6400.00"),
        ("Silver Coin 1 oz", "AG", "1", "28.50"),
        ("Platinum Bar 1 oz", "PT", "1", "950.00"),
        ("Palladium Coin 1 oz", "PD", "1", "1050.00"),
    ],
    "custodians": {
        "Zurich Vault AG": [("Allocated Storage", "120.00"), ("Segregated Storage", "240.00")],
    },
}


def _handle(error: LedgerError) -> click.ClickException:
    return click.ClickException(f"{error.code}: {error.message}")


def _services(ctx: click.Context):
    """Lazily build the store handle and services for this invocation"""
    if "services" not in ctx.obj:
        from metalledger.core.workflow import build_services
        from metalledger.db import DatabaseManager

        config = ctx.obj["config"]
        database_url = ctx.obj.get("database_url")
        if database_url:
            db_manager = DatabaseManager(database_url, lock_timeout_ms=config.DB_LOCK_TIMEOUT_MS)
        else:
            db_manager = DatabaseManager.from_config(config)
        ctx.obj["services"] = build_services(db_manager, config)
        ctx.call_on_close(db_manager.close)
    return ctx.obj["services"]


def _find_user(session, email: Optional[str], user_id: Optional[str]):
    from metalledger.core.snapshots import as_uuid
    from metalledger.models import User

    if user_id:
        try:
            user = session.get(User, as_uuid(user_id, "user_id"))
        except LedgerError as e:
            raise _handle(e) from e
    elif email:
        user = session.scalars(select(User).where(User.email == email)).first()
    else:
        raise click.UsageError("Provide --user-email or --user-id")
    if user is None:
        raise click.ClickException(f"User not found: {email or user_id}")
    return user


@click.group()
@click.option("--database-url", envvar="DATABASE_URL", default=None, help="SQLAlchemy URL")
@click.option("--env", "env_name", envvar="FLASK_ENV", default="production", help="Config profile")
@click.pass_context
def cli(ctx: click.Context, database_url: Optional[str], env_name: str) -> None:
    """MetalLedger CLI - Administrative commands"""
    from config.settings import get_config

    ctx.ensure_object(dict)
    ctx.obj["database_url"] = database_url
    ctx.obj["env"] = env_name
    ctx.obj["config"] = get_config(env_name)


@cli.command()
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create all tables (safe to run repeatedly)"""
    services = _services(ctx)
    click.echo("Initializing database...")
    services.db.init_db()
    click.echo("✓ Tables created")


@cli.command()
@click.pass_context
def seed_catalog(ctx: click.Context) -> None:
    """Insert the default metals, products and custody services"""
    from metalledger.models import Custodian, CustodyService, Metal, Product

    services = _services(ctx)
    with services.db.session_context() as session:
        if session.scalars(select(Metal)).first() is not None:
            click.echo("Catalog already seeded. Skipping.")
            return

        metals = {}
        for name, symbol in CATALOG["metals"]:
            metals[symbol] = Metal(name=name, symbol=symbol)
            session.add(metals[symbol])

        for name, symbol, weight, price in CATALOG["products"]:
            session.add(
                Product(
                    name=name,
                    metal=metals[symbol],
                    weight=Decimal(weight),
                    price=Decimal(price),
                    currency="CHF",
                )
            )

        for custodian_name, plans in CATALOG["custodians"].items():
            custodian = Custodian(name=custodian_name)
            for plan_name, fee in plans:
                custodian.services.append(CustodyService(name=plan_name, fee=Decimal(fee)))
            session.add(custodian)

    click.echo(
        f"✓ Seeded {len(CATALOG['metals'])} metals, {len(CATALOG['products'])} products"
    )


@cli.command()
@click.option("--email", required=True)
@click.option("--username", default=None)
@click.option("--first-name", default=None)
@click.option("--last-name", default=None)
@click.option(
    "--role",
    type=click.Choice(["customer", "user", "admin"], case_sensitive=False),
    default="customer",
)
@click.pass_context
def create_user(
    ctx: click.Context,
    email: str,
    username: Optional[str],
    first_name: Optional[str],
    last_name: Optional[str],
    role: str,
) -> None:
    """Create a user account"""
    from metalledger.models import User, UserRole

    services = _services(ctx)
    with services.db.session_context() as session:
        if session.scalars(select(User).where(User.email == email)).first() is not None:
            raise click.ClickException(f"User '{email}' already exists")
        user = User(
            email=email,
            username=username,
            first_name=first_name,
            last_name=last_name,
            role=UserRole(role.lower()),
        )
        session.add(user)
        session.flush()
        user_id = user.id

    click.echo(f"✓ User {email} created with id {user_id} (role: {role.lower()})")


@cli.command()
@click.option("--user-email", default=None)
@click.option("--user-id", default=None)
@click.option("--days", type=int, default=30, show_default=True, help="Token lifetime")
@click.pass_context
def issue_token(
    ctx: click.Context, user_email: Optional[str], user_id: Optional[str], days: int
) -> None:
    """Print a JWT bearer token for a user"""
    from datetime import timedelta

    from metalledger import create_app
    from metalledger.auth import create_access_token_for_user

    services = _services(ctx)
    with services.db.session_context() as session:
        user = _find_user(session, user_email, user_id)

    app = create_app(ctx.obj["env"], services.db)
    with app.app_context():
        token = create_access_token_for_user(user, expires_delta=timedelta(days=days))
    click.echo(token)


@cli.command()
@click.option("--user-email", default=None)
@click.option("--user-id", default=None)
@click.option("--type", "order_type", type=click.Choice(["buy", "sell"], case_sensitive=False), required=True)
@click.option(
    "--item",
    "items",
    multiple=True,
    required=True,
    help="PRODUCT_ID:QUANTITY[:UNIT_PRICE], repeatable",
)
@click.option("--custody-service-id", default=None)
@click.option("--currency", default=None)
@click.option("--notes", default=None)
@click.pass_context
def place_order(
    ctx: click.Context,
    user_email: Optional[str],
    user_id: Optional[str],
    order_type: str,
    items: tuple,
    custody_service_id: Optional[str],
    currency: Optional[str],
    notes: Optional[str],
) -> None:
    """Place an order on behalf of a user"""
    from metalledger.core.snapshots import Actor

    services = _services(ctx)
    with services.db.session_context() as session:
        owner_id = _find_user(session, user_email, user_id).id

    lines = []
    for raw in items:
        parts = raw.split(":")
        if len(parts) not in (2, 3):
            raise click.BadParameter(f"Invalid item '{raw}'", param_hint="--item")
        line = {"product_id": parts[0], "quantity": parts[1]}
        if len(parts) == 3:
            line["unit_price"] = parts[2]
        lines.append(line)

    try:
        order = services.orders.place_order(
            Actor(owner_id),
            type=order_type,
            items=lines,
            custody_service_id=custody_service_id,
            currency=currency,
            notes=notes,
        )
    except LedgerError as e:
        raise _handle(e) from e

    click.echo(f"✓ Order {order.order_number} ({order.id}) placed: total {order.total_amount} {order.currency}")


@cli.command()
@click.argument("order_id")
@click.option("--retries", type=int, default=3, show_default=True, help="Retries on lock timeouts")
@click.option("--backoff", type=float, default=0.5, show_default=True, help="Seconds, grows linearly")
@click.pass_context
def advance_order(ctx: click.Context, order_id: str, retries: int, backoff: float) -> None:
    """Move an order to its next status"""
    services = _services(ctx)
    attempt = 0
    while True:
        try:
            order = services.state_machine.advance(order_id)
            break
        except PersistenceError as e:
            attempt += 1
            if attempt > retries:
                raise _handle(e) from e
            logger.warning(f"Advance of {order_id} failed ({e.message}), retry {attempt}/{retries}")
            time.sleep(backoff * attempt)
        except LedgerError as e:
            raise _handle(e) from e

    click.echo(f"✓ Order {order.order_number} is now {order.status.value.upper()}")
    if order.fulfillment is not None:
        for outcome in order.fulfillment.outcomes:
            click.echo(
                f"  {outcome.kind.value:<12} position {outcome.position.id}: "
                f"{outcome.after_quantity} @ {outcome.after_price}"
            )


@cli.command()
@click.argument("order_id")
@click.pass_context
def cancel_order(ctx: click.Context, order_id: str) -> None:
    """Cancel an order before delivery"""
    from metalledger.core.snapshots import Actor

    services = _services(ctx)
    try:
        order = services.state_machine.cancel(order_id, Actor(OPERATOR_ID, is_admin=True))
    except LedgerError as e:
        raise _handle(e) from e
    click.echo(f"✓ Order {order.order_number} cancelled")


@cli.command()
@click.option("--user-email", default=None)
@click.option("--user-id", default=None)
@click.option("--status", type=click.Choice(["active", "closed"], case_sensitive=False), default=None)
@click.pass_context
def list_positions(
    ctx: click.Context, user_email: Optional[str], user_id: Optional[str], status: Optional[str]
) -> None:
    """List a user's positions"""
    from metalledger.core.snapshots import Actor

    services = _services(ctx)
    with services.db.session_context() as session:
        owner_id = _find_user(session, user_email, user_id).id

    positions = services.portfolios.list_positions(
        Actor(OPERATOR_ID, is_admin=True), owner_id=owner_id, status=status
    )
    if not positions:
        click.echo("No positions found.")
        return

    click.echo(f"{'POSITION':<38} {'PRODUCT':<38} {'QUANTITY':>12} {'PRICE':>12} STATUS")
    for p in positions:
        click.echo(
            f"{str(p.id):<38} {str(p.product_id):<38} {p.quantity:>12} "
            f"{p.purchase_price:>12} {p.status.value.upper()}"
        )


if __name__ == "__main__":
    cli()
