"""
Wiring of the order fulfillment core from configuration
"""

from dataclasses import dataclass
from typing import Any

from config.settings import Config
from metalledger.core.audit import AuditTrail
from metalledger.core.calculation import CalculationService
from metalledger.core.fulfillment import FulfillmentOrchestrator
from metalledger.core.order_service import OrderService
from metalledger.core.order_state import OrderStateMachine
from metalledger.core.portfolio_service import PortfolioService
from metalledger.core.position_mutator import PositionMutator
from metalledger.core.position_resolver import PositionResolver
from metalledger.core.transaction_recorder import TransactionRecorder


@dataclass
class Services:
    db: Any
    audit: AuditTrail
    orders: OrderService
    portfolios: PortfolioService
    state_machine: OrderStateMachine


def build_calculator(config: type[Config] = Config) -> CalculationService:
    fees = config.ORDER_FEES()
    return CalculationService(
        processing_fee_rate=fees["processing_fee_rate"],
        tax_rate=fees["tax_rate"],
        shipping_fee=fees["shipping_fee"],
        insurance_fee=fees["insurance_fee"],
    )


def build_state_machine(
    db: Any,
    config: type[Config] = Config,
    audit: AuditTrail | None = None,
    portfolios: PortfolioService | None = None,
) -> OrderStateMachine:
    portfolios = portfolios or PortfolioService(
        db,
        name_template=config.PORTFOLIO_NAME_TEMPLATE(),
        description=config.PORTFOLIO_DESCRIPTION(),
    )
    orchestrator = FulfillmentOrchestrator(
        portfolios,
        resolver=PositionResolver(),
        mutator=PositionMutator(
            price_increments=config.PRICE_INCREMENTS(),
            default_increment=config.DEFAULT_PRICE_INCREMENT(),
        ),
        recorder=TransactionRecorder(),
    )
    return OrderStateMachine(db, orchestrator, audit=audit)


def build_services(db: Any, config: type[Config] = Config) -> Services:
    """Everything the HTTP layer and the CLI need, sharing one audit trail"""
    audit = AuditTrail()
    portfolios = PortfolioService(
        db,
        name_template=config.PORTFOLIO_NAME_TEMPLATE(),
        description=config.PORTFOLIO_DESCRIPTION(),
    )
    return Services(
        db=db,
        audit=audit,
        orders=OrderService(
            db,
            default_currency=config.DEFAULT_CURRENCY(),
            page_size=config.PAGE_SIZE(),
            max_page_size=config.MAX_PAGE_SIZE(),
            calculator=build_calculator(config),
        ),
        portfolios=portfolios,
        state_machine=build_state_machine(db, config, audit=audit, portfolios=portfolios),
    )
