"""
metalledger/api/models.py - Response shapes for the HTTP layer

Money and quantities are rendered as strings to keep Decimal precision.
Status and type enums are rendered uppercase here and nowhere else.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional


@dataclass
class ErrorResponse:
    error: str
    timestamp: str
    message: Optional[str] = None
    category: Optional[str] = None
    retryable: bool = False
    details: Optional[dict] = None


def _money(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def _id(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _ts(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _upper(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, "value", value)).upper()


def serialize_order_item(item: Any) -> dict:
    return {
        "id": _id(item.id),
        "line_number": item.line_number,
        "product_id": _id(item.product_id),
        "product_name": item.product_name,
        "quantity": _money(item.quantity),
        "unit_price": _money(item.unit_price),
        "total_price": _money(item.total_price),
        "fees": _money(item.fees),
    }


def serialize_order(order: Any) -> dict:
    """Convert an OrderSnapshot to dictionary"""
    payload = {
        "id": _id(order.id),
        "order_number": order.order_number,
        "user_id": _id(order.user_id),
        "type": _upper(order.type),
        "status": _upper(order.status),
        "currency": order.currency,
        "custody_service_id": _id(order.custody_service_id),
        "subtotal": _money(order.subtotal),
        "fees": _money(order.fees),
        "taxes": _money(order.taxes),
        "total_amount": _money(order.total_amount),
        "notes": order.notes,
        "items": [serialize_order_item(i) for i in order.items],
        "created_at": _ts(order.created_at),
        "updated_at": _ts(order.updated_at),
    }
    if getattr(order, "fulfillment", None) is not None:
        payload["fulfillment"] = order.fulfillment.summary()
    return payload


def serialize_position(position: Any) -> dict:
    return {
        "id": _id(position.id),
        "user_id": _id(position.user_id),
        "product_id": _id(position.product_id),
        "portfolio_id": _id(position.portfolio_id),
        "custody_service_id": _id(position.custody_service_id),
        "quantity": _money(position.quantity),
        "purchase_price": _money(position.purchase_price),
        "market_price": _money(position.market_price),
        "status": _upper(position.status),
        "purchase_date": _ts(position.purchase_date),
        "closed_date": _ts(position.closed_date),
        "notes": position.notes,
    }


def serialize_transaction(transaction: Any) -> dict:
    return {
        "id": _id(transaction.id),
        "position_id": _id(transaction.position_id),
        "user_id": _id(transaction.user_id),
        "type": _upper(transaction.type),
        "date": _ts(transaction.date),
        "quantity": _money(transaction.quantity),
        "price": _money(transaction.price),
        "fees": _money(transaction.fees),
        "notes": transaction.notes,
        "created_at": _ts(transaction.created_at),
    }


def serialize_portfolio(portfolio: Any) -> dict:
    return {
        "id": _id(portfolio.id),
        "name": portfolio.name,
        "description": portfolio.description,
        "owner_id": _id(portfolio.owner_id),
        "is_active": portfolio.is_active,
        "created_at": _ts(portfolio.created_at),
    }


def serialize_product(product: Any) -> dict:
    return {
        "id": _id(product.id),
        "name": product.name,
        "metal_id": _id(product.metal_id),
        "weight": _money(product.weight),
        "weight_unit": product.weight_unit.value,
        "purity": _money(product.purity),
        "price": _money(product.price),
        "currency": product.currency,
        "in_stock": product.in_stock,
        "minimum_order_quantity": product.minimum_order_quantity,
    }


def serialize_custody_service(service: Any) -> dict:
    return {
        "id": _id(service.id),
        "custodian_id": _id(service.custodian_id),
        "name": service.name,
        "fee": _money(service.fee),
        "payment_frequency": service.payment_frequency.value,
        "currency": service.currency,
        "max_weight": _money(service.max_weight),
    }
