"""
metalledger/api/routes.py - REST API endpoints with Flasgger documentation

Ledger errors raised by the services propagate to the handlers registered
in metalledger.api.errors.
"""

from datetime import datetime, timezone
import logging
from typing import Tuple

from flask import Blueprint, Response, jsonify, request
from sqlalchemy import select

from metalledger.api import get_services
from metalledger.api.models import (
    serialize_custody_service,
    serialize_order,
    serialize_portfolio,
    serialize_position,
    serialize_product,
    serialize_transaction,
)
from metalledger.auth import current_actor, require_login
from metalledger.core.errors import ValidationError
from metalledger.models import CustodyService, Product

api_bp = Blueprint("api", __name__)
logger = logging.getLogger(__name__)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


# ============================================================================
# HEALTH ENDPOINTS
# ============================================================================


@api_bp.route("/health", methods=["GET"])
def health_check() -> Tuple[Response, int]:
    """
    Get system health status
    ---
    tags:
      - health
    responses:
      200:
        description: Health check successful
        schema:
          type: object
          properties:
            status:
              type: string
              enum: ['healthy', 'unhealthy']
            timestamp:
              type: string
            database:
              type: string
            version:
              type: string
      503:
        description: Database unreachable
    """
    connected = get_services().db.test_connection()
    health_status = {
        "status": "healthy" if connected else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "connected" if connected else "unreachable",
        "version": "1.0.0",
    }
    return jsonify(health_status), 200 if connected else 503


# ============================================================================
# CATALOG ENDPOINTS
# ============================================================================


@api_bp.route("/products", methods=["GET"])
@require_login
def list_products() -> Tuple[Response, int]:
    """
    List catalog products
    ---
    tags:
      - catalog
    security:
      - Bearer: []
    parameters:
      - name: in_stock
        in: query
        type: boolean
        required: false
    responses:
      200:
        description: Product list
      401:
        description: Unauthorized
    """
    stmt = select(Product).order_by(Product.name)
    if request.args.get("in_stock", "").lower() == "true":
        stmt = stmt.where(Product.in_stock.is_(True))

    with get_services().db.session_context() as session:
        products = [serialize_product(p) for p in session.scalars(stmt)]
    return jsonify({"products": products, "count": len(products)}), 200


@api_bp.route("/custody-services", methods=["GET"])
@require_login
def list_custody_services() -> Tuple[Response, int]:
    """
    List custody services
    ---
    tags:
      - catalog
    security:
      - Bearer: []
    responses:
      200:
        description: Custody service list
    """
    with get_services().db.session_context() as session:
        services = [
            serialize_custody_service(s)
            for s in session.scalars(select(CustodyService).order_by(CustodyService.name))
        ]
    return jsonify({"custody_services": services, "count": len(services)}), 200


# ============================================================================
# ORDER ENDPOINTS
# ============================================================================


@api_bp.route("/orders", methods=["POST"])
@require_login
def place_order() -> Tuple[Response, int]:
    """
    Place a buy or sell order
    ---
    tags:
      - orders
    security:
      - Bearer: []
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            type:
              type: string
              enum: ['BUY', 'SELL']
            currency:
              type: string
              description: ISO currency code (defaults to configured currency)
            custody_service_id:
              type: string
            notes:
              type: string
            user_id:
              type: string
              description: Owner of the order (administrators only)
            items:
              type: array
              items:
                type: object
                properties:
                  product_id:
                    type: string
                  quantity:
                    type: number
                  unit_price:
                    type: number
                  fees:
                    type: number
          required:
            - type
            - items
    responses:
      201:
        description: Order created in PENDING status
      400:
        description: Invalid request
      403:
        description: Placing for another user
      404:
        description: Product or custody service not found
    """
    data = _json_body()
    order = get_services().orders.place_order(
        current_actor(),
        type=data.get("type"),
        items=data.get("items") or [],
        custody_service_id=data.get("custody_service_id"),
        currency=data.get("currency"),
        notes=data.get("notes"),
        user_id=data.get("user_id"),
    )
    return jsonify({"message": "Order created successfully", "order": serialize_order(order)}), 201


@api_bp.route("/orders", methods=["GET"])
@require_login
def list_orders() -> Tuple[Response, int]:
    """
    List the caller's orders
    ---
    tags:
      - orders
    security:
      - Bearer: []
    parameters:
      - name: page
        in: query
        type: integer
      - name: limit
        in: query
        type: integer
      - name: status
        in: query
        type: string
      - name: type
        in: query
        type: string
    responses:
      200:
        description: Paginated order list
    """
    result = get_services().orders.list_orders(
        current_actor(),
        page=request.args.get("page", 1),
        limit=request.args.get("limit"),
        status=request.args.get("status"),
        type=request.args.get("type"),
        user_id=request.args.get("user_id"),
    )
    return (
        jsonify(
            {
                "orders": [serialize_order(o) for o in result["orders"]],
                "pagination": result["pagination"],
            }
        ),
        200,
    )


@api_bp.route("/orders/<order_id>", methods=["GET"])
@require_login
def get_order(order_id: str) -> Tuple[Response, int]:
    """
    Get one order
    ---
    tags:
      - orders
    security:
      - Bearer: []
    parameters:
      - name: order_id
        in: path
        type: string
        required: true
    responses:
      200:
        description: Order with items
      403:
        description: Not the owner
      404:
        description: Order not found
    """
    order = get_services().orders.get_order(order_id, current_actor())
    return jsonify({"order": serialize_order(order)}), 200


@api_bp.route("/orders/<order_id>", methods=["PATCH", "PUT"])
@require_login
def update_order(order_id: str) -> Tuple[Response, int]:
    """
    Update order notes or, while PENDING, its items
    ---
    tags:
      - orders
    security:
      - Bearer: []
    parameters:
      - name: order_id
        in: path
        type: string
        required: true
      - name: body
        in: body
        schema:
          type: object
          properties:
            notes:
              type: string
            items:
              type: array
              items:
                type: object
    responses:
      200:
        description: Order updated
      409:
        description: Items locked or order terminal
    """
    data = _json_body()
    order = get_services().orders.update_order(
        order_id, current_actor(), notes=data.get("notes"), items=data.get("items")
    )
    return jsonify({"message": "Order updated successfully", "order": serialize_order(order)}), 200


@api_bp.route("/orders/<order_id>/cancel", methods=["POST"])
@require_login
def cancel_order(order_id: str) -> Tuple[Response, int]:
    """
    Cancel an order
    ---
    tags:
      - orders
    security:
      - Bearer: []
    parameters:
      - name: order_id
        in: path
        type: string
        required: true
    responses:
      200:
        description: Order cancelled
      403:
        description: Not the owner
      409:
        description: Order can no longer be cancelled
    """
    order = get_services().state_machine.cancel(order_id, current_actor())
    return jsonify({"message": "Order cancelled successfully", "order": serialize_order(order)}), 200


# ============================================================================
# PORTFOLIO ENDPOINTS
# ============================================================================


@api_bp.route("/portfolios", methods=["GET"])
@require_login
def list_portfolios() -> Tuple[Response, int]:
    """
    List portfolios
    ---
    tags:
      - portfolio
    security:
      - Bearer: []
    responses:
      200:
        description: Portfolios owned by the caller
    """
    portfolios = get_services().portfolios.list_portfolios(
        current_actor(), owner_id=request.args.get("user_id")
    )
    return jsonify({"portfolios": [serialize_portfolio(p) for p in portfolios]}), 200


@api_bp.route("/portfolios", methods=["POST"])
@require_login
def create_portfolio() -> Tuple[Response, int]:
    """
    Create a portfolio
    ---
    tags:
      - portfolio
    security:
      - Bearer: []
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            name:
              type: string
            description:
              type: string
          required:
            - name
    responses:
      201:
        description: Portfolio created
    """
    data = _json_body()
    portfolio = get_services().portfolios.create_portfolio(
        current_actor(),
        name=data.get("name", ""),
        description=data.get("description"),
        owner_id=data.get("user_id"),
    )
    return jsonify({"portfolio": serialize_portfolio(portfolio)}), 201


@api_bp.route("/positions", methods=["GET"])
@require_login
def list_positions() -> Tuple[Response, int]:
    """
    List positions
    ---
    tags:
      - portfolio
    security:
      - Bearer: []
    parameters:
      - name: portfolio_id
        in: query
        type: string
      - name: status
        in: query
        type: string
        enum: ['ACTIVE', 'CLOSED']
    responses:
      200:
        description: Positions of the caller
    """
    positions = get_services().portfolios.list_positions(
        current_actor(),
        owner_id=request.args.get("user_id"),
        portfolio_id=request.args.get("portfolio_id"),
        status=request.args.get("status"),
    )
    return jsonify({"positions": [serialize_position(p) for p in positions]}), 200


@api_bp.route("/transactions", methods=["GET"])
@require_login
def list_transactions() -> Tuple[Response, int]:
    """
    List ledger transactions
    ---
    tags:
      - portfolio
    security:
      - Bearer: []
    parameters:
      - name: position_id
        in: query
        type: string
    responses:
      200:
        description: Transactions of the caller, oldest first
    """
    transactions = get_services().portfolios.list_transactions(
        current_actor(),
        owner_id=request.args.get("user_id"),
        position_id=request.args.get("position_id"),
    )
    return jsonify({"transactions": [serialize_transaction(t) for t in transactions]}), 200
