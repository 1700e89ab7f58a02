"""
Admin API endpoints for order processing

Requires admin role for access.
"""

import logging
from typing import Tuple

from flask import Blueprint, Response, jsonify, request

from metalledger.api import get_services
from metalledger.api.models import serialize_order
from metalledger.auth import current_actor, require_login, require_role
from metalledger.models import UserRole

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.route("/orders", methods=["GET"])
@require_login
@require_role(UserRole.ADMIN)
def list_all_orders() -> Tuple[Response, int]:
    """
    List orders of every user (admin only)
    ---
    tags:
      - admin
    security:
      - Bearer: []
    parameters:
      - name: user_id
        in: query
        type: string
      - name: status
        in: query
        type: string
      - name: page
        in: query
        type: integer
      - name: limit
        in: query
        type: integer
    responses:
      200:
        description: Paginated order list
      403:
        description: Admin role required
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


@admin_bp.route("/orders/<order_id>/process", methods=["POST"])
@require_login
@require_role(UserRole.ADMIN)
def process_order(order_id: str) -> Tuple[Response, int]:
    """
    Advance an order to its next status (admin only)

    Advancing SHIPPED -> DELIVERED updates the owner's positions.
    ---
    tags:
      - admin
    security:
      - Bearer: []
    parameters:
      - name: order_id
        in: path
        type: string
        required: true
    responses:
      200:
        description: Order advanced
      409:
        description: Order is completed or cancelled
      422:
        description: Fulfillment rejected (insufficient quantity, no position to sell)
      503:
        description: Lock not acquired, retry after the Retry-After delay
    """
    order = get_services().state_machine.advance(order_id)
    logger.info(f"Admin {current_actor().user_id} advanced order {order_id} to {order.status.value}")
    return (
        jsonify(
            {
                "message": f"Order processed successfully to status {order.status.value.upper()}",
                "order": serialize_order(order),
            }
        ),
        200,
    )


@admin_bp.route("/orders/<order_id>", methods=["DELETE"])
@require_login
@require_role(UserRole.ADMIN)
def delete_order(order_id: str) -> Tuple[Response, int]:
    """
    Hard delete an order and its items (admin only)
    ---
    tags:
      - admin
    security:
      - Bearer: []
    parameters:
      - name: order_id
        in: path
        type: string
        required: true
    responses:
      200:
        description: Order deleted
      404:
        description: Order not found
    """
    deleted_items = get_services().orders.delete_order(order_id, current_actor())
    return (
        jsonify(
            {
                "message": "Order deleted successfully",
                "order_id": order_id,
                "deleted_items": deleted_items,
            }
        ),
        200,
    )
