# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/refill_pos/routes/sales.py
"""Sales API routes. Header and items are separate writes, both replay-safe."""

from flask import Blueprint, request, jsonify, current_app

from ..services import sales_service
from ..services.sales_service import SaleError
from ..validation import ValidationError, NotFoundError


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
def list_sales_route():
    """
    Newest sales first, each with its items.

    Query params:
    - limit: int (default 100, capped by SALE_LIST_MAX)
    - since: ISO-8601 datetime (optional)
    """
    limit = request.args.get("limit", default=100, type=int)
    limit = max(1, min(limit, current_app.config.get("SALE_LIST_MAX", 500)))

    try:
        items = sales_service.list_sales(limit=limit, since=request.args.get("since"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"items": items, "count": len(items)}), 200


@sales_bp.post("")
def insert_sale_route():
    """
    Insert a sale header.

    Returns 201 when created, 200 when the id already existed.
    """
    try:
        sale, created = sales_service.insert_sale(request.get_json(silent=True))
        return jsonify({"sale": sale, "created": created}), 201 if created else 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to insert sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<sale_id>")
def get_sale_route(sale_id: str):
    try:
        return jsonify({"sale": sales_service.get_sale(sale_id)}), 200
    except NotFoundError:
        return jsonify({"error": "Sale not found"}), 404


@sales_bp.post("/<sale_id>/items")
def insert_items_route(sale_id: str):
    """Upsert the items of an existing sale."""
    data = request.get_json(silent=True) or {}
    items = data.get("items") if isinstance(data, dict) else data

    try:
        rows = sales_service.insert_items(sale_id, items)
        return jsonify({"items": rows}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError:
        return jsonify({"error": "Sale not found"}), 404
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to insert sale items")
        return jsonify({"error": "Internal server error"}), 500
