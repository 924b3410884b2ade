# Overview: Flask API routes for products; parses input and returns JSON responses.

# backend/refill_pos/routes/products.py
"""
Product catalog routes.

Every write is idempotent by product id (see products_service), so these
endpoints double as the replay target for a register's offline queue.
"""
from flask import Blueprint, request, current_app

from ..services import products_service, container_service
from ..validation import ValidationError, ConflictError, NotFoundError

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _flag(value, default: bool) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() not in {"0", "false", "no", "off", ""}


@products_bp.get("")
def list_products():
    """
    List products.

    Query params:
    - active_only: bool (default true) - hide soft-deleted products
    """
    active_only = _flag(request.args.get("active_only"), True)
    items = products_service.list_products(active_only=active_only)
    return {"items": items, "count": len(items)}


@products_bp.post("")
def upsert_product_route():
    """Create a product, or overwrite it when the id already exists."""
    payload = request.get_json(silent=True)

    try:
        product, created = products_service.upsert_product(payload)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to upsert product")
        return {"error": "Internal server error"}, 500

    return product, 201 if created else 200


@products_bp.patch("/<product_id>")
def update_product_route(product_id: str):
    """Apply a partial update."""
    payload = request.get_json(silent=True) or {}

    try:
        product = products_service.update_product(product_id, payload)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError:
        return {"error": "Product not found"}, 404
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500

    return product, 200


@products_bp.post("/<product_id>/active")
def set_active_route(product_id: str):
    """Soft delete (is_active=false) or restore a product."""
    payload = request.get_json(silent=True) or {}
    if "is_active" not in payload or not isinstance(payload["is_active"], bool):
        return {"error": "is_active (bool) required"}, 400

    try:
        product = products_service.set_product_active(product_id, payload["is_active"])
    except NotFoundError:
        return {"error": "Product not found"}, 404
    except Exception:
        current_app.logger.exception("Failed to set product active flag")
        return {"error": "Internal server error"}, 500

    return product, 200


@products_bp.post("/<product_id>/refill")
def refill_route(product_id: str):
    """Turn empty containers back into full stock."""
    payload = request.get_json(silent=True) or {}

    try:
        product = container_service.refill_containers(
            product_id,
            payload.get("quantity"),
            user_id=payload.get("user_id"),
            note=payload.get("note"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except NotFoundError:
        return {"error": "Product not found"}, 404
    except Exception:
        current_app.logger.exception("Failed to refill containers")
        return {"error": "Internal server error"}, 500

    return product, 200
