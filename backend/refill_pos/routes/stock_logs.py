# Overview: Flask API routes for the stock audit trail.

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services.stock_log_service import append_stock_log, get_stock_log, list_stock_logs
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError, NotFoundError

stock_logs_bp = Blueprint("stock_logs", __name__, url_prefix="/api/stock-logs")


@stock_logs_bp.get("")
def list_stock_logs_route():
    limit = request.args.get("limit", default=100, type=int)
    items = list_stock_logs(product_id=request.args.get("product_id"), limit=max(1, min(limit, 500)))
    return jsonify({"items": items, "count": len(items)}), 200


@stock_logs_bp.get("/<log_id>")
def get_stock_log_route(log_id: str):
    try:
        return jsonify(get_stock_log(log_id).to_dict()), 200
    except NotFoundError:
        return jsonify({"error": "Stock log not found"}), 404


@stock_logs_bp.post("")
def append_stock_log_route():
    data = request.get_json(silent=True) or {}

    for field in ("product_id", "change_amount", "reason"):
        if data.get(field) is None:
            return jsonify({"error": f"{field} required"}), 400

    try:
        entry = append_stock_log(
            product_id=data["product_id"],
            change_amount=int(data["change_amount"]),
            reason=data["reason"],
            note=data.get("note"),
            user_id=data.get("user_id"),
            sale_id=data.get("sale_id"),
            log_id=data.get("id"),
            created_at=parse_iso_datetime(data.get("created_at")),
        )
        db.session.commit()
        return jsonify(entry.to_dict()), 201

    except (ValidationError, ValueError, TypeError) as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError:
        return jsonify({"error": "Product not found"}), 404
    except Exception:
        current_app.logger.exception("Failed to append stock log")
        return jsonify({"error": "Internal server error"}), 500
