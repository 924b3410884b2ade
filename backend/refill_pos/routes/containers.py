# Overview: Flask API routes for outstanding (deposit) containers.

from flask import Blueprint, request, jsonify, current_app

from ..services import container_service
from ..validation import ValidationError, ConflictError, NotFoundError

containers_bp = Blueprint("containers", __name__, url_prefix="/api/outstanding-containers")


@containers_bp.get("")
def list_outstanding_route():
    """
    Query params:
    - status: pending | returned | all (default pending)
    - customer_id: optional filter
    """
    status = request.args.get("status", "pending")
    if status == "all":
        status = None

    try:
        items = container_service.list_outstanding(status=status, customer_id=request.args.get("customer_id"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"items": items, "count": len(items)}), 200


@containers_bp.post("")
def insert_outstanding_route():
    try:
        record, created = container_service.insert_outstanding(request.get_json(silent=True))
        return jsonify(record), 201 if created else 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to record outstanding container")
        return jsonify({"error": "Internal server error"}), 500


@containers_bp.post("/<outstanding_id>/return")
def return_container_route(outstanding_id: str):
    data = request.get_json(silent=True) or {}

    try:
        record = container_service.return_container(
            outstanding_id,
            user_id=data.get("user_id"),
            note=data.get("note"),
        )
        return jsonify(record), 200

    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to return container")
        return jsonify({"error": "Internal server error"}), 500
