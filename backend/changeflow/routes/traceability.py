# backend/changeflow/routes/traceability.py
"""
Traceability API Routes (read-only)

- GET /api/traceability/search?q=widget  - lineage nodes matching a query
- GET /api/traceability/:number          - full chain for ECR/ECO/ECN number
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import ChangeFlowError, error_response
from ..services import traceability_service


traceability_bp = Blueprint("traceability", __name__, url_prefix="/api/traceability")


@traceability_bp.get("/search")
@require_actor
def search_route():
    try:
        result = traceability_service.search_traceability(g.org_id, request.args.get("q", ""))
        return jsonify(result), 200
    except ChangeFlowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to search traceability")
        return jsonify({"error": "Internal server error"}), 500


@traceability_bp.get("/<string:number>")
@require_actor
def chain_route(number: str):
    try:
        return jsonify(traceability_service.get_traceability(g.org_id, number)), 200
    except ChangeFlowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load traceability chain")
        return jsonify({"error": "Internal server error"}), 500
