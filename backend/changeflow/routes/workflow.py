# backend/changeflow/routes/workflow.py
"""
Workflow Engine API Routes

- POST /api/workflow/bundle              - bundle >= 2 approved ECRs into an ECO
- POST /api/workflow/convert/:ecr_id     - convert one approved ECR into an ECO
- POST /api/workflow/promote/:eco_id     - promote a completed ECO into its ECN

WHY SEPARATE ROUTES:
- These are the only operations that create ECO/ECN records or set an ECR
  to CONVERTED; plain status changes live under /transition.

All three are all-or-nothing: a failed call leaves nothing behind and can be
retried with the same input.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import ChangeFlowError, error_response
from ..services import workflow_service


workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/workflow")


@workflow_bp.post("/bundle")
@require_actor
def bundle_route():
    """
    Body: {"ecr_ids": [1, 2], "title": "...", "description": "..."}

    Response (201):
        {"eco": {...}, "updated_ecrs": [{...}, ...], "message": "..."}

    Error responses:
        400: Fewer than 2 ids / blank title or description
        422: Some ECRs missing, not APPROVED, or already linked (details.offending_ecrs)
        503: Store busy; nothing was written
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload"}), 400
        result = workflow_service.bundle_ecrs(
            g.org_id,
            g.current_user.id,
            data.get("ecr_ids"),
            data.get("title"),
            data.get("description"),
        )
        eco = result["eco"]
        return jsonify({
            "eco": eco.to_dict(),
            "updated_ecrs": [ecr.to_dict() for ecr in result["updated_ecrs"]],
            "message": f"Bundled {len(result['updated_ecrs'])} ECRs into {eco.eco_number}",
        }), 201
    except ChangeFlowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to bundle ECRs")
        return jsonify({"error": "Internal server error"}), 500


@workflow_bp.post("/convert/<int:ecr_id>")
@require_actor
def convert_route(ecr_id: int):
    try:
        eco = workflow_service.convert_ecr_to_eco(g.org_id, g.current_user.id, ecr_id)
        return jsonify({"eco": eco.to_dict()}), 201
    except ChangeFlowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to convert ECR")
        return jsonify({"error": "Internal server error"}), 500


@workflow_bp.post("/promote/<int:eco_id>")
@require_actor
def promote_route(eco_id: int):
    """
    Error responses:
        404: ECO not found in the caller's organization
        409: ECN already exists for this ECO (or its number is taken)
        422: ECO is not COMPLETED
    """
    try:
        ecn = workflow_service.promote_eco_to_ecn(g.org_id, g.current_user.id, eco_id)
        return jsonify({"ecn": ecn.to_dict()}), 201
    except ChangeFlowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to promote ECO")
        return jsonify({"error": "Internal server error"}), 500
