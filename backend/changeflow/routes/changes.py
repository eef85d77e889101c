# backend/changeflow/routes/changes.py
"""
Change Record API Routes

- GET/POST /api/ecrs                     - list / create ECRs
- GET /api/ecrs/:id, /api/ecos/:id, /api/ecns/:id
- GET /api/ecos, /api/ecns               - list (optional ?status=)
- POST /api/<ecrs|ecos|ecns>/:id/transition  - status change via the state machine
- POST /api/ecns/:id/acknowledge         - stakeholder acknowledgment
- GET /api/revisions/<ECR|ECO|ECN>/:id   - revision history, newest first

SECURITY:
- All routes require an acting user (X-User-Id)
- The tenant scope is always the acting user's organization; foreign ids 404
- Submitter / approver ids come from the acting user, NOT the request body
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import ChangeFlowError, error_response
from ..services import change_service, lifecycle_service, revision_service


changes_bp = Blueprint("changes", __name__, url_prefix="/api")

COLLECTION_TYPES = {"ecrs": "ECR", "ecos": "ECO", "ecns": "ECN"}


@changes_bp.get("/ecrs")
@require_actor
def list_ecrs_route():
    try:
        ecrs = change_service.list_ecrs(g.org_id, status=request.args.get("status"))
        return jsonify({"ecrs": [ecr.to_dict() for ecr in ecrs]}), 200
    except ChangeFlowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list ECRs")
        return jsonify({"error": "Internal server error"}), 500


@changes_bp.post("/ecrs")
@require_actor
def create_ecr_route():
    """
    Create an ECR. The acting user becomes the submitter.

    Body: {"title", "description", "reason", "urgency"?, "status"?, "assignee_id"?, ...}
    """
    try:
        ecr = change_service.create_ecr(
            g.org_id,
            g.current_user.id,
            request.get_json(silent=True),
        )
        return jsonify({"ecr": ecr.to_dict()}), 201
    except ChangeFlowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create ECR")
        return jsonify({"error": "Internal server error"}), 500


@changes_bp.get("/ecrs/<int:ecr_id>")
@require_actor
def get_ecr_route(ecr_id: int):
    try:
        ecr = change_service.get_ecr(g.org_id, ecr_id)
        payload = ecr.to_dict()
        payload["next_statuses"] = lifecycle_service.get_next_statuses("ECR", ecr.status, g.current_user.role)
        return jsonify({"ecr": payload}), 200
    except ChangeFlowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch ECR")
        return jsonify({"error": "Internal server error"}), 500


@changes_bp.get("/ecos")
@require_actor
def list_ecos_route():
    try:
        ecos = change_service.list_ecos(g.org_id, status=request.args.get("status"))
        return jsonify({"ecos": [eco.to_dict() for eco in ecos]}), 200
    except ChangeFlowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list ECOs")
        return jsonify({"error": "Internal server error"}), 500


@changes_bp.get("/ecos/<int:eco_id>")
@require_actor
def get_eco_route(eco_id: int):
    try:
        eco = change_service.get_eco(g.org_id, eco_id)
        payload = eco.to_dict()
        payload["next_statuses"] = lifecycle_service.get_next_statuses("ECO", eco.status, g.current_user.role)
        return jsonify({"eco": payload}), 200
    except ChangeFlowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch ECO")
        return jsonify({"error": "Internal server error"}), 500


@changes_bp.get("/ecns")
@require_actor
def list_ecns_route():
    try:
        ecns = change_service.list_ecns(g.org_id, status=request.args.get("status"))
        return jsonify({"ecns": [ecn.to_dict() for ecn in ecns]}), 200
    except ChangeFlowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list ECNs")
        return jsonify({"error": "Internal server error"}), 500


@changes_bp.get("/ecns/<int:ecn_id>")
@require_actor
def get_ecn_route(ecn_id: int):
    try:
        ecn = change_service.get_ecn(g.org_id, ecn_id)
        payload = ecn.to_dict()
        payload["next_statuses"] = lifecycle_service.get_next_statuses("ECN", ecn.status, g.current_user.role)
        return jsonify({"ecn": payload}), 200
    except ChangeFlowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch ECN")
        return jsonify({"error": "Internal server error"}), 500


@changes_bp.post("/<any(ecrs, ecos, ecns):collection>/<int:entity_id>/transition")
@require_actor
def transition_route(collection: str, entity_id: int):
    """
    Move a record to a new status through the state machine.

    Body: {"status": "APPROVED", "note": "optional revision note"}

    Error responses:
        400: Missing, non-string or unknown status
        404: Record not found in the caller's organization
        409: Transition not allowed (includes APPROVED -> CONVERTED, which
             only the bundling engine performs)
        422: The caller's role may not drive this transition
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload"}), 400
        target = data.get("status")
        if not target:
            return jsonify({"error": "status is required"}), 400

        entity = lifecycle_service.transition_status(
            COLLECTION_TYPES[collection],
            entity_id,
            g.current_user.id,
            target,
            note=data.get("note"),
        )
        return jsonify({"record": entity.to_dict()}), 200
    except ChangeFlowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to transition %s %s", collection, entity_id)
        return jsonify({"error": "Internal server error"}), 500


@changes_bp.post("/ecns/<int:ecn_id>/acknowledge")
@require_actor
def acknowledge_ecn_route(ecn_id: int):
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload"}), 400
        ack = lifecycle_service.acknowledge_ecn(
            g.org_id,
            g.current_user.id,
            ecn_id,
            comment=data.get("comment"),
        )
        return jsonify({"acknowledgment": ack.to_dict()}), 201
    except ChangeFlowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to acknowledge ECN")
        return jsonify({"error": "Internal server error"}), 500


@changes_bp.get("/revisions/<entity_type>/<int:entity_id>")
@require_actor
def list_revisions_route(entity_type: str, entity_id: int):
    try:
        revisions = revision_service.get_revisions(entity_type, entity_id, org_id=g.org_id)
        return jsonify({"revisions": [rev.to_dict() for rev in revisions]}), 200
    except ChangeFlowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list revisions")
        return jsonify({"error": "Internal server error"}), 500
