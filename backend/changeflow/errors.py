# Overview: Domain error taxonomy shared by services and routes.

"""
ChangeFlow error taxonomy.

Services raise these; routes translate them with error_response().
None of them leave partial writes behind: every workflow operation rolls
back its transaction before the error reaches the caller.

    ValidationError         400  malformed or missing input
    NotFoundError           404  id missing OR owned by another organization
    InvalidTransitionError  409  status change absent from the state machine
    ConflictError           409  would break a uniqueness invariant
    NotEligibleError        422  entity state / ownership precondition unmet
    StoreError              503  transaction or infrastructure failure (retryable)
"""

from __future__ import annotations

from flask import jsonify


class ChangeFlowError(Exception):
    """Base class for all domain errors."""

    status_code = 500
    error_code = "CHANGEFLOW_ERROR"

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.error_code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ChangeFlowError, ValueError):
    """400-level input problem."""

    status_code = 400
    error_code = "VALIDATION_ERROR"


class NotFoundError(ChangeFlowError, LookupError):
    """
    404: entity does not exist in the caller's organization.

    Foreign-tenant ids raise the same error as missing ids so that ids
    cannot be enumerated across organizations.
    """

    status_code = 404
    error_code = "NOT_FOUND"


class NotEligibleError(ChangeFlowError):
    """
    422: an entity exists but its state does not allow the operation
    (not approved, already linked, not completed).

    details maps each offending id to the rule it violated.
    """

    status_code = 422
    error_code = "NOT_ELIGIBLE"


class InvalidTransitionError(ChangeFlowError):
    """409: status transition not present in the entity's state machine."""

    status_code = 409
    error_code = "INVALID_TRANSITION"


class ConflictError(ChangeFlowError):
    """409-level business rule conflict (e.g., second ECN for one ECO)."""

    status_code = 409
    error_code = "CONFLICT"


class StoreError(ChangeFlowError):
    """503: store unavailable or transaction aborted. Safe to retry."""

    status_code = 503
    error_code = "STORE_ERROR"


def error_response(exc: ChangeFlowError):
    """Translate a domain error into a (json, status) Flask response tuple."""
    return jsonify(exc.to_dict()), exc.status_code
