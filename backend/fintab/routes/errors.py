# Overview: Translate domain exceptions raised by services into JSON error responses.

from flask import jsonify, request

from ..extensions import db
from ..validation import ConflictError
from ..services.auth_service import AccountError, PasswordValidationError
from ..services.document_service import DocumentSequenceError
from ..services.notification_service import NotificationNotFoundError
from ..services.permission_service import PermissionDeniedError
from ..services.session_service import SessionError
from ..services.tenant_service import BusinessNotFoundError, InvitationError, TenantError
from ..services.workflow_role_service import WorkflowRoleError


# Order matters: ConflictError subclasses ValueError
_STATUS_BY_TYPE = (
    (PermissionDeniedError, 403),
    (ConflictError, 409),
    (LookupError, 404),
    (BusinessNotFoundError, 404),
    (NotificationNotFoundError, 404),
    (DocumentSequenceError, 409),
    (ValueError, 400),
    (TenantError, 400),
    (InvitationError, 400),
    (AccountError, 400),
    (PasswordValidationError, 400),
    (SessionError, 400),
    (WorkflowRoleError, 400),
)

DOMAIN_ERRORS = tuple(exc_type for exc_type, _status in _STATUS_BY_TYPE)


def error_response(e: Exception):
    """Roll back the failed unit of work and answer with the mapped status."""
    db.session.rollback()
    for exc_type, status in _STATUS_BY_TYPE:
        if isinstance(e, exc_type):
            return jsonify({"error": str(e)}), status
    return jsonify({"error": str(e)}), 400


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
