"""
App-wide error handlers.

Services raise the exceptions in ``specforge.core.exceptions``; this module
maps each one to a single HTTP status and the standard error body
``{"error", "code", "details"?}``. Blueprints never translate exceptions.
"""

import logging

from werkzeug.exceptions import HTTPException

from specforge.core.exceptions import (
    AIGatewayError,
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PrerequisiteError,
    ValidationError,
)
from specforge.models import db
from specforge.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def register_error_handlers(app):

    @app.errorhandler(NotFoundError)
    def _not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(ForbiddenError)
    def _forbidden(error: ForbiddenError):
        return api_error(E.FORBIDDEN, str(error))

    @app.errorhandler(PrerequisiteError)
    def _prerequisite(error: PrerequisiteError):
        details = {"prerequisite": error.prerequisite} if error.prerequisite else None
        return api_error(E.PREREQUISITE_MISSING, str(error), details=details)

    @app.errorhandler(BadRequestError)
    def _bad_request(error: BadRequestError):
        return api_error(E.VALIDATION_INVALID, str(error))

    @app.errorhandler(ValidationError)
    def _validation(error: ValidationError):
        return api_error(E.BUSINESS_RULE, str(error), details=error.details)

    @app.errorhandler(ConflictError)
    def _conflict(error: ConflictError):
        code = E.CONFLICT_VERSION if error.field == "version" else E.CONFLICT_DUPLICATE
        return api_error(code, str(error), details={"resource": error.resource, "field": error.field})

    @app.errorhandler(AIGatewayError)
    def _ai_gateway(error: AIGatewayError):
        logger.warning("AI gateway error task=%s run=%s: %s", error.task_type, error.ai_run_id, error,
                       extra={"task_type": error.task_type, "ai_run_id": error.ai_run_id})
        details = {"task_type": error.task_type, "ai_run_id": error.ai_run_id}
        return api_error(E.AI_UPSTREAM, str(error), details=details)

    @app.errorhandler(HTTPException)
    def _http(error: HTTPException):
        if error.code == 429:
            return {"error": "Too many requests", "retry_after": error.description}, 429
        return {"error": error.description or error.name}, error.code

    @app.errorhandler(Exception)
    def _unexpected(error: Exception):
        db.session.rollback()
        logger.exception("Unhandled error: %s", error)
        return api_error(E.INTERNAL, "Internal server error")
