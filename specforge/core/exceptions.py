"""
Platform-wide exception hierarchy.

Services raise these; ``specforge.blueprints.errors`` maps each type to one
HTTP status for the whole application, so blueprints never translate
exceptions themselves.

Usage:
    from specforge.core.exceptions import NotFoundError, PrerequisiteError

    raise NotFoundError(resource="Project", resource_id=project_id)
    raise PrerequisiteError("No requirement snapshot found. Generate requirements first.")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Maps to HTTP 404. Existence is always checked before access, so a
    missing project is reported as missing even to callers without access.

    Args:
        resource: Human-readable entity name (e.g. "Project", "EstimateSnapshot").
        resource_id: The id that was looked up. Included in logs and message.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ForbiddenError(Exception):
    """Raised when the resource exists but the caller may not act on it.

    Maps to HTTP 403.
    """

    def __init__(self, message: str = "You do not have access to this project") -> None:
        super().__init__(message)


class BadRequestError(Exception):
    """Raised when request parameters are malformed (bad paging values, missing field).

    Maps to HTTP 400.
    """


class PrerequisiteError(BadRequestError):
    """Raised when a pipeline precondition is not met.

    The message names the missing prerequisite so the caller can run the
    earlier step (e.g. "No requirement snapshot found. Generate requirements
    first."). Maps to HTTP 400.
    """

    def __init__(self, message: str, prerequisite: str | None = None) -> None:
        self.prerequisite = prerequisite
        super().__init__(message)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from PrerequisiteError: the pipeline is in the right state but the
    request data itself violates a rule (unknown section name, bad role).

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a write loses a uniqueness race or duplicates a unique value.

    Maps to HTTP 409. Version races are never retried automatically; the
    caller re-invokes the whole generation.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class AIGatewayError(Exception):
    """Raised when an AI call fails or returns output that does not parse/validate.

    Maps to HTTP 502. Raised before any generation write, so re-invoking the
    whole operation is always safe.

    Args:
        message: Human-readable description.
        task_type: The AI task that failed (e.g. "extract_features").
        ai_run_id: The AIRun row recording the failure, if one was written.
    """

    def __init__(self, message: str, task_type: str | None = None, ai_run_id: str | None = None) -> None:
        self.task_type = task_type
        self.ai_run_id = ai_run_id
        super().__init__(message)
