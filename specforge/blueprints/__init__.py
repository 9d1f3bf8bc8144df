"""
SpecForge
Blueprint registry and shared request helpers.
"""

from flask import request

from specforge.core.exceptions import BadRequestError


def json_body() -> dict:
    """Request JSON as a dict; an absent body is an empty dict."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BadRequestError("Request body must be a JSON object")
    return data


def optional_str(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise BadRequestError(f"{key} must be a string")
    return value.strip() or None


def register_blueprints(app):
    from specforge.blueprints.ai_bp import ai_bp
    from specforge.blueprints.estimate_bp import estimate_bp
    from specforge.blueprints.health_bp import health_bp
    from specforge.blueprints.organization_bp import organization_bp
    from specforge.blueprints.project_bp import project_bp
    from specforge.blueprints.requirement_bp import requirement_bp
    from specforge.blueprints.tech_stack_bp import tech_stack_bp
    from specforge.blueprints.user_flow_bp import user_flow_bp
    from specforge.blueprints.wireframe_bp import wireframe_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(organization_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(requirement_bp)
    app.register_blueprint(estimate_bp)
    app.register_blueprint(tech_stack_bp)
    app.register_blueprint(user_flow_bp)
    app.register_blueprint(wireframe_bp)
    app.register_blueprint(ai_bp)
