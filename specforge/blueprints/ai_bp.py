"""
AI Blueprint — AI run audit log and prompt catalogue.

    GET /api/v1/projects/<project_id>/ai-runs
    GET /api/v1/ai-runs/<run_id>
    GET /api/v1/ai/prompts
"""

from flask import Blueprint, jsonify

from specforge.ai.capabilities import get_capabilities
from specforge.auth import current_user
from specforge.services import ai_run_service
from specforge.utils.pagination import page_params_from_request

ai_bp = Blueprint("ai", __name__, url_prefix="/api/v1")


@ai_bp.route("/projects/<project_id>/ai-runs", methods=["GET"])
def list_runs(project_id):
    params = page_params_from_request()
    return jsonify(ai_run_service.list_runs(project_id, current_user(), params)), 200


@ai_bp.route("/ai-runs/<run_id>", methods=["GET"])
def get_run(run_id):
    return jsonify(ai_run_service.get_run(run_id, current_user())), 200


@ai_bp.route("/ai/prompts", methods=["GET"])
def list_prompts():
    registry = getattr(get_capabilities(), "registry", None)
    templates = registry.list_templates() if registry is not None else []
    return jsonify({"prompts": templates}), 200
