"""Tech-stack recommendation endpoints (generate + versioned reads)."""

from flask import Blueprint, jsonify

from specforge.auth import current_user, require_verified_email
from specforge.blueprints import json_body, optional_str
from specforge.services import tech_stack_service
from specforge.utils.pagination import page_params_from_request

tech_stack_bp = Blueprint("tech_stack", __name__, url_prefix="/api/v1")


@tech_stack_bp.route("/projects/<project_id>/tech-stack/generate", methods=["POST"])
@require_verified_email
def generate_tech_stack(project_id):
    data = json_body()
    result = tech_stack_service.generate(
        project_id,
        current_user(),
        requirement_snapshot_id=optional_str(data, "requirement_snapshot_id"),
        instruction=optional_str(data, "instruction"),
    )
    return jsonify(result), 201


@tech_stack_bp.route("/projects/<project_id>/tech-stack", methods=["GET"])
def list_tech_stacks(project_id):
    params = page_params_from_request()
    return jsonify(tech_stack_service.list_by_project(project_id, current_user(), params)), 200


@tech_stack_bp.route("/projects/<project_id>/tech-stack/latest", methods=["GET"])
def latest_tech_stack(project_id):
    return jsonify(tech_stack_service.get_latest(project_id, current_user())), 200


@tech_stack_bp.route("/tech-stack/<tech_stack_id>", methods=["GET"])
def get_tech_stack(tech_stack_id):
    return jsonify(tech_stack_service.get_by_id(tech_stack_id, current_user())), 200
