"""
Requirement Blueprint — generate, read and edit requirement snapshots.

    POST  /api/v1/projects/<project_id>/requirements/generate
    GET   /api/v1/projects/<project_id>/requirements
    GET   /api/v1/projects/<project_id>/requirements/latest
    GET   /api/v1/requirements/<requirement_id>
    PATCH /api/v1/requirements/<requirement_id>
"""

from flask import Blueprint, jsonify

from specforge.auth import current_user, require_verified_email
from specforge.blueprints import json_body, optional_str
from specforge.core.exceptions import BadRequestError
from specforge.services import requirement_service
from specforge.utils.pagination import page_params_from_request

requirement_bp = Blueprint("requirement", __name__, url_prefix="/api/v1")


@requirement_bp.route("/projects/<project_id>/requirements/generate", methods=["POST"])
@require_verified_email
def generate_requirements(project_id):
    data = json_body()
    result = requirement_service.generate(
        project_id,
        current_user(),
        source_input_id=optional_str(data, "source_input_id"),
        instruction=optional_str(data, "instruction"),
    )
    return jsonify(result), 201


@requirement_bp.route("/projects/<project_id>/requirements", methods=["GET"])
def list_requirements(project_id):
    params = page_params_from_request()
    return jsonify(requirement_service.list_by_project(project_id, current_user(), params)), 200


@requirement_bp.route("/projects/<project_id>/requirements/latest", methods=["GET"])
def latest_requirement(project_id):
    return jsonify(requirement_service.get_latest(project_id, current_user())), 200


@requirement_bp.route("/requirements/<requirement_id>", methods=["GET"])
def get_requirement(requirement_id):
    return jsonify(requirement_service.get_by_id(requirement_id, current_user())), 200


@requirement_bp.route("/requirements/<requirement_id>", methods=["PATCH"])
@require_verified_email
def update_requirement(requirement_id):
    data = json_body()
    if "structured_json" not in data:
        raise BadRequestError("structured_json is required")
    result = requirement_service.update(
        requirement_id,
        current_user(),
        structured_json=data["structured_json"],
        assumptions=data.get("assumptions"),
        status=optional_str(data, "status"),
    )
    return jsonify(result), 200
