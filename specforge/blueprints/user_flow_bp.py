"""User-flow endpoints."""

from flask import Blueprint, jsonify

from specforge.auth import current_user, require_verified_email
from specforge.blueprints import json_body, optional_str
from specforge.services import user_flow_service
from specforge.utils.pagination import page_params_from_request

user_flow_bp = Blueprint("user_flow", __name__, url_prefix="/api/v1")


@user_flow_bp.route("/projects/<project_id>/user-flows/generate", methods=["POST"])
@require_verified_email
def generate_user_flows(project_id):
    data = json_body()
    result = user_flow_service.generate(
        project_id,
        current_user(),
        requirement_snapshot_id=optional_str(data, "requirement_snapshot_id"),
        instruction=optional_str(data, "instruction"),
    )
    return jsonify(result), 201


@user_flow_bp.route("/projects/<project_id>/user-flows", methods=["GET"])
def list_user_flows(project_id):
    params = page_params_from_request()
    return jsonify(user_flow_service.list_by_project(project_id, current_user(), params)), 200


@user_flow_bp.route("/projects/<project_id>/user-flows/latest", methods=["GET"])
def latest_user_flow(project_id):
    return jsonify(user_flow_service.get_latest(project_id, current_user())), 200


@user_flow_bp.route("/user-flows/<user_flow_id>", methods=["GET"])
def get_user_flow(user_flow_id):
    return jsonify(user_flow_service.get_by_id(user_flow_id, current_user())), 200
