"""
Wireframe Blueprint.

    POST /api/v1/projects/<project_id>/wireframes/generate
         body: {"user_flow_snapshot_id"?: str, "requirement_snapshot_id"?: str}
    GET  /api/v1/projects/<project_id>/wireframes
    GET  /api/v1/projects/<project_id>/wireframes/latest
    GET  /api/v1/wireframes/<wireframe_id>
    POST /api/v1/wireframes/<wireframe_id>/fork
"""

from flask import Blueprint, jsonify

from specforge.auth import current_user, require_verified_email
from specforge.blueprints import json_body, optional_str
from specforge.services import wireframe_service
from specforge.utils.pagination import page_params_from_request

wireframe_bp = Blueprint("wireframe", __name__, url_prefix="/api/v1")


@wireframe_bp.route("/projects/<project_id>/wireframes/generate", methods=["POST"])
@require_verified_email
def generate_wireframes(project_id):
    data = json_body()
    result = wireframe_service.generate(
        project_id,
        current_user(),
        user_flow_snapshot_id=optional_str(data, "user_flow_snapshot_id"),
        requirement_snapshot_id=optional_str(data, "requirement_snapshot_id"),
    )
    return jsonify(result), 201


@wireframe_bp.route("/projects/<project_id>/wireframes", methods=["GET"])
def list_wireframes(project_id):
    params = page_params_from_request()
    return jsonify(wireframe_service.list_by_project(project_id, current_user(), params)), 200


@wireframe_bp.route("/projects/<project_id>/wireframes/latest", methods=["GET"])
def latest_wireframe(project_id):
    return jsonify(wireframe_service.get_latest(project_id, current_user())), 200


@wireframe_bp.route("/wireframes/<wireframe_id>", methods=["GET"])
def get_wireframe(wireframe_id):
    return jsonify(wireframe_service.get_by_id(wireframe_id, current_user())), 200


@wireframe_bp.route("/wireframes/<wireframe_id>/fork", methods=["POST"])
@require_verified_email
def fork_wireframe(wireframe_id):
    return jsonify(wireframe_service.fork_snapshot(wireframe_id, current_user())), 201
