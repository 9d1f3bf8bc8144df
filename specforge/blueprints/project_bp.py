"""
Project Blueprint — projects, inputs, members and the activity feed.

    POST /api/v1/projects
    GET  /api/v1/projects
    GET  /api/v1/projects/<project_id>
    PATCH /api/v1/projects/<project_id>/status  body: {"status": str, "stage"?: str}
    POST /api/v1/projects/<project_id>/inputs
    GET  /api/v1/projects/<project_id>/inputs
    POST /api/v1/projects/<project_id>/members
    GET  /api/v1/projects/<project_id>/members
    GET  /api/v1/projects/<project_id>/activity
"""

from flask import Blueprint, jsonify

from specforge.auth import current_user, require_verified_email
from specforge.blueprints import json_body, optional_str
from specforge.core.exceptions import BadRequestError
from specforge.services import activity_recorder, project_service
from specforge.utils.pagination import page_params_from_request

project_bp = Blueprint("project", __name__, url_prefix="/api/v1")


# ── Projects ─────────────────────────────────────────────────────────────

@project_bp.route("/projects", methods=["POST"])
@require_verified_email
def create_project():
    data = json_body()
    result = project_service.create_project(
        current_user(),
        name=optional_str(data, "name") or "",
        organization_id=optional_str(data, "organization_id"),
        description=optional_str(data, "description"),
        currency=optional_str(data, "currency"),
    )
    return jsonify(result), 201


@project_bp.route("/projects", methods=["GET"])
def list_projects():
    params = page_params_from_request()
    return jsonify(project_service.list_projects(current_user(), params)), 200


@project_bp.route("/projects/<project_id>", methods=["GET"])
def get_project(project_id):
    return jsonify(project_service.get_project(project_id, current_user())), 200


@project_bp.route("/projects/<project_id>/status", methods=["PATCH"])
@require_verified_email
def update_status(project_id):
    data = json_body()
    status = optional_str(data, "status")
    if not status:
        raise BadRequestError("status is required")
    result = project_service.update_status(
        project_id, current_user(), status=status, stage=optional_str(data, "stage"),
    )
    return jsonify(result), 200


# ── Inputs ───────────────────────────────────────────────────────────────

@project_bp.route("/projects/<project_id>/inputs", methods=["POST"])
@require_verified_email
def add_input(project_id):
    data = json_body()
    result = project_service.add_input(
        project_id,
        current_user(),
        source_type=optional_str(data, "source_type") or "TEXT",
        raw_text=optional_str(data, "raw_text"),
        transcript_text=optional_str(data, "transcript_text"),
        language_code=optional_str(data, "language_code"),
    )
    return jsonify(result), 201


@project_bp.route("/projects/<project_id>/inputs", methods=["GET"])
def list_inputs(project_id):
    return jsonify(project_service.list_inputs(project_id, current_user())), 200


# ── Members ──────────────────────────────────────────────────────────────

@project_bp.route("/projects/<project_id>/members", methods=["POST"])
@require_verified_email
def add_member(project_id):
    data = json_body()
    user_id = optional_str(data, "user_id")
    if not user_id:
        raise BadRequestError("user_id is required")
    result = project_service.add_member(
        project_id, current_user(), user_id=user_id, role=optional_str(data, "role") or "VIEWER",
    )
    return jsonify(result), 201


@project_bp.route("/projects/<project_id>/members", methods=["GET"])
def list_members(project_id):
    return jsonify(project_service.list_members(project_id, current_user())), 200


# ── Activity ─────────────────────────────────────────────────────────────

@project_bp.route("/projects/<project_id>/activity", methods=["GET"])
def list_activity(project_id):
    params = page_params_from_request()
    return jsonify(activity_recorder.list_activity(project_id, current_user(), params)), 200
