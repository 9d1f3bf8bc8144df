"""
Estimate Blueprint.

    POST /api/v1/projects/<project_id>/estimates/generate
    GET  /api/v1/projects/<project_id>/estimates
    GET  /api/v1/projects/<project_id>/estimates/latest
    GET  /api/v1/estimates/<estimate_id>
    POST /api/v1/estimates/<estimate_id>/sections/<section>/regenerate
"""

from flask import Blueprint, jsonify

from specforge.auth import current_user, require_verified_email
from specforge.blueprints import json_body, optional_str
from specforge.services import estimate_service
from specforge.utils.pagination import page_params_from_request

estimate_bp = Blueprint("estimate", __name__, url_prefix="/api/v1")


@estimate_bp.route("/projects/<project_id>/estimates/generate", methods=["POST"])
@require_verified_email
def generate_estimate(project_id):
    data = json_body()
    result = estimate_service.generate(
        project_id,
        current_user(),
        requirement_snapshot_id=optional_str(data, "requirement_snapshot_id"),
        target_currency=optional_str(data, "target_currency"),
    )
    return jsonify(result), 201


@estimate_bp.route("/projects/<project_id>/estimates", methods=["GET"])
def list_estimates(project_id):
    params = page_params_from_request()
    return jsonify(estimate_service.list_by_project(project_id, current_user(), params)), 200


@estimate_bp.route("/projects/<project_id>/estimates/latest", methods=["GET"])
def latest_estimate(project_id):
    return jsonify(estimate_service.get_latest(project_id, current_user())), 200


@estimate_bp.route("/estimates/<estimate_id>", methods=["GET"])
def get_estimate(estimate_id):
    return jsonify(estimate_service.get_by_id(estimate_id, current_user())), 200


@estimate_bp.route("/estimates/<estimate_id>/sections/<section>/regenerate", methods=["POST"])
@require_verified_email
def regenerate_section(estimate_id, section):
    data = json_body()
    result = estimate_service.regenerate_section(
        estimate_id,
        current_user(),
        section=section,
        instruction=optional_str(data, "instruction"),
    )
    return jsonify(result), 200
