"""
Organization Blueprint — tenants and member invitations.

    POST /api/v1/organizations
    GET  /api/v1/organizations
    GET  /api/v1/organizations/<org_id>
    GET  /api/v1/organizations/<org_id>/members
    POST /api/v1/organizations/<org_id>/invites
    POST /api/v1/organization-members/<member_id>/accept
    POST /api/v1/organization-members/<member_id>/revoke
"""

from flask import Blueprint, jsonify

from specforge.auth import current_user, require_verified_email
from specforge.blueprints import json_body, optional_str
from specforge.core.exceptions import BadRequestError
from specforge.services import organization_service
from specforge.utils.pagination import page_params_from_request

organization_bp = Blueprint("organization", __name__, url_prefix="/api/v1")


@organization_bp.route("/organizations", methods=["POST"])
@require_verified_email
def create_organization():
    data = json_body()
    result = organization_service.create_organization(
        current_user(),
        name=optional_str(data, "name") or "",
        slug=optional_str(data, "slug"),
    )
    return jsonify(result), 201


@organization_bp.route("/organizations", methods=["GET"])
def list_organizations():
    params = page_params_from_request()
    return jsonify(organization_service.list_organizations(current_user(), params)), 200


@organization_bp.route("/organizations/<org_id>", methods=["GET"])
def get_organization(org_id):
    return jsonify(organization_service.get_organization(org_id, current_user())), 200


@organization_bp.route("/organizations/<org_id>/members", methods=["GET"])
def list_members(org_id):
    return jsonify(organization_service.list_members(org_id, current_user())), 200


@organization_bp.route("/organizations/<org_id>/invites", methods=["POST"])
@require_verified_email
def invite_member(org_id):
    data = json_body()
    email = optional_str(data, "email")
    if not email:
        raise BadRequestError("email is required")
    result = organization_service.invite_member(
        org_id, current_user(), email=email, role=optional_str(data, "role") or "DEVELOPER",
    )
    return jsonify(result), 201


@organization_bp.route("/organization-members/<member_id>/accept", methods=["POST"])
def accept_invite(member_id):
    return jsonify(organization_service.accept_invite(member_id, current_user())), 200


@organization_bp.route("/organization-members/<member_id>/revoke", methods=["POST"])
@require_verified_email
def revoke_invite(member_id):
    return jsonify(organization_service.revoke_invite(member_id, current_user())), 200
