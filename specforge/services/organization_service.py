"""
Organization service — tenant creation and the member invite lifecycle.

Invite lifecycle:
    invite  → PENDING   (OWNER/ADMIN only)
    accept  → ACCEPTED  (only the invitee)
    revoke  → REVOKED   (OWNER/ADMIN only, PENDING rows)
A REVOKED row may be re-invited; PENDING/ACCEPTED rows conflict.
"""

from __future__ import annotations

import logging
import re

from sqlalchemy import func, select

from specforge.core.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from specforge.models import db, utcnow
from specforge.models.organization import (
    ORG_MANAGER_ROLES,
    ORG_ROLES,
    Organization,
    OrganizationMember,
    User,
)
from specforge.models.project import Project
from specforge.services.access_resolver import CurrentUser
from specforge.services.generation import atomic
from specforge.utils.pagination import PageParams, build_page

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _membership(organization_id: str, user_id: str) -> OrganizationMember | None:
    return db.session.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user_id,
        )
    ).scalar_one_or_none()


def _get_org_or_404(organization_id: str) -> Organization:
    org = db.session.get(Organization, organization_id)
    if org is None:
        raise NotFoundError(resource="Organization", resource_id=organization_id)
    return org


def _require_manager(organization_id: str, user: CurrentUser) -> None:
    if user.is_super_admin:
        return
    member = _membership(organization_id, user.id)
    if member is None or member.invite_status != "ACCEPTED" or member.role not in ORG_MANAGER_ROLES:
        raise ForbiddenError("Only organization owners and admins can manage members")


def create_organization(user: CurrentUser, *, name: str, slug: str | None = None) -> dict:
    name = (name or "").strip()
    if not name:
        raise BadRequestError("name is required")
    slug = (slug or _slugify(name)).strip().lower()
    if not _SLUG_RE.match(slug):
        raise ValidationError("Invalid organization slug", details={"slug": slug})

    existing = db.session.execute(
        select(Organization.id).where(Organization.slug == slug)
    ).first()
    if existing is not None:
        raise ConflictError("Organization", "slug", slug)

    with atomic("Organization", "slug", slug):
        org = Organization(name=name[:200], slug=slug[:120])
        db.session.add(org)
        db.session.flush()
        db.session.add(OrganizationMember(
            organization_id=org.id,
            user_id=user.id,
            role="OWNER",
            invite_status="ACCEPTED",
            joined_at=utcnow(),
        ))
    logger.info("Organization %s created by %s", org.slug, user.id)
    return org.to_dict()


def _with_membership(org: Organization, member: OrganizationMember | None) -> dict:
    d = org.to_dict()
    d["role"] = member.role if member else None
    d["invite_status"] = member.invite_status if member else None
    return d


def list_organizations(user: CurrentUser, params: PageParams) -> dict:
    """Organizations the caller belongs to or is invited to (REVOKED rows hidden)."""
    visible = (
        OrganizationMember.user_id == user.id,
        OrganizationMember.invite_status != "REVOKED",
    )
    total = db.session.execute(
        select(func.count()).select_from(OrganizationMember).where(*visible)
    ).scalar_one()
    rows = db.session.execute(
        select(Organization, OrganizationMember)
        .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
        .where(*visible)
        .order_by(OrganizationMember.created_at, Organization.id)
        .limit(params.limit)
        .offset(params.offset)
    ).all()
    return build_page([_with_membership(org, member) for org, member in rows], total, params)


def get_organization(organization_id: str, user: CurrentUser) -> dict:
    org = _get_org_or_404(organization_id)
    member = _membership(organization_id, user.id)
    if not user.is_super_admin and (member is None or member.invite_status == "REVOKED"):
        raise ForbiddenError("You are not a member of this organization")

    d = _with_membership(org, member)
    d["member_count"] = db.session.execute(
        select(func.count()).select_from(OrganizationMember).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.invite_status == "ACCEPTED",
        )
    ).scalar_one()
    d["project_count"] = db.session.execute(
        select(func.count()).select_from(Project).where(Project.organization_id == organization_id)
    ).scalar_one()
    return d


def list_members(organization_id: str, user: CurrentUser) -> list[dict]:
    _get_org_or_404(organization_id)
    if not user.is_super_admin:
        member = _membership(organization_id, user.id)
        if member is None or member.invite_status != "ACCEPTED":
            raise ForbiddenError("You are not a member of this organization")
    rows = db.session.execute(
        select(OrganizationMember)
        .where(OrganizationMember.organization_id == organization_id)
        .order_by(OrganizationMember.created_at)
    ).scalars().all()
    return [m.to_dict() for m in rows]


def invite_member(organization_id: str, user: CurrentUser, *, email: str, role: str = "DEVELOPER") -> dict:
    _get_org_or_404(organization_id)
    _require_manager(organization_id, user)
    if role not in ORG_ROLES:
        raise ValidationError("Invalid organization role", details={"role": role})

    invitee = db.session.execute(
        select(User).where(User.email == (email or "").strip().lower())
    ).scalar_one_or_none()
    if invitee is None:
        raise NotFoundError(resource="User", resource_id=email)

    member = _membership(organization_id, invitee.id)
    if member is not None and member.invite_status in ("PENDING", "ACCEPTED"):
        raise ConflictError("OrganizationMember", "email", invitee.email)

    with atomic("OrganizationMember", "email", invitee.email):
        if member is None:
            member = OrganizationMember(organization_id=organization_id, user_id=invitee.id)
            db.session.add(member)
        member.role = role
        member.invite_status = "PENDING"
        member.invited_by_id = user.id
        member.joined_at = None
    logger.info("Invited %s to organization %s as %s", invitee.email, organization_id, role)
    return member.to_dict()


def accept_invite(member_id: str, user: CurrentUser) -> dict:
    member = db.session.get(OrganizationMember, member_id)
    if member is None:
        raise NotFoundError(resource="OrganizationMember", resource_id=member_id)
    if member.user_id != user.id:
        raise ForbiddenError("Only the invited user can accept this invitation")
    if member.invite_status != "PENDING":
        raise ValidationError(
            "Invitation is not pending", details={"invite_status": member.invite_status},
        )
    with atomic("OrganizationMember", "id", member_id):
        member.invite_status = "ACCEPTED"
        member.joined_at = utcnow()
    return member.to_dict()


def revoke_invite(member_id: str, user: CurrentUser) -> dict:
    member = db.session.get(OrganizationMember, member_id)
    if member is None:
        raise NotFoundError(resource="OrganizationMember", resource_id=member_id)
    _require_manager(member.organization_id, user)
    if member.invite_status != "PENDING":
        raise ValidationError(
            "Only pending invitations can be revoked",
            details={"invite_status": member.invite_status},
        )
    with atomic("OrganizationMember", "id", member_id):
        member.invite_status = "REVOKED"
    logger.info("Revoked invite %s in organization %s", member_id, member.organization_id)
    return member.to_dict()
