"""
Access Resolver — single gate for every project-scoped operation.

Two-tier membership model, first match wins:
    1. system_role == SUPER_ADMIN                          → ALLOW
    2. ProjectMember row for (project, user), any role     → ALLOW
    3. OrganizationMember for (organization, user), ACCEPTED → ALLOW
    4. otherwise                                           → DENY

Existence is checked strictly before access: ``load_project_for`` raises
NotFoundError for a missing project and only then ForbiddenError.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from sqlalchemy import select

from specforge.core.exceptions import ForbiddenError, NotFoundError
from specforge.models import db
from specforge.models.organization import OrganizationMember
from specforge.models.project import Project, ProjectMember

logger = logging.getLogger(__name__)

SUPER_ADMIN = "SUPER_ADMIN"


class AccessDecision(str, enum.Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"


@dataclass(frozen=True)
class CurrentUser:
    """Resolved caller identity (built from the JWT claims)."""

    id: str
    email: str = ""
    system_role: str = "USER"
    is_email_verified: bool = False
    organization_id: str | None = None
    organization_role: str | None = None

    @property
    def is_super_admin(self) -> bool:
        return self.system_role == SUPER_ADMIN


def resolve_access(project_id: str, organization_id: str, user: CurrentUser) -> AccessDecision:
    """Pure read: decide whether ``user`` may act on the project."""
    if user.is_super_admin:
        return AccessDecision.ALLOW

    project_member = db.session.execute(
        select(ProjectMember.id).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user.id,
        )
    ).first()
    if project_member is not None:
        return AccessDecision.ALLOW

    org_status = db.session.execute(
        select(OrganizationMember.invite_status).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user.id,
        )
    ).scalar_one_or_none()
    if org_status == "ACCEPTED":
        return AccessDecision.ALLOW

    return AccessDecision.DENY


def require_project_access(project: Project, user: CurrentUser) -> None:
    """Raise ForbiddenError unless ``user`` may act on ``project``."""
    decision = resolve_access(project.id, project.organization_id, user)
    if decision is AccessDecision.DENY:
        logger.info(
            "Project access denied user=%s project=%s", user.id, project.id,
            extra={"project_id": project.id},
        )
        raise ForbiddenError()


def load_project_for(project_id: str, user: CurrentUser) -> Project:
    """Load a project (404 if absent) and enforce access (403 if denied)."""
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    require_project_access(project, user)
    return project
