"""
Project service — projects, their free-form inputs and project members.

All reads and writes go through the access resolver except ``create_project``,
which is gated on ACCEPTED organization membership instead.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, or_, select

from specforge.core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from specforge.models import db, utcnow
from specforge.models.organization import Organization, OrganizationMember, User
from specforge.models.project import (
    INPUT_SOURCE_TYPES,
    PROJECT_ROLES,
    PROJECT_STAGES,
    PROJECT_STATUSES,
    Project,
    ProjectInput,
    ProjectMember,
    stage_rank,
)
from specforge.services.access_resolver import CurrentUser, load_project_for
from specforge.services.activity_recorder import record_activity
from specforge.services.generation import atomic
from specforge.utils.pagination import PageParams, build_page

logger = logging.getLogger(__name__)


def _currency(value: str | None) -> str:
    code = (value or "USD").strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValidationError("Currency must be a 3-letter ISO code", details={"currency": value})
    return code


# ── Projects ─────────────────────────────────────────────────────────────────

def create_project(
    user: CurrentUser,
    *,
    name: str,
    organization_id: str | None = None,
    description: str | None = None,
    currency: str | None = None,
) -> dict:
    name = (name or "").strip()
    if not name:
        raise BadRequestError("name is required")
    organization_id = organization_id or user.organization_id
    if not organization_id:
        raise BadRequestError("organization_id is required")
    if db.session.get(Organization, organization_id) is None:
        raise NotFoundError(resource="Organization", resource_id=organization_id)

    if not user.is_super_admin:
        status = db.session.execute(
            select(OrganizationMember.invite_status).where(
                OrganizationMember.organization_id == organization_id,
                OrganizationMember.user_id == user.id,
            )
        ).scalar_one_or_none()
        if status != "ACCEPTED":
            raise ForbiddenError("You are not a member of this organization")

    code = _currency(currency)
    with atomic("Project"):
        project = Project(
            organization_id=organization_id,
            name=name[:200],
            description=description,
            currency=code,
            created_by_id=user.id,
        )
        db.session.add(project)
        db.session.flush()
        db.session.add(ProjectMember(project_id=project.id, user_id=user.id, role="OWNER"))
        record_activity(
            organization_id=organization_id,
            project_id=project.id,
            actor_user_id=user.id,
            event_type="PROJECT_CREATED",
            summary=f"Project '{project.name}' created",
            payload={"name": project.name, "currency": code},
        )
    logger.info("Project %s created in organization %s", project.id, organization_id,
                extra={"project_id": project.id})
    return project.to_dict()


def get_project(project_id: str, user: CurrentUser) -> dict:
    return load_project_for(project_id, user).to_dict()


def list_projects(user: CurrentUser, params: PageParams) -> dict:
    """Projects the caller can reach through either membership tier."""
    stmt = select(Project)
    if not user.is_super_admin:
        via_project = select(ProjectMember.project_id).where(ProjectMember.user_id == user.id)
        via_org = select(OrganizationMember.organization_id).where(
            OrganizationMember.user_id == user.id,
            OrganizationMember.invite_status == "ACCEPTED",
        )
        stmt = stmt.where(or_(Project.id.in_(via_project), Project.organization_id.in_(via_org)))

    total = db.session.execute(
        select(func.count()).select_from(stmt.subquery())
    ).scalar_one()
    rows = db.session.execute(
        stmt.order_by(Project.created_at.desc(), Project.id)
        .limit(params.limit)
        .offset(params.offset)
    ).scalars().all()
    return build_page([p.to_dict() for p in rows], total, params)


def _project_role(project_id: str, user_id: str) -> str | None:
    return db.session.execute(
        select(ProjectMember.role).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
        )
    ).scalar_one_or_none()


def update_status(
    project_id: str,
    user: CurrentUser,
    *,
    status: str,
    stage: str | None = None,
) -> dict:
    """
    Change the project status, optionally moving the stage forward.

    Only project OWNERs and EDITORs (or super admins) may change status.
    ARCHIVED stamps ``archived_at``; leaving ARCHIVED clears it. A stage
    earlier than the current one is rejected.
    """
    project = load_project_for(project_id, user)
    if not user.is_super_admin and _project_role(project.id, user.id) not in ("OWNER", "EDITOR"):
        raise ForbiddenError("Only project owners and editors can change the status")

    status = (status or "").strip().upper()
    if status not in PROJECT_STATUSES:
        raise ValidationError("Invalid project status", details={"status": status})
    if stage is not None:
        stage = stage.strip().upper()
        if stage not in PROJECT_STAGES:
            raise ValidationError("Invalid project stage", details={"stage": stage})
        if stage_rank(stage) < stage_rank(project.stage):
            raise ValidationError(
                "Project stage cannot move backward",
                details={"stage": stage, "current_stage": project.stage},
            )

    previous_status = project.status
    with atomic("Project", "id", project.id):
        project.status = status
        if stage:
            project.advance_stage(stage)
        if status == "ARCHIVED":
            project.archived_at = project.archived_at or utcnow()
        else:
            project.archived_at = None
        record_activity(
            organization_id=project.organization_id,
            project_id=project.id,
            actor_user_id=user.id,
            event_type="STATUS_CHANGED",
            summary=f"Status changed to {status}",
            payload={"previous_status": previous_status, "new_status": status, "stage": stage},
        )
    logger.info("Project %s status %s → %s", project.id, previous_status, status,
                extra={"project_id": project.id})
    return project.to_dict()


# ── Inputs ───────────────────────────────────────────────────────────────────

def add_input(
    project_id: str,
    user: CurrentUser,
    *,
    source_type: str = "TEXT",
    raw_text: str | None = None,
    transcript_text: str | None = None,
    language_code: str | None = None,
) -> dict:
    project = load_project_for(project_id, user)
    source_type = (source_type or "TEXT").upper()
    if source_type not in INPUT_SOURCE_TYPES:
        raise ValidationError("Invalid input source type", details={"source_type": source_type})
    if not (raw_text or "").strip() and not (transcript_text or "").strip():
        raise BadRequestError("raw_text or transcript_text is required")

    with atomic("ProjectInput"):
        item = ProjectInput(
            project_id=project.id,
            author_id=user.id,
            source_type=source_type,
            raw_text=raw_text,
            transcript_text=transcript_text,
            language_code=language_code,
        )
        db.session.add(item)
        db.session.flush()
        project.advance_stage("REQUIREMENT_DISCOVERY")
        record_activity(
            organization_id=project.organization_id,
            project_id=project.id,
            actor_user_id=user.id,
            event_type="INPUT_ADDED",
            summary=f"{source_type} input added",
            payload={"input_id": item.id, "source_type": source_type},
        )
    return item.to_dict()


def list_inputs(project_id: str, user: CurrentUser) -> list[dict]:
    load_project_for(project_id, user)
    rows = db.session.execute(
        select(ProjectInput)
        .where(ProjectInput.project_id == project_id)
        .order_by(ProjectInput.created_at, ProjectInput.id)
    ).scalars().all()
    return [r.to_dict() for r in rows]


# ── Members ──────────────────────────────────────────────────────────────────

def add_member(project_id: str, user: CurrentUser, *, user_id: str, role: str = "VIEWER") -> dict:
    project = load_project_for(project_id, user)
    if not user.is_super_admin:
        if _project_role(project.id, user.id) != "OWNER":
            raise ForbiddenError("Only project owners can add members")
    if role not in PROJECT_ROLES:
        raise ValidationError("Invalid project role", details={"role": role})
    if db.session.get(User, user_id) is None:
        raise NotFoundError(resource="User", resource_id=user_id)

    existing = db.session.execute(
        select(ProjectMember.id).where(
            ProjectMember.project_id == project.id,
            ProjectMember.user_id == user_id,
        )
    ).first()
    if existing is not None:
        raise ConflictError("ProjectMember", "user_id", user_id)

    with atomic("ProjectMember", "user_id", user_id):
        member = ProjectMember(project_id=project.id, user_id=user_id, role=role)
        db.session.add(member)
        db.session.flush()
        record_activity(
            organization_id=project.organization_id,
            project_id=project.id,
            actor_user_id=user.id,
            event_type="MEMBER_ADDED",
            summary=f"Member added as {role}",
            payload={"user_id": user_id, "role": role},
        )
    return member.to_dict()


def list_members(project_id: str, user: CurrentUser) -> list[dict]:
    load_project_for(project_id, user)
    rows = db.session.execute(
        select(ProjectMember)
        .where(ProjectMember.project_id == project_id)
        .order_by(ProjectMember.created_at)
    ).scalars().all()
    return [m.to_dict() for m in rows]
