"""
Activity Recorder — append-only project audit trail.

Transaction policy: ``record_activity`` adds + flushes, never commits. It
runs inside the caller's transaction so the activity row commits or rolls
back together with the state change it describes.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select

from specforge.models import db
from specforge.models.activity import EVENT_PAYLOAD_FIELDS, ProjectActivity
from specforge.services.access_resolver import CurrentUser, load_project_for
from specforge.utils.pagination import PageParams, build_page

logger = logging.getLogger(__name__)


def validate_payload(event_type: str, payload: dict) -> dict:
    """Check ``payload`` carries exactly the fields of its event-type variant."""
    expected = EVENT_PAYLOAD_FIELDS.get(event_type)
    if expected is None:
        raise ValueError(f"Unknown activity event type: {event_type!r}")
    keys = set(payload)
    missing = expected - keys
    extra = keys - expected
    if missing or extra:
        raise ValueError(
            f"{event_type} payload mismatch: missing={sorted(missing)} extra={sorted(extra)}"
        )
    return dict(payload)


def record_activity(
    *,
    organization_id: str,
    project_id: str,
    actor_user_id: str | None,
    event_type: str,
    summary: str,
    payload: dict,
) -> ProjectActivity:
    """Append one activity row; returns the flushed instance."""
    row = ProjectActivity(
        organization_id=organization_id,
        project_id=project_id,
        actor_user_id=actor_user_id,
        event_type=event_type,
        summary=summary[:500],
        payload=validate_payload(event_type, payload),
    )
    db.session.add(row)
    db.session.flush()
    logger.debug(
        "Activity %s recorded for project %s", event_type, project_id,
        extra={"project_id": project_id, "event_type": event_type},
    )
    return row


def list_activity(project_id: str, user: CurrentUser, params: PageParams) -> dict:
    """Newest-first activity feed for a project."""
    load_project_for(project_id, user)
    total = db.session.execute(
        select(func.count(ProjectActivity.id)).where(ProjectActivity.project_id == project_id)
    ).scalar_one()
    rows = db.session.execute(
        select(ProjectActivity)
        .where(ProjectActivity.project_id == project_id)
        .order_by(ProjectActivity.created_at.desc(), ProjectActivity.id.desc())
        .limit(params.limit)
        .offset(params.offset)
    ).scalars().all()
    return build_page([r.to_dict() for r in rows], total, params)
