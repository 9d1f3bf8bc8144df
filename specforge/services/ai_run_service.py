"""Read access to the AI run audit log."""

from __future__ import annotations

from sqlalchemy import func, select

from specforge.core.exceptions import NotFoundError
from specforge.models import db
from specforge.models.ai import AIRun
from specforge.services.access_resolver import CurrentUser, load_project_for
from specforge.utils.pagination import PageParams, build_page


def list_runs(project_id: str, user: CurrentUser, params: PageParams) -> dict:
    load_project_for(project_id, user)
    total = db.session.execute(
        select(func.count(AIRun.id)).where(AIRun.project_id == project_id)
    ).scalar_one()
    rows = db.session.execute(
        select(AIRun)
        .where(AIRun.project_id == project_id)
        .order_by(AIRun.created_at.desc(), AIRun.id.desc())
        .limit(params.limit)
        .offset(params.offset)
    ).scalars().all()
    return build_page([r.to_dict() for r in rows], total, params)


def get_run(run_id: str, user: CurrentUser) -> dict:
    run = db.session.get(AIRun, run_id)
    if run is None or run.project_id is None:
        raise NotFoundError(resource="AIRun", resource_id=run_id)
    load_project_for(run.project_id, user)
    return run.to_dict()
