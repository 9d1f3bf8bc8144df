"""
Snapshot Versioner.

Versions are allocated per (project, artifact family) as ``max + 1``. The
caller must invoke ``next_version`` inside the same transaction as the
insert that consumes it, after ``lock_project`` has taken the project row
lock. The ``(project_id, version)`` unique constraint on every snapshot
table makes the loser of any remaining race fail on flush.
"""

from __future__ import annotations

from sqlalchemy import select

from specforge.models import db
from specforge.models.estimate import EstimateSnapshot
from specforge.models.project import Project
from specforge.models.requirement import RequirementSnapshot
from specforge.models.tech_stack import TechStackRecommendation
from specforge.models.user_flow import UserFlowSnapshot
from specforge.models.wireframe import WireframeSnapshot

# Artifact family → snapshot model
FAMILY_MODELS = {
    "requirement": RequirementSnapshot,
    "estimate": EstimateSnapshot,
    "tech-stack": TechStackRecommendation,
    "user-flow": UserFlowSnapshot,
    "wireframe": WireframeSnapshot,
}


def snapshot_model(family: str):
    try:
        return FAMILY_MODELS[family]
    except KeyError:
        raise ValueError(f"Unknown artifact family: {family!r}") from None


def lock_project(project_id: str) -> Project | None:
    """SELECT … FOR UPDATE on the project row (no-op on SQLite)."""
    return db.session.execute(
        select(Project).where(Project.id == project_id).with_for_update()
    ).scalar_one_or_none()


def next_version(project_id: str, family: str) -> int:
    model = snapshot_model(family)
    current = db.session.execute(
        select(model.version)
        .where(model.project_id == project_id)
        .order_by(model.version.desc())
        .limit(1)
    ).scalar_one_or_none()
    return (current or 0) + 1
