"""
Generation skeleton shared by every artifact orchestrator.

Flow for one generation call:
    load project (404) → access gate (403) → resolve upstream snapshot
    (404 explicit / 400 missing) → gather context (400 if empty)
    → end read transaction → AI call (502) → persist_generation()
    → re-read children for the response.

Transaction policy: everything before the AI call is read-only. The only
write for the artifact itself happens in ``persist_generation``, which
locks the project row, allocates the version, lets the orchestrator insert
snapshot + children + activity, advances the stage and commits once.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from specforge.ai.capabilities import AuditContext
from specforge.core.exceptions import ConflictError, NotFoundError, PrerequisiteError
from specforge.models import db
from specforge.models.ai import AIRun
from specforge.models.requirement import FeatureItem, RequirementSnapshot
from specforge.services.access_resolver import CurrentUser
from specforge.services.versioning import lock_project, next_version, snapshot_model
from specforge.utils.pagination import PageParams, build_page

logger = logging.getLogger(__name__)

MISSING_REQUIREMENTS = "No requirement snapshot found. Generate requirements first."
MISSING_FEATURES = "No features found for the requirement snapshot. Generate requirements first."


# ── Transactions ─────────────────────────────────────────────────────────────

@contextmanager
def atomic(resource: str, field: str = "id", value: str | None = None):
    """Commit the block as one unit; unique-constraint loss becomes 409."""
    try:
        yield
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.warning("Integrity conflict writing %s (%s=%s)", resource, field, value)
        raise ConflictError(resource, field, value) from None
    except Exception:
        db.session.rollback()
        raise


def end_read_transaction() -> None:
    """Release the read transaction before a long AI call."""
    db.session.commit()


def audit_context(project, user: CurrentUser) -> AuditContext:
    return AuditContext(
        organization_id=project.organization_id,
        project_id=project.id,
        user_id=user.id,
    )


def persist_generation(project_id: str, family: str, stage: str, build):
    """
    Atomically write one new snapshot version.

    ``build(project, version)`` inserts the snapshot, its children and the
    activity row (flush only) and returns the snapshot. On any failure the
    whole unit is rolled back; a lost version race raises ConflictError.
    """
    model = snapshot_model(family)
    version = None
    try:
        project = lock_project(project_id)
        if project is None:
            raise NotFoundError(resource="Project", resource_id=project_id)
        version = next_version(project_id, family)
        snapshot = build(project, version)
        project.advance_stage(stage)
        db.session.flush()
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.warning(
            "Version race lost for %s project=%s version=%s", family, project_id, version,
            extra={"project_id": project_id},
        )
        raise ConflictError(model.__name__, "version", str(version)) from None
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Generated %s v%s for project %s", family, version, project_id,
        extra={"project_id": project_id},
    )
    return snapshot


# ── Upstream resolution ──────────────────────────────────────────────────────

def resolve_snapshot(family: str, project_id: str, snapshot_id: str | None, missing_message: str):
    """Explicit id → that snapshot (404 if absent/other project); else latest (400 if none)."""
    model = snapshot_model(family)
    if snapshot_id:
        snapshot = db.session.get(model, snapshot_id)
        if snapshot is None or snapshot.project_id != project_id:
            raise NotFoundError(resource=model.__name__, resource_id=snapshot_id)
        return snapshot
    snapshot = latest_snapshot(model, project_id)
    if snapshot is None:
        raise PrerequisiteError(missing_message, prerequisite=family)
    return snapshot


def resolve_requirement_snapshot(project_id: str, snapshot_id: str | None) -> RequirementSnapshot:
    return resolve_snapshot("requirement", project_id, snapshot_id, MISSING_REQUIREMENTS)


def features_for(requirement_snapshot_id: str) -> list[FeatureItem]:
    return db.session.execute(
        select(FeatureItem)
        .where(FeatureItem.requirement_snapshot_id == requirement_snapshot_id)
        .order_by(FeatureItem.order_index)
    ).scalars().all()


def require_features(requirement_snapshot_id: str) -> list[FeatureItem]:
    """Feature items of a requirement snapshot; 400 when there are none."""
    features = features_for(requirement_snapshot_id)
    if not features:
        raise PrerequisiteError(MISSING_FEATURES, prerequisite="feature_items")
    return features


def feature_payload(features: list[FeatureItem]) -> list[dict]:
    return [
        {
            "title": f.title,
            "description": f.description or "",
            "priority": f.priority,
            "complexity": f.complexity,
        }
        for f in features
    ]


class TitleMatcher:
    """Case-insensitive exact title → id lookup; misses return None.

    Surrounding whitespace is ignored on both sides; inner text must match.
    """

    def __init__(self, rows, attr: str = "title"):
        self._by_title: dict[str, str] = {}
        for row in rows:
            key = (getattr(row, attr) or "").strip().lower()
            if key and key not in self._by_title:
                self._by_title[key] = row.id

    def match(self, title: str | None) -> str | None:
        if not title:
            return None
        return self._by_title.get(title.strip().lower())


# ── Read helpers ─────────────────────────────────────────────────────────────

def latest_snapshot(model, project_id: str):
    return db.session.execute(
        select(model)
        .where(model.project_id == project_id)
        .order_by(model.version.desc())
        .limit(1)
    ).scalar_one_or_none()


def list_snapshots(model, project_id: str, params: PageParams, serialize) -> dict:
    """Paginated snapshots, version descending."""
    total = db.session.execute(
        select(func.count(model.id)).where(model.project_id == project_id)
    ).scalar_one()
    rows = db.session.execute(
        select(model)
        .where(model.project_id == project_id)
        .order_by(model.version.desc())
        .limit(params.limit)
        .offset(params.offset)
    ).scalars().all()
    return build_page([serialize(r) for r in rows], total, params)


def ai_run_info(ai_run_id: str | None) -> AIRun | None:
    return db.session.get(AIRun, ai_run_id) if ai_run_id else None


def get_snapshot_or_404(model, snapshot_id: str):
    snapshot = db.session.get(model, snapshot_id)
    if snapshot is None:
        raise NotFoundError(resource=model.__name__, resource_id=snapshot_id)
    return snapshot
