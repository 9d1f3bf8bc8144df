"""
Requirement Orchestrator.

Turns the project's free-form inputs into a versioned RequirementSnapshot
plus its ordered FeatureItems (two AI tasks: structure_requirements, then
extract_features). Advances the project to FEATURE_DEFINITION.

Also owns the read side (list / latest / by id) and the manual content
update, which never touches version or feature items.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from specforge.ai.capabilities import get_capabilities
from specforge.ai.schemas import SchemaError, StructuredRequirement
from specforge.core.exceptions import NotFoundError, PrerequisiteError, ValidationError
from specforge.models import db
from specforge.models.project import ProjectInput
from specforge.models.requirement import REQUIREMENT_STATUSES, FeatureItem, RequirementSnapshot
from specforge.services import generation as gen
from specforge.services.access_resolver import CurrentUser, load_project_for
from specforge.services.activity_recorder import record_activity
from specforge.utils.pagination import PageParams

logger = logging.getLogger(__name__)

FAMILY = "requirement"
STAGE_AFTER = "FEATURE_DEFINITION"


def _serialize(snapshot: RequirementSnapshot, with_features: bool = True) -> dict:
    features = gen.features_for(snapshot.id) if with_features else None
    return snapshot.to_dict(features=features)


def _input_texts(project_id: str, source_input_id: str | None) -> list[str]:
    if source_input_id:
        item = db.session.get(ProjectInput, source_input_id)
        if item is None or item.project_id != project_id:
            raise NotFoundError(resource="ProjectInput", resource_id=source_input_id)
        inputs = [item]
    else:
        inputs = db.session.execute(
            select(ProjectInput)
            .where(ProjectInput.project_id == project_id)
            .order_by(ProjectInput.created_at)
        ).scalars().all()

    texts = [i.text.strip() for i in inputs if i.text and i.text.strip()]
    if not texts:
        raise PrerequisiteError(
            "No project inputs with text found. Add a project input first.",
            prerequisite="project_input",
        )
    return texts


# ── Generation ───────────────────────────────────────────────────────────────

def generate(
    project_id: str,
    user: CurrentUser,
    *,
    source_input_id: str | None = None,
    instruction: str | None = None,
) -> dict:
    """Generate the next requirement snapshot version for a project."""
    project = load_project_for(project_id, user)
    texts = _input_texts(project.id, source_input_id)
    ctx = gen.audit_context(project, user)
    gen.end_read_transaction()

    logger.info("Generating requirements for project %s from %d input(s)",
                project_id, len(texts), extra={"project_id": project_id})
    ai = get_capabilities()
    structured, structure_run_id = ai.structure_requirements(texts, instruction, ctx)
    structured_json = structured.to_json()
    features, features_run_id = ai.extract_features(structured_json, ctx)
    ai_run_ids = [structure_run_id, features_run_id]

    def build(project, version):
        snapshot = RequirementSnapshot(
            project_id=project.id,
            version=version,
            structured_json=structured_json,
            assumptions=structured.assumptions,
            status="GENERATED",
            source_input_id=source_input_id,
            ai_run_ids=ai_run_ids,
            created_by_id=user.id,
        )
        db.session.add(snapshot)
        db.session.flush()
        for index, feature in enumerate(features):
            db.session.add(FeatureItem(
                project_id=project.id,
                requirement_snapshot_id=snapshot.id,
                title=feature.title,
                description=feature.description,
                priority=feature.priority,
                complexity=feature.complexity,
                order_index=index,
            ))
        record_activity(
            organization_id=project.organization_id,
            project_id=project.id,
            actor_user_id=user.id,
            event_type="REQUIREMENT_GENERATED",
            summary=f"Requirements v{version} generated with {len(features)} feature(s)",
            payload={
                "requirement_snapshot_id": snapshot.id,
                "version": version,
                "feature_count": len(features),
                "source_input_id": source_input_id,
                "ai_run_ids": ai_run_ids,
            },
        )
        return snapshot

    snapshot = gen.persist_generation(project_id, FAMILY, STAGE_AFTER, build)
    return _serialize(snapshot)


# ── Reads ────────────────────────────────────────────────────────────────────

def list_by_project(project_id: str, user: CurrentUser, params: PageParams) -> dict:
    load_project_for(project_id, user)
    return gen.list_snapshots(
        RequirementSnapshot, project_id, params, lambda s: _serialize(s, with_features=False),
    )


def get_latest(project_id: str, user: CurrentUser) -> dict:
    load_project_for(project_id, user)
    snapshot = gen.latest_snapshot(RequirementSnapshot, project_id)
    if snapshot is None:
        raise NotFoundError(resource="RequirementSnapshot")
    return _serialize(snapshot)


def get_by_id(requirement_id: str, user: CurrentUser) -> dict:
    snapshot = gen.get_snapshot_or_404(RequirementSnapshot, requirement_id)
    load_project_for(snapshot.project_id, user)
    return _serialize(snapshot)


# ── Manual update ────────────────────────────────────────────────────────────

def update(
    requirement_id: str,
    user: CurrentUser,
    *,
    structured_json: dict,
    assumptions: list | None = None,
    status: str | None = None,
) -> dict:
    """Replace content fields in place; version and feature items are untouched."""
    snapshot = gen.get_snapshot_or_404(RequirementSnapshot, requirement_id)
    project = load_project_for(snapshot.project_id, user)

    try:
        structured = StructuredRequirement.from_json(structured_json)
    except SchemaError as e:
        raise ValidationError(f"structured_json is invalid: {e}",
                              details={"structured_json": str(e)}) from None
    if status is not None and status not in REQUIREMENT_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(REQUIREMENT_STATUSES))}",
            details={"status": status},
        )
    if assumptions is not None and not isinstance(assumptions, list):
        raise ValidationError("assumptions must be a list", details={"assumptions": "list"})

    changed = ["structured_json"]
    with gen.atomic("RequirementSnapshot", "id", requirement_id):
        snapshot.structured_json = structured.to_json()
        if assumptions is not None:
            snapshot.assumptions = [str(a) for a in assumptions]
            changed.append("assumptions")
        if status is not None:
            snapshot.status = status
            changed.append("status")
        record_activity(
            organization_id=project.organization_id,
            project_id=project.id,
            actor_user_id=user.id,
            event_type="REQUIREMENT_UPDATED",
            summary=f"Requirements v{snapshot.version} updated manually",
            payload={
                "requirement_snapshot_id": snapshot.id,
                "version": snapshot.version,
                "fields": changed,
            },
        )

    logger.info("Requirement snapshot %s updated (%s)", requirement_id, ", ".join(changed),
                extra={"project_id": snapshot.project_id})
    return _serialize(snapshot)
