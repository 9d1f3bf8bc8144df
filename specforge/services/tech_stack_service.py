"""Tech-Stack Orchestrator: requirement snapshot + features → TechStackRecommendation (stage ARCHITECTURE)."""

from __future__ import annotations

import logging

from specforge.ai.capabilities import get_capabilities
from specforge.core.exceptions import NotFoundError
from specforge.models import db
from specforge.models.tech_stack import TechStackRecommendation
from specforge.services import generation as gen
from specforge.services.access_resolver import CurrentUser, load_project_for
from specforge.services.activity_recorder import record_activity
from specforge.utils.pagination import PageParams

logger = logging.getLogger(__name__)

FAMILY = "tech-stack"
STAGE_AFTER = "ARCHITECTURE"


def generate(
    project_id: str,
    user: CurrentUser,
    *,
    requirement_snapshot_id: str | None = None,
    instruction: str | None = None,
) -> dict:
    project = load_project_for(project_id, user)
    requirement = gen.resolve_requirement_snapshot(project.id, requirement_snapshot_id)
    requirement_id = requirement.id
    structured_json = requirement.structured_json or {}
    features_json = gen.feature_payload(gen.features_for(requirement_id))
    ctx = gen.audit_context(project, user)
    gen.end_read_transaction()

    logger.info("Recommending tech stack for project %s", project_id,
                extra={"project_id": project_id})
    stack, ai_run_id = get_capabilities().recommend_tech_stack(
        structured_json, features_json, instruction, ctx,
    )

    def build(project, version):
        recommendation = TechStackRecommendation(
            project_id=project.id,
            requirement_snapshot_id=requirement_id,
            version=version,
            frontend=stack.frontend,
            backend=stack.backend,
            database=stack.database,
            infrastructure=stack.infrastructure,
            integrations=stack.integrations,
            rationale=stack.rationale,
            ai_run_id=ai_run_id,
            created_by_id=user.id,
        )
        db.session.add(recommendation)
        db.session.flush()
        record_activity(
            organization_id=project.organization_id,
            project_id=project.id,
            actor_user_id=user.id,
            event_type="TECH_STACK_GENERATED",
            summary=f"Tech stack v{version} recommended",
            payload={
                "tech_stack_id": recommendation.id,
                "version": version,
                "requirement_snapshot_id": requirement_id,
                "ai_run_id": ai_run_id,
            },
        )
        return recommendation

    recommendation = gen.persist_generation(project_id, FAMILY, STAGE_AFTER, build)
    return recommendation.to_dict()


def list_by_project(project_id: str, user: CurrentUser, params: PageParams) -> dict:
    load_project_for(project_id, user)
    return gen.list_snapshots(TechStackRecommendation, project_id, params, lambda r: r.to_dict())


def get_latest(project_id: str, user: CurrentUser) -> dict:
    load_project_for(project_id, user)
    recommendation = gen.latest_snapshot(TechStackRecommendation, project_id)
    if recommendation is None:
        raise NotFoundError(resource="TechStackRecommendation")
    return recommendation.to_dict()


def get_by_id(tech_stack_id: str, user: CurrentUser) -> dict:
    recommendation = gen.get_snapshot_or_404(TechStackRecommendation, tech_stack_id)
    load_project_for(recommendation.project_id, user)
    return recommendation.to_dict()
