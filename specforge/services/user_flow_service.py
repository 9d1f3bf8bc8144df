"""
User-Flow Orchestrator.

Requires a requirement snapshot with at least one feature item. Writes a
UserFlowSnapshot with its screens (linked to features by title, nullable)
and transitions; advances the project to WIREFRAMING.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from specforge.ai.capabilities import get_capabilities
from specforge.core.exceptions import NotFoundError
from specforge.models import db
from specforge.models.user_flow import UserFlowScreen, UserFlowSnapshot, UserFlowTransition
from specforge.services import generation as gen
from specforge.services.access_resolver import CurrentUser, load_project_for
from specforge.services.activity_recorder import record_activity
from specforge.utils.pagination import PageParams

logger = logging.getLogger(__name__)

FAMILY = "user-flow"
STAGE_AFTER = "WIREFRAMING"


def screens_for(snapshot_id: str) -> list[UserFlowScreen]:
    return db.session.execute(
        select(UserFlowScreen)
        .where(UserFlowScreen.user_flow_snapshot_id == snapshot_id)
        .order_by(UserFlowScreen.sort_order)
    ).scalars().all()


def _transitions_for(snapshot_id: str) -> list[UserFlowTransition]:
    return db.session.execute(
        select(UserFlowTransition)
        .where(UserFlowTransition.user_flow_snapshot_id == snapshot_id)
        .order_by(UserFlowTransition.sort_order)
    ).scalars().all()


def _serialize(snapshot: UserFlowSnapshot, with_children: bool = True) -> dict:
    if not with_children:
        return snapshot.to_dict()
    return snapshot.to_dict(screens=screens_for(snapshot.id),
                            transitions=_transitions_for(snapshot.id))


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
    features = gen.require_features(requirement_id)
    matcher = gen.TitleMatcher(features)
    features_json = gen.feature_payload(features)
    ctx = gen.audit_context(project, user)
    gen.end_read_transaction()

    logger.info("Generating user flows for project %s (%d features)", project_id,
                len(features_json), extra={"project_id": project_id})
    flow, ai_run_id = get_capabilities().generate_user_flows(
        structured_json, features_json, instruction, ctx,
    )
    run = gen.ai_run_info(ai_run_id)
    provider = run.provider if run else None

    def build(project, version):
        snapshot = UserFlowSnapshot(
            project_id=project.id,
            requirement_snapshot_id=requirement_id,
            version=version,
            status="GENERATED",
            screen_count=len(flow.screens),
            flow_json=flow.to_json(),
            assumptions=flow.assumptions,
            ai_provider=provider,
            ai_run_id=ai_run_id,
            created_by_id=user.id,
        )
        db.session.add(snapshot)
        db.session.flush()
        for index, screen in enumerate(flow.screens):
            db.session.add(UserFlowScreen(
                user_flow_snapshot_id=snapshot.id,
                feature_item_id=matcher.match(screen.feature_title),
                name=screen.name,
                description=screen.description,
                screen_type=screen.screen_type,
                purpose=screen.purpose,
                user_actions=screen.user_actions,
                entry_point=screen.entry_point,
                sort_order=index,
            ))
        for index, transition in enumerate(flow.transitions):
            db.session.add(UserFlowTransition(
                user_flow_snapshot_id=snapshot.id,
                from_screen=transition.from_screen,
                to_screen=transition.to_screen,
                trigger_action=transition.trigger_action,
                trigger_label=transition.trigger_label,
                condition=transition.condition,
                sort_order=index,
            ))
        record_activity(
            organization_id=project.organization_id,
            project_id=project.id,
            actor_user_id=user.id,
            event_type="USER_FLOW_GENERATED",
            summary=(f"User flows v{version} generated: {len(flow.screens)} screen(s), "
                     f"{len(flow.transitions)} transition(s)"),
            payload={
                "user_flow_snapshot_id": snapshot.id,
                "version": version,
                "requirement_snapshot_id": requirement_id,
                "screen_count": len(flow.screens),
                "transition_count": len(flow.transitions),
                "ai_run_id": ai_run_id,
            },
        )
        return snapshot

    snapshot = gen.persist_generation(project_id, FAMILY, STAGE_AFTER, build)
    return _serialize(snapshot)


def list_by_project(project_id: str, user: CurrentUser, params: PageParams) -> dict:
    load_project_for(project_id, user)
    return gen.list_snapshots(
        UserFlowSnapshot, project_id, params, lambda s: _serialize(s, with_children=False),
    )


def get_latest(project_id: str, user: CurrentUser) -> dict:
    load_project_for(project_id, user)
    snapshot = gen.latest_snapshot(UserFlowSnapshot, project_id)
    if snapshot is None:
        raise NotFoundError(resource="UserFlowSnapshot")
    return _serialize(snapshot)


def get_by_id(user_flow_id: str, user: CurrentUser) -> dict:
    snapshot = gen.get_snapshot_or_404(UserFlowSnapshot, user_flow_id)
    load_project_for(snapshot.project_id, user)
    return _serialize(snapshot)
