"""
Wireframe Orchestrator.

Upstream resolution:
    user flow    → explicit id, else latest (400 "Generate user flows first")
    requirement  → explicit id, else the flow's own requirement snapshot,
                   else latest
Each AI page is linked to the flow screen with the same name (nullable).
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from specforge.ai.capabilities import get_capabilities
from specforge.core.exceptions import NotFoundError, PrerequisiteError
from specforge.models import db
from specforge.models.requirement import RequirementSnapshot
from specforge.models.wireframe import WireframeScreen, WireframeSnapshot
from specforge.services import generation as gen
from specforge.services.access_resolver import CurrentUser, load_project_for
from specforge.services.activity_recorder import record_activity
from specforge.services.user_flow_service import screens_for as flow_screens_for
from specforge.utils.pagination import PageParams

logger = logging.getLogger(__name__)

FAMILY = "wireframe"
STAGE_AFTER = "WIREFRAMING"
MISSING_USER_FLOW = "No user flow snapshot found. Generate user flows first."


def _screens_for(snapshot_id: str) -> list[WireframeScreen]:
    return db.session.execute(
        select(WireframeScreen)
        .where(WireframeScreen.wireframe_snapshot_id == snapshot_id)
        .order_by(WireframeScreen.sort_order)
    ).scalars().all()


def _serialize(snapshot: WireframeSnapshot, with_screens: bool = True) -> dict:
    if not with_screens:
        return snapshot.to_dict()
    return snapshot.to_dict(screens=_screens_for(snapshot.id))


def _resolve_requirement(project_id: str, explicit_id: str | None, flow) -> RequirementSnapshot:
    if explicit_id:
        return gen.resolve_requirement_snapshot(project_id, explicit_id)
    if flow.requirement_snapshot_id:
        requirement = db.session.get(RequirementSnapshot, flow.requirement_snapshot_id)
        if requirement is not None:
            return requirement
    return gen.resolve_requirement_snapshot(project_id, None)


def generate(
    project_id: str,
    user: CurrentUser,
    *,
    user_flow_snapshot_id: str | None = None,
    requirement_snapshot_id: str | None = None,
) -> dict:
    project = load_project_for(project_id, user)
    flow = gen.resolve_snapshot("user-flow", project.id, user_flow_snapshot_id, MISSING_USER_FLOW)
    flow_id = flow.id
    requirement = _resolve_requirement(project.id, requirement_snapshot_id, flow)
    requirement_id = requirement.id
    structured_json = requirement.structured_json or {}
    features_json = gen.feature_payload(gen.features_for(requirement_id))

    flow_screens = flow_screens_for(flow_id)
    if not flow_screens:
        raise PrerequisiteError(
            "The user flow snapshot has no screens. Generate user flows first.",
            prerequisite="user_flow_screens",
        )
    matcher = gen.TitleMatcher(flow_screens, attr="name")
    screens_json = [
        {
            "name": s.name,
            "description": s.description or "",
            "screenType": s.screen_type,
            "purpose": s.purpose or "",
            "userActions": s.user_actions or [],
            "entryPoint": s.entry_point,
        }
        for s in flow_screens
    ]
    ctx = gen.audit_context(project, user)
    gen.end_read_transaction()

    logger.info("Generating wireframes for project %s (%d screens)", project_id,
                len(screens_json), extra={"project_id": project_id})
    result, ai_run_id = get_capabilities().generate_wireframes(
        structured_json, features_json, screens_json, ctx,
    )
    run = gen.ai_run_info(ai_run_id)

    def build(project, version):
        snapshot = WireframeSnapshot(
            project_id=project.id,
            requirement_snapshot_id=requirement_id,
            user_flow_snapshot_id=flow_id,
            version=version,
            status="GENERATED",
            page_count=len(result.screens),
            wireframe_json=result.to_json(),
            design_system=result.design_system,
            assumptions=result.assumptions,
            ai_provider=run.provider if run else None,
            ai_model=run.model if run else None,
            generation_time_ms=run.latency_ms if run else None,
            ai_run_id=ai_run_id,
            created_by_id=user.id,
        )
        db.session.add(snapshot)
        db.session.flush()
        for index, page in enumerate(result.screens):
            db.session.add(WireframeScreen(
                wireframe_snapshot_id=snapshot.id,
                user_flow_screen_id=matcher.match(page.screen_name),
                name=page.screen_name,
                description=page.description,
                layout_json={"title": page.title, "sections": page.sections},
                screen_type=(page.screen_type or "")[:20] or None,
                sort_order=index,
            ))
        record_activity(
            organization_id=project.organization_id,
            project_id=project.id,
            actor_user_id=user.id,
            event_type="WIREFRAME_GENERATED",
            summary=f"Wireframes v{version} generated: {len(result.screens)} screen(s)",
            payload={
                "wireframe_snapshot_id": snapshot.id,
                "version": version,
                "user_flow_snapshot_id": flow_id,
                "screen_count": len(result.screens),
                "ai_run_id": ai_run_id,
            },
        )
        return snapshot

    snapshot = gen.persist_generation(project_id, FAMILY, STAGE_AFTER, build)
    return _serialize(snapshot)


def list_by_project(project_id: str, user: CurrentUser, params: PageParams) -> dict:
    load_project_for(project_id, user)
    return gen.list_snapshots(
        WireframeSnapshot, project_id, params, lambda s: _serialize(s, with_screens=False),
    )


def get_latest(project_id: str, user: CurrentUser) -> dict:
    load_project_for(project_id, user)
    snapshot = gen.latest_snapshot(WireframeSnapshot, project_id)
    if snapshot is None:
        raise NotFoundError(resource="WireframeSnapshot")
    return _serialize(snapshot)


def get_by_id(wireframe_id: str, user: CurrentUser) -> dict:
    snapshot = gen.get_snapshot_or_404(WireframeSnapshot, wireframe_id)
    load_project_for(snapshot.project_id, user)
    return _serialize(snapshot)


def fork_snapshot(wireframe_id: str, user: CurrentUser) -> dict:
    """Copy a wireframe snapshot and its screens into the next version (no AI call)."""
    source = gen.get_snapshot_or_404(WireframeSnapshot, wireframe_id)
    project = load_project_for(source.project_id, user)
    source_id = source.id
    source_screens = _screens_for(source_id)

    def build(project, version):
        snapshot = WireframeSnapshot(
            project_id=project.id,
            requirement_snapshot_id=source.requirement_snapshot_id,
            user_flow_snapshot_id=source.user_flow_snapshot_id,
            version=version,
            status="FORKED",
            page_count=source.page_count,
            wireframe_json=source.wireframe_json,
            design_system=source.design_system,
            assumptions=source.assumptions,
            ai_provider=source.ai_provider,
            ai_model=source.ai_model,
            generation_time_ms=source.generation_time_ms,
            ai_run_id=source.ai_run_id,
            created_by_id=user.id,
        )
        db.session.add(snapshot)
        db.session.flush()
        for screen in source_screens:
            db.session.add(WireframeScreen(
                wireframe_snapshot_id=snapshot.id,
                user_flow_screen_id=screen.user_flow_screen_id,
                name=screen.name,
                description=screen.description,
                layout_json=screen.layout_json,
                screen_type=screen.screen_type,
                sort_order=screen.sort_order,
                viewport_width=screen.viewport_width,
                viewport_height=screen.viewport_height,
            ))
        record_activity(
            organization_id=project.organization_id,
            project_id=project.id,
            actor_user_id=user.id,
            event_type="WIREFRAME_FORKED",
            summary=f"Wireframes v{version} forked from v{source.version}",
            payload={
                "wireframe_snapshot_id": snapshot.id,
                "version": version,
                "source_wireframe_snapshot_id": source_id,
                "screen_count": len(source_screens),
            },
        )
        return snapshot

    snapshot = gen.persist_generation(project.id, FAMILY, STAGE_AFTER, build)
    return _serialize(snapshot)
