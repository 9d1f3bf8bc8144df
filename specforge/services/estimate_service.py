"""
Estimate Orchestrator.

Conditions on a requirement snapshot (explicit id or latest) and its
feature items; writes EstimateSnapshot + EstimateLineItems and advances the
project to ESTIMATION. Line items are linked to features by
case-insensitive exact title match (nullable, best effort).

``regenerate_section`` patches exactly one key of breakdown_json in place:
no new version, no line-item changes.
"""

from __future__ import annotations

import logging
import re

from sqlalchemy import select

from specforge.ai.capabilities import get_capabilities
from specforge.core.exceptions import NotFoundError, ValidationError
from specforge.models import db
from specforge.models.estimate import ESTIMATE_SECTIONS, EstimateLineItem, EstimateSnapshot
from specforge.models.requirement import RequirementSnapshot
from specforge.services import generation as gen
from specforge.services.access_resolver import CurrentUser, load_project_for
from specforge.services.activity_recorder import record_activity
from specforge.utils.pagination import PageParams

logger = logging.getLogger(__name__)

FAMILY = "estimate"
STAGE_AFTER = "ESTIMATION"

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def _line_items(estimate_id: str) -> list[EstimateLineItem]:
    return db.session.execute(
        select(EstimateLineItem)
        .where(EstimateLineItem.estimate_snapshot_id == estimate_id)
        .order_by(EstimateLineItem.sort_order)
    ).scalars().all()


def _serialize(estimate: EstimateSnapshot, with_items: bool = True) -> dict:
    return estimate.to_dict(line_items=_line_items(estimate.id) if with_items else None)


def _currency(target_currency: str | None, project_currency: str) -> str:
    currency = (target_currency or project_currency or "USD").strip().upper()
    if not _CURRENCY_RE.match(currency):
        raise ValidationError("currency must be a 3-letter ISO-4217 code",
                              details={"currency": target_currency})
    return currency


# ── Generation ───────────────────────────────────────────────────────────────

def generate(
    project_id: str,
    user: CurrentUser,
    *,
    requirement_snapshot_id: str | None = None,
    target_currency: str | None = None,
) -> dict:
    project = load_project_for(project_id, user)
    currency = _currency(target_currency, project.currency)
    requirement = gen.resolve_requirement_snapshot(project.id, requirement_snapshot_id)
    requirement_id = requirement.id
    structured_json = requirement.structured_json or {}
    features = gen.require_features(requirement_id)
    matcher = gen.TitleMatcher(features)
    features_json = gen.feature_payload(features)
    ctx = gen.audit_context(project, user)
    gen.end_read_transaction()

    logger.info("Generating estimate for project %s from requirements %s",
                project_id, requirement_id, extra={"project_id": project_id})
    estimation, ai_run_id = get_capabilities().estimate_timeline_and_cost(
        structured_json, features_json, currency, ctx,
    )
    run = gen.ai_run_info(ai_run_id)
    provider = run.provider if run else None

    def build(project, version):
        estimate = EstimateSnapshot(
            project_id=project.id,
            requirement_snapshot_id=requirement_id,
            version=version,
            currency=currency,
            timeline_min_days=estimation.timeline_min_days,
            timeline_max_days=estimation.timeline_max_days,
            cost_min=estimation.cost_min,
            cost_max=estimation.cost_max,
            confidence_score=estimation.confidence_score,
            assumptions=estimation.assumptions,
            breakdown_json=estimation.breakdown,
            ai_provider=provider,
            ai_run_id=ai_run_id,
            created_by_id=user.id,
        )
        db.session.add(estimate)
        db.session.flush()
        for index, line in enumerate(estimation.line_items):
            db.session.add(EstimateLineItem(
                estimate_snapshot_id=estimate.id,
                feature_item_id=matcher.match(line.name),
                name=line.name,
                description=line.description,
                hours_min=line.hours_min,
                hours_max=line.hours_max,
                cost_min=line.cost_min,
                cost_max=line.cost_max,
                sort_order=index,
            ))
        record_activity(
            organization_id=project.organization_id,
            project_id=project.id,
            actor_user_id=user.id,
            event_type="ESTIMATE_GENERATED",
            summary=(f"Estimate v{version} generated: {estimation.timeline_min_days}-"
                     f"{estimation.timeline_max_days} days, {currency} "
                     f"{estimation.cost_min:,.0f}-{estimation.cost_max:,.0f}"),
            payload={
                "estimate_snapshot_id": estimate.id,
                "version": version,
                "requirement_snapshot_id": requirement_id,
                "line_item_count": len(estimation.line_items),
                "ai_run_id": ai_run_id,
            },
        )
        return estimate

    estimate = gen.persist_generation(project_id, FAMILY, STAGE_AFTER, build)
    return _serialize(estimate)


# ── Section regeneration ─────────────────────────────────────────────────────

def regenerate_section(
    estimate_snapshot_id: str,
    user: CurrentUser,
    *,
    section: str,
    instruction: str | None = None,
) -> dict:
    """Replace one named section of breakdown_json; other sections untouched."""
    if section not in ESTIMATE_SECTIONS:
        raise ValidationError(
            f"section must be one of: {', '.join(ESTIMATE_SECTIONS)}",
            details={"section": section},
        )
    estimate = gen.get_snapshot_or_404(EstimateSnapshot, estimate_snapshot_id)
    project = load_project_for(estimate.project_id, user)

    structured_json = {}
    if estimate.requirement_snapshot_id:
        requirement = db.session.get(RequirementSnapshot, estimate.requirement_snapshot_id)
        structured_json = requirement.structured_json if requirement else {}
    breakdown = dict(estimate.breakdown_json or {})
    ctx = gen.audit_context(project, user)
    gen.end_read_transaction()

    content, ai_run_id = get_capabilities().regenerate_estimate_section(
        section, breakdown, structured_json, instruction, ctx,
    )

    with gen.atomic("EstimateSnapshot", "id", estimate_snapshot_id):
        estimate = db.session.get(EstimateSnapshot, estimate_snapshot_id, with_for_update=True)
        patched = dict(estimate.breakdown_json or {})
        patched[section] = content
        estimate.breakdown_json = patched
        record_activity(
            organization_id=ctx.organization_id,
            project_id=estimate.project_id,
            actor_user_id=user.id,
            event_type="ESTIMATE_SECTION_REGENERATED",
            summary=f"Estimate v{estimate.version} section '{section}' regenerated",
            payload={
                "estimate_snapshot_id": estimate.id,
                "version": estimate.version,
                "section": section,
                "ai_run_id": ai_run_id,
            },
        )

    logger.info("Estimate %s section %s regenerated", estimate_snapshot_id, section,
                extra={"project_id": estimate.project_id})
    return _serialize(estimate)


# ── Reads ────────────────────────────────────────────────────────────────────

def list_by_project(project_id: str, user: CurrentUser, params: PageParams) -> dict:
    load_project_for(project_id, user)
    return gen.list_snapshots(
        EstimateSnapshot, project_id, params, lambda e: _serialize(e, with_items=False),
    )


def get_latest(project_id: str, user: CurrentUser) -> dict:
    load_project_for(project_id, user)
    estimate = gen.latest_snapshot(EstimateSnapshot, project_id)
    if estimate is None:
        raise NotFoundError(resource="EstimateSnapshot")
    return _serialize(estimate)


def get_by_id(estimate_id: str, user: CurrentUser) -> dict:
    estimate = gen.get_snapshot_or_404(EstimateSnapshot, estimate_id)
    load_project_for(estimate.project_id, user)
    return _serialize(estimate)
