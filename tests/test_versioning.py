"""
Snapshot versioning tests.

Versions are exactly 1, 2, 3, ... per (project, family) regardless of
interleaved failures, and a lost version race surfaces as ConflictError
without leaving a duplicate or partial snapshot behind.
"""

from unittest.mock import patch

import pytest
from sqlalchemy import select

from specforge.ai.gateway import LocalStubProvider
from specforge.core.exceptions import AIGatewayError, ConflictError
from specforge.models import db
from specforge.models.activity import ProjectActivity
from specforge.models.ai import AIRun
from specforge.models.requirement import FeatureItem, RequirementSnapshot
from specforge.services import estimate_service, requirement_service
from specforge.services import generation
from specforge.services.versioning import next_version, snapshot_model


def _versions(model, project_id):
    return db.session.execute(
        select(model.version).where(model.project_id == project_id).order_by(model.version)
    ).scalars().all()


def test_next_version_starts_at_one(project):
    assert next_version(project["id"], "requirement") == 1
    assert next_version(project["id"], "wireframe") == 1


def test_unknown_family_is_rejected():
    with pytest.raises(ValueError):
        snapshot_model("mood-board")


def test_versions_have_no_gaps_after_failures(project_with_input, owner_user):
    pid = project_with_input["id"]
    requirement_service.generate(pid, owner_user)

    with patch.object(LocalStubProvider, "chat", side_effect=RuntimeError("provider down")):
        with pytest.raises(AIGatewayError):
            requirement_service.generate(pid, owner_user)

    requirement_service.generate(pid, owner_user)

    with patch.object(LocalStubProvider, "chat",
                      return_value={"content": "not json at all", "prompt_tokens": 1,
                                    "completion_tokens": 1, "model": "local-stub",
                                    "truncated": False}):
        with pytest.raises(AIGatewayError):
            requirement_service.generate(pid, owner_user)

    requirement_service.generate(pid, owner_user)
    assert _versions(RequirementSnapshot, pid) == [1, 2, 3]


def test_families_are_versioned_independently(project_with_input, owner_user):
    pid = project_with_input["id"]
    requirement_service.generate(pid, owner_user)
    requirement_service.generate(pid, owner_user)
    estimate = estimate_service.generate(pid, owner_user)
    assert estimate["version"] == 1


def test_failed_runs_are_still_audited(project_with_input, owner_user):
    with patch.object(LocalStubProvider, "chat", side_effect=RuntimeError("provider down")):
        with pytest.raises(AIGatewayError) as exc_info:
            requirement_service.generate(project_with_input["id"], owner_user)

    run = db.session.get(AIRun, exc_info.value.ai_run_id)
    assert run.status == "FAILED"
    assert "provider down" in run.error_message
    assert db.session.execute(select(RequirementSnapshot)).first() is None


def test_lost_version_race_is_conflict(project_with_input, owner_user, monkeypatch):
    pid = project_with_input["id"]
    requirement_service.generate(pid, owner_user)

    # SQLite ignores SELECT ... FOR UPDATE, so the row-lock path cannot run here.
    # Pinning next_version simulates a concurrent writer that allocated the same
    # version first; only the (project_id, version) unique constraint is exercised.
    monkeypatch.setattr(generation, "next_version", lambda project_id, family: 1)
    with pytest.raises(ConflictError) as exc_info:
        requirement_service.generate(pid, owner_user)

    assert exc_info.value.field == "version"
    assert _versions(RequirementSnapshot, pid) == [1]
    # The losing attempt left no orphan features or activity.
    snapshot_ids = set(db.session.execute(select(RequirementSnapshot.id)).scalars())
    feature_snapshots = set(db.session.execute(select(FeatureItem.requirement_snapshot_id)).scalars())
    assert feature_snapshots <= snapshot_ids
    generated = db.session.execute(
        select(ProjectActivity).where(ProjectActivity.event_type == "REQUIREMENT_GENERATED")
    ).scalars().all()
    assert len(generated) == 1


def test_failure_inside_persist_rolls_back_everything(project_with_input, owner_user, monkeypatch):
    pid = project_with_input["id"]

    def _broken_record(**kwargs):
        raise ValueError("activity store unavailable")

    monkeypatch.setattr(requirement_service, "record_activity", _broken_record)
    with pytest.raises(ValueError):
        requirement_service.generate(pid, owner_user)

    assert _versions(RequirementSnapshot, pid) == []
    assert db.session.execute(select(FeatureItem)).first() is None
    monkeypatch.undo()

    assert requirement_service.generate(pid, owner_user)["version"] == 1
