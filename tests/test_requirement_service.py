"""
Requirement orchestrator tests.

Covers: the end-to-end scenario (input → v1 + features + stage + activity),
prerequisite failures, AI failure rollback, explicit source input handling,
manual update semantics and the read side.
"""

import json
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from specforge.ai.gateway import LocalStubProvider
from specforge.core.exceptions import (
    AIGatewayError,
    ForbiddenError,
    NotFoundError,
    PrerequisiteError,
    ValidationError,
)
from specforge.models import db
from specforge.models.activity import ProjectActivity
from specforge.models.ai import AIRun
from specforge.models.project import Project
from specforge.models.requirement import FeatureItem, RequirementSnapshot
from specforge.services import project_service, requirement_service
from specforge.utils.pagination import PageParams

from conftest import DEFAULT_REQUIREMENT, as_current, make_user


def _count(model, **filters):
    stmt = select(func.count()).select_from(model)
    for key, value in filters.items():
        stmt = stmt.where(getattr(model, key) == value)
    return db.session.execute(stmt).scalar_one()


class TestGenerate:
    def test_first_generation_from_text_input(self, project_with_input, owner_user):
        pid = project_with_input["id"]
        result = requirement_service.generate(pid, owner_user)

        assert result["version"] == 1
        assert result["status"] == "GENERATED"
        assert len(result["feature_items"]) >= 1
        assert [f["order_index"] for f in result["feature_items"]] == list(
            range(len(result["feature_items"]))
        )
        assert db.session.get(Project, pid).stage == "FEATURE_DEFINITION"

        activities = db.session.execute(
            select(ProjectActivity).where(
                ProjectActivity.project_id == pid,
                ProjectActivity.event_type == "REQUIREMENT_GENERATED",
            )
        ).scalars().all()
        assert len(activities) == 1
        payload = activities[0].payload
        assert payload["requirement_snapshot_id"] == result["id"]
        assert payload["feature_count"] == len(result["feature_items"])

    def test_provenance_records_both_ai_runs(self, project_with_input, owner_user):
        result = requirement_service.generate(project_with_input["id"], owner_user)
        assert len(result["ai_run_ids"]) == 2
        tasks = {db.session.get(AIRun, rid).task_type for rid in result["ai_run_ids"]}
        assert tasks == {"structure_requirements", "extract_features"}
        assert all(db.session.get(AIRun, rid).status == "SUCCESS" for rid in result["ai_run_ids"])

    def test_uses_scripted_features_in_order(self, project_with_input, owner_user, scripted_ai):
        result = requirement_service.generate(project_with_input["id"], owner_user)
        titles = [f["title"] for f in result["feature_items"]]
        assert titles == ["Class Schedule", "Memberships"]
        assert result["structured_json"]["projectOverview"] == "Yoga studio booking platform"

    def test_instruction_passed_to_ai(self, project_with_input, owner_user, scripted_ai):
        requirement_service.generate(project_with_input["id"], owner_user, instruction="Focus on mobile")
        task, (texts, instruction) = scripted_ai.calls[0]
        assert task == "structure_requirements"
        assert instruction == "Focus on mobile"
        assert "yoga" in texts[0]

    def test_no_inputs_is_prerequisite_error(self, project, owner_user):
        with pytest.raises(PrerequisiteError, match="Add a project input first"):
            requirement_service.generate(project["id"], owner_user)
        assert _count(RequirementSnapshot, project_id=project["id"]) == 0

    def test_explicit_source_input_from_other_project_is_not_found(
        self, project_with_input, owner_user,
    ):
        other = project_service.create_project(owner_user, name="Other")
        item = project_service.add_input(other["id"], owner_user, raw_text="Other project text")
        with pytest.raises(NotFoundError):
            requirement_service.generate(
                project_with_input["id"], owner_user, source_input_id=item["id"],
            )

    def test_explicit_source_input_is_recorded(self, project, owner_user, scripted_ai):
        project_service.add_input(project["id"], owner_user, raw_text="First input")
        second = project_service.add_input(project["id"], owner_user, raw_text="Second input")
        result = requirement_service.generate(project["id"], owner_user, source_input_id=second["id"])

        assert result["source_input_id"] == second["id"]
        _, (texts, _) = scripted_ai.calls[0]
        assert texts == ["Second input"]

    def test_outsider_is_forbidden_and_nothing_written(self, project_with_input):
        outsider = make_user("outsider@other.test")
        with pytest.raises(ForbiddenError):
            requirement_service.generate(project_with_input["id"], as_current(outsider))
        assert _count(RequirementSnapshot) == 0

    def test_ai_failure_leaves_no_rows(self, project_with_input, owner_user, scripted_ai):
        scripted_ai.failures.add("extract_features")
        pid = project_with_input["id"]

        with pytest.raises(AIGatewayError):
            requirement_service.generate(pid, owner_user)

        assert _count(RequirementSnapshot, project_id=pid) == 0
        assert _count(FeatureItem, project_id=pid) == 0
        assert _count(ProjectActivity, project_id=pid, event_type="REQUIREMENT_GENERATED") == 0
        assert db.session.get(Project, pid).stage == "REQUIREMENT_DISCOVERY"

    def test_empty_feature_extraction_writes_nothing(self, project_with_input, owner_user):
        pid = project_with_input["id"]
        replies = [
            {"content": json.dumps(DEFAULT_REQUIREMENT), "prompt_tokens": 1,
             "completion_tokens": 1, "model": "local-stub", "truncated": False},
            {"content": "[]", "prompt_tokens": 1, "completion_tokens": 1,
             "model": "local-stub", "truncated": False},
        ]
        with patch.object(LocalStubProvider, "chat", side_effect=replies):
            with pytest.raises(AIGatewayError, match="no features"):
                requirement_service.generate(pid, owner_user)

        assert _count(RequirementSnapshot, project_id=pid) == 0
        assert _count(AIRun, project_id=pid, task_type="extract_features", status="FAILED") == 1


class TestUpdate:
    def test_update_keeps_version_and_features(self, project_with_input, owner_user):
        created = requirement_service.generate(project_with_input["id"], owner_user)
        feature_ids = [f["id"] for f in created["feature_items"]]

        new_json = dict(created["structured_json"], projectOverview="Edited overview")
        updated = requirement_service.update(
            created["id"], owner_user,
            structured_json=new_json, assumptions=["Edited"], status="REVIEWED",
        )

        assert updated["version"] == created["version"]
        assert updated["structured_json"]["projectOverview"] == "Edited overview"
        assert updated["assumptions"] == ["Edited"]
        assert updated["status"] == "REVIEWED"
        assert [f["id"] for f in updated["feature_items"]] == feature_ids
        assert _count(RequirementSnapshot, project_id=project_with_input["id"]) == 1

    def test_update_records_activity(self, project_with_input, owner_user):
        created = requirement_service.generate(project_with_input["id"], owner_user)
        requirement_service.update(created["id"], owner_user, structured_json=created["structured_json"])

        row = db.session.execute(
            select(ProjectActivity).where(ProjectActivity.event_type == "REQUIREMENT_UPDATED")
        ).scalar_one()
        assert row.payload["fields"] == ["structured_json"]
        assert row.payload["version"] == 1

    def test_update_rejects_invalid_structured_json(self, project_with_input, owner_user):
        created = requirement_service.generate(project_with_input["id"], owner_user)
        with pytest.raises(ValidationError):
            requirement_service.update(created["id"], owner_user, structured_json={"objectives": []})

    def test_update_rejects_unknown_status(self, project_with_input, owner_user):
        created = requirement_service.generate(project_with_input["id"], owner_user)
        with pytest.raises(ValidationError):
            requirement_service.update(
                created["id"], owner_user,
                structured_json=created["structured_json"], status="SHIPPED",
            )

    def test_update_missing_snapshot_is_not_found(self, owner_user):
        with pytest.raises(NotFoundError):
            requirement_service.update("missing", owner_user, structured_json={})


class TestReads:
    def test_latest_and_list(self, project_with_input, owner_user):
        pid = project_with_input["id"]
        requirement_service.generate(pid, owner_user)
        requirement_service.generate(pid, owner_user)

        latest = requirement_service.get_latest(pid, owner_user)
        assert latest["version"] == 2

        page = requirement_service.list_by_project(pid, owner_user, PageParams(page=1, limit=1))
        assert [s["version"] for s in page["data"]] == [2]
        assert page["meta"]["total"] == 2
        assert page["meta"]["hasNextPage"] is True

    def test_latest_without_snapshots_is_not_found(self, project, owner_user):
        with pytest.raises(NotFoundError):
            requirement_service.get_latest(project["id"], owner_user)

    def test_get_by_id_checks_access(self, project_with_input, owner_user):
        created = requirement_service.generate(project_with_input["id"], owner_user)
        outsider = make_user("outsider@other.test")
        with pytest.raises(ForbiddenError):
            requirement_service.get_by_id(created["id"], as_current(outsider))
