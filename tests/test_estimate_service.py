"""
Estimate orchestrator tests.

Covers upstream selection (latest vs explicit requirement snapshot),
prerequisite errors, line-item feature linking, currency handling and
single-section regeneration.
"""

from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from specforge.core.exceptions import (
    AIGatewayError,
    NotFoundError,
    PrerequisiteError,
    ValidationError,
)
from specforge.models import db
from specforge.models.activity import ProjectActivity
from specforge.models.estimate import EstimateLineItem, EstimateSnapshot
from specforge.models.project import Project
from specforge.models.requirement import FeatureItem
from specforge.services import estimate_service, project_service, requirement_service
from specforge.services.generation import TitleMatcher
from specforge.utils.pagination import PageParams


def _estimate_count(project_id):
    return db.session.execute(
        select(func.count(EstimateSnapshot.id)).where(EstimateSnapshot.project_id == project_id)
    ).scalar_one()


@pytest.fixture()
def requirements_v1(project_with_input, owner_user):
    return requirement_service.generate(project_with_input["id"], owner_user)


def test_estimate_picks_latest_requirement(project_with_input, owner_user, requirements_v1):
    result = estimate_service.generate(project_with_input["id"], owner_user)

    assert result["version"] == 1
    assert result["requirement_snapshot_id"] == requirements_v1["id"]
    assert result["currency"] == "USD"
    assert result["timeline_min_days"] <= result["timeline_max_days"]
    assert db.session.get(Project, project_with_input["id"]).stage == "ESTIMATION"


def test_estimate_without_requirements_is_bad_request(project_with_input, owner_user):
    with pytest.raises(PrerequisiteError, match="Generate requirements first"):
        estimate_service.generate(project_with_input["id"], owner_user)
    assert _estimate_count(project_with_input["id"]) == 0


def test_estimate_without_features_is_bad_request(project_with_input, owner_user, requirements_v1):
    db.session.execute(
        FeatureItem.__table__.delete().where(
            FeatureItem.requirement_snapshot_id == requirements_v1["id"]
        )
    )
    db.session.commit()

    with pytest.raises(PrerequisiteError, match="No features found"):
        estimate_service.generate(project_with_input["id"], owner_user)
    assert _estimate_count(project_with_input["id"]) == 0


def test_new_requirement_version_keeps_estimation_stage(
    project_with_input, owner_user, requirements_v1,
):
    pid = project_with_input["id"]
    estimate_service.generate(pid, owner_user)
    assert db.session.get(Project, pid).stage == "ESTIMATION"

    v2 = requirement_service.generate(pid, owner_user)

    assert v2["version"] == 2
    assert db.session.get(Project, pid).stage == "ESTIMATION"


def test_explicit_requirement_snapshot(project_with_input, owner_user, requirements_v1):
    requirement_service.generate(project_with_input["id"], owner_user)
    result = estimate_service.generate(
        project_with_input["id"], owner_user, requirement_snapshot_id=requirements_v1["id"],
    )
    assert result["requirement_snapshot_id"] == requirements_v1["id"]


def test_explicit_requirement_from_other_project_is_not_found(
    project_with_input, owner_user, requirements_v1,
):
    other = project_service.create_project(owner_user, name="Other")
    with pytest.raises(NotFoundError):
        estimate_service.generate(other["id"], owner_user, requirement_snapshot_id=requirements_v1["id"])


def test_line_items_link_to_features_by_title(project_with_input, owner_user, requirements_v1):
    result = estimate_service.generate(project_with_input["id"], owner_user)
    features = {f["title"]: f["id"] for f in requirements_v1["feature_items"]}

    assert len(result["line_items"]) == 3
    for item in result["line_items"]:
        assert item["feature_item_id"] == features.get(item["name"])
    assert [i["sort_order"] for i in result["line_items"]] == [0, 1, 2]


def test_title_matching_ignores_case_and_padding_only():
    matcher = TitleMatcher([
        SimpleNamespace(id="f1", title="User Authentication"),
        SimpleNamespace(id="f2", title="  Admin Dashboard "),
    ])
    assert matcher.match("user authentication") == "f1"
    assert matcher.match(" ADMIN DASHBOARD") == "f2"
    assert matcher.match("User  Authentication") is None
    assert matcher.match("Authentication") is None
    assert matcher.match(None) is None


def test_unmatched_line_items_keep_null_feature(
    project_with_input, owner_user, requirements_v1, scripted_ai,
):
    scripted_ai.responses["estimate_timeline_and_cost"] = {
        "timelineMinDays": 10, "timelineMaxDays": 20,
        "costMin": 1000, "costMax": 2000, "confidenceScore": 55,
        "lineItems": [{"name": "Something Else", "hoursMin": 1, "hoursMax": 2,
                       "costMin": 100, "costMax": 200}],
    }
    result = estimate_service.generate(project_with_input["id"], owner_user)
    assert result["line_items"][0]["feature_item_id"] is None


def test_target_currency_overrides_project_currency(project_with_input, owner_user, requirements_v1):
    result = estimate_service.generate(project_with_input["id"], owner_user, target_currency="eur")
    assert result["currency"] == "EUR"


def test_invalid_currency_is_rejected(project_with_input, owner_user, requirements_v1):
    with pytest.raises(ValidationError):
        estimate_service.generate(project_with_input["id"], owner_user, target_currency="EURO")


def test_malformed_estimate_writes_nothing(project_with_input, owner_user, requirements_v1, scripted_ai):
    scripted_ai.failures.add("estimate_timeline_and_cost")
    with pytest.raises(AIGatewayError):
        estimate_service.generate(project_with_input["id"], owner_user)

    assert _estimate_count(project_with_input["id"]) == 0
    assert db.session.execute(select(EstimateLineItem)).first() is None
    assert db.session.execute(
        select(ProjectActivity).where(ProjectActivity.event_type == "ESTIMATE_GENERATED")
    ).first() is None


class TestRegenerateSection:
    def test_replaces_only_the_named_section(self, project_with_input, owner_user, requirements_v1):
        created = estimate_service.generate(project_with_input["id"], owner_user)
        before = created["breakdown_json"]

        result = estimate_service.regenerate_section(
            created["id"], owner_user, section="scope", instruction="Tighten scope",
        )

        assert result["version"] == created["version"]
        assert result["breakdown_json"]["scope"] == "Revised section content."
        for key, value in before.items():
            if key != "scope":
                assert result["breakdown_json"][key] == value
        assert _estimate_count(project_with_input["id"]) == 1

        row = db.session.execute(
            select(ProjectActivity).where(ProjectActivity.event_type == "ESTIMATE_SECTION_REGENERATED")
        ).scalar_one()
        assert row.payload["section"] == "scope"

    def test_unknown_section_is_rejected(self, project_with_input, owner_user, requirements_v1):
        created = estimate_service.generate(project_with_input["id"], owner_user)
        with pytest.raises(ValidationError):
            estimate_service.regenerate_section(created["id"], owner_user, section="marketing")

    def test_ai_failure_leaves_breakdown_untouched(
        self, project_with_input, owner_user, requirements_v1, scripted_ai,
    ):
        scripted_ai.responses["estimate_timeline_and_cost"] = {
            "timelineMinDays": 5, "timelineMaxDays": 9, "costMin": 10, "costMax": 20,
            "confidenceScore": 40, "lineItems": [], "breakdown": {"scope": "Original scope"},
        }
        created = estimate_service.generate(project_with_input["id"], owner_user)
        scripted_ai.failures.add("regenerate_estimate_section")

        with pytest.raises(AIGatewayError):
            estimate_service.regenerate_section(created["id"], owner_user, section="scope")

        assert estimate_service.get_by_id(created["id"], owner_user)["breakdown_json"] == {
            "scope": "Original scope",
        }


def test_list_and_latest(project_with_input, owner_user, requirements_v1):
    pid = project_with_input["id"]
    estimate_service.generate(pid, owner_user)
    estimate_service.generate(pid, owner_user)

    assert estimate_service.get_latest(pid, owner_user)["version"] == 2
    page = estimate_service.list_by_project(pid, owner_user, PageParams())
    assert [e["version"] for e in page["data"]] == [2, 1]
    assert "line_items" not in page["data"][0]
