"""Activity recorder tests: payload variants, append-only rows, feed ordering."""

import pytest
from sqlalchemy import select

from specforge.models import db
from specforge.models.activity import EVENT_PAYLOAD_FIELDS, ProjectActivity
from specforge.services import requirement_service
from specforge.services.activity_recorder import list_activity, record_activity, validate_payload
from specforge.utils.pagination import PageParams


def test_every_event_type_has_a_payload_shape():
    assert "REQUIREMENT_GENERATED" in EVENT_PAYLOAD_FIELDS
    assert all(fields for fields in EVENT_PAYLOAD_FIELDS.values())


def test_validate_payload_rejects_missing_and_extra_fields():
    with pytest.raises(ValueError, match="missing"):
        validate_payload("INPUT_ADDED", {"input_id": "x"})
    with pytest.raises(ValueError, match="extra"):
        validate_payload("INPUT_ADDED", {"input_id": "x", "source_type": "TEXT", "note": "hi"})
    with pytest.raises(ValueError, match="Unknown"):
        validate_payload("SOMETHING_HAPPENED", {})


def test_record_activity_flushes_without_committing(project, owner_user):
    row = record_activity(
        organization_id=project["organization_id"],
        project_id=project["id"],
        actor_user_id=owner_user.id,
        event_type="MEMBER_ADDED",
        summary="Member added",
        payload={"user_id": owner_user.id, "role": "VIEWER"},
    )
    assert row.id is not None
    db.session.rollback()
    assert db.session.execute(
        select(ProjectActivity).where(ProjectActivity.event_type == "MEMBER_ADDED")
    ).first() is None


def test_activity_rows_cannot_be_updated(project):
    row = db.session.execute(select(ProjectActivity)).scalars().first()
    row.summary = "rewritten"
    with pytest.raises(RuntimeError, match="append-only"):
        db.session.commit()
    db.session.rollback()


def test_activity_rows_cannot_be_deleted(project):
    row = db.session.execute(select(ProjectActivity)).scalars().first()
    db.session.delete(row)
    with pytest.raises(RuntimeError, match="append-only"):
        db.session.commit()
    db.session.rollback()


def test_feed_is_newest_first(project_with_input, owner_user):
    requirement_service.generate(project_with_input["id"], owner_user)
    page = list_activity(project_with_input["id"], owner_user, PageParams(page=1, limit=10))

    types = [a["event_type"] for a in page["data"]]
    assert types[0] == "REQUIREMENT_GENERATED"
    assert set(types) == {"PROJECT_CREATED", "INPUT_ADDED", "REQUIREMENT_GENERATED"}
    assert page["meta"]["total"] == 3
