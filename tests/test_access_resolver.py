"""
Access resolver tests.

Covers the two-tier membership model (project override, organization
fallback), the SUPER_ADMIN bypass, and existence-before-access ordering.
"""

import pytest

from specforge.core.exceptions import ForbiddenError, NotFoundError
from specforge.models import db
from specforge.models.project import ProjectMember
from specforge.services.access_resolver import AccessDecision, load_project_for, resolve_access

from conftest import add_org_member, as_current, make_org, make_user


def test_accepted_org_member_is_allowed(project, org):
    dev = make_user("dev@acme.test")
    add_org_member(org, dev, role="DEVELOPER", status="ACCEPTED")
    assert resolve_access(project["id"], org.id, as_current(dev)) is AccessDecision.ALLOW


@pytest.mark.parametrize("status", ["PENDING", "REVOKED"])
def test_non_accepted_org_member_is_denied(project, org, status):
    dev = make_user("dev@acme.test")
    add_org_member(org, dev, status=status)
    assert resolve_access(project["id"], org.id, as_current(dev)) is AccessDecision.DENY


def test_outsider_is_denied(project, org):
    outsider = make_user("outsider@other.test")
    with pytest.raises(ForbiddenError):
        load_project_for(project["id"], as_current(outsider))


def test_project_member_override_without_org_membership(project, org):
    other_org = make_org("Other", "other")
    contractor = make_user("contractor@other.test")
    add_org_member(other_org, contractor)
    db.session.add(ProjectMember(project_id=project["id"], user_id=contractor.id, role="VIEWER"))
    db.session.commit()

    loaded = load_project_for(project["id"], as_current(contractor, other_org))
    assert loaded.id == project["id"]


def test_project_member_override_beats_revoked_org_membership(project, org):
    user = make_user("former@acme.test")
    add_org_member(org, user, status="REVOKED")
    db.session.add(ProjectMember(project_id=project["id"], user_id=user.id, role="EDITOR"))
    db.session.commit()
    assert resolve_access(project["id"], org.id, as_current(user)) is AccessDecision.ALLOW


def test_super_admin_bypasses_membership(project, org):
    admin = make_user("root@platform.test", system_role="SUPER_ADMIN")
    assert resolve_access(project["id"], org.id, as_current(admin)) is AccessDecision.ALLOW


def test_missing_project_is_not_found_even_for_outsider():
    outsider = make_user("outsider@other.test")
    with pytest.raises(NotFoundError):
        load_project_for("00000000-0000-0000-0000-000000000000", as_current(outsider))
