"""
Shared pytest fixtures for the SpecForge test suite.

Provides:
    - app: Flask application (session-scoped, SQLite in-memory)
    - _setup_db: table creation/teardown (session-scoped)
    - session: per-test rollback + recreate (autouse)
    - client: Flask test client
    - seed helpers: make_user / make_org / add_org_member / as_current
    - org, owner, owner_user, project, project_with_input: a ready tenant
    - scripted_ai: canned AI capability object swapped into the app
    - auth_headers: Bearer headers built with the real token service
"""

import pytest

from specforge import create_app
from specforge.ai import schemas
from specforge.ai.capabilities import EXTENSION_KEY
from specforge.core.exceptions import AIGatewayError
from specforge.models import db as _db, utcnow
from specforge.models.organization import Organization, OrganizationMember, User
from specforge.services import project_service
from specforge.services.access_resolver import CurrentUser
from specforge.services.jwt_service import generate_access_token


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Seed helpers ─────────────────────────────────────────────────────────


def make_user(email, *, verified=True, system_role="USER"):
    user = User(email=email, full_name=email.split("@")[0].title(),
                system_role=system_role, is_email_verified=verified)
    _db.session.add(user)
    _db.session.commit()
    return user


def make_org(name="Acme", slug="acme"):
    org = Organization(name=name, slug=slug)
    _db.session.add(org)
    _db.session.commit()
    return org


def add_org_member(org, user, *, role="DEVELOPER", status="ACCEPTED"):
    member = OrganizationMember(
        organization_id=org.id, user_id=user.id, role=role, invite_status=status,
        joined_at=utcnow() if status == "ACCEPTED" else None,
    )
    _db.session.add(member)
    _db.session.commit()
    return member


def as_current(user, org=None, org_role=None):
    """CurrentUser for direct service calls, mirroring the JWT claims."""
    return CurrentUser(
        id=user.id,
        email=user.email,
        system_role=user.system_role,
        is_email_verified=user.is_email_verified,
        organization_id=org.id if org else None,
        organization_role=org_role,
    )


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def org():
    return make_org()


@pytest.fixture()
def owner(org):
    user = make_user("owner@acme.test")
    add_org_member(org, user, role="OWNER")
    return user


@pytest.fixture()
def owner_user(owner, org):
    return as_current(owner, org, "OWNER")


@pytest.fixture()
def project(owner_user):
    """A project created through the service (owner is a ProjectMember)."""
    return project_service.create_project(owner_user, name="Booking App", currency="USD")


@pytest.fixture()
def project_with_input(project, owner_user):
    project_service.add_input(
        project["id"], owner_user,
        raw_text="A booking app for yoga studios: class schedule, memberships, payments.",
    )
    return project


@pytest.fixture()
def auth_headers(app):
    """Build Authorization headers for a User row (or CurrentUser)."""

    def _headers(user, org=None, org_role=None):
        token = generate_access_token(
            user, organization_id=org.id if org else None, organization_role=org_role,
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ── Scripted AI ──────────────────────────────────────────────────────────


DEFAULT_REQUIREMENT = {
    "projectOverview": "Yoga studio booking platform",
    "objectives": ["Online booking"],
    "functionalRequirements": [{"category": "Booking", "requirements": ["Book a class"]}],
    "nonFunctionalRequirements": ["Mobile friendly"],
    "assumptions": ["Stripe for payments"],
    "constraints": [],
}

DEFAULT_FEATURES = [
    {"title": "Class Schedule", "description": "Weekly timetable", "priority": "MUST", "complexity": "M"},
    {"title": "Memberships", "description": "Plans and passes", "priority": "SHOULD", "complexity": "L"},
]


class ScriptedAI:
    """
    Stand-in for AICapabilities.

    Each task returns the dict in ``responses[task]`` parsed through the
    real schema classes, or raises AIGatewayError when the task is listed
    in ``failures``. Calls are recorded in ``calls`` as (task, args).
    """

    def __init__(self):
        self.calls = []
        self.failures = set()
        self.responses = {
            "structure_requirements": DEFAULT_REQUIREMENT,
            "extract_features": DEFAULT_FEATURES,
        }

    def _answer(self, task, args, parse):
        self.calls.append((task, args))
        if task in self.failures:
            raise AIGatewayError(f"{task} failed", task_type=task)
        return parse(self.responses[task]), None

    def structure_requirements(self, texts, instruction, ctx):
        return self._answer("structure_requirements", (texts, instruction),
                            schemas.StructuredRequirement.from_json)

    def extract_features(self, structured_json, ctx):
        return self._answer("extract_features", (structured_json,),
                            schemas.ExtractedFeature.list_from_json)

    def estimate_timeline_and_cost(self, structured_json, features, currency, ctx):
        return self._answer("estimate_timeline_and_cost", (structured_json, features, currency),
                            schemas.TimelineCostEstimate.from_json)

    def regenerate_estimate_section(self, section, breakdown, structured_json, instruction, ctx):
        return self._answer("regenerate_estimate_section", (section, breakdown, instruction),
                            schemas.section_content_from_json)

    def recommend_tech_stack(self, structured_json, features, instruction, ctx):
        return self._answer("recommend_tech_stack", (structured_json, features, instruction),
                            schemas.TechStackResult.from_json)

    def generate_user_flows(self, structured_json, features, instruction, ctx):
        return self._answer("generate_user_flows", (structured_json, features, instruction),
                            schemas.UserFlowResult.from_json)

    def generate_wireframes(self, structured_json, features, flow_screens, ctx):
        return self._answer("generate_wireframes", (structured_json, features, flow_screens),
                            schemas.WireframeResult.from_json)


@pytest.fixture()
def scripted_ai(app, monkeypatch):
    fake = ScriptedAI()
    monkeypatch.setitem(app.extensions, EXTENSION_KEY, fake)
    return fake
