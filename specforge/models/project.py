"""Project domain models: Project, ProjectInput, ProjectMember."""

from specforge.models import db, isoformat, new_uuid, utcnow


# ── Constants ────────────────────────────────────────────────────────────────

# Ordered: a generation may only move a project forward through this list.
PROJECT_STAGES = (
    "DRAFT",
    "REQUIREMENT_DISCOVERY",
    "FEATURE_DEFINITION",
    "ESTIMATION",
    "ARCHITECTURE",
    "WIREFRAMING",
    "REVIEW",
)
PROJECT_STATUSES = frozenset({"ACTIVE", "ON_HOLD", "ARCHIVED"})
PROJECT_ROLES = frozenset({"OWNER", "EDITOR", "VIEWER"})
INPUT_SOURCE_TYPES = frozenset({"TEXT", "VOICE", "FORM"})


def stage_rank(stage: str) -> int:
    """Position of ``stage`` in PROJECT_STAGES; unknown stages rank lowest."""
    try:
        return PROJECT_STAGES.index(stage)
    except ValueError:
        return -1


# ── Project ──────────────────────────────────────────────────────────────────

class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    organization_id = db.Column(
        db.String(36), db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="USD", comment="ISO-4217")
    status = db.Column(db.String(20), nullable=False, default="ACTIVE")
    stage = db.Column(
        db.String(40), nullable=False, default="DRAFT",
        comment="DRAFT → REQUIREMENT_DISCOVERY → … → REVIEW (never regresses)",
    )
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    organization = db.relationship("Organization")

    def advance_stage(self, target: str) -> bool:
        """Move to ``target`` only if it is further along; returns True on change."""
        if stage_rank(target) > stage_rank(self.stage):
            self.stage = target
            return True
        return False

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "description": self.description,
            "currency": self.currency,
            "status": self.status,
            "stage": self.stage,
            "archived_at": isoformat(self.archived_at),
            "created_by_id": self.created_by_id,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


# ── ProjectInput ─────────────────────────────────────────────────────────────

class ProjectInput(db.Model):
    """Free-form source material (typed text, voice transcript, form answers)."""

    __tablename__ = "project_inputs"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    author_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    source_type = db.Column(db.String(10), nullable=False, default="TEXT", comment="TEXT | VOICE | FORM")
    raw_text = db.Column(db.Text, nullable=True)
    transcript_text = db.Column(db.Text, nullable=True)
    language_code = db.Column(db.String(10), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    @property
    def text(self) -> str | None:
        return self.raw_text or self.transcript_text

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "author_id": self.author_id,
            "source_type": self.source_type,
            "raw_text": self.raw_text,
            "transcript_text": self.transcript_text,
            "language_code": self.language_code,
            "created_at": isoformat(self.created_at),
        }


# ── ProjectMember ────────────────────────────────────────────────────────────

class ProjectMember(db.Model):
    """Project-level override: any row grants access regardless of org membership."""

    __tablename__ = "project_members"
    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_member_project_user"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    role = db.Column(db.String(20), nullable=False, default="VIEWER", comment="OWNER | EDITOR | VIEWER")
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "role": self.role,
            "created_at": isoformat(self.created_at),
        }
