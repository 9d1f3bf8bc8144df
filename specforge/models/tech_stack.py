"""Tech-stack recommendation snapshots."""

from specforge.models import db, isoformat, new_uuid, utcnow


TECH_STACK_CATEGORIES = ("frontend", "backend", "database", "infrastructure", "integrations")


class TechStackRecommendation(db.Model):
    __tablename__ = "tech_stack_recommendations"
    __table_args__ = (
        db.UniqueConstraint("project_id", "version", name="uq_tech_stack_version"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    requirement_snapshot_id = db.Column(
        db.String(36), db.ForeignKey("requirement_snapshots.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    version = db.Column(db.Integer, nullable=False)
    frontend = db.Column(db.JSON, nullable=False, default=list)
    backend = db.Column(db.JSON, nullable=False, default=list)
    database = db.Column(db.JSON, nullable=False, default=list)
    infrastructure = db.Column(db.JSON, nullable=False, default=list)
    integrations = db.Column(db.JSON, nullable=False, default=list)
    rationale = db.Column(db.JSON, nullable=False, default=dict, comment="category → reasoning")
    ai_run_id = db.Column(db.String(36), nullable=True)
    created_by_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "requirement_snapshot_id": self.requirement_snapshot_id,
            "version": self.version,
            "frontend": self.frontend or [],
            "backend": self.backend or [],
            "database": self.database or [],
            "infrastructure": self.infrastructure or [],
            "integrations": self.integrations or [],
            "rationale": self.rationale or {},
            "ai_run_id": self.ai_run_id,
            "created_by_id": self.created_by_id,
            "created_at": isoformat(self.created_at),
        }
