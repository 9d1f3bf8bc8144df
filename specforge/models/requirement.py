"""
SpecForge
Requirement snapshots and the feature items extracted from them.

A RequirementSnapshot is immutable apart from the manual update of its
content fields (structured_json / assumptions / status); its version and
feature items never change after creation.
"""

from specforge.models import db, isoformat, new_uuid, utcnow


REQUIREMENT_STATUSES = frozenset({"DRAFT", "GENERATED", "REVIEWED", "APPROVED"})
FEATURE_PRIORITIES = frozenset({"MUST", "SHOULD", "COULD", "WONT"})
FEATURE_COMPLEXITIES = frozenset({"XS", "S", "M", "L", "XL"})


class RequirementSnapshot(db.Model):
    __tablename__ = "requirement_snapshots"
    __table_args__ = (
        db.UniqueConstraint("project_id", "version", name="uq_requirement_snapshot_version"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    version = db.Column(db.Integer, nullable=False)
    structured_json = db.Column(db.JSON, nullable=False, default=dict)
    assumptions = db.Column(db.JSON, nullable=True, default=list)
    status = db.Column(db.String(20), nullable=False, default="GENERATED")
    source_input_id = db.Column(
        db.String(36), db.ForeignKey("project_inputs.id", ondelete="SET NULL"), nullable=True,
    )
    ai_run_ids = db.Column(db.JSON, nullable=False, default=list, comment="Provenance: AIRun ids")
    created_by_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self, features=None):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "version": self.version,
            "structured_json": self.structured_json,
            "assumptions": self.assumptions or [],
            "status": self.status,
            "source_input_id": self.source_input_id,
            "ai_run_ids": self.ai_run_ids or [],
            "created_by_id": self.created_by_id,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
        if features is not None:
            d["feature_items"] = [f.to_dict() for f in features]
        return d


class FeatureItem(db.Model):
    __tablename__ = "feature_items"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    requirement_snapshot_id = db.Column(
        db.String(36), db.ForeignKey("requirement_snapshots.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    priority = db.Column(db.String(10), nullable=False, default="SHOULD", comment="MoSCoW")
    complexity = db.Column(db.String(5), nullable=False, default="M", comment="XS | S | M | L | XL")
    order_index = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "requirement_snapshot_id": self.requirement_snapshot_id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "complexity": self.complexity,
            "order_index": self.order_index,
        }
