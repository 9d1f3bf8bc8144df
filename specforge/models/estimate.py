"""Estimate snapshots (timeline + cost) and their line items."""

from specforge.models import db, isoformat, new_uuid, utcnow


# Keys of EstimateSnapshot.breakdown_json that can be regenerated one at a time.
ESTIMATE_SECTIONS = (
    "projectOverview",
    "scope",
    "technicalArchitecture",
    "wbs",
    "timeline",
    "costCalculation",
    "assumptions",
    "changeManagement",
    "acceptanceCriteria",
    "additionalSections",
)


class EstimateSnapshot(db.Model):
    __tablename__ = "estimate_snapshots"
    __table_args__ = (
        db.UniqueConstraint("project_id", "version", name="uq_estimate_snapshot_version"),
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
    currency = db.Column(db.String(3), nullable=False, default="USD")
    timeline_min_days = db.Column(db.Integer, nullable=False, default=0)
    timeline_max_days = db.Column(db.Integer, nullable=False, default=0)
    cost_min = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    cost_max = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    confidence_score = db.Column(db.Float, nullable=True)
    assumptions = db.Column(db.JSON, nullable=True, default=list)
    breakdown_json = db.Column(db.JSON, nullable=False, default=dict)
    ai_provider = db.Column(db.String(30), nullable=True)
    ai_run_id = db.Column(db.String(36), nullable=True, comment="Provenance: AIRun id")
    created_by_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self, line_items=None):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "requirement_snapshot_id": self.requirement_snapshot_id,
            "version": self.version,
            "currency": self.currency,
            "timeline_min_days": self.timeline_min_days,
            "timeline_max_days": self.timeline_max_days,
            "cost_min": float(self.cost_min or 0),
            "cost_max": float(self.cost_max or 0),
            "confidence_score": self.confidence_score,
            "assumptions": self.assumptions or [],
            "breakdown_json": self.breakdown_json or {},
            "ai_provider": self.ai_provider,
            "ai_run_id": self.ai_run_id,
            "created_by_id": self.created_by_id,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
        if line_items is not None:
            d["line_items"] = [li.to_dict() for li in line_items]
        return d


class EstimateLineItem(db.Model):
    __tablename__ = "estimate_line_items"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    estimate_snapshot_id = db.Column(
        db.String(36), db.ForeignKey("estimate_snapshots.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    # Best-effort title match, not an enforced relationship to the feature list.
    feature_item_id = db.Column(db.String(36), nullable=True)
    name = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    hours_min = db.Column(db.Float, nullable=False, default=0)
    hours_max = db.Column(db.Float, nullable=False, default=0)
    cost_min = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    cost_max = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "estimate_snapshot_id": self.estimate_snapshot_id,
            "feature_item_id": self.feature_item_id,
            "name": self.name,
            "description": self.description,
            "hours_min": self.hours_min,
            "hours_max": self.hours_max,
            "cost_min": float(self.cost_min or 0),
            "cost_max": float(self.cost_max or 0),
            "sort_order": self.sort_order,
        }
