"""Wireframe snapshots and their per-screen layouts."""

from specforge.models import db, isoformat, new_uuid, utcnow


DEFAULT_VIEWPORT = (1440, 900)


class WireframeSnapshot(db.Model):
    __tablename__ = "wireframe_snapshots"
    __table_args__ = (
        db.UniqueConstraint("project_id", "version", name="uq_wireframe_snapshot_version"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    requirement_snapshot_id = db.Column(
        db.String(36), db.ForeignKey("requirement_snapshots.id", ondelete="SET NULL"),
        nullable=True,
    )
    user_flow_snapshot_id = db.Column(
        db.String(36), db.ForeignKey("user_flow_snapshots.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    version = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="GENERATED")
    page_count = db.Column(db.Integer, nullable=False, default=0)
    wireframe_json = db.Column(db.JSON, nullable=False, default=dict)
    design_system = db.Column(db.JSON, nullable=True, default=dict)
    assumptions = db.Column(db.JSON, nullable=True, default=list)
    ai_provider = db.Column(db.String(30), nullable=True)
    ai_model = db.Column(db.String(80), nullable=True)
    generation_time_ms = db.Column(db.Integer, nullable=True)
    ai_run_id = db.Column(db.String(36), nullable=True)
    created_by_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self, screens=None):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "requirement_snapshot_id": self.requirement_snapshot_id,
            "user_flow_snapshot_id": self.user_flow_snapshot_id,
            "version": self.version,
            "status": self.status,
            "page_count": self.page_count,
            "wireframe_json": self.wireframe_json or {},
            "design_system": self.design_system or {},
            "assumptions": self.assumptions or [],
            "ai_provider": self.ai_provider,
            "ai_model": self.ai_model,
            "generation_time_ms": self.generation_time_ms,
            "ai_run_id": self.ai_run_id,
            "created_by_id": self.created_by_id,
            "created_at": isoformat(self.created_at),
        }
        if screens is not None:
            d["screens"] = [s.to_dict() for s in screens]
        return d


class WireframeScreen(db.Model):
    __tablename__ = "wireframe_screens"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    wireframe_snapshot_id = db.Column(
        db.String(36), db.ForeignKey("wireframe_snapshots.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    # Matched to the flow screen by name; unmatched screens keep NULL.
    user_flow_screen_id = db.Column(db.String(36), nullable=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    layout_json = db.Column(db.JSON, nullable=False, default=dict)
    screen_type = db.Column(db.String(20), nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    viewport_width = db.Column(db.Integer, nullable=False, default=DEFAULT_VIEWPORT[0])
    viewport_height = db.Column(db.Integer, nullable=False, default=DEFAULT_VIEWPORT[1])

    def to_dict(self):
        return {
            "id": self.id,
            "wireframe_snapshot_id": self.wireframe_snapshot_id,
            "user_flow_screen_id": self.user_flow_screen_id,
            "name": self.name,
            "description": self.description,
            "layout_json": self.layout_json or {},
            "screen_type": self.screen_type,
            "sort_order": self.sort_order,
            "viewport_width": self.viewport_width,
            "viewport_height": self.viewport_height,
        }
