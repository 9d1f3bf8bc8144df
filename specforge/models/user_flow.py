"""
SpecForge
User-flow snapshots.

Models:
    - UserFlowSnapshot: one generated navigation map per version
    - UserFlowScreen: screens in AI output order
    - UserFlowTransition: directed edges between screens (by screen name)
"""

from specforge.models import db, isoformat, new_uuid, utcnow


SCREEN_TYPES = frozenset({
    "PAGE", "MODAL", "FORM", "LIST", "DETAIL", "DASHBOARD", "AUTH", "SETTINGS", "OTHER",
})


class UserFlowSnapshot(db.Model):
    __tablename__ = "user_flow_snapshots"
    __table_args__ = (
        db.UniqueConstraint("project_id", "version", name="uq_user_flow_snapshot_version"),
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
    status = db.Column(db.String(20), nullable=False, default="GENERATED")
    screen_count = db.Column(db.Integer, nullable=False, default=0)
    flow_json = db.Column(db.JSON, nullable=False, default=dict)
    assumptions = db.Column(db.JSON, nullable=True, default=list)
    ai_provider = db.Column(db.String(30), nullable=True)
    ai_run_id = db.Column(db.String(36), nullable=True)
    created_by_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self, screens=None, transitions=None):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "requirement_snapshot_id": self.requirement_snapshot_id,
            "version": self.version,
            "status": self.status,
            "screen_count": self.screen_count,
            "flow_json": self.flow_json or {},
            "assumptions": self.assumptions or [],
            "ai_provider": self.ai_provider,
            "ai_run_id": self.ai_run_id,
            "created_by_id": self.created_by_id,
            "created_at": isoformat(self.created_at),
        }
        if screens is not None:
            d["screens"] = [s.to_dict() for s in screens]
        if transitions is not None:
            d["transitions"] = [t.to_dict() for t in transitions]
        return d


class UserFlowScreen(db.Model):
    __tablename__ = "user_flow_screens"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    user_flow_snapshot_id = db.Column(
        db.String(36), db.ForeignKey("user_flow_snapshots.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    feature_item_id = db.Column(db.String(36), nullable=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    screen_type = db.Column(db.String(20), nullable=False, default="PAGE")
    purpose = db.Column(db.Text, nullable=True)
    user_actions = db.Column(db.JSON, nullable=False, default=list)
    entry_point = db.Column(db.Boolean, nullable=False, default=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "user_flow_snapshot_id": self.user_flow_snapshot_id,
            "feature_item_id": self.feature_item_id,
            "name": self.name,
            "description": self.description,
            "screen_type": self.screen_type,
            "purpose": self.purpose,
            "user_actions": self.user_actions or [],
            "entry_point": self.entry_point,
            "sort_order": self.sort_order,
        }


class UserFlowTransition(db.Model):
    __tablename__ = "user_flow_transitions"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    user_flow_snapshot_id = db.Column(
        db.String(36), db.ForeignKey("user_flow_snapshots.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    from_screen = db.Column(db.String(200), nullable=False)
    to_screen = db.Column(db.String(200), nullable=False)
    trigger_action = db.Column(db.String(200), nullable=True)
    trigger_label = db.Column(db.String(200), nullable=True)
    condition = db.Column(db.Text, nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "from_screen": self.from_screen,
            "to_screen": self.to_screen,
            "trigger_action": self.trigger_action,
            "trigger_label": self.trigger_label,
            "condition": self.condition,
            "sort_order": self.sort_order,
        }
