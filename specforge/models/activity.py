"""
SpecForge
Project activity feed — append-only audit trail.

Each event type carries a fixed payload shape (EVENT_PAYLOAD_FIELDS); the
recorder validates payloads against it before insert. Rows are never
updated or deleted through the ORM.
"""

from sqlalchemy import event

from specforge.models import db, isoformat, new_uuid, utcnow


# ── Event types & payload variants ───────────────────────────────────────────

EVENT_PAYLOAD_FIELDS: dict[str, frozenset[str]] = {
    "PROJECT_CREATED": frozenset({"name", "currency"}),
    "INPUT_ADDED": frozenset({"input_id", "source_type"}),
    "MEMBER_ADDED": frozenset({"user_id", "role"}),
    "STATUS_CHANGED": frozenset({"previous_status", "new_status", "stage"}),
    "REQUIREMENT_GENERATED": frozenset({
        "requirement_snapshot_id", "version", "feature_count", "source_input_id", "ai_run_ids",
    }),
    "REQUIREMENT_UPDATED": frozenset({"requirement_snapshot_id", "version", "fields"}),
    "ESTIMATE_GENERATED": frozenset({
        "estimate_snapshot_id", "version", "requirement_snapshot_id", "line_item_count", "ai_run_id",
    }),
    "ESTIMATE_SECTION_REGENERATED": frozenset({
        "estimate_snapshot_id", "version", "section", "ai_run_id",
    }),
    "TECH_STACK_GENERATED": frozenset({
        "tech_stack_id", "version", "requirement_snapshot_id", "ai_run_id",
    }),
    "USER_FLOW_GENERATED": frozenset({
        "user_flow_snapshot_id", "version", "requirement_snapshot_id",
        "screen_count", "transition_count", "ai_run_id",
    }),
    "WIREFRAME_GENERATED": frozenset({
        "wireframe_snapshot_id", "version", "user_flow_snapshot_id", "screen_count", "ai_run_id",
    }),
    "WIREFRAME_FORKED": frozenset({
        "wireframe_snapshot_id", "version", "source_wireframe_snapshot_id", "screen_count",
    }),
}

EVENT_TYPES = frozenset(EVENT_PAYLOAD_FIELDS)


class ProjectActivity(db.Model):
    __tablename__ = "project_activities"
    __table_args__ = (
        db.Index("ix_project_activity_project_created", "project_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    organization_id = db.Column(
        db.String(36), db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    actor_user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    event_type = db.Column(db.String(50), nullable=False, index=True)
    summary = db.Column(db.String(500), nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "project_id": self.project_id,
            "actor_user_id": self.actor_user_id,
            "event_type": self.event_type,
            "summary": self.summary,
            "payload": self.payload or {},
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<ProjectActivity {self.event_type} project={self.project_id}>"


# ── Append-only guard ────────────────────────────────────────────────────────

@event.listens_for(ProjectActivity, "before_update")
def _block_activity_update(mapper, connection, target):
    raise RuntimeError("ProjectActivity rows are append-only and cannot be updated")


@event.listens_for(ProjectActivity, "before_delete")
def _block_activity_delete(mapper, connection, target):
    raise RuntimeError("ProjectActivity rows are append-only and cannot be deleted")
