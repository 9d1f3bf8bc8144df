"""
SpecForge
AI provenance model + cost table.

Every AI capability call writes one AIRun row (QUEUED → SUCCESS | FAILED).
Snapshots and activity payloads reference runs by id only.
"""

from specforge.models import db, isoformat, new_uuid, utcnow


# ── Constants ────────────────────────────────────────────────────────────────

AI_RUN_STATUSES = frozenset({"QUEUED", "SUCCESS", "FAILED"})
AI_TASK_TYPES = frozenset({
    "structure_requirements",
    "extract_features",
    "estimate_timeline_and_cost",
    "regenerate_estimate_section",
    "recommend_tech_stack",
    "generate_user_flows",
    "generate_wireframes",
})

# Token costs per 1M tokens (input/output)
TOKEN_COSTS = {
    "claude-sonnet-4-20250514":    {"input": 3.00, "output": 15.00},
    "claude-3-5-haiku-20241022":   {"input": 1.00, "output": 5.00},
    "claude-3-5-sonnet-20241022":  {"input": 3.00, "output": 15.00},
    "gpt-4o-mini":                 {"input": 0.15, "output": 0.60},
    "gpt-4o":                      {"input": 2.50, "output": 10.00},
    "gemini-2.5-flash":            {"input": 0.30, "output": 2.50},
    "gemini-2.5-pro":              {"input": 1.25, "output": 10.00},
}


def calculate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """Calculate USD cost for a given model + token counts."""
    costs = TOKEN_COSTS.get(model, {"input": 0.0, "output": 0.0})
    return (prompt_tokens * costs["input"] + completion_tokens * costs["output"]) / 1_000_000


# ── AIRun ────────────────────────────────────────────────────────────────────

class AIRun(db.Model):
    __tablename__ = "ai_runs"
    __table_args__ = (
        db.Index("ix_ai_run_project_created", "project_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    organization_id = db.Column(db.String(36), nullable=True, index=True)
    project_id = db.Column(db.String(36), nullable=True)
    initiated_by_id = db.Column(db.String(36), nullable=True)
    provider = db.Column(db.String(30), nullable=False, comment="anthropic / openai / gemini / local")
    model = db.Column(db.String(80), nullable=False)
    task_type = db.Column(db.String(60), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="QUEUED")
    request_payload = db.Column(db.JSON, nullable=True)
    response_payload = db.Column(db.JSON, nullable=True)
    prompt_tokens = db.Column(db.Integer, default=0)
    completion_tokens = db.Column(db.Integer, default=0)
    cost_usd = db.Column(db.Float, default=0.0)
    latency_ms = db.Column(db.Integer, default=0)
    error_message = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "project_id": self.project_id,
            "initiated_by_id": self.initiated_by_id,
            "provider": self.provider,
            "model": self.model,
            "task_type": self.task_type,
            "status": self.status,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "cost_usd": round(self.cost_usd or 0.0, 6),
            "latency_ms": self.latency_ms,
            "error_message": self.error_message,
            "created_at": isoformat(self.created_at),
            "completed_at": isoformat(self.completed_at),
        }
