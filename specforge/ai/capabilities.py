"""
SpecForge
AI Capability Gateway — typed AI tasks on top of the LLM gateway.

Every method:
    1. writes an AIRun row (QUEUED) in its own short commit,
    2. renders the task prompt and calls the LLM gateway,
    3. extracts JSON from the reply (code fence or first bracket/brace),
       repairing it if the reply was cut off at the token limit,
    4. validates it against the task's typed schema,
    5. marks the run SUCCESS or FAILED (own commit) and returns
       ``(typed_result, ai_run_id)`` or raises AIGatewayError.

Callers must not hold an open write transaction when calling in.

Usage:
    from specforge.ai.capabilities import get_capabilities, AuditContext
    ai = get_capabilities()
    features, run_id = ai.extract_features(structured_json, AuditContext(org_id, project_id, user_id))
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass

from flask import current_app

from specforge.ai import schemas
from specforge.ai.gateway import LLMCallError, LLMGateway
from specforge.ai.prompt_registry import PromptRegistry
from specforge.core.exceptions import AIGatewayError
from specforge.models import db, utcnow
from specforge.models.ai import AIRun

logger = logging.getLogger(__name__)

EXTENSION_KEY = "specforge_ai"


@dataclass(frozen=True)
class AuditContext:
    organization_id: str | None
    project_id: str | None
    user_id: str | None


# ── JSON extraction & repair ─────────────────────────────────────────────────

_CODE_FENCE = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?\s*```")


def extract_json(text: str) -> str:
    """Pull the JSON payload out of a model reply."""
    text = text.strip()
    fenced = _CODE_FENCE.search(text)
    if fenced:
        return fenced.group(1).strip()

    first_bracket = text.find("[")
    first_brace = text.find("{")
    if first_bracket == -1 and first_brace == -1:
        return text

    if first_bracket != -1 and (first_brace == -1 or first_bracket < first_brace):
        last_bracket = text.rfind("]")
        if last_bracket > first_bracket:
            return text[first_bracket:last_bracket + 1]

    if first_brace != -1:
        last_brace = text.rfind("}")
        if last_brace > first_brace:
            return text[first_brace:last_brace + 1]

    return text


def repair_truncated_json(text: str) -> str:
    """Best-effort close of JSON cut off mid-stream (max_tokens reached)."""
    repaired = re.sub(r',\s*"[^"]*$', "", text)
    repaired = re.sub(r",\s*$", "", repaired)
    # Incomplete trailing key/value pairs: `"key": ` or `"key": "val`
    repaired = re.sub(r',?\s*"[^"]*"\s*:\s*("([^"\\]|\\.)*)?$', "", repaired)
    repaired = re.sub(r',?\s*"[^"]*"\s*:\s*\[?\s*$', "", repaired)

    stack = []
    in_string = False
    escape = False
    for ch in repaired:
        if escape:
            escape = False
            continue
        if ch == "\\" and in_string:
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            stack.append("}")
        elif ch == "[":
            stack.append("]")
        elif ch in "}]" and stack:
            stack.pop()

    if in_string:
        repaired += '"'
    repaired = re.sub(r",\s*$", "", repaired)
    while stack:
        repaired += stack.pop()
    return repaired


def parse_model_json(content: str, truncated: bool = False):
    """json.loads on the extracted payload; repairs only truncated replies.

    Raises:
        ValueError: not parseable.
    """
    payload = extract_json(content or "")
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        if not truncated:
            raise ValueError("AI returned invalid JSON that could not be parsed") from None
    logger.warning("AI response truncated (token limit reached), attempting JSON repair")
    try:
        return json.loads(repair_truncated_json(payload))
    except json.JSONDecodeError:
        raise ValueError("AI returned truncated JSON that could not be repaired") from None


def _dumps(value) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def _instruction_block(instruction: str | None) -> str:
    return f"Additional instruction: {instruction}" if instruction else ""


# ── Capability gateway ───────────────────────────────────────────────────────

class AICapabilities:
    """Typed AI tasks; one AIRun row per call."""

    def __init__(self, gateway: LLMGateway, registry: PromptRegistry | None = None):
        self.gateway = gateway
        self.registry = registry or PromptRegistry()

    @classmethod
    def from_app(cls, app) -> "AICapabilities":
        return cls(
            LLMGateway.from_config(app.config),
            PromptRegistry(app.config.get("PROMPTS_DIR")),
        )

    # ── Run bookkeeping ──────────────────────────────────────────────────

    def _open_run(self, task_type: str, ctx: AuditContext, request_payload: dict) -> AIRun:
        model = self.gateway.default_model
        provider_name = self.gateway.provider_name(model)
        run = AIRun(
            organization_id=ctx.organization_id,
            project_id=ctx.project_id,
            initiated_by_id=ctx.user_id,
            provider=provider_name,
            model=model,
            task_type=task_type,
            status="QUEUED",
            request_payload=request_payload,
        )
        db.session.add(run)
        db.session.commit()
        return run

    def _close_run(self, run: AIRun, *, status: str, result: dict | None = None,
                   response_payload=None, error: str | None = None) -> None:
        run.status = status
        run.completed_at = utcnow()
        if result:
            run.provider = result.get("provider", run.provider)
            run.model = result.get("model", run.model)
            run.prompt_tokens = result.get("prompt_tokens", 0)
            run.completion_tokens = result.get("completion_tokens", 0)
            run.cost_usd = result.get("cost_usd", 0.0)
            run.latency_ms = result.get("latency_ms", 0)
        if response_payload is not None:
            run.response_payload = response_payload
        if error:
            run.error_message = error[:2000]
        db.session.commit()

    def _run(self, task_type: str, ctx: AuditContext, request_payload: dict,
             variables: dict, parse):
        run = self._open_run(task_type, ctx, request_payload)
        messages = self.registry.render(task_type, **variables)

        result = None
        try:
            result = self.gateway.chat(messages, purpose=task_type)
            data = parse_model_json(result["content"], result.get("truncated", False))
            typed = parse(data)
        except (LLMCallError, ValueError) as e:
            # schemas.SchemaError is a ValueError
            logger.error("AI run %s (%s) failed: %s", run.id, task_type, e,
                         extra={"project_id": ctx.project_id})
            self._close_run(run, status="FAILED", result=result, error=str(e))
            raise AIGatewayError(f"AI processing failed: {e}", task_type=task_type,
                                 ai_run_id=run.id) from e
        except Exception as e:  # model output can still trip arbitrary conversions
            logger.exception("AI run %s (%s) failed unexpectedly", run.id, task_type,
                             extra={"project_id": ctx.project_id})
            self._close_run(run, status="FAILED", result=result,
                            error=f"{type(e).__name__}: {e}")
            raise AIGatewayError(f"AI processing failed: {e}", task_type=task_type,
                                 ai_run_id=run.id) from e

        self._close_run(run, status="SUCCESS", result=result, response_payload=data)
        logger.info("AI run %s (%s) succeeded in %sms", run.id, task_type,
                    result.get("latency_ms"), extra={"project_id": ctx.project_id})
        return typed, run.id

    # ── Tasks ────────────────────────────────────────────────────────────

    def structure_requirements(self, texts: list[str], instruction: str | None,
                               ctx: AuditContext):
        return self._run(
            "structure_requirements", ctx,
            {"inputs": texts, "instruction": instruction},
            {"inputs": "\n\n---\n\n".join(texts), "instruction": _instruction_block(instruction)},
            schemas.StructuredRequirement.from_json,
        )

    def extract_features(self, structured_json: dict, ctx: AuditContext):
        return self._run(
            "extract_features", ctx,
            {"structuredJson": structured_json},
            {"requirements_json": _dumps(structured_json)},
            schemas.ExtractedFeature.list_from_json,
        )

    def estimate_timeline_and_cost(self, structured_json: dict, features: list[dict],
                                   currency: str, ctx: AuditContext):
        return self._run(
            "estimate_timeline_and_cost", ctx,
            {"structuredJson": structured_json, "features": features, "currency": currency},
            {"requirements_json": _dumps(structured_json), "features_json": _dumps(features),
             "currency": currency},
            schemas.TimelineCostEstimate.from_json,
        )

    def regenerate_estimate_section(self, section: str, breakdown: dict, structured_json: dict,
                                    instruction: str | None, ctx: AuditContext):
        return self._run(
            "regenerate_estimate_section", ctx,
            {"section": section, "instruction": instruction},
            {"section": section, "breakdown_json": _dumps(breakdown),
             "requirements_json": _dumps(structured_json),
             "instruction": _instruction_block(instruction)},
            schemas.section_content_from_json,
        )

    def recommend_tech_stack(self, structured_json: dict, features: list[dict],
                             instruction: str | None, ctx: AuditContext):
        return self._run(
            "recommend_tech_stack", ctx,
            {"structuredJson": structured_json, "features": features, "instruction": instruction},
            {"requirements_json": _dumps(structured_json), "features_json": _dumps(features),
             "instruction": _instruction_block(instruction)},
            schemas.TechStackResult.from_json,
        )

    def generate_user_flows(self, structured_json: dict, features: list[dict],
                            instruction: str | None, ctx: AuditContext):
        return self._run(
            "generate_user_flows", ctx,
            {"structuredJson": structured_json, "features": features, "instruction": instruction},
            {"requirements_json": _dumps(structured_json), "features_json": _dumps(features),
             "instruction": _instruction_block(instruction)},
            schemas.UserFlowResult.from_json,
        )

    def generate_wireframes(self, structured_json: dict, features: list[dict],
                            flow_screens: list[dict], ctx: AuditContext):
        return self._run(
            "generate_wireframes", ctx,
            {"structuredJson": structured_json, "features": features, "screens": flow_screens},
            {"requirements_json": _dumps(structured_json), "features_json": _dumps(features),
             "screens_json": _dumps(flow_screens)},
            schemas.WireframeResult.from_json,
        )


def init_ai(app) -> None:
    """Attach the capability gateway to the app (tests may replace it)."""
    app.extensions.setdefault(EXTENSION_KEY, AICapabilities.from_app(app))


def get_capabilities():
    return current_app.extensions[EXTENSION_KEY]
