"""
Typed contracts for AI task results.

Each ``from_json`` validates the parsed model output and raises
SchemaError on mismatch; ``to_json`` gives the camelCase shape that is
stored in snapshot JSON columns.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from specforge.models.estimate import ESTIMATE_SECTIONS
from specforge.models.requirement import FEATURE_COMPLEXITIES, FEATURE_PRIORITIES
from specforge.models.tech_stack import TECH_STACK_CATEGORIES


class SchemaError(ValueError):
    """AI output parsed as JSON but does not match the expected shape."""


# ── Field helpers ────────────────────────────────────────────────────────────

def _require_dict(data, what: str) -> dict:
    if not isinstance(data, dict):
        raise SchemaError(f"{what}: expected object, got {type(data).__name__}")
    return data


def _require_list(data, what: str) -> list:
    if not isinstance(data, list):
        raise SchemaError(f"{what}: expected array, got {type(data).__name__}")
    return data


def _str(data: dict, key: str, *, required: bool = False, default: str = "") -> str:
    value = data.get(key)
    if value is None:
        if required:
            raise SchemaError(f"missing required field {key!r}")
        return default
    if not isinstance(value, str):
        raise SchemaError(f"{key!r}: expected string")
    if required and not value.strip():
        raise SchemaError(f"{key!r}: must not be empty")
    return value.strip()


def _num(data: dict, key: str, *, default: float | None = None) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SchemaError(f"{key!r}: expected number")
    if not math.isfinite(value):
        raise SchemaError(f"{key!r}: must be a finite number")
    if value < 0:
        raise SchemaError(f"{key!r}: must be >= 0")
    return float(value)


def _str_list(data: dict, key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    _require_list(value, key)
    return [str(v) for v in value if v is not None and str(v).strip()]


def _enum(data: dict, key: str, allowed: frozenset[str], default: str) -> str:
    raw = data.get(key)
    if raw is None:
        return default
    value = str(raw).strip().upper()
    if value not in allowed:
        raise SchemaError(f"{key!r}: {raw!r} not one of {sorted(allowed)}")
    return value


# ── Requirements ─────────────────────────────────────────────────────────────

@dataclass
class StructuredRequirement:
    project_overview: str
    objectives: list[str]
    functional_requirements: list[dict]
    non_functional_requirements: list[str]
    assumptions: list[str]
    constraints: list[str]

    @classmethod
    def from_json(cls, data) -> "StructuredRequirement":
        data = _require_dict(data, "structured requirement")
        groups = []
        for i, group in enumerate(_require_list(data.get("functionalRequirements", []),
                                                "functionalRequirements")):
            group = _require_dict(group, f"functionalRequirements[{i}]")
            groups.append({
                "category": _str(group, "category", default="General") or "General",
                "requirements": _str_list(group, "requirements"),
            })
        return cls(
            project_overview=_str(data, "projectOverview", required=True),
            objectives=_str_list(data, "objectives"),
            functional_requirements=groups,
            non_functional_requirements=_str_list(data, "nonFunctionalRequirements"),
            assumptions=_str_list(data, "assumptions"),
            constraints=_str_list(data, "constraints"),
        )

    def to_json(self) -> dict:
        return {
            "projectOverview": self.project_overview,
            "objectives": self.objectives,
            "functionalRequirements": self.functional_requirements,
            "nonFunctionalRequirements": self.non_functional_requirements,
            "assumptions": self.assumptions,
            "constraints": self.constraints,
        }


@dataclass
class ExtractedFeature:
    title: str
    description: str = ""
    priority: str = "SHOULD"
    complexity: str = "M"

    @classmethod
    def from_json(cls, data) -> "ExtractedFeature":
        data = _require_dict(data, "feature")
        return cls(
            title=_str(data, "title", required=True)[:300],
            description=_str(data, "description"),
            priority=_enum(data, "priority", FEATURE_PRIORITIES, "SHOULD"),
            complexity=_enum(data, "complexity", FEATURE_COMPLEXITIES, "M"),
        )

    @classmethod
    def list_from_json(cls, data) -> list["ExtractedFeature"]:
        if isinstance(data, dict) and "features" in data:
            data = data["features"]
        items = _require_list(data, "features")
        if not items:
            raise SchemaError("no features extracted")
        return [cls.from_json(item) for item in items]

    def to_json(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "complexity": self.complexity,
        }


# ── Estimates ────────────────────────────────────────────────────────────────

@dataclass
class EstimateLine:
    name: str
    description: str
    hours_min: float
    hours_max: float
    cost_min: float
    cost_max: float

    @classmethod
    def from_json(cls, data) -> "EstimateLine":
        data = _require_dict(data, "line item")
        line = cls(
            name=_str(data, "name", required=True)[:300],
            description=_str(data, "description"),
            hours_min=_num(data, "hoursMin", default=0),
            hours_max=_num(data, "hoursMax", default=0),
            cost_min=_num(data, "costMin", default=0),
            cost_max=_num(data, "costMax", default=0),
        )
        if line.hours_min > line.hours_max or line.cost_min > line.cost_max:
            raise SchemaError(f"line item {line.name!r}: min exceeds max")
        return line


@dataclass
class TimelineCostEstimate:
    timeline_min_days: int
    timeline_max_days: int
    cost_min: float
    cost_max: float
    confidence_score: float
    assumptions: list[str]
    line_items: list[EstimateLine]
    breakdown: dict = field(default_factory=dict)

    @classmethod
    def from_json(cls, data) -> "TimelineCostEstimate":
        data = _require_dict(data, "estimate")
        confidence = _num(data, "confidenceScore", default=0)
        if confidence > 100:
            raise SchemaError("'confidenceScore': must be within 0-100")
        breakdown = data.get("breakdown") or {}
        _require_dict(breakdown, "breakdown")
        estimate = cls(
            timeline_min_days=int(round(_num(data, "timelineMinDays"))),
            timeline_max_days=int(round(_num(data, "timelineMaxDays"))),
            cost_min=_num(data, "costMin"),
            cost_max=_num(data, "costMax"),
            confidence_score=confidence,
            assumptions=_str_list(data, "assumptions"),
            line_items=[EstimateLine.from_json(li)
                        for li in _require_list(data.get("lineItems", []), "lineItems")],
            breakdown={k: v for k, v in breakdown.items() if k in ESTIMATE_SECTIONS},
        )
        if estimate.timeline_min_days > estimate.timeline_max_days:
            raise SchemaError("timelineMinDays exceeds timelineMaxDays")
        if estimate.cost_min > estimate.cost_max:
            raise SchemaError("costMin exceeds costMax")
        return estimate


# ── Tech stack ───────────────────────────────────────────────────────────────

@dataclass
class TechStackResult:
    frontend: list[str]
    backend: list[str]
    database: list[str]
    infrastructure: list[str]
    integrations: list[str]
    rationale: dict[str, str]

    @classmethod
    def from_json(cls, data) -> "TechStackResult":
        data = _require_dict(data, "tech stack")
        lists = {cat: _str_list(data, cat) for cat in TECH_STACK_CATEGORIES}
        if not any(lists.values()):
            raise SchemaError("tech stack recommends no technologies")
        rationale = _require_dict(data.get("rationale") or {}, "rationale")
        return cls(**lists, rationale={str(k): str(v) for k, v in rationale.items()})


# ── User flows ───────────────────────────────────────────────────────────────

@dataclass
class FlowScreen:
    name: str
    description: str
    screen_type: str
    purpose: str
    user_actions: list[str]
    entry_point: bool
    feature_title: str | None = None

    @classmethod
    def from_json(cls, data) -> "FlowScreen":
        data = _require_dict(data, "screen")
        return cls(
            name=_str(data, "name", required=True)[:200],
            description=_str(data, "description"),
            screen_type=(_str(data, "screenType") or "PAGE").upper()[:20],
            purpose=_str(data, "purpose"),
            user_actions=_str_list(data, "userActions"),
            entry_point=bool(data.get("entryPoint", False)),
            feature_title=_str(data, "featureTitle") or None,
        )

    def to_json(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "screenType": self.screen_type,
            "purpose": self.purpose,
            "userActions": self.user_actions,
            "entryPoint": self.entry_point,
            "featureTitle": self.feature_title,
        }


@dataclass
class FlowTransition:
    from_screen: str
    to_screen: str
    trigger_action: str
    trigger_label: str
    condition: str | None = None

    @classmethod
    def from_json(cls, data) -> "FlowTransition":
        data = _require_dict(data, "transition")
        return cls(
            from_screen=_str(data, "fromScreen", required=True)[:200],
            to_screen=_str(data, "toScreen", required=True)[:200],
            trigger_action=_str(data, "triggerAction")[:200],
            trigger_label=_str(data, "triggerLabel")[:200],
            condition=_str(data, "condition") or None,
        )

    def to_json(self) -> dict:
        return {
            "fromScreen": self.from_screen,
            "toScreen": self.to_screen,
            "triggerAction": self.trigger_action,
            "triggerLabel": self.trigger_label,
            "condition": self.condition,
        }


@dataclass
class UserFlowResult:
    screens: list[FlowScreen]
    transitions: list[FlowTransition]
    assumptions: list[str]

    @classmethod
    def from_json(cls, data) -> "UserFlowResult":
        data = _require_dict(data, "user flow")
        screens = [FlowScreen.from_json(s) for s in _require_list(data.get("screens"), "screens")]
        if not screens:
            raise SchemaError("user flow has no screens")
        names = {s.name for s in screens}
        transitions = [FlowTransition.from_json(t)
                       for t in _require_list(data.get("transitions", []), "transitions")]
        for t in transitions:
            if t.from_screen not in names or t.to_screen not in names:
                raise SchemaError(
                    f"transition {t.from_screen!r} → {t.to_screen!r} references an unknown screen"
                )
        return cls(screens=screens, transitions=transitions,
                   assumptions=_str_list(data, "assumptions"))

    def to_json(self) -> dict:
        return {
            "screens": [s.to_json() for s in self.screens],
            "transitions": [t.to_json() for t in self.transitions],
            "assumptions": self.assumptions,
        }


# ── Wireframes ───────────────────────────────────────────────────────────────

@dataclass
class WireframePage:
    screen_name: str
    title: str
    description: str
    screen_type: str | None
    sections: list[dict]

    @classmethod
    def from_json(cls, data) -> "WireframePage":
        data = _require_dict(data, "wireframe screen")
        sections = _require_list(data.get("sections", []), "sections")
        for i, section in enumerate(sections):
            section = _require_dict(section, f"sections[{i}]")
            _require_list(section.get("components", []), f"sections[{i}].components")
        return cls(
            screen_name=_str(data, "screenName", required=True)[:200],
            title=_str(data, "title"),
            description=_str(data, "description"),
            screen_type=_str(data, "screenType") or None,
            sections=sections,
        )

    def to_json(self) -> dict:
        return {
            "screenName": self.screen_name,
            "title": self.title,
            "description": self.description,
            "screenType": self.screen_type,
            "sections": self.sections,
        }


@dataclass
class WireframeResult:
    screens: list[WireframePage]
    design_system: dict
    assumptions: list[str]

    @classmethod
    def from_json(cls, data) -> "WireframeResult":
        data = _require_dict(data, "wireframes")
        screens = [WireframePage.from_json(s) for s in _require_list(data.get("screens"), "screens")]
        if not screens:
            raise SchemaError("wireframes contain no screens")
        return cls(
            screens=screens,
            design_system=_require_dict(data.get("designSystem") or {}, "designSystem"),
            assumptions=_str_list(data, "assumptions"),
        )

    def to_json(self) -> dict:
        return {
            "screens": [s.to_json() for s in self.screens],
            "designSystem": self.design_system,
            "assumptions": self.assumptions,
        }


def section_content_from_json(data):
    """Result of a single estimate-section rewrite: ``{"content": ...}``."""
    data = _require_dict(data, "section")
    if "content" not in data:
        raise SchemaError("missing required field 'content'")
    return data["content"]
