"""
SpecForge
Prompt Registry.

YAML-based prompt template management with:
    - Built-in default template per AI task
    - Overrides loaded from PROMPTS_DIR (*.yaml, one template per file)
    - {{variable}} rendering
    - Version tracking

Usage:
    from specforge.ai.prompt_registry import PromptRegistry
    registry = PromptRegistry()
    messages = registry.render("extract_features", requirements_json="{...}")

YAML override format::

    name: extract_features
    version: v2
    description: Tighter MoSCoW guidance
    system: |
      ...
    user: |
      Structured requirements:
      {{requirements_json}}
"""

import logging
import re
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


class PromptTemplate:
    """A single prompt template with metadata."""

    def __init__(self, name: str, version: str, system: str, user: str,
                 description: str = "", metadata: dict | None = None):
        self.name = name
        self.version = version
        self.system = system
        self.user = user
        self.description = description
        self.metadata = metadata or {}

    def render(self, **variables) -> list[dict]:
        """
        Render template with variables, returning chat messages.

        Unknown placeholders are left as-is so a missing variable is visible
        in the prompt rather than silently blanked.
        """
        system_rendered = self._substitute(self.system, variables)
        user_rendered = self._substitute(self.user, variables)

        messages = []
        if system_rendered.strip():
            messages.append({"role": "system", "content": system_rendered})
        if user_rendered.strip():
            messages.append({"role": "user", "content": user_rendered})
        return messages

    @staticmethod
    def _substitute(template: str, variables: dict) -> str:
        def replacer(match):
            key = match.group(1).strip()
            return str(variables.get(key, f"{{{{{key}}}}}"))
        return re.sub(r'\{\{(\s*\w+\s*)\}\}', replacer, template)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "system_preview": self.system[:200],
            "user_preview": self.user[:200],
        }


class PromptRegistry:
    """
    Registry of prompt templates keyed by name → version.

    ``render`` without an explicit version uses the active version: the one
    loaded last for that name (YAML overrides are loaded after defaults).
    """

    def __init__(self, prompts_dir: str | None = None):
        self._prompts_dir = prompts_dir
        self._templates: dict[str, dict[str, PromptTemplate]] = {}
        self._active: dict[str, str] = {}
        self._load_defaults()
        self._load_from_dir()

    def _load_defaults(self):
        for tpl in _DEFAULT_TEMPLATES:
            self._register(tpl)

    def _load_from_dir(self):
        if not self._prompts_dir:
            return
        prompts_path = Path(self._prompts_dir)
        if not prompts_path.exists():
            logger.info("Prompts directory not found: %s. Using defaults only.", self._prompts_dir)
            return

        for yaml_file in sorted(prompts_path.glob("*.yaml")):
            try:
                with open(yaml_file, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                logger.error("Failed to load prompt %s: %s", yaml_file.name, e)
                continue
            if not data or not isinstance(data, dict):
                continue

            tpl = PromptTemplate(
                name=data.get("name", yaml_file.stem),
                version=str(data.get("version", "v1")),
                system=data.get("system", ""),
                user=data.get("user", ""),
                description=data.get("description", ""),
                metadata=data.get("metadata", {}),
            )
            self._register(tpl)
            logger.info("Loaded prompt template: %s (%s) from %s",
                        tpl.name, tpl.version, yaml_file.name)

    def _register(self, template: PromptTemplate):
        self._templates.setdefault(template.name, {})[template.version] = template
        self._active[template.name] = template.version

    def get(self, name: str, version: str | None = None) -> PromptTemplate | None:
        versions = self._templates.get(name, {})
        return versions.get(version or self._active.get(name, "v1"))

    def render(self, name: str, version: str | None = None, **variables) -> list[dict]:
        """
        Render a prompt template with variables.

        Raises:
            KeyError: If template not found.
        """
        tpl = self.get(name, version)
        if not tpl:
            raise KeyError(f"Prompt template not found: {name} {version or ''}".strip())
        return tpl.render(**variables)

    def list_templates(self) -> list[dict]:
        return [tpl.to_dict() for versions in self._templates.values() for tpl in versions.values()]

    def get_versions(self, name: str) -> list[str]:
        return list(self._templates.get(name, {}).keys())


# ── Built-in Default Templates ────────────────────────────────────────────────

_JSON_ONLY = "Return ONLY valid JSON. No text outside the JSON."

_DEFAULT_TEMPLATES = [
    PromptTemplate(
        name="structure_requirements",
        version="v1",
        description="Turn raw project inputs into a structured requirement document",
        system=(
            "You are an expert software requirements analyst. Your job is to convert raw "
            "project descriptions into well-structured requirement documents.\n\n"
            "Always respond with valid JSON matching this exact schema:\n"
            "{\n"
            '  "projectOverview": "string - brief summary of the project",\n'
            '  "objectives": ["string"],\n'
            '  "functionalRequirements": [{"category": "string", "requirements": ["string"]}],\n'
            '  "nonFunctionalRequirements": ["string"],\n'
            '  "assumptions": ["string"],\n'
            '  "constraints": ["string"]\n'
            "}\n\n" + _JSON_ONLY
        ),
        user="Project inputs:\n{{inputs}}\n\n{{instruction}}",
    ),
    PromptTemplate(
        name="extract_features",
        version="v1",
        description="Break structured requirements into MoSCoW-prioritised features",
        system=(
            "You are an expert product manager who breaks requirements into discrete features.\n\n"
            "Respond with a JSON array. Each element:\n"
            '{"title": "string", "description": "string", '
            '"priority": "MUST" | "SHOULD" | "COULD" | "WONT", '
            '"complexity": "XS" | "S" | "M" | "L" | "XL"}\n\n'
            "Complexity: XS=hours, S=1-2 days, M=3-5 days, L=1-2 weeks, XL=2+ weeks.\n"
            + _JSON_ONLY
        ),
        user="Structured requirements:\n{{requirements_json}}",
    ),
    PromptTemplate(
        name="estimate_timeline_and_cost",
        version="v1",
        description="Timeline and cost estimate with per-feature line items",
        system=(
            "You are an expert software project estimator. Provide realistic timeline and cost "
            "estimates in {{currency}}.\n\n"
            "Respond with valid JSON matching this schema:\n"
            "{\n"
            '  "timelineMinDays": number, "timelineMaxDays": number,\n'
            '  "costMin": number, "costMax": number,\n'
            '  "confidenceScore": number (0-100),\n'
            '  "assumptions": ["string"],\n'
            '  "lineItems": [{"name": "string - feature title where applicable", '
            '"description": "string", "hoursMin": number, "hoursMax": number, '
            '"costMin": number, "costMax": number}],\n'
            '  "breakdown": {"projectOverview": ..., "scope": ..., "technicalArchitecture": ..., '
            '"wbs": ..., "timeline": ..., "costCalculation": ..., "assumptions": ..., '
            '"changeManagement": ..., "acceptanceCriteria": ..., "additionalSections": ...}\n'
            "}\n\n"
            "Use an average developer rate of 75-150/hour. Be realistic, not optimistic.\n"
            + _JSON_ONLY
        ),
        user="Requirements:\n{{requirements_json}}\n\nFeatures:\n{{features_json}}",
    ),
    PromptTemplate(
        name="regenerate_estimate_section",
        version="v1",
        description="Rewrite one named section of an estimate breakdown",
        system=(
            "You are an expert software project estimator revising one section of an existing "
            "estimate. Keep it consistent with the rest of the estimate.\n\n"
            'Respond with JSON: {"content": <the new value for the section>}\n' + _JSON_ONLY
        ),
        user=(
            "Section to rewrite: {{section}}\n\n"
            "Current estimate breakdown:\n{{breakdown_json}}\n\n"
            "Requirements:\n{{requirements_json}}\n\n{{instruction}}"
        ),
    ),
    PromptTemplate(
        name="recommend_tech_stack",
        version="v1",
        description="Recommend a production technology stack",
        system=(
            "You are an expert software architect who recommends technology stacks.\n\n"
            "Respond with valid JSON matching this schema:\n"
            '{"frontend": ["string"], "backend": ["string"], "database": ["string"], '
            '"infrastructure": ["string"], "integrations": ["string"], '
            '"rationale": {"categoryName": "string - why this choice was made"}}\n\n'
            + _JSON_ONLY
        ),
        user="Requirements:\n{{requirements_json}}\n\nFeatures:\n{{features_json}}\n\n{{instruction}}",
    ),
    PromptTemplate(
        name="generate_user_flows",
        version="v1",
        description="Derive screens and navigation transitions from features",
        system=(
            "You are a senior UX architect who designs application user flows.\n\n"
            "Respond with valid JSON matching this schema:\n"
            "{\n"
            '  "screens": [{"name": "string", "description": "string", '
            '"screenType": "PAGE|MODAL|FORM|LIST|DETAIL|DASHBOARD|AUTH|SETTINGS|OTHER", '
            '"purpose": "string", "userActions": ["string"], "entryPoint": boolean, '
            '"featureTitle": "string - exact title of the feature this screen serves"}],\n'
            '  "transitions": [{"fromScreen": "string", "toScreen": "string", '
            '"triggerAction": "string", "triggerLabel": "string", "condition": "string or null"}],\n'
            '  "assumptions": ["string"]\n'
            "}\n\n" + _JSON_ONLY
        ),
        user="Requirements:\n{{requirements_json}}\n\nFeatures:\n{{features_json}}\n\n{{instruction}}",
    ),
    PromptTemplate(
        name="generate_wireframes",
        version="v1",
        description="Low-fidelity wireframe layouts for each user-flow screen",
        system=(
            "You are a product designer producing low-fidelity wireframe layouts.\n\n"
            "Respond with valid JSON matching this schema:\n"
            "{\n"
            '  "screens": [{"screenName": "string - exact user-flow screen name", '
            '"title": "string", "description": "string", "screenType": "string", '
            '"sections": [{"name": "string", "layout": "string", "components": '
            '[{"type": "string", "label": "string", "props": {}, "children": []}]}]}],\n'
            '  "designSystem": {"colorPalette": {}, "typography": {}, "spacing": {}},\n'
            '  "assumptions": ["string"]\n'
            "}\n\n" + _JSON_ONLY
        ),
        user=(
            "Requirements:\n{{requirements_json}}\n\nFeatures:\n{{features_json}}\n\n"
            "User-flow screens:\n{{screens_json}}"
        ),
    ),
]
