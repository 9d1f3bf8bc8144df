"""
AI layer tests: JSON extraction/repair, the LLM gateway with the local stub,
and AIRun bookkeeping around each capability call.
"""

from unittest.mock import patch

import pytest

from specforge.ai import schemas
from specforge.ai.capabilities import (
    AICapabilities,
    AuditContext,
    extract_json,
    parse_model_json,
    repair_truncated_json,
)
from specforge.ai.gateway import LLMCallError, LLMGateway, LocalStubProvider
from specforge.ai.prompt_registry import PromptRegistry
from specforge.core.exceptions import AIGatewayError
from specforge.models import db
from specforge.models.ai import AIRun, calculate_cost


# ── JSON extraction ──────────────────────────────────────────────────────

class TestExtractJson:
    def test_code_fence(self):
        reply = 'Here you go:\n```json\n{"a": 1}\n```\nThanks!'
        assert extract_json(reply) == '{"a": 1}'

    def test_prose_around_object(self):
        assert extract_json('Sure! {"a": {"b": 2}} Hope that helps.') == '{"a": {"b": 2}}'

    def test_top_level_array(self):
        assert extract_json('Result: [{"title": "A"}]') == '[{"title": "A"}]'

    def test_no_json_returns_text(self):
        assert extract_json("no json here") == "no json here"


class TestParseModelJson:
    def test_valid_json(self):
        assert parse_model_json('{"a": 1}') == {"a": 1}

    def test_invalid_json_not_truncated_raises(self):
        with pytest.raises(ValueError, match="invalid JSON"):
            parse_model_json('{"a": [1, 2')

    def test_truncated_array_is_closed(self):
        assert parse_model_json('{"a": [1, 2', truncated=True) == {"a": [1, 2]}

    def test_truncated_dangling_key_is_dropped(self):
        assert parse_model_json('{"title": "X", "desc', truncated=True) == {"title": "X"}

    def test_repair_closes_open_string(self):
        assert repair_truncated_json('["abc') == '["abc"]'


# ── Gateway ──────────────────────────────────────────────────────────────

class TestGateway:
    def test_unknown_or_keyless_model_falls_back_to_stub(self):
        gw = LLMGateway(default_model="local-stub")
        provider, name = gw.provider_for("some-unlisted-model")
        assert isinstance(provider, LocalStubProvider)
        assert name == "local"

    def test_chat_adds_accounting_fields(self):
        gw = LLMGateway(default_model="local-stub")
        result = gw.chat([
            {"role": "system", "content": "You are an expert software architect."},
            {"role": "user", "content": "Recommend a stack"},
        ])
        assert result["provider"] == "local"
        assert result["latency_ms"] >= 0
        assert result["cost_usd"] == 0.0
        assert "Flask" in result["content"]

    def test_retries_then_raises(self):
        gw = LLMGateway(default_model="local-stub", max_retries=2)
        with patch.object(LocalStubProvider, "chat", side_effect=RuntimeError("boom")) as chat, \
                patch("specforge.ai.gateway.threading.Event.wait"):
            with pytest.raises(LLMCallError):
                gw.chat([{"role": "user", "content": "hi"}])
        assert chat.call_count == 2

    def test_calculate_cost_known_and_unknown_model(self):
        assert calculate_cost("gpt-4o-mini", 1_000_000, 0) > 0
        assert calculate_cost("local-stub", 1000, 1000) == 0.0

    def test_missing_key_without_fallback_raises(self, monkeypatch):
        for var in ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY"):
            monkeypatch.delenv(var, raising=False)
        gw = LLMGateway(default_model="claude-sonnet-4-20250514", api_keys={},
                        allow_stub_fallback=False)

        assert gw.provider_name(gw.default_model) == "anthropic"
        with pytest.raises(LLMCallError, match="No provider configured"):
            gw.provider_for(gw.default_model)
        with pytest.raises(LLMCallError):
            gw.chat([{"role": "user", "content": "hi"}])

    def test_explicit_local_stub_allowed_without_fallback(self):
        gw = LLMGateway(default_model="local-stub", allow_stub_fallback=False)
        provider, name = gw.provider_for("local-stub")
        assert isinstance(provider, LocalStubProvider)
        assert name == "local"

    def test_from_config_allows_fallback_only_in_testing_or_debug(self):
        production = {"LLM_DEFAULT_CHAT_MODEL": "gpt-4o", "TESTING": False, "DEBUG": False}
        assert LLMGateway.from_config(production).allow_stub_fallback is False
        assert LLMGateway.from_config({**production, "DEBUG": True}).allow_stub_fallback is True
        assert LLMGateway.from_config({**production, "TESTING": True}).allow_stub_fallback is True


# ── Capability bookkeeping ───────────────────────────────────────────────

@pytest.fixture()
def capabilities():
    return AICapabilities(LLMGateway(default_model="local-stub"), PromptRegistry())


@pytest.fixture()
def ctx(project, owner_user):
    return AuditContext(project["organization_id"], project["id"], owner_user.id)


def test_successful_call_records_run(capabilities, ctx):
    stack, run_id = capabilities.recommend_tech_stack({"projectOverview": "x"}, [], None, ctx)

    run = db.session.get(AIRun, run_id)
    assert run.status == "SUCCESS"
    assert run.task_type == "recommend_tech_stack"
    assert run.project_id == ctx.project_id
    assert run.completed_at is not None
    assert stack.database == ["PostgreSQL"]


def test_schema_mismatch_is_gateway_error(capabilities, ctx):
    bad = {"content": '{"screens": []}', "prompt_tokens": 1, "completion_tokens": 1,
           "model": "local-stub", "truncated": False}
    with patch.object(LocalStubProvider, "chat", return_value=bad):
        with pytest.raises(AIGatewayError) as exc_info:
            capabilities.generate_user_flows({}, [], None, ctx)

    run = db.session.get(AIRun, exc_info.value.ai_run_id)
    assert run.status == "FAILED"
    assert "no screens" in run.error_message


def test_features_accept_wrapped_list(capabilities, ctx):
    wrapped = {"content": '{"features": [{"title": "Search", "priority": "could"}]}',
               "prompt_tokens": 1, "completion_tokens": 1, "model": "local-stub", "truncated": False}
    with patch.object(LocalStubProvider, "chat", return_value=wrapped):
        features, _ = capabilities.extract_features({}, ctx)
    assert [(f.title, f.priority) for f in features] == [("Search", "COULD")]


def _reply(content):
    return {"content": content, "prompt_tokens": 1, "completion_tokens": 1,
            "model": "local-stub", "truncated": False}


def test_infinite_number_in_model_output_fails_run(capabilities, ctx):
    reply = _reply('{"timelineMinDays": 1, "timelineMaxDays": Infinity, '
                   '"costMin": 1, "costMax": 2, "lineItems": []}')
    with patch.object(LocalStubProvider, "chat", return_value=reply):
        with pytest.raises(AIGatewayError) as exc_info:
            capabilities.estimate_timeline_and_cost({}, [], "USD", ctx)

    run = db.session.get(AIRun, exc_info.value.ai_run_id)
    assert run.status == "FAILED"
    assert "finite" in run.error_message


def test_unexpected_conversion_error_fails_run(capabilities, ctx):
    with patch.object(schemas.TimelineCostEstimate, "from_json",
                      side_effect=OverflowError("cannot convert float infinity to integer")):
        with pytest.raises(AIGatewayError) as exc_info:
            capabilities.estimate_timeline_and_cost({}, [], "USD", ctx)

    run = db.session.get(AIRun, exc_info.value.ai_run_id)
    assert run.status == "FAILED"
    assert run.error_message.startswith("OverflowError")
    assert db.session.query(AIRun).filter_by(status="QUEUED").count() == 0


def test_empty_feature_extraction_fails_run(capabilities, ctx):
    with patch.object(LocalStubProvider, "chat", return_value=_reply("[]")):
        with pytest.raises(AIGatewayError) as exc_info:
            capabilities.extract_features({}, ctx)

    run = db.session.get(AIRun, exc_info.value.ai_run_id)
    assert run.status == "FAILED"
    assert "no features" in run.error_message


def test_unconfigured_provider_fails_run(ctx, monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    production = AICapabilities(
        LLMGateway(default_model="claude-sonnet-4-20250514", api_keys={},
                   allow_stub_fallback=False),
        PromptRegistry(),
    )
    with pytest.raises(AIGatewayError) as exc_info:
        production.recommend_tech_stack({"projectOverview": "x"}, [], None, ctx)

    run = db.session.get(AIRun, exc_info.value.ai_run_id)
    assert run.status == "FAILED"
    assert run.provider == "anthropic"
    assert "No provider configured" in run.error_message


# ── Prompt registry ──────────────────────────────────────────────────────

class TestPromptRegistry:
    def test_defaults_cover_every_task(self):
        registry = PromptRegistry()
        names = {t["name"] for t in registry.list_templates()}
        assert names == {
            "structure_requirements", "extract_features", "estimate_timeline_and_cost",
            "regenerate_estimate_section", "recommend_tech_stack", "generate_user_flows",
            "generate_wireframes",
        }

    def test_render_substitutes_and_keeps_unknown_placeholders(self):
        messages = PromptRegistry().render("extract_features", requirements_json='{"x": 1}')
        assert messages[0]["role"] == "system"
        assert '{"x": 1}' in messages[1]["content"]

        tpl = PromptRegistry().get("structure_requirements")
        rendered = tpl.render(inputs="hello")
        assert "{{instruction}}" in rendered[1]["content"]

    def test_unknown_template_raises(self):
        with pytest.raises(KeyError):
            PromptRegistry().render("nope")

    def test_yaml_override_becomes_active(self, tmp_path):
        (tmp_path / "features.yaml").write_text(
            "name: extract_features\n"
            "version: v2\n"
            "system: Custom system\n"
            "user: 'Reqs: {{requirements_json}}'\n",
            encoding="utf-8",
        )
        registry = PromptRegistry(str(tmp_path))

        assert registry.get_versions("extract_features") == ["v1", "v2"]
        messages = registry.render("extract_features", requirements_json="{}")
        assert messages == [
            {"role": "system", "content": "Custom system"},
            {"role": "user", "content": "Reqs: {}"},
        ]

    def test_missing_directory_uses_defaults(self, tmp_path):
        registry = PromptRegistry(str(tmp_path / "absent"))
        assert registry.get_versions("generate_wireframes") == ["v1"]
