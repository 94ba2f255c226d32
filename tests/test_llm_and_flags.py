import pytest
from google.api_core.exceptions import ResourceExhausted

from conftest import SALES_SCHEMA
from services.feature_flags import FeatureFlagService
from services.llm_service import LLMService, ProviderNotConfiguredError
from utils.config import Settings


def make_config(**overrides):
    values = dict(gemini_api_key=None, openai_api_key=None, azure_openai_api_key=None,
                  azure_openai_endpoint=None, llm_retry_attempts=2)
    values.update(overrides)
    return Settings(_env_file=None, **values)


class ScriptedLLMService(LLMService):
    """Replaces the network call with queued outcomes"""

    def __init__(self, outcomes, **config):
        super().__init__(make_config(**config))
        self.outcomes = list(outcomes)
        self.calls = []

    async def generate(self, prompt, provider_id, model_id, temperature=None, max_tokens=None):
        self.calls.append((provider_id, model_id))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_configured_providers_follow_credentials():
    service = LLMService(make_config(openai_api_key="sk-test", azure_openai_api_key="az-key"))

    # Azure needs an endpoint as well
    assert service.configured_providers() == ["openai"]


@pytest.mark.asyncio
async def test_no_provider_configured():
    with pytest.raises(ProviderNotConfiguredError):
        await LLMService(make_config()).generate_sql("prompt", SALES_SCHEMA)


@pytest.mark.asyncio
async def test_unpinned_generation_uses_first_provider():
    service = ScriptedLLMService(["SELECT country FROM sales"], gemini_api_key="g-key", openai_api_key="sk-test")

    sql, confidence = await service.generate_sql("prompt", SALES_SCHEMA)

    assert service.calls == [("gemini", "gemini-1.5-pro")]
    assert sql == "SELECT country FROM sales"
    assert confidence == pytest.approx(0.95)


@pytest.mark.asyncio
async def test_transient_errors_are_retried():
    service = ScriptedLLMService([ResourceExhausted("quota"), "SELECT 1"], openai_api_key="sk-test")

    sql, _ = await service.generate_sql_with_model("prompt", SALES_SCHEMA, "OpenAI", "gpt-4")

    assert sql == "SELECT 1"
    assert service.calls == [("openai", "gpt-4"), ("openai", "gpt-4")]


@pytest.mark.asyncio
async def test_other_errors_propagate_immediately():
    service = ScriptedLLMService([ValueError("Empty response from LLM")], openai_api_key="sk-test")

    with pytest.raises(ValueError):
        await service.generate_sql_with_model("prompt", SALES_SCHEMA, "openai", "gpt-4")

    assert len(service.calls) == 1


def test_confidence_estimate():
    assert LLMService.estimate_confidence("no sql", SALES_SCHEMA) == 0.0
    assert LLMService.estimate_confidence("```sql\nSELECT 1\n```", SALES_SCHEMA) == pytest.approx(0.7)
    assert LLMService.estimate_confidence("SELECT * FROM other", SALES_SCHEMA) == pytest.approx(0.75)


@pytest.mark.asyncio
async def test_feature_flags_read_settings_and_overrides():
    flags = FeatureFlagService(make_config(enable_query_caching=False))

    assert await flags.get_boolean_setting("EnableQueryCaching") is False
    assert await flags.get_boolean_setting("EnableEnhancedSemanticCache") is True
    assert await flags.get_boolean_setting("SomethingElse") is False

    flags.set_boolean_setting("EnableQueryCaching", True)
    assert await flags.get_boolean_setting("EnableQueryCaching") is True

    flags.clear_override("EnableQueryCaching")
    assert await flags.get_boolean_setting("EnableQueryCaching") is False


def test_settings_read_environment_by_field_name(monkeypatch):
    monkeypatch.setenv("MAX_QUERY_ROWS", "250")
    monkeypatch.setenv("ENABLE_QUERY_CACHING", "false")

    config = Settings(_env_file=None)

    assert config.max_query_rows == 250
    assert config.enable_query_caching is False
    assert not any((field.json_schema_extra or {}).get("env") for field in Settings.model_fields.values())
