from pathlib import Path

import pytest

from tool_orchestrator.config import Settings
from tool_orchestrator.llm.errors import ConfigurationError
from tool_orchestrator.llm.provider_config import (
    get_model_config,
    get_recommended_model,
    is_execution_enabled,
    load_provider_config,
    resolve_provider_config,
    validate_common_params,
    validate_provider_config,
)

from conftest import make_config


def settings(**values) -> Settings:
    return Settings(_env_file=None, **values)


@pytest.mark.parametrize("provider", ["openrouter", "openai", "azure"])
def test_prompt_only_never_requires_credentials(provider):
    config = load_provider_config(settings(AI_PROVIDER=provider, EXECUTION_MODE="prompt-only"))

    assert config.provider == provider
    assert config.execution_mode == "prompt-only"
    assert not is_execution_enabled(config)


def test_azure_missing_fields_reported_together():
    with pytest.raises(ConfigurationError) as exc_info:
        load_provider_config(settings(AI_PROVIDER="azure"))

    err = exc_info.value
    assert err.provider == "azure"
    assert err.missing_fields == [
        "AZURE_OPENAI_ENDPOINT",
        "AZURE_OPENAI_API_KEY",
        "AZURE_OPENAI_DEPLOYMENT",
    ]
    for field in err.missing_fields:
        assert field in str(err)
    assert "EXECUTION_MODE=prompt-only" in str(err)
    assert "AI_PROVIDER=openrouter" in str(err)


def test_azure_partial_config_lists_only_missing():
    with pytest.raises(ConfigurationError) as exc_info:
        load_provider_config(
            settings(AI_PROVIDER="azure", AZURE_OPENAI_ENDPOINT="https://x.openai.azure.com")
        )

    assert exc_info.value.missing_fields == ["AZURE_OPENAI_API_KEY", "AZURE_OPENAI_DEPLOYMENT"]


def test_openrouter_missing_key():
    with pytest.raises(ConfigurationError) as exc_info:
        load_provider_config(settings())

    assert exc_info.value.missing_fields == ["OPENROUTER_API_KEY"]
    assert exc_info.value.code == "AI_CONFIGURATION_ERROR"
    assert exc_info.value.retryable is False


def test_unsupported_provider():
    with pytest.raises(ConfigurationError, match="AI_PROVIDER"):
        resolve_provider_config(settings(AI_PROVIDER="anthropic-direct"))


def test_unsupported_execution_mode():
    with pytest.raises(ConfigurationError, match="EXECUTION_MODE"):
        resolve_provider_config(settings(EXECUTION_MODE="dry-run"))


def test_openrouter_defaults():
    config = load_provider_config(settings(OPENROUTER_API_KEY="sk-or-1"))

    assert config.base_url == "https://openrouter.ai/api/v1"
    assert config.default_model == "anthropic/claude-3-sonnet"
    assert config.timeout == 60000
    assert config.max_retries == 3
    assert config.temperature == 0.1
    assert config.max_tokens == 4000
    assert config.cache_ttl == 3600
    assert is_execution_enabled(config)


def test_openai_default_model_and_override():
    config = load_provider_config(settings(AI_PROVIDER="openai", OPENAI_API_KEY="sk-1"))
    assert config.default_model == "gpt-4o"
    assert config.base_url == "https://api.openai.com/v1"

    config = load_provider_config(
        settings(AI_PROVIDER="openai", OPENAI_API_KEY="sk-1", AI_MODEL="gpt-4o-mini")
    )
    assert config.default_model == "gpt-4o-mini"


def test_azure_uses_deployment_as_model():
    config = load_provider_config(
        settings(
            AI_PROVIDER="azure",
            AZURE_OPENAI_API_KEY="az-key",
            AZURE_OPENAI_ENDPOINT="https://acme.openai.azure.com/",
            AZURE_OPENAI_DEPLOYMENT="gpt4-prod",
        )
    )

    assert config.default_model == "gpt4-prod"
    assert config.base_url == "https://acme.openai.azure.com/openai/deployments/gpt4-prod"
    assert config.azure_api_version == "2024-08-01-preview"


def test_invalid_env_value_surfaces_as_configuration_error(monkeypatch):
    monkeypatch.setenv("AI_TIMEOUT", "not-a-number")

    with pytest.raises(ConfigurationError):
        load_provider_config()


def test_prompt_only_mode_skips_required_field_check():
    validate_provider_config(make_config(api_key="", execution_mode="prompt-only"))


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"temperature": 1.5}, "temperature"),
        ({"temperature": -0.1}, "temperature"),
        ({"max_tokens": 50}, "max_tokens"),
        ({"max_tokens": 9000}, "max_tokens"),
        ({"timeout": 500}, "timeout"),
        ({"timeout": 400000}, "timeout"),
    ],
)
def test_common_params_out_of_range(overrides, field):
    with pytest.raises(ConfigurationError, match=field):
        validate_common_params(make_config(**overrides))


def test_common_params_boundaries_accepted():
    validate_common_params(make_config(temperature=0.0, max_tokens=100, timeout=1000))
    validate_common_params(make_config(temperature=1.0, max_tokens=8000, timeout=300000))


def test_model_catalog_lookup():
    assert get_model_config("anthropic/claude-3-haiku").name == "Claude 3 Haiku"
    assert get_model_config("gpt-4o-mini").context_length == 128000
    assert get_model_config("mistral/unknown") is None


def test_recommended_models():
    assert get_recommended_model("analysis") == "anthropic/claude-3-sonnet"
    assert get_recommended_model("quick-analysis", cost_sensitive=True) == "openai/gpt-4o-mini"


def test_env_example_sits_next_to_settings_env_file():
    env_file = Path(Settings.model_config["env_file"])
    example = env_file.with_name(".env.example")

    assert example.is_file()
    keys = [
        line.split("=", 1)[0].lstrip("# ").strip()
        for line in example.read_text(encoding="utf-8").splitlines()
        if "=" in line and not line.startswith("# ──")
    ]
    assert keys
    assert set(keys) <= set(Settings.model_fields)
