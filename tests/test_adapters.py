from types import SimpleNamespace

import pytest

from tool_orchestrator.llm import adapters
from tool_orchestrator.llm.adapters import (
    AzureOpenAIAdapter,
    OpenAIAdapter,
    OpenRouterAdapter,
    create_adapter,
)
from tool_orchestrator.llm.errors import ProviderRequestError

from conftest import make_config

MESSAGES = [{"role": "user", "content": "hi"}]


def fake_response(content="ok", model="served-model"):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        model=model,
        usage=SimpleNamespace(prompt_tokens=3, completion_tokens=2, total_tokens=5),
    )


@pytest.fixture
def acompletion_calls(monkeypatch):
    calls: list[dict] = []

    async def fake_acompletion(**kwargs):
        calls.append(kwargs)
        return fake_response()

    monkeypatch.setattr(adapters, "acompletion", fake_acompletion)
    return calls


@pytest.mark.asyncio
async def test_openrouter_request_shape(acompletion_calls):
    config = make_config(site_url="https://example.dev", site_name="orchestrator", timeout=30000)

    response = await OpenRouterAdapter(config).complete(MESSAGES, "openai/gpt-4o", 0.2, 256)

    call = acompletion_calls[0]
    assert call["model"] == "openrouter/openai/gpt-4o"
    assert call["api_key"] == "sk-or-test"
    assert call["extra_headers"] == {"HTTP-Referer": "https://example.dev", "X-Title": "orchestrator"}
    assert call["timeout"] == 30
    assert call["num_retries"] == 0
    assert (call["temperature"], call["max_tokens"]) == (0.2, 256)
    assert response.content == "ok"
    assert response.model == "served-model"
    assert response.usage.total_tokens == 5


@pytest.mark.asyncio
async def test_openai_request_shape(acompletion_calls):
    config = make_config(provider="openai", api_key="sk-test", base_url="https://api.openai.com/v1")

    await OpenAIAdapter(config).complete(MESSAGES, "gpt-4o", 0.1, 100)

    assert acompletion_calls[0]["model"] == "openai/gpt-4o"
    assert "extra_headers" not in acompletion_calls[0]


@pytest.mark.asyncio
async def test_openai_prefixed_model_is_not_doubled(acompletion_calls):
    config = make_config(provider="openai", api_key="sk-test", base_url="https://api.openai.com/v1")

    await OpenAIAdapter(config).complete(MESSAGES, "openai/gpt-4o", 0.1, 100)

    assert acompletion_calls[0]["model"] == "openai/gpt-4o"


@pytest.mark.asyncio
async def test_azure_routes_by_deployment(acompletion_calls):
    config = make_config(
        provider="azure",
        api_key="az-key",
        azure_endpoint="https://my.openai.azure.com",
        azure_deployment="gpt4-prod",
        azure_api_version="2024-08-01-preview",
    )

    await AzureOpenAIAdapter(config).complete(MESSAGES, "ignored-model", 0.1, 100)

    call = acompletion_calls[0]
    assert call["model"] == "azure/gpt4-prod"
    assert call["api_base"] == "https://my.openai.azure.com"
    assert call["api_version"] == "2024-08-01-preview"


@pytest.mark.asyncio
async def test_provider_failure_is_wrapped(monkeypatch):
    async def broken(**kwargs):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(adapters, "acompletion", broken)

    with pytest.raises(ProviderRequestError) as exc_info:
        await OpenRouterAdapter(make_config()).complete(MESSAGES, "m", 0.1, 10)

    assert exc_info.value.retryable is True
    assert isinstance(exc_info.value.cause, RuntimeError)
    assert "调用异常" in str(exc_info.value)
    assert "connection reset" in str(exc_info.value)


@pytest.mark.asyncio
async def test_empty_choices_yield_empty_content(monkeypatch):
    async def empty(**kwargs):
        return SimpleNamespace(choices=[], model=None, usage=None)

    monkeypatch.setattr(adapters, "acompletion", empty)

    response = await OpenRouterAdapter(make_config()).complete(MESSAGES, "m", 0.1, 10)

    assert response.content == ""
    assert response.model == "m"
    assert response.usage is None


def test_create_adapter_by_provider():
    assert isinstance(create_adapter(make_config()), OpenRouterAdapter)
    assert isinstance(create_adapter(make_config(provider="openai")), OpenAIAdapter)
