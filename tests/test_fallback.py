import pytest

from tool_orchestrator.llm.errors import ConfigurationError, ProviderRequestError
from tool_orchestrator.llm.executor import PromptExecutor
from tool_orchestrator.llm.fallback import execute_prompt_with_fallback
from tool_orchestrator.llm.schemas import ExecutionOptions

from conftest import FakeAdapter, make_config


@pytest.mark.asyncio
async def test_unavailable_returns_original_prompt(build_executor):
    executor, adapter = build_executor(config=make_config(api_key=""))

    result = await execute_prompt_with_fallback(
        executor, "Draft an ADR for caching", instructions="Use MADR format"
    )

    assert result.mode == "prompt-only"
    assert result.content == "Draft an ADR for caching"
    assert result.instructions == "Use MADR format"
    assert result.result is None
    assert adapter.calls == []


@pytest.mark.asyncio
async def test_exhausted_retries_degrade_instead_of_raising(build_executor):
    executor, adapter = build_executor(ProviderRequestError("timeout"), config=make_config(max_retries=1))

    result = await execute_prompt_with_fallback(executor, "Draft an ADR")

    assert result.mode == "prompt-only"
    assert result.content == "Draft an ADR"
    assert "timeout" in result.reason
    assert len(adapter.calls) == 2


@pytest.mark.asyncio
async def test_full_mode_uses_instructions_as_system_prompt(build_executor):
    executor, adapter = build_executor("# ADR-001")

    result = await execute_prompt_with_fallback(executor, "Draft an ADR", instructions="Use MADR format")

    assert result.mode == "full"
    assert result.content == "# ADR-001"
    assert result.result.content == "# ADR-001"
    assert adapter.calls[0]["messages"][0] == {"role": "system", "content": "Use MADR format"}


@pytest.mark.asyncio
async def test_explicit_system_prompt_takes_precedence(build_executor):
    executor, adapter = build_executor("ok")

    await execute_prompt_with_fallback(
        executor,
        "Draft an ADR",
        instructions="Use MADR format",
        options=ExecutionOptions(system_prompt="Be terse"),
    )

    assert adapter.calls[0]["messages"][0]["content"] == "Be terse"


@pytest.mark.asyncio
async def test_key_removed_from_environment_degrades(fake_sleep, clock):
    state = {"fail": False}
    adapter = FakeAdapter("ok")

    def loader():
        if state["fail"]:
            raise ConfigurationError("OPENROUTER_API_KEY missing")
        return make_config()

    executor = PromptExecutor(
        config_loader=loader,
        adapter_factory=lambda cfg: adapter,
        sleep=fake_sleep,
        clock=clock,
    )
    state["fail"] = True

    assert executor.is_available() is False
    result = await execute_prompt_with_fallback(executor, "Draft an ADR", instructions="Use MADR format")

    assert result.mode == "prompt-only"
    assert result.content == "Draft an ADR"
    assert result.instructions == "Use MADR format"
    assert adapter.calls == []


@pytest.mark.asyncio
async def test_other_errors_propagate(build_executor):
    executor, _ = build_executor(ValueError("bad caller input"))

    with pytest.raises(ValueError):
        await execute_prompt_with_fallback(executor, "Draft an ADR")
