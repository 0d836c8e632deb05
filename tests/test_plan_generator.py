import pytest

from tool_orchestrator.llm.errors import AIUnavailableError, JSONParseError
from tool_orchestrator.planner.generator import PlanGenerator
from tool_orchestrator.planner.safety import LowConfidenceError, PlanTooComplexError
from tool_orchestrator.schemas import PlanConstraints, ProjectContext

from conftest import fenced, make_config, make_steps, plan_payload

CONTEXT = ProjectContext(project_path="/repo", has_adrs=True, project_type="api")


@pytest.mark.asyncio
async def test_generates_validated_plan(build_executor):
    executor, adapter = build_executor(fenced(plan_payload()))
    generator = PlanGenerator(executor)

    plan = await generator.generate_plan("analyze the repo and suggest ADRs", CONTEXT)

    assert plan.plan_id == "plan-1"
    assert plan.tool_chain() == ["analyze_project_ecosystem", "suggest_adrs"]

    call = adapter.calls[0]
    assert call["model"] == "anthropic/claude-3-sonnet"
    assert call["temperature"] == 0.1
    system_prompt = call["messages"][0]["content"]
    assert "- smart_git_push: Intelligent release readiness analysis and git operations" in system_prompt
    assert "/repo" in system_prompt
    assert "docs/adrs" in system_prompt
    assert '"analyze the repo and suggest ADRs"' in call["messages"][1]["content"]


@pytest.mark.asyncio
async def test_step_limit_enforced_on_ai_plan(build_executor):
    executor, _ = build_executor(fenced(plan_payload(steps=make_steps(5))))
    generator = PlanGenerator(executor)

    with pytest.raises(PlanTooComplexError):
        await generator.generate_plan("score everything", CONTEXT, PlanConstraints(max_steps=3))


@pytest.mark.asyncio
async def test_low_confidence_plan_rejected(build_executor):
    executor, _ = build_executor(fenced(plan_payload(confidence=0.4)))

    with pytest.raises(LowConfidenceError):
        await PlanGenerator(executor).generate_plan("do something vague", CONTEXT)


@pytest.mark.asyncio
async def test_unavailable_ai_raises(build_executor):
    executor, adapter = build_executor(config=make_config(execution_mode="prompt-only"))

    with pytest.raises(AIUnavailableError):
        await PlanGenerator(executor).generate_plan("plan it", CONTEXT)
    assert adapter.calls == []


@pytest.mark.asyncio
async def test_malformed_plan_is_parse_error(build_executor):
    payload = plan_payload()
    del payload["expectedOutputs"]
    executor, _ = build_executor(fenced(payload))

    with pytest.raises(JSONParseError) as exc_info:
        await PlanGenerator(executor).generate_plan("plan it", CONTEXT)

    assert any(e.startswith("expectedOutputs") for e in exc_info.value.errors)


@pytest.mark.asyncio
async def test_step_parameters_checked_against_tool_shape(build_executor):
    steps = [
        {
            "stepId": "step1",
            "toolName": "manage_todo",
            "parameters": {"todoPath": "TODO.md"},
            "description": "整理 TODO",
        },
        {
            "stepId": "step2",
            "toolName": "smart_git_push",
            "parameters": {"dryRun": "maybe"},
            "description": "推送",
            "dependsOn": ["step1"],
        },
    ]
    executor, _ = build_executor(fenced(plan_payload(steps=steps)))

    with pytest.raises(JSONParseError) as exc_info:
        await PlanGenerator(executor).generate_plan("tidy and push", CONTEXT)

    errors = exc_info.value.errors
    assert errors[0].startswith("steps[0].parameters.operation:")
    assert errors[1].startswith("steps[1].parameters.dryRun:")


@pytest.mark.asyncio
async def test_unknown_parameters_allowed_for_known_tools(build_executor):
    steps = make_steps(1, tool="smart_git_push")
    steps[0]["parameters"] = {"dryRun": True, "futureFlag": "on"}
    executor, _ = build_executor(fenced(plan_payload(steps=steps)))

    plan = await PlanGenerator(executor).generate_plan("push", CONTEXT)

    params = PlanGenerator(executor).catalog.parse_parameters("smart_git_push", plan.steps[0].parameters)
    assert params.dry_run is True
    assert params.model_extra == {"futureFlag": "on"}


@pytest.mark.asyncio
async def test_openai_provider_uses_configured_model(build_executor):
    config = make_config(provider="openai", default_model="gpt-4o", base_url="https://api.openai.com/v1")
    executor, adapter = build_executor(fenced(plan_payload()), config=config)

    await PlanGenerator(executor).generate_plan("plan it", CONTEXT)

    assert adapter.calls[0]["model"] == "gpt-4o"


def test_build_prompts_include_constraints_and_instructions(build_executor):
    executor, _ = build_executor()
    prompts = PlanGenerator(executor).build_prompts(
        "ship v2",
        CONTEXT,
        PlanConstraints(max_steps=4, exclude_tools=["smart_git_push"], time_limit="10m"),
        "skip the security scan",
    )

    assert "analyze_project_ecosystem" in prompts.system
    assert "api" in prompts.system
    assert '"ship v2"' in prompts.user
    assert "skip the security scan" in prompts.user
    assert "4" in prompts.user
    assert "smart_git_push" in prompts.user
    assert "10m" in prompts.user
