"""测试公共夹具：假适配器 / 假时钟 / 假 Redis，全程不访问网络"""

import fnmatch
import json

import pytest

from tool_orchestrator.config import Settings
from tool_orchestrator.llm.executor import PromptExecutor
from tool_orchestrator.llm.provider_config import ProviderConfig
from tool_orchestrator.llm.schemas import CompletionResponse, TokenUsage


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """屏蔽宿主机上的 AI_* / *_API_KEY 等环境变量"""
    for name in Settings.model_fields:
        monkeypatch.delenv(name, raising=False)


class FakeAdapter:
    """按顺序返回预设结果；元素为异常时抛出，最后一个元素会被重复使用"""

    def __init__(self, *responses):
        self.responses = list(responses) or ["{}"]
        self.calls: list[dict] = []

    async def complete(self, messages, model, temperature, max_tokens):
        self.calls.append(
            {
                "messages": messages,
                "model": model,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return CompletionResponse(
            content=item,
            model=model,
            usage=TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
        )


class FakeSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """redis.asyncio.Redis 的最小替身（仅覆盖缓存用到的命令）"""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        if ex is not None:
            self.ttls[key] = ex

    async def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)
            self.ttls.pop(key, None)

    async def scan_iter(self, match=None):
        for key in list(self.data):
            if match is None or fnmatch.fnmatch(key, match):
                yield key


def make_config(**overrides) -> ProviderConfig:
    values = {
        "provider": "openrouter",
        "api_key": "sk-or-test",
        "base_url": "https://openrouter.ai/api/v1",
        "default_model": "anthropic/claude-3-sonnet",
        "execution_mode": "full",
        "max_retries": 3,
    }
    values.update(overrides)
    return ProviderConfig(**values)


def plan_payload(**overrides) -> dict:
    """一个能通过全部校验的计划（camelCase，与 AI 返回一致）"""
    payload = {
        "planId": "plan-1",
        "userIntent": "分析项目并生成 ADR",
        "confidence": 0.9,
        "estimatedDuration": "2-5 minutes",
        "steps": [
            {
                "stepId": "step1",
                "toolName": "analyze_project_ecosystem",
                "parameters": {"projectPath": "/repo", "analysisDepth": "comprehensive"},
                "description": "分析技术栈",
                "dependsOn": [],
            },
            {
                "stepId": "step2",
                "toolName": "suggest_adrs",
                "parameters": {"projectPath": "/repo"},
                "description": "建议 ADR",
                "dependsOn": ["step1"],
            },
        ],
        "fallbackSteps": [],
        "prerequisites": [],
        "expectedOutputs": ["技术栈报告", "ADR 建议"],
    }
    payload.update(overrides)
    return payload


def make_steps(count: int, tool: str = "smart_score") -> list[dict]:
    return [
        {
            "stepId": f"step{i}",
            "toolName": tool,
            "parameters": {},
            "description": f"第 {i} 步",
        }
        for i in range(1, count + 1)
    ]


def fenced(payload) -> str:
    return f"```json\n{json.dumps(payload, ensure_ascii=False)}\n```"


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def build_executor(fake_sleep, clock):
    """返回 (executor, adapter)；adapter_factory 每次调用都返回同一个假适配器"""

    def _build(*responses, config: ProviderConfig | None = None, **kwargs):
        adapter = FakeAdapter(*responses)
        executor = PromptExecutor(
            config or make_config(),
            adapter_factory=lambda cfg: adapter,
            sleep=fake_sleep,
            clock=clock,
            **kwargs,
        )
        return executor, adapter

    return _build
