"""
AI 供应商配置解析：Settings → ProviderConfig

支持 OpenRouter（默认）、Azure OpenAI、OpenAI 直连三种供应商。
- prompt-only 模式下允许缺失凭据（只返回 Prompt，不调用 AI）
- full 模式下一次性校验当前供应商的全部必填字段，缺几个报几个
"""

from dataclasses import dataclass, field
from typing import Literal

import structlog
from pydantic import BaseModel, ValidationError

from tool_orchestrator.config import Settings, load_settings
from tool_orchestrator.llm.errors import ConfigurationError

log = structlog.get_logger()

SUPPORTED_PROVIDERS = ("openrouter", "azure", "openai")
EXECUTION_MODES = ("full", "prompt-only")

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENROUTER_MODEL = "anthropic/claude-3-sonnet"
DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_AZURE_MODEL = "gpt-4"

# 数值参数合法区间
TEMPERATURE_RANGE = (0.0, 1.0)
MAX_TOKENS_RANGE = (100, 8000)
TIMEOUT_RANGE_MS = (1000, 300000)

# 供应商 → (展示名称, 必填字段 → 环境变量名)
_PROVIDER_REQUIREMENTS: dict[str, tuple[str, dict[str, str]]] = {
    "openrouter": ("OpenRouter", {"api_key": "OPENROUTER_API_KEY"}),
    "openai": ("OpenAI", {"api_key": "OPENAI_API_KEY"}),
    "azure": (
        "Azure AI Foundry",
        {
            "azure_endpoint": "AZURE_OPENAI_ENDPOINT",
            "api_key": "AZURE_OPENAI_API_KEY",
            "azure_deployment": "AZURE_OPENAI_DEPLOYMENT",
        },
    ),
}


class ProviderConfig(BaseModel):
    """解析后的供应商配置（进程内加载一次，检测到漂移时整体替换）"""

    provider: Literal["openrouter", "azure", "openai"]
    api_key: str = ""
    base_url: str = ""
    default_model: str
    execution_mode: Literal["full", "prompt-only"] = "full"
    timeout: int = 60000  # 毫秒
    max_retries: int = 3
    temperature: float = 0.1
    max_tokens: int = 4000
    cache_enabled: bool = True
    cache_ttl: int = 3600  # 秒

    # OpenRouter 排行榜归属头（可选）
    site_url: str | None = None
    site_name: str | None = None

    # Azure 专属
    azure_endpoint: str | None = None
    azure_deployment: str | None = None
    azure_api_version: str | None = None


# ── 模型目录 ──


@dataclass(frozen=True)
class ModelInfo:
    """可选模型的成本与用途描述"""

    id: str
    name: str
    provider: str
    input_cost: float  # 每 1K token 输入成本
    output_cost: float  # 每 1K token 输出成本
    context_length: int
    use_cases: tuple[str, ...] = field(default_factory=tuple)


AVAILABLE_MODELS: dict[str, ModelInfo] = {
    "claude-3-sonnet": ModelInfo(
        id="anthropic/claude-3-sonnet",
        name="Claude 3 Sonnet",
        provider="anthropic",
        input_cost=3.0,
        output_cost=15.0,
        context_length=200000,
        use_cases=("analysis", "reasoning", "code-generation"),
    ),
    "claude-3-haiku": ModelInfo(
        id="anthropic/claude-3-haiku",
        name="Claude 3 Haiku",
        provider="anthropic",
        input_cost=0.25,
        output_cost=1.25,
        context_length=200000,
        use_cases=("quick-analysis", "simple-tasks"),
    ),
    "gpt-4o": ModelInfo(
        id="openai/gpt-4o",
        name="GPT-4 Omni",
        provider="openai",
        input_cost=5.0,
        output_cost=15.0,
        context_length=128000,
        use_cases=("analysis", "reasoning", "creative-tasks"),
    ),
    "gpt-4o-mini": ModelInfo(
        id="openai/gpt-4o-mini",
        name="GPT-4 Omni Mini",
        provider="openai",
        input_cost=0.15,
        output_cost=0.6,
        context_length=128000,
        use_cases=("quick-analysis", "simple-tasks", "cost-effective"),
    ),
}


def _normalize_model_id(model_id: str) -> str:
    return model_id.replace("anthropic/", "").replace("openai/", "")


def get_model_config(model_id: str) -> ModelInfo | None:
    """按模型 ID 查询目录（兼容带 anthropic/ openai/ 前缀的写法）"""
    return AVAILABLE_MODELS.get(_normalize_model_id(model_id))


def get_recommended_model(use_case: str, cost_sensitive: bool = False) -> str:
    """按用途推荐模型；cost_sensitive 时选输入+输出成本最低的"""
    suitable = [
        m for m in AVAILABLE_MODELS.values()
        if use_case in m.use_cases or "analysis" in m.use_cases
    ]
    if not suitable:
        return DEFAULT_OPENROUTER_MODEL

    if cost_sensitive:
        suitable.sort(key=lambda m: m.input_cost + m.output_cost)

    return suitable[0].id


# ── 解析与校验 ──


def resolve_provider_config(settings: Settings) -> ProviderConfig:
    """按 AI_PROVIDER 组装供应商配置（不做必填校验）"""
    provider = settings.AI_PROVIDER.strip().lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise ConfigurationError(
            f"不支持的 AI_PROVIDER: {settings.AI_PROVIDER}，"
            f"可选值: {', '.join(SUPPORTED_PROVIDERS)}",
            provider=provider,
        )

    execution_mode = settings.EXECUTION_MODE.strip().lower()
    if execution_mode not in EXECUTION_MODES:
        raise ConfigurationError(
            f"不支持的 EXECUTION_MODE: {settings.EXECUTION_MODE}，"
            f"可选值: {', '.join(EXECUTION_MODES)}",
            provider=provider,
        )

    common = {
        "provider": provider,
        "execution_mode": execution_mode,
        "timeout": settings.AI_TIMEOUT,
        "max_retries": settings.AI_MAX_RETRIES,
        "temperature": settings.AI_TEMPERATURE,
        "max_tokens": settings.AI_MAX_TOKENS,
        "cache_enabled": settings.AI_CACHE_ENABLED,
        "cache_ttl": settings.AI_CACHE_TTL,
    }

    if provider == "azure":
        endpoint = settings.AZURE_OPENAI_ENDPOINT
        deployment = settings.AZURE_OPENAI_DEPLOYMENT
        # Azure 调用使用部署名而不是模型名
        base_url = (
            f"{endpoint.rstrip('/')}/openai/deployments/{deployment}" if endpoint else ""
        )
        return ProviderConfig(
            **common,
            api_key=settings.AZURE_OPENAI_API_KEY,
            base_url=base_url,
            default_model=deployment or settings.AI_MODEL or DEFAULT_AZURE_MODEL,
            azure_endpoint=endpoint or None,
            azure_deployment=deployment or None,
            azure_api_version=settings.AZURE_OPENAI_API_VERSION or None,
        )

    if provider == "openai":
        return ProviderConfig(
            **common,
            api_key=settings.OPENAI_API_KEY,
            base_url=OPENAI_BASE_URL,
            default_model=settings.AI_MODEL or DEFAULT_OPENAI_MODEL,
        )

    return ProviderConfig(
        **common,
        api_key=settings.OPENROUTER_API_KEY,
        base_url=OPENROUTER_BASE_URL,
        default_model=settings.AI_MODEL or DEFAULT_OPENROUTER_MODEL,
        site_url=settings.SITE_URL or None,
        site_name=settings.SITE_NAME or None,
    )


def validate_provider_config(config: ProviderConfig) -> None:
    """
    full 模式下校验当前供应商的必填字段。

    Raises:
        ConfigurationError: 一次性列出所有缺失字段，并给出切换供应商 / prompt-only 的建议
    """
    if config.execution_mode != "full":
        return

    label, required = _PROVIDER_REQUIREMENTS[config.provider]
    missing = [env for attr, env in required.items() if not getattr(config, attr)]
    if not missing:
        return

    others = [p for p in SUPPORTED_PROVIDERS if p != config.provider]
    switch_hint = " 或 ".join(f"AI_PROVIDER={p}" for p in others)
    message = (
        f"{label} 缺少必需的环境变量: {', '.join(missing)}。"
        f"请补充上述配置，或设置 {switch_hint} 切换供应商，"
        "或设置 EXECUTION_MODE=prompt-only 关闭 AI 执行。"
    )
    if config.provider == "openrouter":
        message += " OpenRouter API Key 可在 https://openrouter.ai/keys 获取。"

    raise ConfigurationError(message, provider=config.provider, missing_fields=missing)


def validate_common_params(config: ProviderConfig) -> None:
    """与供应商无关的数值参数校验"""
    if (
        config.provider == "openrouter"
        and get_model_config(config.default_model) is None
    ):
        log.warning("未知模型，按原样透传给 OpenRouter", model=config.default_model)

    low, high = TEMPERATURE_RANGE
    if not low <= config.temperature <= high:
        raise ConfigurationError(
            f"temperature 必须在 {low} 到 {high} 之间，当前值: {config.temperature}",
            provider=config.provider,
        )

    low, high = MAX_TOKENS_RANGE
    if not low <= config.max_tokens <= high:
        raise ConfigurationError(
            f"max_tokens 必须在 {low} 到 {high} 之间，当前值: {config.max_tokens}",
            provider=config.provider,
        )

    low, high = TIMEOUT_RANGE_MS
    if not low <= config.timeout <= high:
        raise ConfigurationError(
            f"timeout 必须在 {low}ms 到 {high}ms 之间，当前值: {config.timeout}",
            provider=config.provider,
        )


def load_provider_config(settings: Settings | None = None) -> ProviderConfig:
    """读取最新配置 → 解析 → 必填校验"""
    try:
        settings = settings or load_settings()
    except ValidationError as e:
        raise ConfigurationError(f"环境变量格式非法: {e}", cause=e) from e

    config = resolve_provider_config(settings)
    validate_provider_config(config)
    return config


def is_execution_enabled(config: ProviderConfig) -> bool:
    """full 模式且凭据非空时才真正调用 AI"""
    return config.execution_mode == "full" and bool(config.api_key)
