"""
供应商适配器：屏蔽 OpenRouter / OpenAI / Azure OpenAI 的 API 差异

三家都走 LiteLLM acompletion，请求形状统一为
{model|deployment, messages, temperature, max_tokens}。
单次请求失败统一包装为 ProviderRequestError，由执行器决定是否重试。
"""

import structlog
from litellm import acompletion
from litellm.exceptions import (
    APIConnectionError,
    APIError,
    AuthenticationError,
    RateLimitError,
    Timeout,
)

from tool_orchestrator.llm.errors import ConfigurationError, ProviderRequestError
from tool_orchestrator.llm.provider_config import ProviderConfig
from tool_orchestrator.llm.schemas import CompletionResponse, TokenUsage

log = structlog.get_logger()

# 按顺序匹配：Timeout 需排在 APIConnectionError 之前
_FAILURE_REASONS: tuple[tuple[type[Exception], str], ...] = (
    (AuthenticationError, "认证失败，请检查 API Key 配置"),
    (RateLimitError, "请求限流"),
    (Timeout, "调用超时"),
    (APIConnectionError, "服务连接失败"),
    (APIError, "API 返回错误"),
)


def _describe_failure(error: Exception) -> str:
    for error_type, reason in _FAILURE_REASONS:
        if isinstance(error, error_type):
            return reason
    return "调用异常"


class ProviderAdapter:
    """供应商适配器基类：子类只负责拼装各自的 LiteLLM 参数"""

    provider_name = "base"

    def __init__(self, config: ProviderConfig):
        self.config = config

    def _request_kwargs(self, model: str) -> dict:
        raise NotImplementedError

    async def complete(
        self,
        messages: list[dict],
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> CompletionResponse:
        """
        发起一次 chat completion（不重试）。

        Raises:
            ProviderRequestError: 鉴权 / 限流 / 超时 / 连接 / API 错误
        """
        timeout = self.config.timeout / 1000
        kwargs: dict = {
            **self._request_kwargs(model),
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "timeout": timeout,
            # 重试由执行器统一控制
            "num_retries": 0,
        }

        log.debug(
            "AI 调用开始",
            provider=self.provider_name,
            model=kwargs["model"],
            msg_count=len(messages),
        )

        try:
            response = await acompletion(**kwargs)
        except Exception as e:
            reason = _describe_failure(e)
            log.warning(
                "AI 请求失败",
                provider=self.provider_name,
                reason=reason,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise ProviderRequestError(f"AI {reason}: {e}", cause=e) from e

        choice = response.choices[0] if response.choices else None
        usage = getattr(response, "usage", None)

        return CompletionResponse(
            content=(choice.message.content if choice else None) or "",
            model=response.model or model,
            usage=TokenUsage(
                prompt_tokens=usage.prompt_tokens or 0,
                completion_tokens=usage.completion_tokens or 0,
                total_tokens=usage.total_tokens or 0,
            ) if usage else None,
        )


class OpenRouterAdapter(ProviderAdapter):
    provider_name = "openrouter"

    def _request_kwargs(self, model: str) -> dict:
        headers = {}
        if self.config.site_url:
            headers["HTTP-Referer"] = self.config.site_url
        if self.config.site_name:
            headers["X-Title"] = self.config.site_name

        kwargs = {
            "model": f"openrouter/{model}",
            "api_key": self.config.api_key,
            "api_base": self.config.base_url,
        }
        if headers:
            kwargs["extra_headers"] = headers
        return kwargs


class OpenAIAdapter(ProviderAdapter):
    provider_name = "openai"

    def _request_kwargs(self, model: str) -> dict:
        return {
            "model": f"openai/{model.removeprefix('openai/')}",
            "api_key": self.config.api_key,
            "api_base": self.config.base_url,
        }


class AzureOpenAIAdapter(ProviderAdapter):
    """Azure 按部署名路由，忽略调用方传入的模型名"""

    provider_name = "azure"

    def _request_kwargs(self, model: str) -> dict:
        return {
            "model": f"azure/{self.config.azure_deployment}",
            "api_key": self.config.api_key,
            "api_base": self.config.azure_endpoint,
            "api_version": self.config.azure_api_version,
        }


_ADAPTERS: dict[str, type[ProviderAdapter]] = {
    "openrouter": OpenRouterAdapter,
    "openai": OpenAIAdapter,
    "azure": AzureOpenAIAdapter,
}


def create_adapter(config: ProviderConfig) -> ProviderAdapter:
    """按 provider 选择适配器"""
    adapter_cls = _ADAPTERS.get(config.provider)
    if adapter_cls is None:
        raise ConfigurationError(f"不支持的 AI 供应商: {config.provider}", provider=config.provider)

    log.info("AI 适配器初始化", provider=config.provider, model=config.default_model)
    return adapter_cls(config)
