"""
Prompt 执行器：缓存 → 重试 → 供应商适配器

由宿主进程显式构造并注入使用方（不做全局单例）：
- 每次执行前重新读取配置，仅当 api_key / execution_mode / default_model 变化时重建适配器
- 启用缓存时先查缓存，命中直接返回 cached=True 的副本，不发起网络请求
- 未命中时串行重试，退避 min(1s·2^(n-1), 10s)，耗尽后抛 AIExecutionError
- 结构化输出在此基础上强制 JSON 系统提示词，并做提取 / 修复 / Schema 校验
"""

import asyncio
import hashlib
import json
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import BaseModel

from tool_orchestrator.cache.store import CacheEntry, CacheStore, InMemoryCacheStore
from tool_orchestrator.llm.adapters import ProviderAdapter, create_adapter
from tool_orchestrator.llm.errors import (
    AIExecutionError,
    AIUnavailableError,
    ConfigurationError,
    ProviderRequestError,
)
from tool_orchestrator.llm.json_extract import parse_json_response, validate_against_schema
from tool_orchestrator.llm.provider_config import (
    ProviderConfig,
    is_execution_enabled,
    load_provider_config,
    validate_common_params,
)
from tool_orchestrator.llm.retry import (
    RetryExhaustedError,
    RetryPolicy,
    SleepFn,
    exponential_backoff,
    with_retry,
)
from tool_orchestrator.llm.schemas import (
    CompletionResponse,
    ExecutionMetadata,
    ExecutionOptions,
    ExecutionResult,
    StructuredResult,
)

log = structlog.get_logger()

STRUCTURED_TEMPERATURE = 0.1

JSON_ONLY_INSTRUCTION = (
    "只输出合法的 JSON，不要包含 Markdown 代码块标记、解释文字或任何 JSON 之外的内容。"
)
DEFAULT_JSON_SYSTEM_PROMPT = (
    "你是一个只返回结构化数据的助手。" + JSON_ONLY_INSTRUCTION
)

# 配置漂移检测比较的字段
_SALIENT_FIELDS = ("api_key", "execution_mode", "default_model")


class PromptExecutor:
    """AI Prompt 执行入口（供应商无关）"""

    def __init__(
        self,
        config: ProviderConfig | None = None,
        *,
        config_loader: Callable[[], ProviderConfig] | None = None,
        cache: CacheStore | None = None,
        adapter_factory: Callable[[ProviderConfig], ProviderAdapter] = create_adapter,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            config: 初始配置；不传则通过 config_loader（默认读取环境变量）加载
            config_loader: 配置漂移检测的数据源；显式传入 config 且不传 loader 时不做漂移检测
            cache: 缓存实现，默认进程内 dict
            adapter_factory: 适配器工厂（测试注入假适配器）
            sleep: 重试等待函数（测试注入假时钟）
            clock: 时间源（epoch 秒）
        """
        if config is None:
            config_loader = config_loader or load_provider_config
            config = config_loader()

        self._config = config
        self._config_loader = config_loader
        self._cache: CacheStore = cache if cache is not None else InMemoryCacheStore(clock=clock)
        self._adapter_factory = adapter_factory
        self._sleep = sleep
        self._clock = clock

        self._adapter: ProviderAdapter | None = None
        self._unavailable_reason: str | None = None
        self._hits = 0
        self._misses = 0

        self._init_adapter()

    # ── 适配器生命周期 ──

    def _init_adapter(self) -> None:
        """按当前配置（重新）创建适配器；失败时记录原因，执行时抛 AIUnavailableError"""
        self._adapter = None
        self._unavailable_reason = None

        if not is_execution_enabled(self._config):
            self._unavailable_reason = (
                "AI 执行已关闭（EXECUTION_MODE=prompt-only）"
                if self._config.execution_mode != "full"
                else f"{self._config.provider} 未配置 API Key"
            )
            log.info("AI 执行未启用", reason=self._unavailable_reason)
            return

        try:
            validate_common_params(self._config)
            self._adapter = self._adapter_factory(self._config)
        except ConfigurationError as e:
            log.error("AI 适配器初始化失败", provider=self._config.provider, error=str(e))
            self._unavailable_reason = str(e)

    def _reload_config_if_needed(self) -> None:
        """
        重新读取配置，关键字段变化时重建适配器。

        Raises:
            ConfigurationError: 最新配置缺失必填字段
        """
        if self._config_loader is None:
            return

        fresh = self._config_loader()
        changed = [f for f in _SALIENT_FIELDS if getattr(fresh, f) != getattr(self._config, f)]
        if not changed:
            return

        log.info("检测到 AI 配置变更，重新初始化适配器", changed_fields=changed)
        self._config = fresh
        self._init_adapter()

    def _require_adapter(self) -> ProviderAdapter:
        if self._adapter is None or not is_execution_enabled(self._config):
            raise AIUnavailableError(
                f"AI 执行不可用: {self._unavailable_reason or '适配器未初始化'}"
            )
        return self._adapter

    def is_available(self) -> bool:
        """适配器已初始化、full 模式且 API Key 非空"""
        try:
            self._reload_config_if_needed()
        except ConfigurationError as e:
            log.warning("AI 配置加载失败，视为不可用", error=str(e))
            return False
        return self._adapter is not None and is_execution_enabled(self._config)

    # ── 执行 ──

    async def execute_prompt(
        self,
        prompt: str,
        options: ExecutionOptions | None = None,
    ) -> ExecutionResult:
        """
        执行一次 Prompt。

        Raises:
            ConfigurationError: 重新加载配置时发现缺失必填字段
            AIUnavailableError: AI 执行未启用或适配器初始化失败
            AIExecutionError: 重试耗尽后仍失败，cause 为最后一次底层异常
        """
        options = options or ExecutionOptions()
        self._reload_config_if_needed()
        adapter = self._require_adapter()
        config = self._config

        model = options.model or config.default_model
        cache_key = self._cache_key(prompt, model, options)

        if config.cache_enabled:
            cached = await self._lookup_cache(cache_key)
            if cached is not None:
                return cached

        messages: list[dict] = []
        if options.system_prompt:
            messages.append({"role": "system", "content": options.system_prompt})
        messages.append({"role": "user", "content": prompt})

        temperature = options.temperature if options.temperature is not None else config.temperature
        max_tokens = options.max_tokens or config.max_tokens

        async def attempt(retry_count: int) -> tuple[CompletionResponse, int]:
            response = await adapter.complete(
                messages=messages,
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
            )
            return response, retry_count

        start = self._clock()
        try:
            response, retry_count = await with_retry(
                attempt,
                RetryPolicy(max_retries=config.max_retries, backoff=exponential_backoff()),
                retry_on=(ProviderRequestError,),
                sleep=self._sleep,
            )
        except RetryExhaustedError as e:
            log.error(
                "AI 执行失败，重试已耗尽",
                provider=config.provider,
                model=model,
                attempts=e.attempts,
                error=str(e.last_error),
            )
            raise AIExecutionError(
                f"AI 执行在 {e.attempts} 次尝试后失败: {e.last_error}",
                cause=e.last_error,
            ) from e.last_error

        result = ExecutionResult(
            content=response.content,
            model=response.model,
            usage=response.usage,
            metadata=ExecutionMetadata(
                execution_time=int((self._clock() - start) * 1000),
                cached=False,
                retry_count=retry_count,
                timestamp=datetime.now(timezone.utc).isoformat(),
            ),
        )

        if config.cache_enabled:
            await self._cache.set(
                cache_key,
                CacheEntry(result=result, expiry=self._clock() + config.cache_ttl),
            )

        log.info(
            "AI 执行完成",
            model=result.model,
            retry_count=retry_count,
            execution_time_ms=result.metadata.execution_time,
            tokens=result.usage.total_tokens if result.usage else 0,
        )
        return result

    async def execute_structured_prompt(
        self,
        prompt: str,
        schema: type[BaseModel] | None = None,
        options: ExecutionOptions | None = None,
    ) -> StructuredResult:
        """
        执行 Prompt 并解析 JSON 输出。

        Raises:
            JSONParseError: 有返回但解析或 Schema 校验失败（与 AIExecutionError 严格区分）
        """
        options = options or ExecutionOptions()
        system_prompt = (
            f"{options.system_prompt}\n\n{JSON_ONLY_INSTRUCTION}"
            if options.system_prompt
            else DEFAULT_JSON_SYSTEM_PROMPT
        )
        structured_options = options.model_copy(
            update={
                "system_prompt": system_prompt,
                "temperature": (
                    options.temperature
                    if options.temperature is not None
                    else STRUCTURED_TEMPERATURE
                ),
            }
        )

        result = await self.execute_prompt(prompt, structured_options)
        data: Any = parse_json_response(result.content)
        if schema is not None:
            data = validate_against_schema(data, schema, raw=result.content)

        return StructuredResult(data=data, raw=result)

    # ── 缓存 ──

    @staticmethod
    def _cache_key(prompt: str, model: str, options: ExecutionOptions) -> str:
        payload = json.dumps(
            {
                "prompt": prompt,
                "model": model,
                "options": options.model_dump(exclude_none=True),
            },
            sort_keys=True,
            ensure_ascii=False,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    async def _lookup_cache(self, cache_key: str) -> ExecutionResult | None:
        entry = await self._cache.get(cache_key)
        if entry is not None and entry.is_expired(self._clock()):
            await self._cache.delete(cache_key)
            entry = None

        if entry is None:
            self._misses += 1
            return None

        self._hits += 1
        log.debug("AI 执行缓存命中", cache_key=cache_key[:12])
        return entry.result.as_cached()

    async def clear_cache(self) -> None:
        await self._cache.clear()
        self._hits = 0
        self._misses = 0
        log.info("AI 执行缓存已清空")

    async def get_cache_stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "size": await self._cache.size(),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total, 4) if total else 0.0,
        }

    # ── 配置 ──

    def get_config(self) -> ProviderConfig:
        return self._config.model_copy()

    def update_config(self, **changes: Any) -> None:
        """
        局部覆盖当前配置并重建适配器。

        注意：若设置了 config_loader，下一次执行前的漂移检测仍会以环境变量为准。
        """
        self._config = self._config.model_copy(update=changes)
        log.info("AI 配置已更新", fields=sorted(changes))
        self._init_adapter()
