"""
AI 执行链路的异常体系

- ConfigurationError：配置缺失 / 非法，启动即失败，不可重试
- AIUnavailableError：AI 执行未启用或配置不可用，调用方应降级
- AIExecutionError：供应商调用在重试耗尽后仍失败，包装最后一次底层异常
- JSONParseError：供应商有返回，但结构化输出解析或 Schema 校验失败
- ProviderRequestError：单次供应商请求失败（内部使用，唯一可重试的类型）
"""


class AIError(Exception):
    """AI 执行链路的应用级异常基类"""

    code = "AI_ERROR"
    retryable = False

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class ConfigurationError(AIError):
    """配置错误：一次性列出当前供应商缺失的全部必填字段"""

    code = "AI_CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        missing_fields: list[str] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause=cause)
        self.provider = provider
        self.missing_fields = missing_fields or []


class AIUnavailableError(AIError):
    code = "AI_UNAVAILABLE"


class AIExecutionError(AIError):
    code = "AI_EXECUTION_FAILED"


class JSONParseError(AIError):
    """结构化输出解析失败（与传输层失败严格区分）"""

    code = "AI_JSON_PARSE_ERROR"

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        raw_preview: str = "",
        cause: Exception | None = None,
    ):
        super().__init__(message, cause=cause)
        self.errors = errors or []
        self.raw_preview = raw_preview


class ProviderRequestError(AIError):
    """单次供应商请求失败（鉴权 / 限流 / 超时 / 连接 / API 错误）"""

    code = "AI_PROVIDER_REQUEST_FAILED"
    retryable = True
