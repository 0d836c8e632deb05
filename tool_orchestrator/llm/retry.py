"""
通用重试组合子：with_retry(operation, policy)

- 只重试 retry_on 指定的异常类型，其它异常立即透传
- 严格串行，两次尝试之间 await 退避延迟
- 首次尝试 + max_retries 次重试全部失败后抛 RetryExhaustedError
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog

log = structlog.get_logger()

T = TypeVar("T")

BackoffFn = Callable[[int], float]
SleepFn = Callable[[float], Awaitable[None]]


def exponential_backoff(base_ms: int = 1000, cap_ms: int = 10000) -> BackoffFn:
    """第 n 次重试前的等待秒数：min(base·2^(n-1), cap)"""

    def backoff(attempt: int) -> float:
        return min(base_ms * 2 ** (attempt - 1), cap_ms) / 1000

    return backoff


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    backoff: BackoffFn = exponential_backoff()


class RetryExhaustedError(Exception):
    """重试次数耗尽，last_error 为最后一次失败的异常"""

    def __init__(self, last_error: Exception, attempts: int):
        super().__init__(f"重试 {attempts} 次后仍失败: {last_error}")
        self.last_error = last_error
        self.attempts = attempts


async def with_retry(
    operation: Callable[[int], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    sleep: SleepFn = asyncio.sleep,
) -> T:
    """
    串行执行 operation(retry_count)，失败后按 policy 退避重试。

    Args:
        operation: 接收当前重试序号（首次为 0）的异步函数
        policy: 最大重试次数 + 退避函数
        retry_on: 可重试的异常类型
        sleep: 注入的等待函数（测试用假时钟替换）

    Raises:
        RetryExhaustedError: 总计 max_retries + 1 次尝试全部失败
    """
    retry_count = 0
    while True:
        try:
            return await operation(retry_count)
        except retry_on as e:
            if retry_count >= policy.max_retries:
                raise RetryExhaustedError(e, retry_count + 1) from e

            retry_count += 1
            delay = policy.backoff(retry_count)
            log.warning(
                "调用失败，准备重试",
                attempt=retry_count,
                max_retries=policy.max_retries,
                delay_s=delay,
                error=str(e),
            )
            await sleep(delay)
