"""
计划记录：发后即忘，不阻塞主请求，记录失败只打日志

宿主可实现 PlanRecorder 接入知识图谱 / 数据库；
InMemoryPlanRecorder 只在进程内保留最近 max_records 条（不跨重启），供测试和调试使用。
"""

import asyncio
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from tool_orchestrator.planner.schemas import ToolChainPlan

log = structlog.get_logger()


@dataclass
class PlanRecord:
    request_id: str
    user_request: str
    plan: ToolChainPlan
    recorded_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class PlanRecorder(ABC):
    """计划记录端口"""

    def __init__(self):
        # 持有后台任务引用，避免被 GC 提前回收
        self._pending: set[asyncio.Task] = set()

    @abstractmethod
    async def record_plan(self, record: PlanRecord) -> None:
        ...

    def record_plan_background(self, record: PlanRecord) -> None:
        """发后即忘（与审计日志同模式）"""
        task = asyncio.create_task(self._safe_record(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _safe_record(self, record: PlanRecord) -> None:
        try:
            await self.record_plan(record)
        except Exception as e:
            log.warning(
                "计划记录失败（静默降级）",
                request_id=record.request_id,
                plan_id=record.plan.plan_id,
                error=str(e),
            )

    async def drain(self) -> None:
        """等待所有后台记录任务结束（宿主关闭时调用）"""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


class InMemoryPlanRecorder(PlanRecorder):
    def __init__(self, max_records: int = 100):
        super().__init__()
        self.records: deque[PlanRecord] = deque(maxlen=max_records)

    async def record_plan(self, record: PlanRecord) -> None:
        self.records.append(record)
        log.debug("计划已记录", request_id=record.request_id, plan_id=record.plan.plan_id)
