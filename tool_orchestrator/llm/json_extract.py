"""
结构化输出的 JSON 提取与解析

提取顺序（先命中先用）：
1. Markdown 围栏代码块 (```json ... ```)
2. 整段内容被单反引号包裹 (`{...}`)
3. 文本中最大的一段括号配平的 {...} / [...]（识别字符串与转义）
4. 原文

解析：先 json.loads 严格解析，失败再交给 json-repair 修复尾逗号、单引号等问题。
"""

import json
import re
from typing import Any

import structlog
from json_repair import repair_json
from pydantic import BaseModel, ValidationError

from tool_orchestrator.llm.errors import JSONParseError

log = structlog.get_logger()

_FENCED_BLOCK_RE = re.compile(r"```[\w-]*[ \t]*\r?\n?(.*?)```", re.DOTALL)
_INLINE_SPAN_RE = re.compile(r"^`([^`]+)`$", re.DOTALL)

_CLOSERS = {"{": "}", "[": "]"}


def extract_json_text(raw: str) -> str:
    """从模型原始输出中取出最可能是 JSON 的那段文本"""
    text = raw.strip()

    match = _FENCED_BLOCK_RE.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()

    match = _INLINE_SPAN_RE.match(text)
    if match:
        return match.group(1).strip()

    span = _largest_balanced_span(text)
    if span:
        return span

    return text


def _largest_balanced_span(text: str) -> str | None:
    """扫描所有括号配平的 {...} / [...] 片段，返回最长的一段"""
    best: str | None = None
    i = 0
    while i < len(text):
        if text[i] in _CLOSERS:
            end = _match_bracket(text, i)
            if end is not None:
                candidate = text[i : end + 1]
                if best is None or len(candidate) > len(best):
                    best = candidate
                i = end + 1
                continue
        i += 1
    return best


def _match_bracket(text: str, start: int) -> int | None:
    """从 start 处的开括号出发，返回配对闭括号的下标；不配平返回 None"""
    stack = [_CLOSERS[text[start]]]
    in_string = False
    escaped = False

    for i in range(start + 1, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in ("}", "]"):
            if ch != stack[-1]:
                return None
            stack.pop()
            if not stack:
                return i
    return None


def parse_json_response(raw: str) -> Any:
    """
    提取并解析 JSON。

    严格解析成功时原样返回（任何合法 JSON 值都算成功）；
    修复分支下 repair_json 无法修复时返回空字符串，此时视为失败。

    Raises:
        JSONParseError: 严格解析失败且修复后仍不是非空的对象 / 数组
    """
    candidate = extract_json_text(raw)

    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        log.debug("严格 JSON 解析失败，尝试修复", error=str(e))
        data = repair_json(candidate, return_objects=True)

    if not isinstance(data, (dict, list)) or not data:
        log.warning("结构化输出解析失败", raw_preview=raw[:200])
        raise JSONParseError(
            f"AI 返回内容无法解析为 JSON 对象或数组（得到 {type(data).__name__}）",
            raw_preview=raw[:200],
        )

    return data


def validate_against_schema(data: Any, schema: type[BaseModel], raw: str = "") -> BaseModel:
    """
    用 pydantic Schema 校验解析结果。

    Raises:
        JSONParseError: errors 中逐条列出失败字段路径
    """
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        ]
        log.warning("结构化输出 Schema 校验失败", schema=schema.__name__, errors=errors)
        raise JSONParseError(
            f"AI 返回内容不符合 {schema.__name__} 结构: {'; '.join(errors)}",
            errors=errors,
            raw_preview=raw[:200],
            cause=e,
        ) from e
