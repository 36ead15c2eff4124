# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  文本规范化工具 - 换行符规范化与代码片段保护
  Text Normalization Utilities - Newline normalization and code-span protection.
"""

import re
from typing import List, Tuple

# Fenced blocks first so inline backticks inside them are not matched separately
_CODE_SPAN_RE = re.compile(r"```[\s\S]*?```|`[^`\n]+`")
_PLACEHOLDER_RE = re.compile(r"__CODE_BLOCK_(\d+)__")


def normalize_newlines(text: str | None) -> str:
    """
    规范化换行符（\\r\\n 和 \\r 转换为 \\n）

    Normalize ``\\r\\n`` and ``\\r`` to ``\\n``. Accepts *None* safely.

    Example:
        >>> normalize_newlines("line1\\r\\nline2")
        "line1\\nline2"
    """
    return (text or "").replace("\r\n", "\n").replace("\r", "\n")


def protect_code_spans(text: str) -> Tuple[str, List[str]]:
    """
    用占位符替换代码片段

    Replace fenced and inline code spans with ``__CODE_BLOCK_<n>__`` sentinels.

    Returns:
        (带占位符的文本, 原始代码片段列表) / (text with sentinels, extracted spans)
    """
    spans: List[str] = []

    def _stash(match: re.Match) -> str:
        spans.append(match.group(0))
        return f"__CODE_BLOCK_{len(spans) - 1}__"

    return _CODE_SPAN_RE.sub(_stash, text), spans


def restore_code_spans(text: str, spans: List[str]) -> str:
    """Put code spans extracted by :func:`protect_code_spans` back verbatim."""
    if not spans:
        return text

    def _restore(match: re.Match) -> str:
        index = int(match.group(1))
        return spans[index] if index < len(spans) else match.group(0)

    return _PLACEHOLDER_RE.sub(_restore, text)
