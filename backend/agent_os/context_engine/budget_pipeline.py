# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  上下文预算流水线 - 按固定顺序执行压缩阶段，直到满足 token 预算
  Context Budget Pipeline - Runs compression stages in a fixed order until the token budget holds.

阶段顺序 / Stage order:
  1. dedup          语义去重
  2. whitespace     空白压缩
  3. abbreviation   术语缩写（超出越多越激进）
  4. summarization  按片段摘要（优先级加权）
  5. truncation     硬截断，预算的最终保证

每个阶段只在仍超预算时运行；不能缩小上下文的阶段结果会被丢弃。
A stage runs only while the bundle is still over budget; a stage that does
not shrink the bundle is discarded.
"""

import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from agent_os.config import config
from agent_os.context_engine.deduplicator import SemanticDeduplicator
from agent_os.context_engine.models import (
    BudgetReport,
    ContextBundle,
    ContextFragment,
    FragmentPriority,
    StageResult,
)
from agent_os.context_engine.summarizer import summarize
from agent_os.context_engine.text_compressor import Aggressiveness, TextCompressor
from agent_os.context_engine.token_estimator import CHARS_PER_TOKEN
from agent_os.exceptions import ValidationError
from agent_os.utils.logger import get_logger

logger = get_logger(__name__)

ELISION_MARKER = " [...] "

PRIORITY_MULTIPLIERS = {
    FragmentPriority.HIGH: 1.5,
    FragmentPriority.NORMAL: 1.0,
    FragmentPriority.LOW: 0.7,
}

COMPRESSION_LEVELS = ("low", "medium", "high", "aggressive")

STAGES = ("dedup", "whitespace", "abbreviation", "summarization", "truncation")


def elide_middle(text: str, share: int) -> str:
    """
    保留首尾，删除中间 / Keep the head and tail of ``text`` within ``share`` chars.

    The result never exceeds ``share`` characters, marker included.
    """
    if share <= 0:
        return ""
    if len(text) <= share:
        return text
    half = (share - len(ELISION_MARKER)) // 2
    if half <= 0:
        return text[:share]
    return text[:half] + ELISION_MARKER + text[-half:]


def fragments_from(contexts: Iterable[Any]) -> List[ContextFragment]:
    """
    规范化输入 / Turn strings, dicts or fragments into ContextFragments.

    Dicts may carry ``id``, ``content`` (or ``text``), ``priority``,
    ``source_category`` and ``metadata``.
    """
    fragments: List[ContextFragment] = []
    for index, item in enumerate(contexts):
        if isinstance(item, ContextFragment):
            fragments.append(item)
        elif isinstance(item, dict):
            fragments.append(ContextFragment(
                id=str(item.get("id") or f"context_{index}"),
                content=str(item.get("content") or item.get("text") or ""),
                priority=FragmentPriority.parse(item.get("priority")),
                source_category=str(item.get("source_category") or item.get("type") or "general"),
                metadata=dict(item.get("metadata") or {}),
            ))
        else:
            fragments.append(ContextFragment(id=f"context_{index}", content=str(item)))
    return fragments


class ContextBudgetPipeline:
    """
    上下文预算流水线 / Context Budget Pipeline

    Attributes:
        max_context_size (int): 默认 token 上限 / Default token ceiling.
        warning_threshold (int): 使用量警告阈值 / Usage warning ceiling.
        critical_threshold (int): 使用量临界阈值 / Usage critical ceiling.
        compression_level (str): low | medium | high | aggressive, the floor
            for abbreviation aggressiveness.
        min_fragment_chars (int): 截断阶段放弃片段的剩余空间下限 /
            Remaining space below which truncation stops splitting fragments.
    """

    def __init__(
        self,
        deduplicator: Optional[SemanticDeduplicator] = None,
        compressor: Optional[TextCompressor] = None,
        summarizer: Callable[[str, int], str] = summarize,
        max_context_size: Optional[int] = None,
        warning_threshold: Optional[int] = None,
        critical_threshold: Optional[int] = None,
        compression_level: Optional[str] = None,
        min_fragment_chars: Optional[int] = None,
    ):
        budget_cfg = config.get("context_budget", {})
        self.deduplicator = deduplicator if deduplicator is not None else SemanticDeduplicator()
        self.compressor = compressor if compressor is not None else TextCompressor()
        self.summarizer = summarizer
        self.max_context_size = int(max_context_size or budget_cfg.get("max_context_size", 8192))
        self.warning_threshold = int(warning_threshold or budget_cfg.get("warning_threshold", 6000))
        self.critical_threshold = int(critical_threshold or budget_cfg.get("critical_threshold", 7500))
        self.compression_level = str(compression_level or budget_cfg.get("compression_level", "medium")).lower()
        if self.compression_level not in COMPRESSION_LEVELS:
            raise ValidationError(f"Unknown compression level: {self.compression_level}")
        if min_fragment_chars is None:
            min_fragment_chars = budget_cfg.get("min_fragment_chars", 100)
        self.min_fragment_chars = int(min_fragment_chars)

        self.stats: Dict[str, Any] = {
            "total_compressions": 0,
            "total_original_length": 0,
            "total_compressed_length": 0,
            "average_compression_ratio": 0.0,
            "over_budget_count": 0,
            "stage_usage": {name: 0 for name in STAGES},
        }

    # ========== Usage check ==========

    def check_usage(self, tokens: int) -> Dict[str, Any]:
        """
        检查使用量 / Compare a token count against the warning and critical ceilings.
        """
        usage_ratio = tokens / max(self.max_context_size, 1)
        if tokens >= self.critical_threshold:
            status = "critical"
        elif tokens >= self.warning_threshold:
            status = "warning"
        else:
            status = "ok"
        return {
            "status": status,
            "tokens": tokens,
            "usage_ratio": round(usage_ratio, 4),
            "needs_compression": status != "ok",
        }

    def should_compress(self, bundle: ContextBundle) -> bool:
        return bundle.token_count > self.warning_threshold

    # ========== Stages ==========

    def _dedup(self, fragments: List[ContextFragment], max_tokens: int, current: int) -> List[ContextFragment]:
        return self.deduplicator.remove_duplicates(fragments)

    def _whitespace(self, fragments: List[ContextFragment], max_tokens: int, current: int) -> List[ContextFragment]:
        return [f.with_content(self.compressor.compress_whitespace(f.content)) for f in fragments]

    def _abbreviate(self, fragments: List[ContextFragment], max_tokens: int, current: int) -> List[ContextFragment]:
        floor = Aggressiveness.from_level(self.compression_level)
        level = Aggressiveness.for_overflow(current, max_tokens, floor)
        logger.debug("Abbreviating at %s (%d / %d tokens)", level.value, current, max_tokens)
        return [
            f.with_content(self.compressor.abbreviate(f.content, level), abbreviated=level.value)
            for f in fragments
        ]

    def _summarize(self, fragments: List[ContextFragment], max_tokens: int, current: int) -> List[ContextFragment]:
        ratio = max_tokens / current if current > 0 else 1.0
        result = []
        for fragment in fragments:
            target = int(fragment.length * ratio)
            target = int(target * PRIORITY_MULTIPLIERS[fragment.priority])
            target = max(self.min_fragment_chars, target)
            summary = self.summarizer(fragment.content, target)
            if len(summary) < fragment.length:
                result.append(fragment.with_content(summary, summarized=True, original_length=fragment.length))
            else:
                result.append(fragment)
        return result

    def _truncate(self, fragments: List[ContextFragment], max_tokens: int, current: int) -> List[ContextFragment]:
        remaining = max_tokens * CHARS_PER_TOKEN
        order = sorted(range(len(fragments)), key=lambda i: fragments[i].priority.rank, reverse=True)
        kept: Dict[int, ContextFragment] = {}

        for index in order:
            fragment = fragments[index]
            if fragment.length <= remaining:
                kept[index] = fragment
                remaining -= fragment.length
                continue
            if remaining <= 0 or (kept and remaining < self.min_fragment_chars):
                continue

            try:
                content = self.summarizer(fragment.content, int(remaining * 0.8))
            except Exception as exc:
                logger.debug("Summarizer failed during truncation of %s: %s", fragment.id, exc)
                content = fragment.content
            if len(content) > remaining:
                content = elide_middle(content, remaining)
            kept[index] = fragment.with_content(content, truncated=True, original_length=fragment.length)
            remaining -= len(content)

        return [kept[i] for i in range(len(fragments)) if i in kept]

    # ========== Pipeline ==========

    def _run_stage(
        self,
        name: str,
        stage: Callable[[List[ContextFragment], int, int], List[ContextFragment]],
        bundle: ContextBundle,
        max_tokens: int,
    ) -> Tuple[ContextBundle, StageResult]:
        before = bundle.token_count
        if before <= max_tokens:
            return bundle, StageResult(name, False, before, before, "within_budget")

        try:
            fragments = stage(bundle.fragments, max_tokens, before)
        except Exception as exc:
            logger.warning("Budget stage %s failed, passing bundle through: %s", name, exc, exc_info=True)
            return bundle, StageResult(name, False, before, before, f"error: {exc}")

        candidate = bundle.replace_fragments(fragments, step=name)
        if candidate.total_chars >= bundle.total_chars:
            return bundle, StageResult(name, False, before, before, "no_progress")

        after = candidate.token_count
        logger.debug("Stage %s: %d -> %d tokens", name, before, after)
        return candidate, StageResult(name, True, before, after)

    def enforce_budget(self, bundle: ContextBundle, max_tokens: Optional[int] = None) -> ContextBundle:
        """
        执行预算 / Shrink ``bundle`` until its estimate fits ``max_tokens``.

        Returns a new bundle; the input is not modified. ``over_budget`` is set
        when even truncation could not fit, and ``metadata["budget"]`` holds
        the stage report.
        """
        if max_tokens is None:
            max_tokens = self.max_context_size
        start = time.perf_counter()

        original_tokens = bundle.token_count
        original_length = bundle.total_chars
        stage_fns = {
            "dedup": self._dedup,
            "whitespace": self._whitespace,
            "abbreviation": self._abbreviate,
            "summarization": self._summarize,
            "truncation": self._truncate,
        }

        current = bundle
        results: List[StageResult] = []
        for name in STAGES:
            current, result = self._run_stage(name, stage_fns[name], current, max_tokens)
            results.append(result)

        kept_ids = {f.id for f in current.fragments}
        dropped = [f.id for f in bundle.fragments if f.id not in kept_ids]
        over_budget = current.token_count > max_tokens

        report = BudgetReport(
            max_tokens=max_tokens,
            original_tokens=original_tokens,
            final_tokens=current.token_count,
            original_length=original_length,
            compressed_length=current.total_chars,
            over_budget=over_budget,
            stages=results,
            dropped_fragments=dropped,
            processing_time=round(time.perf_counter() - start, 6),
        )
        self._record(report)

        if over_budget:
            logger.warning(
                "Bundle still over budget after all stages: %d > %d tokens",
                current.token_count, max_tokens,
            )

        result = current.replace_fragments(current.fragments)
        result.over_budget = over_budget
        result.metadata["budget"] = report.to_dict()
        return result

    def compress(self, contexts: Iterable[Any], max_tokens: Optional[int] = None) -> ContextBundle:
        """Convenience entry: normalize raw contexts into a bundle and enforce the budget."""
        return self.enforce_budget(ContextBundle(fragments=fragments_from(contexts)), max_tokens)

    def expand_bundle(self, bundle: ContextBundle) -> ContextBundle:
        """
        解压缩 / Reverse abbreviations in every fragment (best effort).
        """
        fragments = [
            f.with_content(self.compressor.expand(f.content), decompressed=True)
            for f in bundle.fragments
        ]
        return bundle.replace_fragments(fragments, step="expand")

    # ========== Statistics ==========

    def _record(self, report: BudgetReport) -> None:
        stats = self.stats
        stats["total_compressions"] += 1
        stats["total_original_length"] += report.original_length
        stats["total_compressed_length"] += report.compressed_length
        if stats["total_original_length"] > 0:
            stats["average_compression_ratio"] = (
                stats["total_compressed_length"] / stats["total_original_length"]
            )
        if report.over_budget:
            stats["over_budget_count"] += 1
        for stage in report.stages:
            if stage.applied:
                stats["stage_usage"][stage.name] += 1

    def compression_report(self) -> Dict[str, Any]:
        """
        压缩报告 / Running statistics plus tuning recommendations.
        """
        stats = self.stats
        ratio = round(stats["average_compression_ratio"], 2)
        recommendations: List[str] = []
        if stats["total_compressions"] and ratio > 0.8:
            recommendations.append("Consider raising the compression level to save more space")
        if stats["total_compressions"] and ratio < 0.3:
            recommendations.append("Compression is very aggressive and may be losing important information")
        if stats["total_compressions"] > 100:
            recommendations.append("Consider caching compressed contexts")
        if stats["over_budget_count"]:
            recommendations.append("Some bundles could not fit the budget; raise max_tokens or trim sources")

        return {
            "timestamp": time.time(),
            "total_compressions": stats["total_compressions"],
            "average_compression_ratio": ratio,
            "total_space_saved": stats["total_original_length"] - stats["total_compressed_length"],
            "over_budget_count": stats["over_budget_count"],
            "stage_usage": dict(stats["stage_usage"]),
            "configuration": {
                "max_context_size": self.max_context_size,
                "warning_threshold": self.warning_threshold,
                "critical_threshold": self.critical_threshold,
                "compression_level": self.compression_level,
                "min_fragment_chars": self.min_fragment_chars,
            },
            "recommendations": recommendations,
        }
