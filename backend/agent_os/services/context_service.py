# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  上下文服务 - 请求分析、经回退编排器加载上下文、超出警告阈值时执行预算压缩
  Context service - Analyzes a request, loads context through the fallback orchestrator and budgets it when usage is high.
"""

from typing import Any, Dict, Optional

from agent_os.context_engine.budget_pipeline import ContextBudgetPipeline
from agent_os.context_engine.loader import ContextLoader, analyze_request
from agent_os.context_engine.models import ContextBundle, ContextRequirements
from agent_os.exceptions import FallbackExhaustedError
from agent_os.fallback.orchestrator import FallbackOrchestrator
from agent_os.fallback.validators import OperationKind
from agent_os.utils.logger import get_logger

logger = get_logger(__name__)


class ContextService:
    """
    上下文服务 / Ties the loader, budget pipeline and fallback orchestrator together.

    Attributes:
        loader: 上下文加载器 / Source loader.
        pipeline: 预算流水线 / Budget pipeline.
        orchestrator: 回退编排器，加载结果经其缓存 / Fallback orchestrator; load results are cached there.
    """

    def __init__(
        self,
        loader: Optional[ContextLoader] = None,
        pipeline: Optional[ContextBudgetPipeline] = None,
        orchestrator: Optional[FallbackOrchestrator] = None,
    ):
        self.loader = loader if loader is not None else ContextLoader()
        self.pipeline = pipeline if pipeline is not None else ContextBudgetPipeline()
        self.orchestrator = orchestrator if orchestrator is not None else FallbackOrchestrator()

    async def _load(self, requirements: ContextRequirements, context: Dict[str, Any]) -> Dict[str, Any]:
        async def context_load(_: Dict[str, Any]) -> ContextBundle:
            return await self.loader.load_context(requirements)

        params = {
            "type": requirements.type.value,
            "categories": requirements.categories,
            "specific_files": requirements.specific_files,
            "current_file": requirements.current_file,
        }
        try:
            outcome = await self.orchestrator.execute_with_fallback(
                context_load,
                {"query": requirements.query, "params": params},
                {"timeout": context.get("timeout")} if context.get("timeout") else None,
                operation_name=OperationKind.CONTEXT_LOAD.value,
            )
        except FallbackExhaustedError as exc:
            logger.error("Context load failed, using minimal bundle: %s", exc)
            return {
                "bundle": ContextBundle(
                    requirements=requirements,
                    applied_steps=["fallback"],
                    metadata={"files": [], "fallback": True, "error": str(exc.original_error)},
                ),
                "from_cache": False,
                "from_stale_cache": False,
                "recovered": False,
                "fallback": True,
            }

        return {
            "bundle": outcome.result,
            "from_cache": outcome.from_cache,
            "from_stale_cache": outcome.from_stale_cache,
            "recovered": outcome.recovered,
            "fallback": False,
            "operation_id": outcome.operation_id,
        }

    async def process_request(
        self,
        query: str,
        context: Optional[Dict[str, Any]] = None,
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        处理上下文请求 / Analyze, load (cached) and budget the context for ``query``.

        Returns:
            字典 / Dict with ``requirements``, ``bundle``, ``usage``, ``compressed``
            and the fallback flags of the load.
        """
        context = context or {}
        requirements = analyze_request(query, context)
        loaded = await self._load(requirements, context)
        bundle: ContextBundle = loaded.pop("bundle")

        limit = max_tokens or self.pipeline.max_context_size
        compressed = False
        if self.pipeline.should_compress(bundle) or bundle.token_count > limit:
            bundle = self.pipeline.enforce_budget(bundle, limit)
            compressed = True

        usage = self.pipeline.check_usage(bundle.token_count)
        logger.info(
            "Processed %s request: %d fragments, %d tokens (%s)",
            requirements.type.value, len(bundle.fragments), bundle.token_count, usage["status"],
        )

        return {
            "requirements": requirements.to_dict(),
            "bundle": bundle.to_dict(),
            "usage": usage,
            "compressed": compressed,
            **loaded,
        }
