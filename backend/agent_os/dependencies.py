# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  依赖注入工厂 - FastAPI Depends() 工厂函数，统一管理核心组件实例
  Dependency Injection - FastAPI Depends() factories for the core component instances.

设计原则 / Design Principles:
  Router 通过 Depends() 获取实例，测试中可用 app.dependency_overrides 替换。
  Routers obtain instances through Depends() so tests can override them.
"""

from functools import lru_cache

from agent_os.context_engine.budget_pipeline import ContextBudgetPipeline
from agent_os.context_engine.loader import ContextLoader
from agent_os.fallback.orchestrator import FallbackOrchestrator
from agent_os.services.context_service import ContextService


@lru_cache(maxsize=1)
def get_budget_pipeline() -> ContextBudgetPipeline:
    """
    获取或创建 ContextBudgetPipeline 的单例实例

    Get or create singleton ContextBudgetPipeline instance.
    """
    return ContextBudgetPipeline()


@lru_cache(maxsize=1)
def get_fallback_orchestrator() -> FallbackOrchestrator:
    """
    获取或创建 FallbackOrchestrator 的单例实例

    Get or create singleton FallbackOrchestrator instance.
    """
    return FallbackOrchestrator()


@lru_cache(maxsize=1)
def get_context_loader() -> ContextLoader:
    return ContextLoader()


@lru_cache(maxsize=1)
def get_context_service() -> ContextService:
    """
    获取或创建 ContextService 的单例实例，与路由共享流水线与编排器

    Get or create the singleton ContextService, sharing the pipeline and
    orchestrator singletons with the routers.
    """
    return ContextService(
        loader=get_context_loader(),
        pipeline=get_budget_pipeline(),
        orchestrator=get_fallback_orchestrator(),
    )
