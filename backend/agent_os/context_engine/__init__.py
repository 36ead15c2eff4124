"""
Context Engine Module / 上下文引擎模块
Loading, deduplication, compression and token budgeting of context bundles
上下文包的加载、去重、压缩与 token 预算控制
"""

from agent_os.context_engine.budget_pipeline import ContextBudgetPipeline, fragments_from
from agent_os.context_engine.deduplicator import SemanticDeduplicator
from agent_os.context_engine.loader import ContextLoader, FileSourceResolver, analyze_request
from agent_os.context_engine.models import (
    BudgetReport,
    ContextBundle,
    ContextFragment,
    ContextRequirements,
    FragmentPriority,
    RequestType,
    SourceDocument,
    StageResult,
)
from agent_os.context_engine.summarizer import summarize
from agent_os.context_engine.text_compressor import (
    Aggressiveness,
    TechnicalAbbreviator,
    TextCompressor,
    WhitespaceCompressor,
)
from agent_os.context_engine.token_estimator import estimate_tokens

__all__ = [
    "Aggressiveness",
    "BudgetReport",
    "ContextBudgetPipeline",
    "ContextBundle",
    "ContextFragment",
    "ContextLoader",
    "ContextRequirements",
    "FileSourceResolver",
    "FragmentPriority",
    "RequestType",
    "SemanticDeduplicator",
    "SourceDocument",
    "StageResult",
    "TechnicalAbbreviator",
    "TextCompressor",
    "WhitespaceCompressor",
    "analyze_request",
    "estimate_tokens",
    "fragments_from",
    "summarize",
]
