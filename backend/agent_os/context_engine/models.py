"""
Context Engine Models / 上下文引擎数据模型
Core data structures for context loading and budgeting
上下文加载与预算控制的核心数据结构
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from agent_os.context_engine.token_estimator import estimate_length


class FragmentPriority(str, Enum):
    """
    片段优先级 - 决定压缩时的空间分配
    Fragment priority - controls space allocation under compression

    HIGH: 优先保留，摘要时获得 1.5 倍空间
    NORMAL: 默认
    LOW: 最先被截断，摘要时只获得 0.7 倍空间
    """
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def parse(cls, value: Any) -> "FragmentPriority":
        """Accept enum members, names or the original ``medium`` alias."""
        if isinstance(value, cls):
            return value
        text = str(value or "normal").lower()
        if text == "medium":
            return cls.NORMAL
        return cls(text)


_PRIORITY_RANK = {
    FragmentPriority.HIGH: 3,
    FragmentPriority.NORMAL: 2,
    FragmentPriority.LOW: 1,
}


class RequestType(str, Enum):
    """请求分类 / Classified request type"""
    COMPONENT = "component"
    API = "api"
    PERFORMANCE = "performance"
    ACCESSIBILITY = "accessibility"
    TESTING = "testing"
    THEME = "theme"
    UNKNOWN = "unknown"


@dataclass
class ContextFragment:
    """
    单个上下文片段
    One named unit of loadable knowledge
    """
    id: str
    content: str
    priority: FragmentPriority = FragmentPriority.NORMAL
    source_category: str = "general"
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def length(self) -> int:
        return len(self.content)

    @property
    def token_count(self) -> int:
        return estimate_length(len(self.content))

    def with_content(self, content: str, **metadata: Any) -> "ContextFragment":
        """Copy of this fragment carrying new content and extra metadata."""
        return ContextFragment(
            id=self.id,
            content=content,
            priority=self.priority,
            source_category=self.source_category,
            metadata={**self.metadata, **metadata},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "priority": self.priority.value,
            "source_category": self.source_category,
            "token_count": self.token_count,
            "metadata": self.metadata,
        }


@dataclass
class ContextRequirements:
    """
    请求分析结果
    Result of request analysis, consumed by the loader
    """
    type: RequestType = RequestType.UNKNOWN
    priority: str = "medium"
    categories: List[str] = field(default_factory=list)
    specific_files: List[str] = field(default_factory=list)
    current_file: Optional[str] = None
    query: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "priority": self.priority,
            "categories": list(self.categories),
            "specific_files": list(self.specific_files),
            "current_file": self.current_file,
            "query": self.query,
        }


@dataclass
class ContextBundle:
    """
    上下文包 - 有序片段集合
    Ordered collection of fragments plus metadata
    """
    fragments: List[ContextFragment] = field(default_factory=list)
    requirements: Optional[ContextRequirements] = None
    loaded_at: datetime = field(default_factory=datetime.now)
    applied_steps: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    over_budget: bool = False

    @property
    def total_chars(self) -> int:
        return sum(f.length for f in self.fragments)

    @property
    def token_count(self) -> int:
        """Estimated tokens of the whole bundle (the budgeted quantity)."""
        return estimate_length(self.total_chars)

    @property
    def files(self) -> List[str]:
        return list(self.metadata.get("files", []))

    def replace_fragments(self, fragments: List[ContextFragment], step: Optional[str] = None) -> "ContextBundle":
        """New bundle sharing this bundle's metadata, with ``step`` appended if given."""
        steps = list(self.applied_steps)
        if step:
            steps.append(step)
        return ContextBundle(
            fragments=list(fragments),
            requirements=self.requirements,
            loaded_at=self.loaded_at,
            applied_steps=steps,
            metadata=dict(self.metadata),
            over_budget=self.over_budget,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fragments": [f.to_dict() for f in self.fragments],
            "requirements": self.requirements.to_dict() if self.requirements else None,
            "loaded_at": self.loaded_at.isoformat(),
            "applied_steps": list(self.applied_steps),
            "token_count": self.token_count,
            "over_budget": self.over_budget,
            "metadata": self.metadata,
        }


@dataclass
class SourceDocument:
    """
    源文档 - 文件解析结果
    A resolved source file
    """
    path: str
    content: str
    size: int
    last_modified: float


@dataclass
class StageResult:
    """
    压缩阶段结果
    Outcome of one budget stage. ``applied`` is False when the stage was not
    needed or made no progress; ``reason`` says which.
    """
    name: str
    applied: bool
    tokens_before: int
    tokens_after: int
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "applied": self.applied,
            "tokens_before": self.tokens_before,
            "tokens_after": self.tokens_after,
            "reason": self.reason,
        }


@dataclass
class BudgetReport:
    """
    预算执行报告
    Report of one ``enforce_budget`` call
    """
    max_tokens: int
    original_tokens: int
    final_tokens: int
    original_length: int
    compressed_length: int
    over_budget: bool
    stages: List[StageResult] = field(default_factory=list)
    dropped_fragments: List[str] = field(default_factory=list)
    processing_time: float = 0.0

    @property
    def compression_ratio(self) -> float:
        if self.original_length == 0:
            return 1.0
        return self.compressed_length / self.original_length

    @property
    def space_saved(self) -> int:
        return self.original_length - self.compressed_length

    @property
    def space_saved_percentage(self) -> float:
        if self.original_length == 0:
            return 0.0
        return round(self.space_saved / self.original_length * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_tokens": self.max_tokens,
            "original_tokens": self.original_tokens,
            "final_tokens": self.final_tokens,
            "original_length": self.original_length,
            "compressed_length": self.compressed_length,
            "compression_ratio": round(self.compression_ratio, 4),
            "space_saved": self.space_saved,
            "space_saved_percentage": self.space_saved_percentage,
            "over_budget": self.over_budget,
            "stages": [s.to_dict() for s in self.stages],
            "dropped_fragments": list(self.dropped_fragments),
            "processing_time": self.processing_time,
        }
