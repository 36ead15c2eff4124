# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  上下文加载器 - 请求分析与按"必选/条件"规则组装上下文包
  Context Loader - Request analysis and bundle assembly under always/conditional inclusion rules.

加载规则 / Loading rules:
  每个源分组（standards / product / specs）包含：
  - always: 无条件加载
  - conditional: 仅当类别出现在 requirements.categories 中时加载
  - specs 分组额外加载最新的 max_specs 个需求目录
  单个文件加载失败只记录日志，不会中断整个包的加载。
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Set

import aiofiles

from agent_os.config import config, settings
from agent_os.context_engine.models import (
    ContextBundle,
    ContextFragment,
    ContextRequirements,
    FragmentPriority,
    RequestType,
    SourceDocument,
)
from agent_os.exceptions import ContextLoadError
from agent_os.utils.logger import get_logger
from agent_os.utils.path_safety import validate_path_within
from agent_os.utils.text import normalize_newlines

logger = get_logger(__name__)


# ========== Request analysis ==========

@dataclass(frozen=True)
class _KeywordRule:
    keywords: tuple
    categories: tuple
    request_type: Optional[RequestType] = None


# Checked in order; the first rule with a type sets requirements.type
_REQUEST_RULES = (
    _KeywordRule(("component", "ui"), ("component", "ui"), RequestType.COMPONENT),
    _KeywordRule(("api", "server", "nitro"), ("api", "server"), RequestType.API),
    _KeywordRule(("performance", "optimi"), ("performance", "optimization"), RequestType.PERFORMANCE),
    _KeywordRule(("accessibility", "a11y"), ("accessibility",), RequestType.ACCESSIBILITY),
    _KeywordRule(("test",), ("testing",), RequestType.TESTING),
    _KeywordRule(("theme", "style"), ("theme", "styling"), RequestType.THEME),
    _KeywordRule(("feature", "roadmap"), ("feature",)),
    _KeywordRule(("integrat",), ("integration",)),
)

_HIGH_PRIORITY_WORDS = ("urgent", "critical", "error")
_LOW_PRIORITY_WORDS = ("simple", "basic", "quick")

_FILE_MENTION_RE = re.compile(r"\b[\w-]+\.(?:md|js|ts|vue)\b")


def _mentions(text: str, keyword: str) -> bool:
    return re.search(r"\b" + re.escape(keyword), text) is not None


def analyze_request(query: str, context: Optional[Dict[str, Any]] = None) -> ContextRequirements:
    """
    分析请求 / Classify a raw request into loader requirements.

    Example:
        >>> analyze_request("Build an accessible UI component").type
        <RequestType.COMPONENT: 'component'>
    """
    text = (query or "").lower()
    context = context or {}
    requirements = ContextRequirements(query=query or "")

    categories: List[str] = []
    for rule in _REQUEST_RULES:
        if not any(_mentions(text, kw) for kw in rule.keywords):
            continue
        if rule.request_type is not None and requirements.type == RequestType.UNKNOWN:
            requirements.type = rule.request_type
        categories.extend(rule.categories)

    if any(_mentions(text, w) for w in _HIGH_PRIORITY_WORDS):
        requirements.priority = "high"
    elif any(_mentions(text, w) for w in _LOW_PRIORITY_WORDS):
        requirements.priority = "low"

    requirements.specific_files = list(dict.fromkeys(_FILE_MENTION_RE.findall(text)))

    current_file = context.get("current_file") or context.get("currentFile")
    if current_file:
        requirements.current_file = current_file
        lowered = current_file.lower()
        if "component" in lowered:
            categories.append("component")
        elif "api" in lowered or "server" in lowered:
            categories.append("api")

    requirements.categories = list(dict.fromkeys(categories))
    return requirements


# ========== Source resolution ==========

class SourceResolver(Protocol):
    """Anything that can turn a relative source path into a document."""

    async def load_file(self, path: str) -> SourceDocument: ...

    def list_spec_directories(self, directory: str, limit: int) -> List[str]: ...


class FileSourceResolver:
    """
    文件系统源解析器
    Reads context sources below a root directory with aiofiles.
    """

    def __init__(self, root: Optional[Path] = None, encoding: str = "utf-8"):
        self.root = Path(root) if root is not None else Path(settings.sources_root)
        self.encoding = encoding

    def _resolve(self, path: str) -> Path:
        try:
            return validate_path_within(self.root / path, self.root)
        except ValueError as exc:
            raise ContextLoadError(path, str(exc)) from exc

    async def load_file(self, path: str) -> SourceDocument:
        file_path = self._resolve(path)
        try:
            async with aiofiles.open(file_path, "r", encoding=self.encoding) as f:
                content = await f.read()
            stat = os.stat(file_path)
        except (OSError, UnicodeDecodeError) as exc:
            raise ContextLoadError(path, str(exc)) from exc

        return SourceDocument(
            path=path,
            content=normalize_newlines(content),
            size=stat.st_size,
            last_modified=stat.st_mtime,
        )

    def list_spec_directories(self, directory: str, limit: int) -> List[str]:
        """Newest spec directories first; names are date-prefixed so they sort by age."""
        base = self.root / directory
        if not base.is_dir() or limit <= 0:
            return []
        names = sorted((p.name for p in base.iterdir() if p.is_dir()), reverse=True)
        return names[:limit]


# ========== Loader ==========

@dataclass
class SourceGroup:
    """
    源分组配置 / One configured source group.
    """
    name: str
    directory: str
    priority: FragmentPriority = FragmentPriority.NORMAL
    always: List[str] = field(default_factory=list)
    conditional: Dict[str, List[str]] = field(default_factory=dict)
    current_feature_only: bool = False
    max_specs: int = 0
    spec_files: List[str] = field(default_factory=list)

    @classmethod
    def from_config(cls, name: str, raw: Dict[str, Any]) -> "SourceGroup":
        return cls(
            name=name,
            directory=raw.get("directory", name),
            priority=FragmentPriority.parse(raw.get("priority", "normal")),
            always=list(raw.get("always") or []),
            conditional={k: list(v or []) for k, v in (raw.get("conditional") or {}).items()},
            current_feature_only=bool(raw.get("current_feature_only", False)),
            max_specs=int(raw.get("max_specs", 0)),
            spec_files=list(raw.get("spec_files") or []),
        )


class ContextLoader:
    """
    上下文加载器
    Assembles a ContextBundle from the configured source groups.

    The loader owns no cache; callers that want caching go through the
    fallback orchestrator.
    """

    def __init__(
        self,
        resolver: Optional[SourceResolver] = None,
        groups: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        self.resolver = resolver if resolver is not None else FileSourceResolver()
        raw_groups = groups if groups is not None else config.get("sources", {})
        self.groups = [SourceGroup.from_config(name, raw) for name, raw in raw_groups.items()]

    def plan(
        self,
        requirements: ContextRequirements,
        failed: Optional[List[Dict[str, str]]] = None,
    ) -> List[tuple]:
        """
        计算加载计划 / Ordered ``(path, priority, group)`` tuples to load.

        Explicitly requested files are probed against every group directory
        separately in :meth:`load_context`; they are not part of the plan.
        A spec directory that cannot be listed is skipped and noted in ``failed``.
        """
        planned: List[tuple] = []
        seen: Set[str] = set()

        def _add(path: str, priority: FragmentPriority, group: str) -> None:
            if path not in seen:
                seen.add(path)
                planned.append((path, priority, group))

        for group in self.groups:
            for file_name in group.always:
                _add(f"{group.directory}/{file_name}", group.priority, group.name)

            if group.current_feature_only and group.max_specs > 0:
                for spec_name in self._spec_directories(group, failed):
                    for file_name in group.spec_files:
                        _add(f"{group.directory}/{spec_name}/{file_name}", group.priority, group.name)

            for category in requirements.categories:
                for file_name in group.conditional.get(category, []):
                    _add(f"{group.directory}/{file_name}", group.priority, group.name)

        return planned

    def _spec_directories(self, group: SourceGroup, failed: Optional[List[Dict[str, str]]]) -> List[str]:
        try:
            return self.resolver.list_spec_directories(group.directory, group.max_specs)
        except Exception as exc:
            logger.warning("Spec directory listing skipped: %s (%s)", group.directory, exc)
            if failed is not None:
                failed.append({"path": group.directory, "error": str(exc)})
        return []

    async def _try_load(self, path: str, failed: List[Dict[str, str]]) -> Optional[SourceDocument]:
        try:
            return await self.resolver.load_file(path)
        except Exception as exc:
            logger.warning("Context source skipped: %s (%s)", path, exc)
            failed.append({"path": path, "error": getattr(exc, "reason", str(exc))})
        return None

    async def load_context(self, requirements: ContextRequirements) -> ContextBundle:
        """
        加载上下文 / Load every planned source into a bundle.

        A failed source is logged and skipped; a partial bundle is still valid.
        """
        fragments: List[ContextFragment] = []
        loaded_files: List[str] = []
        failed: List[Dict[str, str]] = []

        for path, priority, group in self.plan(requirements, failed):
            document = await self._try_load(path, failed)
            if document is None:
                continue
            fragments.append(_fragment_from(document, priority, group))
            loaded_files.append(document.path)

        missing: List[str] = []
        for file_name in requirements.specific_files:
            if any(path.rsplit("/", 1)[-1] == file_name for path in loaded_files):
                continue
            document = await self._find_requested(file_name)
            if document is None:
                missing.append(file_name)
                continue
            fragments.append(_fragment_from(document, FragmentPriority.HIGH, "requested"))
            loaded_files.append(document.path)

        logger.info(
            "Loaded %d context files (%d failed) for %s request",
            len(loaded_files), len(failed), requirements.type.value,
        )

        return ContextBundle(
            fragments=fragments,
            requirements=requirements,
            applied_steps=["load"],
            metadata={"files": loaded_files, "failed": failed, "missing": missing},
        )

    async def _find_requested(self, file_name: str) -> Optional[SourceDocument]:
        for group in self.groups:
            path = f"{group.directory}/{file_name}"
            try:
                return await self.resolver.load_file(path)
            except Exception as exc:
                logger.debug("Requested file %s not in %s: %s", file_name, group.directory, exc)
        return None


def _fragment_from(document: SourceDocument, priority: FragmentPriority, group: str) -> ContextFragment:
    return ContextFragment(
        id=document.path,
        content=document.content,
        priority=priority,
        source_category=group,
        metadata={"size": document.size, "last_modified": document.last_modified},
    )
