# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  停用词配置 - 从配置文件加载停用词，支持内置默认值
  Stopwords Configuration - Loads summarizer stopwords from a file with built-in defaults.
"""

from pathlib import Path
from typing import FrozenSet

import yaml

from agent_os.utils.logger import get_logger

logger = get_logger(__name__)

# Built-in defaults: English and Portuguese function words
_DEFAULT_STOPWORDS = frozenset([
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "is", "are", "was", "were", "be", "been", "have",
    "has", "had", "do", "does", "did", "will", "would", "could", "should",
    "may", "might", "must", "can", "this", "that", "these", "those",
    "o", "e", "de", "da", "em", "um", "uma", "para", "com",
    "por", "ser", "ter", "estar", "que", "não", "se", "como", "mais",
])

_STOPWORDS_FILE = Path(__file__).parent.parent.parent / "stopwords.yaml"

_loaded: FrozenSet[str] = frozenset()


def get_stopwords() -> FrozenSet[str]:
    """
    获取停用词集合，若可用则从文件加载

    Get the stopword set, loading ``backend/stopwords.yaml`` on first call if
    it exists. A broken file falls back to the built-in defaults.
    """
    global _loaded
    if _loaded:
        return _loaded

    if _STOPWORDS_FILE.exists():
        try:
            with open(_STOPWORDS_FILE, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
            if isinstance(data, dict):
                words = data.get("stopwords", [])
            elif isinstance(data, list):
                words = data
            else:
                words = []
            _loaded = frozenset(str(w).strip().lower() for w in words if str(w).strip())
            logger.debug("Loaded %d stopwords from %s", len(_loaded), _STOPWORDS_FILE)
            return _loaded
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("Failed to load stopwords file: %s, using defaults", exc)

    _loaded = _DEFAULT_STOPWORDS
    return _loaded
