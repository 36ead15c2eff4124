# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  文本分词器 - 词袋启发式所需的规范化、分词与重叠度计算
  Text Tokenizer - Normalization, word extraction and overlap scoring for bag-of-words heuristics.

功能 / Features:
  - 规范化：小写、去标点、合并空白 / Normalize: lowercase, strip punctuation, collapse whitespace
  - 关键词提取：长度 > 2 且非停用词 / Significant words: length > 2, not a stopword
  - 相关性评分：Jaccard / Overlap scoring: Jaccard
"""

import re
from typing import Iterable, List, Set

from agent_os.utils.stopwords import get_stopwords

_PUNCT_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")

MIN_WORD_LENGTH = 3


def normalize_text(text: str) -> str:
    """
    规范化文本 / Lowercase, replace punctuation with spaces, collapse whitespace.

    Example:
        >>> normalize_text("  Hello,   World! ")
        'hello world'
    """
    lowered = _PUNCT_RE.sub(" ", (text or "").lower())
    return _SPACE_RE.sub(" ", lowered).strip()


def tokenize(text: str) -> List[str]:
    """Whitespace tokens of the normalized text."""
    normalized = normalize_text(text)
    return normalized.split(" ") if normalized else []


def significant_words(text: str) -> List[str]:
    """Normalized tokens longer than two characters, in order."""
    return [w for w in tokenize(text) if len(w) >= MIN_WORD_LENGTH]


def extract_words(text: str) -> List[str]:
    """Significant words with stopwords removed (summarizer vocabulary)."""
    stopwords = get_stopwords()
    return [w for w in significant_words(text) if w not in stopwords]


def jaccard_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    """
    Jaccard 相似度 / ``|A ∩ B| / |A ∪ B|`` over two word collections.

    Two empty collections score 0.0.
    """
    set_a: Set[str] = set(a)
    set_b: Set[str] = set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)
