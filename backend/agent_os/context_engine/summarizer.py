# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  抽取式摘要器 - 按句子重要性评分挑选句子，裁剪到目标长度
  Extractive summarizer - Scores sentence importance and keeps the best sentences within a target length.
"""

import re
from collections import Counter
from typing import List, Optional, Set

from agent_os.context_engine.text_tokenizer import extract_words

DEFAULT_TARGET_LENGTH = 500

MIN_SENTENCE_LENGTH = 10
KEYWORD_LIMIT = 20
KEYWORD_DENSITY_MIN = 0.02
KEYWORD_DENSITY_MAX = 0.1

KEYWORD_WEIGHT = 0.4
POSITION_WEIGHT = 0.3
LENGTH_WEIGHT = 0.2
INDICATOR_WEIGHT = 0.1

# Joined as "a. b." so each accepted sentence costs two extra characters
SENTENCE_SEPARATOR = ". "

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")

# "crucial" and "fundamental" appear in both word lists and so count twice
_IMPORTANCE_INDICATORS = (
    "importante", "crucial", "essencial", "fundamental", "crítico",
    "principal", "chave", "básico", "necessário", "obrigatório",
    "important", "crucial", "essential", "fundamental", "critical",
    "main", "key", "basic", "necessary", "required",
)

_TRANSITION_WORDS = ("however", "therefore", "moreover", "furthermore")


def split_sentences(text: str) -> List[str]:
    """
    将文本分割成句子

    Split on runs of ``.!?`` and drop pieces of ten characters or fewer.
    """
    if not text:
        return []
    pieces = (piece.strip() for piece in _SENTENCE_SPLIT_RE.split(text))
    return [piece for piece in pieces if len(piece) > MIN_SENTENCE_LENGTH]


def extract_keywords(text: str) -> Set[str]:
    """
    提取关键词 / Document keywords.

    The 20 most frequent non-stopword terms whose density lies in
    ``[0.02, 0.1]``. Ties keep first-occurrence order.
    """
    words = extract_words(text)
    if not words:
        return set()

    total = len(words)
    keywords = []
    for word, freq in Counter(words).most_common():
        density = freq / total
        if KEYWORD_DENSITY_MIN <= density <= KEYWORD_DENSITY_MAX:
            keywords.append(word)
            if len(keywords) == KEYWORD_LIMIT:
                break
    return set(keywords)


def position_score(position: int, total: int) -> float:
    """First 20% of sentences score 1.0, last 20% score 0.8, the middle 0.5."""
    normalized = position / (total - 1) if total > 1 else 0.0
    if normalized <= 0.2:
        return 1.0
    if normalized >= 0.8:
        return 0.8
    return 0.5


def length_score(length: int) -> float:
    if length < 20:
        return 0.3
    if length > 200:
        return 0.4
    return 1.0


def indicator_score(sentence: str) -> float:
    lowered = sentence.lower()
    score = 0.0
    for indicator in _IMPORTANCE_INDICATORS:
        if indicator in lowered:
            score += 0.1
    for word in _TRANSITION_WORDS:
        if word in lowered:
            score -= 0.05
    return max(0.0, min(1.0, score))


def score_sentence(sentence: str, position: int, total: int, keywords: Set[str]) -> float:
    """
    为句子打分，评估其重要性

    Weighted sum of keyword density (0.4), position (0.3), length (0.2) and
    importance indicators (0.1).
    """
    words = extract_words(sentence)
    density = sum(1 for w in words if w in keywords) / len(words) if words else 0.0

    return (
        density * KEYWORD_WEIGHT
        + position_score(position, total) * POSITION_WEIGHT
        + length_score(len(sentence)) * LENGTH_WEIGHT
        + indicator_score(sentence) * INDICATOR_WEIGHT
    )


def summarize(text: str, target_length: Optional[int] = None) -> str:
    """
    抽取式摘要 / Summarize ``text`` to at most ``target_length`` characters.

    策略：
    1. 文本已在目标内时原样返回
    2. 按重要性降序贪心挑选句子
    3. 一句都放不下时强制保留得分最高的一句
    4. 按原文顺序重组

    Returns text unchanged when it already fits. When no sentence survives
    splitting, falls back to a plain prefix so the result is never empty.
    """
    if not text:
        return text

    target = DEFAULT_TARGET_LENGTH if target_length is None else max(0, int(target_length))
    if len(text) <= target:
        return text

    sentences = split_sentences(text)
    if not sentences:
        return text[:target] if target > 0 else text[:1]

    keywords = extract_keywords(text)
    total = len(sentences)
    scored = [
        (score_sentence(sentence, index, total, keywords), index)
        for index, sentence in enumerate(sentences)
    ]
    # Stable: equal scores keep their original order
    ranked = sorted(scored, key=lambda item: item[0], reverse=True)

    selected: List[int] = []
    used = 0
    for _, index in ranked:
        cost = len(sentences[index]) + len(SENTENCE_SEPARATOR)
        if used + cost <= target:
            selected.append(index)
            used += cost

    if not selected:
        selected.append(ranked[0][1])

    selected.sort()
    return SENTENCE_SEPARATOR.join(sentences[i] for i in selected) + "."
