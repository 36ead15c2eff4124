# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  文本压缩器 - 空白压缩与技术术语缩写
  Text Compressor - Whitespace compression and technical-term abbreviation.

两个独立可组合的变换 / Two independent, composable transforms:
  - WhitespaceCompressor: 折叠空行与多余空格，代码片段原样保留
    collapses blank lines and repeated spaces, code spans restored verbatim
  - TechnicalAbbreviator: 先短语后单词的表驱动缩写，按激进程度选择子集
    table-driven abbreviation, phrases first, word subset chosen by aggressiveness
"""

import re
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern, Tuple

from agent_os.utils.logger import get_logger
from agent_os.utils.text import normalize_newlines, protect_code_spans, restore_code_spans

logger = get_logger(__name__)


class Aggressiveness(str, Enum):
    """缩写激进程度 / Abbreviation aggressiveness"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return ("low", "medium", "high").index(self.value)

    @classmethod
    def from_level(cls, level: Any) -> "Aggressiveness":
        """Map a compression level (``aggressive`` included) to an aggressiveness."""
        text = str(getattr(level, "value", level) or "medium").lower()
        if text == "aggressive":
            return cls.HIGH
        return cls(text)

    @classmethod
    def for_overflow(cls, current_tokens: int, max_tokens: int, floor: "Aggressiveness" = None) -> "Aggressiveness":
        """
        按超预算程度升级 / Escalate with how far over budget a bundle is.

        Up to 25% over stays low, up to 60% over is medium, beyond that high.
        The result never drops below ``floor``.
        """
        ratio = current_tokens / max_tokens if max_tokens > 0 else float("inf")
        if ratio <= 1.25:
            level = cls.LOW
        elif ratio <= 1.6:
            level = cls.MEDIUM
        else:
            level = cls.HIGH
        if floor is not None and floor.rank > level.rank:
            return floor
        return level


# ========== Whitespace ==========

_EDGE_SPACES_RE = re.compile(r"^[ \t]+|[ \t]+$", re.MULTILINE)
_BLANK_RUN_RE = re.compile(r"\n\s*\n\s*\n")
_SPACE_RUN_RE = re.compile(r"[ \t]+")
_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+([,.;:!?])")
_LIST_BULLET_RE = re.compile(r"\n\s*[-*+]\s+")


class WhitespaceCompressor:
    """
    空白压缩器
    Collapses layout whitespace while leaving fenced and inline code untouched.
    """

    def __init__(self, preserve_code_blocks: bool = True):
        self.preserve_code_blocks = preserve_code_blocks

    def compress(self, text: str) -> str:
        if not text:
            return text

        spans: List[str] = []
        processed = normalize_newlines(text)
        if self.preserve_code_blocks:
            processed, spans = protect_code_spans(processed)

        processed = _EDGE_SPACES_RE.sub("", processed)
        processed = _BLANK_RUN_RE.sub("\n\n", processed)
        processed = _SPACE_RUN_RE.sub(" ", processed)
        processed = _SPACE_BEFORE_PUNCT_RE.sub(r"\1", processed)
        processed = _LIST_BULLET_RE.sub("\n- ", processed)

        return restore_code_spans(processed, spans).strip()


# ========== Abbreviation ==========

# (full term, abbreviation)
SIMPLE_ABBREVIATIONS: Tuple[Tuple[str, str], ...] = (
    # Nuxt/Vue
    ("component", "comp"),
    ("configuration", "config"),
    ("application", "app"),
    ("development", "dev"),
    ("production", "prod"),
    ("environment", "env"),
    ("directory", "dir"),
    ("repository", "repo"),
    ("documentation", "docs"),
    ("implementation", "impl"),
    ("interface", "iface"),
    ("parameter", "param"),
    ("property", "prop"),
    ("function", "fn"),
    ("variable", "var"),
    ("constant", "const"),
    ("reference", "ref"),
    ("template", "tmpl"),
    ("stylesheet", "css"),
    ("javascript", "js"),
    ("typescript", "ts"),
    ("package.json", "pkg.json"),
    ("nuxt.config", "nuxt.cfg"),
    # General technical terms
    ("performance", "perf"),
    ("optimization", "opt"),
    ("accessibility", "a11y"),
    ("internationalization", "i18n"),
    ("localization", "l10n"),
    ("responsive", "resp"),
    ("mobile", "mob"),
    ("desktop", "desk"),
    ("browser", "br"),
    ("server", "srv"),
    ("client", "cli"),
    ("database", "db"),
    ("authentication", "auth"),
    ("authorization", "authz"),
    ("middleware", "mw"),
    ("framework", "fw"),
    ("library", "lib"),
    ("module", "mod"),
    ("plugin", "plg"),
    ("extension", "ext"),
    ("version", "ver"),
    ("release", "rel"),
    ("build", "bld"),
    ("deployment", "deploy"),
    ("continuous integration", "CI"),
    ("continuous deployment", "CD"),
)

PHRASE_ABBREVIATIONS: Tuple[Tuple[str, str], ...] = (
    ("development environment", "dev env"),
    ("production environment", "prod env"),
    ("test environment", "test env"),
    ("Nuxt application", "Nuxt app"),
    ("Vue component", "Vue comp"),
    ("Nuxt configuration", "Nuxt config"),
    ("server-side rendering", "SSR"),
    ("static site generation", "SSG"),
    ("single page application", "SPA"),
    ("user interface", "UI"),
    ("user experience", "UX"),
    ("responsive design", "resp design"),
    ("mobile first", "mobile-1st"),
    ("Core Web Vitals", "CWV"),
    ("Largest Contentful Paint", "LCP"),
    ("First Input Delay", "FID"),
    ("Cumulative Layout Shift", "CLS"),
)

PROTECTED_TERMS = frozenset([
    "API", "URL", "HTTP", "HTTPS", "JSON", "XML", "HTML", "CSS", "DOM",
    "SEO", "PWA", "SPA", "SSR", "SSG", "CDN", "DNS", "SSL", "TLS",
])

# Abbreviations allowed at each level; None means the whole table
_LOW_ONLY = frozenset(["comp", "config", "app", "dev", "prod", "docs", "repo"])
_MEDIUM_EXCLUDED = frozenset(["iface", "tmpl", "authz", "plg"])


def _word_pattern(term: str) -> Pattern:
    return re.compile(r"\b" + re.escape(term) + r"\b", re.IGNORECASE)


def _protected_replacer(replacement: str):
    def _replace(match: re.Match) -> str:
        if match.group(0) in PROTECTED_TERMS:
            return match.group(0)
        return replacement
    return _replace


class TechnicalAbbreviator:
    """
    技术术语缩写器
    Table-driven abbreviation with a best-effort inverse (:meth:`expand`).
    """

    def __init__(self):
        # Longest phrase first so overlapping phrases resolve deterministically
        phrases = sorted(PHRASE_ABBREVIATIONS, key=lambda pair: len(pair[0]), reverse=True)
        self._phrase_rules = [
            (_word_pattern(full), abbrev) for full, abbrev in phrases
        ]
        self._word_rules: Dict[str, Tuple[Pattern, str]] = {
            full: (_word_pattern(full), abbrev)
            for full, abbrev in SIMPLE_ABBREVIATIONS
            if full.upper() not in PROTECTED_TERMS
        }
        self._phrase_expansions = [
            (_word_pattern(abbrev), full)
            for full, abbrev in sorted(PHRASE_ABBREVIATIONS, key=lambda pair: len(pair[1]), reverse=True)
        ]
        self._word_expansions = [
            (_word_pattern(abbrev), full) for full, abbrev in SIMPLE_ABBREVIATIONS
        ]

    def select_abbreviations(self, aggressiveness: Aggressiveness) -> List[Tuple[str, str]]:
        """Single-word table entries active at ``aggressiveness``."""
        level = Aggressiveness.from_level(aggressiveness)
        if level == Aggressiveness.LOW:
            return [(f, a) for f, a in SIMPLE_ABBREVIATIONS if a in _LOW_ONLY]
        if level == Aggressiveness.MEDIUM:
            return [(f, a) for f, a in SIMPLE_ABBREVIATIONS if a not in _MEDIUM_EXCLUDED]
        return list(SIMPLE_ABBREVIATIONS)

    def abbreviate(
        self,
        text: str,
        aggressiveness: Aggressiveness = Aggressiveness.MEDIUM,
        use_phrases: bool = True,
    ) -> str:
        """
        缩写文本 / Abbreviate known terms.

        Phrases are rewritten before single words; protected acronyms and
        code spans are left as written.

        Example:
            >>> TechnicalAbbreviator().abbreviate("component configuration", Aggressiveness.LOW)
            'comp config'
        """
        if not text:
            return text

        processed, spans = protect_code_spans(text)

        if use_phrases:
            for pattern, abbrev in self._phrase_rules:
                processed = pattern.sub(_protected_replacer(abbrev), processed)

        for full, _ in self.select_abbreviations(aggressiveness):
            rule = self._word_rules.get(full)
            if rule is None:
                continue
            pattern, abbrev = rule
            processed = pattern.sub(_protected_replacer(abbrev), processed)

        return restore_code_spans(processed, spans)

    def expand(self, text: str) -> str:
        """
        展开缩写 / Reverse known abbreviations (best effort, lossy when ambiguous).
        """
        if not text:
            return text

        processed, spans = protect_code_spans(text)
        for pattern, full in self._phrase_expansions:
            processed = pattern.sub(_protected_replacer(full), processed)
        for pattern, full in self._word_expansions:
            processed = pattern.sub(_protected_replacer(full), processed)
        return restore_code_spans(processed, spans)


class TextCompressor:
    """
    组合压缩器 / Whitespace and abbreviation transforms behind one object.
    """

    def __init__(
        self,
        whitespace: Optional[WhitespaceCompressor] = None,
        abbreviator: Optional[TechnicalAbbreviator] = None,
    ):
        self.whitespace = whitespace if whitespace is not None else WhitespaceCompressor()
        self.abbreviator = abbreviator if abbreviator is not None else TechnicalAbbreviator()

    def compress_whitespace(self, text: str) -> str:
        return self.whitespace.compress(text)

    def abbreviate(self, text: str, aggressiveness: Aggressiveness = Aggressiveness.MEDIUM) -> str:
        return self.abbreviator.abbreviate(text, aggressiveness)

    def expand(self, text: str) -> str:
        return self.abbreviator.expand(text)
