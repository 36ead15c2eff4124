"""
Semantic Deduplicator / 语义去重器
Near-duplicate removal by word-overlap similarity
基于词重叠度的近似重复片段移除
"""

import hashlib
from typing import List, Optional, Set, Tuple

from agent_os.config import config
from agent_os.context_engine.models import ContextFragment
from agent_os.context_engine.text_tokenizer import jaccard_similarity, significant_words, tokenize
from agent_os.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_THRESHOLD = 0.85
HASH_WORD_LIMIT = 20


def content_hash(text: str) -> str:
    """
    内容指纹 / Cheap fingerprint: the first 20 significant words, sorted.

    Catches exact and reordered duplicates without a full similarity pass.
    """
    words = sorted(significant_words(text)[:HASH_WORD_LIMIT])
    return hashlib.sha1("|".join(words).encode("utf-8")).hexdigest()


class SemanticDeduplicator:
    """
    语义去重器
    Keeps the first occurrence of every group of near-duplicate fragments.
    """

    def __init__(self, threshold: Optional[float] = None):
        if threshold is None:
            threshold = config.get("context_budget", {}).get("dedup_threshold", DEFAULT_THRESHOLD)
        self.threshold = float(threshold)

    def similarity(self, a: str, b: str) -> float:
        return jaccard_similarity(tokenize(a), tokenize(b))

    def remove_duplicates(self, fragments: List[ContextFragment]) -> List[ContextFragment]:
        """
        移除近似重复片段 / Remove near-duplicates, first occurrence wins.

        Input order decides which of two near-duplicates survives.
        """
        seen_hashes: Set[str] = set()
        accepted: List[Tuple[ContextFragment, Set[str]]] = []

        for fragment in fragments:
            digest = content_hash(fragment.content)
            if digest in seen_hashes:
                logger.debug("Dropped duplicate fragment %s (hash match)", fragment.id)
                continue

            words = set(tokenize(fragment.content))
            duplicate_of = None
            for kept, kept_words in accepted:
                if jaccard_similarity(words, kept_words) > self.threshold:
                    duplicate_of = kept.id
                    break

            if duplicate_of is not None:
                logger.debug("Dropped fragment %s (near-duplicate of %s)", fragment.id, duplicate_of)
                continue

            seen_hashes.add(digest)
            accepted.append((fragment, words))

        return [fragment for fragment, _ in accepted]
