"""
Deterministic text helpers: reading statistics, open-source detection, point similarity
"""
import math
from typing import Optional

from pydantic import BaseModel

from src.utils.constants import AnalysisConstants, OpenSourceConstants
from src.utils.models import OpenSourceInfo


class ContentStats(BaseModel):
    content_length: int
    word_count: int
    reading_time_minutes: int


def calculate_content_stats(content: str) -> ContentStats:
    """CJK ideographs count one word each; Latin words count by letter runs"""
    cjk_chars = len(AnalysisConstants.CJK_CHAR_PATTERN.findall(content))
    latin_words = len(AnalysisConstants.LATIN_WORD_PATTERN.findall(content))
    word_count = cjk_chars + latin_words
    return ContentStats(
        content_length=len(content),
        word_count=word_count,
        reading_time_minutes=max(1, math.ceil(word_count / AnalysisConstants.WORDS_PER_MINUTE)),
    )


def detect_open_source(content: str, url: Optional[str] = None) -> Optional[OpenSourceInfo]:
    """
    Detect open-source signals in an article.

    Order: GitHub repository (URL first, then body), license phrase,
    first fenced-code language. At most one outcome.
    """
    url = url or ""

    for pattern in OpenSourceConstants.GITHUB_PATTERNS:
        match = pattern.search(url) or pattern.search(content)
        if match:
            return OpenSourceInfo(is_open_source=True, repo=f"https://github.com/{match.group(1)}")

    for pattern, license_name in OpenSourceConstants.LICENSE_PATTERNS:
        if pattern.search(content):
            return OpenSourceInfo(is_open_source=True, license=license_name)

    match = OpenSourceConstants.CODE_FENCE_LANGUAGE_PATTERN.search(content)
    if match:
        return OpenSourceInfo(is_open_source=False, language=match.group(1))

    return None


def jaccard_similarity(text1: str, text2: str) -> float:
    """Bag-of-words Jaccard similarity over lower-cased whitespace tokens"""
    words1 = set(text1.lower().split())
    words2 = set(text2.lower().split())
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def deduplicate_points(points, threshold: float):
    """Drop any point whose similarity to an already accepted point exceeds threshold; earlier wins"""
    unique = []
    for point in points:
        if not any(jaccard_similarity(existing, point) > threshold for existing in unique):
            unique.append(point)
    return unique
