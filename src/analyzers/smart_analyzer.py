"""
Length-aware article analysis.

Three strategies, chosen by content length:
- short: a single direct LLM call
- segmented: delegated to SegmentedAnalyzer
- long: paragraph segments analyzed concurrently, then merged

Every strategy is enriched with reading statistics and open-source detection.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

from src.analyzers.result_parser import parse_analysis_result, round_half_up
from src.analyzers.segmented_analyzer import SegmentedAnalyzer
from src.analyzers.text_stats import calculate_content_stats, deduplicate_points, detect_open_source
from src.providers.ai_provider import JSON_OBJECT, system_message, user_message
from src.utils.config import AnalyzerConfig
from src.utils.constants import AnalysisConstants, ModelConstants
from src.utils.llm_prompts import LLMPrompts
from src.utils.logger import logger
from src.utils.models import (
    AnalyzeMetadata,
    ArticleAnalysisResult,
    MainPoint,
    Outcome,
    ScoreDimensions,
)


class AnalysisInputError(ValueError):
    """Raised when content cannot be analyzed at all (e.g. empty)."""

    pass


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def split_long_paragraph(paragraph: str, max_length: int) -> List[str]:
    """Split on sentence boundaries, accumulating sentences up to max_length"""
    segments: List[str] = []
    current = ""
    sentences = AnalysisConstants.SENTENCE_PATTERN.findall(paragraph) or [paragraph]

    for sentence in sentences:
        if current and len(current) + len(sentence) > max_length:
            segments.append(current.strip())
            current = sentence
        else:
            current += sentence

    if current:
        segments.append(current.strip())
    return [s for s in segments if s]


def split_into_segments(content: str, max_length: int) -> List[str]:
    """
    Split content into ordered, non-empty segments of at most max_length characters.

    Paragraphs (blank-line separated) are accumulated; a paragraph longer
    than max_length is split on sentence boundaries on its own. A single
    sentence longer than max_length stays whole.
    """
    joiner = AnalysisConstants.SEGMENT_JOINER
    segments: List[str] = []
    current = ""

    for paragraph in AnalysisConstants.PARAGRAPH_SPLIT_PATTERN.split(content):
        paragraph = paragraph.strip()
        if not paragraph:
            continue

        if len(paragraph) > max_length:
            if current:
                segments.append(current.strip())
                current = ""
            segments.extend(split_long_paragraph(paragraph, max_length))
        elif current and len(current) + len(joiner) + len(paragraph) > max_length:
            segments.append(current.strip())
            current = paragraph
        else:
            current += (joiner if current else "") + paragraph

    if current:
        segments.append(current.strip())
    return [s for s in segments if s]


class SmartAnalyzer:
    """Dispatches an article to the cheapest adequate analysis strategy"""

    def __init__(
        self,
        llm,
        config: Optional[AnalyzerConfig] = None,
        model: str = ModelConstants.DIRECT_ANALYSIS_MODEL,
        segmented_analyzer: Optional[SegmentedAnalyzer] = None,
    ):
        self.llm = llm
        self.config = config or AnalyzerConfig()
        self.model = model
        self.segmented_analyzer = segmented_analyzer or SegmentedAnalyzer(llm, model, self.config)

    async def analyze(self, content: str, metadata: Optional[AnalyzeMetadata] = None) -> ArticleAnalysisResult:
        """
        Analyze one article.

        Args:
            content: Article text
            metadata: Optional title/author/url context

        Returns:
            ArticleAnalysisResult with statistics and open-source info attached

        Raises:
            AnalysisInputError: If content is empty
        """
        if not content or not content.strip():
            raise AnalysisInputError("Cannot analyze empty content")

        metadata = metadata or AnalyzeMetadata()
        start = time.monotonic()
        length = len(content)

        stats = calculate_content_stats(content)
        open_source = detect_open_source(content, metadata.url)

        if length <= self.config.short_threshold:
            logger.info(f"Analyzing {length} chars with direct strategy")
            result = await self.analyze_short(content, metadata)
            result.processing_time = _elapsed_ms(start)
        elif length <= self.config.segment_threshold:
            logger.info(f"Analyzing {length} chars with segmented strategy")
            result = await self.segmented_analyzer.analyze(content, metadata)
        else:
            logger.info(f"Analyzing {length} chars with long-article strategy")
            result = await self.analyze_long(content, metadata)

        result.content_length = stats.content_length
        result.word_count = stats.word_count
        result.reading_time_minutes = stats.reading_time_minutes
        result.open_source = open_source
        return result

    async def analyze_short(self, content: str, metadata: Optional[AnalyzeMetadata] = None) -> ArticleAnalysisResult:
        start = time.monotonic()
        response = await self.llm.chat(
            model=self.model,
            messages=[
                system_message(LLMPrompts.get_analysis_system_prompt()),
                user_message(LLMPrompts.get_direct_analysis_user_prompt(content, metadata)),
            ],
            response_format=JSON_OBJECT,
        )
        return parse_analysis_result(response.content, AnalysisConstants.DIRECT_ANALYSIS_MODEL, _elapsed_ms(start))

    async def analyze_long(self, content: str, metadata: Optional[AnalyzeMetadata] = None) -> ArticleAnalysisResult:
        segments = split_into_segments(content, self.config.segment_max_length)
        logger.info(f"Split article into {len(segments)} segments")

        tasks = [self._analyze_segment(segment, metadata, index) for index, segment in enumerate(segments)]
        raw_results = await asyncio.gather(*tasks, return_exceptions=True)

        outcomes: List[Outcome[ArticleAnalysisResult]] = []
        for index, raw in enumerate(raw_results):
            if isinstance(raw, BaseException):
                if not isinstance(raw, Exception):
                    raise raw
                logger.error(f"Segment {index} analysis failed: {raw}")
                outcomes.append(Outcome(index=index, error=raw))
            else:
                outcomes.append(Outcome(index=index, value=raw))

        return self.merge_outcomes(outcomes)

    async def _analyze_segment(self, segment: str, metadata: Optional[AnalyzeMetadata], index: int) -> ArticleAnalysisResult:
        start = time.monotonic()
        response = await self.llm.chat(
            model=self.model,
            messages=[
                system_message(LLMPrompts.get_segment_system_prompt()),
                user_message(LLMPrompts.get_segment_user_prompt(segment, metadata, index)),
            ],
            response_format=JSON_OBJECT,
        )
        return parse_analysis_result(response.content, self.model, _elapsed_ms(start))

    def merge_outcomes(self, outcomes: List[Outcome[ArticleAnalysisResult]]) -> ArticleAnalysisResult:
        """Substitute an empty result for each failed unit, then merge in segment order"""
        ordered = sorted(outcomes, key=lambda o: o.index)
        results = [o.value if o.ok else ArticleAnalysisResult.empty() for o in ordered]
        return self.merge_results(results)

    def merge_results(self, results: List[ArticleAnalysisResult]) -> ArticleAnalysisResult:
        valid = [r for r in results if r.summary]
        if not valid:
            logger.warning("No segment produced a usable analysis")
            return ArticleAnalysisResult.empty(AnalysisConstants.MERGED_ANALYSIS_MODEL)

        pooled_points = [p.point for r in valid for p in r.main_points]
        unique_points = deduplicate_points(pooled_points, self.config.similarity_threshold)
        unique_tags = list(dict.fromkeys(tag for r in valid for tag in r.tags))
        first = valid[0]

        return ArticleAnalysisResult(
            one_line_summary=first.one_line_summary,
            summary="\n\n".join(r.summary for r in valid),
            main_points=[
                MainPoint(point=p, explanation="", importance=AnalysisConstants.MERGED_POINT_IMPORTANCE)
                for p in unique_points[:AnalysisConstants.MAX_MAIN_POINTS]
            ],
            tags=unique_tags[:AnalysisConstants.MAX_TAGS],
            domain=first.domain,
            subcategory=first.subcategory,
            key_quotes=first.key_quotes,
            ai_score=self._average_score(valid),
            score_dimensions=self._merge_dimensions(valid),
            analysis_model=AnalysisConstants.MERGED_ANALYSIS_MODEL,
            processing_time=sum(r.processing_time for r in valid),
            reflection_rounds=0,
        )

    @staticmethod
    def _average_score(results: List[ArticleAnalysisResult]) -> float:
        scores = [r.ai_score for r in results if r.ai_score is not None]
        if not scores:
            return AnalysisConstants.DEFAULT_AI_SCORE
        return round_half_up(sum(scores) / len(scores))

    @staticmethod
    def _merge_dimensions(results: List[ArticleAnalysisResult]) -> Optional[ScoreDimensions]:
        reported = [r.score_dimensions for r in results if r.score_dimensions is not None]
        if not reported:
            return None
        return ScoreDimensions(**{
            key: round_half_up(sum(getattr(d, key) for d in reported) / len(reported))
            for key in AnalysisConstants.SCORE_DIMENSIONS
        })

    def update_config(self, **updates: Any) -> None:
        self.config = self.config.model_copy(update=updates)
        self.segmented_analyzer.config = self.config

    def get_config(self) -> Dict[str, Any]:
        return self.config.model_dump()


def create_smart_analyzer(llm, config: Optional[AnalyzerConfig] = None, model: Optional[str] = None) -> SmartAnalyzer:
    """Analyzer with thresholds from SHORT_ARTICLE_THRESHOLD / SEGMENT_ARTICLE_THRESHOLD"""
    return SmartAnalyzer(llm, config or AnalyzerConfig(), model=model or ModelConstants.DIRECT_ANALYSIS_MODEL)
