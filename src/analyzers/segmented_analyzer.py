"""
Map-reduce analysis for medium-length articles.

Content is cut into block-aware segments (fenced code kept whole), each
segment is analyzed for key points, then the points are aggregated and
summarized with one more call.
"""

import asyncio
import time
from typing import List, Optional

from pydantic import BaseModel, Field

from src.analyzers.result_parser import load_json_object
from src.analyzers.text_stats import deduplicate_points
from src.providers.ai_provider import JSON_OBJECT, system_message, user_message
from src.utils.config import AnalyzerConfig
from src.utils.constants import AnalysisConstants
from src.utils.llm_prompts import LLMPrompts
from src.utils.logger import logger
from src.utils.models import AnalyzeMetadata, ArticleAnalysisResult, MainPoint, ScoreDimensions


class Segment(BaseModel):
    id: int
    content: str
    type: str = "text"  # text, code, quote, heading


class SegmentAnalysis(BaseModel):
    segment_id: int
    key_points: List[str] = Field(default_factory=list)
    technical_details: List[str] = Field(default_factory=list)
    sentiment: str = "neutral"
    importance: float = 0.5
    entities: List[str] = Field(default_factory=list)


def split_blocks(content: str) -> List[str]:
    """Split on blank lines, never inside a ``` fence"""
    blocks: List[str] = []
    current: List[str] = []
    in_fence = False

    for line in content.split("\n"):
        if line.strip().startswith("```"):
            in_fence = not in_fence
        if not line.strip() and not in_fence:
            if current:
                blocks.append("\n".join(current))
                current = []
            continue
        current.append(line)

    if current:
        blocks.append("\n".join(current))
    return blocks


def detect_segment_type(blocks: List[str]) -> str:
    if any("```" in b for b in blocks):
        return "code"
    if any(b.strip().startswith(">") for b in blocks):
        return "quote"
    if any(b.strip().startswith("#") for b in blocks):
        return "heading"
    return "text"


class SegmentedAnalyzer:
    """Analyzes an article segment by segment and aggregates the findings"""

    def __init__(self, llm, model: str, config: Optional[AnalyzerConfig] = None, overlap_blocks: int = 3):
        self.llm = llm
        self.model = model
        self.config = config or AnalyzerConfig()
        self.overlap_blocks = overlap_blocks

    async def analyze(self, content: str, metadata: Optional[AnalyzeMetadata] = None) -> ArticleAnalysisResult:
        start = time.monotonic()
        metadata = metadata or AnalyzeMetadata()

        segments = self.segment(content)
        logger.info(f"Segmented analysis: {len(segments)} segments")

        analyses = await asyncio.gather(*[self._analyze_segment(s) for s in segments])
        result = await self._aggregate(list(analyses), metadata)

        result.analysis_model = self.model
        result.processing_time = int((time.monotonic() - start) * 1000)
        return result

    def segment(self, content: str) -> List[Segment]:
        """Accumulate blocks up to segment_max_length, carrying a few blocks of overlap"""
        limit = self.config.segment_max_length
        segments: List[Segment] = []
        current: List[str] = []
        current_length = 0

        for block in split_blocks(content):
            if current and current_length + len(block) > limit:
                segments.append(Segment(id=len(segments), content="\n\n".join(current), type=detect_segment_type(current)))
                overlap_count = min(self.overlap_blocks, len(current) // 3)
                overlap = current[-overlap_count:] if overlap_count else []
                current = overlap + [block]
                current_length = sum(len(b) for b in current)
            else:
                current.append(block)
                current_length += len(block)

        if current:
            segments.append(Segment(id=len(segments), content="\n\n".join(current), type=detect_segment_type(current)))
        return segments

    async def _analyze_segment(self, segment: Segment) -> SegmentAnalysis:
        try:
            response = await self.llm.chat(
                model=self.model,
                messages=[
                    system_message(LLMPrompts.get_block_analysis_system_prompt()),
                    user_message(LLMPrompts.get_block_analysis_user_prompt(segment.content, segment.type)),
                ],
                response_format=JSON_OBJECT,
            )
            data = load_json_object(response.content)
            if data is None:
                raise ValueError("no JSON object in segment response")

            importance = data.get("importance")
            return SegmentAnalysis(
                segment_id=segment.id,
                key_points=[str(p) for p in data.get("keyPoints") or [] if str(p).strip()],
                technical_details=[str(d) for d in data.get("technicalDetails") or []],
                sentiment=data.get("sentiment") or "neutral",
                importance=max(0.0, min(1.0, float(importance))) if isinstance(importance, (int, float)) else 0.5,
                entities=[str(e) for e in data.get("entities") or []],
            )
        except Exception as e:
            logger.warning(f"Segment {segment.id} analysis failed: {e}")
            return SegmentAnalysis(segment_id=segment.id)

    async def _aggregate(self, analyses: List[SegmentAnalysis], metadata: AnalyzeMetadata) -> ArticleAnalysisResult:
        ranked = sorted(analyses, key=lambda a: a.importance, reverse=True)

        # Point -> importance of the segment it came from
        point_importance = {}
        for analysis in ranked:
            for point in analysis.key_points:
                point_importance.setdefault(point, analysis.importance)

        unique_points = deduplicate_points(list(point_importance), self.config.similarity_threshold)
        one_line, summary = await self._generate_summary(ranked, metadata)
        tags = list(dict.fromkeys(e for a in ranked for e in a.entities))[:AnalysisConstants.MAX_TAGS]
        ai_score, dimensions = self._calculate_scores(ranked)
        domain, subcategory = self._categorize(ranked)

        return ArticleAnalysisResult(
            one_line_summary=one_line,
            summary=summary,
            main_points=[
                MainPoint(point=p, importance=point_importance[p])
                for p in unique_points[:AnalysisConstants.MAX_MAIN_POINTS]
            ],
            tags=tags,
            domain=domain,
            subcategory=subcategory,
            ai_score=ai_score,
            score_dimensions=dimensions,
        )

    async def _generate_summary(self, analyses: List[SegmentAnalysis], metadata: AnalyzeMetadata):
        points = [p for a in analyses[:5] for p in a.key_points]
        fallback_title = metadata.title or ""
        try:
            response = await self.llm.chat(
                model=self.model,
                messages=[user_message(LLMPrompts.get_segment_summary_prompt(points, metadata.title, metadata.author))],
                response_format=JSON_OBJECT,
            )
            data = load_json_object(response.content) or {}
            return str(data.get("oneLine") or fallback_title), str(data.get("full") or " ".join(points))
        except Exception as e:
            logger.warning(f"Summary generation failed, joining segment points: {e}")
            return fallback_title, " ".join(points)

    @staticmethod
    def _calculate_scores(analyses: List[SegmentAnalysis]):
        if not analyses:
            return AnalysisConstants.DEFAULT_AI_SCORE, None

        avg_importance = sum(a.importance for a in analyses) / len(analyses)
        technical = sum(1 for a in analyses if a.technical_details)
        positive = sum(1 for a in analyses if a.sentiment == "positive")

        depth = min(10.0, 5 + technical * 1.5)
        quality = min(10.0, 5 + (positive / len(analyses)) * 5)

        ai_score = max(1.0, round(avg_importance * 10, 1))
        return ai_score, ScoreDimensions(
            depth=round(depth, 1),
            quality=round(quality, 1),
            practicality=round(depth * 0.7 + quality * 0.3, 1),
            novelty=round(quality * 0.5 + avg_importance * 10 * 0.5, 1),
        )

    @staticmethod
    def _categorize(analyses: List[SegmentAnalysis]):
        entities = " ".join(e for a in analyses for e in a.entities).lower()
        if "ai" in entities.split() or "machine learning" in entities:
            return "technology", "ai-ml"
        if any(lang in entities for lang in ("rust", "javascript", "python", "golang")):
            return "technology", "programming-languages"
        return "technology", "general"
