"""
Critique-and-refine loop for analysis results
"""

from typing import Optional

from src.analyzers.result_parser import load_json_object, shallow_merge
from src.providers.ai_provider import JSON_OBJECT, system_message, user_message
from src.utils.constants import RefinementConstants
from src.utils.llm_prompts import LLMPrompts
from src.utils.logger import logger
from src.utils.models import ArticleAnalysisResult, ReflectionResult


class ReflectionEngine:
    """Runs up to max_rounds of reflect -> improve until quality reaches the threshold"""

    def __init__(
        self,
        llm,
        model: str = "gpt-4o",
        quality_threshold: float = RefinementConstants.QUALITY_THRESHOLD,
        max_rounds: int = RefinementConstants.DEEP_ANALYSIS_REFLECTION_ROUNDS,
    ):
        self.llm = llm
        self.model = model
        self.quality_threshold = quality_threshold
        self.max_rounds = max_rounds

    async def refine(
        self,
        content: str,
        analysis: ArticleAnalysisResult,
        max_rounds: Optional[int] = None,
    ) -> ArticleAnalysisResult:
        """
        Refine an analysis against its source text.

        Args:
            content: Source article text
            analysis: Current analysis
            max_rounds: Improvement rounds allowed (defaults to engine setting)

        Returns:
            Copy of the analysis after refinement; reflection_rounds counts
            the improvement rounds performed
        """
        rounds_allowed = self.max_rounds if max_rounds is None else max_rounds
        current = analysis
        rounds = 0

        while rounds < rounds_allowed:
            reflection = await self.reflect(content, current)
            if not reflection.needs_refinement or reflection.quality >= self.quality_threshold:
                break
            current = await self.improve(current, reflection, content)
            rounds += 1

        logger.debug(f"Reflection finished after {rounds} improvement rounds")
        return current.model_copy(update={"reflection_rounds": rounds})

    async def reflect(self, content: str, analysis: ArticleAnalysisResult) -> ReflectionResult:
        try:
            response = await self.llm.chat(
                model=self.model,
                messages=[
                    system_message(LLMPrompts.get_reflection_system_prompt()),
                    user_message(LLMPrompts.get_reflection_user_prompt(content, analysis)),
                ],
                response_format=JSON_OBJECT,
            )
            data = load_json_object(response.content)
            if data is None:
                raise ValueError("no JSON object in reflection response")

            quality = float(data.get("quality") or 0)
            return ReflectionResult(
                quality=quality,
                issues=[str(i) for i in data.get("issues") or []],
                suggestions=[str(s) for s in data.get("suggestions") or []],
                needs_refinement=quality < self.quality_threshold,
                scores=data.get("scores") if isinstance(data.get("scores"), dict) else None,
            )
        except Exception as e:
            logger.error(f"Reflection failed, accepting analysis as is: {e}")
            return ReflectionResult(
                quality=RefinementConstants.FAILED_REFLECTION_QUALITY,
                needs_refinement=False,
            )

    async def improve(
        self,
        analysis: ArticleAnalysisResult,
        reflection: ReflectionResult,
        content: str,
    ) -> ArticleAnalysisResult:
        try:
            response = await self.llm.chat(
                model=self.model,
                messages=[
                    system_message(LLMPrompts.get_improvement_system_prompt()),
                    user_message(LLMPrompts.get_improvement_user_prompt(analysis, reflection, content)),
                ],
                response_format=JSON_OBJECT,
            )
            data = load_json_object(response.content)
            if data is None:
                raise ValueError("no JSON object in improvement response")
            return type(analysis).model_validate(shallow_merge(analysis, data))
        except Exception as e:
            logger.error(f"Improvement failed, keeping previous analysis: {e}")
            return analysis

    def quick_check(self, analysis: ArticleAnalysisResult) -> dict:
        """Heuristic quality estimate without any LLM call"""
        quality = self.estimate_quality(analysis)
        return {"passed": quality >= self.quality_threshold, "quality": quality, "issues": []}

    @staticmethod
    def estimate_quality(analysis: ArticleAnalysisResult) -> float:
        score = 5.0
        if 10 <= len(analysis.one_line_summary) <= 50:
            score += 1
        if len(analysis.summary) >= 50:
            score += 1
        if len(analysis.main_points) >= 3:
            score += 1
        if len(analysis.tags) >= 2:
            score += 0.5
        if 4 <= analysis.ai_score <= 10:
            score += 0.5
        return min(10.0, score)
