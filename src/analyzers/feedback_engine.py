"""
Feedback-driven refinement of analysis results
"""

import asyncio
from typing import List, Optional

from pydantic import BaseModel

from src.analyzers.reflection_engine import ReflectionEngine
from src.analyzers.result_parser import load_json_object, shallow_merge
from src.providers.ai_provider import JSON_OBJECT, system_message, user_message
from src.utils.constants import ModelConstants, RefinementConstants
from src.utils.llm_prompts import LLMPrompts
from src.utils.logger import logger
from src.utils.models import ArticleAnalysisResult, FeedbackAnalysis, ImprovedResult, UserFeedback


SEVERITY_ORDER = {"low": 0, "medium": 1, "high": 2}


def _at_least(current: str, minimum: str) -> str:
    return current if SEVERITY_ORDER[current] >= SEVERITY_ORDER[minimum] else minimum


def analyze_feedback(feedback: UserFeedback) -> FeedbackAnalysis:
    """
    Classify user feedback by severity.

    Rating <= 2 is high, <= 3 medium. An unhelpful verdict or a summary
    issue raises severity to at least medium and never lowers it.
    """
    severity = "low"
    needs_improvement = False
    suggestions: List[str] = []

    if feedback.rating is not None:
        if feedback.rating <= 2:
            severity = "high"
            needs_improvement = True
            suggestions.append("Very low rating: re-analyze the article thoroughly")
        elif feedback.rating <= 3:
            severity = "medium"
            needs_improvement = True
            suggestions.append("Low rating: improve analysis quality")

    if feedback.is_helpful is False:
        severity = _at_least(severity, "medium")
        needs_improvement = True
        suggestions.append("Reader found the analysis unhelpful")

    if feedback.summary_issue:
        severity = _at_least(severity, "medium")
        needs_improvement = True
        suggestions.append(f"Summary issue: {feedback.summary_issue}")

    if feedback.tag_suggestions:
        suggestions.append(f"Tag suggestions: {', '.join(feedback.tag_suggestions)}")

    if feedback.comments:
        suggestions.append(f"Comments: {feedback.comments}")

    if feedback.summary_issue:
        feedback_type = "summary"
    elif feedback.tag_suggestions:
        feedback_type = "tags"
    else:
        feedback_type = "general"

    return FeedbackAnalysis(
        needs_improvement=needs_improvement,
        severity=severity,
        feedback_type=feedback_type,
        suggestions=suggestions,
    )


class FeedbackItem(BaseModel):
    entry_id: int
    current_result: ArticleAnalysisResult
    feedback: Optional[UserFeedback] = None
    content: Optional[str] = None


class FeedbackEngine:
    """Combines self-reflection with reader feedback to improve an analysis"""

    def __init__(self, llm, reflection_engine: Optional[ReflectionEngine] = None, model: str = ModelConstants.DIRECT_ANALYSIS_MODEL):
        self.llm = llm
        self.reflection_engine = reflection_engine or ReflectionEngine(llm)
        self.model = model

    async def improve_with_feedback(
        self,
        entry_id: int,
        current_result: ArticleAnalysisResult,
        feedback: Optional[UserFeedback] = None,
        content: Optional[str] = None,
    ) -> ImprovedResult:
        """
        Improve an analysis using reflection and optional user feedback.

        Each step is guarded on its own; a failed step leaves the result
        as it was and does not count toward feedback_applied.

        Args:
            entry_id: Entry the analysis belongs to
            current_result: Analysis to improve
            feedback: Optional reader feedback
            content: Optional source text; enables self-reflection

        Returns:
            ImprovedResult with feedback_applied and feedback_analysis
        """
        improved = current_result
        applied = 0
        feedback_analysis = analyze_feedback(feedback) if feedback else None
        needs_improvement = bool(feedback_analysis and feedback_analysis.needs_improvement)

        if content:
            rounds = RefinementConstants.DEEP_REFLECTION_ROUNDS if needs_improvement else RefinementConstants.LIGHT_REFLECTION_ROUNDS
            try:
                improved = await self.reflection_engine.refine(content, improved, rounds)
                applied += 1
            except Exception as e:
                logger.error(f"Reflection failed for entry {entry_id}: {e}")

        if feedback and needs_improvement:
            try:
                improved = await self.apply_user_feedback(improved, feedback)
                applied += 1
            except Exception as e:
                logger.error(f"Applying user feedback failed for entry {entry_id}: {e}")

        data = improved.model_dump()
        data.update(feedback_applied=applied, feedback_analysis=feedback_analysis)
        return ImprovedResult.model_validate(data)

    async def apply_user_feedback(self, analysis: ArticleAnalysisResult, feedback: UserFeedback) -> ArticleAnalysisResult:
        """
        Ask the LLM to revise the analysis according to the feedback.

        Raises:
            ValueError: If the reply holds no JSON object
        """
        response = await self.llm.chat(
            model=self.model,
            messages=[
                system_message("You improve article analyses according to reader feedback."),
                user_message(LLMPrompts.get_feedback_user_prompt(analysis, feedback)),
            ],
            response_format=JSON_OBJECT,
        )
        data = load_json_object(response.content)
        if data is None:
            raise ValueError("no JSON object in feedback response")

        merged = shallow_merge(analysis, data)
        merged["analysis_model"] = analysis.analysis_model
        merged["processing_time"] = analysis.processing_time
        merged["reflection_rounds"] = analysis.reflection_rounds + 1
        return type(analysis).model_validate(merged)

    async def process_feedback_batch(self, items: List[FeedbackItem]) -> List[ImprovedResult]:
        return list(await asyncio.gather(*[
            self.improve_with_feedback(item.entry_id, item.current_result, item.feedback, item.content)
            for item in items
        ]))
