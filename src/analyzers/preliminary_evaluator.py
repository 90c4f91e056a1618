"""
Cheap pass/reject triage before deep analysis
"""

from typing import Optional

from src.analyzers.language_detector import LanguageDetector, language_detector
from src.analyzers.model_selector import ModelSelector
from src.analyzers.result_parser import load_json_object
from src.providers.ai_provider import JSON_OBJECT, system_message, user_message
from src.utils.constants import QueueConstants
from src.utils.llm_prompts import LLMPrompts
from src.utils.logger import logger
from src.utils.models import PreliminaryEvaluation


SUMMARY_LENGTH = 50


def calculate_confidence(content_length: int, value: int) -> float:
    """Longer content is more trustworthy; extreme values less so"""
    confidence = min(0.5 + content_length / 4000, 1.0)
    if value <= 1 or value >= 5:
        confidence *= 0.8
    return round(confidence, 2)


class PreliminaryEvaluator:
    """Scores an article 1-5 with the cheapest model for its language"""

    def __init__(
        self,
        llm,
        model_selector: ModelSelector,
        min_value: int = 3,
        detector: Optional[LanguageDetector] = None,
        truncate_length: int = QueueConstants.PRELIMINARY_CONTENT_LIMIT,
    ):
        self.llm = llm
        self.model_selector = model_selector
        self.min_value = min_value
        self.detector = detector or language_detector
        self.truncate_length = truncate_length

    async def evaluate(self, title: Optional[str], content: str) -> PreliminaryEvaluation:
        """
        Triage one article. LLM failures yield a conservative pass (value 3).

        Args:
            title: Article title
            content: Article text (truncated before the call)

        Returns:
            PreliminaryEvaluation with ignore = value < min_value
        """
        excerpt = content[:self.truncate_length]
        language = self.detector.detect(excerpt).language
        model = self.model_selector.select_model(language, "preliminary")

        try:
            response = await self.llm.chat(
                model=model,
                messages=[
                    system_message(LLMPrompts.get_preliminary_system_prompt()),
                    user_message(LLMPrompts.get_preliminary_user_prompt(title, excerpt)),
                ],
                response_format=JSON_OBJECT,
            )
            data = load_json_object(response.content)
            if data is None:
                raise ValueError("no JSON object in preliminary response")

            try:
                value = int(round(float(data.get("value", 3))))
            except (TypeError, ValueError):
                value = 3
            value = max(1, min(5, value))
            summary = str(data.get("summary") or "")[:SUMMARY_LENGTH]
            reason = str(data.get("reason") or "Uncategorized")
        except Exception as e:
            logger.error(f"Preliminary evaluation failed, passing conservatively: {e}")
            value = 3
            summary = "Content pending analysis"
            reason = "Evaluation failed"

        return PreliminaryEvaluation(
            ignore=value < self.min_value,
            reason=reason,
            value=value,
            summary=summary,
            language=language,
            confidence=calculate_confidence(len(excerpt), value),
            model=model,
        )
