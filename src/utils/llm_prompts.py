"""
LLM prompt construction for the article analysis pipeline.

All prompts follow the principle: STATIC CONTENT FIRST (system prompt),
DYNAMIC CONTENT LAST (user prompt). Static instructions and JSON schemas
live in system prompts so repeated calls share an identical prefix.
"""

import json
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from src.utils.models import (
        AnalyzeMetadata,
        ArticleAnalysisResult,
        ReflectionResult,
        UserFeedback,
    )


UNKNOWN = "unknown"


def _truncated(content: str, limit: int) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + "\n...(truncated)"


class LLMPrompts:
    """Centralized LLM prompts for article analysis."""

    ANALYSIS_SCHEMA = """{
  "oneLineSummary": "one-sentence summary",
  "summary": "detailed summary (3-5 sentences)",
  "mainPoints": [{"point": "main point", "explanation": "why it matters", "importance": 0.8}],
  "tags": ["tag1", "tag2", "tag3"],
  "domain": "domain",
  "subcategory": "subcategory",
  "aiScore": 8,
  "scoreDimensions": {"depth": 8, "quality": 7, "practicality": 9, "novelty": 6},
  "keyQuotes": [{"quote": "verbatim quote", "significance": "why it matters"}]
}"""

    @staticmethod
    def get_analysis_system_prompt() -> str:
        """
        Get the static system prompt for whole-article analysis.

        Returns:
            str: Static system prompt with the full JSON schema
        """
        return f"""You are a senior technical editor who analyzes articles precisely and objectively.

Return ONLY valid JSON with this exact format:
{LLMPrompts.ANALYSIS_SCHEMA}

Scoring guidance:
- aiScore is 1-10 overall value to a technical reader
- each scoreDimensions value is 0-10
- mainPoints are ordered most important first, importance between 0 and 1
- at most 10 mainPoints and 8 tags"""

    @staticmethod
    def get_direct_analysis_user_prompt(content: str, metadata: Optional["AnalyzeMetadata"] = None) -> str:
        title = metadata.title if metadata and metadata.title else UNKNOWN
        author = metadata.author if metadata and metadata.author else UNKNOWN
        published = metadata.published_at.isoformat() if metadata and metadata.published_at else UNKNOWN

        return f"""Analyze the following article:

Title: {title}
Author: {author}
Published: {published}

{content}"""

    @staticmethod
    def get_segment_system_prompt() -> str:
        return """You analyze one part of a long article. Focus only on the given passage.

Return ONLY valid JSON with this exact format:
{
  "summary": "summary of this passage",
  "mainPoints": ["passage point 1", "passage point 2"],
  "tags": ["passage tag"],
  "domain": "domain",
  "subcategory": "subcategory",
  "aiScore": 7,
  "scoreDimensions": {"depth": 7, "quality": 7, "practicality": 7, "novelty": 7}
}"""

    @staticmethod
    def get_segment_user_prompt(segment: str, metadata: Optional["AnalyzeMetadata"] = None, index: Optional[int] = None) -> str:
        prefix = f"[Part {index + 1}] " if index is not None else ""
        title = metadata.title if metadata and metadata.title else UNKNOWN
        return f"""{prefix}Analyze this passage of a longer article.

Title: {title}

{segment}"""

    @staticmethod
    def get_block_analysis_system_prompt() -> str:
        return """You are a technical article analysis assistant. Extract the key information from the given passage.

Return ONLY valid JSON with this exact format:
{
  "keyPoints": ["point 1", "point 2"],
  "technicalDetails": ["technical detail"],
  "sentiment": "positive|neutral|negative",
  "importance": 0.8,
  "entities": ["entity 1", "entity 2"]
}

- keyPoints: 2-5 key points
- technicalDetails: only for code passages
- importance: 0-1, how much this passage matters to the whole article"""

    @staticmethod
    def get_block_analysis_user_prompt(segment_content: str, segment_type: str) -> str:
        return f"""Passage type: {segment_type}

{_truncated(segment_content, 2000)}"""

    @staticmethod
    def get_segment_summary_prompt(points: List[str], title: Optional[str], author: Optional[str]) -> str:
        numbered = "\n".join(f"{i + 1}. {p}" for i, p in enumerate(points))
        return f"""Write a summary of an article from the key points of its passages.

Title: {title or UNKNOWN}
Author: {author or UNKNOWN}

Key points:
{numbered}

Return ONLY valid JSON:
{{"oneLine": "one-sentence summary", "full": "detailed summary (3-5 sentences)"}}"""

    @staticmethod
    def get_reflection_system_prompt() -> str:
        return """You are a senior technical editor who strictly reviews the quality of article analyses.

Score each dimension out of 10:
1. Comprehensiveness: are core arguments or key technical points missing?
2. Accuracy: does the summary match the source?
3. Depth: does it capture deeper insights rather than surface description?
4. Consistency: are tags, category and score logically consistent?
5. Objectivity: is the score free of bias?

Return ONLY valid JSON:
{
  "quality": 7.5,
  "scores": {"comprehensiveness": 8, "accuracy": 9, "depth": 7, "consistency": 8, "objectivity": 7},
  "issues": ["missing key point X"],
  "suggestions": ["add X"],
  "needsRefinement": true
}"""

    @staticmethod
    def get_reflection_user_prompt(content: str, analysis: "ArticleAnalysisResult") -> str:
        points = "; ".join(p.point for p in analysis.main_points)
        return f"""Source excerpt:
{_truncated(content, 3000)}

Analysis:
- One-line summary: {analysis.one_line_summary}
- Summary: {analysis.summary}
- Main points: {points}
- Tags: {", ".join(analysis.tags)}
- Category: {analysis.domain} / {analysis.subcategory}
- Score: {analysis.ai_score}/10"""

    @staticmethod
    def get_improvement_system_prompt() -> str:
        return f"""You are a senior technical editor who improves article analyses according to review feedback.

Output the complete improved analysis as ONLY valid JSON in this format:
{LLMPrompts.ANALYSIS_SCHEMA}"""

    @staticmethod
    def get_improvement_user_prompt(analysis: "ArticleAnalysisResult", reflection: "ReflectionResult", content: str) -> str:
        issues = "\n".join(f"{i + 1}. {issue}" for i, issue in enumerate(reflection.issues))
        suggestions = "\n".join(f"{i + 1}. {s}" for i, s in enumerate(reflection.suggestions))
        current = json.dumps(analysis.model_dump(mode="json", exclude_none=True), ensure_ascii=False, indent=2)
        return f"""Source excerpt:
{_truncated(content, 2000)}

Current analysis:
{current}

Review issues:
{issues or "none"}

Suggestions:
{suggestions or "none"}"""

    @staticmethod
    def get_feedback_user_prompt(analysis: "ArticleAnalysisResult", feedback: "UserFeedback") -> str:
        lines = []
        if feedback.summary_issue:
            lines.append(f"Summary problem: {feedback.summary_issue}")
        if feedback.tag_suggestions:
            lines.append(f"Suggested tags: {', '.join(feedback.tag_suggestions)}")
        if feedback.rating is not None:
            lines.append(f"Rating: {feedback.rating}/5")
        if feedback.is_helpful is not None:
            lines.append(f"Helpful: {'yes' if feedback.is_helpful else 'no'}")
        if feedback.comments:
            lines.append(f"Comments: {feedback.comments}")

        current = json.dumps(analysis.model_dump(mode="json", exclude_none=True), ensure_ascii=False, indent=2)
        return f"""Improve this analysis based on reader feedback.

Current analysis:
{current}

Reader feedback:
{chr(10).join(f"- {line}" for line in lines)}

Return only the fields you change, as ONLY valid JSON using the same field names."""

    RELATION_TEMPLATES = {
        "prerequisite": "Is article A required background knowledge for understanding article B?",
        "extension": "Does article B extend or go deeper into the topic of article A?",
        "contradiction": "Does article B contradict the viewpoint of article A?",
        "similar": "Do article A and article B discuss closely related topics?",
    }

    @staticmethod
    def get_relation_confirmation_prompt(
        relation_type: str,
        source_title: str,
        source_summary: str,
        target_title: str,
        target_summary: str,
        preview_length: int = 200,
    ) -> str:
        question = LLMPrompts.RELATION_TEMPLATES[relation_type]
        return f"""{question}

Article A: {source_title}
{(source_summary or "")[:preview_length]}

Article B: {target_title}
{(target_summary or "")[:preview_length]}

Answer with only true or false."""

    @staticmethod
    def get_preliminary_system_prompt() -> str:
        return """You triage articles for a technical reading list. Judge quickly whether an article is worth a deep analysis.

Return ONLY valid JSON:
{"ignore": false, "reason": "topic of the article", "value": 4, "summary": "one-sentence summary (max 50 characters)"}

value is 1-5: 1 = spam or trivial, 3 = worth reading, 5 = essential."""

    @staticmethod
    def get_preliminary_user_prompt(title: Optional[str], content: str) -> str:
        return f"""Title: {title or UNKNOWN}

Content:
{content}"""
