"""
Lenient parsing of LLM responses into ArticleAnalysisResult
"""
import json
import math
from typing import Any, Dict, List, Optional

from src.utils.constants import AnalysisConstants
from src.utils.logger import logger
from src.utils.models import ArticleAnalysisResult, KeyQuote, MainPoint, ScoreDimensions


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def extract_json_object(text: str) -> Optional[str]:
    """
    Find the first balanced {...} span in text.

    Braces inside JSON string literals are ignored.

    Returns:
        The span, or None when no balanced object exists
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def load_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Parse the first JSON object embedded in text, or None"""
    span = extract_json_object(text or "")
    if span is None:
        return None
    try:
        data = json.loads(span)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _as_float(value: Any, default: float) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return result if math.isfinite(result) else default


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def parse_main_points(raw: Any) -> List[MainPoint]:
    """Accept plain strings or {point, explanation, importance} objects"""
    points = []
    if not isinstance(raw, list):
        return points
    for item in raw:
        if isinstance(item, str) and item.strip():
            points.append(MainPoint(point=item.strip()))
        elif isinstance(item, dict) and item.get("point"):
            points.append(MainPoint(
                point=str(item["point"]),
                explanation=str(item.get("explanation") or ""),
                importance=_clamp(_as_float(item.get("importance"), 0.5), 0.0, 1.0),
            ))
    return points


def parse_tags(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    return [str(tag).strip() for tag in raw if isinstance(tag, (str, int, float)) and str(tag).strip()]


def parse_score_dimensions(raw: Any) -> ScoreDimensions:
    raw = raw if isinstance(raw, dict) else {}
    default = AnalysisConstants.DEFAULT_DIMENSION_SCORE
    return ScoreDimensions(**{
        key: _clamp(_as_float(raw.get(key), default), 0, 10)
        for key in AnalysisConstants.SCORE_DIMENSIONS
    })


def parse_key_quotes(raw: Any) -> Optional[List[KeyQuote]]:
    if not isinstance(raw, list):
        return None
    quotes = []
    for item in raw:
        if isinstance(item, str) and item.strip():
            quotes.append(KeyQuote(quote=item.strip()))
        elif isinstance(item, dict) and item.get("quote"):
            quotes.append(KeyQuote(quote=str(item["quote"]), significance=str(item.get("significance") or "")))
    return quotes or None


def parse_ai_score(raw: Any) -> float:
    score = _as_float(raw, AnalysisConstants.DEFAULT_AI_SCORE)
    if score <= 0:
        return AnalysisConstants.DEFAULT_AI_SCORE
    return _clamp(score, 1, 10)


def parse_analysis_result(text: str, analysis_model: str, processing_time: int = 0) -> ArticleAnalysisResult:
    """
    Parse an LLM response into a fully defaulted result. Never raises.

    Args:
        text: Raw model output, possibly with prose around the JSON
        analysis_model: Tag recorded on the result
        processing_time: Elapsed milliseconds for this call

    Returns:
        Parsed result, or a degraded result built from the raw text
    """
    data = load_json_object(text)
    if data is None:
        logger.warning(f"Could not parse analysis JSON from {analysis_model} response, using raw text")
        return ArticleAnalysisResult(
            one_line_summary=(text or "")[:AnalysisConstants.FALLBACK_SUMMARY_LENGTH],
            summary=text or "",
            ai_score=AnalysisConstants.DEFAULT_AI_SCORE,
            domain=AnalysisConstants.UNKNOWN,
            subcategory=AnalysisConstants.UNKNOWN,
            score_dimensions=parse_score_dimensions(None),
            analysis_model=analysis_model,
            processing_time=processing_time,
        )

    return ArticleAnalysisResult(
        one_line_summary=str(data.get("oneLineSummary") or ""),
        summary=str(data.get("summary") or ""),
        main_points=parse_main_points(data.get("mainPoints")),
        tags=parse_tags(data.get("tags")),
        domain=str(data.get("domain") or AnalysisConstants.UNKNOWN),
        subcategory=str(data.get("subcategory") or AnalysisConstants.UNKNOWN),
        ai_score=parse_ai_score(data.get("aiScore")),
        score_dimensions=parse_score_dimensions(data.get("scoreDimensions")),
        key_quotes=parse_key_quotes(data.get("keyQuotes")),
        analysis_model=analysis_model,
        processing_time=processing_time,
    )


def shallow_merge(result: ArticleAnalysisResult, updates: Dict[str, Any]) -> Dict[str, Any]:
    """
    Overlay the recognised, non-empty fields of an LLM JSON reply onto a result.

    Returns:
        Field dict suitable for model_validate; untouched fields keep their values
    """
    merged = result.model_dump()
    if updates.get("oneLineSummary"):
        merged["one_line_summary"] = str(updates["oneLineSummary"])
    if updates.get("summary"):
        merged["summary"] = str(updates["summary"])
    if updates.get("mainPoints"):
        points = parse_main_points(updates["mainPoints"])
        if points:
            merged["main_points"] = [p.model_dump() for p in points[:AnalysisConstants.MAX_MAIN_POINTS]]
    if updates.get("tags"):
        tags = parse_tags(updates["tags"])
        if tags:
            merged["tags"] = tags[:AnalysisConstants.MAX_TAGS]
    if updates.get("domain"):
        merged["domain"] = str(updates["domain"])
    if updates.get("subcategory"):
        merged["subcategory"] = str(updates["subcategory"])
    if updates.get("aiScore"):
        merged["ai_score"] = parse_ai_score(updates["aiScore"])
    if isinstance(updates.get("scoreDimensions"), dict):
        merged["score_dimensions"] = parse_score_dimensions(updates["scoreDimensions"]).model_dump()
    if updates.get("keyQuotes"):
        quotes = parse_key_quotes(updates["keyQuotes"])
        if quotes:
            merged["key_quotes"] = [q.model_dump() for q in quotes]
    return merged
