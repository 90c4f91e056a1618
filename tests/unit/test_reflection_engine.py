"""
Tests for the critique-and-refine loop.
"""

import pytest

from src.analyzers.reflection_engine import ReflectionEngine
from src.utils.models import ArticleAnalysisResult, MainPoint


@pytest.fixture
def analysis():
    return ArticleAnalysisResult(
        one_line_summary="Rust ownership",
        summary="An article about ownership.",
        tags=["rust"],
        ai_score=6,
        analysis_model="direct-analysis",
    )


class TestRefine:
    @pytest.mark.asyncio
    async def test_good_analysis_is_left_alone(self, make_llm, analysis):
        llm = make_llm([{"quality": 8.5, "issues": []}])
        engine = ReflectionEngine(llm, model="critic")

        result = await engine.refine("content", analysis)

        assert result.summary == analysis.summary
        assert result.reflection_rounds == 0
        assert llm.models == ["critic"]

    @pytest.mark.asyncio
    async def test_improves_until_threshold(self, make_llm, analysis):
        llm = make_llm([
            {"quality": 5, "issues": ["too short"], "suggestions": ["expand"]},
            {"summary": "A longer article about ownership and borrowing."},
            {"quality": 8},
        ])
        engine = ReflectionEngine(llm, max_rounds=3)

        result = await engine.refine("content", analysis)

        assert result.summary == "A longer article about ownership and borrowing."
        assert result.tags == ["rust"]
        assert result.reflection_rounds == 1
        assert len(llm.calls) == 3

    @pytest.mark.asyncio
    async def test_improvement_is_capped(self, make_llm, analysis):
        llm = make_llm([
            {"quality": 5, "issues": ["too few points"]},
            {"mainPoints": [f"point {i}" for i in range(15)], "tags": [f"tag{i}" for i in range(12)]},
            {"quality": 9},
        ])
        engine = ReflectionEngine(llm, max_rounds=3)

        result = await engine.refine("content", analysis)

        assert len(result.main_points) == 10
        assert len(result.tags) == 8

    @pytest.mark.asyncio
    async def test_stops_at_max_rounds(self, make_llm, analysis):
        llm = make_llm(default={"quality": 4, "summary": "revised"})
        engine = ReflectionEngine(llm, max_rounds=2)

        result = await engine.refine("content", analysis)

        assert result.reflection_rounds == 2
        # reflect, improve, reflect, improve
        assert len(llm.calls) == 4

    @pytest.mark.asyncio
    async def test_round_override(self, make_llm, analysis):
        llm = make_llm(default={"quality": 4})
        engine = ReflectionEngine(llm, max_rounds=2)

        result = await engine.refine("content", analysis, max_rounds=0)

        assert result.reflection_rounds == 0
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_reflection_failure_accepts_analysis(self, make_llm, analysis):
        llm = make_llm([RuntimeError("timeout")])
        engine = ReflectionEngine(llm)

        reflection = await engine.reflect("content", analysis)
        assert reflection.quality == 8
        assert reflection.needs_refinement is False

    @pytest.mark.asyncio
    async def test_improvement_failure_keeps_previous(self, make_llm, analysis):
        llm = make_llm([{"quality": 3}, "not json", {"quality": 9}])
        engine = ReflectionEngine(llm, max_rounds=2)

        result = await engine.refine("content", analysis)

        assert result.summary == analysis.summary
        assert result.reflection_rounds == 1

    @pytest.mark.asyncio
    async def test_input_is_not_mutated(self, make_llm, analysis):
        llm = make_llm([{"quality": 3}, {"summary": "changed"}, {"quality": 9}])

        await ReflectionEngine(llm).refine("content", analysis)

        assert analysis.summary == "An article about ownership."
        assert analysis.reflection_rounds == 0


class TestQuickCheck:
    def test_estimate_quality(self, analysis):
        analysis.main_points = [MainPoint(point=p) for p in ("a", "b", "c")]
        analysis.tags = ["rust", "memory"]

        # one-line 10-50 chars, 3 points, 2 tags, score in range; summary under 50 chars
        assert ReflectionEngine.estimate_quality(analysis) == 8.0

    def test_quick_check_threshold(self, make_llm):
        engine = ReflectionEngine(make_llm(), quality_threshold=7)
        check = engine.quick_check(ArticleAnalysisResult(ai_score=2))

        assert check["passed"] is False
        assert check["quality"] == 5.0
