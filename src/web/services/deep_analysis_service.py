"""
Deep analysis job processing.

Flow for one entry:
1. Resolve language (preliminary result, else quick detection)
2. Pick analysis and reflection models for that language
3. Run SmartAnalyzer, then up to two reflection rounds
4. Persist the result on the entry
5. Embed the summary when an embedder is configured
"""

from typing import Optional

from sqlalchemy.orm import Session
import logging

from src.analyzers.reflection_engine import ReflectionEngine
from src.analyzers.smart_analyzer import create_smart_analyzer
from src.knowledge.vector_store import VectorStoreError
from src.utils.constants import QueueConstants, RefinementConstants
from src.utils.models import ArticleAnalysisResult, WorkflowContext
from src.web.models import AnalysisJob
from src.web.services import entry_service
from src.web.services.pipeline_factory import Pipeline

logger = logging.getLogger(__name__)


async def run_deep_analysis(
    context: WorkflowContext,
    pipeline: Pipeline,
    language: str,
) -> ArticleAnalysisResult:
    """
    Analyze and refine one article.

    A reflection failure keeps the unrefined analysis. Analysis failures
    propagate so the job can be retried.
    """
    analysis_model = pipeline.model_selector.select_model(language, "analysis")
    reflection_model = pipeline.model_selector.select_model(language, "reflection")
    logger.info(
        f"Deep analysis of entry {context.entry_id} ({language}): "
        f"analysis={analysis_model}, reflection={reflection_model}"
    )

    analyzer = create_smart_analyzer(context.llm, pipeline.config.analyzer, model=analysis_model)
    result = await analyzer.analyze(context.content, context.metadata)

    reflection = ReflectionEngine(
        context.llm,
        model=reflection_model,
        max_rounds=RefinementConstants.DEEP_ANALYSIS_REFLECTION_ROUNDS,
    )
    try:
        result = await reflection.refine(context.content, result)
    except Exception as e:
        logger.warning(f"Reflection failed for entry {context.entry_id}, keeping initial analysis: {e}")

    return result.model_copy(update={"analysis_model": f"{analysis_model}+{reflection_model}"})


async def embed_summary(context: WorkflowContext, pipeline: Pipeline, result: ArticleAnalysisResult, title: str):
    """Store the summary embedding; a missing vector or store error is logged and ignored."""
    if pipeline.embedder is None or context.vector_store is None:
        return

    vector = await pipeline.embedder.embed(result.summary or result.one_line_summary)
    if vector is None:
        logger.warning(f"No embedding produced for entry {context.entry_id}")
        return

    try:
        await context.vector_store.store(
            context.entry_id,
            vector,
            {"title": title, "domain": result.domain, "tags": result.tags},
        )
    except VectorStoreError as e:
        logger.error(f"Failed to store embedding for entry {context.entry_id}: {e}")


async def analyze_entry(
    db: Session,
    entry_id: int,
    pipeline: Pipeline,
    force: bool = False,
    user_id: Optional[int] = None,
) -> Optional[ArticleAnalysisResult]:
    """
    Run deep analysis for an entry and persist it.

    Args:
        db: Database session
        entry_id: Entry to analyze
        pipeline: Analysis collaborators
        force: Re-analyze an already analyzed entry
        user_id: Requesting user, if any

    Returns:
        The stored analysis, or None when the entry was already analyzed

    Raises:
        EntryNotFoundError: If entry doesn't exist
        MissingContentError: If entry has no content
    """
    entry = entry_service.get_entry(db, entry_id)
    content = entry_service.require_content(entry)

    if entry.analyzed_at and not force:
        logger.info(f"Entry {entry_id} already analyzed, skipping")
        return None

    language = entry.prelim_language or pipeline.detector.quick_detect(content)
    context = WorkflowContext(
        entry_id=entry_id,
        content=content,
        llm=pipeline.llm,
        metadata=entry_service.entry_metadata(entry),
        user_id=user_id,
        vector_store=pipeline.vector_store,
    )

    result = await run_deep_analysis(context, pipeline, language)
    entry_service.save_analysis_result(db, entry, result)
    logger.info(
        f"Entry {entry_id} analyzed: score={result.ai_score}, "
        f"rounds={result.reflection_rounds}, {result.processing_time}ms"
    )

    await embed_summary(context, pipeline, result, entry.title)
    return result


async def process_job(db: Session, job: AnalysisJob, pipeline: Pipeline) -> Optional[ArticleAnalysisResult]:
    """Process one claimed deep-analysis job."""
    if job.queue != QueueConstants.DEEP_ANALYSIS:
        raise ValueError(f"Job {job.id} belongs to the {job.queue} queue")
    return await analyze_entry(db, job.entry_id, pipeline, force=job.force, user_id=job.user_id)
