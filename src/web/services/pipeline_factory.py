"""
Wiring of the analysis collaborators for one database session.

Workers and routes build a Pipeline per session and pass it down
explicitly; nothing in the analysis layer is a module-level singleton.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from src.analyzers.language_detector import LanguageDetector
from src.analyzers.model_selector import ModelSelector, create_model_selector
from src.knowledge.relation_extractor import RelationExtractor
from src.knowledge.vector_store import BaseVectorStore, SqlVectorStore
from src.providers.ai_provider import AIProvider, OpenAgentProvider
from src.providers.embeddings import Embedder, OpenAIEmbedder
from src.utils.config import Config
from src.web.services.relation_service import SqlEntryLookup


@dataclass
class Pipeline:
    llm: AIProvider
    model_selector: ModelSelector
    detector: LanguageDetector
    config: Config
    vector_store: Optional[BaseVectorStore] = None
    embedder: Optional[Embedder] = None

    def relation_extractor(self, db: Session, user_id: Optional[int] = None) -> RelationExtractor:
        return RelationExtractor(
            self.llm, self.vector_store, SqlEntryLookup(db, user_id), scoped=user_id is not None
        )


def build_pipeline(
    db: Session,
    config: Optional[Config] = None,
    llm: Optional[AIProvider] = None,
) -> Pipeline:
    """
    Build the collaborators from configuration.

    The vector store is bound to `db`; the embedder is only created when
    embeddings are enabled.
    """
    config = config or Config()
    embedder = OpenAIEmbedder(config.embedding) if config.embedding.enabled else None
    return Pipeline(
        llm=llm or OpenAgentProvider(config.llm),
        model_selector=create_model_selector(),
        detector=LanguageDetector(),
        config=config,
        vector_store=SqlVectorStore(db),
        embedder=embedder,
    )
