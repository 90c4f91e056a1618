"""
Relation service - persistence of article relations.

Relations are upserted one at a time; a relation that fails to save is
logged and skipped so the rest of the batch still lands.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging

from src.knowledge.relation_extractor import EntrySummary
from src.utils.models import ArticleRelation, RelationType
from src.web.models import ArticleRelationRecord, Entry
from src.web.services import entry_service

logger = logging.getLogger(__name__)


class SqlEntryLookup:
    """Entry titles and summaries for the relation extractor, read from the entries table"""

    def __init__(self, db: Session, user_id: Optional[int] = None):
        self.db = db
        self.user_id = user_id

    async def get_entry(self, entry_id: int) -> Optional[EntrySummary]:
        query = self.db.query(Entry).filter(Entry.id == entry_id)
        if self.user_id is not None:
            query = query.filter(Entry.user_id == self.user_id)
        entry = query.first()
        if entry is None:
            return None
        return entry_service.entry_summary(entry)


def _upsert(db: Session, relation: ArticleRelation):
    record = (
        db.query(ArticleRelationRecord)
        .filter(
            ArticleRelationRecord.source_id == relation.source_id,
            ArticleRelationRecord.target_id == relation.target_id,
            ArticleRelationRecord.relation_type == relation.relation_type.value,
        )
        .first()
    )
    if record is None:
        record = ArticleRelationRecord(
            source_id=relation.source_id,
            target_id=relation.target_id,
            relation_type=relation.relation_type.value,
        )
        db.add(record)

    record.strength = relation.strength
    record.reason = relation.reason
    record.updated_at = datetime.now().isoformat()
    db.commit()


def save_relations(db: Session, relations: List[ArticleRelation]) -> int:
    """
    Upsert relations keyed by (source, target, type).

    Args:
        db: Database session
        relations: Relations to store

    Returns:
        Number of relations saved
    """
    saved = 0
    for relation in relations:
        try:
            _upsert(db, relation)
            saved += 1
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                f"Failed to save relation {relation.source_id} -> {relation.target_id} "
                f"({relation.relation_type.value}): {e}"
            )
    return saved


def get_relations(
    db: Session, entry_id: int, relation_type: Optional[RelationType] = None
) -> List[ArticleRelation]:
    """Stored relations from an entry, strongest first."""
    query = db.query(ArticleRelationRecord).filter(ArticleRelationRecord.source_id == entry_id)
    if relation_type is not None:
        query = query.filter(ArticleRelationRecord.relation_type == RelationType(relation_type).value)

    return [
        ArticleRelation(
            source_id=record.source_id,
            target_id=record.target_id,
            relation_type=RelationType(record.relation_type),
            strength=record.strength,
            reason=record.reason,
        )
        for record in query.order_by(ArticleRelationRecord.strength.desc()).all()
    ]
