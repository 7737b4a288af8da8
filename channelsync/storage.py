"""
Entity repository.

Responsibilities:
- Paginated lookup of published entity ids, newest first.
- Load, bulk-load and save entities.

Non-Responsibilities:
- No parsing of reference values.
- No reconciliation decisions.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .database import Entity


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO timestamp, defaulting to now when missing or malformed."""
    if isinstance(value, datetime):
        return value
    if not value:
        return datetime.now()
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return datetime.now()


class EntityStore:
    """SQLAlchemy-backed record store used by the sync driver."""

    def __init__(self, session):
        self.session = session

    def count_published(self) -> int:
        return self.session.query(Entity).filter_by(status=True).count()

    def query_published(self, offset: int, limit: int) -> List[str]:
        """Return one page of published entity ids ordered by created desc."""
        rows = (
            self.session.query(Entity.id)
            .filter_by(status=True)
            .order_by(Entity.created.desc(), Entity.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [row.id for row in rows]

    def load(self, entity_id: str) -> Optional[Entity]:
        return self.session.get(Entity, entity_id)

    def load_multiple(self, entity_ids: Iterable[str]) -> List[Entity]:
        ids = list(entity_ids)
        if not ids:
            return []
        return self.session.query(Entity).filter(Entity.id.in_(ids)).all()

    def save(self, entity: Entity) -> None:
        self.session.add(entity)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def list_entities(self, include_unpublished: bool = False) -> List[Entity]:
        query = self.session.query(Entity)
        if not include_unpublished:
            query = query.filter_by(status=True)
        return query.order_by(Entity.created.desc(), Entity.id.desc()).all()

    def add_entities(self, rows: Iterable[Dict[str, Any]]) -> Dict[str, int]:
        """
        Insert or overwrite entities from plain dicts.

        Each row needs an ``id``; ``channel``, ``category``, ``status`` and
        ``created`` are optional.

        Returns:
            Counts of ``added``, ``replaced`` and ``skipped`` rows.
        """
        counts = {"added": 0, "replaced": 0, "skipped": 0}
        for row in rows:
            entity_id = row.get("id")
            if entity_id is None or str(entity_id).strip() == "":
                counts["skipped"] += 1
                continue
            entity_id = str(entity_id)
            existing = self.session.get(Entity, entity_id)
            entity = existing or Entity(id=entity_id)
            entity.channel = row.get("channel") or None
            entity.category = row.get("category") or None
            entity.status = bool(row.get("status", True))
            entity.created = parse_timestamp(row.get("created"))
            if existing is None:
                self.session.add(entity)
                self.session.flush()
                counts["added"] += 1
            else:
                counts["replaced"] += 1
        self.session.commit()
        return counts
