"""
Keyed review store.

Uses SQLite with SQLAlchemy. Every review row is keyed by its identity
triple (show_id, outlet_id, critic_id); each put runs in its own
transaction so a record is either written whole or not at all.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    create_engine,
    or_,
)
from sqlalchemy.orm import declarative_base, sessionmaker

from .errors import ValidationError
from .schema import validate_review
from .storage import diff_dict

Base = declarative_base()


class Review(Base):
    """One review of one show by one critic at one outlet."""

    __tablename__ = "reviews"
    __table_args__ = (
        CheckConstraint("score IS NULL OR (score >= 0 AND score <= 100)", name="score_range"),
        CheckConstraint(
            "override_score IS NULL OR (override_note IS NOT NULL AND override_note != '')",
            name="override_has_note",
        ),
    )

    show_id = Column(String, primary_key=True)
    outlet_id = Column(String, primary_key=True)
    critic_id = Column(String, primary_key=True)

    # Identity resolution owns these
    outlet_name = Column(String)
    outlet_tier = Column(Integer)
    critic_name = Column(String)
    url = Column(String)
    publish_date = Column(String)
    raw_text = Column(Text)
    cleaned_text = Column(Text)
    content_tier = Column(String)
    excerpts = Column(JSON)
    sources = Column(JSON)
    explicit_rating = Column(String)
    aggregator_signal = Column(String)
    override_score = Column(Integer)
    override_note = Column(Text)

    # Scoring owns these
    model_scores = Column(JSON)
    ensemble = Column(JSON)
    score = Column(Integer)
    score_source = Column(String)
    confidence = Column(String)
    needs_review = Column(Boolean, nullable=False, default=False)
    review_reason = Column(Text)
    scoring_version = Column(String)

    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


_RECORD_COLUMNS = (
    "show_id", "outlet_id", "critic_id", "outlet_name", "outlet_tier", "critic_name", "url",
    "publish_date", "raw_text", "cleaned_text", "content_tier", "excerpts", "sources",
    "explicit_rating", "aggregator_signal", "model_scores", "ensemble", "score",
    "score_source", "confidence", "needs_review", "review_reason", "scoring_version",
)

Key = Tuple[str, str, str]


def record_to_row(record: Dict[str, Any]) -> Dict[str, Any]:
    row = {c: record.get(c) for c in _RECORD_COLUMNS}
    if row["explicit_rating"] is not None:
        row["explicit_rating"] = str(row["explicit_rating"])
    row["needs_review"] = bool(row["needs_review"])
    override = record.get("manual_override") or {}
    row["override_score"] = override.get("score")
    row["override_note"] = override.get("note")
    return row


def row_to_record(row: Review) -> Dict[str, Any]:
    record = {c: getattr(row, c) for c in _RECORD_COLUMNS}
    if row.override_score is not None:
        record["manual_override"] = {"score": row.override_score, "note": row.override_note}
    else:
        record["manual_override"] = None
    return record


def init_database(db_path: Path):
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy engine
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    return engine


class ReviewStore:
    """Reviews keyed by (show_id, outlet_id, critic_id)."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.engine = init_database(self.db_path)
        self.Session = sessionmaker(bind=self.engine)

    @staticmethod
    def key_of(record: Dict[str, Any]) -> Key:
        return (record.get("show_id"), record.get("outlet_id"), record.get("critic_id"))

    def get(self, show_id: str, outlet_id: str, critic_id: str) -> Optional[Dict[str, Any]]:
        with self.Session() as session:
            row = session.get(Review, (show_id, outlet_id, critic_id))
            return row_to_record(row) if row is not None else None

    def _upsert(self, session, record: Dict[str, Any]) -> str:
        errors = validate_review(record)
        if errors:
            raise ValidationError(errors, key="|".join(str(k) for k in self.key_of(record)))
        values = record_to_row(record)
        row = session.get(Review, self.key_of(record))
        if row is None:
            session.add(Review(**values))
            session.flush()
            return "new"
        current = {c: getattr(row, c) for c in values}
        if not diff_dict(current, values):
            return "no-change"
        for column, value in values.items():
            setattr(row, column, value)
        session.flush()
        return "updated"

    def put(self, record: Dict[str, Any]) -> str:
        """
        Write one record in its own transaction.

        Returns:
            "new", "updated" or "no-change"

        Raises:
            ValidationError: If the record is invalid; nothing is written
        """
        with self.Session.begin() as session:
            return self._upsert(session, record)

    def put_many(self, records: Iterable[Dict[str, Any]]) -> Dict[str, int]:
        """
        Write several records in one transaction; all or none are stored.

        Returns:
            Counts per status
        """
        counts = {"new": 0, "updated": 0, "no-change": 0}
        with self.Session.begin() as session:
            for record in records:
                counts[self._upsert(session, record)] += 1
        return counts

    def select(
        self,
        show_id: Optional[str] = None,
        outdated_version: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Records for one show, records not scored at `outdated_version`, or all.
        """
        with self.Session() as session:
            query = session.query(Review)
            if show_id is not None:
                query = query.filter(Review.show_id == show_id)
            if outdated_version is not None:
                query = query.filter(
                    or_(Review.scoring_version.is_(None), Review.scoring_version != outdated_version)
                )
            rows = query.order_by(Review.show_id, Review.outlet_id, Review.critic_id).all()
            return [row_to_record(r) for r in rows]

    def critic_keys(self, show_id: str) -> List[Key]:
        """Identity keys already stored for one show."""
        with self.Session() as session:
            rows = (
                session.query(Review.show_id, Review.outlet_id, Review.critic_id)
                .filter(Review.show_id == show_id)
                .all()
            )
            return [tuple(r) for r in rows]

    def count(self) -> int:
        with self.Session() as session:
            return session.query(Review).count()

