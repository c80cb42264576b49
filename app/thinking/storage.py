"""
Sequential Thinking Persistence Layer

Plain functions over a SQLAlchemy ``Session``. Writers flush and leave the
commit to the caller's transaction scope (``persistence_scope``), so a
thought and the sequence bookkeeping it triggers land together.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.database import session_scope
from app.errors import NotFoundError, PersistenceError
from app.models import Sequence, Thought as ThoughtRow
from app.thinking.core_types import (
    SequenceBundle,
    SequenceRecord,
    SequenceStatus,
    Thought,
    ThoughtRecord,
    generate_sequence_id,
    generate_thought_id,
)

logger = logging.getLogger(__name__)


@contextmanager
def persistence_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """Transaction scope that reports storage failures as PersistenceError."""
    try:
        with session_scope(session_factory) as db:
            yield db
    except SQLAlchemyError as e:
        raise PersistenceError(f"Storage operation failed: {e.__class__.__name__}") from e


# ============================================================================
# Row <-> record mapping
# ============================================================================

def _sequence_record(row: Sequence) -> SequenceRecord:
    return SequenceRecord(
        id=row.id,
        title=row.title,
        description=row.description,
        created=row.created,
        last_modified=row.last_modified,
        status=SequenceStatus(row.status),
        thought_count=row.thought_count,
    )


def _thought_record(row: ThoughtRow) -> ThoughtRecord:
    return ThoughtRecord(
        id=row.id,
        sequence_id=row.sequence_id,
        thought=row.thought,
        thought_number=row.thought_number,
        total_thoughts=row.total_thoughts,
        is_revision=row.is_revision,
        revises_thought=row.revises_thought,
        branch_from_thought=row.branch_from_thought,
        branch_id=row.branch_id,
        needs_more_thoughts=row.needs_more_thoughts,
        next_thought_needed=row.next_thought_needed,
        thought_type=row.thought_type,
        verification_result=row.verification_result,
        related_to=row.related_to,
        created=row.created,
        modified=row.modified,
    )


def _apply_thought(row: ThoughtRow, thought: Thought) -> None:
    row.thought = thought.content
    row.thought_number = thought.number
    row.total_thoughts = thought.total_thoughts
    row.is_revision = thought.is_revision
    row.revises_thought = thought.revises_thought
    row.branch_from_thought = thought.branch_from_thought
    row.branch_id = thought.branch_id
    row.needs_more_thoughts = thought.needs_more_thoughts
    row.next_thought_needed = thought.next_thought_needed
    row.thought_type = thought.thought_type.value if thought.thought_type else None
    row.verification_result = thought.verification_result.value if thought.verification_result else None
    row.related_to = list(thought.related_to) or None


# ============================================================================
# Sequences
# ============================================================================

def create_sequence(db: Session, title: str, description: Optional[str] = None) -> str:
    now = datetime.utcnow()
    sequence = Sequence(
        id=generate_sequence_id(),
        title=title,
        description=description,
        created=now,
        last_modified=now,
        status=SequenceStatus.ACTIVE.value,
        thought_count=0,
    )
    db.add(sequence)
    db.flush()
    logger.info("Sequence created", extra={"sequence_id": sequence.id})
    return sequence.id


def load_sequence(db: Session, sequence_id: str) -> Optional[SequenceRecord]:
    row = db.get(Sequence, sequence_id)
    if row is None:
        return None
    return _sequence_record(row)


def _get_sequence_row(db: Session, sequence_id: str) -> Sequence:
    row = db.get(Sequence, sequence_id)
    if row is None:
        raise NotFoundError(f"Sequence not found: {sequence_id}", reason="sequence_missing", field="id")
    return row


def touch_sequence(
    db: Session,
    sequence_id: str,
    thought_count: int,
    next_thought_needed: Optional[bool] = None,
) -> SequenceRecord:
    """
    Refresh ``last_modified`` and ``thought_count``.

    With ``next_thought_needed`` given, the status follows it: ``completed``
    when no further thought is needed, ``active`` otherwise. Archived
    sequences stay archived.
    """
    row = _get_sequence_row(db, sequence_id)
    row.last_modified = datetime.utcnow()
    row.thought_count = thought_count
    if next_thought_needed is not None and row.status != SequenceStatus.ARCHIVED.value:
        row.status = (
            SequenceStatus.ACTIVE.value if next_thought_needed else SequenceStatus.COMPLETED.value
        )
    db.flush()
    return _sequence_record(row)


def set_sequence_status(db: Session, sequence_id: str, status: SequenceStatus) -> SequenceRecord:
    row = _get_sequence_row(db, sequence_id)
    row.status = SequenceStatus(status).value
    row.last_modified = datetime.utcnow()
    db.flush()
    return _sequence_record(row)


def delete_sequence(db: Session, sequence_id: str) -> None:
    """Delete a sequence; its thoughts go with it through the cascading foreign key."""
    row = _get_sequence_row(db, sequence_id)
    db.delete(row)
    db.flush()
    logger.info("Sequence deleted", extra={"sequence_id": sequence_id})


def list_sequences(db: Session, limit: int) -> List[SequenceRecord]:
    """Most recently modified first."""
    rows = (
        db.query(Sequence)
        .order_by(Sequence.last_modified.desc())
        .limit(limit)
        .all()
    )
    return [_sequence_record(row) for row in rows]


def all_sequences(db: Session) -> List[SequenceRecord]:
    return [_sequence_record(row) for row in db.query(Sequence).all()]


def sequences_by_id(db: Session, sequence_ids: List[str], limit: int) -> List[SequenceRecord]:
    """The given sequences, most recently modified first."""
    if not sequence_ids:
        return []
    rows = (
        db.query(Sequence)
        .filter(Sequence.id.in_(sequence_ids))
        .order_by(Sequence.last_modified.desc())
        .limit(limit)
        .all()
    )
    return [_sequence_record(row) for row in rows]


# ============================================================================
# Thoughts
# ============================================================================

def save_thought(db: Session, thought: Thought, sequence_id: str) -> ThoughtRecord:
    """
    Persist one accepted thought.

    A revision replaces the row already holding its number in the same line
    (main line or branch); everything else is inserted.
    """
    row = None
    if thought.is_revision:
        row = (
            _line_rows(db, sequence_id, thought.number, thought.branch_id)
            .order_by(ThoughtRow.created.desc())
            .first()
        )

    if row is None:
        now = datetime.utcnow()
        row = ThoughtRow(id=generate_thought_id(), sequence_id=sequence_id, created=now, modified=now)
        db.add(row)
    else:
        row.modified = datetime.utcnow()

    _apply_thought(row, thought)
    db.flush()
    return _thought_record(row)


def _line_rows(db: Session, sequence_id: str, number: int, branch_id: Optional[str]):
    """Rows numbered ``number`` in one line (main line or branch) of a sequence."""
    query = db.query(ThoughtRow).filter(
        ThoughtRow.sequence_id == sequence_id,
        ThoughtRow.thought_number == number,
    )
    if branch_id is None:
        return query.filter(ThoughtRow.branch_id.is_(None))
    return query.filter(ThoughtRow.branch_id == branch_id)


def thought_number_taken(db: Session, sequence_id: str, number: int, branch_id: Optional[str] = None) -> bool:
    """Whether the sequence already holds a row with this number in the given line."""
    return db.query(_line_rows(db, sequence_id, number, branch_id).exists()).scalar()


def load_thoughts(db: Session, sequence_id: str) -> List[ThoughtRecord]:
    """All rows of a sequence ordered by thought number, then creation."""
    rows = (
        db.query(ThoughtRow)
        .filter(ThoughtRow.sequence_id == sequence_id)
        .order_by(ThoughtRow.thought_number, ThoughtRow.created, ThoughtRow.id)
        .all()
    )
    return [_thought_record(row) for row in rows]


def count_thoughts(db: Session, sequence_id: str) -> int:
    return (
        db.query(func.count(ThoughtRow.id))
        .filter(ThoughtRow.sequence_id == sequence_id)
        .scalar()
    ) or 0


# ============================================================================
# Export / import
# ============================================================================

def export_sequence(db: Session, sequence_id: str) -> SequenceBundle:
    row = _get_sequence_row(db, sequence_id)
    return SequenceBundle(sequence=_sequence_record(row), thoughts=load_thoughts(db, sequence_id))


def import_sequence(db: Session, bundle: SequenceBundle) -> str:
    """
    Create a new sequence from an exported bundle.

    The sequence always gets a fresh id and the thoughts are re-parented to
    it, so importing never overwrites existing data.
    """
    now = datetime.utcnow()
    source = bundle.sequence
    sequence = Sequence(
        id=generate_sequence_id(),
        title=source.title,
        description=source.description,
        created=now,
        last_modified=now,
        status=SequenceStatus(source.status).value,
        thought_count=len(bundle.thoughts),
    )
    db.add(sequence)

    for record in sorted(bundle.thoughts, key=lambda t: t.thought_number):
        row = ThoughtRow(
            id=generate_thought_id(),
            sequence_id=sequence.id,
            created=record.created or now,
            modified=record.modified or record.created or now,
        )
        _apply_thought(row, record.to_thought())
        db.add(row)

    db.flush()
    logger.info(
        "Sequence imported",
        extra={"sequence_id": sequence.id, "source_sequence_id": source.id, "thought_count": len(bundle.thoughts)},
    )
    return sequence.id
