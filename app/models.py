from datetime import datetime

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    String,
    Text,
    DateTime,
    JSON,
    Index,
    Boolean,
    CheckConstraint,
    DDL,
    event,
)
from sqlalchemy.orm import relationship

from app.database import Base


class Sequence(Base):
    """A named, durable container of thoughts."""
    __tablename__ = "sequences"

    id = Column(String(64), primary_key=True)  # seq_...
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    created = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_modified = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    status = Column(String(20), default="active", nullable=False)
    thought_count = Column(Integer, default=0, nullable=False)

    thoughts = relationship(
        "Thought",
        back_populates="sequence",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("status IN ('active', 'completed', 'archived')", name="ck_sequences_status"),
    )


class Thought(Base):
    """One persisted thought. ``thought`` holds the content and is full-text indexed."""
    __tablename__ = "thoughts"

    id = Column(String(64), primary_key=True)  # th_...
    sequence_id = Column(String(64), ForeignKey("sequences.id", ondelete="CASCADE"), nullable=False)
    thought = Column(Text, nullable=False)
    thought_number = Column(Integer, nullable=False)
    total_thoughts = Column(Integer, nullable=False)
    is_revision = Column(Boolean, default=False, nullable=False)
    revises_thought = Column(Integer, nullable=True)
    branch_from_thought = Column(Integer, nullable=True)
    branch_id = Column(String(100), nullable=True)
    needs_more_thoughts = Column(Boolean, nullable=True)
    next_thought_needed = Column(Boolean, nullable=False)
    thought_type = Column(String(20), nullable=True)
    verification_result = Column(String(20), nullable=True)
    related_to = Column(JSON, nullable=True)  # list of thought numbers
    created = Column(DateTime, default=datetime.utcnow, nullable=False)
    modified = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    sequence = relationship("Sequence", back_populates="thoughts")

    __table_args__ = (
        Index("idx_thoughts_sequence", "sequence_id"),
        Index("idx_thoughts_number", "sequence_id", "thought_number"),
        CheckConstraint(
            "thought_type IS NULL OR thought_type IN ('hypothesis', 'verification')",
            name="ck_thoughts_type",
        ),
        CheckConstraint(
            "verification_result IS NULL OR verification_result IN ('confirmed', 'refuted', 'partial', 'pending')",
            name="ck_thoughts_verification_result",
        ),
    )


# Full-text index over thought content, kept in sync by triggers so content
# search never scans the thoughts table.
THOUGHTS_FTS_DDL = (
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS thoughts_fts USING fts5(
        thought,
        content='thoughts',
        content_rowid='rowid',
        tokenize='unicode61 remove_diacritics 2'
    )
    """,
    """
    CREATE TRIGGER IF NOT EXISTS thoughts_fts_ai
    AFTER INSERT ON thoughts BEGIN
        INSERT INTO thoughts_fts(rowid, thought) VALUES (new.rowid, new.thought);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS thoughts_fts_bd
    BEFORE DELETE ON thoughts BEGIN
        INSERT INTO thoughts_fts(thoughts_fts, rowid, thought) VALUES ('delete', old.rowid, old.thought);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS thoughts_fts_bu
    BEFORE UPDATE OF thought ON thoughts BEGIN
        INSERT INTO thoughts_fts(thoughts_fts, rowid, thought) VALUES ('delete', old.rowid, old.thought);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS thoughts_fts_au
    AFTER UPDATE OF thought ON thoughts BEGIN
        INSERT INTO thoughts_fts(rowid, thought) VALUES (new.rowid, new.thought);
    END
    """,
)

for _statement in THOUGHTS_FTS_DDL:
    event.listen(Thought.__table__, "after_create", DDL(_statement).execute_if(dialect="sqlite"))

event.listen(
    Thought.__table__,
    "before_drop",
    DDL("DROP TABLE IF EXISTS thoughts_fts").execute_if(dialect="sqlite"),
)
