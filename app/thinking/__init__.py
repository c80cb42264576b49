"""
Sequential Thinking Core Package

Thought store, validation, verification tracking, eviction, storage and
search for the sequential thinking service.
"""
from app.thinking.core_types import (
    Thought,
    ThoughtType,
    VerificationResult,
    SequenceStatus,
    BranchOverflowPolicy,
    EvictionLimits,
    VerificationSnapshot,
    UnverifiedHypothesis,
    SequenceRecord,
    ThoughtRecord,
    SequenceBundle,
    MAIN_LINE,
    generate_sequence_id,
    generate_thought_id,
)

__all__ = [
    "Thought",
    "ThoughtType",
    "VerificationResult",
    "SequenceStatus",
    "BranchOverflowPolicy",
    "EvictionLimits",
    "VerificationSnapshot",
    "UnverifiedHypothesis",
    "SequenceRecord",
    "ThoughtRecord",
    "SequenceBundle",
    "MAIN_LINE",
    "generate_sequence_id",
    "generate_thought_id",
]
