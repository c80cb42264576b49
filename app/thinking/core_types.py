"""
Sequential Thinking - Canonical Type Definitions

This module defines the canonical in-memory types shared by the thought
store, the validation engine, the verification tracker, the eviction
manager and the storage layer.
"""
import uuid
from datetime import datetime
from typing import Optional, Dict, List
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ============================================================================
# Enums - Canonical Values
# ============================================================================

class ThoughtType(str, Enum):
    """Thought classification."""
    HYPOTHESIS = "hypothesis"
    VERIFICATION = "verification"


class VerificationResult(str, Enum):
    """Outcome recorded by a verification thought."""
    CONFIRMED = "confirmed"
    REFUTED = "refuted"
    PARTIAL = "partial"
    PENDING = "pending"


class SequenceStatus(str, Enum):
    """Durable sequence lifecycle states."""
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class BranchOverflowPolicy(str, Enum):
    """What happens when a new branch would exceed max_branches."""
    EVICT = "evict"
    REJECT = "reject"


MAIN_LINE = "main"
CONTENT_MAX_LENGTH = 10000
BRANCH_ID_MAX_LENGTH = 100
RELATED_TO_MAX_ITEMS = 50
SEARCH_LIMIT_MAX = 50


class WireModel(BaseModel):
    """Base for models exchanged with callers: camelCase aliases on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# In-memory thought
# ============================================================================

class Thought(WireModel):
    """
    One accepted reasoning step.

    Thoughts are immutable. The store replaces an entry wholesale when a
    revision overwrites it, and stamps ``ordinal`` (insertion order) on
    every entry it accepts.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    number: int = Field(..., ge=1)
    content: str
    total_thoughts: int = Field(..., ge=1)
    next_thought_needed: bool = True
    is_revision: bool = False
    revises_thought: Optional[int] = None
    branch_from_thought: Optional[int] = None
    branch_id: Optional[str] = None
    needs_more_thoughts: Optional[bool] = None
    thought_type: Optional[ThoughtType] = None
    verification_result: Optional[VerificationResult] = None
    related_to: List[int] = Field(default_factory=list)
    ordinal: int = 0

    @property
    def is_hypothesis(self) -> bool:
        return self.thought_type == ThoughtType.HYPOTHESIS

    @property
    def is_verification(self) -> bool:
        return self.thought_type == ThoughtType.VERIFICATION


class EvictionLimits(BaseModel):
    """Memory bounds for the thought store. Zero or negative limits are rejected."""
    model_config = ConfigDict(frozen=True)

    max_thought_history: int = Field(default=1000, gt=0)
    max_branches: int = Field(default=50, gt=0)
    max_thoughts_per_branch: int = Field(default=100, gt=0)
    branch_overflow_policy: BranchOverflowPolicy = BranchOverflowPolicy.EVICT


# ============================================================================
# Verification projection
# ============================================================================

class UnverifiedHypothesis(WireModel):
    thought_number: int
    thought: str


class VerificationSnapshot(WireModel):
    """Derived hypothesis/verification state. Recomputed on every request."""
    verification_status: Dict[str, int]
    hypothesis_status: Dict[int, VerificationResult] = Field(default_factory=dict)
    unverified_hypotheses: List[UnverifiedHypothesis] = Field(default_factory=list)
    total_hypotheses: int = 0

    @property
    def unverified_hypotheses_count(self) -> int:
        return len(self.unverified_hypotheses)


# ============================================================================
# Durable records (export/import format)
# ============================================================================

class SequenceRecord(WireModel):
    """A persisted sequence."""
    id: str
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    created: datetime
    last_modified: datetime
    status: SequenceStatus = SequenceStatus.ACTIVE
    thought_count: int = Field(default=0, ge=0)


class ThoughtRecord(WireModel):
    """A persisted thought row."""
    id: str
    sequence_id: str
    thought: str = Field(..., min_length=1, max_length=CONTENT_MAX_LENGTH)
    thought_number: int = Field(..., ge=1)
    total_thoughts: int = Field(..., ge=1)
    is_revision: bool = False
    revises_thought: Optional[int] = Field(default=None, ge=1)
    branch_from_thought: Optional[int] = Field(default=None, ge=1)
    branch_id: Optional[str] = Field(default=None, min_length=1, max_length=BRANCH_ID_MAX_LENGTH)
    needs_more_thoughts: Optional[bool] = None
    next_thought_needed: bool = True
    thought_type: Optional[ThoughtType] = None
    verification_result: Optional[VerificationResult] = None
    related_to: Optional[List[int]] = Field(default=None, max_length=RELATED_TO_MAX_ITEMS)
    created: Optional[datetime] = None
    modified: Optional[datetime] = None

    def to_thought(self) -> Thought:
        return Thought(
            number=self.thought_number,
            content=self.thought,
            total_thoughts=self.total_thoughts,
            next_thought_needed=self.next_thought_needed,
            is_revision=self.is_revision,
            revises_thought=self.revises_thought,
            branch_from_thought=self.branch_from_thought,
            branch_id=self.branch_id,
            needs_more_thoughts=self.needs_more_thoughts,
            thought_type=self.thought_type,
            verification_result=self.verification_result,
            related_to=list(self.related_to or []),
        )


class SequenceBundle(WireModel):
    """Export/import payload: one sequence and all its thoughts."""
    sequence: SequenceRecord
    thoughts: List[ThoughtRecord] = Field(default_factory=list)


# ============================================================================
# Utility Functions
# ============================================================================

def generate_sequence_id() -> str:
    """Generate a sequence ID in the format seq_..."""
    return f"seq_{uuid.uuid4().hex[:16]}"


def generate_thought_id() -> str:
    """Generate a thought row ID in the format th_..."""
    return f"th_{uuid.uuid4().hex[:16]}"
