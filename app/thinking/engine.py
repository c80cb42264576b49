"""
Sequential Thinking Engine

The façade every caller goes through. One submission runs to completion,
validate -> mutate -> prune -> persist -> project, before the next one on the
same engine starts.
"""
import logging
import threading
import weakref
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import sessionmaker

from app.config import settings
from app.errors import NotFoundError, PersistenceError, ThinkingError, ValidationError
from app.monitoring import capture_exception
from app.schemas import (
    ExportSequenceDirective,
    ImportSequenceDirective,
    LoadSequenceDirective,
    SaveSequenceDirective,
    SearchSequenceDirective,
    ThoughtSubmission,
)
from app.thinking import search, storage
from app.thinking.core_types import (
    EvictionLimits,
    Thought,
    ThoughtRecord,
    VerificationSnapshot,
)
from app.thinking.eviction import prune
from app.thinking.storage import persistence_scope
from app.thinking.store import ThoughtStore
from app.thinking.validation import describe, validate_submission
from app.thinking.verification import snapshot

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100


class SequenceLocks:
    """
    Per-sequence locks shared by every engine writing to the same database.

    Entries are weak: a lock lives only while some caller holds it, so the
    registry does not grow with the number of sequences ever written.
    """

    def __init__(self):
        self._locks = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def for_sequence(self, sequence_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(sequence_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[sequence_id] = lock
            return lock

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def preview(content: str, length: int = PREVIEW_LENGTH) -> str:
    if len(content) > length:
        return content[:length] + "..."
    return content


def format_thought(thought: Thought) -> str:
    """One-line log rendering of an accepted thought."""
    if thought.is_revision:
        label = f"Revision (revising thought {thought.revises_thought})"
    elif thought.branch_id:
        label = f"Branch (from thought {thought.branch_from_thought}, ID: {thought.branch_id})"
    elif thought.is_hypothesis:
        label = "Hypothesis"
    elif thought.is_verification:
        result = thought.verification_result.value if thought.verification_result else "pending"
        label = f"Verification ({result})"
    else:
        label = "Thought"
    return f"{label} {thought.number}/{thought.total_thoughts}: {thought.content}"


class ThinkingEngine:
    """
    Owns one thought store and, optionally, the id of the durable sequence it
    is writing to.

    Args:
        limits: memory bounds; defaults to the configured ones
        session_factory: SQLAlchemy session factory; without one, sequence
            directives fail with PersistenceError and thoughts stay in memory
        sequence_locks: registry shared between engines on the same database
        disable_thought_logging: skip the INFO line per accepted thought
        session_id: attached to log records
    """

    def __init__(
        self,
        limits: Optional[EvictionLimits] = None,
        session_factory: Optional[sessionmaker] = None,
        sequence_locks: Optional[SequenceLocks] = None,
        disable_thought_logging: Optional[bool] = None,
        session_id: Optional[str] = None,
    ):
        self.limits = limits or settings.eviction_limits()
        self.store = ThoughtStore()
        self.current_sequence_id: Optional[str] = None
        self.session_id = session_id
        self._session_factory = session_factory
        self._sequence_locks = sequence_locks or SequenceLocks()
        if disable_thought_logging is None:
            disable_thought_logging = settings.disable_thought_logging
        self._disable_thought_logging = disable_thought_logging
        self._lock = threading.RLock()

    @property
    def persistence_enabled(self) -> bool:
        return self.current_sequence_id is not None

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def submit(self, data: Any) -> Dict[str, Any]:
        """Process one submission and return its result or failure payload."""
        try:
            return self.process(data)
        except ThinkingError as e:
            return e.to_result()

    def process(self, data: Any) -> Dict[str, Any]:
        """Process one submission; ThinkingError propagates to the caller."""
        with self._lock:
            try:
                submission = validate_submission(data, self.store, self.limits)
            except ThinkingError as e:
                self._log_rejection(e)
                raise

            if submission.save_sequence is not None:
                return self.save_sequence(submission.save_sequence)
            if submission.load_sequence is not None:
                return self.load_sequence(submission.load_sequence)
            if submission.search_sequence is not None:
                return self.search_sequences(submission.search_sequence)
            if submission.export_sequence is not None:
                return self.export_sequence(submission.export_sequence)
            if submission.import_sequence is not None:
                return self.import_sequence(submission.import_sequence)
            return self._accept(submission)

    # ------------------------------------------------------------------
    # Thoughts
    # ------------------------------------------------------------------

    def _accept(self, submission: ThoughtSubmission) -> Dict[str, Any]:
        thought = Thought(
            number=submission.thought_number,
            content=submission.thought,
            total_thoughts=max(submission.total_thoughts, submission.thought_number),
            next_thought_needed=submission.next_thought_needed,
            is_revision=bool(submission.is_revision),
            revises_thought=submission.revises_thought,
            branch_from_thought=submission.branch_from_thought,
            branch_id=submission.branch_id,
            needs_more_thoughts=submission.needs_more_thoughts,
            thought_type=submission.thought_type,
            verification_result=submission.verification_result,
            related_to=submission.related_to or [],
        )

        sequence_id = self.current_sequence_id
        if sequence_id is None or self._session_factory is None:
            stored = self._apply(thought)
            persisted, warning = False, None
        else:
            # Check, mutate and write as one step per sequence
            with self._sequence_locks.for_sequence(sequence_id):
                if not thought.is_revision:
                    self._check_persisted_number(thought, sequence_id)
                stored = self._apply(thought)
                persisted, warning = self._persist(stored, sequence_id)

        if not self._disable_thought_logging:
            logger.info(format_thought(stored), extra=self._log_context(**describe(submission)))

        return self._acceptance_payload(submission, stored, persisted, warning)

    def _apply(self, thought: Thought) -> Thought:
        if thought.is_revision:
            stored = self.store.revise_in_place(thought.revises_thought, thought)
        else:
            stored = self.store.append(thought)
        prune(self.store, self.limits, active_branch=stored.branch_id)
        return stored

    def _check_persisted_number(self, thought: Thought, sequence_id: str) -> None:
        """
        Reject a number the active sequence already holds in the thought's line.

        Covers thoughts evicted from memory but still stored. A storage failure
        here is left to the write that follows, which reports it as a warning.
        """
        try:
            with persistence_scope(self._session_factory) as db:
                taken = storage.thought_number_taken(db, sequence_id, thought.number, thought.branch_id)
        except PersistenceError as e:
            logger.warning(
                f"Could not check stored thought numbers: {e.message}",
                extra=self._log_context(error_code=e.code),
            )
            return

        if taken:
            where = f"branch '{thought.branch_id}'" if thought.branch_id else "the main line"
            error = ValidationError(
                f"Thought number {thought.number} already exists in {where} of sequence {sequence_id}; "
                "submit it as a revision to change it",
                reason="duplicate_thought_number",
                field="thoughtNumber",
            )
            self._log_rejection(error)
            raise error

    def _persist(self, thought: Thought, sequence_id: str) -> Tuple[bool, Optional[Dict[str, str]]]:
        """Write an accepted thought to the active sequence; the caller holds its lock."""
        try:
            with persistence_scope(self._session_factory) as db:
                storage.save_thought(db, thought, sequence_id)
                storage.touch_sequence(
                    db,
                    sequence_id,
                    storage.count_thoughts(db, sequence_id),
                    thought.next_thought_needed,
                )
        except (PersistenceError, NotFoundError) as e:
            logger.error(
                f"Thought {thought.number} kept in memory but not persisted: {e.message}",
                exc_info=True,
                extra=self._log_context(error_code=e.code),
            )
            capture_exception(e, context={"sequence_id": sequence_id, "thought_number": thought.number})
            return False, {"code": e.code, "message": e.message}
        return True, None

    def _acceptance_payload(
        self,
        submission: ThoughtSubmission,
        thought: Thought,
        persisted: bool,
        warning: Optional[Dict[str, str]],
    ) -> Dict[str, Any]:
        projection = snapshot(self.store)
        payload: Dict[str, Any] = {
            "thoughtNumber": submission.thought_number,
            "totalThoughts": thought.total_thoughts,
            "nextThoughtNeeded": thought.next_thought_needed,
            "thoughtType": thought.thought_type.value if thought.thought_type else None,
            "verificationResult": thought.verification_result.value if thought.verification_result else None,
            "isRevision": thought.is_revision,
            "revisesThought": thought.revises_thought,
            "branchId": thought.branch_id,
            "relatedTo": list(thought.related_to),
            "branches": self.store.branches_index(),
            "thoughtHistoryLength": len(self.store),
            "currentSequenceId": self.current_sequence_id,
            "persistenceEnabled": self.persistence_enabled,
            "persisted": persisted,
            "memoryStatus": self.memory_status(),
            "verificationWorkflow": {
                "verificationStatus": projection.verification_status,
                "unverifiedHypothesesCount": projection.unverified_hypotheses_count,
                "unverifiedHypotheses": [
                    {"thoughtNumber": h.thought_number, "thought": preview(h.thought)}
                    for h in projection.unverified_hypotheses
                ],
            },
        }
        if warning:
            payload["warning"] = warning
        if not thought.next_thought_needed:
            payload["summary"] = self.summary(projection)
        return payload

    def memory_status(self) -> Dict[str, Any]:
        return {
            "thoughtHistoryLimit": self.limits.max_thought_history,
            "branchLimit": self.limits.max_branches,
            "thoughtsPerBranchLimit": self.limits.max_thoughts_per_branch,
            "branchOverflowPolicy": self.limits.branch_overflow_policy.value,
        }

    def summary(self, projection: Optional[VerificationSnapshot] = None) -> Dict[str, Any]:
        """Overview of the reasoning held in memory, reported when a sequence completes."""
        projection = projection or snapshot(self.store)
        own = self.store.own_thoughts()
        hypotheses = {"total": projection.total_hypotheses}
        hypotheses.update(projection.verification_status)
        last = own[-1] if own else None
        return {
            "totalThoughts": len(own),
            "hypotheses": hypotheses,
            "branches": len(self.store.branches_index()),
            "revisions": sum(1 for t in own if t.is_revision),
            "isComplete": last is not None and not last.next_thought_needed,
        }

    # ------------------------------------------------------------------
    # Sequence directives
    # ------------------------------------------------------------------

    def _require_storage(self) -> sessionmaker:
        if self._session_factory is None:
            raise PersistenceError("Sequence storage is not configured", reason="storage_unavailable")
        return self._session_factory

    def save_sequence(self, directive: SaveSequenceDirective) -> Dict[str, Any]:
        """Create a sequence holding every thought in memory and make it the active one."""
        session_factory = self._require_storage()
        thoughts = self.store.own_thoughts()

        with persistence_scope(session_factory) as db:
            sequence_id = storage.create_sequence(db, directive.title, directive.description)
            with self._sequence_locks.for_sequence(sequence_id):
                for thought in thoughts:
                    storage.save_thought(db, thought, sequence_id)
                storage.touch_sequence(
                    db,
                    sequence_id,
                    storage.count_thoughts(db, sequence_id),
                    thoughts[-1].next_thought_needed if thoughts else None,
                )

        self.current_sequence_id = sequence_id
        logger.info(
            f'Saved sequence "{directive.title}" with {len(thoughts)} thoughts',
            extra=self._log_context(),
        )
        return {
            "action": "sequence_saved",
            "sequenceId": sequence_id,
            "title": directive.title,
            "thoughtsSaved": len(thoughts),
            "message": f'Saved sequence "{directive.title}" with {len(thoughts)} thoughts',
        }

    def load_sequence(self, directive: LoadSequenceDirective) -> Dict[str, Any]:
        """Replace the in-memory state with a persisted sequence and make it the active one."""
        session_factory = self._require_storage()

        with persistence_scope(session_factory) as db:
            sequence = storage.load_sequence(db, directive.id)
            if sequence is None:
                raise NotFoundError(
                    f"Sequence not found: {directive.id}",
                    reason="sequence_missing",
                    field="loadSequence.id",
                )
            records = storage.load_thoughts(db, directive.id)

        self.store = rebuild_store(records)
        prune(self.store, self.limits)
        self.current_sequence_id = sequence.id

        logger.info(
            f'Loaded sequence "{sequence.title}" with {len(records)} thoughts',
            extra=self._log_context(),
        )
        return {
            "action": "sequence_loaded",
            "sequence": sequence.model_dump(by_alias=True, mode="json"),
            "thoughtsLoaded": len(records),
            "message": f'Loaded sequence "{sequence.title}" with {len(records)} thoughts',
        }

    def search_sequences(self, directive: SearchSequenceDirective) -> Dict[str, Any]:
        session_factory = self._require_storage()

        with persistence_scope(session_factory) as db:
            results = search.search(db, directive.query, directive.limit, directive.content_search)

        query = directive.query if directive.query and directive.query.strip() else None
        if query:
            message = f'Found {len(results)} sequences matching "{query}"'
        else:
            message = f"Listed {len(results)} sequences"
        return {
            "action": "sequences_searched",
            "query": query,
            "contentSearch": directive.content_search,
            "results": [r.model_dump(by_alias=True, mode="json") for r in results],
            "totalCount": len(results),
            "message": message,
        }

    def export_sequence(self, directive: ExportSequenceDirective) -> Dict[str, Any]:
        session_factory = self._require_storage()

        with persistence_scope(session_factory) as db:
            bundle = storage.export_sequence(db, directive.id)

        return {
            "action": "sequence_exported",
            "sequenceId": directive.id,
            "data": bundle.model_dump(by_alias=True, mode="json"),
        }

    def import_sequence(self, directive: ImportSequenceDirective) -> Dict[str, Any]:
        """Store an exported bundle as a new sequence. The active sequence is unchanged."""
        session_factory = self._require_storage()

        with persistence_scope(session_factory) as db:
            sequence_id = storage.import_sequence(db, directive.data)

        count = len(directive.data.thoughts)
        return {
            "action": "sequence_imported",
            "sequenceId": sequence_id,
            "thoughtsImported": count,
            "message": f'Imported sequence "{directive.data.sequence.title}" with {count} thoughts',
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _log_context(self, **extra: Any) -> Dict[str, Any]:
        context = {"session_id": self.session_id, "sequence_id": self.current_sequence_id}
        context.update(extra)
        return context

    def _log_rejection(self, error: ThinkingError) -> None:
        logger.warning(
            f"Submission rejected: {error.message}",
            extra=self._log_context(reason=error.reason, error_code=error.code, field=error.field),
        )


def rebuild_store(records: List[ThoughtRecord]) -> ThoughtStore:
    """
    Rebuild an in-memory store from persisted rows.

    Main-line rows go first so that every branch is seeded from a complete
    main line; within each group rows keep their stored order. A row whose
    number is already taken in its line replaces the earlier entry.
    """
    store = ThoughtStore()
    main_rows = [r for r in records if r.branch_id is None]
    branch_rows = [r for r in records if r.branch_id is not None]

    for record in main_rows + branch_rows:
        thought = record.to_thought()
        line = store.resolve_line(thought.branch_id, thought.branch_from_thought)
        if thought.is_revision or any(t.number == thought.number for t in line):
            store.revise_in_place(thought.number, thought)
        else:
            store.append(thought)
    return store
