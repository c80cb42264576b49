"""
Sequential Thinking Validation Engine

Structural and logical checks run through the ``ThoughtSubmission`` schema;
referential checks run here against a read-only view of the store. Nothing
in this module mutates the store.
"""
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from app.errors import LimitExceededError, NotFoundError, ValidationError
from app.schemas import ThoughtSubmission
from app.thinking.core_types import BranchOverflowPolicy, EvictionLimits, ThoughtType
from app.thinking.store import ThoughtStore


def parse_submission(data: Any) -> ThoughtSubmission:
    """Validate raw input into a typed submission, or raise ValidationError."""
    if isinstance(data, ThoughtSubmission):
        return data
    if not isinstance(data, dict):
        raise ValidationError("Invalid input: must be an object", reason="invalid_input")

    try:
        return ThoughtSubmission.model_validate(data)
    except PydanticValidationError as e:
        raise _convert_error(e) from e


def _convert_error(exc: PydanticValidationError) -> ValidationError:
    errors = []
    for error in exc.errors(include_url=False):
        ctx = error.get("ctx") or {}
        field = ctx.get("field") if isinstance(ctx.get("field"), str) else None
        if field is None and error["loc"]:
            field = ".".join(str(loc) for loc in error["loc"])
        errors.append({"field": field, "message": error["msg"], "type": error["type"]})

    first = errors[0]
    if first["type"] == "missing":
        reason = "missing_field"
    elif first["type"] in _SCHEMA_REASONS:
        reason = first["type"]
    else:
        reason = "invalid_field"

    message = first["message"]
    if first["field"] and not message.startswith("Invalid"):
        message = f"Invalid {first['field']}: {message}"

    details = {"fields": errors} if len(errors) > 1 else None
    return ValidationError(message, reason=reason, field=first["field"], details=details)


# Custom error types raised by the schema that are exposed as reasons verbatim
_SCHEMA_REASONS = {
    "empty_thought",
    "empty_title",
    "invalid_related_to",
    "reserved_branch_id",
    "multiple_directives",
    "missing_field",
    "revision_missing_target",
    "revision_flag_missing",
    "branch_fields_incomplete",
    "verification_result_without_verification",
}


def validate_submission(data: Any, store: ThoughtStore, limits: Optional[EvictionLimits] = None) -> ThoughtSubmission:
    """
    Full validation of one submission against the current store.

    Directives are only structurally validated; thought submissions are
    additionally checked against the store.

    Raises:
        ValidationError: malformed input, duplicate number, verification without relatedTo
        NotFoundError: revision target, branch point or referenced hypothesis missing
        LimitExceededError: new branch at the cap under the reject policy
    """
    submission = parse_submission(data)
    if submission.directive is None:
        check_branch(submission, store, limits or EvictionLimits())
        check_numbering(submission, store)
        check_verification(submission, store)
    return submission


def check_branch(submission: ThoughtSubmission, store: ThoughtStore, limits: EvictionLimits) -> None:
    """A new branch must fork from an existing main-line thought."""
    branch_id = submission.branch_id
    if branch_id is None or store.has_branch(branch_id):
        return

    if store.get(submission.branch_from_thought) is None:
        raise NotFoundError(
            f"Cannot branch from thought {submission.branch_from_thought}: "
            "no such thought in the main line",
            reason="branch_point_missing",
            field="branchFromThought",
        )

    if (
        limits.branch_overflow_policy == BranchOverflowPolicy.REJECT
        and len(store.branches_index()) >= limits.max_branches
    ):
        raise LimitExceededError(
            f"Maximum number of branches ({limits.max_branches}) reached",
            reason="branch_limit_reached",
            field="branchId",
            limit=limits.max_branches,
        )


def check_numbering(submission: ThoughtSubmission, store: ThoughtStore) -> None:
    """Revisions need an existing target; plain thoughts need a free number."""
    line = store.resolve_line(submission.branch_id, submission.branch_from_thought)
    numbers = {t.number for t in line}
    where = f"branch '{submission.branch_id}'" if submission.branch_id else "the main line"

    if submission.is_revision:
        if submission.revises_thought not in numbers:
            raise NotFoundError(
                f"Cannot revise thought {submission.revises_thought}: it does not exist in {where}",
                reason="revision_target_missing",
                field="revisesThought",
            )
        return

    if submission.thought_number in numbers:
        raise ValidationError(
            f"Thought number {submission.thought_number} already exists in {where}; "
            "submit it as a revision to change it",
            reason="duplicate_thought_number",
            field="thoughtNumber",
        )


def check_verification(submission: ThoughtSubmission, store: ThoughtStore) -> None:
    """Verifications must name at least one recorded hypothesis, and only hypotheses."""
    if submission.thought_type != ThoughtType.VERIFICATION:
        return

    if not submission.related_to:
        raise ValidationError(
            "Verification thoughts must reference the hypotheses they verify in relatedTo",
            reason="verification_missing_related",
            field="relatedTo",
        )

    missing = unknown_hypotheses(submission.related_to, store)
    if missing:
        raise NotFoundError(
            f"relatedTo references thought(s) {missing} that are not recorded hypotheses",
            reason="hypothesis_missing",
            field="relatedTo",
        )


def unknown_hypotheses(numbers: List[int], store: ThoughtStore) -> List[int]:
    """Entries of ``numbers`` that name no hypothesis in any line of the store."""
    hypotheses = {t.number for t in store.own_thoughts() if t.is_hypothesis}
    missing: List[int] = []
    for number in numbers:
        if number not in hypotheses and number not in missing:
            missing.append(number)
    return missing


def describe(submission: ThoughtSubmission) -> Dict[str, Any]:
    """Compact log context for a submission."""
    if submission.directive:
        return {"directive": submission.directive}
    return {
        "thought_number": submission.thought_number,
        "branch_id": submission.branch_id,
        "is_revision": bool(submission.is_revision),
        "thought_type": submission.thought_type.value if submission.thought_type else None,
    }
