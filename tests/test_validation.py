"""Tests for submission validation: schema, logical and referential rules."""
import pytest

from app.errors import LimitExceededError, NotFoundError, ValidationError
from app.thinking.core_types import BranchOverflowPolicy, EvictionLimits, Thought, ThoughtType
from app.thinking.store import ThoughtStore
from app.thinking.validation import parse_submission, validate_submission


def submission(number=1, **extra):
    data = {
        "thought": f"Step {number}",
        "thoughtNumber": number,
        "totalThoughts": 5,
        "nextThoughtNeeded": True,
    }
    data.update(extra)
    return data


def store_with(*thoughts):
    store = ThoughtStore()
    for thought in thoughts:
        store.append(thought)
    return store


def plain(number, **extra):
    return Thought(number=number, content=f"Step {number}", total_thoughts=5, **extra)


class TestStructuralValidation:
    """Schema-level checks."""

    def test_valid_submission_is_typed(self):
        """camelCase input becomes a typed submission."""
        parsed = parse_submission(submission(2, thoughtType="hypothesis"))
        assert parsed.thought_number == 2
        assert parsed.thought_type == ThoughtType.HYPOTHESIS
        assert parsed.directive is None

    def test_non_object_input(self):
        """Anything other than an object is rejected."""
        with pytest.raises(ValidationError) as exc:
            parse_submission(["not", "an", "object"])
        assert exc.value.reason == "invalid_input"

    def test_missing_required_field(self):
        """Missing thought fields are reported by name."""
        data = submission()
        del data["thoughtNumber"]
        with pytest.raises(ValidationError) as exc:
            parse_submission(data)
        assert exc.value.reason == "missing_field"
        assert exc.value.field == "thoughtNumber"

    def test_control_characters_are_stripped(self):
        """Control characters are removed from content."""
        parsed = parse_submission(submission(thought="\x00  hello\x1fworld \x7f\n"))
        assert parsed.thought == "helloworld"

    def test_blank_content_rejected(self):
        """Whitespace-only content is empty."""
        with pytest.raises(ValidationError) as exc:
            parse_submission(submission(thought=" \x01\x02 \t"))
        assert exc.value.reason == "empty_thought"
        assert exc.value.field == "thought"

    def test_content_too_long(self):
        """Content over 10000 characters is rejected."""
        with pytest.raises(ValidationError) as exc:
            parse_submission(submission(thought="x" * 10001))
        assert exc.value.reason == "invalid_field"
        assert exc.value.field == "thought"

    def test_content_at_limit_accepted(self):
        parsed = parse_submission(submission(thought="x" * 10000))
        assert len(parsed.thought) == 10000

    @pytest.mark.parametrize("field", ["thoughtNumber", "totalThoughts"])
    def test_non_positive_numbers_rejected(self, field):
        """Thought numbers must be positive."""
        with pytest.raises(ValidationError) as exc:
            parse_submission(submission(**{field: 0}))
        assert exc.value.field == field

    def test_unknown_enum_value_rejected(self):
        """Unknown thought types are rejected."""
        with pytest.raises(ValidationError) as exc:
            parse_submission(submission(thoughtType="guess"))
        assert exc.value.field == "thoughtType"

    def test_related_to_limit(self):
        """relatedTo holds at most 50 entries."""
        with pytest.raises(ValidationError) as exc:
            parse_submission(submission(relatedTo=list(range(1, 52))))
        assert exc.value.field == "relatedTo"

    def test_branch_id_length(self):
        with pytest.raises(ValidationError) as exc:
            parse_submission(submission(branchId="b" * 101, branchFromThought=1))
        assert exc.value.field == "branchId"

    def test_main_is_not_a_branch_id(self):
        """"main" is reserved for the main line."""
        with pytest.raises(ValidationError) as exc:
            parse_submission(submission(branchId="main", branchFromThought=1))
        assert exc.value.reason == "reserved_branch_id"


class TestLogicalValidation:
    """Rules between fields of one submission."""

    def test_revision_requires_target(self):
        """isRevision needs revisesThought."""
        with pytest.raises(ValidationError) as exc:
            parse_submission(submission(isRevision=True))
        assert exc.value.reason == "revision_missing_target"
        assert exc.value.field == "revisesThought"

    def test_target_requires_revision_flag(self):
        """revisesThought needs isRevision."""
        with pytest.raises(ValidationError) as exc:
            parse_submission(submission(revisesThought=1))
        assert exc.value.reason == "revision_flag_missing"

    def test_branch_fields_go_together(self):
        """branchFromThought and branchId come as a pair."""
        with pytest.raises(ValidationError) as exc:
            parse_submission(submission(branchId="alt"))
        assert exc.value.reason == "branch_fields_incomplete"
        assert exc.value.field == "branchFromThought"

        with pytest.raises(ValidationError) as exc:
            parse_submission(submission(branchFromThought=1))
        assert exc.value.field == "branchId"

    def test_verification_result_needs_verification_type(self):
        """Only verifications carry a result."""
        with pytest.raises(ValidationError) as exc:
            parse_submission(submission(thoughtType="hypothesis", verificationResult="confirmed"))
        assert exc.value.reason == "verification_result_without_verification"

    def test_directive_without_thought_fields(self):
        """A directive alone is a complete submission."""
        parsed = parse_submission({"saveSequence": {"title": "Plan"}})
        assert parsed.directive == "save_sequence"
        assert parsed.save_sequence.title == "Plan"

    def test_only_one_directive(self):
        """Two directives in one submission are rejected."""
        with pytest.raises(ValidationError) as exc:
            parse_submission({"saveSequence": {"title": "Plan"}, "loadSequence": {"id": "seq_1"}})
        assert exc.value.reason == "multiple_directives"

    def test_search_limit_bounds(self):
        """Search limit must be within 1-50."""
        parsed = parse_submission({"searchSequence": {"query": "plan"}})
        assert parsed.search_sequence.limit == 10
        assert parsed.search_sequence.content_search is False

        with pytest.raises(ValidationError) as exc:
            parse_submission({"searchSequence": {"query": "plan", "limit": 51}})
        assert exc.value.field == "searchSequence.limit"

    def test_blank_title_rejected(self):
        with pytest.raises(ValidationError) as exc:
            parse_submission({"saveSequence": {"title": "   "}})
        assert exc.value.reason == "empty_title"


class TestReferentialValidation:
    """Checks against the current store."""

    def test_duplicate_number_rejected(self):
        """A number already in the line is a duplicate."""
        store = store_with(plain(1), plain(2))
        with pytest.raises(ValidationError) as exc:
            validate_submission(submission(2), store)
        assert exc.value.reason == "duplicate_thought_number"
        assert exc.value.field == "thoughtNumber"
        assert len(store) == 2

    def test_same_number_allowed_in_another_line(self):
        """Branches may reuse main-line numbers."""
        store = store_with(plain(1), plain(2), plain(3))
        store.append(plain(4, branch_from_thought=2, branch_id="b"))
        validate_submission(submission(4), store)
        validate_submission(submission(3, branchId="b", branchFromThought=2), store)

    def test_revision_of_missing_thought(self):
        """Revising an unknown number is NotFound."""
        store = store_with(plain(1))
        with pytest.raises(NotFoundError) as exc:
            validate_submission(submission(2, isRevision=True, revisesThought=4), store)
        assert exc.value.reason == "revision_target_missing"
        assert exc.value.field == "revisesThought"

    def test_revision_of_existing_thought(self):
        store = store_with(plain(1), plain(2))
        parsed = validate_submission(submission(3, isRevision=True, revisesThought=2), store)
        assert parsed.is_revision

    def test_new_branch_needs_existing_fork_point(self):
        """A new branch must fork from a main-line thought."""
        store = store_with(plain(1), plain(2))
        with pytest.raises(NotFoundError) as exc:
            validate_submission(submission(3, branchId="alt", branchFromThought=7), store)
        assert exc.value.reason == "branch_point_missing"
        assert exc.value.field == "branchFromThought"

    def test_existing_branch_does_not_recheck_fork_point(self):
        """Later thoughts in a branch skip the fork point check."""
        store = store_with(plain(1), plain(2))
        store.append(plain(3, branch_from_thought=2, branch_id="alt"))
        validate_submission(submission(4, branchId="alt", branchFromThought=99), store)

    def test_verification_requires_related_to(self):
        """Verifications without relatedTo are invalid."""
        store = store_with(plain(1, thought_type=ThoughtType.HYPOTHESIS))
        with pytest.raises(ValidationError) as exc:
            validate_submission(submission(2, thoughtType="verification"), store)
        assert exc.value.reason == "verification_missing_related"

    def test_verification_must_reference_hypothesis(self):
        """relatedTo must name recorded hypotheses."""
        store = store_with(plain(1, thought_type=ThoughtType.HYPOTHESIS), plain(2))
        with pytest.raises(NotFoundError) as exc:
            validate_submission(
                submission(3, thoughtType="verification", verificationResult="confirmed", relatedTo=[1, 2]),
                store,
            )
        assert exc.value.reason == "hypothesis_missing"
        assert "[2]" in exc.value.message

    def test_verification_may_reference_branch_hypothesis(self):
        """Hypotheses recorded in a branch count."""
        store = store_with(plain(1), plain(2))
        store.append(plain(3, branch_from_thought=2, branch_id="b", thought_type=ThoughtType.HYPOTHESIS))
        validate_submission(submission(3, thoughtType="verification", relatedTo=[3]), store)

    def test_branch_cap_under_reject_policy(self):
        """New branches past the cap fail under the reject policy."""
        limits = EvictionLimits(max_branches=1, branch_overflow_policy=BranchOverflowPolicy.REJECT)
        store = store_with(plain(1), plain(2))
        store.append(plain(3, branch_from_thought=1, branch_id="a"))

        with pytest.raises(LimitExceededError) as exc:
            validate_submission(submission(3, branchId="b", branchFromThought=1), store, limits)
        assert exc.value.reason == "branch_limit_reached"
        assert exc.value.details == {"limit": 1}

        # Continuing the existing branch is still fine
        validate_submission(submission(4, branchId="a", branchFromThought=1), store, limits)

    def test_directives_skip_store_checks(self):
        """Directives are not checked against the store."""
        store = store_with(plain(1))
        parsed = validate_submission({"loadSequence": {"id": "seq_x"}}, store)
        assert parsed.load_sequence.id == "seq_x"
