"""Tests for the hypothesis/verification projection."""
from app.thinking.core_types import Thought, ThoughtType, VerificationResult
from app.thinking.store import ThoughtStore
from app.thinking.verification import snapshot


def hypothesis(number, content=None):
    return Thought(
        number=number,
        content=content or f"Hypothesis {number}",
        total_thoughts=10,
        thought_type=ThoughtType.HYPOTHESIS,
    )


def verification(number, related_to, result=None):
    return Thought(
        number=number,
        content=f"Verification {number}",
        total_thoughts=10,
        thought_type=ThoughtType.VERIFICATION,
        verification_result=result,
        related_to=related_to,
    )


class TestVerificationSnapshot:
    """Per-hypothesis verification status."""

    def test_empty_store(self):
        """No hypotheses means all counts are zero."""
        result = snapshot(ThoughtStore())
        assert result.total_hypotheses == 0
        assert result.verification_status == {"confirmed": 0, "refuted": 0, "partial": 0, "pending": 0}
        assert result.unverified_hypotheses == []

    def test_unverified_hypothesis_counts_as_pending(self):
        """A hypothesis nobody verified is pending."""
        store = ThoughtStore()
        store.append(hypothesis(1))
        result = snapshot(store)

        assert result.total_hypotheses == 1
        assert result.verification_status["pending"] == 1
        assert result.hypothesis_status == {1: VerificationResult.PENDING}
        assert [h.thought_number for h in result.unverified_hypotheses] == [1]
        assert result.unverified_hypotheses_count == 1

    def test_verification_sets_hypothesis_status(self):
        """The verification result becomes the hypothesis status."""
        store = ThoughtStore()
        store.append(hypothesis(1))
        store.append(hypothesis(2))
        store.append(verification(3, [1], VerificationResult.CONFIRMED))
        result = snapshot(store)

        assert result.hypothesis_status == {1: VerificationResult.CONFIRMED, 2: VerificationResult.PENDING}
        assert result.verification_status == {"confirmed": 1, "refuted": 0, "partial": 0, "pending": 1}
        assert [h.thought_number for h in result.unverified_hypotheses] == [2]

    def test_highest_numbered_verification_wins(self):
        """The latest verification decides the status."""
        store = ThoughtStore()
        store.append(hypothesis(1))
        store.append(verification(4, [1], VerificationResult.REFUTED))
        store.append(verification(3, [1], VerificationResult.CONFIRMED))
        result = snapshot(store)

        assert result.hypothesis_status[1] == VerificationResult.REFUTED

    def test_verification_without_result_is_pending_but_verified(self):
        """A result-less verification leaves the hypothesis pending."""
        store = ThoughtStore()
        store.append(hypothesis(1))
        store.append(verification(2, [1]))
        result = snapshot(store)

        assert result.hypothesis_status[1] == VerificationResult.PENDING
        assert result.verification_status["pending"] == 1
        assert result.unverified_hypotheses == []

    def test_one_verification_covers_several_hypotheses(self):
        """relatedTo may list several hypotheses."""
        store = ThoughtStore()
        store.append(hypothesis(1))
        store.append(hypothesis(2))
        store.append(verification(3, [1, 2], VerificationResult.PARTIAL))
        result = snapshot(store)

        assert result.verification_status["partial"] == 2
        assert result.total_hypotheses == 2

    def test_branch_hypotheses_are_tracked(self):
        """Hypotheses written to branches are included."""
        store = ThoughtStore()
        store.append(Thought(number=1, content="root", total_thoughts=3))
        store.append(
            Thought(
                number=2,
                content="branch idea",
                total_thoughts=3,
                branch_from_thought=1,
                branch_id="b",
                thought_type=ThoughtType.HYPOTHESIS,
            )
        )
        result = snapshot(store)
        assert result.total_hypotheses == 1
        assert result.unverified_hypotheses[0].thought == "branch idea"

    def test_snapshot_is_idempotent(self):
        store = ThoughtStore()
        store.append(hypothesis(1))
        store.append(verification(2, [1], VerificationResult.CONFIRMED))
        store.append(hypothesis(3))

        assert snapshot(store) == snapshot(store)
