"""
Sequential Thinking Verification Tracker

Read-only projection of hypothesis status. Recomputed from the store on
every call, so it can never drift from the thoughts it describes.
"""
from typing import Dict, List

from app.thinking.core_types import (
    Thought,
    UnverifiedHypothesis,
    VerificationResult,
    VerificationSnapshot,
)
from app.thinking.store import ThoughtStore


def snapshot(store: ThoughtStore) -> VerificationSnapshot:
    """
    Derive the status of every hypothesis in the store.

    A hypothesis takes the result of the latest verification that references
    it: highest thought number, ties broken by insertion order. A verification
    without a result, or no verification at all, counts as pending.
    """
    thoughts = store.own_thoughts()

    hypotheses: Dict[int, Thought] = {}
    for thought in thoughts:
        if thought.is_hypothesis:
            hypotheses[thought.number] = thought

    latest: Dict[int, Thought] = {}
    for thought in thoughts:
        if not thought.is_verification:
            continue
        for number in thought.related_to:
            if number not in hypotheses:
                continue
            current = latest.get(number)
            if current is None or (thought.number, thought.ordinal) > (current.number, current.ordinal):
                latest[number] = thought

    counts = {result.value: 0 for result in VerificationResult}
    hypothesis_status: Dict[int, VerificationResult] = {}
    unverified: List[UnverifiedHypothesis] = []

    for number in sorted(hypotheses):
        verification = latest.get(number)
        if verification is None:
            status = VerificationResult.PENDING
            unverified.append(
                UnverifiedHypothesis(thought_number=number, thought=hypotheses[number].content)
            )
        else:
            status = verification.verification_result or VerificationResult.PENDING
        hypothesis_status[number] = status
        counts[status.value] += 1

    return VerificationSnapshot(
        verification_status=counts,
        hypothesis_status=hypothesis_status,
        unverified_hypotheses=unverified,
        total_hypotheses=len(hypotheses),
    )
