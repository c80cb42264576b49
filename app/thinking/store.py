"""
Sequential Thinking Thought Store

Canonical in-memory state for one active sequence: the ordered main line
plus a map of branch id -> ordered thought list.
"""
from typing import Dict, List, Optional

from app.thinking.core_types import MAIN_LINE, Thought


class ThoughtStore:
    """
    Ordered main line plus branches.

    A branch is seeded on its first thought by copying every main-line
    thought numbered at or below ``branch_from_thought``; after that it
    diverges independently. Seeded copies are shared (thoughts are frozen)
    and keep their original ``branch_id``, which is how ``own_thoughts``
    tells them apart from thoughts written to the branch itself.
    """

    def __init__(self):
        self._main: List[Thought] = []
        self._branches: Dict[str, List[Thought]] = {}
        self._next_ordinal = 1

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._main)

    def get(self, number: int, branch_id: Optional[str] = None) -> Optional[Thought]:
        """Latest entry carrying ``number`` in the main line or a branch."""
        for thought in reversed(self._line(branch_id)):
            if thought.number == number:
                return thought
        return None

    def all_in_line(self, line_id: Optional[str] = None) -> List[Thought]:
        """Copy of a line; ``None`` or ``"main"`` selects the main line."""
        return list(self._line(line_id))

    def branches_index(self) -> List[str]:
        """Branch ids in creation order."""
        return list(self._branches.keys())

    def has_branch(self, branch_id: str) -> bool:
        return branch_id in self._branches

    def resolve_line(self, branch_id: Optional[str] = None, branch_from_thought: Optional[int] = None) -> List[Thought]:
        """
        The line a submission would be written to, without mutating anything.

        For a branch that does not exist yet this is the seed it would get.
        """
        if branch_id is None:
            return list(self._main)
        if branch_id in self._branches:
            return list(self._branches[branch_id])
        return self._seed(branch_from_thought)

    def own_thoughts(self) -> List[Thought]:
        """Every thought accepted into this store exactly once, in insertion order."""
        own = list(self._main)
        for branch_id, line in self._branches.items():
            own.extend(t for t in line if t.branch_id == branch_id)
        return sorted(own, key=lambda t: t.ordinal)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def append(self, thought: Thought) -> Thought:
        """Append to the main line or to the thought's branch (seeding it if new)."""
        stamped = self._stamp(thought)
        self._target_line(stamped).append(stamped)
        return stamped

    def revise_in_place(self, number: int, thought: Thought) -> Thought:
        """
        Overwrite the entry numbered ``number`` in the thought's line.

        When no such entry exists the revision is appended under that number.
        Submissions never reach that path: validation rejects revisions of
        missing thoughts. Rebuilding from durable rows does.
        """
        stamped = self._stamp(thought.model_copy(update={"number": number}))
        line = self._target_line(stamped)
        for index in range(len(line) - 1, -1, -1):
            if line[index].number == number:
                line[index] = stamped
                break
        else:
            line.append(stamped)
        return stamped

    def drop_branch(self, branch_id: str) -> None:
        self._branches.pop(branch_id, None)

    def trim_line(self, line_id: Optional[str], keep: int) -> int:
        """Drop the oldest entries of a line until at most ``keep`` remain."""
        line = self._line(line_id)
        excess = len(line) - keep
        if excess <= 0:
            return 0
        del line[:excess]
        return excess

    def clear(self) -> None:
        self._main = []
        self._branches = {}

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _line(self, line_id: Optional[str]) -> List[Thought]:
        if line_id is None or line_id == MAIN_LINE:
            return self._main
        return self._branches.get(line_id, [])

    def _seed(self, branch_from_thought: Optional[int]) -> List[Thought]:
        if branch_from_thought is None:
            return []
        return [t for t in self._main if t.number <= branch_from_thought]

    def _target_line(self, thought: Thought) -> List[Thought]:
        if thought.branch_id is None:
            return self._main
        if thought.branch_id not in self._branches:
            self._branches[thought.branch_id] = self._seed(thought.branch_from_thought)
        return self._branches[thought.branch_id]

    def _stamp(self, thought: Thought) -> Thought:
        stamped = thought.model_copy(update={"ordinal": self._next_ordinal})
        self._next_ordinal += 1
        return stamped
