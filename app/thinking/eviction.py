"""
Sequential Thinking Eviction Manager

Keeps the in-memory store inside its configured bounds. Only in-memory
entries are dropped; durable rows are never touched here.
"""
import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from app.thinking.core_types import EvictionLimits
from app.thinking.store import ThoughtStore

logger = logging.getLogger(__name__)


class EvictionReport(BaseModel):
    main_dropped: int = 0
    branches_dropped: List[str] = Field(default_factory=list)
    branch_thoughts_dropped: int = 0

    @property
    def evicted(self) -> bool:
        return bool(self.main_dropped or self.branches_dropped or self.branch_thoughts_dropped)


def prune(store: ThoughtStore, limits: EvictionLimits, active_branch: Optional[str] = None) -> EvictionReport:
    """
    Enforce the three memory bounds, in order:

    1. main line: oldest entries beyond ``max_thought_history`` are dropped;
    2. branch count: branches beyond ``max_branches`` are dropped, lowest
       last-thought number first, earlier-created first on ties; the branch
       just written to is never dropped;
    3. branch length: oldest entries beyond ``max_thoughts_per_branch``.
    """
    report = EvictionReport()
    report.main_dropped = store.trim_line(None, limits.max_thought_history)

    branch_ids = store.branches_index()
    excess = len(branch_ids) - limits.max_branches
    if excess > 0:
        candidates = [b for b in branch_ids if b != active_branch]
        ranked = sorted(
            candidates,
            key=lambda b: (_last_number(store, b), branch_ids.index(b)),
        )
        for branch_id in ranked[:excess]:
            store.drop_branch(branch_id)
            report.branches_dropped.append(branch_id)

    for branch_id in store.branches_index():
        report.branch_thoughts_dropped += store.trim_line(branch_id, limits.max_thoughts_per_branch)

    if report.evicted:
        logger.debug(
            "Evicted in-memory thoughts",
            extra={
                "main_dropped": report.main_dropped,
                "branches_dropped": report.branches_dropped,
                "branch_thoughts_dropped": report.branch_thoughts_dropped,
            },
        )
    return report


def _last_number(store: ThoughtStore, branch_id: str) -> int:
    line = store.all_in_line(branch_id)
    return line[-1].number if line else 0
