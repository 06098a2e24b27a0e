"""
Work item selection for pool mode.

Picks the one profile to work on next out of a bounded window of
pending/running profiles.
"""

from __future__ import annotations

from typing import Sequence

from icpminer.core.config.models import MiningStatus
from icpminer.persistence.models import MiningProfile


def remaining_targets(profile: MiningProfile) -> int:
    """Targets left to process, 0 when the total is still unknown."""
    if profile.total_targets is None:
        return 0
    return max(profile.total_targets - (profile.processed_targets or 0), 0)


def _priority(profile: MiningProfile) -> tuple[int, int]:
    running = 1 if profile.status == MiningStatus.RUNNING.value else 0
    return running, remaining_targets(profile)


def select_next_profile(profiles: Sequence[MiningProfile]) -> MiningProfile | None:
    """Select the next profile to mine.

    A running profile always beats a pending one (finish what was started).
    Within the same status the largest remaining count wins, and ties go
    to the earliest entry in the list.
    """
    if not profiles:
        return None

    # max() keeps the first of equal keys
    return max(profiles, key=_priority)
