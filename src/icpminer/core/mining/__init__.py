"""Mining engine - selection, checkpoint reconciliation, resumable scans."""

from .checkpoint import compute_starting_page
from .engine import DEFAULT_PROVIDER_PAGE_SIZE, MiningEngine, MiningOutcome
from .selector import remaining_targets, select_next_profile

__all__ = [
    "compute_starting_page",
    "DEFAULT_PROVIDER_PAGE_SIZE",
    "MiningEngine",
    "MiningOutcome",
    "remaining_targets",
    "select_next_profile",
]
