"""Checkpoint reconciliation for resumed scans."""

from __future__ import annotations

import math


def compute_starting_page(current_page: int | None, processed_targets: int | None, page_size: int) -> int:
    """Page index a resumed scan should start from.

    The stored page can lag behind the processed counter when a run died
    between the two writes, so the page implied by processed_targets
    wins when it is further along. Pages below the result are never
    fetched again.
    """
    page = max(current_page or 0, 0)
    processed = processed_targets or 0
    if processed <= 0 or page_size <= 0:
        return page
    return max(page, math.ceil(processed / page_size))
