"""Orchestrator - mining dispatch, profile locking, run summaries."""

from .runner import (
    MiningOptions,
    MiningRequest,
    MiningRunner,
    MiningRunResult,
    SingleProfile,
    SitePool,
    run_mining,
)

__all__ = [
    "MiningOptions",
    "MiningRequest",
    "MiningRunner",
    "MiningRunResult",
    "SingleProfile",
    "SitePool",
    "run_mining",
]
