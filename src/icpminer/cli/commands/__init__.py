"""CLI command modules."""

from . import db, mine, profiles, schedule, sites

__all__ = [
    "db",
    "mine",
    "profiles",
    "schedule",
    "sites",
]
