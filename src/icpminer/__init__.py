"""
ICP Miner - Resumable lead mining over paginated person search.

Scans a person-search provider page by page for each saved Ideal Client
Profile, checkpointing progress so that every run can stop mid-scan and
pick up exactly where the previous one left off.
"""

__version__ = "0.1.0"
__app_name__ = "icpminer"
