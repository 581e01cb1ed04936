"""
Scripts for DoseKeeper
Development utilities
"""

from .seed_data import seed_all, create_tables

__all__ = [
    "seed_all",
    "create_tables"
]
