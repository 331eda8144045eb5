"""Repository implementations."""

from src.persistence.repositories.cost_entry_repo import CostEntryRepository

__all__ = ["CostEntryRepository"]
