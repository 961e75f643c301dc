"""Storage-engine adapters implementing the StorageModel protocol."""

from ninja_records.adapters.sql import SQLTableModel

__all__ = ["SQLTableModel"]
