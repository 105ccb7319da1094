"""
Snapshot module for relstore.

Provides full-database persistence to a single JSON document with
single-generation backup rotation.
"""

from .codec import decode_record, encode_record
from .persistence import LoadedSnapshot, PersistenceManager, snapshot_path

__all__ = [
    "LoadedSnapshot",
    "PersistenceManager",
    "decode_record",
    "encode_record",
    "snapshot_path",
]
