"""
relstore Test Suite.

This package contains:
- unit/: Unit tests (in-memory, snapshots under tmp_path)
"""
