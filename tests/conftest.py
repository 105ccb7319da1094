"""
Shared fixtures for relstore tests.
"""

import itertools

import pytest

from relstore.config import Settings


@pytest.fixture
def shop_schema():
    """People, pets and vet visits with every field type."""
    return {
        "Person": {
            "name": {"type": "string", "required": True},
            "age": {"type": "number"},
            "born": {"type": "date"},
            "nicknames": {"type": "array string"},
            "friends": {"type": "array id Person"},
        },
        "Pet": {
            "name": {"type": "string", "required": True},
            "owner": {"type": "id Person"},
            "visits": {"type": "array date"},
            "weights": {"type": "array number"},
        },
    }


@pytest.fixture
def settings(tmp_path):
    """Settings writing snapshots under a temporary directory."""
    return Settings(data_dir=tmp_path, autosave=False, buffer_size=2)


@pytest.fixture
def sequential_ids():
    """Deterministic identifier generator: id-1, id-2, ..."""
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"
