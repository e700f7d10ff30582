"""
Global conftest for hydrator tests.

1. A pretty unified-diff assertion helper for clearer dict-vs-dict failures.
2. Shared fixtures: a seeded in-memory provider and a parser for expansion
   output.
"""

import json
import difflib

import pytest

from core_expand import MemoryProvider


# --------------------------------------------------------------------------- #
# Pretty diff for dict comparisons                                            #
# --------------------------------------------------------------------------- #
def pytest_assertrepr_compare(op, left, right):
    """Pretty unified-diff output when comparing two dicts with ==."""
    if isinstance(left, dict) and isinstance(right, dict) and op == "==":
        lhs = json.dumps(left, indent=2, sort_keys=True).splitlines()
        rhs = json.dumps(right, indent=2, sort_keys=True).splitlines()
        return [""] + list(
            difflib.unified_diff(lhs, rhs, fromfile="left", tofile="right")
        )


# --------------------------------------------------------------------------- #
# Shared fixtures                                                             #
# --------------------------------------------------------------------------- #
CATALOG = {
    "users/7": {"id": 7, "name": "Alice"},
    "users/8": {"id": 8, "name": "Bob"},
    "posts/1": {"id": 1, "title": "Hello", "_expand": {"author": "users/7"}},
    "posts/2": {"id": 2, "title": "Again", "_expand": {"author": "users/8"}},
    "tags/py": {"slug": "py"},
    "tags/go": {"slug": "go"},
}


@pytest.fixture
def catalog():
    return {k: dict(v) for k, v in CATALOG.items()}


@pytest.fixture
def provider(catalog):
    return MemoryProvider(catalog)
