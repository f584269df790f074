"""
Pytest configuration for lockmint tests.
"""
import os
import sys

import pytest

# Make both the package and the shared test fakes importable.
_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
_TESTS_DIR = os.path.dirname(os.path.abspath(__file__))

for _p in (_ROOT, _TESTS_DIR):
    if _p not in sys.path:
        sys.path.insert(0, _p)

from fakes import FakeClock, FakeMintClient, FakeReader  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def reader():
    return FakeReader(height=1000)


@pytest.fixture
def mint_client():
    return FakeMintClient()
