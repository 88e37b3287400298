"""Lets pytest run the script-style suite: each test gets a fresh TestRunner."""
import pytest

from test_dhh_review import TestRunner


@pytest.fixture
def runner():
    r = TestRunner()
    yield r
    assert r.failed == 0, "; ".join(r.errors)
