"""Shared fixtures for the mtpz-auth tests."""

import pytest

from mtpz_auth.simulator import synthetic_key_material


@pytest.fixture(scope="session")
def key_material():
    """Throwaway 1024-bit key material, generated once per test run."""
    return synthetic_key_material()
