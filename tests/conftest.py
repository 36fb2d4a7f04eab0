"""
Root conftest.py - Global fixtures and configuration for all test layers.

Test Layers:
    - component/  : Component tests (service logic against in-memory mocks)
    - unit/       : Unit tests (pure functions, no I/O)
"""
import os
import sys

import pytest

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

# Keep config loading away from developer env files
os.environ.setdefault("ENV", "testing")

from tests.fixtures import (
    make_user_id,
    make_environment_id,
    make_secret_name,
    make_create_request,
    make_rotation_config,
)


# =============================================================================
# Sample Data Fixtures
# =============================================================================

@pytest.fixture
def user_id() -> str:
    return make_user_id()


@pytest.fixture
def environment_id() -> str:
    return make_environment_id()


@pytest.fixture
def secret_name() -> str:
    return make_secret_name()


@pytest.fixture
def create_request(user_id, environment_id):
    """Valid create request for a password secret"""
    return make_create_request(created_by=user_id, environment_id=environment_id)


@pytest.fixture
def rotation_config():
    """Enabled, manually triggered password rotation"""
    return make_rotation_config()


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "component: Component tests")
    config.addinivalue_line("markers", "unit: Unit tests")
