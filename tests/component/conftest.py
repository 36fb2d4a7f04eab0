"""
Component Test Layer Configuration

Structure:
    tests/component/
    ├── secrets_service/   Service, rotation, connector and repository tests
    └── mocks/             Shared mock implementations

Usage:
    pytest tests/component -v
    pytest tests/component/secrets_service -v
"""
import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Set testing environment BEFORE any imports
os.environ["ENV"] = "testing"
os.environ["ENVIRONMENT"] = "testing"

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

# Load test environment variables
from dotenv import load_dotenv

project_root = Path(__file__).parent.parent.parent
test_env_file = project_root / "tests" / "config" / ".env.test"
if test_env_file.exists():
    load_dotenv(test_env_file, override=True)

from core.config import SecretsServiceConfig
from microservices.secrets_service.rotation_service import RotationService
from microservices.secrets_service.secrets_service import SecretsService
from tests.component.mocks import MockAsyncPostgresClient
from tests.component.secrets_service.mocks import (
    MockAccessControl,
    MockSecretStoreConnector,
    MockSecretsRepository,
)


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "component: marks tests as component tests"
    )


# =============================================================================
# Database Mocks
# =============================================================================

@pytest.fixture
def mock_db() -> MockAsyncPostgresClient:
    """Mock PostgreSQL client"""
    return MockAsyncPostgresClient()


# =============================================================================
# Secrets Service Dependencies
# =============================================================================

@pytest.fixture
def mock_repository() -> MockSecretsRepository:
    """In-memory secrets repository"""
    return MockSecretsRepository()


@pytest.fixture
def mock_connector() -> MockSecretStoreConnector:
    """In-memory versioned secret store, already connected"""
    return MockSecretStoreConnector()


@pytest.fixture
def mock_access_control() -> MockAccessControl:
    return MockAccessControl()


@pytest.fixture
def service_config() -> SecretsServiceConfig:
    return SecretsServiceConfig(operation_timeout=2.0)


@pytest.fixture
def secrets_service(mock_repository, mock_connector, mock_access_control, service_config) -> SecretsService:
    """SecretsService wired to in-memory dependencies"""
    return SecretsService(
        repository=mock_repository,
        connector=mock_connector,
        access_control=mock_access_control,
        config=service_config,
    )


@pytest_asyncio.fixture
async def rotation_service(secrets_service):
    """RotationService with one-second days; timers are cancelled on teardown"""
    service = RotationService(secrets_service, day_seconds=1.0)
    yield service
    await service.shutdown()
