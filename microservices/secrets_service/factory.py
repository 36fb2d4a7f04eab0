"""
Secrets Service Factory

Factory for creating SecretsService / RotationService with real dependencies.
This is the ONLY module that imports concrete implementations.
"""

import logging
from typing import Dict, Optional, Tuple

from core.config import (
    DatabaseConfig,
    SecretsConfig,
    SecretStoreConfig,
    get_settings,
)
from core.logger import setup_service_logger

from .protocols import (
    AccessControlProtocol,
    RotationHandler,
    SecretsRepositoryProtocol,
    SecretStoreConnectorProtocol,
)
from .rotation_service import RotationService
from .secrets_repository import SecretsRepository
from .secrets_service import SecretsService
from .vault_connector import VaultConnector

logger = logging.getLogger(__name__)


def create_vault_connector(config: Optional[SecretStoreConfig] = None) -> VaultConnector:
    """Unconnected Vault connector; call connect() before use"""
    return VaultConnector(config or get_settings().secret_store)


def create_secrets_repository(config: Optional[DatabaseConfig] = None) -> SecretsRepository:
    return SecretsRepository(config=config or get_settings().database)


def create_secrets_service(
    settings: Optional[SecretsConfig] = None,
    repository: Optional[SecretsRepositoryProtocol] = None,
    connector: Optional[SecretStoreConnectorProtocol] = None,
    access_control: Optional[AccessControlProtocol] = None,
) -> SecretsService:
    """
    Create SecretsService with all real dependencies

    Args:
        settings: Configuration (defaults to core.config.get_settings())
        repository: Optional repository override
        connector: Optional connector override
        access_control: Optional access-control collaborator

    Returns:
        SecretsService instance (connector not yet connected)
    """
    settings = settings or get_settings()

    service = SecretsService(
        repository=repository or create_secrets_repository(settings.database),
        connector=connector or create_vault_connector(settings.secret_store),
        access_control=access_control,
        config=settings.service,
    )

    logger.info("SecretsService created with real dependencies")
    return service


def create_rotation_service(
    secrets_service: SecretsService,
    handlers: Optional[Dict[str, RotationHandler]] = None,
) -> RotationService:
    return RotationService(secrets_service=secrets_service, handlers=handlers)


async def initialize_secrets_service(
    settings: Optional[SecretsConfig] = None,
    apply_schema: bool = True,
    access_control: Optional[AccessControlProtocol] = None,
) -> Tuple[SecretsService, Optional[RotationService]]:
    """
    Build, connect and start the secrets service.

    Configures logging, connects to the secret store, prepares the metadata
    schema and, when enabled, starts the rotation scheduler and re-arms
    stored schedules.

    Returns:
        (secrets service, rotation service or None when rotation is disabled)
    """
    settings = settings or get_settings()
    setup_service_logger(settings.logging.service_name, config=settings.logging)

    repository = create_secrets_repository(settings.database)
    connector = create_vault_connector(settings.secret_store)
    await connector.connect()
    await repository.initialize(apply_schema=apply_schema)

    service = create_secrets_service(
        settings, repository=repository, connector=connector, access_control=access_control
    )

    rotation_service = None
    if settings.service.rotation_enabled:
        rotation_service = create_rotation_service(service)
        if settings.service.resume_schedules_on_start:
            await rotation_service.resume_schedules()

    logger.info(f"Secrets service started ({settings.environment})")
    return service, rotation_service


async def shutdown_secrets_service(
    service: SecretsService,
    rotation_service: Optional[RotationService] = None,
) -> None:
    """Stop timers and release the store session and database pool"""
    if rotation_service is not None:
        await rotation_service.shutdown()
    await service.connector.disconnect()
    close = getattr(service.repository, "close", None)
    if close is not None:
        await close()
    logger.info("Secrets service stopped")


__all__ = [
    "create_vault_connector",
    "create_secrets_repository",
    "create_secrets_service",
    "create_rotation_service",
    "initialize_secrets_service",
    "shutdown_secrets_service",
]
