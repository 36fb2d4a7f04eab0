"""
Rotation Service

Rotates secret values through a registry of handlers keyed by rotation type
and keeps one asyncio timer per auto-rotating secret.

Per-secret state: IDLE -> SCHEDULED -> ROTATING -> IDLE, or ROTATING ->
FAILED -> IDLE on error. FAILED lasts while the failure is recorded; the
error stays available as last_error. A failure is reported to the caller
and never stops the scheduler; the next firing proceeds on its own.
"""

import asyncio
import inspect
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from .models import (
    AuditContext,
    PendingRotation,
    RotationResult,
    RotationState,
    RotationStatus,
    SecretAction,
    SecretFilter,
    SecretRotationConfig,
    SecretUpdate,
)
from .protocols import (
    NoRotationHandlerError,
    RotationDisabledError,
    RotationFailedError,
    RotationHandler,
    SecretNotFoundError,
)
from .rotation_handlers import default_rotation_handlers
from .secrets_service import SecretsService

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


class RotationService:
    """Secret rotation scheduling and execution"""

    def __init__(
        self,
        secrets_service: SecretsService,
        handlers: Optional[Dict[str, RotationHandler]] = None,
        day_seconds: float = SECONDS_PER_DAY,
    ):
        """
        Args:
            secrets_service: Service through which new values are written
            handlers: Extra handlers registered on top of the built-in ones
            day_seconds: Length of one rotation-interval day in seconds
        """
        self.secrets_service = secrets_service
        self.day_seconds = day_seconds

        self._handlers: Dict[str, RotationHandler] = default_rotation_handlers()
        for rotation_type, handler in (handlers or {}).items():
            self.register_rotation_handler(rotation_type, handler)

        self._timers: Dict[str, asyncio.Task] = {}
        self._next_run: Dict[str, datetime] = {}
        self._states: Dict[str, RotationState] = {}
        self._last_rotation: Dict[str, datetime] = {}
        self._last_error: Dict[str, str] = {}

        logger.info(f"RotationService initialized with handlers: {sorted(self._handlers)}")

    # ====================
    # Handler Registry
    # ====================

    @staticmethod
    def _key(rotation_type: Union[str, Enum]) -> str:
        return rotation_type.value if isinstance(rotation_type, Enum) else str(rotation_type)

    def register_rotation_handler(self, rotation_type: Union[str, Enum], handler: RotationHandler) -> None:
        """Register (or replace) the handler for a rotation type"""
        if not callable(handler):
            raise TypeError("Rotation handler must be callable")
        self._handlers[self._key(rotation_type)] = handler

    def unregister_rotation_handler(self, rotation_type: Union[str, Enum]) -> None:
        self._handlers.pop(self._key(rotation_type), None)

    def registered_handlers(self) -> List[str]:
        return sorted(self._handlers)

    def _resolve_handler(self, config: SecretRotationConfig) -> Tuple[str, Optional[RotationHandler]]:
        """Handler for the rotation type; rotation_handler is only a fallback"""
        for key in config.handler_keys:
            handler = self._handlers.get(key)
            if handler is not None:
                return key, handler
        return config.type, None

    def _settle(self, secret_id: str) -> None:
        """Leave ROTATING/FAILED for SCHEDULED or IDLE"""
        self._states[secret_id] = (
            RotationState.SCHEDULED if self.is_scheduled(secret_id) else RotationState.IDLE
        )

    # ====================
    # Rotation
    # ====================

    async def _audit_failure(
        self, secret_id: str, context: AuditContext, error: BaseException, timeout: Optional[float]
    ) -> None:
        await self.secrets_service.record_audit(
            secret_id, SecretAction.ROTATE, context, success=False, error=error, timeout=timeout
        )

    async def rotate_secret(
        self,
        secret_id: str,
        context: Optional[AuditContext] = None,
        timeout: Optional[float] = None,
    ) -> RotationResult:
        """
        Rotate a secret now.

        Raises:
            SecretNotFoundError: Secret does not exist
            RotationDisabledError: rotation_config is absent or disabled
            NoRotationHandlerError: No handler for the configured type
            RotationFailedError: The handler raised or returned no value
        """
        context = context or AuditContext()
        try:
            secret = await self.secrets_service.get_secret(secret_id, timeout)
        except SecretNotFoundError:
            raise
        except Exception as e:
            logger.error(f"Failed to load secret {secret_id} for rotation: {e}")
            await self._audit_failure(secret_id, context, e, timeout)
            raise
        config = secret.rotation_config

        if config is None or not config.enabled:
            error = RotationDisabledError(f"Rotation is not enabled for secret {secret_id}")
            await self._audit_failure(secret_id, context, error, timeout)
            raise error

        key, handler = self._resolve_handler(config)
        if handler is None:
            error = NoRotationHandlerError(f"No rotation handler found for type {config.type}")
            await self._audit_failure(secret_id, context, error, timeout)
            raise error

        self._states[secret_id] = RotationState.ROTATING
        try:
            try:
                new_value = handler(secret)
                if inspect.isawaitable(new_value):
                    new_value = await new_value
                if not new_value or not isinstance(new_value, (str, bytes)):
                    raise ValueError("handler returned no value")
            except Exception as e:
                raise RotationFailedError(
                    f"Rotation handler '{key}' failed for secret {secret_id}: {e}", cause=e
                ) from e

            # Audited as rotate by the service, failures included
            version = await self.secrets_service.set_secret_value(
                secret_id, new_value, context=context, timeout=timeout, action=SecretAction.ROTATE
            )
        except Exception as e:
            self._states[secret_id] = RotationState.FAILED
            self._last_error[secret_id] = str(e)
            logger.error(f"Failed to rotate secret {secret_id}: {e}")
            try:
                if isinstance(e, RotationFailedError):
                    await self._audit_failure(secret_id, context, e, timeout)
            finally:
                self._settle(secret_id)
            raise

        rotated_at = datetime.now(timezone.utc)
        self._last_rotation[secret_id] = rotated_at
        self._last_error.pop(secret_id, None)
        self._settle(secret_id)

        if config.auto_rotate:
            self._arm(secret_id, config)

        logger.info(f"Rotated secret {secret_id} to version {version.version}")
        return RotationResult(
            success=True,
            secret_id=secret_id,
            old_version=version.version - 1,
            new_version=version.version,
            rotated_at=rotated_at,
        )

    # ====================
    # Scheduling
    # ====================

    def _arm(self, secret_id: str, config: SecretRotationConfig, delay: Optional[float] = None) -> None:
        """Replace any timer for the secret with a fresh one"""
        self._cancel_timer(secret_id)
        if delay is None:
            delay = config.interval * self.day_seconds
        delay = max(delay, 0.0)

        task = asyncio.create_task(self._run_timer(secret_id, delay), name=f"rotation:{secret_id}")
        self._timers[secret_id] = task
        self._next_run[secret_id] = datetime.now(timezone.utc) + timedelta(seconds=delay)
        self._states[secret_id] = RotationState.SCHEDULED
        logger.info(f"Rotation of secret {secret_id} armed in {delay:.0f}s")

    def _cancel_timer(self, secret_id: str) -> bool:
        task = self._timers.pop(secret_id, None)
        self._next_run.pop(secret_id, None)
        if task is None:
            return False
        if not task.done() and task is not asyncio.current_task():
            task.cancel()
        return True

    async def _run_timer(self, secret_id: str, delay: float) -> None:
        await asyncio.sleep(delay)

        if self._timers.get(secret_id) is asyncio.current_task():
            self._timers.pop(secret_id)
            self._next_run.pop(secret_id, None)

        try:
            await self.rotate_secret(secret_id)
            return
        except SecretNotFoundError:
            logger.info(f"Secret {secret_id} no longer exists; dropping its rotation schedule")
            self._states.pop(secret_id, None)
            return
        except Exception as e:
            logger.error(f"Scheduled rotation of secret {secret_id} failed: {e}")

        # Failed firing: keep the schedule going if the stored config still asks for it
        try:
            secret = await self.secrets_service.get_secret(secret_id)
        except SecretNotFoundError:
            return
        config = secret.rotation_config
        if config and config.enabled and config.auto_rotate and secret_id not in self._timers:
            self._arm(secret_id, config)

    async def schedule_rotation(
        self,
        secret_id: str,
        config: SecretRotationConfig,
        context: Optional[AuditContext] = None,
    ) -> None:
        """
        Store the rotation config and (re)arm the timer when auto_rotate is set.

        Rescheduling cancels the previous timer first, so a secret never has
        two live timers.
        """
        await self.secrets_service.update_secret(
            secret_id, SecretUpdate(rotation_config=config), context=context
        )

        if config.auto_rotate:
            self._arm(secret_id, config)
        else:
            self._cancel_timer(secret_id)
            self._states[secret_id] = RotationState.IDLE
            logger.info(f"Rotation config recorded for secret {secret_id}; no timer armed")

    async def cancel_rotation(self, secret_id: str) -> bool:
        """Disarm the timer; returns whether one was armed"""
        cancelled = self._cancel_timer(secret_id)
        if cancelled:
            self._states[secret_id] = RotationState.IDLE
            logger.info(f"Rotation of secret {secret_id} cancelled")
        return cancelled

    def is_scheduled(self, secret_id: str) -> bool:
        task = self._timers.get(secret_id)
        return task is not None and not task.done()

    async def get_rotation_status(self, secret_id: str) -> RotationStatus:
        secret = await self.secrets_service.get_secret(secret_id)
        return RotationStatus(
            secret_id=secret_id,
            scheduled=self.is_scheduled(secret_id),
            state=self._states.get(secret_id, RotationState.IDLE),
            next_rotation=self._next_run.get(secret_id),
            last_rotation=secret.last_rotated_at or self._last_rotation.get(secret_id),
            last_error=self._last_error.get(secret_id),
        )

    def list_pending_rotations(self) -> List[PendingRotation]:
        """Armed timers, soonest first"""
        pending = [
            PendingRotation(secret_id=secret_id, scheduled_at=scheduled_at)
            for secret_id, scheduled_at in self._next_run.items()
            if self.is_scheduled(secret_id)
        ]
        return sorted(pending, key=lambda p: p.scheduled_at)

    async def resume_schedules(self, filter: Optional[SecretFilter] = None) -> int:
        """
        Re-arm timers from stored rotation configs (e.g. after a restart).

        Overdue secrets fire immediately.

        Returns:
            Number of timers armed
        """
        now = datetime.now(timezone.utc)
        armed = 0
        for secret in await self.secrets_service.list_secrets(filter):
            config = secret.rotation_config
            if not (config and config.enabled and config.auto_rotate):
                continue
            due = secret.next_rotation_at
            remaining_days = (due - now).total_seconds() / SECONDS_PER_DAY if due else config.interval
            self._arm(secret.id, config, delay=remaining_days * self.day_seconds)
            armed += 1

        logger.info(f"Resumed {armed} rotation schedules")
        return armed

    async def shutdown(self) -> None:
        """Cancel every timer and wait for them to finish"""
        tasks = list(self._timers.values())
        for secret_id in list(self._timers):
            self._cancel_timer(secret_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"RotationService stopped ({len(tasks)} timers cancelled)")

    def health_check(self) -> Dict[str, object]:
        return {
            "scheduled": sum(1 for secret_id in self._timers if self.is_scheduled(secret_id)),
            "rotating": sum(1 for state in self._states.values() if state == RotationState.ROTATING),
            "failed": len(self._last_error),
            "handlers": self.registered_handlers(),
        }
