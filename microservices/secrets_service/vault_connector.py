"""
Vault Connector

Secret-store connector for a HashiCorp Vault KV v2 compatible backend.
Moves raw secret bytes in and out of the store and nothing else: no
metadata bookkeeping, no audit, no version numbering of its own.
"""

import logging
import ssl
from typing import Any, Dict, List, Optional, Union

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from core.config import SecretStoreConfig

from .protocols import (
    SecretDeleteError,
    SecretReadError,
    SecretStoreConnectionError,
    SecretStoreError,
    SecretStoreNotInitializedError,
    SecretWriteError,
)

logger = logging.getLogger(__name__)

# sys/health status codes that mean "reachable and unsealed"
# 200 active, 429 standby, 472 DR secondary, 473 performance standby
HEALTHY_STATUS_CODES = frozenset({200, 429, 472, 473})


def _is_transient(error: BaseException) -> bool:
    """Network errors, timeouts and 5xx responses are retried"""
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    return False


class VaultConnector:
    """
    Vault KV v2 connector over a shared httpx.AsyncClient session.

    The session is created by connect() and reused by every call; calls
    made before connect() fail fast with SecretStoreNotInitializedError.
    """

    def __init__(
        self,
        config: SecretStoreConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            config: Secret-store session configuration
            transport: Optional httpx transport (tests inject httpx.MockTransport)
        """
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._token: Optional[str] = None
        self._owns_token = False
        self._connected = False

    # ============ Session ============

    def _build_verify(self) -> Union[bool, ssl.SSLContext]:
        tls = self.config.tls
        if tls.insecure:
            return False
        if not (tls.ca_cert or tls.client_cert):
            return True
        context = ssl.create_default_context(cafile=tls.ca_cert)
        if tls.client_cert:
            context.load_cert_chain(tls.client_cert, tls.client_key)
        return context

    def _build_client(self) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json"}
        if self.config.namespace:
            headers["X-Vault-Namespace"] = self.config.namespace

        kwargs: Dict[str, Any] = {
            "base_url": self.config.endpoint.rstrip("/"),
            "timeout": self.config.timeout,
            "headers": headers,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        else:
            kwargs["verify"] = self._build_verify()
        return httpx.AsyncClient(**kwargs)

    async def connect(self) -> None:
        """Authenticate (token or AppRole) and run the liveness check"""
        if self._client is None:
            self._client = self._build_client()

        try:
            if self.config.token:
                self._token = self.config.token
                self._owns_token = False
            elif self.config.uses_approle:
                self._token = await self._login_approle()
                self._owns_token = True
            else:
                raise SecretStoreConnectionError("No authentication method configured")

            self._client.headers["X-Vault-Token"] = self._token

            response = await self._client.get("/v1/sys/health")
            if response.status_code not in HEALTHY_STATUS_CODES:
                raise SecretStoreConnectionError(
                    f"Secret store liveness check failed with status {response.status_code}"
                )

            self._connected = True
            logger.info(f"Connected to secret store at {self.config.endpoint}")

        except SecretStoreConnectionError:
            self._connected = False
            raise
        except httpx.HTTPError as e:
            self._connected = False
            raise SecretStoreConnectionError(
                f"Failed to connect to secret store: {e}", cause=e
            ) from e

    async def _login_approle(self) -> str:
        try:
            response = await self._client.post(
                "/v1/auth/approle/login",
                json={"role_id": self.config.role_id, "secret_id": self.config.secret_id},
            )
            response.raise_for_status()
            return response.json()["auth"]["client_token"]
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise SecretStoreConnectionError(f"AppRole authentication failed: {e}", cause=e) from e

    async def disconnect(self) -> None:
        """Close the session; tokens obtained through AppRole are revoked"""
        if self._client is not None and self._connected and self._owns_token:
            try:
                await self._client.post("/v1/auth/token/revoke-self")
            except httpx.HTTPError as e:
                logger.warning(f"Failed to revoke secret store token: {e}")

        self._token = None
        self._owns_token = False
        self._connected = False
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def is_connected(self) -> bool:
        return self._connected

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    # ============ Helpers ============

    def _ensure_connected(self) -> httpx.AsyncClient:
        if not self._connected or self._client is None:
            raise SecretStoreNotInitializedError(
                "Not connected to secret store. Call connect() first."
            )
        return self._client

    def _url(self, kind: str, path: str) -> str:
        return f"/v1/{self.config.mount_path.strip('/')}/{kind}/{path.strip('/')}"

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request, retrying transient failures per the retry policy"""
        client = self._ensure_connected()
        retry = self.config.retry

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(retry.max_retries, 1)),
            wait=wait_incrementing(start=retry.retry_delay, increment=retry.retry_delay),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        ):
            with attempt:
                response = await client.request(method, url, **kwargs)
                if response.status_code >= 500:
                    response.raise_for_status()
        return response

    # ============ Secret Operations ============

    async def write_secret(
        self,
        path: str,
        data: Dict[str, Any],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Write the live value at path.

        The backend creates a new internal version on every write. A failure to
        store the custom metadata afterwards is logged, not raised.

        Returns:
            Backend write metadata, e.g. {"version": 3, "created_time": "..."}
        """
        self._ensure_connected()
        try:
            response = await self._request("POST", self._url("data", path), json={"data": data})
            response.raise_for_status()
            write_metadata = (response.json() or {}).get("data") or {}
        except (httpx.HTTPError, ValueError) as e:
            raise SecretWriteError(f"Failed to write secret at {path}: {e}", path=path, cause=e) from e

        if metadata:
            # The value is already live; custom metadata is advisory
            custom = {k: str(v) for k, v in metadata.items() if v is not None}
            try:
                meta_response = await self._request(
                    "POST", self._url("metadata", path), json={"custom_metadata": custom}
                )
                meta_response.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning(f"Secret written at {path} but custom metadata was not stored: {e}")

        return write_metadata

    async def read_secret(
        self, path: str, version: Optional[int] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Read the live value, or a historical version when given.

        Returns:
            {"data": {...}, "metadata": {...}}, or None when the path/version
            does not exist
        """
        self._ensure_connected()
        params = {"version": str(version)} if version else None
        try:
            response = await self._request("GET", self._url("data", path), params=params)
            if response.status_code == 404:
                return None
            response.raise_for_status()

            body = (response.json() or {}).get("data") or {}
            if body.get("data") is None:
                # Soft-deleted or destroyed version
                return None
            return {"data": body["data"], "metadata": body.get("metadata") or {}}

        except (httpx.HTTPError, ValueError) as e:
            raise SecretReadError(f"Failed to read secret at {path}: {e}", path=path, cause=e) from e

    async def delete_secret(self, path: str) -> None:
        """Delete the live value; historical version retention is the backend's concern"""
        self._ensure_connected()
        try:
            response = await self._request("DELETE", self._url("data", path))
            if response.status_code == 404:
                logger.debug(f"Secret at {path} already absent from store")
                return
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SecretDeleteError(f"Failed to delete secret at {path}: {e}", path=path, cause=e) from e

    async def list_secrets(self, path: str = "") -> List[str]:
        """List keys under path"""
        self._ensure_connected()
        try:
            response = await self._request("GET", self._url("metadata", path), params={"list": "true"})
            if response.status_code == 404:
                return []
            response.raise_for_status()
            return ((response.json() or {}).get("data") or {}).get("keys", [])
        except (httpx.HTTPError, ValueError) as e:
            raise SecretReadError(f"Failed to list secrets at {path}: {e}", path=path, cause=e) from e

    # ============ Versioning ============

    async def get_secret_versions(self, path: str) -> List[Dict[str, Any]]:
        """Backend version history for path, oldest first"""
        metadata = await self.get_secret_metadata(path)
        if not metadata:
            return []

        versions = []
        for number, info in (metadata.get("versions") or {}).items():
            versions.append({
                "version": int(number),
                "created_at": info.get("created_time"),
                "deleted_at": info.get("deletion_time") or None,
                "destroyed": bool(info.get("destroyed")),
            })
        return sorted(versions, key=lambda v: v["version"])

    async def destroy_secret_version(self, path: str, version: int) -> None:
        """Permanently destroy one backend version"""
        self._ensure_connected()
        try:
            response = await self._request(
                "POST", self._url("destroy", path), json={"versions": [version]}
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SecretDeleteError(
                f"Failed to destroy secret version {version} at {path}: {e}", path=path, cause=e
            ) from e

    # ============ Metadata ============

    async def get_secret_metadata(self, path: str) -> Optional[Dict[str, Any]]:
        self._ensure_connected()
        try:
            response = await self._request("GET", self._url("metadata", path))
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return (response.json() or {}).get("data") or None
        except (httpx.HTTPError, ValueError) as e:
            raise SecretReadError(
                f"Failed to get secret metadata for {path}: {e}", path=path, cause=e
            ) from e

    async def update_secret_metadata(self, path: str, metadata: Dict[str, Any]) -> None:
        self._ensure_connected()
        try:
            response = await self._request("POST", self._url("metadata", path), json=metadata)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SecretWriteError(
                f"Failed to update secret metadata for {path}: {e}", path=path, cause=e
            ) from e

    async def health_check(self) -> Dict[str, Any]:
        """Connectivity summary (no credentials)"""
        status: Dict[str, Any] = {
            "endpoint": self.config.endpoint,
            "mount_path": self.config.mount_path,
            "connected": self._connected,
        }
        if not self._connected:
            return status
        try:
            response = await self._client.get("/v1/sys/health")
            status["healthy"] = response.status_code in HEALTHY_STATUS_CODES
            status["status_code"] = response.status_code
        except httpx.HTTPError as e:
            status["healthy"] = False
            status["error"] = str(e)
        return status


__all__ = ["VaultConnector", "SecretStoreError"]
