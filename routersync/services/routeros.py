"""Device client used by the reconciliation engine.

``DeviceClient`` is the read-only boundary to a router: list pools, pool
addresses, PPP profiles and PPP secrets. ``RouterOsDeviceClient`` talks the
MikroTik RouterOS API through ``routeros_api`` and keeps one connection per
router alive for ``ROUTEROS_CONNECTION_TTL_SECONDS``.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

import routeros_api
from routeros_api.exceptions import RouterOsApiError

from routersync.config import settings
from routersync.schemas.device import PoolAddressBuckets
from routersync.services import ip_ranges
from routersync.services.cache import ExpiringCache
from routersync.services.router_credentials import CredentialError, RouterCredentials
from routersync.services.router_sync.errors import TransportError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouterConnection:
    """Detached copy of a router's connection details.

    Device calls run on worker threads, so they never touch ORM instances.
    """

    router_id: str
    name: str
    host: str | None
    port: int
    username: str | None
    password: str | None = field(default=None, repr=False)
    use_ssl: bool = False
    credential_error: str | None = None

    @classmethod
    def from_router(
        cls, router, credentials: RouterCredentials | None = None
    ) -> "RouterConnection":
        credentials = credentials or RouterCredentials.from_settings()
        credential_error = None
        try:
            password = credentials.reveal(router.api_password)
        except CredentialError as exc:
            # Reported when the router is contacted
            password, credential_error = None, str(exc)
        return cls(
            router_id=str(router.id),
            name=router.name,
            host=router.host,
            port=int(router.api_port or settings.routeros_default_port),
            username=router.api_username,
            password=password,
            use_ssl=bool(router.use_ssl),
            credential_error=credential_error,
        )


class DeviceClient(ABC):
    @abstractmethod
    def list_ip_pools(self, conn: RouterConnection) -> list[dict]:
        raise NotImplementedError

    @abstractmethod
    def list_pool_addresses(
        self, conn: RouterConnection, pool_external_id: str
    ) -> PoolAddressBuckets:
        raise NotImplementedError

    def list_router_pool_addresses(
        self, conn: RouterConnection, pool_external_ids: list[str]
    ) -> dict[str, PoolAddressBuckets | ValidationError]:
        """Address buckets for several pools of one router.

        A pool that cannot be read maps to its ``ValidationError``; transport
        failures propagate.
        """
        buckets: dict[str, PoolAddressBuckets | ValidationError] = {}
        for pool_id in pool_external_ids:
            try:
                buckets[pool_id] = self.list_pool_addresses(conn, pool_id)
            except ValidationError as exc:
                buckets[pool_id] = exc
        return buckets

    @abstractmethod
    def list_profiles(self, conn: RouterConnection) -> list[dict]:
        raise NotImplementedError

    @abstractmethod
    def list_users(self, conn: RouterConnection) -> list[dict]:
        raise NotImplementedError

    def close(self) -> None:
        """Release any held connections."""


def _record_id(record: dict) -> str | None:
    value = record.get(".id") or record.get("id")
    return str(value) if value is not None else None


class RouterOsDeviceClient(DeviceClient):
    def __init__(
        self,
        *,
        timeout_seconds: float | None = None,
        plaintext_login: bool | None = None,
        connection_ttl_seconds: float | None = None,
        max_pool_addresses: int | None = None,
        clock: Callable[[], datetime] | None = None,
        pool_factory: Callable[..., routeros_api.RouterOsApiPool] | None = None,
    ):
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.routeros_timeout_seconds
        )
        self.plaintext_login = (
            plaintext_login if plaintext_login is not None else settings.routeros_plaintext_login
        )
        self.max_pool_addresses = max_pool_addresses or settings.max_pool_addresses
        self._pool_factory = pool_factory or routeros_api.RouterOsApiPool
        ttl = (
            connection_ttl_seconds
            if connection_ttl_seconds is not None
            else settings.routeros_connection_ttl_seconds
        )
        self._connections: ExpiringCache[str, routeros_api.RouterOsApiPool] = ExpiringCache(
            ttl, clock=clock, on_evict=self._disconnect
        )
        self._connect_lock = threading.Lock()

    def _connect(self, conn: RouterConnection) -> routeros_api.RouterOsApiPool:
        if not conn.host:
            raise TransportError(f"Router {conn.name} has no API host", router_id=conn.router_id)
        if conn.credential_error:
            raise TransportError(
                f"Router {conn.name}: cannot read API password: {conn.credential_error}",
                router_id=conn.router_id,
            )
        pool = self._pool_factory(
            conn.host,
            username=conn.username or "admin",
            password=conn.password or "",
            port=conn.port,
            use_ssl=conn.use_ssl,
            plaintext_login=self.plaintext_login,
        )
        pool.set_timeout(self.timeout_seconds)
        logger.info("Connecting to router %s at %s:%s", conn.name, conn.host, conn.port)
        return pool

    def _api(self, conn: RouterConnection):
        with self._connect_lock:
            pool = self._connections.get(conn.router_id)
            if pool is None:
                pool = self._connect(conn)
                self._connections.set(conn.router_id, pool)
        return pool.get_api()

    def _disconnect(self, pool: routeros_api.RouterOsApiPool) -> None:
        try:
            pool.disconnect()
        except (RouterOsApiError, OSError) as exc:
            logger.warning("Error disconnecting RouterOS API pool: %s", exc)

    def _get(self, conn: RouterConnection, path: str) -> list[dict]:
        try:
            return list(self._api(conn).get_resource(path).get())
        except (RouterOsApiError, OSError) as exc:
            # Drop the cached connection so the next call reconnects
            self._connections.pop(conn.router_id)
            logger.error("RouterOS %s on %s failed: %s", path, conn.name, exc)
            raise TransportError(
                f"Router {conn.name}: {path} failed: {exc}", router_id=conn.router_id
            ) from exc

    def list_ip_pools(self, conn: RouterConnection) -> list[dict]:
        return self._get(conn, "/ip/pool")

    def list_pool_addresses(
        self, conn: RouterConnection, pool_external_id: str
    ) -> PoolAddressBuckets:
        return self._pool_buckets(
            conn, pool_external_id, self.list_ip_pools(conn), self._get(conn, "/ip/pool/used")
        )

    def list_router_pool_addresses(
        self, conn: RouterConnection, pool_external_ids: list[str]
    ) -> dict[str, PoolAddressBuckets | ValidationError]:
        if not pool_external_ids:
            return {}
        pools = self.list_ip_pools(conn)
        used_entries = self._get(conn, "/ip/pool/used")
        buckets: dict[str, PoolAddressBuckets | ValidationError] = {}
        for pool_id in pool_external_ids:
            try:
                buckets[pool_id] = self._pool_buckets(conn, pool_id, pools, used_entries)
            except ValidationError as exc:
                buckets[pool_id] = exc
        return buckets

    def _pool_buckets(
        self,
        conn: RouterConnection,
        pool_external_id: str,
        pools: list[dict],
        used_entries: list[dict],
    ) -> PoolAddressBuckets:
        pool = next((item for item in pools if _record_id(item) == pool_external_id), None)
        if pool is None:
            raise ValidationError(
                f"Pool {pool_external_id} not reported by router {conn.name}",
                payload={"pool": pool_external_id},
            )
        pool_name = pool.get("name")
        owners: dict[str, str] = {}
        used: list[str] = []
        for entry in used_entries:
            address = entry.get("address")
            if entry.get("pool") != pool_name or not address:
                continue
            used.append(address)
            owner = entry.get("info") or entry.get("owner")
            if owner:
                owners[address] = owner
        try:
            all_addresses = ip_ranges.expand_ranges(
                pool.get("ranges") or "", limit=self.max_pool_addresses
            )
            buckets = PoolAddressBuckets(used=used, owners=owners)
        except ValueError as exc:
            raise ValidationError(
                f"Pool {pool_name} on {conn.name}: {exc}", payload=pool
            ) from exc
        used_set = set(buckets.used)
        available = [address for address in all_addresses if address not in used_set]
        return PoolAddressBuckets(
            used=buckets.used, available=available, owners=buckets.owners
        )

    def list_profiles(self, conn: RouterConnection) -> list[dict]:
        return self._get(conn, "/ppp/profile")

    def list_users(self, conn: RouterConnection) -> list[dict]:
        return self._get(conn, "/ppp/secret")

    def close(self) -> None:
        self._connections.clear()
