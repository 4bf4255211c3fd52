from typing import Any, Dict, List, Protocol

import httpx
import msgspec
import orjson

from espoke.errors import RegistryError

from .models import CatalogEntry, HealthEntry


REGISTRY_TIMEOUT_SECONDS = 10.0


class ServiceRegistry(Protocol):
    async def resolve_service(self, service_name: str) -> List[CatalogEntry]:
        ...

    async def list_all_services(self) -> Dict[str, List[str]]:
        ...

    async def resolve_healthy_instance(self, service_name: str) -> tuple[int, str]:
        ...

    async def close(self) -> None:
        ...


class ConsulRegistry:
    """
    Read-only client for the Consul HTTP API.

    Every read allows stale answers so any Consul server can serve it.
    """

    def __init__(
        self,
        consul_api: str,
        token: str | None = None,
        timeout: float = REGISTRY_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        base_url = consul_api if "://" in consul_api else f"http://{consul_api}"
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers: dict[str, str] = {}
            if self._token:
                headers["X-Consul-Token"] = self._token

            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=headers,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )

        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

        self._client = None

    async def resolve_service(self, service_name: str) -> List[CatalogEntry]:
        data = await self._get(f"/v1/catalog/service/{service_name}")

        try:
            return msgspec.convert(data or [], type=List[CatalogEntry])

        except msgspec.ValidationError as err:
            raise RegistryError(
                f"Malformed catalog entries for service {service_name}: {err}"
            ) from err

    async def list_all_services(self) -> Dict[str, List[str]]:
        data = await self._get("/v1/catalog/services")

        try:
            services = msgspec.convert(data or {}, type=Dict[str, List[str] | None])

        except msgspec.ValidationError as err:
            raise RegistryError(f"Malformed services listing: {err}") from err

        return {name: tags or [] for name, tags in services.items()}

    async def resolve_healthy_instance(self, service_name: str) -> tuple[int, str]:
        """
        Return the port and datacenter of the first instance of a service.

        Raises:
            RegistryError: the registry failed or knows no instance.
        """
        data = await self._get(f"/v1/health/service/{service_name}")

        try:
            entries = msgspec.convert(data or [], type=List[HealthEntry])

        except msgspec.ValidationError as err:
            raise RegistryError(
                f"Malformed health entries for service {service_name}: {err}"
            ) from err

        if len(entries) == 0:
            raise RegistryError(f"Consul service {service_name} is empty")

        first = entries[0]
        return first.service.port, first.node.datacenter

    async def _get(self, path: str) -> Any:
        client = self._ensure_client()

        try:
            response = await client.get(path, params={"stale": ""})

        except httpx.HTTPError as err:
            raise RegistryError(f"Consul request to {path} failed: {err}") from err

        if response.status_code != 200:
            raise RegistryError(
                f"Consul request to {path} failed with HTTP {response.status_code}"
            )

        try:
            return orjson.loads(response.content)

        except orjson.JSONDecodeError as err:
            raise RegistryError(
                f"Consul response from {path} is not valid JSON: {err}"
            ) from err
