from typing import Any, Dict, Tuple

import httpx
import orjson

from espoke.discovery.models import MonitoredNode
from espoke.errors import ClusterRequestError, ResponseParseError


class NodeClient:
    """Issues health requests straight to individual cluster nodes."""

    def __init__(
        self,
        cluster: str,
        credentials: Tuple[str, str] | None = None,
        timeout: float = 28.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.cluster = cluster
        self._client = httpx.AsyncClient(
            auth=credentials,
            verify=False,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def close(self):
        if not self._client.is_closed:
            await self._client.aclose()

    async def get(
        self,
        node: MonitoredNode,
        path: str,
        operation: str,
    ) -> httpx.Response:
        try:
            response = await self._client.get(f"{node.url}{path}")

        except (httpx.HTTPError, httpx.InvalidURL) as err:
            raise ClusterRequestError(
                f"Probing node {node.name} failed: {err!r}",
                operation=operation,
                cluster=self.cluster,
            ) from err

        if response.status_code != 200:
            raise ClusterRequestError(
                f"Probing node {node.name} failed",
                operation=operation,
                cluster=self.cluster,
                status=response.status_code,
            )

        return response

    async def get_json(
        self,
        node: MonitoredNode,
        path: str,
        operation: str,
    ) -> Dict[str, Any]:
        response = await self.get(node, path, operation)

        try:
            body = orjson.loads(response.content)

        except orjson.JSONDecodeError as err:
            raise ResponseParseError(
                f"Node {node.name} answered with invalid JSON: {err}",
                operation=operation,
                cluster=self.cluster,
                status=response.status_code,
            ) from err

        if not isinstance(body, dict):
            raise ResponseParseError(
                f"Node {node.name} answered with a non-object body",
                operation=operation,
                cluster=self.cluster,
                status=response.status_code,
            )

        return body
