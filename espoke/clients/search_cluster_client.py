"""
HTTP client for the Elasticsearch/OpenSearch REST API.

Only the endpoints and response fields the probes read are covered. Every
failure (transport error, timeout, unexpected status, unreadable body) is
raised as a `ClusterRequestError` carrying the operation, cluster, index and
document id it happened on.
"""

from typing import Any, Dict, Iterable, List, Tuple

import httpx
import msgspec
import orjson

from espoke.errors import ClusterRequestError, ResponseParseError


SUCCESS_STATUSES = (200, 201)


class SearchClusterClient:
    def __init__(
        self,
        cluster: str,
        scheme: str,
        endpoint: str,
        credentials: Tuple[str, str] | None = None,
        timeout: float = 28.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.cluster = cluster
        self.base_url = f"{scheme}://{endpoint}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=credentials,
            verify=False,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def close(self):
        if not self._client.is_closed:
            await self._client.aclose()

    async def index_exists(self, index: str) -> bool:
        response = await self._request(
            "HEAD",
            f"/{index}",
            operation="index_exists",
            index=index,
            accepted=(200, 404),
        )

        return response.status_code == 200

    async def create_index(self, index: str):
        await self._request(
            "PUT",
            f"/{index}",
            operation="create_index",
            index=index,
        )

    async def delete_index(self, index: str, missing_ok: bool = True):
        accepted = (200, 404) if missing_ok else SUCCESS_STATUSES
        await self._request(
            "DELETE",
            f"/{index}",
            operation="delete_index",
            index=index,
            accepted=accepted,
        )

    async def index_document(
        self,
        index: str,
        document_id: str,
        document: msgspec.Struct,
    ):
        await self._request(
            "PUT",
            f"/{index}/_doc/{document_id}",
            operation="index",
            index=index,
            document_id=document_id,
            content=msgspec.json.encode(document),
        )

    async def bulk_index(
        self,
        index: str,
        documents: Iterable[Tuple[str, msgspec.Struct]],
    ) -> int:
        lines: List[bytes] = []
        for document_id, document in documents:
            lines.append(
                orjson.dumps({"index": {"_index": index, "_id": document_id}})
            )
            lines.append(msgspec.json.encode(document))

        if len(lines) == 0:
            return 0

        response = await self._request(
            "POST",
            "/_bulk",
            operation="bulk",
            index=index,
            content=b"\n".join(lines) + b"\n",
            headers={"Content-Type": "application/x-ndjson"},
        )

        body = self._decode(response, operation="bulk", index=index)
        if body.get("errors") is True:
            raise ClusterRequestError(
                "Bulk indexing reported item failures",
                operation="bulk",
                cluster=self.cluster,
                index=index,
                status=response.status_code,
            )

        return len(lines) // 2

    async def get_document(self, index: str, document_id: str) -> Dict[str, Any]:
        response = await self._request(
            "GET",
            f"/{index}/_doc/{document_id}",
            operation="get",
            index=index,
            document_id=document_id,
        )

        return self._decode(
            response,
            operation="get",
            index=index,
            document_id=document_id,
        )

    async def delete_document(self, index: str, document_id: str):
        await self._request(
            "DELETE",
            f"/{index}/_doc/{document_id}",
            operation="delete",
            index=index,
            document_id=document_id,
        )

    async def count(self, index: str) -> int:
        response = await self._request(
            "GET",
            f"/{index}/_count",
            operation="count",
            index=index,
        )

        body = self._decode(response, operation="count", index=index)
        count = body.get("count")
        if not isinstance(count, (int, float)) or isinstance(count, bool):
            raise ResponseParseError(
                "Count response doesn't contain a count field",
                operation="count",
                cluster=self.cluster,
                index=index,
            )

        return int(count)

    async def search(self, index: str, query: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            f"/{index}/_search",
            operation="search",
            index=index,
            params={"track_total_hits": "true"},
            content=orjson.dumps(query),
        )

        return self._decode(response, operation="search", index=index)

    async def index_health(self, index: str) -> str:
        response = await self._request(
            "GET",
            f"/_cluster/health/{index}",
            operation="index_status",
            index=index,
            params={"level": "indices"},
        )

        body = self._decode(response, operation="index_status", index=index)

        indices = body.get("indices")
        if not isinstance(indices, dict):
            raise ResponseParseError(
                "Index status response doesn't contain an indices field",
                operation="index_status",
                cluster=self.cluster,
                index=index,
            )

        index_health = indices.get(index)
        if not isinstance(index_health, dict) or "status" not in index_health:
            raise ResponseParseError(
                f"Index status response doesn't contain indices.{index}.status",
                operation="index_status",
                cluster=self.cluster,
                index=index,
            )

        return str(index_health["status"])

    async def get_slm_policy(self, policy: str) -> Dict[str, Any] | None:
        response = await self._request(
            "GET",
            f"/_slm/policy/{policy}",
            operation="restore",
            accepted=(200, 404),
        )

        if response.status_code == 404:
            return None

        return self._decode(response, operation="restore")

    async def list_snapshots(self, repository: str) -> List[Dict[str, Any]] | None:
        response = await self._request(
            "GET",
            f"/_snapshot/{repository}/_all",
            operation="restore",
            accepted=(200, 404),
        )

        if response.status_code == 404:
            return None

        body = self._decode(response, operation="restore")
        snapshots = body.get("snapshots")
        if not isinstance(snapshots, list):
            raise ResponseParseError(
                f"Snapshot listing of repository {repository} doesn't contain snapshots",
                operation="restore",
                cluster=self.cluster,
            )

        return snapshots

    async def restore_snapshot(
        self,
        repository: str,
        snapshot: str,
        body: Dict[str, Any],
        timeout: float | None = None,
    ) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            f"/_snapshot/{repository}/{snapshot}/_restore",
            operation="restore",
            params={"wait_for_completion": "true"},
            content=orjson.dumps(body),
            timeout=timeout,
        )

        return self._decode(response, operation="restore")

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        index: str | None = None,
        document_id: str | None = None,
        params: Dict[str, str] | None = None,
        content: bytes | None = None,
        headers: Dict[str, str] | None = None,
        accepted: Tuple[int, ...] = SUCCESS_STATUSES,
        timeout: float | None = None,
    ) -> httpx.Response:
        if content is not None and headers is None:
            headers = {"Content-Type": "application/json"}

        request_timeout = (
            httpx.Timeout(timeout) if timeout is not None else httpx.USE_CLIENT_DEFAULT
        )

        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                content=content,
                headers=headers,
                timeout=request_timeout,
            )

        except (httpx.HTTPError, httpx.InvalidURL) as err:
            raise ClusterRequestError(
                f"Request failed: {err!r}",
                operation=operation,
                cluster=self.cluster,
                index=index,
                document_id=document_id,
            ) from err

        if response.status_code not in accepted:
            raise ClusterRequestError(
                f"Unexpected response: {response.text[:256]}",
                operation=operation,
                cluster=self.cluster,
                index=index,
                document_id=document_id,
                status=response.status_code,
            )

        return response

    def _decode(
        self,
        response: httpx.Response,
        operation: str,
        index: str | None = None,
        document_id: str | None = None,
    ) -> Dict[str, Any]:
        try:
            body = orjson.loads(response.content)

        except orjson.JSONDecodeError as err:
            raise ResponseParseError(
                f"Response body is not valid JSON: {err}",
                operation=operation,
                cluster=self.cluster,
                index=index,
                document_id=document_id,
                status=response.status_code,
            ) from err

        if not isinstance(body, dict):
            raise ResponseParseError(
                "Response body is not a JSON object",
                operation=operation,
                cluster=self.cluster,
                index=index,
                document_id=document_id,
                status=response.status_code,
            )

        return body
