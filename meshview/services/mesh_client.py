"""Async HTTP client for the mesh graph and metrics endpoints."""

from __future__ import annotations

from typing import Any

import httpx

from meshview.config import Settings
from meshview.topology.models import GraphScope, TimeWindow
from meshview.topology.queries import QuerySpec
from meshview.topology.series import MetricsResponse, parse_metrics_response
from meshview.utils.exceptions import FetchFailure
from meshview.utils.logging import get_logger
from meshview.utils.retry import async_retry

logger = get_logger(__name__)


class MeshClient:
    """Fetches raw topology graphs and metrics through the kobs plugin proxy.

    Every transport error, timeout or non-2xx response leaves this class as a
    ``FetchFailure``; callers never see httpx exceptions.
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings
        headers = {
            "x-kobs-cluster": settings.MESH_CLUSTER,
            "x-kobs-plugin": settings.MESH_PLUGIN,
        }
        if settings.MESH_API_TOKEN:
            headers["Authorization"] = f"Bearer {settings.MESH_API_TOKEN}"

        self._client = httpx.AsyncClient(
            base_url=settings.MESH_API_URL,
            headers=headers,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )
        self._get = async_retry(max_attempts=settings.HTTP_MAX_ATTEMPTS)(self._get_json)

    async def fetch_graph(self, scope: GraphScope) -> dict[str, Any] | None:
        params: list[tuple[str, str | int]] = [("namespace", ns) for ns in scope.namespaces]
        if scope.application:
            params.append(("application", scope.application))
        params += [
            ("duration", scope.window.duration),
            ("graphType", "versionedApp"),
            ("injectServiceNodes", "true"),
            ("groupBy", "app"),
        ]
        params += [("appender", appender) for appender in self._settings.GRAPH_APPENDERS]

        payload = await self._request(self._settings.GRAPH_PATH, params)
        logger.info(
            "graph_fetched",
            namespaces=scope.namespaces,
            application=scope.application,
            duration=scope.window.duration,
        )
        return payload

    async def fetch_metrics(self, spec: QuerySpec, window: TimeWindow) -> MetricsResponse:
        path = spec.to_path(window)
        payload = await self._request(self._settings.METRICS_PATH, [("url", path)])
        logger.debug("metrics_fetched", entity=spec.entity_name, families=len(payload or {}))
        return parse_metrics_response(payload)

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, path: str, params: list[tuple[str, str | int]]) -> Any:
        try:
            return await self._get(path, params)
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.error("mesh_request_failed", path=path, status=status)
            raise FetchFailure(f"mesh API returned {status} for {path}", status_code=status) from exc
        except httpx.HTTPError as exc:
            logger.error("mesh_request_failed", path=path, error=str(exc))
            raise FetchFailure(f"mesh API request to {path} failed: {exc}") from exc
        except ValueError as exc:
            logger.error("mesh_response_invalid", path=path, error=str(exc))
            raise FetchFailure(f"mesh API returned invalid JSON for {path}") from exc

    async def _get_json(self, path: str, params: list[tuple[str, str | int]]) -> Any:
        resp = await self._client.get(path, params=params)
        resp.raise_for_status()
        if not resp.content:
            return None
        return resp.json()
