"""Unit tests for the topology view service."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from meshview.renderer.networkx_renderer import NetworkXRenderer
from meshview.services.topology_service import (
    EdgeDetail,
    NodeDetail,
    PanelStatus,
    TopologyService,
)
from meshview.topology.models import DetailTab, GraphScope, TimeWindow
from meshview.topology.series import parse_metrics_response
from meshview.utils.exceptions import FetchFailure


@pytest.fixture
def mock_client(raw_graph, metrics_payload):
    client = AsyncMock()
    client.fetch_graph = AsyncMock(return_value=raw_graph)
    client.fetch_metrics = AsyncMock(return_value=parse_metrics_response(metrics_payload))
    client.close = AsyncMock()
    return client


@pytest.fixture
def renderer():
    return NetworkXRenderer()


@pytest.fixture
def service(mock_client, renderer, settings):
    return TopologyService(mock_client, renderer, settings=settings)


@pytest.mark.asyncio
async def test_load_publishes_full_snapshot(service, renderer, scope):
    view = await service.load(scope)

    assert view.status is PanelStatus.LOADED
    assert len(view.graph.nodes) == 7
    assert view.graph.dropped_edges == ["e-dangling"]
    assert renderer.elements.graph is view.graph
    assert set(view.layout.nodes) == {node.id for node in view.graph.nodes}


@pytest.mark.asyncio
async def test_null_elements_is_no_data(service, mock_client, scope):
    mock_client.fetch_graph = AsyncMock(return_value={"elements": None})
    view = await service.load(scope)
    assert view.status is PanelStatus.NO_DATA
    assert view.graph.is_empty


@pytest.mark.asyncio
async def test_graph_fetch_failure(service, mock_client, scope):
    mock_client.fetch_graph = AsyncMock(side_effect=FetchFailure("boom", status_code=503))
    view = await service.load(scope)
    assert view.status is PanelStatus.FAILED
    assert view.retryable
    assert view.error == "boom"


@pytest.mark.asyncio
async def test_overlapping_loads_publish_newest_scope(service, mock_client, renderer, scope, raw_graph):
    gate = asyncio.Event()
    newer_graph = {
        "elements": {
            "nodes": [{"data": {"id": "solo", "nodeType": "app", "app": "solo", "namespace": "b"}}],
            "edges": [],
        }
    }

    async def fetch(requested):
        if requested.namespaces == ["a"]:
            await gate.wait()
            return raw_graph
        return newer_graph

    mock_client.fetch_graph = AsyncMock(side_effect=fetch)
    older = asyncio.create_task(service.load(GraphScope(namespaces=["a"], window=scope.window)))
    await asyncio.sleep(0)
    newer_view = await service.load(GraphScope(namespaces=["b"], window=scope.window))
    gate.set()
    older_view = await older

    assert newer_view.status is PanelStatus.LOADED
    assert older_view.status is PanelStatus.STALE
    assert service.scope.namespaces == ["b"]
    assert [node.id for node in service.graph.nodes] == ["solo"]
    assert renderer.elements.graph is service.graph
    assert set(service.layout.nodes) == {"solo"}


@pytest.mark.asyncio
async def test_tap_opens_drawer_and_loads_node_metrics(service, renderer, mock_client, scope):
    await service.load(scope)

    assert renderer.tap("productpage")
    assert service.selection.selected_id == "productpage"
    assert service.current_detail is None

    detail = await service.wait_for_details()
    assert isinstance(detail, NodeDetail)
    assert service.current_detail is detail
    assert detail.status is PanelStatus.LOADED
    assert detail.title.title == "productpage"
    assert mock_client.fetch_metrics.await_count == 3
    assert any(chart.series for chart in detail.charts)


def test_tap_outside_event_loop_leaves_selection_closed(service, renderer, scope):
    asyncio.run(service.load(scope))

    with pytest.raises(RuntimeError):
        renderer.tap("productpage")
    assert not service.selection.is_open
    assert service.current_detail is None


@pytest.mark.asyncio
async def test_failed_tap_detail_is_collected(service, renderer, scope):
    await service.load(scope)
    with patch.object(service, "load_details", AsyncMock(side_effect=RuntimeError("boom"))):
        assert renderer.tap("ratings")
        assert await service.wait_for_details() is None
    assert service.selection.selected_id == "ratings"


@pytest.mark.asyncio
async def test_current_detail_follows_tab_and_close(service, scope):
    await service.load(scope)
    await service.open_details("e-pp-reviews")
    assert service.current_detail.active_tab is DetailTab.TRAFFIC

    service.change_tab(DetailTab.HOSTS)
    assert service.current_detail.active_tab is DetailTab.HOSTS

    service.close_details()
    assert service.current_detail is None


@pytest.mark.asyncio
async def test_edge_detail(service, scope):
    await service.load(scope)
    detail = await service.open_details("e-pp-reviews")

    assert isinstance(detail, EdgeDetail)
    assert detail.source_title.title == "productpage"
    assert detail.target_title.title == "reviews"
    assert detail.tabs == [DetailTab.TRAFFIC, DetailTab.FLAGS, DetailTab.HOSTS]
    assert detail.traffic[0].total == 10.0
    assert detail.traffic[0].success_pct == pytest.approx(98.0)
    assert {(row.code, row.key) for row in detail.flags} == {("200", "-"), ("503", "UH")}
    assert [chart.title for chart in detail.charts] == [
        "HTTP Requests per Second",
        "HTTP Requests Response Time",
    ]


@pytest.mark.asyncio
async def test_service_entry_node_has_no_metrics(service, mock_client, scope):
    await service.load(scope)
    detail = await service.open_details("se-mysql")
    assert detail.status is PanelStatus.NO_DATA
    mock_client.fetch_metrics.assert_not_awaited()


@pytest.mark.asyncio
async def test_replaced_selection_discards_first_response(service, mock_client, scope, metrics_payload):
    await service.load(scope)
    gate = asyncio.Event()

    async def slow_fetch(spec, window):
        await gate.wait()
        return parse_metrics_response(metrics_payload)

    mock_client.fetch_metrics = AsyncMock(side_effect=slow_fetch)

    first = asyncio.create_task(service.open_details("productpage"))
    await asyncio.sleep(0)
    second = asyncio.create_task(service.open_details("ratings"))
    await asyncio.sleep(0)
    gate.set()

    stale, current = await first, await second
    assert stale.status is PanelStatus.STALE
    assert current.status is PanelStatus.LOADED
    assert current.node.id == "ratings"
    assert service.selection.selected_id == "ratings"


@pytest.mark.asyncio
async def test_late_response_after_close_is_stale(service, mock_client, scope, graph, metrics_payload):
    await service.load(scope)
    gate = asyncio.Event()

    async def slow_fetch(spec, window):
        await gate.wait()
        return parse_metrics_response(metrics_payload)

    mock_client.fetch_metrics = AsyncMock(side_effect=slow_fetch)

    service.selection.tap(graph.node("productpage"))
    pending = asyncio.create_task(service.load_details())
    await asyncio.sleep(0)
    service.close_details()
    gate.set()

    detail = await pending
    assert detail.status is PanelStatus.STALE
    assert not service.selection.is_open


@pytest.mark.asyncio
async def test_metrics_timeout_is_fetch_failure(mock_client, renderer, settings, scope):
    async def hang(spec, window):
        await asyncio.sleep(10)

    mock_client.fetch_metrics = AsyncMock(side_effect=hang)
    service = TopologyService(
        mock_client,
        renderer,
        settings=settings.model_copy(update={"METRICS_FETCH_TIMEOUT_SECONDS": 0.05}),
    )
    await service.load(scope)

    detail = await service.open_details("svc-reviews")
    assert detail.status is PanelStatus.FAILED
    assert "timed out" in detail.error


@pytest.mark.asyncio
async def test_metrics_fetch_failure(service, mock_client, scope):
    await service.load(scope)
    mock_client.fetch_metrics = AsyncMock(side_effect=FetchFailure("down", status_code=502))
    detail = await service.open_details("e-svc-v1")
    assert detail.status is PanelStatus.FAILED
    assert detail.error == "down"


@pytest.mark.asyncio
async def test_scope_change_closes_drawer(service, scope):
    await service.load(scope)
    await service.open_details("productpage")
    assert service.selection.is_open

    await service.load(scope)
    assert service.selection.is_open

    other = GraphScope(namespaces=["other"], window=scope.window)
    await service.load(other)
    assert not service.selection.is_open


@pytest.mark.asyncio
async def test_refetch_without_selected_target_closes_drawer(service, mock_client, scope):
    await service.load(scope)
    await service.open_details("ratings")

    mock_client.fetch_graph = AsyncMock(
        return_value={"elements": {"nodes": [{"data": {"id": "productpage", "nodeType": "app"}}], "edges": []}}
    )
    await service.load(scope)
    assert not service.selection.is_open


@pytest.mark.asyncio
async def test_change_tab(service, scope):
    await service.load(scope)
    await service.open_details("e-pp-reviews")
    state = service.change_tab(DetailTab.HOSTS)
    assert state.active_tab is DetailTab.HOSTS


@pytest.mark.asyncio
async def test_resize_burst_relayouts_once(service, renderer, scope):
    await service.load(scope)
    with patch.object(renderer, "relayout", wraps=renderer.relayout) as relayout:
        for _ in range(5):
            task = service.resize()
        await task
    assert relayout.call_count == 1


@pytest.mark.asyncio
async def test_unknown_entity(service, scope):
    await service.load(scope)
    assert await service.open_details("nope") is None


@pytest.mark.asyncio
async def test_shutdown(service, renderer, mock_client):
    await service.shutdown()
    mock_client.close.assert_awaited_once()
    assert not renderer.mounted


@pytest.mark.asyncio
async def test_window_passed_to_metrics(service, mock_client):
    window = TimeWindow(time_start=0, time_end=600)
    await service.load(GraphScope(namespaces=["bookinfo"], window=window))
    await service.open_details("e-pp-reviews")
    _, passed_window = mock_client.fetch_metrics.await_args.args
    assert passed_window == window
