"""Topology API endpoints: graph snapshot, node and edge details, image export."""

from __future__ import annotations

import time
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from meshview.api.dependencies import get_topology_service
from meshview.api.v1.schemas.topology import (
    EdgeDetailResponse,
    GraphResponse,
    NodeDetailResponse,
    SelectionResponse,
)
from meshview.renderer.styling import LAYOUT_HINT, build_stylesheet, to_cytoscape
from meshview.services.topology_service import EdgeDetail, NodeDetail, PanelStatus, TopologyService
from meshview.topology.models import DetailTab, Edge, GraphScope, Node, TimeWindow
from meshview.utils.exceptions import FetchFailure
from meshview.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/topology", tags=["topology"])

DEFAULT_DURATION_SECONDS = 900


@router.get("/graph", response_model=GraphResponse)
async def get_graph(
    namespace: list[str] | None = Query(default=None),
    application: str | None = None,
    time_start: int | None = None,
    time_end: int | None = None,
    service: TopologyService = Depends(get_topology_service),
) -> GraphResponse:
    """Fetch the topology graph for the given namespaces and time window."""
    end = time_end if time_end is not None else int(time.time())
    start = time_start if time_start is not None else end - DEFAULT_DURATION_SECONDS
    if start >= end:
        raise HTTPException(status_code=422, detail="time_start must be before time_end")

    scope = GraphScope(
        namespaces=namespace or [],
        application=application or None,
        window=TimeWindow(time_start=start, time_end=end),
    )
    view = await service.load(scope)
    if view.status is PanelStatus.FAILED:
        raise FetchFailure(view.error or "graph fetch failed", retryable=view.retryable)

    elements = to_cytoscape(view.elements) if view.elements else {"nodes": [], "edges": []}
    return GraphResponse(
        status=view.status,
        namespaces=scope.namespaces,
        application=scope.application,
        nodes=view.graph.nodes,
        edges=view.graph.edges,
        elements=elements,
        stylesheet=build_stylesheet(service.theme),
        layout=LAYOUT_HINT,
        positions=view.layout.nodes,
        dropped_edges=view.graph.dropped_edges,
        node_count=len(view.graph.nodes),
        edge_count=len(view.graph.edges),
    )


@router.get("/nodes/{node_id:path}", response_model=NodeDetailResponse)
async def get_node(
    node_id: str,
    service: TopologyService = Depends(get_topology_service),
) -> NodeDetailResponse:
    """Open the detail panel for a node: title, traffic summary and metrics charts."""
    if not isinstance(service.find(node_id), Node):
        raise HTTPException(status_code=404, detail=f"Node {node_id} not found")

    detail = await service.open_details(node_id)
    if not isinstance(detail, NodeDetail):
        raise HTTPException(status_code=404, detail=f"Node {node_id} not found")
    _raise_on_failure(detail)

    return NodeDetailResponse(
        status=detail.status,
        node=detail.node,
        title=detail.title,
        traffic=detail.traffic,
        icons=detail.icons,
        charts=[chart for chart in detail.charts if chart.series],
    )


@router.get("/edges/{edge_id:path}", response_model=EdgeDetailResponse)
async def get_edge(
    edge_id: str,
    service: TopologyService = Depends(get_topology_service),
) -> EdgeDetailResponse:
    """Open the detail panel for an edge: endpoints, rates, response tables and charts."""
    if not isinstance(service.find(edge_id), Edge):
        raise HTTPException(status_code=404, detail=f"Edge {edge_id} not found")

    detail = await service.open_details(edge_id)
    if not isinstance(detail, EdgeDetail):
        raise HTTPException(status_code=404, detail=f"Edge {edge_id} not found")
    _raise_on_failure(detail)

    return EdgeDetailResponse(
        status=detail.status,
        edge=detail.edge,
        source_title=detail.source_title,
        target_title=detail.target_title,
        tabs=detail.tabs,
        default_tab=detail.tabs[0],
        health=detail.health,
        traffic=detail.traffic,
        flags=detail.flags,
        hosts=detail.hosts,
        charts=[chart for chart in detail.charts if chart.series],
    )


@router.put("/selection/tab", response_model=SelectionResponse)
async def change_tab(
    tab: DetailTab,
    service: TopologyService = Depends(get_topology_service),
) -> SelectionResponse:
    """Switch the open detail panel to another tab."""
    service.change_tab(tab)
    return _selection_response(service)


@router.delete("/selection", response_model=SelectionResponse)
async def close_selection(
    service: TopologyService = Depends(get_topology_service),
) -> SelectionResponse:
    """Close the detail panel."""
    service.close_details()
    return _selection_response(service)


@router.get("/export")
async def export_graph(
    format: Literal["png", "jpeg"] = "png",
    service: TopologyService = Depends(get_topology_service),
) -> Response:
    """Render the current graph to an image."""
    content = await service.export_image(format)
    logger.info("topology_exported", format=format, size=len(content))
    return Response(
        content=content,
        media_type=f"image/{format}",
        headers={"Content-Disposition": f"attachment; filename=topology.{format}"},
    )


def _raise_on_failure(detail: NodeDetail | EdgeDetail) -> None:
    if detail.status is PanelStatus.FAILED:
        raise FetchFailure(detail.error or "metrics fetch failed")


def _selection_response(service: TopologyService) -> SelectionResponse:
    state = service.selection.state
    return SelectionResponse(
        target_id=state.target_id,
        kind=state.kind.value,
        drawer_open=state.drawer_open,
        active_tab=state.active_tab,
        tabs=list(service.selection.available_tabs),
    )
