"""Response models for the topology API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from meshview.services.topology_service import CodeRow, PanelStatus, TrafficRow
from meshview.topology.models import (
    Chart,
    DetailTab,
    Edge,
    EdgeHealth,
    Node,
    NodeIcon,
    NodeTitle,
    NodeTraffic,
)


class GraphResponse(BaseModel):
    status: PanelStatus
    namespaces: list[str] = Field(default_factory=list)
    application: str | None = None
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    elements: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    stylesheet: list[dict[str, Any]] = Field(default_factory=list)
    layout: dict[str, Any] = Field(default_factory=dict)
    positions: dict[str, tuple[float, float]] = Field(default_factory=dict)
    dropped_edges: list[str] = Field(default_factory=list)
    node_count: int = 0
    edge_count: int = 0


class NodeDetailResponse(BaseModel):
    status: PanelStatus
    node: Node
    title: NodeTitle
    traffic: NodeTraffic
    icons: list[NodeIcon] = Field(default_factory=list)
    charts: list[Chart] = Field(default_factory=list)
    error: str | None = None


class EdgeDetailResponse(BaseModel):
    status: PanelStatus
    edge: Edge
    source_title: NodeTitle
    target_title: NodeTitle
    tabs: list[DetailTab]
    default_tab: DetailTab
    health: EdgeHealth | None = None
    traffic: list[TrafficRow] = Field(default_factory=list)
    flags: list[CodeRow] = Field(default_factory=list)
    hosts: list[CodeRow] = Field(default_factory=list)
    charts: list[Chart] = Field(default_factory=list)
    error: str | None = None


class SelectionResponse(BaseModel):
    target_id: str | None = None
    kind: str
    drawer_open: bool
    active_tab: DetailTab | None = None
    tabs: list[DetailTab] = Field(default_factory=list)
