"""Typed model for mesh topology snapshots, traffic summaries and metrics."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ── Enumerations ─────────────────────────────────────────────────────


class NodeKind(str, Enum):
    APPLICATION = "application"
    SERVICE = "service"
    SERVICE_ENTRY = "service_entry"
    BOX = "box"
    WORKLOAD = "workload"
    UNKNOWN = "unknown"


class Protocol(str, Enum):
    HTTP = "http"
    GRPC = "grpc"
    TCP = "tcp"


class EdgeHealth(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILURE = "failure"


class Direction(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class Reporter(str, Enum):
    SOURCE = "source"
    DESTINATION = "destination"


class EntityKind(str, Enum):
    WORKLOADS = "workloads"
    SERVICES = "services"
    APPS = "apps"


class Badge(str, Enum):
    APPLICATION = "A"
    SERVICE = "S"
    SERVICE_ENTRY = "SE"
    UNKNOWN = "U"


class DetailTab(str, Enum):
    TRAFFIC = "traffic"
    FLAGS = "flags"
    HOSTS = "hosts"


class NodeIcon(str, Enum):
    GATEWAY = "gateway"
    ROOT = "root"
    MISSING_SIDECAR = "missing_sidecar"
    CIRCUIT_BREAKER = "circuit_breaker"
    REQUEST_TIMEOUT = "request_timeout"
    VIRTUAL_SERVICE = "virtual_service"
    REQUEST_ROUTING = "request_routing"


# ── Nodes ────────────────────────────────────────────────────────────


class ServiceEntryInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    hosts: list[str] = Field(default_factory=list)
    location: str = ""
    namespace: str = ""


class Node(BaseModel):
    """A mesh entity inside one graph snapshot."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: NodeKind
    namespace: str = ""
    cluster: str = ""
    parent_id: str | None = None
    display_name: str = ""

    app: str | None = None
    service: str | None = None
    workload: str | None = None
    version: str | None = None
    node_label: str | None = None
    service_entry: ServiceEntryInfo | None = None

    is_root: bool = False
    is_gateway: bool = False
    has_circuit_breaker: bool = False
    has_missing_sidecar: bool = False
    has_request_timeout: bool = False
    virtual_service_hostnames: list[str] | None = None
    has_request_routing: bool = False
    is_outside_mesh: bool = False
    is_dead: bool = False

    @property
    def has_virtual_service(self) -> bool:
        return bool(self.virtual_service_hostnames)


class NodeTitle(BaseModel):
    model_config = ConfigDict(frozen=True)

    badge: Badge
    title: str


UNKNOWN_TITLE = NodeTitle(badge=Badge.UNKNOWN, title="Unknown")


# ── Edges ────────────────────────────────────────────────────────────


class HttpRates(BaseModel):
    model_config = ConfigDict(frozen=True)

    protocol: Literal["http"] = "http"
    total: float | None = None
    error_pct: float | None = None
    inbound: float | None = None
    outbound: float | None = None
    in_4xx: float | None = None
    in_5xx: float | None = None
    no_response: float | None = None


class GrpcRates(BaseModel):
    model_config = ConfigDict(frozen=True)

    protocol: Literal["grpc"] = "grpc"
    total: float | None = None
    error_pct: float | None = None
    inbound: float | None = None
    outbound: float | None = None


class TcpRates(BaseModel):
    """TCP edges carry a byte rate only; it never enters request aggregation."""

    model_config = ConfigDict(frozen=True)

    protocol: Literal["tcp"] = "tcp"
    byte_rate: float | None = None

    @property
    def total(self) -> None:
        return None

    @property
    def error_pct(self) -> None:
        return None


ProtocolRates = Annotated[
    Union[HttpRates, GrpcRates, TcpRates], Field(discriminator="protocol")
]


class ResponseDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    flags: dict[str, float] = Field(default_factory=dict)
    hosts: dict[str, float] = Field(default_factory=dict)


class EdgeTraffic(BaseModel):
    model_config = ConfigDict(frozen=True)

    protocol: Protocol
    rates: ProtocolRates | None = None
    responses_by_code: dict[str, ResponseDetail] = Field(default_factory=dict)


class Edge(BaseModel):
    """A directed traffic edge between two nodes of the same snapshot."""

    model_config = ConfigDict(frozen=True)

    id: str
    source: str
    target: str
    traffic: EdgeTraffic | None = None
    health: EdgeHealth | None = None
    response_time: float | None = None
    is_mtls: float | None = None

    @property
    def protocol(self) -> Protocol | None:
        return self.traffic.protocol if self.traffic else None

    @property
    def rates(self) -> HttpRates | GrpcRates | TcpRates | None:
        return self.traffic.rates if self.traffic else None


class MemberEdges(BaseModel):
    model_config = ConfigDict(frozen=True)

    incoming: list[Edge] = Field(default_factory=list)
    outgoing: list[Edge] = Field(default_factory=list)


# ── Snapshot ─────────────────────────────────────────────────────────


class TopologyGraph(BaseModel):
    """A full normalized snapshot. Read-only once published."""

    model_config = ConfigDict(frozen=True)

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    dropped_edges: list[str] = Field(default_factory=list)
    is_empty: bool = False

    def node(self, node_id: str) -> Node | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def edge(self, edge_id: str) -> Edge | None:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def nodes_by_id(self) -> dict[str, Node]:
        return {node.id: node for node in self.nodes}


EMPTY_GRAPH = TopologyGraph(is_empty=True)


# ── Traffic ──────────────────────────────────────────────────────────


class TrafficSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    edge_count: int = 0
    total_rate: float = 0.0
    aggregate_error_pct: float = 0.0

    @property
    def success_pct(self) -> float:
        return 100 - self.aggregate_error_pct


class DirectionalTraffic(BaseModel):
    model_config = ConfigDict(frozen=True)

    http: TrafficSummary = Field(default_factory=TrafficSummary)
    grpc: TrafficSummary = Field(default_factory=TrafficSummary)


class NodeTraffic(BaseModel):
    model_config = ConfigDict(frozen=True)

    inbound: DirectionalTraffic = Field(default_factory=DirectionalTraffic)
    outbound: DirectionalTraffic = Field(default_factory=DirectionalTraffic)

    def has_protocol(self, protocol: Protocol) -> bool:
        return (
            getattr(self.inbound, protocol.value).edge_count > 0
            or getattr(self.outbound, protocol.value).edge_count > 0
        )


# ── Metrics ──────────────────────────────────────────────────────────


class RawMetric(BaseModel):
    """One metric entry as returned by the mesh metrics endpoint."""

    datapoints: list[tuple[float, str | float | None]] = Field(default_factory=list)
    labels: dict[str, str] = Field(default_factory=dict)
    name: str = ""
    stat: str | None = None


class MetricPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    value: float | None


class MetricsSeries(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    points: list[MetricPoint] = Field(default_factory=list)


class Chart(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    unit: str
    series: list[MetricsSeries] = Field(default_factory=list)


# ── Scope ────────────────────────────────────────────────────────────


class TimeWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    time_start: int
    time_end: int

    @property
    def duration(self) -> int:
        return self.time_end - self.time_start


class GraphScope(BaseModel):
    model_config = ConfigDict(frozen=True)

    namespaces: list[str] = Field(default_factory=list)
    application: str | None = None
    window: TimeWindow

    @property
    def identity(self) -> tuple:
        return (
            tuple(self.namespaces),
            self.application,
            self.window.time_start,
            self.window.time_end,
        )
