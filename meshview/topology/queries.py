"""Build mesh-metrics queries for a selected node or edge.

The routing rules here decide which entity the metrics endpoint is asked
about and from whose point of view (reporter) the figures are taken:

* services are queried as ``services``; on an edge whose target is a service
  the source side reports, otherwise the destination reports.
* applications and workloads are queried as ``workloads``, boxes as ``apps``;
  outbound traffic is reported by the source, inbound by the destination.
* service entries have no workload of their own, so an edge into a service
  entry queries the *source* workload's outbound traffic as reported by the
  destination.
* TCP queries always request ``tcp_sent`` and ``tcp_received`` and are
  reported by the source, except on an edge into a service entry.

Anything that cannot be resolved to a namespace and entity name yields the
``NO_QUERY`` sentinel instead of a malformed request.
"""

from __future__ import annotations

from enum import Enum
from typing import Final, assert_never
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field

from meshview.topology.models import (
    Direction,
    Edge,
    EntityKind,
    Node,
    NodeKind,
    Protocol,
    Reporter,
    TimeWindow,
    TopologyGraph,
)

QUANTILES: Final = ("0.5", "0.95", "0.99")

REQUEST_FAMILIES: Final = ("request_count", "request_error_count")
EDGE_REQUEST_FAMILIES: Final = ("request_count", "request_duration_millis", "request_error_count")
TCP_FAMILIES: Final = ("tcp_sent", "tcp_received")


class ProtocolFilter(str, Enum):
    REQUESTS = "requests"
    TCP = "tcp"
    ALL = "all"


class LabelFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    value: str


class QuerySpec(BaseModel):
    """Everything needed to fetch one metrics response for one entity."""

    model_config = ConfigDict(frozen=True)

    entity_kind: EntityKind
    namespace: str
    entity_name: str
    by_labels: list[str] = Field(default_factory=list)
    direction: Direction
    reporter: Reporter
    filters: list[str] = Field(default_factory=list)
    request_protocol: Protocol | None = None
    label_filter: LabelFilter | None = None

    def to_path(self, window: TimeWindow) -> str:
        """Mesh-metrics API path for this query over ``window``."""
        step = step_seconds(window)
        params: list[tuple[str, str | int]] = [
            ("queryTime", window.time_end),
            ("duration", window.duration),
            ("step", step),
            ("rateInterval", f"{step}s"),
        ]
        params += [("quantiles[]", q) for q in QUANTILES]
        params += [("filters[]", f) for f in self.filters]
        params += [("byLabels[]", label) for label in self.by_labels]
        params += [("direction", self.direction.value), ("reporter", self.reporter.value)]
        if self.request_protocol is not None:
            params.append(("requestProtocol", self.request_protocol.value))

        return (
            f"/kiali/api/namespaces/{self.namespace}/{self.entity_kind.value}/"
            f"{self.entity_name}/metrics?{urlencode(params)}"
        )


class _NoQuery:
    _instance: _NoQuery | None = None

    def __new__(cls) -> _NoQuery:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_QUERY"

    def __bool__(self) -> bool:
        return False


NO_QUERY: Final = _NoQuery()


def step_seconds(window: TimeWindow) -> int:
    return max(1, window.duration // 50)


def _resolvable(namespace: str | None, name: str | None) -> bool:
    return bool(namespace) and namespace != "unknown" and bool(name)


def _families(protocol_filter: ProtocolFilter) -> list[str]:
    match protocol_filter:
        case ProtocolFilter.REQUESTS:
            return list(REQUEST_FAMILIES)
        case ProtocolFilter.TCP:
            return list(TCP_FAMILIES)
        case ProtocolFilter.ALL:
            return [*REQUEST_FAMILIES, *TCP_FAMILIES]
        case _:
            assert_never(protocol_filter)


class MetricsQueryBuilder:
    """Pure query construction over one graph snapshot."""

    def __init__(self, graph: TopologyGraph) -> None:
        self._nodes = graph.nodes_by_id()

    def build(
        self,
        target: Node | Edge,
        direction: Direction = Direction.INBOUND,
        protocol_filter: ProtocolFilter = ProtocolFilter.ALL,
    ) -> QuerySpec | _NoQuery:
        if isinstance(target, Edge):
            return self._build_edge(target)
        return self._build_node(target, direction, protocol_filter)

    def node_queries(self, node: Node) -> list[QuerySpec]:
        """The set of metrics panels shown for a node's detail view."""
        match node.kind:
            case NodeKind.APPLICATION | NodeKind.WORKLOAD:
                plan = [
                    (Direction.OUTBOUND, ProtocolFilter.ALL),
                    (Direction.INBOUND, ProtocolFilter.REQUESTS),
                    (Direction.INBOUND, ProtocolFilter.TCP),
                ]
            case NodeKind.SERVICE:
                plan = [
                    (Direction.INBOUND, ProtocolFilter.REQUESTS),
                    (Direction.INBOUND, ProtocolFilter.TCP),
                ]
            case NodeKind.BOX:
                plan = [
                    (Direction.OUTBOUND, ProtocolFilter.ALL),
                    (Direction.INBOUND, ProtocolFilter.ALL),
                ]
            case NodeKind.SERVICE_ENTRY | NodeKind.UNKNOWN:
                plan = []
            case _:
                assert_never(node.kind)

        specs = [self._build_node(node, d, f) for d, f in plan]
        return [spec for spec in specs if isinstance(spec, QuerySpec)]

    # ── Nodes ────────────────────────────────────────────────────────

    def _build_node(
        self, node: Node, direction: Direction, protocol_filter: ProtocolFilter
    ) -> QuerySpec | _NoQuery:
        reporter = Reporter.SOURCE if direction is Direction.OUTBOUND else Reporter.DESTINATION
        if protocol_filter is ProtocolFilter.TCP:
            reporter = Reporter.SOURCE

        match node.kind:
            case NodeKind.APPLICATION | NodeKind.WORKLOAD:
                entity_kind, name = EntityKind.WORKLOADS, node.workload
            case NodeKind.BOX:
                entity_kind, name = EntityKind.APPS, node.app
            case NodeKind.SERVICE:
                entity_kind, name = EntityKind.SERVICES, node.service
                direction = Direction.INBOUND
                if protocol_filter is not ProtocolFilter.TCP:
                    reporter = Reporter.DESTINATION
            case NodeKind.SERVICE_ENTRY | NodeKind.UNKNOWN:
                return NO_QUERY
            case _:
                assert_never(node.kind)

        if not _resolvable(node.namespace, name):
            return NO_QUERY

        filters = _families(protocol_filter)
        by_labels = ["request_protocol"] if protocol_filter is not ProtocolFilter.TCP else []
        return QuerySpec(
            entity_kind=entity_kind,
            namespace=node.namespace,
            entity_name=name,
            by_labels=by_labels,
            direction=direction,
            reporter=reporter,
            filters=filters,
        )

    # ── Edges ────────────────────────────────────────────────────────

    def _build_edge(self, edge: Edge) -> QuerySpec | _NoQuery:
        source = self._nodes.get(edge.source)
        target = self._nodes.get(edge.target)
        protocol = edge.protocol
        if source is None or target is None or protocol is None:
            return NO_QUERY

        if target.namespace == "unknown":
            return NO_QUERY

        namespace = target.namespace
        direction = Direction.INBOUND
        match target.kind:
            case NodeKind.SERVICE:
                entity_kind, name = EntityKind.SERVICES, target.service
                by_labels = ["source_workload"]
                reporter = Reporter.SOURCE
            case NodeKind.SERVICE_ENTRY:
                entity_kind, name = EntityKind.WORKLOADS, source.workload
                namespace = source.namespace
                by_labels = ["destination_service_name"]
                direction, reporter = Direction.OUTBOUND, Reporter.DESTINATION
            case NodeKind.APPLICATION | NodeKind.WORKLOAD | NodeKind.BOX | NodeKind.UNKNOWN:
                entity_kind, name = EntityKind.WORKLOADS, target.workload
                by_labels = ["destination_service_name"]
                reporter = Reporter.DESTINATION
            case _:
                assert_never(target.kind)

        if not _resolvable(namespace, name):
            return NO_QUERY

        match protocol:
            case Protocol.TCP:
                filters, request_protocol = list(TCP_FAMILIES), None
                if target.kind is not NodeKind.SERVICE_ENTRY:
                    reporter = Reporter.SOURCE
            case Protocol.HTTP | Protocol.GRPC:
                filters, request_protocol = list(EDGE_REQUEST_FAMILIES), protocol
            case _:
                assert_never(protocol)

        return QuerySpec(
            entity_kind=entity_kind,
            namespace=namespace,
            entity_name=name,
            by_labels=by_labels,
            direction=direction,
            reporter=reporter,
            filters=filters,
            request_protocol=request_protocol,
            label_filter=_edge_label_filter(source, target),
        )


def _edge_label_filter(source: Node, target: Node) -> LabelFilter:
    if source.kind is NodeKind.SERVICE:
        return LabelFilter(key="destination_service_name", value=source.service or "")
    if target.kind is NodeKind.SERVICE_ENTRY:
        hosts = target.service_entry.hosts if target.service_entry else []
        return LabelFilter(key="destination_service_name", value=hosts[0] if hosts else "")
    return LabelFilter(key="source_workload", value=source.workload or "")
