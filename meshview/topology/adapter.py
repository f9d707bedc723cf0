"""Normalize raw mesh graph payloads into typed topology snapshots."""

from __future__ import annotations

import math
from typing import Any

from meshview.topology.models import (
    EMPTY_GRAPH,
    Edge,
    EdgeHealth,
    EdgeTraffic,
    GrpcRates,
    HttpRates,
    Node,
    NodeKind,
    Protocol,
    ResponseDetail,
    ServiceEntryInfo,
    TcpRates,
    TopologyGraph,
)
from meshview.utils.logging import get_logger

logger = get_logger(__name__)

_RAW_NODE_KINDS: dict[str, NodeKind] = {
    "app": NodeKind.APPLICATION,
    "service": NodeKind.SERVICE,
    "serviceentry": NodeKind.SERVICE_ENTRY,
    "box": NodeKind.BOX,
    "workload": NodeKind.WORKLOAD,
}


def parse_rate(value: Any, **context: Any) -> float | None:
    """Parse a rate or percentage reported as a decimal string.

    Absent values give None silently; malformed, NaN or negative values give
    None and log a data-quality warning.
    """
    if value is None or value == "":
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        logger.warning("unparsable_numeric_field", value=str(value), **context)
        return None
    if math.isnan(parsed) or parsed < 0:
        logger.warning("unparsable_numeric_field", value=str(value), **context)
        return None
    return parsed


def classify_health(error_pct: float | None, degraded: float, failure: float) -> EdgeHealth | None:
    if error_pct is None:
        return None
    if error_pct >= failure:
        return EdgeHealth.FAILURE
    if error_pct >= degraded:
        return EdgeHealth.DEGRADED
    return EdgeHealth.HEALTHY


class GraphDataAdapter:
    """Maps ``{elements: {nodes: [{data}], edges: [{data}]}}`` payloads to a ``TopologyGraph``.

    Only whole snapshots are produced; there is no incremental patching of a
    previously normalized graph.
    """

    def __init__(self, degraded_threshold: float = 1.0, failure_threshold: float = 5.0) -> None:
        self._degraded = degraded_threshold
        self._failure = failure_threshold

    def normalize(self, raw_payload: dict[str, Any] | None) -> TopologyGraph:
        elements = (raw_payload or {}).get("elements")
        if not elements or elements.get("nodes") is None or elements.get("edges") is None:
            logger.info("graph_payload_empty")
            return EMPTY_GRAPH

        raw_nodes = [w.get("data") for w in elements["nodes"] if w]
        raw_edges = [w.get("data") for w in elements["edges"] if w]

        nodes = self._normalize_nodes(raw_nodes)
        node_ids = {node.id for node in nodes}

        edges: list[Edge] = []
        dropped: list[str] = []
        for data in raw_edges:
            if not data:
                logger.warning("edge_without_data_skipped")
                continue
            source, target = data.get("source"), data.get("target")
            edge_id = str(data.get("id") or f"{source}->{target}")
            if source not in node_ids or target not in node_ids:
                logger.warning(
                    "edge_dropped_unresolved_endpoint",
                    edge_id=edge_id,
                    source=source,
                    target=target,
                )
                dropped.append(edge_id)
                continue
            edges.append(self._edge_from_raw(edge_id, data))

        logger.debug("graph_normalized", nodes=len(nodes), edges=len(edges), dropped=len(dropped))
        return TopologyGraph(nodes=nodes, edges=edges, dropped_edges=dropped)

    # ── Nodes ────────────────────────────────────────────────────────

    def _normalize_nodes(self, raw_nodes: list[dict[str, Any] | None]) -> list[Node]:
        seen: set[str] = set()
        valid: list[dict[str, Any]] = []
        for data in raw_nodes:
            if not data or not data.get("id"):
                logger.warning("node_without_id_skipped")
                continue
            node_id = str(data["id"])
            if node_id in seen:
                logger.warning("duplicate_node_skipped", node_id=node_id)
                continue
            seen.add(node_id)
            valid.append(data)

        nodes = []
        for data in valid:
            parent = data.get("parent") or None
            if parent is not None and parent not in seen:
                logger.warning("node_parent_missing", node_id=data["id"], parent=parent)
                parent = None
            nodes.append(self._node_from_raw(data, parent))
        return nodes

    def _node_from_raw(self, data: dict[str, Any], parent: str | None) -> Node:
        kind = _RAW_NODE_KINDS.get(str(data.get("nodeType", "")).lower(), NodeKind.UNKNOWN)
        service_entry = None
        if data.get("isServiceEntry"):
            se = data["isServiceEntry"]
            service_entry = ServiceEntryInfo(
                hosts=list(se.get("hosts") or []),
                location=se.get("location") or "",
                namespace=se.get("namespace") or "",
            )
            if kind is NodeKind.SERVICE:
                kind = NodeKind.SERVICE_ENTRY

        has_vs = data.get("hasVS")
        node_label = data.get("nodeLabel") or _default_label(kind, data, parent)

        return Node(
            id=str(data["id"]),
            kind=kind,
            namespace=data.get("namespace") or "",
            cluster=data.get("cluster") or "",
            parent_id=parent,
            display_name=_display_name(kind, data, node_label),
            app=data.get("app"),
            service=data.get("service"),
            workload=data.get("workload"),
            version=data.get("version"),
            node_label=node_label,
            service_entry=service_entry,
            is_root=bool(data.get("isRoot")),
            is_gateway=bool(data.get("isGateway")),
            has_circuit_breaker=bool(data.get("hasCB")),
            has_missing_sidecar=bool(data.get("hasMissingSC")),
            has_request_timeout=bool(data.get("hasRequestTimeout")),
            virtual_service_hostnames=(
                list(has_vs.get("hostnames") or []) if isinstance(has_vs, dict) else None
            ),
            has_request_routing=bool(data.get("hasRequestRouting")),
            is_outside_mesh=bool(data.get("isOutside")),
            is_dead=bool(data.get("isDead")),
        )

    # ── Edges ────────────────────────────────────────────────────────

    def _edge_from_raw(self, edge_id: str, data: dict[str, Any]) -> Edge:
        traffic = self._traffic_from_raw(edge_id, data.get("traffic"))
        health = None
        if traffic is not None and isinstance(traffic.rates, HttpRates):
            health = classify_health(traffic.rates.error_pct, self._degraded, self._failure)

        return Edge(
            id=edge_id,
            source=str(data["source"]),
            target=str(data["target"]),
            traffic=traffic,
            health=health,
            response_time=parse_rate(data.get("responseTime"), edge_id=edge_id, field="responseTime"),
            is_mtls=parse_rate(data.get("isMTLS"), edge_id=edge_id, field="isMTLS"),
        )

    def _traffic_from_raw(self, edge_id: str, raw: dict[str, Any] | None) -> EdgeTraffic | None:
        if not raw:
            return None
        try:
            protocol = Protocol(str(raw.get("protocol", "")).lower())
        except ValueError:
            logger.warning("edge_protocol_unknown", edge_id=edge_id, protocol=raw.get("protocol"))
            return None

        rates_raw = raw.get("rates")
        rates = _rates_from_raw(protocol, rates_raw, edge_id) if rates_raw is not None else None

        responses: dict[str, ResponseDetail] = {}
        for code, detail in (raw.get("responses") or {}).items():
            detail = detail or {}
            responses[str(code)] = ResponseDetail(
                flags=_percentages(detail.get("flags"), edge_id=edge_id, code=code),
                hosts=_percentages(detail.get("hosts"), edge_id=edge_id, code=code),
            )

        return EdgeTraffic(protocol=protocol, rates=rates, responses_by_code=responses)


def _rates_from_raw(
    protocol: Protocol, raw: dict[str, Any], edge_id: str
) -> HttpRates | GrpcRates | TcpRates:
    def rate(key: str) -> float | None:
        return parse_rate(raw.get(key), edge_id=edge_id, field=key)

    match protocol:
        case Protocol.HTTP:
            return HttpRates(
                total=rate("http"),
                error_pct=rate("httpPercentErr"),
                inbound=rate("httpIn"),
                outbound=rate("httpOut"),
                in_4xx=rate("httpIn4xx"),
                in_5xx=rate("httpIn5xx"),
                no_response=rate("httpInNoResponse"),
            )
        case Protocol.GRPC:
            return GrpcRates(
                total=rate("grpc"),
                error_pct=rate("grpcPercentErr"),
                inbound=rate("grpcIn"),
                outbound=rate("grpcOut"),
            )
        case Protocol.TCP:
            return TcpRates(byte_rate=rate("tcp"))


def _percentages(raw: dict[str, Any] | None, **context: Any) -> dict[str, float]:
    result: dict[str, float] = {}
    for key, value in (raw or {}).items():
        parsed = parse_rate(value, key=key, **context)
        if parsed is not None:
            result[str(key)] = parsed
    return result


def _default_label(kind: NodeKind, data: dict[str, Any], parent: str | None) -> str:
    if kind in (NodeKind.SERVICE, NodeKind.SERVICE_ENTRY):
        return data.get("service") or ""
    if parent is not None:
        return data.get("version") or ""
    return data.get("app") or ""


def _display_name(kind: NodeKind, data: dict[str, Any], node_label: str) -> str:
    if kind is NodeKind.SERVICE_ENTRY:
        return node_label or data.get("service") or ""
    if kind is NodeKind.SERVICE:
        return data.get("service") or ""
    return data.get("app") or ""
