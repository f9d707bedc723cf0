"""Unit tests for per-node traffic aggregation."""

from __future__ import annotations

import pytest

from meshview.topology.adapter import GraphDataAdapter
from meshview.topology.models import Edge, EdgeTraffic, HttpRates, Protocol, TcpRates
from meshview.topology.traffic import TrafficAggregator


def _http_edge(edge_id: str, total: float | None, error_pct: float | None) -> Edge:
    return Edge(
        id=edge_id,
        source="a",
        target="b",
        traffic=EdgeTraffic(protocol=Protocol.HTTP, rates=HttpRates(total=total, error_pct=error_pct)),
    )


def test_empty_aggregate():
    summary = TrafficAggregator.aggregate([], Protocol.HTTP)
    assert summary.edge_count == 0
    assert summary.total_rate == 0.0
    assert summary.aggregate_error_pct == 0.0
    assert summary.success_pct == 100


def test_error_sum_is_not_clamped():
    edges = [_http_edge("e1", 1.0, 60.0), _http_edge("e2", 1.0, 70.0)]
    summary = TrafficAggregator.aggregate(edges, Protocol.HTTP)
    assert summary.aggregate_error_pct == pytest.approx(130.0)
    assert summary.success_pct == pytest.approx(-30.0)


def test_missing_values_contribute_zero():
    edges = [_http_edge("e1", None, None), _http_edge("e2", 2.5, None)]
    summary = TrafficAggregator.aggregate(edges, Protocol.HTTP)
    assert summary.edge_count == 2
    assert summary.total_rate == pytest.approx(2.5)
    assert summary.aggregate_error_pct == 0.0


def test_other_protocols_are_ignored():
    tcp = Edge(
        id="t",
        source="a",
        target="b",
        traffic=EdgeTraffic(protocol=Protocol.TCP, rates=TcpRates(byte_rate=500.0)),
    )
    summary = TrafficAggregator.aggregate([tcp, _http_edge("h", 4.0, 1.0)], Protocol.GRPC)
    assert summary.edge_count == 0
    assert summary.total_rate == 0.0


def test_service_to_app_end_to_end():
    raw = {
        "elements": {
            "nodes": [
                {"data": {"id": "svcA", "nodeType": "service", "service": "svcA", "namespace": "ns"}},
                {"data": {"id": "appB", "nodeType": "app", "app": "appB", "namespace": "ns"}},
            ],
            "edges": [
                {
                    "data": {
                        "id": "e1",
                        "source": "svcA",
                        "target": "appB",
                        "traffic": {"protocol": "http", "rates": {"http": "10.00", "httpPercentErr": "5"}},
                    }
                }
            ],
        }
    }
    graph = GraphDataAdapter().normalize(raw)

    inbound = TrafficAggregator.summarize(graph.node("appB"), graph).inbound.http
    assert inbound.edge_count == 1
    assert inbound.total_rate == pytest.approx(10.0)
    assert inbound.aggregate_error_pct == pytest.approx(5.0)
    assert inbound.success_pct == pytest.approx(95.0)

    outbound = TrafficAggregator.summarize(graph.node("svcA"), graph).outbound.http
    assert outbound.total_rate == pytest.approx(10.0)


def test_box_summary_uses_children_edges(graph):
    traffic = TrafficAggregator.summarize(graph.node("box-reviews"), graph)
    assert traffic.inbound.http.edge_count == 2
    assert traffic.inbound.http.total_rate == pytest.approx(10.0)
    assert traffic.inbound.http.aggregate_error_pct == pytest.approx(10.0)
    assert traffic.outbound.grpc.edge_count == 1
    assert traffic.outbound.grpc.total_rate == pytest.approx(3.5)
    assert traffic.outbound.http.edge_count == 0
    assert traffic.has_protocol(Protocol.GRPC)


def test_app_to_service_inbound_aggregate():
    raw = {
        "elements": {
            "nodes": [
                {"data": {"id": "svcA", "nodeType": "service", "service": "svcA", "namespace": "ns"}},
                {"data": {"id": "appB", "nodeType": "app", "app": "appB", "namespace": "ns"}},
            ],
            "edges": [
                {
                    "data": {
                        "id": "e1",
                        "source": "appB",
                        "target": "svcA",
                        "traffic": {"protocol": "http", "rates": {"http": "3.50", "httpPercentErr": "10"}},
                    }
                }
            ],
        }
    }
    graph = GraphDataAdapter().normalize(raw)
    edge = graph.edge("e1")
    inbound_edges = [e for e in graph.edges if e.target == "svcA"]

    summary = TrafficAggregator.aggregate(inbound_edges, Protocol.HTTP)
    assert summary.edge_count == 1
    assert summary.total_rate == pytest.approx(edge.rates.total)
    assert summary.aggregate_error_pct == pytest.approx(10.0)
    assert TrafficAggregator.summarize(graph.node("svcA"), graph).inbound.http == summary
