"""Shared test fixtures."""

from __future__ import annotations

from typing import Any

import pytest


@pytest.fixture(autouse=True)
def _env_setup(monkeypatch):
    """Set required environment variables for tests."""
    monkeypatch.setenv("MESH_API_URL", "http://mesh.test")
    monkeypatch.setenv("MESH_API_TOKEN", "")
    monkeypatch.setenv("MESH_CLUSTER", "hub")
    monkeypatch.setenv("MESH_PLUGIN", "kiali")
    monkeypatch.setenv("HTTP_MAX_ATTEMPTS", "1")
    monkeypatch.setenv("RELAYOUT_DEBOUNCE_SECONDS", "0.01")
    monkeypatch.setenv("LOG_FORMAT", "console")


@pytest.fixture
def settings():
    from meshview.config import Settings

    return Settings(
        MESH_API_URL="http://mesh.test",
        HTTP_MAX_ATTEMPTS=1,
        METRICS_FETCH_TIMEOUT_SECONDS=1.0,
        RELAYOUT_DEBOUNCE_SECONDS=0.01,
    )


def _node(**data: Any) -> dict[str, Any]:
    data.setdefault("namespace", "bookinfo")
    data.setdefault("cluster", "hub")
    return {"data": data}


def _edge(**data: Any) -> dict[str, Any]:
    return {"data": data}


@pytest.fixture
def raw_graph() -> dict[str, Any]:
    """A bookinfo-like graph: a versioned box, a service, gRPC and TCP edges,
    a service entry and one edge pointing at a node that does not exist."""
    return {
        "elements": {
            "nodes": [
                _node(id="box-reviews", nodeType="box", app="reviews"),
                _node(
                    id="productpage",
                    nodeType="app",
                    app="productpage",
                    workload="productpage-v1",
                    version="v1",
                    isRoot=True,
                ),
                _node(id="svc-reviews", nodeType="service", app="reviews", service="reviews"),
                _node(
                    id="reviews-v1",
                    nodeType="app",
                    app="reviews",
                    workload="reviews-v1",
                    version="v1",
                    parent="box-reviews",
                ),
                _node(
                    id="reviews-v2",
                    nodeType="app",
                    app="reviews",
                    workload="reviews-v2",
                    version="v2",
                    parent="box-reviews",
                    hasCB=True,
                ),
                _node(
                    id="ratings",
                    nodeType="app",
                    app="ratings",
                    workload="ratings-v1",
                    version="v1",
                ),
                _node(
                    id="se-mysql",
                    nodeType="service",
                    service="mysql.example.com",
                    isServiceEntry={"hosts": ["mysql.example.com"], "location": "MESH_EXTERNAL"},
                ),
            ],
            "edges": [
                _edge(
                    id="e-pp-reviews",
                    source="productpage",
                    target="svc-reviews",
                    traffic={
                        "protocol": "http",
                        "rates": {"http": "10.00", "httpPercentErr": "2.0"},
                        "responses": {
                            "200": {
                                "flags": {"-": "98.0"},
                                "hosts": {"reviews.bookinfo.svc.cluster.local": "98.0"},
                            },
                            "503": {
                                "flags": {"UH": "2.0"},
                                "hosts": {"reviews.bookinfo.svc.cluster.local": "2.0"},
                            },
                        },
                    },
                ),
                _edge(
                    id="e-svc-v1",
                    source="svc-reviews",
                    target="reviews-v1",
                    traffic={"protocol": "http", "rates": {"http": "6.00"}},
                ),
                _edge(
                    id="e-svc-v2",
                    source="svc-reviews",
                    target="reviews-v2",
                    traffic={"protocol": "http", "rates": {"http": "4.00", "httpPercentErr": "10.0"}},
                ),
                _edge(
                    id="e-v2-ratings",
                    source="reviews-v2",
                    target="ratings",
                    traffic={"protocol": "grpc", "rates": {"grpc": "3.50", "grpcPercentErr": "0"}},
                ),
                _edge(
                    id="e-v1-mysql",
                    source="reviews-v1",
                    target="se-mysql",
                    traffic={"protocol": "tcp", "rates": {"tcp": "1024.5"}},
                ),
                _edge(id="e-dangling", source="productpage", target="ghost"),
            ],
        }
    }


@pytest.fixture
def graph(raw_graph):
    from meshview.topology.adapter import GraphDataAdapter

    return GraphDataAdapter().normalize(raw_graph)


@pytest.fixture
def window():
    from meshview.topology.models import TimeWindow

    return TimeWindow(time_start=1_700_000_000, time_end=1_700_000_900)


@pytest.fixture
def scope(window):
    from meshview.topology.models import GraphScope

    return GraphScope(namespaces=["bookinfo"], window=window)


@pytest.fixture
def metrics_payload() -> dict[str, Any]:
    """A metrics response with request and TCP families for two peers."""
    return {
        "request_count": [
            {
                "name": "request_count",
                "labels": {"request_protocol": "http", "source_workload": "productpage-v1"},
                "datapoints": [[1_700_000_000, "1.5"], [1_700_000_018, "NaN"]],
            },
            {
                "name": "request_count",
                "labels": {"request_protocol": "grpc", "source_workload": "other-v1"},
                "datapoints": [[1_700_000_000, "0.5"]],
            },
        ],
        "request_error_count": [
            {
                "name": "request_error_count",
                "labels": {"request_protocol": "http", "source_workload": "productpage-v1"},
                "datapoints": [[1_700_000_000, "0.1"]],
            },
        ],
        "request_duration_millis": [
            {
                "name": "request_duration_millis",
                "stat": "quantile 0.95",
                "labels": {"source_workload": "productpage-v1"},
                "datapoints": [[1_700_000_000, "12.5"]],
            },
        ],
        "tcp_sent": [
            {"name": "tcp_sent", "labels": {}, "datapoints": [[1_700_000_000, "100"]]},
        ],
        "tcp_received": None,
    }
