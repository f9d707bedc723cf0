"""Convert mesh metrics responses into chart-ready series."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from meshview.topology.models import (
    Chart,
    Direction,
    EntityKind,
    MetricPoint,
    MetricsSeries,
    Protocol,
    RawMetric,
)
from meshview.topology.queries import LabelFilter, QuerySpec
from meshview.utils.logging import get_logger

logger = get_logger(__name__)

MetricsResponse = dict[str, list[RawMetric]]
LabelResolver = Callable[[RawMetric], str]

_METRIC_LABELS = {
    "tcp_received": "TCP Received",
    "tcp_sent": "TCP Send",
    "request_count": "Request Count",
    "request_error_count": "Request Error Count",
}

_PROTOCOL_TITLES = {Protocol.HTTP: "HTTP", Protocol.GRPC: "gRPC"}


def metric_label(metric: RawMetric) -> str:
    if metric.name == "request_duration_millis":
        return metric.stat or "Duration"
    return _METRIC_LABELS.get(metric.name, "")


def parse_value(value: Any) -> float | None:
    """Datapoint value as a float; ``"NaN"`` and anything unparsable become None."""
    if value is None:
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(parsed):
        return None
    return parsed


def parse_metrics_response(raw: dict[str, Any] | None) -> MetricsResponse:
    """Validate a raw ``{family: [metric, ...]}`` map. A null response has no series."""
    if not raw:
        return {}
    response: MetricsResponse = {}
    for family, metrics in raw.items():
        response[family] = [RawMetric.model_validate(m) for m in (metrics or [])]
    return response


class MetricsSeriesConverter:
    """Metric arrays to ``MetricsSeries``; order is preserved, nothing is resampled."""

    @staticmethod
    def convert(
        raw_metrics: Iterable[RawMetric | dict[str, Any]],
        label_resolver: LabelResolver = metric_label,
    ) -> list[MetricsSeries]:
        series: list[MetricsSeries] = []
        for raw in raw_metrics:
            metric = raw if isinstance(raw, RawMetric) else RawMetric.model_validate(raw)
            name = label_resolver(metric)
            series.append(
                MetricsSeries(
                    name=name,
                    points=[
                        MetricPoint(
                            timestamp=datetime.fromtimestamp(ts, tz=timezone.utc),
                            value=parse_value(value),
                        )
                        for ts, value in metric.datapoints
                    ],
                )
            )
        return series


# ── Chart assembly ───────────────────────────────────────────────────


def _select(metrics: list[RawMetric] | None, label_filter: LabelFilter | None) -> list[RawMetric]:
    if not metrics:
        return []
    if label_filter is None:
        return list(metrics)
    return [m for m in metrics if m.labels.get(label_filter.key) == label_filter.value]


def _by_protocol(metrics: list[RawMetric] | None, protocol: Protocol) -> list[RawMetric]:
    return _select(metrics, LabelFilter(key="request_protocol", value=protocol.value))


def edge_charts(spec: QuerySpec, response: MetricsResponse) -> list[Chart]:
    """Charts for an edge detail view, filtered to the edge's peer."""
    convert = MetricsSeriesConverter.convert
    label_filter = spec.label_filter

    if spec.request_protocol is None:
        series = convert(_select(response.get("tcp_received"), label_filter))
        series += convert(_select(response.get("tcp_sent"), label_filter))
        return [Chart(title="TCP Traffic", unit="B/s", series=series)]

    name = _PROTOCOL_TITLES[spec.request_protocol]
    counts = convert(_select(response.get("request_count"), label_filter))
    counts += convert(_select(response.get("request_error_count"), label_filter))
    durations = convert(_select(response.get("request_duration_millis"), label_filter))
    return [
        Chart(title=f"{name} Requests per Second", unit="req/s", series=counts),
        Chart(title=f"{name} Requests Response Time", unit="ms", series=durations),
    ]


def _direction_title(spec: QuerySpec) -> str:
    if spec.entity_kind is EntityKind.SERVICES:
        return ""
    return "Inbound " if spec.direction is Direction.INBOUND else "Outbound "


def node_charts(spec: QuerySpec, response: MetricsResponse) -> list[Chart]:
    """TCP, HTTP and gRPC charts for one node metrics panel."""
    convert = MetricsSeriesConverter.convert
    direction = _direction_title(spec)

    tcp = convert(response.get("tcp_received") or []) + convert(response.get("tcp_sent") or [])
    charts = [Chart(title=f"TCP {direction}Traffic", unit="B/s", series=tcp)]

    for protocol in (Protocol.HTTP, Protocol.GRPC):
        series = convert(_by_protocol(response.get("request_count"), protocol))
        series += convert(_by_protocol(response.get("request_error_count"), protocol))
        charts.append(
            Chart(
                title=f"{_PROTOCOL_TITLES[protocol]} {direction}Requests per Second",
                unit="req/s",
                series=series,
            )
        )
    return charts
