"""Topology engine: normalization, classification, aggregation, queries and selection."""

from __future__ import annotations

from meshview.topology.adapter import GraphDataAdapter
from meshview.topology.classifier import NodeClassifier
from meshview.topology.queries import NO_QUERY, MetricsQueryBuilder, ProtocolFilter, QuerySpec
from meshview.topology.selection import SelectionController, SelectionState
from meshview.topology.series import MetricsSeriesConverter
from meshview.topology.traffic import TrafficAggregator

__all__ = [
    "GraphDataAdapter",
    "MetricsQueryBuilder",
    "MetricsSeriesConverter",
    "NO_QUERY",
    "NodeClassifier",
    "ProtocolFilter",
    "QuerySpec",
    "SelectionController",
    "SelectionState",
    "TrafficAggregator",
]
