"""Per-node traffic summaries built from incident edge rates."""

from __future__ import annotations

from typing import Iterable

from meshview.topology.classifier import NodeClassifier
from meshview.topology.models import (
    DirectionalTraffic,
    Edge,
    Node,
    NodeTraffic,
    Protocol,
    TopologyGraph,
    TrafficSummary,
)


class TrafficAggregator:
    """Sums edge rates per protocol.

    The aggregate error percentage is the plain sum of the contributing edges'
    error percentages. It is neither weighted nor clamped, so a node with many
    failing inbound edges can report more than 100.
    """

    @staticmethod
    def aggregate(edges: Iterable[Edge], protocol: Protocol) -> TrafficSummary:
        edge_count = 0
        total_rate = 0.0
        error_pct = 0.0

        for edge in edges:
            if edge.protocol is not protocol or edge.rates is None:
                continue
            edge_count += 1
            total_rate += edge.rates.total or 0.0
            error_pct += edge.rates.error_pct or 0.0

        return TrafficSummary(
            edge_count=edge_count,
            total_rate=total_rate,
            aggregate_error_pct=error_pct,
        )

    @classmethod
    def summarize(cls, node: Node, graph: TopologyGraph) -> NodeTraffic:
        members = NodeClassifier.get_member_edges(node, graph.nodes, graph.edges)
        return NodeTraffic(
            inbound=cls._directional(members.incoming),
            outbound=cls._directional(members.outgoing),
        )

    @classmethod
    def _directional(cls, edges: list[Edge]) -> DirectionalTraffic:
        return DirectionalTraffic(
            http=cls.aggregate(edges, Protocol.HTTP),
            grpc=cls.aggregate(edges, Protocol.GRPC),
        )
