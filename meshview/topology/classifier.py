"""Node badges, titles, status icons and box membership."""

from __future__ import annotations

from typing import Iterable, assert_never

from meshview.topology.models import (
    UNKNOWN_TITLE,
    Badge,
    Edge,
    MemberEdges,
    Node,
    NodeIcon,
    NodeKind,
    NodeTitle,
)


class NodeClassifier:
    """Derives how a node is titled and grouped in the detail panel."""

    @staticmethod
    def classify(node: Node) -> NodeTitle:
        match node.kind:
            case NodeKind.SERVICE_ENTRY:
                return NodeTitle(badge=Badge.SERVICE_ENTRY, title=node.node_label or "")
            case NodeKind.SERVICE:
                return NodeTitle(badge=Badge.SERVICE, title=node.service or "")
            case NodeKind.APPLICATION | NodeKind.WORKLOAD | NodeKind.BOX | NodeKind.UNKNOWN:
                return NodeTitle(badge=Badge.APPLICATION, title=node.app or "")
            case _:
                assert_never(node.kind)

    @classmethod
    def classify_endpoint(cls, node_id: str, nodes_by_id: dict[str, Node]) -> NodeTitle:
        """Title for an edge endpoint; ``U``/``Unknown`` when it is not in the set."""
        node = nodes_by_id.get(node_id)
        if node is None:
            return UNKNOWN_TITLE
        return cls.classify(node)

    @staticmethod
    def get_member_edges(node: Node, nodes: Iterable[Node], edges: Iterable[Edge]) -> MemberEdges:
        """Edges that belong to ``node`` in the detail panel.

        A box never appears as an edge endpoint itself, so its edges are the
        ones touching any of its children. Other nodes get their own edges.
        """
        edges = list(edges)
        if node.kind is NodeKind.BOX:
            children = {child.id for child in nodes if child.parent_id == node.id}
            return MemberEdges(
                incoming=[e for e in edges if e.target in children],
                outgoing=[e for e in edges if e.source in children],
            )
        return MemberEdges(
            incoming=[e for e in edges if e.target == node.id],
            outgoing=[e for e in edges if e.source == node.id],
        )

    @staticmethod
    def status_icons(node: Node) -> list[NodeIcon]:
        if node.kind is NodeKind.BOX:
            return []

        icons: list[NodeIcon] = []
        if node.is_gateway:
            icons.append(NodeIcon.GATEWAY)
        if node.is_root:
            icons.append(NodeIcon.ROOT)
        if node.has_missing_sidecar:
            icons.append(NodeIcon.MISSING_SIDECAR)
        if node.has_circuit_breaker:
            icons.append(NodeIcon.CIRCUIT_BREAKER)
        if node.has_request_timeout:
            icons.append(NodeIcon.REQUEST_TIMEOUT)
        if node.has_virtual_service:
            icons.append(NodeIcon.VIRTUAL_SERVICE)
        elif node.has_request_routing:
            icons.append(NodeIcon.REQUEST_ROUTING)
        return icons
