"""Styling hints and a cytoscape-compatible stylesheet derived from a ``RenderTheme``."""

from __future__ import annotations

from typing import Any, assert_never

from meshview.renderer.port import EdgeHint, NodeHint, RenderElements, RenderTheme
from meshview.topology.classifier import NodeClassifier
from meshview.topology.models import (
    Edge,
    EdgeHealth,
    GrpcRates,
    HttpRates,
    Node,
    NodeKind,
    Protocol,
    TcpRates,
    TopologyGraph,
)

# Layout hint for browser renderers: left-to-right layered graph.
LAYOUT_HINT: dict[str, Any] = {
    "name": "dagre",
    "rankDir": "LR",
    "fit": True,
    "nodeDimensionsIncludeLabels": True,
}

NODE_IMAGES = {
    "key": "/img/plugins/kiali/key.png",
    "topology": "/img/plugins/kiali/topology.png",
    "empty": "/img/plugins/kiali/empty.png",
}


def node_type(kind: NodeKind) -> str:
    match kind:
        case NodeKind.APPLICATION:
            return "app"
        case NodeKind.SERVICE:
            return "service"
        case NodeKind.SERVICE_ENTRY:
            return "serviceentry"
        case NodeKind.BOX:
            return "box"
        case NodeKind.WORKLOAD:
            return "workload"
        case NodeKind.UNKNOWN:
            return "unknown"
        case _:
            assert_never(kind)


def node_shape(kind: NodeKind) -> str:
    match kind:
        case NodeKind.APPLICATION | NodeKind.BOX:
            return "roundrectangle"
        case NodeKind.SERVICE:
            return "round-triangle"
        case NodeKind.SERVICE_ENTRY:
            return "round-tag"
        case NodeKind.WORKLOAD | NodeKind.UNKNOWN:
            return "ellipse"
        case _:
            assert_never(kind)


def node_image(node: Node) -> str:
    if node.kind is NodeKind.BOX:
        return NODE_IMAGES["empty"]
    if node.app == "unknown" or node.service == "PassthroughCluster":
        return NODE_IMAGES["key"]
    if node.is_outside_mesh:
        return NODE_IMAGES["topology"]
    return NODE_IMAGES["empty"]


def edge_type(edge: Edge) -> str:
    match edge.protocol:
        case None:
            return ""
        case Protocol.HTTP:
            return f"http{edge.health.value}" if edge.health else "http"
        case Protocol.GRPC:
            return "grpc"
        case Protocol.TCP:
            return "tcp" if edge.rates is not None else ""
        case _:
            assert_never(edge.protocol)


def _fmt(value: float) -> str:
    return f"{value:.2f}"


def edge_label(edge: Edge) -> str:
    rates = edge.rates
    if isinstance(rates, (HttpRates, GrpcRates)):
        parts = []
        if rates.total is not None:
            parts.append(f"{_fmt(rates.total)}req/s")
        if rates.error_pct is not None:
            parts.append(f"{_fmt(rates.error_pct)}%")
        return "\n".join(parts)
    if isinstance(rates, TcpRates) and rates.byte_rate is not None:
        return _fmt(rates.byte_rate)
    return ""


def edge_color(kind: str, theme: RenderTheme) -> str:
    return {
        "http": theme.http,
        "httphealthy": theme.http,
        "httpdegraded": theme.http_degraded,
        "httpfailure": theme.http_failure,
        "grpc": theme.grpc,
        "tcp": theme.tcp,
    }.get(kind, theme.edge_default)


def build_elements(graph: TopologyGraph, theme: RenderTheme) -> RenderElements:
    nodes = []
    for node in graph.nodes:
        label = node.node_label or ""
        namespace = f"({node.namespace})" if node.is_outside_mesh else node.namespace
        nodes.append(
            NodeHint(
                id=node.id,
                node_type=node_type(node.kind),
                shape=node_shape(node.kind),
                label=label,
                label_full=f"{label}\n{namespace}",
                image=node_image(node),
                badge=NodeClassifier.classify(node).badge.value,
                icons=NodeClassifier.status_icons(node),
                parent=node.parent_id,
                namespace=node.namespace,
                is_outside=node.is_outside_mesh,
            )
        )

    edges = []
    for edge in graph.edges:
        kind = edge_type(edge)
        edges.append(
            EdgeHint(
                id=edge.id,
                source=edge.source,
                target=edge.target,
                edge_type=kind,
                label=edge_label(edge),
                color=edge_color(kind, theme),
            )
        )
    return RenderElements(graph=graph, nodes=nodes, edges=edges)


def to_cytoscape(elements: RenderElements) -> dict[str, list[dict[str, Any]]]:
    """Elements in the ``{nodes: [{data}], edges: [{data}]}`` shape browser renderers expect."""
    nodes = []
    for hint in elements.nodes:
        data: dict[str, Any] = {
            "id": hint.id,
            "nodeType": hint.node_type,
            "nodeLabel": hint.label,
            "nodeLabelFull": hint.label_full,
            "nodeImage": hint.image,
            "badge": hint.badge,
            "icons": [icon.value for icon in hint.icons],
            "namespace": hint.namespace,
            "isOutside": hint.is_outside,
        }
        if hint.parent:
            data["parent"] = hint.parent
        nodes.append({"data": data})

    edges = [
        {
            "data": {
                "id": hint.id,
                "source": hint.source,
                "target": hint.target,
                "edgeType": hint.edge_type,
                "edgeLabel": hint.label,
            }
        }
        for hint in elements.edges
    ]
    return {"nodes": nodes, "edges": edges}


def build_stylesheet(theme: RenderTheme) -> list[dict[str, Any]]:
    sheet: list[dict[str, Any]] = [
        {
            "selector": "node",
            "style": {
                "background-color": theme.background,
                "background-fit": "cover",
                "background-image": "data(nodeImage)",
                "border-color": theme.border,
                "border-width": 1,
                "color": theme.text,
                "font-family": theme.font_family,
                "label": "data(nodeLabelFull)",
                "text-halign": "center",
                "text-valign": "bottom",
                "text-wrap": "wrap",
            },
        },
    ]
    for kind in NodeKind:
        sheet.append(
            {
                "selector": f'node[nodeType="{node_type(kind)}"]',
                "style": {"shape": node_shape(kind)},
            }
        )

    sheet.append(
        {
            "selector": "edge",
            "style": {
                "color": theme.text,
                "curve-style": "bezier",
                "font-family": theme.font_family,
                "font-size": 10,
                "label": "data(edgeLabel)",
                "line-color": theme.edge_default,
                "target-arrow-color": theme.edge_default,
                "target-arrow-shape": "triangle",
                "text-wrap": "wrap",
                "width": 3,
            },
        }
    )
    kinds = ["tcp", "grpc", "http", *(f"http{health.value}" for health in EdgeHealth)]
    for kind in kinds:
        color = edge_color(kind, theme)
        sheet.append(
            {
                "selector": f'edge[edgeType="{kind}"]',
                "style": {"line-color": color, "target-arrow-color": color},
            }
        )
    return sheet
