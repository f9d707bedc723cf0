"""Headless graph renderer: layered layout with NetworkX, image export with Matplotlib."""

from __future__ import annotations

import io
from typing import Literal

import networkx as nx

from meshview.renderer.port import (
    GraphRenderer,
    Layout,
    RenderElements,
    RenderTheme,
    TapCallback,
)
from meshview.topology.models import NodeKind
from meshview.utils.exceptions import RendererError
from meshview.utils.logging import get_logger

logger = get_logger(__name__)


class NetworkXRenderer(GraphRenderer):
    """Lays the graph out left-to-right by traffic depth.

    Nodes are ranked by the topological generation of their strongly connected
    component, so cycles share a rank. Box nodes are not ranked; they are
    placed at the centroid of their children.
    """

    def __init__(self) -> None:
        self._theme: RenderTheme | None = None
        self._elements: RenderElements | None = None
        self._callback: TapCallback | None = None
        self._layout = Layout()

    @property
    def mounted(self) -> bool:
        return self._theme is not None

    @property
    def elements(self) -> RenderElements | None:
        return self._elements

    @property
    def layout(self) -> Layout:
        return self._layout

    def mount(self, theme: RenderTheme) -> None:
        self._theme = theme
        logger.debug("renderer_mounted")

    def set_elements(self, elements: RenderElements) -> None:
        self._require_mounted()
        self._elements = elements
        self._layout = Layout()

    def on_tap(self, callback: TapCallback) -> None:
        self._callback = callback

    def unmount(self) -> None:
        self._theme = None
        self._elements = None
        self._callback = None
        self._layout = Layout()
        logger.debug("renderer_unmounted")

    def tap(self, element_id: str) -> bool:
        """Simulate a user tap on a node or edge. Returns False for empty space."""
        self._require_mounted()
        if self._elements is None or self._callback is None:
            return False
        graph = self._elements.graph
        entity = graph.node(element_id) or graph.edge(element_id)
        if entity is None:
            return False
        self._callback(entity)
        return True

    def relayout(self) -> Layout:
        self._require_mounted()
        elements = self._elements
        if elements is None or not elements.graph.nodes:
            self._layout = Layout()
            return self._layout

        graph = elements.graph
        boxes = {n.id for n in graph.nodes if n.kind is NodeKind.BOX}
        children: dict[str, list[str]] = {}
        for node in graph.nodes:
            if node.parent_id in boxes:
                children.setdefault(node.parent_id, []).append(node.id)

        G = nx.DiGraph()
        for node in graph.nodes:
            if node.id not in boxes or not children.get(node.id):
                G.add_node(node.id)
        for edge in graph.edges:
            G.add_edge(edge.source, edge.target)

        condensed = nx.condensation(G)
        for rank, generation in enumerate(nx.topological_generations(condensed)):
            for component in generation:
                for member in condensed.nodes[component]["members"]:
                    G.nodes[member]["layer"] = rank

        pos = nx.multipartite_layout(G, subset_key="layer", align="vertical")
        positions = {node_id: (float(x), float(y)) for node_id, (x, y) in pos.items()}

        for box_id, members in children.items():
            xs = [positions[m][0] for m in members]
            ys = [positions[m][1] for m in members]
            positions[box_id] = (sum(xs) / len(xs), sum(ys) / len(ys))

        edge_positions = {
            edge.id: (
                (positions[edge.source][0] + positions[edge.target][0]) / 2,
                (positions[edge.source][1] + positions[edge.target][1]) / 2,
            )
            for edge in graph.edges
        }

        layout = Layout(nodes=positions, edges=edge_positions)
        # Elements may have been replaced while this ran in a worker thread.
        if self._elements is elements:
            self._layout = layout
        logger.debug("graph_laid_out", nodes=len(positions), edges=len(edge_positions))
        return layout

    def render_image(
        self,
        format: Literal["png", "jpeg", "jpg"] = "png",
        dpi: int = 100,
        figsize: tuple[float, float] = (12, 8),
    ) -> bytes:
        """Render the current elements to image bytes.

        Args:
            format: Output format: "png", "jpeg", or "jpg".
            dpi: Dots per inch for the image.
            figsize: Figure size (width, height) in inches.
        """
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt

        theme = self._require_mounted()
        if not self._layout.nodes:
            self.relayout()

        fig, ax = plt.subplots(figsize=figsize if self._layout.nodes else (4, 2), dpi=dpi)
        fig.patch.set_facecolor(theme.background)
        ax.set_facecolor(theme.background)

        if not self._layout.nodes or self._elements is None:
            ax.text(0.5, 0.5, "No topology graph", ha="center", va="center", fontsize=12, color=theme.text)
        else:
            self._draw(ax, theme)

        ax.axis("off")
        plt.tight_layout(pad=0.5)

        buf = io.BytesIO()
        save_fmt = "jpg" if format in ("jpeg", "jpg") else "png"
        plt.savefig(buf, format=save_fmt, bbox_inches="tight", facecolor=theme.background, dpi=dpi)
        plt.close(fig)
        buf.seek(0)
        return buf.read()

    def _draw(self, ax, theme: RenderTheme) -> None:
        elements = self._elements
        pos = self._layout.nodes
        boxes = {hint.id for hint in elements.nodes if hint.node_type == "box"}

        G = nx.DiGraph()
        G.add_nodes_from(hint.id for hint in elements.nodes if hint.id not in boxes)
        for hint in elements.edges:
            G.add_edge(hint.source, hint.target, color=hint.color, label=hint.label)

        nx.draw_networkx_nodes(
            G,
            pos,
            node_color=theme.background,
            edgecolors=theme.border,
            node_size=800,
            ax=ax,
        )
        nx.draw_networkx_edges(
            G,
            pos,
            edge_color=[G.edges[e]["color"] for e in G.edges],
            arrows=True,
            arrowsize=12,
            width=2,
            ax=ax,
        )
        labels = {}
        for hint in elements.nodes:
            if hint.id in boxes:
                continue
            label = hint.label or hint.id
            if len(label) > 20:
                label = label[:17] + "..."
            labels[hint.id] = f"[{hint.badge}] {label}"
        nx.draw_networkx_labels(G, pos, labels=labels, font_size=8, font_color=theme.text, ax=ax)
        nx.draw_networkx_edge_labels(
            G,
            pos,
            edge_labels={e: G.edges[e]["label"] for e in G.edges if G.edges[e]["label"]},
            font_size=6,
            ax=ax,
        )

    def _require_mounted(self) -> RenderTheme:
        if self._theme is None:
            raise RendererError("renderer is not mounted")
        return self._theme
