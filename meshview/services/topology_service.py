"""Topology view orchestration: graph loading, selection, detail panels and relayout."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from meshview.config import Settings, get_settings
from meshview.renderer.port import GraphRenderer, Layout, RenderElements, RenderTheme
from meshview.renderer.styling import build_elements
from meshview.services.mesh_client import MeshClient
from meshview.topology.adapter import GraphDataAdapter
from meshview.topology.classifier import NodeClassifier
from meshview.topology.models import (
    EMPTY_GRAPH,
    Chart,
    DetailTab,
    Edge,
    EdgeHealth,
    GraphScope,
    GrpcRates,
    HttpRates,
    Node,
    NodeIcon,
    NodeTitle,
    NodeTraffic,
    Protocol,
    TopologyGraph,
)
from meshview.topology.queries import MetricsQueryBuilder, QuerySpec
from meshview.topology.selection import FetchTicket, SelectionController, SelectionState, tabs_for
from meshview.topology.series import MetricsResponse, edge_charts, node_charts
from meshview.topology.traffic import TrafficAggregator
from meshview.utils.debounce import LastWriteWinsDebouncer
from meshview.utils.exceptions import FetchFailure, InvalidTransitionError
from meshview.utils.logging import get_logger

logger = get_logger(__name__)


class PanelStatus(str, Enum):
    LOADED = "loaded"
    NO_DATA = "no_data"
    FAILED = "failed"
    STALE = "stale"


# ── Views ────────────────────────────────────────────────────────────


class GraphView(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: PanelStatus
    scope: GraphScope
    graph: TopologyGraph = EMPTY_GRAPH
    elements: RenderElements | None = None
    layout: Layout = Field(default_factory=Layout)
    error: str | None = None
    retryable: bool = False


class TrafficRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    protocol: Protocol
    total: float | None = None
    success_pct: float | None = None
    error_pct: float | None = None


class CodeRow(BaseModel):
    """One row of the flags or hosts table: share of responses for an HTTP code."""

    model_config = ConfigDict(frozen=True)

    code: str
    key: str
    pct: float


class NodeDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: PanelStatus
    node: Node
    title: NodeTitle
    traffic: NodeTraffic
    icons: list[NodeIcon] = Field(default_factory=list)
    charts: list[Chart] = Field(default_factory=list)
    error: str | None = None


class EdgeDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: PanelStatus
    edge: Edge
    source_title: NodeTitle
    target_title: NodeTitle
    tabs: list[DetailTab]
    active_tab: DetailTab
    health: EdgeHealth | None = None
    traffic: list[TrafficRow] = Field(default_factory=list)
    flags: list[CodeRow] = Field(default_factory=list)
    hosts: list[CodeRow] = Field(default_factory=list)
    charts: list[Chart] = Field(default_factory=list)
    error: str | None = None


Detail = NodeDetail | EdgeDetail


# ── Service ──────────────────────────────────────────────────────────


class TopologyService:
    """Owns the current snapshot and drives the renderer and the detail drawer.

    The renderer only ever receives complete snapshots. Metrics for the open
    detail panel are fetched in a single task that is cancelled whenever the
    selection target changes; a result that still arrives for an outdated
    target is discarded.
    """

    def __init__(
        self,
        client: MeshClient,
        renderer: GraphRenderer,
        selection: SelectionController | None = None,
        adapter: GraphDataAdapter | None = None,
        theme: RenderTheme | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client
        self._renderer = renderer
        self._selection = selection or SelectionController()
        self._adapter = adapter or GraphDataAdapter(
            degraded_threshold=self._settings.TRAFFIC_DEGRADED,
            failure_threshold=self._settings.TRAFFIC_FAILURE,
        )
        self._theme = theme or RenderTheme()

        self._graph: TopologyGraph = EMPTY_GRAPH
        self._scope: GraphScope | None = None
        self._elements: RenderElements | None = None
        self._layout = Layout()
        self._load_generation = 0
        self._detail: Detail | None = None
        self._metrics_task: asyncio.Task | None = None
        self._metrics_generation: int | None = None
        self._relayout = LastWriteWinsDebouncer(
            self._run_relayout, delay=self._settings.RELAYOUT_DEBOUNCE_SECONDS
        )

        self._renderer.mount(self._theme)
        self._renderer.on_tap(self._on_tap)
        self._unsubscribe = self._selection.subscribe(self._on_selection_changed)

    @property
    def graph(self) -> TopologyGraph:
        return self._graph

    @property
    def scope(self) -> GraphScope | None:
        return self._scope

    @property
    def selection(self) -> SelectionController:
        return self._selection

    @property
    def theme(self) -> RenderTheme:
        return self._theme

    @property
    def elements(self) -> RenderElements | None:
        return self._elements

    @property
    def layout(self) -> Layout:
        return self._layout

    @property
    def current_detail(self) -> Detail | None:
        """Last detail view loaded for the open selection, or None while it is loading."""
        return self._detail

    # ── Graph ────────────────────────────────────────────────────────

    async def load(self, scope: GraphScope) -> GraphView:
        """Fetch, normalize and publish the graph for ``scope``.

        Loads may overlap; only the most recently started one publishes. An
        older load that resolves later returns a ``stale`` view and leaves the
        current snapshot untouched.
        """
        self._load_generation += 1
        generation = self._load_generation
        try:
            raw = await self._client.fetch_graph(scope)
        except FetchFailure as exc:
            logger.warning("graph_fetch_failed", error=str(exc), status=exc.status_code)
            return GraphView(
                status=PanelStatus.FAILED,
                scope=scope,
                graph=self._graph,
                error=str(exc),
                retryable=exc.retryable,
            )

        if generation != self._load_generation:
            return self._superseded(scope, generation)

        graph = self._adapter.normalize(raw)
        self._graph = graph
        self._scope = scope
        self._selection.graph_refetched(scope.identity)
        selected = self._selection.selected_id
        if selected is not None and graph.node(selected) is None and graph.edge(selected) is None:
            logger.info("selection_target_gone", target_id=selected)
            self._selection.close()

        self._relayout.cancel()
        self._elements = build_elements(graph, self._theme)
        self._renderer.set_elements(self._elements)
        layout = await asyncio.to_thread(self._renderer.relayout)
        if generation != self._load_generation:
            return self._superseded(scope, generation)
        self._layout = layout

        status = PanelStatus.NO_DATA if graph.is_empty or not graph.nodes else PanelStatus.LOADED
        logger.info(
            "graph_loaded",
            status=status.value,
            nodes=len(graph.nodes),
            edges=len(graph.edges),
            dropped_edges=len(graph.dropped_edges),
        )
        return GraphView(
            status=status,
            scope=scope,
            graph=graph,
            elements=self._elements,
            layout=self._layout,
        )

    def _superseded(self, scope: GraphScope, generation: int) -> GraphView:
        logger.info(
            "graph_load_superseded",
            namespaces=scope.namespaces,
            generation=generation,
            current_generation=self._load_generation,
        )
        return GraphView(status=PanelStatus.STALE, scope=scope)

    def resize(self) -> asyncio.Task:
        """Schedule a debounced relayout; bursts collapse into one layout pass."""
        return self._relayout.trigger()

    async def _run_relayout(self) -> None:
        elements = self._elements
        if elements is None:
            return
        layout = await asyncio.to_thread(self._renderer.relayout)
        if self._elements is elements:
            self._layout = layout

    async def export_image(self, format: str = "png") -> bytes:
        return await asyncio.to_thread(self._renderer.render_image, format)

    # ── Selection ────────────────────────────────────────────────────

    def find(self, entity_id: str) -> Node | Edge | None:
        return self._graph.node(entity_id) or self._graph.edge(entity_id)

    async def open_details(self, entity_id: str) -> Detail | None:
        """Select ``entity_id`` as if it had been tapped and wait for its detail view."""
        entity = self.find(entity_id)
        if entity is None:
            return None
        self._on_tap(entity)
        task = self._metrics_task
        try:
            return await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
            return self._base_detail(entity, PanelStatus.STALE)

    async def wait_for_details(self) -> Detail | None:
        """Wait for the in-flight detail load started by a tap, then return ``current_detail``."""
        task = self._metrics_task
        if task is not None:
            await asyncio.wait({task})
        return self._detail

    def close_details(self) -> SelectionState:
        return self._selection.close()

    def change_tab(self, tab: DetailTab) -> SelectionState:
        return self._selection.change_tab(tab)

    async def load_details(self) -> Detail:
        """Build the detail view for the current selection, fetching its metrics."""
        ticket = self._selection.begin_fetch()
        entity = self.find(ticket.target_id)
        if entity is None or self._scope is None:
            raise InvalidTransitionError(f"{ticket.target_id} is not part of the current graph")

        builder = MetricsQueryBuilder(self._graph)
        if isinstance(entity, Node):
            specs = builder.node_queries(entity)
        else:
            spec = builder.build(entity)
            specs = [spec] if isinstance(spec, QuerySpec) else []

        try:
            responses = await self._fetch_all(specs)
        except FetchFailure as exc:
            if not self._selection.is_current(ticket):
                return self._discard(ticket, entity)
            logger.warning("metrics_fetch_failed", target_id=entity.id, error=str(exc))
            return self._base_detail(entity, PanelStatus.FAILED, error=str(exc))

        if not self._selection.is_current(ticket):
            return self._discard(ticket, entity)

        charts_for = node_charts if isinstance(entity, Node) else edge_charts
        charts = [chart for spec, resp in zip(specs, responses) for chart in charts_for(spec, resp)]
        status = PanelStatus.LOADED if any(chart.series for chart in charts) else PanelStatus.NO_DATA
        return self._base_detail(entity, status, charts=charts)

    async def _fetch_all(self, specs: list[QuerySpec]) -> list[MetricsResponse]:
        if not specs:
            return []
        window = self._scope.window
        try:
            return await asyncio.wait_for(
                asyncio.gather(*(self._client.fetch_metrics(spec, window) for spec in specs)),
                timeout=self._settings.METRICS_FETCH_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError as exc:
            raise FetchFailure(
                f"metrics fetch timed out after {self._settings.METRICS_FETCH_TIMEOUT_SECONDS}s"
            ) from exc

    def _discard(self, ticket: FetchTicket, entity: Node | Edge) -> Detail:
        logger.info(
            "metrics_fetch_stale",
            target_id=ticket.target_id,
            generation=ticket.generation,
            current_generation=self._selection.state.generation,
        )
        return self._base_detail(entity, PanelStatus.STALE)

    def _on_tap(self, entity: Node | Edge) -> None:
        # Raises before the selection changes when called outside the event loop.
        loop = asyncio.get_running_loop()
        self._selection.tap(entity)
        self._metrics_generation = self._selection.state.generation
        task = loop.create_task(self.load_details())
        task.add_done_callback(self._on_details_loaded)
        self._metrics_task = task

    def _on_details_loaded(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("detail_load_failed", error=str(exc), error_type=type(exc).__name__)
            return
        detail = task.result()
        if task is self._metrics_task and detail.status is not PanelStatus.STALE:
            self._detail = detail

    def _on_selection_changed(self, state: SelectionState) -> None:
        if state.generation == self._metrics_generation:
            if isinstance(self._detail, EdgeDetail) and state.active_tab is not None:
                self._detail = self._detail.model_copy(update={"active_tab": state.active_tab})
            return
        self._detail = None
        self._cancel_metrics()

    def _cancel_metrics(self) -> None:
        task = self._metrics_task
        if task is not None and not task.done():
            task.cancel()
            logger.debug("metrics_fetch_cancelled", generation=self._metrics_generation)
        self._metrics_task = None
        self._metrics_generation = None

    # ── Detail assembly ──────────────────────────────────────────────

    def _base_detail(
        self,
        entity: Node | Edge,
        status: PanelStatus,
        charts: list[Chart] | None = None,
        error: str | None = None,
    ) -> Detail:
        charts = charts or []
        if isinstance(entity, Node):
            return NodeDetail(
                status=status,
                node=entity,
                title=NodeClassifier.classify(entity),
                traffic=TrafficAggregator.summarize(entity, self._graph),
                icons=NodeClassifier.status_icons(entity),
                charts=charts,
                error=error,
            )

        nodes = self._graph.nodes_by_id()
        tabs = list(tabs_for(entity))
        state = self._selection.state
        active = state.active_tab if state.target_id == entity.id and state.active_tab else tabs[0]
        return EdgeDetail(
            status=status,
            edge=entity,
            source_title=NodeClassifier.classify_endpoint(entity.source, nodes),
            target_title=NodeClassifier.classify_endpoint(entity.target, nodes),
            tabs=tabs,
            active_tab=active,
            health=entity.health,
            traffic=_traffic_rows(entity),
            flags=_code_rows(entity, "flags"),
            hosts=_code_rows(entity, "hosts"),
            charts=charts,
            error=error,
        )

    async def shutdown(self) -> None:
        self._cancel_metrics()
        self._relayout.cancel()
        self._unsubscribe()
        self._renderer.unmount()
        await self._client.close()
        logger.info("topology_service_stopped")


def _traffic_rows(edge: Edge) -> list[TrafficRow]:
    rates = edge.rates
    if not isinstance(rates, (HttpRates, GrpcRates)):
        return []
    error_pct = rates.error_pct
    return [
        TrafficRow(
            protocol=edge.protocol,
            total=rates.total,
            success_pct=None if error_pct is None else 100 - error_pct,
            error_pct=error_pct,
        )
    ]


def _code_rows(edge: Edge, table: str) -> list[CodeRow]:
    if edge.traffic is None:
        return []
    rows: list[CodeRow] = []
    for code, detail in edge.traffic.responses_by_code.items():
        values: dict[str, Any] = getattr(detail, table)
        rows.extend(CodeRow(code=code, key=key, pct=pct) for key, pct in values.items())
    return rows
