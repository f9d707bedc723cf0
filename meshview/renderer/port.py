"""Renderer port: the only surface through which the engine touches a graph library."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field

from meshview.topology.models import Edge, Node, NodeIcon, TopologyGraph
from meshview.utils.exceptions import RendererError

TapCallback = Callable[[Node | Edge], None]


class RenderTheme(BaseModel):
    """Explicit colours and fonts; renderers never read ambient theme state."""

    model_config = ConfigDict(frozen=True)

    background: str = "#ffffff"
    border: str = "#dddddd"
    text: str = "#151515"
    font_family: str = "Roboto, Helvetica, Arial, sans-serif"
    badge: str = "#1976d2"
    icon_background: str = "#673ab7"
    edge_default: str = "#dddddd"
    http: str = "#3e8635"
    http_degraded: str = "#f0ab00"
    http_failure: str = "#c9190b"
    grpc: str = "#009688"
    tcp: str = "#2196f3"


class NodeHint(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    node_type: str
    shape: str
    label: str
    label_full: str
    image: str
    badge: str
    icons: list[NodeIcon] = Field(default_factory=list)
    parent: str | None = None
    namespace: str = ""
    is_outside: bool = False


class EdgeHint(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    source: str
    target: str
    edge_type: str
    label: str
    color: str


class RenderElements(BaseModel):
    """A normalized snapshot plus per-element styling hints."""

    model_config = ConfigDict(frozen=True)

    graph: TopologyGraph
    nodes: list[NodeHint] = Field(default_factory=list)
    edges: list[EdgeHint] = Field(default_factory=list)


class Layout(BaseModel):
    model_config = ConfigDict(frozen=True)

    nodes: dict[str, tuple[float, float]] = Field(default_factory=dict)
    edges: dict[str, tuple[float, float]] = Field(default_factory=dict)


class GraphRenderer(ABC):
    """Lifecycle: ``mount`` -> (``set_elements`` -> ``relayout``)* -> ``unmount``.

    Implementations must call the tap callback exactly once per user tap, with
    the tapped element's normalized ``Node`` or ``Edge``.
    """

    @abstractmethod
    def mount(self, theme: RenderTheme) -> None: ...

    @abstractmethod
    def set_elements(self, elements: RenderElements) -> None: ...

    @abstractmethod
    def relayout(self) -> Layout: ...

    @abstractmethod
    def on_tap(self, callback: TapCallback) -> None: ...

    @abstractmethod
    def unmount(self) -> None: ...

    def render_image(self, format: str = "png") -> bytes:
        raise RendererError(f"{type(self).__name__} does not export images")
