"""Selection / detail-drawer state machine for the topology view.

States::

    Idle --tap--> DetailOpen(target, tab) --close / scope change--> Idle
                  DetailOpen --tap other--> DetailOpen(other, default tab)
                  DetailOpen --change_tab--> DetailOpen(same target, tab)

A tap always opens the drawer, so the intermediate "selected" state is never
published. At most one drawer is open; a new tap replaces the current target
without passing through Idle.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Hashable

from pydantic import BaseModel, ConfigDict

from meshview.topology.models import DetailTab, Edge, Node, Protocol
from meshview.utils.exceptions import InvalidTransitionError
from meshview.utils.logging import get_logger

logger = get_logger(__name__)

Listener = Callable[["SelectionState"], None]


class SelectionKind(str, Enum):
    NONE = "none"
    NODE = "node"
    EDGE = "edge"


class SelectionState(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: SelectionKind = SelectionKind.NONE
    target_id: str | None = None
    active_tab: DetailTab | None = None
    drawer_open: bool = False
    # Bumped whenever the target changes; stale fetch tickets compare against it.
    generation: int = 0


class FetchTicket(BaseModel):
    model_config = ConfigDict(frozen=True)

    generation: int
    target_id: str


def tabs_for(entity: Node | Edge) -> tuple[DetailTab, ...]:
    if isinstance(entity, Node):
        return (DetailTab.TRAFFIC,)
    if entity.protocol in (Protocol.HTTP, Protocol.GRPC):
        return (DetailTab.TRAFFIC, DetailTab.FLAGS, DetailTab.HOSTS)
    return (DetailTab.FLAGS, DetailTab.HOSTS)


def default_tab(entity: Node | Edge) -> DetailTab:
    return tabs_for(entity)[0]


class SelectionController:
    """Sole owner of the ``SelectionState``; other components only read it."""

    def __init__(self) -> None:
        self._state = SelectionState()
        self._tabs: tuple[DetailTab, ...] = ()
        self._scope_identity: Hashable | None = None
        self._listeners: list[Listener] = []

    # ── Accessors ────────────────────────────────────────────────────

    @property
    def state(self) -> SelectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state.drawer_open

    @property
    def selected_id(self) -> str | None:
        return self._state.target_id

    @property
    def available_tabs(self) -> tuple[DetailTab, ...]:
        return self._tabs

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    # ── Events ───────────────────────────────────────────────────────

    def tap(self, entity: Node | Edge) -> SelectionState:
        kind = SelectionKind.EDGE if isinstance(entity, Edge) else SelectionKind.NODE
        self._tabs = tabs_for(entity)
        return self._publish(
            SelectionState(
                kind=kind,
                target_id=entity.id,
                active_tab=self._tabs[0],
                drawer_open=True,
                generation=self._state.generation + 1,
            )
        )

    def change_tab(self, tab: DetailTab) -> SelectionState:
        if not self.is_open:
            raise InvalidTransitionError("cannot change tab while no detail panel is open")
        if tab not in self._tabs:
            raise InvalidTransitionError(f"tab {tab.value!r} is not available for {self._state.target_id}")
        if tab is self._state.active_tab:
            return self._state
        return self._publish(self._state.model_copy(update={"active_tab": tab}))

    def close(self) -> SelectionState:
        if not self.is_open:
            return self._state
        self._tabs = ()
        return self._publish(SelectionState(generation=self._state.generation + 1))

    def graph_refetched(self, identity: Hashable) -> SelectionState:
        """Record the identity of a freshly loaded graph; a different one resets the selection."""
        changed = self._scope_identity is not None and identity != self._scope_identity
        self._scope_identity = identity
        if changed and self.is_open:
            logger.info("selection_reset_scope_changed", target_id=self._state.target_id)
            return self.close()
        return self._state

    # ── Stale-response tracking ──────────────────────────────────────

    def begin_fetch(self) -> FetchTicket:
        if not self.is_open or self._state.target_id is None:
            raise InvalidTransitionError("no selection to fetch metrics for")
        return FetchTicket(generation=self._state.generation, target_id=self._state.target_id)

    def is_current(self, ticket: FetchTicket) -> bool:
        return (
            self.is_open
            and ticket.generation == self._state.generation
            and ticket.target_id == self._state.target_id
        )

    def _publish(self, state: SelectionState) -> SelectionState:
        self._state = state
        logger.debug(
            "selection_changed",
            kind=state.kind.value,
            target_id=state.target_id,
            tab=state.active_tab.value if state.active_tab else None,
        )
        for listener in list(self._listeners):
            listener(state)
        return state
