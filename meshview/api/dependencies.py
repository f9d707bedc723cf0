"""Shared FastAPI dependency injection."""

from __future__ import annotations

from meshview.services.topology_service import TopologyService

_topology_service: TopologyService | None = None


def set_topology_service(service: TopologyService | None) -> None:
    global _topology_service
    _topology_service = service


def get_topology_service() -> TopologyService:
    if _topology_service is None:
        raise RuntimeError("Topology service not initialized")
    return _topology_service
