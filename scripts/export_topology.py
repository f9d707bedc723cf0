"""Export a mesh topology graph to JSON plus a PNG rendering.

Usage:
    python scripts/export_topology.py --namespace bookinfo --duration 900
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time

from meshview.config import get_settings
from meshview.renderer.networkx_renderer import NetworkXRenderer
from meshview.services.mesh_client import MeshClient
from meshview.services.topology_service import PanelStatus, TopologyService
from meshview.topology.models import GraphScope, TimeWindow
from meshview.utils.logging import setup_logging


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export a mesh topology graph")
    parser.add_argument(
        "--namespace",
        action="append",
        required=True,
        help="Namespace to include (repeatable)",
    )
    parser.add_argument("--application", default=None, help="Restrict the graph to one application")
    parser.add_argument("--duration", type=int, default=900, help="Time window in seconds")
    parser.add_argument("--output", default="topology_export", help="Output file prefix")
    return parser.parse_args()


async def main() -> None:
    args = parse_args()
    setup_logging(log_level="INFO", log_format="console")
    settings = get_settings()

    end = int(time.time())
    scope = GraphScope(
        namespaces=args.namespace,
        application=args.application,
        window=TimeWindow(time_start=end - args.duration, time_end=end),
    )
    service = TopologyService(MeshClient(settings), NetworkXRenderer(), settings=settings)

    try:
        view = await service.load(scope)
        if view.status is PanelStatus.FAILED:
            print(f"Graph fetch failed: {view.error}")
            sys.exit(1)
        if view.status is PanelStatus.NO_DATA:
            print("No topology data found.")
            sys.exit(0)

        json_file = f"{args.output}.json"
        with open(json_file, "w") as f:
            json.dump(view.graph.model_dump(mode="json"), f, indent=2)

        png_file = f"{args.output}.png"
        with open(png_file, "wb") as f:
            f.write(await service.export_image("png"))

        print(f"Graph exported to {json_file} and {png_file}")
        print(f"  Nodes: {len(view.graph.nodes)}")
        print(f"  Edges: {len(view.graph.edges)}")
        if view.graph.dropped_edges:
            print(f"  Dropped edges: {len(view.graph.dropped_edges)}")
    finally:
        await service.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
