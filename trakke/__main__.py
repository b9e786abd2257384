from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional, Sequence, Tuple

from .categories.tree import CategoryTree, load_category_tree
from .config import Settings
from .dispatch.session import MapSession
from .geo.bounds import ViewportWindow
from .ingest.raster_layers import RasterAdapter
from .logger import setup_logging

log = logging.getLogger(__name__)


def _parse_bbox(text: str) -> Tuple[float, float, float, float]:
    """Parse "south,north,west,east" into floats."""
    try:
        south, north, west, east = (float(v) for v in text.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError("expected south,north,west,east") from None
    if south >= north or west >= east:
        raise argparse.ArgumentTypeError("south must be < north and west < east")
    return south, north, west, east


def _parse_center(text: str) -> Tuple[float, float]:
    try:
        lat, lng = (float(v) for v in text.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError("expected lat,lng") from None
    return lat, lng


async def _query(settings: Settings, tree: CategoryTree, bbox, zoom: float,
                 categories: Sequence[str]) -> dict:
    south, north, west, east = bbox
    async with MapSession(settings, tree=tree) as session:
        for node_id in categories:
            if not session.state.is_checked(node_id):
                session.state.toggle(node_id)
        session.viewport = ViewportWindow(north=north, south=south, east=east,
                                          west=west, zoom=zoom)
        result = await session.refresh()
    return {
        "sequence": result.sequence,
        "pois": [p.as_dict() for p in result.pois],
        "layers": [{"id": d.id, "category": d.category, "tile_url": d.tile_url,
                    "opacity": d.opacity} for d in result.layers],
        "warning": result.summary,
    }


async def _probe(settings: Settings) -> List[Tuple[str, bool]]:
    async with MapSession(settings) as session:
        rasters = [a for a in session.adapters if isinstance(a, RasterAdapter)]
        results = await asyncio.gather(*(a.probe() for a in rasters))
    return [(a.source_id, ok) for a, ok in zip(rasters, results)]


def _print_tree(tree: CategoryTree) -> None:
    def show(node, depth):
        codes = f"  [{', '.join(node.codes)}]" if node.codes else ""
        print(f"{'  ' * depth}{node.id:24s} {node.label}{codes}")
        for child in node.children:
            show(child, depth + 1)

    for root in tree.roots:
        show(root, 0)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="trakke",
        description="Category-driven POI and raster overlays for Norwegian public geodata.",
    )
    parser.add_argument("--log-level", default=None,
                        help="Logging level (default: TRAKKE_LOG_LEVEL or INFO).")
    parser.add_argument("--log-file", default=None,
                        help="Also write logs to logs/<name>.")
    parser.add_argument("--categories-file", default=None,
                        help="JSON category tree to use instead of the built-in one.")
    sub = parser.add_subparsers(dest="command", required=True)

    q = sub.add_parser("query", help="Run one dispatch cycle and print the POIs as JSON.")
    q.add_argument("--bbox", type=_parse_bbox, required=True,
                   help="south,north,west,east in degrees.")
    q.add_argument("--zoom", type=float, default=14.0)
    q.add_argument("--category", action="append", required=True,
                   help="Category node id to check (repeatable).")

    sub.add_parser("probe", help="Check that the raster WMS services answer.")
    sub.add_parser("tree", help="Print the category tree.")

    g = sub.add_parser("gui", help="Open the map window.")
    g.add_argument("--center", type=_parse_center, default=(59.91, 10.75),
                   help="lat,lng of the initial map centre.")
    g.add_argument("--zoom", type=float, default=12.0)

    args = parser.parse_args(argv)

    settings = Settings.from_env()
    setup_logging(args.log_level or settings.log_level, args.log_file)
    tree = load_category_tree(args.categories_file)

    if args.command == "tree":
        _print_tree(tree)
        return 0

    if args.command == "query":
        unknown = [c for c in args.category if c not in tree]
        if unknown:
            parser.error(f"unknown category id(s): {', '.join(unknown)}")
        out = asyncio.run(_query(settings, tree, args.bbox, args.zoom, args.category))
        json.dump(out, sys.stdout, ensure_ascii=False, indent=2)
        print()
        return 0

    if args.command == "probe":
        results = asyncio.run(_probe(settings))
        for source_id, ok in results:
            print(f"{source_id:16s} {'ok' if ok else 'UNAVAILABLE'}")
        return 0 if all(ok for _, ok in results) else 1

    from .gui.app import run
    log.info("Starting map window at %s, zoom %.1f", args.center, args.zoom)
    return run(settings, args.center, args.zoom)


if __name__ == "__main__":
    sys.exit(main())
