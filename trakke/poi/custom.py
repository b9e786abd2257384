"""
User-defined POIs merged into every dispatch cycle.

Storage of custom POIs is someone else's job; this module only reads a
JSON export (a list of objects with id, name, category, lat, lng and
optional description/color) and filters it by the active codes.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Union

from ..categories.catalog import style_for
from ..geo.bounds import in_national_bounds
from .model import POI

log = logging.getLogger(__name__)


class CustomPOIProvider:
    def __init__(self, pois: Optional[Iterable[POI]] = None):
        self._pois: List[POI] = list(pois or [])

    def set_pois(self, pois: Iterable[POI]) -> None:
        self._pois = list(pois)

    def pois_for_categories(self, codes: Iterable[str]) -> List[POI]:
        wanted = set(codes)
        if not wanted:
            return []
        return [p for p in self._pois if p.category in wanted]

    def __len__(self) -> int:
        return len(self._pois)


def _from_dict(d: dict, stamp: str) -> Optional[POI]:
    try:
        lat, lng = float(d["lat"]), float(d["lng"])
        category = str(d["category"])
        poi_id = str(d["id"])
        name = str(d["name"])
    except (KeyError, TypeError, ValueError) as exc:
        log.warning("Skipping custom POI %r: %s", d.get("id") if isinstance(d, dict) else d, exc)
        return None
    if not in_national_bounds(lat, lng):
        log.warning("Skipping custom POI %s: outside national bounds", poi_id)
        return None
    return POI(
        id=poi_id if poi_id.startswith("custom:") else f"custom:{poi_id}",
        name=name,
        description=str(d.get("description") or style_for(category).label),
        category=category,
        lat=lat,
        lng=lng,
        color=d.get("color") or style_for(category).color,
        source="custom",
        last_updated=d.get("last_updated") or stamp,
    )


def load_custom_pois(path: Union[str, Path]) -> CustomPOIProvider:
    with Path(path).open("r", encoding="utf-8") as f:
        data = json.load(f)
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    pois = [p for p in (_from_dict(d, stamp) for d in data or []) if p is not None]
    log.info("Loaded %d custom POIs from %s", len(pois), path)
    return CustomPOIProvider(pois)
