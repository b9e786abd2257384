"""
Raw record variants, one per upstream shape.

Adapters produce these; only the normalizer consumes them.  Each variant
carries a ``kind`` tag so the normalizer can dispatch without isinstance
chains leaking into other modules.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Union


@dataclass(frozen=True)
class OsmElementRecord:
    """One Overpass element (node/way/relation)."""
    osm_type: str                 # "node" | "way" | "relation"
    osm_id: int
    lat: Optional[float]          # node position or way/relation centre
    lng: Optional[float]
    tags: Dict[str, str] = field(default_factory=dict)
    subquery: str = ""            # which Overpass sub-query produced it
    kind: str = "osm"


@dataclass(frozen=True)
class ShelterRecord:
    """One feature from the civil-shelter WFS."""
    local_id: str
    lat: Optional[float]
    lng: Optional[float]
    room_number: Optional[str] = None
    capacity: Optional[str] = None
    address: Optional[str] = None
    demo: bool = False            # True for the built-in fallback dataset
    kind: str = "shelter"


@dataclass(frozen=True)
class TransitStopRecord:
    """One stop place from the journey-planner geocoder."""
    stop_id: Optional[str]
    lat: Optional[float]
    lng: Optional[float]
    label: Optional[str] = None
    name: Optional[str] = None
    locality: Optional[str] = None
    mode: str = "bus"             # "bus" | "rail"
    stop_categories: tuple = ()
    kind: str = "transit"


RawRecord = Union[OsmElementRecord, ShelterRecord, TransitStopRecord]
