"""
Category codes and their presentation.

A category code is what the tree's data-bearing nodes carry and what
adapters and the normalizer understand.  ``kind`` is "poi" for marker
categories and "raster" for tile overlays.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class CategoryStyle:
    code: str
    label: str               # first word of every description
    color: str
    fallback_name: str       # used when a record has no usable name
    kind: str = "poi"


_HERITAGE = "#7c3aed"
_ACTIVITY = "#3e4533"
_SHELTER = "#b45309"
_EMERGENCY = "#ea580c"
_TRANSPORT = "#0284c7"
_FOREST = "#15803d"
_TRAIL = "#b91c1c"

CATALOG: Dict[str, CategoryStyle] = {s.code: s for s in (
    CategoryStyle("war_memorials", "Krigsminne", _HERITAGE, "Krigsminne"),
    CategoryStyle("caves", "Hule", _HERITAGE, "Hule"),
    CategoryStyle("viewpoints", "Utsiktspunkt", _HERITAGE, "Utsiktspunkt"),
    CategoryStyle("waterfalls", "Foss", _HERITAGE, "Foss"),
    CategoryStyle("fire_pits", "Bålplass", _ACTIVITY, "Bål-/grillplass"),
    CategoryStyle("wilderness_shelter", "Gapahuk/vindskjul", _SHELTER, "Gapahuk/vindskjul"),
    CategoryStyle("emergency_shelters", "Offentlig tilfluktsrom", _EMERGENCY, "Tilfluktsrom"),
    CategoryStyle("bus_stops", "Bussholdeplass", _TRANSPORT, "Holdeplass uten navn"),
    CategoryStyle("train_stations", "Togstasjon", _TRANSPORT, "Stasjon uten navn"),
    CategoryStyle("forest_pre_1940", "Skog etablert før 1940", _FOREST, "", "raster"),
    CategoryStyle("forest_probability", "Naturskogssannsynlighet", _FOREST, "", "raster"),
    CategoryStyle("forest_proximity", "Naturskogsnærhet", _FOREST, "", "raster"),
    CategoryStyle("trail_hiking", "Fotruter", _TRAIL, "", "raster"),
    CategoryStyle("trail_skiing", "Skiløyper", _TRAIL, "", "raster"),
    CategoryStyle("trail_cycling", "Sykkelruter", _TRAIL, "", "raster"),
    CategoryStyle("trail_all", "Alle friluftsruter", _TRAIL, "", "raster"),
)}

# Overpass sub-queries whose results read better under their own name
SUBQUERY_FALLBACK_NAMES = {
    "observation_tower": "Observasjonstårn",
    "hunting_stand": "Jakttårn",
}

_UNKNOWN = CategoryStyle("unknown", "Interessepunkt", "#475569", "Interessepunkt")


def style_for(code: str) -> CategoryStyle:
    return CATALOG.get(code, _UNKNOWN)


def is_raster(code: str) -> bool:
    style = CATALOG.get(code)
    return style is not None and style.kind == "raster"


def fallback_name(code: str, subquery: Optional[str] = None) -> str:
    if subquery and subquery in SUBQUERY_FALLBACK_NAMES:
        return SUBQUERY_FALLBACK_NAMES[subquery]
    return style_for(code).fallback_name
