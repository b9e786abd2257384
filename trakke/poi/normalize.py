"""
Normalizer: raw upstream records → unified ``POI``.

Each record variant is first reduced to three things: name candidates,
an attribute mapping keyed by clause name, and a coordinate.  From there
the pipeline is shared:

  name      localized → generic → English → category fallback
            (fallback optionally qualified with a nearby place name)
  text      category label + clauses in fixed order, values translated
  repair    mojibake table applied to name and description
  bounds    coordinate outside the national box → record dropped

Usage
-----
    poi = normalize(record, "war_memorials")
    if poi is not None:
        ...
"""
from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from ..categories.catalog import fallback_name, style_for
from ..errors import OutOfBounds
from ..geo.bounds import check_bounds
from ..ingest.records import OsmElementRecord, RawRecord, ShelterRecord, TransitStopRecord
from .model import POI
from .translations import repair_text, translate

log = logging.getLogger(__name__)

_LOCALIZED_NAME_TAGS = ("name:no", "name:nb", "name:nn")
_PLACE_TAGS = ("place", "addr:place", "addr:city", "name:place")
_YEAR_RE = re.compile(r"\b(1[0-9]{3}|20[0-9]{2})\b")

# ── Clause rendering, in output order ─────────────────────────────────

def _fee_clause(value: str) -> str:
    if value == "yes":
        return "Avgift påkrevd"
    if value == "no":
        return "Gratis"
    return f"Avgift: {value}"


def _year_clause(value: str) -> Optional[str]:
    m = _YEAR_RE.search(value)
    return f"Bygget {m.group(1)}" if m else None


_CLAUSES = (
    ("variant",   lambda v: f"Type: {translate('variant', v)}"),
    ("room",      lambda v: f"Rom nr: {v}"),
    ("access",    lambda v: f"Tilgang: {translate('access', v)}"),
    ("capacity",  lambda v: f"Kapasitet: {v} personer"),
    ("fee",       _fee_clause),
    ("fuel",      lambda v: f"Brennstoff: {translate('fuel', v)}"),
    ("height",    lambda v: f"Høyde: {v} m"),
    ("elevation", lambda v: f"Høyde: {v} moh"),
    ("built",     _year_clause),
    ("address",   lambda v: f"Adresse: {v}"),
)


def describe(label: str, attributes: Dict[str, str]) -> str:
    """Category label followed by every available clause."""
    parts = [label]
    for key, render in _CLAUSES:
        value = attributes.get(key)
        if value is None or str(value).strip() == "":
            continue
        clause = render(str(value).strip())
        if clause:
            parts.append(clause)
    return ". ".join(parts)


def resolve_name(candidates: Iterable[Optional[str]], fallback: str,
                 place: Optional[str] = None,
                 placeholders: Tuple[str, ...] = ()) -> str:
    """First usable candidate, else *fallback* qualified by *place*."""
    for name in candidates:
        if name is None:
            continue
        name = name.strip()
        if name and name != fallback and name not in placeholders:
            return name
    if place:
        return f"{fallback} ({place.strip()})"
    return fallback


def _coordinate(lat, lng) -> Optional[Tuple[float, float]]:
    try:
        lat_f, lng_f = float(lat), float(lng)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lat_f) and math.isfinite(lng_f)):
        return None
    return lat_f, lng_f


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# ── Per-variant reduction ─────────────────────────────────────────────

def _osm_variant(tags: Dict[str, str]) -> Optional[str]:
    for key in ("shelter_type", "tower:type", "bunker_type", "memorial"):
        if tags.get(key):
            return tags[key]
    if tags.get("military") == "bunker":
        return "bunker"
    if tags.get("historic"):
        return tags["historic"]
    if tags.get("amenity") == "hunting_stand":
        return "hunting_stand"
    return None


def _wikipedia_url(value: str) -> str:
    if value.startswith("http"):
        return value
    lang, _, title = value.partition(":")
    if not title:
        lang, title = "no", value
    return f"https://{lang}.wikipedia.org/wiki/{title.replace(' ', '_')}"


def _osm_enrichment(tags: Dict[str, str]) -> Optional[Dict[str, str]]:
    out: Dict[str, str] = {}
    if tags.get("wikipedia"):
        out["wikipedia"] = _wikipedia_url(tags["wikipedia"])
    if tags.get("wikidata"):
        out["wikidata"] = f"https://www.wikidata.org/wiki/{tags['wikidata']}"
    for key in ("heritage", "opening_hours", "operator", "website", "inscription"):
        if tags.get(key):
            out[key] = repair_text(tags[key])
    return out or None


def _reduce_osm(rec: OsmElementRecord, category: str):
    tags = rec.tags
    fallback = fallback_name(category, rec.subquery)
    place = next((tags[k] for k in _PLACE_TAGS if tags.get(k)), None)
    name = resolve_name(
        [tags.get(k) for k in _LOCALIZED_NAME_TAGS] + [tags.get("name"), tags.get("name:en")],
        fallback, place,
    )
    attrs = {
        "variant": _osm_variant(tags),
        "access": tags.get("access"),
        "capacity": tags.get("capacity"),
        "fee": tags.get("fee"),
        "fuel": tags.get("fuel"),
        "height": tags.get("height"),
        "elevation": tags.get("ele"),
        "built": tags.get("start_date") or tags.get("construction_date"),
    }
    poi_id = f"osm:{rec.osm_type}:{rec.osm_id}"
    return poi_id, name, style_for(category).label, attrs, (rec.lat, rec.lng), _osm_enrichment(tags)


def _reduce_shelter(rec: ShelterRecord, category: str):
    ref = rec.room_number or rec.local_id
    name = resolve_name(
        [f"Tilfluktsrom - {rec.address}" if rec.address else None],
        f"Tilfluktsrom {ref}" if ref else "Tilfluktsrom",
    )
    attrs = {"room": rec.room_number, "capacity": rec.capacity, "address": rec.address}
    enrichment = {"capacity": rec.capacity} if rec.capacity else None
    if rec.demo:
        enrichment = dict(enrichment or {}, demo="true")
    return f"shelter:{rec.local_id}", name, style_for(category).label, attrs, (rec.lat, rec.lng), enrichment


def _reduce_transit(rec: TransitStopRecord, category: str):
    style = style_for(category)
    name = resolve_name([rec.label, rec.name], style.fallback_name,
                        placeholders=("Unnamed stop",))
    label = f"{style.label} i {rec.locality}" if rec.locality else style.label
    if rec.stop_id:
        poi_id = f"entur:{rec.stop_id}"
    else:
        poi_id = f"entur:{rec.lat}_{rec.lng}"
    enrichment = {"transport_mode": rec.mode}
    if rec.locality:
        enrichment["locality"] = rec.locality
    return poi_id, name, label, {}, (rec.lat, rec.lng), enrichment


_REDUCERS = {
    "osm": _reduce_osm,
    "shelter": _reduce_shelter,
    "transit": _reduce_transit,
}


# ── Public API ────────────────────────────────────────────────────────

def normalize(record: RawRecord, category: str,
              now: Optional[str] = None) -> Optional[POI]:
    """Convert one raw record to a POI, or None if it must be dropped."""
    reducer = _REDUCERS.get(record.kind)
    if reducer is None:
        log.debug("No reducer for record kind %r", record.kind)
        return None
    poi_id, name, label, attrs, raw_coord, enrichment = reducer(record, category)

    coord = _coordinate(*raw_coord)
    if coord is None:
        log.debug("Dropping %s: missing coordinate", poi_id)
        return None
    try:
        check_bounds(*coord)
    except OutOfBounds as exc:
        log.debug("Dropping %s: %s", poi_id, exc)
        return None

    if record.kind == "shelter" and not any(attrs.values()):
        description = "Offentlig tilfluktsrom for befolkningen"
    else:
        description = describe(label, attrs)

    return POI(
        id=poi_id,
        name=repair_text(name),
        description=repair_text(description),
        category=category,
        lat=coord[0],
        lng=coord[1],
        color=style_for(category).color,
        source=record.kind if record.kind != "osm" else "overpass",
        last_updated=now or _now_iso(),
        enrichment=enrichment,
    )


def normalize_all(records: Iterable[RawRecord], category: str,
                  now: Optional[str] = None) -> List[POI]:
    stamp = now or _now_iso()
    out: List[POI] = []
    for rec in records:
        poi = normalize(rec, category, now=stamp)
        if poi is not None:
            out.append(poi)
    return out
