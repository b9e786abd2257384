"""
Attribute-value translation tables and text repair.

Values not listed pass through unchanged.
"""
from __future__ import annotations

from typing import Dict, Optional

ACCESS = {
    "yes": "offentlig tilgang",
    "public": "offentlig",
    "permissive": "tillatt",
    "private": "privat",
    "no": "ingen tilgang",
    "customers": "kun for kunder",
    "permit": "kun med tillatelse",
    "unknown": "ukjent",
}

VARIANT = {
    # shelter_type
    "basic_hut": "enkel hytte",
    "weather_shelter": "værbeskyttelse",
    "rock_shelter": "bergskjul",
    "lavvu": "lavvo",
    "picnic_shelter": "rasteplass med tak",
    # tower:type
    "observation": "observasjonstårn",
    "watchtower": "vakttårn",
    # historic / military
    "memorial": "minnesmerke",
    "war_memorial": "krigsminnesmerke",
    "fort": "festning",
    "battlefield": "slagmark",
    "bunker": "bunker",
    "pillbox": "skyttergrav",
    "gun_emplacement": "kanonstilling",
    "hunting_stand": "jakttårn",
    "unknown": "ukjent",
}

FUEL = {
    "wood": "ved",
    "charcoal": "kull",
    "gas": "gass",
    "electric": "elektrisk",
    "unknown": "ukjent",
}

TABLES: Dict[str, Dict[str, str]] = {
    "access": ACCESS,
    "variant": VARIANT,
    "fuel": FUEL,
}

# UTF-8 read as Latin-1/CP1252 somewhere upstream
MOJIBAKE = {
    "Ã¦": "æ",
    "Ã¸": "ø",
    "Ã¥": "å",
    "Ã†": "Æ",
    "Ã˜": "Ø",
    "Ã…": "Å",
    "Ã©": "é",
    "â€“": "–",
    "â€™": "'",
}


def translate(table: str, value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return TABLES.get(table, {}).get(value, value)


def repair_text(text: str) -> str:
    if "Ã" not in text and "â€" not in text:
        return text
    for broken, fixed in MOJIBAKE.items():
        text = text.replace(broken, fixed)
    return text
