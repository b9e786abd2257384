"""
Runtime configuration.

Defaults live as module constants; ``Settings.from_env()`` overlays any
``TRAKKE_*`` environment variables on top of them.  One ``Settings``
instance is built per map session and passed down explicitly.

Usage
-----
    from trakke.config import Settings
    settings = Settings.from_env()
    settings.cache_ttl_s   # 600.0 unless TRAKKE_CACHE_TTL_S is set
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Optional

log = logging.getLogger(__name__)

# ── Upstream endpoints ────────────────────────────────────────────────

OVERPASS_URL = "https://overpass-api.de/api/interpreter"
SHELTER_WFS_URL = "https://wfs.geonorge.no/skwms1/wfs.tilfluktsrom_offentlige"
ENTUR_GEOCODER_URL = "https://api.entur.io/geocoder/v1/features"
NATURSKOG_WMS_URL = (
    "https://image001.miljodirektoratet.no/arcgis/services/"
    "naturskog/naturskog_v1/MapServer/WMSServer"
)
TRAIL_WMS_URL = "https://wms.geonorge.no/skwms1/wms.friluftsruter"

USER_AGENT = "trakke-norwegian-outdoor-app"

# ── Limits ────────────────────────────────────────────────────────────

MIN_CALL_DELAY_S = 3.0       # per upstream
CALL_BUDGET = 8              # calls per rolling window, per upstream
BUDGET_WINDOW_S = 60.0
RATE_LIMIT_COOLDOWN_S = 60.0  # single wait after HTTP 429
QUERY_TIMEOUT_S = 25.0
PROBE_TIMEOUT_S = 5.0
CACHE_TTL_S = 600.0
TOGGLE_DEBOUNCE_S = 0.1
MAX_RESULTS = 100            # per Overpass / WFS call


@dataclass(frozen=True)
class Settings:
    """Per-session knobs.  Field names map to ``TRAKKE_<NAME>`` env vars."""
    user_agent: str = USER_AGENT
    overpass_url: str = OVERPASS_URL
    shelter_url: str = SHELTER_WFS_URL
    shelter_proxy: str = ""          # prefix prepended to the WFS URL when set
    entur_url: str = ENTUR_GEOCODER_URL
    naturskog_url: str = NATURSKOG_WMS_URL
    trail_url: str = TRAIL_WMS_URL
    min_call_delay_s: float = MIN_CALL_DELAY_S
    call_budget: int = CALL_BUDGET
    budget_window_s: float = BUDGET_WINDOW_S
    rate_limit_cooldown_s: float = RATE_LIMIT_COOLDOWN_S
    query_timeout_s: float = QUERY_TIMEOUT_S
    probe_timeout_s: float = PROBE_TIMEOUT_S
    cache_ttl_s: float = CACHE_TTL_S
    toggle_debounce_s: float = TOGGLE_DEBOUNCE_S
    max_results: int = MAX_RESULTS
    shelter_demo_fallback: bool = True
    custom_poi_file: str = ""
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "Settings":
        env = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            raw = env.get(f"TRAKKE_{f.name.upper()}")
            if raw is None:
                continue
            try:
                overrides[f.name] = _coerce(raw, f.default)
            except ValueError:
                log.warning("Ignoring TRAKKE_%s=%r (expected %s)",
                            f.name.upper(), raw, type(f.default).__name__)
        return cls(**overrides)

    def with_overrides(self, **kwargs) -> "Settings":
        return replace(self, **kwargs)


def _coerce(raw: str, default):
    if isinstance(default, bool):
        value = raw.strip().lower()
        if value in ("1", "true", "yes", "on"):
            return True
        if value in ("0", "false", "no", "off"):
            return False
        raise ValueError(raw)
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw
