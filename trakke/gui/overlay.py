"""
Overlay renderer — keeps POI markers, the popup and raster layers in step
with whatever map host draws the base map.

The renderer talks to the host only through ``MapHost``; the PyQt5
widget in ``map_widget.py`` is one implementation, the tests use a
recording fake.

Frame handling
──────────────
  host move/zoom frame
    → host.viewport_transform()        (immutable snapshot)
    → project_many(mercator, transform) (numpy, pure arithmetic)
    → host.move_marker(...) for every marker
    → host.move_popup(...) when a popup is open
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..geo.projection import ScreenPosition, ViewportTransform, mercator_array, project_many
from ..poi.model import POI, RasterLayerDescriptor

log = logging.getLogger(__name__)


class MapHost:
    """What the renderer needs from a base-map engine."""

    def viewport_transform(self) -> ViewportTransform:
        raise NotImplementedError

    # markers
    def create_marker(self, poi: POI) -> Any:
        raise NotImplementedError

    def move_marker(self, handle: Any, x: float, y: float) -> None:
        raise NotImplementedError

    def remove_marker(self, handle: Any) -> None:
        raise NotImplementedError

    def set_marker_emphasis(self, handle: Any, emphasized: bool) -> None:
        raise NotImplementedError

    # popup
    def show_popup(self, poi: POI, x: float, y: float) -> None:
        raise NotImplementedError

    def move_popup(self, x: float, y: float) -> None:
        raise NotImplementedError

    def hide_popup(self) -> None:
        raise NotImplementedError

    # raster layers
    def has_source(self, layer_id: str) -> bool:
        raise NotImplementedError

    def add_source(self, descriptor: RasterLayerDescriptor) -> None:
        raise NotImplementedError

    def has_layer(self, layer_id: str) -> bool:
        raise NotImplementedError

    def add_layer(self, descriptor: RasterLayerDescriptor) -> None:
        raise NotImplementedError

    def set_layer_visibility(self, layer_id: str, visible: bool) -> None:
        raise NotImplementedError


class OverlayRenderer:
    def __init__(self, host: MapHost):
        self._host = host
        self._pois: List[POI] = []
        self._handles: Dict[str, Any] = {}
        self._row: Dict[str, int] = {}           # poi id → row in the arrays
        self._mercator = np.empty((0, 2))
        self._positions = np.empty((0, 2))
        self._hovered: Optional[str] = None
        self._popup_id: Optional[str] = None
        self._layers: Dict[str, RasterLayerDescriptor] = {}   # lazily added
        self._layer_visible: Dict[str, bool] = {}

    # ── Markers ───────────────────────────────────────────────────────

    @property
    def marker_count(self) -> int:
        return len(self._handles)

    @property
    def popup_poi(self) -> Optional[str]:
        return self._popup_id

    def set_pois(self, pois: Sequence[POI]) -> None:
        """Replace every marker with one per POI in *pois*."""
        for handle in self._handles.values():
            self._host.remove_marker(handle)
        self._handles.clear()
        self._hovered = None

        self._pois = list(pois)
        self._row = {p.id: i for i, p in enumerate(self._pois)}
        self._mercator = mercator_array([p.coordinate for p in self._pois])
        for poi in self._pois:
            self._handles[poi.id] = self._host.create_marker(poi)

        if self._popup_id is not None and self._popup_id not in self._row:
            self.close_popup()
        self.on_frame()
        log.debug("Rendered %d markers", len(self._pois))

    def on_frame(self) -> None:
        """Reposition markers (and the popup) for the host's current view."""
        if not self._pois:
            self._positions = np.empty((0, 2))
            return
        self._positions = project_many(self._mercator, self._host.viewport_transform())
        for poi, (x, y) in zip(self._pois, self._positions):
            self._host.move_marker(self._handles[poi.id], float(x), float(y))
        if self._popup_id is not None:
            pos = self.screen_position(self._popup_id)
            self._host.move_popup(pos.x, pos.y)

    def screen_position(self, poi_id: str) -> ScreenPosition:
        x, y = self._positions[self._row[poi_id]]
        return ScreenPosition(float(x), float(y))

    def on_marker_hover(self, poi_id: str, entered: bool) -> None:
        handle = self._handles.get(poi_id)
        if handle is None:
            return
        if entered and self._hovered not in (None, poi_id):
            self._host.set_marker_emphasis(self._handles[self._hovered], False)
        self._host.set_marker_emphasis(handle, entered)
        self._hovered = poi_id if entered else None

    # ── Popup ─────────────────────────────────────────────────────────

    def on_marker_click(self, poi_id: str) -> None:
        """Open the popup for *poi_id*, replacing any open popup."""
        if poi_id not in self._row:
            return
        if self._popup_id is not None:
            self._host.hide_popup()
        pos = self.screen_position(poi_id)
        self._host.show_popup(self._pois[self._row[poi_id]], pos.x, pos.y)
        self._popup_id = poi_id

    def on_map_click(self, on_marker: bool = False, on_popup: bool = False) -> None:
        """Click anywhere on the map; closes the popup unless it hit one."""
        if not on_marker and not on_popup:
            self.close_popup()

    def close_popup(self) -> None:
        if self._popup_id is not None:
            self._host.hide_popup()
            self._popup_id = None

    # ── Raster layers ─────────────────────────────────────────────────

    def set_layer_visible(self, descriptor: RasterLayerDescriptor, visible: bool) -> None:
        if visible and descriptor.id not in self._layers:
            if not self._host.has_source(descriptor.id):
                self._host.add_source(descriptor)
            if not self._host.has_layer(descriptor.id):
                self._host.add_layer(descriptor)
            self._layers[descriptor.id] = descriptor
            log.info("Added raster layer %s", descriptor.id)
        if descriptor.id in self._layers:
            self._host.set_layer_visibility(descriptor.id, visible)
            self._layer_visible[descriptor.id] = visible

    def set_active_layers(self, descriptors: Sequence[RasterLayerDescriptor]) -> None:
        """Show exactly *descriptors*; every other added layer is hidden."""
        wanted = {d.id: d for d in descriptors}
        for layer_id, desc in self._layers.items():
            if layer_id not in wanted and self._layer_visible.get(layer_id):
                self.set_layer_visible(desc, False)
        for desc in wanted.values():
            self.set_layer_visible(desc, True)

    def visible_layers(self) -> List[str]:
        return [lid for lid, v in self._layer_visible.items() if v]

    def on_style_loaded(self) -> None:
        """Re-add every lazily added layer after the host swapped its style."""
        for layer_id, desc in self._layers.items():
            if not self._host.has_source(layer_id):
                self._host.add_source(desc)
            if not self._host.has_layer(layer_id):
                self._host.add_layer(desc)
            self._host.set_layer_visibility(layer_id, self._layer_visible.get(layer_id, False))
        if self._layers:
            log.info("Restored %d raster layers after style change", len(self._layers))
