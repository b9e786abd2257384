"""
PyQt5 map host — a pannable, zoomable canvas the overlay renderer draws on.

Stands in for a full base-map engine: it owns the camera (web-mercator
centre + resolution), draws a plain background per style, pulls one WMS
GetMap image per visible raster layer after each settle, and hosts the
POI markers and popup.

Interaction:
  - drag to pan, wheel to zoom under the cursor
  - hover a marker to enlarge it, click it for a popup
  - click empty map to close the popup

Signals
-------
frame_changed()
    Every camera change (drag step, wheel notch, resize).
viewport_settled(object)
    ViewportWindow, 300 ms after the camera stops moving.
style_loaded()
    After ``set_base_style`` swapped the style; raster layers are gone.
marker_clicked(str) / marker_hovered(str, bool)
    POI id (and enter/leave for hover).
background_clicked()
    Mouse press on empty map.
"""
from __future__ import annotations

import asyncio
import html
import logging
import math
from typing import Dict, Optional, Set, Tuple

import httpx
from PyQt5 import QtCore, QtGui, QtWidgets

from ..geo.projection import ViewportTransform, resolution_for_zoom
from ..poi.model import POI, RasterLayerDescriptor
from .overlay import MapHost

log = logging.getLogger(__name__)

_STYLES = {
    "light": QtGui.QColor(236, 239, 233),
    "dark": QtGui.QColor(24, 28, 32),
    "terrain": QtGui.QColor(222, 228, 206),
}
_MARKER_RADIUS = 7.0
_HOVER_SCALE = 1.5
_SETTLE_MS = 300
_MIN_ZOOM = 4.0
_MAX_ZOOM = 18.0


# ── Marker graphics item ──────────────────────────────────────────────

class MarkerItem(QtWidgets.QGraphicsObject):
    """One POI dot.  Enlarges and raises on hover."""

    def __init__(self, poi: POI, canvas: "MapWidget"):
        super().__init__()
        self.poi = poi
        self._canvas = canvas
        self._color = QtGui.QColor(poi.color)
        self._emphasized = False
        self.setAcceptHoverEvents(True)
        self.setCursor(QtCore.Qt.PointingHandCursor)
        self.setToolTip(poi.name)
        self.setZValue(10)

    def boundingRect(self) -> QtCore.QRectF:
        r = _MARKER_RADIUS * _HOVER_SCALE + 2
        return QtCore.QRectF(-r, -r, 2 * r, 2 * r)

    def paint(self, painter: QtGui.QPainter, option, widget=None) -> None:
        r = _MARKER_RADIUS * (_HOVER_SCALE if self._emphasized else 1.0)
        painter.setRenderHint(QtGui.QPainter.Antialiasing)
        pen = QtGui.QPen(QtGui.QColor(255, 255, 255))
        pen.setWidthF(2.0)
        painter.setPen(pen)
        painter.setBrush(QtGui.QBrush(self._color))
        painter.drawEllipse(QtCore.QPointF(0, 0), r, r)

    def set_emphasized(self, emphasized: bool) -> None:
        self._emphasized = emphasized
        self.setZValue(20 if emphasized else 10)
        self.update()

    def hoverEnterEvent(self, event):
        self._canvas.marker_hovered.emit(self.poi.id, True)
        super().hoverEnterEvent(event)

    def hoverLeaveEvent(self, event):
        self._canvas.marker_hovered.emit(self.poi.id, False)
        super().hoverLeaveEvent(event)

    def mousePressEvent(self, event):
        self._canvas.marker_clicked.emit(self.poi.id)
        event.accept()


class _Popup(QtWidgets.QLabel):
    """Anchored info bubble.  Swallows clicks so they never reach the map."""

    def __init__(self, parent: QtWidgets.QWidget):
        super().__init__(parent)
        self.setWordWrap(True)
        self.setTextFormat(QtCore.Qt.RichText)
        self.setOpenExternalLinks(True)
        self.setMaximumWidth(280)
        self.setStyleSheet(
            "QLabel { background: white; color: #1f2937; border: 1px solid #9ca3af;"
            " border-radius: 6px; padding: 8px; }"
        )
        self.hide()

    def mousePressEvent(self, event):
        event.accept()


class _MapView(QtWidgets.QGraphicsView):
    """Forwards pointer input to the owning MapWidget."""

    def __init__(self, scene: QtWidgets.QGraphicsScene, canvas: "MapWidget"):
        super().__init__(scene, canvas)
        self._canvas = canvas
        self._drag_from: Optional[QtCore.QPoint] = None
        self.setHorizontalScrollBarPolicy(QtCore.Qt.ScrollBarAlwaysOff)
        self.setVerticalScrollBarPolicy(QtCore.Qt.ScrollBarAlwaysOff)
        self.setRenderHint(QtGui.QPainter.Antialiasing)
        self.setFrameShape(QtWidgets.QFrame.NoFrame)

    def mousePressEvent(self, event):
        if not isinstance(self.itemAt(event.pos()), MarkerItem):
            self._drag_from = event.pos()
            self._canvas.background_clicked.emit()
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event):
        if self._drag_from is not None and event.buttons() & QtCore.Qt.LeftButton:
            delta = event.pos() - self._drag_from
            self._drag_from = event.pos()
            self._canvas.pan_by(delta.x(), delta.y())
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event):
        self._drag_from = None
        super().mouseReleaseEvent(event)

    def wheelEvent(self, event):
        """Zoom anchored under the mouse cursor."""
        factor = 1.25 if event.angleDelta().y() > 0 else 1.0 / 1.25
        self._canvas.zoom_by(factor, (event.pos().x(), event.pos().y()))
        event.accept()


# ── Map widget ────────────────────────────────────────────────────────

class MapWidget(QtWidgets.QWidget, MapHost):
    frame_changed = QtCore.pyqtSignal()
    viewport_settled = QtCore.pyqtSignal(object)
    style_loaded = QtCore.pyqtSignal()
    marker_clicked = QtCore.pyqtSignal(str)
    marker_hovered = QtCore.pyqtSignal(str, bool)
    background_clicked = QtCore.pyqtSignal()

    def __init__(
        self,
        center: Tuple[float, float] = (59.91, 10.75),
        zoom: float = 12.0,
        parent: Optional[QtWidgets.QWidget] = None,
    ):
        super().__init__(parent)
        self._transform = ViewportTransform.from_center(center[0], center[1], zoom, 800, 600)
        self._style = "light"

        self._scene = QtWidgets.QGraphicsScene(self)
        self._view = _MapView(self._scene, self)
        layout = QtWidgets.QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self._view)
        self._popup = _Popup(self._view.viewport())

        # raster sources, their pixmap items and the mercator bbox each pixmap covers
        self._sources: Dict[str, RasterLayerDescriptor] = {}
        self._layers: Dict[str, QtWidgets.QGraphicsPixmapItem] = {}
        self._layer_bbox: Dict[str, Tuple[float, float, float, float]] = {}
        self._layer_visible: Dict[str, bool] = {}
        self._http: Optional[httpx.AsyncClient] = None
        # in-flight image loads; a newer request for a layer outdates older ones
        self._image_tasks: Set[asyncio.Task] = set()
        self._layer_generation: Dict[str, int] = {}

        self._settle_timer = QtCore.QTimer(self)
        self._settle_timer.setSingleShot(True)
        self._settle_timer.setInterval(_SETTLE_MS)
        self._settle_timer.timeout.connect(self._emit_settled)

        self._apply_style_background()

    # ── Camera ────────────────────────────────────────────────────────

    def viewport_transform(self) -> ViewportTransform:
        return self._transform

    def pan_by(self, dx: float, dy: float) -> None:
        self._transform = self._transform.panned(dx, dy)
        self._camera_changed()

    def zoom_by(self, factor: float, anchor: Tuple[float, float]) -> None:
        target = self._transform.zoom + math.log2(factor)
        if not _MIN_ZOOM <= target <= _MAX_ZOOM:
            return
        self._transform = self._transform.zoomed(factor, anchor)
        self._camera_changed()

    def set_zoom(self, zoom: float) -> None:
        t = self._transform
        self._transform = ViewportTransform(t.center_x, t.center_y,
                                            resolution_for_zoom(zoom), t.width, t.height)
        self._camera_changed()

    def resizeEvent(self, event):
        super().resizeEvent(event)
        vw, vh = self._view.viewport().width(), self._view.viewport().height()
        self._scene.setSceneRect(0, 0, vw, vh)
        self._transform = self._transform.resized(vw, vh)
        self._camera_changed()

    def _camera_changed(self) -> None:
        self._reposition_layers()
        self.frame_changed.emit()
        self._settle_timer.start()

    def _emit_settled(self) -> None:
        self.viewport_settled.emit(self._transform.viewport_window())
        self._refresh_layer_images()

    # ── Style ─────────────────────────────────────────────────────────

    def set_base_style(self, style: str) -> None:
        """Swap the base style.  Drops every raster source and layer."""
        if style not in _STYLES:
            raise ValueError(f"unknown style {style!r}")
        self._style = style
        for item in self._layers.values():
            self._scene.removeItem(item)
        self._layers.clear()
        self._sources.clear()
        self._layer_bbox.clear()
        self._layer_visible.clear()
        self._layer_generation.clear()
        self._apply_style_background()
        self.style_loaded.emit()

    def _apply_style_background(self) -> None:
        self._scene.setBackgroundBrush(QtGui.QBrush(_STYLES[self._style]))

    # ── MapHost: markers ──────────────────────────────────────────────

    def create_marker(self, poi: POI) -> MarkerItem:
        item = MarkerItem(poi, self)
        self._scene.addItem(item)
        return item

    def move_marker(self, handle: MarkerItem, x: float, y: float) -> None:
        handle.setPos(x, y)

    def remove_marker(self, handle: MarkerItem) -> None:
        self._scene.removeItem(handle)

    def set_marker_emphasis(self, handle: MarkerItem, emphasized: bool) -> None:
        handle.set_emphasized(emphasized)

    # ── MapHost: popup ────────────────────────────────────────────────

    def show_popup(self, poi: POI, x: float, y: float) -> None:
        self._popup.setText(popup_html(poi))
        self._popup.adjustSize()
        self.move_popup(x, y)
        self._popup.show()
        self._popup.raise_()

    def move_popup(self, x: float, y: float) -> None:
        w, h = self._popup.width(), self._popup.height()
        self._popup.move(int(x - w / 2), int(y - h - _MARKER_RADIUS * 2))

    def hide_popup(self) -> None:
        self._popup.hide()

    # ── MapHost: raster layers ────────────────────────────────────────

    def has_source(self, layer_id: str) -> bool:
        return layer_id in self._sources

    def add_source(self, descriptor: RasterLayerDescriptor) -> None:
        self._sources[descriptor.id] = descriptor

    def has_layer(self, layer_id: str) -> bool:
        return layer_id in self._layers

    def add_layer(self, descriptor: RasterLayerDescriptor) -> None:
        item = QtWidgets.QGraphicsPixmapItem()
        item.setOpacity(descriptor.opacity)
        item.setZValue(1)
        item.setVisible(False)
        self._scene.addItem(item)
        self._layers[descriptor.id] = item
        self._layer_visible[descriptor.id] = False

    def set_layer_visibility(self, layer_id: str, visible: bool) -> None:
        item = self._layers.get(layer_id)
        if item is None:
            return
        self._layer_visible[layer_id] = visible
        item.setVisible(visible)
        if visible:
            self._refresh_layer_images()

    def _reposition_layers(self) -> None:
        t = self._transform
        for layer_id, item in self._layers.items():
            bbox = self._layer_bbox.get(layer_id)
            if bbox is None or item.pixmap().isNull():
                continue
            minx, miny, maxx, maxy = bbox
            x0 = (minx - t.center_x) / t.resolution + t.width / 2.0
            y0 = (t.center_y - maxy) / t.resolution + t.height / 2.0
            scale = (maxx - minx) / t.resolution / max(item.pixmap().width(), 1)
            item.setPos(x0, y0)
            item.setScale(scale)

    def _refresh_layer_images(self) -> None:
        visible = [lid for lid, v in self._layer_visible.items() if v]
        if not visible:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("No running event loop; raster images not loaded")
            return
        bbox = self._transform.mercator_bounds()
        size = (int(self._transform.width), int(self._transform.height))
        for layer_id in visible:
            generation = self._layer_generation.get(layer_id, 0) + 1
            self._layer_generation[layer_id] = generation
            task = loop.create_task(self._load_layer_image(layer_id, bbox, size, generation))
            self._image_tasks.add(task)
            task.add_done_callback(self._image_task_done)

    def _image_task_done(self, task: asyncio.Task) -> None:
        self._image_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("Raster image load failed", exc_info=task.exception())

    async def _load_layer_image(self, layer_id: str,
                                bbox: Tuple[float, float, float, float],
                                size: Tuple[int, int], generation: int = 0) -> None:
        desc = self._sources.get(layer_id)
        if desc is None or size[0] <= 0 or size[1] <= 0:
            return
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=25.0)
        url = desc.url_for_bbox(*bbox, width=size[0], height=size[1])
        try:
            resp = await self._http.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            log.warning("Raster layer %s image failed: %s", layer_id, exc)
            return
        if self._layer_generation.get(layer_id, 0) != generation:
            log.debug("Dropping outdated image for raster layer %s", layer_id)
            return
        item = self._layers.get(layer_id)
        if item is None:
            return
        pixmap = QtGui.QPixmap()
        if not pixmap.loadFromData(resp.content):
            log.warning("Raster layer %s returned a non-image body", layer_id)
            return
        item.setPixmap(pixmap)
        self._layer_bbox[layer_id] = bbox
        self._reposition_layers()

    async def aclose(self) -> None:
        if self._image_tasks:
            await asyncio.gather(*list(self._image_tasks), return_exceptions=True)
        if self._http is not None:
            await self._http.aclose()
            self._http = None


def popup_html(poi: POI) -> str:
    """Rich-text body for the marker popup; all upstream text is escaped."""
    text = f"<b>{html.escape(poi.name)}</b><br>{html.escape(poi.description)}"
    url = (poi.enrichment or {}).get("wikipedia")
    if url:
        text += f'<br><a href="{html.escape(url, quote=True)}">Wikipedia</a>'
    return text
