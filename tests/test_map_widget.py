import asyncio
import logging
import os

import httpx
import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
pytest.importorskip("PyQt5")

from PyQt5 import QtCore, QtGui, QtWidgets  # noqa: E402

from trakke.gui.map_widget import MapWidget, popup_html  # noqa: E402
from trakke.poi.model import POI, RasterLayerDescriptor  # noqa: E402

_LAYER = RasterLayerDescriptor(
    "naturskog-forest_pre_1940", "forest_pre_1940",
    "https://example.test/wms?bbox={bbox-epsg-3857}&width=256&height=256",
)


@pytest.fixture(scope="module")
def qapp():
    return QtWidgets.QApplication.instance() or QtWidgets.QApplication([])


def png(width: int) -> bytes:
    image = QtGui.QImage(width, 2, QtGui.QImage.Format_ARGB32)
    image.fill(QtCore.Qt.red)
    buf = QtCore.QBuffer()
    buf.open(QtCore.QIODevice.WriteOnly)
    image.save(buf, "PNG")
    return bytes(buf.data())


def _widget_with_layer(handler) -> MapWidget:
    widget = MapWidget()
    widget._http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    widget.add_source(_LAYER)
    widget.add_layer(_LAYER)
    return widget


def test_late_image_for_old_frame_is_dropped(qapp):
    async def scenario():
        release = asyncio.Event()
        calls = []

        async def handler(request):
            calls.append(request)
            if len(calls) == 1:
                await release.wait()
                return httpx.Response(200, content=png(4))
            return httpx.Response(200, content=png(8))

        widget = _widget_with_layer(handler)
        widget.set_layer_visibility(_LAYER.id, True)
        while not calls:
            await asyncio.sleep(0)
        widget._refresh_layer_images()
        await asyncio.wait(list(widget._image_tasks), return_when=asyncio.FIRST_COMPLETED)
        release.set()
        await widget.aclose()
        return widget, calls

    widget, calls = asyncio.run(scenario())
    assert len(calls) == 2
    assert widget._layers[_LAYER.id].pixmap().width() == 8
    assert not widget._image_tasks


def test_image_load_error_is_logged(qapp, caplog):
    async def handler(request):
        raise RuntimeError("socket went away")

    async def scenario():
        widget = _widget_with_layer(handler)
        widget.set_layer_visibility(_LAYER.id, True)
        await widget.aclose()
        return widget

    with caplog.at_level(logging.ERROR, logger="trakke.gui.map_widget"):
        widget = asyncio.run(scenario())
    assert "Raster image load failed" in caplog.text
    assert not widget._image_tasks
    assert widget._layers[_LAYER.id].pixmap().isNull()


def test_popup_escapes_upstream_text():
    poi = POI("osm:node:1", "<b>Fort</b> & co", 'Bygget "1943"', "war_memorials",
              59.91, 10.75, "#000000", "overpass", "2026-01-01T00:00:00Z",
              enrichment={"wikipedia": 'https://no.wikipedia.org/wiki/X" onclick="x'})
    text = popup_html(poi)
    assert "&lt;b&gt;Fort&lt;/b&gt; &amp; co" in text
    assert 'href="https://no.wikipedia.org/wiki/X&quot; onclick=&quot;x"' in text
    assert "<b>&lt;b&gt;" in text


def test_popup_without_enrichment_has_no_link():
    poi = POI("osm:node:2", "Hule", "", "caves", 59.91, 10.75, "#000000", "overpass",
              "2026-01-01T00:00:00Z")
    assert "<a " not in popup_html(poi)
