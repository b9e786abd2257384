"""
Desktop map window: category checkboxes on the left, the map on the right,
warnings in the status bar.

Qt and asyncio share one loop through qasync, so dispatch cycles run as
ordinary tasks while Qt keeps painting.

Usage
-----
    python -m trakke gui --center 59.91,10.75 --zoom 13
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Dict, Optional, Tuple

import qasync
from PyQt5 import QtCore, QtWidgets

from ..categories.tree import CategoryNode
from ..config import Settings
from ..dispatch.session import MapSession
from .map_widget import MapWidget
from .overlay import OverlayRenderer

log = logging.getLogger(__name__)

_NODE_ID_ROLE = QtCore.Qt.UserRole


class MainWindow(QtWidgets.QMainWindow):
    def __init__(
        self,
        session: MapSession,
        center: Tuple[float, float] = (59.91, 10.75),
        zoom: float = 12.0,
    ):
        super().__init__()
        self.setWindowTitle("Tråkke")
        self.resize(1200, 800)
        self.session = session

        self.map = MapWidget(center=center, zoom=zoom)
        self.renderer = OverlayRenderer(self.map)

        self._tree = QtWidgets.QTreeWidget()
        self._tree.setHeaderHidden(True)
        self._tree.setMinimumWidth(240)
        self._items: Dict[str, QtWidgets.QTreeWidgetItem] = {}
        self._build_tree()

        self._style_box = QtWidgets.QComboBox()
        self._style_box.addItems(["light", "terrain", "dark"])
        toolbar = self.addToolBar("Kart")
        toolbar.addWidget(QtWidgets.QLabel(" Bakgrunn: "))
        toolbar.addWidget(self._style_box)

        splitter = QtWidgets.QSplitter(QtCore.Qt.Horizontal)
        splitter.addWidget(self._tree)
        splitter.addWidget(self.map)
        splitter.setStretchFactor(1, 1)
        self.setCentralWidget(splitter)

        # map host → renderer
        self.map.frame_changed.connect(self.renderer.on_frame)
        self.map.marker_hovered.connect(self.renderer.on_marker_hover)
        self.map.marker_clicked.connect(self.renderer.on_marker_click)
        self.map.background_clicked.connect(self.renderer.on_map_click)
        self.map.style_loaded.connect(self.renderer.on_style_loaded)
        self.map.viewport_settled.connect(self.session.on_viewport_settled)

        # session → renderer / chrome
        self.session.on_pois(self.renderer.set_pois)
        self.session.on_layers(self.renderer.set_active_layers)
        self.session.on_warning(self._show_warning)

        self._tree.itemChanged.connect(self._on_item_changed)
        self._tree.itemExpanded.connect(self._on_item_expanded)
        self._tree.itemCollapsed.connect(self._on_item_expanded)
        self._style_box.currentTextChanged.connect(self.map.set_base_style)

        self.statusBar().showMessage("Velg kategorier for å vise interessepunkter")

    # ── Category tree ─────────────────────────────────────────────────

    def _build_tree(self) -> None:
        def add(node: CategoryNode, parent: Optional[QtWidgets.QTreeWidgetItem]) -> None:
            item = QtWidgets.QTreeWidgetItem([node.label])
            item.setData(0, _NODE_ID_ROLE, node.id)
            item.setFlags(item.flags() | QtCore.Qt.ItemIsUserCheckable)
            item.setCheckState(0, QtCore.Qt.Unchecked)
            if parent is None:
                self._tree.addTopLevelItem(item)
            else:
                parent.addChild(item)
            self._items[node.id] = item
            for child in node.children:
                add(child, item)

        for root in self.session.state.tree.roots:
            add(root, None)

    def _sync_checks(self) -> None:
        self._tree.blockSignals(True)
        try:
            for node_id, item in self._items.items():
                checked = self.session.state.checked[node_id]
                item.setCheckState(0, QtCore.Qt.Checked if checked else QtCore.Qt.Unchecked)
        finally:
            self._tree.blockSignals(False)

    def _on_item_changed(self, item: QtWidgets.QTreeWidgetItem, column: int) -> None:
        node_id = item.data(0, _NODE_ID_ROLE)
        wanted = item.checkState(0) == QtCore.Qt.Checked
        if wanted != self.session.state.checked[node_id]:
            self.session.toggle_category(node_id)
        self._sync_checks()

    def _on_item_expanded(self, item: QtWidgets.QTreeWidgetItem) -> None:
        node_id = item.data(0, _NODE_ID_ROLE)
        if self.session.state.expanded[node_id] != item.isExpanded():
            self.session.toggle_expanded(node_id)

    def _show_warning(self, summary: Optional[str]) -> None:
        if summary:
            self.statusBar().showMessage(summary)
        else:
            self.statusBar().clearMessage()


def run(settings: Settings, center: Tuple[float, float], zoom: float) -> int:
    app = QtWidgets.QApplication(sys.argv[:1])
    app.setStyle("Fusion")
    loop = qasync.QEventLoop(app)
    asyncio.set_event_loop(loop)

    session = MapSession(settings)
    win = MainWindow(session, center=center, zoom=zoom)
    win.show()

    def _sigint_handler(*_args):
        log.info("SIGINT received, closing window")
        win.close()

    signal.signal(signal.SIGINT, _sigint_handler)
    signal.signal(signal.SIGTERM, _sigint_handler)

    closed = asyncio.Event()
    app.aboutToQuit.connect(closed.set)

    async def _main() -> None:
        await closed.wait()
        await win.map.aclose()
        await session.aclose()

    with loop:
        loop.run_until_complete(_main())
    return 0
