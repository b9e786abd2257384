"""
Map session — the per-session context object.

Builds the fetch client, cache, adapters, dispatcher and activation
state once and wires them together.  The map host feeds it viewport
settle events and checkbox toggles; listeners get POI lists, raster
layer lists and warning banners back.

Usage
-----
    async with MapSession(Settings.from_env()) as session:
        session.on_pois(renderer.set_pois)
        session.on_viewport_settled(viewport)
        session.toggle_category("war_memorials")
        await session.wait_idle()
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, FrozenSet, List, Optional, Set

import httpx

from ..categories.state import CategoryActivationState
from ..categories.tree import CategoryTree, default_tree
from ..config import Settings
from ..geo.bounds import ViewportWindow
from ..ingest import build_adapters
from ..ingest.cache import ResultCache
from ..ingest.fetch_client import RateLimitedFetchClient
from ..poi.custom import CustomPOIProvider, load_custom_pois
from ..poi.model import POI, RasterLayerDescriptor
from .dispatcher import DispatchResult, ViewportDispatcher

log = logging.getLogger(__name__)


class MapSession:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        tree: Optional[CategoryTree] = None,
        custom: Optional[CustomPOIProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.settings = settings or Settings()
        client_kwargs = {}
        if clock is not None:
            client_kwargs["clock"] = clock
        if sleep is not None:
            client_kwargs["sleep"] = sleep
        self.client = RateLimitedFetchClient(self.settings, transport=transport, **client_kwargs)
        self.cache = (ResultCache(self.settings.cache_ttl_s, clock) if clock is not None
                      else ResultCache(self.settings.cache_ttl_s))
        if custom is None and self.settings.custom_poi_file:
            custom = load_custom_pois(self.settings.custom_poi_file)
        self.custom = custom or CustomPOIProvider()
        self.adapters = build_adapters(self.client, self.settings)
        self.dispatcher = ViewportDispatcher(self.adapters, self.cache, self.custom,
                                             on_result=self._publish)
        self.state = CategoryActivationState(tree or default_tree())
        self.viewport: Optional[ViewportWindow] = None

        self._pending: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._poi_listeners: List[Callable[[List[POI]], None]] = []
        self._layer_listeners: List[Callable[[List[RasterLayerDescriptor]], None]] = []
        self._warning_listeners: List[Callable[[Optional[str]], None]] = []

    async def __aenter__(self) -> "MapSession":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # ── Listeners ─────────────────────────────────────────────────────

    def on_pois(self, callback: Callable[[List[POI]], None]) -> None:
        self._poi_listeners.append(callback)

    def on_layers(self, callback: Callable[[List[RasterLayerDescriptor]], None]) -> None:
        self._layer_listeners.append(callback)

    def on_warning(self, callback: Callable[[Optional[str]], None]) -> None:
        self._warning_listeners.append(callback)

    def _publish(self, result: DispatchResult) -> None:
        for cb in self._poi_listeners:
            cb(result.pois)
        for cb in self._layer_listeners:
            cb(result.layers)
        summary = result.summary
        if summary:
            log.warning("%s", summary)
        for cb in self._warning_listeners:
            cb(summary)

    # ── Inputs ────────────────────────────────────────────────────────

    @property
    def active_codes(self) -> FrozenSet[str]:
        return self.state.active_codes()

    def on_viewport_settled(self, viewport: ViewportWindow) -> Optional[asyncio.Task]:
        self.viewport = viewport
        return self._start_cycle()

    def toggle_category(self, node_id: str) -> FrozenSet[str]:
        """Flip a checkbox; dispatch after the debounce, or clear at once."""
        self.state.toggle(node_id)
        codes = self.state.active_codes()
        if not codes:
            self._cancel_pending()
            self.dispatcher.clear()
        else:
            self._schedule()
        return codes

    def toggle_expanded(self, node_id: str) -> bool:
        return self.state.toggle_expanded(node_id)

    async def refresh(self) -> Optional[DispatchResult]:
        """Run a cycle now for the last viewport and wait for it."""
        if self.viewport is None:
            return None
        self._cancel_pending()
        return await self.dispatcher.dispatch(self.viewport, self.state.active_codes())

    def clear_cache(self) -> None:
        self.cache.clear()

    # ── Scheduling ────────────────────────────────────────────────────

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _schedule(self) -> None:
        self._cancel_pending()
        loop = asyncio.get_running_loop()
        self._pending = loop.call_later(self.settings.toggle_debounce_s, self._fire_pending)

    def _fire_pending(self) -> None:
        self._pending = None
        self._start_cycle()

    def _start_cycle(self) -> Optional[asyncio.Task]:
        if self.viewport is None:
            log.debug("No viewport yet, dispatch deferred")
            return None
        task = asyncio.ensure_future(
            self.dispatcher.dispatch(self.viewport, self.state.active_codes())
        )
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("Dispatch cycle failed", exc_info=task.exception())

    async def wait_idle(self) -> None:
        """Wait until no debounce is pending and no cycle is running."""
        while self._pending is not None or self._tasks:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(self.settings.toggle_debounce_s / 2.0)

    async def aclose(self) -> None:
        self._cancel_pending()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.client.aclose()
