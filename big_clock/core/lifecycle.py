"""
Lifecycle Manager - Turns host key events into registry and scheduler changes
"""
import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set

from .cell_registry import CellRegistry
from .cell_settings import CellSettings
from .glyph_resolver import resolve_for
from .logging_service import LoggingService, get_logger
from .scheduler import Scheduler
from ..host.interfaces import DisplayHandle, SettingsStore


class LifecycleManager:
    """
    Entry points invoked by the host connection for each key event.
    """

    def __init__(
        self,
        registry: CellRegistry,
        scheduler: Scheduler,
        dispatcher: Any,
        settings_store: Optional[SettingsStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
        followup_delay: float = 0.05,
        logger: Optional[LoggingService] = None
    ):
        """
        Initialize lifecycle manager.

        Args:
            registry: Registry of visible cells
            scheduler: Shared scheduler
            dispatcher: RenderDispatcher for forced redraws
            settings_store: SettingsStore used to persist defaulted settings
            clock: Callable returning the current time
            followup_delay: Seconds before the second redraw after a settings change (0 disables)
            logger: Logging service
        """
        self._registry = registry
        self._scheduler = scheduler
        self._dispatcher = dispatcher
        self._settings_store = settings_store
        self._clock = clock or datetime.now
        self._followup_delay = followup_delay
        self._logger = logger or get_logger()

        self._followups: Set[asyncio.Task] = set()

    async def on_shown(self, cell_id: str, handle: DisplayHandle, raw_settings: Optional[Dict[str, Any]]) -> None:
        """
        Key became visible: default its settings, register it, draw it, and
        make sure the shared timer runs.
        """
        settings = CellSettings.materialize(raw_settings)

        # Register before the first await so a racing hide sees the cell
        self._registry.upsert(cell_id, handle, settings)
        self._logger.info(f"Cell {cell_id} added, {self._registry.size()} total cells")
        self._scheduler.ensure_started()
        self._scheduler.schedule_supervisor()

        if self._settings_store is not None:
            try:
                await self._settings_store.save_settings(handle, settings.to_payload())
            except Exception as e:
                self._logger.warning(f"Failed to save settings for cell {cell_id}: {e}")

        await self._render_now(cell_id, handle, settings)

    async def on_hidden(self, cell_id: str) -> None:
        """Key went away: unregister it and stop the timer once nothing is left"""
        removed = self._registry.remove(cell_id)
        remaining = self._registry.size()
        if removed:
            self._logger.info(f"Cell {cell_id} removed, {remaining} cells remaining")
        else:
            self._logger.debug(f"Cell {cell_id} was not registered")

        if remaining == 0:
            self._scheduler.ensure_stopped()

    async def on_settings_changed(self, cell_id: str, handle: DisplayHandle, payload: Optional[Dict[str, Any]]) -> None:
        """
        New settings saved for a key: cache them and redraw immediately.

        Settings for a key that is not registered are drawn but not cached.
        A late event for a hidden key must not register it again, since the
        timer only runs while cells are registered.
        """
        settings = self._apply_settings(cell_id, handle, payload)
        await self._render_now(cell_id, handle, settings)
        self._schedule_followup(cell_id, handle, settings)

    async def on_inspector_message(self, cell_id: str, handle: DisplayHandle, payload: Optional[Dict[str, Any]]) -> None:
        """Live update from the property inspector; same handling as a settings change"""
        if not payload:
            return
        await self.on_settings_changed(cell_id, handle, payload)

    async def on_key_pressed(self, cell_id: str, handle: DisplayHandle, payload: Optional[Dict[str, Any]]) -> None:
        """Manual refresh; the registry is left untouched"""
        await self._render_now(cell_id, handle, self._settings_for(cell_id).merged(payload))

    async def shutdown(self) -> None:
        """Cancel pending follow-up redraws"""
        tasks = list(self._followups)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._followups.clear()

    def _settings_for(self, cell_id: str) -> CellSettings:
        cell = self._registry.get(cell_id)
        if cell is not None:
            return cell.settings
        # Event for a key that was never shown; draw it with defaults
        return CellSettings.materialize(None)

    def _apply_settings(self, cell_id: str, handle: DisplayHandle, payload: Optional[Dict[str, Any]]) -> CellSettings:
        settings = self._settings_for(cell_id).merged(payload)
        if cell_id in self._registry:
            self._registry.upsert(cell_id, handle, settings)
        else:
            self._logger.debug(f"Settings for unregistered cell {cell_id} not cached")
        return settings

    def _schedule_followup(self, cell_id: str, handle: DisplayHandle, settings: CellSettings) -> None:
        if self._followup_delay <= 0:
            return

        async def followup() -> None:
            await asyncio.sleep(self._followup_delay)
            cell = self._registry.get(cell_id)
            await self._render_now(cell_id, handle, cell.settings if cell is not None else settings)

        task = asyncio.get_running_loop().create_task(followup())
        self._followups.add(task)
        task.add_done_callback(self._followups.discard)

    async def _render_now(self, cell_id: str, handle: DisplayHandle, settings: CellSettings) -> None:
        """Forced redraw outside the tick cadence; failures are logged only"""
        try:
            glyph = resolve_for(self._clock(), settings, self._scheduler.blink_policy)
            await self._dispatcher.render(handle, glyph, settings)
        except Exception as e:
            self._logger.error(f"Error updating cell {cell_id}: {e}")
