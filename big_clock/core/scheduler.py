"""
Scheduler - One shared timer that redraws every registered cell in lockstep

State machine:
    STOPPED  --ensure_started()-->  STARTING  (one-shot wake-up at next whole second)
    STARTING --wake-up-->           RUNNING   (recurring timer installed)
    RUNNING/STARTING --ensure_stopped() with empty registry--> STOPPED
"""
import asyncio
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from .cell_registry import Cell, CellRegistry
from .cell_settings import BlinkPolicy
from .glyph_resolver import needs_subsecond_refresh, resolve_for, tick_interval
from .logging_service import LoggingService, get_logger
from ..host.interfaces import SettingsStore


class SchedulerState(str, Enum):
    STOPPED = 'stopped'
    STARTING = 'starting'
    RUNNING = 'running'


class Scheduler:
    """
    Owns the single recurring timer shared by all cells.

    Everything runs on one asyncio loop. Handlers interleave only at awaits,
    so state is re-checked after every suspension point instead of locked.
    """

    def __init__(
        self,
        registry: CellRegistry,
        dispatcher: Any,
        clock: Optional[Callable[[], datetime]] = None,
        blink_policy: BlinkPolicy = BlinkPolicy.SUB_SECOND,
        settings_store: Optional[SettingsStore] = None,
        supervisor_delay: float = 2.0,
        stop_grace: float = 0.0,
        refresh_settings: bool = False,
        logger: Optional[LoggingService] = None
    ):
        """
        Initialize scheduler.

        Args:
            registry: Registry of visible cells
            dispatcher: RenderDispatcher used to draw cells
            clock: Callable returning the current time
            blink_policy: Colon blink policy; also selects the tick period
            settings_store: Optional SettingsStore used to refresh settings before drawing
            supervisor_delay: Seconds after a registration before the missing-timer check
            stop_grace: Seconds to wait before stopping once the registry is empty
            refresh_settings: Re-read each cell's settings from the store before drawing
            logger: Logging service
        """
        self._registry = registry
        self._dispatcher = dispatcher
        self._clock = clock or datetime.now
        self._policy = blink_policy
        self._settings_store = settings_store
        self._supervisor_delay = supervisor_delay
        self._stop_grace = stop_grace
        self._refresh_settings = refresh_settings
        self._logger = logger or get_logger()

        self._interval = tick_interval(blink_policy)
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        self._timer: Optional[asyncio.Task] = None
        self._start_handle: Optional[asyncio.TimerHandle] = None
        self._setting_up = False
        self._watermark: Optional[int] = None

        self._inflight: Dict[str, asyncio.Task] = {}
        self._missed: Set[str] = set()
        self._pending: Set[asyncio.TimerHandle] = set()
        self._timers_started = 0
        self._ticks = 0
        self._evictions = 0

    def init(self) -> None:
        """Bind to the running event loop. Must be called from a coroutine."""
        self._loop = asyncio.get_running_loop()
        self._logger.info(
            f"Scheduler initialized: policy={self._policy.value}, tick={self._interval * 1000:.0f} ms"
        )

    async def shutdown(self) -> None:
        """Cancel the timer and pending checks, then wait for in-flight renders"""
        for handle in list(self._pending):
            handle.cancel()
        self._pending.clear()

        if self._start_handle is not None:
            self._start_handle.cancel()
            self._start_handle = None
        self._setting_up = False

        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.cancel()
            await asyncio.gather(timer, return_exceptions=True)

        inflight = list(self._inflight.values())
        if inflight:
            await asyncio.gather(*inflight, return_exceptions=True)

        self._loop = None
        self._logger.info("Scheduler shut down")

    def ensure_started(self) -> bool:
        """
        Start the shared timer if it is neither running nor being set up.

        Returns:
            True if a new setup attempt was scheduled
        """
        loop = self._require_loop()
        if self._timer is not None or self._setting_up:
            self._logger.debug("Timer already exists or is being set up, skipping")
            return False

        self._setting_up = True
        now = self._clock()
        delay = 1.0 - now.microsecond / 1_000_000
        self._start_handle = loop.call_later(delay, self._on_start_wakeup)
        self._logger.info(
            f"Setting up timer for {self._registry.size()} cells, first tick in {delay * 1000:.0f} ms"
        )
        return True

    def _on_start_wakeup(self) -> None:
        """Second boundary reached: install the recurring timer"""
        self._start_handle = None

        # Another attempt may have won while this one waited
        if self._timer is not None:
            self._logger.info("Timer was created while waiting, aborting setup")
            self._setting_up = False
            return

        self._watermark = None
        self._timer = self._loop.create_task(self._run_timer())
        self._timers_started += 1
        self._setting_up = False
        self._logger.info("Timer started successfully")

    async def _run_timer(self) -> None:
        """Recurring timer body; ticks on a fixed period without drifting"""
        loop = self._loop
        next_at = loop.time()
        while True:
            try:
                self.tick()
            except Exception as e:
                self._logger.error(f"Tick failed: {e}", exc_info=True)
            next_at += self._interval
            await asyncio.sleep(max(0.0, next_at - loop.time()))

    def tick(self) -> List[asyncio.Task]:
        """
        Run one timer tick.

        Every cell is redrawn when the second changes; blinking colons under
        the sub-second policy are redrawn on every tick. A cell whose previous
        render is still in flight is skipped so a slow key cannot hold up the
        rest. If that skip cost the cell a second change, it is redrawn on the
        first tick after its render completes.

        Returns:
            Render tasks started by this tick
        """
        loop = self._require_loop()
        now = self._clock()
        second = int(now.timestamp())
        second_changed = second != self._watermark
        self._ticks += 1

        cells = self._registry.snapshot()
        if not cells:
            # Stopping is left to removal events
            self._missed.clear()
            return []

        tasks = []
        for cell in cells:
            due = second_changed or cell.id in self._missed
            if not (due or needs_subsecond_refresh(cell.settings, self._policy)):
                continue
            if cell.id in self._inflight:
                if due:
                    self._missed.add(cell.id)
                continue
            self._missed.discard(cell.id)
            task = loop.create_task(self._render_cell(cell, now))
            self._track(cell.id, task)
            tasks.append(task)

        self._missed.intersection_update(cell.id for cell in cells)
        if second_changed:
            self._watermark = second
        return tasks

    def _track(self, cell_id: str, task: asyncio.Task) -> None:
        self._inflight[cell_id] = task

        def done(_task: asyncio.Task) -> None:
            if self._inflight.get(cell_id) is _task:
                del self._inflight[cell_id]

        task.add_done_callback(done)

    async def _render_cell(self, cell: Cell, now: datetime) -> None:
        """Draw one cell; a failure evicts that cell only"""
        settings = cell.settings
        if self._refresh_settings and self._settings_store is not None:
            settings = await self._read_fresh_settings(cell)

        try:
            glyph = resolve_for(now, settings, self._policy)
            await self._dispatcher.render(cell.handle, glyph, settings)
        except Exception as e:
            self._logger.error(f"Error updating cell {cell.id}: {e}")
            self._evict(cell)

    async def _read_fresh_settings(self, cell: Cell):
        """Settings from the store merged over the cached ones; cached on failure"""
        try:
            raw = await self._settings_store.read_settings(cell.handle)
        except Exception as e:
            self._logger.debug(f"Settings read failed for cell {cell.id}, using cached: {e}")
            return cell.settings

        settings = cell.settings.merged(raw)
        if settings != cell.settings:
            current = self._registry.get(cell.id)
            if current is not None and current.handle is cell.handle:
                self._registry.upsert(cell.id, cell.handle, settings)
        return settings

    def _evict(self, cell: Cell) -> None:
        """Drop a failing cell, unless its id was re-registered meanwhile"""
        if not self._registry.remove_if(cell.id, cell.handle):
            return
        self._evictions += 1
        self._logger.warning(f"Evicted cell {cell.id}, {self._registry.size()} cells remaining")
        if self._registry.size() == 0:
            self.ensure_stopped()

    def ensure_stopped(self) -> bool:
        """
        Stop the timer if the registry is empty.

        With a stop grace period the emptiness check is deferred and
        re-confirmed when it fires.

        Returns:
            True if the timer (or a pending start) was stopped now
        """
        if self._stop_grace > 0:
            self._schedule(self._stop_grace, self._stop_if_idle)
            return False
        return self._stop_if_idle()

    def _stop_if_idle(self) -> bool:
        if self._registry.size() > 0:
            return False

        stopped = False
        if self._start_handle is not None:
            self._start_handle.cancel()
            self._start_handle = None
            stopped = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            stopped = True
        self._setting_up = False

        if stopped:
            self._logger.info("Cleaning up timer - no active cells")
        return stopped

    def schedule_supervisor(self) -> None:
        """One-shot check that restarts the timer if a setup attempt was lost"""
        self._schedule(self._supervisor_delay, self._supervise)

    def _supervise(self) -> None:
        if self._registry.size() > 0 and self._timer is None and not self._setting_up:
            self._logger.info("Timer was missing - restarting")
            self.ensure_started()

    def _schedule(self, delay: float, callback: Callable[[], Any]) -> None:
        loop = self._require_loop()
        handle: Optional[asyncio.TimerHandle] = None

        def fire() -> None:
            self._pending.discard(handle)
            callback()

        handle = loop.call_later(delay, fire)
        self._pending.add(handle)

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise RuntimeError("Scheduler is not initialized; call init() from the event loop")
        return self._loop

    @property
    def state(self) -> SchedulerState:
        if self._timer is not None:
            return SchedulerState.RUNNING
        if self._setting_up:
            return SchedulerState.STARTING
        return SchedulerState.STOPPED

    @property
    def watermark(self) -> Optional[int]:
        """Last integer second (epoch) the timer observed"""
        return self._watermark

    @property
    def blink_policy(self) -> BlinkPolicy:
        return self._policy

    def get_status(self) -> dict:
        """
        Get scheduler status.

        Returns:
            Dictionary with state and counters
        """
        return {
            'state': self.state.value,
            'cells': self._registry.size(),
            'blink_policy': self._policy.value,
            'tick_interval': self._interval,
            'timers_started': self._timers_started,
            'ticks': self._ticks,
            'evictions': self._evictions,
            'renders_in_flight': len(self._inflight),
        }
