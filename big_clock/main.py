"""
Main entry point for the Big Clock Stream Deck plugin
"""
import argparse
import asyncio
import json
import signal
import sys
from typing import List, Optional

from big_clock.core.config_service import config
from big_clock.core.clock_service import ClockService
from big_clock.core.cell_registry import CellRegistry
from big_clock.core.cell_settings import BlinkPolicy
from big_clock.core.lifecycle import LifecycleManager
from big_clock.core.logging_service import get_logger
from big_clock.core.scheduler import Scheduler
from big_clock.host.streamdeck import DEFAULT_ACTION_UUID, StreamDeckConnection
from big_clock.render.render_dispatcher import RenderDispatcher

VERSION = '1.0.0'


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse the arguments the Stream Deck software launches plugins with"""
    parser = argparse.ArgumentParser(description='Big Clock Stream Deck plugin')
    parser.add_argument('-port', type=int, required=True)
    parser.add_argument('-pluginUUID', required=True)
    parser.add_argument('-registerEvent', required=True)
    parser.add_argument('-info', default='{}')
    return parser.parse_args(argv)


class Application:
    """
    Plugin orchestrator. Owns the scheduler and wires it to the host.
    """

    def __init__(self, args: argparse.Namespace):
        """Initialize application"""
        config.reload()

        log_level = config.get('logging.level', 'INFO')
        self._logger = get_logger('big-clock', log_level)
        self._logger.log_startup(VERSION, self._get_config_summary())

        self._args = args
        self._scheduler: Optional[Scheduler] = None
        self._lifecycle: Optional[LifecycleManager] = None
        self._connection: Optional[StreamDeckConnection] = None

    def _get_config_summary(self) -> dict:
        """Get configuration summary for logging"""
        return {
            'timezone': config.get('timezone', ''),
            'blink_policy': config.get('scheduler.blink_policy', 'sub-second'),
            'render_format': config.get('render.format', 'png'),
        }

    def _initialize_services(self) -> None:
        """Build the scheduler stack and the host connection"""
        self._logger.info("Initializing services")

        info = self._parse_info(self._args.info)
        if info:
            application = info.get('application', {})
            self._logger.info(
                f"Stream Deck {application.get('version', '?')} on {application.get('platform', '?')}"
            )

        clock = ClockService(config.get('timezone', ''))
        policy = BlinkPolicy.parse(config.get('scheduler.blink_policy', 'sub-second'))

        self._connection = StreamDeckConnection(
            port=self._args.port,
            plugin_uuid=self._args.pluginUUID,
            register_event=self._args.registerEvent,
            action_uuid=config.get('streamdeck.action_uuid', DEFAULT_ACTION_UUID),
            host=config.get('streamdeck.host', '127.0.0.1'),
            logger=self._logger
        )

        registry = CellRegistry()
        dispatcher = RenderDispatcher(config.get('render.format', 'png'), logger=self._logger)

        self._scheduler = Scheduler(
            registry,
            dispatcher,
            clock=clock.get_current_time,
            blink_policy=policy,
            settings_store=self._connection,
            supervisor_delay=float(config.get('scheduler.supervisor_delay', 2.0)),
            stop_grace=float(config.get('scheduler.stop_grace', 0.0)),
            refresh_settings=bool(config.get('scheduler.refresh_settings', False)),
            logger=self._logger
        )

        self._lifecycle = LifecycleManager(
            registry,
            self._scheduler,
            dispatcher,
            settings_store=self._connection,
            clock=clock.get_current_time,
            followup_delay=float(config.get('lifecycle.followup_delay', 0.05)),
            logger=self._logger
        )
        self._connection.bind(self._lifecycle)

    def _parse_info(self, raw: str) -> dict:
        try:
            info = json.loads(raw)
        except ValueError:
            self._logger.warning("Could not parse -info argument")
            return {}
        return info if isinstance(info, dict) else {}

    def _setup_signal_handlers(self, task: asyncio.Task) -> None:
        """Cancel the connection on SIGINT/SIGTERM so shutdown runs"""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, task.cancel)
            except (NotImplementedError, RuntimeError):
                # Not supported on Windows event loops
                pass

    async def run(self) -> None:
        """Run the plugin until the Stream Deck software disconnects"""
        self._initialize_services()
        self._scheduler.init()

        task = asyncio.get_running_loop().create_task(self._connection.run())
        self._setup_signal_handlers(task)
        self._logger.info("Plugin started successfully")

        try:
            await task
        except asyncio.CancelledError:
            self._logger.info("Shutdown requested")
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Cleanup and shutdown"""
        self._logger.info("Shutting down plugin")

        if self._lifecycle:
            await self._lifecycle.shutdown()
        if self._scheduler:
            await self._scheduler.shutdown()

        self._logger.log_shutdown()


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point"""
    app = Application(parse_args(argv))
    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        pass
    except Exception as e:
        get_logger().critical(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
