"""
Stream Deck Host - WebSocket connection to the Stream Deck software
Registers the plugin, routes key events to the lifecycle manager, and
carries image/title/settings updates back to the keys.
"""
import asyncio
import json
from typing import Any, Dict, Optional, Set

import websockets

from ..core.logging_service import LoggingService, get_logger

DEFAULT_ACTION_UUID = 'com.github.dipsylala.big-clock.time-component'


class ActionHandle:
    """
    Display handle for one key instance, identified by its context.
    """

    def __init__(self, connection: 'StreamDeckConnection', context: str):
        self._connection = connection
        self._context = context

    async def set_image(self, image: str) -> None:
        await self._connection.send_event('setImage', self._context, {'image': image, 'target': 0})

    async def set_title(self, title: str) -> None:
        await self._connection.send_event('setTitle', self._context, {'title': title, 'target': 0})

    @property
    def context(self) -> str:
        return self._context

    def __repr__(self) -> str:
        return f"ActionHandle({self._context!r})"


class StreamDeckConnection:
    """
    Plugin side of the Stream Deck WebSocket protocol.

    Also serves as the settings store: saved settings are sent with
    setSettings and the latest settings seen per key are kept for reads.
    """

    def __init__(
        self,
        port: int,
        plugin_uuid: str,
        register_event: str,
        action_uuid: str = DEFAULT_ACTION_UUID,
        host: str = '127.0.0.1',
        logger: Optional[LoggingService] = None
    ):
        """
        Initialize connection.

        Args:
            port: WebSocket port passed by the Stream Deck software
            plugin_uuid: Plugin instance UUID used for registration
            register_event: Registration event name
            action_uuid: Action whose events are handled
            host: Host the Stream Deck software listens on
            logger: Logging service
        """
        self._uri = f"ws://{host}:{port}"
        self._plugin_uuid = plugin_uuid
        self._register_event = register_event
        self._action_uuid = action_uuid
        self._logger = logger or get_logger()

        self._lifecycle: Any = None
        self._websocket: Any = None
        self._handles: Dict[str, ActionHandle] = {}
        self._settings: Dict[str, Dict[str, Any]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def bind(self, lifecycle: Any) -> None:
        """Set the lifecycle manager that receives key events"""
        self._lifecycle = lifecycle

    def attach(self, websocket: Any) -> None:
        """Use an open websocket for outgoing messages"""
        self._websocket = websocket

    async def run(self) -> None:
        """Connect, register, and dispatch events until the host closes the socket"""
        self._logger.info(f"Connecting to Stream Deck at {self._uri}")
        async with websockets.connect(self._uri) as websocket:
            self.attach(websocket)
            try:
                await self._send({'event': self._register_event, 'uuid': self._plugin_uuid})
                self._logger.info("Plugin registered with Stream Deck")

                async for message in websocket:
                    self.handle_message(message)
            except websockets.exceptions.ConnectionClosed as e:
                self._logger.warning(f"Stream Deck connection closed: {e}")
            finally:
                self._websocket = None
                await self.drain()
        self._logger.info("Disconnected from Stream Deck")

    def handle_message(self, message: Any) -> Optional[asyncio.Task]:
        """
        Parse an incoming message and dispatch it in its own task, so a slow
        handler does not hold up the next event.
        """
        try:
            data = json.loads(message)
        except (TypeError, ValueError) as e:
            self._logger.warning(f"Dropping malformed message from Stream Deck: {e}")
            return None
        if not isinstance(data, dict):
            self._logger.warning("Dropping non-object message from Stream Deck")
            return None

        task = asyncio.get_running_loop().create_task(self.dispatch(data))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for event handlers still running"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def dispatch(self, data: Dict[str, Any]) -> None:
        """Route one decoded event to the lifecycle manager"""
        event = data.get('event')
        context = data.get('context')
        action = data.get('action')

        if action is not None and action != self._action_uuid:
            self._logger.debug(f"Ignoring {event} for action {action}")
            return
        if context is None or self._lifecycle is None:
            self._logger.debug(f"Ignoring event {event}")
            return

        payload = data.get('payload') or {}
        self._logger.debug(f"Received {event} for {context}")

        try:
            if event == 'willAppear':
                settings = payload.get('settings') or {}
                self._settings[context] = dict(settings)
                await self._lifecycle.on_shown(context, self._handle_for(context, create=True), settings)
            elif event == 'willDisappear':
                self._handles.pop(context, None)
                self._settings.pop(context, None)
                await self._lifecycle.on_hidden(context)
            elif event == 'didReceiveSettings':
                settings = payload.get('settings') or {}
                if context in self._settings:
                    self._settings[context] = dict(settings)
                await self._lifecycle.on_settings_changed(context, self._handle_for(context), settings)
            elif event == 'sendToPlugin':
                # Keep reads consistent with what the inspector just pushed
                if context in self._settings:
                    self._settings[context].update(payload)
                await self._lifecycle.on_inspector_message(context, self._handle_for(context), payload)
            elif event == 'keyDown':
                await self._lifecycle.on_key_pressed(
                    context, self._handle_for(context), payload.get('settings') or {}
                )
            else:
                self._logger.debug(f"Unhandled event {event}")
        except Exception as e:
            self._logger.error(f"Error handling {event} for {context}: {e}", exc_info=True)

    def _handle_for(self, context: str, create: bool = False) -> ActionHandle:
        """Cached handle for a shown key; unknown keys get a one-off handle"""
        handle = self._handles.get(context)
        if handle is None:
            handle = ActionHandle(self, context)
            if create:
                self._handles[context] = handle
        return handle

    async def send_event(self, event: str, context: str, payload: Optional[Dict[str, Any]] = None) -> None:
        """
        Send an event addressed to one key.

        Raises:
            ConnectionError: If the socket is not open
        """
        message: Dict[str, Any] = {'event': event, 'context': context}
        if payload is not None:
            message['payload'] = payload
        await self._send(message)

    async def _send(self, message: Dict[str, Any]) -> None:
        if self._websocket is None:
            raise ConnectionError("Not connected to Stream Deck")
        await self._websocket.send(json.dumps(message))

    async def save_settings(self, handle: ActionHandle, settings: Dict[str, Any]) -> None:
        self._settings[handle.context] = dict(settings)
        await self.send_event('setSettings', handle.context, dict(settings))

    async def read_settings(self, handle: ActionHandle) -> Optional[Dict[str, Any]]:
        settings = self._settings.get(handle.context)
        return dict(settings) if settings is not None else None
