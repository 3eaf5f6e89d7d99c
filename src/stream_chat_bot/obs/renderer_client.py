"""
OBS WebSocket client for the display pipeline.

Wraps an obsws-python ReqClient. The blocking client runs in a worker
thread; every request goes through one asyncio.Lock so requests reach OBS
in the order they were issued. A failed connect never raises to callers:
it schedules a reconnect with exponential backoff instead.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import obsws_python as obs
from loguru import logger
from obsws_python.error import OBSSDKError, OBSSDKRequestError, OBSSDKTimeoutError
from websocket import (
    WebSocketConnectionClosedException,
    WebSocketException,
    WebSocketTimeoutException,
)

from ..exceptions import RendererConnectionTimeout, RendererError, RendererNotConnectedError
from ..platform_events import PlatformEvents

# Error text that means the socket itself is gone
_CONNECTION_ERROR_KEYWORDS = (
    "connection",
    "closed",
    "refused",
    "reset",
    "broken pipe",
    "timed out",
    "timeout",
)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    IDENTIFIED = "identified"
    RECONNECTING = "reconnecting"


def default_client_factory(host: str, port: int, password: str, timeout: float):
    """Create an obsws-python request client; returns once OBS has identified us."""
    return obs.ReqClient(host=host, port=port, password=password, timeout=timeout)


def classify_connection_error(error: BaseException) -> str:
    """
    Friendly description of a connect failure.

    Returns:
        str: "OBS refused connection", "OBS WebSocket password incorrect"
        or "OBS connection failed: <error>"
    """
    text = str(error).lower()
    if isinstance(error, ConnectionRefusedError) or "refused" in text:
        return "OBS refused connection (is OBS running with WebSocket enabled?)"
    if "auth" in text or "password" in text or "identify" in text or "4009" in text:
        return "OBS WebSocket password incorrect"
    return f"OBS connection failed: {error}"


def is_connection_error(error: BaseException) -> bool:
    if isinstance(
        error,
        (
            ConnectionError,
            OBSSDKTimeoutError,
            WebSocketConnectionClosedException,
            WebSocketTimeoutException,
        ),
    ):
        return True
    text = str(error).lower()
    return any(keyword in text for keyword in _CONNECTION_ERROR_KEYWORDS)


class RendererClient:
    """
    Connection owner for the renderer; the only component that talks to OBS.

    Args:
        obs_config: ObsConfig section
        event_bus: Receives obs:connected / obs:disconnected
        client_factory: (host, port, password, timeout_seconds) -> object with
            send(request_type, data, raw=True); defaults to obsws-python
        sleep: Coroutine used for reconnect delays (seconds)
    """

    def __init__(
        self,
        obs_config,
        event_bus=None,
        client_factory: Optional[Callable[..., Any]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.event_bus = event_bus
        self._client_factory = client_factory or default_client_factory
        self._sleep = sleep

        self._client: Optional[Any] = None
        self._state = ConnectionState.DISCONNECTED
        self._identified = asyncio.Event()
        self._call_lock = asyncio.Lock()
        self._connect_lock = asyncio.Lock()
        self._reconnect_task: Optional[asyncio.Task] = None
        self._shutting_down = False

        self.reconnect_attempts = 0
        self.last_error: Optional[str] = None
        self.scene_item_cache: Dict[Tuple[str, str], int] = {}

        self.update_config(obs_config)

    def update_config(self, obs_config) -> None:
        """
        Read connection settings property by property.

        Password lookups go through resolved_password() so an environment
        secret set after startup is still seen.
        """
        self.obs_config = obs_config
        self.enabled = bool(obs_config.enabled)
        self.address = obs_config.address
        self.host, self.port = obs_config.host_port()
        self.password = obs_config.resolved_password() or ""
        self.connection_timeout_ms = obs_config.connection_timeout_ms
        self.reconnect_base_delay_ms = obs_config.reconnect_base_delay_ms
        self.reconnect_max_delay_ms = obs_config.reconnect_max_delay_ms
        self.reconnect_multiplier = obs_config.reconnect_multiplier
        logger.debug(
            f"[OBS] Config updated - address: {self.address}, "
            f"password: {'yes' if self.password else 'no'}"
        )

    def get_connection_state(self) -> ConnectionState:
        return self._state

    def is_connected(self) -> bool:
        return self._state == ConnectionState.IDENTIFIED and self._client is not None

    def is_ready(self) -> bool:
        """Connected and able to take requests right now."""
        return self.is_connected() and not self._shutting_down

    async def connect(self) -> bool:
        """
        Open the connection and wait for OBS to identify the session.

        Returns:
            bool: True when identified; False on failure (a reconnect is scheduled)
        """
        if not self.enabled:
            logger.debug("[OBS] Renderer disabled in configuration, not connecting")
            return False
        if self.is_connected():
            return True

        async with self._connect_lock:
            if self.is_connected():
                return True
            self._shutting_down = False
            self._state = ConnectionState.CONNECTING
            logger.info(f"[OBS] Connecting to {self.host}:{self.port}")
            timeout_s = self.connection_timeout_ms / 1000

            try:
                client = await asyncio.wait_for(
                    asyncio.to_thread(
                        self._client_factory, self.host, self.port, self.password, timeout_s
                    ),
                    timeout=timeout_s,
                )
            except asyncio.TimeoutError:
                self._on_connect_failed(f"OBS connection timed out after {self.connection_timeout_ms}ms")
                return False
            except Exception as e:
                self._on_connect_failed(classify_connection_error(e))
                return False

            self._client = client
            self._state = ConnectionState.IDENTIFIED
            self._identified.set()
            self.reconnect_attempts = 0
            self.last_error = None
            logger.success(f"[OBS] Connected to OBS WebSocket at {self.host}:{self.port}")
            self._emit(PlatformEvents.OBS_CONNECTED, {"address": self.address})
            return True

    def _on_connect_failed(self, message: str) -> None:
        self.last_error = message
        self._client = None
        self._state = ConnectionState.DISCONNECTED
        self._identified.clear()
        logger.error(f"[OBS] {message}")
        self.schedule_reconnect("connect-failed")

    def get_reconnect_delay_ms(self) -> int:
        delay = self.reconnect_base_delay_ms * (self.reconnect_multiplier ** self.reconnect_attempts)
        return int(min(delay, self.reconnect_max_delay_ms))

    def schedule_reconnect(self, reason: str = "") -> bool:
        """
        Schedule one reconnect attempt after the current backoff delay.

        Returns:
            bool: False when a reconnect is already pending or not possible
        """
        if self._shutting_down or not self.enabled:
            return False
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("[OBS] Cannot schedule reconnect: no running event loop")
            return False

        delay_ms = self.get_reconnect_delay_ms()
        self.reconnect_attempts += 1
        self._state = ConnectionState.RECONNECTING
        logger.debug(f"[OBS] Scheduling reconnect in {delay_ms}ms (reason: {reason or 'unknown'})")
        self._reconnect_task = loop.create_task(self._reconnect_after(delay_ms))
        return True

    async def _reconnect_after(self, delay_ms: int) -> None:
        try:
            await self._sleep(delay_ms / 1000)
        except asyncio.CancelledError:
            return
        # Let connect() schedule the next attempt if this one fails
        self._reconnect_task = None
        if not self._shutting_down:
            await self.connect()

    def handle_connection_closed(self, reason: str = "connection closed") -> None:
        """Mark the session lost and start reconnecting."""
        was_connected = self._state == ConnectionState.IDENTIFIED
        self._client = None
        self._state = ConnectionState.DISCONNECTED
        self._identified.clear()
        self.scene_item_cache.clear()
        if was_connected:
            logger.warning(f"[OBS] Connection lost: {reason}")
            self._emit(PlatformEvents.OBS_DISCONNECTED, {"reason": reason})
        self.schedule_reconnect(reason)

    async def ensure_connected(self, timeout_ms: Optional[int] = None) -> None:
        """
        Wait until the session is identified.

        Raises:
            RendererConnectionTimeout: When not identified within the timeout
        """
        if self.is_connected():
            return
        timeout_ms = self.connection_timeout_ms if timeout_ms is None else timeout_ms
        if self._state == ConnectionState.DISCONNECTED and not self._connect_lock.locked():
            asyncio.get_running_loop().create_task(self.connect())
        try:
            await asyncio.wait_for(self._identified.wait(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise RendererConnectionTimeout(timeout_ms) from None

    async def call(self, request_type: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Send one request, in issue order.

        Args:
            request_type: OBS request name, e.g. "SetInputSettings"
            data: Request fields

        Returns:
            dict: Raw response data ({} when OBS returns none)

        Raises:
            RendererNotConnectedError: No identified session
            RendererError: OBS rejected the request or the socket failed
        """
        async with self._call_lock:
            client = self._client
            if client is None or self._state != ConnectionState.IDENTIFIED:
                raise RendererNotConnectedError()
            try:
                response = await asyncio.to_thread(client.send, request_type, data, raw=True)
            except OBSSDKRequestError as e:
                raise RendererError(f"{request_type} failed: {e}") from e
            except (OBSSDKError, WebSocketException, OSError) as e:
                if is_connection_error(e):
                    self.handle_connection_closed(str(e))
                raise RendererError(f"{request_type} failed: {e}") from e
        return response or {}

    async def get_scene_item_id(self, scene_name: str, source_name: str) -> int:
        """Scene item id of a source, cached per (scene, source)."""
        key = (scene_name, source_name)
        if key in self.scene_item_cache:
            return self.scene_item_cache[key]
        response = await self.call(
            "GetSceneItemId", {"sceneName": scene_name, "sourceName": source_name}
        )
        scene_item_id = response.get("sceneItemId")
        if not isinstance(scene_item_id, int):
            raise RendererError(
                f'Scene item ID for source "{source_name}" in scene "{scene_name}" not found'
            )
        self.scene_item_cache[key] = scene_item_id
        return scene_item_id

    async def disconnect(self) -> None:
        """Close the session and stop reconnecting."""
        self._shutting_down = True
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._reconnect_task = None

        client = self._client
        self._client = None
        self._identified.clear()
        was_connected = self._state == ConnectionState.IDENTIFIED
        self._state = ConnectionState.DISCONNECTED
        self.scene_item_cache.clear()
        if client is not None:
            try:
                await asyncio.to_thread(client.disconnect)
            except Exception as e:
                logger.debug(f"[OBS] Error while closing connection: {e}")
        if was_connected:
            logger.info("[OBS] Disconnected from OBS WebSocket")
            self._emit(PlatformEvents.OBS_DISCONNECTED, {"reason": "shutdown"})

    def _emit(self, topic, payload: Dict[str, Any]) -> None:
        if self.event_bus is not None:
            self.event_bus.emit(topic, payload)
