import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from websocket import WebSocketConnectionClosedException

from stream_chat_bot.config_manager import GoalsConfig, ObsConfig
from stream_chat_bot.exceptions import (
    RendererConnectionTimeout,
    RendererError,
    RendererNotConnectedError,
)
from stream_chat_bot.monetization import GoalTracker
from stream_chat_bot.obs import (
    ConnectionState,
    GoalDisplay,
    ObsEffects,
    ObsSources,
    RendererClient,
    classify_connection_error,
    sanitize_for_obs,
)
from stream_chat_bot.platform_events import PlatformEvents

from conftest import FakeObsClient, FastSleep, settle


class BlockingSleep:
    """재연결 대기를 기록하고 취소될 때까지 멈춰 있는 sleep"""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)
        await asyncio.Event().wait()


def _obs_config(**overrides):
    data = {
        "enabled": True,
        "password": "secret",
        "connectionTimeoutMs": 1000,
        "reconnectBaseDelayMs": 1000,
        "reconnectMaxDelayMs": 5000,
    }
    data.update(overrides)
    return ObsConfig.model_validate(data)


# ---------------------------------------------------------------------------
# RendererClient
# ---------------------------------------------------------------------------


def test_classify_connection_error():
    assert classify_connection_error(ConnectionRefusedError()).startswith("OBS refused connection")
    assert classify_connection_error(Exception("authentication failed")) == "OBS WebSocket password incorrect"
    assert classify_connection_error(Exception("weird")) == "OBS connection failed: weird"


def test_reconnect_delay_backoff():
    client = RendererClient(_obs_config())
    delays = []
    for attempts in range(8):
        client.reconnect_attempts = attempts
        delays.append(client.get_reconnect_delay_ms())
    assert delays[:3] == [1000, 1300, 1690]
    assert delays[-1] == 5000


@pytest.mark.asyncio
async def test_disabled_renderer_never_connects():
    factory = MagicMock()
    client = RendererClient(_obs_config(enabled=False), client_factory=factory)

    assert await client.connect() is False
    factory.assert_not_called()
    assert client.get_connection_state() == ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_connect_success_emits_connected(event_bus, obs_client):
    connected = []
    event_bus.subscribe(PlatformEvents.OBS_CONNECTED, connected.append)
    factory = MagicMock(return_value=obs_client)
    client = RendererClient(_obs_config(), event_bus, client_factory=factory)

    assert await client.connect() is True

    factory.assert_called_once_with("localhost", 4455, "secret", 1.0)
    assert client.is_connected() and client.is_ready()
    assert client.get_connection_state() == ConnectionState.IDENTIFIED
    assert connected == [{"address": "ws://localhost:4455"}]


@pytest.mark.asyncio
async def test_connect_failure_schedules_reconnect():
    """연결 실패 시 예외 없이 재연결이 예약되어야 함"""
    sleep = BlockingSleep()
    factory = MagicMock(side_effect=ConnectionRefusedError("refused"))
    client = RendererClient(_obs_config(), client_factory=factory, sleep=sleep)

    assert await client.connect() is False
    await settle()

    assert client.get_connection_state() == ConnectionState.RECONNECTING
    assert client.reconnect_attempts == 1
    assert client.last_error.startswith("OBS refused connection")
    assert sleep.calls == [1.0]
    # a second schedule while one is pending is refused
    assert client.schedule_reconnect("again") is False

    await client.disconnect()
    await settle()
    assert client.get_connection_state() == ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_reconnect_succeeds_after_failure(event_bus, obs_client):
    connected = []
    event_bus.subscribe(PlatformEvents.OBS_CONNECTED, connected.append)
    factory = MagicMock(side_effect=[ConnectionRefusedError("refused"), obs_client])
    client = RendererClient(_obs_config(), event_bus, client_factory=factory, sleep=FastSleep())

    assert await client.connect() is False
    for _ in range(20):
        if client.is_connected():
            break
        await asyncio.sleep(0.01)

    assert client.is_connected()
    assert client.reconnect_attempts == 0
    assert len(connected) == 1


@pytest.mark.asyncio
async def test_call_requires_identified_session():
    client = RendererClient(_obs_config())
    with pytest.raises(RendererNotConnectedError):
        await client.call("GetVersion")


@pytest.mark.asyncio
async def test_call_sends_raw_requests(obs_client):
    obs_client.responses["GetVersion"] = {"obsVersion": "30.0"}
    client = RendererClient(_obs_config(), client_factory=lambda *a: obs_client)
    await client.connect()

    response = await client.call("GetVersion")
    empty = await client.call("SetInputSettings", {"inputName": "x"})

    assert response == {"obsVersion": "30.0"}
    assert empty == {}
    assert obs_client.request_types() == ["GetVersion", "SetInputSettings"]


@pytest.mark.asyncio
async def test_socket_failure_marks_disconnected(event_bus, obs_client):
    disconnected = []
    event_bus.subscribe(PlatformEvents.OBS_DISCONNECTED, disconnected.append)
    sleep = BlockingSleep()
    client = RendererClient(_obs_config(), event_bus, client_factory=lambda *a: obs_client, sleep=sleep)
    await client.connect()
    obs_client.responses["GetVersion"] = ConnectionResetError("Connection reset by peer")

    with pytest.raises(RendererError):
        await client.call("GetVersion")
    await settle()

    assert client.is_connected() is False
    assert client.get_connection_state() == ConnectionState.RECONNECTING
    assert disconnected[0]["reason"] == "Connection reset by peer"

    await client.disconnect()
    await settle()


@pytest.mark.asyncio
async def test_closed_websocket_schedules_reconnect(event_bus, obs_client):
    """websocket-client의 소켓 종료 예외도 연결 끊김으로 처리되어야 함"""
    disconnected = []
    event_bus.subscribe(PlatformEvents.OBS_DISCONNECTED, disconnected.append)
    sleep = BlockingSleep()
    client = RendererClient(_obs_config(), event_bus, client_factory=lambda *a: obs_client, sleep=sleep)
    await client.connect()
    obs_client.responses["SetInputSettings"] = WebSocketConnectionClosedException(
        "socket is already closed."
    )

    with pytest.raises(RendererError):
        await client.call("SetInputSettings", {"inputName": "notification-text"})
    await settle()

    assert client.get_connection_state() == ConnectionState.RECONNECTING
    assert client.reconnect_attempts == 1
    assert sleep.calls == [1.0]
    assert disconnected == [{"reason": "socket is already closed."}]

    await client.disconnect()
    await settle()


@pytest.mark.asyncio
async def test_ensure_connected_returns_once_identified(obs_client):
    client = RendererClient(_obs_config(), client_factory=lambda *a: obs_client)

    await client.ensure_connected(timeout_ms=1000)

    assert client.is_connected() is True


@pytest.mark.asyncio
async def test_ensure_connected_times_out():
    sleep = BlockingSleep()
    factory = MagicMock(side_effect=ConnectionRefusedError("refused"))
    client = RendererClient(_obs_config(), client_factory=factory, sleep=sleep)

    with pytest.raises(RendererConnectionTimeout) as exc_info:
        await client.ensure_connected(timeout_ms=50)

    assert exc_info.value.timeout_ms == 50
    assert client.is_connected() is False
    assert client.get_connection_state() == ConnectionState.RECONNECTING

    await client.disconnect()
    await settle()


@pytest.mark.asyncio
async def test_scene_item_ids_are_cached(obs_client):
    client = RendererClient(_obs_config(), client_factory=lambda *a: obs_client)
    await client.connect()

    first = await client.get_scene_item_id("scene", "source")
    second = await client.get_scene_item_id("scene", "source")

    assert first == second == 42
    assert obs_client.request_types() == ["GetSceneItemId"]


@pytest.mark.asyncio
async def test_scene_item_id_missing_raises():
    obs_client = FakeObsClient({"GetSceneItemId": {}})
    client = RendererClient(_obs_config(), client_factory=lambda *a: obs_client)
    await client.connect()

    with pytest.raises(RendererError):
        await client.get_scene_item_id("scene", "missing")


@pytest.mark.asyncio
async def test_disconnect_emits_shutdown(event_bus, obs_client):
    disconnected = []
    event_bus.subscribe(PlatformEvents.OBS_DISCONNECTED, disconnected.append)
    client = RendererClient(_obs_config(), event_bus, client_factory=lambda *a: obs_client)
    await client.connect()

    await client.disconnect()

    assert obs_client.disconnected is True
    assert disconnected == [{"reason": "shutdown"}]
    assert client.is_ready() is False


# ---------------------------------------------------------------------------
# ObsSources / ObsEffects
# ---------------------------------------------------------------------------


def test_sanitize_for_obs():
    assert sanitize_for_obs("a\x00b\x1fc\nd") == "abc\nd"
    assert sanitize_for_obs(None) == ""


@pytest.mark.asyncio
async def test_sources_skip_when_offline():
    renderer = MagicMock()
    renderer.is_connected.return_value = False
    renderer.call = AsyncMock()
    sources = ObsSources(renderer)

    assert await sources.update_text_source("text", "hi") is False
    assert await sources.set_source_visibility("scene", "text", True) is False
    assert await sources.set_group_source_visibility("logo", "group", True) is False
    renderer.call.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_text_source_request(obs_client):
    client = RendererClient(_obs_config(), client_factory=lambda *a: obs_client)
    await client.connect()
    sources = ObsSources(client)

    assert await sources.update_text_source("chat-message-text", "hi\x07") is True

    assert obs_client.requests == [
        (
            "SetInputSettings",
            {"inputName": "chat-message-text", "inputSettings": {"text": "hi"}, "overlay": True},
        )
    ]


@pytest.mark.asyncio
async def test_set_source_visibility_uses_scene_item_id(obs_client):
    client = RendererClient(_obs_config(), client_factory=lambda *a: obs_client)
    await client.connect()
    sources = ObsSources(client)

    await sources.set_source_visibility("chat-message-scene", "chat-message-group", True)

    assert obs_client.requests[-1] == (
        "SetSceneItemEnabled",
        {"sceneName": "chat-message-scene", "sceneItemId": 42, "sceneItemEnabled": True},
    )


@pytest.mark.asyncio
async def test_group_visibility_and_logo_helpers(obs_client):
    client = RendererClient(_obs_config(), client_factory=lambda *a: obs_client)
    await client.connect()
    sources = ObsSources(client)
    logos = client.obs_config.chat_platform_logos

    await sources.hide_all_platform_logos(logos, "chat-message-group")
    await sources.set_group_source_visibility(logos["twitch"], "chat-message-group", True)

    toggles = [data for kind, data in obs_client.requests if kind == "SetSceneItemEnabled"]
    assert [(item["sceneItemId"], item["sceneItemEnabled"]) for item in toggles] == [
        (1, False),
        (2, False),
        (3, False),
        (2, True),
    ]
    # group listing is cached per source
    assert obs_client.request_types().count("GetGroupSceneItemList") == 3


@pytest.mark.asyncio
async def test_clear_cache_lists_group_again(obs_client):
    client = RendererClient(_obs_config(), client_factory=lambda *a: obs_client)
    await client.connect()
    sources = ObsSources(client)

    await sources.set_group_source_visibility("chat-logo-tiktok", "chat-message-group", True)
    await sources.set_group_source_visibility("chat-logo-tiktok", "chat-message-group", False)
    assert obs_client.request_types().count("GetGroupSceneItemList") == 1

    sources.clear_cache()
    await sources.set_group_source_visibility("chat-logo-tiktok", "chat-message-group", True)
    assert obs_client.request_types().count("GetGroupSceneItemList") == 2


@pytest.mark.asyncio
async def test_group_without_item_list_raises():
    obs_client = FakeObsClient({"GetGroupSceneItemList": {}})
    client = RendererClient(_obs_config(), client_factory=lambda *a: obs_client)
    await client.connect()

    with pytest.raises(RendererError):
        await ObsSources(client).set_group_source_visibility("logo", "group", True)


@pytest.mark.asyncio
async def test_play_media(obs_client):
    client = RendererClient(_obs_config(), client_factory=lambda *a: obs_client)
    await client.connect()
    effects = ObsEffects(client)

    played = await effects.play_media(
        {"filename": "hello", "mediaSource": "hello-media", "vfxFilePath": "/vfx"}
    )

    assert played is True
    assert obs_client.requests == [
        (
            "SetInputSettings",
            {
                "inputName": "hello-media",
                "inputSettings": {"local_file": "/vfx/hello.mp4", "looping": False},
                "overlay": True,
            },
        ),
        (
            "TriggerMediaInputAction",
            {"inputName": "hello-media", "mediaAction": "OBS_WEBSOCKET_MEDIA_INPUT_ACTION_RESTART"},
        ),
    ]


@pytest.mark.asyncio
async def test_play_media_validation_and_offline(mock_renderer):
    effects = ObsEffects(mock_renderer)
    with pytest.raises(ValueError):
        await effects.play_media({"filename": "hello"})

    mock_renderer.is_connected.return_value = False
    assert await effects.play_media(
        {"filename": "hello", "mediaSource": "m", "vfxFilePath": "/vfx"}
    ) is False


# ---------------------------------------------------------------------------
# GoalDisplay
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_goal_display_updates_source(mock_sources):
    tracker = GoalTracker(GoalsConfig.model_validate({"enabled": True}))
    display = GoalDisplay(tracker, mock_sources)

    result = await display.process_donation_goal("twitch", 200, "cheer-1")

    assert result.success is True
    mock_sources.update_text_source.assert_awaited_once_with("twitch-goal-txt", "200/100 bits")


@pytest.mark.asyncio
async def test_goal_display_survives_renderer_error(mock_sources):
    mock_sources.update_text_source.side_effect = RendererError("offline")
    tracker = GoalTracker(GoalsConfig.model_validate({"enabled": True}))
    display = GoalDisplay(tracker, mock_sources)

    result = await display.process_paypiggy_goal("tiktok", "sub-1")

    assert result.success is True
    assert tracker.get_goal_state("tiktok")["current"] == 50


@pytest.mark.asyncio
async def test_goal_display_refresh_all(mock_sources):
    tracker = GoalTracker(GoalsConfig.model_validate({"enabled": True}))
    await GoalDisplay(tracker, mock_sources).refresh_all()
    assert mock_sources.update_text_source.await_count == 3

    disabled = AsyncMock()
    await GoalDisplay(GoalTracker(GoalsConfig()), disabled).refresh_all()
    disabled.update_text_source.assert_not_awaited()
