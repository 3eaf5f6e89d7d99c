"""
AppRuntime 및 CLI 테스트
"""
import asyncio
import sys

import pytest
import yaml
from loguru import logger

from stream_chat_bot import cli
from stream_chat_bot.app_runtime import AppRuntime
from stream_chat_bot.auth import AuthState
from stream_chat_bot.config_manager import validate_config
from stream_chat_bot.platform_events import PlatformEvents

from conftest import FakeAdapter, FakeClock, FakeObsClient, build_config_dict, settle


class GatedSleep:
    """짧은 표시 대기는 바로 통과시키고, 주기 작업의 긴 대기는 취소될 때까지 멈춤"""

    def __init__(self, threshold_s: float = 30):
        self.threshold_s = threshold_s
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)
        if seconds >= self.threshold_s:
            await asyncio.Event().wait()
        await asyncio.sleep(0)


def _runtime(config_dict=None, **kwargs):
    obs_clients = []

    def factory(*args):
        client = FakeObsClient()
        obs_clients.append(client)
        return client

    exits = []
    runtime = AppRuntime(
        validate_config(config_dict or build_config_dict()),
        adapter_factories=kwargs.pop("adapter_factories", {"tiktok": FakeAdapter}),
        renderer_client_factory=factory,
        clock=kwargs.pop("clock", FakeClock()),
        sleep=GatedSleep(),
        force_exit=exits.append,
        echo_chat=False,
        **kwargs,
    )
    return runtime, obs_clients, exits


# ---------------------------------------------------------------------------
# AppRuntime
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_runtime_start_and_shutdown():
    runtime, obs_clients, exits = _runtime()
    ready = []
    runtime.event_bus.subscribe(PlatformEvents.SYSTEM_READY, ready.append)

    await runtime.start()
    await runtime.event_bus.drain()

    assert runtime.renderer.is_connected() is True
    assert ready[0]["platforms"] == ["tiktok"]
    assert ready[0]["services"]["displayQueue"] is runtime.display_queue
    adapter = runtime.get_platforms()["tiktok"]
    assert adapter.connected is True

    await runtime.shutdown("test")
    await settle()

    assert runtime.shutdown_reason == "test"
    assert adapter.cleaned_up is True
    assert runtime.renderer.is_connected() is False
    assert obs_clients[0].disconnected is True
    assert runtime.get_platforms() == {}
    assert runtime.event_bus.listener_count(PlatformEvents.PLATFORM_EVENT) == 0
    assert exits == []


@pytest.mark.asyncio
async def test_shutdown_is_idempotent():
    runtime, _, exits = _runtime()
    await runtime.start()

    await asyncio.gather(runtime.shutdown("first"), runtime.shutdown("second"))

    assert runtime.shutdown_reason == "first"
    assert exits == []


@pytest.mark.asyncio
async def test_graceful_exit_after_rendered_chat():
    """--chat 1: 첫 채팅이 표시되면 system:shutdown을 거쳐 종료되어야 함"""
    clock = FakeClock()
    runtime, _, exits = _runtime(
        build_config_dict(displayQueue={"autoProcess": True}), chat_target=1, clock=clock
    )
    shutdowns = []
    runtime.event_bus.subscribe(PlatformEvents.SYSTEM_SHUTDOWN, shutdowns.append)
    await runtime.start()

    runtime.event_bus.emit(
        PlatformEvents.PLATFORM_EVENT,
        {
            "platform": "tiktok",
            "type": "chat",
            "data": {
                "id": "m1",
                "userId": "u1",
                "username": "Alice",
                "message": "hello",
                "timestamp": clock.iso(),
            },
        },
    )

    await asyncio.wait_for(runtime.wait_until_shutdown(), timeout=5)

    assert shutdowns[0]["reason"] == "graceful-exit"
    assert runtime.shutdown_reason == "graceful-exit"
    assert runtime.display_queue.total_rendered >= 1
    assert exits == []


@pytest.mark.asyncio
async def test_twitch_auth_failure_does_not_abort_startup(tmp_path, monkeypatch):
    monkeypatch.delenv("TWITCH_CLIENT_SECRET", raising=False)
    config = build_config_dict(
        twitch={"enabled": True, "tokenStorePath": str(tmp_path / "tokens.json")}
    )
    runtime, _, _ = _runtime(config)
    ready = []
    runtime.event_bus.subscribe(PlatformEvents.SYSTEM_READY, ready.append)

    await runtime.start()

    assert len(ready) == 1
    assert runtime.auth_manager.get_state() == AuthState.UNINITIALIZED
    await runtime.shutdown("test")


@pytest.mark.asyncio
async def test_renderer_connect_refreshes_goals():
    runtime, obs_clients, _ = _runtime()
    await runtime.start()
    await runtime.event_bus.drain()

    texts = [
        data["inputName"]
        for request_type, data in obs_clients[0].requests
        if request_type == "SetInputSettings"
    ]
    assert {"tiktok-goal-txt", "youtube-goal-txt", "twitch-goal-txt"} <= set(texts)
    await runtime.shutdown("test")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def test_parse_args_defaults():
    args = cli.parse_args([])
    assert args.no_msg is False
    assert args.debug is False
    assert args.log_level == "info"
    assert args.chat is None


def test_parse_args_values_and_unknown():
    args = cli.parse_args(["--no-msg", "--chat", "5", "--log-level", "warn", "--mystery"])
    assert args.no_msg is True
    assert args.chat == 5
    assert args.log_level == "warn"


@pytest.mark.parametrize(
    "argv",
    [["--chat", "0"], ["--chat", "-3"], ["--chat", "abc"], ["--log-level", "loud"]],
)
def test_parse_args_errors_exit_with_one(argv):
    with pytest.raises(SystemExit) as exc_info:
        cli.parse_args(argv)
    assert exc_info.value.code == 1


def test_configure_logging_levels():
    try:
        assert cli.configure_logging("warn") == "WARNING"
        assert cli.configure_logging("error", debug=True) == "DEBUG"
        assert cli.configure_logging("bogus") == "INFO"
    finally:
        logger.remove()
        logger.add(sys.stderr)


@pytest.mark.asyncio
async def test_run_fails_without_config(tmp_path, monkeypatch):
    monkeypatch.setenv("CHAT_BOT_CONFIG_PATH", str(tmp_path / "missing.yaml"))
    assert await cli.run(cli.parse_args([])) == 1


@pytest.mark.asyncio
async def test_run_fails_on_invalid_config(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"general": {"cmdCooldownMs": -5}}), encoding="utf-8")
    monkeypatch.setenv("CHAT_BOT_CONFIG_PATH", str(path))
    assert await cli.run(cli.parse_args([])) == 1


@pytest.mark.asyncio
async def test_run_startup_only(tmp_path, monkeypatch):
    config = build_config_dict(obs={"enabled": False}, tiktok={"enabled": False})
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(config), encoding="utf-8")
    monkeypatch.setenv("CHAT_BOT_CONFIG_PATH", str(path))
    monkeypatch.setenv("CHAT_BOT_STARTUP_ONLY", "true")

    assert await asyncio.wait_for(cli.run(cli.parse_args(["--no-msg"])), timeout=5) == 0
