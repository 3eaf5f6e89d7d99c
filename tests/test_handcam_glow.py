"""
핸드캠 글로우 테스트
램프 크기 계산, 애니메이션 요청 순서, 오류 시 초기화, 재시작 동작을 검증합니다.
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from stream_chat_bot.config_manager import ConfigService, HandcamConfig
from stream_chat_bot.exceptions import RendererError
from stream_chat_bot.obs import HandcamGlow, ObsSources, RendererClient
from stream_chat_bot.obs.handcam_glow import ramp_down_sizes, ramp_up_sizes

from conftest import FakeObsClient, FastSleep, build_config_dict, settle


class BlockingSleep:
    """취소될 때까지 멈춰 있는 sleep"""

    async def __call__(self, seconds):
        await asyncio.Event().wait()


def _glow_config_service(**handcam):
    values = {"glowEnabled": True}
    values.update(handcam)
    return ConfigService.from_dict(build_config_dict(handcam=values))


def _glow_sizes(obs_client):
    return [
        data["filterSettings"]["Size"]
        for request_type, data in obs_client.requests
        if request_type == "SetSourceFilterSettings"
    ]


async def _connected_renderer(config_service, obs_client):
    renderer = RendererClient(
        config_service.obs, client_factory=lambda *a: obs_client, sleep=FastSleep()
    )
    await renderer.connect()
    return renderer


def test_default_ramps_span_zero_to_max():
    config = HandcamConfig()
    up = ramp_up_sizes(config)
    down = ramp_down_sizes(config)

    assert len(up) == len(down) == 31
    assert (up[0], up[-1]) == (0, 50)
    assert (down[0], down[-1]) == (50, 0)
    assert up == sorted(up)
    assert down == sorted(down, reverse=True)


def test_linear_ramps_without_easing():
    config = HandcamConfig.model_validate({"maxSize": 10, "totalSteps": 4, "easingEnabled": False})

    assert ramp_up_sizes(config) == [0, 3, 5, 8, 10]
    assert ramp_down_sizes(config) == [10, 8, 5, 3, 0]


@pytest.mark.asyncio
async def test_activate_runs_full_animation():
    """0에서 시작해 최대 크기까지 올라갔다가 다시 0으로 내려와야 함"""
    config_service = _glow_config_service(totalSteps=2)
    obs_client = FakeObsClient({"GetSourceFilter": {"filterSettings": {"glow_color": 123}}})
    renderer = await _connected_renderer(config_service, obs_client)
    sleep = FastSleep()
    glow = HandcamGlow(renderer, ObsSources(renderer), config_service, sleep=sleep)

    assert await glow.activate() is True

    assert _glow_sizes(obs_client) == [0, 0, 6, 50, 50, 6, 0]
    settings = [data for kind, data in obs_client.requests if kind == "SetSourceFilterSettings"]
    assert all(s["sourceName"] == "handcam-source" and s["filterName"] == "Glow" for s in settings)
    # existing filter settings are kept alongside the size keys
    assert settings[3]["filterSettings"] == {"glow_color": 123, "Size": 50, "glow_size": 50}
    # ramp up steps, hold, ramp down steps
    assert sleep.calls == [0.25, 0.25, 6.0, 0.25, 0.25]


@pytest.mark.asyncio
async def test_renderer_error_resets_glow(mock_renderer):
    mock_renderer.ensure_connected = AsyncMock()
    sources = AsyncMock()
    sources.get_source_filter_settings.return_value = {"glow_color": 1}
    sources.set_source_filter_settings.side_effect = [True, RendererError("filter gone"), True]
    glow = HandcamGlow(mock_renderer, sources, _glow_config_service(), sleep=FastSleep())

    assert await glow.activate() is False

    assert sources.set_source_filter_settings.await_count == 3
    assert sources.set_source_filter_settings.await_args.args == (
        "handcam-source",
        "Glow",
        {"glow_color": 1, "Size": 0, "glow_size": 0},
    )


@pytest.mark.asyncio
async def test_activate_gives_up_when_renderer_never_connects(mock_renderer):
    mock_renderer.ensure_connected = AsyncMock(side_effect=RendererError("timed out"))
    sources = AsyncMock()
    sources.get_source_filter_settings.return_value = {}
    glow = HandcamGlow(mock_renderer, sources, _glow_config_service(), sleep=FastSleep())

    assert await glow.activate() is False
    # only the reset request was sent
    sources.set_source_filter_settings.assert_awaited_once_with(
        "handcam-source", "Glow", {"Size": 0, "glow_size": 0}
    )


@pytest.mark.asyncio
async def test_initialize_enables_filter_at_zero():
    config_service = _glow_config_service(sourceName="cam", glowFilterName="CamGlow")
    obs_client = FakeObsClient({"GetSourceFilter": {"filterSettings": {}}})
    renderer = await _connected_renderer(config_service, obs_client)
    glow = HandcamGlow(renderer, ObsSources(renderer), config_service)

    assert await glow.initialize() is True

    filter_requests = [r for r in obs_client.requests if "Filter" in r[0]]
    assert [kind for kind, _ in filter_requests] == [
        "SetSourceFilterEnabled",
        "GetSourceFilter",
        "SetSourceFilterSettings",
    ]
    assert filter_requests[0][1] == {"sourceName": "cam", "filterName": "CamGlow", "filterEnabled": True}
    assert _glow_sizes(obs_client) == [0]


@pytest.mark.asyncio
async def test_disabled_glow_does_nothing(mock_renderer, mock_sources, config_service):
    glow = HandcamGlow(mock_renderer, mock_sources, config_service)

    assert glow.trigger() is False
    assert await glow.initialize() is False
    assert glow._task is None
    mock_sources.set_source_filter_enabled.assert_not_awaited()
    mock_sources.set_source_filter_settings.assert_not_awaited()


@pytest.mark.asyncio
async def test_new_trigger_restarts_animation(mock_renderer, mock_sources):
    """애니메이션 중 새 선물이 오면 이전 애니메이션은 취소되어야 함"""
    mock_renderer.ensure_connected = AsyncMock()
    mock_sources.get_source_filter_settings.return_value = {}
    glow = HandcamGlow(mock_renderer, mock_sources, _glow_config_service(), sleep=BlockingSleep())

    assert glow.trigger() is True
    first = glow._task
    await settle()
    assert glow.trigger() is True
    second = glow._task
    await settle()

    assert first is not second
    assert first.cancelled()
    assert not second.done()

    await glow.stop()
    assert second.cancelled()
    assert glow._task is None
