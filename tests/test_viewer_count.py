"""
시청자 수 표시 테스트
숫자 축약 형식과 이벤트에 따른 OBS 텍스트 소스 갱신을 검증합니다.
"""
import pytest

from stream_chat_bot.config_manager import ConfigService
from stream_chat_bot.exceptions import RendererError
from stream_chat_bot.obs import ViewerCountObserver, format_viewer_count
from stream_chat_bot.platform_events import PlatformEvents

from conftest import build_config_dict


@pytest.mark.parametrize(
    "count,expected",
    [
        (None, "0"),
        (True, "0"),
        ("many", "0"),
        (float("nan"), "0"),
        (-5, "0"),
        (0, "0"),
        (999, "999"),
        (999.9, "999"),
        (1000, "1K"),
        (1530, "1.5K"),
        (15000, "15K"),
        (2_500_000, "2.5M"),
        (1_000_000_000, "1B"),
        ("2000", "2K"),
    ],
)
def test_format_viewer_count(count, expected):
    assert format_viewer_count(count) == expected


@pytest.fixture
def observer(event_bus, mock_renderer, mock_sources, config_service):
    observer = ViewerCountObserver(event_bus, mock_renderer, mock_sources, config_service)
    observer.start()
    yield observer
    observer.dispose()


@pytest.mark.asyncio
async def test_viewer_count_event_updates_source(observer, event_bus, mock_sources):
    event_bus.emit(PlatformEvents.VIEWER_COUNT, {"platform": "tiktok", "count": 1530, "isStreamLive": True})
    await event_bus.drain()

    mock_sources.update_text_source.assert_awaited_once_with("tiktok viewer count", "1.5K")


@pytest.mark.asyncio
async def test_offline_counts_are_not_shown(observer, event_bus, mock_sources):
    event_bus.emit(PlatformEvents.VIEWER_COUNT, {"platform": "tiktok", "count": 20, "isStreamLive": False})
    await event_bus.drain()

    mock_sources.update_text_source.assert_not_awaited()


@pytest.mark.asyncio
async def test_stream_going_offline_resets_count(observer, event_bus, mock_sources):
    """방송이 꺼지면 시청자 수는 0으로 초기화되어야 함"""
    event_bus.emit(PlatformEvents.STREAM_STATUS, {"platform": "tiktok", "isLive": True, "wasLive": False})
    await event_bus.drain()
    mock_sources.update_text_source.assert_not_awaited()

    event_bus.emit(PlatformEvents.STREAM_STATUS, {"platform": "tiktok", "isLive": False, "wasLive": True})
    await event_bus.drain()
    mock_sources.update_text_source.assert_awaited_once_with("tiktok viewer count", "0")


@pytest.mark.asyncio
async def test_renderer_connect_initializes_enabled_platforms(observer, event_bus, mock_sources):
    event_bus.emit(PlatformEvents.OBS_CONNECTED, {"address": "ws://localhost:4455"})
    await event_bus.drain()

    # only tiktok is enabled in the sample config
    mock_sources.update_text_source.assert_awaited_once_with("tiktok viewer count", "0")


@pytest.mark.asyncio
async def test_source_name_and_disabled_platform(event_bus, mock_renderer, mock_sources):
    config_service = ConfigService.from_dict(
        build_config_dict(
            tiktok={"viewerCountSource": "TT viewers"},
            twitch={"enabled": True, "viewerCountEnabled": False},
        )
    )
    observer = ViewerCountObserver(event_bus, mock_renderer, mock_sources, config_service)

    assert observer.source_for("tiktok") == "TT viewers"
    assert observer.source_for("youtube") == "youtube viewer count"
    assert observer.source_for("twitch") is None
    assert await observer.update_obs_count("twitch", 5) is False
    assert await observer.update_obs_count("TikTok", 12) is True
    mock_sources.update_text_source.assert_awaited_once_with("TT viewers", "12")


@pytest.mark.asyncio
async def test_invalid_updates_are_rejected(observer, mock_renderer, mock_sources):
    assert await observer.update_obs_count("", 5) is False
    assert await observer.update_obs_count(None, 5) is False
    assert await observer.update_obs_count("tiktok", -1) is False
    assert await observer.update_obs_count("tiktok", "5") is False
    assert await observer.update_obs_count("tiktok", float("nan")) is False

    mock_renderer.is_connected.return_value = False
    assert await observer.update_obs_count("tiktok", 5) is False
    mock_sources.update_text_source.assert_not_awaited()


@pytest.mark.asyncio
async def test_renderer_errors_are_not_raised(observer, mock_sources):
    mock_sources.update_text_source.side_effect = RendererError('Input "tiktok viewer count" not found')
    assert await observer.update_obs_count("tiktok", 5) is False

    mock_sources.update_text_source.side_effect = RendererError("request timed out")
    assert await observer.update_obs_count("tiktok", 5) is False


@pytest.mark.asyncio
async def test_dispose_stops_updates(observer, event_bus, mock_sources):
    observer.dispose()
    event_bus.emit(PlatformEvents.VIEWER_COUNT, {"platform": "tiktok", "count": 3})
    await event_bus.drain()

    mock_sources.update_text_source.assert_not_awaited()
    assert event_bus.listener_count(PlatformEvents.VIEWER_COUNT) == 0
