import pytest

from stream_chat_bot.config_manager import ConfigService
from stream_chat_bot.platform_events import PlatformEvents
from stream_chat_bot.platform_lifecycle import PlatformLifecycleService

from conftest import FakeAdapter, build_config_dict


@pytest.fixture
def lifecycle(config_service, event_bus, clock):
    return PlatformLifecycleService(config_service, event_bus, clock=clock)


def test_record_connection_emits_chat_connected(lifecycle, event_bus, clock):
    connected = []
    event_bus.subscribe(PlatformEvents.CHAT_CONNECTED, connected.append)

    lifecycle.record_platform_connection("tiktok")

    assert lifecycle.get_platform_connection_time("tiktok") == clock.now
    assert connected[0]["platform"] == "tiktok"
    assert connected[0]["connectionTime"] == clock.now


def test_stale_messages_are_skipped(lifecycle, clock):
    lifecycle.record_platform_connection("tiktok")

    assert lifecycle.should_skip_for_connection("tiktok", clock.iso(-1)) is True
    assert lifecycle.should_skip_for_connection("tiktok", clock.iso(0)) is False
    assert lifecycle.should_skip_for_connection("tiktok", clock.iso(1000)) is False
    # numeric seconds are normalised too
    assert lifecycle.should_skip_for_connection("tiktok", (clock.now - 5000) / 1000) is True


def test_skip_never_applies_without_information(lifecycle, clock):
    assert lifecycle.should_skip_for_connection("twitch", clock.iso(-1000)) is False
    lifecycle.record_platform_connection("twitch")
    assert lifecycle.should_skip_for_connection("twitch", "not a time") is False
    assert lifecycle.should_skip_for_connection("twitch", None) is False


def test_filter_can_be_disabled(event_bus, clock):
    config = ConfigService.from_dict(build_config_dict(general={"filterOldMessages": False}))
    lifecycle = PlatformLifecycleService(config, event_bus, clock=clock)
    lifecycle.record_platform_connection("tiktok")
    assert lifecycle.should_skip_for_connection("tiktok", clock.iso(-10000)) is False


def test_emit_platform_event_envelope(lifecycle, event_bus, clock):
    envelopes = []
    event_bus.subscribe(PlatformEvents.PLATFORM_EVENT, envelopes.append)

    ok = lifecycle.emit_platform_event(
        "twitch",
        "gift",
        {"type": "cheer", "platform": "twitch", "username": "A", "timestamp": clock.iso()},
    )

    assert ok is True
    envelope = envelopes[0]
    assert envelope["platform"] == "twitch"
    assert envelope["type"] == "gift"
    assert "type" not in envelope["data"] and "platform" not in envelope["data"]
    assert envelope["data"]["sourceType"] == "cheer"


def test_emit_platform_event_requires_timestamp(lifecycle, event_bus):
    envelopes = []
    event_bus.subscribe(PlatformEvents.PLATFORM_EVENT, envelopes.append)

    assert lifecycle.emit_platform_event("tiktok", "chat", {"username": "A"}) is False
    assert envelopes == []


@pytest.mark.asyncio
async def test_processor_routes_into_platform_event(lifecycle, event_bus):
    envelopes = []
    event_bus.subscribe(PlatformEvents.PLATFORM_EVENT, envelopes.append)
    processor = lifecycle.create_processor("tiktok")

    await processor.process_notification(
        {"user": {"userId": "u1", "nickname": "Alice"}, "comment": "hi", "createTime": 1700000000, "msgId": "m1"},
        "chat",
    )

    assert envelopes[0]["type"] == "chat"
    assert envelopes[0]["data"]["message"] == "hi"
    assert lifecycle.processors["tiktok"] is processor


@pytest.mark.asyncio
async def test_initialize_all_platforms(event_bus, clock):
    config = ConfigService.from_dict(
        build_config_dict(
            twitch={"enabled": True, "channel": "chan"},
            youtube={"enabled": True, "username": "yt"},
        )
    )
    lifecycle = PlatformLifecycleService(config, event_bus, clock=clock)
    errors = []
    event_bus.subscribe(PlatformEvents.ERROR, errors.append)

    adapters = await lifecycle.initialize_all_platforms(
        {
            "tiktok": lambda cfg: FakeAdapter(cfg),
            "twitch": lambda cfg: FakeAdapter(cfg, error=RuntimeError("auth failed")),
            "youtube": lambda cfg: FakeAdapter(cfg, connect_result=False),
        }
    )

    status = lifecycle.get_status()
    assert set(adapters) == {"tiktok", "twitch", "youtube"}
    assert status["initialized_platforms"] == ["tiktok"]
    failed = {entry["name"]: entry["last_error"] for entry in status["failed_platforms"]}
    assert failed == {"twitch": "auth failed", "youtube": "Adapter did not connect"}
    assert errors[0]["platform"] == "twitch"
    assert lifecycle.get_platform_connection_time("tiktok") == clock.now
    assert adapters["tiktok"].context.platform == "tiktok"


@pytest.mark.asyncio
async def test_disabled_and_misconfigured_platforms(event_bus, clock):
    """비활성 플랫폼은 건너뛰고, 사용자명이 없는 YouTube는 실패 처리"""
    config = ConfigService.from_dict(
        build_config_dict(tiktok={"enabled": False}, youtube={"enabled": True, "username": ""})
    )
    lifecycle = PlatformLifecycleService(config, event_bus, clock=clock)
    created = []

    def factory(cfg):
        created.append(cfg)
        return FakeAdapter(cfg)

    await lifecycle.initialize_all_platforms({"tiktok": factory, "youtube": factory})

    status = lifecycle.get_status()
    assert created == []
    assert status["disabled_platforms"] == ["tiktok"]
    assert status["failed_platforms"][0]["last_error"] == "Missing username"


@pytest.mark.asyncio
async def test_adapter_reported_connection_counts_once(lifecycle, event_bus):
    connected = []
    event_bus.subscribe(PlatformEvents.CHAT_CONNECTED, connected.append)

    class SelfReportingAdapter(FakeAdapter):
        async def initialize(self, context):
            context.on_connected()
            self.connected = True
            return True

    await lifecycle.initialize_all_platforms({"tiktok": SelfReportingAdapter})

    assert len(connected) == 1
    assert lifecycle.platform_health["tiktok"]["attempts"] == 1


@pytest.mark.asyncio
async def test_stream_detected_reinitializes_youtube(event_bus, clock):
    config = ConfigService.from_dict(build_config_dict(youtube={"enabled": True}))
    lifecycle = PlatformLifecycleService(config, event_bus, clock=clock)
    await lifecycle.initialize_all_platforms({"youtube": FakeAdapter})
    adapter = lifecycle.platforms["youtube"]

    assert await lifecycle.handle_stream_detected({"platform": "youtube", "streamIds": ["s1"]}) is True
    # already known ids are ignored
    assert await lifecycle.handle_stream_detected({"platform": "youtube", "streamIds": ["s1"]}) is False
    assert await lifecycle.handle_stream_detected({"platform": "tiktok", "streamIds": ["s2"]}) is False

    assert adapter.reinitialize_calls == [["s1"]]


class FlakyAdapter(FakeAdapter):
    """첫 재연결 시도는 실패하는 어댑터"""

    def __init__(self, config):
        super().__init__(config)
        self.failures_left = 1

    async def reinitialize(self, stream_ids):
        self.reinitialize_calls.append(list(stream_ids))
        if self.failures_left:
            self.failures_left -= 1
            raise RuntimeError("live chat not ready")
        return True


@pytest.mark.asyncio
async def test_failed_reinitialize_retries_same_stream(event_bus, clock):
    config = ConfigService.from_dict(build_config_dict(youtube={"enabled": True}))
    lifecycle = PlatformLifecycleService(config, event_bus, clock=clock)
    await lifecycle.initialize_all_platforms({"youtube": FlakyAdapter})
    adapter = lifecycle.platforms["youtube"]

    assert await lifecycle.handle_stream_detected({"platform": "youtube", "streamIds": ["s1"]}) is False
    assert await lifecycle.handle_stream_detected({"platform": "youtube", "streamIds": ["s1"]}) is True

    assert adapter.reinitialize_calls == [["s1"], ["s1"]]
    assert lifecycle.known_stream_ids["youtube"] == {"s1"}


@pytest.mark.asyncio
async def test_recent_errors_are_capped(event_bus, clock):
    config = ConfigService.from_dict(build_config_dict(youtube={"enabled": True}))
    lifecycle = PlatformLifecycleService(config, event_bus, clock=clock)
    await lifecycle.initialize_all_platforms({"youtube": FlakyAdapter})
    adapter = lifecycle.platforms["youtube"]

    for index in range(15):
        adapter.failures_left = 1
        await lifecycle.handle_stream_detected({"platform": "youtube", "streamIds": [f"s{index}"]})

    errors = lifecycle.get_status()["recent_errors"]
    assert len(errors) == 10
    assert len(lifecycle.platform_errors) == 10
    assert errors[-1]["message"] == "live chat not ready"


@pytest.mark.asyncio
async def test_disconnect_all_cleans_up(lifecycle):
    await lifecycle.initialize_all_platforms({"tiktok": FakeAdapter})
    adapter = lifecycle.platforms["tiktok"]

    await lifecycle.disconnect_all()

    assert adapter.cleaned_up is True
    assert lifecycle.get_platforms() == {}
    assert lifecycle.get_platform_connection_time("tiktok") is None


def test_dispose_unsubscribes(lifecycle, event_bus):
    assert event_bus.listener_count(PlatformEvents.STREAM_DETECTED) == 1
    lifecycle.dispose()
    assert event_bus.listener_count(PlatformEvents.STREAM_DETECTED) == 0
