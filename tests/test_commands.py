import pytest

from stream_chat_bot.commands import (
    CommandCooldownService,
    CommandParser,
    GlobalCommandCooldownManager,
)
from stream_chat_bot.config_manager import ConfigService
from stream_chat_bot.platform_events import PlatformEvents

from conftest import FakeClock, build_config_dict


@pytest.fixture
def cooldowns(config_service, event_bus, clock):
    return CommandCooldownService(config_service, event_bus, clock=clock)


@pytest.fixture
def parser(config_service, cooldowns, clock):
    return CommandParser(
        config_service.config,
        cooldown_service=cooldowns,
        global_cooldown=GlobalCommandCooldownManager(clock=clock),
    )


# ---------------------------------------------------------------------------
# GlobalCommandCooldownManager
# ---------------------------------------------------------------------------


def test_global_cooldown_blocks_until_elapsed(clock):
    manager = GlobalCommandCooldownManager(clock=clock)
    assert manager.is_command_on_cooldown("hello", 1000) is False

    manager.update_command_timestamp("hello")
    clock.advance(999)
    assert manager.is_command_on_cooldown("hello", 1000) is True
    assert manager.get_remaining_cooldown("hello", 1000) == 1

    clock.advance(1)
    assert manager.is_command_on_cooldown("hello", 1000) is False
    assert manager.get_remaining_cooldown("hello", 1000) == 0


def test_global_cooldown_names_are_case_sensitive(clock):
    manager = GlobalCommandCooldownManager(clock=clock)
    manager.update_command_timestamp("hello")
    assert manager.is_command_on_cooldown("Hello", 1000) is False


def test_global_cooldown_ignores_invalid_input(clock):
    manager = GlobalCommandCooldownManager(clock=clock)
    manager.update_command_timestamp("")
    manager.update_command_timestamp(None)
    assert manager.command_timestamps == {}
    assert manager.is_command_on_cooldown(None, 1000) is False
    manager.update_command_timestamp("hello")
    assert manager.is_command_on_cooldown("hello", 0) is False


def test_global_cooldown_clear_expired(clock):
    manager = GlobalCommandCooldownManager(clock=clock)
    manager.update_command_timestamp("old")
    clock.advance(5000)
    manager.update_command_timestamp("new")

    removed = manager.clear_expired_cooldowns(5000)

    assert removed == 1
    assert list(manager.command_timestamps) == ["new"]


def test_global_cooldown_stats(clock):
    manager = GlobalCommandCooldownManager(clock=clock)
    manager.update_command_timestamp("hello")
    manager.is_command_on_cooldown("hello", 1000)
    manager.is_command_on_cooldown("other", 1000)

    stats = manager.get_stats()
    assert stats["tracked_commands"] == 1
    assert stats["checks"] == 2
    assert stats["blocks"] == 1
    assert stats["block_rate"] == 0.5

    manager.reset_all_cooldowns()
    assert manager.get_stats()["tracked_commands"] == 0


# ---------------------------------------------------------------------------
# CommandCooldownService
# ---------------------------------------------------------------------------


def test_user_cooldown_blocks_repeat_commands(cooldowns, clock):
    assert cooldowns.check_user_cooldown("u1") is True
    cooldowns.update_user_cooldown("u1")

    clock.advance(59999)
    assert cooldowns.check_user_cooldown("u1") is False
    clock.advance(1)
    assert cooldowns.check_user_cooldown("u1") is True


def test_user_cooldown_rejects_invalid_user(cooldowns):
    assert cooldowns.check_user_cooldown("") is False
    assert cooldowns.check_user_cooldown(None) is False


def test_heavy_command_limit(event_bus, clock):
    """쿨다운 0에서도 윈도우 내 3회 사용 시 무거운 제한이 걸려야 함"""
    config = ConfigService.from_dict(build_config_dict(general={"cmdCooldownMs": 0}), event_bus)
    service = CommandCooldownService(config, event_bus, clock=clock)
    heavy_events = []
    event_bus.subscribe(PlatformEvents.COOLDOWN_HEAVY_DETECTED, heavy_events.append)

    t0 = clock()
    service.update_user_cooldown("u1")
    clock.advance(1)
    service.update_user_cooldown("u1")
    clock.advance(1)
    service.update_user_cooldown("u1")

    assert len(heavy_events) == 1
    assert heavy_events[0]["commandCount"] == 3
    assert service.check_user_cooldown("u1") is False

    # heavy penalty over, but the window still holds three commands
    clock.now = t0 + 30002
    assert service.check_user_cooldown("u1") is False

    clock.now = t0 + 60001
    assert service.check_user_cooldown("u1") is True


def test_cooldown_settings_reload_on_config_change(cooldowns, config_service):
    config_service.update("general", "cmdCooldownMs", 10)
    assert cooldowns.settings.cooldown_ms == 10


def test_cleanup_expired_users(cooldowns, clock):
    cooldowns.update_user_cooldown("u1")
    clock.advance(60000)
    cooldowns.update_user_cooldown("u2")

    removed = cooldowns.cleanup_expired_cooldowns()

    assert removed == 1
    assert list(cooldowns.users) == ["u2"]


def test_reset_user_cooldown_emits(cooldowns, event_bus):
    resets = []
    event_bus.subscribe(PlatformEvents.COOLDOWN_RESET, resets.append)
    cooldowns.update_user_cooldown("u1")

    cooldowns.reset_user_cooldown("u1")

    assert cooldowns.check_user_cooldown("u1") is True
    assert resets[0]["userId"] == "u1"


def test_cooldown_status(cooldowns):
    cooldowns.update_user_cooldown("u1")
    status = cooldowns.get_status("u1")
    assert status["activeUsers"] == 1
    assert status["user"]["commandCount"] == 1
    assert status["config"]["cooldownMs"] == 60000


# ---------------------------------------------------------------------------
# CommandParser
# ---------------------------------------------------------------------------


def test_parse_trigger_command(parser):
    parsed = parser.parse(
        {"message": "!HELLO there", "username": "Alice", "userId": "u1", "platform": "tiktok"}
    )

    assert parsed.type == "vfx"
    assert parsed.trigger == "!hello"
    assert parsed.vfx.command_key == "hello"
    assert parsed.vfx.media_source == "hello-media"
    assert parsed.vfx.duration == 4000
    assert parsed.vfx.match_type == "trigger"
    assert parsed.vfx.to_dict()["vfxFilePath"] == "/vfx"


def test_parse_alias_trigger_and_default_duration(parser):
    assert parser.parse({"message": "!hi"}).vfx.command_key == "hello"
    assert parser.parse({"message": "!boom"}).vfx.duration == 5000


def test_parse_keyword_anywhere_in_message(parser):
    parsed = parser.parse({"message": "I just want to WAVE at you"})
    assert parsed.vfx.command_key == "hello"
    assert parsed.vfx.match_type == "keyword"
    assert parsed.vfx.keyword == "wave"


def test_keyword_requires_word_boundary(parser):
    assert parser.parse({"message": "microwaves are great"}) is None


def test_unprefixed_trigger_is_not_a_command(parser):
    assert parser.parse({"message": "hello everyone"}) is None


def test_parse_farewell(parser):
    parsed = parser.parse({"message": "ok goodbye all", "username": "Bob"})
    assert parsed.type == "farewell"
    assert parsed.trigger == "goodbye"
    assert parser.parse({"message": "!goodnight"}).trigger == "!goodnight"


def test_keyword_parsing_can_be_disabled(event_bus):
    config = ConfigService.from_dict(
        build_config_dict(general={"keywordParsingEnabled": False}), event_bus
    )
    parser = CommandParser(config.config)
    assert parser.parse({"message": "wave"}) is None
    assert parser.parse({"message": "!hello"}) is not None


def test_vfx_config_for_notification(parser):
    vfx = parser.get_vfx_config_for_command("hello")
    assert vfx.match_type == "notification"
    assert parser.get_vfx_config_for_command("missing") is None


def test_try_execute_enforces_user_then_global_cooldown(parser, clock):
    assert parser.try_execute("u1", "hello") is True
    # same user: regular cooldown
    assert parser.try_execute("u1", "hello") is False
    # different user: global per-command cooldown
    assert parser.try_execute("u2", "hello") is False
    # another command is free
    assert parser.try_execute("u2", "boom") is True

    clock.advance(60000)
    assert parser.try_execute("u2", "hello") is True


def test_try_execute_without_command_name(parser):
    assert parser.try_execute("u1", None) is True


def test_parser_stats(parser):
    stats = parser.get_stats()
    assert stats["total_commands"] == 2
    assert stats["total_triggers"] == 3
    assert stats["total_keywords"] == 1


def test_parser_with_isolated_clock():
    clock = FakeClock()
    manager = GlobalCommandCooldownManager(clock=clock)
    config = ConfigService.from_dict(build_config_dict(general={"globalCmdCooldownMs": 100}))
    parser = CommandParser(config.config, global_cooldown=manager)

    assert parser.try_execute(None, "boom") is True
    assert parser.check_global_command_cooldown("boom") is True
    clock.advance(100)
    assert parser.check_global_command_cooldown("boom") is False
