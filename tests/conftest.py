"""
Stream Chat Bot Test Fixtures
공통 테스트 픽스처 및 모킹 유틸리티
"""
import asyncio
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from stream_chat_bot.auth import REQUIRED_SCOPES
from stream_chat_bot.config_manager import ConfigService
from stream_chat_bot.event_bus import EventBus
from stream_chat_bot.platforms import PlatformAdapter
from stream_chat_bot.utils.time_utils import iso_from_ms

START_MS = 1_700_000_000_000

CHAT_LOGOS = ["chat-logo-tiktok", "chat-logo-twitch", "chat-logo-youtube"]
NOTIFICATION_LOGOS = [
    "notification-logo-tiktok",
    "notification-logo-twitch",
    "notification-logo-youtube",
]


class FakeClock:
    """밀리초 단위 가짜 시계"""

    def __init__(self, start_ms: int = START_MS):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now

    def iso(self, offset_ms: int = 0) -> str:
        return iso_from_ms(self.now + offset_ms)


class FastSleep:
    """대기 시간(초)을 기록하고 바로 반환하는 sleep"""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(int(seconds * 1000))
        await asyncio.sleep(0)


class FakeObsClient:
    """obsws-python ReqClient 대역: send(request_type, data, raw=True)"""

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.requests: List[tuple] = []
        self.responses = responses if responses is not None else default_obs_responses()
        self.disconnected = False

    def send(self, request_type: str, data: Optional[Dict[str, Any]] = None, raw: bool = False):
        self.requests.append((request_type, data))
        response = self.responses.get(request_type, {})
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(data)
        return response

    def disconnect(self):
        self.disconnected = True

    def request_types(self) -> List[str]:
        return [request[0] for request in self.requests]


class FakeAdapter(PlatformAdapter):
    """초기화 결과를 지정할 수 있는 플랫폼 어댑터"""

    def __init__(self, config: Any, connect_result: bool = True, error: Optional[Exception] = None):
        super().__init__(config)
        self.connect_result = connect_result
        self.error = error
        self.connected = False
        self.cleaned_up = False
        self.reinitialize_calls: List[List[str]] = []

    async def initialize(self, context) -> bool:
        if self.error is not None:
            raise self.error
        self.connected = self.connect_result
        return self.connect_result

    async def cleanup(self) -> None:
        self.cleaned_up = True
        self.connected = False

    def is_connected(self) -> bool:
        return self.connected

    async def reinitialize(self, stream_ids: List[str]) -> bool:
        self.reinitialize_calls.append(list(stream_ids))
        return True


def _group_items(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    names = CHAT_LOGOS if "chat" in (data or {}).get("sceneName", "") else NOTIFICATION_LOGOS
    return {
        "sceneItems": [
            {"sourceName": name, "sceneItemId": index + 1} for index, name in enumerate(names)
        ]
    }


def default_obs_responses() -> Dict[str, Any]:
    return {
        "GetSceneItemId": {"sceneItemId": 42},
        "GetGroupSceneItemList": _group_items,
    }


async def settle(rounds: int = 5) -> None:
    """이벤트 루프를 몇 번 돌려 예약된 태스크를 진행시킵니다."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def build_config_dict(**overrides: Dict[str, Any]) -> Dict[str, Any]:
    """섹션 단위로 덮어쓴 샘플 설정"""
    config = {
        "general": {
            "filterOldMessages": True,
            "greetingsEnabled": True,
            "commandsEnabled": True,
            "ttsEnabled": False,
            "cmdCooldownMs": 60000,
            "globalCmdCooldownMs": 60000,
            "fallbackUsername": "Unknown User",
        },
        "obs": {
            "enabled": True,
            "address": "ws://localhost:4455",
            "password": "secret",
            "connectionTimeoutMs": 1000,
            "reconnectBaseDelayMs": 1000,
            "reconnectMaxDelayMs": 5000,
        },
        "spam": {
            "enabled": True,
            "detectionWindow": 5000,
            "maxIndividualNotifications": 2,
            "lowValueThreshold": 10,
        },
        "goals": {"enabled": True},
        "displayQueue": {"autoProcess": False},
        "tiktok": {"enabled": True, "username": "tiktok_host"},
        "twitch": {"enabled": False, "channel": "twitch_host"},
        "youtube": {"enabled": False, "username": "youtube_host"},
        "commands": {
            "hello": "!hello|!hi, hello-media, wave, 4000",
            "boom": "!boom, boom-media",
        },
        "farewell": {"bye": "!bye|!goodnight, bye|goodbye"},
        "vfx": {"filePath": "/vfx", "notificationCommands": {"follow": "hello"}},
    }
    for section, values in overrides.items():
        if isinstance(values, dict) and isinstance(config.get(section), dict):
            config[section] = {**config[section], **values}
        else:
            config[section] = values
    return config


@pytest.fixture
def clock():
    """가짜 밀리초 시계"""
    return FakeClock()


@pytest.fixture
def fast_sleep():
    """호출만 기록하는 sleep"""
    return FastSleep()


@pytest.fixture
def sample_config():
    """샘플 설정 딕셔너리"""
    return build_config_dict()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def config_service(sample_config, event_bus):
    return ConfigService.from_dict(sample_config, event_bus)


@pytest.fixture
def mock_renderer():
    """연결된 상태의 Mock 렌더러"""
    renderer = MagicMock()
    renderer.is_connected.return_value = True
    renderer.is_ready.return_value = True
    renderer.call = AsyncMock(return_value={})
    renderer.get_scene_item_id = AsyncMock(return_value=1)
    return renderer


@pytest.fixture
def mock_sources():
    """ObsSources의 모든 메서드를 AsyncMock으로 대체"""
    return AsyncMock()


@pytest.fixture
def obs_client():
    return FakeObsClient()


class FakeTwitch:
    """validate / token 엔드포인트를 흉내 내는 MockTransport 핸들러"""

    def __init__(
        self,
        tokens: Optional[Dict[str, List[str]]] = None,
        refresh: Optional[Dict[str, Tuple[str, str]]] = None,
        expires_in: int = 3600,
    ):
        self.tokens = tokens or {}
        self.refresh = refresh or {}
        self.expires_in = expires_in
        self.requests: List[httpx.Request] = []
        self.fail_network = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_network:
            raise httpx.ConnectError("network down", request=request)

        if request.url.path == "/oauth2/validate":
            token = request.headers["Authorization"].split(" ", 1)[1]
            if token not in self.tokens:
                return httpx.Response(401, json={"status": 401, "message": "invalid access token"})
            return httpx.Response(
                200,
                json={
                    "client_id": "cid",
                    "login": "streamer",
                    "user_id": "1234",
                    "scopes": self.tokens[token],
                    "expires_in": self.expires_in,
                },
            )

        if request.url.path == "/oauth2/token":
            form = parse_qs(request.content.decode())
            refresh_token = form["refresh_token"][0]
            if refresh_token not in self.refresh:
                return httpx.Response(400, json={"status": 400, "message": "Invalid refresh token"})
            access, new_refresh = self.refresh[refresh_token]
            self.tokens.setdefault(access, list(REQUIRED_SCOPES))
            return httpx.Response(
                200,
                json={
                    "access_token": access,
                    "refresh_token": new_refresh,
                    "expires_in": self.expires_in,
                    "scope": self.tokens[access],
                },
            )

        return httpx.Response(404)

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]
