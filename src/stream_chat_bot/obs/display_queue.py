"""
디스플레이 큐 모듈

채팅과 알림을 우선순위 순서대로 하나씩 OBS에 표시합니다.
숫자가 작은 우선순위가 먼저 표시되고, 같은 우선순위는 들어온 순서를 따릅니다.

항목 하나의 처리 순서:
    1. 목표(goal) 반영 (선물 항목, 항목당 한 번)
    2. 렌더: 플랫폼 로고 정리 -> 해당 로고 표시 -> 텍스트 -> 그룹 표시
       (TTS / VFX 이벤트와 선물의 핸드캠 글로우는 렌더와 함께 시작, 완료를 기다리지 않음)
    3. 표시 시간 대기
    4. notificationClearDelay 후 텍스트 비우기 및 로고 숨김
    5. transitionDelay 대기 후 다음 항목
"""

import asyncio
import heapq
import itertools
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from loguru import logger

from ..constants.display import (
    DEFAULT_MAX_QUEUE_SIZE,
    DISPLAY_STOP_TIMEOUT_MS,
    MAX_NOTIFICATION_DURATION_MS,
    MIN_NOTIFICATION_DURATION_MS,
    RENDERER_NOT_READY_RETRY_MS,
    TTS_BASE_MS,
    TTS_PER_WORD_MS,
    TTS_TAIL_MS,
    get_type_priority,
)
from ..exceptions import DisplayQueueError
from ..notifications.notification_builder import truncate_username
from ..platform_events import PlatformEvents
from ..utils.time_utils import now_ms

CHAT_USERNAME_MAX = 15

# Goal step per item type
GOAL_DONATION_TYPES = ("gift",)
GOAL_PAYPIGGY_TYPES = ("paypiggy",)
# 핸드캠 글로우를 켜는 항목 타입
GLOW_TYPES = ("gift",)


@dataclass
class DisplayItem:
    """표시 단위. data는 정규화된 이벤트 페이로드 (camelCase)"""

    type: str
    platform: str
    data: Dict[str, Any]
    priority: Optional[int] = None
    enqueued_at: int = 0
    goal_processed: bool = False
    # 목표에 반영할 금액 (None이면 data.amount)
    goal_amount: Optional[float] = None
    vfx_config: Optional[Dict[str, Any]] = None
    done: bool = False

    @classmethod
    def from_dict(cls, value: Dict[str, Any]) -> "DisplayItem":
        return cls(
            type=value.get("type"),
            platform=value.get("platform"),
            data=value.get("data"),
            priority=value.get("priority"),
            goal_processed=bool(value.get("goalProcessed", False)),
            goal_amount=value.get("goalAmount"),
            vfx_config=value.get("vfxConfig"),
        )


def estimate_speech_ms(text: Optional[str]) -> int:
    if not text or not isinstance(text, str):
        return 0
    return TTS_BASE_MS + len(text.split()) * TTS_PER_WORD_MS


class DisplayQueue:
    """
    우선순위 기반 디스플레이 큐

    한 번에 하나의 항목만 활성 상태이며, 렌더러 호출 실패는 기록만 하고
    다음 단계로 진행합니다.

    Args:
        renderer: RendererClient
        sources: ObsSources
        config_service: ConfigService (obs, timing, displayQueue, general)
        event_bus: tts/vfx/display 이벤트 발행용
        goal_display: GoalDisplay (None이면 목표 단계 생략)
        handcam_glow: HandcamGlow (None이면 선물 글로우 생략)
        clock: 밀리초 시계
        sleep: 대기 코루틴 (초 단위)
        stop_timeout_ms: stop()이 표시 중인 항목을 기다리는 최대 시간
    """

    def __init__(
        self,
        renderer,
        sources,
        config_service,
        event_bus=None,
        goal_display=None,
        handcam_glow=None,
        clock: Optional[Callable[[], int]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        stop_timeout_ms: int = DISPLAY_STOP_TIMEOUT_MS,
    ):
        if renderer is None:
            raise ValueError("DisplayQueue requires a renderer client")
        self.renderer = renderer
        self.sources = sources
        self.config_service = config_service
        self.event_bus = event_bus
        self.goal_display = goal_display
        self.handcam_glow = handcam_glow
        self._clock = clock or now_ms
        self._sleep = sleep
        self.stop_timeout_ms = stop_timeout_ms

        self._heap: List[Tuple[int, int, DisplayItem]] = []
        self._seq = itertools.count()
        self.current_item: Optional[DisplayItem] = None
        self.is_processing = False
        self._stopped = False
        self._task: Optional[asyncio.Task] = None

        self.total_enqueued = 0
        self.total_rendered = 0
        self.total_dropped = 0

    # ------------------------------------------------------------------
    # 설정
    # ------------------------------------------------------------------

    @property
    def obs(self):
        return self.config_service.obs

    @property
    def timing(self):
        return self.config_service.timing

    @property
    def queue_config(self):
        return self.config_service.config.display_queue

    def is_tts_enabled(self) -> bool:
        return bool(self.config_service.general.tts_enabled)

    # ------------------------------------------------------------------
    # 큐 조작
    # ------------------------------------------------------------------

    def add_item(self, item: Union[DisplayItem, Dict[str, Any]]) -> bool:
        """
        항목을 큐에 추가합니다.

        Args:
            item: DisplayItem 또는 {type, platform, data, priority?} dict

        Returns:
            bool: 추가되었으면 True, 큐가 가득 차 드롭되었으면 False

        Raises:
            DisplayQueueError: type, platform 또는 data가 없는 경우
        """
        if isinstance(item, dict):
            item = DisplayItem.from_dict(item)
        if item is None or not item.type or not isinstance(item.data, dict):
            raise DisplayQueueError("Invalid display item: missing type or data")
        if not item.platform:
            raise DisplayQueueError("Invalid display item: missing platform")

        if item.priority is None:
            item.priority = int(get_type_priority(item.type))
        item.enqueued_at = self._clock()

        # 새 채팅이 들어오면 대기 중인 이전 채팅은 버림
        if item.type == "chat" and self.queue_config.chat_optimization:
            stale = [entry for entry in self._heap if entry[2].type == "chat"]
            if stale:
                self._heap = [entry for entry in self._heap if entry[2].type != "chat"]
                heapq.heapify(self._heap)
                logger.debug(f"[DisplayQueue] Removed {len(stale)} stale chat messages to show latest")

        max_size = self.queue_config.max_queue_size or DEFAULT_MAX_QUEUE_SIZE
        if len(self._heap) >= max_size:
            self.total_dropped += 1
            logger.warning(
                f"[DisplayQueue] Queue at capacity ({max_size}), dropping {item.type} from {item.platform}"
            )
            return False

        heapq.heappush(self._heap, (item.priority, next(self._seq), item))
        self.total_enqueued += 1
        logger.debug(
            f"[DisplayQueue] Added {item.type} (priority {item.priority}). Queue length: {len(self._heap)}"
        )

        if self.queue_config.auto_process:
            self.start()
        return True

    def get_queue_length(self) -> int:
        return len(self._heap)

    def peek_items(self) -> List[DisplayItem]:
        """대기 중인 항목을 표시 순서대로 반환합니다."""
        return [entry[2] for entry in sorted(self._heap)]

    def clear_queue(self) -> None:
        self._heap = []
        logger.debug("[DisplayQueue] Queue cleared")

    def start(self) -> None:
        """실행 중인 이벤트 루프에서 처리 작업을 시작합니다."""
        self._stopped = False
        if self.is_processing or (self._task is not None and not self._task.done()):
            return
        if not self._heap:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("[DisplayQueue] No running event loop, processing deferred")
            return
        self._task = loop.create_task(self.process_queue())

    async def stop(self) -> None:
        """
        처리를 멈추고 큐를 비웁니다.

        표시 중인 항목은 stop_timeout_ms 안에서 끝까지 처리되고,
        그 시간을 넘기면 취소 후 현재 표시를 지웁니다.
        """
        self._stopped = True
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=self.stop_timeout_ms / 1000)
            except asyncio.TimeoutError:
                logger.warning(
                    f"[DisplayQueue] Current item did not finish within {self.stop_timeout_ms}ms, cancelling"
                )
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        if self.current_item is not None:
            await self._clear_item(self.current_item)
            self.current_item = None
        self.clear_queue()
        self.is_processing = False
        logger.info("[DisplayQueue] Processing stopped and queue cleared")

    # ------------------------------------------------------------------
    # 처리 루프
    # ------------------------------------------------------------------

    async def process_queue(self) -> int:
        """
        큐가 빌 때까지 항목을 하나씩 처리합니다.

        Returns:
            int: 이번 실행에서 처리한 항목 수
        """
        if self.is_processing:
            return 0
        self.is_processing = True
        processed = 0
        try:
            if not self.renderer.is_ready():
                logger.debug("[DisplayQueue] Renderer not ready, retrying once before processing")
                await self._sleep(RENDERER_NOT_READY_RETRY_MS / 1000)

            while self._heap and not self._stopped:
                _, _, item = heapq.heappop(self._heap)
                self.current_item = item
                logger.debug(
                    f"[DisplayQueue] Processing {item.type} item. Remaining: {len(self._heap)}"
                )
                try:
                    await self._process_item(item)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"[DisplayQueue] Error processing {item.type}: {e}")
                    await self._clear_item(item)
                self.current_item = None
                processed += 1
        finally:
            self.is_processing = False
        return processed

    async def _process_item(self, item: DisplayItem) -> None:
        await self._apply_goal(item)
        await self._render(item)
        self._emit_effects(item)

        await self._sleep(self.get_duration(item) / 1000)

        await self._sleep(self.timing.notification_clear_delay / 1000)
        await self._clear_item(item)

        item.done = True
        self.total_rendered += 1
        self._emit(
            PlatformEvents.DISPLAY_ITEM_RENDERED,
            {
                "type": item.type,
                "platform": item.platform,
                "id": item.data.get("id"),
                "userId": item.data.get("userId"),
                "username": item.data.get("username"),
            },
        )

        await self._sleep(self.timing.transition_delay / 1000)

    async def _apply_goal(self, item: DisplayItem) -> None:
        """선물 금액을 목표에 한 번만 반영합니다."""
        if self.goal_display is None or item.goal_processed or item.data.get("isError"):
            return

        if item.type in GOAL_DONATION_TYPES:
            amount = item.goal_amount if item.goal_amount is not None else item.data.get("amount")
            try:
                amount = float(amount or 0)
            except (TypeError, ValueError):
                amount = 0
            if amount <= 0:
                return
            item.goal_processed = True
            try:
                await self.goal_display.process_donation_goal(
                    item.platform, amount, item.data.get("id")
                )
            except Exception as e:
                logger.error(f"[DisplayQueue] Goal tracking failed for {item.platform}: {e}")
        elif item.type in GOAL_PAYPIGGY_TYPES:
            item.goal_processed = True
            try:
                await self.goal_display.process_paypiggy_goal(item.platform, item.data.get("id"))
            except Exception as e:
                logger.error(f"[DisplayQueue] Paypiggy goal tracking failed for {item.platform}: {e}")

    def _targets(self, item: DisplayItem) -> Tuple[str, str, str, Dict[str, str]]:
        """(text source, scene, group, platform logos) for the item."""
        obs = self.obs
        if item.type == "chat":
            return obs.chat_msg_txt, obs.chat_msg_scene, obs.chat_msg_group, obs.chat_platform_logos
        return (
            obs.notification_txt,
            obs.notification_scene,
            obs.notification_msg_group,
            obs.notification_platform_logos,
        )

    def _display_text(self, item: DisplayItem) -> str:
        if item.type == "chat":
            username = truncate_username(item.data.get("username") or "", CHAT_USERNAME_MAX)
            return f"{username}: {item.data.get('message') or ''}"
        return item.data.get("displayMessage") or item.data.get("message") or ""

    async def _step(self, description: str, operation: Awaitable[Any]) -> None:
        try:
            await operation
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[DisplayQueue] {description} failed: {e}")

    async def _render(self, item: DisplayItem) -> None:
        text_source, scene, group, logos = self._targets(item)
        await self._step("Hiding platform logos", self.sources.hide_all_platform_logos(logos, group))
        if item.platform in logos:
            await self._step(
                f"Showing {item.platform} logo",
                self.sources.set_group_source_visibility(logos[item.platform], group, True),
            )
        await self._step(
            f"Updating {text_source}",
            self.sources.update_text_source(text_source, self._display_text(item)),
        )
        await self._step(
            f"Showing {group}", self.sources.set_source_visibility(scene, group, True)
        )

    async def _clear_item(self, item: DisplayItem) -> None:
        text_source, _, group, logos = self._targets(item)
        await self._step(f"Clearing {text_source}", self.sources.clear_text_source(text_source))
        if item.platform in logos:
            await self._step(
                f"Hiding {item.platform} logo",
                self.sources.set_group_source_visibility(logos[item.platform], group, False),
            )

    def _emit_effects(self, item: DisplayItem) -> None:
        if item.type == "chat":
            return
        if item.type in GLOW_TYPES and self.handcam_glow is not None and not item.data.get("isError"):
            self.handcam_glow.trigger()
        tts_text = item.data.get("ttsMessage")
        if self.is_tts_enabled() and tts_text:
            self._emit(
                PlatformEvents.TTS_SPEECH_REQUESTED,
                {
                    "text": tts_text,
                    "type": item.type,
                    "platform": item.platform,
                    "username": item.data.get("username"),
                    "source": "display-queue",
                },
            )
        if item.vfx_config:
            self._emit(
                PlatformEvents.VFX_COMMAND,
                {
                    **item.vfx_config,
                    "username": item.data.get("username"),
                    "userId": item.data.get("userId"),
                    "platform": item.platform,
                    "notificationType": item.type,
                    "source": "display-queue",
                    "skipCooldown": True,
                },
            )

    # ------------------------------------------------------------------
    # 표시 시간
    # ------------------------------------------------------------------

    def get_duration(self, item: DisplayItem) -> int:
        """
        항목 표시 시간 (밀리초)

        채팅은 chatMessageDuration, 알림은 TTS가 켜져 있으면 TTS 길이 추정,
        아니면 타입별 설정값을 사용합니다.
        """
        timing = self.timing
        if item.type == "chat":
            return timing.chat_message_duration

        if self.is_tts_enabled() and item.data.get("ttsMessage"):
            estimate = estimate_speech_ms(item.data["ttsMessage"]) + TTS_TAIL_MS
            return min(MAX_NOTIFICATION_DURATION_MS, max(MIN_NOTIFICATION_DURATION_MS, estimate))

        by_type = {
            "greeting": timing.greeting_duration,
            "farewell": timing.greeting_duration,
            "follow": timing.follow_duration,
            "gift": timing.gift_duration,
            "envelope": timing.gift_duration,
            "paypiggy": timing.member_duration,
            "giftpaypiggy": timing.member_duration,
            "raid": timing.raid_duration,
        }
        return by_type.get(item.type, timing.default_notification_duration)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "queue_length": len(self._heap),
            "is_processing": self.is_processing,
            "current_type": self.current_item.type if self.current_item else None,
            "total_enqueued": self.total_enqueued,
            "total_rendered": self.total_rendered,
            "total_dropped": self.total_dropped,
        }

    def _emit(self, topic, payload: Dict[str, Any]) -> None:
        if self.event_bus is not None:
            self.event_bus.emit(topic, payload)
