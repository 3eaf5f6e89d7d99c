"""
디스플레이 큐 상수

표시 항목 우선순위와 타이밍 기본값을 정의합니다.
숫자가 작을수록 먼저 표시됩니다.
"""

from enum import IntEnum


class DisplayPriority(IntEnum):
    """표시 항목 우선순위 (낮을수록 긴급)"""
    PAYPIGGY = 1      # 구독 / 멤버십
    GIFTPAYPIGGY = 2  # 선물 구독
    GIFT = 3          # 비트, 슈퍼챗, 코인 선물
    ENVELOPE = 3      # 보물상자
    RAID = 4
    REDEMPTION = 5    # 채널 포인트 보상
    FOLLOW = 6
    SHARE = 7
    GREETING = 8
    FAREWELL = 8
    COMMAND = 9
    CHAT = 10


# 알 수 없는 타입은 채팅과 같은 우선순위로 처리
TYPE_PRIORITIES = {
    "paypiggy": DisplayPriority.PAYPIGGY,
    "giftpaypiggy": DisplayPriority.GIFTPAYPIGGY,
    "gift": DisplayPriority.GIFT,
    "envelope": DisplayPriority.ENVELOPE,
    "raid": DisplayPriority.RAID,
    "redemption": DisplayPriority.REDEMPTION,
    "follow": DisplayPriority.FOLLOW,
    "share": DisplayPriority.SHARE,
    "greeting": DisplayPriority.GREETING,
    "farewell": DisplayPriority.FAREWELL,
    "command": DisplayPriority.COMMAND,
    "chat": DisplayPriority.CHAT,
}

# TTS 길이 추정 (밀리초)
TTS_BASE_MS = 400
TTS_PER_WORD_MS = 170
TTS_TAIL_MS = 1000
MIN_NOTIFICATION_DURATION_MS = 2000
MAX_NOTIFICATION_DURATION_MS = 20000

# 렌더러가 준비되지 않았을 때 재시도 간격
RENDERER_NOT_READY_RETRY_MS = 1000

# 종료 시 표시 중인 항목을 기다리는 최대 시간 (강제 종료 타이머보다 짧게)
DISPLAY_STOP_TIMEOUT_MS = 1000

DEFAULT_MAX_QUEUE_SIZE = 100


def get_type_priority(item_type: str) -> int:
    """
    표시 항목 타입에 해당하는 우선순위를 반환합니다.

    Args:
        item_type: 표시 항목 타입 (chat, gift, ...)

    Returns:
        int: DisplayPriority 값
    """
    return TYPE_PRIORITIES.get(item_type, DisplayPriority.CHAT)
