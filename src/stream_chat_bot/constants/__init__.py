"""
Stream chat bot 상수 모듈.

디스플레이 큐 우선순위와 타이밍 관련 값을 한곳에서 관리합니다.

사용 예시:
    from stream_chat_bot.constants import DisplayPriority, get_type_priority
"""

from .display import (
    DisplayPriority,
    TYPE_PRIORITIES,
    TTS_BASE_MS,
    TTS_PER_WORD_MS,
    TTS_TAIL_MS,
    MIN_NOTIFICATION_DURATION_MS,
    MAX_NOTIFICATION_DURATION_MS,
    RENDERER_NOT_READY_RETRY_MS,
    DEFAULT_MAX_QUEUE_SIZE,
    get_type_priority,
)

__all__: list[str] = [
    "DisplayPriority",
    "TYPE_PRIORITIES",
    "TTS_BASE_MS",
    "TTS_PER_WORD_MS",
    "TTS_TAIL_MS",
    "MIN_NOTIFICATION_DURATION_MS",
    "MAX_NOTIFICATION_DURATION_MS",
    "RENDERER_NOT_READY_RETRY_MS",
    "DEFAULT_MAX_QUEUE_SIZE",
    "get_type_priority",
]
