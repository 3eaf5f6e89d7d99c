"""
TTS caption and speech hand-off for `tts:speech-requested` events.
"""

import asyncio
import re
from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger

from ..exceptions import RendererError
from ..platform_events import PlatformEvents

MAX_TTS_LENGTH = 500
# OBS drops a text update that repeats the current text; clear first
CAPTION_RESET_DELAY_MS = 50

_URL = re.compile(r"https?://\S+")
_UNSAFE = re.compile(r"[^\w\s.,!?'_]", re.UNICODE)
_FILTERED_RUN = re.compile(r"(\s*\[filtered\]\s*)+")
_WHITESPACE = re.compile(r"\s+")


def clean_tts_text(text: Any) -> str:
    """
    Replace URLs and unsafe characters with "[filtered]" and cap the length.

    Args:
        text: Raw text to speak

    Returns:
        str: Text safe for a speech engine ("" for non-strings)
    """
    if not isinstance(text, str):
        return ""
    cleaned = _URL.sub("\x00", text.strip())
    cleaned = _UNSAFE.sub("\x00", cleaned)
    cleaned = cleaned.replace("\x00", " [filtered] ")
    cleaned = _FILTERED_RUN.sub(" [filtered] ", cleaned)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    if len(cleaned) > MAX_TTS_LENGTH:
        cleaned = cleaned[:MAX_TTS_LENGTH] + "..."
    return cleaned


class TtsService:
    """
    Shows TTS text in the caption source and passes it to a speech engine.

    The speech engine is external; without one the service only updates
    the caption.

    Args:
        config_service: ConfigService (general.ttsEnabled, obs.ttsTxt)
        event_bus: EventBus to listen on
        sources: ObsSources
        speaker: Coroutine function speaking one text, or None
        sleep: Coroutine used for the caption reset delay (seconds)
    """

    def __init__(
        self,
        config_service,
        event_bus,
        sources,
        speaker: Optional[Callable[[str], Awaitable[Any]]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config_service = config_service
        self.event_bus = event_bus
        self.sources = sources
        self.speaker = speaker
        self._sleep = sleep
        self._subscription = None
        self.spoken_count = 0

    def start(self) -> None:
        if self.event_bus is not None and self._subscription is None:
            self._subscription = self.event_bus.subscribe(
                PlatformEvents.TTS_SPEECH_REQUESTED, self.handle_speech_request
            )

    async def handle_speech_request(self, payload: Optional[Dict[str, Any]]) -> bool:
        if not isinstance(payload, dict) or payload.get("source") == "tts-service":
            return False
        return await self.speak(payload.get("text"))

    async def speak(self, text: Any) -> bool:
        """
        Returns:
            bool: True when the text was captioned or spoken
        """
        if not self.config_service.general.tts_enabled:
            logger.debug("[TTS] TTS disabled, ignoring speech request")
            return False
        cleaned = clean_tts_text(text)
        if not cleaned:
            return False

        obs = self.config_service.obs
        try:
            await self.sources.clear_text_source(obs.tts_txt)
            await self._sleep(CAPTION_RESET_DELAY_MS / 1000)
            await self.sources.update_text_source(obs.tts_txt, cleaned)
            await self.sources.set_source_visibility(obs.tts_scene, obs.tts_txt, True)
        except RendererError as e:
            logger.warning(f"[TTS] Failed to update caption source {obs.tts_txt}: {e}")

        if self.speaker is not None:
            try:
                await self.speaker(cleaned)
            except Exception as e:
                logger.error(f"[TTS] Speech engine failed: {e}")
                return False

        self.spoken_count += 1
        logger.debug(f"[TTS] {cleaned}")
        return True

    def dispose(self) -> None:
        if self.event_bus is not None and self._subscription is not None:
            self.event_bus.unsubscribe(self._subscription)
        self._subscription = None
