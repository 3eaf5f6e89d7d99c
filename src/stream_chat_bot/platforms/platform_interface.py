"""
Platform adapter interface for live streaming platforms.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional


@dataclass
class PlatformContext:
    """
    What an adapter receives when it is initialized.

    Attributes:
        platform: Platform name ('tiktok', 'twitch' or 'youtube')
        processor: UnifiedNotificationProcessor for this platform; adapters
            call `await processor.process_notification(raw, event_type, event_data)`
        on_connected: Call after every (re)connect so stale history is filtered
        on_disconnected: Call with a reason when the connection drops
        on_stream_detected: Call with new stream ids (video platform only)
    """

    platform: str
    processor: Any
    on_connected: Callable[[], None]
    on_disconnected: Callable[[str], None]
    on_stream_detected: Optional[Callable[[List[str]], None]] = None


class PlatformAdapter(ABC):
    """
    Interface for platform ingress adapters.

    Each platform SDK wrapper should inherit from this interface and
    implement the required methods. Adapters never talk to the renderer;
    they only hand raw items to the processor in the context.
    """

    platform: str = ""

    def __init__(self, config: Any):
        """
        Initialize the adapter.

        Args:
            config: The platform's config section
        """
        self.config = config
        self.context: Optional[PlatformContext] = None

    @abstractmethod
    async def initialize(self, context: PlatformContext) -> bool:
        """
        Connect and start delivering events.

        Returns:
            bool: True if the adapter connected, False otherwise
        """
        pass

    @abstractmethod
    async def cleanup(self) -> None:
        """Disconnect and release resources."""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """
        Check if the adapter is currently connected.

        Returns:
            bool: True if connected, False otherwise
        """
        pass

    async def reinitialize(self, stream_ids: List[str]) -> bool:
        """
        Re-attach to newly detected streams.

        Only adapters that follow individual streams (the video platform)
        override this.

        Returns:
            bool: True if the adapter re-attached
        """
        return False

    def get_status(self) -> Dict[str, Any]:
        return {"platform": self.platform, "connected": self.is_connected()}
