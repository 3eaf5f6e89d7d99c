"""
VFX playback for `vfx:command` events.

The display queue emits `vfx:command` when it renders an item that carries
a VFX config. Other components may emit it directly with a command key;
those requests go through the command cooldowns unless `skipCooldown` is set.
"""

from typing import Any, Dict, Optional

from loguru import logger

from ..exceptions import RendererError
from ..platform_events import PlatformEvents


class VfxCommandService:
    """
    Args:
        event_bus: EventBus to listen on
        effects: ObsEffects
        command_parser: CommandParser used to resolve command keys and cooldowns
    """

    def __init__(self, event_bus, effects, command_parser):
        if effects is None or command_parser is None:
            raise ValueError("VfxCommandService requires effects and a command parser")
        self.event_bus = event_bus
        self.effects = effects
        self.command_parser = command_parser
        self._subscription = None
        self.stats = {"total": 0, "played": 0, "skipped": 0, "failed": 0, "cooldown_blocked": 0}

    def start(self) -> None:
        if self.event_bus is not None and self._subscription is None:
            self._subscription = self.event_bus.subscribe(
                PlatformEvents.VFX_COMMAND, self.handle_vfx_command
            )

    def select_vfx_command(self, trigger: str, message: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """VFX config for a chat trigger or keyword, as a camelCase dict."""
        vfx = self.command_parser.get_vfx_config(trigger, message)
        return vfx.to_dict() if vfx else None

    def get_vfx_config(self, command_key: str) -> Optional[Dict[str, Any]]:
        vfx = self.command_parser.get_vfx_config_for_command(command_key)
        return vfx.to_dict() if vfx else None

    async def handle_vfx_command(self, payload: Optional[Dict[str, Any]]) -> bool:
        """
        Play the clip described by a vfx:command payload.

        Returns:
            bool: True when the clip was started
        """
        payload = payload or {}
        self.stats["total"] += 1

        vfx = dict(payload)
        if not vfx.get("filename") and vfx.get("commandKey"):
            resolved = self.get_vfx_config(vfx["commandKey"])
            if resolved is None:
                logger.warning(f"[VFX] Unknown VFX command key: {vfx['commandKey']}")
                self.stats["skipped"] += 1
                return False
            vfx = {**resolved, **{k: v for k, v in payload.items() if k not in resolved}}

        if not payload.get("skipCooldown"):
            if not self.command_parser.try_execute(payload.get("userId"), vfx.get("command")):
                self.stats["cooldown_blocked"] += 1
                return False

        try:
            played = await self.effects.play_media(vfx)
        except ValueError as e:
            logger.error(f"[VFX] Invalid VFX config for {vfx.get('command') or 'unknown command'}: {e}")
            self.stats["failed"] += 1
            return False
        except RendererError as e:
            logger.error(f"[VFX] Failed to play {vfx.get('filename')}: {e}")
            self.stats["failed"] += 1
            return False

        if played:
            self.stats["played"] += 1
            logger.debug(f"[VFX] Played {vfx.get('filename')} for {payload.get('username') or 'unknown user'}")
        else:
            self.stats["skipped"] += 1
        return played

    def get_status(self) -> Dict[str, Any]:
        return {"subscribed": self._subscription is not None, **self.stats}

    def dispose(self) -> None:
        if self.event_bus is not None and self._subscription is not None:
            self.event_bus.unsubscribe(self._subscription)
        self._subscription = None
