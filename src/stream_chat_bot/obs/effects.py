"""VFX media playback through OBS media sources."""

import posixpath
from typing import Any, Dict, Union

from loguru import logger

from ..commands.command_parser import VfxCommand

MEDIA_ACTION_RESTART = "OBS_WEBSOCKET_MEDIA_INPUT_ACTION_RESTART"
MEDIA_ACTION_STOP = "OBS_WEBSOCKET_MEDIA_INPUT_ACTION_STOP"


class ObsEffects:
    """
    Plays command VFX clips.

    The clip `<vfxFilePath>/<filename>.mp4` is loaded into the command's
    media source and restarted. Playback is fire-and-forget.
    """

    def __init__(self, renderer):
        self.renderer = renderer

    async def play_media(self, vfx: Union[VfxCommand, Dict[str, Any]]) -> bool:
        """
        Args:
            vfx: Resolved VFX command (object or camelCase dict)

        Returns:
            bool: False when skipped because the renderer is offline

        Raises:
            ValueError: The VFX config lacks a media source, filename or path
        """
        data = vfx.to_dict() if isinstance(vfx, VfxCommand) else dict(vfx or {})
        media_source = data.get("mediaSource")
        filename = data.get("filename")
        vfx_file_path = data.get("vfxFilePath")
        if not media_source or not filename or not vfx_file_path:
            raise ValueError("VFX config requires mediaSource, filename and vfxFilePath")

        if not self.renderer.is_connected():
            logger.debug(f"[VFX] Not connected, skipping {filename}")
            return False

        file_path = posixpath.join(vfx_file_path, f"{filename}.mp4")
        logger.debug(f"[VFX] Playing {filename} in source {media_source} from {file_path}")
        await self.renderer.call(
            "SetInputSettings",
            {
                "inputName": media_source,
                "inputSettings": {"local_file": file_path, "looping": False},
                "overlay": True,
            },
        )
        await self.trigger_media_action(media_source, MEDIA_ACTION_RESTART)
        return True

    async def trigger_media_action(self, input_name: str, media_action: str) -> None:
        await self.renderer.call(
            "TriggerMediaInputAction", {"inputName": input_name, "mediaAction": media_action}
        )
