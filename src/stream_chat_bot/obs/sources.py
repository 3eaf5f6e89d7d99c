"""
Text sources, scene items, groups and filters.

Every operation goes through RendererClient.call(). When the renderer is
not connected the operations log and return without doing anything, so
the display queue keeps moving during an outage.
"""

import re
from typing import Any, Dict, List, Optional

from loguru import logger

from ..exceptions import RendererError

# Control characters and lone surrogates break OBS text sources
_UNSAFE_TEXT = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f\ud800-\udfff]")


def sanitize_for_obs(text: Any) -> str:
    if text is None:
        return ""
    return _UNSAFE_TEXT.sub("", str(text))


class ObsSources:
    """
    Source-level operations on top of the renderer client.

    Args:
        renderer: RendererClient (or any object with call/is_connected/get_scene_item_id)
    """

    def __init__(self, renderer):
        self.renderer = renderer
        self._group_item_cache: Dict[str, int] = {}

    def _skip(self, action: str) -> bool:
        if self.renderer.is_connected():
            return False
        logger.debug(f"[OBS Source] Not connected, skipping {action}")
        return True

    async def update_text_source(self, source_name: str, text: str) -> bool:
        """
        Replace the text of a text source, keeping its other settings.

        Returns:
            bool: False when skipped because the renderer is offline
        """
        if self._skip(f'update of "{source_name}"'):
            return False
        safe_text = sanitize_for_obs(text)
        logger.debug(f'[OBS Source] Updating text source "{source_name}" with: {safe_text}')
        await self.renderer.call(
            "SetInputSettings",
            {"inputName": source_name, "inputSettings": {"text": safe_text}, "overlay": True},
        )
        return True

    async def clear_text_source(self, source_name: str) -> bool:
        return await self.update_text_source(source_name, "")

    async def set_source_visibility(self, scene_name: str, source_name: str, visible: bool) -> bool:
        if self._skip(f'visibility of "{source_name}"'):
            return False
        scene_item_id = await self.renderer.get_scene_item_id(scene_name, source_name)
        await self.renderer.call(
            "SetSceneItemEnabled",
            {"sceneName": scene_name, "sceneItemId": scene_item_id, "sceneItemEnabled": visible},
        )
        return True

    async def get_group_scene_items(self, group_name: str) -> List[Dict[str, Any]]:
        response = await self.renderer.call("GetGroupSceneItemList", {"sceneName": group_name})
        items = response.get("sceneItems")
        if not isinstance(items, list):
            raise RendererError(f"Could not retrieve a valid item list from group '{group_name}'")
        return items

    async def get_group_scene_item_id(self, source_name: str, group_name: str) -> int:
        key = f"{group_name}/{source_name}"
        if key in self._group_item_cache:
            return self._group_item_cache[key]
        for item in await self.get_group_scene_items(group_name):
            if item.get("sourceName") == source_name:
                self._group_item_cache[key] = item["sceneItemId"]
                return item["sceneItemId"]
        raise RendererError(f"Source '{source_name}' not found inside group '{group_name}'")

    async def set_group_source_visibility(
        self, source_name: str, group_name: str, visible: bool
    ) -> bool:
        """Toggle a source inside a group (groups are addressed as scenes)."""
        if not group_name or self._skip(f'visibility of "{source_name}" in "{group_name}"'):
            return False
        scene_item_id = await self.get_group_scene_item_id(source_name, group_name)
        await self.renderer.call(
            "SetSceneItemEnabled",
            {"sceneName": group_name, "sceneItemId": scene_item_id, "sceneItemEnabled": visible},
        )
        return True

    async def hide_all_platform_logos(self, platform_logos: Dict[str, str], group_name: str) -> None:
        for platform, logo in platform_logos.items():
            try:
                await self.set_group_source_visibility(logo, group_name, False)
            except RendererError as e:
                logger.warning(f"[Platform Logo] Failed to hide {platform} logo in {group_name}: {e}")

    async def set_source_filter_enabled(self, source_name: str, filter_name: str, enabled: bool) -> bool:
        if self._skip(f'filter "{filter_name}"'):
            return False
        await self.renderer.call(
            "SetSourceFilterEnabled",
            {"sourceName": source_name, "filterName": filter_name, "filterEnabled": enabled},
        )
        return True

    async def get_source_filter_settings(self, source_name: str, filter_name: str) -> Optional[Dict[str, Any]]:
        response = await self.renderer.call(
            "GetSourceFilter", {"sourceName": source_name, "filterName": filter_name}
        )
        return response.get("filterSettings")

    async def set_source_filter_settings(
        self, source_name: str, filter_name: str, filter_settings: Dict[str, Any]
    ) -> bool:
        if self._skip(f'filter settings "{filter_name}"'):
            return False
        await self.renderer.call(
            "SetSourceFilterSettings",
            {"sourceName": source_name, "filterName": filter_name, "filterSettings": filter_settings},
        )
        return True

    def clear_cache(self) -> None:
        self._group_item_cache.clear()
