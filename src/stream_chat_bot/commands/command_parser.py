"""
Chat command detection and cooldown gating.

Command lines in the `commands` config section look like

    hello: "!hello|!hi, hello-media, wave|greetings, 4000"

i.e. triggers, renderer media source, optional keywords, optional
duration in ms. Triggers and keywords match case-insensitively; cooldowns
are keyed by the (case-sensitive) command name.
"""

import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Pattern, Set

from loguru import logger

from ..config_manager import Config
from .cooldown_service import CommandCooldownService
from .global_cooldown import GlobalCommandCooldownManager

DEFAULT_VFX_DURATION_MS = 5000


@dataclass
class VfxCommand:
    """Resolved VFX configuration for a matched command."""

    filename: str
    media_source: str
    vfx_file_path: str
    duration: int
    command_key: str
    command: str
    keyword: Optional[str] = None
    match_type: str = "trigger"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {
            "filename": data["filename"],
            "mediaSource": data["media_source"],
            "vfxFilePath": data["vfx_file_path"],
            "duration": data["duration"],
            "commandKey": data["command_key"],
            "command": data["command"],
            "keyword": data["keyword"],
            "matchType": data["match_type"],
        }


@dataclass
class ParsedCommand:
    """A chat message recognised as a farewell or VFX command."""

    type: str  # "vfx" or "farewell"
    username: Optional[str]
    platform: Optional[str]
    trigger: str
    user_id: Optional[str] = None
    vfx: Optional[VfxCommand] = None
    is_first: bool = False


def parse_duration(parts: List[str]) -> int:
    """First positive integer after the media source, else the default."""
    for part in parts[2:]:
        try:
            value = int(part)
        except ValueError:
            continue
        if value > 0:
            return value
    return DEFAULT_VFX_DURATION_MS


class CommandParser:
    """
    Parses chat text into commands and enforces command cooldowns.

    Args:
        config: Validated root config
        cooldown_service: Per-user cooldown owner; cooldown checks are
            skipped when None
        global_cooldown: Per-command cooldown owner
    """

    def __init__(
        self,
        config: Config,
        cooldown_service: Optional[CommandCooldownService] = None,
        global_cooldown: Optional[GlobalCommandCooldownManager] = None,
    ):
        self.cooldown_service = cooldown_service
        self.global_cooldown = global_cooldown or GlobalCommandCooldownManager()
        self._regex_cache: Dict[str, Pattern] = {}
        self.update_config(config)

    def update_config(self, config: Config) -> None:
        self.config = config
        self.commands = dict(config.commands)
        self.farewell_commands = dict(config.farewell)
        self.vfx_file_path = config.vfx.file_path
        self.prefixes = tuple(config.general.command_prefixes)
        self.keyword_parsing_enabled = config.general.keyword_parsing_enabled
        self.global_cooldown_ms = config.general.global_cmd_cooldown_ms

        self._triggers: Dict[str, VfxCommand] = {}
        self._keywords: Dict[str, VfxCommand] = {}
        self._by_key: Dict[str, VfxCommand] = {}
        self._farewell_triggers: Set[str] = set()
        self._farewell_keywords: Set[str] = set()
        self._regex_cache.clear()
        self._parse_command_lines()
        self._parse_farewell_lines()

    def _parse_command_lines(self) -> None:
        for key, line in self.commands.items():
            if not isinstance(line, str) or not line.strip():
                continue
            parts = [p.strip() for p in line.split(",")]
            triggers = [t.strip().lower() for t in parts[0].split("|") if t.strip()]
            if not triggers:
                logger.warning(f"[CommandParser] Command '{key}' has no triggers, skipping")
                continue
            keywords = []
            if len(parts) > 2:
                keywords = [k.strip().lower() for k in parts[2].split("|") if k.strip()]

            base = VfxCommand(
                filename=key,
                media_source=parts[1] if len(parts) > 1 else "",
                vfx_file_path=self.vfx_file_path,
                duration=parse_duration(parts),
                command_key=key,
                command=triggers[0],
            )
            self._by_key[key] = base
            for trigger in triggers:
                self._triggers[trigger] = base
            for keyword in keywords:
                self._keywords[keyword] = base

    def _parse_farewell_lines(self) -> None:
        for key, line in self.farewell_commands.items():
            if key == "enabled" or not isinstance(line, str):
                continue
            parts = [p.strip() for p in line.split(",")]
            for trigger in parts[0].split("|"):
                if trigger.strip():
                    self._farewell_triggers.add(trigger.strip().lower())
            if len(parts) > 1:
                for keyword in parts[1].split("|"):
                    if keyword.strip():
                        self._farewell_keywords.add(keyword.strip().lower())

    def _regex(self, keyword: str) -> Pattern:
        pattern = self._regex_cache.get(keyword)
        if pattern is None:
            pattern = re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)
            self._regex_cache[keyword] = pattern
        return pattern

    def _is_prefixed(self, word: str) -> bool:
        return word.startswith(self.prefixes)

    def get_vfx_config(self, trigger: Optional[str], message: Optional[str] = None) -> Optional[VfxCommand]:
        """
        Resolve a trigger word (or, failing that, a keyword in the message).

        Returns:
            VfxCommand copy annotated with how it matched, or None
        """
        if not trigger or not isinstance(trigger, str):
            return None

        base = self._triggers.get(trigger.lower())
        if base is not None:
            return VfxCommand(**{**asdict(base), "match_type": "trigger"})

        return self._match_keyword(message)

    def _match_keyword(self, message: Optional[str]) -> Optional[VfxCommand]:
        if not self.keyword_parsing_enabled or not isinstance(message, str) or not message:
            return None
        for keyword, config in self._keywords.items():
            if self._regex(keyword).search(message):
                return VfxCommand(**{**asdict(config), "keyword": keyword, "match_type": "keyword"})
        return None

    def get_vfx_config_for_command(self, command_key: str) -> Optional[VfxCommand]:
        """VFX config by command name, as used by notification-triggered effects."""
        base = self._by_key.get(command_key)
        if base is None:
            return None
        return VfxCommand(**{**asdict(base), "match_type": "notification"})

    def get_matching_farewell(self, message: str, trigger: str) -> Optional[str]:
        if not message:
            return None
        if trigger.lower() in self._farewell_triggers:
            return trigger
        if self.keyword_parsing_enabled:
            for keyword in self._farewell_keywords:
                if self._regex(keyword).search(message):
                    return keyword
        return None

    def parse(self, data: Dict[str, Any], is_first: bool = False) -> Optional[ParsedCommand]:
        """
        Recognise a command in a chat payload.

        Args:
            data: Chat payload with `message` (or `comment`), `username`,
                `userId` and `platform`
            is_first: Whether this is the user's first message

        Returns:
            ParsedCommand, or None when the text is not a command
        """
        text = data.get("comment") or data.get("message")
        if not text or not isinstance(text, str):
            return None

        words = text.split()
        first_word = words[0] if words else ""
        trigger = first_word.lower()

        farewell = self.get_matching_farewell(text, trigger)
        if farewell:
            return ParsedCommand(
                type="farewell",
                username=data.get("username"),
                platform=data.get("platform"),
                trigger=farewell,
                user_id=data.get("userId"),
                is_first=is_first,
            )

        # Triggers need a configured prefix; keywords match anywhere
        if self._is_prefixed(first_word):
            vfx = self.get_vfx_config(trigger, text)
        else:
            vfx = self._match_keyword(text)
        if vfx is None:
            return None

        return ParsedCommand(
            type="vfx",
            username=data.get("username"),
            platform=data.get("platform"),
            trigger=vfx.command,
            user_id=data.get("userId"),
            vfx=vfx,
            is_first=is_first,
        )

    def check_global_command_cooldown(
        self, command_name: Optional[str], cooldown_ms: Optional[int] = None
    ) -> bool:
        """True while the command is on global cooldown."""
        if cooldown_ms is None:
            cooldown_ms = self.global_cooldown_ms
        return self.global_cooldown.is_command_on_cooldown(command_name, cooldown_ms)

    def update_global_command_cooldown(self, command_name: Optional[str]) -> None:
        self.global_cooldown.update_command_timestamp(command_name)

    def clear_expired_global_cooldowns(self, max_age_ms: int) -> int:
        return self.global_cooldown.clear_expired_cooldowns(max_age_ms)

    def try_execute(self, user_id: Optional[str], command_name: Optional[str]) -> bool:
        """
        Run the cooldown checks for one invocation and record it if accepted.

        Order: per-user cooldown, heavy-command budget, global per-command
        cooldown. Rejections only log at debug level.

        Returns:
            bool: True when the invocation is accepted
        """
        if not command_name:
            return True

        if self.cooldown_service is not None and user_id:
            if not self.cooldown_service.check_user_cooldown(user_id):
                logger.debug(f"[CommandParser] {command_name} rejected for {user_id}: user cooldown")
                return False

        if self.check_global_command_cooldown(command_name):
            remaining = self.global_cooldown.get_remaining_cooldown(
                command_name, self.global_cooldown_ms
            )
            logger.debug(
                f"[CommandParser] {command_name} rejected: global cooldown ({remaining}ms remaining)"
            )
            return False

        if self.cooldown_service is not None and user_id:
            self.cooldown_service.update_user_cooldown(user_id)
        self.update_global_command_cooldown(command_name)
        return True

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_commands": len(self.commands),
            "total_triggers": len(self._triggers),
            "total_keywords": len(self._keywords),
            "keyword_parsing_enabled": self.keyword_parsing_enabled,
            "vfx_file_path": self.vfx_file_path,
        }
