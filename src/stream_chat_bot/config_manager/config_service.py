"""
Typed, read-mostly view over the validated configuration.

Updates go through update() so that every change is re-validated and
announced on the event bus as `config:changed`.
"""

from typing import Any, Dict, Optional

from loguru import logger
from pydantic import BaseModel

from ..platform_events import PlatformEvents
from .main import Config
from .utils import read_yaml, validate_config

_MISSING = object()


class ConfigService:
    """Configuration access point shared by all services."""

    def __init__(self, config: Config, event_bus=None):
        if config is None:
            raise ValueError("ConfigService requires a validated Config")
        self._config = config
        self._event_bus = event_bus

    @classmethod
    def from_dict(cls, data: Dict[str, Any], event_bus=None) -> "ConfigService":
        return cls(validate_config(data), event_bus)

    @property
    def config(self) -> Config:
        return self._config

    @property
    def general(self):
        return self._config.general

    @property
    def obs(self):
        return self._config.obs

    @property
    def timing(self):
        return self._config.timing

    @property
    def spam(self):
        return self._config.spam

    @property
    def goals(self):
        return self._config.goals

    def get(self, section: str, key: Optional[str] = None, default: Any = None) -> Any:
        """
        Read a section or a single key.

        Both snake_case attribute names and camelCase YAML keys are accepted.

        Args:
            section: Section name, e.g. "general" or "displayQueue"
            key: Key within the section; None returns the whole section
            default: Returned when the section or key does not exist
        """
        section_obj = self._resolve_section(section)
        if section_obj is _MISSING:
            return default
        if key is None:
            return section_obj
        if isinstance(section_obj, dict):
            return section_obj.get(key, default)
        attr = _attribute_name(type(section_obj), key)
        if attr is None:
            return default
        return getattr(section_obj, attr)

    def update(self, section: str, key: str, value: Any) -> None:
        """
        Change one key, re-validate the whole config and emit config:changed.

        Raises:
            ConfigurationError: If the new value does not validate.
            KeyError: If the section does not exist.
        """
        data = self.to_dict()
        section_key = _yaml_section_name(section)
        if section_key not in data:
            raise KeyError(f"Unknown configuration section: {section}")

        previous = self.get(section, key)
        section_data = dict(data[section_key] or {})
        section_obj = self._resolve_section(section)
        if isinstance(section_obj, BaseModel):
            field_name = _attribute_name(type(section_obj), key)
            if field_name is None:
                raise KeyError(f"Unknown configuration key: {section}.{key}")
            alias = type(section_obj).model_fields[field_name].alias or field_name
            section_data[alias] = value
        else:
            section_data[key] = value
        data[section_key] = section_data

        self._config = validate_config(data)
        logger.info(f"[Config] {section}.{key} updated")
        self._emit_changed({"section": section, "key": key, "value": value, "previous": previous})

    def reload(self, config_path: str) -> None:
        """Replace the whole configuration from a file."""
        self._config = validate_config(read_yaml(config_path))
        logger.info(f"[Config] Reloaded configuration from {config_path}")
        self._emit_changed({"section": None, "key": None, "value": None, "previous": None})

    def to_dict(self) -> Dict[str, Any]:
        return self._config.model_dump(by_alias=True)

    def _emit_changed(self, payload: Dict[str, Any]) -> None:
        if self._event_bus is not None:
            self._event_bus.emit(PlatformEvents.CONFIG_CHANGED, payload)

    def _resolve_section(self, section: str):
        attr = _attribute_name(Config, section)
        if attr is None:
            return _MISSING
        return getattr(self._config, attr)


def _attribute_name(model: type, key: str) -> Optional[str]:
    fields = model.model_fields
    if key in fields:
        return key
    for name, info in fields.items():
        if info.alias == key:
            return name
    return None


def _yaml_section_name(section: str) -> str:
    attr = _attribute_name(Config, section)
    if attr is None:
        return section
    return Config.model_fields[attr].alias or attr
