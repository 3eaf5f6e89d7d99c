# config_manager/utils.py
import os
import re
from typing import Any, Dict

import chardet
import yaml
from loguru import logger
from pydantic import ValidationError

from ..exceptions import ConfigurationError
from .main import Config

DEFAULT_CONFIG_PATH = "config.yaml"
CONFIG_PATH_ENV = "CHAT_BOT_CONFIG_PATH"

_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")


def resolve_config_path(explicit_path: str | None = None) -> str:
    """CHAT_BOT_CONFIG_PATH overrides the default; an explicit path overrides both."""
    if explicit_path:
        return explicit_path
    return os.getenv(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH


def read_yaml(config_path: str) -> Dict[str, Any]:
    """
    Read a YAML configuration file, substituting ${ENV_VAR} references.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Configuration data as a dictionary (empty file -> empty dict).

    Raises:
        FileNotFoundError: If the configuration file is not found.
        IOError: If the configuration file cannot be decoded.
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    content = load_text_file_with_guess_encoding(config_path)
    if content is None:
        raise IOError(f"Failed to read configuration file: {config_path}")

    def replacer(match):
        return os.getenv(match.group(1), match.group(0))

    content = _ENV_PATTERN.sub(replacer, content)

    try:
        return yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        logger.critical(f"Error parsing YAML file: {e}")
        raise


def load_text_file_with_guess_encoding(file_path: str) -> str | None:
    """
    Load a text file, falling back to chardet when UTF-8 fails.

    Returns:
        The file content, or None if no encoding worked.
    """
    for encoding in ("utf-8", "utf-8-sig"):
        try:
            with open(file_path, "r", encoding=encoding) as file:
                return file.read()
        except UnicodeDecodeError:
            continue

    with open(file_path, "rb") as file:
        raw_data = file.read()
    detected = chardet.detect(raw_data)
    if not detected.get("encoding"):
        logger.error(f"Could not detect encoding for config file {file_path}")
        return None
    try:
        return raw_data.decode(detected["encoding"])
    except (UnicodeDecodeError, LookupError) as e:
        logger.error(f"Error decoding config file {file_path}: {e}")
        return None


def _format_validation_error(error: ValidationError) -> str:
    """
    ValidationError를 필드별 오류 메시지로 포맷합니다.

    Args:
        error: Pydantic ValidationError

    Returns:
        한 줄에 하나씩 정리된 오류 메시지 문자열
    """
    error_messages = []

    for err in error.errors():
        location = " -> ".join(str(loc) for loc in err["loc"])
        error_type = err["type"]
        msg = err["msg"]
        input_value = err.get("input", "N/A")

        if error_type == "missing":
            error_messages.append(
                f"  - '{location}': required key is missing from the config file"
            )
        elif error_type in ("string_type", "int_type", "int_parsing", "bool_type", "bool_parsing"):
            expected = error_type.split("_")[0]
            error_messages.append(
                f"  - '{location}': expected {expected}, got {input_value!r}"
            )
        elif "greater_than" in error_type or "less_than" in error_type:
            error_messages.append(f"  - '{location}': value out of range. {msg}")
        else:
            error_messages.append(f"  - '{location}': {msg} (type: {error_type})")

    return "\n".join(error_messages)


def validate_config(config_data: Dict[str, Any]) -> Config:
    """
    설정 데이터를 Config 모델에 대해 검증합니다.

    Args:
        config_data: 검증할 설정 데이터 딕셔너리

    Returns:
        검증된 Config 객체

    Raises:
        ConfigurationError: 필수 키 누락 또는 잘못된 값
    """
    try:
        return Config.model_validate(config_data or {})
    except ValidationError as e:
        formatted_errors = _format_validation_error(e)
        logger.critical(
            "\n" + "=" * 60 + "\n"
            "Configuration Validation Error\n"
            + "=" * 60 + "\n"
            f"{formatted_errors}\n"
            + "=" * 60
        )
        logger.debug(f"Configuration data keys: {list((config_data or {}).keys())}")
        fields = [".".join(str(loc) for loc in err["loc"]) for err in e.errors()]
        raise ConfigurationError(
            f"Invalid configuration:\n{formatted_errors}", fields=fields
        ) from e


def load_config(config_path: str | None = None) -> Config:
    """Read, substitute and validate the configuration file."""
    path = resolve_config_path(config_path)
    logger.info(f"[Config] Loading configuration from {path}")
    return validate_config(read_yaml(path))
