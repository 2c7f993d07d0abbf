import json
from pathlib import Path
from typing import Optional, Type, TypeVar

import yaml
from loguru import logger
from pydantic import BaseModel, ValidationError

from squadron.config.files import read_json, write_json_atomic
from squadron.config.schema import AppConfig, KeyBindingsConfig
from squadron.paths import CONFIG_PATH, KEYBINDINGS_PATH

T = TypeVar("T", bound=BaseModel)


def _warn_unknown_keys(model: BaseModel, path: str, config_path: Path) -> None:
    """Recursively warn about unknown keys in a model and its nested models."""
    if hasattr(model, "model_extra") and model.model_extra:
        logger.warning(f"Unknown keys in {path} at {config_path}: {list(model.model_extra.keys())}")

    for field_name, field_value in model.__dict__.items():
        if isinstance(field_value, BaseModel):
            _warn_unknown_keys(field_value, f"{path}.{field_name}", config_path)
        elif isinstance(field_value, list):
            for index, value in enumerate(field_value):
                if isinstance(value, BaseModel):
                    _warn_unknown_keys(value, f"{path}.{field_name}[{index}]", config_path)


def load_config(path: Path, model_class: Type[T]) -> T:
    """Load and validate configuration from a YAML file.

    Args:
        path: Path to the config.yml file.
        model_class: The Pydantic model class to use for validation.

    Returns:
        The validated configuration model.
    """
    if not path.exists():
        return model_class()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except Exception as e:
        logger.warning(f"Failed to read config file {path}: {e}")
        return model_class()

    model = model_class.model_validate(raw)
    _warn_unknown_keys(model, "root", path)
    return model


def load_app_config(path: Optional[Path] = None) -> AppConfig:
    """Load the user-level configuration."""
    return load_config(path or CONFIG_PATH, AppConfig)


def load_keybindings(path: Optional[Path] = None) -> KeyBindingsConfig:
    """Load custom key bindings, falling back to defaults when absent or empty."""
    config_path = path or KEYBINDINGS_PATH
    try:
        raw = read_json(config_path)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to read keybindings {config_path}: {e}")
        return KeyBindingsConfig.defaults()
    if raw is None:
        return KeyBindingsConfig.defaults()

    try:
        config = KeyBindingsConfig.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Invalid keybindings in {config_path}: {e}")
        return KeyBindingsConfig.defaults()
    if not config.bindings:
        return KeyBindingsConfig.defaults()
    _warn_unknown_keys(config, "root", config_path)
    return config


def save_keybindings(config: KeyBindingsConfig, path: Optional[Path] = None) -> None:
    write_json_atomic(path or KEYBINDINGS_PATH, config.model_dump(mode="json"))
