"""Configuration: config.yml, keybindings.json and persisted UI state."""

from squadron.config.app_state import AppState, load_app_state
from squadron.config.loader import load_app_config, load_keybindings, save_keybindings
from squadron.config.schema import AppConfig, KeyBindingEntry, KeyBindingsConfig

__all__ = [
    "AppConfig",
    "AppState",
    "KeyBindingEntry",
    "KeyBindingsConfig",
    "load_app_config",
    "load_app_state",
    "load_keybindings",
    "save_keybindings",
]
