"""Unit tests for key binding config, loading and saving."""

import json

from squadron.config.loader import load_keybindings, save_keybindings
from squadron.config.schema import KeyBindingsConfig
from squadron.keys import DEFAULT_BINDINGS, KeyName, default_key_map


def test_defaults_match_builtin_table() -> None:
    config = KeyBindingsConfig.defaults()

    assert len(config.bindings) == len(DEFAULT_BINDINGS)
    assert config.to_key_map() == default_key_map()
    assert config.validate_bindings() == {}


def test_every_command_has_a_default_binding() -> None:
    bound = {name for name, _keys, _help in DEFAULT_BINDINGS}
    assert bound == set(KeyName)


def test_unknown_commands_are_skipped_in_key_map() -> None:
    config = KeyBindingsConfig.model_validate(
        {"bindings": [{"command": "up", "keys": ["k"]}, {"command": "teleport", "keys": ["T"]}]}
    )
    assert config.to_key_map() == {"k": KeyName.UP}


def test_set_binding_replaces_or_adds() -> None:
    config = KeyBindingsConfig(bindings=[])
    config.set_binding("quit", ["q"], help="quit")
    config.set_binding("quit", ["Q"])

    binding = config.get_binding("quit")
    assert binding.keys == ["Q"]
    assert binding.help == "quit"


def test_conflicts_and_empty_bindings_are_reported() -> None:
    config = KeyBindingsConfig.defaults()
    config.set_binding("kill", ["n"])
    config.set_binding("push", [])

    conflicts = config.validate_bindings()
    assert conflicts["n"] == ["new", "kill"]
    assert conflicts[""] == ["push"]


def test_missing_file_gives_defaults(tmp_path) -> None:
    assert load_keybindings(tmp_path / "keybindings.json").to_key_map() == default_key_map()


def test_invalid_or_empty_file_gives_defaults(tmp_path) -> None:
    path = tmp_path / "keybindings.json"
    path.write_text("{not json")
    assert load_keybindings(path).to_key_map() == default_key_map()

    path.write_text(json.dumps({"version": "1.0", "bindings": []}))
    assert load_keybindings(path).to_key_map() == default_key_map()


def test_saved_bindings_load_back(tmp_path) -> None:
    path = tmp_path / "nested" / "keybindings.json"
    config = KeyBindingsConfig.defaults()
    config.set_binding("quit", ["Q"])

    save_keybindings(config, path)
    loaded = load_keybindings(path)

    assert loaded.get_binding("quit").keys == ["Q"]
    assert json.loads(path.read_text())["version"] == "1.0"
