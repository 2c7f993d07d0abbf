"""Unit tests for help screen content and masks."""

from squadron.config.schema import KeyBindingsConfig
from squadron.tui.help import HelpKind, general_help, instance_start_help


def test_masks_are_distinct_bits() -> None:
    masks = [kind.mask for kind in HelpKind]
    assert masks == [1, 2, 4, 8]
    assert [kind for kind in HelpKind if kind.always_shown] == [HelpKind.GENERAL]


def test_general_help_reflects_active_bindings() -> None:
    config = KeyBindingsConfig.defaults()
    config.set_binding("kill", ["X"])
    config.set_binding("push", [])

    text = general_help(config)
    assert "Managing Sessions:" in text
    kill_lines = [line for line in text.splitlines() if line.endswith("- kill")]
    assert len(kill_lines) == 1
    assert kill_lines[0].split() == ["X", "-", "kill"]
    assert "push branch" not in text
    assert text.endswith("Press any key to close")


def test_instance_start_help_names_branch_and_program() -> None:
    text = instance_start_help("squadron/alpha", "aider")
    assert "Git branch: squadron/alpha" in text
    assert "aider running in background tmux session" in text
