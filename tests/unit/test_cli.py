"""Unit tests for the squadron command line."""

import sys

import pytest

from squadron import __version__, cli


def test_overrides_apply_on_top_of_config(tmp_path) -> None:
    config_path = tmp_path / "config.yml"
    config_path.write_text("default_program: claude\nbranch_prefix: me/\n")

    args = cli.build_parser().parse_args(["--config", str(config_path), "-p", "aider", "-y"])
    config = cli.resolve_config(args)

    assert config.default_program == "aider"
    assert config.auto_yes is True
    assert config.branch_prefix == "me/"


def test_no_overrides_keeps_config(tmp_path) -> None:
    args = cli.build_parser().parse_args(["--config", str(tmp_path / "absent.yml")])
    config = cli.resolve_config(args)

    assert config.default_program == "claude"
    assert config.auto_yes is False


def test_subcommands_parse() -> None:
    parser = cli.build_parser()
    assert parser.parse_args(["reset"]).command == "reset"
    assert parser.parse_args(["--debug", "version"]).debug is True
    assert parser.parse_args([]).command is None


def test_version_prints_and_returns(monkeypatch, capsys) -> None:
    monkeypatch.setattr(sys, "argv", ["squadron", "version"])
    cli.main()
    assert capsys.readouterr().out.strip() == f"squadron {__version__}"


def test_missing_tmux_exits_with_error(monkeypatch, capsys, tmp_path) -> None:
    monkeypatch.setattr(sys, "argv", ["squadron", "--config", str(tmp_path / "c.yml")])
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(cli.shutil, "which", lambda name: None)

    with pytest.raises(SystemExit) as exc:
        cli.main()
    assert exc.value.code == 1
    assert "tmux is required" in capsys.readouterr().err


def test_invalid_config_exits_with_error(monkeypatch, capsys, tmp_path) -> None:
    config_path = tmp_path / "c.yml"
    config_path.write_text("poll_interval_ms: 1\n")
    monkeypatch.setattr(sys, "argv", ["squadron", "--config", str(config_path)])
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)

    with pytest.raises(SystemExit) as exc:
        cli.main()
    assert exc.value.code == 1
    assert "invalid config" in capsys.readouterr().err


def test_keyboard_interrupt_exits_130(monkeypatch) -> None:
    def interrupted():
        raise KeyboardInterrupt

    monkeypatch.setattr(cli, "_main_impl", interrupted)
    with pytest.raises(SystemExit) as exc:
        cli.main()
    assert exc.value.code == 130
