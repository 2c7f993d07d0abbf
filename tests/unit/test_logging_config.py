"""Unit tests for log routing."""

from loguru import logger

from squadron.logging_config import configure_logging


def test_log_lines_go_to_file(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("SQUADRON_LOG_LEVEL", raising=False)
    path = configure_logging("debug", tmp_path / "logs" / "squadron.log")

    logger.info("instance started")
    logger.remove()

    content = path.read_text()
    assert "instance started" in content
    assert "| INFO     |" in content


def test_level_comes_from_environment(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("SQUADRON_LOG_LEVEL", "warning")
    path = configure_logging(None, tmp_path / "squadron.log")

    logger.info("quiet")
    logger.warning("loud")
    logger.remove()

    content = path.read_text()
    assert "loud" in content
    assert "quiet" not in content
