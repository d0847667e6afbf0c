import io
import logging

import pytest

from flowguard.utils.logger import LogSettings, get_logger, init_logger, set_level


@pytest.mark.parametrize("raw, expected", [
    ("DEBUG", logging.DEBUG),
    ("warning", logging.WARNING),
    ("WARN", logging.WARNING),
    ("nonsense", logging.INFO),
])
def test_level_from_env(monkeypatch, raw, expected):
    monkeypatch.setenv("LOG_LEVEL", raw)
    assert LogSettings.from_env().level == expected


def test_log_dir_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("FLOWGUARD_LOG_DIR", str(tmp_path))
    assert LogSettings.from_env().log_dir == tmp_path
    monkeypatch.delenv("FLOWGUARD_LOG_DIR")
    assert LogSettings.from_env().log_dir is None


def test_stream_and_rotating_file(tmp_path):
    stream = io.StringIO()
    logger = init_logger("flowguard-logtest", level=logging.INFO, log_dir=tmp_path / "logs", stream=stream)
    logger.info("hello file")
    logger.debug("hidden")
    for h in logger.handlers:
        h.flush()

    assert "hello file" in stream.getvalue()
    assert "\033[" not in stream.getvalue()
    written = (tmp_path / "logs" / "flowguard.log").read_text(encoding="utf-8")
    assert "hello file" in written and "hidden" not in written


def test_reinit_replaces_handlers_and_set_level():
    first = init_logger("flowguard-logtest-2", stream=io.StringIO())
    stream = io.StringIO()
    logger = init_logger("flowguard-logtest-2", level=logging.INFO, stream=stream)
    assert first is logger
    assert len(logger.handlers) == 1

    set_level(logging.DEBUG, name="flowguard-logtest-2")
    logger.debug("now visible")
    assert "now visible" in stream.getvalue()


def test_child_loggers_hang_off_the_project_logger():
    assert get_logger("diff").name == "flowguard.diff"
