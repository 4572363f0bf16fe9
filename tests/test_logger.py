import logging

from llmadapter.logger import CallerFormatter, init_logger


def _record():
    return logging.LogRecord(
        name="llmadapter.poll",
        level=logging.INFO,
        pathname="/a/b/poll.py",
        lineno=12,
        msg="hi %s",
        args=("x",),
        exc_info=None,
    )


def test_format_contains_caller_and_message():
    out = CallerFormatter().format(_record())
    assert "<llmadapter.poll> b/poll.py:12 |" in out
    assert out.endswith(" hi x")
    assert "[INFO]" in out


def test_init_logger_writes_file(tmp_path):
    logger = init_logger(str(tmp_path / "logs"), "debug")
    try:
        assert logger.level == logging.DEBUG
        logger.info("written line")
        for handler in logger.handlers:
            handler.flush()
        text = (tmp_path / "logs" / "background.log").read_text(encoding="utf-8")
        assert "written line" in text
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()


def test_init_logger_replaces_handlers(tmp_path):
    init_logger(str(tmp_path), logging.INFO)
    logger = init_logger(str(tmp_path), logging.WARNING)
    try:
        assert len(logger.handlers) == 2
        assert logger.level == logging.WARNING
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()