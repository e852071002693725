import logging
from lutbatch.infrastructure.logging import LOG_FILE_NAME, resolve_log_file, setup_logging


def _close_handlers():
    root = logging.getLogger()
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)


def test_setup_logging_writes_to_output_dir(tmp_path):
    output_dir = tmp_path / "output"
    try:
        logger = setup_logging(output_dir)
        logger.info("hello from test")
        for handler in logging.getLogger().handlers:
            handler.flush()

        log_file = output_dir / LOG_FILE_NAME
        assert log_file.exists()
        content = log_file.read_text()
        assert "hello from test" in content
        assert " - INFO - " in content
        assert logging.getLogger().level == logging.INFO
    finally:
        _close_handlers()


def test_setup_logging_debug_and_custom_path(tmp_path):
    log_path = tmp_path / "logs" / "run.log"
    try:
        setup_logging(tmp_path / "output", debug=True, log_path=log_path)
        logging.getLogger("lutbatch.test").debug("debug line")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert logging.getLogger().level == logging.DEBUG
        assert "debug line" in log_path.read_text()
        assert not (tmp_path / "output" / LOG_FILE_NAME).exists()
    finally:
        _close_handlers()


def test_resolve_log_file(tmp_path):
    assert resolve_log_file(tmp_path) == tmp_path / LOG_FILE_NAME
    assert resolve_log_file(tmp_path, tmp_path / "elsewhere.log") == tmp_path / "elsewhere.log"


def test_setup_logging_twice_keeps_one_handler(tmp_path):
    try:
        setup_logging(tmp_path / "first")
        setup_logging(tmp_path / "second")
        logging.getLogger("lutbatch.test").info("second run")
        handlers = logging.getLogger().handlers
        for handler in handlers:
            handler.flush()

        assert len(handlers) == 1
        assert "second run" in (tmp_path / "second" / LOG_FILE_NAME).read_text()
        assert "second run" not in (tmp_path / "first" / LOG_FILE_NAME).read_text()
    finally:
        _close_handlers()
