import logging

import pytest

from tello_link.logging import LOG_FORMAT, configure_logging


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    logging.getLogger("asyncio").setLevel(logging.NOTSET)
    logging.getLogger("aiohttp.access").setLevel(logging.NOTSET)


def test_configure_logging_writes_file(tmp_path, restore_root_logging):
    log_path = tmp_path / "logs" / "tello-link.log"

    configure_logging("debug", log_path=log_path)
    logging.getLogger("tello_link.test").debug("hello drone")

    file_handlers = [
        handler
        for handler in restore_root_logging.handlers
        if isinstance(handler, logging.FileHandler)
    ]
    assert len(file_handlers) == 1
    assert file_handlers[0].formatter._fmt == LOG_FORMAT
    file_handlers[0].flush()

    assert restore_root_logging.level == logging.DEBUG
    assert "| DEBUG | tello_link.test | hello drone" in log_path.read_text(encoding="utf-8")


def test_network_loggers_quiet_by_default(restore_root_logging):
    configure_logging("DEBUG")

    assert logging.getLogger("asyncio").level == logging.WARNING
    assert logging.getLogger("aiohttp.access").level == logging.WARNING


def test_network_loggers_kept_when_requested(restore_root_logging):
    logging.getLogger("asyncio").setLevel(logging.NOTSET)

    configure_logging("INFO", log_network=True)

    assert logging.getLogger("asyncio").level == logging.NOTSET
