from __future__ import annotations

import json
import logging

from companion_client.config.settings import ClientSettings
from companion_client.services.notifier import LoggingNotifier, Notice
from companion_client.utils.logger import JsonFormatter, SizeAndTimeRotatingFileHandler, configure_logging
from companion_client.utils.trace import current_trace, message_trace


def test_json_formatter_tags_dispatched_message() -> None:
    record = logging.LogRecord("companion_client.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    with message_trace("audio") as trace_id:
        payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "hello world"
    assert payload["category"] == "companion_client.test"
    assert payload["trace_id"] == trace_id
    assert payload["message_type"] == "audio"
    assert current_trace() is None

    outside = json.loads(JsonFormatter().format(record))
    assert outside["trace_id"] is None and outside["message_type"] is None


def test_configure_logging_is_idempotent(tmp_path) -> None:
    settings = ClientSettings(log_dir=str(tmp_path / "logs"), log_level="debug")
    logger = configure_logging(settings, console=True)
    try:
        configure_logging(settings, console=True)
        files = [h for h in logger.handlers if isinstance(h, SizeAndTimeRotatingFileHandler)]
        consoles = [h for h in logger.handlers if type(h) is logging.StreamHandler]
        assert len(files) == 1 and len(consoles) == 1
        assert logger.level == logging.DEBUG

        logging.getLogger("companion_client.runtime").info("written")
        files[0].flush()
        lines = (tmp_path / "logs" / "client.jsonl").read_text(encoding="utf-8").splitlines()
        assert json.loads(lines[-1])["message"] == "written"
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.setLevel(logging.NOTSET)


def test_logging_notifier_keeps_history(caplog) -> None:
    notifier = LoggingNotifier()
    with caplog.at_level(logging.ERROR, logger="companion_client.services.notifier"):
        notifier.notify(Notice("Failed to delete history", "error"))
    assert notifier.history[0].duration_ms == 2000
    assert any("Failed to delete history" in record.getMessage() for record in caplog.records)
