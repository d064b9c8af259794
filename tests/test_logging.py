import logging
from logging.handlers import TimedRotatingFileHandler

from goldenhost.logging import (
    ColoredFormatter,
    ConversationFilter,
    LOG_FORMAT,
    conversation_logger,
    log_exception,
    setup_logger,
)

PHONE = "966500000001"


def make_record(**extra):
    record = logging.LogRecord("goldenhost.test", logging.INFO, __file__, 1, "hello", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_conversation_logger_tags_records(caplog):
    logger = logging.getLogger("goldenhost.test.tagged")

    with caplog.at_level(logging.INFO, logger="goldenhost.test.tagged"):
        conversation_logger(logger, PHONE).info("Asked question q")
        conversation_logger(logger, PHONE).info("extra kept", extra={"step": "q"})

    first, second = caplog.records
    assert first.conversation == PHONE
    assert second.conversation == PHONE
    assert second.step == "q"


def test_records_outside_a_conversation_get_a_placeholder():
    record = make_record()

    assert ConversationFilter().filter(record)
    assert record.conversation == "-"

    tagged = make_record(conversation=PHONE)
    ConversationFilter().filter(tagged)
    assert tagged.conversation == PHONE


def test_colored_formatter_restores_level_name():
    record = make_record(conversation=PHONE)

    line = ColoredFormatter(LOG_FORMAT).format(record)

    assert f"| {PHONE} |" in line
    assert "\033[92m" in line
    assert record.levelname == "INFO"


def test_log_exception_attaches_traceback(caplog):
    logger = logging.getLogger("goldenhost.test.errors")

    try:
        raise ValueError("bad workflow")
    except ValueError as e:
        error = e

    with caplog.at_level(logging.ERROR, logger="goldenhost.test.errors"):
        log_exception(conversation_logger(logger, PHONE), "Step failed", error)
        try:
            raise KeyError("missing")
        except KeyError:
            log_exception(logger, "Lookup failed")

    passed, current = caplog.records
    assert passed.exc_info[1] is error
    assert passed.conversation == PHONE
    assert isinstance(current.exc_info[1], KeyError)


def test_setup_logger_without_log_dir_only_logs_to_console():
    logger = setup_logger("goldenhost.test.console", level="debug", log_dir="")

    assert logger.level == logging.DEBUG
    assert [type(h) for h in logger.handlers] == [logging.StreamHandler]


def test_setup_logger_writes_errors_to_rotating_file(tmp_path):
    logger = setup_logger("goldenhost.test.file", level=logging.INFO, log_dir=tmp_path)

    file_handlers = [h for h in logger.handlers if isinstance(h, TimedRotatingFileHandler)]
    assert len(file_handlers) == 1
    assert file_handlers[0].level == logging.ERROR

    conversation_logger(logger, PHONE).error("Could not send")
    file_handlers[0].flush()
    assert f"ERROR | {PHONE} |" in (tmp_path / "errors.log").read_text(encoding="utf-8")

    # Handlers are not added twice
    assert setup_logger("goldenhost.test.file", log_dir=tmp_path).handlers == logger.handlers
    for handler in file_handlers:
        handler.close()
