"""Tests for logging setup, formatters and LogContext."""

import json
import logging
import sys
import threading

import pytest

from mr2tachiyomi.common import LoggingConfig, LogContext, setup_logging, setup_logging_from_config
from mr2tachiyomi.common.logging import DetailedFormatter, SimpleFormatter, StructuredFormatter


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(message="hello", **attrs):
    record = logging.LogRecord(
        name="mr2tachiyomi.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    """Test JSON log lines."""

    def test_basic_fields(self):
        data = json.loads(StructuredFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "mr2tachiyomi.test"
        assert data["message"] == "hello"
        assert "timestamp" in data

    def test_context_and_extra_fields_merged(self):
        record = make_record(
            context_fields={"input": "a.ab", "entry": "apps/x"},
            extra_fields={"size": 2000, "entry": "apps/y"},
        )

        data = json.loads(StructuredFormatter().format(record))

        assert data["input"] == "a.ab"
        assert data["size"] == 2000
        # Per-call fields win over context
        assert data["entry"] == "apps/y"

    def test_non_json_values_are_stringified(self, tmp_path):
        record = make_record(extra_fields={"output": tmp_path / "x.db"})

        data = json.loads(StructuredFormatter().format(record))

        assert data["output"] == str(tmp_path / "x.db")

    def test_exception_info(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = make_record(exc_info=sys.exc_info())

        data = json.loads(StructuredFormatter().format(record))

        assert data["exception"]["type"] == "ValueError"
        assert data["exception"]["message"] == "boom"


class TestTextFormatters:
    """Test human-readable formatters."""

    def test_simple(self):
        line = SimpleFormatter().format(make_record())

        assert line == "INFO     | mr2tachiyomi.test | hello"

    def test_detailed(self):
        line = DetailedFormatter().format(make_record())

        assert "| INFO     |" in line
        assert line.endswith("| hello")


class TestSetupLogging:
    """Test root logger configuration."""

    def test_console_handler(self, restore_root_logger):
        setup_logging(level="DEBUG", format="json")

        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, StructuredFormatter)

    def test_replaces_existing_handlers(self, restore_root_logger):
        setup_logging()
        setup_logging()

        assert len(restore_root_logger.handlers) == 1

    def test_log_file_is_json(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "logs" / "run.log"
        setup_logging(level="INFO", format="simple", log_file=log_file)

        logging.getLogger("mr2tachiyomi.test").info(
            "written", extra={"extra_fields": {"size": 5}}
        )
        for handler in restore_root_logger.handlers:
            handler.flush()

        data = json.loads(log_file.read_text().splitlines()[-1])
        assert data["message"] == "written"
        assert data["size"] == 5

    def test_from_config(self, restore_root_logger):
        setup_logging_from_config(LoggingConfig(level="warning", format="detailed"))

        assert restore_root_logger.level == logging.WARNING
        assert isinstance(restore_root_logger.handlers[0].formatter, DetailedFormatter)


class TestLogContext:
    """Test context fields on log records."""

    def test_fields_added_inside_context(self, caplog):
        logger = logging.getLogger("mr2tachiyomi.test")

        with caplog.at_level(logging.INFO):
            with LogContext(logger, input="a.ab"):
                logger.info("inside")
            logger.info("outside")

        inside, outside = caplog.records
        assert inside.context_fields == {"input": "a.ab"}
        assert not hasattr(outside, "context_fields")

    def test_combines_with_extra_fields(self, caplog):
        logger = logging.getLogger("mr2tachiyomi.test")

        with caplog.at_level(logging.INFO):
            with LogContext(logger, entry="apps/x"):
                logger.info("done", extra={"extra_fields": {"size": 1}})

        record = caplog.records[0]
        assert record.context_fields == {"entry": "apps/x"}
        assert record.extra_fields == {"size": 1}

    def test_nested_contexts(self, caplog):
        logger = logging.getLogger("mr2tachiyomi.test")

        with caplog.at_level(logging.INFO):
            with LogContext(logger, input="a.ab", stage="outer"):
                with LogContext(logger, stage="inner"):
                    logger.info("nested")

        assert caplog.records[0].context_fields == {"input": "a.ab", "stage": "inner"}

    def test_out_of_order_exit_leaves_no_fields(self, caplog):
        """Test overlapping contexts that end in the order they began."""
        logger = logging.getLogger("mr2tachiyomi.test")
        first = LogContext(logger, input="a.ab")
        second = LogContext(logger, input="b.ab")

        with caplog.at_level(logging.INFO):
            first.__enter__()
            second.__enter__()
            first.__exit__(None, None, None)
            logger.info("only second")
            second.__exit__(None, None, None)
            logger.info("none")

        only_second, none = caplog.records
        assert only_second.context_fields == {"input": "b.ab"}
        assert not hasattr(none, "context_fields")

    def test_threads_do_not_share_fields(self, caplog):
        """Test that concurrent contexts on two threads stay separate."""
        logger = logging.getLogger("mr2tachiyomi.test")
        barrier = threading.Barrier(2)

        def work(name):
            with LogContext(logger, input=name):
                barrier.wait()
                logger.info(name)
                barrier.wait()

        with caplog.at_level(logging.INFO):
            threads = [threading.Thread(target=work, args=(n,)) for n in ("a.ab", "b.ab")]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()
            logger.info("after")

        *worker_records, after = caplog.records
        assert len(worker_records) == 2
        for record in worker_records:
            assert record.context_fields == {"input": record.getMessage()}
        assert not hasattr(after, "context_fields")
