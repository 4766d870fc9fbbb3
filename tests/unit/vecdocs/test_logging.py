"""
Unit tests for logging utilities.
"""

import json
import logging
import threading

import pytest

from vecdocs.core.logging import (
    DocumentContext,
    HumanReadableFormatter,
    StructuredFormatter,
    configure_logging,
    log_with_context,
)


def make_record(message="Upserted", **extra):
    record = logging.LogRecord("vecdocs.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_includes_context_fields(self):
        formatter = StructuredFormatter(include_timestamp=False)

        line = formatter.format(make_record(recipe_id="r1", version_id="v2", operation="upsert"))
        data = json.loads(line)

        assert data == {
            "level": "INFO",
            "logger": "vecdocs.test",
            "message": "Upserted",
            "operation": "upsert",
            "recipe_id": "r1",
            "version_id": "v2",
        }

    def test_timestamp(self):
        data = json.loads(StructuredFormatter().format(make_record()))
        assert "timestamp" in data


class TestHumanReadableFormatter:
    def test_appends_context(self):
        formatter = HumanReadableFormatter(include_timestamp=False)

        line = formatter.format(make_record(recipe_id="r1", operation="upsert"))

        assert line == "vecdocs.test - INFO - Upserted [operation=upsert recipe_id=r1]"

    def test_no_context(self):
        formatter = HumanReadableFormatter(include_timestamp=False)
        assert formatter.format(make_record()) == "vecdocs.test - INFO - Upserted"


class TestDocumentContext:
    """Tests for DocumentContext."""

    def test_no_active_context(self):
        assert DocumentContext.get_current() == {}

    def test_nested_contexts_restore(self):
        with DocumentContext(recipe_id="r1", operation="index_version"):
            with DocumentContext(recipe_id="r1", version_id="v2", operation="upsert"):
                assert DocumentContext.get_current()["operation"] == "upsert"
            assert DocumentContext.get_current() == {"recipe_id": "r1", "operation": "index_version"}

        assert DocumentContext.get_current() == {}

    def test_log_with_context_attaches_fields(self, caplog):
        logger = logging.getLogger("vecdocs.test_context")

        with caplog.at_level(logging.INFO, logger="vecdocs.test_context"):
            with DocumentContext(recipe_id="r1", version_id="v2"):
                log_with_context(logger, logging.INFO, "Indexed", backend="sqlite")

        record = caplog.records[-1]
        assert record.recipe_id == "r1"
        assert record.version_id == "v2"
        assert record.backend == "sqlite"

    def test_threads_keep_their_own_context(self):
        a_entered = threading.Event()
        b_entered = threading.Event()
        a_exited = threading.Event()
        seen = {}

        def worker_a():
            with DocumentContext(recipe_id="rA", operation="upsert"):
                a_entered.set()
                b_entered.wait(5)
            a_exited.set()
            seen["a_after"] = DocumentContext.get_current()

        def worker_b():
            a_entered.wait(5)
            with DocumentContext(recipe_id="rB", operation="upsert"):
                b_entered.set()
                a_exited.wait(5)
                seen["b_inside"] = DocumentContext.get_current()
            seen["b_after"] = DocumentContext.get_current()

        threads = [threading.Thread(target=worker_a), threading.Thread(target=worker_b)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(10)

        assert seen["b_inside"] == {"recipe_id": "rB", "operation": "upsert"}
        assert seen["a_after"] == {}
        assert seen["b_after"] == {}
        assert DocumentContext.get_current() == {}


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def reset_handlers(self):
        package_logger = logging.getLogger("vecdocs")
        saved = list(package_logger.handlers)
        package_logger.handlers = []
        yield
        package_logger.handlers = saved

    def test_adds_single_handler(self):
        configure_logging()
        configure_logging()

        assert len(logging.getLogger("vecdocs").handlers) == 1

    def test_structured_formatter(self):
        logger = configure_logging(structured=True)

        assert isinstance(logger.handlers[0].formatter, StructuredFormatter)
