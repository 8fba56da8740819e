"""Tests for structured logging helpers."""
import json
import logging

import pytest

from generation_queue.observability import get_logger, setup_logging, with_task_context
from generation_queue.observability.logging import CustomJsonFormatter, TaskContextFilter


class _Capture(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def captured():
    handler = _Capture()
    base = logging.getLogger("tests.logging")
    base.addHandler(handler)
    base.setLevel(logging.DEBUG)
    base.propagate = False
    yield handler
    base.removeHandler(handler)
    base.propagate = True


def _record(**extra):
    record = logging.LogRecord(
        name="generation_queue.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Task queued",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_with_task_context_drops_empty_fields():
    extra = with_task_context(task_id="t-1", job_id=None, task_kind="image", attempt=2)
    assert extra == {"task_id": "t-1", "task_kind": "image", "attempt": 2}


def test_context_filter_fills_missing_fields():
    record = _record(task_id="t-1")
    assert TaskContextFilter().filter(record) is True
    assert record.task_id == "t-1"
    assert record.job_id is None
    assert record.task_kind is None


def test_formatter_emits_json_with_context():
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    record = _record(task_id="t-1", job_id="job-9", task_kind=None)

    data = json.loads(formatter.format(record))

    assert data["message"] == "Task queued"
    assert data["level"] == "INFO"
    assert data["logger"] == "generation_queue.test"
    assert data["task_id"] == "t-1"
    assert data["job_id"] == "job-9"
    assert "task_kind" not in data
    assert "timestamp" in data


def test_adapter_merges_call_extra(captured):
    logger = get_logger("tests.logging", component="queue")

    logger.info("tick", extra={"task_id": "t-2"})

    record = captured.records[-1]
    assert record.component == "queue"
    assert record.task_id == "t-2"


def test_call_extra_overrides_adapter_defaults(captured):
    logger = get_logger("tests.logging", task_kind="image")
    logger.info("tick", extra={"task_kind": "video"})
    assert captured.records[-1].task_kind == "video"


def test_setup_logging_installs_json_handler(monkeypatch):
    monkeypatch.setenv("GENQ_LOG_LEVEL", "DEBUG")
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logging()
        assert len(root.handlers) == 1
        handler = root.handlers[0]
        assert isinstance(handler.formatter, CustomJsonFormatter)
        assert root.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


def test_adapter_accepts_explicit_none_extra(captured):
    logger = get_logger("tests.logging", component="queue")
    logger.info("tick", extra=None)
    assert captured.records[-1].component == "queue"
