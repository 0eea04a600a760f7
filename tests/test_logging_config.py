from __future__ import annotations

import json
import logging

from utils.logging_config import JSONFormatter, get_contextual_logger, log_store_operation


def test_json_formatter_flattens_context_fields():
    record = logging.LogRecord("api.repository", logging.INFO, __file__, 10, "Seeded %d users", (3,), None)
    record.ctx_entity = "users"

    entry = json.loads(JSONFormatter().format(record))

    assert entry["message"] == "Seeded 3 users"
    assert entry["level"] == "INFO"
    assert entry["entity"] == "users"


def test_contextual_logger_attaches_fields(caplog):
    logger = get_contextual_logger("tests.context", entity="courses")

    with caplog.at_level(logging.INFO, logger="tests.context"):
        logger.info("loaded")

    assert caplog.records[-1].ctx_entity == "courses"


def test_store_failures_are_logged_as_errors(caplog):
    logger = logging.getLogger("tests.store")

    with caplog.at_level(logging.DEBUG, logger="tests.store"):
        log_store_operation(logger, "SET", "users", 10, 0.001)
        log_store_operation(logger, "SET", "users", 10, 0.001, success=False, error="quota")

    assert [r.levelno for r in caplog.records] == [logging.DEBUG, logging.ERROR]
    assert caplog.records[-1].ctx_store_error == "quota"
