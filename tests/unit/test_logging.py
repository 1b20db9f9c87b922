"""Unit tests for structured logging."""

from __future__ import annotations

import io
import json
import logging

from workflow_desk.logging import configure_logging


def test_json_lines_carry_extra_fields() -> None:
    stream = io.StringIO()
    configure_logging("info", stream=stream)

    logging.getLogger("workflow_desk.test").info(
        "Transition executed", extra={"instance_id": 7, "action": "approve"}
    )
    logging.getLogger("workflow_desk.test").debug("hidden")

    (line,) = stream.getvalue().splitlines()
    payload = json.loads(line)
    assert payload["level"] == "INFO"
    assert payload["logger"] == "workflow_desk.test"
    assert payload["message"] == "Transition executed"
    assert payload["extra"] == {"instance_id": 7, "action": "approve"}
    assert "location" not in payload


def test_reconfiguring_replaces_handlers() -> None:
    first, second = io.StringIO(), io.StringIO()
    configure_logging("INFO", stream=first)
    configure_logging("INFO", stream=second)

    logging.getLogger("workflow_desk.test").warning("once")

    assert first.getvalue() == ""
    assert len(second.getvalue().splitlines()) == 1
    assert "exception" not in json.loads(second.getvalue())


def test_warnings_carry_location_and_numeric_levels_work() -> None:
    stream = io.StringIO()
    configure_logging(logging.WARNING, stream=stream)

    log = logging.getLogger("workflow_desk.test")
    log.info("dropped")
    log.warning("Stored value is not valid JSON", extra={"key": "workflow_tags"})

    (line,) = stream.getvalue().splitlines()
    payload = json.loads(line)
    assert payload["location"].startswith("test_logging:")
    assert payload["extra"] == {"key": "workflow_tags"}
