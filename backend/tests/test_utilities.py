"""Tests for logging and value helpers."""

import logging

import pytest

from utilities import describe_message, log, presence


class TestLog:

    def test_no_logger_is_a_noop(self) -> None:
        log(None, "nothing happens")

    def test_prefix_levels_and_indentation(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("replybus.tests.utilities")
        caplog.set_level(logging.DEBUG, logger=logger.name)

        log(logger, "first\nsecond", level="warn", indent=2)
        log(logger, "tabbed", level="error", indent="\t")

        assert [(r.levelno, r.getMessage()) for r in caplog.records] == [
            (logging.WARNING, "ReplyBus |   first"),
            (logging.WARNING, "ReplyBus |   second"),
            (logging.ERROR, "ReplyBus | \ttabbed"),
        ]


class TestValues:

    @pytest.mark.parametrize("value", [None, "", [], {}])
    def test_presence_of_blank_values(self, value) -> None:
        assert presence(value) is None

    @pytest.mark.parametrize("value", ["q", 0, [1]])
    def test_presence_keeps_values(self, value) -> None:
        assert presence(value) == value

    def test_describe_message_placeholders(self) -> None:
        text = describe_message(None, None, "ping", {"a": 1}, None)
        assert text.splitlines() == [
            "id:      (none)",
            "pattern: (none)",
            "subject: ping",
            'data:    {"a": 1}',
            "inbox:   (none)",
        ]
