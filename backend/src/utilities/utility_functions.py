import json
import logging
from typing import Any, Optional, Union

from .constants import LOG_PREFIX

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def blank(value: Any) -> bool:
    if value is None:
        return True
    try:
        return len(value) == 0
    except TypeError:
        return value is False


def presence(value: Any) -> Any:
    ''' Returns the value unless it is None or empty, in which case None.'''
    return None if blank(value) else value


def to_json(value: Any) -> str:
    # only for log output, never for the wire
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return repr(value)


def log(logger: Optional[logging.Logger], text: str, level: str = "info", indent: Union[int, str] = 0):
    '''
    Writes text to the injected logger, one record per line.
    Without a logger this is a no-op.
    '''
    if logger is None:
        return

    indentation = indent if isinstance(indent, str) else " " * indent
    numeric_level = LEVELS.get(level, logging.INFO)
    for line in str(text).split("\n"):
        logger.log(numeric_level, f"{LOG_PREFIX} | {indentation}{line}")


def describe_message(message_id: Optional[str], pattern: Optional[str], subject: Optional[str], data: Any, inbox: Optional[str]) -> str:
    return "\n".join([
        f"id:      {message_id or '(none)'}",
        f"pattern: {pattern or '(none)'}",
        f"subject: {subject or '(none)'}",
        f"data:    {to_json(data)}",
        f"inbox:   {inbox or '(none)'}",
    ])
