import json
import os
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from utilities.constants import (
    DEFAULT_CONNECTION_NAME,
    DEFAULT_HEALTH_SUBJECT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_SERVERS,
    ENV_PREFIX,
    MAX_RESTARTS,
    RESTART_BACKOFF_INITIAL,
    RESTART_BACKOFF_MAX,
    RESTART_BACKOFF_RESET_AFTER,
)


class Envelope(BaseModel):
    ''' Inbound request as sent by a requester: {"id", "pattern", "data"}.'''
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    pattern: Optional[str] = None
    data: Any = None

    @field_validator("id", "pattern", mode="before")
    @classmethod
    def stringify(cls, value: Any) -> Optional[str]:
        # NestJS clients send object patterns and some clients send numeric ids
        if value is None or isinstance(value, str):
            return value
        return json.dumps(value, sort_keys=True)


class DispatcherSettings(BaseModel):
    servers: List[str] = Field(default_factory=lambda: [DEFAULT_SERVERS])
    connection_name: str = DEFAULT_CONNECTION_NAME
    default_queue: Optional[str] = None
    restart_backoff_initial: float = Field(default=RESTART_BACKOFF_INITIAL, ge=0)
    restart_backoff_max: float = Field(default=RESTART_BACKOFF_MAX, ge=0)
    restart_backoff_reset_after: float = Field(default=RESTART_BACKOFF_RESET_AFTER, ge=0)
    max_restarts: Optional[int] = Field(default=MAX_RESTARTS, ge=0)
    health_subject: str = DEFAULT_HEALTH_SUBJECT
    log_level: str = DEFAULT_LOG_LEVEL

    @field_validator("servers", mode="before")
    @classmethod
    def split_servers(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [server.strip() for server in value.split(",") if server.strip()]
        return value

    @field_validator("default_queue", mode="before")
    @classmethod
    def empty_queue_is_none(cls, value: Any) -> Any:
        return value or None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DispatcherSettings":
        '''
        Builds settings from REPLYBUS_* variables, e.g. REPLYBUS_SERVERS,
        REPLYBUS_DEFAULT_QUEUE, REPLYBUS_MAX_RESTARTS.
        '''
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is not None:
                values[name] = raw
        return cls.model_validate(values)


# ------------ Host service responses ------------
class BindingInfo(BaseModel):
    subject: str
    queue: Optional[str] = None


class HealthResponse(BaseModel):
    uptime_sec: int
    running: bool
    bindings: int
    restarts: int
    last_error: Optional[str] = None


class ActionResponse(BaseModel):
    status: str
    running: bool
