from .errors import (
    ReplyBusError,
    InvalidArgumentError,
    AlreadyRunningError,
    DispatchError,
    CodecError,
    HandlerError,
    TransportError,
    RequestTimeoutError,
)
