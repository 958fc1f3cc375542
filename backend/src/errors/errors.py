from typing import Optional


class ReplyBusError(Exception):
    ''' Base class for every error raised by the reply dispatcher.'''


# ------------ Registration errors ------------
class InvalidArgumentError(ReplyBusError, ValueError):
    ''' Malformed registration input: empty subject, bad handler, duplicate subject.'''


class AlreadyRunningError(ReplyBusError, RuntimeError):
    ''' Registration attempted while the listener is running.'''


# ------------ Dispatch failures ------------
class DispatchError(ReplyBusError):
    '''
    Any failure raised while listening or dispatching a message.
    The controller treats every subclass the same way: log, restart, re-raise.
    '''

    def __init__(self, message: str, subject: Optional[str] = None):
        super().__init__(message)
        self.subject = subject


class CodecError(DispatchError):
    pass


class HandlerError(DispatchError):
    pass


class TransportError(DispatchError):
    pass


class RequestTimeoutError(TransportError):
    pass
