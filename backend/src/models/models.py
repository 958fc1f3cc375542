import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from errors import AlreadyRunningError, InvalidArgumentError
from utilities import log, presence

Handler = Callable[[Any], Any]


# ------------ In-memory structures ------------
@dataclass(frozen=True)
class ReplyBinding:
    ''' A subject, its resolved queue group and the handler answering it.'''
    subject: str
    queue: Optional[str]
    handler: Handler


def accepts_one_argument(handler: Handler) -> bool:
    try:
        signature = inspect.signature(handler)
    except (TypeError, ValueError):
        # some builtins expose no signature; trust callable()
        return True
    try:
        signature.bind(None)
    except TypeError:
        return False
    return True


class Registry:
    '''
    Holds the subject -> handler bindings and the defaults applied at
    registration time.

    Bindings keep insertion order, which is the order the listener subscribes
    in. Mutation is only legal while the listener is not running, so the
    listener can read the bindings once at startup without locking.
    '''

    def __init__(self, default_queue: Optional[str] = None, logger: Optional[logging.Logger] = None):
        self._bindings: List[ReplyBinding] = []
        self._default_queue: Optional[str] = None
        self._logger = logger
        self._running = False
        self.set_default_queue(default_queue)

    # logger
    @property
    def logger(self) -> Optional[logging.Logger]:
        return self._logger

    def set_logger(self, logger: Optional[logging.Logger]):
        self._logger = logger
        log(logger, f"Setting the logger to {logger!r}", level="debug")

    # default queue
    @property
    def default_queue(self) -> Optional[str]:
        return self._default_queue

    def set_default_queue(self, value: Any):
        # None and "" mean "no queue group"; anything else is stringified
        queue = presence(str(value)) if value is not None else None
        self._default_queue = queue
        log(self._logger, f"Setting the default queue to {queue or '(none)'}", level="debug")

    # running flag, owned by the controller
    @property
    def running(self) -> bool:
        return self._running

    def mark_running(self):
        self._running = True

    def mark_stopped(self):
        self._running = False

    # bindings
    def is_registered(self, subject: str) -> bool:
        return any(binding.subject == subject for binding in self._bindings)

    def register_reply(self, subject: str, handler: Handler, queue: Optional[str] = None) -> ReplyBinding:
        if self._running:
            raise AlreadyRunningError("cannot register replies while the listener is running; stop it first")
        if not isinstance(subject, str):
            raise InvalidArgumentError(f"subject must be a string, got {type(subject).__name__}")
        if not subject:
            raise InvalidArgumentError("subject must not be empty")
        if not callable(handler):
            raise InvalidArgumentError(f"must provide a callable message handler for {subject}")
        if not accepts_one_argument(handler):
            raise InvalidArgumentError(f"handler for {subject} must accept exactly one positional argument")
        if self.is_registered(subject):
            raise InvalidArgumentError(f"already registered a reply to {subject}")

        resolved_queue = presence(queue) or self._default_queue
        log(
            self._logger,
            f"Registering a reply handler for subject '{subject}'"
            + (f" in queue '{resolved_queue}'" if resolved_queue else ""),
            level="debug",
        )
        binding = ReplyBinding(subject=subject, queue=resolved_queue, handler=handler)
        self._bindings.append(binding)
        return binding

    def bindings(self) -> Tuple[ReplyBinding, ...]:
        return tuple(self._bindings)

    def reset(self):
        ''' Forgets every binding and default. Refused while running.'''
        if self._running:
            raise AlreadyRunningError("cannot reset the registry while the listener is running")
        self._bindings.clear()
        self._default_queue = None
        self._logger = None
