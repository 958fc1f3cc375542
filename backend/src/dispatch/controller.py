import asyncio
import logging
import traceback
from typing import Any, Callable, Optional

from models import Handler, Registry, ReplyBinding
from schemas import DispatcherSettings
from transports import Transport
from utilities import READY_TIMEOUT, log

from .codec import JsonCodec
from .dispatcher import Dispatcher


class ReplyController:
    '''
    Owns the Stopped/Running state machine around a Dispatcher.

    start() spawns a single supervised background task running
    Dispatcher.listen(). When that task fails, the supervisor logs the error,
    restarts the listener with the same bindings and re-raises, so anything
    awaiting the old task sees the crash. start/stop/restart are serialized
    by one lock, so a restart never overlaps with a concurrent stop or start.

    Usage:
        controller = ReplyController(NatsTransport(["nats://127.0.0.1:4222"]))
        controller.set_default_queue("workers")

        @controller.reply_to("ping")
        def ping(data):
            return "pong"

        await controller.start()
        ...
        await controller.stop()
    '''

    def __init__(
        self,
        transport: Transport,
        registry: Optional[Registry] = None,
        codec: Optional[JsonCodec] = None,
        settings: Optional[DispatcherSettings] = None,
    ):
        self.transport = transport
        self.settings = settings or DispatcherSettings()
        self.registry = registry or Registry(default_queue=self.settings.default_queue)
        self.codec = codec or JsonCodec()

        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._ready: Optional[asyncio.Event] = None
        self._started_at: Optional[float] = None

        # supervision history
        self.restart_count = 0
        self.last_error: Optional[BaseException] = None
        self._consecutive_failures = 0

    # ------------ configuration ------------
    @property
    def logger(self) -> Optional[logging.Logger]:
        return self.registry.logger

    def set_logger(self, logger: Optional[logging.Logger]):
        self.registry.set_logger(logger)

    @property
    def default_queue(self) -> Optional[str]:
        return self.registry.default_queue

    def set_default_queue(self, value: Any):
        self.registry.set_default_queue(value)

    def is_running(self) -> bool:
        return self.registry.running

    @property
    def task(self) -> Optional[asyncio.Task]:
        ''' The live listener task, if any.'''
        return self._task

    # ------------ registration ------------
    def register_reply(self, subject: str, handler: Handler, queue: Optional[str] = None) -> ReplyBinding:
        return self.registry.register_reply(subject, handler, queue=queue)

    def reply_to(self, subject: str, queue: Optional[str] = None) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.register_reply(subject, handler, queue=queue)
            return handler
        return decorator

    # ------------ lifecycle ------------
    async def start(self):
        async with self._lock:
            self._start()

    async def stop(self):
        async with self._lock:
            await self._stop()

    async def restart(self, delay: float = 0.0):
        '''
        Stops and starts again with the same bindings. delay is slept in between.
        The registry stays marked running throughout, so no binding can be
        added while the listener is down.
        '''
        async with self._lock:
            log(self.logger, "Restarting the listener", level="warning")
            self.registry.mark_running()
            try:
                await self._stop(keep_running=True)
                if delay > 0:
                    await asyncio.sleep(delay)
            except BaseException:
                # cancelled while down: nothing is listening any more
                self.registry.mark_stopped()
                raise
            self._spawn()

    async def wait_until_ready(self, timeout: Optional[float] = READY_TIMEOUT):
        ''' Waits until the current listener has subscribed every binding.'''
        if self._ready is None:
            raise RuntimeError("listener is not running")
        await asyncio.wait_for(self._ready.wait(), timeout)

    def _start(self):
        log(self.logger, "Starting the listener", level="debug")
        if self.registry.running:
            log(self.logger, "The listener is already running", level="debug")
            return

        self.registry.mark_running()
        self._spawn()

    def _spawn(self):
        self._ready = asyncio.Event()
        self._started_at = asyncio.get_running_loop().time()
        self._task = asyncio.create_task(self._supervise(self._ready), name="reply-listener")
        self._task.add_done_callback(self._on_task_done)

    async def _stop(self, keep_running: bool = False):
        log(self.logger, "Stopping the listener", level="debug")
        task, self._task = self._task, None
        self._ready = None

        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                # already logged and handled by the supervisor
                pass

        try:
            await self.transport.disconnect()
        except Exception as e:
            log(self.logger, f"Ignoring error while disconnecting: {e!r}", level="debug")

        if not keep_running:
            self.registry.mark_stopped()

    # ------------ supervision ------------
    async def _supervise(self, ready: asyncio.Event):
        dispatcher = Dispatcher(codec=self.codec, logger=self.logger)
        try:
            await dispatcher.listen(self.transport, self.registry.bindings(), on_ready=ready.set)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log(self.logger, "Encountered an error:", level="error")
            log(self.logger, "".join(traceback.format_exception(type(e), e, e.__traceback__)).rstrip(), level="error", indent=2)
            await self._recover(e)
            raise

        # the transport drained on its own
        if self._task is asyncio.current_task():
            log(self.logger, "The listener exited without being stopped", level="warning")
            self._task = None
            self._ready = None
            self.registry.mark_stopped()

    async def _recover(self, error: BaseException):
        self.last_error = error
        loop = asyncio.get_running_loop()
        uptime = loop.time() - (self._started_at or loop.time())
        if uptime >= self.settings.restart_backoff_reset_after:
            self._consecutive_failures = 0
        self._consecutive_failures += 1

        limit = self.settings.max_restarts
        if limit is not None and self._consecutive_failures > limit:
            log(self.logger, f"Giving up after {self._consecutive_failures} consecutive failures", level="error")
            await self.stop()
            return

        self.restart_count += 1
        await self.restart(delay=self.backoff_delay(self._consecutive_failures))

    def backoff_delay(self, failures: int) -> float:
        initial = self.settings.restart_backoff_initial
        if failures <= 0 or initial <= 0:
            return 0.0
        return min(initial * 2 ** (failures - 1), self.settings.restart_backoff_max)

    def _on_task_done(self, task: asyncio.Task):
        # the error is re-raised for whoever awaits the task; mark it retrieved
        # so an unobserved crash does not also produce an asyncio warning
        if not task.cancelled() and task.exception() is not None:
            log(self.logger, f"Listener task finished with {type(task.exception()).__name__}", level="debug")
