import asyncio
import inspect
import logging
from typing import Callable, Iterable, List, Optional

from errors import HandlerError
from models import ReplyBinding
from transports import Transport
from utilities import describe_message, log

from .codec import JsonCodec


class Dispatcher:
    '''
    Subscribes every binding on a transport and answers inbound requests.

    listen() blocks for as long as the transport loop runs. Each subject gets
    its own inbox queue and worker task: messages on one subject are handled
    in arrival order, and a slow handler never holds up another subject.
    The first error raised by a worker, or by the transport, ends listen().
    '''

    def __init__(self, codec: Optional[JsonCodec] = None, logger: Optional[logging.Logger] = None):
        self.codec = codec or JsonCodec()
        self.logger = logger

    async def listen(
        self,
        transport: Transport,
        bindings: Iterable[ReplyBinding],
        on_ready: Optional[Callable[[], None]] = None,
    ):
        bindings = list(bindings)
        loop = asyncio.get_running_loop()
        failed: asyncio.Future = loop.create_future()
        workers: List[asyncio.Task] = []
        accepting = True

        def on_worker_done(task: asyncio.Task):
            if task.cancelled() or failed.done():
                return
            error = task.exception()
            if error is not None:
                failed.set_exception(error)

        def enqueue_into(inbox: asyncio.Queue):
            async def on_message(payload: bytes, reply_to: Optional[str], subject: str):
                # messages from a listener that already exited are dropped
                if accepting:
                    inbox.put_nowait((payload, reply_to, subject))
            return on_message

        async def on_connected():
            for binding in bindings:
                log(
                    self.logger,
                    f"Subscribing to subject '{binding.subject}'"
                    + (f" in queue '{binding.queue}'" if binding.queue else ""),
                    level="debug",
                )
                inbox: asyncio.Queue = asyncio.Queue()
                await transport.subscribe(binding.subject, binding.queue, enqueue_into(inbox))
                worker = asyncio.create_task(self._work(transport, binding, inbox), name=f"reply:{binding.subject}")
                worker.add_done_callback(on_worker_done)
                workers.append(worker)
            if on_ready is not None:
                on_ready()

        run = asyncio.create_task(transport.run(on_connected), name="transport")
        try:
            await asyncio.wait({run, failed}, return_when=asyncio.FIRST_COMPLETED)
            if failed.done():
                failed.result()
            run.result()
        finally:
            accepting = False
            for task in [*workers, run]:
                task.cancel()
            await asyncio.gather(*workers, run, return_exceptions=True)
            if not failed.done():
                failed.cancel()

    async def _work(self, transport: Transport, binding: ReplyBinding, inbox: asyncio.Queue):
        while True:
            payload, reply_to, subject = await inbox.get()
            await self.dispatch(transport, binding, payload, reply_to, subject)

    async def dispatch(
        self,
        transport: Transport,
        binding: ReplyBinding,
        payload: bytes,
        reply_to: Optional[str],
        subject: str,
    ):
        envelope = self.codec.decode(payload)

        log(self.logger, "Received a message!")
        log(self.logger, describe_message(envelope.id, envelope.pattern, subject, envelope.data, reply_to), indent=2)

        try:
            if inspect.iscoroutinefunction(binding.handler):
                response = await binding.handler(envelope.data)
            else:
                # plain handlers may block; keep them off the event loop
                response = await asyncio.to_thread(binding.handler, envelope.data)
                if inspect.isawaitable(response):
                    response = await response
        except Exception as e:
            raise HandlerError(f"handler for {binding.subject} raised {type(e).__name__}: {e}", subject=binding.subject) from e

        log(self.logger, f"Responding with '{response}'")
        reply = self.codec.encode(response)

        if not reply_to:
            log(self.logger, f"No reply address on message for '{subject}', nothing to respond to", level="debug")
            return
        await transport.publish(reply_to, reply, queue=binding.queue)
