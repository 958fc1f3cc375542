import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, Request

from dispatch import ReplyController
from schemas import ActionResponse, BindingInfo, DispatcherSettings, HealthResponse
from transports import NatsTransport
from utilities import log


def build_controller(settings: DispatcherSettings) -> ReplyController:
    ''' Default wiring: a NATS connection plus a health-check reply.'''
    logger = logging.getLogger("replybus")
    transport = NatsTransport(settings.servers, name=settings.connection_name, logger=logger)
    controller = ReplyController(transport, settings=settings)
    controller.set_logger(logger)
    controller.register_reply(settings.health_subject, lambda data: "pong")
    return controller


def create_app(controller: Optional[ReplyController] = None, settings: Optional[DispatcherSettings] = None) -> FastAPI:
    settings = settings or (controller.settings if controller else DispatcherSettings.from_env())
    if controller is None:
        logging.basicConfig(level=settings.log_level.upper())
        controller = build_controller(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.started_at = datetime.now(timezone.utc)
        await controller.start()
        try:
            yield
        finally:
            await controller.stop()
            log(controller.logger, "Host service shut down")

    app = FastAPI(title="Reply Bus", lifespan=lifespan)
    app.state.controller = controller

    def current(request: Request) -> ReplyController:
        return request.app.state.controller

    # -------------- REST endpoints --------------

    @app.get("/health", response_model=HealthResponse)
    async def rest_health(request: Request):
        c = current(request)
        uptime_sec = int((datetime.now(timezone.utc) - request.app.state.started_at).total_seconds())
        return HealthResponse(
            uptime_sec=uptime_sec,
            running=c.is_running(),
            bindings=len(c.registry.bindings()),
            restarts=c.restart_count,
            last_error=repr(c.last_error) if c.last_error else None,
        )

    @app.get("/replies", response_model=List[BindingInfo])
    async def rest_list_replies(request: Request):
        return [BindingInfo(subject=b.subject, queue=b.queue) for b in current(request).registry.bindings()]

    @app.post("/start", response_model=ActionResponse)
    async def rest_start(request: Request):
        c = current(request)
        await c.start()
        return ActionResponse(status="started", running=c.is_running())

    @app.post("/stop", response_model=ActionResponse)
    async def rest_stop(request: Request):
        c = current(request)
        await c.stop()
        return ActionResponse(status="stopped", running=c.is_running())

    @app.post("/restart", response_model=ActionResponse)
    async def rest_restart(request: Request):
        c = current(request)
        await c.restart()
        return ActionResponse(status="restarted", running=c.is_running())

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
