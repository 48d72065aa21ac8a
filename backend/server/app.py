"""
FastAPI app factory and in-process server.

Responsibilities:
- Create and configure the liveness FastAPI app
- Register routes
- Build the uvicorn server that runs it on the bot's event loop
"""

import asyncio

import uvicorn
from fastapi import FastAPI

from config import AppConfig
from constants import HTTP_BIND_HOST
from observability.logger import log_event

from server.routes import register_routes


def create_app(config: AppConfig) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The config is injected so tests can build the app without touching
    the environment.
    """
    app = FastAPI(title=f"{config.bot_name} liveness")

    app.state.config = config

    # Routes
    register_routes(app)

    return app


def build_server(config: AppConfig) -> uvicorn.Server:
    """
    Build a uvicorn server bound to all interfaces on config.port.
    """
    return uvicorn.Server(
        uvicorn.Config(
            create_app(config),
            host=HTTP_BIND_HOST,
            port=config.port,
            log_level="warning",
            access_log=False,
        )
    )


class LivenessServer:
    """
    Runs the liveness app as a task on the bot's event loop.

    start() returns once uvicorn reports it is serving, or raises if the
    server task ended before that.
    """

    _POLL_INTERVAL_S = 0.05

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        self._server = build_server(self._config)
        self._task = asyncio.create_task(self._server.serve())

        while not self._server.started:
            if self._task.done():
                raise RuntimeError(f"liveness server failed to start on port {self._config.port}")
            await asyncio.sleep(self._POLL_INTERVAL_S)

        log_event({
            "event_type": "LIVENESS_SERVER_STARTED",
            "host": HTTP_BIND_HOST,
            "port": self._config.port,
        })

    async def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        task = self._task
        self._task = None
        if task is not None and not task.done():
            await task
