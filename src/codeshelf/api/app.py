"""FastAPI app entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from codeshelf.api.routes.projects import router as projects_router
from codeshelf.api.routes.rpc import router as rpc_router
from codeshelf.api.routes.scans import router as scans_router
from codeshelf.config import AppConfig, load_config
from codeshelf.container import AppContainer
from codeshelf.logging_config import setup_logging
from codeshelf.rpc.dispatcher import RPCDispatcher

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def create_app(config: AppConfig | None = None, container: AppContainer | None = None) -> FastAPI:
    container = container or AppContainer.build(config)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await container.start()
        try:
            yield
        finally:
            await container.stop()

    app = FastAPI(title="codeshelf API", version="0.1.0", lifespan=lifespan)
    app.state.container = container
    app.state.dispatcher = RPCDispatcher(container)
    app.include_router(projects_router)
    app.include_router(scans_router)
    app.include_router(rpc_router)

    @app.get("/api/v1/health", tags=["system"])
    async def health() -> dict[str, str | int]:
        return {"status": "ok", **container.index.stats()}

    return app


def run(
    host: str = DEFAULT_HOST, port: int = DEFAULT_PORT, config: AppConfig | None = None
) -> None:
    config = config or load_config()
    setup_logging(config.log_level)
    uvicorn.run(create_app(config), host=host, port=port, log_config=None)
