import asyncio
import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from starlette.staticfiles import StaticFiles

from flowbot.config import settings
from flowbot.logging_config import get_logger, setup_logging
from flowbot.routers import inbound, triggers
from flowbot.runtime import Runtime, build_runtime, get_runtime
from flowbot.services.flow_graph import ConfigError
from flowbot.services.history_store import StoreError

logger = get_logger("main")


def _is_monitor_enabled(rt: Runtime) -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return rt.settings.pool_monitor_enabled


def create_app(runtime: Optional[Runtime] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level)
        try:
            app.state.runtime = runtime or build_runtime(settings)
        except ConfigError as e:
            logger.critical(f"Invalid flow graph, refusing to start: {e}")
            raise
        rt: Runtime = app.state.runtime

        try:
            await asyncio.to_thread(rt.store.ensure_schema)
            logger.info("Database initialized and table checked.")
        except StoreError as e:
            logger.error(f"Initialization error: {e}")

        if _is_monitor_enabled(rt):
            rt.monitor.start()

        yield

        await rt.monitor.stop()
        await rt.transport.close()
        rt.store.dispose()

    app = FastAPI(
        title="Flowbot API",
        description="Keyword and event driven WhatsApp dialogue service",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(triggers.router)
    app.include_router(inbound.router)

    assets_dir = os.path.dirname(settings.samples_local_media_path) or "."
    if os.path.isdir(assets_dir):
        app.mount("/assets", StaticFiles(directory=assets_dir), name="assets")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/db-check")
    def db_check(rt: Runtime = Depends(get_runtime)):
        ready = rt.store.is_ready
        body = {
            "status": "ok" if ready else "unavailable",
            "ready": ready,
            "recreations": rt.store.recreations,
            "conversations": len(rt.conversations),
        }
        return JSONResponse(body, status_code=200 if ready else 503)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("flowbot.main:app", host=settings.host, port=settings.port)
