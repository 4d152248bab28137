"""HTTP front end: port listing, device switching and the live SSE stream."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from serial2sse.bridge import (
    DEFAULT_BAUD,
    DEFAULT_SETTLE_DELAY,
    RelaySession,
    SerialFactory,
    make_serial,
)
from serial2sse.broadcast import (
    SSE_HEADERS,
    SSE_MEDIA_TYPE,
    BroadcastRegistry,
    event_stream,
)
from serial2sse.errors import OpenFailure, ScanFailure
from serial2sse.pipeline import DEFAULT_BATCH_SIZE
from serial2sse.ports import list_port_paths

logger = logging.getLogger("serial2sse.app")

STATIC_DIR = Path(__file__).parent / "static"


class ConnectRequest(BaseModel):
    port: str


def create_app(
    baud: int = DEFAULT_BAUD,
    batch_size: int = DEFAULT_BATCH_SIZE,
    settle_delay: float = DEFAULT_SETTLE_DELAY,
    static_dir: Optional[Path] = None,
    serial_factory: SerialFactory = make_serial,
) -> FastAPI:
    """Build the relay application around a fresh registry and session."""
    registry = BroadcastRegistry()
    session = RelaySession(
        registry,
        baud=baud,
        batch_size=batch_size,
        settle_delay=settle_delay,
        serial_factory=serial_factory,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await session.close()
        logger.info("Relay stopped")

    app = FastAPI(title="serial2sse", lifespan=lifespan)
    app.state.registry = registry
    app.state.session = session

    @app.get("/api/ports")
    async def ports():
        try:
            return list_port_paths()
        except ScanFailure:
            return JSONResponse(status_code=500, content={"error": "scan failed"})

    @app.get("/api/stream")
    async def stream(request: Request):
        logger.info("Stream opened by %s", request.client.host if request.client else "?")
        return StreamingResponse(
            event_stream(registry), media_type=SSE_MEDIA_TYPE, headers=SSE_HEADERS
        )

    @app.post("/api/connect")
    async def connect(body: ConnectRequest):
        try:
            message = await session.connect(body.port)
        except OpenFailure as e:
            return JSONResponse(
                status_code=500,
                content={"message": f"Connection failed (port busy): {e.detail}"},
            )
        return {"message": message}

    @app.get("/api/status")
    async def status():
        return session.status()

    directory = Path(static_dir) if static_dir else STATIC_DIR
    if directory.is_dir():
        app.mount("/", StaticFiles(directory=directory, html=True), name="static")
    else:
        logger.warning("Static directory %s not found; viewer disabled", directory)

    return app


def run_server(
    host: str,
    http_port: int,
    baud: int = DEFAULT_BAUD,
    batch_size: int = DEFAULT_BATCH_SIZE,
    settle_delay: float = DEFAULT_SETTLE_DELAY,
    static_dir: Optional[Path] = None,
    verbose: bool = False,
):
    """Synchronous entry: serve the relay until interrupted."""
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    app = create_app(
        baud=baud,
        batch_size=batch_size,
        settle_delay=settle_delay,
        static_dir=static_dir,
    )
    logger.info("Serving on http://%s:%s", host, http_port)
    try:
        uvicorn.run(app, host=host, port=http_port, log_level="warning", access_log=False)
    except KeyboardInterrupt:
        pass
