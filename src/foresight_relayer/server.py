"""FastAPI application factory for the relay endpoint."""

import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from .relayer import RelayHandler

logger = logging.getLogger(__name__)

LIVENESS_MESSAGE = "Foresight Relayer is running!"

PARSE_ERROR = -32700


def create_app(relayer: RelayHandler) -> FastAPI:
    """Create the FastAPI application serving ``relayer``."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        yield
        # Shutdown
        await relayer.close()
        logger.info("Relay handler closed")

    app = FastAPI(
        title="Foresight Relayer",
        description="Relays ERC-4337 user operations to their entry point",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.relayer = relayer

    @app.get("/", response_class=PlainTextResponse)
    async def liveness() -> str:
        return LIVENESS_MESSAGE

    @app.get("/health")
    async def health_check() -> dict:
        """Health check with the bundler address and node reachability."""
        return {
            "status": "healthy",
            "bundler": relayer.signer.address,
            "chainConnected": await relayer.chain.is_connected(),
            "stats": relayer.get_stats(),
        }

    @app.post("/")
    async def relay(request: Request) -> JSONResponse:
        raw = await request.body()
        try:
            body = json.loads(raw) if raw else {}
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.info("Rejected request with undecodable JSON body")
            return JSONResponse(
                status_code=400,
                content={"jsonrpc": "2.0", "error": {"code": PARSE_ERROR, "message": "Parse error"}},
            )

        response = await relayer.handle(body)
        return JSONResponse(status_code=response.status_code, content=response.body)

    return app
