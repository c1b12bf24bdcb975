"""
FastAPI main application.
Entry point for the relay bot's HTTP chat gateway.
"""
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from relaybot.api import routes_chat, routes_image
from relaybot.api.gateway import ChannelRegistry
from relaybot.api.schema import HealthResponse
from relaybot.core.config import Settings, get_settings
from relaybot.core.dispatcher import Dispatcher
from relaybot.core.image_client import ImageClient
from relaybot.core.llm_client import LLMClient
from relaybot.core.logging import setup_logging
from relaybot.core.pool import BackendPool, SelectionPolicy
from relaybot.services.channel_queue import ChannelQueue
from relaybot.services.chat.handler import MessageHandler
from relaybot.services.context_store import ContextStore

logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the backend pools, clients and conversation store on startup."""
    settings: Settings = app.state.settings or get_settings()
    transport: Optional[httpx.AsyncBaseTransport] = app.state.transport
    logger.info("Starting relay bot...")

    policy = SelectionPolicy.RANDOM if settings.random_server else SelectionPolicy.PRIORITY

    # Fails startup when no LLM servers are configured
    llm_pool = BackendPool(settings.ollama, policy=policy, name="ollama")
    llm_dispatcher = Dispatcher.from_settings(llm_pool, settings, transport=transport)
    llm_client = LLMClient(llm_dispatcher, settings)

    image_pool = None
    image_client = None
    if settings.stable_diffusion:
        image_pool = BackendPool(settings.stable_diffusion, policy=policy, name="stable diffusion")
        image_client = ImageClient(Dispatcher.from_settings(image_pool, settings, transport=transport), settings)

    store = ContextStore()
    queue = ChannelQueue()

    app.state.settings = settings
    app.state.pools = {"ollama": llm_pool}
    if image_pool is not None:
        app.state.pools["stable_diffusion"] = image_pool
    app.state.llm_client = llm_client
    app.state.image_client = image_client
    app.state.store = store
    app.state.queue = queue
    app.state.registry = ChannelRegistry()
    app.state.handler = MessageHandler(llm_client, store, settings)
    logger.info(f"Relaying to model {settings.model}")

    yield

    logger.info("Shutting down relay bot...")
    await queue.close()


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> FastAPI:
    """
    Create the application.

    Args:
        settings: Settings to use instead of the environment
        transport: HTTP transport for backend calls (tests use a mock)
    """
    app = FastAPI(
        title="Relay Bot API",
        description="Chat relay to pooled LLM and image generation backends",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.transport = transport

    # Include routers
    app.include_router(routes_chat.router, prefix="/api", tags=["chat"])
    app.include_router(routes_image.router, prefix="/api", tags=["image"])

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "message": "Relay Bot API is running",
            "version": "1.0.0"
        }

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request):
        """Detailed health check with backend availability."""
        state = request.app.state
        return HealthResponse(
            status="healthy",
            model=state.settings.model,
            pools={name: pool.snapshot() for name, pool in state.pools.items()}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Global exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc)},
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "relaybot.main:app",
        host=settings.api_host,
        port=settings.api_port
    )
