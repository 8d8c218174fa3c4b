"""Main FastAPI application."""
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from contextlib import asynccontextmanager, suppress
import asyncio
import os
from typing import Optional
from datetime import datetime
import logging

from conversationbot.config import settings, Settings
from conversationbot.api.routes import api_router
from conversationbot.core.dispatcher import Dispatcher
from conversationbot.core.session_store import SessionStore
from conversationbot.gateway.base import Gateway
from conversationbot.gateway.telegram import TelegramGateway
from conversationbot.gateway.websocket import WebSocketGateway

log_dir = os.path.dirname(settings.LOG_FILE)
if log_dir:
    os.makedirs(log_dir, exist_ok=True)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(settings.LOG_FILE),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)


def build_gateway(app_settings: Settings) -> Gateway:
    """Create the gateway named by the GATEWAY setting."""
    if app_settings.GATEWAY.lower() == "websocket":
        return WebSocketGateway(heartbeat_interval=app_settings.WS_HEARTBEAT_INTERVAL)

    return TelegramGateway(
        token=app_settings.TELEGRAM_TOKEN,
        api_url=app_settings.TELEGRAM_API_URL,
        poll_timeout=app_settings.POLL_TIMEOUT
    )


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Build the application around a store, a gateway and a dispatcher."""
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        # Startup
        logger.info("Starting conversationbot...")
        logger.info(f"Environment: {app_settings.APP_ENV}")
        logger.info(f"Gateway: {app_settings.GATEWAY}")
        app_settings.validate_bootstrap()

        store = SessionStore(app_settings.STORAGE_FILE)
        await store.load()

        async with build_gateway(app_settings) as gateway:
            if isinstance(gateway, TelegramGateway):
                await gateway.get_me()

            dispatcher = Dispatcher(store, gateway, concurrent=app_settings.CONCURRENT_DISPATCH)

            app.state.store = store
            app.state.gateway = gateway
            app.state.dispatcher = dispatcher
            dispatch_task = asyncio.create_task(dispatcher.run())

            yield

            # Shutdown
            logger.info("Shutting down conversationbot...")
            dispatch_task.cancel()
            with suppress(asyncio.CancelledError):
                await dispatch_task

        await dispatcher.shutdown()

    app = FastAPI(
        title="conversationbot",
        description="Guided conversation bot with durable per-user sessions",
        version="1.0.0",
        debug=app_settings.DEBUG,
        lifespan=lifespan
    )

    # Include API routes
    app.include_router(api_router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "conversationbot",
            "version": "1.0.0",
            "status": "running",
            "timestamp": datetime.now().isoformat()
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        gateway = app.state.gateway
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "environment": app_settings.APP_ENV,
            "gateway": app_settings.GATEWAY,
            "sessions": len(app.state.store),
            "connections": gateway.get_connection_count() if isinstance(gateway, WebSocketGateway) else None
        }

    @app.websocket("/ws/{actor_id}")
    async def websocket_endpoint(websocket: WebSocket, actor_id: str):
        """WebSocket endpoint for the websocket gateway."""
        gateway = app.state.gateway
        if not isinstance(gateway, WebSocketGateway):
            await websocket.close(code=1008)
            return

        await gateway.connect(websocket, actor_id)

        try:
            while True:
                data = await websocket.receive_json()
                await gateway.receive(actor_id, data)

        except WebSocketDisconnect:
            gateway.disconnect(actor_id, websocket)
            logger.info(f"WebSocket disconnected: {actor_id}")
        except Exception as e:
            logger.error(f"WebSocket error: {e}")
            gateway.disconnect(actor_id, websocket)

    return app


app = create_app()
