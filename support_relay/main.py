"""
Main FastAPI application for the Customer Support Relay.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from support_relay.core.config import ConfigLoader, config_loader
from support_relay.core import schemas
from support_relay.data_access.base import AuthProvider, MessageStore, UserDirectory
from support_relay.data_access.adapters import (
    InMemoryMessageStore,
    InMemoryUserDirectory,
    RedisMessageStore,
    TokenAuthProvider,
)
from support_relay.orchestration import MessageRouter, SessionRegistry, WebSocketHandler

logger = logging.getLogger(__name__)


def configure_logging(loader: ConfigLoader):
    """Configure root logging from the logging section of the config."""
    logging_config = loader.get_logging_config()
    handlers = [logging.StreamHandler()]
    if logging_config.file:
        handlers.append(logging.FileHandler(logging_config.file))

    logging.basicConfig(
        level=getattr(logging, logging_config.level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def apply_log_level(loader: ConfigLoader):
    """Re-apply logging.level after a config reload."""
    level = loader.get_logging_config().level.upper()
    logging.getLogger().setLevel(getattr(logging, level, logging.INFO))
    logger.info(f"Log level set to {level}")


def build_message_store(loader: ConfigLoader) -> MessageStore:
    """Create the message store selected by storage.backend."""
    storage_config = loader.get_storage_config()
    backend = storage_config.backend.lower()
    if backend == "redis":
        return RedisMessageStore(storage_config.redis.model_dump())
    if backend != "memory":
        logger.warning(f"Unknown storage backend '{backend}', falling back to memory")
    return InMemoryMessageStore()


def create_app(
    loader: Optional[ConfigLoader] = None,
    message_store: Optional[MessageStore] = None,
    user_directory: Optional[UserDirectory] = None,
    auth_provider: Optional[AuthProvider] = None,
) -> FastAPI:
    """
    Build the relay application.

    Collaborators that are not passed in are built from configuration when
    the application starts.
    """
    loader = loader or config_loader
    settings = loader.settings
    relay_config = loader.get_relay_config()
    server_config = loader.get_server_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Manage application lifecycle.
        Initialize resources on startup and cleanup on shutdown.
        """
        logger.info(f"🚀 Starting {settings.app_name}...")
        loader.add_reload_callback(apply_log_level)
        loader.start_watching()

        registry = SessionRegistry()

        store = message_store or build_message_store(loader)
        await store.connect()

        directory = user_directory or InMemoryUserDirectory(
            [user.model_dump() for user in loader.get_directory_config().users]
        )

        auth = auth_provider or TokenAuthProvider(
            user_directory=directory,
            secret_key=settings.secret_key,
            algorithm=settings.jwt_algorithm,
            expiration_minutes=settings.jwt_expiration_minutes,
            support_desk_id=relay_config.support_desk_id,
            allow_registration=loader.get_auth_config().allow_registration,
            config_loader=loader,
        )

        router = MessageRouter(
            registry=registry,
            auth_provider=auth,
            message_store=store,
            user_directory=directory,
            support_desk_id=relay_config.support_desk_id,
        )

        app.state.registry = registry
        app.state.message_store = store
        app.state.user_directory = directory
        app.state.router = router
        app.state.websocket_handler = WebSocketHandler(router)

        logger.info("Application startup complete")

        yield  # Application runs

        logger.info("Shutting down application...")
        registry.clear()
        await store.disconnect()
        loader.stop_watching()
        loader.remove_reload_callback(apply_log_level)
        logger.info("🛑 Application shutdown complete")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Realtime relay between customers and support managers",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=server_config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        health_status = {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
        }

        registry = getattr(app.state, "registry", None)
        if registry is not None:
            health_status["online_sessions"] = registry.count()

        store = getattr(app.state, "message_store", None)
        if store is not None:
            store_healthy = await store.health_check()
            health_status["message_store"] = "healthy" if store_healthy else "unavailable"
            if not store_healthy:
                health_status["status"] = "degraded"

        return health_status

    @app.get("/api/v1/info")
    async def api_info():
        """Get API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "websocket_path": relay_config.websocket_path,
            "events": {
                "inbound": [schemas.LOGIN, schemas.SEND_MESSAGE, schemas.GET_MESSAGES, schemas.GET_CUSTOMERS],
                "outbound": [
                    schemas.LOGIN_RESPONSE,
                    schemas.MESSAGE_RESPONSE,
                    schemas.MESSAGES_RESPONSE,
                    schemas.CUSTOMERS_RESPONSE,
                    schemas.NEW_MESSAGE,
                    schemas.ERROR,
                ],
            },
        }

    @app.websocket(relay_config.websocket_path)
    async def relay_endpoint(websocket: WebSocket):
        """WebSocket endpoint for realtime relay traffic."""
        websocket_handler = getattr(app.state, "websocket_handler", None)
        if websocket_handler is None:
            await websocket.close(code=1011, reason="Service temporarily unavailable")
            return

        await websocket_handler.handle_connection(websocket)

    @app.exception_handler(404)
    async def not_found_handler(request, exc):
        """Handle 404 errors."""
        return JSONResponse(
            status_code=404,
            content={"error": "Resource not found"}
        )

    return app


def main():
    """Run the relay with uvicorn."""
    configure_logging(config_loader)

    server_config = config_loader.get_server_config()
    uvicorn.run(
        create_app(config_loader),
        host=server_config.host,
        port=server_config.port,
    )


if __name__ == "__main__":
    main()
