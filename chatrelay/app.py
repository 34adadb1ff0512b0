from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from typing import Optional
import logging

from . import __version__, files, realtime
from .broadcaster import Broadcaster
from .config import Settings, configure_logging, settings as default_settings
from .errors import ChatRelayError
from .stores import BlobStore, MessageStore, Mongo

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    message_store: Optional[MessageStore] = None,
    blob_store: Optional[BlobStore] = None,
) -> FastAPI:
    """Build the app. Stores passed in replace the MongoDB-backed ones."""
    settings = settings or default_settings
    app = FastAPI(title="ChatChat relay", version=__version__)
    app.state.settings = settings
    app.state.mongo = None
    app.state.message_store = message_store
    app.state.blob_store = blob_store
    app.state.broadcaster = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(ChatRelayError)
    async def chat_relay_error_handler(request: Request, exc: ChatRelayError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.on_event("startup")
    async def startup_event():
        if app.state.message_store is None or app.state.blob_store is None:
            mongo = Mongo(settings)
            app.state.mongo = mongo
            if app.state.message_store is None:
                app.state.message_store = mongo.messages
                await mongo.messages.ensure_indexes()
            if app.state.blob_store is None:
                app.state.blob_store = mongo.blobs
            logger.info("Connected to MongoDB at %s", settings.mongodb_uri)
        app.state.broadcaster = Broadcaster(app.state.message_store)

    @app.on_event("shutdown")
    async def shutdown_event():
        if app.state.mongo is not None:
            app.state.mongo.close()
            logger.info("MongoDB client closed")

    @app.get("/")
    async def index():
        return HTMLResponse('<h3>ChatChat relay running. Connect via WebSocket at /ws</h3>')

    @app.get("/health")
    async def health():
        mongo = app.state.mongo
        if mongo is not None and not await mongo.ping():
            return JSONResponse({"status": "degraded"}, status_code=503)
        return {"status": "healthy"}

    app.include_router(files.router)
    app.include_router(realtime.router)
    return app


configure_logging(default_settings.log_level)
app = create_app()
