import logging
import secrets
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase

from chatapp.config import Settings, get_settings
from chatapp.database.connection import close_mongo_connection, connect_to_mongo, use_database
from chatapp.repositories.message_repository import MessageRepository
from chatapp.repositories.user_repository import UserRepository
from chatapp.routers.auth import router as auth_router
from chatapp.routers.chat import router as chat_router
from chatapp.routers.chat import ws_router
from chatapp.routers.presence import router as presence_router
from chatapp.utils.errors import ChatError
from chatapp.utils.fanout import FanoutDispatcher
from chatapp.utils.logger import configure_logging
from chatapp.utils.presence import PresenceRegistry
from chatapp.utils.websocket_manager import ConnectionManager


logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, database: Optional[AsyncIOMotorDatabase] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    if not settings.jwt_secret:
        logger.warning("JWT_SECRET is not set; signing tokens with a random per-process secret, issued tokens will not survive a restart")
        settings = settings.model_copy(update={"jwt_secret": secrets.token_urlsafe(32)})

    @asynccontextmanager
    async def lifespan(app: FastAPI):

        if database is None:
            db = await connect_to_mongo(settings)
        else:
            use_database(database)
            db = database
        await MessageRepository(db).ensure_indexes()
        await UserRepository(db).ensure_indexes()

        registry = PresenceRegistry()
        app.state.presence = registry
        app.state.connections = ConnectionManager(registry)
        app.state.fanout = FanoutDispatcher(registry)
        logger.info("Chat server started")
        try:
            yield
        finally:
            await app.state.connections.close_all()
            registry.clear()
            await close_mongo_connection()
            logger.info("Chat server stopped")

    app = FastAPI(title="Chat backend", lifespan=lifespan)
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_url],
        allow_credentials=settings.client_url != "*",
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "validation_error", "message": message},
        )

    app.include_router(auth_router)
    app.include_router(chat_router)
    app.include_router(presence_router)
    app.include_router(ws_router)

    @app.get("/api/status")
    async def status():
        return {"success": True, "message": "Server is live", "online": len(app.state.presence)}

    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("chatapp.main:app", host=settings.host, port=settings.port)
