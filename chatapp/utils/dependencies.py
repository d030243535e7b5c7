from typing import Optional

from fastapi import Depends
from fastapi.requests import HTTPConnection
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from chatapp.config import Settings
from chatapp.database.connection import mongo_db_dependency
from chatapp.repositories.user_repository import UserRepository
from chatapp.utils.errors import AuthenticationError
from chatapp.utils.fanout import FanoutDispatcher
from chatapp.utils.presence import PresenceRegistry
from chatapp.utils.security import decode_access_token
from chatapp.utils.websocket_manager import ConnectionManager


bearer_scheme = HTTPBearer(auto_error=False)


def get_app_settings(connection: HTTPConnection) -> Settings:
    return connection.app.state.settings


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db = Depends(mongo_db_dependency),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    if credentials is None:
        raise AuthenticationError("Not authorized, token missing")
    payload = decode_access_token(credentials.credentials, settings)
    user = await UserRepository(db).get_user_by_id(payload["sub"])
    if not user:
        raise AuthenticationError("User not found")
    user.pop("hashed_password", None)
    return user


def get_presence(connection: HTTPConnection) -> PresenceRegistry:
    return connection.app.state.presence


def get_connection_manager(connection: HTTPConnection) -> ConnectionManager:
    return connection.app.state.connections


def get_dispatcher(connection: HTTPConnection) -> FanoutDispatcher:
    return connection.app.state.fanout
