import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, WebSocket
from pydantic import ValidationError as PydanticValidationError

from chatapp.config import Settings
from chatapp.database.connection import mongo_db_dependency
from chatapp.repositories.message_repository import MessageRepository
from chatapp.repositories.user_repository import UserRepository
from chatapp.schemas.message import MessageCreate, MessagePublic, SeenAck, SidebarResponse
from chatapp.schemas.user import UserPublic
from chatapp.services.chat_service import ChatService
from chatapp.utils.dependencies import get_app_settings, get_connection_manager, get_current_user, get_dispatcher, get_presence
from chatapp.utils.errors import AuthenticationError, ValidationError
from chatapp.utils.fanout import FanoutDispatcher
from chatapp.utils.presence import PresenceRegistry
from chatapp.utils.security import decode_access_token
from chatapp.utils.session import ConnectionSession
from chatapp.utils.websocket_manager import ConnectionManager


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/messages", tags=["chat"])
ws_router = APIRouter(tags=["chat"])


def get_chat_service(db = Depends(mongo_db_dependency), dispatcher: FanoutDispatcher = Depends(get_dispatcher)) -> ChatService:
    return ChatService(MessageRepository(db), UserRepository(db), dispatcher)


@router.get("/users", response_model=SidebarResponse)
async def users_for_sidebar(current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    users, unseen = await service.sidebar(current_user["_id"])
    return SidebarResponse(users=[UserPublic.from_document(u) for u in users], unseen_messages=unseen)


@router.get("/{user_id}")
async def open_conversation(user_id: str, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    messages = await service.open_conversation(current_user["_id"], user_id)
    return {"success": True, "messages": [MessagePublic.from_document(m) for m in messages]}


@router.put("/mark/{message_id}")
async def mark_message_seen(message_id: str, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    await service.mark_message_seen(message_id)
    return {"success": True}


@router.post("/send/{user_id}")
async def send_message(user_id: str, payload: MessageCreate, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    saved = await service.send_message(current_user["_id"], user_id, text=payload.text, image=payload.image)
    return {"success": True, "new_message": MessagePublic.from_document(saved)}


def resolve_identity(websocket: WebSocket, settings: Settings) -> Optional[str]:
    """User id from a verified ``?token=``; None when anonymous.

    Any other caller-supplied id (``?userId=``) is ignored: presence and
    pushes are only ever bound to an authenticated identity.
    """
    token = websocket.query_params.get("token")
    if not token:
        return None
    return decode_access_token(token, settings)["sub"]


@ws_router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    service: ChatService = Depends(get_chat_service),
    registry: PresenceRegistry = Depends(get_presence),
    manager: ConnectionManager = Depends(get_connection_manager),
    settings: Settings = Depends(get_app_settings),
):
    try:
        user_id = resolve_identity(websocket, settings)
    except AuthenticationError:
        logger.info("Rejected websocket with an invalid token")
        await websocket.close(code=4401)
        return

    session = ConnectionSession(websocket, user_id, registry, manager)

    async def on_seen(frame: Dict[str, Any]) -> None:
        # {type: "seen", message_id}
        try:
            ack = SeenAck.model_validate(frame)
        except PydanticValidationError:
            raise ValidationError("seen event requires a message_id")
        await service.mark_message_seen(ack.message_id)

    if user_id:
        # anonymous sessions only listen
        session.on("seen", on_seen)
    await session.serve()
