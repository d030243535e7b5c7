from fastapi import APIRouter, Depends

from chatapp.utils.dependencies import get_presence
from chatapp.utils.presence import PresenceRegistry


router = APIRouter(prefix="/api/presence", tags=["chat"])


@router.get("")
async def online_users(registry: PresenceRegistry = Depends(get_presence)):
    return {"success": True, "online_users": sorted(registry.online_user_ids())}


@router.get("/{user_id}")
async def presence(user_id: str, registry: PresenceRegistry = Depends(get_presence)):
    """
    Online status from the in-process presence registry. There is no
    last-seen tracking; presence is lost on restart.
    """
    return {"success": True, "user_id": user_id, "online": registry.is_online(user_id)}
