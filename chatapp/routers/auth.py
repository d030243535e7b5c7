from fastapi import APIRouter, Depends

from chatapp.config import Settings
from chatapp.database.connection import mongo_db_dependency
from chatapp.repositories.user_repository import UserRepository
from chatapp.schemas.user import AuthResponse, ProfileUpdate, UserCreate, UserLogin, UserPublic
from chatapp.services.user_service import UserService
from chatapp.utils.dependencies import get_app_settings, get_current_user


router = APIRouter(prefix="/api/auth", tags=["auth"])


def get_user_service(db = Depends(mongo_db_dependency), settings: Settings = Depends(get_app_settings)) -> UserService:
    return UserService(UserRepository(db), settings)


@router.post("/signup", response_model=AuthResponse)
async def signup(payload: UserCreate, service: UserService = Depends(get_user_service)):
    user, token = await service.register_user(payload)
    return AuthResponse(user=user, token=token, message="Account created successfully")


@router.post("/login", response_model=AuthResponse)
async def login(payload: UserLogin, service: UserService = Depends(get_user_service)):
    user, token = await service.authenticate_user(payload.email, payload.password)
    return AuthResponse(user=user, token=token, message="Login successful")


@router.get("/check")
async def check_auth(current_user: dict = Depends(get_current_user)):
    return {"success": True, "user": UserPublic.from_document(current_user)}


@router.put("/update-profile")
async def update_profile(payload: ProfileUpdate, current_user: dict = Depends(get_current_user), service: UserService = Depends(get_user_service)):
    # one response on every branch, with or without a new picture
    user = await service.update_profile(current_user["_id"], payload)
    return {"success": True, "user": user}
