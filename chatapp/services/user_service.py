import logging
from typing import Any, Dict, Tuple

from pymongo.errors import DuplicateKeyError

from chatapp.config import Settings
from chatapp.repositories.user_repository import UserRepository
from chatapp.schemas.user import ProfileUpdate, UserCreate, UserPublic
from chatapp.utils.errors import AuthenticationError, ConflictError, NotFoundError
from chatapp.utils.security import create_access_token, hash_password, verify_password


logger = logging.getLogger(__name__)


class UserService:
    """Account operations: signup, login, profile updates."""

    def __init__(self, user_repository: UserRepository, settings: Settings):
        self.user_repository = user_repository
        self.settings = settings

    async def register_user(self, data: UserCreate) -> Tuple[UserPublic, str]:
        """
        Register a new account and issue its first token.
        - Reject an email that is already registered
        - Hash the password before it is stored
        """
        existing = await self.user_repository.get_user_by_email(data.email)
        if existing:
            raise ConflictError("Account already exists")

        hashed_password = hash_password(data.password)
        try:
            new_id = await self.user_repository.create_user(
                email=data.email,
                hashed_password=hashed_password,
                full_name=data.full_name,
                bio=data.bio,
            )
        except DuplicateKeyError:
            # lost a race with a concurrent signup for the same email
            raise ConflictError("Account already exists")

        logger.info("Registered user %s", new_id)
        user = UserPublic(id=new_id, email=data.email, full_name=data.full_name, bio=data.bio)
        return user, create_access_token(new_id, self.settings)

    async def authenticate_user(self, email: str, password: str) -> Tuple[UserPublic, str]:
        """
        Check credentials and issue a token.
        Unknown email and wrong password fail the same way.
        """
        user = await self.user_repository.get_user_by_email(email)
        if not user or not verify_password(password, user.get("hashed_password", "")):
            raise AuthenticationError("Invalid credentials")

        return UserPublic.from_document(user), create_access_token(user["_id"], self.settings)

    async def update_profile(self, user_id: str, data: ProfileUpdate) -> UserPublic:
        fields: Dict[str, Any] = data.model_dump(exclude_none=True)
        updated = await self.user_repository.update_profile(user_id, fields)
        if not updated:
            raise NotFoundError(f"User {user_id} not found")
        return UserPublic.from_document(updated)
