from typing import Any, Dict, Optional

from pydantic import BaseModel, EmailStr, Field


class UserBase(BaseModel):

    email: EmailStr


class UserCreate(UserBase):

    password: str = Field(min_length=6)
    full_name: str = Field(min_length=1)
    bio: str = Field(min_length=1)


class UserLogin(UserBase):

    password: str


class ProfileUpdate(BaseModel):

    full_name: Optional[str] = Field(default=None, min_length=1)
    bio: Optional[str] = None
    # hosted image reference; uploading the bytes happens elsewhere
    profile_pic: Optional[str] = None


class UserPublic(UserBase):

    id: str
    full_name: str
    bio: Optional[str] = None
    profile_pic: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "UserPublic":
        return cls(
            id=str(doc["_id"]),
            email=doc["email"],
            full_name=doc.get("full_name") or "",
            bio=doc.get("bio"),
            profile_pic=doc.get("profile_pic"),
        )


class AuthResponse(BaseModel):

    success: bool = True
    user: UserPublic
    token: str
    message: str
