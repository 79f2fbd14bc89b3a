# dormir-la-haut-api/dormir_api/models/user.py
from typing import List, Literal, Optional
from pydantic import BaseModel, EmailStr, Field

UserRole = Literal["user", "admin"]


class UserCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr


class UserUpdate(UserCreate):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None


from dormir_api.models.base import DocumentInDB

class UserInDB(DocumentInDB, UserCreate):
    role: UserRole = "user"
    bookmarks: List[str] = []

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
