from pydantic import BaseModel, EmailStr, Field
from typing import Optional

from portal.schemas.user import UserRead


# -------------------------------------------------------------------
# LOGIN REQUEST
# -------------------------------------------------------------------
class LoginRequest(BaseModel):
    email: EmailStr
    password: str


# -------------------------------------------------------------------
# STUDENT SELF-REGISTRATION
# -------------------------------------------------------------------
class StudentRegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str = Field(min_length=6)

    class Config:
        json_schema_extra = {
            "examples": [
                {
                    "name": "Student User",
                    "email": "student@example.com",
                    "password": "password123"
                }
            ]
        }


# -------------------------------------------------------------------
# TOKEN + USER DETAILS (login / register response)
# -------------------------------------------------------------------
class TokenWithUser(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    user: UserRead


# -------------------------------------------------------------------
# CONSOLE SESSION (who is acting)
# -------------------------------------------------------------------
class SessionRead(BaseModel):
    user: UserRead                 # effective identity
    real_user: UserRead            # authenticated identity
    impersonating: bool = False
