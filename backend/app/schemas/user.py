# app/schemas/user.py

from pydantic import BaseModel, EmailStr

class UserCreate(BaseModel):
    name: str
    email: EmailStr
    password: str
    track: str | None = None

class UserResponse(BaseModel):
    id: int
    name: str
    email: EmailStr
    role: str
    track_id: int | None = None

    model_config = {"from_attributes": True}


class UserMeResponse(UserResponse):
    track: str | None = None


class UserLogin(BaseModel):
    email: EmailStr
    password: str
