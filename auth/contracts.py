"""Request/response bodies shared by the client and the mock backend."""

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class User(BaseModel):
    id: int
    name: str
    email: EmailStr


class CreateUser(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr


class Login(BaseModel):
    email: EmailStr


class LoginResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1, alias="refreshToken")


class RefreshTokenResponse(BaseModel):
    token: str = Field(min_length=1)


class JwtPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(alias="userId")
    exp: int
