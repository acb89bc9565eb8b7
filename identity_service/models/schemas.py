"""Pydantic schemas for API requests and responses."""
from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field


class UserOut(BaseModel):
    """Public identity snapshot; never carries credentials or provider tokens."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    username: str
    display_name: str
    avatar_url: str = ""
    role: str
    is_active: bool
    email_verified: bool
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    @classmethod
    def from_identity(cls, identity) -> UserOut:
        snapshot = cls.model_validate(identity)
        if not snapshot.display_name:
            snapshot.display_name = identity.username
        return snapshot


class AuthURLOut(BaseModel):
    auth_url: str


class ProviderOut(BaseModel):
    name: str
    display_name: str


class ProvidersOut(BaseModel):
    providers: list[ProviderOut]


class ExchangeIn(BaseModel):
    code: str = Field(..., min_length=1)
    state: str = ""


class ExchangeOut(BaseModel):
    token: str
    user: UserOut
    is_new_user: bool


class UserUpdate(BaseModel):
    display_name: str | None = Field(None, max_length=100)
    avatar_url: str | None = Field(None, max_length=500)


class MessageOut(BaseModel):
    detail: str
