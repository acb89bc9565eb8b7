"""Provider payloads and their normalized form.

Each provider's user-info payload is parsed into its own model variant,
selected by the ``provider`` tag. Normalization happens once here, so
nothing downstream of the adapters branches on the provider again.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

PLACEHOLDER_EMAIL_DOMAIN = "oauth.local"


def placeholder_email(provider: str, subject_id: str) -> str:
    """Deterministic stand-in for providers that do not return an email."""
    return f"{provider}_{subject_id}@{PLACEHOLDER_EMAIL_DOMAIN}"


def is_placeholder_email(email: str) -> bool:
    return email.endswith(f"@{PLACEHOLDER_EMAIL_DOMAIN}")


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str = ""
    expires_at: dt.datetime | None = None
    id_token: str | None = None

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> TokenPair:
        expires_at = None
        if data.get("expires_in"):
            expires_at = dt.datetime.now(dt.timezone.utc) + dt.timedelta(seconds=int(data["expires_in"]))
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or "",
            expires_at=expires_at,
            id_token=data.get("id_token"),
        )


@dataclass(frozen=True)
class NormalizedProfile:
    provider: str
    subject_id: str
    email: str
    display_name: str = ""
    avatar_url: str = ""
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def email_synthesized(self) -> bool:
        return is_placeholder_email(self.email)


class _ProviderPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def _normalized(self, subject_id: str, email: str, display_name: str, avatar_url: str) -> NormalizedProfile:
        email = email.strip().lower()
        return NormalizedProfile(
            provider=self.provider,
            subject_id=subject_id,
            email=email or placeholder_email(self.provider, subject_id),
            display_name=display_name,
            avatar_url=avatar_url,
            raw=self.model_dump(by_alias=True, exclude={"provider"}),
        )


class GoogleProfile(_ProviderPayload):
    provider: Literal["google"] = "google"
    id: str
    email: str = ""
    verified_email: bool = False
    name: str = ""
    given_name: str = ""
    family_name: str = ""
    picture: str = ""

    def normalize(self) -> NormalizedProfile:
        # An unverified address must not be able to claim an existing identity
        email = self.email if self.verified_email else ""
        return self._normalized(self.id, email, self.name, self.picture)


class _FacebookPictureData(BaseModel):
    url: str = ""


class _FacebookPicture(BaseModel):
    data: _FacebookPictureData = Field(default_factory=_FacebookPictureData)


class FacebookProfile(_ProviderPayload):
    provider: Literal["facebook"] = "facebook"
    id: str
    email: str = ""
    name: str = ""
    picture: _FacebookPicture = Field(default_factory=_FacebookPicture)

    def normalize(self) -> NormalizedProfile:
        return self._normalized(self.id, self.email, self.name, self.picture.data.url)


class LineProfile(_ProviderPayload):
    provider: Literal["line"] = "line"
    user_id: str = Field(alias="userId")
    display_name: str = Field("", alias="displayName")
    picture_url: str = Field("", alias="pictureUrl")
    status_message: str = Field("", alias="statusMessage")
    # Only present when the ID token carried a verified email claim
    email: str = ""

    def normalize(self) -> NormalizedProfile:
        return self._normalized(self.user_id, self.email, self.display_name, self.picture_url)


ProviderProfile = Annotated[
    Union[GoogleProfile, FacebookProfile, LineProfile],
    Field(discriminator="provider"),
]

_profile_adapter: TypeAdapter[ProviderProfile] = TypeAdapter(ProviderProfile)


def parse_profile(provider: str, payload: dict[str, Any]) -> GoogleProfile | FacebookProfile | LineProfile:
    return _profile_adapter.validate_python({**payload, "provider": provider})
