"""Schemas related to user profiles and friendships."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, constr, model_validator

# ":" is reserved as the separator of conversation keys.
Identity = constr(
    strip_whitespace=True, to_lower=True, min_length=1, max_length=320, pattern=r"^[^:]+$"
)


class PublicUser(BaseModel):
    """Public profile of an identity, including its public key."""

    model_config = ConfigDict(from_attributes=True)

    email: str
    display_name: str | None = None
    icon: str | None = None
    public_key: str | None = None


class UserRead(PublicUser):
    """Full profile, including the opaque encrypted private key payload."""

    encrypted_private_key: str | None = None
    created_at: datetime
    updated_at: datetime


class UserCreate(BaseModel):
    """Payload for registering a new identity."""

    email: Identity
    display_name: constr(strip_whitespace=True, min_length=1, max_length=128) | None = None
    icon: str | None = None
    public_key: str | None = None
    encrypted_private_key: str | None = None


class UserProfileUpdate(BaseModel):
    """Partial profile update; omitted fields are left untouched."""

    display_name: constr(strip_whitespace=True, min_length=1, max_length=128) | None = None
    icon: str | None = None
    public_key: str | None = None
    encrypted_private_key: str | None = None

    @model_validator(mode="after")
    def ensure_any_field(self) -> "UserProfileUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one profile field must be provided")
        return self

    def changes(self) -> dict[str, str | None]:
        return self.model_dump(include=self.model_fields_set)


class UserLookup(BaseModel):
    """Payload for resolving several identities at once."""

    identities: list[Identity] = Field(..., min_length=1, max_length=500)


class FriendEntry(PublicUser):
    """Friend profile annotated with live presence."""

    online: bool = False


class SyncSnapshot(BaseModel):
    """Everything a reconnecting client needs to reconcile missed pushes."""

    identity: str
    friends: list[FriendEntry] = Field(default_factory=list)
    requests: list[PublicUser] = Field(default_factory=list)
    sent_requests: list[PublicUser] = Field(default_factory=list)
    unread: dict[str, int] = Field(default_factory=dict)
