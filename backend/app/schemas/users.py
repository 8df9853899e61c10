"""Schemas related to user profiles and friendships."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class UserPublic(BaseModel):
    """Public-facing user fields embedded in message payloads."""

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: int
    username: str
    first_name: str = ""
    last_name: str = ""
    avatar: str = ""


class UserSnapshot(UserPublic):
    """User state cached in the connection registry."""

    external_id: str
    is_online: bool = False
    last_seen: datetime | None = None
    friend_ids: list[int] = Field(default_factory=list)
