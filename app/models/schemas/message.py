from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .user import UserResponseModel


class MessageCreateModel(BaseModel):
    content: str = Field(..., min_length=1)


class MessageResponseModel(BaseModel):
    message_id: str
    group_id: str
    user_id: str
    content: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MessageWithUserModel(MessageResponseModel):
    user: Optional[UserResponseModel] = None


# --- Real-time channel frames ---


class JoinFrame(BaseModel):
    """Client -> server: ``{"type": "join", "groupId": ..., "token": ...}``."""

    type: Literal["join"]
    group_id: str = Field(..., min_length=1)
    token: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageFrame(BaseModel):
    """Server -> client broadcast of a newly posted message."""

    type: Literal["message"] = "message"
    group_id: str
    message: MessageWithUserModel

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def parse_join_frame(data) -> Optional[JoinFrame]:
    """Returns the join frame in ``data``, or None for any other/malformed frame."""
    if not isinstance(data, dict) or data.get("type") != "join":
        return None
    try:
        return JoinFrame.model_validate(data)
    except ValidationError:
        return None
