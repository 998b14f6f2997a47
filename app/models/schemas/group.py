from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from .user import UserResponseModel


class GroupCreateModel(BaseModel):
    name: str = Field(..., min_length=1)
    topics: List[str] = Field(default_factory=list)


class GroupMemberModel(BaseModel):
    user_id: str
    joined_at: datetime
    user: UserResponseModel

    model_config = ConfigDict(from_attributes=True)


class GroupResponseModel(BaseModel):
    group_id: str
    name: str
    topics: List[str] = Field(default_factory=list)
    created_at: datetime
    members: List[GroupMemberModel] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)
