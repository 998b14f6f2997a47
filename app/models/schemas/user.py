from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UserUpsertModel(BaseModel):
    """Basic profile fields provided by the identity provider."""

    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class UserPreferencesModel(BaseModel):
    """Study preferences used by the matcher. Only provided fields are updated."""

    topics: Optional[List[str]] = Field(
        None, description="Ordered topics of interest, e.g. ['Calculus', 'Physics']."
    )
    learning_goals: Optional[str] = None
    preferred_languages: Optional[List[str]] = None
    data_usage_consent: Optional[bool] = None

    @field_validator("topics", "preferred_languages")
    @classmethod
    def strip_blank_entries(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return value
        return [item.strip() for item in value if item and item.strip()]


class UserResponseModel(BaseModel):
    user_id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    topics: List[str] = Field(default_factory=list)
    learning_goals: Optional[str] = None
    preferred_languages: List[str] = Field(default_factory=list)
    data_usage_consent: bool = False
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
