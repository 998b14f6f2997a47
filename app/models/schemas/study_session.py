from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SessionCreateModel(BaseModel):
    """Schema for scheduling a session explicitly (API Input)."""

    group_id: str
    title: str = Field(..., min_length=1)
    scheduled_at: datetime
    duration: int = Field(90, gt=0, description="Duration in minutes.")
    topic: Optional[str] = None


class SessionUpdateModel(BaseModel):
    """Partial update; only provided fields are written."""

    title: Optional[str] = Field(None, min_length=1)
    scheduled_at: Optional[datetime] = None
    duration: Optional[int] = Field(None, gt=0)
    topic: Optional[str] = None


class SessionCompleteModel(BaseModel):
    success_rating: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = None


# --- Agenda ---


class PracticeQuestion(BaseModel):
    question: str
    answer: str


class TimeSlot(BaseModel):
    time: str = Field(..., description="e.g. '0-15 min'")
    activity: str


class SessionAgenda(BaseModel):
    """Agenda produced by the language model for a session."""

    objectives: List[str] = Field(default_factory=list)
    practice_questions: List[PracticeQuestion] = Field(
        default_factory=list, validation_alias="practiceQuestions"
    )
    time_schedule: List[TimeSlot] = Field(
        default_factory=list, validation_alias="timeSchedule"
    )

    model_config = ConfigDict(populate_by_name=True)


# --- Checklist ---


class ChecklistUpdateModel(BaseModel):
    completed: bool


class ChecklistItemModel(BaseModel):
    item_id: str
    session_id: str
    content: str
    completed: bool
    completed_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SessionResponseModel(BaseModel):
    session_id: str
    group_id: str
    title: str
    scheduled_at: datetime
    duration: int
    topic: Optional[str] = None
    objectives: Optional[List[str]] = None
    practice_questions: Optional[List[PracticeQuestion]] = None
    time_schedule: Optional[List[TimeSlot]] = None
    completed_at: Optional[datetime] = None
    checklist_completion_percent: int = 0
    success_rating: Optional[int] = None
    feedback: Optional[str] = None
    checklist_items: List[ChecklistItemModel] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)
