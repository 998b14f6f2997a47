from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .base import JSON_TYPE, Base, new_id


# --- Study Session Model ---
class StudySessionORM(Base):
    __tablename__ = "study_sessions"

    session_id = Column(String, primary_key=True, default=new_id)
    group_id = Column(
        String, ForeignKey("study_groups.group_id", ondelete="CASCADE"), nullable=False, index=True
    )
    title = Column(String, nullable=False)

    # --- Timing ---
    scheduled_at = Column(DateTime, nullable=False, index=True)
    duration = Column(Integer, default=90, nullable=False)  # minutes
    topic = Column(Text, nullable=True)

    # --- AI-generated agenda ---
    objectives = Column(JSON_TYPE, nullable=True)  # list[str]
    practice_questions = Column(JSON_TYPE, nullable=True)  # [{question, answer}]
    time_schedule = Column(JSON_TYPE, nullable=True)  # [{time, activity}]

    # --- Completion tracking ---
    completed_at = Column(DateTime, nullable=True)
    checklist_completion_percent = Column(Integer, default=0, nullable=False)
    success_rating = Column(Integer, nullable=True)  # 1-5
    feedback = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    group = relationship("StudyGroupORM", back_populates="sessions")
    checklist_items = relationship(
        "ChecklistItemORM",
        back_populates="session",
        order_by="ChecklistItemORM.created_at",
        cascade="all, delete-orphan",
    )


class ChecklistItemORM(Base):
    __tablename__ = "checklist_items"

    item_id = Column(String, primary_key=True, default=new_id)
    session_id = Column(
        String,
        ForeignKey("study_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content = Column(Text, nullable=False)
    completed = Column(Boolean, default=False, nullable=False)
    completed_by = Column(String, ForeignKey("users.user_id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    session = relationship("StudySessionORM", back_populates="checklist_items")
