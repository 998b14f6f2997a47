from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String, Text
from sqlalchemy.orm import relationship

from .base import JSON_TYPE, Base, new_id


class UserORM(Base):
    __tablename__ = "users"

    user_id = Column(String, primary_key=True, default=new_id)
    email = Column(String, unique=True, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)

    # --- Study preferences (inputs to matching) ---
    # Ordered; a user is eligible for matching only when non-empty.
    topics = Column(JSON_TYPE, default=list, nullable=False)
    learning_goals = Column(Text, nullable=True)
    preferred_languages = Column(JSON_TYPE, default=list, nullable=False)

    # Recorded but does not gate matching
    data_usage_consent = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    memberships = relationship("GroupMemberORM", back_populates="user")
