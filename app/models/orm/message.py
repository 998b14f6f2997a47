from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from .base import Base, new_id


class MessageORM(Base):
    __tablename__ = "messages"

    message_id = Column(String, primary_key=True, default=new_id)
    group_id = Column(
        String, ForeignKey("study_groups.group_id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    group = relationship("StudyGroupORM", back_populates="messages")
    user = relationship("UserORM")
